"""Lay renderables out on a character grid and turn the grid into a PNG.

The pipeline is renderable -> ANSI grid -> SVG (rich's exporter with a fixed
terminal theme) -> PNG (headless Chromium, screenshot at the exact viewport).
"""

from __future__ import annotations

import html
import io
import logging
from pathlib import Path
from typing import Any, Optional

from playwright.async_api import Browser, Playwright, async_playwright
from rich.color import ColorSystem
from rich.console import Console
from rich.segment import Segment
from rich.terminal_theme import TerminalTheme
from rich.text import Text

from visualjudge.errors import CaptureError

logger = logging.getLogger(__name__)

# rich's SVG exporter draws cells at font_size 20: 12.2px wide, 24.4px tall
CELL_WIDTH = 12.2
CELL_HEIGHT = 24.4
FONT_ASPECT_RATIO = 0.61

DEFAULT_THEME = TerminalTheme(
    (30, 30, 30),
    (212, 212, 212),
    [
        (0, 0, 0),
        (205, 49, 49),
        (13, 188, 121),
        (229, 229, 16),
        (36, 114, 200),
        (188, 63, 188),
        (17, 168, 205),
        (229, 229, 229),
    ],
    [
        (102, 102, 102),
        (241, 76, 76),
        (35, 209, 139),
        (245, 245, 67),
        (59, 142, 234),
        (214, 112, 214),
        (41, 184, 219),
        (255, 255, 255),
    ],
)


def grid_size(width: int, height: int) -> tuple[int, int]:
    """Columns and rows that fit in ``width`` x ``height`` pixels."""
    return max(1, int(width // CELL_WIDTH)), max(1, int(height // CELL_HEIGHT))


def _offscreen_console(cols: int, rows: int, record: bool = False) -> Console:
    return Console(
        file=io.StringIO(),
        width=cols,
        height=rows,
        force_terminal=True,
        color_system="truecolor",
        legacy_windows=False,
        record=record,
    )


def as_renderable(value: Any) -> Any:
    """ANSI strings become Text; anything else is assumed to be a rich renderable."""
    if isinstance(value, str):
        return Text.from_ansi(value)
    if value is None:
        return Text("")
    return value


class AnsiConverter:
    """Converts rendered output into SVG and PNG using one terminal theme."""

    def __init__(self, theme: TerminalTheme = DEFAULT_THEME):
        self.theme = theme

    def render_grid(self, renderable: Any, cols: int, rows: int) -> str:
        """Render onto a ``cols`` x ``rows`` grid and serialise it as ANSI.

        Output taller than the grid is cropped; shorter output is padded with
        blank lines so every frame has the same geometry.
        """
        console = _offscreen_console(cols, rows)
        options = console.options.update(width=cols, height=rows)
        lines = console.render_lines(as_renderable(renderable), options, pad=True)[:rows]
        blank = [Segment(" " * cols)]
        lines.extend([blank] * (rows - len(lines)))

        out = []
        for line in lines:
            parts = []
            for text, style, _control in line:
                if style:
                    parts.append(style.render(text, color_system=ColorSystem.TRUECOLOR))
                else:
                    parts.append(text)
            out.append("".join(parts))
        return "\n".join(out)

    def to_svg(self, ansi: str, cols: int, title: str = "") -> str:
        console = _offscreen_console(cols, max(1, ansi.count("\n") + 1), record=True)
        console.print(Text.from_ansi(ansi), no_wrap=True, overflow="crop", crop=True)
        return console.export_svg(
            title=title,
            theme=self.theme,
            font_aspect_ratio=FONT_ASPECT_RATIO,
        )

    def background_css(self) -> str:
        return self.theme.background_color.hex


def svg_page(svg: str, background: str) -> str:
    """Wrap an SVG so it fills the viewport exactly."""
    return (
        "<!DOCTYPE html><html><head><meta charset='utf-8'><style>"
        f"html,body{{margin:0;padding:0;overflow:hidden;background:{html.escape(background)};}}"
        "svg{display:block;width:100vw;height:100vh;}"
        f"</style></head><body>{svg}</body></html>"
    )


class SvgRasterizer:
    """Headless Chromium session that screenshots SVGs at a fixed size.

    Use as an async context manager so a batch of frames shares one browser.
    """

    def __init__(self, width: int, height: int, background: str = "#1e1e1e"):
        self.width = width
        self.height = height
        self.background = background
        self._manager = None
        self._playwright: Optional[Playwright] = None
        self._browser: Optional[Browser] = None
        self._page = None

    async def __aenter__(self) -> "SvgRasterizer":
        self._manager = async_playwright()
        self._playwright = await self._manager.__aenter__()
        try:
            self._browser = await self._playwright.chromium.launch(headless=True)
        except Exception as e:
            await self._manager.__aexit__(None, None, None)
            raise CaptureError(
                f"Failed to launch Playwright browser: {e}.\n"
                "Hint: run 'playwright install chromium' to install the required browser."
            ) from e
        self._page = await self._browser.new_page(
            viewport={"width": self.width, "height": self.height}
        )
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        try:
            if self._browser is not None:
                await self._browser.close()
        except Exception as e:
            logger.warning("Failed to close rasterizer browser: %s", e)
        finally:
            await self._manager.__aexit__(exc_type, exc, tb)

    async def rasterize(self, svg: str, out: Path) -> Path:
        if self._page is None:
            raise RuntimeError("SvgRasterizer must be entered before use")
        out.parent.mkdir(parents=True, exist_ok=True)
        await self._page.set_content(svg_page(svg, self.background))
        await self._page.screenshot(path=str(out), full_page=False)
        return out
