"""Headless-browser terminal capture using Playwright and an xterm.js page."""

from __future__ import annotations

import logging
from pathlib import Path

from playwright.async_api import Browser, Page, Playwright, async_playwright

from visualjudge.capture.pty_runner import CommandResult, run_command
from visualjudge.errors import CaptureError

from .base import CaptureOptions

logger = logging.getLogger(__name__)

TEMPLATE_PATH = Path(__file__).resolve().parent.parent / "terminal_template.html"
READY_TIMEOUT_MS = 15_000

_MEASURE_JS = """() => {
    if (!window.terminal) { throw new Error("Terminal bridge not initialised"); }
    const dims = window.terminal.measure();
    if (!dims) { throw new Error("Failed to measure terminal dimensions"); }
    return dims;
}"""


async def launch_browser(playwright: Playwright) -> Browser:
    """Launch headless Chromium, with an install hint on failure."""
    try:
        return await playwright.chromium.launch(headless=True)
    except Exception as e:
        raise CaptureError(
            f"Failed to launch Playwright browser: {e}.\n"
            "Hint: run 'playwright install chromium' to install the required browser."
        ) from e


async def open_terminal_page(browser: Browser, width: int, height: int) -> Page:
    page = await browser.new_page(viewport={"width": width, "height": height})
    response = await page.goto(TEMPLATE_PATH.as_uri())
    if response is None:
        raise CaptureError(f"Failed to load terminal template from {TEMPLATE_PATH}")
    if not response.ok:
        raise CaptureError(
            f"Failed to load terminal template from {TEMPLATE_PATH}. "
            f"HTTP status: {response.status}"
        )
    await page.wait_for_function("() => Boolean(window.terminal)", timeout=READY_TIMEOUT_MS)
    return page


async def prepare_terminal(page: Page) -> dict:
    """Measure the terminal grid, then reset the emulator to that size."""
    dimensions = await page.evaluate(_MEASURE_JS)
    await page.evaluate("() => window.terminal.clear()")
    await page.evaluate(
        "({cols, rows}) => window.terminal.init(cols, rows)", dimensions
    )
    logger.debug("Terminal grid: %dx%d", dimensions["cols"], dimensions["rows"])
    return dimensions


async def take_screenshot(page: Page, out: Path, settle_ms: int) -> None:
    out.parent.mkdir(parents=True, exist_ok=True)
    await page.wait_for_timeout(settle_ms)
    await page.screenshot(path=str(out), full_page=False)


class BrowserTerminalAdapter:
    """Runs the command in a PTY and mirrors its output into a browser terminal."""

    name = "Browser Terminal (Playwright)"

    def is_supported(self) -> bool:
        return True

    async def _stream_command(self, page: Page, options: CaptureOptions,
                              dimensions: dict) -> CommandResult:
        async def _write(chunk: str) -> None:
            await page.evaluate("(data) => window.terminal.write(data)", chunk)

        return await run_command(
            options.command,
            cols=dimensions["cols"],
            rows=dimensions["rows"],
            timeout=options.timeout,
            on_data=_write,
        )

    async def capture(self, options: CaptureOptions) -> Path:
        if not options.command:
            raise CaptureError(f"{self.name} needs a command to run")
        out = options.output_path
        logger.info("Capturing terminal: %s", options.command)

        async with async_playwright() as p:
            browser: Browser | None = None
            page: Page | None = None
            screenshot_saved = False
            try:
                browser = await launch_browser(p)
                page = await open_terminal_page(browser, options.width, options.height)
                dimensions = await prepare_terminal(page)
                result = await self._stream_command(page, options, dimensions)

                await take_screenshot(page, out, options.settle_ms)
                screenshot_saved = True

                if result.exit_code != 0:
                    raise CaptureError(
                        f"Command exited with status {result.exit_code}. "
                        f"Screenshot saved to {out}.\n"
                        "Check the screenshot for captured output.",
                        output_path=out,
                    )
                logger.info("Screenshot saved: %s", out)
                return out
            except Exception as e:
                if page is not None and not screenshot_saved:
                    try:
                        await take_screenshot(page, out, options.settle_ms)
                        screenshot_saved = True
                    except Exception as screenshot_err:
                        logger.error("Failed to capture fallback screenshot: %s", screenshot_err)
                logger.error("Failed to capture: %s", e)
                message = f"Browser terminal capture failed: {e}"
                if screenshot_saved and str(out) not in message:
                    message += f" (screenshot saved to {out})"
                raise CaptureError(message, output_path=out if screenshot_saved else None) from e
            finally:
                if browser is not None:
                    try:
                        await browser.close()
                    except Exception as close_err:
                        logger.warning("Failed to close browser: %s", close_err)
