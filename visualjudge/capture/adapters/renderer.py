"""In-process capture: call a render function and rasterise its output."""

from __future__ import annotations

import importlib
import importlib.util
import inspect
import logging
from pathlib import Path
from typing import Any, Callable, Optional

from visualjudge.capture.animation import AnimationController, LogicalClock
from visualjudge.capture.ansi_converter import AnsiConverter, SvgRasterizer, grid_size
from visualjudge.errors import CaptureError
from visualjudge.models.scenario import AnimationSpec

from .base import CaptureOptions, RenderTarget

logger = logging.getLogger(__name__)


def frame_path(output_path: Path, frame_index: int) -> Path:
    """``dir/name.png`` -> ``dir/name_frame_<i>.png``."""
    return output_path.with_name(f"{output_path.stem}_frame_{frame_index}{output_path.suffix}")


def _load_module(module_ref: str, base_dir: Optional[Path]):
    if module_ref.endswith(".py"):
        path = Path(module_ref)
        if not path.is_absolute() and base_dir is not None:
            path = base_dir / path
        spec = importlib.util.spec_from_file_location(path.stem, path)
        if spec is None or spec.loader is None:
            raise CaptureError(f"Cannot load render module from {path}")
        module = importlib.util.module_from_spec(spec)
        spec.loader.exec_module(module)
        return module
    return importlib.import_module(module_ref)


def resolve_render_target(target: RenderTarget, base_dir: Optional[Path] = None) -> Callable[..., Any]:
    """Turn ``"module:function"`` or ``"path/to/file.py:function"`` into a callable.

    Relative ``.py`` paths are resolved against ``base_dir``.
    """
    if callable(target):
        return target
    module_ref, sep, attr = str(target).rpartition(":")
    if not sep or not module_ref or not attr:
        raise CaptureError(f"Render target must look like 'module:function', got {target!r}")
    try:
        module = _load_module(module_ref, base_dir)
    except CaptureError:
        raise
    except Exception as e:
        raise CaptureError(f"Failed to import render module '{module_ref}': {e}") from e
    func = getattr(module, attr, None)
    if not callable(func):
        raise CaptureError(f"'{attr}' in '{module_ref}' is not a callable render function")
    return func


class RendererCaptureAdapter:
    """Renders components in-process with rich, one frame per clock position."""

    name = "In-process Renderer (rich)"

    def __init__(self, converter: Optional[AnsiConverter] = None,
                 base_dir: Optional[Path] = None):
        self.converter = converter or AnsiConverter()
        self.base_dir = base_dir

    def is_supported(self) -> bool:
        return True

    async def _render(self, render: Callable[..., Any], params: dict,
                      clock: LogicalClock) -> Any:
        output = render(dict(params), clock)
        if inspect.isawaitable(output):
            output = await output
        return output

    async def _frame_svg(self, render: Callable[..., Any], options: CaptureOptions,
                         clock: LogicalClock) -> str:
        cols, rows = grid_size(options.width, options.height)
        try:
            output = await self._render(render, options.params, clock)
        except Exception as e:
            raise CaptureError(f"Render function failed: {e}") from e
        ansi = self.converter.render_grid(output, cols, rows)
        return self.converter.to_svg(ansi, cols, title=options.output_path.stem)

    def _rasterizer(self, options: CaptureOptions) -> SvgRasterizer:
        return SvgRasterizer(options.width, options.height,
                             background=self.converter.background_css())

    def _resolve(self, options: CaptureOptions) -> Callable[..., Any]:
        if options.render_target is None:
            raise CaptureError(f"{self.name} needs a render target")
        return resolve_render_target(options.render_target, self.base_dir)

    async def capture(self, options: CaptureOptions) -> Path:
        render = self._resolve(options)
        svg = await self._frame_svg(render, options, LogicalClock())
        async with self._rasterizer(options) as rasterizer:
            await rasterizer.rasterize(svg, options.output_path)
        logger.info("Screenshot saved: %s", options.output_path)
        return options.output_path

    async def capture_animation(self, options: CaptureOptions,
                                animation: AnimationSpec) -> list[Path]:
        """Capture ``animation.screenshots`` frames spread over ``animation.duration`` ms."""
        render = self._resolve(options)
        clock = LogicalClock()
        controller = AnimationController(clock)
        paths: list[Path] = []

        async with self._rasterizer(options) as rasterizer:
            async def _capture_frame(frame_index: int, timestamp: float) -> None:
                svg = await self._frame_svg(render, options, clock)
                out = frame_path(options.output_path, frame_index)
                await rasterizer.rasterize(svg, out)
                paths.append(out)

            await controller.capture_frames(animation.duration, animation.screenshots,
                                            _capture_frame)

        logger.info("Captured %d animation frames for %s", len(paths), options.output_path.name)
        return paths
