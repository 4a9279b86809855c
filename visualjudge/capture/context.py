"""Adapter selection for a capture session."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional, Sequence

from visualjudge.errors import NoSupportedAdapterError
from visualjudge.models.scenario import AnimationSpec

from .adapters.base import CaptureAdapter, CaptureOptions
from .adapters.browser import BrowserTerminalAdapter
from .adapters.native import NativeTerminalAdapter
from .adapters.renderer import RendererCaptureAdapter

logger = logging.getLogger(__name__)


def default_adapters() -> list[CaptureAdapter]:
    """Command adapters in preference order."""
    return [NativeTerminalAdapter(), BrowserTerminalAdapter()]


class CaptureContext:
    """Picks the first supported command adapter and remembers the choice.

    In-process rendering always goes to the renderer adapter.
    """

    def __init__(self, adapters: Optional[Sequence[CaptureAdapter]] = None,
                 renderer: Optional[RendererCaptureAdapter] = None):
        self.adapters = list(adapters) if adapters is not None else default_adapters()
        self.renderer = renderer or RendererCaptureAdapter()
        self._selected: Optional[CaptureAdapter] = None

    def resolve_adapter(self) -> CaptureAdapter:
        if self._selected is not None:
            return self._selected
        for adapter in self.adapters:
            if adapter.is_supported():
                logger.info("Using capture adapter: %s", adapter.name)
                self._selected = adapter
                return adapter
        names = ", ".join(a.name for a in self.adapters) or "none registered"
        raise NoSupportedAdapterError(f"No supported capture adapter found (tried: {names})")

    def reset(self) -> None:
        self._selected = None

    async def capture(self, options: CaptureOptions) -> Path:
        return await self.resolve_adapter().capture(options)

    async def capture_rendered(self, options: CaptureOptions) -> Path:
        return await self.renderer.capture(options)

    async def capture_animation(self, options: CaptureOptions,
                                animation: AnimationSpec) -> list[Path]:
        return await self.renderer.capture_animation(options, animation)
