"""Capture contract shared by every terminal capture strategy."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, Union, runtime_checkable

RenderTarget = Union[str, Callable[..., Any]]


@dataclass
class CaptureOptions:
    output_path: Path
    command: Optional[str] = None
    render_target: Optional[RenderTarget] = None
    params: dict[str, Any] = field(default_factory=dict)
    width: int = 900
    height: int = 600
    settle_ms: int = 2500
    timeout: float = 30.0

    def __post_init__(self) -> None:
        self.output_path = Path(self.output_path)


@runtime_checkable
class CaptureAdapter(Protocol):
    """A way of turning a command or render target into a PNG."""

    name: str

    def is_supported(self) -> bool:
        ...

    async def capture(self, options: CaptureOptions) -> Path:
        ...
