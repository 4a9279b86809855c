"""Exception types raised across the visual test pipeline."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from visualjudge.models.scenario import CaptureResult


class VisualJudgeError(Exception):
    """Base class for pipeline errors."""


class CaptureError(VisualJudgeError):
    """A single capture attempt failed."""

    def __init__(self, message: str, output_path: Optional[Path] = None):
        super().__init__(message)
        self.output_path = output_path


class PtySpawnError(CaptureError):
    """The shell process for a command could not be started."""


class CommandTimeoutError(CaptureError):
    """A command did not finish before its timeout."""

    def __init__(self, message: str, partial_output: str = ""):
        super().__init__(message)
        self.partial_output = partial_output


class NoSupportedAdapterError(CaptureError):
    """No capture adapter reports itself supported on this platform."""


class CaptureFailedError(VisualJudgeError):
    """Capture finished, but one or more scenarios could not be captured."""

    def __init__(self, message: str, result: "CaptureResult", failed: int):
        super().__init__(message)
        self.result = result
        self.failed = failed


class ManifestError(VisualJudgeError):
    """A metadata manifest is missing or cannot be parsed."""


class EvaluationError(VisualJudgeError):
    """The AI verdict for a screenshot could not be obtained or parsed."""
