"""Configuration models for the visual test pipeline."""

from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

# Default locations, relative to the project being tested
DEV_ROOT = ".dev"
DEFAULT_SCREENSHOT_DIR = f"{DEV_ROOT}/screenshots"
DEFAULT_OUTPUT_DIR = f"{DEV_ROOT}/reports"
DEFAULT_SCENARIO_PATTERN = "components/**/*.scenarios.json"

# File and directory names inside the screenshot / report directories
METADATA_FILE = "metadata.json"
REPORT_INDEX_FILE = "index.html"
REPORT_RESULTS_FILE = "results.json"
RUNS_MANIFEST_FILE = "runs.json"
RUNS_DIR = "runs"

Strictness = Literal["lenient", "moderate", "strict"]
Theme = Literal["light", "dark"]


def _env_int(name: str, default: int) -> int:
    value = os.environ.get(name)
    if not value:
        return default
    try:
        return int(value)
    except ValueError:
        return default


class CaptureConfig(BaseModel):
    pattern: str = DEFAULT_SCENARIO_PATTERN
    screenshot_dir: str = DEFAULT_SCREENSHOT_DIR
    width: int = Field(default_factory=lambda: _env_int("TERMINAL_WIDTH", 900))
    height: int = Field(default_factory=lambda: _env_int("TERMINAL_HEIGHT", 600))
    settle_ms: int = Field(default_factory=lambda: _env_int("SCREENSHOT_DELAY", 2000))
    command_timeout_seconds: float = 30.0

    @field_validator("width", "height")
    @classmethod
    def positive_dimension(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("Capture dimensions must be positive")
        return v


class EvaluationCriteria(BaseModel):
    strictness: Strictness = "moderate"
    check_text_content: bool = True
    check_layout: bool = True
    check_colors: bool = True
    custom_rules: list[str] = Field(default_factory=list)

    @classmethod
    def preset(cls, strictness: Strictness) -> "EvaluationCriteria":
        """Criteria used by the --strict / --moderate / --lenient CLI flags."""
        if strictness == "strict":
            return cls(strictness="strict", check_text_content=True,
                       check_layout=True, check_colors=True)
        if strictness == "moderate":
            return cls(strictness="moderate", check_text_content=True,
                       check_layout=True, check_colors=False)
        return cls(strictness="lenient", check_text_content=True,
                   check_layout=False, check_colors=False)


class ReportConfig(BaseModel):
    title: str = "Visual Test Report"
    theme: Theme = "dark"
    include_screenshots: bool = True
    include_metadata: bool = True
    include_ai_commentary: bool = True


class PipelineConfig(BaseModel):
    # Capture
    capture: CaptureConfig = Field(default_factory=CaptureConfig)
    skip_capture: bool = False

    # Evaluation
    evaluation_criteria: EvaluationCriteria = Field(default_factory=EvaluationCriteria)
    ai_model: str = "claude-sonnet-4-5"
    ai_max_tokens: int = 4096
    ai_summary: bool = True

    # Reporting
    report: ReportConfig = Field(default_factory=ReportConfig)
    output_dir: str = DEFAULT_OUTPUT_DIR
    open_report: bool = False

    # History management
    keep_history: int = 10
    run_name: Optional[str] = None
    skip_cleanup: bool = False

    @field_validator("keep_history")
    @classmethod
    def non_negative_history(cls, v: int) -> int:
        if v < 0:
            raise ValueError("keep_history cannot be negative")
        return v

    @property
    def screenshot_dir(self) -> Path:
        return Path(self.capture.screenshot_dir)

    @classmethod
    def load(cls, path: str | Path) -> "PipelineConfig":
        """Load config from a JSON file."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = json.load(f)
        return cls(**data)

    def save(self, path: str | Path) -> None:
        """Save config to a JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.model_dump(), f, indent=2)
