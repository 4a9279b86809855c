"""Scenario definitions and the screenshot records produced by capture."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class AnimationSpec(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration: float  # milliseconds of animation time covered by the frames
    screenshots: int  # number of frames to capture


class Scenario(BaseModel):
    """One named test case for a component, loaded from a scenario file."""

    model_config = ConfigDict(frozen=True)

    component_name: str
    scenario_name: str
    description: str = ""
    expectation: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    animation: Optional[AnimationSpec] = None

    @property
    def is_animated(self) -> bool:
        return (
            self.animation is not None
            and self.animation.screenshots > 0
            and self.animation.duration >= 0
        )


class ScenarioFile(BaseModel):
    """Contents of a ``*.scenarios.json`` file.

    ``command`` is run in a terminal for command-based capture (the scenario
    index is exported as ``SCENARIO_INDEX``). ``render`` names an in-process
    render function as ``"package.module:function"``; it is required for
    animated scenarios.
    """

    component: Optional[str] = None
    command: Optional[str] = None
    render: Optional[str] = None
    scenarios: list[dict[str, Any]] = Field(default_factory=list)


class Dimensions(BaseModel):
    model_config = ConfigDict(frozen=True)

    width: int
    height: int


class FrameInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    duration: float
    frame_count: int
    frame_index: int
    timestamp: float  # animation clock time of this frame, in milliseconds


class ScreenshotMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    component_name: str
    scenario_name: str
    description: str = ""
    expectation: str = ""
    params: dict[str, Any] = Field(default_factory=dict)
    file_path: str
    timestamp: float  # capture time, epoch seconds
    dimensions: Dimensions
    animation: Optional[FrameInfo] = None


class CaptureResult(BaseModel):
    screenshots: list[ScreenshotMetadata] = Field(default_factory=list)
    output_dir: str
    capture_date: str
    total_components: int = 0
    total_scenarios: int = 0
