"""AI verdicts and the aggregates computed from them."""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class Observations(BaseModel):
    model_config = ConfigDict(frozen=True)

    elements_found: list[str] = Field(default_factory=list)
    text_content: list[str] = Field(default_factory=list)
    layout_description: str = ""
    color_scheme: list[str] = Field(default_factory=list)


class EvaluationResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    component_name: str
    scenario_name: str
    file_path: str
    passed: bool
    confidence: float = 0.0
    reasoning: str = ""
    observations: Observations = Field(default_factory=Observations)
    suggestions: list[str] = Field(default_factory=list)
    timestamp: float  # evaluation time, epoch seconds

    @field_validator("confidence", mode="before")
    @classmethod
    def clamp_confidence(cls, v) -> float:
        try:
            value = float(v)
        except (TypeError, ValueError):
            return 0.0
        return min(max(value, 0.0), 1.0)


class TestSummary(BaseModel):
    __test__ = False  # not a pytest test class

    total_tests: int = 0
    passed: int = 0
    failed: int = 0
    pass_rate: float = 0.0
    average_confidence: float = 0.0
    duration: float = 0.0  # seconds
    timestamp: float = 0.0


class ComponentSummary(BaseModel):
    component_name: str
    scenarios: int = 0
    passed: int = 0
    failed: int = 0
    results: list[EvaluationResult] = Field(default_factory=list)


class SuiteAssessment(BaseModel):
    """AI commentary over a whole run."""

    overall_status: str = ""  # excellent, good, needs-attention, critical
    common_patterns: list[str] = Field(default_factory=list)
    critical_issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)


class PipelineResult(BaseModel):
    success: bool
    summary: TestSummary
    report_path: str
    run_id: Optional[str] = None
    errors: list[str] = Field(default_factory=list)
