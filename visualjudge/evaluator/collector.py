"""Aggregates evaluation results per component and across the run."""

from __future__ import annotations

import json
import time
from typing import Any, Optional

from visualjudge.models.evaluation import (
    ComponentSummary,
    EvaluationResult,
    SuiteAssessment,
    TestSummary,
)


class ResultCollector:
    """Holds results grouped by component in the order they were added.

    Summaries are computed on every read, so they always reflect the
    results collected so far.
    """

    def __init__(self) -> None:
        self._by_component: dict[str, list[EvaluationResult]] = {}
        self.start_time = time.time()

    def add_result(self, result: EvaluationResult) -> None:
        self._by_component.setdefault(result.component_name, []).append(result)

    def add_results(self, results: list[EvaluationResult]) -> None:
        for result in results:
            self.add_result(result)

    def get_component_results(self, component_name: str) -> Optional[ComponentSummary]:
        results = self._by_component.get(component_name)
        if results is None:
            return None
        passed = sum(1 for r in results if r.passed)
        return ComponentSummary(
            component_name=component_name,
            scenarios=len(results),
            passed=passed,
            failed=len(results) - passed,
            results=list(results),
        )

    def get_all_results(self) -> dict[str, ComponentSummary]:
        return {name: self.get_component_results(name) for name in self._by_component}

    def results(self) -> list[EvaluationResult]:
        return [r for results in self._by_component.values() for r in results]

    def get_summary(self) -> TestSummary:
        all_results = self.results()
        total = len(all_results)
        passed = sum(1 for r in all_results if r.passed)
        now = time.time()
        return TestSummary(
            total_tests=total,
            passed=passed,
            failed=total - passed,
            pass_rate=passed / total if total else 0.0,
            average_confidence=sum(r.confidence for r in all_results) / total if total else 0.0,
            duration=now - self.start_time,
            timestamp=now,
        )

    def to_dict(self, assessment: Optional[SuiteAssessment] = None) -> dict[str, Any]:
        data: dict[str, Any] = {
            "summary": self.get_summary().model_dump(),
            "components": [c.model_dump() for c in self.get_all_results().values()],
        }
        if assessment is not None:
            data["assessment"] = assessment.model_dump()
        return data

    def export_to_json(self, assessment: Optional[SuiteAssessment] = None) -> str:
        return json.dumps(self.to_dict(assessment), indent=2)
