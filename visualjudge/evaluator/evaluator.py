"""Screenshot evaluation against written expectations using Claude vision."""

from __future__ import annotations

import base64
import json
import logging
import time
from pathlib import Path
from typing import Any, Optional, Sequence

from pydantic import ValidationError

from visualjudge.ai.client import AIClient, parse_json_response
from visualjudge.ai.prompts.evaluation import build_evaluation_prompt, build_summary_prompt
from visualjudge.errors import EvaluationError, ManifestError
from visualjudge.models.config import EvaluationCriteria
from visualjudge.models.evaluation import EvaluationResult, Observations, SuiteAssessment
from visualjudge.models.scenario import ScreenshotMetadata

logger = logging.getLogger(__name__)

# Replies sometimes come back camelCased
_OBSERVATION_ALIASES = {
    "elementsFound": "elements_found",
    "textContent": "text_content",
    "layoutDescription": "layout_description",
    "colorScheme": "color_scheme",
}
_ASSESSMENT_ALIASES = {
    "overallStatus": "overall_status",
    "commonPatterns": "common_patterns",
    "criticalIssues": "critical_issues",
}


NO_REASONING = "AI verdict gave no reasoning"


def _normalise_keys(data: dict, aliases: dict[str, str]) -> dict:
    return {aliases.get(k, k): v for k, v in data.items()}


def _string_list(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    return [str(item) for item in value]


def failed_result(metadata: ScreenshotMetadata, error: Exception | str,
                  file_path: str | Path | None = None) -> EvaluationResult:
    """The verdict recorded when a screenshot could not be evaluated."""
    return EvaluationResult(
        component_name=metadata.component_name,
        scenario_name=metadata.scenario_name,
        file_path=str(file_path) if file_path is not None else metadata.file_path,
        passed=False,
        confidence=0.0,
        reasoning=f"Evaluation failed: {error}",
        observations=Observations(layout_description="Error during evaluation"),
        suggestions=["Retry evaluation", "Check screenshot quality"],
        timestamp=time.time(),
    )


def load_manifest(manifest_path: str | Path) -> list[ScreenshotMetadata]:
    manifest_path = Path(manifest_path)
    try:
        with open(manifest_path) as f:
            data = json.load(f)
    except OSError as e:
        raise ManifestError(f"Cannot read metadata manifest {manifest_path}: {e}") from e
    except json.JSONDecodeError as e:
        raise ManifestError(f"Metadata manifest {manifest_path} is not valid JSON: {e}") from e

    if isinstance(data, dict):
        data = data.get("screenshots", [])
    if not isinstance(data, list):
        raise ManifestError(f"Unexpected manifest format in {manifest_path}")
    try:
        return [ScreenshotMetadata.model_validate(item) for item in data]
    except ValidationError as e:
        raise ManifestError(f"Invalid screenshot record in {manifest_path}: {e}") from e


class VisualTestEvaluator:
    """Asks the AI whether each screenshot matches its scenario's expectation."""

    def __init__(self, ai_client: AIClient, criteria: Optional[EvaluationCriteria] = None):
        self.ai = ai_client
        self.criteria = criteria or EvaluationCriteria()

    def set_evaluation_criteria(self, criteria: EvaluationCriteria) -> None:
        self.criteria = criteria

    def _parse_result(self, metadata: ScreenshotMetadata, response_text: str,
                      file_path: str) -> EvaluationResult:
        data = parse_json_response(response_text, self.ai.call_count)
        passed = data.get("passed")
        if not isinstance(passed, bool):
            raise EvaluationError(f"Response has no boolean 'passed' field: {passed!r}")
        reasoning = str(data.get("reasoning") or "").strip() or NO_REASONING

        raw_observations = data.get("observations") or {}
        if not isinstance(raw_observations, dict):
            raw_observations = {}
        raw_observations = _normalise_keys(raw_observations, _OBSERVATION_ALIASES)

        return EvaluationResult(
            component_name=metadata.component_name,
            scenario_name=metadata.scenario_name,
            file_path=file_path,
            passed=passed,
            confidence=data.get("confidence", 0.0),
            reasoning=reasoning,
            observations=Observations(
                elements_found=_string_list(raw_observations.get("elements_found")),
                text_content=_string_list(raw_observations.get("text_content")),
                layout_description=str(raw_observations.get("layout_description", "")),
                color_scheme=_string_list(raw_observations.get("color_scheme")),
            ),
            suggestions=_string_list(data.get("suggestions")),
            timestamp=time.time(),
        )

    async def evaluate_screenshot(self, metadata: ScreenshotMetadata,
                                  screenshot_path: str | Path) -> EvaluationResult:
        """Evaluate one screenshot. Never raises; failures become failed results.

        The result's ``file_path`` is ``screenshot_path``, the file that was
        actually judged, not the path recorded at capture time.
        """
        logger.info("Evaluating %s/%s", metadata.component_name, metadata.scenario_name)
        try:
            image_base64 = base64.b64encode(Path(screenshot_path).read_bytes()).decode("ascii")
            prompt = build_evaluation_prompt(metadata, self.criteria)
            response_text = await self.ai.complete_with_image(prompt, image_base64)
            result = self._parse_result(metadata, response_text, str(screenshot_path))
        except Exception as e:
            logger.error("Evaluation failed for %s/%s: %s",
                         metadata.component_name, metadata.scenario_name, e)
            return failed_result(metadata, e, screenshot_path)

        logger.info("  %s %s/%s (confidence %.2f)", "PASS" if result.passed else "FAIL",
                    metadata.component_name, metadata.scenario_name, result.confidence)
        return result

    async def evaluate_batch(self, manifest_path: str | Path,
                             screenshot_dir: str | Path) -> list[EvaluationResult]:
        """Evaluate every screenshot listed in a manifest, in manifest order."""
        logger.info("Starting batch evaluation")
        metadata = load_manifest(manifest_path)
        logger.info("Loaded %d screenshots to evaluate", len(metadata))

        screenshot_dir = Path(screenshot_dir)
        results = []
        for meta in metadata:
            screenshot_path = screenshot_dir / Path(meta.file_path).name
            results.append(await self.evaluate_screenshot(meta, screenshot_path))

        logger.info("Batch evaluation complete: %d results", len(results))
        return results

    async def summarize(self, results: Sequence[EvaluationResult]) -> Optional[SuiteAssessment]:
        """Ask for an overall assessment of a run. Returns None if that fails."""
        if not results:
            return None
        try:
            response_text = await self.ai.complete(build_summary_prompt(results))
            data = _normalise_keys(parse_json_response(response_text, self.ai.call_count),
                                   _ASSESSMENT_ALIASES)
            return SuiteAssessment(
                overall_status=str(data.get("overall_status", "")),
                common_patterns=_string_list(data.get("common_patterns")),
                critical_issues=_string_list(data.get("critical_issues")),
                recommendations=_string_list(data.get("recommendations")),
            )
        except Exception as e:
            logger.warning("AI suite summary failed: %s", e)
            return None
