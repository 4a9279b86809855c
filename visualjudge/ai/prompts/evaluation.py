"""Prompts for judging screenshots and summarising a run."""

from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from visualjudge.models.config import EvaluationCriteria
    from visualjudge.models.evaluation import EvaluationResult
    from visualjudge.models.scenario import ScreenshotMetadata

REASONING_PREVIEW_LENGTH = 100

EVALUATION_PROMPT_TEMPLATE = """Evaluate this terminal UI component screenshot.

Component: {component_name}
Scenario: {scenario_name}
Description: {description}
Expected Outcome: {expectation}
{frame_line}
Please analyze the screenshot and provide:
1. Whether it matches the expectation (pass/fail)
2. Confidence level (0-1)
3. Detailed reasoning
4. Elements you observed
5. Any suggestions for improvement

Evaluation Criteria:
- Strictness: {strictness}
- Check Text: {check_text_content}
- Check Layout: {check_layout}
- Check Colors: {check_colors}
{custom_rules}

CRITICAL: Return ONLY valid JSON. No markdown fences, no text before or after the JSON object.

Respond in JSON format:
{{
  "passed": boolean,
  "confidence": number,
  "reasoning": string,
  "observations": {{
    "elements_found": string[],
    "text_content": string[],
    "layout_description": string,
    "color_scheme": string[]
  }},
  "suggestions": string[]
}}"""

SUMMARY_PROMPT_TEMPLATE = """Summarize these visual test evaluation results.

Total Tests: {total_tests}
Passed: {passed}
Failed: {failed}
Pass Rate: {pass_rate}%
Average Confidence: {average_confidence}%

Failed Tests:
{failed_tests}

Please provide:
1. Overall assessment of the test suite
2. Common failure patterns
3. Critical issues requiring immediate attention
4. Recommendations for improvement

Respond in JSON format:
{{
  "overall_status": "excellent" | "good" | "needs-attention" | "critical",
  "common_patterns": string[],
  "critical_issues": string[],
  "recommendations": string[]
}}"""


def _flag(value: bool) -> str:
    return "true" if value else "false"


def build_evaluation_prompt(metadata: "ScreenshotMetadata", criteria: "EvaluationCriteria") -> str:
    """Build the user message sent alongside a screenshot."""
    custom_rules = ""
    if criteria.custom_rules:
        custom_rules = "\nCustom Rules:\n" + "\n".join(f"- {rule}" for rule in criteria.custom_rules)

    frame_line = ""
    if metadata.animation is not None:
        frame = metadata.animation
        frame_line = (
            f"Animation Frame: {frame.frame_index + 1} of {frame.frame_count} "
            f"(t={frame.timestamp:.0f}ms of {frame.duration:.0f}ms)\n"
        )

    return EVALUATION_PROMPT_TEMPLATE.format(
        component_name=metadata.component_name,
        scenario_name=metadata.scenario_name,
        description=metadata.description,
        expectation=metadata.expectation,
        frame_line=frame_line,
        strictness=criteria.strictness,
        check_text_content=_flag(criteria.check_text_content),
        check_layout=_flag(criteria.check_layout),
        check_colors=_flag(criteria.check_colors),
        custom_rules=custom_rules,
    )


def build_summary_prompt(results: Sequence["EvaluationResult"]) -> str:
    total = len(results)
    passed = sum(1 for r in results if r.passed)
    pass_rate = passed / total * 100 if total else 0.0
    average_confidence = sum(r.confidence for r in results) / total * 100 if total else 0.0

    failed_tests = "\n".join(
        f"- {r.component_name}/{r.scenario_name}: {r.reasoning[:REASONING_PREVIEW_LENGTH]}..."
        for r in results
        if not r.passed
    )

    return SUMMARY_PROMPT_TEMPLATE.format(
        total_tests=total,
        passed=passed,
        failed=total - passed,
        pass_rate=f"{pass_rate:.1f}",
        average_confidence=f"{average_confidence:.1f}",
        failed_tests=failed_tests or "None",
    )
