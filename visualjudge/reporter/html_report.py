"""HTML report generator: a self-contained page with every verdict and screenshot."""

from __future__ import annotations

import base64
import html
import logging
import re
from datetime import datetime
from pathlib import Path
from typing import Iterable, Mapping, Optional, Union

from visualjudge.models.config import ReportConfig
from visualjudge.models.evaluation import (
    ComponentSummary,
    EvaluationResult,
    SuiteAssessment,
    TestSummary,
)

logger = logging.getLogger(__name__)

PASS_RATE_EXCELLENT = 0.9
PASS_RATE_GOOD = 0.7

# Hex, rgb()/rgba() and named colours only; anything else is shown as text
_SAFE_COLOR = re.compile(
    r"^(#[0-9a-fA-F]{3,8}|rgba?\(\s*[\d.%]+\s*(,\s*[\d.%]+\s*){2,3}\)|[a-zA-Z]{3,20})$"
)

THEMES = {
    "dark": {
        "bg": "#1a1a1a", "card": "#252525", "subtle": "#2a2a2a", "text": "#e0e0e0",
        "muted": "#a0a0a0", "border": "#404040", "success": "#4ade80", "success_bg": "#1a3a1a",
        "error": "#f87171", "error_bg": "#3a1a1a", "warning": "#fbbf24", "warning_bg": "#3a2a1a",
        "accent": "#818cf8",
    },
    "light": {
        "bg": "#f8fafc", "card": "#ffffff", "subtle": "#f1f5f9", "text": "#1e293b",
        "muted": "#64748b", "border": "#e2e8f0", "success": "#22c55e", "success_bg": "#f0fdf4",
        "error": "#ef4444", "error_bg": "#fef2f2", "warning": "#f59e0b", "warning_bg": "#fffbeb",
        "accent": "#6366f1",
    },
}


def pass_rate_band(pass_rate: float) -> str:
    if pass_rate >= PASS_RATE_EXCELLENT:
        return "success"
    if pass_rate >= PASS_RATE_GOOD:
        return "warning"
    return "error"


def is_safe_color(value: str) -> bool:
    return bool(_SAFE_COLOR.match(value.strip()))


def _embed_image(path: str) -> str:
    """Read an image file and return a base64 data URI, or empty string on failure."""
    try:
        p = Path(path)
        if not p.exists() or p.stat().st_size == 0:
            return ""
        with open(p, "rb") as f:
            data = base64.b64encode(f.read()).decode()
        suffix = p.suffix.lower()
        mime = "image/png" if suffix == ".png" else "image/jpeg" if suffix in (".jpg", ".jpeg") else "image/webp"
        return f"data:{mime};base64,{data}"
    except OSError as e:
        logger.debug("Could not embed %s: %s", path, e)
        return ""


def _list_items(values: Iterable[str]) -> str:
    return "".join(f"<li>{html.escape(v)}</li>" for v in values)


def _color_chips(colors: list[str]) -> str:
    chips = []
    for color in colors:
        label = html.escape(color)
        if is_safe_color(color):
            chips.append(
                f'<span class="color-chip" style="background-color: {color.strip()}" title="{label}"></span>'
            )
        else:
            chips.append(f'<span class="color-name">{label}</span>')
    return "".join(chips)


def _observations(r: EvaluationResult) -> str:
    obs = r.observations
    groups = ""
    if obs.elements_found:
        groups += f'<div class="observation-group"><strong>Elements Found:</strong><ul>{_list_items(obs.elements_found)}</ul></div>'
    if obs.text_content:
        groups += f'<div class="observation-group"><strong>Text Content:</strong><ul>{_list_items(obs.text_content)}</ul></div>'
    if obs.layout_description:
        groups += f'<div class="observation-group"><strong>Layout:</strong><p>{html.escape(obs.layout_description)}</p></div>'
    if obs.color_scheme:
        groups += f'<div class="observation-group"><strong>Color Scheme:</strong><div class="color-chips">{_color_chips(obs.color_scheme)}</div></div>'
    if not groups:
        return ""
    return f'<div class="section"><h4>Detailed Observations</h4>{groups}</div>'


def _build_scenario_rows(r: EvaluationResult, index: int, config: ReportConfig) -> str:
    """A summary row plus the hidden detail row it expands."""
    status = "passed" if r.passed else "failed"
    icon = "&#10003;" if r.passed else "&#10007;"
    confidence = r.confidence * 100
    row_id = f"detail-{index}"

    detail = ""
    if config.include_screenshots:
        data_uri = _embed_image(r.file_path)
        if data_uri:
            detail += f'''
            <div class="screenshot-container">
              <img src="{data_uri}" alt="{html.escape(r.scenario_name)}" loading="lazy" onclick="this.classList.toggle('zoomed')"/>
            </div>'''
        else:
            detail += f'<div class="screenshot-missing">Screenshot not available: {html.escape(r.file_path)}</div>'

    detail += f'''
            <div class="confidence-bar">
              <div class="confidence-fill {status}" style="width: {confidence:.0f}%"></div>
              <span class="confidence-text">Confidence: {confidence:.0f}%</span>
            </div>
            <div class="reasoning"><strong>AI Analysis:</strong><p>{html.escape(r.reasoning)}</p></div>'''

    if config.include_ai_commentary:
        detail += _observations(r)

    if r.suggestions:
        detail += f'<div class="section suggestions"><h4>Suggestions</h4><ul>{_list_items(r.suggestions)}</ul></div>'

    if config.include_metadata:
        evaluated = datetime.fromtimestamp(r.timestamp).strftime("%Y-%m-%d %H:%M:%S")
        detail += f'''
            <div class="section metadata"><h4>Metadata</h4>
              <div><span class="meta-key">File:</span> <code>{html.escape(r.file_path)}</code></div>
              <div><span class="meta-key">Evaluated:</span> {evaluated}</div>
            </div>'''

    return f'''
        <tr class="scenario-row {status}" onclick="toggleDetail('{row_id}')">
          <td><span class="verdict {status}">{icon} {"PASSED" if r.passed else "FAILED"}</span></td>
          <td><strong>{html.escape(r.scenario_name)}</strong></td>
          <td>{confidence:.0f}%</td>
          <td class="reasoning-preview">{html.escape(r.reasoning[:120])}</td>
          <td class="expand-arrow">&#9660;</td>
        </tr>
        <tr class="detail-row" id="{row_id}">
          <td colspan="5"><div class="detail">{detail}
          </div></td>
        </tr>'''


def _build_component_section(component: ComponentSummary, start_index: int,
                             config: ReportConfig) -> str:
    rate = component.passed / component.scenarios if component.scenarios else 0.0
    badge = "badge-success" if component.failed == 0 else "badge-error"
    rows = "".join(
        _build_scenario_rows(r, start_index + i, config) for i, r in enumerate(component.results)
    )
    return f'''
    <section class="component-section">
      <div class="component-header">
        <h2>{html.escape(component.component_name)}</h2>
        <span class="badge {badge}">{component.passed}/{component.scenarios} passed ({rate * 100:.0f}%)</span>
      </div>
      <table class="scenario-table">
        <thead><tr><th>Result</th><th>Scenario</th><th>Confidence</th><th>Reasoning</th><th></th></tr></thead>
        <tbody>{rows}
        </tbody>
      </table>
    </section>'''


def _build_summary_section(summary: TestSummary) -> str:
    band = pass_rate_band(summary.pass_rate)
    failed_class = "error" if summary.failed > 0 else ""
    failed_detail = "Requires attention" if summary.failed > 0 else "All tests passed"
    return f'''
    <div class="summary">
      <div class="summary-card {band}">
        <div class="summary-title">Pass Rate</div>
        <div class="summary-value">{summary.pass_rate * 100:.1f}%</div>
        <div class="summary-detail">{summary.passed}/{summary.total_tests} tests passed</div>
      </div>
      <div class="summary-card">
        <div class="summary-title">Average Confidence</div>
        <div class="summary-value">{summary.average_confidence * 100:.1f}%</div>
        <div class="summary-detail">AI evaluation confidence</div>
      </div>
      <div class="summary-card">
        <div class="summary-title">Duration</div>
        <div class="summary-value">{summary.duration:.2f}s</div>
        <div class="summary-detail">Total execution time</div>
      </div>
      <div class="summary-card {failed_class}">
        <div class="summary-title">Failed Tests</div>
        <div class="summary-value">{summary.failed}</div>
        <div class="summary-detail">{failed_detail}</div>
      </div>
    </div>'''


def _build_assessment_section(assessment: SuiteAssessment) -> str:
    parts = ""
    for title, items in (
        ("Common Patterns", assessment.common_patterns),
        ("Critical Issues", assessment.critical_issues),
        ("Recommendations", assessment.recommendations),
    ):
        if items:
            parts += f"<h4>{title}</h4><ul>{_list_items(items)}</ul>"
    status = html.escape(assessment.overall_status or "unknown")
    return f'''
    <div class="ai-summary">
      <h2>&#129302; AI Assessment <span class="badge status-{status}">{status}</span></h2>
      <div class="summary-content">{parts}</div>
    </div>'''


def _styles(theme: str) -> str:
    c = THEMES.get(theme, THEMES["dark"])
    return f'''
  * {{ margin: 0; padding: 0; box-sizing: border-box; }}
  body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; background: {c["bg"]}; color: {c["text"]}; line-height: 1.6; padding: 2rem; }}
  header, main, footer {{ max-width: 1200px; margin: 0 auto; }}
  h1 {{ font-size: 2.2rem; margin-bottom: 1.5rem; text-align: center; }}
  .summary {{ display: grid; grid-template-columns: repeat(auto-fit, minmax(220px, 1fr)); gap: 1.2rem; margin-bottom: 2rem; }}
  .summary-card {{ background: {c["card"]}; border: 1px solid {c["border"]}; border-radius: 8px; padding: 1.2rem; text-align: center; }}
  .summary-card.success {{ background: {c["success_bg"]}; border-color: {c["success"]}; }}
  .summary-card.warning {{ background: {c["warning_bg"]}; border-color: {c["warning"]}; }}
  .summary-card.error {{ background: {c["error_bg"]}; border-color: {c["error"]}; }}
  .summary-title {{ font-size: 0.85rem; color: {c["muted"]}; text-transform: uppercase; letter-spacing: 0.05em; }}
  .summary-value {{ font-size: 2rem; font-weight: 700; }}
  .summary-detail {{ font-size: 0.8rem; color: {c["muted"]}; }}
  .ai-summary {{ background: {c["card"]}; border-radius: 8px; padding: 1.2rem; margin-bottom: 2rem; border-left: 4px solid {c["accent"]}; }}
  .ai-summary h2 {{ font-size: 1rem; color: {c["accent"]}; margin-bottom: 0.6rem; }}
  .ai-summary h4 {{ font-size: 0.85rem; margin-top: 0.6rem; }}
  .ai-summary ul, .section ul {{ margin-left: 1.2rem; font-size: 0.88rem; }}
  .component-section {{ background: {c["card"]}; border: 1px solid {c["border"]}; border-radius: 8px; padding: 1.2rem; margin-bottom: 1.5rem; }}
  .component-header {{ display: flex; justify-content: space-between; align-items: center; margin-bottom: 0.8rem; }}
  .badge {{ display: inline-block; padding: 0.15rem 0.6rem; border-radius: 9999px; font-size: 0.75rem; font-weight: 600; }}
  .badge-success {{ background: {c["success_bg"]}; color: {c["success"]}; }}
  .badge-error {{ background: {c["error_bg"]}; color: {c["error"]}; }}
  .scenario-table {{ width: 100%; border-collapse: collapse; font-size: 0.88rem; }}
  .scenario-table th {{ text-align: left; color: {c["muted"]}; font-weight: 600; border-bottom: 1px solid {c["border"]}; padding: 0.4rem; }}
  .scenario-row td {{ padding: 0.5rem 0.4rem; border-bottom: 1px solid {c["border"]}; cursor: pointer; }}
  .scenario-row:hover {{ background: {c["subtle"]}; }}
  .scenario-row.expanded .expand-arrow {{ transform: rotate(180deg); }}
  .expand-arrow {{ color: {c["muted"]}; font-size: 0.7rem; transition: transform 0.2s; }}
  .reasoning-preview {{ color: {c["muted"]}; }}
  .verdict.passed {{ color: {c["success"]}; font-weight: 700; }}
  .verdict.failed {{ color: {c["error"]}; font-weight: 700; }}
  .detail-row {{ display: none; }}
  .detail-row.open {{ display: table-row; }}
  .detail {{ padding: 1rem; background: {c["subtle"]}; border-radius: 6px; margin: 0.4rem 0; }}
  .screenshot-container img {{ max-width: 100%; border-radius: 6px; border: 1px solid {c["border"]}; cursor: pointer; }}
  .screenshot-container img.zoomed {{ position: fixed; top: 5%; left: 5%; width: 90%; height: 90%; object-fit: contain; z-index: 1000; background: rgba(0,0,0,0.85); border: none; padding: 1rem; }}
  .screenshot-missing {{ color: {c["muted"]}; font-style: italic; }}
  .confidence-bar {{ position: relative; height: 1.4rem; background: {c["bg"]}; border-radius: 4px; margin: 0.8rem 0; overflow: hidden; }}
  .confidence-fill {{ height: 100%; }}
  .confidence-fill.passed {{ background: {c["success"]}; opacity: 0.5; }}
  .confidence-fill.failed {{ background: {c["error"]}; opacity: 0.5; }}
  .confidence-text {{ position: absolute; top: 0; left: 0.6rem; font-size: 0.8rem; line-height: 1.4rem; }}
  .section {{ margin-top: 0.8rem; }}
  .section h4 {{ font-size: 0.8rem; color: {c["muted"]}; text-transform: uppercase; letter-spacing: 0.05em; border-bottom: 1px solid {c["border"]}; margin-bottom: 0.3rem; }}
  .observation-group {{ margin-bottom: 0.5rem; font-size: 0.88rem; }}
  .color-chip {{ display: inline-block; width: 1.4rem; height: 1.4rem; border-radius: 4px; margin-right: 0.3rem; border: 1px solid {c["border"]}; }}
  .color-name {{ display: inline-block; margin-right: 0.5rem; font-size: 0.8rem; }}
  .meta-key {{ color: {c["muted"]}; }}
  code {{ background: {c["bg"]}; padding: 0.1rem 0.3rem; border-radius: 3px; font-size: 0.8rem; }}
  footer {{ text-align: center; color: {c["muted"]}; font-size: 0.8rem; margin-top: 2rem; }}
'''


def generate_html_report(
    summary: TestSummary,
    components: Union[Mapping[str, ComponentSummary], Iterable[ComponentSummary]],
    config: Optional[ReportConfig] = None,
    assessment: Optional[SuiteAssessment] = None,
) -> str:
    """Render the report page. Pure: reads screenshots but writes nothing."""
    config = config or ReportConfig()
    if isinstance(components, Mapping):
        components = list(components.values())

    sections = []
    index = 0
    for component in components:
        sections.append(_build_component_section(component, index, config))
        index += len(component.results)

    assessment_section = ""
    if assessment is not None and config.include_ai_commentary:
        assessment_section = _build_assessment_section(assessment)

    title = html.escape(config.title)
    generated = datetime.fromtimestamp(summary.timestamp).strftime("%Y-%m-%d %H:%M:%S") if summary.timestamp else ""
    empty = '<p class="summary-detail">No scenarios were evaluated.</p>' if not sections else ""

    return f'''<!DOCTYPE html>
<html lang="en">
<head>
<meta charset="UTF-8">
<meta name="viewport" content="width=device-width, initial-scale=1.0">
<title>{title}</title>
<style>{_styles(config.theme)}</style>
</head>
<body class="theme-{config.theme}">
<header>
  <h1>{title}</h1>
  {_build_summary_section(summary)}
  {assessment_section}
</header>
<main>
  {"".join(sections)}{empty}
</main>
<footer>
  <p>Generated on {generated}</p>
</footer>
<script>
function toggleDetail(id) {{
  const row = document.getElementById(id);
  row.classList.toggle('open');
  row.previousElementSibling.classList.toggle('expanded');
}}
</script>
</body>
</html>'''


def save_report(report_html: str, output_path: str | Path) -> Path:
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w", encoding="utf-8") as f:
        f.write(report_html)
    logger.info("HTML report: %s", output_path)
    return output_path
