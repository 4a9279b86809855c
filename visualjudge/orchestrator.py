"""Pipeline orchestrator: capture, evaluate, collect, report and version."""

from __future__ import annotations

import asyncio
import logging
import time
import webbrowser
from pathlib import Path
from typing import Optional

from visualjudge.ai.client import AIClient, set_debug_dir
from visualjudge.capture.context import CaptureContext
from visualjudge.capture.runner import CaptureRunner, load_capture_result
from visualjudge.errors import CaptureFailedError
from visualjudge.evaluator.collector import ResultCollector
from visualjudge.evaluator.evaluator import VisualTestEvaluator
from visualjudge.models.config import (
    METADATA_FILE,
    REPORT_INDEX_FILE,
    REPORT_RESULTS_FILE,
    PipelineConfig,
)
from visualjudge.models.evaluation import PipelineResult, SuiteAssessment, TestSummary
from visualjudge.models.run import RunMetadata
from visualjudge.models.scenario import CaptureResult
from visualjudge.reporter.html_report import generate_html_report, save_report
from visualjudge.reporter.report_manager import ReportManager

logger = logging.getLogger(__name__)

PASS_RATE_THRESHOLD = 0.9


class VisualTestPipeline:
    """Coordinates the full visual test pipeline for one project root."""

    def __init__(self, config: PipelineConfig, ai_client: Optional[AIClient] = None,
                 capture_context: Optional[CaptureContext] = None,
                 root_dir: str | Path = "."):
        self.config = config
        self.ai_client = ai_client
        self.root_dir = Path(root_dir)
        self.capture_context = capture_context or CaptureContext()
        self.output_dir = self._resolve(config.output_dir)
        self.screenshot_dir = self._resolve(config.capture.screenshot_dir)
        self.report_manager = ReportManager(self.output_dir, keep_history=config.keep_history)
        self.errors: list[str] = []

    def _resolve(self, path: str | Path) -> Path:
        path = Path(path)
        return path if path.is_absolute() else self.root_dir / path

    def run(self) -> PipelineResult:
        """Execute the complete pipeline."""
        return asyncio.run(self.run_async())

    async def run_async(self) -> PipelineResult:
        try:
            return await self._run_pipeline()
        except Exception as e:
            logger.error("Pipeline failed: %s", e)
            raise

    async def _run_pipeline(self) -> PipelineResult:
        start = time.time()
        self.errors = []
        logger.info("=== Starting visual test pipeline ===")

        # Phase 1: Capture
        logger.info("--- Phase 1: Screenshot Capture ---")
        capture_result = await self._capture()
        logger.info("--- Phase 1 complete: %d screenshots from %d components ---",
                    len(capture_result.screenshots), capture_result.total_components)

        # Phase 2: Services
        logger.info("--- Phase 2: Service Initialization ---")
        set_debug_dir(self.output_dir / "debug")
        if self.ai_client is None:
            self.ai_client = AIClient(model=self.config.ai_model,
                                      max_tokens=self.config.ai_max_tokens)
        evaluator = VisualTestEvaluator(self.ai_client, self.config.evaluation_criteria)
        collector = ResultCollector()
        logger.info("--- Phase 2 complete: services initialized ---")

        # Phase 3: Evaluate
        logger.info("--- Phase 3: AI Evaluation ---")
        screenshot_dir = Path(capture_result.output_dir)
        logger.info("Evaluating screenshots from: %s", screenshot_dir)
        results = await evaluator.evaluate_batch(screenshot_dir / METADATA_FILE, screenshot_dir)
        logger.info("--- Phase 3 complete: %d screenshots evaluated ---", len(results))

        # Phase 4: Collect
        logger.info("--- Phase 4: Result Collection ---")
        collector.add_results(results)
        summary = collector.get_summary()
        assessment: Optional[SuiteAssessment] = None
        if self.config.ai_summary and results:
            assessment = await evaluator.summarize(results)
        logger.info("--- Phase 4 complete: pass rate %.1f%%, average confidence %.1f%% ---",
                    summary.pass_rate * 100, summary.average_confidence * 100)

        # Phase 5: Report
        logger.info("--- Phase 5: Report Generation ---")
        report_html = generate_html_report(summary, collector.get_all_results(),
                                           self.config.report, assessment)
        logger.info("--- Phase 5 complete ---")

        # Phase 6: Save
        logger.info("--- Phase 6: Save Outputs ---")
        run_id, report_path = self._save_outputs(report_html, collector, summary, assessment)
        logger.info("--- Phase 6 complete: run %s ---", run_id)

        # Phase 7: Present
        logger.info("--- Phase 7: Present Report ---")
        logger.info("Report: %s", report_path)
        if self.config.open_report:
            self._open_report(report_path)

        success = summary.pass_rate >= PASS_RATE_THRESHOLD
        logger.info("=== Pipeline %s in %.1fs: %d/%d passed ===",
                    "completed successfully" if success else "completed with failures",
                    time.time() - start, summary.passed, summary.total_tests)

        return PipelineResult(
            success=success,
            summary=summary,
            report_path=str(report_path),
            run_id=run_id,
            errors=list(self.errors),
        )

    async def _capture(self) -> CaptureResult:
        if self.config.skip_capture:
            logger.info("Skipping capture, loading existing screenshots from %s",
                        self.screenshot_dir)
            return load_capture_result(self.screenshot_dir)

        logger.info("Capturing new screenshots...")
        # The runner resolves screenshot_dir against root_dir itself
        runner = CaptureRunner(self.config.capture, self.capture_context, root_dir=self.root_dir)
        try:
            return await runner.run()
        except CaptureFailedError as e:
            # The manifest holds every scenario that did capture
            logger.warning("Continuing with partial capture: %s", e)
            self.errors.append(str(e))
            return e.result

    def _save_outputs(self, report_html: str, collector: ResultCollector,
                      summary: TestSummary,
                      assessment: Optional[SuiteAssessment]) -> tuple[str, Path]:
        handle = self.report_manager.create_run(self.config.run_name)
        logger.info("Run ID: %s", handle.run_id)

        report_path = save_report(report_html, handle.latest_dir / REPORT_INDEX_FILE)
        results_path = handle.latest_dir / REPORT_RESULTS_FILE
        with open(results_path, "w", encoding="utf-8") as f:
            f.write(collector.export_to_json(assessment))
        logger.info("Latest JSON saved to: %s", results_path)

        self.report_manager.archive_current_run(handle.run_id)
        self.report_manager.save_run_metadata(RunMetadata(
            run_id=handle.run_id,
            timestamp=time.time(),
            name=self.config.run_name,
            total_tests=summary.total_tests,
            passed=summary.passed,
            failed=summary.failed,
            pass_rate=summary.pass_rate,
            duration=summary.duration,
        ))
        logger.info("Run metadata saved")

        if not self.config.skip_cleanup:
            self.report_manager.cleanup_old_runs()
        return handle.run_id, report_path

    @staticmethod
    def _open_report(report_path: Path) -> None:
        try:
            if webbrowser.open(report_path.resolve().as_uri()):
                logger.info("Report opened in browser")
            else:
                logger.warning("Could not open browser automatically")
        except Exception as e:
            logger.warning("Could not open browser automatically: %s", e)
