"""CLI entry point for the visual test pipeline."""

from __future__ import annotations

import asyncio
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table

from visualjudge.capture.context import CaptureContext
from visualjudge.capture.runner import CaptureRunner
from visualjudge.errors import CaptureFailedError, VisualJudgeError
from visualjudge.models.config import EvaluationCriteria, PipelineConfig
from visualjudge.orchestrator import VisualTestPipeline
from visualjudge.reporter.report_manager import ReportManager

console = Console()
logger = logging.getLogger(__name__)

CONFIG_FILE = "visualjudge.json"


def setup_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
        force=True,
    )


def load_config(path: Optional[str]) -> PipelineConfig:
    """Load the config file, falling back to defaults when the default file is absent."""
    if path is None:
        if Path(CONFIG_FILE).exists():
            return PipelineConfig.load(CONFIG_FILE)
        return PipelineConfig()
    return PipelineConfig.load(path)


def apply_overrides(cfg: PipelineConfig, *, skip_capture: bool = False,
                    output: Optional[str] = None, screenshot_dir: Optional[str] = None,
                    strictness: Optional[str] = None, theme: Optional[str] = None,
                    keep_history: Optional[int] = None, run_name: Optional[str] = None,
                    skip_cleanup: bool = False, open_report: bool = False,
                    pattern: Optional[str] = None) -> PipelineConfig:
    """Return a copy of ``cfg`` with command-line flags applied on top."""
    update: dict = {}
    capture_update: dict = {}
    if skip_capture:
        update["skip_capture"] = True
    if output:
        update["output_dir"] = output
    if screenshot_dir:
        capture_update["screenshot_dir"] = screenshot_dir
    if pattern:
        capture_update["pattern"] = pattern
    if strictness:
        update["evaluation_criteria"] = EvaluationCriteria.preset(strictness)
    if theme:
        update["report"] = cfg.report.model_copy(update={"theme": theme})
    if keep_history is not None:
        update["keep_history"] = keep_history
    if run_name:
        update["run_name"] = run_name
    if skip_cleanup:
        update["skip_cleanup"] = True
    if open_report:
        update["open_report"] = True
    if capture_update:
        update["capture"] = cfg.capture.model_copy(update=capture_update)
    return cfg.model_copy(update=update)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging")
def cli(verbose: bool) -> None:
    """Visual regression testing for terminal UI components, judged by AI."""
    setup_logging(verbose)


@cli.command(context_settings={"ignore_unknown_options": True, "allow_extra_args": True})
@click.option("--config", "-c", default=None, help=f"Config file path (default: {CONFIG_FILE} if present)")
@click.option("--skip-capture", is_flag=True, help="Use existing screenshots instead of capturing new ones")
@click.option("--output", "-o", default=None, help="Output directory for reports")
@click.option("--screenshot-dir", "-s", default=None, help="Screenshot directory")
@click.option("--strict", "strictness", flag_value="strict", help="Check text, layout and colors")
@click.option("--moderate", "strictness", flag_value="moderate", help="Check text and layout")
@click.option("--lenient", "strictness", flag_value="lenient", help="Check text only")
@click.option("--theme", "-t", type=click.Choice(["light", "dark"]), default=None, help="Report theme")
@click.option("--keep-history", type=click.IntRange(min=0), default=None, help="Number of unnamed runs to keep")
@click.option("--run-name", "-n", default=None, help="Named run (preserved indefinitely)")
@click.option("--skip-cleanup", is_flag=True, help="Skip cleanup of old runs")
@click.option("--open", "open_report", is_flag=True, help="Open the report in a browser when done")
@click.option("--pattern", default=None, help="Glob for scenario files")
@click.pass_context
def run(ctx: click.Context, config: Optional[str], **flags) -> None:
    """Run the full pipeline: capture -> evaluate -> report."""
    for arg in ctx.args:
        if arg.startswith("-"):
            logger.warning("Unknown option: %s", arg)

    try:
        cfg = apply_overrides(load_config(config), **flags)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        console.print("Run 'visualjudge init' to create a default config.")
        sys.exit(1)

    try:
        result = VisualTestPipeline(cfg).run()
    except Exception as e:
        console.print(f"[red]Pipeline failed:[/red] {e}")
        sys.exit(1)

    summary = result.summary
    title = "[bold green]Pipeline Complete[/bold green]" if result.success \
        else "[bold yellow]Pipeline Completed With Failures[/bold yellow]"
    console.print(f"\n{title}")
    table = Table(title="Results Summary")
    table.add_column("Metric", style="bold")
    table.add_column("Value")
    table.add_row("Run ID", result.run_id or "-")
    table.add_row("Duration", f"{summary.duration:.2f}s")
    table.add_row("Total Tests", str(summary.total_tests))
    table.add_row("Passed", f"[green]{summary.passed}[/green]")
    table.add_row("Failed", f"[red]{summary.failed}[/red]")
    table.add_row("Pass Rate", f"{summary.pass_rate:.1%}")
    table.add_row("Avg Confidence", f"{summary.average_confidence:.1%}")
    console.print(table)
    for error in result.errors:
        console.print(f"  [yellow]Warning:[/yellow] {error}")
    console.print(f"  HTML report: [blue]{result.report_path}[/blue]")

    sys.exit(0 if result.success else 1)


@cli.command()
@click.option("--config", "-c", default=None, help="Config file path")
@click.option("--screenshot-dir", "-s", default=None, help="Screenshot directory")
@click.option("--pattern", default=None, help="Glob for scenario files")
def capture(config: Optional[str], screenshot_dir: Optional[str], pattern: Optional[str]) -> None:
    """Capture screenshots only."""
    try:
        cfg = apply_overrides(load_config(config), screenshot_dir=screenshot_dir, pattern=pattern)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)

    runner = CaptureRunner(cfg.capture, CaptureContext())
    try:
        result = asyncio.run(runner.run())
    except CaptureFailedError as e:
        console.print(f"[red]Capture finished with failures:[/red] {e}")
        sys.exit(1)
    except VisualJudgeError as e:
        console.print(f"[red]Capture failed:[/red] {e}")
        sys.exit(1)
    console.print(
        f"[green]Capture complete:[/green] {len(result.screenshots)} screenshots "
        f"from {result.total_components} components in {result.output_dir}"
    )


@cli.group()
def runs() -> None:
    """Inspect and manage versioned report runs."""


def _manager(config: Optional[str], output: Optional[str]) -> ReportManager:
    try:
        cfg = load_config(config)
    except FileNotFoundError as e:
        console.print(f"[red]{e}[/red]")
        sys.exit(1)
    return ReportManager(output or cfg.output_dir, keep_history=cfg.keep_history)


@runs.command("list")
@click.option("--config", "-c", default=None, help="Config file path")
@click.option("--output", "-o", default=None, help="Reports directory")
def runs_list(config: Optional[str], output: Optional[str]) -> None:
    """List recorded runs, newest first."""
    history = _manager(config, output).list_runs()
    if not history:
        console.print("[yellow]No runs recorded[/yellow]")
        return
    table = Table(title="Report Runs")
    table.add_column("Run ID", style="bold")
    table.add_column("Name")
    table.add_column("When")
    table.add_column("Passed")
    table.add_column("Pass Rate")
    for r in history:
        when = datetime.fromtimestamp(r.timestamp).strftime("%Y-%m-%d %H:%M:%S")
        table.add_row(r.run_id, r.name or "", when, f"{r.passed}/{r.total_tests}", f"{r.pass_rate:.0%}")
    console.print(table)


@runs.command("delete")
@click.argument("run_id")
@click.option("--config", "-c", default=None, help="Config file path")
@click.option("--output", "-o", default=None, help="Reports directory")
def runs_delete(run_id: str, config: Optional[str], output: Optional[str]) -> None:
    """Delete one run and its manifest entry."""
    if not _manager(config, output).delete_run(run_id):
        console.print(f"[red]Run not found: {run_id}[/red]")
        sys.exit(1)
    console.print(f"[green]Deleted run:[/green] {run_id}")


@runs.command("cleanup")
@click.option("--config", "-c", default=None, help="Config file path")
@click.option("--output", "-o", default=None, help="Reports directory")
@click.option("--keep-history", type=click.IntRange(min=0), default=None, help="Number of unnamed runs to keep")
def runs_cleanup(config: Optional[str], output: Optional[str], keep_history: Optional[int]) -> None:
    """Apply the retention policy now."""
    manager = _manager(config, output)
    if keep_history is not None:
        manager.keep_history = keep_history
    removed = manager.cleanup_old_runs()
    console.print(f"[green]Cleanup complete:[/green] {len(removed)} run(s) removed")


@cli.command()
@click.option("--path", "config_path", default=CONFIG_FILE, help="Where to write the config")
def init(config_path: str) -> None:
    """Create a default configuration file."""
    path = Path(config_path)
    if path.exists():
        if not click.confirm(f"{path} already exists. Overwrite?"):
            return

    PipelineConfig().save(path)
    console.print(f"[green]Created {path}[/green]")
    console.print("\nDescribe scenarios in components/<name>/<name>.scenarios.json, then run:")
    console.print("  [blue]visualjudge run[/blue]")


if __name__ == "__main__":
    cli()
