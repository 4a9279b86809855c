"""Discover component scenario files and capture a screenshot per scenario."""

from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

from pydantic import ValidationError

from visualjudge.capture.adapters.base import CaptureOptions
from visualjudge.capture.adapters.renderer import resolve_render_target
from visualjudge.capture.context import CaptureContext
from visualjudge.errors import CaptureError, CaptureFailedError, ManifestError
from visualjudge.models.config import METADATA_FILE, CaptureConfig
from visualjudge.models.scenario import (
    CaptureResult,
    Dimensions,
    FrameInfo,
    Scenario,
    ScenarioFile,
    ScreenshotMetadata,
)

logger = logging.getLogger(__name__)

RULE = "─" * 50


def scenario_slug(name: str) -> str:
    return re.sub(r"\s+", "-", name.lower())


def screenshot_basename(component_name: str, scenario_name: str) -> str:
    return f"{component_name}-{scenario_slug(scenario_name)}"


def scenario_command(command: str, index: int) -> str:
    """Prefix ``command`` so the component knows which scenario to show."""
    if sys.platform == "win32":
        return f"set SCENARIO_INDEX={index}&& {command}"
    return f"SCENARIO_INDEX={index} {command}"


def frame_timestamp(duration: float, frame_count: int, frame_index: int) -> float:
    return duration / max(frame_count - 1, 1) * frame_index


def load_scenario_file(path: Path) -> tuple[str, ScenarioFile]:
    """Read a scenario file and work out its component name."""
    with open(path) as f:
        data = json.load(f)
    spec = ScenarioFile.model_validate(data)
    return spec.component or path.parent.name, spec


def load_capture_result(screenshot_dir: str | Path) -> CaptureResult:
    """Rebuild a CaptureResult from an existing metadata manifest."""
    screenshot_dir = Path(screenshot_dir)
    manifest = screenshot_dir / METADATA_FILE
    if not manifest.exists():
        raise ManifestError(f"Metadata manifest not found: {manifest}")
    try:
        with open(manifest) as f:
            data = json.load(f)
        if isinstance(data, dict):
            return CaptureResult.model_validate(data)
        if not isinstance(data, list):
            raise ManifestError(f"Unexpected manifest format in {manifest}")
        screenshots = [ScreenshotMetadata.model_validate(item) for item in data]
    except (json.JSONDecodeError, ValidationError) as e:
        raise ManifestError(f"Failed to parse metadata manifest {manifest}: {e}") from e

    mtime = datetime.fromtimestamp(manifest.stat().st_mtime, tz=timezone.utc)
    return CaptureResult(
        screenshots=screenshots,
        output_dir=str(screenshot_dir),
        capture_date=mtime.isoformat(),
        total_components=len({s.component_name for s in screenshots}),
        total_scenarios=len({(s.component_name, s.scenario_name) for s in screenshots}),
    )


def save_metadata(metadata: list[ScreenshotMetadata], output_dir: Path) -> Path:
    path = output_dir / METADATA_FILE
    with open(path, "w") as f:
        json.dump([m.model_dump() for m in metadata], f, indent=2)
    return path


class CaptureRunner:
    """Runs every scenario found under ``root_dir`` through the capture context."""

    def __init__(self, config: CaptureConfig, context: CaptureContext,
                 root_dir: str | Path = "."):
        self.config = config
        self.context = context
        self.root_dir = Path(root_dir)
        screenshot_dir = Path(config.screenshot_dir)
        self.screenshot_dir = (
            screenshot_dir if screenshot_dir.is_absolute() else self.root_dir / screenshot_dir
        )

    def discover(self) -> list[Path]:
        return sorted(p for p in self.root_dir.glob(self.config.pattern) if p.is_file())

    def _options(self, output_path: Path, **kwargs: Any) -> CaptureOptions:
        return CaptureOptions(
            output_path=output_path,
            width=self.config.width,
            height=self.config.height,
            settle_ms=self.config.settle_ms,
            timeout=self.config.command_timeout_seconds,
            **kwargs,
        )

    def _record(self, scenario: Scenario, path: Path,
                animation: Optional[FrameInfo] = None) -> ScreenshotMetadata:
        if not path.exists():
            raise CaptureError(f"Capture reported success but {path} was not written")
        return ScreenshotMetadata(
            component_name=scenario.component_name,
            scenario_name=scenario.scenario_name,
            description=scenario.description,
            expectation=scenario.expectation,
            params=scenario.params,
            file_path=str(path),
            timestamp=path.stat().st_mtime,
            dimensions=Dimensions(width=self.config.width, height=self.config.height),
            animation=animation,
        )

    async def capture_scenario(self, scenario: Scenario, index: int, spec: ScenarioFile,
                               render: Optional[Callable[..., Any]]) -> list[ScreenshotMetadata]:
        """Capture one scenario; animated scenarios yield one record per frame."""
        base = screenshot_basename(scenario.component_name, scenario.scenario_name)
        output_path = self.screenshot_dir / f"{base}.png"

        if scenario.is_animated:
            if render is None:
                raise CaptureError(
                    f"Animated scenario '{scenario.scenario_name}' needs a 'render' target"
                )
            animation = scenario.animation
            options = self._options(output_path, render_target=render, params=scenario.params)
            frames = await self.context.capture_animation(options, animation)
            records = []
            for frame_index, frame in enumerate(frames):
                info = FrameInfo(
                    duration=animation.duration,
                    frame_count=animation.screenshots,
                    frame_index=frame_index,
                    timestamp=frame_timestamp(animation.duration, animation.screenshots,
                                              frame_index),
                )
                records.append(self._record(scenario, frame, info))
            logger.info("  ✓ Captured animation frames: %d", len(records))
            return records

        if spec.command:
            options = self._options(output_path, command=scenario_command(spec.command, index),
                                    params=scenario.params)
            path = await self.context.capture(options)
        elif render is not None:
            options = self._options(output_path, render_target=render, params=scenario.params)
            path = await self.context.capture_rendered(options)
        else:
            raise CaptureError(
                f"Component '{scenario.component_name}' defines neither 'command' nor 'render'"
            )
        logger.info("  ✓ Screenshot saved: %s", Path(path).name)
        return [self._record(scenario, Path(path))]

    async def run(self) -> CaptureResult:
        self.screenshot_dir.mkdir(parents=True, exist_ok=True)
        files = self.discover()
        if not files:
            logger.warning("No scenario files found matching %s", self.config.pattern)

        logger.info("Found %d component(s) to test", len(files))
        total_scenarios = 0
        success_count = 0
        failure_count = 0
        all_metadata: list[ScreenshotMetadata] = []

        for scenario_file in files:
            try:
                component_name, spec = load_scenario_file(scenario_file)
            except (OSError, json.JSONDecodeError, ValidationError) as e:
                logger.error("Failed to load scenarios from %s: %s", scenario_file, e)
                continue

            if not spec.scenarios:
                logger.warning("No scenarios defined for %s", component_name)
                continue

            render = None
            if spec.render:
                try:
                    render = resolve_render_target(spec.render, scenario_file.parent)
                except CaptureError as e:
                    logger.error("Failed to resolve render target for %s: %s", component_name, e)

            logger.info("Testing %s (%d scenarios)", component_name, len(spec.scenarios))
            for index, raw in enumerate(spec.scenarios):
                total_scenarios += 1
                name = raw.get("scenario_name", f"#{index}") if isinstance(raw, dict) else f"#{index}"
                logger.info("  Running: %s", name)
                try:
                    scenario = Scenario.model_validate({**raw, "component_name": component_name})
                    all_metadata.extend(await self.capture_scenario(scenario, index, spec, render))
                    success_count += 1
                except Exception as e:
                    logger.error("  ✗ Failed: %s (%s): %s", name, component_name, e)
                    failure_count += 1

        save_metadata(all_metadata, self.screenshot_dir)

        logger.info(RULE)
        logger.info("Capture Summary:")
        logger.info(RULE)
        logger.info("  Total scenarios: %d", total_scenarios)
        logger.info("  Successful: %d", success_count)
        logger.info("  Failed: %d", failure_count)
        logger.info(RULE)
        logger.info("  Screenshots saved in: %s%s", self.screenshot_dir, os.sep)
        logger.info("  Metadata saved: %s", self.screenshot_dir / METADATA_FILE)
        logger.info(RULE)

        result = CaptureResult(
            screenshots=all_metadata,
            output_dir=str(self.screenshot_dir),
            capture_date=datetime.now(timezone.utc).isoformat(),
            total_components=len(files),
            total_scenarios=total_scenarios,
        )
        if failure_count > 0:
            raise CaptureFailedError(
                f"{failure_count} of {total_scenarios} scenario(s) failed to capture",
                result=result,
                failed=failure_count,
            )
        return result
