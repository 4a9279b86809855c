"""Tests for scenario discovery and the capture runner."""

import json
from pathlib import Path

import pytest

from conftest import write_png
from visualjudge.capture.runner import (
    CaptureRunner,
    frame_timestamp,
    load_capture_result,
    scenario_command,
    scenario_slug,
    screenshot_basename,
)
from visualjudge.errors import CaptureError, CaptureFailedError, ManifestError
from visualjudge.models.config import CaptureConfig

SPINNER_RENDER = """
FRAMES = "|/-\\\\"


def render(params, clock):
    return f"{params.get('label', '')} {FRAMES[int(clock.now_ms // 250) % 4]}"
"""


class FakeContext:
    """Writes a PNG for every capture request and remembers the options."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls = []

    def _check(self, options):
        self.calls.append(options)
        if options.output_path.stem in self.fail_on:
            raise CaptureError(f"boom: {options.output_path.name}")

    async def capture(self, options):
        self._check(options)
        return write_png(options.output_path)

    async def capture_rendered(self, options):
        self._check(options)
        return write_png(options.output_path)

    async def capture_animation(self, options, animation):
        self._check(options)
        stem, suffix = options.output_path.stem, options.output_path.suffix
        return [
            write_png(options.output_path.with_name(f"{stem}_frame_{i}{suffix}"))
            for i in range(animation.screenshots)
        ]


def _write_scenarios(root: Path, component: str, data) -> Path:
    path = root / "components" / component / f"{component}.scenarios.json"
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(data if isinstance(data, str) else json.dumps(data))
    return path


@pytest.fixture
def config():
    return CaptureConfig(width=900, height=600, settle_ms=0)


@pytest.fixture
def banner_project(tmp_path):
    _write_scenarios(tmp_path, "banner", {
        "command": "python banner.py",
        "scenarios": [
            {
                "scenario_name": "Default View",
                "description": "Banner with title",
                "expectation": "Title is bold",
                "params": {"title": "Welcome"},
            },
            {"scenario_name": "Long  Title", "params": {"title": "x" * 80}},
        ],
    })
    return tmp_path


class TestHelpers:
    def test_slug_collapses_whitespace(self):
        assert scenario_slug("Long  Title Here") == "long-title-here"
        assert screenshot_basename("banner", "Default View") == "banner-default-view"

    def test_scenario_command_exports_index(self, monkeypatch):
        monkeypatch.setattr("visualjudge.capture.runner.sys.platform", "linux")
        assert scenario_command("node banner.js", 2) == "SCENARIO_INDEX=2 node banner.js"

    def test_scenario_command_on_windows(self, monkeypatch):
        monkeypatch.setattr("visualjudge.capture.runner.sys.platform", "win32")
        assert scenario_command("banner.exe", 0) == "set SCENARIO_INDEX=0&& banner.exe"

    def test_frame_timestamp(self):
        assert frame_timestamp(1000, 5, 2) == 500
        assert frame_timestamp(1000, 1, 0) == 0


class TestCaptureRunner:
    @pytest.mark.asyncio
    async def test_command_scenarios_captured(self, banner_project, config, monkeypatch):
        monkeypatch.setattr("visualjudge.capture.runner.sys.platform", "linux")
        context = FakeContext()
        result = await CaptureRunner(config, context, root_dir=banner_project).run()

        assert result.total_components == 1
        assert result.total_scenarios == 2
        names = [Path(s.file_path).name for s in result.screenshots]
        assert names == ["banner-default-view.png", "banner-long-title.png"]

        first = result.screenshots[0]
        assert first.component_name == "banner"
        assert first.params == {"title": "Welcome"}
        assert first.expectation == "Title is bold"
        assert (first.dimensions.width, first.dimensions.height) == (900, 600)
        assert first.animation is None

        assert context.calls[0].command == "SCENARIO_INDEX=0 python banner.py"
        assert context.calls[1].command == "SCENARIO_INDEX=1 python banner.py"
        assert context.calls[0].width == 900

    @pytest.mark.asyncio
    async def test_metadata_manifest_written(self, banner_project, config):
        result = await CaptureRunner(config, FakeContext(), root_dir=banner_project).run()
        manifest = Path(result.output_dir) / "metadata.json"
        data = json.loads(manifest.read_text())
        assert [item["scenario_name"] for item in data] == ["Default View", "Long  Title"]

    @pytest.mark.asyncio
    async def test_screenshot_dir_relative_to_root(self, banner_project, config):
        result = await CaptureRunner(config, FakeContext(), root_dir=banner_project).run()
        assert Path(result.output_dir) == banner_project / ".dev" / "screenshots"

    @pytest.mark.asyncio
    async def test_animated_scenario_yields_frame_records(self, tmp_path, config):
        _write_scenarios(tmp_path, "spinner", {
            "render": "spinner.py:render",
            "scenarios": [{
                "scenario_name": "Loading",
                "params": {"label": "Loading"},
                "animation": {"duration": 1000, "screenshots": 4},
            }],
        })
        (tmp_path / "components" / "spinner" / "spinner.py").write_text(SPINNER_RENDER)
        context = FakeContext()

        result = await CaptureRunner(config, context, root_dir=tmp_path).run()

        assert len(result.screenshots) == 4
        assert result.total_scenarios == 1
        frames = [s.animation for s in result.screenshots]
        assert [f.frame_index for f in frames] == [0, 1, 2, 3]
        assert all(f.frame_count == 4 and f.duration == 1000 for f in frames)
        for i, frame in enumerate(frames):
            assert frame.timestamp == pytest.approx(1000 / 3 * i)
        assert Path(result.screenshots[3].file_path).name == "spinner-loading_frame_3.png"
        render = context.calls[0].render_target
        assert callable(render)

    @pytest.mark.asyncio
    async def test_animated_scenario_without_render_fails(self, tmp_path, config):
        _write_scenarios(tmp_path, "spinner", {
            "command": "spin",
            "scenarios": [{"scenario_name": "Loading",
                           "animation": {"duration": 1000, "screenshots": 2}}],
        })
        with pytest.raises(CaptureFailedError) as exc_info:
            await CaptureRunner(config, FakeContext(), root_dir=tmp_path).run()
        assert exc_info.value.failed == 1

    @pytest.mark.asyncio
    async def test_render_only_component(self, tmp_path, config):
        _write_scenarios(tmp_path, "label", {
            "render": "os.path:basename",
            "scenarios": [{"scenario_name": "Plain"}],
        })
        context = FakeContext()
        result = await CaptureRunner(config, context, root_dir=tmp_path).run()
        assert len(result.screenshots) == 1
        assert context.calls[0].command is None
        assert callable(context.calls[0].render_target)

    @pytest.mark.asyncio
    async def test_partial_failure_keeps_successes(self, banner_project, config):
        context = FakeContext(fail_on={"banner-long-title"})
        runner = CaptureRunner(config, context, root_dir=banner_project)

        with pytest.raises(CaptureFailedError) as exc_info:
            await runner.run()

        err = exc_info.value
        assert err.failed == 1
        assert len(err.result.screenshots) == 1
        assert err.result.total_scenarios == 2
        data = json.loads((runner.screenshot_dir / "metadata.json").read_text())
        assert len(data) == 1

    @pytest.mark.asyncio
    async def test_component_name_override(self, tmp_path, config):
        _write_scenarios(tmp_path, "dir-name", {
            "component": "status-bar",
            "command": "status",
            "scenarios": [{"scenario_name": "Idle"}],
        })
        result = await CaptureRunner(config, FakeContext(), root_dir=tmp_path).run()
        assert result.screenshots[0].component_name == "status-bar"
        assert Path(result.screenshots[0].file_path).name == "status-bar-idle.png"

    @pytest.mark.asyncio
    async def test_unreadable_file_skipped(self, banner_project, config):
        _write_scenarios(banner_project, "broken", "{not json")
        _write_scenarios(banner_project, "empty", {"command": "x", "scenarios": []})
        result = await CaptureRunner(config, FakeContext(), root_dir=banner_project).run()
        assert {s.component_name for s in result.screenshots} == {"banner"}

    @pytest.mark.asyncio
    async def test_missing_screenshot_counts_as_failure(self, banner_project, config):
        class SilentContext(FakeContext):
            async def capture(self, options):
                return options.output_path

        with pytest.raises(CaptureFailedError) as exc_info:
            await CaptureRunner(config, SilentContext(), root_dir=banner_project).run()
        assert exc_info.value.failed == 2

    @pytest.mark.asyncio
    async def test_no_files_found(self, tmp_path, config):
        result = await CaptureRunner(config, FakeContext(), root_dir=tmp_path).run()
        assert result.screenshots == []
        assert result.total_components == 0


class TestLoadCaptureResult:
    @pytest.mark.asyncio
    async def test_reload_from_manifest(self, banner_project, config):
        captured = await CaptureRunner(config, FakeContext(), root_dir=banner_project).run()
        loaded = load_capture_result(captured.output_dir)
        assert loaded.screenshots == captured.screenshots
        assert loaded.total_components == 1
        assert loaded.total_scenarios == 2

    def test_accepts_full_capture_result(self, tmp_path):
        (tmp_path / "metadata.json").write_text(json.dumps({
            "screenshots": [],
            "output_dir": str(tmp_path),
            "capture_date": "2026-01-01T00:00:00+00:00",
        }))
        assert load_capture_result(tmp_path).capture_date.startswith("2026-01-01")

    def test_missing_manifest(self, tmp_path):
        with pytest.raises(ManifestError, match="not found"):
            load_capture_result(tmp_path)

    def test_malformed_manifest(self, tmp_path):
        (tmp_path / "metadata.json").write_text("[{\"component_name\": 1}")
        with pytest.raises(ManifestError, match="Failed to parse"):
            load_capture_result(tmp_path)

    def test_unexpected_shape(self, tmp_path):
        (tmp_path / "metadata.json").write_text("42")
        with pytest.raises(ManifestError, match="Unexpected"):
            load_capture_result(tmp_path)
