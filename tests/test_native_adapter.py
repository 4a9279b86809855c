"""Tests for the macOS Terminal.app adapter (AppleScript calls mocked)."""

from unittest.mock import AsyncMock, patch

import pytest

from visualjudge.capture.adapters.base import CaptureOptions
from visualjudge.capture.adapters.native import (
    SCREENCAPTURE,
    NativeTerminalAdapter,
    parse_bounds,
)
from visualjudge.errors import CaptureError

EXEC = "visualjudge.capture.adapters.native._exec"


class TestParseBounds:
    def test_parses_applescript_bounds(self):
        assert parse_bounds("40, 40, 940, 640\n") == (40, 40, 940, 640)

    def test_rejects_garbage(self):
        with pytest.raises(CaptureError, match="window bounds"):
            parse_bounds("missing value")

    def test_rejects_empty_region(self):
        with pytest.raises(CaptureError, match="Invalid window bounds"):
            parse_bounds("40, 40, 40, 640")


class TestNativeTerminalAdapter:
    def test_unsupported_off_macos(self):
        with patch("visualjudge.capture.adapters.native.sys.platform", "linux"):
            assert NativeTerminalAdapter().is_supported() is False

    def test_requires_osascript(self):
        with patch("visualjudge.capture.adapters.native.sys.platform", "darwin"), \
             patch("visualjudge.capture.adapters.native.shutil.which", return_value=None):
            assert NativeTerminalAdapter().is_supported() is False

    def test_supported_on_macos_with_osascript(self):
        with patch("visualjudge.capture.adapters.native.sys.platform", "darwin"), \
             patch("visualjudge.capture.adapters.native.shutil.which",
                   return_value="/usr/bin/osascript"):
            assert NativeTerminalAdapter().is_supported() is True

    @pytest.mark.asyncio
    async def test_capture_positions_window_and_grabs_region(self, tmp_path):
        out = tmp_path / "banner.png"
        options = CaptureOptions(output_path=out, command="SCENARIO_INDEX=0 run-banner",
                                 width=900, height=600, settle_ms=0)

        with patch(EXEC, new_callable=AsyncMock,
                   side_effect=["ok", "40, 40, 940, 640", "", ""]) as mock_exec:
            result = await NativeTerminalAdapter().capture(options)

        assert result == out
        open_call, _, grab_call, close_call = mock_exec.await_args_list
        assert open_call.args[3:] == ("SCENARIO_INDEX=0 run-banner", "40", "40", "900", "600")
        assert grab_call.args == (SCREENCAPTURE, "-x", "-R", "40,40,900,600", str(out))
        assert "close (front window) saving no" in close_call.args[2]

    @pytest.mark.asyncio
    async def test_close_failure_is_not_raised(self, tmp_path):
        options = CaptureOptions(output_path=tmp_path / "x.png", command="true", settle_ms=0)
        with patch(EXEC, new_callable=AsyncMock,
                   side_effect=["ok", "40, 40, 940, 640", "", CaptureError("no window")]):
            assert await NativeTerminalAdapter().capture(options) == options.output_path

    @pytest.mark.asyncio
    async def test_window_closed_even_when_capture_fails(self, tmp_path):
        options = CaptureOptions(output_path=tmp_path / "x.png", command="true", settle_ms=0)
        with patch(EXEC, new_callable=AsyncMock,
                   side_effect=["ok", "bogus", ""]) as mock_exec:
            with pytest.raises(CaptureError):
                await NativeTerminalAdapter().capture(options)
        assert mock_exec.await_count == 3

    @pytest.mark.asyncio
    async def test_no_teardown_when_window_never_opened(self, tmp_path):
        options = CaptureOptions(output_path=tmp_path / "x.png", command="true", settle_ms=0)
        with patch(EXEC, new_callable=AsyncMock,
                   side_effect=[CaptureError("Terminal not running")]) as mock_exec:
            with pytest.raises(CaptureError, match="Terminal not running"):
                await NativeTerminalAdapter().capture(options)
        assert mock_exec.await_count == 1
