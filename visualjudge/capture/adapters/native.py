"""macOS Terminal.app capture driven through AppleScript and screencapture."""

from __future__ import annotations

import asyncio
import logging
import shutil
import sys
import textwrap
from pathlib import Path

from visualjudge.errors import CaptureError

from .base import CaptureOptions

logger = logging.getLogger(__name__)

WINDOW_X = 40
WINDOW_Y = 40
SCREENCAPTURE = "/usr/sbin/screencapture"

_OPEN_WINDOW = textwrap.dedent("""\
    on run argv
        set theCmd to item 1 of argv
        set pxX to (item 2 of argv) as integer
        set pxY to (item 3 of argv) as integer
        set pxW to (item 4 of argv) as integer
        set pxH to (item 5 of argv) as integer
        tell application "Terminal"
            do script theCmd
            delay 0.5
            activate
            set theWin to front window
            set bounds of theWin to {pxX, pxY, pxX + pxW, pxY + pxH}
        end tell
        return "ok"
    end run
""")

_GET_BOUNDS = textwrap.dedent("""\
    tell application "Terminal"
        get bounds of front window
    end tell
""")

_CLOSE_WINDOW = textwrap.dedent("""\
    tell application "Terminal"
        try
            tell application "System Events"
                keystroke "c" using control down
            end tell
            delay 0.2
            close (front window) saving no
        end try
    end tell
""")


async def _exec(*argv: str) -> str:
    """Run a helper program and return its stdout, raising on non-zero exit."""
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.PIPE,
    )
    stdout, stderr = await process.communicate()
    if process.returncode != 0:
        raise CaptureError(
            f"{Path(argv[0]).name} failed with status {process.returncode}: "
            f"{stderr.decode(errors='replace').strip()}"
        )
    return stdout.decode(errors="replace")


def parse_bounds(text: str) -> tuple[int, int, int, int]:
    """Parse AppleScript window bounds ``"x1, y1, x2, y2"``."""
    try:
        x1, y1, x2, y2 = (int(part) for part in text.strip().split(","))
    except ValueError:
        raise CaptureError(f"Failed to get window bounds from {text.strip()!r}") from None
    if x2 <= x1 or y2 <= y1:
        raise CaptureError(f"Invalid window bounds: {text.strip()}")
    return x1, y1, x2, y2


class NativeTerminalAdapter:
    """Opens a real Terminal.app window and screenshots its region."""

    name = "macOS Terminal.app"

    def is_supported(self) -> bool:
        return sys.platform == "darwin" and shutil.which("osascript") is not None

    async def capture(self, options: CaptureOptions) -> Path:
        if not options.command:
            raise CaptureError(f"{self.name} needs a command to run")
        out = options.output_path
        out.parent.mkdir(parents=True, exist_ok=True)

        # No window exists if this fails, so there is nothing to close
        await _exec(
            "osascript", "-e", _OPEN_WINDOW, options.command,
            str(WINDOW_X), str(WINDOW_Y), str(options.width), str(options.height),
        )
        try:
            await asyncio.sleep(options.settle_ms / 1000)

            x1, y1, x2, y2 = parse_bounds(await _exec("osascript", "-e", _GET_BOUNDS))
            await _exec(SCREENCAPTURE, "-x", "-R", f"{x1},{y1},{x2 - x1},{y2 - y1}", str(out))
            logger.info("Saved %s", out)
            return out
        finally:
            try:
                await _exec("osascript", "-e", _CLOSE_WINDOW)
            except Exception as e:
                logger.error("Failed to close terminal window: %s", e)
