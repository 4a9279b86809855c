"""Deterministic time for animated renders."""

from __future__ import annotations

import inspect
import logging
from typing import Awaitable, Callable, Union

logger = logging.getLogger(__name__)

FrameHandler = Callable[[int, float], Union[None, Awaitable[None]]]


class LogicalClock:
    """Millisecond clock that only moves when told to.

    Render functions read ``now_ms`` instead of wall time so a frame captured
    at t=500 always looks the same.
    """

    def __init__(self, start_ms: float = 0.0):
        self._now = float(start_ms)

    @property
    def now_ms(self) -> float:
        return self._now

    def advance(self, delta_ms: float) -> float:
        if delta_ms < 0:
            raise ValueError("Clock cannot move backwards")
        self._now += delta_ms
        return self._now


def frame_interval(duration: float, frame_count: int) -> float:
    if frame_count > 1:
        return duration / (frame_count - 1)
    return duration


class AnimationController:
    """Steps a LogicalClock through evenly spaced frames."""

    def __init__(self, clock: LogicalClock):
        self.clock = clock

    async def capture_frames(self, duration: float, frame_count: int,
                             capture_frame: FrameHandler) -> int:
        """Call ``capture_frame(index, timestamp)`` once per frame.

        Frame ``i`` is taken at ``i * duration / (frame_count - 1)``; a single
        frame is taken at t=0. Returns the number of frames.
        """
        if frame_count <= 0:
            return 0

        interval = frame_interval(duration, frame_count)
        for frame_index in range(frame_count):
            target = interval * frame_index
            delta = target - self.clock.now_ms
            if delta > 0:
                self.clock.advance(delta)
            logger.debug("Frame %d/%d at t=%.1fms", frame_index + 1, frame_count, target)
            outcome = capture_frame(frame_index, target)
            if inspect.isawaitable(outcome):
                await outcome
        return frame_count
