"""Single-producer, single-consumer async message channel."""

from __future__ import annotations

import asyncio
from typing import Any, AsyncIterator

_CLOSED = object()


class MessageChannel:
    """Messages sent on one side come out of ``async for`` on the other.

    Iteration waits while the channel is empty and ends once ``close()`` has
    been called and everything sent before it has been consumed.
    """

    def __init__(self) -> None:
        self._queue: asyncio.Queue = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def send(self, message: Any) -> None:
        if self._closed:
            raise RuntimeError("Cannot send on a closed channel")
        self._queue.put_nowait(message)

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self._queue.put_nowait(_CLOSED)

    def __aiter__(self) -> AsyncIterator[Any]:
        return self._iterate()

    async def _iterate(self) -> AsyncIterator[Any]:
        while True:
            message = await self._queue.get()
            if message is _CLOSED:
                return
            yield message

    @classmethod
    def of(cls, *messages: Any) -> "MessageChannel":
        """A channel already holding ``messages`` and closed."""
        channel = cls()
        for message in messages:
            channel.send(message)
        channel.close()
        return channel
