"""Run a shell command inside a pseudo-terminal and stream its output."""

from __future__ import annotations

import asyncio
import codecs
import inspect
import logging
import os
import signal
import struct
import sys
from dataclasses import dataclass
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

from visualjudge.errors import CommandTimeoutError, PtySpawnError

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 30.0
MAX_PARTIAL_OUTPUT = 2000
READ_SIZE = 4096

DataCallback = Callable[[str], Union[None, Awaitable[None]]]


@dataclass
class CommandResult:
    output: str
    exit_code: int


def shell_command(command: str) -> list[str]:
    """Build the argv that runs ``command`` through the platform shell."""
    if sys.platform == "win32":
        shell = os.environ.get("ComSpec", "powershell.exe")
        if "powershell" in shell.lower():
            return [shell, "-NoLogo", "-NoProfile", "-Command", command]
        return [shell, "/d", "/c", command]
    shell = os.environ.get("SHELL", "/bin/bash")
    return [shell, "-l", "-c", command]


def truncate_output(text: str, limit: int = MAX_PARTIAL_OUTPUT) -> str:
    if len(text) <= limit:
        return text
    return f"{text[:limit]}\n... truncated ({len(text) - limit} bytes omitted)"


async def _emit(chunk: str, on_data: Optional[DataCallback]) -> None:
    if on_data is None:
        return
    try:
        outcome = on_data(chunk)
        if inspect.isawaitable(outcome):
            await outcome
    except Exception as e:
        # A broken consumer must not break the capture
        logger.debug("Output callback failed: %s", e)


class _Session:
    """A spawned process plus the source its output is read from."""

    def __init__(self, process: asyncio.subprocess.Process,
                 chunks: AsyncIterator[bytes], close: Callable[[], None]):
        self.process = process
        self.chunks = chunks
        self._close = close

    async def release(self) -> None:
        if self.process.returncode is None:
            _kill(self.process)
            try:
                await asyncio.wait_for(self.process.wait(), timeout=5)
            except asyncio.TimeoutError:
                logger.warning("Process %d did not exit after kill", self.process.pid)
        self._close()


def _kill(process: asyncio.subprocess.Process) -> None:
    try:
        if sys.platform == "win32":
            process.kill()
        else:
            os.killpg(process.pid, signal.SIGKILL)
    except ProcessLookupError:
        pass
    except OSError as e:
        logger.debug("Failed to kill process %d: %s", process.pid, e)


async def _spawn_pty(argv: list[str], cols: int, rows: int,
                     cwd: Optional[str], env: Optional[dict]) -> _Session:
    import fcntl
    import pty
    import termios

    master_fd, slave_fd = pty.openpty()
    fcntl.ioctl(slave_fd, termios.TIOCSWINSZ, struct.pack("HHHH", rows, cols, 0, 0))
    child_env = dict(env if env is not None else os.environ)
    child_env.setdefault("TERM", "xterm-256color")
    child_env["COLUMNS"] = str(cols)
    child_env["LINES"] = str(rows)

    try:
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdin=slave_fd,
            stdout=slave_fd,
            stderr=slave_fd,
            cwd=cwd,
            env=child_env,
            start_new_session=True,
        )
    except Exception:
        os.close(master_fd)
        os.close(slave_fd)
        raise
    # The child holds its own copy; closing ours lets EOF reach the master
    os.close(slave_fd)

    loop = asyncio.get_running_loop()
    queue: asyncio.Queue[bytes] = asyncio.Queue()

    def _on_readable() -> None:
        try:
            data = os.read(master_fd, READ_SIZE)
        except OSError:
            data = b""  # EIO once every writer has gone away
        if not data:
            loop.remove_reader(master_fd)
        queue.put_nowait(data)

    loop.add_reader(master_fd, _on_readable)

    async def _chunks() -> AsyncIterator[bytes]:
        while True:
            data = await queue.get()
            if not data:
                return
            yield data

    def _close() -> None:
        loop.remove_reader(master_fd)
        try:
            os.close(master_fd)
        except OSError:
            pass

    return _Session(process, _chunks(), _close)


async def _spawn_pipes(argv: list[str], cwd: Optional[str],
                       env: Optional[dict]) -> _Session:
    process = await asyncio.create_subprocess_exec(
        *argv,
        stdout=asyncio.subprocess.PIPE,
        stderr=asyncio.subprocess.STDOUT,
        cwd=cwd,
        env=env,
    )

    async def _chunks() -> AsyncIterator[bytes]:
        while True:
            data = await process.stdout.read(READ_SIZE)
            if not data:
                return
            yield data

    return _Session(process, _chunks(), lambda: None)


async def run_command(
    command: str,
    *,
    cols: int = 120,
    rows: int = 40,
    timeout: float = DEFAULT_TIMEOUT_SECONDS,
    cwd: Optional[str] = None,
    env: Optional[dict] = None,
    on_data: Optional[DataCallback] = None,
) -> CommandResult:
    """Run ``command`` in a pseudo-terminal of ``cols`` x ``rows``.

    Each decoded output chunk is passed to ``on_data`` as it arrives. On
    timeout the process group is killed and :class:`CommandTimeoutError` is
    raised with the (truncated) output seen so far.
    """
    if not command.strip():
        raise ValueError("Command cannot be empty")

    argv = shell_command(command)
    logger.debug("Spawning %s (%dx%d, timeout=%.1fs)", argv, cols, rows, timeout)
    try:
        if sys.platform == "win32":
            session = await _spawn_pipes(argv, cwd, env)
        else:
            session = await _spawn_pty(argv, cols, rows, cwd, env)
    except Exception as e:
        raise PtySpawnError(f"Failed to launch PTY for '{command}': {e}") from e

    output: list[str] = []
    decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    async def _pump() -> int:
        async for data in session.chunks:
            text = decoder.decode(data)
            if text:
                output.append(text)
                await _emit(text, on_data)
        tail = decoder.decode(b"", final=True)
        if tail:
            output.append(tail)
            await _emit(tail, on_data)
        return await session.process.wait()

    try:
        exit_code = await asyncio.wait_for(_pump(), timeout=timeout)
    except asyncio.TimeoutError:
        partial = truncate_output("".join(output))
        raise CommandTimeoutError(
            f"Command timed out after {timeout:g}s: {command}\nPartial output:\n{partial}",
            partial_output=partial,
        ) from None
    finally:
        await session.release()

    return CommandResult(output="".join(output), exit_code=exit_code)
