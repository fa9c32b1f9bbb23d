"""Subprocess runner used by out-of-process checks.

Spawns one command, optionally feeds bytes to its stdin, forwards stdout and
stderr line by line to a logger, and reports the exit code. There is no
built-in timeout; callers bound the run with ``asyncio.timeout`` or by
cancelling the awaiting task. On POSIX the command leads its own process
group, and cancellation kills the whole group so that descendants holding
the output pipes go with it.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shlex
import signal
from collections.abc import Sequence

logger = logging.getLogger(__name__)

_POSIX = os.name == "posix"

# Output lines longer than this are logged truncated; the rest is discarded.
MAX_LINE = 64 * 1024
_CHUNK = 16 * 1024

# How long a killed child may take to close its output pipes.
REAP_GRACE = 2.0


class CommandError(ValueError):
    """The command line could not be turned into program + args."""


class ProcessError(Exception):
    """Running the subprocess failed (as opposed to it exiting non-zero)."""


class ProcessSpawnError(ProcessError):
    pass


class ProcessWaitError(ProcessError):
    pass


def split_command(line: str) -> list[str]:
    """Shell-style word splitting. Raises CommandError on empty/bad input."""
    try:
        parts = shlex.split(line)
    except ValueError as e:
        raise CommandError(f"cannot parse command {line!r}: {e}") from e
    if not parts:
        raise CommandError("empty command")
    return parts


class Process:
    """One runnable subprocess.

    ``env`` holds ``KEY=VALUE`` entries added on top of the current
    environment. ``output`` receives ``[stdout]: ...`` / ``[stderr]: ...``
    lines; without it both streams are discarded.
    """

    def __init__(
        self,
        command: str,
        args: Sequence[str] = (),
        env: Sequence[str] = (),
        stdin: bytes | None = None,
        output: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        if not command:
            raise CommandError("empty command")
        self.command = command
        self.args = list(args)
        self.env = list(env)
        self.stdin = stdin
        self.output = output

    @classmethod
    def from_shell(cls, line: str, **kwargs) -> Process:
        parts = split_command(line)
        return cls(parts[0], parts[1:], **kwargs)

    def _environ(self) -> dict[str, str]:
        environ = dict(os.environ)
        for entry in self.env:
            key, sep, value = entry.partition("=")
            if not key or not sep:
                raise CommandError(f"invalid environment entry: {entry!r}")
            environ[key] = value
        return environ

    async def run(self) -> int:
        """Run to completion and return the exit code.

        Negative codes mean the child died from that signal (POSIX).
        """
        environ = self._environ()
        pipe_output = self.output is not None
        stream = asyncio.subprocess.PIPE if pipe_output else asyncio.subprocess.DEVNULL

        try:
            proc = await asyncio.create_subprocess_exec(
                self.command,
                *self.args,
                stdin=asyncio.subprocess.PIPE if self.stdin is not None else asyncio.subprocess.DEVNULL,
                stdout=stream,
                stderr=stream,
                env=environ,
                start_new_session=_POSIX,
            )
        except (OSError, ValueError) as e:
            # ValueError: e.g. an embedded NUL byte in an argument
            raise ProcessSpawnError(f"cannot start {self.command!r}: {e}") from e

        helpers: list[asyncio.Task[None]] = []
        if self.stdin is not None:
            helpers.append(asyncio.create_task(self._feed(proc, self.stdin)))
        if pipe_output:
            helpers.append(asyncio.create_task(self._forward("stdout", proc.stdout)))
            helpers.append(asyncio.create_task(self._forward("stderr", proc.stderr)))

        try:
            code = await proc.wait()
            # Drain whatever output is still buffered after exit.
            if helpers:
                await asyncio.gather(*helpers, return_exceptions=True)
        except asyncio.CancelledError:
            _kill(proc)
            await asyncio.shield(_reap(proc, helpers))
            raise
        except OSError as e:
            _kill(proc)
            await _reap(proc, helpers)
            raise ProcessWaitError(f"waiting for {self.command!r} failed: {e}") from e

        return code

    async def _feed(self, proc: asyncio.subprocess.Process, data: bytes) -> None:
        stdin = proc.stdin
        if stdin is None:
            return
        try:
            stdin.write(data)
            await stdin.drain()
        except (BrokenPipeError, ConnectionResetError):
            # Child exited without reading all of its input.
            logger.debug("%s closed stdin early", self.command)
        finally:
            try:
                stdin.close()
            except (BrokenPipeError, ConnectionResetError):
                pass

    async def _forward(self, name: str, reader: asyncio.StreamReader | None) -> None:
        """Log ``reader`` line by line, consuming it until EOF whatever it holds."""
        if reader is None or self.output is None:
            return
        pending = bytearray()
        skipping = False  # inside the tail of an oversized line
        while True:
            chunk = await reader.read(_CHUNK)
            if not chunk:
                break
            pending += chunk
            while (end := pending.find(b"\n")) >= 0:
                line = bytes(pending[:end])
                del pending[: end + 1]
                if skipping:
                    skipping = False
                else:
                    self._emit(name, line)
            if skipping:
                pending.clear()
            elif len(pending) > MAX_LINE:
                self._emit(name, bytes(pending[:MAX_LINE]), truncated=True)
                pending.clear()
                skipping = True
        if pending and not skipping:
            self._emit(name, bytes(pending))

    def _emit(self, name: str, line: bytes, truncated: bool = False) -> None:
        text = line.decode("utf-8", errors="replace").rstrip("\r")
        if truncated:
            self.output.info("[%s]: %s... (line truncated)", name, text)
        else:
            self.output.info("[%s]: %s", name, text)


def _kill(proc: asyncio.subprocess.Process) -> None:
    """Kill the child and, on POSIX, every process left in its group."""
    if _POSIX:
        try:
            os.killpg(proc.pid, signal.SIGKILL)
            return
        except (ProcessLookupError, PermissionError):
            pass
    if proc.returncode is None:
        try:
            proc.kill()
        except ProcessLookupError:
            pass


async def _reap(proc: asyncio.subprocess.Process, helpers: list[asyncio.Task[None]]) -> None:
    """Wait for a killed child while its pipes drain, then drop the helpers."""
    try:
        async with asyncio.timeout(REAP_GRACE):
            await proc.wait()
            await asyncio.gather(*helpers, return_exceptions=True)
    except TimeoutError:
        logger.warning("pid %d: output pipes still open %.1fs after kill", proc.pid, REAP_GRACE)
    finally:
        for task in helpers:
            task.cancel()
