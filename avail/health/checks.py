"""Check strategies: decide up/down from an HTTP response.

Supports: status code (default), exec (external command), shell (script fed
to a shell). Exec and shell checks receive the full raw response through a
private temp file named by the AVAIL_HTTP environment variable.
"""

from __future__ import annotations

import abc
import logging
import os
import tempfile
from collections.abc import Sequence
from pathlib import Path

import httpx

from avail.runner.process import CommandError, Process, ProcessError, split_command
from avail.targets.registry import (
    CheckConfig,
    ConfigError,
    ExecCheckConfig,
    ShellCheckConfig,
    StatusCheckConfig,
)

logger = logging.getLogger(__name__)

HTTP_ENV_VAR = "AVAIL_HTTP"

# Hop-by-hop / encoding headers that no longer describe the decoded body.
_DROPPED_HEADERS = {b"content-encoding", b"transfer-encoding", b"content-length"}


class CheckError(Exception):
    """The strategy could not reach a verdict; the target counts as down."""


# ── Strategies ───────────────────────────────────────────────────────────────


class Check(abc.ABC):
    @abc.abstractmethod
    async def is_up(self, response: httpx.Response) -> bool:
        """Return the verdict or raise CheckError."""


class StatusCheck(Check):
    """Up iff the status code is 2xx."""

    async def is_up(self, response: httpx.Response) -> bool:
        return 200 <= response.status_code < 300


class ExecCheck(Check):
    """Up iff ``command`` exits 0.

    ``command`` is either a single string split with shell rules or a literal
    ``[program, *args]`` list. The raw response file is removed once the
    command has finished, whatever the outcome.
    """

    def __init__(
        self,
        command: str | Sequence[str],
        stdin: bytes | None = None,
        output: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        if isinstance(command, str):
            argv = split_command(command)
        else:
            argv = list(command)
            if not argv or not argv[0]:
                raise CommandError("empty command")
        self.argv = argv
        self.stdin = stdin
        self.output = output

    async def is_up(self, response: httpx.Response) -> bool:
        try:
            path = write_raw_response(response)
        except OSError as e:
            raise CheckError(f"cannot save response for {self.argv[0]}: {e}") from e

        try:
            proc = Process(
                self.argv[0],
                self.argv[1:],
                env=[f"{HTTP_ENV_VAR}={path}"],
                stdin=self.stdin,
                output=self.output,
            )
            code = await proc.run()
        except (CommandError, ProcessError) as e:
            raise CheckError(str(e)) from e
        finally:
            try:
                path.unlink(missing_ok=True)
            except OSError as e:
                logger.warning("Failed to remove %s: %s", path, e)

        if code != 0:
            logger.debug("%s exited with %d", self.argv[0], code)
        return code == 0


class ShellCheck(ExecCheck):
    """Runs ``shell`` with ``script`` on its standard input."""

    def __init__(
        self,
        shell: str,
        script: str,
        output: logging.Logger | logging.LoggerAdapter | None = None,
    ) -> None:
        super().__init__(shell, stdin=script.encode("utf-8"), output=output)
        self.script = script


def build_check(
    config: CheckConfig | None,
    output: logging.Logger | logging.LoggerAdapter | None = None,
) -> Check:
    """Instantiate the strategy selected by ``config.type``."""
    if config is None or isinstance(config, StatusCheckConfig):
        return StatusCheck()
    try:
        if isinstance(config, ExecCheckConfig):
            return ExecCheck(config.command, output=output)
        if isinstance(config, ShellCheckConfig):
            return ShellCheck(config.shell, config.script, output=output)
    except CommandError as e:
        raise ConfigError(f"invalid {config.type} check: {e}") from e
    raise ConfigError(f"Invalid check strategy: {config!r}")


# ── Raw response serialization ───────────────────────────────────────────────


def serialize_response(response: httpx.Response) -> bytes:
    """Render ``response`` in HTTP/1.x wire format with its decoded body."""
    version = response.http_version or "HTTP/1.1"
    reason = response.reason_phrase or httpx.codes.get_reason_phrase(response.status_code)
    body = response.content

    lines = [f"{version} {response.status_code} {reason}".rstrip().encode("latin-1")]
    for name, value in response.headers.raw:
        if name.lower() in _DROPPED_HEADERS:
            continue
        lines.append(name + b": " + value)
    lines.append(b"Content-Length: " + str(len(body)).encode("ascii"))
    return b"\r\n".join(lines) + b"\r\n\r\n" + body


def write_raw_response(response: httpx.Response) -> Path:
    """Write the raw response to a new 0600 temp file and return its path."""
    fd, name = tempfile.mkstemp(prefix="avail-http-")
    path = Path(name)
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(serialize_response(response))
    except BaseException:
        path.unlink(missing_ok=True)
        raise
    return path
