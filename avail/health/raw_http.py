"""Read back the raw response file handed to exec/shell checks."""

from __future__ import annotations

import os
from pathlib import Path

import httpx

from avail.health.checks import HTTP_ENV_VAR


class RawResponseError(Exception):
    """AVAIL_HTTP is unset, unreadable or not an HTTP response."""


def parse_raw_response(data: bytes) -> httpx.Response:
    head, sep, body = data.partition(b"\r\n\r\n")
    if not sep:
        head, sep, body = data.partition(b"\n\n")
    lines = head.replace(b"\r\n", b"\n").split(b"\n")

    status_line = lines[0].decode("latin-1")
    parts = status_line.split(" ", 2)
    if len(parts) < 2 or not parts[0].startswith("HTTP/"):
        raise RawResponseError(f"malformed status line: {status_line!r}")
    try:
        status_code = int(parts[1])
    except ValueError as e:
        raise RawResponseError(f"malformed status code: {parts[1]!r}") from e

    headers: list[tuple[bytes, bytes]] = []
    for line in lines[1:]:
        if not line:
            continue
        name, colon, value = line.partition(b":")
        if not colon:
            raise RawResponseError(f"malformed header line: {line!r}")
        headers.append((name.strip(), value.strip()))

    reason = parts[2] if len(parts) > 2 else ""
    return httpx.Response(
        status_code,
        headers=headers,
        content=body,
        extensions={
            "http_version": parts[0].encode("ascii"),
            "reason_phrase": reason.encode("latin-1"),
        },
    )


def load_raw_response(path: Path | None = None) -> httpx.Response:
    """Parse the file at ``path`` (default: $AVAIL_HTTP)."""
    if path is None:
        name = os.environ.get(HTTP_ENV_VAR)
        if not name:
            raise RawResponseError(f"{HTTP_ENV_VAR} environment variable is not set")
        path = Path(name)
    try:
        data = path.read_bytes()
    except OSError as e:
        raise RawResponseError(str(e)) from e
    return parse_raw_response(data)
