"""Status reader: the consumer side of the state store.

Runs in a separate, short-lived process (``avail status`` / ``avail list``)
and only relies on the directory layout written by the daemon's probes.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from rich.table import Table
from rich.text import Text

from avail.health.store import HEALTH_FILE, LATENCY_FILE
from avail.runtime import RuntimeLocation


class StatusReadError(Exception):
    """A state file exists but does not hold a valid value."""


class DaemonNotFoundError(StatusReadError):
    """No state root for the requested PID: no such running daemon."""


@dataclass
class SiteStatus:
    title: str
    latency_ms: int | None = None
    health: bool | None = None  # None: not reported yet

    @property
    def label(self) -> str:
        if self.health is None:
            return "PENDING"
        return "OK" if self.health else "FAILED"


def _read_int(path: Path) -> int | None:
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    try:
        return int(text.strip())
    except ValueError as e:
        raise StatusReadError(f"invalid content in {path}: {text!r}") from e


class StatusReader:
    def __init__(self, location: RuntimeLocation, pid: int) -> None:
        self.location = location
        self.pid = pid

    @property
    def root(self) -> Path:
        return self.location.pid_dir(self.pid)

    def titles(self) -> list[str]:
        """Titles published by the daemon, sorted."""
        try:
            entries = list(self.root.iterdir())
        except FileNotFoundError as e:
            raise DaemonNotFoundError(f"no running daemon with PID {self.pid} ({self.root})") from e
        return sorted(p.name for p in entries if p.is_dir())

    def site_status(self, title: str) -> SiteStatus:
        site_dir = self.root / title
        if not site_dir.is_dir():
            if not self.root.is_dir():
                raise DaemonNotFoundError(f"no running daemon with PID {self.pid} ({self.root})")
            raise StatusReadError(f"unknown title: {title!r}")

        latency = _read_int(site_dir / LATENCY_FILE)
        health = _read_int(site_dir / HEALTH_FILE)
        return SiteStatus(
            title=title,
            latency_ms=latency,
            health=None if health is None else health != 0,
        )

    def statuses(self, titles: list[str] | None = None) -> list[SiteStatus]:
        if titles is None:
            titles = self.titles()
        return [self.site_status(t) for t in titles]


# ── Rendering ────────────────────────────────────────────────────────────────

_HEALTH_STYLE = {"OK": "bold green", "FAILED": "bold red", "PENDING": "bold yellow"}


def render_statuses(statuses: list[SiteStatus]) -> Table:
    table = Table(box=None, show_header=False, pad_edge=False)
    table.add_column("title")
    table.add_column("health")
    table.add_column("latency", style="cyan")

    for s in statuses:
        latency = "-" if s.latency_ms is None else f"{s.latency_ms} ms"
        table.add_row(
            f"{s.title}:",
            Text(s.label, style=_HEALTH_STYLE[s.label]),
            f"(latency: {latency})",
        )
    return table
