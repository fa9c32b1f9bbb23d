"""Runtime locations, PID files and process liveness.

Everything here is resolved once at startup into a ``RuntimeLocation`` that is
passed explicitly to the daemon, the probes and the status reader.
"""

from __future__ import annotations

import enum
import os
import sys
import tempfile
from dataclasses import dataclass
from pathlib import Path

import psutil

APP_NAME = "avail"
PID_FILE_NAME = "main.pid"


@dataclass(frozen=True)
class RuntimeLocation:
    """Writable directory holding process-scoped daemon state."""

    root: Path

    @classmethod
    def resolve(cls, override: str = "") -> RuntimeLocation:
        """Pick the root for the current platform and privilege level."""
        if override:
            return cls(Path(override))
        return cls(_default_root())

    def pid_dir(self, pid: int) -> Path:
        return self.root / str(pid)

    def target_dir(self, pid: int, title: str) -> Path:
        return self.pid_dir(pid) / title

    @property
    def default_pid_file(self) -> Path:
        return self.root / PID_FILE_NAME


def _default_root() -> Path:
    if sys.platform == "win32":
        base = os.environ.get("LOCALAPPDATA") or tempfile.gettempdir()
        return Path(base) / APP_NAME

    uid = os.getuid()
    if uid == 0:
        return Path("/var/run") / APP_NAME

    user_run = Path("/var/run/user") / str(uid)
    if user_run.is_dir():
        return user_run / APP_NAME

    xdg = os.environ.get("XDG_RUNTIME_DIR")
    if xdg:
        return Path(xdg) / APP_NAME

    return Path(tempfile.gettempdir()) / f"{APP_NAME}-{uid}"


def default_config_path() -> Path:
    """Config file used when neither ``-c`` nor AVAIL_CONFIG is given."""
    if sys.platform == "win32":
        base = os.environ.get("APPDATA") or str(Path.home())
        return Path(base) / APP_NAME / "config.json"
    if os.getuid() == 0:
        return Path("/etc") / APP_NAME / "config.json"
    base = os.environ.get("XDG_CONFIG_HOME") or str(Path.home() / ".config")
    return Path(base) / APP_NAME / "config.json"


# ── PID files ────────────────────────────────────────────────────────────────


class ProcessState(str, enum.Enum):
    ALIVE = "alive"
    GONE = "gone"
    INACCESSIBLE = "inaccessible"  # exists, but not ours to signal


def read_pid(pid_file: Path) -> int:
    """Parse the PID stored in ``pid_file``. Raises OSError / ValueError."""
    return int(pid_file.read_text(encoding="utf-8").strip())


def process_state(pid: int) -> ProcessState:
    """Non-destructive liveness check (signal 0)."""
    if pid <= 0:
        return ProcessState.GONE
    if sys.platform == "win32":
        # signal 0 is CTRL_C_EVENT on Windows
        return ProcessState.ALIVE if psutil.pid_exists(pid) else ProcessState.GONE
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return ProcessState.GONE
    except PermissionError:
        return ProcessState.INACCESSIBLE
    return ProcessState.ALIVE
