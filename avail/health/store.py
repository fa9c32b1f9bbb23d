"""On-disk state store shared with ``avail status`` / ``avail list``.

Layout::

    <runtime root>/<daemon pid>/<title>/latency   "123\\n"  (ms, every cycle)
    <runtime root>/<daemon pid>/<title>/health    "1\\n" / "0\\n"

Files are replaced atomically (temp file + rename) so a reader never sees a
partial write.
"""

from __future__ import annotations

import logging
import os
import shutil
import tempfile
from pathlib import Path

logger = logging.getLogger(__name__)

LATENCY_FILE = "latency"
HEALTH_FILE = "health"
FILE_MODE = 0o644
DIR_MODE = 0o755


def atomic_write(path: Path, content: str, mode: int = FILE_MODE) -> None:
    """Replace ``path`` with ``content`` in one rename."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.chmod(tmp_name, mode)
        os.replace(tmp_name, path)
    except BaseException:
        try:
            os.unlink(tmp_name)
        except FileNotFoundError:
            pass
        raise


class StateStore:
    """Latency/health files for one target of one daemon."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def create(self) -> None:
        if self.path.exists() and not self.path.is_dir():
            raise NotADirectoryError(f"not a directory: {self.path}")
        self.path.mkdir(mode=DIR_MODE, parents=True, exist_ok=True)

    def write_latency(self, latency_ms: int) -> None:
        atomic_write(self.path / LATENCY_FILE, f"{latency_ms}\n")

    def write_health(self, up: bool) -> None:
        atomic_write(self.path / HEALTH_FILE, "1\n" if up else "0\n")

    def remove(self) -> None:
        shutil.rmtree(self.path)
