"""Daemon: PID-file lock, probe construction, concurrent run, teardown.

Lifecycle:
    daemon = Daemon(config, location)
    await daemon.run(stop)     # returns after ``stop`` is set
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from pathlib import Path

from avail.health.probe import Probe
from avail.runtime import ProcessState, RuntimeLocation, process_state, read_pid
from avail.targets.registry import Config

logger = logging.getLogger(__name__)


class PidFileError(Exception):
    """The PID file cannot be used."""


class PidFileConflictError(PidFileError):
    """Another live daemon holds the PID file."""


class Daemon:
    def __init__(
        self,
        config: Config,
        location: RuntimeLocation,
        pid: int | None = None,
    ) -> None:
        self.config = config
        self.location = location
        self.pid = pid if pid is not None else os.getpid()
        self.probes: list[Probe] = []

    @property
    def pid_file(self) -> Path:
        if self.config.pid_file:
            return Path(self.config.pid_file)
        return self.location.default_pid_file

    @property
    def state_root(self) -> Path:
        return self.location.pid_dir(self.pid)

    async def run(self, stop: asyncio.Event) -> None:
        """Probe every target until ``stop`` is set (or this task is cancelled).

        Raises PidFileError / ConfigError before any probe starts.
        """
        self.write_pid()
        try:
            await self._build_probes()
            await self._run_probes(stop)
        finally:
            self.cleanup()

    async def _build_probes(self) -> None:
        self.probes = []
        try:
            for target in self.config.pings:
                self.probes.append(Probe.from_config(target, self.location, self.pid))
        except Exception:
            for probe in self.probes:
                await probe.client.aclose()
            raise

    async def _run_probes(self, stop: asyncio.Event) -> None:
        tasks = [
            asyncio.create_task(probe.run(), name=f"probe-{probe.title}")
            for probe in self.probes
        ]
        logger.info("Daemon %d started: %d targets", self.pid, len(tasks))
        try:
            await stop.wait()
        finally:
            for task in tasks:
                task.cancel()
            results = await asyncio.gather(*tasks, return_exceptions=True)
            for probe, result in zip(self.probes, results):
                if isinstance(result, Exception):
                    logger.error("Probe %s crashed: %r", probe.title, result)
            logger.info("Daemon %d stopped", self.pid)

    def write_pid(self) -> None:
        """Claim the PID file, refusing if a live process still holds it."""
        pid_file = self.pid_file
        if pid_file.is_dir():
            raise PidFileError(f"PID file already exists and is a directory: {pid_file}")

        if pid_file.exists():
            logger.warning("PID file already exists: %s", pid_file)
            try:
                other = read_pid(pid_file)
            except (OSError, ValueError) as e:
                logger.warning("Ignoring unreadable PID file %s: %s", pid_file, e)
            else:
                state = process_state(other) if other != self.pid else ProcessState.GONE
                if state is ProcessState.ALIVE:
                    raise PidFileConflictError(f"a process with PID {other} already exists")
                if state is ProcessState.INACCESSIBLE:
                    raise PidFileConflictError(
                        f"PID {other} from {pid_file} belongs to a process we cannot signal"
                    )
                logger.info("Overwriting stale PID file (PID %d is gone)", other)

        parent = pid_file.parent
        if parent.exists() and not parent.is_dir():
            raise PidFileError(f"file already exists and is not a directory: {parent}")
        parent.mkdir(mode=0o755, parents=True, exist_ok=True)
        pid_file.write_text(f"{self.pid}\n", encoding="utf-8")

    def cleanup(self) -> None:
        """Best-effort removal of the PID file and this daemon's state root."""
        try:
            self.pid_file.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to remove PID file %s: %s", self.pid_file, e)
        try:
            shutil.rmtree(self.state_root)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.error("Failed to remove state directory %s: %s", self.state_root, e)
