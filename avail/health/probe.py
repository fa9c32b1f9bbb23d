"""Probe: the repeating check cycle for one target.

A probe runs as a single asyncio task: check, sleep ``interval``, check
again. Checks therefore never overlap; a check that overruns its interval
pushes the next one back instead of queueing a burst. The first check runs
immediately. Cancelling the task stops the loop (mid-sleep or mid-request)
and removes the probe's state directory.
"""

from __future__ import annotations

import asyncio
import logging
import time
from pathlib import Path

import httpx

from avail.health.checks import Check, CheckError, StatusCheck, build_check
from avail.health.proxy import build_client
from avail.health.store import StateStore
from avail.runtime import RuntimeLocation
from avail.targets.registry import ConfigError, TargetConfig, parse_positive_duration

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = 5.0
DEFAULT_TIMEOUT = 30.0


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)


class Probe:
    """Checks one URL forever and publishes latency/health to its store."""

    def __init__(
        self,
        title: str,
        url: str,
        path: Path,
        interval: float = DEFAULT_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        check: Check | None = None,
        log: logging.Logger | None = None,
    ) -> None:
        self.title = title
        self.url = url
        self.interval = interval
        self.timeout = timeout

        self.store = StateStore(path)
        self.store.create()

        self.client = client or httpx.AsyncClient(timeout=timeout)
        self.check = check or StatusCheck()
        self.log = log or logger.getChild(title)

        # Probe state; only this probe's own cycle touches it.
        self.last_latency_ms = 0
        self.last_health = False
        self.has_reported = False

    @classmethod
    def from_config(cls, config: TargetConfig, location: RuntimeLocation, pid: int) -> Probe:
        """Build a probe, raising ConfigError on bad durations/proxy/check."""
        interval = parse_positive_duration(config.interval, "interval")
        timeout = parse_positive_duration(config.timeout, "timeout")
        log = logger.getChild(config.title)
        check = build_check(config.check, output=log)
        path = location.target_dir(pid, config.title)
        store = StateStore(path)
        store.create()
        try:
            client = build_client(config.proxy, timeout=timeout)
        except ConfigError:
            store.remove()
            raise
        return cls(
            config.title,
            config.url,
            path,
            interval=interval,
            timeout=timeout,
            client=client,
            check=check,
            log=log,
        )

    async def run(self) -> None:
        """Loop until cancelled. Cleanup always runs exactly once."""
        self.log.info('running HTTP ping on "%s" (path: "%s")...', self.url, self.store.path)
        try:
            while True:
                try:
                    await self.check_once()
                except Exception:
                    self.log.exception("Unexpected error in cycle for %s", self.url)
                await asyncio.sleep(self.interval)
        finally:
            self._cleanup()
            await self.client.aclose()
            self.log.info('running HTTP ping on "%s" (path: "%s") done', self.url, self.store.path)

    async def check_once(self) -> bool:
        """One cycle: request, classify, record. Returns the verdict.

        The request and the check strategy share one deadline of ``timeout``
        from the start of the cycle; that includes exec/shell subprocesses,
        which are killed when it expires.
        """
        latency_ms: int | None = None
        up = False
        started = time.monotonic()
        try:
            async with asyncio.timeout(self.timeout):
                response = await self.client.get(self.url)
                latency_ms = _elapsed_ms(started)
                up = await self.check.is_up(response)
        except TimeoutError:
            if latency_ms is None:
                latency_ms = _elapsed_ms(started)
                self.log.warning("GET %s timed out after %.1fs", self.url, self.timeout)
            else:
                self.log.warning("check for %s timed out after %.1fs", self.url, self.timeout)
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            latency_ms = _elapsed_ms(started)
            self.log.warning("GET %s failed: %s", self.url, str(e) or type(e).__name__)
        except CheckError as e:
            self.log.warning("check for %s failed: %s", self.url, e)
        except Exception:
            self.log.exception("Unexpected error checking %s", self.url)

        self.update(latency_ms if latency_ms is not None else 0, up)
        return up

    def update(self, latency_ms: int, up: bool) -> None:
        """Record one cycle; health is only rewritten on first report or change."""
        if up:
            self.log.info("GET request succeeded (latency: %d ms)", latency_ms)
        else:
            self.log.info("GET request failed (latency: %d ms)", latency_ms)

        self.last_latency_ms = latency_ms
        try:
            self.store.write_latency(latency_ms)
        except OSError as e:
            self.log.error("Failed to write latency: %s", e)

        if not self.has_reported or self.last_health != up:
            self.has_reported = True
            self.last_health = up
            try:
                self.store.write_health(up)
            except OSError as e:
                self.log.error("Failed to write health: %s", e)

    def _cleanup(self) -> None:
        try:
            self.store.remove()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.log.error("Failed to remove %s: %s", self.store.path, e)
