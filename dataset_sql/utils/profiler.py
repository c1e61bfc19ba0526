"""
Resource accounting for an export run.

An export holds whole windows of items in memory while their row-groups are
written, so the number worth watching is how far RSS climbs above where the
process started. `profile_block` records that next to wall time and a CPU
snapshot; RSS is sampled from a thread because the event loop may not yield
for long stretches while a large window is being turned into statements.

Usage:
    with profile_block("export") as stats:
        await writer.write(rows)

    log.info("done", extra=stats.as_extra())
"""

from __future__ import annotations

import contextlib
import threading
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterator, Optional

import psutil


@dataclass
class ProfileStats:
    label: str
    start_ts: float = 0.0
    end_ts: float = 0.0
    duration_seconds: float = 0.0
    baseline_rss_bytes: Optional[int] = None
    peak_rss_bytes: Optional[int] = None
    cpu_percent: Optional[float] = None

    @property
    def rss_growth_bytes(self) -> Optional[int]:
        if self.peak_rss_bytes is None or self.baseline_rss_bytes is None:
            return None
        return self.peak_rss_bytes - self.baseline_rss_bytes

    def as_extra(self) -> Dict[str, Any]:
        return {
            "profile": self.label,
            "duration_seconds": round(self.duration_seconds, 3),
            "peak_rss_bytes": self.peak_rss_bytes,
            "rss_growth_bytes": self.rss_growth_bytes,
            "cpu_percent": self.cpu_percent,
        }


class _RssSampler(threading.Thread):
    """Daemon thread tracking the highest RSS seen until `stop()`."""

    def __init__(self, process: psutil.Process, interval_seconds: float) -> None:
        super().__init__(name="rss-sampler", daemon=True)
        self._process = process
        self._interval = interval_seconds
        self._stopped = threading.Event()
        self.baseline = process.memory_info().rss
        self.peak = self.baseline

    def run(self) -> None:
        while not self._stopped.wait(self._interval):
            try:
                rss = self._process.memory_info().rss
            except psutil.Error:
                return
            if rss > self.peak:
                self.peak = rss

    def stop(self) -> int:
        self._stopped.set()
        self.join(timeout=1.0)
        return self.peak


@contextlib.contextmanager
def profile_block(label: str, sample_interval_ms: int = 200) -> Iterator[ProfileStats]:
    """
    Measure the enclosed block; the yielded stats are filled in on exit,
    including when the block raises.
    """
    process = psutil.Process()
    sampler = _RssSampler(process, sample_interval_ms / 1000.0)
    stats = ProfileStats(label=label, baseline_rss_bytes=sampler.baseline)

    process.cpu_percent(interval=None)  # first call only primes the counter
    sampler.start()
    stats.start_ts = time.perf_counter()
    try:
        yield stats
    finally:
        stats.end_ts = time.perf_counter()
        stats.duration_seconds = stats.end_ts - stats.start_ts
        stats.peak_rss_bytes = sampler.stop()
        stats.cpu_percent = process.cpu_percent(interval=None)


__all__ = ["ProfileStats", "profile_block"]
