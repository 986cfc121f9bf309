"""Progress reporting shared by both pipeline phases."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

log = logging.getLogger("memory_merge")

ProgressCallback = Callable[[int, int], None]


class ProgressReporter:
    """Forward ``(current, total)`` to a callback, never letting *current* go backwards.

    Values are clamped to ``[0, total]`` and repeats of the last value are
    still forwarded so start/end notifications always arrive.
    """

    def __init__(self, total: int, callback: Optional[ProgressCallback] = None) -> None:
        self.total = max(0, int(total))
        self._callback = callback
        self._current = 0

    @property
    def current(self) -> int:
        return self._current

    def report(self, current: int) -> None:
        value = max(self._current, min(int(current), self.total))
        self._current = value
        if self._callback is not None:
            self._callback(value, self.total)

    def finish(self) -> None:
        self.report(self.total)


def should_report(done: int, total: int, interval: int) -> bool:
    """True every *interval* items and always on the last one."""
    return done % interval == 0 or done == total


def _format_duration(seconds: float) -> str:
    total_seconds = int(round(seconds))
    if total_seconds <= 0:
        return "<1s"
    minutes, seconds_remaining = divmod(total_seconds, 60)
    if minutes:
        return f"{minutes}m{seconds_remaining:02d}s"
    return f"{seconds_remaining}s"


def eta_string(elapsed: float, completed: int, total: int) -> str:
    """Format an ETA string given elapsed time and progress counters."""
    if completed <= 0 or total <= 0 or completed > total or elapsed <= 0.0:
        return "ETA estimating"

    remaining = max(0.0, elapsed / (completed / total) - elapsed)
    finish_time = datetime.now() + timedelta(seconds=remaining)
    return f"ETA {_format_duration(remaining)} (finish {finish_time.strftime('%H:%M:%S')})"


class LoggingProgress:
    """Progress callback that logs percentage and ETA, at most once per percent step."""

    def __init__(self, label: str, step_percent: int = 10) -> None:
        self._label = label
        self._step = max(1, step_percent)
        self._started = time.monotonic()
        self._last_bucket = -1

    def __call__(self, current: int, total: int) -> None:
        if total <= 0:
            return
        percent = int(100 * current / total)
        bucket = percent // self._step
        if bucket == self._last_bucket and current != total:
            return
        self._last_bucket = bucket
        elapsed = time.monotonic() - self._started
        log.info(
            "%s: %3d%% (%d/%d) %s",
            self._label, percent, current, total, eta_string(elapsed, current, total),
        )
