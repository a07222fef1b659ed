import time
import logging
from enum import Enum
from pathlib import Path
from dataclasses import dataclass
from typing import Callable, Optional, Union
from logwatchdog import settings

log = logging.getLogger(__name__)


class Activity(Enum):
    ACTIVE = "active"
    STALE = "stale"


@dataclass(frozen=True)
class LogBaseline:
    """The last observed (mtime, size) snapshot of the log file."""
    mtime_ns: int
    size: int


class LogActivityTracker:
    """
    Decides whether a log file shows enough activity to consider its
    writer alive.

    Only the file's size and modification time are consulted. The time of
    the last observed change is taken from `clock`, which must be monotonic.
    """

    def __init__(self, timeout: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.timeout = timeout
        self._clock = clock
        self.baseline: Optional[LogBaseline] = None
        self.last_change: float = clock()
        self._reported_bucket = 0

    def reset(self) -> None:
        """
        Forgets the baseline so the next check is a warm-up call.
        Called whenever a new child is started.
        """
        self.baseline = None
        self.last_change = self._clock()
        self._reported_bucket = 0

    def seconds_since_change(self) -> float:
        return self._clock() - self.last_change

    def check(self, path: Union[str, Path]) -> Activity:
        """
        Compares the log file against the baseline.

        :param path: The log file to stat.
        :return: Activity.STALE if nothing changed for longer than the timeout,
            Activity.ACTIVE otherwise.
        :raises OSError: If the file cannot be stat'ed. The tracker is left untouched.
        """
        stat = Path(path).stat()
        mtime_ns, size = stat.st_mtime_ns, stat.st_size

        if self.baseline is None:
            log.info(f"Initial log state: {size} bytes")
            self._mark_change(mtime_ns, size)
            return Activity.ACTIVE

        if size > self.baseline.size:
            log.debug(f"New log output: {self.baseline.size} -> {size} bytes (+{size - self.baseline.size})")
            self._mark_change(mtime_ns, size)
            return Activity.ACTIVE

        # Truncated and rewritten (e.g. rotation): size alone would miss it.
        if mtime_ns > self.baseline.mtime_ns:
            log.debug(f"Log file rewritten: {self.baseline.size} -> {size} bytes")
            self._mark_change(mtime_ns, size)
            return Activity.ACTIVE

        elapsed = self.seconds_since_change()
        if elapsed > self.timeout:
            log.warning(f"TIMEOUT! No log activity for {elapsed:.0f}s (limit: {self.timeout:g}s)")
            return Activity.STALE

        self._report_waiting(elapsed)
        return Activity.ACTIVE

    def _mark_change(self, mtime_ns: int, size: int) -> None:
        self.baseline = LogBaseline(mtime_ns=mtime_ns, size=size)
        self.last_change = self._clock()
        self._reported_bucket = 0

    def _report_waiting(self, elapsed: float) -> None:
        bucket = int(elapsed // settings.STATUS_REPORT_INTERVAL)
        if bucket > self._reported_bucket:
            self._reported_bucket = bucket
            log.info(f"Waiting for log activity... ({elapsed:.0f}s/{self.timeout:g}s)")
