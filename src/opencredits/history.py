from datetime import datetime, timedelta
from typing import Sequence

from opencredits.models import HistorySample

# samples older than this are evicted on every append
HISTORY_WINDOW = timedelta(hours=24)

_SECONDS_PER_HOUR = 3600.0


class HistoryStore:
    """
    HistoryStore keeps the balance samples of a single provider
    instance, ordered by capture time, for the trailing 24 hours.

    It lives in memory only and is owned by the provider that
    appends to it. Since the scheduler runs at most one refresh
    cycle at a time there is never more than one writer, so no
    lock is taken.
    """

    def __init__(self, window: "timedelta" = HISTORY_WINDOW) -> "None":
        self._window = window
        self._samples: "list[HistorySample]" = []

    def __len__(self) -> "int":
        return len(self._samples)

    def append(self, balance: "float", timestamp: "datetime") -> "None":
        """
        records a sample taken at timestamp, then evicts everything
        that fell out of the window relative to it.
        """
        self._samples.append(HistorySample(timestamp=timestamp, balance=balance))
        self.prune(timestamp)

    def prune(self, now: "datetime") -> "int":
        """
        drops samples older than the window. Returns the number
        of evicted samples.
        """
        cutoff = now - self._window
        kept = [s for s in self._samples if s.timestamp >= cutoff]
        evicted = len(self._samples) - len(kept)
        self._samples = kept
        return evicted

    def snapshot(self) -> "tuple[HistorySample, ...]":
        return tuple(self._samples)


def estimate_rate(
    history: "Sequence[HistorySample]",
    window_minutes: "float",
    now: "datetime",
) -> "float | None":
    """
    estimates credits consumed per hour between the latest sample
    and the sample closest to `now - window_minutes`.

    When no sample is old enough to cover the window the oldest one
    is used instead. Returns None with fewer than two samples or when
    the two samples are not strictly ordered in time. A negative
    result means the balance went up (a top-up).
    """
    if len(history) < 2:
        return None

    target = now - timedelta(minutes=window_minutes)
    latest = history[-1]

    baseline = history[0]
    best_distance = abs(baseline.timestamp - target)
    for sample in history:
        distance = abs(sample.timestamp - target)
        # strict comparison keeps the first sample on ties
        if distance < best_distance:
            best_distance = distance
            baseline = sample

    if baseline.timestamp > target:
        baseline = history[0]

    hours = (latest.timestamp - baseline.timestamp).total_seconds() / _SECONDS_PER_HOUR
    if hours <= 0:
        return None

    return (baseline.balance - latest.balance) / hours
