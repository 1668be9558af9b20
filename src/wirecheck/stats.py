from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from .constants import DEFAULT_REPORT_EVERY

if TYPE_CHECKING:
    from .session import RoundOutcome

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class SessionStats:
    rounds: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    reconnects: int = 0
    has_succeeded: bool = False
    start_ts: float = field(default_factory=time.monotonic)

    def record(self, ok: bool, timed_out: bool = False) -> bool:
        """Count one round. Returns True on the first success ever."""
        self.rounds += 1
        if timed_out:
            self.timeouts += 1
        if not ok:
            self.failures += 1
            return False
        self.successes += 1
        first = not self.has_succeeded
        self.has_succeeded = True
        return first

    @property
    def duration_s(self) -> float:
        return max(0.0, time.monotonic() - self.start_ts)

    def snapshot(self) -> "StatsSnapshot":
        return StatsSnapshot(
            rounds=self.rounds,
            successes=self.successes,
            failures=self.failures,
            timeouts=self.timeouts,
            reconnects=self.reconnects,
            has_succeeded=self.has_succeeded,
            duration_s=self.duration_s,
        )


@dataclass(frozen=True, slots=True)
class StatsSnapshot:
    rounds: int = 0
    successes: int = 0
    failures: int = 0
    timeouts: int = 0
    reconnects: int = 0
    has_succeeded: bool = False
    duration_s: float = 0.0

    @property
    def success_rate(self) -> float:
        if self.rounds == 0:
            return 0.0
        return self.successes / self.rounds


class StatsReporter:
    """Logs a summary every ``report_every`` successes and on every failure."""

    def __init__(self, report_every: int = DEFAULT_REPORT_EVERY, enabled: bool = True):
        self.report_every = max(1, report_every)
        self.enabled = enabled
        self.reports = 0
        self._last = StatsSnapshot()

    def record(self, outcome: "RoundOutcome", snapshot: StatsSnapshot) -> None:
        self._last = snapshot
        if not self.enabled:
            return
        if not outcome.ok or snapshot.successes % self.report_every == 0:
            self.emit(snapshot)

    def emit(self, snapshot: StatsSnapshot) -> None:
        self.reports += 1
        logger.info(
            "stats: rounds=%d ok=%d failed=%d timeouts=%d reconnects=%d (%.1f%% ok)",
            snapshot.rounds,
            snapshot.successes,
            snapshot.failures,
            snapshot.timeouts,
            snapshot.reconnects,
            snapshot.success_rate * 100,
        )

    def summary(self) -> StatsSnapshot:
        return self._last
