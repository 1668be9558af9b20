from __future__ import annotations

import logging

from wirecheck.session import Role, RoundOutcome, Verdict
from wirecheck.stats import SessionStats, StatsReporter

OK = RoundOutcome(Role.SENDER, True, Verdict.ACKNOWLEDGED)
BAD = RoundOutcome(Role.SENDER, False, Verdict.NEGATIVE_ACK)


def test_first_success_reported_once():
    s = SessionStats()
    assert s.record(False) is False
    assert s.record(True) is True
    assert s.record(True) is False
    assert (s.rounds, s.successes, s.failures) == (3, 2, 1)


def test_timeouts_are_failures():
    s = SessionStats()
    s.record(False, timed_out=True)
    assert s.failures == 1
    assert s.timeouts == 1
    assert not s.has_succeeded


def test_snapshot_is_a_copy():
    s = SessionStats()
    s.record(True)
    snap = s.snapshot()
    s.record(True)
    assert snap.successes == 1
    assert s.snapshot().successes == 2
    assert snap.success_rate == 1.0


def test_reporter_cadence(caplog):
    stats = SessionStats()
    reporter = StatsReporter(report_every=3)
    with caplog.at_level(logging.INFO, logger="wirecheck.stats"):
        for outcome in (OK, OK, OK, BAD, OK, OK, OK):
            stats.record(outcome.ok)
            reporter.record(outcome, stats.snapshot())
    # every 3rd success plus the failure
    assert reporter.reports == 3
    assert len([r for r in caplog.records if r.getMessage().startswith("stats:")]) == 3
    assert reporter.summary().rounds == 7


def test_disabled_reporter_still_tracks_summary():
    stats = SessionStats()
    reporter = StatsReporter(enabled=False)
    stats.record(False)
    reporter.record(BAD, stats.snapshot())
    assert reporter.reports == 0
    assert reporter.summary().failures == 1
