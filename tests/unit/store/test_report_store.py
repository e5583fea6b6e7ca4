"""Unit tests for the fraud report store."""

from __future__ import annotations

import uuid
from datetime import timedelta

from crowdshield.store.report_store import ReportStore
from crowdshield.store.schema import FraudReport


def _report(entity, timestamp, *, category="Spam", reporter="member_1", active=True):
    return FraudReport(
        report_id=str(uuid.uuid4()),
        reporter_id=reporter,
        target_entity=entity,
        entity_kind="phone",
        category=category,
        description="Repeated robocalls asking for card details",
        timestamp=timestamp,
        is_active=active,
    )


def test_insert_and_get_report_round_trips_fields(session_factory, clock):
    store = ReportStore(session_factory=session_factory)
    report = _report("7632743899", clock.now(), category="Phishing")
    report.amount_lost = 125.5

    store.insert_report(report)
    loaded = store.get_report(report.report_id)

    assert loaded is not None
    assert loaded.target_entity == "7632743899"
    assert loaded.category == "Phishing"
    assert loaded.amount_lost == 125.5
    assert loaded.timestamp == clock.now()
    assert loaded.timestamp.tzinfo is not None
    assert store.get_report("missing") is None


def test_list_active_for_entity_respects_window_and_flag(session_factory, clock):
    store = ReportStore(session_factory=session_factory)
    now = clock.now()
    inside = _report("7632743899", now - timedelta(days=3))
    boundary = _report("7632743899", now - timedelta(days=30))
    outside = _report("7632743899", now - timedelta(days=31))
    inactive = _report("7632743899", now - timedelta(days=1), active=False)
    other = _report("9876543210", now - timedelta(days=1))
    for item in (inside, boundary, outside, inactive, other):
        store.insert_report(item)

    found = store.list_active_for_entity("7632743899", start=now - timedelta(days=30), end=now)

    assert [item.report_id for item in found] == [boundary.report_id, inside.report_id]


def test_set_active_toggles_and_reports_unknown_ids(session_factory, clock):
    store = ReportStore(session_factory=session_factory)
    report = _report("7632743899", clock.now())
    store.insert_report(report)

    assert store.set_active(report.report_id, False) is True
    assert store.get_report(report.report_id).is_active is False
    assert store.set_active("missing", False) is False


def test_list_by_reporter_paginates_newest_first(session_factory, clock):
    store = ReportStore(session_factory=session_factory)
    now = clock.now()
    ids = []
    for offset in range(5):
        report = _report("7632743899", now - timedelta(hours=offset))
        store.insert_report(report)
        ids.append(report.report_id)
    store.insert_report(_report("7632743899", now, reporter="member_2"))

    page, total = store.list_by_reporter("member_1", limit=2, offset=1)

    assert total == 5
    assert [item.report_id for item in page] == ids[1:3]


def test_aggregates_for_stats(session_factory, clock):
    store = ReportStore(session_factory=session_factory)
    now = clock.now()
    for _ in range(3):
        store.insert_report(_report("a", now, category="Phishing"))
    for _ in range(2):
        store.insert_report(_report("b", now - timedelta(days=40), category="Spam"))
    store.insert_report(_report("c", now, category="Other", active=False))

    assert store.count_active() == 5
    assert store.count_active(since=now - timedelta(days=30)) == 3
    assert store.count_for_entity("c") == 1
    assert store.top_categories(limit=5) == [
        {"category": "Phishing", "count": 3},
        {"category": "Spam", "count": 2},
    ]
