"""Unit tests for the bounded pending-alert and history store."""

from __future__ import annotations

import threading
import uuid
from datetime import timedelta

import pytest

from crowdshield.errors import NotFoundError
from crowdshield.store.alert_store import AlertStore
from crowdshield.store.schema import PendingAlert


def _alert(user_id, created_at, *, sender="7632743899"):
    return PendingAlert(
        alert_id=str(uuid.uuid4()),
        user_id=user_id,
        channel="call",
        from_entity=sender,
        risk_level="suspicious",
        risk_score=3,
        message="Incoming call from a reported number",
        created_at=created_at,
        category="Phishing",
    )


def test_append_beyond_capacity_evicts_oldest(session_factory, clock):
    store = AlertStore(session_factory=session_factory)
    alerts = [_alert("member_1", clock.now() + timedelta(seconds=index)) for index in range(101)]

    evicted = 0
    for alert in alerts:
        evicted += store.append_pending(alert, capacity=100)

    pending = store.list_pending("member_1")
    assert evicted == 1
    assert len(pending) == 100
    assert pending[0].alert_id == alerts[1].alert_id
    assert pending[-1].alert_id == alerts[-1].alert_id


def test_eviction_is_scoped_per_user(session_factory, clock):
    store = AlertStore(session_factory=session_factory)
    for _ in range(3):
        store.append_pending(_alert("member_1", clock.now()), capacity=2)
    store.append_pending(_alert("member_2", clock.now()), capacity=2)

    assert store.count_pending("member_1") == 2
    assert store.count_pending("member_2") == 1


def test_concurrent_appends_are_all_observed(session_factory, clock):
    store = AlertStore(session_factory=session_factory)
    alerts = [_alert("member_1", clock.now()) for _ in range(8)]
    errors = []

    def _append(alert):
        try:
            store.append_pending(alert, capacity=100)
        except Exception as exc:  # pragma: no cover - surfaced through the assertion below
            errors.append(exc)

    threads = [threading.Thread(target=_append, args=(alert,)) for alert in alerts]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert errors == []
    assert {item.alert_id for item in store.list_pending("member_1")} == {item.alert_id for item in alerts}


def test_acknowledge_moves_alert_to_history(session_factory, clock):
    store = AlertStore(session_factory=session_factory)
    alert = _alert("member_1", clock.now())
    store.append_pending(alert, capacity=100)

    acked = store.acknowledge(
        "member_1", alert.alert_id, action="blocked", acknowledged_at=clock.now(), history_capacity=500
    )

    assert acked.acknowledged is True
    assert acked.acknowledged_at == clock.now()
    assert store.list_pending("member_1") == []
    history = store.list_history("member_1")
    assert len(history) == 1
    assert history[0].alert_id == alert.alert_id
    assert history[0].action == "blocked"


def test_acknowledge_unknown_alert_leaves_state_untouched(session_factory, clock):
    store = AlertStore(session_factory=session_factory)
    alert = _alert("member_1", clock.now())
    store.append_pending(alert, capacity=100)

    with pytest.raises(NotFoundError):
        store.acknowledge("member_1", "missing", action="dismissed", acknowledged_at=clock.now(), history_capacity=5)
    with pytest.raises(NotFoundError):
        store.acknowledge("member_2", alert.alert_id, action="dismissed", acknowledged_at=clock.now(), history_capacity=5)

    assert store.count_pending("member_1") == 1
    assert store.list_history("member_1") == []
    assert store.list_history("member_2") == []


def test_history_is_capped_oldest_first(session_factory, clock):
    store = AlertStore(session_factory=session_factory)
    acked_ids = []
    for index in range(5):
        alert = _alert("member_1", clock.now())
        store.append_pending(alert, capacity=100)
        store.acknowledge(
            "member_1",
            alert.alert_id,
            action="dismissed",
            acknowledged_at=clock.now() + timedelta(minutes=index),
            history_capacity=3,
        )
        acked_ids.append(alert.alert_id)

    history = store.list_history("member_1")
    assert [entry.alert_id for entry in history] == acked_ids[2:]
    assert [entry.alert_id for entry in store.list_history("member_1", limit=2)] == acked_ids[3:]
