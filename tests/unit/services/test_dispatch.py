"""Unit tests for the notification dispatcher."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from crowdshield.errors import PartialDispatchFailure
from crowdshield.services.channels import InMemoryRealtimeChannel, LogEmailChannel, SendResult
from crowdshield.services.dispatch import AlertDispatcher, DispatchBatch


@pytest.fixture
def realtime():
    return InMemoryRealtimeChannel()


@pytest.fixture
def email():
    return LogEmailChannel()


@pytest.fixture
def dispatcher(realtime, email):
    instance = AlertDispatcher(realtime=realtime, secondary=email, max_workers=2)
    try:
        yield instance
    finally:
        instance.shutdown()


def test_realtime_push_respects_connection_state(dispatcher, realtime):
    realtime.connect("member_1")

    online = dispatcher.submit_realtime("member_1", {"alert_id": "a1"}).result(timeout=5)
    offline = dispatcher.submit_realtime("member_2", {"alert_id": "a2"}).result(timeout=5)

    assert online.status == "delivered"
    assert offline.status == "user_offline"
    assert realtime.delivered("member_1") == [{"alert_id": "a1"}]
    assert realtime.delivered("member_2") == []


def test_realtime_transport_error_is_captured(email):
    broken = MagicMock()
    broken.is_connected.return_value = True
    broken.send.side_effect = ConnectionError("socket closed")
    dispatcher = AlertDispatcher(realtime=broken, secondary=email, max_workers=1)
    try:
        outcome = dispatcher.submit_realtime("member_1", {}).result(timeout=5)
    finally:
        dispatcher.shutdown()

    assert outcome.status == "user_offline"
    assert outcome.error == "socket closed"


def test_secondary_outcomes(dispatcher, email):
    sent = dispatcher.submit_secondary("member_1", "member1@example.com", {"subject": "hi"}).result(timeout=5)
    missing = dispatcher.submit_secondary("member_2", None, {"subject": "hi"}).result(timeout=5)

    assert sent.status == "sent"
    assert sent.exception is None
    assert missing.failed
    assert missing.error == "no contact address registered"
    assert email.outbox == [{"to": "member1@example.com", "subject": "hi"}]


def test_secondary_exception_becomes_failed_outcome(realtime):
    secondary = MagicMock()
    secondary.send.side_effect = RuntimeError("provider down")
    dispatcher = AlertDispatcher(realtime=realtime, secondary=secondary, max_workers=1)
    try:
        outcome = dispatcher.submit_secondary("member_1", "m@example.com", {}).result(timeout=5)
    finally:
        dispatcher.shutdown()

    assert outcome.failed
    assert outcome.error == "provider down"
    assert isinstance(outcome.exception, PartialDispatchFailure)
    assert outcome.exception.user_id == "member_1"
    assert outcome.exception.error == "provider down"


def test_submission_does_not_wait_for_delivery(realtime):
    release = threading.Event()

    class _SlowEmail:
        def send(self, address, payload):
            release.wait(timeout=5)
            return SendResult(success=False, error="timeout")

    dispatcher = AlertDispatcher(realtime=realtime, secondary=_SlowEmail(), max_workers=1)
    try:
        batch = DispatchBatch()
        batch.add(dispatcher.submit_secondary("member_1", "m@example.com", {}))

        assert batch.wait(timeout=0.05) == []
        release.set()
        assert batch.failure_count() == 1
        assert len(batch) == 1
    finally:
        release.set()
        dispatcher.shutdown()


def test_failure_count_does_not_block_on_hung_channel(realtime):
    release = threading.Event()

    class _HungEmail:
        def send(self, address, payload):
            release.wait(timeout=5)
            return SendResult(success=False, error="timeout")

    dispatcher = AlertDispatcher(realtime=realtime, secondary=_HungEmail(), max_workers=1)
    try:
        batch = DispatchBatch([dispatcher.submit_secondary("member_1", "m@example.com", {})])

        assert batch.failure_count(timeout=0.05) == 0
        release.set()
        assert batch.failure_count(timeout=5) == 1
    finally:
        release.set()
        dispatcher.shutdown()


def test_dispatch_metrics_are_recorded(realtime, email):
    observability = MagicMock()
    dispatcher = AlertDispatcher(realtime=realtime, secondary=email, max_workers=1, observability=observability)
    try:
        dispatcher.submit_secondary("member_1", None, {}).result(timeout=5)
    finally:
        dispatcher.shutdown()

    observability.increment.assert_called_once_with(
        "alerts.dispatch", tags={"kind": "secondary", "status": "failed"}
    )
    observability.emit_event.assert_called_once()


def test_shutdown_is_idempotent(realtime, email):
    dispatcher = AlertDispatcher(realtime=realtime, secondary=email)
    dispatcher.shutdown()
    dispatcher.shutdown()
