"""Contract tests shared by the in-memory and SQL OTP stores."""

from __future__ import annotations

import uuid
from dataclasses import replace
from datetime import timedelta

import pytest

from crowdshield.store.otp_store import InMemoryOTPStore, SqlOTPStore
from crowdshield.store.schema import OTPRecord


@pytest.fixture(params=["memory", "sql"])
def store(request, session_factory):
    if request.param == "memory":
        return InMemoryOTPStore()
    return SqlOTPStore(session_factory=session_factory)


def _record(clock, *, subject="member_1:call", purpose="channel_verification", ttl_minutes=15):
    now = clock.now()
    return OTPRecord(
        record_id=str(uuid.uuid4()),
        subject_key=subject,
        purpose=purpose,
        code="123456",
        issued_at=now,
        expires_at=now + timedelta(minutes=ttl_minutes),
        attempts_remaining=5,
    )


def test_insert_requires_absent_record(store, clock):
    first = _record(clock)
    second = _record(clock)

    assert store.compare_and_swap(first.subject_key, first.purpose, expected_record_id=None, record=first)
    assert not store.compare_and_swap(second.subject_key, second.purpose, expected_record_id=None, record=second)

    loaded = store.get(first.subject_key, first.purpose)
    assert loaded.record_id == first.record_id
    assert loaded.expires_at == first.expires_at


def test_update_and_delete_require_matching_version(store, clock):
    record = _record(clock)
    store.compare_and_swap(record.subject_key, record.purpose, expected_record_id=None, record=record)

    updated = replace(record, record_id=str(uuid.uuid4()), attempts_remaining=4)
    assert not store.compare_and_swap(record.subject_key, record.purpose, expected_record_id="stale", record=updated)
    assert store.compare_and_swap(
        record.subject_key, record.purpose, expected_record_id=record.record_id, record=updated
    )
    assert store.get(record.subject_key, record.purpose).attempts_remaining == 4

    assert not store.compare_and_swap(
        record.subject_key, record.purpose, expected_record_id=record.record_id, record=None
    )
    assert store.compare_and_swap(record.subject_key, record.purpose, expected_record_id=updated.record_id, record=None)
    assert store.get(record.subject_key, record.purpose) is None


def test_keys_are_isolated_by_purpose(store, clock):
    call = _record(clock)
    other = _record(clock, purpose="password_reset")
    store.compare_and_swap(call.subject_key, call.purpose, expected_record_id=None, record=call)
    store.compare_and_swap(other.subject_key, other.purpose, expected_record_id=None, record=other)

    assert store.get(call.subject_key, "channel_verification").record_id == call.record_id
    assert store.get(call.subject_key, "password_reset").record_id == other.record_id


def test_purge_expired_removes_only_dead_records(store, clock):
    short = _record(clock, subject="member_1:sms", ttl_minutes=1)
    long = _record(clock, subject="member_1:email", ttl_minutes=30)
    for item in (short, long):
        store.compare_and_swap(item.subject_key, item.purpose, expected_record_id=None, record=item)

    clock.advance(minutes=5)

    assert store.purge_expired(clock.now()) == 1
    assert store.get(short.subject_key, short.purpose) is None
    assert store.get(long.subject_key, long.purpose) is not None
