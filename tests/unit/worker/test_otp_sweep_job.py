"""Unit tests for the expired OTP sweep job."""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta
from unittest.mock import MagicMock

from crowdshield.settings import reload_settings
from crowdshield.store.otp_store import InMemoryOTPStore, SqlOTPStore
from crowdshield.store.schema import OTPRecord
from crowdshield.worker.jobs import otp_sweep as sweep_job


def _seed(store, clock, subject, ttl_minutes):
    now = clock.now()
    record = OTPRecord(
        record_id=str(uuid.uuid4()),
        subject_key=subject,
        purpose="channel_verification",
        code="654321",
        issued_at=now,
        expires_at=now + timedelta(minutes=ttl_minutes),
        attempts_remaining=5,
    )
    store.compare_and_swap(subject, record.purpose, expected_record_id=None, record=record)


def test_run_sweep_purges_expired_records(session_factory, clock):
    store = SqlOTPStore(session_factory=session_factory)
    _seed(store, clock, "member_1:sms", 1)
    _seed(store, clock, "member_2:sms", 60)
    clock.advance(minutes=10)

    assert sweep_job.run_sweep(store, clock=clock) == 1
    assert store.get("member_2:sms", "channel_verification") is not None


def test_run_sweep_dry_run_keeps_records(clock):
    store = InMemoryOTPStore()
    _seed(store, clock, "member_1:sms", 1)
    clock.advance(minutes=10)

    assert sweep_job.run_sweep(store, clock=clock, dry_run=True) == 0
    assert len(store) == 1


def test_main_skips_in_memory_backend(monkeypatch):
    monkeypatch.setattr(sweep_job, "build_otp_store", lambda: InMemoryOTPStore())
    run_sweep = MagicMock()
    monkeypatch.setattr(sweep_job, "run_sweep", run_sweep)

    assert sweep_job.main() == 0
    run_sweep.assert_not_called()


def test_main_runs_sweep_with_dry_run_flag(monkeypatch, session_factory):
    store = SqlOTPStore(session_factory=session_factory)
    monkeypatch.setattr(sweep_job, "build_otp_store", lambda: store)
    monkeypatch.setenv("CROWDSHIELD_OTP_SWEEP__DRY_RUN", "true")
    run_sweep = MagicMock(return_value=0)
    monkeypatch.setattr(sweep_job, "run_sweep", run_sweep)

    assert sweep_job.main() == 0
    run_sweep.assert_called_once_with(store, dry_run=True)


def test_main_reports_failures(monkeypatch, session_factory):
    store = SqlOTPStore(session_factory=session_factory)
    monkeypatch.setattr(sweep_job, "build_otp_store", lambda: store)
    monkeypatch.setattr(sweep_job, "run_sweep", MagicMock(side_effect=RuntimeError("db down")))

    assert sweep_job.main() == 1


def test_configure_logging_uses_runtime_log_level(monkeypatch):
    monkeypatch.setenv("CROWDSHIELD_RUNTIME__LOG_LEVEL", "debug")
    basic_config = MagicMock()
    monkeypatch.setattr(sweep_job.logging, "basicConfig", basic_config)
    reload_settings()
    try:
        sweep_job._configure_logging()
    finally:
        monkeypatch.delenv("CROWDSHIELD_RUNTIME__LOG_LEVEL")
        reload_settings()

    assert basic_config.call_args.kwargs["level"] == logging.DEBUG
