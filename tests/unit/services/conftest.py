"""Fixtures wiring the full service graph onto an isolated SQLite database."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from crowdshield.services.channels import InMemoryRealtimeChannel, LogEmailChannel
from crowdshield.services.factories import build_services
from crowdshield.store.otp_store import InMemoryOTPStore
from crowdshield.store.schema import FraudReport


@pytest.fixture
def realtime():
    return InMemoryRealtimeChannel()


@pytest.fixture
def email():
    return LogEmailChannel()


@pytest.fixture
def services(session_factory, clock, settings, realtime, email):
    container = build_services(
        settings=settings,
        clock=clock,
        session_factory=session_factory,
        realtime=realtime,
        email=email,
        otp_store=InMemoryOTPStore(),
    )
    try:
        yield container
    finally:
        container.close()


@pytest.fixture
def seed_reports(services, clock):
    """Insert ``count`` active reports of ``category`` against ``entity`` spread over recent days."""

    def _seed(entity, count, category="Spam"):
        for index in range(count):
            services.scoring.store.insert_report(
                FraudReport(
                    report_id=str(uuid.uuid4()),
                    target_entity=entity,
                    entity_kind="phone",
                    category=category,
                    description="Automated fraud report for tests",
                    timestamp=clock.now() - timedelta(hours=index + 1),
                )
            )

    return _seed
