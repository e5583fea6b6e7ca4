"""Fixtures for exercising the API against an isolated service graph."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from crowdshield.api.app import REQUEST_LOG, create_app
from crowdshield.services.channels import InMemoryRealtimeChannel, LogEmailChannel
from crowdshield.services.factories import build_services, get_services
from crowdshield.store.otp_store import InMemoryOTPStore


@pytest.fixture(autouse=True)
def clear_request_log():
    REQUEST_LOG.clear()
    yield
    REQUEST_LOG.clear()


@pytest.fixture
def services(session_factory, clock, settings):
    container = build_services(
        settings=settings,
        clock=clock,
        session_factory=session_factory,
        realtime=InMemoryRealtimeChannel(),
        email=LogEmailChannel(),
        otp_store=InMemoryOTPStore(),
    )
    try:
        yield container
    finally:
        container.close()


@pytest.fixture
def client(services):
    app = create_app()
    app.dependency_overrides[get_services] = lambda: services
    return TestClient(app)
