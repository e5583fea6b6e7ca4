"""Shared fixtures for crowdshield unit tests."""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
import sqlalchemy as sa
from sqlalchemy.orm import sessionmaker

from crowdshield.settings import get_settings
from crowdshield.store import sql as sql_schema
from crowdshield.util.clock import FixedClock

START = datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def session_factory(tmp_path):
    engine = sa.create_engine(
        f"sqlite:///{tmp_path / 'crowdshield.db'}",
        future=True,
        connect_args={"check_same_thread": False, "timeout": 30},
    )
    sql_schema.METADATA.create_all(engine)
    try:
        yield sessionmaker(bind=engine, future=True)
    finally:
        engine.dispose()


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def settings():
    return get_settings()


@pytest.fixture
def make_settings(settings):
    """Return a factory producing copies of ``settings`` with section fields replaced.

    ``make_settings(alerts={"pending_capacity": 3})``
    """

    def _make(**sections):
        updates = {name: getattr(settings, name).model_copy(update=values) for name, values in sections.items()}
        return settings.model_copy(update=updates)

    return _make
