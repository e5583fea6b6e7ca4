"""SQLAlchemy metadata and engine helpers for the crowdshield tables."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import sqlalchemy as sa
from sqlalchemy import Engine
from sqlalchemy.dialects import postgresql
from sqlalchemy.engine import URL
from sqlalchemy.orm import sessionmaker

from crowdshield.settings import Settings, get_settings

JSON_TYPE = sa.JSON().with_variant(postgresql.JSONB(astext_type=sa.Text()), "postgresql")
TIMESTAMP = sa.DateTime(timezone=True)
UUID_TYPE = sa.String(length=64)

METADATA = sa.MetaData()

fraud_reports = sa.Table(
    "fraud_reports",
    METADATA,
    sa.Column("report_id", UUID_TYPE, primary_key=True),
    sa.Column("reporter_id", sa.Text(), nullable=True),
    sa.Column("target_entity", sa.Text(), nullable=False),
    sa.Column("entity_kind", sa.Text(), nullable=False),
    sa.Column("category", sa.Text(), nullable=False),
    sa.Column("description", sa.Text(), nullable=False),
    sa.Column("evidence", sa.Text(), nullable=True),
    sa.Column("amount_lost", sa.Numeric(14, 2), nullable=True),
    sa.Column("incident_date", TIMESTAMP, nullable=True),
    sa.Column("timestamp", TIMESTAMP, nullable=False),
    sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
    sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
)
sa.Index(
    "idx_fraud_reports_target_active_ts",
    fraud_reports.c.target_entity,
    fraud_reports.c.is_active,
    fraud_reports.c.timestamp,
)
sa.Index("idx_fraud_reports_reporter", fraud_reports.c.reporter_id, fraud_reports.c.timestamp)

protection_settings = sa.Table(
    "protection_settings",
    METADATA,
    sa.Column("user_id", sa.Text(), nullable=False),
    sa.Column("channel", sa.Text(), nullable=False),
    sa.Column("enabled", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.Column("registered_identifier", sa.Text(), nullable=False),
    sa.Column("alert_mode", sa.Text(), nullable=False, server_default="popup"),
    sa.Column("activated_at", TIMESTAMP, nullable=True),
    sa.Column("verified_at", TIMESTAMP, nullable=True),
    sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
    sa.PrimaryKeyConstraint("user_id", "channel", name="pk_protection_settings"),
)
sa.Index(
    "idx_protection_channel_identifier",
    protection_settings.c.channel,
    protection_settings.c.registered_identifier,
    protection_settings.c.enabled,
)

user_contacts = sa.Table(
    "user_contacts",
    METADATA,
    sa.Column("user_id", sa.Text(), primary_key=True),
    sa.Column("email", sa.Text(), nullable=False),
    sa.Column("updated_at", TIMESTAMP, nullable=False, server_default=sa.text("CURRENT_TIMESTAMP")),
)

# ``seq`` is the insertion order used for FIFO eviction; ``alert_id`` is the
# stable identifier handed to clients.
pending_alerts = sa.Table(
    "pending_alerts",
    METADATA,
    sa.Column("seq", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("alert_id", UUID_TYPE, nullable=False, unique=True),
    sa.Column("user_id", sa.Text(), nullable=False),
    sa.Column("channel", sa.Text(), nullable=False),
    sa.Column("from_entity", sa.Text(), nullable=False),
    sa.Column("risk_level", sa.Text(), nullable=False),
    sa.Column("risk_score", sa.Integer(), nullable=False),
    sa.Column("message", sa.Text(), nullable=False),
    sa.Column("category", sa.Text(), nullable=True),
    sa.Column("created_at", TIMESTAMP, nullable=False),
)
sa.Index("idx_pending_alerts_user_seq", pending_alerts.c.user_id, pending_alerts.c.seq)

alert_history = sa.Table(
    "alert_history",
    METADATA,
    sa.Column("seq", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("entry_id", UUID_TYPE, nullable=False, unique=True),
    sa.Column("user_id", sa.Text(), nullable=False),
    sa.Column("alert_id", UUID_TYPE, nullable=False),
    sa.Column("channel", sa.Text(), nullable=False),
    sa.Column("from_entity", sa.Text(), nullable=False),
    sa.Column("risk_level", sa.Text(), nullable=False),
    sa.Column("risk_score", sa.Integer(), nullable=False),
    sa.Column("action", sa.Text(), nullable=False),
    sa.Column("timestamp", TIMESTAMP, nullable=False),
)
sa.Index("idx_alert_history_user_seq", alert_history.c.user_id, alert_history.c.seq)

otp_records = sa.Table(
    "otp_records",
    METADATA,
    sa.Column("subject_key", sa.Text(), nullable=False),
    sa.Column("purpose", sa.Text(), nullable=False),
    sa.Column("record_id", UUID_TYPE, nullable=False),
    sa.Column("code", sa.Text(), nullable=False),
    sa.Column("issued_at", TIMESTAMP, nullable=False),
    sa.Column("expires_at", TIMESTAMP, nullable=False),
    sa.Column("attempts_remaining", sa.Integer(), nullable=False),
    sa.Column("verified", sa.Boolean(), nullable=False, server_default=sa.text("false")),
    sa.PrimaryKeyConstraint("subject_key", "purpose", name="pk_otp_records"),
)
sa.Index("idx_otp_records_expires_at", otp_records.c.expires_at)

entity_lists = sa.Table(
    "entity_lists",
    METADATA,
    sa.Column("seq", sa.Integer(), primary_key=True, autoincrement=True),
    sa.Column("user_id", sa.Text(), nullable=False),
    sa.Column("list_kind", sa.Text(), nullable=False),
    sa.Column("entity", sa.Text(), nullable=False),
    sa.Column("entity_kind", sa.Text(), nullable=False),
    sa.Column("added_at", TIMESTAMP, nullable=False),
    sa.UniqueConstraint("user_id", "list_kind", "entity", name="uq_entity_lists_user_kind_entity"),
)
sa.Index("idx_entity_lists_user_kind_seq", entity_lists.c.user_id, entity_lists.c.list_kind, entity_lists.c.seq)

activity_log = sa.Table(
    "activity_log",
    METADATA,
    sa.Column("activity_id", UUID_TYPE, primary_key=True),
    sa.Column("user_id", sa.Text(), nullable=True),
    sa.Column("action_type", sa.Text(), nullable=False),
    sa.Column("target_entity", sa.Text(), nullable=True),
    sa.Column("entity_kind", sa.Text(), nullable=True),
    sa.Column("result", sa.Text(), nullable=False, server_default="success"),
    sa.Column("risk_level", sa.Text(), nullable=True),
    sa.Column("risk_score", sa.Integer(), nullable=True),
    sa.Column("details", JSON_TYPE, nullable=True),
    sa.Column("created_at", TIMESTAMP, nullable=False),
)
sa.Index("idx_activity_log_user_created", activity_log.c.user_id, activity_log.c.created_at)


def _resolve_database_url(settings: Settings | None = None) -> str:
    """Return the SQLAlchemy URL considering overrides and configured backend."""

    url_override = os.getenv("CROWDSHIELD_DATABASE_URL")
    if url_override:
        return url_override

    resolved = settings or get_settings()
    if resolved.storage.database_url:
        return resolved.storage.database_url

    backend = resolved.storage.structured_backend
    if backend == "sqlite":
        sqlite_path = Path(resolved.storage.sqlite_path)
        sqlite_path.parent.mkdir(parents=True, exist_ok=True)
        return URL.create("sqlite", database=sqlite_path.as_posix()).render_as_string(hide_password=False)

    raise NotImplementedError(f"Backend '{backend}' requires storage.database_url to be set")


def build_engine(*, echo: bool = False, settings: Settings | None = None, url: str | None = None) -> Engine:
    """Instantiate a SQLAlchemy engine aligned with project settings."""

    resolved_url = url or _resolve_database_url(settings)
    connect_args: dict[str, Any] = {}
    if resolved_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = 30
    return sa.create_engine(resolved_url, echo=echo, future=True, pool_pre_ping=True, connect_args=connect_args)


def init_schema(engine: Engine) -> None:
    """Create every crowdshield table that does not exist yet."""

    METADATA.create_all(engine)


def session_factory(*, settings: Settings | None = None, engine: Engine | None = None) -> sessionmaker:
    """Return a configured sessionmaker bound to the active engine."""

    bound = engine or build_engine(settings=settings)
    init_schema(bound)
    return sessionmaker(bind=bound, autoflush=False, autocommit=False, future=True)
