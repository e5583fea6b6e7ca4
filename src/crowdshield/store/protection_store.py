"""Persistence helpers for per-channel protection registrations."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Set

import sqlalchemy as sa

from crowdshield.store import sql as sql_schema
from crowdshield.store.base import SqlStore
from crowdshield.store.schema import AlertMode, Channel, ProtectionSetting
from crowdshield.util.clock import ensure_utc, utcnow

LOGGER = logging.getLogger(__name__)


def _row_to_setting(row: Any) -> ProtectionSetting:
    return ProtectionSetting(
        channel=Channel(row.channel),
        enabled=bool(row.enabled),
        registered_identifier=row.registered_identifier,
        alert_mode=AlertMode(row.alert_mode),
        activated_at=ensure_utc(row.activated_at) if row.activated_at else None,
        verified_at=ensure_utc(row.verified_at) if row.verified_at else None,
    )


class ProtectionStore(SqlStore):
    """One row per (user, channel) in ``protection_settings`` plus contact addresses."""

    def upsert_setting(self, user_id: str, setting: ProtectionSetting) -> None:
        """Insert or replace the user's setting for ``setting.channel``.

        ``verified_at`` is cleared whenever the registered identifier changes.
        """

        table = sql_schema.protection_settings
        timestamp = utcnow()
        values = {
            "enabled": setting.enabled,
            "registered_identifier": setting.registered_identifier,
            "alert_mode": setting.alert_mode.value,
            "activated_at": ensure_utc(setting.activated_at) if setting.activated_at else None,
            "updated_at": timestamp,
        }
        with self._session_scope() as session:
            existing = session.execute(
                sa.select(table.c.registered_identifier, table.c.verified_at).where(
                    table.c.user_id == user_id,
                    table.c.channel == setting.channel.value,
                )
            ).first()
            if existing:
                if existing.registered_identifier != setting.registered_identifier:
                    values["verified_at"] = None
                session.execute(
                    sa.update(table)
                    .where(table.c.user_id == user_id, table.c.channel == setting.channel.value)
                    .values(**values)
                )
                LOGGER.info("Updated protection user_id=%s channel=%s", user_id, setting.channel.value)
                return

            session.execute(
                sa.insert(table).values(
                    user_id=user_id,
                    channel=setting.channel.value,
                    verified_at=None,
                    **values,
                )
            )
            LOGGER.info("Registered protection user_id=%s channel=%s", user_id, setting.channel.value)

    def get_setting(self, user_id: str, channel: Channel) -> ProtectionSetting | None:
        table = sql_schema.protection_settings
        with self._session_scope() as session:
            row = session.execute(
                sa.select(table).where(table.c.user_id == user_id, table.c.channel == channel.value)
            ).first()
        return _row_to_setting(row) if row else None

    def list_settings(self, user_id: str) -> Dict[Channel, ProtectionSetting]:
        table = sql_schema.protection_settings
        with self._session_scope() as session:
            rows = session.execute(sa.select(table).where(table.c.user_id == user_id)).all()
        return {Channel(row.channel): _row_to_setting(row) for row in rows}

    def set_enabled(self, user_id: str, channel: Channel, enabled: bool) -> bool:
        table = sql_schema.protection_settings
        with self._session_scope() as session:
            result = session.execute(
                sa.update(table)
                .where(table.c.user_id == user_id, table.c.channel == channel.value)
                .values(enabled=enabled, updated_at=utcnow())
            )
            return result.rowcount == 1

    def mark_verified(self, user_id: str, channel: Channel, *, verified_at: datetime) -> bool:
        table = sql_schema.protection_settings
        with self._session_scope() as session:
            result = session.execute(
                sa.update(table)
                .where(table.c.user_id == user_id, table.c.channel == channel.value)
                .values(verified_at=ensure_utc(verified_at), updated_at=utcnow())
            )
            return result.rowcount == 1

    def find_user_ids(self, channel: Channel, identifier: str) -> Set[str]:
        """Return users with an enabled setting whose identifier equals ``identifier`` exactly."""

        table = sql_schema.protection_settings
        with self._session_scope() as session:
            rows = session.execute(
                sa.select(table.c.user_id).where(
                    table.c.channel == channel.value,
                    table.c.registered_identifier == identifier,
                    table.c.enabled.is_(True),
                )
            ).all()
        return {row.user_id for row in rows}

    def set_contact_email(self, user_id: str, email: str) -> None:
        table = sql_schema.user_contacts
        with self._session_scope() as session:
            updated = session.execute(
                sa.update(table).where(table.c.user_id == user_id).values(email=email, updated_at=utcnow())
            )
            if updated.rowcount == 0:
                session.execute(sa.insert(table).values(user_id=user_id, email=email, updated_at=utcnow()))

    def get_contact_email(self, user_id: str) -> str | None:
        table = sql_schema.user_contacts
        with self._session_scope() as session:
            row = session.execute(sa.select(table.c.email).where(table.c.user_id == user_id)).first()
        return row.email if row else None


__all__ = ["ProtectionStore"]
