"""Bounded per-user alert inbox and acknowledgement history."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, List

import sqlalchemy as sa
from sqlalchemy.orm import Session

from crowdshield.errors import NotFoundError
from crowdshield.store import sql as sql_schema
from crowdshield.store.base import SqlStore
from crowdshield.store.schema import AlertHistoryEntry, PendingAlert
from crowdshield.util.clock import ensure_utc

LOGGER = logging.getLogger(__name__)


def _row_to_pending(row: Any) -> PendingAlert:
    return PendingAlert(
        alert_id=row.alert_id,
        user_id=row.user_id,
        channel=row.channel,
        from_entity=row.from_entity,
        risk_level=row.risk_level,
        risk_score=int(row.risk_score),
        message=row.message,
        category=row.category,
        created_at=ensure_utc(row.created_at),
    )


def _row_to_history(row: Any) -> AlertHistoryEntry:
    return AlertHistoryEntry(
        entry_id=row.entry_id,
        user_id=row.user_id,
        alert_id=row.alert_id,
        channel=row.channel,
        from_entity=row.from_entity,
        risk_level=row.risk_level,
        risk_score=int(row.risk_score),
        action=row.action,
        timestamp=ensure_utc(row.timestamp),
    )


def evict_overflow(session: Session, table: sa.Table, capacity: int, *criteria: Any) -> int:
    """Delete rows matching ``criteria`` that fall outside the newest ``capacity`` by ``seq``.

    The keep-set is computed from the rows visible inside the caller's
    transaction, so each concurrent append trims against what actually exists.
    """

    keep = (
        sa.select(table.c.seq)
        .where(*criteria)
        .order_by(table.c.seq.desc())
        .limit(max(capacity, 0))
    )
    result = session.execute(sa.delete(table).where(*criteria, table.c.seq.not_in(keep)))
    return result.rowcount or 0


class AlertStore(SqlStore):
    """Pending alerts capped per user with FIFO eviction, plus a capped history log."""

    def append_pending(self, alert: PendingAlert, *, capacity: int) -> int:
        """Insert ``alert`` and evict the user's oldest entries beyond ``capacity``.

        Returns the number of evicted alerts. Insert and eviction share one
        transaction.
        """

        table = sql_schema.pending_alerts
        with self._session_scope() as session:
            # Row locks serialize appends per user on backends that support them.
            session.execute(sa.select(table.c.seq).where(table.c.user_id == alert.user_id).with_for_update()).all()
            session.execute(
                sa.insert(table).values(
                    alert_id=alert.alert_id,
                    user_id=alert.user_id,
                    channel=alert.channel,
                    from_entity=alert.from_entity,
                    risk_level=alert.risk_level,
                    risk_score=alert.risk_score,
                    message=alert.message,
                    category=alert.category,
                    created_at=ensure_utc(alert.created_at),
                )
            )
            evicted = evict_overflow(session, table, capacity, table.c.user_id == alert.user_id)
        if evicted:
            LOGGER.info("Evicted %s pending alert(s) for user_id=%s", evicted, alert.user_id)
        return evicted

    def list_pending(self, user_id: str) -> List[PendingAlert]:
        table = sql_schema.pending_alerts
        with self._session_scope() as session:
            rows = session.execute(sa.select(table).where(table.c.user_id == user_id).order_by(table.c.seq.asc())).all()
        return [_row_to_pending(row) for row in rows]

    def count_pending(self, user_id: str) -> int:
        table = sql_schema.pending_alerts
        with self._session_scope() as session:
            return int(
                session.execute(
                    sa.select(sa.func.count()).select_from(table).where(table.c.user_id == user_id)
                ).scalar_one()
            )

    def acknowledge(
        self,
        user_id: str,
        alert_id: str,
        *,
        action: str,
        acknowledged_at: datetime,
        history_capacity: int,
    ) -> PendingAlert:
        """Move a pending alert into history in a single transaction.

        Raises:
            NotFoundError: when the user has no pending alert with ``alert_id``.
        """

        pending = sql_schema.pending_alerts
        history = sql_schema.alert_history
        stamp = ensure_utc(acknowledged_at)
        with self._session_scope() as session:
            row = session.execute(
                sa.select(pending).where(pending.c.user_id == user_id, pending.c.alert_id == alert_id).with_for_update()
            ).first()
            if row is None:
                raise NotFoundError(f"Alert {alert_id} not found for user {user_id}")

            alert = _row_to_pending(row)
            session.execute(
                sa.insert(history).values(
                    entry_id=str(uuid.uuid4()),
                    user_id=user_id,
                    alert_id=alert.alert_id,
                    channel=alert.channel,
                    from_entity=alert.from_entity,
                    risk_level=alert.risk_level,
                    risk_score=alert.risk_score,
                    action=action,
                    timestamp=stamp,
                )
            )
            deleted = session.execute(
                sa.delete(pending).where(pending.c.user_id == user_id, pending.c.alert_id == alert_id)
            )
            if deleted.rowcount != 1:
                # A concurrent acknowledgement won; roll back the history insert.
                raise NotFoundError(f"Alert {alert_id} not found for user {user_id}")
            evict_overflow(session, history, history_capacity, history.c.user_id == user_id)

        alert.acknowledged = True
        alert.acknowledged_at = stamp
        LOGGER.info("Acknowledged alert_id=%s user_id=%s action=%s", alert_id, user_id, action)
        return alert

    def list_history(self, user_id: str, *, limit: int | None = None) -> List[AlertHistoryEntry]:
        """Return history entries oldest first; ``limit`` keeps only the most recent ones."""

        table = sql_schema.alert_history
        stmt = sa.select(table).where(table.c.user_id == user_id).order_by(table.c.seq.desc())
        if limit is not None:
            stmt = stmt.limit(max(limit, 0))
        with self._session_scope() as session:
            rows = session.execute(stmt).all()
        return [_row_to_history(row) for row in reversed(rows)]


__all__ = ["AlertStore", "evict_overflow"]
