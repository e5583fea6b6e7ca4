"""Append-only audit trail of user-visible actions."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List

import sqlalchemy as sa

from crowdshield.store import sql as sql_schema
from crowdshield.store.base import SqlStore
from crowdshield.store.schema import ActivityEntry
from crowdshield.util.clock import ensure_utc, utcnow

LOGGER = logging.getLogger(__name__)


class ActivityLogStore(SqlStore):
    """Writes and reads rows of the ``activity_log`` table."""

    def log(
        self,
        action_type: str,
        *,
        user_id: str | None = None,
        target_entity: str | None = None,
        entity_kind: str | None = None,
        result: str = "success",
        risk_level: str | None = None,
        risk_score: int | None = None,
        details: Dict[str, Any] | None = None,
        created_at: datetime | None = None,
    ) -> str:
        activity_id = str(uuid.uuid4())
        with self._session_scope() as session:
            session.execute(
                sa.insert(sql_schema.activity_log).values(
                    activity_id=activity_id,
                    user_id=user_id,
                    action_type=action_type,
                    target_entity=target_entity,
                    entity_kind=entity_kind,
                    result=result,
                    risk_level=risk_level,
                    risk_score=risk_score,
                    details=details or {},
                    created_at=ensure_utc(created_at) if created_at else utcnow(),
                )
            )
        LOGGER.debug("Logged activity action=%s user_id=%s", action_type, user_id)
        return activity_id

    def list_user_activity(self, user_id: str, *, limit: int = 50) -> List[ActivityEntry]:
        """Return the user's most recent activity, newest first."""

        table = sql_schema.activity_log
        with self._session_scope() as session:
            rows = session.execute(
                sa.select(table)
                .where(table.c.user_id == user_id)
                .order_by(table.c.created_at.desc())
                .limit(max(limit, 1))
            ).all()
        return [
            ActivityEntry(
                activity_id=row.activity_id,
                action_type=row.action_type,
                created_at=ensure_utc(row.created_at),
                user_id=row.user_id,
                target_entity=row.target_entity,
                entity_kind=row.entity_kind,
                result=row.result,
                risk_level=row.risk_level,
                risk_score=row.risk_score,
                details=dict(row.details or {}),
            )
            for row in rows
        ]


__all__ = ["ActivityLogStore"]
