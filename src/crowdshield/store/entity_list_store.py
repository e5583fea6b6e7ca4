"""Per-user blocked and safe identifier lists."""

from __future__ import annotations

import logging
from typing import Any, List

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from crowdshield.errors import ValidationError
from crowdshield.store import sql as sql_schema
from crowdshield.store.alert_store import evict_overflow
from crowdshield.store.base import SqlStore
from crowdshield.store.schema import EntityListEntry, EntityListKind
from crowdshield.util.clock import ensure_utc

LOGGER = logging.getLogger(__name__)


def _row_to_entry(row: Any) -> EntityListEntry:
    return EntityListEntry(
        entity=row.entity,
        entity_kind=row.entity_kind,
        list_kind=row.list_kind,
        added_at=ensure_utc(row.added_at),
    )


class EntityListStore(SqlStore):
    """Capped lists keyed by (user, list kind); an entity lives on at most one list."""

    def add(self, user_id: str, entry: EntityListEntry, *, capacity: int) -> None:
        """Add ``entry`` to its list, dropping the entity from the opposite list.

        Raises:
            ValidationError: when the entity is already on the requested list.
        """

        table = sql_schema.entity_lists
        opposite = (
            EntityListKind.SAFE.value if entry.list_kind == EntityListKind.BLOCKED.value else EntityListKind.BLOCKED.value
        )
        try:
            with self._session_scope() as session:
                session.execute(
                    sa.delete(table).where(
                        table.c.user_id == user_id,
                        table.c.list_kind == opposite,
                        table.c.entity == entry.entity,
                    )
                )
                session.execute(
                    sa.insert(table).values(
                        user_id=user_id,
                        list_kind=entry.list_kind,
                        entity=entry.entity,
                        entity_kind=entry.entity_kind,
                        added_at=ensure_utc(entry.added_at),
                    )
                )
                evict_overflow(
                    session,
                    table,
                    capacity,
                    table.c.user_id == user_id,
                    table.c.list_kind == entry.list_kind,
                )
        except IntegrityError as exc:
            raise ValidationError(
                f"{entry.entity} is already on the {entry.list_kind} list", field="entity"
            ) from exc
        LOGGER.info("Added entity to %s list user_id=%s", entry.list_kind, user_id)

    def remove(self, user_id: str, list_kind: EntityListKind, entity: str) -> bool:
        table = sql_schema.entity_lists
        with self._session_scope() as session:
            result = session.execute(
                sa.delete(table).where(
                    table.c.user_id == user_id,
                    table.c.list_kind == list_kind.value,
                    table.c.entity == entity,
                )
            )
            return result.rowcount == 1

    def list_entries(self, user_id: str, list_kind: EntityListKind) -> List[EntityListEntry]:
        table = sql_schema.entity_lists
        with self._session_scope() as session:
            rows = session.execute(
                sa.select(table)
                .where(table.c.user_id == user_id, table.c.list_kind == list_kind.value)
                .order_by(table.c.seq.asc())
            ).all()
        return [_row_to_entry(row) for row in rows]

    def contains(self, user_id: str, list_kind: EntityListKind, entity: str) -> bool:
        table = sql_schema.entity_lists
        with self._session_scope() as session:
            row = session.execute(
                sa.select(table.c.seq).where(
                    table.c.user_id == user_id,
                    table.c.list_kind == list_kind.value,
                    table.c.entity == entity,
                )
            ).first()
        return row is not None


__all__ = ["EntityListStore"]
