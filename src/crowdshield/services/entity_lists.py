"""User-managed blocked and safe identifier lists."""

from __future__ import annotations

from typing import Dict, List

from crowdshield.errors import ValidationError
from crowdshield.normalization import EntityKind, infer_entity_kind, normalize_entity
from crowdshield.settings import Settings, get_settings
from crowdshield.store.activity_store import ActivityLogStore
from crowdshield.store.entity_list_store import EntityListStore
from crowdshield.store.schema import EntityListEntry, EntityListKind
from crowdshield.util.clock import Clock, SystemClock

_ACTIVITY_TYPES = {
    EntityListKind.BLOCKED: "block_entity",
    EntityListKind.SAFE: "mark_safe",
}


class EntityListService:
    def __init__(
        self,
        *,
        store: EntityListStore,
        activity: ActivityLogStore | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.activity = activity
        self.clock = clock or SystemClock()
        self.capacity = (settings or get_settings()).alerts.entity_list_capacity

    def block(self, user_id: str, entity: str, kind: EntityKind | str | None = None) -> EntityListEntry:
        return self._add(user_id, entity, kind, EntityListKind.BLOCKED)

    def mark_safe(self, user_id: str, entity: str, kind: EntityKind | str | None = None) -> EntityListEntry:
        return self._add(user_id, entity, kind, EntityListKind.SAFE)

    def unblock(self, user_id: str, entity: str) -> bool:
        return self.store.remove(user_id, EntityListKind.BLOCKED, normalize_entity(entity))

    def is_blocked(self, user_id: str, entity: str) -> bool:
        return self.store.contains(user_id, EntityListKind.BLOCKED, normalize_entity(entity))

    def lists(self, user_id: str) -> Dict[str, List[EntityListEntry]]:
        return {
            "blocked": self.store.list_entries(user_id, EntityListKind.BLOCKED),
            "safe": self.store.list_entries(user_id, EntityListKind.SAFE),
        }

    def _add(
        self, user_id: str, entity: str, kind: EntityKind | str | None, list_kind: EntityListKind
    ) -> EntityListEntry:
        canonical = normalize_entity(entity)
        if not canonical:
            raise ValidationError("Entity is required", field="entity")
        resolved_kind = EntityKind(kind) if kind else infer_entity_kind(canonical)
        entry = EntityListEntry(
            entity=canonical,
            entity_kind=resolved_kind.value,
            list_kind=list_kind.value,
            added_at=self.clock.now(),
        )
        self.store.add(user_id, entry, capacity=self.capacity)
        if self.activity:
            self.activity.log(
                _ACTIVITY_TYPES[list_kind],
                user_id=user_id,
                target_entity=canonical,
                entity_kind=resolved_kind.value,
                created_at=entry.added_at,
            )
        return entry


__all__ = ["EntityListService"]
