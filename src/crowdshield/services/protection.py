"""Per-channel protection registration and recipient matching."""

from __future__ import annotations

import logging
from typing import Dict, Set

from crowdshield.errors import NotFoundError, ValidationError
from crowdshield.normalization import normalize_entity
from crowdshield.services.models import ProtectionSettingInput, ProtectionSettingsPayload
from crowdshield.store.protection_store import ProtectionStore
from crowdshield.store.schema import AlertMode, Channel, ProtectionSetting
from crowdshield.util.clock import Clock, SystemClock

LOGGER = logging.getLogger(__name__)


class ProtectionRegistry:
    """Register protected identifiers and resolve which users a contact targets."""

    def __init__(self, *, store: ProtectionStore, clock: Clock | None = None) -> None:
        self.store = store
        self.clock = clock or SystemClock()

    def register(self, user_id: str, channel: Channel, setting: ProtectionSettingInput) -> ProtectionSetting:
        """Upsert the user's protection for ``channel`` with a canonical identifier.

        Raises:
            ValidationError: when the identifier canonicalizes to an empty string.
        """

        canonical = normalize_entity(setting.registered_identifier)
        if not canonical:
            raise ValidationError(
                f"A registered identifier is required for {channel.value} protection",
                field="registered_identifier",
            )
        existing = self.store.get_setting(user_id, channel)
        activated_at = existing.activated_at if existing and existing.enabled and setting.enabled else None
        if setting.enabled and activated_at is None:
            activated_at = self.clock.now()

        record = ProtectionSetting(
            channel=channel,
            enabled=setting.enabled,
            registered_identifier=canonical,
            alert_mode=setting.alert_mode,
            activated_at=activated_at,
        )
        self.store.upsert_setting(user_id, record)
        return self.store.get_setting(user_id, channel) or record

    update = register

    def register_all(self, user_id: str, payload: ProtectionSettingsPayload) -> Dict[Channel, ProtectionSetting]:
        """Apply a bulk payload; channels left blank and disabled are disabled if present."""

        for channel, setting in payload.by_channel().items():
            if setting.registered_identifier:
                self.register(user_id, channel, setting)
            elif not setting.enabled:
                self.store.set_enabled(user_id, channel, False)
            else:
                raise ValidationError(
                    f"A registered identifier is required for {channel.value} protection",
                    field=f"{channel.value}.registered_identifier",
                )
        return self.get_settings(user_id)

    def disable(self, user_id: str, channel: Channel) -> None:
        """Turn protection off for ``channel``; the next match excludes the user."""

        if not self.store.set_enabled(user_id, channel, False):
            raise NotFoundError(f"No {channel.value} protection registered for user {user_id}")
        LOGGER.info("Disabled protection user_id=%s channel=%s", user_id, channel.value)

    def mark_verified(self, user_id: str, channel: Channel) -> None:
        if not self.store.mark_verified(user_id, channel, verified_at=self.clock.now()):
            raise NotFoundError(f"No {channel.value} protection registered for user {user_id}")

    def get_settings(self, user_id: str) -> Dict[Channel, ProtectionSetting]:
        """Return a setting for every channel, defaulting unregistered ones to disabled."""

        stored = self.store.list_settings(user_id)
        return {channel: stored.get(channel) or ProtectionSetting(channel=channel) for channel in Channel}

    def find_protected_users(self, entity: str, channel: Channel) -> Set[str]:
        canonical = normalize_entity(entity)
        if not canonical:
            return set()
        return self.store.find_user_ids(channel, canonical)

    def alert_mode(self, user_id: str, channel: Channel) -> AlertMode:
        setting = self.store.get_setting(user_id, channel)
        return setting.alert_mode if setting else AlertMode.POPUP

    def set_contact_email(self, user_id: str, email: str) -> str:
        canonical = normalize_entity(email)
        if "@" not in canonical:
            raise ValidationError("Contact email must contain '@'", field="email")
        self.store.set_contact_email(user_id, canonical)
        return canonical

    def get_contact_email(self, user_id: str) -> str | None:
        return self.store.get_contact_email(user_id)


__all__ = ["ProtectionRegistry"]
