"""Pydantic models validating caller input at the service boundary."""

from __future__ import annotations

from datetime import datetime
from typing import Dict

from pydantic import BaseModel, Field, field_validator, model_validator

from crowdshield.normalization import EntityKind
from crowdshield.store.schema import AlertAction, AlertMode, Channel, FraudCategory


class ProtectionSettingInput(BaseModel):
    """Requested protection for a single channel; every field has a default."""

    enabled: bool = True
    registered_identifier: str = ""
    alert_mode: AlertMode = AlertMode.POPUP

    @field_validator("registered_identifier", mode="before")
    @classmethod
    def _strip_identifier(cls, value: object) -> str:
        return str(value or "").strip()


class ProtectionSettingsPayload(BaseModel):
    """Bulk update covering every channel at once.

    Channels omitted by the caller fall back to a disabled setting so readers
    never have to check for missing sections.
    """

    call: ProtectionSettingInput = Field(default_factory=lambda: ProtectionSettingInput(enabled=False))
    sms: ProtectionSettingInput = Field(default_factory=lambda: ProtectionSettingInput(enabled=False))
    email: ProtectionSettingInput = Field(default_factory=lambda: ProtectionSettingInput(enabled=False))
    upi: ProtectionSettingInput = Field(default_factory=lambda: ProtectionSettingInput(enabled=False))

    def by_channel(self) -> Dict[Channel, ProtectionSettingInput]:
        return {channel: getattr(self, channel.value) for channel in Channel}


class FraudReportInput(BaseModel):
    """Community fraud report as submitted by a reporter."""

    target_entity: str = Field(min_length=1)
    entity_kind: EntityKind | None = None
    category: FraudCategory
    description: str = Field(min_length=10, max_length=2000)
    evidence: str | None = Field(default=None, max_length=5000)
    amount_lost: float | None = Field(default=None, ge=0)
    incident_date: datetime | None = None

    @field_validator("target_entity", "description", "evidence", mode="before")
    @classmethod
    def _strip_text(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip()
        return value


class RiskCheckInput(BaseModel):
    entity: str = Field(min_length=1)
    entity_kind: EntityKind | None = None


class EntityListInput(BaseModel):
    entity: str = Field(min_length=1)
    entity_kind: EntityKind | None = None


class ContactAttemptInput(BaseModel):
    """Incoming call, SMS, email, or payment request to run through alert fan-out."""

    channel: Channel
    from_entity: str = Field(min_length=1)
    recipient_identifier: str = Field(min_length=1)
    message: str | None = Field(default=None, max_length=1000)


class AcknowledgeInput(BaseModel):
    action: AlertAction = AlertAction.DISMISSED


class OTPVerifyInput(BaseModel):
    code: str = Field(min_length=4, max_length=10)

    @model_validator(mode="after")
    def _digits_only(self) -> "OTPVerifyInput":
        if not self.code.isdigit():
            raise ValueError("code must contain digits only")
        return self


class ContactEmailInput(BaseModel):
    email: str = Field(min_length=3)

    @field_validator("email")
    @classmethod
    def _require_at(cls, value: str) -> str:
        if "@" not in value:
            raise ValueError("email must contain '@'")
        return value


__all__ = [
    "AcknowledgeInput",
    "ContactAttemptInput",
    "ContactEmailInput",
    "EntityListInput",
    "FraudReportInput",
    "OTPVerifyInput",
    "ProtectionSettingInput",
    "ProtectionSettingsPayload",
    "RiskCheckInput",
]
