"""Domain records exchanged between the crowdshield stores and services.

Each store returns these slot dataclasses rather than raw SQL rows so the
service layer never depends on column names. Identifier fields always hold the
canonical form produced by :func:`crowdshield.normalization.normalize_entity`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict


class FraudCategory(str, Enum):
    """Fraud classification labels accepted on community reports."""

    PHISHING = "Phishing"
    IDENTITY_THEFT = "Identity Theft"
    FINANCIAL_FRAUD = "Financial Fraud"
    SPAM = "Spam"
    HARASSMENT = "Harassment"
    FAKE_LOTTERY = "Fake Lottery"
    INVESTMENT_SCAM = "Investment Scam"
    ROMANCE_SCAM = "Romance Scam"
    TECH_SUPPORT_SCAM = "Tech Support Scam"
    OTHER = "Other"


class Channel(str, Enum):
    """Contact media a user can protect."""

    CALL = "call"
    SMS = "sms"
    EMAIL = "email"
    UPI = "upi"


class AlertMode(str, Enum):
    """How the client surfaces an alert for a protected channel."""

    POPUP = "popup"
    SILENT = "silent"
    BLOCK = "block"


class RiskLevel(str, Enum):
    """Risk tiers derived from the crowd score."""

    SAFE = "safe"
    SUSPICIOUS = "suspicious"
    HIGH_RISK = "high_risk"


class AlertAction(str, Enum):
    """Actions a user may take when acknowledging an alert."""

    DISMISSED = "dismissed"
    BLOCKED = "blocked"
    MARKED_SAFE = "marked_safe"
    REPORTED = "reported"


class EntityListKind(str, Enum):
    """Per-user identifier lists."""

    BLOCKED = "blocked"
    SAFE = "safe"


@dataclass(slots=True)
class FraudReport:
    """A community report against a canonical identifier."""

    report_id: str
    target_entity: str
    entity_kind: str
    category: str
    description: str
    timestamp: datetime
    reporter_id: str | None = None
    evidence: str | None = None
    amount_lost: float | None = None
    incident_date: datetime | None = None
    is_active: bool = True

    def summary(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "target_entity": self.target_entity,
            "entity_kind": self.entity_kind,
            "category": self.category,
            "amount_lost": self.amount_lost,
            "timestamp": self.timestamp.isoformat(),
            "is_active": self.is_active,
        }


@dataclass(slots=True)
class ProtectionSetting:
    """One user's protection configuration for a single channel."""

    channel: Channel
    enabled: bool = False
    registered_identifier: str = ""
    alert_mode: AlertMode = AlertMode.POPUP
    activated_at: datetime | None = None
    verified_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel.value,
            "enabled": self.enabled,
            "registered_identifier": self.registered_identifier,
            "alert_mode": self.alert_mode.value,
            "activated_at": self.activated_at.isoformat() if self.activated_at else None,
            "verified_at": self.verified_at.isoformat() if self.verified_at else None,
        }


@dataclass(slots=True)
class PendingAlert:
    """An unacknowledged risk notification in a user's inbox."""

    alert_id: str
    user_id: str
    channel: str
    from_entity: str
    risk_level: str
    risk_score: int
    message: str
    created_at: datetime
    category: str | None = None
    acknowledged: bool = False
    acknowledged_at: datetime | None = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "channel": self.channel,
            "from_entity": self.from_entity,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "message": self.message,
            "category": self.category,
            "created_at": self.created_at.isoformat(),
            "acknowledged": self.acknowledged,
            "acknowledged_at": self.acknowledged_at.isoformat() if self.acknowledged_at else None,
        }


@dataclass(slots=True)
class AlertHistoryEntry:
    """Record of an acknowledged alert and the action taken."""

    entry_id: str
    user_id: str
    alert_id: str
    channel: str
    from_entity: str
    risk_level: str
    risk_score: int
    action: str
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "alert_id": self.alert_id,
            "channel": self.channel,
            "from_entity": self.from_entity,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "action": self.action,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(slots=True)
class OTPRecord:
    """Live one-time code for a (subject, purpose) pair.

    ``record_id`` changes on every write and acts as the compare-and-swap
    version token.
    """

    record_id: str
    subject_key: str
    purpose: str
    code: str
    issued_at: datetime
    expires_at: datetime
    attempts_remaining: int
    verified: bool = False


@dataclass(slots=True)
class EntityListEntry:
    """An identifier on a user's blocked or safe list."""

    entity: str
    entity_kind: str
    list_kind: str
    added_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "entity_kind": self.entity_kind,
            "list_kind": self.list_kind,
            "added_at": self.added_at.isoformat(),
        }


@dataclass(slots=True)
class ActivityEntry:
    """Audit trail row for a user-visible action."""

    activity_id: str
    action_type: str
    created_at: datetime
    user_id: str | None = None
    target_entity: str | None = None
    entity_kind: str | None = None
    result: str = "success"
    risk_level: str | None = None
    risk_score: int | None = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "activity_id": self.activity_id,
            "action_type": self.action_type,
            "user_id": self.user_id,
            "target_entity": self.target_entity,
            "entity_kind": self.entity_kind,
            "result": self.result,
            "risk_level": self.risk_level,
            "risk_score": self.risk_score,
            "details": self.details,
            "created_at": self.created_at.isoformat(),
        }


__all__ = [
    "ActivityEntry",
    "AlertAction",
    "AlertHistoryEntry",
    "AlertMode",
    "Channel",
    "EntityListEntry",
    "EntityListKind",
    "FraudCategory",
    "FraudReport",
    "OTPRecord",
    "PendingAlert",
    "ProtectionSetting",
    "RiskLevel",
]
