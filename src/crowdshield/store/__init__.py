"""Persistence layer: SQLAlchemy tables, stores, and shared record types."""

from crowdshield.store.activity_store import ActivityLogStore
from crowdshield.store.alert_store import AlertStore
from crowdshield.store.entity_list_store import EntityListStore
from crowdshield.store.otp_store import InMemoryOTPStore, OTPStore, SqlOTPStore
from crowdshield.store.protection_store import ProtectionStore
from crowdshield.store.report_store import ReportStore

__all__ = [
    "ActivityLogStore",
    "AlertStore",
    "EntityListStore",
    "InMemoryOTPStore",
    "OTPStore",
    "ProtectionStore",
    "ReportStore",
    "SqlOTPStore",
]
