"""Factory helpers that wire stores and services from configuration.

Every builder accepts explicit collaborators so tests can inject an isolated
SQLite session factory, a :class:`~crowdshield.util.clock.FixedClock`, or
in-memory channels, and falls back to :mod:`crowdshield.settings` otherwise.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from sqlalchemy.orm import sessionmaker

from crowdshield.observability import get_observability
from crowdshield.services.alerts import AlertFanoutPipeline
from crowdshield.services.channels import InMemoryRealtimeChannel, RealtimeChannel, SecondaryChannel, build_email_channel
from crowdshield.services.dispatch import AlertDispatcher
from crowdshield.services.entity_lists import EntityListService
from crowdshield.services.otp import ChannelVerificationService, OTPManager
from crowdshield.services.protection import ProtectionRegistry
from crowdshield.services.reports import ReportService
from crowdshield.services.risk import RiskScoringEngine
from crowdshield.settings import Settings, get_settings
from crowdshield.store.activity_store import ActivityLogStore
from crowdshield.store.alert_store import AlertStore
from crowdshield.store.entity_list_store import EntityListStore
from crowdshield.store.otp_store import InMemoryOTPStore, OTPStore, SqlOTPStore
from crowdshield.store.protection_store import ProtectionStore
from crowdshield.store.report_store import ReportStore
from crowdshield.store.sql import session_factory as build_sql_session_factory
from crowdshield.util.clock import Clock, SystemClock


def build_otp_store(*, settings: Settings | None = None, session_factory: sessionmaker | None = None) -> OTPStore:
    """Return the OTP store selected by ``storage.otp_backend``.

    Raises:
        NotImplementedError: If the configured backend is unknown.
    """

    resolved = settings or get_settings()
    backend = resolved.storage.otp_backend
    if backend == "memory":
        return InMemoryOTPStore()
    if backend == "sql":
        return SqlOTPStore(session_factory=session_factory or build_sql_session_factory(settings=resolved))
    raise NotImplementedError(f"Unsupported OTP backend '{backend}'")


@dataclass(slots=True)
class ServiceContainer:
    """Every service the API and jobs need, sharing one clock and session factory."""

    settings: Settings
    clock: Clock
    activity: ActivityLogStore
    scoring: RiskScoringEngine
    registry: ProtectionRegistry
    reports: ReportService
    entity_lists: EntityListService
    realtime: RealtimeChannel
    email: SecondaryChannel
    dispatcher: AlertDispatcher
    alerts: AlertFanoutPipeline
    otp: OTPManager
    verification: ChannelVerificationService

    def close(self) -> None:
        self.dispatcher.shutdown()


def build_services(
    *,
    settings: Settings | None = None,
    clock: Clock | None = None,
    session_factory: sessionmaker | None = None,
    realtime: RealtimeChannel | None = None,
    email: SecondaryChannel | None = None,
    otp_store: OTPStore | None = None,
) -> ServiceContainer:
    """Instantiate the full service graph."""

    resolved = settings or get_settings()
    resolved_clock = clock or SystemClock()
    sessions = session_factory or build_sql_session_factory(settings=resolved)

    activity = ActivityLogStore(session_factory=sessions)
    scoring = RiskScoringEngine(store=ReportStore(session_factory=sessions), clock=resolved_clock, settings=resolved)
    registry = ProtectionRegistry(store=ProtectionStore(session_factory=sessions), clock=resolved_clock)
    reports = ReportService(store=scoring.store, activity=activity, clock=resolved_clock, settings=resolved)
    entity_lists = EntityListService(
        store=EntityListStore(session_factory=sessions), activity=activity, clock=resolved_clock, settings=resolved
    )
    realtime_channel = realtime or InMemoryRealtimeChannel()
    email_channel = email or build_email_channel(resolved)
    dispatcher = AlertDispatcher(
        realtime=realtime_channel,
        secondary=email_channel,
        max_workers=resolved.alerts.dispatch_workers,
        observability=get_observability(component="dispatch", settings=resolved),
    )
    alerts = AlertFanoutPipeline(
        registry=registry,
        scoring=scoring,
        store=AlertStore(session_factory=sessions),
        dispatcher=dispatcher,
        entity_lists=entity_lists,
        activity=activity,
        clock=resolved_clock,
        settings=resolved,
        observability=get_observability(component="alerts", settings=resolved),
    )
    otp = OTPManager(
        store=otp_store or build_otp_store(settings=resolved, session_factory=sessions),
        clock=resolved_clock,
        settings=resolved,
    )
    verification = ChannelVerificationService(otp=otp, registry=registry, email=email_channel, activity=activity)
    return ServiceContainer(
        settings=resolved,
        clock=resolved_clock,
        activity=activity,
        scoring=scoring,
        registry=registry,
        reports=reports,
        entity_lists=entity_lists,
        realtime=realtime_channel,
        email=email_channel,
        dispatcher=dispatcher,
        alerts=alerts,
        otp=otp,
        verification=verification,
    )


@lru_cache
def get_services() -> ServiceContainer:
    """Return the process-wide service container used by the API."""

    return build_services()


__all__ = ["ServiceContainer", "build_otp_store", "build_services", "get_services"]
