"""Community report intake, moderation, and platform statistics."""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timedelta
from typing import Any, Dict, List, Mapping, Tuple

from pydantic import ValidationError as PydanticValidationError

from crowdshield.errors import NotFoundError, ValidationError
from crowdshield.normalization import EntityKind, infer_entity_kind, normalize_entity
from crowdshield.services.models import FraudReportInput
from crowdshield.settings import Settings, get_settings
from crowdshield.store.activity_store import ActivityLogStore
from crowdshield.store.report_store import ReportStore
from crowdshield.store.schema import FraudReport
from crowdshield.util.clock import Clock, SystemClock, ensure_utc

LOGGER = logging.getLogger(__name__)


class ReportService:
    """Validate and store fraud reports against canonical identifiers."""

    def __init__(
        self,
        *,
        store: ReportStore,
        activity: ActivityLogStore | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.activity = activity
        self.clock = clock or SystemClock()
        self.window = timedelta(days=(settings or get_settings()).scoring.window_days)

    def submit_report(self, reporter_id: str | None, payload: FraudReportInput | Mapping[str, Any]) -> FraudReport:
        """Persist a report and return it.

        Args:
            reporter_id: Authenticated submitter, or ``None`` for seeded data.
            payload: Either a validated :class:`FraudReportInput` or raw fields.

        Raises:
            ValidationError: when the payload is malformed or the target is empty
                after canonicalization.
        """

        if not isinstance(payload, FraudReportInput):
            try:
                payload = FraudReportInput.model_validate(payload)
            except PydanticValidationError as exc:
                first = exc.errors()[0]
                location = ".".join(str(part) for part in first.get("loc", ()))
                raise ValidationError(f"{location}: {first.get('msg')}", field=location or None) from exc

        canonical = normalize_entity(payload.target_entity)
        if not canonical:
            raise ValidationError("Target entity is required", field="target_entity")
        kind = payload.entity_kind or infer_entity_kind(canonical)

        report = FraudReport(
            report_id=str(uuid.uuid4()),
            reporter_id=reporter_id,
            target_entity=canonical,
            entity_kind=EntityKind(kind).value,
            category=payload.category.value,
            description=payload.description,
            evidence=payload.evidence or None,
            amount_lost=payload.amount_lost,
            incident_date=ensure_utc(payload.incident_date) if payload.incident_date else None,
            timestamp=self.clock.now(),
        )
        self.store.insert_report(report)
        if self.activity:
            self.activity.log(
                "report_fraud",
                user_id=reporter_id,
                target_entity=canonical,
                entity_kind=report.entity_kind,
                details={"category": report.category, "report_id": report.report_id},
                created_at=report.timestamp,
            )
        return report

    def deactivate_report(self, report_id: str) -> None:
        if not self.store.set_active(report_id, False):
            raise NotFoundError(f"Report {report_id} not found")
        LOGGER.info("Deactivated report_id=%s", report_id)

    def reactivate_report(self, report_id: str) -> None:
        if not self.store.set_active(report_id, True):
            raise NotFoundError(f"Report {report_id} not found")

    def list_reports_by_reporter(
        self, reporter_id: str, *, limit: int = 10, offset: int = 0
    ) -> Tuple[List[FraudReport], int]:
        return self.store.list_by_reporter(reporter_id, limit=limit, offset=offset)

    def stats_overview(self, as_of: datetime | None = None) -> Dict[str, Any]:
        """Return active report totals, the trailing-window count, and the top five categories."""

        now = ensure_utc(as_of) if as_of else self.clock.now()
        return {
            "total_reports": self.store.count_active(),
            "recent_reports": self.store.count_active(since=now - self.window),
            "top_categories": self.store.top_categories(limit=5),
            "as_of": now.isoformat(),
        }


__all__ = ["ReportService"]
