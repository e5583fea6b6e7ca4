"""Persistence helpers for community fraud reports."""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Tuple

import sqlalchemy as sa

from crowdshield.store import sql as sql_schema
from crowdshield.store.base import SqlStore
from crowdshield.store.schema import FraudReport
from crowdshield.util.clock import ensure_utc, utcnow

LOGGER = logging.getLogger(__name__)


def _row_to_report(row: Any) -> FraudReport:
    amount = row.amount_lost
    return FraudReport(
        report_id=row.report_id,
        reporter_id=row.reporter_id,
        target_entity=row.target_entity,
        entity_kind=row.entity_kind,
        category=row.category,
        description=row.description,
        evidence=row.evidence,
        amount_lost=float(amount) if amount is not None else None,
        incident_date=ensure_utc(row.incident_date) if row.incident_date else None,
        timestamp=ensure_utc(row.timestamp),
        is_active=bool(row.is_active),
    )


class ReportStore(SqlStore):
    """CRUD and aggregate queries around the ``fraud_reports`` table.

    Reports are immutable once written except for ``is_active``, which supports
    soft deactivation by moderators.
    """

    def insert_report(self, report: FraudReport) -> str:
        """Persist a new report and return its identifier."""

        amount = Decimal(str(report.amount_lost)) if report.amount_lost is not None else None
        with self._session_scope() as session:
            session.execute(
                sa.insert(sql_schema.fraud_reports).values(
                    report_id=report.report_id,
                    reporter_id=report.reporter_id,
                    target_entity=report.target_entity,
                    entity_kind=report.entity_kind,
                    category=report.category,
                    description=report.description,
                    evidence=report.evidence,
                    amount_lost=amount,
                    incident_date=ensure_utc(report.incident_date) if report.incident_date else None,
                    timestamp=ensure_utc(report.timestamp),
                    is_active=report.is_active,
                    updated_at=utcnow(),
                )
            )
        LOGGER.info(
            "Stored fraud report report_id=%s category=%s target=%s",
            report.report_id,
            report.category,
            report.target_entity,
        )
        return report.report_id

    def get_report(self, report_id: str) -> FraudReport | None:
        with self._session_scope() as session:
            row = session.execute(
                sa.select(sql_schema.fraud_reports).where(sql_schema.fraud_reports.c.report_id == report_id)
            ).first()
        return _row_to_report(row) if row else None

    def set_active(self, report_id: str, active: bool) -> bool:
        """Flip the soft-deactivation flag; returns ``False`` when the report is unknown."""

        with self._session_scope() as session:
            result = session.execute(
                sa.update(sql_schema.fraud_reports)
                .where(sql_schema.fraud_reports.c.report_id == report_id)
                .values(is_active=active, updated_at=utcnow())
            )
            return result.rowcount == 1

    def list_active_for_entity(self, target_entity: str, *, start: datetime, end: datetime) -> List[FraudReport]:
        """Return active reports for ``target_entity`` with ``start <= timestamp <= end``.

        Args:
            target_entity: Canonical identifier.
            start: Inclusive lower bound of the window.
            end: Inclusive upper bound of the window.

        Returns:
            Reports ordered oldest first.
        """

        table = sql_schema.fraud_reports
        with self._session_scope() as session:
            rows = session.execute(
                sa.select(table)
                .where(
                    table.c.target_entity == target_entity,
                    table.c.is_active.is_(True),
                    table.c.timestamp >= ensure_utc(start),
                    table.c.timestamp <= ensure_utc(end),
                )
                .order_by(table.c.timestamp.asc(), table.c.report_id.asc())
            ).all()
        return [_row_to_report(row) for row in rows]

    def list_by_reporter(self, reporter_id: str, *, limit: int = 10, offset: int = 0) -> Tuple[List[FraudReport], int]:
        """Return a page of the reporter's submissions (newest first) and the total count."""

        table = sql_schema.fraud_reports
        with self._session_scope() as session:
            rows = session.execute(
                sa.select(table)
                .where(table.c.reporter_id == reporter_id)
                .order_by(table.c.timestamp.desc())
                .limit(max(limit, 1))
                .offset(max(offset, 0))
            ).all()
            total = session.execute(
                sa.select(sa.func.count()).select_from(table).where(table.c.reporter_id == reporter_id)
            ).scalar_one()
        return [_row_to_report(row) for row in rows], int(total)

    def count_active(self, *, since: datetime | None = None) -> int:
        table = sql_schema.fraud_reports
        stmt = sa.select(sa.func.count()).select_from(table).where(table.c.is_active.is_(True))
        if since is not None:
            stmt = stmt.where(table.c.timestamp >= ensure_utc(since))
        with self._session_scope() as session:
            return int(session.execute(stmt).scalar_one())

    def count_for_entity(self, target_entity: str) -> int:
        table = sql_schema.fraud_reports
        with self._session_scope() as session:
            return int(
                session.execute(
                    sa.select(sa.func.count()).select_from(table).where(table.c.target_entity == target_entity)
                ).scalar_one()
            )

    def top_categories(self, *, limit: int = 5) -> List[Dict[str, Any]]:
        """Return the most reported categories among active reports."""

        table = sql_schema.fraud_reports
        count_col = sa.func.count().label("report_count")
        with self._session_scope() as session:
            rows = session.execute(
                sa.select(table.c.category, count_col)
                .where(table.c.is_active.is_(True))
                .group_by(table.c.category)
                .order_by(count_col.desc(), table.c.category.asc())
                .limit(limit)
            ).all()
        return [{"category": row.category, "count": int(row.report_count)} for row in rows]


__all__ = ["ReportStore"]
