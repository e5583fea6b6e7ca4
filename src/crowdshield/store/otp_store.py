"""Keyed storage for one-time codes with compare-and-swap writes.

At most one record exists per ``(subject_key, purpose)``. Every write names the
``record_id`` it expects to replace (``None`` meaning "no record"), so two
concurrent issuers cannot both succeed.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime
from typing import Any, Dict, Protocol, Tuple

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError

from crowdshield.store import sql as sql_schema
from crowdshield.store.base import SqlStore
from crowdshield.store.schema import OTPRecord
from crowdshield.util.clock import ensure_utc

LOGGER = logging.getLogger(__name__)


class OTPStore(Protocol):
    """Storage contract consumed by :class:`crowdshield.services.otp.OTPManager`."""

    def get(self, subject_key: str, purpose: str) -> OTPRecord | None:  # pragma: no cover - Protocol
        ...

    def compare_and_swap(
        self,
        subject_key: str,
        purpose: str,
        *,
        expected_record_id: str | None,
        record: OTPRecord | None,
    ) -> bool:  # pragma: no cover - Protocol
        """Replace the live record iff its id equals ``expected_record_id``.

        ``record=None`` deletes. Returns ``False`` when another writer got there first.
        """

    def purge_expired(self, now: datetime) -> int:  # pragma: no cover - Protocol
        ...


class InMemoryOTPStore:
    """Process-local store guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._records: Dict[Tuple[str, str], OTPRecord] = {}

    def get(self, subject_key: str, purpose: str) -> OTPRecord | None:
        with self._lock:
            record = self._records.get((subject_key, purpose))
            return replace(record) if record else None

    def compare_and_swap(
        self,
        subject_key: str,
        purpose: str,
        *,
        expected_record_id: str | None,
        record: OTPRecord | None,
    ) -> bool:
        key = (subject_key, purpose)
        with self._lock:
            current = self._records.get(key)
            current_id = current.record_id if current else None
            if current_id != expected_record_id:
                return False
            if record is None:
                self._records.pop(key, None)
            else:
                self._records[key] = replace(record)
            return True

    def purge_expired(self, now: datetime) -> int:
        cutoff = ensure_utc(now)
        with self._lock:
            stale = [key for key, record in self._records.items() if record.expires_at <= cutoff]
            for key in stale:
                del self._records[key]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


def _row_to_record(row: Any) -> OTPRecord:
    return OTPRecord(
        record_id=row.record_id,
        subject_key=row.subject_key,
        purpose=row.purpose,
        code=row.code,
        issued_at=ensure_utc(row.issued_at),
        expires_at=ensure_utc(row.expires_at),
        attempts_remaining=int(row.attempts_remaining),
        verified=bool(row.verified),
    )


class SqlOTPStore(SqlStore):
    """``otp_records`` table keyed by (subject_key, purpose) with version-checked writes."""

    def get(self, subject_key: str, purpose: str) -> OTPRecord | None:
        table = sql_schema.otp_records
        with self._session_scope() as session:
            row = session.execute(
                sa.select(table).where(table.c.subject_key == subject_key, table.c.purpose == purpose)
            ).first()
        return _row_to_record(row) if row else None

    def compare_and_swap(
        self,
        subject_key: str,
        purpose: str,
        *,
        expected_record_id: str | None,
        record: OTPRecord | None,
    ) -> bool:
        table = sql_schema.otp_records
        key_filter = (table.c.subject_key == subject_key, table.c.purpose == purpose)

        if expected_record_id is None:
            if record is None:
                return self.get(subject_key, purpose) is None
            try:
                with self._session_scope() as session:
                    session.execute(sa.insert(table).values(**self._values(record)))
            except IntegrityError:
                LOGGER.debug("OTP insert lost race subject=%s purpose=%s", subject_key, purpose)
                return False
            return True

        with self._session_scope() as session:
            if record is None:
                result = session.execute(
                    sa.delete(table).where(*key_filter, table.c.record_id == expected_record_id)
                )
            else:
                result = session.execute(
                    sa.update(table)
                    .where(*key_filter, table.c.record_id == expected_record_id)
                    .values(**self._values(record))
                )
            return result.rowcount == 1

    def purge_expired(self, now: datetime) -> int:
        table = sql_schema.otp_records
        with self._session_scope() as session:
            result = session.execute(sa.delete(table).where(table.c.expires_at <= ensure_utc(now)))
            return result.rowcount or 0

    @staticmethod
    def _values(record: OTPRecord) -> Dict[str, Any]:
        return {
            "subject_key": record.subject_key,
            "purpose": record.purpose,
            "record_id": record.record_id,
            "code": record.code,
            "issued_at": ensure_utc(record.issued_at),
            "expires_at": ensure_utc(record.expires_at),
            "attempts_remaining": record.attempts_remaining,
            "verified": record.verified,
        }


__all__ = ["InMemoryOTPStore", "OTPStore", "SqlOTPStore"]
