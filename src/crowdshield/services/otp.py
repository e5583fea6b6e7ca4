"""One-time code lifecycle and the channel verification flow built on it.

Lifecycle of a record: ``issued`` until it is verified (consumed), expires, or
runs out of attempts; every terminal transition deletes the record. All writes
go through :meth:`OTPStore.compare_and_swap`, and a writer that loses the race
re-reads the record and decides again.
"""

from __future__ import annotations

import hmac
import logging
import math
import secrets
import uuid
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import Enum

from crowdshield.errors import NotFoundError, PartialDispatchFailure, RateLimitedError, TransientStoreError
from crowdshield.services.channels import SecondaryChannel
from crowdshield.services.protection import ProtectionRegistry
from crowdshield.settings import Settings, get_settings
from crowdshield.store.activity_store import ActivityLogStore
from crowdshield.store.otp_store import OTPStore
from crowdshield.store.schema import Channel, OTPRecord
from crowdshield.util.clock import Clock, SystemClock

LOGGER = logging.getLogger(__name__)

CHANNEL_VERIFICATION_PURPOSE = "channel_verification"
_MAX_CAS_ROUNDS = 8


class OTPStatus(str, Enum):
    VERIFIED = "verified"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    MISMATCH = "mismatch"
    EXHAUSTED = "exhausted"


@dataclass(frozen=True, slots=True)
class OTPIssue:
    code: str
    expires_at: datetime


@dataclass(frozen=True, slots=True)
class OTPVerification:
    status: OTPStatus
    remaining_attempts: int = 0

    @property
    def success(self) -> bool:
        return self.status == OTPStatus.VERIFIED


class OTPManager:
    """Issue, verify, and invalidate codes keyed by ``(subject_key, purpose)``."""

    def __init__(
        self,
        *,
        store: OTPStore,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        otp = (settings or get_settings()).otp
        self.store = store
        self.clock = clock or SystemClock()
        self.code_length = otp.code_length
        self.ttl = timedelta(minutes=otp.ttl_minutes)
        self.cooldown = timedelta(seconds=otp.cooldown_seconds)
        self.max_attempts = otp.max_attempts

    def generate(self, subject_key: str, purpose: str) -> OTPIssue:
        """Issue a fresh code, replacing any earlier record for the key.

        Raises:
            RateLimitedError: when a live code was issued within the cooldown.
        """

        for _ in range(_MAX_CAS_ROUNDS):
            now = self.clock.now()
            current = self.store.get(subject_key, purpose)
            if current and not current.verified and current.expires_at > now:
                elapsed = now - current.issued_at
                if elapsed < self.cooldown:
                    wait_seconds = math.ceil((self.cooldown - elapsed).total_seconds())
                    raise RateLimitedError(
                        f"A code was issued recently; retry in {wait_seconds}s",
                        retry_after_seconds=wait_seconds,
                    )

            record = OTPRecord(
                record_id=str(uuid.uuid4()),
                subject_key=subject_key,
                purpose=purpose,
                code=self._new_code(),
                issued_at=now,
                expires_at=now + self.ttl,
                attempts_remaining=self.max_attempts,
            )
            expected = current.record_id if current else None
            if self.store.compare_and_swap(subject_key, purpose, expected_record_id=expected, record=record):
                LOGGER.info("Issued OTP subject=%s purpose=%s", subject_key, purpose)
                return OTPIssue(code=record.code, expires_at=record.expires_at)
            LOGGER.debug("OTP issue lost race subject=%s purpose=%s", subject_key, purpose)

        raise TransientStoreError(f"Could not issue OTP for {subject_key}/{purpose} under contention")

    def verify(self, subject_key: str, purpose: str, code: str) -> OTPVerification:
        """Check ``code`` against the live record and apply the resulting transition."""

        for _ in range(_MAX_CAS_ROUNDS):
            current = self.store.get(subject_key, purpose)
            if current is None:
                return OTPVerification(OTPStatus.NOT_FOUND)

            if current.verified:
                self._delete(current)
                return OTPVerification(OTPStatus.NOT_FOUND)

            if self.clock.now() >= current.expires_at:
                if self._delete(current):
                    return OTPVerification(OTPStatus.EXPIRED)
                continue

            if hmac.compare_digest(current.code.encode("utf-8"), str(code).strip().encode("utf-8")):
                consumed = replace(current, record_id=str(uuid.uuid4()), verified=True)
                if self.store.compare_and_swap(
                    subject_key, purpose, expected_record_id=current.record_id, record=consumed
                ):
                    self._delete(consumed)
                    LOGGER.info("Verified OTP subject=%s purpose=%s", subject_key, purpose)
                    return OTPVerification(OTPStatus.VERIFIED)
                continue

            remaining = current.attempts_remaining - 1
            if remaining <= 0:
                if self._delete(current):
                    LOGGER.info("OTP exhausted subject=%s purpose=%s", subject_key, purpose)
                    return OTPVerification(OTPStatus.EXHAUSTED)
                continue

            updated = replace(current, record_id=str(uuid.uuid4()), attempts_remaining=remaining)
            if self.store.compare_and_swap(
                subject_key, purpose, expected_record_id=current.record_id, record=updated
            ):
                return OTPVerification(OTPStatus.MISMATCH, remaining_attempts=remaining)

        raise TransientStoreError(f"Could not verify OTP for {subject_key}/{purpose} under contention")

    def invalidate(self, subject_key: str, purpose: str) -> bool:
        """Cancel the live code, returning ``False`` when none existed."""

        for _ in range(_MAX_CAS_ROUNDS):
            current = self.store.get(subject_key, purpose)
            if current is None:
                return False
            if self._delete(current):
                LOGGER.info("Invalidated OTP subject=%s purpose=%s", subject_key, purpose)
                return True
        raise TransientStoreError(f"Could not invalidate OTP for {subject_key}/{purpose} under contention")

    def purge_expired(self) -> int:
        return self.store.purge_expired(self.clock.now())

    def _delete(self, record: OTPRecord) -> bool:
        return self.store.compare_and_swap(
            record.subject_key, record.purpose, expected_record_id=record.record_id, record=None
        )

    def _new_code(self) -> str:
        return f"{secrets.randbelow(10 ** self.code_length):0{self.code_length}d}"


def channel_subject(user_id: str, channel: Channel) -> str:
    return f"{user_id}:{channel.value}"


class ChannelVerificationService:
    """Confirm ownership of a registered identifier with a one-time code."""

    def __init__(
        self,
        *,
        otp: OTPManager,
        registry: ProtectionRegistry,
        email: SecondaryChannel,
        activity: ActivityLogStore | None = None,
    ) -> None:
        self.otp = otp
        self.registry = registry
        self.email = email
        self.activity = activity

    def request(self, user_id: str, channel: Channel) -> datetime:
        """Send a code for ``channel`` and return when it expires.

        The code goes to the registered address for the email channel and to the
        user's contact email for every other channel.

        Raises:
            NotFoundError: when the channel is not registered or no address is known.
            RateLimitedError: when a code was requested within the cooldown.
            PartialDispatchFailure: when delivery fails; the code is invalidated.
        """

        setting = self.registry.get_settings(user_id)[channel]
        if not setting.registered_identifier:
            raise NotFoundError(f"No {channel.value} protection registered for user {user_id}")
        if channel == Channel.EMAIL:
            address = setting.registered_identifier
        else:
            address = self.registry.get_contact_email(user_id)
        if not address:
            raise NotFoundError(f"No contact email registered for user {user_id}")

        subject = channel_subject(user_id, channel)
        issue = self.otp.generate(subject, CHANNEL_VERIFICATION_PURPOSE)
        minutes = int(self.otp.ttl.total_seconds() // 60)
        result = self.email.send(
            address,
            {
                "subject": "Your CrowdShield verification code",
                "text": (
                    f"Use code {issue.code} to verify {setting.registered_identifier} "
                    f"for {channel.value} protection.\nThe code expires in {minutes} minutes."
                ),
            },
        )
        if not result.success:
            self.otp.invalidate(subject, CHANNEL_VERIFICATION_PURPOSE)
            raise PartialDispatchFailure(
                f"Could not deliver verification code for {channel.value}", user_id=user_id, error=result.error
            )
        return issue.expires_at

    def confirm(self, user_id: str, channel: Channel, code: str) -> OTPVerification:
        """Verify ``code`` and stamp ``verified_at`` on the channel setting when it matches."""

        outcome = self.otp.verify(channel_subject(user_id, channel), CHANNEL_VERIFICATION_PURPOSE, code)
        if outcome.success:
            self.registry.mark_verified(user_id, channel)
        if self.activity:
            self.activity.log(
                "otp_verify",
                user_id=user_id,
                result="success" if outcome.success else "failed",
                details={"channel": channel.value, "status": outcome.status.value},
            )
        return outcome


__all__ = [
    "CHANNEL_VERIFICATION_PURPOSE",
    "ChannelVerificationService",
    "OTPIssue",
    "OTPManager",
    "OTPStatus",
    "OTPVerification",
    "channel_subject",
]
