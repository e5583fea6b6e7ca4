"""Scheduled job entrypoint that deletes expired one-time codes."""

from __future__ import annotations

import logging
import os
import sys

from crowdshield.services.factories import build_otp_store
from crowdshield.settings import get_settings
from crowdshield.store.otp_store import InMemoryOTPStore, OTPStore
from crowdshield.util.clock import Clock, SystemClock

LOGGER = logging.getLogger("crowdshield.worker.jobs.otp_sweep")


def _configure_logging() -> None:
    level_name = get_settings().runtime.log_level.upper()
    level = getattr(logging, level_name, logging.INFO)
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s %(message)s")


def run_sweep(store: OTPStore, *, clock: Clock | None = None, dry_run: bool = False) -> int:
    """Purge records whose expiry has passed and return how many were removed."""

    now = (clock or SystemClock()).now()
    if dry_run:
        LOGGER.info("Dry run: would purge OTP records expiring at or before %s", now.isoformat())
        return 0
    removed = store.purge_expired(now)
    LOGGER.info("Purged %s expired OTP record(s)", removed)
    return removed


def main() -> int:
    """Entry point executed by the scheduler container."""

    _configure_logging()
    dry_run = os.getenv("CROWDSHIELD_OTP_SWEEP__DRY_RUN", "false").lower() in {"1", "true", "yes", "on"}

    try:
        store = build_otp_store()
    except Exception:
        LOGGER.exception("Failed to initialise OTP store")
        return 1

    if isinstance(store, InMemoryOTPStore):
        LOGGER.info("OTP backend is in-memory; nothing persistent to sweep")
        return 0

    try:
        run_sweep(store, dry_run=dry_run)
    except Exception:
        LOGGER.exception("OTP sweep failed")
        return 1
    return 0


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
