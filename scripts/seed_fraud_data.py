#!/usr/bin/env python
"""Populate the configured database with demo fraud reports.

Reports for each known entity are spread over the trailing 25 days so risk
checks return non-trivial results immediately.

Usage:
    python scripts/seed_fraud_data.py [--seed 7] [--dry-run]

Entities that already have reports are skipped, so the script can be re-run.
"""

from __future__ import annotations

import argparse
import logging
import random
import sys
import uuid
from datetime import timedelta

from crowdshield.normalization import normalize_entity
from crowdshield.store.report_store import ReportStore
from crowdshield.store.schema import FraudCategory, FraudReport
from crowdshield.util.clock import utcnow

LOGGER = logging.getLogger("crowdshield.scripts.seed_fraud_data")

# (entity, kind, category, description, report count)
KNOWN_FRAUDULENT_ENTITIES = [
    ("7632743899", "phone", FraudCategory.PHISHING, "Known scam caller pretending to be the IRS", 15),
    ("9876543210", "phone", FraudCategory.FINANCIAL_FRAUD, "Lottery scam calls", 8),
    ("8005551234", "phone", FraudCategory.TECH_SUPPORT_SCAM, "Fake Microsoft support scam", 22),
    ("9998887777", "phone", FraudCategory.ROMANCE_SCAM, "Romance scam targeting elderly", 6),
    ("1234567890", "phone", FraudCategory.IDENTITY_THEFT, "Phishing for SSN and bank details", 12),
    ("prince.nigeria@scam.com", "email", FraudCategory.FINANCIAL_FRAUD, "Inheritance advance-fee scam", 50),
    ("support@amaz0n-verify.com", "email", FraudCategory.PHISHING, "Fake Amazon verification phishing", 35),
    ("winner@lotteryscam.net", "email", FraudCategory.FAKE_LOTTERY, "Fake lottery winner notification", 28),
    ("verify@paypa1-secure.com", "email", FraudCategory.IDENTITY_THEFT, "PayPal phishing for credentials", 40),
    ("helpdesk@microsoft-alert.com", "email", FraudCategory.TECH_SUPPORT_SCAM, "Fake Microsoft virus alert", 18),
    ("scam@test.com", "email", FraudCategory.IDENTITY_THEFT, "Known scam email for testing", 10),
    ("fraudster@upi", "upi", FraudCategory.FINANCIAL_FRAUD, "Fake payment request scam", 7),
    ("givemoney@ybl", "upi", FraudCategory.INVESTMENT_SCAM, "Fake crypto investment scheme", 5),
    ("1234567890123456", "bank", FraudCategory.FINANCIAL_FRAUD, "Account used to launder scam proceeds", 3),
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Seed demo fraud reports.")
    parser.add_argument("--seed", type=int, default=None, help="Random seed for reproducible timestamps.")
    parser.add_argument("--dry-run", action="store_true", help="Print what would be inserted without writing.")
    return parser.parse_args()


def seed(store: ReportStore, *, rng: random.Random, dry_run: bool = False) -> int:
    """Insert demo reports and return how many were created."""

    now = utcnow()
    created = 0
    for raw_entity, kind, category, description, count in KNOWN_FRAUDULENT_ENTITIES:
        entity = normalize_entity(raw_entity)
        existing = store.count_for_entity(entity)
        if existing:
            LOGGER.info("Skipping %s - already has %s report(s)", entity, existing)
            continue
        if dry_run:
            LOGGER.info("Dry run: would create %s report(s) for %s", count, entity)
            continue
        for index in range(count):
            store.insert_report(
                FraudReport(
                    report_id=str(uuid.uuid4()),
                    target_entity=entity,
                    entity_kind=kind,
                    category=category.value,
                    description=f"{description} - Report #{index + 1}",
                    timestamp=now - timedelta(days=rng.randrange(25), minutes=rng.randrange(1440)),
                )
            )
        created += count
        LOGGER.info("Created %s report(s) for %s", count, entity)
    return created


def main() -> int:
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s %(message)s")
    args = parse_args()
    store = ReportStore()
    created = seed(store, rng=random.Random(args.seed), dry_run=args.dry_run)
    LOGGER.info("Seed complete: %s report(s) created; %s active in total", created, store.count_active())
    return 0


if __name__ == "__main__":
    sys.exit(main())
