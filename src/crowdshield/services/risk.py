"""Crowd-intelligence risk scoring over recent community reports."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Dict, List

from crowdshield.normalization import normalize_entity
from crowdshield.settings import Settings, get_settings
from crowdshield.store.report_store import ReportStore
from crowdshield.store.schema import RiskLevel
from crowdshield.util.clock import Clock, SystemClock, ensure_utc

LOGGER = logging.getLogger(__name__)

RISK_COLORS: Dict[RiskLevel, str] = {
    RiskLevel.SAFE: "green",
    RiskLevel.SUSPICIOUS: "yellow",
    RiskLevel.HIGH_RISK: "red",
}

RISK_MESSAGES: Dict[RiskLevel, str] = {
    RiskLevel.SAFE: "No fraud reports found. This entity appears safe.",
    RiskLevel.SUSPICIOUS: "Some suspicious activity detected. Proceed with caution.",
    RiskLevel.HIGH_RISK: "HIGH RISK / UNSAFE - Multiple fraud reports detected! Exercise extreme caution.",
}


@dataclass(slots=True)
class RiskContribution:
    """Points a single report added to the score."""

    report_id: str
    category: str
    timestamp: datetime
    points_added: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "report_id": self.report_id,
            "category": self.category,
            "timestamp": self.timestamp.isoformat(),
            "points_added": self.points_added,
        }


@dataclass(slots=True)
class RiskResult:
    """Computed risk for one canonical identifier. Never persisted."""

    entity: str
    score: int
    risk_level: RiskLevel
    total_reports: int
    checked_at: datetime
    breakdown: List[RiskContribution] = field(default_factory=list)

    @property
    def risk_color(self) -> str:
        return RISK_COLORS[self.risk_level]

    @property
    def risk_message(self) -> str:
        return RISK_MESSAGES[self.risk_level]

    def categories(self) -> List[str]:
        seen: List[str] = []
        for item in self.breakdown:
            if item.category not in seen:
                seen.append(item.category)
        return seen

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entity": self.entity,
            "risk_score": self.score,
            "risk_level": self.risk_level.value,
            "risk_color": self.risk_color,
            "risk_message": self.risk_message,
            "total_reports": self.total_reports,
            "categories": self.categories(),
            "breakdown": [item.to_dict() for item in self.breakdown],
            "checked_at": self.checked_at.isoformat(),
        }


def classify_score(score: int, *, suspicious_max: int = 5) -> RiskLevel:
    """Map a score onto its tier: 0 is safe, up to ``suspicious_max`` is suspicious."""

    if score <= 0:
        return RiskLevel.SAFE
    if score <= suspicious_max:
        return RiskLevel.SUSPICIOUS
    return RiskLevel.HIGH_RISK


class RiskScoringEngine:
    """Score identifiers from the active reports inside a trailing window.

    Each report contributes ``scoring.base_points``; reports in one of
    ``scoring.weighted_categories`` add ``scoring.weighted_bonus`` on top.
    """

    def __init__(
        self,
        *,
        store: ReportStore,
        clock: Clock | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.store = store
        self.clock = clock or SystemClock()
        scoring = (settings or get_settings()).scoring
        self.window = timedelta(days=scoring.window_days)
        self.base_points = scoring.base_points
        self.weighted_bonus = scoring.weighted_bonus
        self.weighted_categories = frozenset(scoring.weighted_categories)
        self.suspicious_max = scoring.suspicious_max_score

    def score(self, entity: str, as_of: datetime | None = None) -> RiskResult:
        """Compute the risk of ``entity`` as of ``as_of`` (defaults to now).

        Raises:
            TransientStoreError: when reports cannot be read.
        """

        canonical = normalize_entity(entity)
        checked_at = ensure_utc(as_of) if as_of else self.clock.now()
        if not canonical:
            return RiskResult(
                entity=canonical, score=0, risk_level=RiskLevel.SAFE, total_reports=0, checked_at=checked_at
            )

        reports = self.store.list_active_for_entity(canonical, start=checked_at - self.window, end=checked_at)
        breakdown: List[RiskContribution] = []
        total = 0
        for report in reports:
            points = self.base_points
            if report.category in self.weighted_categories:
                points += self.weighted_bonus
            total += points
            breakdown.append(
                RiskContribution(
                    report_id=report.report_id,
                    category=report.category,
                    timestamp=report.timestamp,
                    points_added=points,
                )
            )

        level = classify_score(total, suspicious_max=self.suspicious_max)
        LOGGER.debug("Scored entity=%s score=%s level=%s reports=%s", canonical, total, level.value, len(reports))
        return RiskResult(
            entity=canonical,
            score=total,
            risk_level=level,
            total_reports=len(reports),
            checked_at=checked_at,
            breakdown=breakdown,
        )


__all__ = ["RiskContribution", "RiskResult", "RiskScoringEngine", "classify_score"]
