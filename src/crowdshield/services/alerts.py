"""Alert fan-out: turn an incoming contact attempt into per-user alerts.

A trigger resolves the protected recipients, scores the sender, and for every
matched user commits a pending alert before any notification is attempted.
Notifications run on the dispatcher pool and never undo committed alerts.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Set

from crowdshield.errors import ValidationError
from crowdshield.normalization import normalize_entity
from crowdshield.observability import Observability
from crowdshield.services.dispatch import AlertDispatcher, DispatchBatch
from crowdshield.services.entity_lists import EntityListService
from crowdshield.services.protection import ProtectionRegistry
from crowdshield.services.risk import RiskResult, RiskScoringEngine
from crowdshield.settings import Settings, get_settings
from crowdshield.store.activity_store import ActivityLogStore
from crowdshield.store.alert_store import AlertStore
from crowdshield.store.schema import AlertAction, AlertHistoryEntry, Channel, PendingAlert, RiskLevel
from crowdshield.util.clock import Clock, SystemClock

LOGGER = logging.getLogger(__name__)

_CHANNEL_LABELS = {
    Channel.CALL: "call",
    Channel.SMS: "SMS",
    Channel.EMAIL: "email",
    Channel.UPI: "payment request",
}


@dataclass(slots=True)
class TriggerResult:
    """Summary returned to the caller for logging and auditing."""

    alerts_created: int
    risk: RiskResult | None
    matched_users: Set[str] = field(default_factory=set)
    dispatch: DispatchBatch = field(default_factory=DispatchBatch)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "alerts_created": self.alerts_created,
            "matched_users": len(self.matched_users),
            "risk": self.risk.to_dict() if self.risk else None,
        }


def default_alert_message(channel: Channel, sender: str, risk: RiskResult) -> str:
    label = _CHANNEL_LABELS.get(channel, channel.value)
    return f"Incoming {label} from {sender}: {risk.risk_message} (score {risk.score})"


class AlertFanoutPipeline:
    """Create bounded pending alerts and dispatch notifications for protected users."""

    def __init__(
        self,
        *,
        registry: ProtectionRegistry,
        scoring: RiskScoringEngine,
        store: AlertStore,
        dispatcher: AlertDispatcher,
        entity_lists: EntityListService | None = None,
        activity: ActivityLogStore | None = None,
        clock: Clock | None = None,
        settings: Settings | None = None,
        observability: Observability | None = None,
    ) -> None:
        resolved = settings or get_settings()
        self.registry = registry
        self.scoring = scoring
        self.store = store
        self.dispatcher = dispatcher
        self.entity_lists = entity_lists
        self.activity = activity
        self.clock = clock or SystemClock()
        self.observability = observability
        self.pending_capacity = resolved.alerts.pending_capacity
        self.history_capacity = resolved.alerts.history_capacity
        self.escalation_levels = frozenset(level.lower() for level in resolved.alerts.escalation_levels)

    def trigger(
        self,
        channel: Channel,
        from_entity: str,
        recipient_identifier: str,
        message: str | None = None,
    ) -> TriggerResult:
        """Fan out alerts for a contact attempt from ``from_entity`` to ``recipient_identifier``.

        Args:
            channel: Medium the contact arrived on.
            from_entity: Sender identifier, raw or canonical.
            recipient_identifier: Identifier the contact was addressed to.
            message: Optional alert text; a default is derived from the risk result.

        Returns:
            TriggerResult with the number of alerts committed, the sender's risk
            (``None`` when nobody is protected), and the dispatch batch.

        Raises:
            TransientStoreError: when matching, scoring, or an append fails.
        """

        started = time.perf_counter()
        matched = self.registry.find_protected_users(recipient_identifier, channel)
        if not matched:
            LOGGER.debug("No protected users for channel=%s recipient=%s", channel.value, recipient_identifier)
            return TriggerResult(alerts_created=0, risk=None)

        risk = self.scoring.score(from_entity)
        if risk.risk_level == RiskLevel.SAFE:
            return TriggerResult(alerts_created=0, risk=risk, matched_users=matched)

        sender = risk.entity or normalize_entity(from_entity)
        text = message or default_alert_message(channel, sender, risk)
        category = risk.breakdown[-1].category if risk.breakdown else None
        escalate = risk.risk_level.value in self.escalation_levels
        batch = DispatchBatch()
        created = 0

        for user_id in sorted(matched):
            alert = PendingAlert(
                alert_id=str(uuid.uuid4()),
                user_id=user_id,
                channel=channel.value,
                from_entity=sender,
                risk_level=risk.risk_level.value,
                risk_score=risk.score,
                message=text,
                category=category,
                created_at=self.clock.now(),
            )
            self.store.append_pending(alert, capacity=self.pending_capacity)
            created += 1

            payload = {
                "type": "fraud_alert",
                "alert_mode": self.registry.alert_mode(user_id, channel).value,
                **alert.to_dict(),
            }
            batch.add(self.dispatcher.submit_realtime(user_id, payload))
            if escalate:
                address = self.registry.get_contact_email(user_id)
                batch.add(self.dispatcher.submit_secondary(user_id, address, self._email_payload(alert, risk)))

        LOGGER.info(
            "Created %s alert(s) channel=%s sender=%s level=%s",
            created,
            channel.value,
            sender,
            risk.risk_level.value,
        )
        if self.observability:
            self.observability.increment("alerts.created", value=created, tags={"level": risk.risk_level.value})
            self.observability.record_timing(
                "alerts.trigger_ms", (time.perf_counter() - started) * 1000.0, tags={"channel": channel.value}
            )
        return TriggerResult(alerts_created=created, risk=risk, matched_users=matched, dispatch=batch)

    def acknowledge(self, user_id: str, alert_id: str, action: AlertAction | str | None = None) -> PendingAlert:
        """Move a pending alert to history with ``action`` (``dismissed`` when omitted).

        ``blocked`` and ``marked_safe`` also add the sender to the user's lists.

        Raises:
            NotFoundError: when the user has no pending alert ``alert_id``.
        """

        try:
            resolved = AlertAction(action) if action else AlertAction.DISMISSED
        except ValueError as exc:
            raise ValidationError(f"Unsupported alert action '{action}'", field="action") from exc
        alert = self.store.acknowledge(
            user_id,
            alert_id,
            action=resolved.value,
            acknowledged_at=self.clock.now(),
            history_capacity=self.history_capacity,
        )
        if self.entity_lists and resolved in (AlertAction.BLOCKED, AlertAction.MARKED_SAFE):
            self._apply_list_action(user_id, alert.from_entity, resolved)
        if self.activity:
            self.activity.log(
                "alert_acknowledged",
                user_id=user_id,
                target_entity=alert.from_entity,
                risk_level=alert.risk_level,
                risk_score=alert.risk_score,
                details={"alert_id": alert_id, "action": resolved.value},
                created_at=alert.acknowledged_at,
            )
        return alert

    def list_pending(self, user_id: str) -> List[PendingAlert]:
        return self.store.list_pending(user_id)

    def list_history(self, user_id: str, limit: int | None = None) -> List[AlertHistoryEntry]:
        return self.store.list_history(user_id, limit=limit)

    def _apply_list_action(self, user_id: str, entity: str, action: AlertAction) -> None:
        add = self.entity_lists.block if action == AlertAction.BLOCKED else self.entity_lists.mark_safe
        try:
            add(user_id, entity)
        except ValidationError:
            LOGGER.debug("Entity %s already listed for user_id=%s", entity, user_id)

    @staticmethod
    def _email_payload(alert: PendingAlert, risk: RiskResult) -> Dict[str, Any]:
        categories: Iterable[str] = risk.categories() or ["Unknown"]
        return {
            "subject": f"CrowdShield: {risk.risk_level.value.replace('_', ' ').upper()} contact from {alert.from_entity}",
            "text": "\n".join(
                [
                    alert.message,
                    f"Channel: {alert.channel}",
                    f"Risk score: {risk.score} across {risk.total_reports} report(s)",
                    f"Reported categories: {', '.join(categories)}",
                ]
            ),
        }


__all__ = ["AlertFanoutPipeline", "TriggerResult", "default_alert_message"]
