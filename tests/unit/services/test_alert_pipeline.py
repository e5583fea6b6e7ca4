"""Unit tests for alert fan-out and acknowledgement."""

from __future__ import annotations

import pytest

from crowdshield.errors import NotFoundError, ValidationError
from crowdshield.services.alerts import AlertFanoutPipeline
from crowdshield.services.channels import SendResult
from crowdshield.services.dispatch import AlertDispatcher
from crowdshield.services.models import ProtectionSettingInput
from crowdshield.store.schema import AlertMode, Channel, EntityListKind, RiskLevel

RECIPIENT = "9876543210"
SENDER = "7632743899"


def _protect(services, user_id, identifier=RECIPIENT, channel=Channel.CALL):
    services.registry.register(user_id, channel, ProtectionSettingInput(registered_identifier=identifier))


def test_safe_sender_creates_no_alerts(services, realtime):
    _protect(services, "member_1")
    realtime.connect("member_1")

    result = services.alerts.trigger(Channel.CALL, "9000000000", RECIPIENT)

    assert result.alerts_created == 0
    assert result.risk.risk_level == RiskLevel.SAFE
    assert result.matched_users == {"member_1"}
    assert services.alerts.list_pending("member_1") == []
    assert realtime.delivered("member_1") == []


def test_unprotected_recipient_skips_scoring(services, seed_reports):
    seed_reports(SENDER, 3)

    result = services.alerts.trigger(Channel.CALL, SENDER, "1111111111")

    assert result.alerts_created == 0
    assert result.risk is None
    assert result.to_dict()["risk"] is None


def test_suspicious_sender_alerts_every_matched_user(services, realtime, email, seed_reports):
    _protect(services, "member_1")
    _protect(services, "member_2", identifier="+98765 43210")
    _protect(services, "member_3", identifier=RECIPIENT, channel=Channel.SMS)
    seed_reports(SENDER, 3)
    realtime.connect("member_1")

    result = services.alerts.trigger(Channel.CALL, "(763) 274-3899", RECIPIENT)
    outcomes = result.dispatch.wait(timeout=5)

    assert result.alerts_created == 2
    assert result.risk.risk_level == RiskLevel.SUSPICIOUS
    assert result.matched_users == {"member_1", "member_2"}
    for user_id in ("member_1", "member_2"):
        pending = services.alerts.list_pending(user_id)
        assert len(pending) == 1
        assert pending[0].from_entity == SENDER
        assert pending[0].risk_score == 3
    assert services.alerts.list_pending("member_3") == []

    delivered = realtime.delivered("member_1")
    assert len(delivered) == 1
    assert delivered[0]["type"] == "fraud_alert"
    assert delivered[0]["alert_mode"] == "popup"
    assert sorted(outcome.status for outcome in outcomes) == ["delivered", "user_offline"]
    assert email.outbox == []


def test_push_carries_each_recipients_alert_mode(services, realtime, seed_reports):
    services.registry.register(
        "member_1",
        Channel.CALL,
        ProtectionSettingInput(registered_identifier=RECIPIENT, alert_mode=AlertMode.BLOCK),
    )
    services.registry.register(
        "member_2",
        Channel.CALL,
        ProtectionSettingInput(registered_identifier=RECIPIENT, alert_mode=AlertMode.SILENT),
    )
    seed_reports(SENDER, 3)
    realtime.connect("member_1")
    realtime.connect("member_2")

    result = services.alerts.trigger(Channel.CALL, SENDER, RECIPIENT)
    result.dispatch.wait(timeout=5)

    assert result.alerts_created == 2
    assert realtime.delivered("member_1")[0]["alert_mode"] == "block"
    assert realtime.delivered("member_2")[0]["alert_mode"] == "silent"


def test_high_risk_escalates_to_contact_email(services, email, seed_reports):
    _protect(services, "member_1")
    services.registry.set_contact_email("member_1", "member1@example.com")
    seed_reports(SENDER, 2, category="Identity Theft")

    result = services.alerts.trigger(Channel.CALL, SENDER, RECIPIENT)
    result.dispatch.wait(timeout=5)

    assert result.risk.risk_level == RiskLevel.HIGH_RISK
    assert result.dispatch.failure_count() == 0
    assert len(email.outbox) == 1
    assert email.outbox[0]["to"] == "member1@example.com"
    assert "HIGH RISK" in email.outbox[0]["subject"]


class _FailingEmail:
    def send(self, address, payload):
        return SendResult(success=False, error="smtp unavailable")


def test_failed_secondary_keeps_committed_alert(services, realtime, seed_reports, settings, clock):
    _protect(services, "member_1")
    services.registry.set_contact_email("member_1", "member1@example.com")
    seed_reports(SENDER, 6)
    dispatcher = AlertDispatcher(realtime=realtime, secondary=_FailingEmail(), max_workers=2)
    pipeline = AlertFanoutPipeline(
        registry=services.registry,
        scoring=services.scoring,
        store=services.alerts.store,
        dispatcher=dispatcher,
        clock=clock,
        settings=settings,
    )
    try:
        result = pipeline.trigger(Channel.CALL, SENDER, RECIPIENT)
        result.dispatch.wait(timeout=5)

        assert result.alerts_created == 1
        assert result.dispatch.failure_count() == 1
        assert len(pipeline.list_pending("member_1")) == 1
    finally:
        dispatcher.shutdown()


def test_missing_contact_email_counts_as_failure(services, seed_reports):
    _protect(services, "member_1")
    seed_reports(SENDER, 6)

    result = services.alerts.trigger(Channel.CALL, SENDER, RECIPIENT)

    assert result.alerts_created == 1
    assert result.dispatch.failure_count() == 1


def test_custom_message_is_kept(services, seed_reports):
    _protect(services, "member_1")
    seed_reports(SENDER, 1)

    services.alerts.trigger(Channel.CALL, SENDER, RECIPIENT, message="Bank KYC call")

    assert services.alerts.list_pending("member_1")[0].message == "Bank KYC call"


def test_acknowledge_with_block_adds_sender_to_blocked_list(services, seed_reports):
    _protect(services, "member_1")
    seed_reports(SENDER, 1)
    services.alerts.trigger(Channel.CALL, SENDER, RECIPIENT)
    alert = services.alerts.list_pending("member_1")[0]

    acked = services.alerts.acknowledge("member_1", alert.alert_id, "blocked")

    assert acked.acknowledged is True
    assert services.alerts.list_pending("member_1") == []
    assert [entry.action for entry in services.alerts.list_history("member_1")] == ["blocked"]
    assert services.entity_lists.is_blocked("member_1", SENDER)
    actions = [entry.action_type for entry in services.activity.list_user_activity("member_1")]
    assert "alert_acknowledged" in actions


def test_acknowledge_defaults_to_dismissed(services, seed_reports):
    _protect(services, "member_1")
    seed_reports(SENDER, 1)
    services.alerts.trigger(Channel.CALL, SENDER, RECIPIENT)
    alert = services.alerts.list_pending("member_1")[0]

    services.alerts.acknowledge("member_1", alert.alert_id)

    assert services.alerts.list_history("member_1")[0].action == "dismissed"
    assert services.entity_lists.lists("member_1") == {"blocked": [], "safe": []}


def test_acknowledge_marked_safe_tolerates_existing_entry(services, seed_reports):
    _protect(services, "member_1")
    seed_reports(SENDER, 1)
    services.entity_lists.mark_safe("member_1", SENDER)
    services.alerts.trigger(Channel.CALL, SENDER, RECIPIENT)
    alert = services.alerts.list_pending("member_1")[0]

    services.alerts.acknowledge("member_1", alert.alert_id, "marked_safe")

    assert len(services.entity_lists.lists("member_1")[EntityListKind.SAFE.value]) == 1


def test_acknowledge_rejects_unknown_action_and_alert(services):
    with pytest.raises(ValidationError):
        services.alerts.acknowledge("member_1", "whatever", "archive")
    with pytest.raises(NotFoundError):
        services.alerts.acknowledge("member_1", "missing")
