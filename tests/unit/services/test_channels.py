"""Unit tests for the notification channel implementations."""

from __future__ import annotations

from unittest.mock import patch

from crowdshield.services.channels import (
    InMemoryRealtimeChannel,
    LogEmailChannel,
    ResendEmailChannel,
    build_email_channel,
)


def test_realtime_channel_drops_offline_payloads():
    channel = InMemoryRealtimeChannel()
    channel.send("member_1", {"n": 1})
    channel.connect("member_1")
    channel.send("member_1", {"n": 2})
    channel.disconnect("member_1")

    assert channel.is_connected("member_1") is False
    assert channel.delivered("member_1") == [{"n": 2}]


def test_resend_channel_sends_html_email():
    channel = ResendEmailChannel(api_key="re_test", from_email="alerts@example.com", from_name="Alerts")

    with patch("resend.Emails.send", return_value={"id": "email-123"}) as send:
        result = channel.send("member@example.com", {"subject": "Heads up", "text": "line one\nline <two>"})

    assert result.success
    assert result.message_id == "email-123"
    params = send.call_args.args[0]
    assert params["from"] == "Alerts <alerts@example.com>"
    assert params["to"] == ["member@example.com"]
    assert params["subject"] == "Heads up"
    assert params["html"] == "<p>line one</p>\n<p>line &lt;two&gt;</p>"


def test_resend_channel_reports_provider_errors():
    channel = ResendEmailChannel(api_key="re_test", from_email="alerts@example.com", from_name="Alerts")

    with patch("resend.Emails.send", side_effect=RuntimeError("rate limited")):
        result = channel.send("member@example.com", {"subject": "Heads up"})

    assert result.success is False
    assert result.error == "rate limited"


def test_resend_channel_without_key_fails_fast():
    channel = ResendEmailChannel(api_key=None, from_email="alerts@example.com", from_name="Alerts")

    with patch("resend.Emails.send") as send:
        result = channel.send("member@example.com", {"subject": "Heads up"})

    assert result.success is False
    send.assert_not_called()


def test_build_email_channel_follows_backend(make_settings):
    assert isinstance(build_email_channel(make_settings(notifications={"email_backend": "log"})), LogEmailChannel)
    resend_settings = make_settings(notifications={"email_backend": "resend", "resend_api_key": "re_test"})
    assert isinstance(build_email_channel(resend_settings), ResendEmailChannel)
