"""Notification channels used by alert fan-out and channel verification.

Two collaborator shapes are consumed:

* realtime push (``send(user_id, payload)`` plus ``is_connected(user_id)``),
  fire-and-forget with no delivery receipt;
* secondary email-class delivery (``send(address, payload) -> SendResult``).

The bundled realtime channel keeps connections and delivered payloads in
memory. Email goes through Resend, or to the log in the local profile.
"""

from __future__ import annotations

import html
import logging
import threading
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Protocol, Set

import resend

from crowdshield.settings import Settings, get_settings

LOGGER = logging.getLogger(__name__)


@dataclass(slots=True)
class SendResult:
    success: bool
    error: str | None = None
    message_id: str | None = None


class RealtimeChannel(Protocol):
    def send(self, user_id: str, payload: Mapping[str, Any]) -> None:  # pragma: no cover - Protocol
        ...

    def is_connected(self, user_id: str) -> bool:  # pragma: no cover - Protocol
        ...


class SecondaryChannel(Protocol):
    def send(self, address: str, payload: Mapping[str, Any]) -> SendResult:  # pragma: no cover - Protocol
        ...


class InMemoryRealtimeChannel:
    """Connection registry with a per-user inbox of delivered payloads."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._connected: Set[str] = set()
        self._inbox: Dict[str, List[Dict[str, Any]]] = {}

    def connect(self, user_id: str) -> None:
        with self._lock:
            self._connected.add(user_id)

    def disconnect(self, user_id: str) -> None:
        with self._lock:
            self._connected.discard(user_id)

    def is_connected(self, user_id: str) -> bool:
        with self._lock:
            return user_id in self._connected

    def send(self, user_id: str, payload: Mapping[str, Any]) -> None:
        with self._lock:
            if user_id not in self._connected:
                LOGGER.debug("Dropping realtime payload for offline user_id=%s", user_id)
                return
            self._inbox.setdefault(user_id, []).append(dict(payload))

    def delivered(self, user_id: str) -> List[Dict[str, Any]]:
        with self._lock:
            return list(self._inbox.get(user_id, []))


def _render_html(payload: Mapping[str, Any]) -> str:
    body = payload.get("html")
    if body:
        return str(body)
    lines = [f"<p>{html.escape(str(line))}</p>" for line in str(payload.get("text", "")).splitlines() if line]
    return "\n".join(lines) or "<p></p>"


class ResendEmailChannel:
    """Deliver email through the Resend API."""

    def __init__(self, *, api_key: str | None, from_email: str, from_name: str) -> None:
        self.api_key = api_key or ""
        self.from_email = from_email
        self.from_name = from_name
        if not self.api_key:
            LOGGER.warning("Resend API key not configured - emails will fail")
        resend.api_key = self.api_key

    def send(self, address: str, payload: Mapping[str, Any]) -> SendResult:
        if not self.api_key:
            return SendResult(success=False, error="resend api key not configured")

        params: resend.Emails.SendParams = {
            "from": f"{self.from_name} <{self.from_email}>",
            "to": [address],
            "subject": str(payload.get("subject", "CrowdShield alert")),
            "html": _render_html(payload),
        }
        try:
            response = resend.Emails.send(params)
        except Exception as exc:  # resend raises its own error hierarchy plus transport errors
            LOGGER.error("Failed to send email to %s: %s", address, exc)
            return SendResult(success=False, error=str(exc))

        message_id = response.get("id") if isinstance(response, Mapping) else getattr(response, "id", None)
        LOGGER.info("Email sent to %s id=%s", address, message_id)
        return SendResult(success=True, message_id=message_id)


class LogEmailChannel:
    """Write outgoing email to the log and keep a copy in ``outbox``."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self.outbox: List[Dict[str, Any]] = []

    def send(self, address: str, payload: Mapping[str, Any]) -> SendResult:
        with self._lock:
            self.outbox.append({"to": address, **dict(payload)})
        LOGGER.info("Email (log backend) to=%s subject=%s", address, payload.get("subject"))
        return SendResult(success=True, message_id=f"log-{len(self.outbox)}")


def build_email_channel(settings: Settings | None = None) -> SecondaryChannel:
    """Return the secondary channel selected by ``notifications.email_backend``."""

    resolved = settings or get_settings()
    notifications = resolved.notifications
    if notifications.email_backend == "log":
        return LogEmailChannel()
    if notifications.email_backend == "resend":
        return ResendEmailChannel(
            api_key=notifications.resend_api_key,
            from_email=notifications.from_email,
            from_name=notifications.from_name,
        )
    raise NotImplementedError(f"Unsupported email backend '{notifications.email_backend}'")


__all__ = [
    "InMemoryRealtimeChannel",
    "LogEmailChannel",
    "RealtimeChannel",
    "ResendEmailChannel",
    "SecondaryChannel",
    "SendResult",
    "build_email_channel",
]
