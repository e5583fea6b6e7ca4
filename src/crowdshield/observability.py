"""Structured event logging and StatsD metrics for crowdshield services."""

from __future__ import annotations

import json
import logging
import socket
import threading
from dataclasses import dataclass
from typing import Any, Mapping

from crowdshield.settings import Settings, get_settings
from crowdshield.util.clock import utcnow

_LOGGER = logging.getLogger("crowdshield.observability")
_STATSD_LOCK = threading.Lock()
_SHARED_STATSD: "_StatsdBackend | None" = None


class Observability:
    """Emit structured events and counters for one component."""

    def __init__(
        self,
        *,
        settings: Settings,
        component: str | None = None,
        metrics_backend: "_StatsdBackend | None" = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.settings = settings
        self.component = component or "core"
        self._logger = logger or _LOGGER
        self._structured_logging = bool(settings.observability.structured_logging)
        self._metrics = metrics_backend

    def emit_event(self, event: str, **fields: Any) -> None:
        payload = {
            "event": event,
            "component": self.component,
            "service": self.settings.observability.service_name,
            "timestamp": utcnow().isoformat(),
            **{str(key): value for key, value in fields.items()},
        }
        if self._structured_logging:
            self._logger.info(json.dumps(payload, default=_serialize))
        else:
            self._logger.info("%s | %s", event, payload)

    def increment(self, metric: str, *, value: float = 1.0, tags: Mapping[str, Any] | None = None) -> None:
        if not self._metrics:
            return
        self._metrics.send(metric, value, metric_type="c", tags=_normalize_tags(tags))

    def record_timing(self, metric: str, value_ms: float, *, tags: Mapping[str, Any] | None = None) -> None:
        if not self._metrics:
            return
        self._metrics.send(metric, value_ms, metric_type="ms", tags=_normalize_tags(tags))


@dataclass
class _StatsdBackend:
    """Fire-and-forget StatsD client over UDP."""

    host: str
    port: int
    prefix: str

    def __post_init__(self) -> None:
        self._address = (self.host, self.port)
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)

    def format(self, metric: str, value: float, *, metric_type: str, tags: Mapping[str, str] | None) -> str:
        scoped = f"{self.prefix}.{metric}" if self.prefix else metric
        payload = f"{scoped}:{_format_number(value)}|{metric_type}"
        if tags:
            payload = f"{payload}|#" + ",".join(f"{key}:{val}" for key, val in sorted(tags.items()))
        return payload

    def send(self, metric: str, value: float, *, metric_type: str, tags: Mapping[str, str] | None) -> None:
        payload = self.format(metric, value, metric_type=metric_type, tags=tags)
        try:
            self._socket.sendto(payload.encode("utf-8"), self._address)
        except OSError:  # pragma: no cover - network errors only surface in debug logs
            _LOGGER.debug("StatsD send failed for metric %s", metric, exc_info=True)


def get_observability(*, component: str | None = None, settings: Settings | None = None) -> Observability:
    """Return an :class:`Observability` sharing the process-wide StatsD socket."""

    resolved = settings or get_settings()
    return Observability(settings=resolved, component=component, metrics_backend=_shared_statsd(resolved))


def reset_observability_cache() -> None:
    """Drop the cached StatsD backend (used in tests)."""

    global _SHARED_STATSD
    with _STATSD_LOCK:
        _SHARED_STATSD = None


def _shared_statsd(settings: Settings) -> _StatsdBackend | None:
    global _SHARED_STATSD
    host = settings.observability.statsd_host
    if not host:
        return None
    with _STATSD_LOCK:
        if _SHARED_STATSD is None:
            _SHARED_STATSD = _StatsdBackend(
                host=host,
                port=settings.observability.statsd_port,
                prefix=settings.observability.statsd_prefix,
            )
        return _SHARED_STATSD


def _serialize(value: Any) -> Any:
    if hasattr(value, "isoformat"):
        return value.isoformat()
    if hasattr(value, "value"):
        return value.value
    return str(value)


def _normalize_tags(tags: Mapping[str, Any] | None) -> Mapping[str, str] | None:
    if not tags:
        return None
    normalized = {str(key): str(value) for key, value in tags.items() if value is not None}
    return normalized or None


def _format_number(value: float) -> str:
    formatted = f"{value:.6f}".rstrip("0").rstrip(".")
    return formatted or "0"


__all__ = ["Observability", "get_observability", "reset_observability_cache"]
