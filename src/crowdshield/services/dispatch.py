"""Non-blocking notification dispatch with captured outcomes.

Every send runs on a bounded thread pool. Task functions never raise: each one
returns a :class:`DispatchOutcome`, so callers can inspect results through a
:class:`DispatchBatch` without the pipeline ever waiting on delivery.
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from dataclasses import dataclass
from typing import Any, List, Mapping

from crowdshield.errors import PartialDispatchFailure
from crowdshield.observability import Observability
from crowdshield.services.channels import RealtimeChannel, SecondaryChannel

LOGGER = logging.getLogger(__name__)

REALTIME = "realtime"
SECONDARY = "secondary"

DELIVERED = "delivered"
USER_OFFLINE = "user_offline"
SENT = "sent"
FAILED = "failed"

DEFAULT_WAIT_SECONDS = 30.0


@dataclass(slots=True)
class DispatchOutcome:
    """Result of one realtime push or secondary send."""

    user_id: str
    kind: str
    status: str
    error: str | None = None
    exception: PartialDispatchFailure | None = None

    @property
    def failed(self) -> bool:
        return self.status == FAILED


class DispatchBatch:
    """Futures for the notifications submitted by a single trigger."""

    def __init__(self, futures: List[Future] | None = None) -> None:
        self._futures: List[Future] = list(futures or [])

    def add(self, future: Future) -> None:
        self._futures.append(future)

    def __len__(self) -> int:
        return len(self._futures)

    def wait(self, timeout: float | None = None) -> List[DispatchOutcome]:
        """Block until submitted tasks finish (or ``timeout``) and return finished outcomes."""

        done, _ = wait(self._futures, timeout=timeout)
        return [future.result() for future in self._futures if future in done]

    def failure_count(self, timeout: float | None = DEFAULT_WAIT_SECONDS) -> int:
        """Count failed secondary sends among the tasks finished within ``timeout``."""

        return sum(1 for outcome in self.wait(timeout) if outcome.kind == SECONDARY and outcome.failed)


class AlertDispatcher:
    """Submit realtime and secondary notifications to a shared worker pool."""

    def __init__(
        self,
        *,
        realtime: RealtimeChannel,
        secondary: SecondaryChannel,
        max_workers: int = 4,
        observability: Observability | None = None,
    ) -> None:
        self.realtime = realtime
        self.secondary = secondary
        self.observability = observability
        self._executor = ThreadPoolExecutor(max_workers=max(max_workers, 1), thread_name_prefix="crowdshield-dispatch")
        self._lock = threading.Lock()
        self._closed = False

    def submit_realtime(self, user_id: str, payload: Mapping[str, Any]) -> Future:
        return self._executor.submit(self._push_realtime, user_id, dict(payload))

    def submit_secondary(self, user_id: str, address: str | None, payload: Mapping[str, Any]) -> Future:
        return self._executor.submit(self._send_secondary, user_id, address, dict(payload))

    def shutdown(self, *, wait_for_pending: bool = True) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._executor.shutdown(wait=wait_for_pending)

    def _push_realtime(self, user_id: str, payload: Mapping[str, Any]) -> DispatchOutcome:
        try:
            if not self.realtime.is_connected(user_id):
                outcome = DispatchOutcome(user_id=user_id, kind=REALTIME, status=USER_OFFLINE)
            else:
                self.realtime.send(user_id, payload)
                outcome = DispatchOutcome(user_id=user_id, kind=REALTIME, status=DELIVERED)
        except Exception as exc:  # push transport errors count as offline; the push is never retried
            LOGGER.warning("Realtime push failed user_id=%s: %s", user_id, exc)
            outcome = DispatchOutcome(user_id=user_id, kind=REALTIME, status=USER_OFFLINE, error=str(exc))
        self._record(outcome)
        return outcome

    def _send_secondary(self, user_id: str, address: str | None, payload: Mapping[str, Any]) -> DispatchOutcome:
        if not address:
            error = "no contact address registered"
        else:
            try:
                result = self.secondary.send(address, payload)
            except Exception as exc:  # channel implementations may raise despite the SendResult contract
                error = str(exc) or type(exc).__name__
            else:
                error = None if result.success else (result.error or "send failed")

        if error is None:
            outcome = DispatchOutcome(user_id=user_id, kind=SECONDARY, status=SENT)
        else:
            failure = PartialDispatchFailure(
                f"Secondary notification failed for user {user_id}", user_id=user_id, error=error
            )
            LOGGER.warning("%s: %s", failure, error)
            outcome = DispatchOutcome(
                user_id=user_id, kind=SECONDARY, status=FAILED, error=error, exception=failure
            )
        self._record(outcome)
        return outcome

    def _record(self, outcome: DispatchOutcome) -> None:
        if not self.observability:
            return
        self.observability.increment("alerts.dispatch", tags={"kind": outcome.kind, "status": outcome.status})
        if outcome.failed:
            self.observability.emit_event(
                "alerts.dispatch_failed", user_id=outcome.user_id, kind=outcome.kind, error=outcome.error
            )


__all__ = ["AlertDispatcher", "DispatchBatch", "DispatchOutcome"]
