"""Alert fan-out and inbox endpoints.

Endpoints:
- POST /alerts/trigger                  (gateway)
- GET /alerts/pending
- GET /alerts/history
- POST /alerts/{alert_id}/acknowledge
"""

from typing import Optional

from fastapi import APIRouter, Depends, Query

from crowdshield.api.auth import require_role, require_token
from crowdshield.services.factories import ServiceContainer, get_services
from crowdshield.services.models import AcknowledgeInput, ContactAttemptInput

router = APIRouter(prefix="/alerts", tags=["alerts"])


@router.post("/trigger")
def trigger_alerts(
    payload: ContactAttemptInput,
    user=Depends(require_role("gateway")),
    services: ServiceContainer = Depends(get_services),
):
    """Run an incoming contact attempt through matching, scoring, and fan-out.

    Notifications are dispatched in the background; the response only reports
    committed alerts.
    """

    result = services.alerts.trigger(
        payload.channel,
        payload.from_entity,
        payload.recipient_identifier,
        payload.message,
    )
    return result.to_dict()


@router.get("/pending")
def list_pending(user=Depends(require_token), services: ServiceContainer = Depends(get_services)):
    alerts = services.alerts.list_pending(user["user_id"])
    return {"count": len(alerts), "alerts": [alert.to_dict() for alert in alerts]}


@router.get("/history")
def list_history(
    limit: Optional[int] = Query(None, ge=1, le=500),
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    entries = services.alerts.list_history(user["user_id"], limit=limit)
    return {"count": len(entries), "history": [entry.to_dict() for entry in entries]}


@router.post("/{alert_id}/acknowledge")
def acknowledge_alert(
    alert_id: str,
    payload: Optional[AcknowledgeInput] = None,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    action = payload.action if payload else None
    alert = services.alerts.acknowledge(user["user_id"], alert_id, action)
    return alert.to_dict()
