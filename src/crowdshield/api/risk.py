"""Risk check endpoints.

Endpoints:
- POST /check-risk
- GET /check-risk/{entity}
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends

from crowdshield.api.auth import optional_token
from crowdshield.normalization import EntityKind, infer_entity_kind
from crowdshield.services.factories import ServiceContainer, get_services
from crowdshield.services.models import RiskCheckInput

router = APIRouter(tags=["risk"])


def _check(
    services: ServiceContainer,
    entity: str,
    kind: Optional[EntityKind],
    user: Optional[Dict[str, str]],
) -> Dict[str, Any]:
    result = services.scoring.score(entity)
    resolved_kind = kind or (infer_entity_kind(result.entity) if result.entity else None)
    services.activity.log(
        "check_risk",
        user_id=user["user_id"] if user else None,
        target_entity=result.entity,
        entity_kind=resolved_kind.value if resolved_kind else None,
        risk_level=result.risk_level.value,
        risk_score=result.score,
        created_at=result.checked_at,
    )
    body = result.to_dict()
    body["entity_kind"] = resolved_kind.value if resolved_kind else None
    return body


@router.post("/check-risk")
def check_risk(
    payload: RiskCheckInput,
    user=Depends(optional_token),
    services: ServiceContainer = Depends(get_services),
):
    """Score an identifier from community reports in the trailing window."""

    return _check(services, payload.entity, payload.entity_kind, user)


@router.get("/check-risk/{entity}")
def check_risk_path(
    entity: str,
    user=Depends(optional_token),
    services: ServiceContainer = Depends(get_services),
):
    return _check(services, entity, None, user)
