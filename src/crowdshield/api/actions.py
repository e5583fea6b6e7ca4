"""Block / mark-safe list and activity endpoints.

Endpoints:
- POST /actions/block
- POST /actions/mark-safe
- GET /actions/my-lists
- GET /activity/my-history
"""

from fastapi import APIRouter, Depends, Query, status

from crowdshield.api.auth import require_token
from crowdshield.services.factories import ServiceContainer, get_services
from crowdshield.services.models import EntityListInput

router = APIRouter(tags=["actions"])


@router.post("/actions/block", status_code=status.HTTP_201_CREATED)
def block_entity(
    payload: EntityListInput,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    entry = services.entity_lists.block(user["user_id"], payload.entity, payload.entity_kind)
    return entry.to_dict()


@router.post("/actions/mark-safe", status_code=status.HTTP_201_CREATED)
def mark_entity_safe(
    payload: EntityListInput,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    entry = services.entity_lists.mark_safe(user["user_id"], payload.entity, payload.entity_kind)
    return entry.to_dict()


@router.get("/actions/my-lists")
def my_lists(user=Depends(require_token), services: ServiceContainer = Depends(get_services)):
    lists = services.entity_lists.lists(user["user_id"])
    return {name: [entry.to_dict() for entry in entries] for name, entries in lists.items()}


@router.get("/activity/my-history")
def my_activity(
    limit: int = Query(50, ge=1, le=200),
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    entries = services.activity.list_user_activity(user["user_id"], limit=limit)
    return {"activities": [entry.to_dict() for entry in entries]}
