"""Protection settings and channel verification endpoints.

Endpoints:
- GET /protection/settings
- PUT /protection/settings
- PUT /protection/contact-email
- PUT /protection/{channel}
- DELETE /protection/{channel}
- POST /protection/{channel}/verification
- POST /protection/{channel}/verification/confirm
"""

from fastapi import APIRouter, Depends

from crowdshield.api.auth import require_token
from crowdshield.services.factories import ServiceContainer, get_services
from crowdshield.services.models import (
    ContactEmailInput,
    OTPVerifyInput,
    ProtectionSettingInput,
    ProtectionSettingsPayload,
)
from crowdshield.store.schema import Channel

router = APIRouter(prefix="/protection", tags=["protection"])


def _serialize_settings(settings) -> dict:
    return {channel.value: setting.to_dict() for channel, setting in settings.items()}


@router.get("/settings")
def get_protection_settings(user=Depends(require_token), services: ServiceContainer = Depends(get_services)):
    user_id = user["user_id"]
    return {
        "settings": _serialize_settings(services.registry.get_settings(user_id)),
        "contact_email": services.registry.get_contact_email(user_id),
    }


@router.put("/settings")
def replace_protection_settings(
    payload: ProtectionSettingsPayload,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    updated = services.registry.register_all(user["user_id"], payload)
    return {"settings": _serialize_settings(updated)}


@router.put("/contact-email")
def set_contact_email(
    payload: ContactEmailInput,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    email = services.registry.set_contact_email(user["user_id"], payload.email)
    return {"contact_email": email}


@router.put("/{channel}")
def register_channel(
    channel: Channel,
    payload: ProtectionSettingInput,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    setting = services.registry.register(user["user_id"], channel, payload)
    return setting.to_dict()


@router.delete("/{channel}")
def disable_channel(
    channel: Channel,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    services.registry.disable(user["user_id"], channel)
    return {"channel": channel.value, "enabled": False}


@router.post("/{channel}/verification")
def request_verification(
    channel: Channel,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    """Send a one-time code confirming the registered identifier for ``channel``."""

    expires_at = services.verification.request(user["user_id"], channel)
    return {"channel": channel.value, "expires_at": expires_at.isoformat()}


@router.post("/{channel}/verification/confirm")
def confirm_verification(
    channel: Channel,
    payload: OTPVerifyInput,
    user=Depends(require_token),
    services: ServiceContainer = Depends(get_services),
):
    outcome = services.verification.confirm(user["user_id"], channel, payload.code)
    return {
        "channel": channel.value,
        "verified": outcome.success,
        "status": outcome.status.value,
        "remaining_attempts": outcome.remaining_attempts,
    }
