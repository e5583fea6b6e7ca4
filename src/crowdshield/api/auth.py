"""Token-based auth helpers for the crowdshield API.

Credential hashing and token issuance live outside this service; the API only
maps an ``X-API-KEY`` header onto a known principal.
"""

from typing import Callable, Dict, Optional

from fastapi import Depends, Header, HTTPException, status

# token -> principal. Replaced by the identity provider in deployed environments.
_API_TOKENS: Dict[str, Dict[str, str]] = {
    "dev-member-token": {"user_id": "member_1", "role": "member"},
    "dev-member2-token": {"user_id": "member_2", "role": "member"},
    "dev-gateway-token": {"user_id": "telephony_gateway", "role": "gateway"},
    "dev-admin-token": {"user_id": "admin", "role": "admin"},
}


def require_token(x_api_key: Optional[str] = Header(None)) -> Dict[str, str]:
    """Validate the ``X-API-KEY`` header and return the principal.

    Raises:
        HTTPException: 401 when the header is missing, 403 when it is unknown.
    """

    if not x_api_key:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing X-API-KEY")
    user = _API_TOKENS.get(x_api_key)
    if not user:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Invalid API key")
    return user


def optional_token(x_api_key: Optional[str] = Header(None)) -> Optional[Dict[str, str]]:
    """Resolve the principal when a valid key is supplied; anonymous otherwise."""

    if not x_api_key:
        return None
    return _API_TOKENS.get(x_api_key)


def require_role(required_role: str) -> Callable:
    """Dependency factory that enforces ``required_role`` (admins always pass)."""

    def _checker(user=Depends(require_token)):
        role = user.get("role")
        if role == required_role or role == "admin":
            return user
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient role")

    return _checker
