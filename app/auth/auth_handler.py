import time
from typing import Dict, Optional

import jwt

from core.environment import Settings, get_settings

# Claims every MyFleet token carries
REQUIRED_CLAIMS = ("user_id", "sid", "expires")


def sign_jwt(user_id: str, session_id: str, settings: Optional[Settings] = None) -> Dict[str, str]:
    """Issues a bearer token bound to one auth session, so logout can revoke it server-side."""
    settings = settings or get_settings()
    payload = {
        "user_id": user_id,
        "sid": session_id,
        "expires": time.time() + settings.jwt_exp_delta_seconds,
    }
    return {"access_token": jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)}


def decode_jwt(token: str, settings: Optional[Settings] = None) -> Optional[dict]:
    """Payload of a well-signed, unexpired token with all MyFleet claims; None otherwise."""
    settings = settings or get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.InvalidTokenError:
        return None

    if any(not payload.get(claim) for claim in REQUIRED_CLAIMS):
        return None
    if payload["expires"] < time.time():
        return None
    return payload
