from fastapi import Depends, HTTPException, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from auth.auth_handler import decode_jwt
from core.environment import Settings, get_settings


class JWTBearer(HTTPBearer):
    """Bearer scheme that only lets a well-formed, unexpired token through.

    The decoded payload is left on `request.state.token_payload` for the
    session dependencies; revocation is checked against the database there.
    """

    def __init__(self, auto_error: bool = True):
        super(JWTBearer, self).__init__(auto_error=auto_error)

    async def __call__(self, request: Request, settings: Settings = Depends(get_settings)) -> str:
        credentials: HTTPAuthorizationCredentials = await super(JWTBearer, self).__call__(request)
        if not credentials:
            raise HTTPException(status_code=401, detail="Invalid authorization code.")
        if credentials.scheme != "Bearer":
            raise HTTPException(status_code=401, detail="Invalid authentication scheme.")

        payload = decode_jwt(credentials.credentials, settings)
        if not payload:
            raise HTTPException(status_code=401, detail="Invalid token or expired token.")

        request.state.token_payload = payload
        return credentials.credentials
