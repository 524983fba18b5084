from fastapi import Depends, HTTPException
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from .error_handlers import get_error_message
from .jwt import decode_access_token

_bearer = HTTPBearer(auto_error=False)


def get_current_user(credentials: HTTPAuthorizationCredentials | None = Depends(_bearer)) -> dict:
    """
    Resolve the caller from the bearer token.
    Returns the claims dict: {"sub": "<user id>", "role": "student|employer|admin"}.
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=401, detail=get_error_message("unauthorized"))

    claims = decode_access_token(credentials.credentials)
    if not claims or not claims.get("sub"):
        raise HTTPException(status_code=401, detail=get_error_message("unauthorized"))
    try:
        int(claims.get("sub"))
    except (TypeError, ValueError):
        raise HTTPException(status_code=401, detail=get_error_message("unauthorized"))
    return claims
