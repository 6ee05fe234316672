from typing import Optional
import logging

from fastapi import Header, HTTPException, status

from circle_calls.config.constants import MAX_ID_LENGTH
from circle_calls.services.auth_service import decode_token
from circle_calls.services.call import CallSessionManager, get_call_manager

logger = logging.getLogger(__name__)


async def get_current_user_id(authorization: Optional[str] = Header(None)) -> str:
    """
    Resolve the verified user id from a bearer token.

    The id is opaque here; user records live with the auth service.
    """
    if not authorization:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Missing Authorization header")
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid Authorization header")
    payload = decode_token(token)
    if not payload:
        logger.warning("[Auth] Rejected invalid bearer token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token")
    user_id = payload.get("sub")
    if not user_id:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid token payload")
    if len(str(user_id)) > MAX_ID_LENGTH:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="User id too long")
    return str(user_id)


def get_manager() -> CallSessionManager:
    return get_call_manager()
