"""
Authentication — session JWT issued by the dashboard login.

Include: Authorization: Bearer <jwt>
The token's `sub` claim is the app user id the Meta pipeline works for.
"""

import logging
from fastapi import Depends, HTTPException
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from adagent.services.auth_service import decode_access_token

logger = logging.getLogger(__name__)

_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user_id(
    credentials: HTTPAuthorizationCredentials = Depends(_bearer_scheme),
) -> str:
    """Return the authenticated user id (JWT `sub`). 401 otherwise."""
    if not credentials:
        raise HTTPException(
            status_code=401,
            detail="Missing authorization. Include header: Authorization: Bearer <token>",
        )

    payload = decode_access_token(credentials.credentials)
    if not payload or not payload.get("sub"):
        logger.warning("Rejected request with invalid or expired session token")
        raise HTTPException(status_code=401, detail="Invalid or expired token.")

    return str(payload["sub"])
