"""
Meta OAuth Router — connect a Meta account to the signed-in user.
The dashboard's /meta-callback page forwards Meta's redirect query here.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.auth import get_current_user_id
from adagent.config import get_settings
from adagent.database import get_db
from adagent.errors import (
    AuthorizationFailed,
    LinkCancelled,
    LinkError,
    SecurityError,
)
from adagent.graph_client import get_http_transport
from adagent.services.credential_store import get_credential, has_credential
from adagent.services.oauth_service import MetaOAuthService
from adagent.utils import safe_error_detail

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class OAuthCompleteRequest(BaseModel):
    code: Optional[str] = None
    state: Optional[str] = None
    error: Optional[str] = None
    error_description: Optional[str] = None


class ConnectionResponse(BaseModel):
    connected: bool
    meta_user_id: Optional[str] = None
    business_id: Optional[str] = None
    updated_at: Optional[datetime] = None


# ── Endpoints ────────────────────────────────────────────────────────
@router.get("/oauth/url")
async def get_oauth_url(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if not get_settings().meta_app_id:
        raise HTTPException(status_code=503, detail="Meta app is not configured. Set META_APP_ID.")
    url = MetaOAuthService(db).build_authorization_url(user_id)
    return {"url": url, "state": user_id}


@router.post("/oauth/complete")
async def complete_oauth(
    payload: OAuthCompleteRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    service = MetaOAuthService(db, transport=transport)
    try:
        credential = await service.complete(
            user_id=user_id,
            code=payload.code,
            state=payload.state,
            error=payload.error,
        )
    except LinkCancelled as e:
        return {"status": "cancelled", "message": e.message}
    except SecurityError as e:
        raise HTTPException(status_code=403, detail=e.to_dict())
    except AuthorizationFailed as e:
        if payload.error_description:
            logger.info(f"Meta OAuth error description: {payload.error_description}")
        raise HTTPException(status_code=400, detail=e.to_dict())
    except LinkError as e:
        raise HTTPException(status_code=502, detail=e.to_dict())
    except Exception as e:
        raise HTTPException(status_code=500, detail=safe_error_detail(e, "Failed to save the Meta connection. Please try again."))

    return {
        "status": "connected",
        "meta_user_id": credential.meta_user_id,
        "business_id": credential.business_id,
    }


@router.get("/connection", response_model=ConnectionResponse)
async def get_connection(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
):
    if not await has_credential(db, user_id):
        return ConnectionResponse(connected=False)
    credential = await get_credential(db, user_id)
    return ConnectionResponse(
        connected=True,
        meta_user_id=credential.meta_user_id,
        business_id=credential.business_id,
        updated_at=credential.updated_at,
    )
