"""
Meta Selection Router — drives the user's selection wizard.
Every transition returns the full wizard state for rendering.
"""

import logging
from typing import Optional

import httpx
from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.auth import get_current_user_id
from adagent.database import get_db
from adagent.errors import SubmissionError
from adagent.graph_client import get_http_transport
from adagent.models import SelectionMode
from adagent.services.credential_store import get_credential, has_credential
from adagent.services.discovery_service import ResourceDiscovery, ResourceKind
from adagent.services.selection_wizard import SelectionWizard, wizard_registry
from adagent.services.submission_service import SubmissionService

logger = logging.getLogger(__name__)

router = APIRouter()


# ── Schemas ──────────────────────────────────────────────────────────
class StartSelectionRequest(BaseModel):
    mode: SelectionMode = SelectionMode.STANDARD
    brief_id: Optional[str] = None


class SelectRequest(BaseModel):
    kind: ResourceKind
    item_id: str


class ClearRequest(BaseModel):
    kind: ResourceKind


# ── Helpers ───────────────────────────────────────────────────────────
def _require_wizard(user_id: str) -> SelectionWizard:
    wizard = wizard_registry.get(user_id)
    if wizard is None:
        raise HTTPException(status_code=404, detail="No selection in progress. Start the Meta selection first.")
    return wizard


# ── Endpoints ────────────────────────────────────────────────────────
@router.post("")
async def start_selection(
    payload: Optional[StartSelectionRequest] = None,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    """Mount a wizard for the user (replacing any open one) and start discovery."""
    payload = payload or StartSelectionRequest()
    if not await has_credential(db, user_id):
        raise HTTPException(status_code=404, detail="Meta not connected. Please connect your Meta account first.")
    credential = await get_credential(db, user_id)

    wizard = SelectionWizard(
        credential,
        mode=payload.mode,
        discovery=ResourceDiscovery(transport),
        brief_id=payload.brief_id,
    )
    await wizard_registry.open(wizard)
    return wizard.state.to_dict()


@router.get("")
async def get_selection_state(user_id: str = Depends(get_current_user_id)):
    return _require_wizard(user_id).state.to_dict()


@router.delete("")
async def discard_selection(user_id: str = Depends(get_current_user_id)):
    if not await wizard_registry.discard(user_id):
        raise HTTPException(status_code=404, detail="No selection in progress.")
    return {"status": "discarded"}


@router.post("/select")
async def select_item(payload: SelectRequest, user_id: str = Depends(get_current_user_id)):
    wizard = _require_wizard(user_id)
    await wizard.select(payload.kind, payload.item_id)
    return wizard.state.to_dict()


@router.post("/clear")
async def clear_item(payload: ClearRequest, user_id: str = Depends(get_current_user_id)):
    wizard = _require_wizard(user_id)
    await wizard.clear(payload.kind)
    return wizard.state.to_dict()


@router.post("/social-profile/none")
async def decline_social_profile(user_id: str = Depends(get_current_user_id)):
    wizard = _require_wizard(user_id)
    await wizard.decline_social_profile()
    return wizard.state.to_dict()


@router.post("/next")
async def next_step(user_id: str = Depends(get_current_user_id)):
    wizard = _require_wizard(user_id)
    await wizard.next_step()
    return wizard.state.to_dict()


@router.post("/back")
async def previous_step(user_id: str = Depends(get_current_user_id)):
    wizard = _require_wizard(user_id)
    await wizard.back()
    return wizard.state.to_dict()


@router.post("/retry")
async def retry_discovery(user_id: str = Depends(get_current_user_id)):
    wizard = _require_wizard(user_id)
    wizard.retry_discovery()
    return wizard.state.to_dict()


@router.post("/submit")
async def submit_selection(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    transport: Optional[httpx.AsyncBaseTransport] = Depends(get_http_transport),
):
    wizard = _require_wizard(user_id)
    try:
        record = await wizard.submit(db, SubmissionService(db, transport=transport))
    except SubmissionError as e:
        raise HTTPException(status_code=502, detail=e.to_dict())

    if record is None:
        raise HTTPException(status_code=400, detail=wizard.state.last_error.to_dict())

    await wizard_registry.discard(user_id)
    return {"status": "submitted", "record": record.model_dump(mode="json")}
