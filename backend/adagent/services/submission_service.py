"""
Submission Service — commits the wizard's choices as the user's selection record.
Upsert on (user_id, mode): a resubmission overwrites, never duplicates.
"""

import logging
from datetime import datetime
from typing import Optional

import httpx
from pydantic import BaseModel, ConfigDict
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from adagent.config import get_settings
from adagent.errors import SubmissionError
from adagent.models import ActivityLog, MetaSelection
from adagent.services.discovery_service import ResourceKind
from adagent.services.wizard_state import WizardState
from adagent.utils import utcnow, short_id

logger = logging.getLogger(__name__)

WEBHOOK_TIMEOUT_SECONDS = 30.0


class SelectionRecord(BaseModel):
    user_id: str
    mode: str
    brief_id: Optional[str] = None
    page_id: str
    page_name: Optional[str] = None
    social_profile_id: Optional[str] = None
    social_profile_name: Optional[str] = None
    ad_account_id: str
    ad_account_name: Optional[str] = None
    pixel_id: str
    pixel_name: Optional[str] = None
    catalog_id: Optional[str] = None
    catalog_name: Optional[str] = None
    submitted_at: datetime
    webhook_submitted: bool = False

    model_config = ConfigDict(from_attributes=True)


def build_record(state: WizardState) -> SelectionRecord:
    """Assemble the record from staged ids, names resolved from the fetched collections."""
    required = {
        ResourceKind.PAGE: state.selected.get(ResourceKind.PAGE),
        ResourceKind.AD_ACCOUNT: state.selected.get(ResourceKind.AD_ACCOUNT),
        ResourceKind.PIXEL: state.selected.get(ResourceKind.PIXEL),
    }
    if not all(required.values()):
        raise SubmissionError("Please select a Page, Ad Account, and Pixel")

    def name(kind: ResourceKind) -> Optional[str]:
        item = state.selected_item(kind)
        return item.display_name if item else None

    social_profile_id = None if state.social_profile_declined else state.selected.get(ResourceKind.SOCIAL_PROFILE)
    return SelectionRecord(
        user_id=state.user_id,
        mode=state.mode.value,
        brief_id=state.brief_id,
        page_id=required[ResourceKind.PAGE],
        page_name=name(ResourceKind.PAGE),
        social_profile_id=social_profile_id,
        social_profile_name=name(ResourceKind.SOCIAL_PROFILE) if social_profile_id else None,
        ad_account_id=required[ResourceKind.AD_ACCOUNT],
        ad_account_name=name(ResourceKind.AD_ACCOUNT),
        pixel_id=required[ResourceKind.PIXEL],
        pixel_name=name(ResourceKind.PIXEL),
        catalog_id=state.selected.get(ResourceKind.CATALOG),
        catalog_name=name(ResourceKind.CATALOG),
        submitted_at=utcnow(),
    )


class SubmissionService:
    def __init__(
        self,
        db: AsyncSession,
        webhook_url: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.db = db
        self.webhook_url = get_settings().selection_webhook_url if webhook_url is None else webhook_url
        self.transport = transport

    async def submit(self, state: WizardState) -> SelectionRecord:
        """
        Persist the selection and notify the automation webhook (when configured).
        Raises SubmissionError; the wizard state is never touched here.
        """
        record = build_record(state)

        try:
            row = await self._upsert(record)
            self.db.add(ActivityLog(
                user_id=record.user_id,
                action="selection_submitted",
                category="selection",
                description=f"Selected page {record.page_name or record.page_id} and ad account "
                            f"{record.ad_account_name or record.ad_account_id}",
                entity_type="meta_selection",
                entity_id=str(row.id),
                details={"mode": record.mode, "pixel_id": record.pixel_id, "catalog_id": record.catalog_id},
            ))
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(f"Saving selection failed for user {short_id(record.user_id)}: {e}")
            raise SubmissionError()

        logger.info(f"Selection saved for user {short_id(record.user_id)} mode={record.mode}")

        if self.webhook_url:
            response_body = await self._notify_webhook(record)
            try:
                row.webhook_submitted = True
                row.webhook_response = response_body
                await self.db.commit()
            except SQLAlchemyError as e:
                await self.db.rollback()
                logger.error(f"Marking webhook delivery failed for user {short_id(record.user_id)}: {e}")
                raise SubmissionError()
            record.webhook_submitted = True

        return record

    async def _upsert(self, record: SelectionRecord) -> MetaSelection:
        result = await self.db.execute(
            select(MetaSelection).where(
                MetaSelection.user_id == record.user_id,
                MetaSelection.mode == record.mode,
            )
        )
        row = result.scalar_one_or_none()
        values = record.model_dump(exclude={"user_id", "mode", "webhook_submitted"})

        if row:
            for key, value in values.items():
                setattr(row, key, value)
            row.webhook_submitted = False
            row.webhook_response = None
            row.updated_at = utcnow()
        else:
            row = MetaSelection(user_id=record.user_id, mode=record.mode, webhook_submitted=False, **values)
            self.db.add(row)
        await self.db.flush()
        return row

    async def _notify_webhook(self, record: SelectionRecord) -> dict:
        try:
            async with httpx.AsyncClient(timeout=WEBHOOK_TIMEOUT_SECONDS, transport=self.transport) as client:
                response = await client.post(self.webhook_url, json=record.model_dump(mode="json"))
                response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Selection webhook failed for user {short_id(record.user_id)}: {e}")
            raise SubmissionError("Failed to send data to external webhook. Please try again.")

        try:
            return response.json()
        except ValueError:
            return {"status_code": response.status_code, "text": response.text[:500]}
