"""
Credential Store — one Meta access token per app user.
Upsert keyed by user id: re-linking always overwrites (last write wins).
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from sqlalchemy.dialects import postgresql, sqlite

from adagent.crypto import encrypt_token, decrypt_token
from adagent.models import MetaCredential, CredentialStatus
from adagent.utils import utcnow, short_id

logger = logging.getLogger(__name__)

# Dialects with INSERT ... ON CONFLICT DO UPDATE
_UPSERT_INSERTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


@dataclass(frozen=True)
class LinkedCredential:
    """Decrypted credential handed to discovery. Never persisted or logged as-is."""
    user_id: str
    access_token: str
    meta_user_id: Optional[str] = None
    business_id: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


def _to_linked(row: MetaCredential) -> LinkedCredential:
    return LinkedCredential(
        user_id=row.user_id,
        access_token=decrypt_token(row.access_token),
        meta_user_id=row.meta_user_id,
        business_id=row.business_id,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


async def _get_row(db: AsyncSession, user_id: str) -> Optional[MetaCredential]:
    result = await db.execute(select(MetaCredential).where(MetaCredential.user_id == user_id))
    return result.scalar_one_or_none()


async def get_credential(db: AsyncSession, user_id: str) -> Optional[LinkedCredential]:
    row = await _get_row(db, user_id)
    return _to_linked(row) if row else None


async def has_credential(db: AsyncSession, user_id: str) -> bool:
    row = await _get_row(db, user_id)
    return row is not None and row.status == CredentialStatus.ACTIVE.value


async def upsert_credential(
    db: AsyncSession,
    user_id: str,
    access_token: str,
    meta_user_id: Optional[str] = None,
    meta_user_name: Optional[str] = None,
    business_id: Optional[str] = None,
    expires_in: Optional[int] = None,
) -> LinkedCredential:
    """
    Create or overwrite the user's credential in one INSERT ... ON CONFLICT.
    Two links racing for the same user both succeed; the later write wins.
    Does not commit; the caller commits.
    """
    now = utcnow()
    expires_at = now + timedelta(seconds=int(expires_in)) if expires_in else None
    values = {
        "access_token": encrypt_token(access_token),
        "meta_user_id": meta_user_id,
        "meta_user_name": meta_user_name,
        "business_id": business_id,
        "token_expires_at": expires_at,
        "status": CredentialStatus.ACTIVE.value,
        "updated_at": now,
    }

    insert = _UPSERT_INSERTS[db.get_bind().dialect.name]
    stmt = insert(MetaCredential).values(id=uuid.uuid4(), user_id=user_id, created_at=now, **values)
    stmt = stmt.on_conflict_do_update(
        index_elements=[MetaCredential.user_id],
        set_=values,
    ).returning(MetaCredential.created_at, MetaCredential.updated_at)

    created_at, updated_at = (await db.execute(stmt)).one()
    logger.info(f"Meta credential saved for user {short_id(user_id)}")

    return LinkedCredential(
        user_id=user_id,
        access_token=access_token,
        meta_user_id=meta_user_id,
        business_id=business_id,
        created_at=created_at,
        updated_at=updated_at,
    )
