"""
Ad Agent — Database Models
Meta connection credentials, committed asset selections and the activity log.
"""

import uuid
import enum
from datetime import datetime, timezone
from sqlalchemy import (
    String, Text, Boolean, DateTime, JSON, Index, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column
from adagent.database import Base


def _utcnow() -> datetime:
    """Naive UTC now — matches DB columns (TIMESTAMP WITHOUT TIME ZONE)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


# ══════════════════════════════════════════════════════════════════════
#  ENUMS
# ══════════════════════════════════════════════════════════════════════

class CredentialStatus(str, enum.Enum):
    ACTIVE = "active"
    EXPIRED = "expired"


class SelectionMode(str, enum.Enum):
    STANDARD = "standard"
    MANAGER = "manager"


# ══════════════════════════════════════════════════════════════════════
#  META CREDENTIALS — one access token per app user
# ══════════════════════════════════════════════════════════════════════

class MetaCredential(Base):
    """Meta access token obtained through the OAuth code exchange."""
    __tablename__ = "meta_credentials"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    access_token: Mapped[str] = mapped_column(Text, nullable=False)  # encrypted
    meta_user_id: Mapped[str] = mapped_column(String(255), nullable=True)
    meta_user_name: Mapped[str] = mapped_column(String(512), nullable=True)
    business_id: Mapped[str] = mapped_column(String(255), nullable=True)
    token_expires_at: Mapped[datetime] = mapped_column(DateTime, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default=CredentialStatus.ACTIVE.value)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", name="uq_meta_credential_per_user"),
        Index("ix_meta_credentials_status", "status"),
    )


# ══════════════════════════════════════════════════════════════════════
#  META SELECTIONS — committed page / ad account / pixel / catalog choice
# ══════════════════════════════════════════════════════════════════════

class MetaSelection(Base):
    """Final asset selection consumed by campaign features. One row per (user, mode)."""
    __tablename__ = "meta_selections"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False)
    mode: Mapped[str] = mapped_column(String(32), nullable=False, default=SelectionMode.STANDARD.value)
    brief_id: Mapped[str] = mapped_column(String(255), nullable=True)

    page_id: Mapped[str] = mapped_column(String(255), nullable=False)
    page_name: Mapped[str] = mapped_column(String(512), nullable=True)
    social_profile_id: Mapped[str] = mapped_column(String(255), nullable=True)
    social_profile_name: Mapped[str] = mapped_column(String(512), nullable=True)
    ad_account_id: Mapped[str] = mapped_column(String(255), nullable=False)
    ad_account_name: Mapped[str] = mapped_column(String(512), nullable=True)
    pixel_id: Mapped[str] = mapped_column(String(255), nullable=False)
    pixel_name: Mapped[str] = mapped_column(String(512), nullable=True)
    catalog_id: Mapped[str] = mapped_column(String(255), nullable=True)
    catalog_name: Mapped[str] = mapped_column(String(512), nullable=True)

    webhook_submitted: Mapped[bool] = mapped_column(Boolean, default=False)
    webhook_response: Mapped[dict] = mapped_column(JSON, nullable=True)
    submitted_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow, onupdate=_utcnow)

    __table_args__ = (
        UniqueConstraint("user_id", "mode", name="uq_meta_selection_per_user_mode"),
        Index("ix_meta_selections_user_id", "user_id"),
    )


# ══════════════════════════════════════════════════════════════════════
#  ACTIVITY LOG — linking events per user
# ══════════════════════════════════════════════════════════════════════

class ActivityLog(Base):
    """Audit trail of account-linking actions."""
    __tablename__ = "activity_logs"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id: Mapped[str] = mapped_column(String(64), nullable=True)
    action: Mapped[str] = mapped_column(String(100), nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False)  # connection, selection
    description: Mapped[str] = mapped_column(Text, nullable=True)
    entity_type: Mapped[str] = mapped_column(String(50), nullable=True)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=True)
    details: Mapped[dict] = mapped_column(JSON, nullable=True)
    status: Mapped[str] = mapped_column(String(20), default="success")
    created_at: Mapped[datetime] = mapped_column(DateTime, default=_utcnow)

    __table_args__ = (
        Index("ix_activity_logs_user_id", "user_id"),
        Index("ix_activity_logs_action", "action"),
        Index("ix_activity_logs_created_at", "created_at"),
    )
