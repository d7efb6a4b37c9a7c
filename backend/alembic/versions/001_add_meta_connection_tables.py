"""Add meta_credentials, meta_selections and activity_logs tables.

Revision ID: 001
Revises:
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    tables = set(insp.get_table_names())

    if "meta_credentials" not in tables:
        op.create_table(
            "meta_credentials",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.String(64), nullable=False),
            sa.Column("access_token", sa.Text(), nullable=False),
            sa.Column("meta_user_id", sa.String(255), nullable=True),
            sa.Column("meta_user_name", sa.String(512), nullable=True),
            sa.Column("business_id", sa.String(255), nullable=True),
            sa.Column("token_expires_at", sa.DateTime(), nullable=True),
            sa.Column("status", sa.String(20), nullable=True, server_default="active"),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", name="uq_meta_credential_per_user"),
        )
        op.create_index("ix_meta_credentials_status", "meta_credentials", ["status"])

    if "meta_selections" not in tables:
        op.create_table(
            "meta_selections",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.String(64), nullable=False),
            sa.Column("mode", sa.String(32), nullable=False, server_default="standard"),
            sa.Column("page_id", sa.String(255), nullable=False),
            sa.Column("page_name", sa.String(512), nullable=True),
            sa.Column("social_profile_id", sa.String(255), nullable=True),
            sa.Column("social_profile_name", sa.String(512), nullable=True),
            sa.Column("ad_account_id", sa.String(255), nullable=False),
            sa.Column("ad_account_name", sa.String(512), nullable=True),
            sa.Column("pixel_id", sa.String(255), nullable=False),
            sa.Column("pixel_name", sa.String(512), nullable=True),
            sa.Column("catalog_id", sa.String(255), nullable=True),
            sa.Column("catalog_name", sa.String(512), nullable=True),
            sa.Column("webhook_submitted", sa.Boolean(), nullable=True, server_default=sa.false()),
            sa.Column("webhook_response", sa.JSON(), nullable=True),
            sa.Column("submitted_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.Column("updated_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
            sa.UniqueConstraint("user_id", "mode", name="uq_meta_selection_per_user_mode"),
        )
        op.create_index("ix_meta_selections_user_id", "meta_selections", ["user_id"])

    if "activity_logs" not in tables:
        op.create_table(
            "activity_logs",
            sa.Column("id", sa.Uuid(), nullable=False),
            sa.Column("user_id", sa.String(64), nullable=True),
            sa.Column("action", sa.String(100), nullable=False),
            sa.Column("category", sa.String(50), nullable=False),
            sa.Column("description", sa.Text(), nullable=True),
            sa.Column("entity_type", sa.String(50), nullable=True),
            sa.Column("entity_id", sa.String(255), nullable=True),
            sa.Column("details", sa.JSON(), nullable=True),
            sa.Column("status", sa.String(20), nullable=True, server_default="success"),
            sa.Column("created_at", sa.DateTime(), nullable=True, server_default=sa.func.now()),
            sa.PrimaryKeyConstraint("id"),
        )
        op.create_index("ix_activity_logs_user_id", "activity_logs", ["user_id"])
        op.create_index("ix_activity_logs_action", "activity_logs", ["action"])
        op.create_index("ix_activity_logs_created_at", "activity_logs", ["created_at"])


def downgrade() -> None:
    op.drop_table("activity_logs")
    op.drop_table("meta_selections")
    op.drop_table("meta_credentials")
