"""Add brief_id to meta_selections.

Revision ID: 002
Revises: 001
Create Date: 2026-10-18

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

revision: str = "002"
down_revision: Union[str, None] = "001"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()
    insp = sa.inspect(conn)
    columns = {c["name"] for c in insp.get_columns("meta_selections")}

    if "brief_id" not in columns:
        op.add_column("meta_selections", sa.Column("brief_id", sa.String(255), nullable=True))


def downgrade() -> None:
    op.drop_column("meta_selections", "brief_id")
