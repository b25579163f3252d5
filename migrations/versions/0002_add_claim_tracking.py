"""add claim tracking

Revision ID: 0002_add_claim_tracking
Revises: 0001_create_submissions
Create Date: 2025-11-10 14:37:02.918144

"""
from __future__ import annotations

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0002_add_claim_tracking"
down_revision: Union[str, Sequence[str], None] = "0001_create_submissions"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

_CLAIM_COLUMN_NAMES = ("claimed", "claimed_at", "transaction_hash", "claim_attempted_at")


def _claim_columns() -> list[sa.Column]:
    return [
        sa.Column("claimed", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("transaction_hash", sa.Text(), nullable=True),
        sa.Column("claim_attempted_at", sa.DateTime(timezone=True), nullable=True),
    ]


def upgrade() -> None:
    """Add claim tracking columns, skipping any the startup upgrade already added."""
    existing = {column["name"] for column in sa.inspect(op.get_bind()).get_columns("submissions")}
    missing = [column for column in _claim_columns() if column.name not in existing]
    if not missing:
        return
    with op.batch_alter_table("submissions") as batch_op:
        for column in missing:
            batch_op.add_column(column)


def downgrade() -> None:
    """Remove claim tracking columns."""
    with op.batch_alter_table("submissions") as batch_op:
        for name in reversed(_CLAIM_COLUMN_NAMES):
            batch_op.drop_column(name)
