"""Add payments audit table

Revision ID: 8c2e5d4a1b93
Revises: 3f9a1c2b7d10
Create Date: 2024-12-02 16:40:03.771952

"""

from collections.abc import Sequence

import sqlalchemy as sa

from akadeo.config import get_settings
from akadeo.database import tables_for_store
from alembic import context, op

# revision identifiers, used by Alembic.
revision: str = "8c2e5d4a1b93"
down_revision: str | None = "3f9a1c2b7d10"
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def _owns_payments() -> bool:
    store = context.get_x_argument(as_dictionary=True).get("store", "credentials")
    return "payments" in tables_for_store(get_settings(), store)


def upgrade() -> None:
    if not _owns_payments():
        return
    op.create_table(
        "payments",
        sa.Column("id", sa.Integer(), primary_key=True),
        sa.Column("user_id", sa.Integer(), nullable=False),
        sa.Column("plan_id", sa.Integer(), nullable=True),
        sa.Column("stripe_session_id", sa.String(255), nullable=False, unique=True),
        sa.Column("status", sa.String(20), nullable=False),
        sa.Column("amount_paid_cents", sa.Integer(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    )
    op.create_index("ix_payments_id", "payments", ["id"])
    op.create_index("ix_payments_user_id", "payments", ["user_id"])


def downgrade() -> None:
    if _owns_payments():
        op.drop_table("payments")
