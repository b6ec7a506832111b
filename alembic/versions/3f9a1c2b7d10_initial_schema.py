"""Initial schema with the default plan catalogue

Revision ID: 3f9a1c2b7d10
Revises:
Create Date: 2024-11-18 09:12:44.208113

"""

from collections.abc import Sequence
from datetime import date

import sqlalchemy as sa

from akadeo.config import get_settings
from akadeo.database import tables_for_store
from alembic import context, op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2b7d10"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

DEFAULT_PLANS = [
    {"id": 1, "name": "Free", "price_cents": 0, "discount_percent": None,
     "discount_end_date": None, "description": "Default free plan"},
    {"id": 2, "name": "Starter (Teacher)", "price_cents": 699, "discount_percent": 30,
     "discount_end_date": date(2025, 1, 4), "description": "Everything a single teacher needs"},
    {"id": 3, "name": "School", "price_cents": 2900, "discount_percent": 30,
     "discount_end_date": date(2025, 1, 4), "description": "For schools that want shared access"},
    {"id": 4, "name": "Enterprise", "price_cents": 0, "discount_percent": None,
     "discount_end_date": None, "description": "Contact us for large deployments"},
]


def _owned_tables() -> set[str]:
    store = context.get_x_argument(as_dictionary=True).get("store", "credentials")
    return tables_for_store(get_settings(), store)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False),
    ]


def upgrade() -> None:
    owned = _owned_tables()

    if "users" in owned:
        op.create_table(
            "users",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("full_name", sa.String(255), nullable=False),
            sa.Column("institution", sa.String(255), nullable=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("email_hash", sa.String(64), nullable=False),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("setup_completed_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_users_id", "users", ["id"])
        op.create_index("ix_users_email", "users", ["email"], unique=True)
        op.create_index("ix_users_email_hash", "users", ["email_hash"])

        op.create_table(
            "account_verifications",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("email", sa.String(320), nullable=False),
            sa.Column("email_hash", sa.String(64), nullable=False),
            sa.Column("full_name", sa.String(255), nullable=False),
            sa.Column("institution", sa.String(255), nullable=True),
            sa.Column("password_hash", sa.String(255), nullable=False),
            sa.Column("verification_code", sa.String(6), nullable=False),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            *_timestamps(),
        )
        op.create_index("ix_account_verifications_id", "account_verifications", ["id"])
        op.create_index(
            "ix_account_verifications_email", "account_verifications", ["email"], unique=True
        )
        op.create_index("ix_account_verifications_email_hash", "account_verifications", ["email_hash"])
        op.create_index("ix_account_verifications_expires_at", "account_verifications", ["expires_at"])

        op.create_table(
            "user_setup_responses",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column(
                "user_id",
                sa.Integer(),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=False,
                unique=True,
            ),
            sa.Column("subject", sa.String(255), nullable=False),
            sa.Column("grade_levels", sa.JSON(), nullable=False),
            sa.Column("country", sa.String(2), nullable=False),
            sa.Column("student_count_range", sa.String(20), nullable=False),
            sa.Column("primary_goal", sa.Text(), nullable=False),
            sa.Column("consent_ai_processing", sa.Boolean(), nullable=False),
            sa.Column("consented_at", sa.DateTime(timezone=True), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_user_setup_responses_id", "user_setup_responses", ["id"])

        op.create_table(
            "user_sessions",
            sa.Column("id", sa.String(64), primary_key=True),
            sa.Column(
                "user_id",
                sa.Integer(),
                sa.ForeignKey("users.id", ondelete="CASCADE"),
                nullable=True,
            ),
            sa.Column("setup_completed_at", sa.DateTime(timezone=True), nullable=True),
            sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
            *_timestamps(),
        )
        op.create_index("ix_user_sessions_user_id", "user_sessions", ["user_id"])
        op.create_index("ix_user_sessions_expires_at", "user_sessions", ["expires_at"])

    if "plans" in owned:
        plans = op.create_table(
            "plans",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("name", sa.String(100), nullable=False),
            sa.Column("price_cents", sa.Integer(), nullable=False),
            sa.Column("discount_percent", sa.Integer(), nullable=True),
            sa.Column("discount_end_date", sa.Date(), nullable=True),
            sa.Column("description", sa.Text(), nullable=True),
        )
        op.create_index("ix_plans_id", "plans", ["id"])
        op.bulk_insert(plans, DEFAULT_PLANS)

        op.create_table(
            "subscriptions",
            sa.Column("id", sa.Integer(), primary_key=True),
            sa.Column("user_id", sa.Integer(), nullable=False),
            sa.Column("plan_id", sa.Integer(), nullable=True),
            sa.Column("status", sa.String(20), nullable=False),
            sa.Column("start_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("end_date", sa.DateTime(timezone=True), nullable=True),
            sa.Column("stripe_subscription_id", sa.String(255), nullable=True),
            *_timestamps(),
        )
        op.create_index("ix_subscriptions_id", "subscriptions", ["id"])
        op.create_index("ix_subscriptions_user_id", "subscriptions", ["user_id"], unique=True)
        op.create_index(
            "ix_subscriptions_stripe_subscription_id", "subscriptions", ["stripe_subscription_id"]
        )

        # Explicit ids above; move the sequence past them.
        if op.get_bind().dialect.name == "postgresql":
            op.execute("SELECT setval(pg_get_serial_sequence('plans', 'id'), (SELECT MAX(id) FROM plans))")


def downgrade() -> None:
    owned = _owned_tables()
    if "plans" in owned:
        op.drop_table("subscriptions")
        op.drop_table("plans")
    if "users" in owned:
        op.drop_table("user_sessions")
        op.drop_table("user_setup_responses")
        op.drop_table("account_verifications")
        op.drop_table("users")
