"""create_smart_budget_tables

Revision ID: c7d8e9f0a1b2
Revises:
Create Date: 2026-10-18 00:00:00.000000
"""

from typing import Union

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects.postgresql import JSONB, UUID

revision: str = "c7d8e9f0a1b2"
down_revision: Union[str, None] = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "transactions",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("processed_date", sa.Date(), nullable=False),
        sa.Column("category_id", UUID(as_uuid=True), nullable=True),
        sa.Column("sub_category_id", UUID(as_uuid=True), nullable=True),
    )
    op.create_index("ix_transactions_user_id", "transactions", ["user_id"])
    op.create_index("ix_transactions_processed_date", "transactions", ["processed_date"])

    op.create_table(
        "transaction_patterns",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("pattern_id", sa.String(64), nullable=False),
        sa.Column("description", sa.String(500), nullable=False),
        sa.Column("category_id", UUID(as_uuid=True), nullable=True),
        sa.Column("sub_category_id", UUID(as_uuid=True), nullable=True),
        sa.Column("amount_min", sa.Numeric(14, 2), nullable=False),
        sa.Column("amount_max", sa.Numeric(14, 2), nullable=False),
        sa.Column("average_amount", sa.Numeric(14, 2), nullable=False),
        sa.Column("recurrence_pattern", sa.String(20), nullable=False),
        sa.Column("scheduled_months", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("detection_data", JSONB(), nullable=False, server_default=sa.text("'{}'::jsonb")),
        sa.Column("approval_status", sa.String(10), nullable=False, server_default="pending"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("approved_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "pattern_id", name="uq_transaction_patterns_user_pattern"),
    )
    op.create_index("ix_transaction_patterns_user_id", "transaction_patterns", ["user_id"])
    op.create_index(
        "ix_transaction_patterns_approval_status", "transaction_patterns", ["approval_status"]
    )

    op.create_table(
        "monthly_budgets",
        sa.Column("id", UUID(as_uuid=True), primary_key=True),
        sa.Column("user_id", UUID(as_uuid=True), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("month", sa.Integer(), nullable=False),
        sa.Column("currency", sa.String(3), nullable=False, server_default="ILS"),
        sa.Column("expense_budgets", JSONB(), nullable=False, server_default=sa.text("'[]'::jsonb")),
        sa.Column("total_budgeted_expenses", sa.Numeric(14, 2), nullable=False, server_default=sa.text("0")),
        sa.Column("is_auto_calculated", sa.Boolean(), nullable=False, server_default=sa.text("false")),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("status", sa.String(10), nullable=False, server_default="draft"),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("now()")),
        sa.UniqueConstraint("user_id", "year", "month", name="uq_monthly_budgets_user_period"),
    )
    op.create_index("ix_monthly_budgets_user_id", "monthly_budgets", ["user_id"])


def downgrade() -> None:
    op.drop_index("ix_monthly_budgets_user_id", table_name="monthly_budgets")
    op.drop_table("monthly_budgets")
    op.drop_index("ix_transaction_patterns_approval_status", table_name="transaction_patterns")
    op.drop_index("ix_transaction_patterns_user_id", table_name="transaction_patterns")
    op.drop_table("transaction_patterns")
    op.drop_index("ix_transactions_processed_date", table_name="transactions")
    op.drop_index("ix_transactions_user_id", table_name="transactions")
    op.drop_table("transactions")
