"""payment transactions: audit row per settled transfer

Revision ID: 0002_payment_transactions
Revises: 0001_land_sales
Create Date: 2026-10-20
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0002_payment_transactions"
down_revision = "0001_land_sales"
branch_labels = None
depends_on = None


def upgrade():
    op.create_table(
        "payment_transactions",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("tx_hash", sa.String(length=128), nullable=False),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("from_address", sa.String(length=128), nullable=True),
        sa.Column("to_address", sa.String(length=128), nullable=False),
        sa.Column("token_contract", sa.String(length=128), nullable=True),
        sa.Column("amount_usdt", sa.String(length=32), nullable=False),
        sa.Column("confirmations", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("observed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("raw", postgresql.JSONB, nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.text("now()")),
        sa.UniqueConstraint("tx_hash", name="uq_payment_transaction_tx_hash"),
        sa.CheckConstraint("confirmations >= 0", name="ck_payment_transaction_confirmations"),
    )
    op.create_index("ix_payment_transaction_order", "payment_transactions", ["order_id"])
    op.create_index("ix_payment_transaction_user", "payment_transactions", ["user_id"])


def downgrade():
    op.drop_index("ix_payment_transaction_user", table_name="payment_transactions")
    op.drop_index("ix_payment_transaction_order", table_name="payment_transactions")
    op.drop_table("payment_transactions")
