"""land sales schema: users, orders, inventory units, deeds, referral earnings, admin action log

Revision ID: 0001_land_sales
Revises:
Create Date: 2026-10-19
"""
from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql


revision = "0001_land_sales"
down_revision = None
branch_labels = None
depends_on = None


def _ts(name: str, nullable: bool = False) -> sa.Column:
    kwargs = {}
    if not nullable:
        kwargs["server_default"] = sa.text("now()")
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, **kwargs)


def upgrade():
    # users
    op.create_table(
        "users",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("name", sa.String(length=256), nullable=False),
        sa.Column("email", sa.String(length=320), nullable=False),
        sa.Column("password_hash", sa.String(length=256), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.text("true")),
        sa.Column("wallet_address", sa.String(length=64), nullable=True),
        sa.Column("role", sa.String(length=16), nullable=False, server_default=sa.text("'USER'")),
        sa.Column("referral_code", sa.String(length=16), nullable=True),
        sa.Column(
            "referred_by",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("total_referrals", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("total_earnings", sa.String(length=32), nullable=False, server_default=sa.text("'0.000000'")),
        sa.Column("agent_title", sa.String(length=128), nullable=True),
        sa.Column("agent_commission_rate", sa.String(length=16), nullable=True),
        _ts("agent_joined_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("email", name="uq_users_email"),
        sa.UniqueConstraint("referral_code", name="uq_users_referral_code"),
        sa.CheckConstraint("total_referrals >= 0", name="ck_users_total_referrals_nonneg"),
        sa.CheckConstraint("role IN ('USER', 'AGENT', 'ADMIN')", name="ck_users_role"),
    )
    op.create_index("ix_users_role", "users", ["role"])
    op.create_index("ix_users_referred_by", "users", ["referred_by"])

    # orders
    op.create_table(
        "orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "buyer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("state_key", sa.String(length=64), nullable=False),
        sa.Column("area_key", sa.String(length=64), nullable=False),
        sa.Column("unit_ids", postgresql.JSONB, nullable=False),
        sa.Column("quantity", sa.Integer(), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'PENDING'")),
        sa.Column("pay_to_address", sa.String(length=64), nullable=False),
        sa.Column("network", sa.String(length=16), nullable=False),
        sa.Column("expected_amount", sa.String(length=32), nullable=False),
        sa.Column("paid_amount", sa.String(length=32), nullable=True),
        sa.Column("overpaid_amount", sa.String(length=32), nullable=True),
        sa.Column("tx_hash", sa.String(length=128), nullable=True),
        sa.Column("confirmations", sa.Integer(), nullable=False, server_default=sa.text("0")),
        _ts("observed_at", nullable=True),
        _ts("paid_at", nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        _ts("expired_at", nullable=True),
        sa.Column(
            "referrer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("commission_rate", sa.String(length=16), nullable=True),
        sa.Column("commission_amount", sa.String(length=32), nullable=True),
        sa.Column("failure_reason", sa.String(length=256), nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("tx_hash", name="uq_orders_tx_hash"),
        sa.CheckConstraint("quantity >= 1", name="ck_orders_quantity_pos"),
        sa.CheckConstraint("confirmations >= 0", name="ck_orders_confirmations_nonneg"),
        sa.CheckConstraint(
            "status IN ('PENDING', 'PAID', 'FAILED', 'EXPIRED', 'LATE_PAYMENT')",
            name="ck_orders_status",
        ),
    )
    op.create_index("ix_orders_buyer_status", "orders", ["buyer_id", "status"])
    op.create_index("ix_orders_status_expires", "orders", ["status", "expires_at"])

    # inventory_units
    op.create_table(
        "inventory_units",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column("unit_id", sa.String(length=128), nullable=False),
        sa.Column("state_key", sa.String(length=64), nullable=False),
        sa.Column("state_name", sa.String(length=128), nullable=False),
        sa.Column("area_key", sa.String(length=64), nullable=False),
        sa.Column("area_name", sa.String(length=128), nullable=False),
        sa.Column("slot_number", sa.Integer(), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'AVAILABLE'")),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="SET NULL"),
            nullable=True,
        ),
        sa.Column("locked_by", postgresql.UUID(as_uuid=True), nullable=True),
        _ts("lock_expires_at", nullable=True),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=True,
        ),
        _ts("owned_at", nullable=True),
        _ts("created_at"),
        _ts("updated_at"),
        sa.UniqueConstraint("unit_id", name="uq_inventory_unit_id"),
        sa.UniqueConstraint("area_key", "slot_number", name="uq_inventory_area_slot"),
        sa.CheckConstraint("slot_number >= 1", name="ck_inventory_slot_number_pos"),
        sa.CheckConstraint("status IN ('AVAILABLE', 'RESERVED', 'SOLD')", name="ck_inventory_status"),
        sa.CheckConstraint(
            "status <> 'SOLD' OR (owner_id IS NOT NULL AND locked_by IS NULL AND lock_expires_at IS NULL)",
            name="ck_inventory_sold_has_owner",
        ),
    )
    op.create_index("ix_inventory_area_status", "inventory_units", ["area_key", "status"])
    op.create_index("ix_inventory_status_lock", "inventory_units", ["status", "lock_expires_at"])
    op.create_index("ix_inventory_order", "inventory_units", ["order_id"])

    # deeds
    op.create_table(
        "deeds",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "unit_id",
            sa.String(length=128),
            sa.ForeignKey("inventory_units.unit_id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "owner_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("payment_tx_hash", sa.String(length=128), nullable=False),
        sa.Column("pay_to_address", sa.String(length=64), nullable=False),
        sa.Column("owner_name", sa.String(length=256), nullable=False),
        sa.Column("plot_id", sa.String(length=128), nullable=False),
        sa.Column("city", sa.String(length=128), nullable=False),
        sa.Column("state_name", sa.String(length=128), nullable=False),
        sa.Column("latitude", sa.Float(), nullable=True),
        sa.Column("longitude", sa.Float(), nullable=True),
        sa.Column("issued_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("seal_no", sa.String(length=192), nullable=False),
        sa.Column("nft_token_id", sa.String(length=160), nullable=False),
        sa.Column("nft_contract_address", sa.String(length=64), nullable=False),
        sa.Column("nft_chain", sa.String(length=32), nullable=False),
        sa.Column("nft_standard", sa.String(length=16), nullable=False),
        sa.Column("nft_mint_tx_hash", sa.String(length=128), nullable=True),
        sa.Column("nft_marketplace_url", sa.String(length=512), nullable=True),
        _ts("created_at"),
        sa.UniqueConstraint("unit_id", name="uq_deeds_unit"),
        sa.UniqueConstraint("seal_no", name="uq_deeds_seal_no"),
    )
    op.create_index("ix_deeds_owner_issued", "deeds", ["owner_id", "issued_at"])
    op.create_index("ix_deeds_order", "deeds", ["order_id"])
    op.create_index("ix_deeds_payment_tx", "deeds", ["payment_tx_hash"])

    # referral_earnings
    op.create_table(
        "referral_earnings",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        sa.Column(
            "referrer_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "referred_user_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("users.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column(
            "order_id",
            postgresql.UUID(as_uuid=True),
            sa.ForeignKey("orders.id", ondelete="RESTRICT"),
            nullable=False,
        ),
        sa.Column("unit_ids", postgresql.JSONB, nullable=False),
        sa.Column("purchase_amount", sa.String(length=32), nullable=False),
        sa.Column("commission_rate", sa.String(length=16), nullable=False),
        sa.Column("commission_amount", sa.String(length=32), nullable=False),
        sa.Column("tx_hash", sa.String(length=128), nullable=False),
        sa.Column("status", sa.String(length=16), nullable=False, server_default=sa.text("'EARNED'")),
        _ts("created_at"),
        sa.UniqueConstraint("order_id", name="uq_referral_earning_order"),
    )
    op.create_index(
        "ix_referral_earning_referrer_status", "referral_earnings", ["referrer_id", "status"]
    )

    # admin_action_logs (append-only)
    op.create_table(
        "admin_action_logs",
        sa.Column("id", postgresql.UUID(as_uuid=True), primary_key=True, nullable=False),
        _ts("created_at"),
        sa.Column("request_id", sa.String(length=128), nullable=True),
        sa.Column("actor", sa.String(length=128), nullable=False),
        sa.Column("action", sa.String(length=96), nullable=False),
        sa.Column("target_type", sa.String(length=32), nullable=False),
        sa.Column("target_id", sa.String(length=128), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("payload_hash", sa.String(length=128), nullable=False),
        sa.Column("payload_summary_json", postgresql.JSONB, nullable=False),
    )
    op.create_index("ix_admin_action_logs_request_id", "admin_action_logs", ["request_id"])
    op.create_index("ix_admin_action_target", "admin_action_logs", ["target_type", "target_id"])
    op.create_index("ix_admin_action_action", "admin_action_logs", ["action"])
    op.create_index("ix_admin_action_created", "admin_action_logs", ["created_at"])


def downgrade():
    op.drop_table("admin_action_logs")
    op.drop_table("referral_earnings")
    op.drop_table("deeds")
    op.drop_table("inventory_units")
    op.drop_table("orders")
    op.drop_table("users")
