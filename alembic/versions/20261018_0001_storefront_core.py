"""profiles, coupons, orders, coupon_usage

Revision ID: 0001_storefront_core
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "0001_storefront_core"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")
    op.execute("CREATE SEQUENCE IF NOT EXISTS order_number_seq START 1000")

    op.create_table(
        "profiles",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("full_name", sa.String(length=255), nullable=True),
        sa.Column("role", sa.String(length=32), nullable=False, server_default="customer"),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.CheckConstraint("role IN ('customer','admin')", name="profiles_role_check"),
    )

    op.create_table(
        "coupons",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("code", sa.Text(), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("discount_type", sa.Text(), nullable=False),
        sa.Column("discount_value", sa.BigInteger(), nullable=False),
        sa.Column("max_discount_amount", sa.BigInteger(), nullable=True),
        sa.Column("min_purchase_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("max_uses", sa.Integer(), nullable=True),
        sa.Column("current_uses", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("once_per_user", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default="true"),
        sa.Column("valid_from", sa.DateTime(timezone=True), nullable=True),
        sa.Column("valid_until", sa.DateTime(timezone=True), nullable=True),
        sa.Column("applicable_categories", postgresql.ARRAY(sa.Text()), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("code", name="coupons_code_key"),
        sa.CheckConstraint("code = upper(code)", name="coupons_code_upper_chk"),
        sa.CheckConstraint("discount_type IN ('percentage','fixed')", name="coupons_discount_type_check"),
        sa.CheckConstraint("discount_value > 0", name="coupons_discount_value_chk"),
        sa.CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name="coupons_percentage_range_chk",
        ),
        sa.CheckConstraint("current_uses >= 0", name="coupons_current_uses_chk"),
        sa.CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="coupons_uses_within_max_chk",
        ),
        sa.CheckConstraint("min_purchase_amount >= 0", name="coupons_min_purchase_chk"),
    )

    op.create_table(
        "orders",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column(
            "order_number",
            sa.BigInteger(),
            nullable=False,
            server_default=sa.text("nextval('order_number_seq')"),
        ),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("email", sa.String(length=255), nullable=True),
        sa.Column("customer_name", sa.String(length=255), nullable=True),
        sa.Column("shipping_address", postgresql.JSONB(), nullable=False, server_default="{}"),
        sa.Column("items", postgresql.JSONB(), nullable=False, server_default="[]"),
        sa.Column("subtotal_amount", sa.BigInteger(), nullable=False),
        sa.Column("discount_amount", sa.BigInteger(), nullable=False, server_default="0"),
        sa.Column("total_amount", sa.BigInteger(), nullable=False),
        sa.Column("currency", sa.String(length=3), nullable=False),
        sa.Column("coupon_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("status", sa.String(length=32), nullable=False),
        sa.Column("payment_reference", sa.Text(), nullable=True),
        sa.Column("coupon_redemption_status", sa.String(length=32), nullable=False),
        sa.Column("coupon_redemption_error", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("order_number"),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"], ondelete="SET NULL"),
        sa.CheckConstraint(
            "status IN ('awaiting_payment','paid')",
            name="orders_status_check",
        ),
        sa.CheckConstraint(
            "coupon_redemption_status IN ('none','pending','redeemed','needs_reconciliation')",
            name="orders_coupon_redemption_status_check",
        ),
        sa.CheckConstraint("user_id IS NOT NULL OR email IS NOT NULL", name="orders_owner_chk"),
        sa.CheckConstraint("total_amount >= 0", name="orders_total_amount_chk"),
    )
    op.create_index("ix_orders_user_id", "orders", ["user_id"])
    op.create_index(
        "ix_orders_needs_reconciliation",
        "orders",
        ["updated_at"],
        postgresql_where=sa.text("coupon_redemption_status IN ('pending','needs_reconciliation')"),
    )

    op.create_table(
        "coupon_usage",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False, server_default=sa.text("gen_random_uuid()")),
        sa.Column("coupon_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("order_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("user_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("discount_applied", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=sa.func.now()),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["coupon_id"], ["coupons.id"], ondelete="RESTRICT"),
        sa.ForeignKeyConstraint(["order_id"], ["orders.id"], ondelete="RESTRICT"),
        sa.UniqueConstraint("coupon_id", "order_id", name="coupon_usage_coupon_order_key"),
    )
    op.create_index("ix_coupon_usage_coupon_user", "coupon_usage", ["coupon_id", "user_id"])


def downgrade() -> None:
    op.drop_index("ix_coupon_usage_coupon_user", table_name="coupon_usage")
    op.drop_table("coupon_usage")
    op.drop_index("ix_orders_needs_reconciliation", table_name="orders")
    op.drop_index("ix_orders_user_id", table_name="orders")
    op.drop_table("orders")
    op.drop_table("coupons")
    op.drop_table("profiles")
    op.execute("DROP SEQUENCE IF EXISTS order_number_seq")
