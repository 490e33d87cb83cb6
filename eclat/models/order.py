from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import BigInteger, CheckConstraint, DateTime, ForeignKey, String, Text, func, text
from sqlalchemy.dialects.postgresql import JSONB, UUID
from sqlalchemy.orm import Mapped, mapped_column

from eclat.core.db import Base


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (
        CheckConstraint(
            "status IN ('awaiting_payment','paid')",
            name="orders_status_check",
        ),
        CheckConstraint(
            "coupon_redemption_status IN ('none','pending','redeemed','needs_reconciliation')",
            name="orders_coupon_redemption_status_check",
        ),
        CheckConstraint(
            "user_id IS NOT NULL OR email IS NOT NULL",
            name="orders_owner_chk",
        ),
        CheckConstraint("total_amount >= 0", name="orders_total_amount_chk"),
    )

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )

    # DB default is nextval('order_number_seq')
    order_number: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        unique=True,
        server_default=text("nextval('order_number_seq')"),
    )

    user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    customer_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

    shipping_address: Mapped[dict] = mapped_column(JSONB, nullable=False, server_default="{}")
    # snapshot of the cart lines at checkout
    items: Mapped[list] = mapped_column(JSONB, nullable=False, server_default="[]")

    subtotal_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    discount_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")
    total_amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="eur")

    coupon_id: Mapped[Optional[PyUUID]] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("coupons.id", ondelete="SET NULL"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(String(32), nullable=False, default="awaiting_payment")
    payment_reference: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    coupon_redemption_status: Mapped[str] = mapped_column(
        String(32), nullable=False, default="none"
    )
    coupon_redemption_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
