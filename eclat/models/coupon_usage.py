# eclat/models/coupon_usage.py
from __future__ import annotations

from datetime import datetime
from typing import Optional
from uuid import UUID as PyUUID

from sqlalchemy import BigInteger, DateTime, ForeignKey, Index, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column

from eclat.core.db import Base


class CouponUsage(Base):
    """Append-only redemption ledger; one row per (coupon, order)."""

    __tablename__ = "coupon_usage"
    __table_args__ = (
        UniqueConstraint("coupon_id", "order_id", name="coupon_usage_coupon_order_key"),
    )

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )

    coupon_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("coupons.id", ondelete="RESTRICT"),
        nullable=False,
    )
    order_id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("orders.id", ondelete="RESTRICT"),
        nullable=False,
    )
    # NULL for guest checkouts
    user_id: Mapped[Optional[PyUUID]] = mapped_column(UUID(as_uuid=True), nullable=True)

    discount_applied: Mapped[int] = mapped_column(BigInteger, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )


Index("ix_coupon_usage_coupon_user", CouponUsage.coupon_id, CouponUsage.user_id)
