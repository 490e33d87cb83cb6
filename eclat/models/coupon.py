# eclat/models/coupon.py
from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID as PyUUID

from sqlalchemy import BigInteger, Boolean, CheckConstraint, DateTime, Integer, Text, UniqueConstraint, func
from sqlalchemy.dialects.postgresql import ARRAY, UUID
from sqlalchemy.orm import Mapped, mapped_column

from eclat.core.db import Base


class Coupon(Base):
    __tablename__ = "coupons"
    __table_args__ = (
        UniqueConstraint("code", name="coupons_code_key"),
        CheckConstraint("code = upper(code)", name="coupons_code_upper_chk"),
        CheckConstraint(
            "discount_type IN ('percentage','fixed')",
            name="coupons_discount_type_check",
        ),
        CheckConstraint("discount_value > 0", name="coupons_discount_value_chk"),
        CheckConstraint(
            "discount_type <> 'percentage' OR discount_value <= 100",
            name="coupons_percentage_range_chk",
        ),
        CheckConstraint("current_uses >= 0", name="coupons_current_uses_chk"),
        CheckConstraint(
            "max_uses IS NULL OR current_uses <= max_uses",
            name="coupons_uses_within_max_chk",
        ),
        CheckConstraint("min_purchase_amount >= 0", name="coupons_min_purchase_chk"),
    )

    id: Mapped[PyUUID] = mapped_column(
        UUID(as_uuid=True),
        primary_key=True,
        server_default=func.gen_random_uuid(),
    )

    # Always stored upper-case; lookups normalize the input.
    code: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    discount_type: Mapped[str] = mapped_column(Text, nullable=False)
    # percentage points, or minor units for fixed coupons
    discount_value: Mapped[int] = mapped_column(BigInteger, nullable=False)
    max_discount_amount: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)
    min_purchase_amount: Mapped[int] = mapped_column(BigInteger, nullable=False, server_default="0")

    max_uses: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    # Written only by services.coupons.redeem_coupon
    current_uses: Mapped[int] = mapped_column(Integer, nullable=False, server_default="0")

    once_per_user: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, server_default="true")

    valid_from: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    valid_until: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    applicable_categories: Mapped[Optional[List[str]]] = mapped_column(ARRAY(Text), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        server_default=func.now(),
        onupdate=func.now(),
    )
