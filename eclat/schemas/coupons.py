# eclat/schemas/coupons.py
from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import AliasChoices, BaseModel, Field, field_validator, model_validator

from eclat.schemas.cart import CartItemIn
from eclat.services.coupon_rules import normalize_code


# -------------------------
# Checkout validation
# -------------------------
class CouponValidateRequest(BaseModel):
    code: str = ""
    total_amount: int = Field(
        ...,
        validation_alias=AliasChoices("totalAmount", "total_amount"),
    )
    cart_items: list[CartItemIn] | None = Field(
        default=None,
        validation_alias=AliasChoices("cartItems", "cart_items"),
    )


class AppliedCouponOut(BaseModel):
    id: UUID
    code: str
    discount_type: Literal["percentage", "fixed"]
    discount_value: int
    discount_amount: int


class CouponValidOut(BaseModel):
    valid: Literal[True] = True
    coupon: AppliedCouponOut


class CouponInvalidOut(BaseModel):
    valid: Literal[False] = False
    error: str
    reason: str


# -------------------------
# Admin
# -------------------------
class CouponCreate(BaseModel):
    code: str = Field(..., min_length=2, max_length=64)
    description: str | None = None
    discount_type: Literal["percentage", "fixed"] = "percentage"
    discount_value: int = Field(..., gt=0)
    max_discount_amount: int | None = Field(None, gt=0)
    min_purchase_amount: int = Field(0, ge=0)
    max_uses: int | None = Field(None, ge=1)
    once_per_user: bool = True
    is_active: bool = True
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    applicable_categories: list[str] | None = None

    @field_validator("code")
    @classmethod
    def _normalize(cls, v: str) -> str:
        return normalize_code(v)

    @model_validator(mode="after")
    def _check_ranges(self):
        if self.discount_type == "percentage" and self.discount_value > 100:
            raise ValueError("percentage discount_value must be between 1 and 100")
        if self.valid_from and self.valid_until and self.valid_until < self.valid_from:
            raise ValueError("valid_until must be after valid_from")
        return self


class CouponUpdate(BaseModel):
    # discount_type and current_uses are intentionally not editable
    code: str | None = Field(None, min_length=2, max_length=64)
    description: str | None = None
    discount_value: int | None = Field(None, gt=0)
    max_discount_amount: int | None = Field(None, gt=0)
    min_purchase_amount: int | None = Field(None, ge=0)
    max_uses: int | None = Field(None, ge=1)
    once_per_user: bool | None = None
    is_active: bool | None = None
    valid_from: datetime | None = None
    valid_until: datetime | None = None
    applicable_categories: list[str] | None = None

    @field_validator("code")
    @classmethod
    def _normalize(cls, v: str | None) -> str | None:
        return normalize_code(v) if v is not None else None

    @model_validator(mode="after")
    def _reject_nulls(self):
        # omitted means "leave unchanged"; these columns cannot be cleared
        for field in ("code", "discount_value", "min_purchase_amount", "once_per_user", "is_active"):
            if field in self.model_fields_set and getattr(self, field) is None:
                raise ValueError(f"{field} cannot be null")
        return self


class CouponOut(BaseModel):
    id: UUID
    code: str
    description: str | None
    discount_type: str
    discount_value: int
    max_discount_amount: int | None
    min_purchase_amount: int
    max_uses: int | None
    current_uses: int
    once_per_user: bool
    is_active: bool
    valid_from: datetime | None
    valid_until: datetime | None
    applicable_categories: list[str] | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CouponUsageOut(BaseModel):
    id: UUID
    order_id: UUID
    user_id: UUID | None
    discount_applied: int
    created_at: datetime

    order_email: str | None = None
    order_total_amount: int | None = None
    order_status: str | None = None


class CouponUsageReportOut(CouponOut):
    usage: list[CouponUsageOut] = Field(default_factory=list)
    usage_count: int = 0
    total_discount_amount: int = 0
