from __future__ import annotations

from datetime import datetime
from typing import Any
from uuid import UUID

from pydantic import AliasChoices, BaseModel, EmailStr, Field

from eclat.schemas.cart import CartItemIn


class OrderCreateIn(BaseModel):
    items: list[CartItemIn] = Field(..., min_length=1)
    email: EmailStr | None = Field(
        default=None,
        validation_alias=AliasChoices("email", "guestEmail", "guest_email"),
    )
    customer_name: str | None = Field(
        default=None,
        validation_alias=AliasChoices("customerName", "customer_name"),
    )
    shipping_address: dict[str, Any] = Field(
        default_factory=dict,
        validation_alias=AliasChoices("shippingAddress", "shipping_address"),
    )
    coupon_code: str | None = Field(
        default=None,
        validation_alias=AliasChoices("couponCode", "coupon_code"),
    )


class OrderCreatedOut(BaseModel):
    order_id: UUID
    order_number: int
    subtotal_amount: int
    discount_amount: int
    total_amount: int
    currency: str


class OrderOut(BaseModel):
    id: UUID
    order_number: int
    user_id: UUID | None
    email: str | None
    subtotal_amount: int
    discount_amount: int
    total_amount: int
    currency: str
    coupon_id: UUID | None
    status: str
    payment_reference: str | None
    coupon_redemption_status: str
    coupon_redemption_error: str | None
    created_at: datetime
    updated_at: datetime

    class Config:
        from_attributes = True


class CheckoutSessionOut(BaseModel):
    session_id: str
    url: str


class PaymentConfirmedIn(BaseModel):
    payment_reference: str | None = None


class RedemptionOut(BaseModel):
    success: bool
    new_uses: int | None = None
    already_redeemed: bool = False
    error: str | None = None


class PaymentConfirmedOut(BaseModel):
    order: OrderOut
    redemption: RedemptionOut | None = None
