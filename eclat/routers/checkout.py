from __future__ import annotations

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.core.db import get_db
from eclat.core.deps import AuthUser, get_current_user_optional
from eclat.schemas.coupons import (
    AppliedCouponOut,
    CouponInvalidOut,
    CouponValidateRequest,
    CouponValidOut,
)
from eclat.services.coupon_rules import MISCONFIGURED
from eclat.services.coupons import validate_coupon

router = APIRouter(prefix="/api/checkout", tags=["Checkout"])


@router.post(
    "/validate-coupon",
    response_model=CouponValidOut,
    responses={400: {"model": CouponInvalidOut}, 422: {"model": CouponInvalidOut}},
)
async def validate_coupon_endpoint(
    body: CouponValidateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser | None = Depends(get_current_user_optional),
):
    result = await validate_coupon(
        db,
        code=body.code,
        total_amount=body.total_amount,
        user_id=(current_user.id if current_user else None),
        cart_items=body.cart_items,
    )

    if not result.valid:
        # misconfigured coupons are not the shopper's fault
        status_code = 422 if result.reason == MISCONFIGURED else 400
        out = CouponInvalidOut(error=result.error or "Invalid coupon", reason=result.reason or "")
        return JSONResponse(status_code=status_code, content=out.model_dump())

    coupon = result.coupon
    return CouponValidOut(
        coupon=AppliedCouponOut(
            id=coupon.id,
            code=coupon.code,
            discount_type=coupon.discount_type,
            discount_value=int(coupon.discount_value),
            discount_amount=int(result.discount_amount),
        )
    )
