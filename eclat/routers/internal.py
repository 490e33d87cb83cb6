from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.core.db import get_db
from eclat.core.deps import require_internal_api_key
from eclat.schemas.orders import (
    OrderOut,
    PaymentConfirmedIn,
    PaymentConfirmedOut,
    RedemptionOut,
)
from eclat.services.orders import OrderNotFound, mark_order_paid

router = APIRouter(prefix="/internal", tags=["Internal"])


@router.post("/orders/{order_id}/payment-confirmed", response_model=PaymentConfirmedOut)
async def payment_confirmed(
    order_id: UUID,
    body: PaymentConfirmedIn,
    db: AsyncSession = Depends(get_db),
    api_key: str = Depends(require_internal_api_key),
) -> PaymentConfirmedOut:
    """
    Server-to-server payment confirmation. Safe to call more than once for
    the same order; the coupon is counted once.
    """
    try:
        order, result = await mark_order_paid(
            db,
            order_id=order_id,
            payment_reference=body.payment_reference,
        )
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))

    return PaymentConfirmedOut(
        order=OrderOut.model_validate(order),
        redemption=(RedemptionOut(**vars(result)) if result is not None else None),
    )
