from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.core.db import get_db
from eclat.core.deps import require_admin
from eclat.schemas.orders import OrderOut, PaymentConfirmedOut, RedemptionOut
from eclat.services.orders import (
    OrderError,
    OrderNotFound,
    list_orders_needing_reconciliation,
    retry_coupon_redemption,
)

router = APIRouter(prefix="/api/admin/reconciliation", tags=["Admin - Reconciliation"])


@router.get("/orders", response_model=list[OrderOut])
async def list_flagged_orders(
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await list_orders_needing_reconciliation(db, limit=limit, offset=offset)


@router.post("/orders/{order_id}/retry", response_model=PaymentConfirmedOut)
async def retry_redemption(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
) -> PaymentConfirmedOut:
    try:
        order, result = await retry_coupon_redemption(db, order_id=order_id)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return PaymentConfirmedOut(
        order=OrderOut.model_validate(order),
        redemption=RedemptionOut(**vars(result)),
    )
