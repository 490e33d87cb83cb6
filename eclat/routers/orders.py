from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.core.config import Settings, get_settings
from eclat.core.db import get_db
from eclat.core.deps import AuthUser, get_current_user_optional, get_payment_gateway
from eclat.integrations.stripe_gateway import PaymentError, StripeGateway
from eclat.schemas.orders import CheckoutSessionOut, OrderCreatedOut, OrderCreateIn
from eclat.services.orders import (
    CouponRejected,
    OrderError,
    OrderNotFound,
    create_order,
    start_checkout,
)

router = APIRouter(prefix="/api/orders", tags=["Orders"])


@router.post("", response_model=OrderCreatedOut)
async def create_order_endpoint(
    payload: OrderCreateIn,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser | None = Depends(get_current_user_optional),
    settings: Settings = Depends(get_settings),
) -> OrderCreatedOut:
    try:
        order = await create_order(db, data=payload, user=current_user, currency=settings.CURRENCY)
    except CouponRejected as e:
        raise HTTPException(
            status_code=400,
            detail={"error": e.result.error, "reason": e.result.reason},
        )
    except OrderError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return OrderCreatedOut(
        order_id=order.id,
        order_number=int(order.order_number),
        subtotal_amount=int(order.subtotal_amount),
        discount_amount=int(order.discount_amount),
        total_amount=int(order.total_amount),
        currency=order.currency,
    )


@router.post("/{order_id}/checkout-session", response_model=CheckoutSessionOut)
async def create_checkout_session(
    order_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: AuthUser | None = Depends(get_current_user_optional),
    gateway: StripeGateway = Depends(get_payment_gateway),
) -> CheckoutSessionOut:
    try:
        session_id, url = await start_checkout(db, gateway, order_id=order_id, user=current_user)
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except OrderError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except PaymentError as e:
        raise HTTPException(status_code=502, detail=str(e))

    return CheckoutSessionOut(session_id=session_id, url=url)
