"""
Stripe webhook: payment confirmation for storefront orders.
"""
from __future__ import annotations

import json
import logging
from uuid import UUID

import stripe
from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.core.db import get_db
from eclat.core.deps import get_payment_gateway
from eclat.integrations.stripe_gateway import PaymentError, StripeGateway
from eclat.services.orders import OrderNotFound, mark_order_paid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhooks"])

PAYMENT_EVENTS = (
    "checkout.session.completed",
    "checkout.session.async_payment_succeeded",
)
PAID_STATUSES = ("paid", "no_payment_required")


@router.post("/stripe")
async def stripe_webhook(
    request: Request,
    db: AsyncSession = Depends(get_db),
    gateway: StripeGateway = Depends(get_payment_gateway),
    stripe_signature: str | None = Header(default=None, alias="stripe-signature"),
):
    """
    Events handled:
    - checkout.session.completed / async_payment_succeeded: mark the order
      paid and redeem its coupon (once per order)

    Everything else is acknowledged and ignored.
    """
    if not stripe_signature:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="No signature provided",
        )

    payload = await request.body()

    try:
        gateway.construct_event(payload, stripe_signature)
    except ValueError:
        logger.error("Invalid Stripe payload")
        raise HTTPException(status_code=400, detail="Invalid payload")
    except stripe.SignatureVerificationError as e:
        logger.error("Webhook signature verification failed: %s", e)
        raise HTTPException(status_code=400, detail="Invalid signature")
    except PaymentError as e:
        logger.error("Stripe webhook rejected: %s", e)
        raise HTTPException(status_code=500, detail=str(e))

    event = json.loads(payload)
    event_type = event.get("type")
    logger.info("Received Stripe webhook: %s", event_type)

    if event_type in PAYMENT_EVENTS:
        await handle_checkout_paid(db, event["data"]["object"])

    return {"received": True}


async def handle_checkout_paid(db: AsyncSession, session_data: dict) -> None:
    session_id = session_data.get("id")
    metadata = session_data.get("metadata") or {}
    raw_order_id = metadata.get("orderId")

    if not raw_order_id:
        logger.warning("Checkout session %s has no orderId metadata", session_id)
        return

    if session_data.get("payment_status") not in PAID_STATUSES:
        logger.info("Checkout session %s not paid yet (%s)", session_id, session_data.get("payment_status"))
        return

    try:
        order_id = UUID(str(raw_order_id))
    except ValueError:
        logger.error("Checkout session %s has malformed orderId %r", session_id, raw_order_id)
        return

    try:
        await mark_order_paid(db, order_id=order_id, payment_reference=session_id)
    except OrderNotFound:
        # acknowledge so Stripe stops retrying; nothing to update
        logger.error("Payment for unknown order %s (session %s)", order_id, session_id)
