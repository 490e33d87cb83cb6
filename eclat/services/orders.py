from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.concurrency import run_in_threadpool

from eclat.core.deps import AuthUser
from eclat.integrations.stripe_gateway import StripeGateway
from eclat.models.order import Order
from eclat.schemas.cart import CartItemIn
from eclat.schemas.orders import OrderCreateIn
from eclat.services.coupons import (
    CouponValidationResult,
    RedemptionResult,
    redeem_coupon,
    validate_coupon,
)

logger = logging.getLogger(__name__)

AWAITING_PAYMENT = "awaiting_payment"
PAID = "paid"

REDEMPTION_NONE = "none"
REDEMPTION_PENDING = "pending"
REDEMPTION_REDEEMED = "redeemed"
NEEDS_RECONCILIATION = "needs_reconciliation"

FREE_ORDER_REFERENCE = "no-payment-required"

# paid orders still pending after this long are treated as stuck
PENDING_REDEMPTION_GRACE = timedelta(minutes=15)


class OrderError(Exception):
    pass


class OrderNotFound(OrderError):
    pass


class CouponRejected(OrderError):
    def __init__(self, result: CouponValidationResult):
        super().__init__(result.error or "Coupon rejected")
        self.result = result


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


def cart_subtotal(items: list[CartItemIn]) -> int:
    return sum(int(i.product.price) * int(i.quantity) for i in items)


async def _lock_order(db: AsyncSession, order_id: UUID) -> Order | None:
    res = await db.execute(
        select(Order)
        .where(Order.id == order_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    return res.scalar_one_or_none()


async def create_order(
    db: AsyncSession,
    *,
    data: OrderCreateIn,
    user: AuthUser | None,
    currency: str,
) -> Order:
    """
    Create an order awaiting payment. A coupon code is validated against the
    cart (and the user, for the per-user cap) and its discount is frozen on
    the order; usage is only counted once payment is confirmed.
    """
    email = data.email or (user.email if user else None)
    if user is None and not email:
        raise OrderError("An email address is required for guest checkout")

    subtotal = cart_subtotal(data.items)
    if subtotal <= 0:
        raise OrderError("Cart total must be greater than 0")

    coupon_id: UUID | None = None
    discount = 0
    if data.coupon_code and data.coupon_code.strip():
        result = await validate_coupon(
            db,
            code=data.coupon_code,
            total_amount=subtotal,
            user_id=(user.id if user else None),
            cart_items=data.items,
        )
        if not result.valid:
            raise CouponRejected(result)
        coupon_id = result.coupon.id
        discount = result.discount_amount

    order = Order(
        user_id=(user.id if user else None),
        email=email,
        customer_name=data.customer_name,
        shipping_address=data.shipping_address,
        items=[i.model_dump() for i in data.items],
        subtotal_amount=subtotal,
        discount_amount=discount,
        total_amount=subtotal - discount,
        currency=currency,
        coupon_id=coupon_id,
        status=AWAITING_PAYMENT,
        coupon_redemption_status=(REDEMPTION_PENDING if coupon_id else REDEMPTION_NONE),
    )

    try:
        db.add(order)
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(order)
    logger.info(
        "Order %s created (subtotal=%s discount=%s coupon=%s)",
        order.id,
        subtotal,
        discount,
        coupon_id or "none",
    )
    return order


async def get_order(db: AsyncSession, order_id: UUID) -> Order:
    order = await db.get(Order, order_id)
    if not order:
        raise OrderNotFound("Order not found")
    return order


async def _redeem_for_order(db: AsyncSession, order: Order) -> RedemptionResult:
    """
    Run the atomic redemption for a paid order and record the outcome on the
    order. Failures never undo the payment; they flag the order for
    reconciliation instead.
    """
    order_id = order.id
    coupon_id = order.coupon_id

    try:
        result = await redeem_coupon(
            db,
            coupon_id=coupon_id,
            order_id=order_id,
            user_id=order.user_id,
            discount_applied=int(order.discount_amount),
        )
    except SQLAlchemyError as e:
        logger.exception("Coupon %s redemption crashed for order %s", coupon_id, order_id)
        result = RedemptionResult(success=False, error=f"database error: {e.__class__.__name__}")

    # redemption ends its own transaction; take the order row again to record the outcome
    locked = await _lock_order(db, order_id)
    if locked is None:
        await db.rollback()
        raise OrderNotFound("Order not found")
    order = locked

    if result.success:
        order.coupon_redemption_status = REDEMPTION_REDEEMED
        order.coupon_redemption_error = None
    else:
        logger.error(
            "Order %s is paid but coupon %s was not redeemed (%s); flagged for reconciliation",
            order_id,
            coupon_id,
            result.error,
        )
        order.coupon_redemption_status = NEEDS_RECONCILIATION
        order.coupon_redemption_error = result.error
    order.updated_at = _now_utc()

    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    await db.refresh(order)
    return result


async def mark_order_paid(
    db: AsyncSession,
    *,
    order_id: UUID,
    payment_reference: str | None = None,
) -> tuple[Order, RedemptionResult | None]:
    """
    Payment confirmation. Moves the order to paid and then redeems its coupon,
    exactly once. A repeat confirmation for a paid order is a no-op, unless
    its redemption never completed; then redemption runs again.
    """
    order = await _lock_order(db, order_id)
    if order is None:
        await db.rollback()
        raise OrderNotFound("Order not found")

    if order.status == PAID:
        if order.coupon_id is not None and order.coupon_redemption_status == REDEMPTION_PENDING:
            logger.warning("Order %s paid with coupon redemption still pending; redeeming now", order_id)
            result = await _redeem_for_order(db, order)
            return order, result

        await db.rollback()
        await db.refresh(order)
        logger.info("Order %s already paid; ignoring duplicate confirmation", order_id)
        return order, None

    try:
        order.status = PAID
        order.payment_reference = payment_reference
        order.updated_at = _now_utc()
        await db.commit()
    except Exception:
        await db.rollback()
        raise

    logger.info("Order %s paid (ref=%s)", order_id, payment_reference)

    if order.coupon_id is None:
        await db.refresh(order)
        return order, None

    result = await _redeem_for_order(db, order)
    return order, result


async def start_checkout(
    db: AsyncSession,
    gateway: StripeGateway,
    *,
    order_id: UUID,
    user: AuthUser | None,
) -> tuple[str, str]:
    """Returns (session_id, url) for the payment page of an unpaid order."""
    order = await get_order(db, order_id)

    # orders of signed-in users are private to them
    if order.user_id is not None and (user is None or user.id != order.user_id):
        raise OrderNotFound("Order not found")

    if order.status != AWAITING_PAYMENT:
        raise OrderError(f"Order is not awaiting payment (current: {order.status})")

    if int(order.total_amount) == 0:
        # fully discounted: nothing to charge
        await mark_order_paid(db, order_id=order_id, payment_reference=FREE_ORDER_REFERENCE)
        return "", f"{gateway.site_url}/checkout/success?order={order_id}"

    session = await run_in_threadpool(gateway.create_checkout_session, order)
    return session.id, session.url


async def list_orders_needing_reconciliation(
    db: AsyncSession,
    *,
    limit: int = 50,
    offset: int = 0,
) -> list[Order]:
    """Paid orders whose redemption failed, or has been pending past the grace period."""
    stuck_before = _now_utc() - PENDING_REDEMPTION_GRACE
    stmt = (
        select(Order)
        .where(Order.status == PAID)
        .where(
            or_(
                Order.coupon_redemption_status == NEEDS_RECONCILIATION,
                and_(
                    Order.coupon_redemption_status == REDEMPTION_PENDING,
                    Order.updated_at < stuck_before,
                ),
            )
        )
        .order_by(Order.updated_at.asc())
        .limit(int(limit))
        .offset(int(offset))
    )
    res = await db.execute(stmt)
    return list(res.scalars().all())


async def retry_coupon_redemption(
    db: AsyncSession,
    *,
    order_id: UUID,
) -> tuple[Order, RedemptionResult]:
    order = await get_order(db, order_id)

    if order.status != PAID or order.coupon_id is None:
        raise OrderError("Order has no coupon redemption to retry")

    if order.coupon_redemption_status == REDEMPTION_REDEEMED:
        return order, RedemptionResult(success=True, already_redeemed=True)

    logger.info("Retrying coupon redemption for order %s", order_id)
    result = await _redeem_for_order(db, order)
    return order, result
