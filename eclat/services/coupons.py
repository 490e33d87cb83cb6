# eclat/services/coupons.py
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Sequence
from uuid import UUID

from sqlalchemy import desc, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.models.coupon import Coupon
from eclat.models.coupon_usage import CouponUsage
from eclat.models.order import Order
from eclat.schemas.coupons import CouponCreate, CouponUpdate
from eclat.services.coupon_rules import (
    ALREADY_USED_BY_USER,
    CODE_NOT_FOUND,
    INACTIVE,
    INVALID_AMOUNT,
    MIN_PURCHASE_NOT_MET,
    MISCONFIGURED,
    MISSING_CODE,
    NO_ELIGIBLE_ITEMS,
    PERCENTAGE,
    REASON_MESSAGES,
    USAGE_LIMIT_REACHED,
    calculate_discount,
    discount_in_bounds,
    eligible_subtotal,
    has_category_restrictions,
    has_eligible_items,
    normalize_code,
    usage_available,
    window_reason,
)

logger = logging.getLogger(__name__)

COUPON_NOT_FOUND = "coupon not found"
USAGE_ORDER_KEY = "coupon_usage_coupon_order_key"
CODE_KEY = "coupons_code_key"


class CouponError(Exception):
    pass


class CouponNotFound(CouponError):
    pass


class CouponConflict(CouponError):
    pass


class CouponInUse(CouponError):
    pass


@dataclass
class CouponValidationResult:
    valid: bool
    coupon: Coupon | None = None
    discount_amount: int = 0
    reason: str | None = None
    error: str | None = None

    @classmethod
    def reject(cls, reason: str) -> "CouponValidationResult":
        return cls(valid=False, reason=reason, error=REASON_MESSAGES[reason])


@dataclass
class RedemptionResult:
    success: bool
    new_uses: int | None = None
    already_redeemed: bool = False
    error: str | None = None


def _now_utc() -> datetime:
    return datetime.now(timezone.utc)


async def get_coupon_by_code(db: AsyncSession, code: str) -> Coupon | None:
    res = await db.execute(select(Coupon).where(Coupon.code == normalize_code(code)))
    return res.scalar_one_or_none()


async def _user_has_redeemed(db: AsyncSession, coupon_id: UUID, user_id: UUID) -> bool:
    res = await db.execute(
        select(CouponUsage.id)
        .where(CouponUsage.coupon_id == coupon_id, CouponUsage.user_id == user_id)
        .limit(1)
    )
    return res.scalar_one_or_none() is not None


# -------------------------
# Validation (read only)
# -------------------------
async def validate_coupon(
    db: AsyncSession,
    *,
    code: str | None,
    total_amount: int,
    user_id: UUID | None = None,
    cart_items: Sequence | None = None,
    now: datetime | None = None,
) -> CouponValidationResult:
    """
    Decide whether `code` applies to a cart of `total_amount` and compute the
    discount. Checks short-circuit in this order: lookup, active, validity
    window, global usage cap, minimum purchase, category restrictions,
    per-user cap.

    The usage cap check here is advisory only; redeem_coupon re-runs it
    under the coupon row lock.
    """
    normalized = normalize_code(code)
    if not normalized:
        return CouponValidationResult.reject(MISSING_CODE)
    if int(total_amount) <= 0:
        return CouponValidationResult.reject(INVALID_AMOUNT)

    coupon = await get_coupon_by_code(db, normalized)
    if coupon is None:
        return CouponValidationResult.reject(CODE_NOT_FOUND)

    if not coupon.is_active:
        return CouponValidationResult.reject(INACTIVE)

    reason = window_reason(coupon, now or _now_utc())
    if reason:
        return CouponValidationResult.reject(reason)

    if not usage_available(coupon):
        return CouponValidationResult.reject(USAGE_LIMIT_REACHED)

    min_purchase = int(coupon.min_purchase_amount or 0)
    if int(total_amount) < min_purchase:
        return CouponValidationResult.reject(MIN_PURCHASE_NOT_MET)

    discount_base = int(total_amount)
    if has_category_restrictions(coupon) and cart_items is not None:
        if not has_eligible_items(coupon, cart_items):
            return CouponValidationResult.reject(NO_ELIGIBLE_ITEMS)

        discount_base = eligible_subtotal(coupon, cart_items)
        if discount_base < min_purchase:
            return CouponValidationResult.reject(MIN_PURCHASE_NOT_MET)

        logger.debug(
            "Coupon %s restricted to %s: eligible subtotal %s of %s",
            coupon.code,
            coupon.applicable_categories,
            discount_base,
            total_amount,
        )

    if coupon.once_per_user and user_id is not None:
        if await _user_has_redeemed(db, coupon.id, user_id):
            return CouponValidationResult.reject(ALREADY_USED_BY_USER)

    discount = calculate_discount(coupon, discount_base)
    if not discount_in_bounds(discount, int(total_amount)):
        logger.error(
            "Coupon %s is misconfigured: discount %s for total %s",
            coupon.code,
            discount,
            total_amount,
        )
        return CouponValidationResult.reject(MISCONFIGURED)

    return CouponValidationResult(valid=True, coupon=coupon, discount_amount=discount)


# -------------------------
# Redemption (atomic)
# -------------------------
async def redeem_coupon(
    db: AsyncSession,
    *,
    coupon_id: UUID,
    order_id: UUID,
    user_id: UUID | None,
    discount_applied: int,
) -> RedemptionResult:
    """
    Record one use of a coupon for a paid order, in a single transaction.

    The coupon row is locked FOR UPDATE so concurrent redemptions of the same
    coupon run one at a time; the usage cap is re-checked under that lock.
    Redeeming the same (coupon, order) twice is a no-op that reports
    already_redeemed. Business rejections come back as success=False;
    database errors roll back and propagate.
    """
    try:
        res = await db.execute(
            select(Coupon)
            .where(Coupon.id == coupon_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        coupon = res.scalar_one_or_none()

        if coupon is None:
            await db.rollback()
            return RedemptionResult(success=False, error=COUPON_NOT_FOUND)

        existing = await db.execute(
            select(CouponUsage.id).where(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.order_id == order_id,
            )
        )
        if existing.scalar_one_or_none() is not None:
            current = int(coupon.current_uses)
            await db.rollback()
            logger.info("Coupon %s already redeemed for order %s", coupon_id, order_id)
            return RedemptionResult(success=True, new_uses=current, already_redeemed=True)

        if not usage_available(coupon):
            current, limit = coupon.current_uses, coupon.max_uses
            await db.rollback()
            logger.warning(
                "Coupon %s exhausted (%s/%s), order %s not counted",
                coupon_id,
                current,
                limit,
                order_id,
            )
            return RedemptionResult(success=False, error=USAGE_LIMIT_REACHED)

        new_uses = int(coupon.current_uses) + 1

        await db.execute(
            update(Coupon)
            .where(Coupon.id == coupon_id)
            .values(current_uses=new_uses, updated_at=_now_utc())
        )

        db.add(
            CouponUsage(
                coupon_id=coupon_id,
                order_id=order_id,
                user_id=user_id,
                discount_applied=int(discount_applied),
            )
        )

        await db.commit()

    except IntegrityError as e:
        await db.rollback()
        # unique (coupon_id, order_id): a concurrent call for this order won
        if USAGE_ORDER_KEY not in str(e.orig):
            raise
        logger.info("Coupon %s redemption for order %s hit the per-order key", coupon_id, order_id)
        return RedemptionResult(success=True, already_redeemed=True)
    except Exception:
        await db.rollback()
        raise

    logger.info("Coupon %s redeemed for order %s (uses=%s)", coupon_id, order_id, new_uses)
    return RedemptionResult(success=True, new_uses=new_uses)


# -------------------------
# Admin
# -------------------------
async def admin_create_coupon(db: AsyncSession, *, data: CouponCreate) -> Coupon:
    coupon = Coupon(**data.model_dump(), current_uses=0)
    db.add(coupon)
    try:
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if CODE_KEY not in str(e.orig):
            raise
        raise CouponConflict(f"Coupon code {data.code} already exists")

    await db.refresh(coupon)
    return coupon


async def admin_list_coupons(
    db: AsyncSession,
    *,
    is_active: bool | None = None,
    limit: int = 100,
    offset: int = 0,
) -> list[Coupon]:
    stmt = select(Coupon).order_by(Coupon.created_at.desc())
    if is_active is not None:
        stmt = stmt.where(Coupon.is_active == is_active)

    res = await db.execute(stmt.limit(int(limit)).offset(int(offset)))
    return list(res.scalars().all())


async def admin_get_coupon(db: AsyncSession, coupon_id: UUID) -> Coupon:
    coupon = await db.get(Coupon, coupon_id)
    if not coupon:
        raise CouponNotFound("Coupon not found")
    return coupon


async def admin_update_coupon(db: AsyncSession, *, coupon_id: UUID, data: CouponUpdate) -> Coupon:
    stmt = select(Coupon).where(Coupon.id == coupon_id).with_for_update()
    res = await db.execute(stmt)
    coupon = res.scalar_one_or_none()
    if not coupon:
        raise CouponNotFound("Coupon not found")

    changes = data.model_dump(exclude_unset=True)

    value = changes.get("discount_value", coupon.discount_value)
    if coupon.discount_type == PERCENTAGE and value > 100:
        raise CouponError("percentage discount_value must be between 1 and 100")

    if "max_uses" in changes and changes["max_uses"] is not None:
        if changes["max_uses"] < coupon.current_uses:
            raise CouponError(
                f"max_uses cannot be lower than current uses ({coupon.current_uses})"
            )

    valid_from = changes.get("valid_from", coupon.valid_from)
    valid_until = changes.get("valid_until", coupon.valid_until)
    if valid_from and valid_until and valid_until < valid_from:
        raise CouponError("valid_until must be after valid_from")

    try:
        for field, v in changes.items():
            setattr(coupon, field, v)
        coupon.updated_at = _now_utc()
        await db.commit()
    except IntegrityError as e:
        await db.rollback()
        if CODE_KEY not in str(e.orig):
            raise
        raise CouponConflict("Coupon code already exists")

    await db.refresh(coupon)
    return coupon


async def admin_delete_coupon(db: AsyncSession, *, coupon_id: UUID) -> None:
    coupon = await db.get(Coupon, coupon_id)
    if not coupon:
        raise CouponNotFound("Coupon not found")

    # The usage ledger is append-only, so used coupons can only be deactivated
    usage_res = await db.execute(
        select(CouponUsage.id).where(CouponUsage.coupon_id == coupon_id).limit(1)
    )
    if usage_res.scalar_one_or_none() is not None:
        raise CouponInUse("Coupon has usage records; deactivate it instead")

    try:
        await db.delete(coupon)
        await db.commit()
    except Exception:
        await db.rollback()
        raise


async def admin_coupon_usage_report(db: AsyncSession) -> list[dict]:
    """Every coupon with its redemptions, newest first."""
    res = await db.execute(select(Coupon).order_by(Coupon.created_at.desc()))
    coupons = list(res.scalars().all())
    if not coupons:
        return []

    usage_stmt = (
        select(
            CouponUsage,
            Order.email,
            Order.total_amount,
            Order.status,
        )
        .outerjoin(Order, Order.id == CouponUsage.order_id)
        .where(CouponUsage.coupon_id.in_([c.id for c in coupons]))
        .order_by(desc(CouponUsage.created_at))
    )
    usage_res = await db.execute(usage_stmt)

    usage_map: dict[UUID, list[dict]] = {}
    for usage, email, total_amount, status in usage_res.all():
        usage_map.setdefault(usage.coupon_id, []).append(
            {
                "id": usage.id,
                "order_id": usage.order_id,
                "user_id": usage.user_id,
                "discount_applied": int(usage.discount_applied),
                "created_at": usage.created_at,
                "order_email": email,
                "order_total_amount": (int(total_amount) if total_amount is not None else None),
                "order_status": status,
            }
        )

    out: list[dict] = []
    for c in coupons:
        rows = usage_map.get(c.id, [])
        out.append(
            {
                "id": c.id,
                "code": c.code,
                "description": c.description,
                "discount_type": c.discount_type,
                "discount_value": int(c.discount_value),
                "max_discount_amount": c.max_discount_amount,
                "min_purchase_amount": int(c.min_purchase_amount or 0),
                "max_uses": c.max_uses,
                "current_uses": int(c.current_uses or 0),
                "once_per_user": bool(c.once_per_user),
                "is_active": bool(c.is_active),
                "valid_from": c.valid_from,
                "valid_until": c.valid_until,
                "applicable_categories": c.applicable_categories,
                "created_at": c.created_at,
                "updated_at": c.updated_at,
                "usage": rows,
                "usage_count": len(rows),
                "total_discount_amount": sum(r["discount_applied"] for r in rows),
            }
        )
    return out
