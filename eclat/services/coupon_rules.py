"""
Pure coupon rules shared by validation (advisory, before payment) and
redemption (authoritative, under the coupon row lock).

Nothing here touches the database. All amounts are integer minor units.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Iterable

PERCENTAGE = "percentage"
FIXED = "fixed"

# Rejection reasons (machine readable)
MISSING_CODE = "missing code"
INVALID_AMOUNT = "invalid amount"
CODE_NOT_FOUND = "code not found"
INACTIVE = "inactive"
NOT_YET_VALID = "not yet valid"
EXPIRED = "expired"
USAGE_LIMIT_REACHED = "usage limit reached"
MIN_PURCHASE_NOT_MET = "minimum purchase not met"
NO_ELIGIBLE_ITEMS = "no eligible items"
ALREADY_USED_BY_USER = "already used by this user"
MISCONFIGURED = "misconfigured"

REASON_MESSAGES = {
    MISSING_CODE: "Please enter a discount code.",
    INVALID_AMOUNT: "The cart total must be greater than 0.",
    CODE_NOT_FOUND: "This discount code is not valid or does not exist.",
    INACTIVE: "This coupon is not currently available.",
    NOT_YET_VALID: "This coupon is not valid yet.",
    EXPIRED: "This coupon has expired.",
    USAGE_LIMIT_REACHED: "This coupon has reached its maximum number of uses.",
    MIN_PURCHASE_NOT_MET: "Your cart does not meet the minimum purchase for this coupon.",
    NO_ELIGIBLE_ITEMS: "This coupon does not apply to the products in your cart.",
    ALREADY_USED_BY_USER: "You have already used this discount code.",
    MISCONFIGURED: "This coupon cannot be applied to your cart.",
}


def normalize_code(code: str | None) -> str:
    return (code or "").strip().upper()


def usage_available(coupon) -> bool:
    """True while the coupon is below its global usage cap (or has none)."""
    if coupon.max_uses is None:
        return True
    return int(coupon.current_uses or 0) < int(coupon.max_uses)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def window_reason(coupon, now: datetime) -> str | None:
    now = _aware(now)
    if coupon.valid_from is not None and _aware(coupon.valid_from) > now:
        return NOT_YET_VALID
    if coupon.valid_until is not None and _aware(coupon.valid_until) < now:
        return EXPIRED
    return None


def has_category_restrictions(coupon) -> bool:
    return bool(coupon.applicable_categories)


def eligible_subtotal(coupon, cart_items: Iterable) -> int:
    allowed = {str(c) for c in (coupon.applicable_categories or [])}
    total = 0
    for item in cart_items:
        if str(item.product.category_id) in allowed:
            total += int(item.product.price) * int(item.quantity)
    return total


def has_eligible_items(coupon, cart_items: Iterable) -> bool:
    allowed = {str(c) for c in (coupon.applicable_categories or [])}
    return any(str(item.product.category_id) in allowed for item in cart_items)


def calculate_discount(coupon, amount: int) -> int:
    """
    percentage: floor(amount * value / 100), capped by max_discount_amount
    fixed:      min(value, amount)
    """
    amount = int(amount)
    value = int(coupon.discount_value)

    if coupon.discount_type == FIXED:
        return min(value, amount)

    discount = (amount * value) // 100
    if coupon.max_discount_amount is not None:
        discount = min(discount, int(coupon.max_discount_amount))
    return discount


def discount_in_bounds(discount: int, total_amount: int) -> bool:
    return 0 < discount <= total_amount
