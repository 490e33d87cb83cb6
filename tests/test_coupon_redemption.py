# tests/test_coupon_redemption.py

from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError, OperationalError

from eclat.models.coupon_usage import CouponUsage
from eclat.services.coupons import redeem_coupon
from tests.utils.factories import make_coupon, result


def _integrity_error(constraint):
    return IntegrityError(
        "INSERT INTO coupon_usage ...",
        {},
        Exception(f'duplicate key value violates unique constraint "{constraint}"'),
    )


async def _redeem(db, coupon, *, order_id=None, user_id=None, discount=500):
    return await redeem_coupon(
        db,
        coupon_id=coupon.id if coupon else uuid4(),
        order_id=order_id or uuid4(),
        user_id=user_id,
        discount_applied=discount,
    )


@pytest.mark.asyncio
async def test_redeem_increments_and_records_usage(db):
    coupon = make_coupon(max_uses=5, current_uses=2)
    order_id, user_id = uuid4(), uuid4()
    db.execute.side_effect = [result(coupon), result(None), result()]

    res = await _redeem(db, coupon, order_id=order_id, user_id=user_id, discount=750)

    assert res.success
    assert res.new_uses == 3
    assert not res.already_redeemed
    assert db.execute.await_count == 3
    db.commit.assert_awaited_once()
    db.rollback.assert_not_awaited()

    usage = db.add.call_args.args[0]
    assert isinstance(usage, CouponUsage)
    assert usage.coupon_id == coupon.id
    assert usage.order_id == order_id
    assert usage.user_id == user_id
    assert usage.discount_applied == 750


@pytest.mark.asyncio
async def test_redeem_uncapped_coupon(db):
    coupon = make_coupon(max_uses=None, current_uses=41)
    db.execute.side_effect = [result(coupon), result(None), result()]

    res = await _redeem(db, coupon)

    assert res.success
    assert res.new_uses == 42


@pytest.mark.asyncio
async def test_redeem_unknown_coupon(db):
    db.execute.side_effect = [result(None)]

    res = await _redeem(db, None)

    assert not res.success
    assert res.error == "coupon not found"
    db.rollback.assert_awaited_once()
    db.add.assert_not_called()
    db.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_redeem_at_limit_changes_nothing(db):
    coupon = make_coupon(max_uses=1, current_uses=1)
    db.execute.side_effect = [result(coupon), result(None)]

    res = await _redeem(db, coupon)

    assert not res.success
    assert res.error == "usage limit reached"
    # lock + per-order lookup only, no UPDATE
    assert db.execute.await_count == 2
    db.add.assert_not_called()
    db.commit.assert_not_awaited()
    db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_redeem_same_order_twice_is_a_noop(db):
    coupon = make_coupon(max_uses=1, current_uses=1)
    db.execute.side_effect = [result(coupon), result(uuid4())]

    res = await _redeem(db, coupon)

    assert res.success
    assert res.already_redeemed
    assert res.new_uses == 1
    db.add.assert_not_called()
    db.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_concurrent_duplicate_for_same_order_reports_already_redeemed(db):
    coupon = make_coupon(max_uses=10, current_uses=0)
    db.execute.side_effect = [result(coupon), result(None), result()]
    db.commit.side_effect = _integrity_error("coupon_usage_coupon_order_key")

    res = await _redeem(db, coupon)

    assert res.success
    assert res.already_redeemed
    db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_other_integrity_errors_propagate(db):
    coupon = make_coupon(max_uses=10, current_uses=0)
    db.execute.side_effect = [result(coupon), result(None), result()]
    db.commit.side_effect = _integrity_error("coupons_uses_within_max_chk")

    with pytest.raises(IntegrityError):
        await _redeem(db, coupon)

    db.rollback.assert_awaited_once()


@pytest.mark.asyncio
async def test_database_errors_roll_back_and_propagate(db):
    coupon = make_coupon()
    db.execute.side_effect = [result(coupon), OperationalError("SELECT", {}, Exception("connection lost"))]

    with pytest.raises(OperationalError):
        await _redeem(db, coupon)

    db.rollback.assert_awaited_once()
    db.commit.assert_not_awaited()
