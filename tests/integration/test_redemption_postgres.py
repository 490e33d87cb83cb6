# tests/integration/test_redemption_postgres.py
"""
Redemption against a real Postgres, where the row lock and the per-order
unique key actually apply. Point TEST_DATABASE_URL at a throwaway database
(postgresql+asyncpg://...); its tables are dropped and recreated.
"""

import asyncio
import os
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import func, select, text
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

import eclat.models  # noqa: F401
from eclat.core.db import Base
from eclat.models.coupon import Coupon
from eclat.models.coupon_usage import CouponUsage
from eclat.models.order import Order
from eclat.services.coupons import redeem_coupon, validate_coupon
from eclat.services.orders import mark_order_paid

TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

pytestmark = [
    pytest.mark.integration,
    pytest.mark.skipif(not TEST_DATABASE_URL, reason="TEST_DATABASE_URL not set"),
]


@pytest_asyncio.fixture
async def sessionmaker():
    engine = create_async_engine(TEST_DATABASE_URL, pool_size=10, max_overflow=10)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.execute(text("CREATE SEQUENCE IF NOT EXISTS order_number_seq START 1000"))
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


async def _seed(sessionmaker, *, orders=1, **coupon_fields):
    fields = dict(code="SUMMER10", discount_type="percentage", discount_value=10)
    fields.update(coupon_fields)

    async with sessionmaker() as db:
        coupon = Coupon(**fields)
        db.add(coupon)
        await db.flush()

        order_list = [
            Order(
                email=f"guest{i}@example.com",
                subtotal_amount=5000,
                discount_amount=500,
                total_amount=4500,
                currency="eur",
                coupon_id=coupon.id,
                status="paid",
                coupon_redemption_status="pending",
            )
            for i in range(orders)
        ]
        db.add_all(order_list)
        await db.commit()

        return coupon.id, [o.id for o in order_list]


async def _redeem(sessionmaker, coupon_id, order_id):
    async with sessionmaker() as db:
        return await redeem_coupon(
            db,
            coupon_id=coupon_id,
            order_id=order_id,
            user_id=None,
            discount_applied=500,
        )


async def _counts(sessionmaker, coupon_id):
    async with sessionmaker() as db:
        uses = (await db.execute(select(Coupon.current_uses).where(Coupon.id == coupon_id))).scalar_one()
        rows = (
            await db.execute(select(func.count(CouponUsage.id)).where(CouponUsage.coupon_id == coupon_id))
        ).scalar_one()
        return uses, rows


@pytest.mark.asyncio
async def test_concurrent_redemptions_never_exceed_max_uses(sessionmaker):
    coupon_id, order_ids = await _seed(sessionmaker, orders=8, max_uses=3)

    results = await asyncio.gather(*(_redeem(sessionmaker, coupon_id, oid) for oid in order_ids))

    succeeded = [r for r in results if r.success]
    rejected = [r for r in results if not r.success]
    assert len(succeeded) == 3
    assert len(rejected) == 5
    assert all(r.error == "usage limit reached" for r in rejected)
    assert sorted(r.new_uses for r in succeeded) == [1, 2, 3]

    assert await _counts(sessionmaker, coupon_id) == (3, 3)


@pytest.mark.asyncio
async def test_concurrent_redemptions_of_one_order_count_once(sessionmaker):
    coupon_id, (order_id,) = await _seed(sessionmaker, orders=1, max_uses=10)

    results = await asyncio.gather(*(_redeem(sessionmaker, coupon_id, order_id) for _ in range(4)))

    assert all(r.success for r in results)
    assert sum(1 for r in results if not r.already_redeemed) == 1
    assert await _counts(sessionmaker, coupon_id) == (1, 1)


@pytest.mark.asyncio
async def test_summer10_single_use_lifecycle(sessionmaker):
    coupon_id, (order_id,) = await _seed(sessionmaker, orders=1, max_uses=1)

    async with sessionmaker() as db:
        first = await validate_coupon(db, code="summer10", total_amount=5000)
    assert first.valid
    assert first.discount_amount == 500

    redemption = await _redeem(sessionmaker, coupon_id, order_id)
    assert redemption.success
    assert redemption.new_uses == 1

    async with sessionmaker() as db:
        second = await validate_coupon(db, code="SUMMER10", total_amount=5000)
    assert not second.valid
    assert second.reason == "usage limit reached"


@pytest.mark.asyncio
async def test_repeat_payment_confirmation_redeems_pending_order(sessionmaker):
    # seeded orders are already paid with redemption pending
    coupon_id, (order_id,) = await _seed(sessionmaker, orders=1, max_uses=5)

    async with sessionmaker() as db:
        order, redemption = await mark_order_paid(db, order_id=order_id, payment_reference="cs_retry")
        assert redemption.success
        assert order.coupon_redemption_status == "redeemed"

    async with sessionmaker() as db:
        _, again = await mark_order_paid(db, order_id=order_id, payment_reference="cs_retry")
    assert again is None

    assert await _counts(sessionmaker, coupon_id) == (1, 1)


@pytest.mark.asyncio
async def test_per_user_cap_after_redemption(sessionmaker):
    coupon_id, (order_id,) = await _seed(sessionmaker, orders=1, once_per_user=True)
    user_id = uuid4()

    async with sessionmaker() as db:
        await redeem_coupon(db, coupon_id=coupon_id, order_id=order_id, user_id=user_id, discount_applied=500)

    async with sessionmaker() as db:
        again = await validate_coupon(db, code="SUMMER10", total_amount=5000, user_id=user_id)
        other = await validate_coupon(db, code="SUMMER10", total_amount=5000, user_id=uuid4())

    assert again.reason == "already used by this user"
    assert other.valid
