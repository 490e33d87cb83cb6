# eclat/routers/admin_coupons.py
from __future__ import annotations

from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from eclat.core.db import get_db
from eclat.core.deps import require_admin
from eclat.schemas.coupons import (
    CouponCreate,
    CouponOut,
    CouponUpdate,
    CouponUsageReportOut,
)
from eclat.services.coupons import (
    CouponConflict,
    CouponError,
    CouponInUse,
    CouponNotFound,
    admin_coupon_usage_report,
    admin_create_coupon,
    admin_delete_coupon,
    admin_get_coupon,
    admin_list_coupons,
    admin_update_coupon,
)

router = APIRouter(prefix="/api/admin/coupons", tags=["Admin - Coupons"])


def _to_http(e: CouponError) -> HTTPException:
    if isinstance(e, CouponNotFound):
        return HTTPException(status_code=404, detail=str(e))
    if isinstance(e, CouponConflict):
        return HTTPException(status_code=409, detail=str(e))
    return HTTPException(status_code=400, detail=str(e))


@router.post("", response_model=CouponOut)
async def create_coupon(
    body: CouponCreate,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        return await admin_create_coupon(db, data=body)
    except CouponError as e:
        raise _to_http(e)


@router.get("", response_model=list[CouponOut])
async def list_coupons(
    is_active: bool | None = Query(default=None),
    limit: int = Query(default=100, ge=1, le=500),
    offset: int = Query(default=0, ge=0),
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await admin_list_coupons(db, is_active=is_active, limit=limit, offset=offset)


# declared before /{coupon_id} so "usage" is not parsed as an id
@router.get("/usage", response_model=list[CouponUsageReportOut])
async def coupons_usage(
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    return await admin_coupon_usage_report(db)


@router.get("/{coupon_id}", response_model=CouponOut)
async def get_coupon(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        return await admin_get_coupon(db, coupon_id)
    except CouponError as e:
        raise _to_http(e)


@router.patch("/{coupon_id}", response_model=CouponOut)
async def update_coupon(
    coupon_id: UUID,
    body: CouponUpdate,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        return await admin_update_coupon(db, coupon_id=coupon_id, data=body)
    except CouponError as e:
        raise _to_http(e)


@router.delete("/{coupon_id}")
async def delete_coupon(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_db),
    admin_user=Depends(require_admin),
):
    try:
        await admin_delete_coupon(db, coupon_id=coupon_id)
    except CouponInUse as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CouponError as e:
        raise _to_http(e)

    return {"detail": "Deleted"}
