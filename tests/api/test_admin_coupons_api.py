# tests/api/test_admin_coupons_api.py

from datetime import datetime, timezone
from uuid import uuid4

from sqlalchemy.exc import IntegrityError

from eclat.models.coupon_usage import CouponUsage
from tests.utils.factories import make_coupon, result

BASE = "/api/admin/coupons"


def _assign_server_defaults(coupon):
    now = datetime.now(timezone.utc)
    coupon.id = coupon.id or uuid4()
    coupon.created_at = coupon.created_at or now
    coupon.updated_at = coupon.updated_at or now


# -------------------------
# Access
# -------------------------
def test_requires_token(client):
    response = client.get(BASE)
    assert response.status_code == 401


def test_customers_are_forbidden(client, db, auth_headers):
    db.execute.return_value = result("customer")

    response = client.get(BASE, headers=auth_headers)
    assert response.status_code == 403


def test_admin_profile_is_allowed(client, db, auth_headers):
    db.execute.side_effect = [result("admin"), result(scalars=[make_coupon()])]

    response = client.get(BASE, headers=auth_headers)

    assert response.status_code == 200
    assert response.json()[0]["code"] == "SUMMER10"


# -------------------------
# CRUD
# -------------------------
def test_create_coupon_normalizes_code(admin_client, db):
    db.refresh.side_effect = _assign_server_defaults

    response = admin_client.post(
        BASE,
        json={"code": " summer10 ", "discount_type": "percentage", "discount_value": 10, "max_uses": 100},
    )

    assert response.status_code == 200
    data = response.json()
    assert data["code"] == "SUMMER10"
    assert data["current_uses"] == 0
    assert data["once_per_user"] is True
    db.commit.assert_awaited_once()


def test_create_rejects_percentage_over_100(admin_client, db):
    response = admin_client.post(BASE, json={"code": "HUGE", "discount_type": "percentage", "discount_value": 150})

    assert response.status_code == 422
    db.add.assert_not_called()


def test_create_duplicate_code_is_409(admin_client, db):
    db.commit.side_effect = IntegrityError("INSERT", {}, Exception("coupons_code_key"))

    response = admin_client.post(BASE, json={"code": "SUMMER10", "discount_type": "fixed", "discount_value": 500})

    assert response.status_code == 409
    db.rollback.assert_awaited_once()


def test_get_coupon(admin_client, db):
    coupon = make_coupon()
    db.get.return_value = coupon

    response = admin_client.get(f"{BASE}/{coupon.id}")

    assert response.status_code == 200
    assert response.json()["id"] == str(coupon.id)


def test_get_unknown_coupon(admin_client, db):
    db.get.return_value = None

    response = admin_client.get(f"{BASE}/{uuid4()}")
    assert response.status_code == 404


def test_update_coupon(admin_client, db):
    coupon = make_coupon(max_uses=10, current_uses=3)
    db.execute.return_value = result(coupon)

    response = admin_client.patch(f"{BASE}/{coupon.id}", json={"is_active": False, "max_uses": 5})

    assert response.status_code == 200
    data = response.json()
    assert data["is_active"] is False
    assert data["max_uses"] == 5


def test_update_cannot_lower_cap_below_uses(admin_client, db):
    coupon = make_coupon(max_uses=10, current_uses=3)
    db.execute.return_value = result(coupon)

    response = admin_client.patch(f"{BASE}/{coupon.id}", json={"max_uses": 2})

    assert response.status_code == 400
    db.commit.assert_not_awaited()


def test_update_rejects_null_discount_value(admin_client, db):
    response = admin_client.patch(f"{BASE}/{uuid4()}", json={"discount_value": None})

    assert response.status_code == 422
    db.execute.assert_not_awaited()


def test_update_rejects_null_flags(admin_client, db):
    for field in ("is_active", "once_per_user", "min_purchase_amount", "code"):
        response = admin_client.patch(f"{BASE}/{uuid4()}", json={field: None})
        assert response.status_code == 422, field

    db.commit.assert_not_awaited()


def test_update_allows_clearing_optional_limits(admin_client, db):
    coupon = make_coupon(max_uses=10, max_discount_amount=1500)
    db.execute.return_value = result(coupon)

    response = admin_client.patch(f"{BASE}/{coupon.id}", json={"max_uses": None, "max_discount_amount": None})

    assert response.status_code == 200
    assert response.json()["max_uses"] is None
    assert response.json()["max_discount_amount"] is None


def test_update_to_taken_code_is_409(admin_client, db):
    coupon = make_coupon(code="SUMMER10")
    db.execute.return_value = result(coupon)
    db.commit.side_effect = IntegrityError(
        "UPDATE", {}, Exception('duplicate key value violates unique constraint "coupons_code_key"')
    )

    response = admin_client.patch(f"{BASE}/{coupon.id}", json={"code": "winter5"})

    assert response.status_code == 409
    db.rollback.assert_awaited_once()


def test_update_other_integrity_errors_are_not_conflicts(admin_client, db):
    coupon = make_coupon(max_uses=10, current_uses=3)
    db.execute.return_value = result(coupon)
    db.commit.side_effect = IntegrityError(
        "UPDATE", {}, Exception('new row violates check constraint "coupons_uses_within_max_chk"')
    )

    response = admin_client.patch(f"{BASE}/{coupon.id}", json={"max_uses": 4})

    assert response.status_code == 500
    assert response.json() == {"detail": "Database error"}


def test_delete_unused_coupon(admin_client, db):
    coupon = make_coupon()
    db.get.return_value = coupon
    db.execute.return_value = result(None)

    response = admin_client.delete(f"{BASE}/{coupon.id}")

    assert response.status_code == 200
    db.delete.assert_awaited_once_with(coupon)


def test_delete_used_coupon_is_refused(admin_client, db):
    coupon = make_coupon(current_uses=1)
    db.get.return_value = coupon
    db.execute.return_value = result(uuid4())

    response = admin_client.delete(f"{BASE}/{coupon.id}")

    assert response.status_code == 400
    assert "deactivate" in response.json()["detail"]
    db.delete.assert_not_awaited()


# -------------------------
# Usage report
# -------------------------
def test_usage_report(admin_client, db):
    coupon = make_coupon(current_uses=2)
    unused = make_coupon(code="WINTER5")
    now = datetime.now(timezone.utc)
    usages = [
        (
            CouponUsage(id=uuid4(), coupon_id=coupon.id, order_id=uuid4(), user_id=None, discount_applied=500, created_at=now),
            "a@example.com",
            4500,
            "paid",
        ),
        (
            CouponUsage(id=uuid4(), coupon_id=coupon.id, order_id=uuid4(), user_id=uuid4(), discount_applied=300, created_at=now),
            None,
            2700,
            "paid",
        ),
    ]
    db.execute.side_effect = [result(scalars=[coupon, unused]), result(rows=usages)]

    response = admin_client.get(f"{BASE}/usage")

    assert response.status_code == 200
    first, second = response.json()
    assert first["code"] == "SUMMER10"
    assert first["usage_count"] == 2
    assert first["total_discount_amount"] == 800
    assert first["usage"][0]["order_email"] == "a@example.com"
    assert second["usage_count"] == 0
    assert second["usage"] == []
