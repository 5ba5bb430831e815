"""
[OK] Integration Tests: Admin coupon management

CRUD, assignment sync, delete/retire policy and usage listing under /v1/admin/coupons.
"""

import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import patch
from uuid import uuid4
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models import User, utcnow
from shopcoupon.services.admin_coupon_service import AdminCouponService
from shopcoupon.services.coupon_service import CouponService
from shopcoupon.services.coupon_store import CouponStore


BASE_URL = "/v1/admin/coupons"


def _payload(code: str = "SPRING", **overrides) -> dict:
    now = utcnow()
    payload = {
        "code": code,
        "name": "봄맞이 할인",
        "discount_type": "PERCENTAGE",
        "discount_value": "15",
        "min_order_value": "30",
        "max_discount_amount": "20",
        "usage_limit_total": 100,
        "usage_limit_per_user": 1,
        "valid_from": (now - timedelta(days=1)).isoformat(),
        "valid_until": (now + timedelta(days=30)).isoformat(),
    }
    payload.update(overrides)
    return payload


@pytest.mark.asyncio
class TestAdminCouponCreate:
    """Coupon creation tests"""

    async def test_create_coupon(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: admin creates a public coupon"""
        response = await async_client.post(
            BASE_URL, json=_payload(category_ids=[1, "2"]), headers=admin_headers
        )

        assert response.status_code == 201
        data = response.json()
        assert data["code"] == "SPRING"
        assert data["discount_type"] == "PERCENTAGE"
        assert Decimal(data["discount_value"]) == Decimal("15")
        assert data["category_ids"] == ["1", "2"]
        assert data["user_ids"] == []
        assert data["usage_count"] == 0
        assert data["is_active"] is True

    async def test_create_assigned_coupon(
        self,
        async_client: AsyncClient,
        admin_headers: dict,
        test_user: User,
    ):
        """Test: user_ids create assignments in the same call"""
        response = await async_client.post(
            BASE_URL,
            json=_payload("VIPONLY", user_ids=[str(test_user.id)]),
            headers=admin_headers,
        )

        assert response.status_code == 201
        assert response.json()["user_ids"] == [str(test_user.id)]

    async def test_duplicate_code_conflict(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: reusing a code returns 409"""
        await async_client.post(BASE_URL, json=_payload(), headers=admin_headers)
        response = await async_client.post(
            BASE_URL, json=_payload(), headers=admin_headers
        )

        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    async def test_create_with_unknown_user(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: assigning a user that does not exist is a validation error, not a code conflict"""
        # Given: a fresh code and a user id with no account
        missing_user_id = str(uuid4())

        # When
        response = await async_client.post(
            BASE_URL,
            json=_payload("ASSIGN1", user_ids=[missing_user_id]),
            headers=admin_headers,
        )

        # Then: 400 naming the unknown ids, and the coupon is not created
        assert response.status_code == 400
        data = response.json()
        assert data["error"] == "validation_error"
        assert data["details"]["field"] == "user_ids"
        assert data["details"]["missing_user_ids"] == [missing_user_id]

        listing = await async_client.get(
            BASE_URL, params={"code": "ASSIGN1"}, headers=admin_headers
        )
        assert listing.json()["total"] == 0

    async def test_invalid_window(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: valid_until before valid_from is rejected"""
        now = utcnow()
        response = await async_client.post(
            BASE_URL,
            json=_payload(
                valid_from=now.isoformat(),
                valid_until=(now - timedelta(days=1)).isoformat(),
            ),
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "valid_until"

    async def test_percentage_above_hundred(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: percentage discount above 100 is rejected"""
        response = await async_client.post(
            BASE_URL, json=_payload(discount_value="150"), headers=admin_headers
        )
        assert response.status_code == 400

    async def test_customer_forbidden(
        self, async_client: AsyncClient, auth_headers: dict
    ):
        """Test: customers cannot manage coupons"""
        response = await async_client.post(
            BASE_URL, json=_payload(), headers=auth_headers
        )
        assert response.status_code == 403

        response = await async_client.get(BASE_URL, headers=auth_headers)
        assert response.status_code == 403


@pytest.mark.asyncio
class TestAdminCouponRead:
    """Coupon listing and detail tests"""

    async def test_list_with_filters(
        self, async_client: AsyncClient, admin_headers: dict, make_coupon
    ):
        """Test: code and is_active filters narrow the list"""
        await make_coupon("SUMMER10")
        await make_coupon("SUMMER20", is_active=False)
        await make_coupon("WINTER10")

        response = await async_client.get(
            BASE_URL, params={"code": "summer"}, headers=admin_headers
        )
        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {item["code"] for item in data["items"]} == {"SUMMER10", "SUMMER20"}

        response = await async_client.get(
            BASE_URL,
            params={"code": "SUMMER", "is_active": "true"},
            headers=admin_headers,
        )
        assert [item["code"] for item in response.json()["items"]] == ["SUMMER10"]

    async def test_list_pagination(
        self, async_client: AsyncClient, admin_headers: dict, make_coupon
    ):
        """Test: page and limit split the result set"""
        for index in range(3):
            await make_coupon(f"PAGE{index}")

        response = await async_client.get(
            BASE_URL, params={"page": 2, "limit": 2}, headers=admin_headers
        )

        data = response.json()
        assert data["total"] == 3
        assert data["page"] == 2
        assert len(data["items"]) == 1

    async def test_list_limit_bounded(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: limit above the maximum is rejected"""
        response = await async_client.get(
            BASE_URL, params={"limit": 1000}, headers=admin_headers
        )
        assert response.status_code == 422

    async def test_get_coupon(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        admin_headers: dict,
        make_coupon,
    ):
        """Test: detail includes assignments and usage count"""
        coupon = await make_coupon("DETAIL", user_ids=[test_user.id])
        await CouponService(db_session).redeem_coupon(test_user.id, "DETAIL")

        response = await async_client.get(
            f"{BASE_URL}/{coupon.id}", headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["user_ids"] == [str(test_user.id)]
        assert data["usage_count"] == 1

    async def test_get_missing_coupon(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: unknown id returns 404"""
        response = await async_client.get(
            f"{BASE_URL}/{uuid4()}", headers=admin_headers
        )
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


@pytest.mark.asyncio
class TestAdminCouponUpdate:
    """Coupon update tests"""

    async def test_partial_update(
        self, async_client: AsyncClient, admin_headers: dict, make_coupon
    ):
        """Test: only sent fields change"""
        coupon = await make_coupon("EDIT", min_order_value=Decimal("10"))

        response = await async_client.put(
            f"{BASE_URL}/{coupon.id}",
            json={"name": "새 이름", "discount_value": "20"},
            headers=admin_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["name"] == "새 이름"
        assert Decimal(data["discount_value"]) == Decimal("20")
        assert Decimal(data["min_order_value"]) == Decimal("10")

    async def test_update_syncs_assignments(
        self,
        async_client: AsyncClient,
        admin_headers: dict,
        test_user: User,
        other_user: User,
        make_coupon,
    ):
        """Test: user_ids replaces the assignment list"""
        coupon = await make_coupon("SYNC", user_ids=[test_user.id])
        coupon_id, other_user_id = coupon.id, other_user.id

        response = await async_client.put(
            f"{BASE_URL}/{coupon_id}",
            json={"user_ids": [str(other_user_id)]},
            headers=admin_headers,
        )
        assert response.status_code == 200
        assert response.json()["user_ids"] == [str(other_user_id)]

        response = await async_client.put(
            f"{BASE_URL}/{coupon_id}", json={"user_ids": []}, headers=admin_headers
        )
        assert response.json()["user_ids"] == []

    async def test_update_with_unknown_user(
        self,
        async_client: AsyncClient,
        admin_headers: dict,
        test_user: User,
        make_coupon,
    ):
        """Test: replacing assignments with an unknown user is rejected and changes nothing"""
        coupon = await make_coupon("KEEPME", user_ids=[test_user.id])
        coupon_id, test_user_id = coupon.id, test_user.id
        missing_user_id = str(uuid4())

        response = await async_client.put(
            f"{BASE_URL}/{coupon_id}",
            json={"name": "바뀌면 안 됨", "user_ids": [str(test_user_id), missing_user_id]},
            headers=admin_headers,
        )

        assert response.status_code == 400
        assert response.json()["details"]["missing_user_ids"] == [missing_user_id]

        response = await async_client.get(
            f"{BASE_URL}/{coupon_id}", headers=admin_headers
        )
        assert response.json()["name"] == "KEEPME 쿠폰"
        assert response.json()["user_ids"] == [str(test_user_id)]

    async def test_update_code_conflict(
        self, async_client: AsyncClient, admin_headers: dict, make_coupon
    ):
        """Test: renaming to an existing code returns 409"""
        await make_coupon("TAKEN")
        coupon = await make_coupon("FREE")

        response = await async_client.put(
            f"{BASE_URL}/{coupon.id}", json={"code": "TAKEN"}, headers=admin_headers
        )
        assert response.status_code == 409

    async def test_update_cannot_null_required_field(
        self, async_client: AsyncClient, admin_headers: dict, make_coupon
    ):
        """Test: explicit null for a required field is rejected"""
        coupon = await make_coupon("KEEP")

        response = await async_client.put(
            f"{BASE_URL}/{coupon.id}", json={"name": None}, headers=admin_headers
        )

        assert response.status_code == 400
        assert response.json()["details"]["field"] == "name"

    async def test_update_missing_coupon(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: updating an unknown id returns 404"""
        response = await async_client.put(
            f"{BASE_URL}/{uuid4()}", json={"name": "x"}, headers=admin_headers
        )
        assert response.status_code == 404


@pytest.mark.asyncio
class TestAdminCouponDelete:
    """Delete and retire tests"""

    async def test_delete_unused_coupon(
        self, async_client: AsyncClient, admin_headers: dict, make_coupon
    ):
        """Test: coupon without usages is removed"""
        coupon = await make_coupon("UNUSED")
        coupon_id = coupon.id

        response = await async_client.delete(
            f"{BASE_URL}/{coupon_id}", headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json() == {
            "id": str(coupon_id),
            "deleted": True,
            "retired": False,
        }

        response = await async_client.get(
            f"{BASE_URL}/{coupon_id}", headers=admin_headers
        )
        assert response.status_code == 404

    async def test_delete_locks_coupon_row(
        self, db_session: AsyncSession, admin_user: User, make_coupon
    ):
        """Test: delete reads the coupon with a row lock before counting usages"""
        coupon = await make_coupon("LOCKED")
        coupon_id = coupon.id

        with patch.object(
            CouponStore,
            "get_by_id",
            autospec=True,
            side_effect=CouponStore.get_by_id,
        ) as get_by_id:
            result = await AdminCouponService(db_session).delete_coupon(
                coupon_id, admin_id=admin_user.id
            )

        assert result["deleted"] is True
        assert get_by_id.call_args_list[0].kwargs["lock"] is True

    async def test_delete_used_coupon_retires_it(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        admin_headers: dict,
        auth_headers: dict,
        make_coupon,
    ):
        """Test: coupon with usages is retired and stops validating"""
        coupon = await make_coupon("USED")
        coupon_id = coupon.id
        await CouponService(db_session).redeem_coupon(test_user.id, "USED")

        response = await async_client.delete(
            f"{BASE_URL}/{coupon_id}", headers=admin_headers
        )
        assert response.status_code == 200
        assert response.json()["retired"] is True

        # 폐기된 쿠폰은 기본 목록에서 제외되고 검증 시 존재하지 않는 쿠폰으로 취급
        listing = await async_client.get(BASE_URL, headers=admin_headers)
        assert listing.json()["total"] == 0
        listing = await async_client.get(
            BASE_URL, params={"include_retired": "true"}, headers=admin_headers
        )
        assert listing.json()["items"][0]["retired_at"] is not None

        response = await async_client.post(
            "/v1/coupons/validate",
            json={"code": "USED", "cart_total": "100"},
            headers=auth_headers,
        )
        assert response.json()["reason"] == "NOT_FOUND"

        usages = await async_client.get(
            f"{BASE_URL}/{coupon_id}/usages", headers=admin_headers
        )
        assert usages.json()["total"] == 1


@pytest.mark.asyncio
class TestAdminCouponUsages:
    """Usage history tests"""

    async def test_list_usages(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        admin_headers: dict,
        make_coupon,
    ):
        """Test: usage history lists every redemption"""
        coupon = await make_coupon("HIST")
        service = CouponService(db_session)
        await service.redeem_coupon(test_user.id, "HIST", order_ref="cart-a")
        await service.redeem_coupon(other_user.id, "HIST", order_ref="cart-b")

        response = await async_client.get(
            f"{BASE_URL}/{coupon.id}/usages", headers=admin_headers
        )

        assert response.status_code == 200
        data = response.json()
        assert data["total"] == 2
        assert {item["order_ref"] for item in data["items"]} == {"cart-a", "cart-b"}
        assert {item["user_id"] for item in data["items"]} == {
            str(test_user.id),
            str(other_user.id),
        }

    async def test_usages_for_missing_coupon(
        self, async_client: AsyncClient, admin_headers: dict
    ):
        """Test: unknown coupon id returns 404"""
        response = await async_client.get(
            f"{BASE_URL}/{uuid4()}/usages", headers=admin_headers
        )
        assert response.status_code == 404
