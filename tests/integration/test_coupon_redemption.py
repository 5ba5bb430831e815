"""
[OK] Integration Tests: Coupon redemption

Usage ledger writes, limit enforcement and the /v1/coupons/redeem endpoint.
"""

import asyncio
import pytest
from datetime import timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, patch
from uuid import uuid4
from httpx import AsyncClient
from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from shopcoupon.models import Base, Coupon, CouponUsage, User, utcnow
from shopcoupon.services.coupon_ledger import CouponUsageLedger
from shopcoupon.services.coupon_service import CouponService
from shopcoupon.services.eligibility import CouponRejectReason
from shopcoupon.utils.exceptions import CouponRedemptionError


async def _usage_count(db_session: AsyncSession, coupon_id) -> int:
    result = await db_session.execute(
        select(func.count())
        .select_from(CouponUsage)
        .where(CouponUsage.coupon_id == coupon_id)
    )
    return result.scalar_one()


@pytest.mark.asyncio
class TestRedeemService:
    """Coupon service redemption tests"""

    async def test_redeem_records_usage(
        self, db_session: AsyncSession, test_user: User, make_coupon
    ):
        """Test: successful redemption appends one ledger entry"""
        coupon = await make_coupon("TEST10", usage_limit_total=5)

        result = await CouponService(db_session).redeem_coupon(
            test_user.id, "TEST10", order_ref="cart-1", cart_total=Decimal("120")
        )

        assert result["coupon_id"] == coupon.id
        assert result["discount"] == Decimal("12.00")
        usage = await db_session.get(CouponUsage, result["usage_id"])
        assert usage.user_id == test_user.id
        assert usage.order_ref == "cart-1"
        assert usage.usage_slot == 1
        assert usage.user_slot is None

    async def test_total_limit_one_two_users(
        self,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        make_coupon,
    ):
        """Test: limit 1 lets the first user in and rejects the second"""
        coupon = await make_coupon("ONCE", usage_limit_total=1)
        service = CouponService(db_session)

        await service.redeem_coupon(test_user.id, "ONCE")
        with pytest.raises(CouponRedemptionError) as exc_info:
            await service.redeem_coupon(other_user.id, "ONCE")

        assert exc_info.value.reason is CouponRejectReason.USAGE_LIMIT_EXCEEDED
        assert exc_info.value.status_code == 409
        assert await _usage_count(db_session, coupon.id) == 1

    async def test_per_user_limit(
        self, db_session: AsyncSession, test_user: User, make_coupon
    ):
        """Test: per-user limit 2 rejects the third redemption"""
        coupon = await make_coupon("TWICE", usage_limit_per_user=2)
        service = CouponService(db_session)

        await service.redeem_coupon(test_user.id, "TWICE")
        await service.redeem_coupon(test_user.id, "TWICE")
        with pytest.raises(CouponRedemptionError) as exc_info:
            await service.redeem_coupon(test_user.id, "TWICE")

        assert exc_info.value.reason is CouponRejectReason.USER_USAGE_LIMIT_EXCEEDED
        assert await _usage_count(db_session, coupon.id) == 2

    async def test_rejected_redemption_writes_nothing(
        self, db_session: AsyncSession, test_user: User, make_coupon
    ):
        """Test: failing checks leave the ledger untouched"""
        coupon = await make_coupon("MIN50", min_order_value=Decimal("50"))

        with pytest.raises(CouponRedemptionError) as exc_info:
            await CouponService(db_session).redeem_coupon(
                test_user.id, "MIN50", cart_total=Decimal("40")
            )

        assert exc_info.value.reason is CouponRejectReason.MIN_ORDER_NOT_MET
        assert exc_info.value.status_code == 422
        assert await _usage_count(db_session, coupon.id) == 0

    async def test_lost_race_is_rolled_back(
        self,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        make_coupon,
    ):
        """Test: a stale count that collides on the usage slot fails as INVALID"""
        # Given: the only slot is already taken
        coupon = await make_coupon("RACE", usage_limit_total=1)
        coupon_id, other_user_id = coupon.id, other_user.id
        service = CouponService(db_session)
        await service.redeem_coupon(test_user.id, "RACE")

        # When: a concurrent transaction still sees zero uses
        with patch.object(
            CouponUsageLedger, "count_for_coupon", AsyncMock(return_value=0)
        ):
            with pytest.raises(CouponRedemptionError) as exc_info:
                await service.redeem_coupon(other_user_id, "RACE")

        # Then: rejected with no partial entry
        assert exc_info.value.reason is CouponRejectReason.INVALID
        assert await _usage_count(db_session, coupon_id) == 1

    async def test_unlimited_coupon_has_no_slots(
        self, db_session: AsyncSession, test_user: User, make_coupon
    ):
        """Test: coupons without limits can be redeemed repeatedly"""
        coupon = await make_coupon("FREE")
        service = CouponService(db_session)

        for _ in range(3):
            await service.redeem_coupon(test_user.id, "FREE")

        assert await _usage_count(db_session, coupon.id) == 3


@pytest.mark.asyncio
class TestRedeemEndpoint:
    """/v1/coupons/redeem API tests"""

    async def test_redeem_success(
        self, async_client: AsyncClient, auth_headers: dict, make_coupon
    ):
        """Test: redemption returns the usage id and discount"""
        coupon = await make_coupon("TEST10")

        response = await async_client.post(
            "/v1/coupons/redeem",
            json={"code": "TEST10", "order_ref": "cart-9", "cart_total": "120"},
            headers=auth_headers,
        )

        assert response.status_code == 200
        data = response.json()
        assert data["coupon_id"] == str(coupon.id)
        assert data["usage_id"]
        assert Decimal(data["discount"]) == Decimal("12")

    async def test_redeem_exhausted_coupon(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        other_user: User,
        auth_headers: dict,
        make_coupon,
    ):
        """Test: exhausted coupon returns 409 with the reason code"""
        await make_coupon("ONCE", usage_limit_total=1)
        await CouponService(db_session).redeem_coupon(other_user.id, "ONCE")

        response = await async_client.post(
            "/v1/coupons/redeem", json={"code": "ONCE"}, headers=auth_headers
        )

        assert response.status_code == 409
        data = response.json()
        assert data["error"] == "USAGE_LIMIT_EXCEEDED"
        assert data["details"]["reason"] == "USAGE_LIMIT_EXCEEDED"

    async def test_redeem_unknown_code(
        self, async_client: AsyncClient, auth_headers: dict
    ):
        """Test: unknown code returns 404"""
        response = await async_client.post(
            "/v1/coupons/redeem", json={"code": "NOPE"}, headers=auth_headers
        )

        assert response.status_code == 404
        assert response.json()["error"] == "NOT_FOUND"

    async def test_redeem_expired_coupon(
        self, async_client: AsyncClient, auth_headers: dict, make_coupon
    ):
        """Test: expired coupon returns 422"""
        now = utcnow()
        await make_coupon(
            "OLD",
            valid_from=now - timedelta(days=2),
            valid_until=now - timedelta(days=1),
        )

        response = await async_client.post(
            "/v1/coupons/redeem", json={"code": "OLD"}, headers=auth_headers
        )

        assert response.status_code == 422
        assert response.json()["error"] == "EXPIRED"

    async def test_redeem_requires_login(self, async_client: AsyncClient):
        """Test: redemption without a token is unauthorized"""
        response = await async_client.post("/v1/coupons/redeem", json={"code": "X"})
        assert response.status_code == 401

    async def test_redeem_rejects_oversized_cart(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        auth_headers: dict,
        make_coupon,
    ):
        """Test: cart total beyond the money column range is rejected before the ledger"""
        coupon = await make_coupon("BIG")
        coupon_id = coupon.id

        response = await async_client.post(
            "/v1/coupons/redeem",
            json={"code": "BIG", "cart_total": "1e27"},
            headers=auth_headers,
        )

        assert response.status_code == 422
        assert await _usage_count(db_session, coupon_id) == 0


@pytest.mark.asyncio
class TestUserCouponListing:
    """/v1/coupons/me API tests"""

    async def test_lists_public_and_assigned_coupons(
        self,
        async_client: AsyncClient,
        db_session: AsyncSession,
        test_user: User,
        other_user: User,
        auth_headers: dict,
        make_coupon,
    ):
        """Test: only usable public or own assigned coupons are listed"""
        now = utcnow()
        await make_coupon("PUBLIC", usage_limit_per_user=3)
        await make_coupon("MINE", user_ids=[test_user.id])
        await make_coupon("THEIRS", user_ids=[other_user.id])
        await make_coupon("OFF", is_active=False)
        await make_coupon(
            "OLD",
            valid_from=now - timedelta(days=2),
            valid_until=now - timedelta(days=1),
        )
        await CouponService(db_session).redeem_coupon(test_user.id, "PUBLIC")

        response = await async_client.get("/v1/coupons/me", headers=auth_headers)

        assert response.status_code == 200
        coupons = {item["code"]: item for item in response.json()["coupons"]}
        assert set(coupons) == {"PUBLIC", "MINE"}
        assert coupons["PUBLIC"]["times_used"] == 1
        assert coupons["PUBLIC"]["remaining_uses"] == 2
        assert coupons["MINE"]["times_used"] == 0
        assert coupons["MINE"]["remaining_uses"] is None

    async def test_listing_requires_login(self, async_client: AsyncClient):
        """Test: listing without a token is unauthorized"""
        response = await async_client.get("/v1/coupons/me")
        assert response.status_code == 401


@pytest.mark.asyncio
class TestConcurrentRedemption:
    """Two independent sessions racing for the last slot"""

    async def test_two_sessions_race_for_last_slot(self, tmp_path):
        """Test: concurrent redemptions of a limit-1 coupon give one success and one INVALID"""
        # Given: a file-backed database shared by two connections
        engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'race.db'}")
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        session_factory = async_sessionmaker(
            engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
        )

        now = utcnow()
        coupon_id = uuid4()
        first_user_id, second_user_id = uuid4(), uuid4()
        async with session_factory() as session:
            for user_id, email in (
                (first_user_id, "first@example.com"),
                (second_user_id, "second@example.com"),
            ):
                session.add(
                    User(id=user_id, email=email, name=email, role="customer")
                )
            session.add(
                Coupon(
                    id=coupon_id,
                    code="LAST1",
                    name="LAST1 쿠폰",
                    discount_type="PERCENTAGE",
                    discount_value=Decimal("10"),
                    usage_limit_total=1,
                    valid_from=now - timedelta(days=1),
                    valid_until=now + timedelta(days=1),
                    is_active=True,
                )
            )
            await session.commit()

        # Both transactions finish their checks before either writes
        both_checked = asyncio.Barrier(2)
        original_append = CouponUsageLedger.append

        async def append_after_both_checked(self, *args, **kwargs):
            await asyncio.wait_for(both_checked.wait(), timeout=5)
            return await original_append(self, *args, **kwargs)

        async def redeem(user_id):
            async with session_factory() as session:
                return await CouponService(session).redeem_coupon(user_id, "LAST1")

        # When
        try:
            with patch.object(CouponUsageLedger, "append", append_after_both_checked):
                results = await asyncio.gather(
                    redeem(first_user_id),
                    redeem(second_user_id),
                    return_exceptions=True,
                )

            async with session_factory() as session:
                usage_count = await _usage_count(session, coupon_id)
        finally:
            await engine.dispose()

        # Then: exactly one ledger entry, the loser sees INVALID
        successes = [result for result in results if isinstance(result, dict)]
        failures = [
            result for result in results if isinstance(result, CouponRedemptionError)
        ]
        assert len(successes) == 1
        assert len(failures) == 1
        assert failures[0].reason is CouponRejectReason.INVALID
        assert usage_count == 1
