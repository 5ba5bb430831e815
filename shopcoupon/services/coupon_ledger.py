"""
쿠폰 사용 원장

목적: 쿠폰 사용 이력 집계 및 추가 (수정/삭제 없음)
"""

from typing import Dict, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models.coupon import Coupon
from shopcoupon.models.coupon_usage import CouponUsage


class CouponUsageLedger:
    """쿠폰 사용 원장"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def count_for_coupon(self, coupon_id: UUID) -> int:
        """쿠폰 전체 사용 횟수"""
        result = await self.db.execute(
            select(func.count())
            .select_from(CouponUsage)
            .where(CouponUsage.coupon_id == coupon_id)
        )
        return result.scalar_one()

    async def count_for_user(self, coupon_id: UUID, user_id: UUID) -> int:
        """사용자별 쿠폰 사용 횟수"""
        result = await self.db.execute(
            select(func.count())
            .select_from(CouponUsage)
            .where(
                CouponUsage.coupon_id == coupon_id,
                CouponUsage.user_id == user_id,
            )
        )
        return result.scalar_one()

    async def counts_for_user(
        self, user_id: UUID, coupon_ids: Sequence[UUID]
    ) -> Dict[UUID, int]:
        """여러 쿠폰에 대한 사용자 사용 횟수 (쿠폰 ID -> 횟수)"""
        if not coupon_ids:
            return {}

        result = await self.db.execute(
            select(CouponUsage.coupon_id, func.count())
            .where(
                CouponUsage.user_id == user_id,
                CouponUsage.coupon_id.in_(coupon_ids),
            )
            .group_by(CouponUsage.coupon_id)
        )
        return {coupon_id: count for coupon_id, count in result.all()}

    async def append(
        self,
        coupon: Coupon,
        user_id: UUID,
        order_ref: Optional[str] = None,
        total_used: Optional[int] = None,
        user_used: Optional[int] = None,
    ) -> CouponUsage:
        """
        사용 이력 추가 (flush까지만 수행, 커밋은 호출자 책임)

        한도가 설정된 쿠폰은 슬롯 번호(현재 사용 횟수 + 1)를 함께 기록하여
        동시에 같은 슬롯을 차지하려는 트랜잭션을 UNIQUE 제약으로 막습니다.

        Args:
            coupon: 쿠폰 (사용 처리 트랜잭션에서 잠근 행)
            user_id: 사용자 ID
            order_ref: 장바구니/주문 참조 (예약 단계에서는 None)
            total_used: 검증 시점의 전체 사용 횟수
            user_used: 검증 시점의 사용자 사용 횟수

        Raises:
            IntegrityError: 다른 트랜잭션이 먼저 같은 슬롯을 사용한 경우
        """
        usage = CouponUsage(
            coupon_id=coupon.id,
            user_id=user_id,
            order_ref=order_ref,
            usage_slot=(
                total_used + 1
                if coupon.usage_limit_total is not None and total_used is not None
                else None
            ),
            user_slot=(
                user_used + 1
                if coupon.usage_limit_per_user is not None and user_used is not None
                else None
            ),
        )
        self.db.add(usage)
        await self.db.flush()
        return usage

    async def list_for_coupon(
        self, coupon_id: UUID, offset: int = 0, limit: int = 50
    ) -> tuple[List[CouponUsage], int]:
        """쿠폰 사용 이력 목록 (최신순) 및 전체 개수"""
        total = await self.count_for_coupon(coupon_id)
        result = await self.db.execute(
            select(CouponUsage)
            .where(CouponUsage.coupon_id == coupon_id)
            .order_by(CouponUsage.created_at.desc())
            .offset(offset)
            .limit(limit)
        )
        return list(result.scalars().all()), total
