"""
쿠폰 저장소

목적: 쿠폰 정의 조회 쿼리 모음
"""

from datetime import datetime
from typing import Iterable, List, Optional
from uuid import UUID

from sqlalchemy import and_, exists, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models.coupon import Coupon, CouponAssignment
from shopcoupon.models.user import User


class CouponStore:
    """쿠폰 저장소"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_by_code(self, coupon_code: str, lock: bool = False) -> Optional[Coupon]:
        """
        쿠폰 코드로 쿠폰 조회 (대소문자 구분 일치)

        Args:
            coupon_code: 쿠폰 코드
            lock: True면 SELECT ... FOR UPDATE로 행을 잠그고 최신 상태로 다시 읽음

        Returns:
            쿠폰 또는 None
        """
        query = select(Coupon).where(Coupon.code == coupon_code)
        if lock:
            query = query.with_for_update().execution_options(populate_existing=True)

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def get_by_id(self, coupon_id: UUID, lock: bool = False) -> Optional[Coupon]:
        query = (
            select(Coupon)
            .where(Coupon.id == coupon_id)
            .execution_options(populate_existing=True)
        )
        if lock:
            query = query.with_for_update()

        result = await self.db.execute(query)
        return result.scalar_one_or_none()

    async def find_missing_users(self, user_ids: Iterable[UUID]) -> List[UUID]:
        """존재하지 않는 사용자 ID 목록 (입력 순서 유지)"""
        wanted = list(dict.fromkeys(user_ids))
        if not wanted:
            return []

        result = await self.db.execute(select(User.id).where(User.id.in_(wanted)))
        found = set(result.scalars().all())
        return [user_id for user_id in wanted if user_id not in found]

    async def code_exists(
        self, coupon_code: str, exclude_id: Optional[UUID] = None
    ) -> bool:
        query = select(Coupon.id).where(Coupon.code == coupon_code)
        if exclude_id is not None:
            query = query.where(Coupon.id != exclude_id)

        result = await self.db.execute(query)
        return result.first() is not None

    async def list_available_for_user(
        self, user_id: UUID, now: datetime
    ) -> List[Coupon]:
        """
        사용자가 현재 사용할 수 있는 쿠폰 목록

        활성화되어 있고 유효 기간 안에 있으며, 배정이 없거나 이 사용자에게 배정된 쿠폰

        Args:
            user_id: 사용자 ID
            now: 기준 시각

        Returns:
            쿠폰 목록 (최신 생성순)
        """
        has_assignments = exists().where(CouponAssignment.coupon_id == Coupon.id)
        assigned_to_user = exists().where(
            and_(
                CouponAssignment.coupon_id == Coupon.id,
                CouponAssignment.user_id == user_id,
            )
        )

        result = await self.db.execute(
            select(Coupon)
            .where(
                Coupon.is_active.is_(True),
                Coupon.retired_at.is_(None),
                Coupon.valid_from <= now,
                Coupon.valid_until >= now,
                or_(~has_assignments, assigned_to_user),
            )
            .order_by(Coupon.created_at.desc())
        )
        return list(result.scalars().all())
