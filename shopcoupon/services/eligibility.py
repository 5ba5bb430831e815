"""
쿠폰 적용 가능 여부 검증기

목적: 쿠폰 저장소와 사용 원장을 조합하여 쿠폰 적용 가능 여부(사유 포함)를 판정

검사 순서 (처음 실패한 검사가 사유가 됨):
1. 쿠폰 존재 (폐기된 쿠폰은 존재하지 않는 것으로 취급)
2. 활성화 여부
3. 사용 시작 전
4. 만료
5. 최소 주문 금액
6. 카테고리 제한
7. 전체 사용 한도
8. 사용자 배정
9. 사용자별 사용 한도

읽기 전용이므로 결제 전에 여러 번 호출해도 상태가 바뀌지 않습니다.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional, Sequence
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models.base import utcnow
from shopcoupon.models.coupon import Coupon
from shopcoupon.services.coupon_ledger import CouponUsageLedger
from shopcoupon.services.coupon_store import CouponStore
from shopcoupon.services.discount_calculator import to_decimal


class CouponRejectReason(str, Enum):
    """쿠폰 적용 불가 사유"""

    NOT_FOUND = "NOT_FOUND"
    INACTIVE = "INACTIVE"
    NOT_STARTED = "NOT_STARTED"
    EXPIRED = "EXPIRED"
    MIN_ORDER_NOT_MET = "MIN_ORDER_NOT_MET"
    CATEGORY_MISMATCH = "CATEGORY_MISMATCH"
    USAGE_LIMIT_EXCEEDED = "USAGE_LIMIT_EXCEEDED"
    NOT_ASSIGNED = "NOT_ASSIGNED"
    USER_USAGE_LIMIT_EXCEEDED = "USER_USAGE_LIMIT_EXCEEDED"
    INVALID = "INVALID"

    @property
    def message(self) -> str:
        return REASON_MESSAGES[self]


REASON_MESSAGES = {
    CouponRejectReason.NOT_FOUND: "존재하지 않는 쿠폰 코드입니다",
    CouponRejectReason.INACTIVE: "비활성화된 쿠폰입니다",
    CouponRejectReason.NOT_STARTED: "쿠폰 사용 기간이 아닙니다",
    CouponRejectReason.EXPIRED: "만료된 쿠폰입니다",
    CouponRejectReason.MIN_ORDER_NOT_MET: "최소 주문 금액을 충족하지 않습니다",
    CouponRejectReason.CATEGORY_MISMATCH: "쿠폰을 적용할 수 있는 카테고리의 상품이 없습니다",
    CouponRejectReason.USAGE_LIMIT_EXCEEDED: "쿠폰 사용 횟수가 초과되었습니다",
    CouponRejectReason.NOT_ASSIGNED: "사용 대상이 아닌 쿠폰입니다",
    CouponRejectReason.USER_USAGE_LIMIT_EXCEEDED: "사용자별 쿠폰 사용 횟수가 초과되었습니다",
    CouponRejectReason.INVALID: "쿠폰 상태가 변경되어 사용할 수 없습니다",
}


@dataclass
class CouponEligibility:
    """쿠폰 적용 가능 여부 판정 결과"""

    valid: bool
    reason: Optional[CouponRejectReason] = None
    discount: Optional[Decimal] = None
    coupon: Optional[Coupon] = None
    total_used: Optional[int] = None
    user_used: Optional[int] = None

    @classmethod
    def reject(
        cls, reason: CouponRejectReason, coupon: Optional[Coupon] = None
    ) -> "CouponEligibility":
        return cls(valid=False, reason=reason, coupon=coupon)

    @property
    def message(self) -> str:
        return self.reason.message if self.reason else ""


class CouponEligibilityValidator:
    """쿠폰 적용 가능 여부 검증기"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.store = CouponStore(db_session)
        self.ledger = CouponUsageLedger(db_session)

    async def check(
        self,
        user_id: Optional[UUID],
        coupon_code: str,
        cart_total: Optional[Decimal] = None,
        category_ids: Optional[Sequence] = None,
        now: Optional[datetime] = None,
        lock: bool = False,
    ) -> CouponEligibility:
        """
        쿠폰 적용 가능 여부 판정

        Args:
            user_id: 사용자 ID (비로그인 조회 시 None)
            coupon_code: 쿠폰 코드 (대소문자 구분)
            cart_total: 장바구니 금액 (None이면 최소 금액 검사와 할인 계산 생략)
            category_ids: 장바구니 카테고리 ID 목록 (None이면 카테고리 검사 생략)
            now: 판정 기준 시각 (기본: 현재 UTC)
            lock: 쿠폰 행을 잠그고 조회할지 여부 (사용 처리 트랜잭션 내부용)

        Returns:
            CouponEligibility
        """
        now = now or utcnow()
        cart_total = to_decimal(cart_total)

        coupon = await self.store.get_by_code(coupon_code, lock=lock)
        if coupon is None or coupon.is_retired():
            return CouponEligibility.reject(CouponRejectReason.NOT_FOUND)

        if not coupon.is_active:
            return CouponEligibility.reject(CouponRejectReason.INACTIVE, coupon)

        if not coupon.has_started(now):
            return CouponEligibility.reject(CouponRejectReason.NOT_STARTED, coupon)

        if coupon.is_expired(now):
            return CouponEligibility.reject(CouponRejectReason.EXPIRED, coupon)

        if (
            cart_total is not None
            and coupon.min_order_value is not None
            and cart_total < coupon.min_order_value
        ):
            return CouponEligibility.reject(
                CouponRejectReason.MIN_ORDER_NOT_MET, coupon
            )

        if not coupon.matches_categories(category_ids):
            return CouponEligibility.reject(
                CouponRejectReason.CATEGORY_MISMATCH, coupon
            )

        total_used = None
        if coupon.usage_limit_total is not None:
            total_used = await self.ledger.count_for_coupon(coupon.id)
            if total_used >= coupon.usage_limit_total:
                return CouponEligibility.reject(
                    CouponRejectReason.USAGE_LIMIT_EXCEEDED, coupon
                )

        if not coupon.is_assigned_to(user_id):
            return CouponEligibility.reject(CouponRejectReason.NOT_ASSIGNED, coupon)

        user_used = None
        if user_id is not None and coupon.usage_limit_per_user is not None:
            user_used = await self.ledger.count_for_user(coupon.id, user_id)
            if user_used >= coupon.usage_limit_per_user:
                return CouponEligibility.reject(
                    CouponRejectReason.USER_USAGE_LIMIT_EXCEEDED, coupon
                )

        discount = (
            coupon.calculate_discount(cart_total) if cart_total is not None else None
        )

        return CouponEligibility(
            valid=True,
            discount=discount,
            coupon=coupon,
            total_used=total_used,
            user_used=user_used,
        )
