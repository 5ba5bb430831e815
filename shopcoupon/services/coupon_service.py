"""
쿠폰 서비스

목적: 쿠폰 검증, 사용(redemption), 사용자별 쿠폰 목록 조회
"""

from decimal import Decimal
from typing import List, Optional, Sequence
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models.base import utcnow
from shopcoupon.services.coupon_ledger import CouponUsageLedger
from shopcoupon.services.coupon_store import CouponStore
from shopcoupon.services.discount_calculator import to_decimal
from shopcoupon.services.eligibility import (
    CouponEligibility,
    CouponEligibilityValidator,
    CouponRejectReason,
)
from shopcoupon.utils.exceptions import CouponRedemptionError
from shopcoupon.utils.logging import get_logger, audit_logger
from shopcoupon.utils.prometheus_metrics import (
    record_redemption,
    record_validation,
    track_redemption_duration,
)

logger = get_logger(__name__)


class CouponService:
    """쿠폰 서비스"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.store = CouponStore(db_session)
        self.ledger = CouponUsageLedger(db_session)
        self.validator = CouponEligibilityValidator(db_session)

    async def validate_coupon(
        self,
        user_id: Optional[UUID],
        coupon_code: str,
        cart_total: Decimal,
        category_ids: Optional[Sequence] = None,
    ) -> dict:
        """
        쿠폰 사용 가능 여부 확인 및 할인 금액 계산 (읽기 전용)

        "사용 가능" 응답이 이후 사용 처리의 성공을 보장하지는 않습니다.
        사용 처리 시 같은 검사를 트랜잭션 안에서 다시 수행합니다.

        Args:
            user_id: 사용자 ID (비로그인이면 None)
            coupon_code: 쿠폰 코드
            cart_total: 장바구니 금액
            category_ids: 장바구니 카테고리 ID 목록

        Returns:
            검증 결과 (valid, reason, message, discount, final_amount)
        """
        cart_total = to_decimal(cart_total)
        eligibility = await self.validator.check(
            user_id=user_id,
            coupon_code=coupon_code,
            cart_total=cart_total,
            category_ids=category_ids,
        )

        if not eligibility.valid:
            record_validation(eligibility.reason.value)
            logger.info(
                "쿠폰 검증 거절",
                extra={
                    "coupon_code": coupon_code,
                    "user_id": str(user_id) if user_id else None,
                    "reason": eligibility.reason.value,
                },
            )
            return {
                "valid": False,
                "reason": eligibility.reason,
                "message": eligibility.message,
                "discount": None,
                "final_amount": cart_total,
            }

        record_validation("valid")
        return {
            "valid": True,
            "reason": None,
            "message": "",
            "discount": eligibility.discount,
            "final_amount": cart_total - eligibility.discount,
        }

    @track_redemption_duration
    async def redeem_coupon(
        self,
        user_id: UUID,
        coupon_code: str,
        order_ref: Optional[str] = None,
        cart_total: Optional[Decimal] = None,
        category_ids: Optional[Sequence] = None,
    ) -> dict:
        """
        쿠폰 사용 처리 (결제 직전 예약)

        하나의 트랜잭션 안에서:
        1. 쿠폰 행을 잠그고 모든 검증을 다시 수행
        2. 사용 원장에 기록 추가 (한도 슬롯 포함)
        3. 커밋

        검증에 실패하면 아무것도 기록하지 않고 예외를 발생시킵니다.
        다른 트랜잭션이 먼저 한도 슬롯을 차지한 경우(UNIQUE 제약 위반) 롤백 후 INVALID로 거절합니다.

        Args:
            user_id: 사용자 ID
            coupon_code: 쿠폰 코드
            order_ref: 장바구니/주문 참조 (선택)
            cart_total: 장바구니 금액 (있으면 최소 주문 금액 검사 및 할인 계산)
            category_ids: 장바구니 카테고리 ID 목록 (있으면 카테고리 검사)

        Returns:
            {usage_id, coupon_id, discount}

        Raises:
            CouponRedemptionError: 쿠폰을 사용할 수 없는 경우
        """
        eligibility: CouponEligibility = await self.validator.check(
            user_id=user_id,
            coupon_code=coupon_code,
            cart_total=cart_total,
            category_ids=category_ids,
            lock=True,
        )

        if not eligibility.valid:
            record_redemption(eligibility.reason.value)
            logger.warning(
                "쿠폰 사용 거절",
                extra={
                    "coupon_code": coupon_code,
                    "user_id": str(user_id),
                    "reason": eligibility.reason.value,
                },
            )
            raise CouponRedemptionError(eligibility.reason, coupon_code)

        coupon = eligibility.coupon
        coupon_id = coupon.id

        try:
            usage = await self.ledger.append(
                coupon,
                user_id=user_id,
                order_ref=order_ref,
                total_used=eligibility.total_used,
                user_used=eligibility.user_used,
            )
            usage_id = usage.id
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            record_redemption(CouponRejectReason.INVALID.value)
            logger.warning(
                "동시 사용 처리와 충돌하여 쿠폰 사용 거절",
                extra={"coupon_code": coupon_code, "user_id": str(user_id)},
            )
            raise CouponRedemptionError(CouponRejectReason.INVALID, coupon_code)

        record_redemption("success", eligibility.discount)
        audit_logger.log_event(
            event_type="coupon.redeemed",
            user_id=str(user_id),
            resource_type="coupon_usage",
            resource_id=str(usage_id),
            action="create",
            details={"coupon_id": str(coupon_id), "order_ref": order_ref},
        )

        return {
            "usage_id": usage_id,
            "coupon_id": coupon_id,
            "discount": eligibility.discount,
        }

    async def list_coupons_for_user(self, user_id: UUID) -> List[dict]:
        """
        사용자가 현재 사용할 수 있는 쿠폰 목록

        활성화되어 있고 유효 기간 안에 있으며, 전체 공개이거나 이 사용자에게 배정된 쿠폰

        Args:
            user_id: 사용자 ID

        Returns:
            쿠폰 목록 (사용 횟수, 남은 사용 가능 횟수 포함)
        """
        coupons = await self.store.list_available_for_user(user_id, utcnow())
        used_counts = await self.ledger.counts_for_user(
            user_id, [coupon.id for coupon in coupons]
        )

        coupon_list = []
        for coupon in coupons:
            times_used = used_counts.get(coupon.id, 0)
            remaining = (
                max(coupon.usage_limit_per_user - times_used, 0)
                if coupon.usage_limit_per_user is not None
                else None
            )
            coupon_list.append(
                {
                    "id": coupon.id,
                    "code": coupon.code,
                    "name": coupon.name,
                    "description": coupon.description,
                    "discount_type": coupon.discount_type,
                    "discount_value": coupon.discount_value,
                    "min_order_value": coupon.min_order_value,
                    "max_discount_amount": coupon.max_discount_amount,
                    "category_ids": coupon.category_ids,
                    "valid_from": coupon.valid_from,
                    "valid_until": coupon.valid_until,
                    "times_used": times_used,
                    "remaining_uses": remaining,
                }
            )

        return coupon_list
