"""
쿠폰 API 엔드포인트

사용 가능한 쿠폰 조회, 쿠폰 검증, 쿠폰 사용 기능을 제공합니다.
"""

from typing import Optional

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models.base import get_db
from shopcoupon.models.user import User
from shopcoupon.services.coupon_service import CouponService
from shopcoupon.api.schemas.coupon_schemas import (
    CouponRedeemRequest,
    CouponRedeemResponse,
    CouponValidateRequest,
    CouponValidateResponse,
    UserCouponListResponse,
)
from shopcoupon.middleware.auth import get_current_user, get_current_user_optional
from shopcoupon.middleware.authorization import require_coupon_redeem

router = APIRouter(prefix="/v1/coupons", tags=["coupons"])


@router.get("/me", response_model=UserCouponListResponse)
async def get_user_coupons(
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    사용 가능한 쿠폰 목록 조회

    활성화되어 있고 현재 유효 기간 안에 있으며,
    전체 공개 쿠폰이거나 로그인한 사용자에게 배정된 쿠폰을 반환합니다.
    """
    service = CouponService(db)
    coupons = await service.list_coupons_for_user(current_user.id)
    return {"coupons": coupons}


@router.post("/validate", response_model=CouponValidateResponse)
async def validate_coupon(
    request: CouponValidateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: Optional[User] = Depends(get_current_user_optional),
):
    """
    쿠폰 사용 가능 여부 확인

    장바구니 금액에 대해 쿠폰이 사용 가능한지 확인하고 할인 금액을 계산합니다.
    아무것도 기록하지 않으며, 비로그인 상태에서도 호출할 수 있습니다
    (이 경우 사용자별 한도 검사는 생략되고 배정 쿠폰은 거절됩니다).

    **응답**:
    - `valid`: 사용 가능 여부
    - `reason`: 거절 사유 코드 (EXPIRED, MIN_ORDER_NOT_MET 등)
    - `discount`: 할인 금액
    - `final_amount`: 할인 후 최종 금액
    """
    service = CouponService(db)

    result = await service.validate_coupon(
        user_id=current_user.id if current_user else None,
        coupon_code=request.code,
        cart_total=request.cart_total,
        category_ids=request.category_ids,
    )

    return CouponValidateResponse(**result)


@router.post("/redeem", response_model=CouponRedeemResponse)
async def redeem_coupon(
    request: CouponRedeemRequest,
    db: AsyncSession = Depends(get_db),
    current_user: User = Depends(require_coupon_redeem),
):
    """
    쿠폰 사용 (결제 직전 예약)

    모든 검증을 트랜잭션 안에서 다시 수행하고 사용 기록을 남깁니다.

    **오류 케이스**:
    - `404`: 존재하지 않는 쿠폰 코드
    - `409`: 사용 한도 초과 또는 동시 사용 충돌
    - `422`: 비활성, 기간 외, 최소 주문 금액 미달, 카테고리 불일치, 미배정
    - `401`: 로그인 필요
    """
    service = CouponService(db)

    result = await service.redeem_coupon(
        user_id=current_user.id,
        coupon_code=request.code,
        order_ref=request.order_ref,
        cart_total=request.cart_total,
        category_ids=request.category_ids,
    )

    return CouponRedeemResponse(**result)
