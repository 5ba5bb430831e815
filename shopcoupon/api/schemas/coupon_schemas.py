"""
쿠폰 API 요청/응답 스키마
"""

from datetime import datetime
from decimal import Decimal
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import (
    AfterValidator,
    BaseModel,
    BeforeValidator,
    ConfigDict,
    Field,
    field_validator,
)

from shopcoupon.models.base import as_naive_utc
from shopcoupon.services.discount_calculator import DiscountType
from shopcoupon.services.eligibility import CouponRejectReason


def _category_ids_as_str(value):
    if isinstance(value, (list, tuple)):
        return [str(item) for item in value]
    return value


# 카테고리 ID는 문자열로 비교 (숫자 ID도 허용)
CategoryIds = Annotated[Optional[List[str]], BeforeValidator(_category_ids_as_str)]
NaiveUtcDatetime = Annotated[datetime, AfterValidator(as_naive_utc)]

# DECIMAL(10, 2) 컬럼 상한
MAX_MONEY = Decimal("99999999.99")


# ===========================
# 사용자 API
# ===========================


class CouponValidateRequest(BaseModel):
    """쿠폰 검증 요청"""

    code: str = Field(..., description="쿠폰 코드", min_length=1, max_length=50)
    cart_total: Decimal = Field(
        ..., description="장바구니 금액", ge=0, le=MAX_MONEY
    )
    category_ids: CategoryIds = Field(
        None, description="장바구니 상품 카테고리 ID 목록 (생략 시 카테고리 검사 안 함)"
    )


class CouponValidateResponse(BaseModel):
    """쿠폰 검증 응답"""

    valid: bool = Field(..., description="쿠폰 사용 가능 여부")
    reason: Optional[CouponRejectReason] = Field(None, description="거절 사유")
    message: str = Field(default="", description="메시지 (불가능한 경우 사유)")
    discount: Optional[Decimal] = Field(None, description="할인 금액")
    final_amount: Decimal = Field(..., description="할인 후 최종 금액")


class CouponRedeemRequest(BaseModel):
    """쿠폰 사용 요청"""

    code: str = Field(..., description="쿠폰 코드", min_length=1, max_length=50)
    order_ref: Optional[str] = Field(
        None, description="장바구니/주문 참조", max_length=100
    )
    cart_total: Optional[Decimal] = Field(
        None,
        description="장바구니 금액 (있으면 최소 주문 금액 검사)",
        ge=0,
        le=MAX_MONEY,
    )
    category_ids: CategoryIds = Field(
        None, description="장바구니 상품 카테고리 ID 목록"
    )


class CouponRedeemResponse(BaseModel):
    """쿠폰 사용 응답"""

    usage_id: UUID = Field(..., description="사용 기록 ID")
    coupon_id: UUID = Field(..., description="쿠폰 ID")
    discount: Optional[Decimal] = Field(
        None, description="할인 금액 (장바구니 금액을 전달한 경우)"
    )


class UserCouponItem(BaseModel):
    """사용자 쿠폰 항목"""

    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    min_order_value: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    category_ids: Optional[List[str]] = None
    valid_from: datetime
    valid_until: datetime
    times_used: int = Field(..., description="이 사용자의 사용 횟수")
    remaining_uses: Optional[int] = Field(
        None, description="남은 사용 가능 횟수 (무제한이면 null)"
    )


class UserCouponListResponse(BaseModel):
    """사용자 쿠폰 목록 응답"""

    coupons: List[UserCouponItem] = Field(..., description="쿠폰 목록")


# ===========================
# 관리자 API
# ===========================


class CouponCreateRequest(BaseModel):
    """쿠폰 생성 요청"""

    code: str = Field(..., description="쿠폰 코드", min_length=3, max_length=50)
    name: str = Field(..., description="쿠폰 이름", min_length=1, max_length=200)
    description: Optional[str] = Field(None, description="설명")
    discount_type: DiscountType = Field(..., description="할인 유형")
    discount_value: Decimal = Field(..., description="할인 값 (정률은 %, 정액은 금액)", gt=0)
    min_order_value: Optional[Decimal] = Field(None, description="최소 주문 금액", ge=0)
    max_discount_amount: Optional[Decimal] = Field(
        None, description="최대 할인 금액", gt=0
    )
    usage_limit_total: Optional[int] = Field(None, description="전체 사용 한도", ge=1)
    usage_limit_per_user: Optional[int] = Field(
        None, description="사용자당 사용 한도", ge=1
    )
    valid_from: NaiveUtcDatetime = Field(..., description="사용 시작 시각")
    valid_until: NaiveUtcDatetime = Field(..., description="사용 종료 시각")
    is_active: bool = Field(True, description="활성화 여부")
    category_ids: CategoryIds = Field(
        None, description="적용 카테고리 ID 목록 (없으면 전체 카테고리)"
    )
    user_ids: Optional[List[UUID]] = Field(
        None, description="배정 사용자 ID 목록 (없으면 전체 공개)"
    )

    @field_validator("discount_value", "min_order_value", "max_discount_amount")
    @classmethod
    def validate_money(cls, v):
        """금액이 컬럼 범위를 넘지 않는지 검증"""
        if v is not None and v > MAX_MONEY:
            raise ValueError("금액은 99,999,999.99를 초과할 수 없습니다.")
        return v

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": "TEST10",
                "name": "10% 할인 쿠폰",
                "discount_type": "PERCENTAGE",
                "discount_value": 10,
                "min_order_value": 50,
                "max_discount_amount": 30,
                "usage_limit_total": 100,
                "usage_limit_per_user": 1,
                "valid_from": "2026-01-01T00:00:00Z",
                "valid_until": "2026-12-31T23:59:59Z",
                "is_active": True,
            }
        }
    )


class CouponUpdateRequest(BaseModel):
    """쿠폰 수정 요청 (전달한 필드만 변경)"""

    code: Optional[str] = Field(None, min_length=3, max_length=50)
    name: Optional[str] = Field(None, min_length=1, max_length=200)
    description: Optional[str] = None
    discount_type: Optional[DiscountType] = None
    discount_value: Optional[Decimal] = Field(None, gt=0)
    min_order_value: Optional[Decimal] = Field(None, ge=0)
    max_discount_amount: Optional[Decimal] = Field(None, gt=0)
    usage_limit_total: Optional[int] = Field(None, ge=1)
    usage_limit_per_user: Optional[int] = Field(None, ge=1)
    valid_from: Optional[NaiveUtcDatetime] = None
    valid_until: Optional[NaiveUtcDatetime] = None
    is_active: Optional[bool] = None
    category_ids: CategoryIds = None
    user_ids: Optional[List[UUID]] = Field(
        None, description="배정 사용자 목록 (전달 시 전체 교체, 빈 목록이면 전체 공개)"
    )

    @field_validator("discount_value", "min_order_value", "max_discount_amount")
    @classmethod
    def validate_money(cls, v):
        """금액이 컬럼 범위를 넘지 않는지 검증"""
        if v is not None and v > MAX_MONEY:
            raise ValueError("금액은 99,999,999.99를 초과할 수 없습니다.")
        return v


class CouponResponse(BaseModel):
    """쿠폰 응답 (관리자)"""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    code: str
    name: str
    description: Optional[str] = None
    discount_type: DiscountType
    discount_value: Decimal
    min_order_value: Optional[Decimal] = None
    max_discount_amount: Optional[Decimal] = None
    usage_limit_total: Optional[int] = None
    usage_limit_per_user: Optional[int] = None
    valid_from: datetime
    valid_until: datetime
    is_active: bool
    category_ids: Optional[List[str]] = None
    user_ids: List[UUID] = Field(default_factory=list)
    usage_count: Optional[int] = Field(None, description="누적 사용 횟수")
    retired_at: Optional[datetime] = None
    created_at: datetime
    updated_at: datetime


class CouponListResponse(BaseModel):
    """쿠폰 목록 응답 (관리자)"""

    items: List[CouponResponse]
    total: int
    page: int
    limit: int


class CouponDeleteResponse(BaseModel):
    """쿠폰 삭제 응답"""

    id: UUID
    deleted: bool = Field(..., description="행이 삭제되었는지 여부")
    retired: bool = Field(..., description="사용 이력이 있어 폐기 처리되었는지 여부")


class CouponUsageItem(BaseModel):
    """쿠폰 사용 기록"""

    id: UUID
    coupon_id: UUID
    user_id: UUID
    order_ref: Optional[str] = None
    created_at: datetime


class CouponUsageListResponse(BaseModel):
    """쿠폰 사용 기록 목록"""

    items: List[CouponUsageItem]
    total: int
    page: int
    limit: int
