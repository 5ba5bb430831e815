"""
관리자 쿠폰 관리 API

관리자가 쿠폰을 생성, 조회, 수정, 삭제하고 사용 이력을 확인할 수 있는 API 엔드포인트
"""

from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.api.schemas.coupon_schemas import (
    CouponCreateRequest,
    CouponDeleteResponse,
    CouponListResponse,
    CouponResponse,
    CouponUpdateRequest,
    CouponUsageListResponse,
)
from shopcoupon.config import settings
from shopcoupon.middleware.authorization import require_coupon_manage, require_coupon_read
from shopcoupon.models.base import as_naive_utc, get_db
from shopcoupon.services.admin_coupon_service import AdminCouponService


router = APIRouter(prefix="/v1/admin/coupons", tags=["Admin - Coupons"])


@router.post(
    "",
    response_model=CouponResponse,
    status_code=status.HTTP_201_CREATED,
    summary="쿠폰 생성",
)
async def create_coupon(
    request: CouponCreateRequest,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_coupon_manage),
):
    """
    새 쿠폰 생성

    **권한 필요:** COUPON_MANAGE

    - `user_ids`를 전달하면 해당 사용자에게만 배정된 쿠폰이 됩니다.
    - 쿠폰 코드가 이미 존재하면 409를 반환합니다.
    """
    service = AdminCouponService(db)
    return await service.create_coupon(request.model_dump(), admin_id=current_user.id)


@router.get("", response_model=CouponListResponse, summary="쿠폰 목록 조회")
async def list_coupons(
    page: int = Query(1, ge=1, description="페이지 번호"),
    limit: int = Query(
        settings.COUPON_LIST_DEFAULT_LIMIT,
        ge=1,
        le=settings.COUPON_LIST_MAX_LIMIT,
        description="페이지당 항목 수",
    ),
    code: Optional[str] = Query(None, description="쿠폰 코드 검색 (부분 일치)"),
    is_active: Optional[bool] = Query(None, description="활성화 여부 필터"),
    valid_from: Optional[datetime] = Query(None, description="이 시각 이후 시작"),
    valid_until: Optional[datetime] = Query(None, description="이 시각 이전 종료"),
    include_retired: bool = Query(False, description="폐기된 쿠폰 포함"),
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_coupon_read),
):
    """
    쿠폰 목록 조회 (필터링 및 페이지네이션 지원)

    **권한 필요:** COUPON_READ
    """
    service = AdminCouponService(db)
    return await service.list_coupons(
        page=page,
        limit=limit,
        code=code,
        is_active=is_active,
        valid_from=as_naive_utc(valid_from),
        valid_until=as_naive_utc(valid_until),
        include_retired=include_retired,
    )


@router.get("/{coupon_id}", response_model=CouponResponse, summary="쿠폰 상세 조회")
async def get_coupon(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_coupon_read),
):
    """
    쿠폰 상세 조회 (배정 사용자 목록, 누적 사용 횟수 포함)

    **권한 필요:** COUPON_READ
    """
    service = AdminCouponService(db)
    return await service.get_coupon(coupon_id)


@router.put("/{coupon_id}", response_model=CouponResponse, summary="쿠폰 수정")
async def update_coupon(
    coupon_id: UUID,
    request: CouponUpdateRequest,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_coupon_manage),
):
    """
    쿠폰 정보 수정 (전달한 필드만 변경)

    **권한 필요:** COUPON_MANAGE

    - `user_ids`를 전달하면 배정 목록을 그대로 교체합니다.
    """
    service = AdminCouponService(db)
    return await service.update_coupon(
        coupon_id,
        request.model_dump(exclude_unset=True),
        admin_id=current_user.id,
    )


@router.delete(
    "/{coupon_id}", response_model=CouponDeleteResponse, summary="쿠폰 삭제"
)
async def delete_coupon(
    coupon_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_coupon_manage),
):
    """
    쿠폰 삭제

    **권한 필요:** COUPON_MANAGE

    - 사용 이력이 없으면 삭제합니다.
    - 사용 이력이 있으면 이력을 보존하기 위해 폐기(비활성화) 처리합니다.
    """
    service = AdminCouponService(db)
    return await service.delete_coupon(coupon_id, admin_id=current_user.id)


@router.get(
    "/{coupon_id}/usages",
    response_model=CouponUsageListResponse,
    summary="쿠폰 사용 이력 조회",
)
async def list_coupon_usages(
    coupon_id: UUID,
    page: int = Query(1, ge=1, description="페이지 번호"),
    limit: int = Query(
        settings.COUPON_LIST_DEFAULT_LIMIT,
        ge=1,
        le=settings.COUPON_LIST_MAX_LIMIT,
        description="페이지당 항목 수",
    ),
    db: AsyncSession = Depends(get_db),
    current_user=Depends(require_coupon_read),
):
    """
    쿠폰 사용 이력 조회 (최신순)

    **권한 필요:** COUPON_READ
    """
    service = AdminCouponService(db)
    return await service.list_usages(coupon_id, page=page, limit=limit)
