"""
관리자 쿠폰 서비스

목적: 쿠폰 생성/조회/수정/삭제 및 사용자 배정 동기화
"""

from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models.base import utcnow
from shopcoupon.models.coupon import Coupon, CouponAssignment
from shopcoupon.models.coupon_usage import CouponUsage
from shopcoupon.services.coupon_ledger import CouponUsageLedger
from shopcoupon.services.coupon_store import CouponStore
from shopcoupon.services.discount_calculator import DiscountType, HUNDRED
from shopcoupon.utils.exceptions import (
    ConflictException,
    CouponNotFoundException,
    ValidationException,
)
from shopcoupon.utils.logging import audit_logger
from shopcoupon.utils.prometheus_metrics import record_admin_operation

# 수정 가능한 단순 컬럼 (user_ids는 배정 동기화로 별도 처리)
UPDATABLE_FIELDS = (
    "code",
    "name",
    "description",
    "discount_type",
    "discount_value",
    "min_order_value",
    "max_discount_amount",
    "usage_limit_total",
    "usage_limit_per_user",
    "valid_from",
    "valid_until",
    "is_active",
    "category_ids",
)


# null로 변경할 수 없는 필드
REQUIRED_FIELDS = frozenset(
    {
        "code",
        "name",
        "discount_type",
        "discount_value",
        "valid_from",
        "valid_until",
        "is_active",
    }
)


def serialize_coupon(coupon: Coupon, usage_count: Optional[int] = None) -> dict:
    """쿠폰 모델을 응답용 dict로 변환"""
    data = {
        "id": coupon.id,
        "code": coupon.code,
        "name": coupon.name,
        "description": coupon.description,
        "discount_type": coupon.discount_type,
        "discount_value": coupon.discount_value,
        "min_order_value": coupon.min_order_value,
        "max_discount_amount": coupon.max_discount_amount,
        "usage_limit_total": coupon.usage_limit_total,
        "usage_limit_per_user": coupon.usage_limit_per_user,
        "valid_from": coupon.valid_from,
        "valid_until": coupon.valid_until,
        "is_active": coupon.is_active,
        "category_ids": coupon.category_ids,
        "user_ids": sorted(coupon.assigned_user_ids(), key=str),
        "retired_at": coupon.retired_at,
        "created_at": coupon.created_at,
        "updated_at": coupon.updated_at,
    }
    if usage_count is not None:
        data["usage_count"] = usage_count
    return data


def _normalize(data: Dict[str, Any]) -> Dict[str, Any]:
    data = dict(data)
    if data.get("discount_type") is not None:
        data["discount_type"] = DiscountType(data["discount_type"]).value
    return data


def _is_duplicate_code(exc: IntegrityError) -> bool:
    """쿠폰 코드 UNIQUE 제약 위반인지 확인 (PostgreSQL 제약 이름 / SQLite 컬럼 표기)"""
    text = str(exc.orig)
    return "uq_coupons_code" in text or "coupons.code" in text


def _check_rules(coupon: Coupon) -> None:
    """생성/수정 후 쿠폰 정의의 일관성 검증"""
    if coupon.valid_until <= coupon.valid_from:
        raise ValidationException(
            message="사용 종료일은 시작일 이후여야 합니다", field="valid_until"
        )

    if (
        coupon.discount_type == DiscountType.PERCENTAGE.value
        and coupon.discount_value > HUNDRED
    ):
        raise ValidationException(
            message="정률 할인은 100%를 초과할 수 없습니다", field="discount_value"
        )


class AdminCouponService:
    """관리자 쿠폰 서비스"""

    def __init__(self, db_session: AsyncSession):
        self.db = db_session
        self.store = CouponStore(db_session)
        self.ledger = CouponUsageLedger(db_session)

    async def _get_or_404(self, coupon_id: UUID, lock: bool = False) -> Coupon:
        coupon = await self.store.get_by_id(coupon_id, lock=lock)
        if coupon is None:
            raise CouponNotFoundException(str(coupon_id))
        return coupon

    async def _check_users_exist(self, user_ids) -> None:
        missing = await self.store.find_missing_users(user_ids)
        if missing:
            raise ValidationException(
                message="존재하지 않는 사용자가 포함되어 있습니다",
                field="user_ids",
                details={"missing_user_ids": [str(user_id) for user_id in missing]},
            )

    async def _commit(self, coupon_code: str) -> None:
        try:
            await self.db.commit()
        except IntegrityError as exc:
            await self.db.rollback()
            if not _is_duplicate_code(exc):
                raise
            raise ConflictException(
                message=f"이미 존재하는 쿠폰 코드입니다: {coupon_code}",
                details={"code": coupon_code},
            )

    async def create_coupon(
        self, data: Dict[str, Any], admin_id: Optional[UUID] = None
    ) -> dict:
        """
        쿠폰 생성 (배정 사용자 목록이 있으면 같은 트랜잭션에서 함께 생성)

        Args:
            data: 쿠폰 필드 (user_ids 포함 가능)
            admin_id: 작업한 관리자 ID

        Returns:
            생성된 쿠폰

        Raises:
            ConflictException: 쿠폰 코드가 이미 존재하는 경우
            ValidationException: 기간/할인율 규칙 위반 또는 존재하지 않는 배정 사용자
        """
        data = _normalize(data)
        user_ids = data.pop("user_ids", None) or []
        code = data["code"]

        if await self.store.code_exists(code):
            raise ConflictException(
                message=f"이미 존재하는 쿠폰 코드입니다: {code}",
                details={"code": code},
            )

        await self._check_users_exist(user_ids)

        coupon = Coupon(
            **{field: data.get(field) for field in UPDATABLE_FIELDS if field in data}
        )
        if coupon.is_active is None:
            coupon.is_active = True
        coupon.assignments = [
            CouponAssignment(user_id=user_id) for user_id in dict.fromkeys(user_ids)
        ]
        _check_rules(coupon)

        self.db.add(coupon)
        await self._commit(code)

        coupon = await self._get_or_404(coupon.id)
        record_admin_operation("create")
        audit_logger.log_event(
            event_type="coupon.created",
            user_id=str(admin_id) if admin_id else None,
            resource_type="coupon",
            resource_id=str(coupon.id),
            action="create",
            details={"code": coupon.code, "assigned_users": len(user_ids)},
        )
        return serialize_coupon(coupon, usage_count=0)

    async def get_coupon(self, coupon_id: UUID) -> dict:
        """쿠폰 상세 조회 (배정 사용자 및 사용 횟수 포함)"""
        coupon = await self._get_or_404(coupon_id)
        usage_count = await self.ledger.count_for_coupon(coupon.id)
        return serialize_coupon(coupon, usage_count=usage_count)

    async def list_coupons(
        self,
        page: int = 1,
        limit: int = 20,
        code: Optional[str] = None,
        is_active: Optional[bool] = None,
        valid_from: Optional[datetime] = None,
        valid_until: Optional[datetime] = None,
        include_retired: bool = False,
    ) -> dict:
        """
        쿠폰 목록 조회 (페이지네이션 + 필터)

        Args:
            page: 페이지 번호 (1부터)
            limit: 페이지 크기
            code: 코드 부분 일치 (대소문자 무시)
            is_active: 활성화 여부
            valid_from: 이 시각 이후에 시작하는 쿠폰
            valid_until: 이 시각 이전에 끝나는 쿠폰
            include_retired: 폐기된 쿠폰 포함 여부

        Returns:
            {items, total, page, limit}
        """
        conditions = []
        if code:
            conditions.append(Coupon.code.ilike(f"%{code}%"))
        if is_active is not None:
            conditions.append(Coupon.is_active.is_(is_active))
        if valid_from is not None:
            conditions.append(Coupon.valid_from >= valid_from)
        if valid_until is not None:
            conditions.append(Coupon.valid_until <= valid_until)
        if not include_retired:
            conditions.append(Coupon.retired_at.is_(None))

        total_result = await self.db.execute(
            select(func.count()).select_from(Coupon).where(*conditions)
        )
        total = total_result.scalar_one()

        result = await self.db.execute(
            select(Coupon)
            .where(*conditions)
            .order_by(Coupon.created_at.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        )
        coupons = result.scalars().all()

        return {
            "items": [serialize_coupon(coupon) for coupon in coupons],
            "total": total,
            "page": page,
            "limit": limit,
        }

    async def update_coupon(
        self,
        coupon_id: UUID,
        changes: Dict[str, Any],
        admin_id: Optional[UUID] = None,
    ) -> dict:
        """
        쿠폰 부분 수정

        전달된 필드만 변경하며, user_ids가 전달되면 배정 목록을 동기화합니다
        (빠진 사용자는 배정 해제, 새 사용자는 추가).

        Args:
            coupon_id: 쿠폰 ID
            changes: 변경할 필드
            admin_id: 작업한 관리자 ID

        Returns:
            수정된 쿠폰
        """
        coupon = await self._get_or_404(coupon_id)
        changes = _normalize(changes)
        for field in REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                raise ValidationException(
                    message=f"필수 항목은 비울 수 없습니다: {field}", field=field
                )

        user_ids = changes.pop("user_ids", None)

        new_code = changes.get("code")
        if new_code and new_code != coupon.code:
            if await self.store.code_exists(new_code, exclude_id=coupon.id):
                raise ConflictException(
                    message=f"이미 존재하는 쿠폰 코드입니다: {new_code}",
                    details={"code": new_code},
                )

        if user_ids is not None:
            await self._check_users_exist(user_ids)

        changed_fields = []
        for field in UPDATABLE_FIELDS:
            if field in changes and getattr(coupon, field) != changes[field]:
                setattr(coupon, field, changes[field])
                changed_fields.append(field)

        if user_ids is not None:
            coupon.sync_assignments(user_ids)
            changed_fields.append("user_ids")

        _check_rules(coupon)
        await self._commit(coupon.code)

        coupon = await self._get_or_404(coupon_id)
        usage_count = await self.ledger.count_for_coupon(coupon_id)
        record_admin_operation("update")
        audit_logger.log_event(
            event_type="coupon.updated",
            user_id=str(admin_id) if admin_id else None,
            resource_type="coupon",
            resource_id=str(coupon_id),
            action="update",
            details={"fields": changed_fields},
        )
        return serialize_coupon(coupon, usage_count=usage_count)

    async def delete_coupon(
        self, coupon_id: UUID, admin_id: Optional[UUID] = None
    ) -> dict:
        """
        쿠폰 삭제

        사용 이력이 없으면 행을 삭제하고(배정도 함께 삭제),
        사용 이력이 있으면 원장을 보존하기 위해 폐기 처리(retired_at, 비활성화)합니다.

        Returns:
            {id, deleted, retired}
        """
        # 사용 처리와 경합하지 않도록 쿠폰 행을 잠근 뒤 사용 횟수 확인
        coupon = await self._get_or_404(coupon_id, lock=True)
        usage_count = await self.ledger.count_for_coupon(coupon.id)

        if usage_count == 0:
            await self.db.delete(coupon)
            await self.db.commit()
            operation, event_type = "delete", "coupon.deleted"
        else:
            if not coupon.is_retired():
                coupon.retired_at = utcnow()
            coupon.is_active = False
            await self.db.commit()
            operation, event_type = "retire", "coupon.retired"

        record_admin_operation(operation)
        audit_logger.log_event(
            event_type=event_type,
            user_id=str(admin_id) if admin_id else None,
            resource_type="coupon",
            resource_id=str(coupon_id),
            action="delete",
            details={"usage_count": usage_count},
        )
        return {
            "id": coupon_id,
            "deleted": operation == "delete",
            "retired": operation == "retire",
        }

    async def list_usages(
        self, coupon_id: UUID, page: int = 1, limit: int = 50
    ) -> dict:
        """쿠폰 사용 이력 조회 (최신순)"""
        await self._get_or_404(coupon_id)
        usages, total = await self.ledger.list_for_coupon(
            coupon_id, offset=(page - 1) * limit, limit=limit
        )
        return {
            "items": [_serialize_usage(usage) for usage in usages],
            "total": total,
            "page": page,
            "limit": limit,
        }


def _serialize_usage(usage: CouponUsage) -> dict:
    return {
        "id": usage.id,
        "coupon_id": usage.coupon_id,
        "user_id": usage.user_id,
        "order_ref": usage.order_ref,
        "created_at": usage.created_at,
    }
