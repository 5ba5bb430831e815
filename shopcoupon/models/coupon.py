"""
쿠폰(Coupon) 모델

목적: 할인 쿠폰 마스터 데이터 및 사용자 배정(assignment)
"""

from datetime import datetime
from decimal import Decimal
from typing import Iterable, List, Optional, Set
from sqlalchemy import (
    Column,
    String,
    Text,
    DECIMAL,
    Integer,
    DateTime,
    Boolean,
    ForeignKey,
    Index,
    CheckConstraint,
    UniqueConstraint,
    JSON,
    Uuid,
)
from sqlalchemy.orm import relationship
import uuid

from shopcoupon.services.discount_calculator import DiscountType, calculate_discount
from .base import Base, utcnow


class Coupon(Base):
    """쿠폰 모델"""

    __tablename__ = "coupons"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    code = Column(String(50), nullable=False, unique=True)  # 대소문자 구분
    name = Column(String(200), nullable=False)
    description = Column(Text, nullable=True)
    discount_type = Column(String(20), nullable=False)
    discount_value = Column(DECIMAL(10, 2), nullable=False)
    min_order_value = Column(DECIMAL(10, 2), nullable=True)
    max_discount_amount = Column(DECIMAL(10, 2), nullable=True)
    usage_limit_total = Column(Integer, nullable=True)
    usage_limit_per_user = Column(Integer, nullable=True)
    valid_from = Column(DateTime, nullable=False)
    valid_until = Column(DateTime, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
    category_ids = Column(JSON, nullable=True)  # 카테고리 ID 문자열 목록
    retired_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)
    updated_at = Column(DateTime, nullable=False, default=utcnow, onupdate=utcnow)

    # 제약 조건
    __table_args__ = (
        CheckConstraint("discount_value > 0", name="check_discount_value_positive"),
        CheckConstraint("valid_until > valid_from", name="check_valid_date_range"),
        CheckConstraint(
            "usage_limit_total IS NULL OR usage_limit_total >= 1",
            name="check_usage_limit_total_positive",
        ),
        CheckConstraint(
            "usage_limit_per_user IS NULL OR usage_limit_per_user >= 1",
            name="check_usage_limit_per_user_positive",
        ),
        CheckConstraint(
            "discount_type IN ('PERCENTAGE', 'FIXED_AMOUNT')",
            name="check_discount_type",
        ),
        Index("idx_coupons_active", "is_active"),
        Index("idx_coupons_valid_dates", "valid_from", "valid_until"),
    )

    # Relationships
    assignments = relationship(
        "CouponAssignment",
        back_populates="coupon",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self):
        return f"<Coupon(id={self.id}, code={self.code}, name={self.name})>"

    def is_retired(self) -> bool:
        """폐기(retire)된 쿠폰인지 확인"""
        return self.retired_at is not None

    def has_started(self, now: datetime) -> bool:
        return now >= self.valid_from

    def is_expired(self, now: datetime) -> bool:
        return now > self.valid_until

    def assigned_user_ids(self) -> Set[uuid.UUID]:
        """배정된 사용자 ID 집합 (비어 있으면 전체 사용자 대상)"""
        return {assignment.user_id for assignment in self.assignments}

    def is_assigned_to(self, user_id: Optional[uuid.UUID]) -> bool:
        """
        사용자가 이 쿠폰을 사용할 수 있도록 배정되었는지 확인

        배정이 하나도 없으면 모든 사용자에게 열려 있습니다.
        """
        assigned = self.assigned_user_ids()
        if not assigned:
            return True
        return user_id is not None and user_id in assigned

    def matches_categories(self, category_ids: Optional[Iterable]) -> bool:
        """
        장바구니 카테고리와 쿠폰 카테고리 제한의 교집합 확인

        Args:
            category_ids: 장바구니 카테고리 ID 목록 (None이면 확인 생략)
        """
        if not self.category_ids or category_ids is None:
            return True
        allowed = {str(category_id) for category_id in self.category_ids}
        return any(str(category_id) in allowed for category_id in category_ids)

    def calculate_discount(self, cart_total: Decimal) -> Decimal:
        """
        장바구니 금액에 대한 할인 금액 계산

        Args:
            cart_total: 장바구니 금액

        Returns:
            할인 금액
        """
        return calculate_discount(
            cart_total,
            self.discount_type,
            self.discount_value,
            self.max_discount_amount,
        )

    def sync_assignments(self, user_ids: Iterable[uuid.UUID]) -> None:
        """
        배정 사용자 목록 동기화

        목록에 없는 배정은 삭제하고, 새 사용자만 추가합니다 (기존 행은 유지).
        """
        wanted = list(dict.fromkeys(user_ids))
        wanted_set = set(wanted)
        existing = {assignment.user_id: assignment for assignment in self.assignments}

        kept: List[CouponAssignment] = [
            assignment
            for assignment in self.assignments
            if assignment.user_id in wanted_set
        ]
        for user_id in wanted:
            if user_id not in existing:
                kept.append(CouponAssignment(user_id=user_id))

        self.assignments = kept


class CouponAssignment(Base):
    """쿠폰 배정 모델 (특정 사용자 전용 쿠폰)"""

    __tablename__ = "coupon_assignments"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coupon_id = Column(
        Uuid, ForeignKey("coupons.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        UniqueConstraint("coupon_id", "user_id", name="uq_coupon_assignments_user"),
        Index("idx_coupon_assignments_user", "user_id"),
    )

    coupon = relationship("Coupon", back_populates="assignments")

    def __repr__(self):
        return f"<CouponAssignment(coupon_id={self.coupon_id}, user_id={self.user_id})>"
