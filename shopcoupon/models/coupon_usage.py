"""
쿠폰 사용 이력(CouponUsage) 모델

목적: 쿠폰 사용(redemption) 원장. 생성 후 수정/삭제하지 않는 감사 기록입니다.

사용 한도는 슬롯 번호에 대한 UNIQUE 제약으로 데이터베이스가 직접 보장합니다.
- usage_slot: 쿠폰 전체 사용 순번 (전체 한도가 있을 때만 기록)
- user_slot: 사용자별 사용 순번 (사용자별 한도가 있을 때만 기록)
NULL 슬롯끼리는 충돌하지 않으므로 한도가 없는 쿠폰은 제약의 영향을 받지 않습니다.
"""

from sqlalchemy import (
    Column,
    ForeignKey,
    DateTime,
    Integer,
    String,
    Index,
    UniqueConstraint,
    CheckConstraint,
    Uuid,
)
from sqlalchemy.orm import relationship
import uuid

from .base import Base, utcnow


class CouponUsage(Base):
    """쿠폰 사용 원장 모델"""

    __tablename__ = "coupon_usages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    coupon_id = Column(
        Uuid, ForeignKey("coupons.id", ondelete="RESTRICT"), nullable=False
    )
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="RESTRICT"), nullable=False)
    order_ref = Column(String(100), nullable=True)  # 결제 전 예약 상태에서는 NULL
    usage_slot = Column(Integer, nullable=True)
    user_slot = Column(Integer, nullable=True)
    created_at = Column(DateTime, nullable=False, default=utcnow)

    # 제약 조건
    __table_args__ = (
        UniqueConstraint("coupon_id", "usage_slot", name="uq_coupon_usages_usage_slot"),
        UniqueConstraint(
            "coupon_id", "user_id", "user_slot", name="uq_coupon_usages_user_slot"
        ),
        CheckConstraint(
            "usage_slot IS NULL OR usage_slot >= 1", name="check_usage_slot_positive"
        ),
        CheckConstraint(
            "user_slot IS NULL OR user_slot >= 1", name="check_user_slot_positive"
        ),
        Index("idx_coupon_usages_coupon_user", "coupon_id", "user_id"),
        Index("idx_coupon_usages_order", "order_ref"),
    )

    # Relationships
    coupon = relationship("Coupon")

    def __repr__(self):
        return f"<CouponUsage(id={self.id}, coupon_id={self.coupon_id}, user_id={self.user_id})>"

    def is_reserved(self) -> bool:
        """주문과 연결되지 않은 예약 상태인지 확인"""
        return self.order_ref is None
