"""
사용자(User) 모델

목적: 쿠폰 배정 및 사용 이력이 참조하는 고객/관리자 계정
(회원가입과 토큰 발급은 인증 서비스가 담당)
"""

from enum import Enum
from sqlalchemy import Column, String, DateTime, Uuid, CheckConstraint
import uuid

from .base import Base, utcnow


class UserRole(str, Enum):
    """사용자 역할"""

    CUSTOMER = "customer"
    ADMIN = "admin"


class UserStatus(str, Enum):
    """계정 상태"""

    ACTIVE = "active"
    SUSPENDED = "suspended"
    DELETED = "deleted"


class User(Base):
    """사용자 모델"""

    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    email = Column(String(255), unique=True, nullable=False, index=True)
    name = Column(String(100), nullable=False)
    role = Column(String(50), nullable=False, default=UserRole.CUSTOMER.value)
    status = Column(
        String(50), nullable=False, default=UserStatus.ACTIVE.value, index=True
    )
    created_at = Column(DateTime, nullable=False, default=utcnow)

    __table_args__ = (
        CheckConstraint("role IN ('customer', 'admin')", name="check_user_role"),
        CheckConstraint(
            "status IN ('active', 'suspended', 'deleted')", name="check_user_status"
        ),
    )

    def __repr__(self):
        return f"<User(id={self.id}, email={self.email}, role={self.role})>"

    def is_active(self) -> bool:
        return self.status == UserStatus.ACTIVE.value
