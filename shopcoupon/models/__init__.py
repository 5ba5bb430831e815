"""
데이터베이스 모델 패키지

새로운 모델을 추가할 때는 이 파일에서 import하여 Alembic이 자동으로 감지할 수 있도록 합니다.
"""

from .base import Base, get_db, init_db, close_db, utcnow, as_naive_utc
from .user import User, UserRole, UserStatus
from .coupon import Coupon, CouponAssignment
from .coupon_usage import CouponUsage

__all__ = [
    "Base",
    "get_db",
    "init_db",
    "close_db",
    "utcnow",
    "as_naive_utc",
    "User",
    "UserRole",
    "UserStatus",
    "Coupon",
    "CouponAssignment",
    "CouponUsage",
]
