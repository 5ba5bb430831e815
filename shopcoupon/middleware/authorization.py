"""
역할 기반 접근 제어 (RBAC) 미들웨어

사용자 역할에 따른 권한 관리 및 접근 제어를 제공합니다.
"""

from enum import Enum
from typing import Set
from fastapi import Depends

from shopcoupon.middleware.auth import AuthorizationError, get_current_user
from shopcoupon.models.user import UserRole


class Permission(str, Enum):
    """권한 정의"""

    COUPON_READ = "coupon:read"  # 쿠폰 정의/사용 이력 조회 (관리자)
    COUPON_MANAGE = "coupon:manage"  # 쿠폰 생성/수정/삭제
    COUPON_REDEEM = "coupon:redeem"  # 쿠폰 사용


# 역할별 권한 매핑
ROLE_PERMISSIONS: dict[UserRole, Set[Permission]] = {
    UserRole.CUSTOMER: {
        Permission.COUPON_REDEEM,
    },
    UserRole.ADMIN: set(Permission),  # 모든 권한
}


class RBACManager:
    """
    역할 기반 접근 제어 관리 클래스
    """

    @staticmethod
    def get_user_permissions(role: str) -> Set[Permission]:
        """
        사용자 역할에 따른 권한 목록 반환 (알 수 없는 역할은 권한 없음)
        """
        try:
            return ROLE_PERMISSIONS.get(UserRole(role), set())
        except ValueError:
            return set()

    @staticmethod
    def has_any_permission(role: str, required_permissions) -> bool:
        """사용자가 여러 권한 중 하나라도 가지고 있는지 확인 (OR 조건)"""
        user_permissions = RBACManager.get_user_permissions(role)
        return any(perm in user_permissions for perm in required_permissions)


def require_permission(*permissions: Permission):
    """
    특정 권한을 요구하는 의존성 팩토리

    Args:
        *permissions: 필요한 권한 목록 (OR 조건)

    Example:
        ```python
        @router.post("/admin/coupons")
        async def create_coupon(
            current_user = Depends(require_permission(Permission.COUPON_MANAGE))
        ):
            ...
        ```
    """

    async def permission_checker(current_user=Depends(get_current_user)):
        if not RBACManager.has_any_permission(current_user.role, permissions):
            raise AuthorizationError(
                detail=(
                    "이 작업을 수행하려면 다음 권한 중 하나가 필요합니다: "
                    f"{', '.join(p.value for p in permissions)}"
                )
            )
        return current_user

    return permission_checker


# 편의성을 위한 사전 정의된 권한 체커
require_coupon_read = require_permission(Permission.COUPON_READ)
require_coupon_manage = require_permission(Permission.COUPON_MANAGE)
require_coupon_redeem = require_permission(Permission.COUPON_REDEEM)
