"""
JWT 인증 미들웨어

FastAPI 의존성 주입을 활용한 JWT 인증 시스템을 제공합니다.
"""

from typing import Optional
from uuid import UUID
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shopcoupon.models.base import get_db
from shopcoupon.models.user import User
from shopcoupon.utils.security import JWTManager


# HTTP Bearer 토큰 스킴 (Authorization: Bearer <token>)
security = HTTPBearer(auto_error=False)


class AuthenticationError(HTTPException):
    """인증 실패 예외"""

    def __init__(self, detail: str = "인증에 실패했습니다."):
        super().__init__(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=detail,
            headers={"WWW-Authenticate": "Bearer"},
        )


class AuthorizationError(HTTPException):
    """권한 부족 예외"""

    def __init__(self, detail: str = "접근 권한이 없습니다."):
        super().__init__(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=detail,
        )


def _user_id_from_token(token: str) -> UUID:
    try:
        payload = JWTManager.decode_token(token)
    except ValueError as e:
        raise AuthenticationError(detail=str(e))

    # 토큰 타입 검증 (access token만 허용)
    if not JWTManager.verify_token_type(payload, "access"):
        raise AuthenticationError(detail="잘못된 토큰 타입입니다.")

    user_id: Optional[str] = payload.get("sub")
    if user_id is None:
        raise AuthenticationError(detail="토큰에서 사용자 정보를 찾을 수 없습니다.")

    try:
        return UUID(user_id)
    except ValueError:
        raise AuthenticationError(detail="잘못된 사용자 ID 형식입니다.")


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    현재 요청의 사용자 객체 조회

    JWT 토큰에서 사용자 ID를 추출하고 데이터베이스에서 사용자 정보를 조회합니다.

    Raises:
        AuthenticationError: 토큰이 없거나 유효하지 않은 경우, 사용자를 찾을 수 없거나 비활성화된 경우

    Example:
        ```python
        @router.get("/me")
        async def get_me(current_user: User = Depends(get_current_user)):
            return {"email": current_user.email}
        ```
    """
    if credentials is None:
        raise AuthenticationError(detail="인증 토큰이 필요합니다.")

    user_id = _user_id_from_token(credentials.credentials)

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user is None:
        raise AuthenticationError(detail="사용자를 찾을 수 없습니다.")

    if not user.is_active():
        raise AuthenticationError(detail="비활성화된 계정입니다.")

    return user


async def get_current_user_optional(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> Optional[User]:
    """
    선택적 인증 - 토큰이 있으면 사용자 객체, 없거나 유효하지 않으면 None

    비로그인 사용자도 호출할 수 있는 쿠폰 검증 API에서 사용합니다.
    """
    if credentials is None:
        return None

    try:
        user_id = _user_id_from_token(credentials.credentials)
    except AuthenticationError:
        return None

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()

    if user and user.is_active():
        return user

    return None
