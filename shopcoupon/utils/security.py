"""
보안 유틸리티 모듈

JWT 토큰 생성/검증 헬퍼를 제공합니다.
토큰 발급은 인증 서비스가 담당하며, 이 서비스는 같은 비밀 키로 검증만 수행합니다.
"""

from datetime import datetime, timedelta, timezone
from typing import Optional
from jose import JWTError, jwt

from shopcoupon.config import settings


class JWTManager:
    """
    JWT 토큰 생성 및 검증 관리 클래스
    """

    @staticmethod
    def create_access_token(
        data: dict,
        expires_delta: Optional[timedelta] = None,
    ) -> str:
        """
        Access Token 생성 (테스트 및 내부 도구용)

        Args:
            data: 토큰에 포함할 데이터 (sub, role 등)
            expires_delta: 만료 시간 (기본값: ACCESS_TOKEN_EXPIRE_MINUTES)

        Returns:
            str: JWT 토큰
        """
        to_encode = data.copy()
        expire = datetime.now(timezone.utc) + (
            expires_delta or timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        )
        to_encode.update({"exp": expire, "type": "access"})
        return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

    @staticmethod
    def decode_token(token: str) -> dict:
        """
        JWT 토큰 디코딩 및 검증

        Raises:
            ValueError: 토큰이 유효하지 않거나 만료된 경우
        """
        try:
            return jwt.decode(
                token, settings.SECRET_KEY, algorithms=[settings.JWT_ALGORITHM]
            )
        except JWTError as e:
            raise ValueError(f"Invalid token: {str(e)}")

    @staticmethod
    def verify_token_type(payload: dict, expected_type: str) -> bool:
        """토큰 타입 검증 (access vs refresh)"""
        return payload.get("type") == expected_type
