"""
커스텀 예외 클래스 정의

애플리케이션 전역에서 사용하는 예외 클래스를 정의합니다.
"""

from typing import Optional, Any
from fastapi import status

from shopcoupon.services.eligibility import CouponRejectReason


class AppException(Exception):
    """
    애플리케이션 기본 예외 클래스

    모든 커스텀 예외는 이 클래스를 상속받습니다.
    """

    def __init__(
        self,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        error_code: str = "app_error",
        details: Optional[dict[str, Any]] = None,
    ):
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ValidationException(AppException):
    """
    입력 검증 실패 예외

    사용자 입력이 유효하지 않을 때 발생합니다.
    """

    def __init__(
        self,
        message: str = "입력 데이터가 유효하지 않습니다.",
        field: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ):
        if field:
            details = details or {}
            details["field"] = field

        super().__init__(
            message=message,
            status_code=status.HTTP_400_BAD_REQUEST,
            error_code="validation_error",
            details=details,
        )


class NotFoundException(AppException):
    """
    리소스를 찾을 수 없을 때 발생하는 예외
    """

    def __init__(
        self,
        resource: str = "리소스",
        resource_id: Optional[str] = None,
        message: Optional[str] = None,
    ):
        if message is None:
            if resource_id:
                message = f"{resource}를 찾을 수 없습니다 (ID: {resource_id})"
            else:
                message = f"{resource}를 찾을 수 없습니다."

        super().__init__(
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            error_code="not_found",
            details={"resource": resource, "resource_id": resource_id},
        )


class ConflictException(AppException):
    """
    리소스 충돌 예외 (409 Conflict)

    예: 이미 존재하는 쿠폰 코드로 생성 시도
    """

    def __init__(
        self,
        message: str = "요청이 현재 서버 상태와 충돌합니다.",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            error_code="conflict",
            details=details,
        )




# 쿠폰 전용 예외 클래스


class CouponNotFoundException(NotFoundException):
    """쿠폰을 찾을 수 없을 때"""

    def __init__(self, coupon_id: str):
        super().__init__(resource="쿠폰", resource_id=coupon_id)


_REDEMPTION_STATUS = {
    CouponRejectReason.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    CouponRejectReason.USAGE_LIMIT_EXCEEDED: status.HTTP_409_CONFLICT,
    CouponRejectReason.USER_USAGE_LIMIT_EXCEEDED: status.HTTP_409_CONFLICT,
    CouponRejectReason.INVALID: status.HTTP_409_CONFLICT,
}


class CouponRedemptionError(AppException):
    """
    쿠폰 사용 처리 실패 예외

    트랜잭션은 롤백되며, error_code에 거절 사유(CouponRejectReason)가 담깁니다.
    """

    def __init__(self, reason: CouponRejectReason, coupon_code: Optional[str] = None):
        self.reason = reason
        super().__init__(
            message=reason.message,
            status_code=_REDEMPTION_STATUS.get(
                reason, status.HTTP_422_UNPROCESSABLE_ENTITY
            ),
            error_code=reason.value,
            details={"reason": reason.value, "coupon_code": coupon_code},
        )
