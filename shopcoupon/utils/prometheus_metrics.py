"""
Prometheus 메트릭 수집 유틸리티

쿠폰 서비스의 주요 메트릭을 수집하고 Prometheus에 노출합니다.

주요 메트릭:
- 쿠폰 검증/사용 결과 (Counter)
- 쿠폰 사용 처리 시간 (Histogram)
- 할인 총액 (Counter)
- HTTP 요청 수 및 응답 시간 (Counter, Histogram, Gauge)
"""

from decimal import Decimal
from functools import wraps
from typing import Callable
import time

from prometheus_client import (
    Counter,
    Histogram,
    Gauge,
    Info,
    generate_latest,
    CONTENT_TYPE_LATEST,
    CollectorRegistry,
)


# 커스텀 레지스트리 (기본 메트릭 제외)
registry = CollectorRegistry()

# ===========================
# 애플리케이션 정보
# ===========================
app_info = Info(
    "coupon_app",
    "Coupon Service Application Info",
    registry=registry,
)
app_info.info({"version": "1.0.0", "service": "coupon-service"})

# ===========================
# HTTP 요청 메트릭
# ===========================
http_requests_total = Counter(
    "coupon_http_requests_total",
    "전체 HTTP 요청 수",
    ["method", "endpoint", "status_code"],
    registry=registry,
)

http_request_duration_seconds = Histogram(
    "coupon_http_request_duration_seconds",
    "HTTP 요청 처리 시간 (초)",
    ["method", "endpoint"],
    buckets=(0.01, 0.025, 0.05, 0.075, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0),
    registry=registry,
)

http_requests_in_progress = Gauge(
    "coupon_http_requests_in_progress",
    "현재 처리 중인 HTTP 요청 수",
    ["method", "endpoint"],
    registry=registry,
)

# ===========================
# 쿠폰 메트릭
# ===========================
coupon_validations_total = Counter(
    "coupon_validations_total",
    "쿠폰 검증 요청 수",
    ["result"],  # valid 또는 거절 사유 (EXPIRED, MIN_ORDER_NOT_MET, ...)
    registry=registry,
)

coupon_redemptions_total = Counter(
    "coupon_redemptions_total",
    "쿠폰 사용 처리 수",
    ["result"],  # success 또는 거절 사유
    registry=registry,
)

coupon_discount_amount_total = Counter(
    "coupon_discount_amount_total",
    "사용 처리된 쿠폰 할인 총액",
    registry=registry,
)

coupon_redemption_duration_seconds = Histogram(
    "coupon_redemption_duration_seconds",
    "쿠폰 사용 트랜잭션 처리 시간 (초)",
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
    registry=registry,
)

coupon_admin_operations_total = Counter(
    "coupon_admin_operations_total",
    "관리자 쿠폰 작업 수",
    ["operation"],  # create, update, delete, retire
    registry=registry,
)

# ===========================
# 에러 메트릭
# ===========================
errors_total = Counter(
    "coupon_errors_total",
    "애플리케이션 에러 수",
    ["error_type", "severity"],
    registry=registry,
)


# ===========================
# 데코레이터 유틸리티
# ===========================
def track_redemption_duration(func: Callable):
    """쿠폰 사용 트랜잭션 처리 시간을 추적하는 데코레이터"""

    @wraps(func)
    async def wrapper(*args, **kwargs):
        start_time = time.time()
        try:
            return await func(*args, **kwargs)
        finally:
            coupon_redemption_duration_seconds.observe(time.time() - start_time)

    return wrapper


# ===========================
# 메트릭 노출 함수
# ===========================
def get_metrics() -> bytes:
    """Prometheus가 수집할 수 있는 형식으로 메트릭 반환"""
    return generate_latest(registry)


def get_content_type() -> str:
    """Prometheus 메트릭 Content-Type 반환"""
    return CONTENT_TYPE_LATEST


# ===========================
# 편의 함수
# ===========================
def record_validation(result: str):
    """쿠폰 검증 결과 기록"""
    coupon_validations_total.labels(result=result).inc()


def record_redemption(result: str, discount: Decimal = None):
    """쿠폰 사용 결과 기록"""
    coupon_redemptions_total.labels(result=result).inc()
    if discount:
        coupon_discount_amount_total.inc(float(discount))


def record_admin_operation(operation: str):
    """관리자 쿠폰 작업 기록"""
    coupon_admin_operations_total.labels(operation=operation).inc()


def record_error(error_type: str, severity: str = "error"):
    """에러 기록"""
    errors_total.labels(error_type=error_type, severity=severity).inc()
