"""
Prometheus 메트릭 미들웨어

모든 HTTP 요청의 처리 횟수, 처리 시간, 동시 처리 수를 수집합니다.
"""

import time
from typing import Callable

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

from shopcoupon.utils.prometheus_metrics import (
    http_requests_total,
    http_request_duration_seconds,
    http_requests_in_progress,
    record_error,
)


class PrometheusMiddleware(BaseHTTPMiddleware):
    """
    Prometheus 메트릭을 수집하는 FastAPI 미들웨어

    엔드포인트 라벨은 라우트 템플릿(/v1/admin/coupons/{coupon_id})을 사용하여
    쿠폰 ID마다 시계열이 늘어나지 않도록 합니다.
    """

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        # /metrics 엔드포인트는 메트릭 수집에서 제외
        if request.url.path == "/metrics":
            return await call_next(request)

        method = request.method
        endpoint = request.url.path
        http_requests_in_progress.labels(method=method, endpoint=endpoint).inc()

        start_time = time.time()
        status_code = 500

        try:
            response = await call_next(request)
            status_code = response.status_code
            return response

        except Exception as e:
            record_error(type(e).__name__, severity="critical")
            raise

        finally:
            duration = time.time() - start_time
            template = self._get_endpoint_template(request)

            http_requests_total.labels(
                method=method, endpoint=template, status_code=status_code
            ).inc()
            http_request_duration_seconds.labels(
                method=method, endpoint=template
            ).observe(duration)
            http_requests_in_progress.labels(method=method, endpoint=endpoint).dec()

            if status_code >= 400:
                severity = "warning" if status_code < 500 else "error"
                record_error(f"http_{status_code}", severity=severity)

    @staticmethod
    def _get_endpoint_template(request: Request) -> str:
        """라우트 매칭 후 scope에 기록된 경로 템플릿 추출 (없으면 실제 경로)"""
        route = request.scope.get("route")
        if route is not None and hasattr(route, "path"):
            return route.path
        return request.url.path
