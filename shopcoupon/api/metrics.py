"""
Prometheus 메트릭 엔드포인트
"""

from fastapi import APIRouter, Response

from shopcoupon.utils.prometheus_metrics import get_metrics, get_content_type

router = APIRouter(tags=["Monitoring"])


@router.get("/metrics")
async def metrics():
    """
    Prometheus 메트릭 노출 엔드포인트

    **사용법:**
    ```yaml
    # prometheus.yml
    scrape_configs:
      - job_name: 'coupon-service'
        scrape_interval: 15s
        static_configs:
          - targets: ['coupon-service:8000']
    ```
    """
    return Response(content=get_metrics(), media_type=get_content_type())
