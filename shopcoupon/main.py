"""
쿠폰 서비스 FastAPI 메인 애플리케이션

쿠폰 검증, 사용 처리, 관리자 쿠폰 관리를 담당하는 백엔드 API 서버입니다.
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
import uvicorn

from shopcoupon import __version__
from shopcoupon.config import settings
from shopcoupon.models.base import close_db
from shopcoupon.utils.logging import setup_logging, get_logger
from shopcoupon.utils.exceptions import AppException
from shopcoupon.utils.prometheus_metrics import record_error
from shopcoupon.middleware.prometheus import PrometheusMiddleware

# API 라우터
from shopcoupon.api.coupons import router as coupons_router
from shopcoupon.api.metrics import router as metrics_router

# Admin API 라우터
from shopcoupon.api.admin.coupons import router as admin_coupons_router

# 로깅 설정
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    애플리케이션 라이프사이클 관리

    테이블은 Alembic 마이그레이션으로 관리하며, 종료 시 연결 풀을 정리합니다.
    """
    logger.info("쿠폰 서비스 시작", extra={"env": settings.ENV})
    yield

    logger.info("쿠폰 서비스 종료 중...")
    await close_db()
    logger.info("쿠폰 서비스 종료 완료")


# FastAPI 애플리케이션 인스턴스
app = FastAPI(
    title="ShopFDS - 쿠폰 서비스 API",
    description="""
## 쿠폰 검증 및 사용 처리 서비스

### 주요 기능

- [OK] **쿠폰 검증**: 장바구니 금액/카테고리 기준 사용 가능 여부와 할인 금액 계산
- [OK] **쿠폰 사용**: 전체/사용자별 한도를 동시 요청에서도 초과하지 않는 사용 처리
- [OK] **사용 가능 쿠폰 조회**: 전체 공개 쿠폰 및 사용자 배정 쿠폰
- [OK] **관리자 쿠폰 관리**: 생성, 조회, 수정, 삭제(사용 이력이 있으면 폐기), 사용 이력 조회

### 기술 스택

- **Backend**: Python 3.11+, FastAPI
- **Database**: PostgreSQL 15+ (SQLAlchemy 2.0 async, Alembic)
- **Monitoring**: Prometheus
    """,
    version=__version__,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)


# CORS 미들웨어 설정 (프론트엔드 연동)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_cors_origins(),
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)

if settings.PROMETHEUS_ENABLED:
    app.add_middleware(PrometheusMiddleware)


# 전역 예외 핸들러
@app.exception_handler(AppException)
async def app_exception_handler(request: Request, exc: AppException):
    """애플리케이션 정의 예외 처리"""
    logger.warning(
        f"AppException: {exc.message}",
        extra={
            "error_code": exc.error_code,
            "path": request.url.path,
            "method": request.method,
        },
    )
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details,
        },
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """모든 예외를 캐치하는 최종 핸들러"""
    logger.error(
        f"Unhandled exception: {str(exc)}",
        exc_info=True,
        extra={
            "path": request.url.path,
            "method": request.method,
        },
    )
    record_error(type(exc).__name__, severity="critical")
    return JSONResponse(
        status_code=500,
        content={
            "error": "internal_server_error",
            "message": "서버 내부 오류가 발생했습니다. 잠시 후 다시 시도해주세요.",
        },
    )


# 헬스 체크 엔드포인트
@app.get("/", tags=["Health"])
async def root():
    """루트 엔드포인트"""
    return {
        "service": "쿠폰 서비스 API",
        "status": "running",
        "version": __version__,
    }


@app.get("/health", tags=["Health"])
async def health_check():
    """헬스 체크 엔드포인트 (로드 밸런서용)"""
    return {"status": "healthy", "env": settings.ENV}


# API 라우터 등록
app.include_router(coupons_router)
app.include_router(metrics_router)

# Admin 라우터 등록
app.include_router(admin_coupons_router)


if __name__ == "__main__":
    # 개발 서버 실행
    uvicorn.run(
        "shopcoupon.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.is_development,
        log_level=settings.LOG_LEVEL.lower(),
    )
