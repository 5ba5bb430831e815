"""
Pytest configuration and shared fixtures
"""

import os

# 애플리케이션 모듈 import 전에 테스트 환경 설정
os.environ.setdefault("ENV", "testing")
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from datetime import timedelta
from decimal import Decimal
from typing import AsyncGenerator
from uuid import uuid4
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import StaticPool

from shopcoupon.models import Base, Coupon, CouponAssignment, User, utcnow
from shopcoupon.main import app
from shopcoupon.utils.security import JWTManager


# Test database URL (in-memory SQLite)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """
    Create a fresh database session for each test.

    Uses in-memory SQLite database for fast test execution.
    """
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
        echo=False,
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session_factory() as session:
        yield session
        await session.rollback()

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def async_client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """
    Create an async HTTP client for testing FastAPI endpoints.
    Override the database dependency to use the test database.
    """
    from shopcoupon.models.base import get_db

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(
        transport=ASGITransport(app=app), base_url="http://test"
    ) as client:
        yield client

    app.dependency_overrides.clear()


async def _create_user(db_session: AsyncSession, email: str, role: str) -> User:
    user = User(
        id=uuid4(),
        email=email,
        name=email.split("@")[0],
        role=role,
        status="active",
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture(scope="function")
async def test_user(db_session: AsyncSession) -> User:
    """Create a customer account."""
    return await _create_user(db_session, "test@example.com", "customer")


@pytest_asyncio.fixture(scope="function")
async def other_user(db_session: AsyncSession) -> User:
    """Create a second customer account."""
    return await _create_user(db_session, "other@example.com", "customer")


@pytest_asyncio.fixture(scope="function")
async def admin_user(db_session: AsyncSession) -> User:
    """Create an admin account."""
    return await _create_user(db_session, "admin@example.com", "admin")


def _bearer(user: User) -> dict:
    token = JWTManager.create_access_token(
        {"sub": str(user.id), "email": user.email, "role": user.role},
        expires_delta=timedelta(hours=1),
    )
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture(scope="function")
def auth_headers(test_user: User) -> dict:
    """
    Authentication headers for the customer account.

    Tokens are signed with the application SECRET_KEY.
    """
    return _bearer(test_user)


@pytest.fixture(scope="function")
def admin_headers(admin_user: User) -> dict:
    """Authentication headers for the admin account."""
    return _bearer(admin_user)


@pytest.fixture
def make_coupon(db_session: AsyncSession):
    """
    Factory fixture that stores a coupon.

    Defaults describe an active, public 10% coupon valid for one day either side of now.
    """

    async def _make_coupon(code: str = "TEST10", user_ids=None, **overrides) -> Coupon:
        now = utcnow()
        values = {
            "code": code,
            "name": f"{code} 쿠폰",
            "discount_type": "PERCENTAGE",
            "discount_value": Decimal("10"),
            "valid_from": now - timedelta(days=1),
            "valid_until": now + timedelta(days=1),
            "is_active": True,
        }
        values.update(overrides)

        coupon = Coupon(id=uuid4(), **values)
        coupon.assignments = [
            CouponAssignment(user_id=user_id) for user_id in (user_ids or [])
        ]
        db_session.add(coupon)
        await db_session.commit()
        return coupon

    return _make_coupon
