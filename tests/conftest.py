"""Pytest configuration and fixtures for backend tests."""

import os

# Settings are read at import time; DEBUG allows the default SECRET_KEY.
os.environ.setdefault("DEBUG", "true")
os.environ.setdefault("CRON_SECRET", "")
os.environ.setdefault("INTERNAL_API_SECRET", "")

import uuid
from collections.abc import AsyncGenerator
from datetime import UTC, datetime
from decimal import Decimal
from typing import Any

import pytest
import pytest_asyncio
from fakeredis import aioredis as fakeredis
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import beautyhub.models  # noqa: F401  (registers every table)
from beautyhub.core.limiter import limiter
from beautyhub.core.security import create_access_token, get_password_hash
from beautyhub.db.base import Base
from beautyhub.db.redis import get_redis
from beautyhub.db.session import get_db
from beautyhub.main import app
from beautyhub.models.automation import MarketingAutomation
from beautyhub.models.booking import Booking
from beautyhub.models.finance_transaction import FinanceTransaction
from beautyhub.models.provider import Provider
from beautyhub.models.service_package import ServicePackage
from beautyhub.models.user import User, UserRole
from beautyhub.services.messaging import DispatchResult, OutboundMessage

# Test database URL (using in-memory SQLite for tests)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


class RecordingDispatcher:
    """Messaging stand-in that records every message it is asked to send."""

    def __init__(self, fail_for: set[str] | None = None) -> None:
        self.sent: list[OutboundMessage] = []
        self.fail_for = fail_for or set()

    async def dispatch(self, message: OutboundMessage) -> DispatchResult:
        if message.to in self.fail_for:
            return DispatchResult(success=False, error=f"rejected {message.to}")
        self.sent.append(message)
        return DispatchResult(success=True, message_id=f"msg-{len(self.sent)}")


@pytest_asyncio.fixture(scope="function")
async def test_engine() -> AsyncGenerator[Any, None]:
    """Create test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    @event.listens_for(engine.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_connection: Any, _connection_record: Any) -> None:
        # Let SQLAlchemy own BEGIN so SAVEPOINTs work
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn: Any) -> None:
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine: Any) -> AsyncGenerator[AsyncSession, None]:
    """Create test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_redis() -> AsyncGenerator[Any, None]:
    """Create fake Redis client for testing."""
    redis_client = fakeredis.FakeRedis(decode_responses=True)
    yield redis_client
    await redis_client.flushall()
    await redis_client.aclose()


@pytest_asyncio.fixture(scope="function")
async def test_client(
    test_session: AsyncSession,
    test_redis: Any,
) -> AsyncGenerator[AsyncClient, None]:
    """Create test HTTP client with dependency overrides."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield test_session

    async def override_get_redis() -> Any:
        return test_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis
    limiter.reset()

    transport = ASGITransport(app=app)  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def dispatcher() -> RecordingDispatcher:
    return RecordingDispatcher()


@pytest.fixture
def now() -> datetime:
    """Fixed pass time, away from day boundaries."""
    return datetime(2025, 3, 12, 12, 0, tzinfo=UTC)


@pytest_asyncio.fixture
async def create_test_provider(test_session: AsyncSession) -> Any:
    """Factory fixture to create providers."""

    async def _create_provider(**kwargs: Any) -> Provider:
        provider_data: dict[str, Any] = {"business_name": "Glow Studio", "timezone": "UTC"}
        provider_data.update(kwargs)
        provider = Provider(**provider_data)
        test_session.add(provider)
        await test_session.commit()
        await test_session.refresh(provider)
        return provider

    return _create_provider


@pytest_asyncio.fixture
async def create_test_user(test_session: AsyncSession) -> Any:
    """Factory fixture to create users (customers by default)."""

    async def _create_user(**kwargs: Any) -> User:
        user_data: dict[str, Any] = {
            "email": f"user-{uuid.uuid4().hex[:8]}@example.com",
            "phone": None,
            "full_name": "Test Customer",
            "role": UserRole.CUSTOMER.value,
            "is_active": True,
        }
        password = kwargs.pop("password", None)
        user_data.update(kwargs)
        if password:
            user_data["hashed_password"] = get_password_hash(password)
        user = User(**user_data)
        test_session.add(user)
        await test_session.commit()
        await test_session.refresh(user)
        return user

    return _create_user


@pytest_asyncio.fixture
async def create_test_booking(test_session: AsyncSession) -> Any:
    """Factory fixture to create bookings."""

    async def _create_booking(**kwargs: Any) -> Booking:
        booking_data: dict[str, Any] = {
            "booking_number": f"BK-{uuid.uuid4().hex[:6].upper()}",
            "status": "confirmed",
        }
        booking_data.update(kwargs)
        booking = Booking(**booking_data)
        test_session.add(booking)
        await test_session.commit()
        await test_session.refresh(booking)
        return booking

    return _create_booking


@pytest_asyncio.fixture
async def create_test_package(test_session: AsyncSession) -> Any:
    """Factory fixture to create service packages."""

    async def _create_package(**kwargs: Any) -> ServicePackage:
        package_data: dict[str, Any] = {"name": "5x Facial", "is_active": True}
        package_data.update(kwargs)
        package = ServicePackage(**package_data)
        test_session.add(package)
        await test_session.commit()
        await test_session.refresh(package)
        return package

    return _create_package


@pytest_asyncio.fixture
async def create_test_automation(test_session: AsyncSession) -> Any:
    """Factory fixture to create active automations."""

    async def _create_automation(**kwargs: Any) -> MarketingAutomation:
        automation_data: dict[str, Any] = {
            "name": "Custom Automation",
            "trigger_type": "appointment_reminder",
            "trigger_config": {},
            "delay_minutes": 0,
            "action_type": "sms",
            "action_config": {},
            "is_active": True,
        }
        automation_data.update(kwargs)
        automation = MarketingAutomation(**automation_data)
        test_session.add(automation)
        await test_session.commit()
        await test_session.refresh(automation)
        return automation

    return _create_automation


@pytest_asyncio.fixture
async def create_test_transaction(test_session: AsyncSession) -> Any:
    """Factory fixture to create ledger rows."""

    async def _create_transaction(transaction_type: str, **kwargs: Any) -> FinanceTransaction:
        for money in ("amount", "fees", "commission", "net"):
            if kwargs.get(money) is not None:
                kwargs[money] = Decimal(str(kwargs[money]))
        transaction = FinanceTransaction(transaction_type=transaction_type, **kwargs)
        test_session.add(transaction)
        await test_session.commit()
        await test_session.refresh(transaction)
        return transaction

    return _create_transaction


@pytest.fixture
def auth_headers() -> Any:
    """Build a bearer header for a user."""

    def _auth_headers(user: User) -> dict[str, str]:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}

    return _auth_headers
