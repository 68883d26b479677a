"""Pytest configuration and fixtures for backend tests.

Database Handling:
- If TEST_DATABASE_URL is set (e.g. postgresql+asyncpg://...), tests run against it
- Otherwise each test gets a fresh SQLite file database through aiosqlite
- Tests that need real row locks are marked ``requires_postgres`` and skipped on SQLite
"""

import asyncio
import itertools
import os
import tempfile
from collections.abc import AsyncGenerator
from typing import Any

import pytest
import pytest_asyncio
from fastapi import Depends
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

# Set test environment variables before importing app modules
_TEST_DATABASE_URL = os.environ.get("TEST_DATABASE_URL")
os.environ["DATABASE_URL"] = _TEST_DATABASE_URL or (
    f"sqlite+aiosqlite:///{os.path.join(tempfile.gettempdir(), 'authcore_app_test.db')}"
)
os.environ["JWT_SECRET_KEY"] = "test-secret-key-" + "0" * 48
os.environ["OTP_ENABLED"] = "true"
os.environ["NOTIFICATION_WEBHOOK_URL"] = ""

# Test credentials
TEST_PIN = "123456"
TEST_PASSWORD = "Str0ng!Passw0rd"
TEST_DEVICE_ID = "device-test-0001"


def device_headers(device_id: str | None = TEST_DEVICE_ID, **extra: str) -> dict[str, str]:
    """Device context headers as sent by the mobile and web clients."""
    headers = {"User-Agent": "authcore-tests/1.0", "X-Platform": "android"}
    if device_id is not None:
        headers["X-Device-Id"] = device_id
    headers.update(extra)
    return headers


def bearer(token: str) -> dict[str, str]:
    return {"Authorization": f"Bearer {token}"}


# --- Database availability ---

_pg_available: bool | None = None


def check_postgres_available() -> bool:
    """Check if a PostgreSQL test database is configured and reachable."""
    global _pg_available
    if _pg_available is not None:
        return _pg_available

    if not _TEST_DATABASE_URL or not _TEST_DATABASE_URL.startswith("postgresql"):
        _pg_available = False
        return _pg_available

    from sqlalchemy import text

    async def _check() -> bool:
        try:
            engine = create_async_engine(_TEST_DATABASE_URL, poolclass=NullPool)
            async with engine.connect() as conn:
                await conn.execute(text("SELECT 1"))
            await engine.dispose()
            return True
        except Exception as e:
            import warnings

            warnings.warn(f"PostgreSQL not available: {e}", stacklevel=2)
            return False

    _pg_available = asyncio.run(_check())
    return _pg_available


# Skip marker for tests requiring PostgreSQL row locks
requires_postgres = pytest.mark.skipif(
    not check_postgres_available(), reason="PostgreSQL test database not available"
)


def pytest_collection_modifyitems(config, items):
    """Tag tests that use database or HTTP fixtures as integration, the rest as unit."""
    for item in items:
        fixtures = set(getattr(item, "fixturenames", ()))
        if fixtures & {"db_engine", "db_session", "async_client"}:
            item.add_marker(pytest.mark.integration)
        else:
            item.add_marker(pytest.mark.unit)


# --- Database Fixtures ---


@pytest_asyncio.fixture(scope="function")
async def db_engine(tmp_path):
    """Create a database engine with all tables for one test."""
    from authcore.models import BaseModel

    url = _TEST_DATABASE_URL or f"sqlite+aiosqlite:///{tmp_path / 'authcore_test.db'}"
    engine = create_async_engine(url, poolclass=NullPool, echo=False)

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def db_session(db_engine) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for testing."""
    async_session = async_sessionmaker(
        db_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )

    async with async_session() as session:
        yield session
        await session.rollback()


@pytest.fixture
def session_maker(db_engine) -> async_sessionmaker[AsyncSession]:
    """Factory for independent sessions (one per simulated concurrent request)."""
    return async_sessionmaker(db_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def token_blacklist(session_maker):
    """Access-token blacklist bound to the test database."""
    from authcore.services.blacklist import TokenBlacklist

    return TokenBlacklist(session_factory=session_maker)


# --- Notifications ---


class FakeNotifier:
    """Records notifications instead of posting them to the relay."""

    def __init__(self):
        self.sent: list[dict[str, Any]] = []
        self.fail = False

    async def send(self, to: str, template: str, context: dict[str, Any]) -> None:
        if self.fail:
            raise ConnectionError("relay unavailable")
        self.sent.append({"to": to, "template": template, "context": context})

    def last_code(self, purpose: str | None = None) -> str:
        """The most recent one-time code delivered (optionally for one purpose)."""
        for message in reversed(self.sent):
            context = message["context"]
            if "code" in context and (purpose is None or context.get("purpose") == purpose):
                return context["code"]
        raise AssertionError("no one-time code was sent")


@pytest.fixture
def fake_notifier() -> FakeNotifier:
    return FakeNotifier()


@pytest.fixture
def auth_service(db_session, fake_notifier, token_blacklist):
    """AuthService bound to the test session, blacklist and fake notifier."""
    from authcore.services.auth import AuthService

    return AuthService(db_session, notifier=fake_notifier, blacklist=token_blacklist)


# --- HTTP client ---


@pytest_asyncio.fixture(scope="function")
async def async_client(
    db_session: AsyncSession, fake_notifier: FakeNotifier, token_blacklist
) -> AsyncGenerator[AsyncClient, None]:
    """Create an async test client with database, blacklist and notifier overrides."""
    from authcore.api.auth import get_auth_service
    from authcore.core.database import get_db
    from authcore.main import app
    from authcore.services.auth import AuthService
    from authcore.services.blacklist import get_token_blacklist

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    def override_get_auth_service(db: AsyncSession = Depends(get_db)) -> AuthService:
        return AuthService(db, notifier=fake_notifier, blacklist=token_blacklist)

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_auth_service] = override_get_auth_service
    app.dependency_overrides[get_token_blacklist] = lambda: token_blacklist

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    # Clean up
    app.dependency_overrides.clear()


# --- Test Factories ---


@pytest.fixture
def principal_factory(db_session):
    """Factory for creating committed test Principal objects."""
    from authcore.models.base import utcnow
    from authcore.models.principal import Principal
    from authcore.services.principals import hash_secret

    counter = itertools.count(1)

    async def _create_principal(
        phone_number: str | None = None,
        email: str | None = None,
        pin: str = TEST_PIN,
        password: str | None = TEST_PASSWORD,
        role_slug: str | None = "customer",
        email_verified: bool = True,
        **kwargs,
    ) -> Principal:
        n = next(counter)
        principal = Principal(
            full_name=kwargs.pop("full_name", f"Test User {n}"),
            phone_number=phone_number or f"08120000{n:04d}",
            email=email or f"user{n}@example.com",
            pin_hash=hash_secret(pin),
            password_hash=hash_secret(password) if password else None,
            role_slug=role_slug,
            email_verified_at=utcnow() if email_verified else None,
            **kwargs,
        )
        db_session.add(principal)
        await db_session.commit()
        return principal

    return _create_principal


@pytest.fixture
def trusted_device(db_session):
    """Factory that records a verified login so the device is trusted."""
    from authcore.core.request_utils import DeviceContext
    from authcore.services.device_trust import DeviceTrustGate

    async def _trust(principal, device_id: str = TEST_DEVICE_ID, **kwargs):
        record = await DeviceTrustGate(db_session).record_login(
            principal.id, DeviceContext(device_id=device_id, **kwargs)
        )
        await db_session.commit()
        return record

    return _trust


@pytest.fixture
def issue_tokens(db_session):
    """Factory issuing a committed token pair for a principal on a device."""
    from authcore.core.request_utils import DeviceContext
    from authcore.services.tokens import CredentialIssuer

    async def _issue(principal, device_id: str | None = TEST_DEVICE_ID, **kwargs):
        bundle = await CredentialIssuer(db_session).issue(
            principal, DeviceContext(device_id=device_id, **kwargs)
        )
        await db_session.commit()
        return bundle

    return _issue
