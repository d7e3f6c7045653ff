# Shared pytest configuration and fixtures for all test types
import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from slowapi import Limiter
from slowapi.util import get_remote_address
from unittest.mock import patch

from common.core.config import settings

# Create test limiter with no limits and in-memory storage
test_limiter = Limiter(
    key_func=get_remote_address,
    default_limits=[],
    storage_uri="memory://",
)

# Patch the limiter before importing the app so decorators use test limiter
with patch("common.providers.rate_limiter.limiter.limiter", test_limiter):
    from api.main import app

from common.db.base import Base
from common.providers.caching.factory import set_cache_provider
from common.providers.caching.memory_cache import MemoryCache
from common.providers.locking.factory import set_lock_provider
from common.providers.locking.memory_lock import MemoryLock
from common.providers.rate_limiter.factory import set_rate_limiter
from common.providers.rate_limiter.limits_rate_limiter import LimitsRateLimiter
from packages.accounts.models.database.account import AccountEntity  # noqa: F401
from packages.accounts.models.domain.account import AccountCreate, AuthenticatedAccount
from packages.accounts.models.domain.enums import Role
from packages.accounts.services.account_service import AccountService
from packages.billing.models.database import (  # noqa: F401
    LedgerEntryEntity,
    SubscriptionEntity,
    TrialAllowanceEntity,
    UsageCounterEntity,
    UsageEventEntity,
)
from tests.factories.database import enable_sqlite_savepoints

# Test database URL
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
TEST_WEBHOOK_SECRET = "whsec_test_secret"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create test database engine and initialize schema."""
    engine = enable_sqlite_savepoints(create_async_engine(TEST_DATABASE_URL, echo=False))
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_connection(test_engine):
    """Create test connection with outer transaction for rollback isolation."""
    async with test_engine.connect() as connection:
        trans = await connection.begin()
        yield connection
        await trans.rollback()


@pytest_asyncio.fixture(scope="function")
async def test_session_factory(test_connection):
    """Create session factory bound to test connection.

    Using join_transaction_mode="create_savepoint" so nested transaction()
    calls create savepoints instead of real nested transactions.
    """
    return async_sessionmaker(
        bind=test_connection,
        class_=AsyncSession,
        expire_on_commit=False,
        join_transaction_mode="create_savepoint",
    )


@pytest_asyncio.fixture(scope="function")
async def test_db(test_session_factory):
    """Create a test database session."""
    async with test_session_factory() as session:
        yield session


@pytest_asyncio.fixture(scope="function", autouse=True)
async def patch_lazy_sessions(test_session_factory, monkeypatch):
    """
    Patch session factories to use test database.

    This allows real transaction() and get_session() to run with proper
    commit/rollback/ContextVar semantics while using the test database.
    """
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", test_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", test_session_factory
    )


@pytest.fixture(autouse=True)
def memory_providers():
    """Fresh in-process cache, rate limiter and lock provider per test."""
    cache = MemoryCache()
    rate_limiter = LimitsRateLimiter("async+memory://")
    lock = MemoryLock()
    set_cache_provider(cache)
    set_rate_limiter(rate_limiter)
    set_lock_provider(lock)
    yield {"cache": cache, "rate_limiter": rate_limiter, "lock": lock}
    set_cache_provider(None)
    set_rate_limiter(None)
    set_lock_provider(None)


@pytest.fixture(autouse=True)
def webhook_secret(monkeypatch):
    monkeypatch.setattr(settings, "stripe_webhook_secret", TEST_WEBHOOK_SECRET)
    return TEST_WEBHOOK_SECRET


@pytest_asyncio.fixture(scope="function")
async def create_account():
    """Factory fixture: create an account and return it with its API key."""
    service = AccountService()
    created = 0

    async def _create(role: Role = Role.MEMBER, email: str = None):
        nonlocal created
        created += 1
        return await service.create_account(
            AccountCreate(
                email=email or f"user{created}@example.com",
                name=f"Test User {created}",
                role=role,
            )
        )

    return _create


@pytest_asyncio.fixture(scope="function")
async def member(create_account):
    """A member account with its plain-text API key."""
    return await create_account(Role.MEMBER, "member@example.com")


@pytest_asyncio.fixture(scope="function")
async def admin(create_account):
    """An admin account with its plain-text API key."""
    return await create_account(Role.ADMIN, "admin@example.com")


@pytest.fixture
def member_actor(member) -> AuthenticatedAccount:
    return AuthenticatedAccount(
        account_id=member.account.id, email=member.account.email, role=Role.MEMBER
    )


@pytest.fixture
def admin_actor(admin) -> AuthenticatedAccount:
    return AuthenticatedAccount(
        account_id=admin.account.id, email=admin.account.email, role=Role.ADMIN
    )


@pytest_asyncio.fixture(scope="function")
async def client():
    """Create a test client."""
    try:
        async with AsyncClient(
            transport=ASGITransport(app=app), base_url="http://test"
        ) as ac:
            yield ac
    finally:
        app.dependency_overrides.clear()
