import pytest
import pytest_asyncio
import asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy import text

from common.db.base import Base
from common.db.scoped import get_session, transaction
from common.db.context import get_current_session, in_transaction
from packages.accounts.models.database.account import AccountEntity


# Create a separate test engine for scoped tests
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


def account(email: str) -> AccountEntity:
    return AccountEntity(email=email, api_key_hash=f"hash-{email}")


async def emails_like(session_factory, pattern: str) -> list:
    async with session_factory() as verify_session:
        result = await verify_session.execute(
            text("SELECT email FROM accounts WHERE email LIKE :pattern ORDER BY email"),
            {"pattern": pattern},
        )
        return [row[0] for row in result.fetchall()]


@pytest_asyncio.fixture(scope="function")
async def scoped_test_engine():
    """Create a test engine for scoped session tests."""
    engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def scoped_session_factory(scoped_test_engine):
    """Create session factory for scoped tests."""
    return async_sessionmaker(
        scoped_test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


@pytest_asyncio.fixture(scope="function")
async def patch_session_factories(scoped_session_factory, monkeypatch):
    """Patch the session factories in scoped.py to use test database."""
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", scoped_session_factory)
    monkeypatch.setattr(
        "common.db.scoped.AsyncSessionLocalReadonly", scoped_session_factory
    )
    yield


class TestTransaction:
    """Test the transaction() context manager with real database."""

    async def test_transaction_commits_on_success(
        self, patch_session_factories, scoped_session_factory
    ):
        async with transaction() as session:
            session.add(account("commit@example.com"))

        assert await emails_like(scoped_session_factory, "commit@%") == [
            "commit@example.com"
        ]

    async def test_transaction_rollback_on_exception(
        self, patch_session_factories, scoped_session_factory
    ):
        with pytest.raises(ValueError):
            async with transaction() as session:
                session.add(account("rollback@example.com"))
                await session.flush()  # Make sure it would have been written
                raise ValueError("Simulated error")

        assert await emails_like(scoped_session_factory, "rollback@%") == []

    async def test_transaction_sets_session_in_context(self, patch_session_factories):
        async with transaction():
            captured_session = get_current_session(readonly=False)
            was_in_transaction = in_transaction(readonly=False)

        assert captured_session is not None
        assert was_in_transaction is True
        # After exiting, context should be cleared
        assert get_current_session(readonly=False) is None
        assert in_transaction(readonly=False) is False

    async def test_nested_transaction_reuses_session(self, patch_session_factories):
        async with transaction() as outer_session:
            async with transaction() as inner_session:
                async with get_session() as operation_session:
                    assert inner_session is outer_session
                    assert operation_session is outer_session

    async def test_nested_failure_rolls_back_outer_work(
        self, patch_session_factories, scoped_session_factory
    ):
        """The reconciler relies on this: aggregate and ledger writes fail together."""
        with pytest.raises(ValueError):
            async with transaction():
                async with get_session() as session:
                    session.add(account("outer@example.com"))
                    await session.flush()

                async with transaction() as inner_session:
                    inner_session.add(account("inner@example.com"))
                    await inner_session.flush()
                    raise ValueError("Error in nested transaction")

        assert await emails_like(scoped_session_factory, "%er@example.com") == []

    async def test_reads_inside_write_transaction_see_its_writes(
        self, patch_session_factories
    ):
        async with transaction():
            async with get_session() as session:
                session.add(account("visible@example.com"))
                await session.flush()

            async with get_session(readonly=True) as read_session:
                result = await read_session.execute(
                    text("SELECT COUNT(*) FROM accounts WHERE email = 'visible@example.com'")
                )
                assert result.scalar() == 1


class TestGetSession:
    """Test the get_session() context manager with real database."""

    async def test_standalone_get_session_commits(
        self, patch_session_factories, scoped_session_factory
    ):
        async with get_session() as session:
            session.add(account("standalone@example.com"))

        assert await emails_like(scoped_session_factory, "standalone@%") == [
            "standalone@example.com"
        ]

    async def test_standalone_get_session_rollback_on_exception(
        self, patch_session_factories, scoped_session_factory
    ):
        with pytest.raises(ValueError):
            async with get_session() as session:
                session.add(account("standalone-fail@example.com"))
                await session.flush()
                raise ValueError("Simulated error")

        assert await emails_like(scoped_session_factory, "standalone-fail@%") == []


class TestConcurrentTransactions:
    async def test_concurrent_transactions_are_isolated(self, patch_session_factories):
        """Concurrent tasks each see their own transaction session."""
        results = {}

        async def task_with_transaction(task_id: str, delay: float):
            async with transaction() as session:
                await asyncio.sleep(delay)
                results[task_id] = get_current_session(readonly=False) is session

        await asyncio.gather(
            task_with_transaction("tx1", 0.01),
            task_with_transaction("tx2", 0.005),
            task_with_transaction("tx3", 0.015),
        )

        assert results == {"tx1": True, "tx2": True, "tx3": True}
