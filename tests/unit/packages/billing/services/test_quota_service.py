"""
Unit tests for QuotaService.
"""

import asyncio
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from common.core.exceptions import ValidationError
from common.db.base import Base
from packages.accounts.models.domain.account import AccountCreate
from packages.accounts.services.account_service import AccountService
from packages.billing.models.domain.enums import Plan
from packages.billing.periods import next_period_start, period_key_for, utcnow
from packages.billing.repositories.usage_counter_repository import UsageCounterRepository
from packages.billing.services.quota_service import QuotaService
from tests.factories.database import enable_sqlite_savepoints


@pytest.fixture
def quota_service():
    return QuotaService()


class TestCheckAndConsume:
    async def test_free_account_is_denied_without_raising(self, quota_service, member):
        decision = await quota_service.check_and_consume(
            member.account.id, "editor_generation"
        )

        assert decision.allowed is False
        assert decision.plan == Plan.FREE
        assert decision.limit == 0
        assert decision.remaining == 0
        assert "not included" in decision.get_user_message()

    async def test_paid_account_consumes_from_plan_limit(
        self, quota_service, subscribe, member
    ):
        account_id = member.account.id
        await subscribe(account_id, plan="tier1")

        decision = await quota_service.check_and_consume(
            account_id, "tool_usage", amount=3
        )

        assert decision.allowed is True
        assert decision.plan == Plan.TIER1
        assert decision.limit == 100
        assert decision.used == 3
        assert decision.remaining == 97
        assert decision.period_key == period_key_for(utcnow())

    async def test_denied_at_limit_and_counter_stops(
        self, quota_service, subscribe, member, monkeypatch
    ):
        account_id = member.account.id
        await subscribe(account_id, plan="tier2")
        monkeypatch.setattr(QuotaService, "get_limit", staticmethod(lambda plan, op: 3))

        results = [
            await quota_service.check_and_consume(account_id, "ai_request")
            for _ in range(5)
        ]

        assert [r.allowed for r in results] == [True, True, True, False, False]
        assert results[-1].used == 3
        assert results[-1].remaining == 0
        assert results[-1].reset_at == next_period_start(utcnow())
        count = await UsageCounterRepository().get_count(
            account_id, "ai_request", period_key_for(utcnow())
        )
        assert count == 3

    async def test_amount_larger_than_remaining_is_denied_whole(
        self, quota_service, subscribe, member, monkeypatch
    ):
        account_id = member.account.id
        await subscribe(account_id)
        monkeypatch.setattr(QuotaService, "get_limit", staticmethod(lambda plan, op: 5))

        await quota_service.check_and_consume(account_id, "tool_usage", amount=4)
        decision = await quota_service.check_and_consume(
            account_id, "tool_usage", amount=2
        )

        assert decision.allowed is False
        assert decision.used == 4

    async def test_operation_classes_are_counted_separately(
        self, quota_service, subscribe, member
    ):
        account_id = member.account.id
        await subscribe(account_id, plan="tier2")

        await quota_service.check_and_consume(account_id, "tool_usage", amount=10)
        decision = await quota_service.check_and_consume(account_id, "ai_request")

        assert decision.used == 1

    async def test_unknown_operation_class_is_blocked(
        self, quota_service, subscribe, member
    ):
        await subscribe(member.account.id, plan="tier3")

        decision = await quota_service.check_and_consume(member.account.id, "teleport")

        assert decision.allowed is False
        assert decision.limit == 0

    async def test_non_positive_amount_rejected(self, quota_service, member):
        with pytest.raises(ValidationError):
            await quota_service.check_and_consume(member.account.id, "tool_usage", amount=0)


class TestPeriods:
    async def test_new_period_starts_from_zero(
        self, quota_service, subscribe, member, monkeypatch
    ):
        account_id = member.account.id
        await subscribe(account_id, period_end=utcnow() + timedelta(days=400))
        monkeypatch.setattr(QuotaService, "get_limit", staticmethod(lambda plan, op: 2))
        now = utcnow()
        next_month = now + timedelta(days=40)

        await quota_service.check_and_consume(account_id, "tool_usage", amount=2, now=now)
        exhausted = await quota_service.check_and_consume(account_id, "tool_usage", now=now)
        fresh = await quota_service.check_and_consume(
            account_id, "tool_usage", now=next_month
        )

        assert exhausted.allowed is False
        assert fresh.allowed is True
        assert fresh.used == 1
        assert fresh.period_key == period_key_for(next_month)

    async def test_expired_subscription_falls_back_to_free(
        self, quota_service, subscribe, member
    ):
        account_id = member.account.id
        await subscribe(account_id)

        decision = await quota_service.check_and_consume(
            account_id, "tool_usage", now=utcnow() + timedelta(days=90)
        )

        assert decision.plan == Plan.FREE
        assert decision.allowed is False


class TestBypass:
    async def test_bypass_allows_without_touching_counter(self, quota_service, member):
        account_id = member.account.id

        decision = await quota_service.check_and_consume(
            account_id, "ai_request", amount=50, bypass=True
        )

        assert decision.allowed is True
        assert decision.bypassed is True
        count = await UsageCounterRepository().get_count(
            account_id, "ai_request", period_key_for(utcnow())
        )
        assert count is None


class TestUsageSummary:
    async def test_summary_lists_every_operation_class(
        self, quota_service, subscribe, member
    ):
        account_id = member.account.id
        await subscribe(account_id, plan="tier2")
        await quota_service.check_and_consume(account_id, "editor_generation", amount=50)

        summary = await quota_service.get_usage_summary(account_id)

        by_class = {item.operation_class: item for item in summary.items}
        assert set(by_class) == {"editor_generation", "ai_request", "tool_usage"}
        assert by_class["editor_generation"].used == 50
        assert by_class["editor_generation"].percentage_used == 10.0
        assert by_class["ai_request"].used == 0


@pytest_asyncio.fixture
async def file_database(tmp_path, monkeypatch):
    """
    File-backed SQLite shared by concurrent sessions.

    BEGIN IMMEDIATE takes the write lock up front so concurrent transactions
    queue on the busy timeout instead of failing on lock upgrade.
    """
    engine = enable_sqlite_savepoints(
        create_async_engine(
            f"sqlite+aiosqlite:///{tmp_path / 'quota.db'}",
            connect_args={"timeout": 30},
        ),
        begin_statement="BEGIN IMMEDIATE",
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(
        bind=engine, class_=AsyncSession, expire_on_commit=False
    )
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocal", session_factory)
    monkeypatch.setattr("common.db.scoped.AsyncSessionLocalReadonly", session_factory)
    yield engine
    await engine.dispose()


class TestConcurrency:
    async def test_concurrent_consumers_never_exceed_limit(
        self, file_database, subscribe, monkeypatch
    ):
        created = await AccountService().create_account(
            AccountCreate(email="concurrent@example.com")
        )
        account_id = created.account.id
        await subscribe(account_id, plan="tier2")
        monkeypatch.setattr(QuotaService, "get_limit", staticmethod(lambda plan, op: 5))
        service = QuotaService()

        decisions = await asyncio.gather(
            *[service.check_and_consume(account_id, "ai_request") for _ in range(12)]
        )

        assert sum(1 for d in decisions if d.allowed) == 5
        count = await UsageCounterRepository().get_count(
            account_id, "ai_request", period_key_for(utcnow())
        )
        assert count == 5
