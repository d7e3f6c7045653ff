"""
Unit tests for UsageGate.
"""

import pytest

from common.core.config import RateLimitRule, settings
from common.core.exceptions import QuotaExceeded, RateLimited, TrialExhausted
from packages.billing.models.domain.enums import UsageSource
from packages.billing.services.usage_gate import UsageGate
from packages.billing.services.usage_service import UsageService


@pytest.fixture
def gate():
    return UsageGate()


class TestRateLimiting:
    async def test_rate_limit_runs_before_metering(
        self, gate, subscribe, member, member_actor, monkeypatch
    ):
        await subscribe(member.account.id)
        monkeypatch.setattr(
            settings,
            "rate_limit_buckets",
            {"api": RateLimitRule(limit=1, window_seconds=60)},
        )

        await gate.authorize(member_actor, "tool_usage")
        with pytest.raises(RateLimited) as exc_info:
            await gate.authorize(member_actor, "tool_usage")

        assert exc_info.value.bucket == "api"
        events = await UsageService().get_recent_usage(member.account.id)
        assert len(events) == 1


class TestQuotaPath:
    async def test_paid_account_draws_from_quota(
        self, gate, subscribe, member, member_actor
    ):
        await subscribe(member.account.id, plan="tier2")

        grant = await gate.authorize(member_actor, "ai_request", amount=2)

        assert grant.source == UsageSource.QUOTA
        assert grant.quota.used == 2
        events = await UsageService().get_recent_usage(member.account.id)
        assert events[0].source == UsageSource.QUOTA
        assert events[0].amount == 2
        assert events[0].period_key == grant.quota.period_key
        assert events[0].event_metadata["bucket"] == "api"

    async def test_free_account_without_trial_is_over_quota(self, gate, member_actor):
        with pytest.raises(QuotaExceeded) as exc_info:
            await gate.authorize(member_actor, "ai_request")

        assert exc_info.value.limit == 0

    async def test_paid_account_ignores_trial_allowance(
        self, gate, subscribe, member, member_actor
    ):
        await subscribe(member.account.id, plan="tier2")

        grant = await gate.authorize(
            member_actor, "tool_usage", trial_feature="remove_background"
        )

        assert grant.source == UsageSource.QUOTA
        assert grant.trial is None


class TestTrialPath:
    async def test_free_account_uses_trial_until_exhausted(
        self, gate, member, member_actor
    ):
        grants = [
            await gate.authorize(
                member_actor, "tool_usage", trial_feature="remove_background"
            )
            for _ in range(2)
        ]

        with pytest.raises(TrialExhausted) as exc_info:
            await gate.authorize(
                member_actor, "tool_usage", trial_feature="remove_background"
            )

        assert [grant.source for grant in grants] == [UsageSource.TRIAL] * 2
        assert exc_info.value.used == 2
        assert exc_info.value.cap == 2
        events = await UsageService().get_recent_usage(
            member.account.id, source=UsageSource.TRIAL
        )
        assert len(events) == 2
        assert events[0].operation_class == "remove_background"


class TestBypass:
    async def test_admin_bypasses_quota_and_is_attributed(
        self, gate, admin, admin_actor
    ):
        grant = await gate.authorize(admin_actor, "ai_request", amount=5)

        assert grant.source == UsageSource.BYPASS
        assert grant.quota.bypassed is True
        events = await UsageService().get_recent_usage(
            admin.account.id, source=UsageSource.BYPASS
        )
        assert len(events) == 1
        assert events[0].event_metadata["actor_email"] == "admin@example.com"
