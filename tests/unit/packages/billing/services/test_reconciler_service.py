"""
Unit tests for ReconcilerService against the in-memory test database.
"""

import asyncio
import contextvars
from datetime import timedelta

import pytest

from common.core.exceptions import NotFoundError, StaleEvent
from packages.billing.cache_keys import subscription_by_account_key
from packages.billing.models.domain.enums import (
    LedgerOutcome,
    Plan,
    SubscriptionStatus,
)
from packages.billing.periods import from_unix
from packages.billing.repositories.ledger_repository import LedgerRepository
from packages.billing.repositories.subscription_repository import SubscriptionRepository
from packages.billing.services.ingestor_service import IngestorService
from packages.billing.services.reconciler_service import ReconcilerService
from packages.billing.subscription_cache import SubscriptionReadCache
from packages.billing.webhooks.stripe_webhook import parse_stripe_event
from tests.factories.stripe_events import (
    BASE_TIME,
    PERIOD_START,
    invoice_object,
    stripe_event,
    subscription_object,
)


@pytest.fixture
def ingestor():
    return IngestorService()


@pytest.fixture
def reconciler():
    return ReconcilerService()


@pytest.fixture
def subscription_repo():
    return SubscriptionRepository()


@pytest.fixture
def ledger_repo():
    return LedgerRepository()


def envelope(event_type, obj, created=BASE_TIME, event_id=None):
    return parse_stripe_event(
        stripe_event(event_type, obj, created=created, event_id=event_id)
    )


class TestScenarios:
    """End-to-end reconciliation through the ingestor."""

    async def test_created_activates_inactive_account(
        self, ingestor, subscription_repo, member
    ):
        account_id = member.account.id
        period_end = PERIOD_START + timedelta(days=30)
        obj = subscription_object(account_id, plan="tier1", period_end=period_end)

        result = await ingestor.ingest_envelope(
            envelope("customer.subscription.created", obj)
        )

        assert result.outcome == LedgerOutcome.APPLIED
        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.plan == Plan.TIER1
        assert subscription.current_period_end == from_unix(obj["current_period_end"])
        assert subscription.current_period_start == PERIOD_START

    async def test_payment_failed_then_succeeded(
        self, ingestor, subscription_repo, member
    ):
        account_id = member.account.id
        await ingestor.ingest_envelope(
            envelope(
                "customer.subscription.created",
                subscription_object(account_id),
                created=BASE_TIME,
            )
        )

        await ingestor.ingest_envelope(
            envelope(
                "invoice.payment_failed",
                invoice_object(),
                created=BASE_TIME + timedelta(minutes=1),
            )
        )
        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.PAST_DUE

        new_end = PERIOD_START + timedelta(days=60)
        await ingestor.ingest_envelope(
            envelope(
                "invoice.payment_succeeded",
                invoice_object(
                    period_start=PERIOD_START + timedelta(days=30), period_end=new_end
                ),
                created=BASE_TIME + timedelta(minutes=2),
            )
        )
        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.current_period_end == new_end

    async def test_duplicate_deleted_delivery_applies_once(
        self, ingestor, subscription_repo, ledger_repo, member
    ):
        account_id = member.account.id
        await ingestor.ingest_envelope(
            envelope("customer.subscription.created", subscription_object(account_id))
        )
        deleted = envelope(
            "customer.subscription.deleted",
            subscription_object(account_id, status="canceled"),
            created=BASE_TIME + timedelta(minutes=5),
            event_id="evt_deleted_once",
        )

        first = await ingestor.ingest_envelope(deleted)
        second = await ingestor.ingest_envelope(deleted)

        assert first.duplicate is False
        assert first.outcome == LedgerOutcome.APPLIED
        assert second.duplicate is True
        assert second.reason == "duplicate"

        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.CANCELED
        assert subscription.last_event_id == "evt_deleted_once"

        entry = await ledger_repo.get_by_event_id("evt_deleted_once")
        assert entry.applied is True
        assert entry.attempts == 1
        assert entry.delivery_count == 2


class TestOrdering:
    """Strict timestamp ordering against last_event_sequence."""

    async def test_older_event_arriving_late_is_stale(
        self, ingestor, reconciler, subscription_repo, ledger_repo, member
    ):
        account_id = member.account.id
        older = envelope(
            "customer.subscription.updated",
            subscription_object(account_id, plan="tier3"),
            created=BASE_TIME,
        )
        newer = envelope(
            "customer.subscription.deleted",
            subscription_object(account_id, status="canceled"),
            created=BASE_TIME + timedelta(seconds=10),
        )

        await ingestor.ingest_envelope(newer)
        await ledger_repo.record(older)

        with pytest.raises(StaleEvent) as exc_info:
            await reconciler.apply(older)

        assert exc_info.value.account_id == account_id
        assert exc_info.value.last_sequence == newer.sequence

        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.CANCELED

        entry = await ledger_repo.get_by_event_id(older.event_id)
        assert entry.applied is True
        assert entry.outcome == LedgerOutcome.STALE

    async def test_either_arrival_order_ends_in_same_state(
        self, ingestor, subscription_repo, create_account
    ):
        first_account = (await create_account()).account.id
        second_account = (await create_account()).account.id

        def events_for(account_id):
            return [
                envelope(
                    "customer.subscription.created",
                    subscription_object(
                        account_id, plan="tier1", subscription_id=f"sub_{account_id}"
                    ),
                    created=BASE_TIME,
                ),
                envelope(
                    "customer.subscription.updated",
                    subscription_object(
                        account_id, plan="tier3", subscription_id=f"sub_{account_id}"
                    ),
                    created=BASE_TIME + timedelta(seconds=30),
                ),
            ]

        for event in events_for(first_account):
            await ingestor.ingest_envelope(event)
        for event in reversed(events_for(second_account)):
            await ingestor.ingest_envelope(event)

        first = await subscription_repo.get_by_account_id(first_account)
        second = await subscription_repo.get_by_account_id(second_account)
        assert first.plan == second.plan == Plan.TIER3
        assert first.status == second.status == SubscriptionStatus.ACTIVE
        assert first.last_event_sequence == second.last_event_sequence

    async def test_equal_timestamp_is_stale(self, ingestor, subscription_repo, member):
        account_id = member.account.id
        await ingestor.ingest_envelope(
            envelope("customer.subscription.created", subscription_object(account_id))
        )

        result = await ingestor.ingest_envelope(
            envelope(
                "customer.subscription.deleted",
                subscription_object(account_id, status="canceled"),
                created=BASE_TIME,
            )
        )

        assert result.outcome == LedgerOutcome.STALE
        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.ACTIVE


class TestAccountResolution:
    async def test_invoice_resolves_account_by_subscription_ref(
        self, ingestor, subscription_repo, member
    ):
        account_id = member.account.id
        await ingestor.ingest_envelope(
            envelope("customer.subscription.created", subscription_object(account_id))
        )

        await ingestor.ingest_envelope(
            envelope(
                "invoice.payment_failed",
                invoice_object(subscription_id="sub_test123", customer_id="cus_other"),
                created=BASE_TIME + timedelta(minutes=1),
            )
        )

        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.PAST_DUE

    async def test_unresolvable_event_is_left_unapplied(
        self, reconciler, ledger_repo, subscription_repo
    ):
        orphan = envelope(
            "invoice.payment_failed",
            invoice_object(subscription_id="sub_unknown", customer_id="cus_unknown"),
        )
        await ledger_repo.record(orphan)

        with pytest.raises(NotFoundError):
            await reconciler.apply(orphan)

        entry = await ledger_repo.get_by_event_id(orphan.event_id)
        assert entry.applied is False

    async def test_unknown_account_id_is_not_found(self, reconciler, ledger_repo):
        event = envelope("customer.subscription.created", subscription_object(999999))
        await ledger_repo.record(event)

        with pytest.raises(NotFoundError):
            await reconciler.apply(event)


class TestIgnoredEvents:
    async def test_unhandled_type_is_marked_ignored(self, reconciler, ledger_repo):
        event = envelope("customer.updated", {"id": "cus_test123"})
        await ledger_repo.record(event)

        result = await reconciler.apply(event)

        assert result.outcome == LedgerOutcome.IGNORED
        entry = await ledger_repo.get_by_event_id(event.event_id)
        assert entry.applied is True
        assert entry.outcome == LedgerOutcome.IGNORED


class TestReadCacheInvalidation:
    async def test_write_invalidates_cached_subscription(
        self, ingestor, memory_providers, member
    ):
        account_id = member.account.id
        read_cache = SubscriptionReadCache()
        await ingestor.ingest_envelope(
            envelope("customer.subscription.created", subscription_object(account_id))
        )

        cached = await read_cache.get(account_id)
        assert cached.status == SubscriptionStatus.ACTIVE
        key = subscription_by_account_key(account_id)
        assert await memory_providers["cache"].exists(key)

        await ingestor.ingest_envelope(
            envelope(
                "customer.subscription.deleted",
                subscription_object(account_id, status="canceled"),
                created=BASE_TIME + timedelta(minutes=1),
            )
        )

        assert not await memory_providers["cache"].exists(key)
        refreshed = await read_cache.get(account_id)
        assert refreshed.status == SubscriptionStatus.CANCELED

    async def test_stale_event_leaves_cache_untouched(
        self, ingestor, memory_providers, member
    ):
        account_id = member.account.id
        read_cache = SubscriptionReadCache()
        await ingestor.ingest_envelope(
            envelope(
                "customer.subscription.created",
                subscription_object(account_id),
                created=BASE_TIME + timedelta(minutes=1),
            )
        )
        await read_cache.get(account_id)

        await ingestor.ingest_envelope(
            envelope(
                "customer.subscription.deleted",
                subscription_object(account_id, status="canceled"),
                created=BASE_TIME,
            )
        )

        key = subscription_by_account_key(account_id)
        assert await memory_providers["cache"].exists(key)


class TestConcurrentApply:
    """Events for one account landing while another is mid-apply."""

    async def test_older_event_committed_between_read_and_write_is_kept(
        self, subscription_repo, ledger_repo, subscribe, member
    ):
        account_id = member.account.id
        await subscribe(account_id, plan="tier1", created=BASE_TIME)
        paid_at = BASE_TIME + timedelta(minutes=5)
        deleted = envelope(
            "customer.subscription.deleted",
            subscription_object(
                account_id,
                status="canceled",
                plan="tier1",
                subscription_id=f"sub_{account_id}",
                customer_id=f"cus_{account_id}",
            ),
            created=paid_at - timedelta(seconds=10),
        )
        paid = envelope(
            "invoice.payment_succeeded",
            invoice_object(
                subscription_id=f"sub_{account_id}", customer_id=f"cus_{account_id}"
            ),
            created=paid_at,
        )

        reconciler = ReconcilerService()
        read_aggregate = reconciler.subscription_repo.lock_for_account
        interleaved = []

        async def read_then_interleave(locked_account_id):
            snapshot = await read_aggregate(locked_account_id)
            if not interleaved:
                # The deletion is ingested by an independent request and commits first
                task = asyncio.get_running_loop().create_task(
                    IngestorService().ingest_envelope(deleted),
                    context=contextvars.Context(),
                )
                interleaved.append(await task)
            return snapshot

        reconciler.subscription_repo.lock_for_account = read_then_interleave
        result = await IngestorService(reconciler=reconciler).ingest_envelope(paid)

        assert interleaved[0].outcome == LedgerOutcome.APPLIED
        assert result.outcome == LedgerOutcome.APPLIED

        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.status == SubscriptionStatus.CANCELED
        assert subscription.plan == Plan.FREE
        assert subscription.last_event_id == paid.event_id

        for event in (deleted, paid):
            entry = await ledger_repo.get_by_event_id(event.event_id)
            assert entry.applied is True
            assert entry.outcome == LedgerOutcome.APPLIED

    async def test_write_against_moved_marker_is_refused(
        self, subscription_repo, member
    ):
        account_id = member.account.id
        current = await subscription_repo.lock_for_account(account_id)
        state = current.to_state()

        first = await subscription_repo.apply_transition(
            account_id,
            state,
            sequence=100,
            event_id="evt_first",
            expected_sequence=current.last_event_sequence,
        )
        # Still holding the pre-write marker
        second = await subscription_repo.apply_transition(
            account_id,
            state,
            sequence=200,
            event_id="evt_second",
            expected_sequence=current.last_event_sequence,
        )

        assert first is not None
        assert second is None
        subscription = await subscription_repo.get_by_account_id(account_id)
        assert subscription.last_event_id == "evt_first"


class TestRedispatch:
    async def test_applied_row_keeps_its_outcome(
        self, ingestor, reconciler, ledger_repo, member
    ):
        event = envelope(
            "customer.subscription.created",
            subscription_object(member.account.id, plan="tier1"),
        )
        await ingestor.ingest_envelope(event)

        with pytest.raises(StaleEvent):
            await reconciler.apply(event)

        entry = await ledger_repo.get_by_event_id(event.event_id)
        assert entry.applied is True
        assert entry.outcome == LedgerOutcome.APPLIED
        assert entry.attempts == 1

    async def test_mark_applied_skips_closed_rows(self, ledger_repo):
        event = envelope("customer.updated", {"id": "cus_test123"})
        await ledger_repo.record(event)

        assert await ledger_repo.mark_applied(event.event_id, LedgerOutcome.IGNORED)
        assert not await ledger_repo.mark_applied(event.event_id, LedgerOutcome.STALE)

        entry = await ledger_repo.get_by_event_id(event.event_id)
        assert entry.outcome == LedgerOutcome.IGNORED
        assert entry.attempts == 1
