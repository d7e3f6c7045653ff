from datetime import datetime, timedelta
from typing import Optional

import pytest_asyncio

from packages.billing.services.ingestor_service import IngestorService
from packages.billing.webhooks.stripe_webhook import parse_stripe_event
from packages.billing.models.domain.ledger import IngestResult
from tests.factories.stripe_events import (
    BASE_TIME,
    PERIOD_START,
    stripe_event,
    subscription_object,
)


@pytest_asyncio.fixture
async def subscribe():
    """Factory fixture: put an account on a plan through the real ingest path."""
    ingestor = IngestorService()

    async def _subscribe(
        account_id: int,
        plan: str = "tier2",
        status: str = "active",
        created: datetime = BASE_TIME,
        period_end: Optional[datetime] = None,
    ) -> IngestResult:
        event = stripe_event(
            "customer.subscription.created",
            subscription_object(
                account_id=account_id,
                status=status,
                plan=plan,
                subscription_id=f"sub_{account_id}",
                customer_id=f"cus_{account_id}",
                period_end=period_end or PERIOD_START + timedelta(days=30),
            ),
            created=created,
        )
        return await ingestor.ingest_envelope(parse_stripe_event(event))

    return _subscribe
