"""
Replay sweep over unapplied ledger rows.
"""

from datetime import datetime, timedelta
from typing import Optional

from common.core.config import settings
from common.core.exceptions import MalformedEvent
from common.core.otel_axiom_exporter import trace_span, get_logger
from packages.billing.models.domain.enums import EventSource, LedgerOutcome
from packages.billing.models.domain.events import BillingEventEnvelope
from packages.billing.models.domain.ledger import LedgerEntry, ReplayResult
from packages.billing.periods import utcnow
from packages.billing.repositories.ledger_repository import LedgerRepository
from packages.billing.services.admin_override_service import build_override_envelope
from packages.billing.services.ingestor_service import IngestorService
from packages.billing.webhooks.stripe_webhook import parse_stripe_event

logger = get_logger(__name__)


def envelope_from_ledger_entry(entry: LedgerEntry) -> BillingEventEnvelope:
    """Rebuild the envelope a ledger row was recorded from."""
    if entry.source == EventSource.MANUAL:
        account_id = entry.account_id or entry.payload.get("account_id")
        if account_id is None:
            raise MalformedEvent("Override row has no account", entry.event_id)
        return build_override_envelope(
            entry.event_id, int(account_id), entry.occurred_at, entry.payload
        )
    return parse_stripe_event(entry.payload)


class ReplayService:
    """Re-dispatches ledger rows the ingestor could not apply."""

    def __init__(self, ingestor: Optional[IngestorService] = None):
        self.ingestor = ingestor or IngestorService()
        self.ledger_repo = LedgerRepository()

    @trace_span
    async def replay_pending(
        self, batch_size: Optional[int] = None, now: Optional[datetime] = None
    ) -> ReplayResult:
        """
        Sweep one batch of unapplied rows, oldest event first.

        Only rows received more than ledger_replay_min_age_seconds ago are
        picked up so in-flight deliveries are left to their own request.
        """
        now = now or utcnow()
        max_attempts = settings.ledger_replay_max_attempts
        received_before = now - timedelta(seconds=settings.ledger_replay_min_age_seconds)

        entries = await self.ledger_repo.get_pending(
            limit=batch_size or settings.ledger_replay_batch_size,
            max_attempts=max_attempts,
            received_before=received_before,
        )
        result = ReplayResult(scanned=len(entries))

        for entry in entries:
            try:
                envelope = envelope_from_ledger_entry(entry)
            except MalformedEvent as e:
                logger.error(
                    f"Ledger row {entry.event_id} cannot be replayed: {e}",
                    extra={"event_id": entry.event_id},
                )
                await self.ingestor.record_failure(entry.event_id, e)
                outcome = None
            else:
                outcome = await self.ingestor.dispatch(envelope)

            if outcome == LedgerOutcome.STALE:
                result.stale += 1
            elif outcome == LedgerOutcome.IGNORED:
                result.ignored += 1
            elif outcome is not None:
                result.applied += 1
            else:
                result.failed += 1
                if entry.attempts + 1 >= max_attempts:
                    result.exhausted += 1
                    logger.error(
                        f"Ledger row {entry.event_id} exhausted {max_attempts} replay attempts",
                        extra={
                            "event_id": entry.event_id,
                            "event_type": entry.event_type,
                            "last_error": entry.error,
                        },
                    )

        if entries:
            logger.info(
                f"Ledger replay: {result.applied} applied, {result.stale} stale, "
                f"{result.ignored} ignored, {result.failed} failed of {result.scanned}",
                extra=result.model_dump(),
            )
        return result
