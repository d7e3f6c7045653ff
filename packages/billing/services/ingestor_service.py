"""
Event ingestor.

Ledger first, dispatch second. Once the ledger row is durable the event is
acknowledged whatever the reconciler does with it; unapplied rows are the
replay sweep's job, never the provider's.
"""

from typing import Optional

from common.core.exceptions import StaleEvent, StoreUnavailable
from common.core.otel_axiom_exporter import trace_span, get_logger
from common.db.retry import run_with_store_retry
from packages.billing.models.domain.enums import LedgerOutcome
from packages.billing.models.domain.events import BillingEventEnvelope
from packages.billing.models.domain.ledger import IngestResult
from packages.billing.repositories.ledger_repository import LedgerRepository
from packages.billing.services.reconciler_service import ReconcilerService
from packages.billing.webhooks.stripe_webhook import envelope_from_stripe_delivery

logger = get_logger(__name__)


class IngestorService:
    """Verifies, ledgers and dispatches inbound provider events."""

    def __init__(self, reconciler: Optional[ReconcilerService] = None):
        self.ledger_repo = LedgerRepository()
        self.reconciler = reconciler or ReconcilerService()

    @trace_span
    async def ingest(
        self, raw_payload: bytes, signature_header: Optional[str]
    ) -> IngestResult:
        """
        Ingest one Stripe delivery.

        Raises:
            Unauthenticated: signature missing or invalid (no state change)
            MalformedEvent: payload is not a well-formed event (no state change)
            StoreUnavailable: the ledger row could not be written
        """
        envelope = envelope_from_stripe_delivery(raw_payload, signature_header)
        return await self.ingest_envelope(envelope)

    @trace_span
    async def ingest_envelope(self, envelope: BillingEventEnvelope) -> IngestResult:
        entry, created = await run_with_store_retry(
            lambda: self.ledger_repo.record(envelope), "ledger.record"
        )

        if not created:
            logger.info(
                f"Duplicate delivery of event {envelope.event_id} short-circuited",
                extra={
                    "event_id": envelope.event_id,
                    "delivery_count": entry.delivery_count,
                    "applied": entry.applied,
                },
            )
            return IngestResult(
                accepted=True,
                event_id=envelope.event_id,
                duplicate=True,
                outcome=entry.outcome,
                reason="duplicate",
            )

        outcome = await self.dispatch(envelope)
        return IngestResult(
            accepted=True,
            event_id=envelope.event_id,
            outcome=outcome,
            reason=outcome.value if outcome else "queued_for_replay",
        )

    @trace_span
    async def dispatch(self, envelope: BillingEventEnvelope) -> Optional[LedgerOutcome]:
        """
        Hand a ledgered event to the reconciler.

        Returns the ledger outcome, or None when reconciliation failed and
        the row was left for the replay sweep.
        """
        try:
            result = await self.reconciler.apply(envelope)
            return result.outcome
        except StaleEvent:
            return LedgerOutcome.STALE
        except Exception as e:
            logger.error(
                f"Reconciliation of event {envelope.event_id} failed: {e!r}",
                extra={"event_id": envelope.event_id, "event_type": envelope.event_type},
                exc_info=True,
            )
            await self.record_failure(envelope.event_id, e)
            return None

    async def record_failure(self, event_id: str, error: Exception) -> None:
        try:
            await run_with_store_retry(
                lambda: self.ledger_repo.mark_failed(event_id, repr(error)),
                "ledger.mark_failed",
            )
        except StoreUnavailable as e:
            # Row stays unapplied with its previous attempt count; the sweep still finds it
            logger.error(f"Could not record failure for event {event_id}: {e}")
