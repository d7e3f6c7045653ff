"""
Webhook endpoints for billing events.

Public endpoints (no auth required) for Stripe webhooks.
"""

from typing import Optional
from fastapi import APIRouter, Depends, Header, Request

from packages.billing.dependencies import rate_limited
from packages.billing.models.schemas.billing import WebhookAckResponse
from packages.billing.services.ingestor_service import IngestorService

router = APIRouter()


def get_ingestor_service() -> IngestorService:
    return IngestorService()


@router.post(
    "/webhooks/stripe",
    response_model=WebhookAckResponse,
    dependencies=[Depends(rate_limited("webhook", authenticated=False))],
)
async def stripe_webhook(
    request: Request,
    stripe_signature: Optional[str] = Header(default=None),
    ingestor: IngestorService = Depends(get_ingestor_service),
):
    """
    Receive webhook events from Stripe payment platform.

    No authentication required - webhook signature validated internally.
    200 once the event is ledgered, whether or not it could be applied yet;
    400 on a bad signature or payload so Stripe surfaces the failure.
    """
    payload = await request.body()
    result = await ingestor.ingest(payload, stripe_signature)
    return WebhookAckResponse(
        status="duplicate" if result.duplicate else "accepted",
        event_id=result.event_id,
        outcome=result.outcome,
    )
