"""
Stripe webhook verification and parsing.

Turns a signed Stripe delivery into a BillingEventEnvelope:
- signature check against settings.stripe_webhook_secret
- JSON parse into the typed payload
- account and external reference extraction for the reconciler
"""

import json
from typing import Any, Optional

import stripe
from pydantic import ValidationError

from common.core.config import settings
from common.core.exceptions import MalformedEvent, Unauthenticated
from common.core.otel_axiom_exporter import get_logger
from packages.billing.models.domain.enums import EventSource, EventType
from packages.billing.models.domain.events import BillingEventEnvelope
from packages.billing.models.domain.stripe_webhooks import (
    StripeCheckoutSessionData,
    StripeInvoiceData,
    StripeSubscriptionData,
    StripeWebhookPayload,
)
from packages.billing.periods import from_unix

logger = get_logger(__name__)

_SUBSCRIPTION_EVENTS = {
    EventType.SUBSCRIPTION_CREATED.value,
    EventType.SUBSCRIPTION_UPDATED.value,
    EventType.SUBSCRIPTION_DELETED.value,
}
_INVOICE_EVENTS = {
    EventType.INVOICE_PAYMENT_SUCCEEDED.value,
    EventType.INVOICE_PAID.value,
    EventType.INVOICE_PAYMENT_FAILED.value,
}


def verify_stripe_signature(payload_bytes: bytes, sig_header: Optional[str]) -> None:
    """
    Verify the stripe-signature header for a raw body.

    Raises:
        Unauthenticated: header missing, secret unset, or signature mismatch
    """
    if not sig_header:
        raise Unauthenticated("Missing stripe-signature header")
    if not settings.stripe_webhook_secret:
        logger.error("Stripe webhook secret is not configured; rejecting delivery")
        raise Unauthenticated("Webhook secret not configured")

    try:
        stripe.WebhookSignature.verify_header(
            payload_bytes.decode("utf-8"),
            sig_header,
            settings.stripe_webhook_secret,
            tolerance=settings.stripe_webhook_tolerance_seconds,
        )
    except (stripe.SignatureVerificationError, UnicodeDecodeError) as e:
        logger.warning(f"Stripe webhook signature verification failed: {e}")
        raise Unauthenticated("Invalid signature") from e


def _parse_account_ref(value: Optional[str], event_id: str) -> Optional[int]:
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError) as e:
        raise MalformedEvent(
            f"account reference '{value}' is not an account id", event_id=event_id
        ) from e


def parse_stripe_event(event: dict[str, Any]) -> BillingEventEnvelope:
    """
    Parse a decoded Stripe event into an envelope.

    Objects of event types the reconciler acts on are validated here, so a
    malformed known event is rejected before it is ledgered.

    Raises:
        MalformedEvent: payload does not match the expected shape
    """
    event_id = event.get("id") if isinstance(event, dict) else None
    try:
        payload = StripeWebhookPayload.model_validate(event)
        data = payload.data.object

        account_ref = None
        subscription_ref = None
        customer_ref = None

        if payload.type in _SUBSCRIPTION_EVENTS:
            subscription = StripeSubscriptionData.model_validate(data)
            account_ref = subscription.metadata.account_id
            subscription_ref = subscription.id
            customer_ref = subscription.customer
        elif payload.type in _INVOICE_EVENTS:
            invoice = StripeInvoiceData.model_validate(data)
            account_ref = invoice.metadata.account_id
            subscription_ref = invoice.subscription
            customer_ref = invoice.customer
        elif payload.type == EventType.CHECKOUT_SESSION_COMPLETED.value:
            session = StripeCheckoutSessionData.model_validate(data)
            account_ref = session.metadata.account_id or session.client_reference_id
            subscription_ref = session.subscription
            customer_ref = session.customer
    except ValidationError as e:
        logger.warning(
            "Invalid Stripe webhook payload",
            extra={"event_id": event_id, "validation_errors": e.errors()},
        )
        raise MalformedEvent(f"Invalid Stripe event payload: {e}", event_id=event_id) from e

    return BillingEventEnvelope(
        event_id=payload.id,
        event_type=payload.type,
        source=EventSource.STRIPE,
        occurred_at=from_unix(payload.created),
        account_ref=_parse_account_ref(account_ref, payload.id),
        external_subscription_ref=subscription_ref,
        external_customer_ref=customer_ref,
        raw_body=event,
    )


def envelope_from_stripe_delivery(
    payload_bytes: bytes, sig_header: Optional[str]
) -> BillingEventEnvelope:
    """Verify and parse one webhook delivery."""
    verify_stripe_signature(payload_bytes, sig_header)

    try:
        event = json.loads(payload_bytes)
    except json.JSONDecodeError as e:
        raise MalformedEvent("Webhook body is not valid JSON") from e
    if not isinstance(event, dict):
        raise MalformedEvent("Webhook body is not a JSON object")

    envelope = parse_stripe_event(event)
    logger.info(
        f"Received Stripe webhook: {envelope.event_type}",
        extra={
            "event_id": envelope.event_id,
            "event_type": envelope.event_type,
            "livemode": event.get("livemode"),
        },
    )
    return envelope
