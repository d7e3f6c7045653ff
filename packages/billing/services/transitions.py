"""
Subscription state machine.

Pure functions from (current state, event) to next state. No I/O: the
reconciler loads the aggregate, calls next_state() and persists the result
under the ordering guard.
"""

from typing import Callable, Dict

from pydantic import BaseModel

from common.core.config import settings
from common.core.otel_axiom_exporter import get_logger
from packages.billing.models.domain.enums import (
    EventType,
    LedgerOutcome,
    Plan,
    SubscriptionStatus,
)
from packages.billing.models.domain.events import BillingEventEnvelope, OverridePayload
from packages.billing.models.domain.stripe_webhooks import (
    StripeCheckoutSessionData,
    StripeInvoiceData,
    StripeSubscriptionData,
    StripeSubscriptionStatus,
)
from packages.billing.models.domain.subscription import SubscriptionState
from packages.billing.periods import from_unix

logger = get_logger(__name__)


class Transition(BaseModel):
    """Next state plus whether the event affects the aggregate at all."""

    outcome: LedgerOutcome
    state: SubscriptionState


_STRIPE_STATUS_MAP = {
    StripeSubscriptionStatus.TRIALING: SubscriptionStatus.TRIALING,
    StripeSubscriptionStatus.ACTIVE: SubscriptionStatus.ACTIVE,
    StripeSubscriptionStatus.PAST_DUE: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.UNPAID: SubscriptionStatus.PAST_DUE,
    StripeSubscriptionStatus.CANCELED: SubscriptionStatus.CANCELED,
    StripeSubscriptionStatus.INCOMPLETE_EXPIRED: SubscriptionStatus.CANCELED,
    StripeSubscriptionStatus.INCOMPLETE: SubscriptionStatus.INACTIVE,
    StripeSubscriptionStatus.PAUSED: SubscriptionStatus.INACTIVE,
}

_INCOMPLETE = (
    StripeSubscriptionStatus.INCOMPLETE,
    StripeSubscriptionStatus.INCOMPLETE_EXPIRED,
)


def map_stripe_status(stripe_status: StripeSubscriptionStatus) -> SubscriptionStatus:
    """Map Stripe subscription status to our subscription status."""
    return _STRIPE_STATUS_MAP[stripe_status]


def resolve_plan(subscription: StripeSubscriptionData, fallback: Plan = Plan.TIER1) -> Plan:
    """
    Plan for a provider subscription.

    Price ID mapping wins, then metadata.plan, then fallback.
    """
    for price_id in subscription.price_ids():
        plan = settings.stripe_price_plans.get(price_id)
        if plan:
            return Plan(plan)

    if subscription.metadata.plan:
        try:
            return Plan(subscription.metadata.plan)
        except ValueError:
            logger.warning(
                f"Unknown plan '{subscription.metadata.plan}' in subscription {subscription.id} metadata"
            )

    return fallback


def _link_refs(state: SubscriptionState, envelope: BillingEventEnvelope) -> None:
    if envelope.external_subscription_ref:
        state.external_subscription_ref = envelope.external_subscription_ref
    if envelope.external_customer_ref:
        state.external_customer_ref = envelope.external_customer_ref


def _apply_period(state: SubscriptionState, subscription: StripeSubscriptionData) -> None:
    start, end = subscription.period()
    if end is not None:
        state.current_period_start = from_unix(start)
        state.current_period_end = from_unix(end)


def _on_subscription_created(
    state: SubscriptionState, envelope: BillingEventEnvelope
) -> Transition:
    subscription = StripeSubscriptionData.model_validate(envelope.data_object)
    _link_refs(state, envelope)

    if subscription.status in _INCOMPLETE:
        # First payment not confirmed yet; the follow-up update carries the status
        return Transition(outcome=LedgerOutcome.APPLIED, state=state)

    trial_end = from_unix(subscription.trial_end)
    in_trial = subscription.status == StripeSubscriptionStatus.TRIALING or (
        trial_end is not None and trial_end > envelope.occurred_at
    )
    state.status = SubscriptionStatus.TRIALING if in_trial else SubscriptionStatus.ACTIVE
    state.plan = resolve_plan(subscription)
    state.cancel_at_period_end = subscription.cancel_at_period_end
    state.canceled_at = None
    _apply_period(state, subscription)
    return Transition(outcome=LedgerOutcome.APPLIED, state=state)


def _on_subscription_updated(
    state: SubscriptionState, envelope: BillingEventEnvelope
) -> Transition:
    subscription = StripeSubscriptionData.model_validate(envelope.data_object)
    _link_refs(state, envelope)

    # Applied verbatim: cancel_at_period_end is recorded, not acted on
    state.status = map_stripe_status(subscription.status)
    # Without price or metadata hints the stored paid plan is kept
    fallback = state.plan if state.plan != Plan.FREE else Plan.TIER1
    state.plan = resolve_plan(subscription, fallback=fallback)
    state.cancel_at_period_end = subscription.cancel_at_period_end
    state.canceled_at = from_unix(subscription.canceled_at)
    _apply_period(state, subscription)
    return Transition(outcome=LedgerOutcome.APPLIED, state=state)


def _on_subscription_deleted(
    state: SubscriptionState, envelope: BillingEventEnvelope
) -> Transition:
    subscription = StripeSubscriptionData.model_validate(envelope.data_object)
    _link_refs(state, envelope)

    state.status = SubscriptionStatus.CANCELED
    state.plan = Plan.FREE
    state.cancel_at_period_end = False
    state.canceled_at = (
        from_unix(subscription.canceled_at)
        or from_unix(subscription.ended_at)
        or envelope.occurred_at
    )
    return Transition(outcome=LedgerOutcome.APPLIED, state=state)


def _on_payment_succeeded(
    state: SubscriptionState, envelope: BillingEventEnvelope
) -> Transition:
    invoice = StripeInvoiceData.model_validate(envelope.data_object)
    _link_refs(state, envelope)

    if state.status == SubscriptionStatus.CANCELED:
        return Transition(outcome=LedgerOutcome.APPLIED, state=state)

    period = invoice.service_period()
    if period is not None:
        state.current_period_start = from_unix(period.start)
        state.current_period_end = from_unix(period.end)
    if state.status == SubscriptionStatus.PAST_DUE:
        state.status = SubscriptionStatus.ACTIVE
    return Transition(outcome=LedgerOutcome.APPLIED, state=state)


def _on_payment_failed(
    state: SubscriptionState, envelope: BillingEventEnvelope
) -> Transition:
    StripeInvoiceData.model_validate(envelope.data_object)
    _link_refs(state, envelope)

    # grace_until is left as is; entitlement honours it while past_due
    if state.status in (
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.TRIALING,
        SubscriptionStatus.PAST_DUE,
    ):
        state.status = SubscriptionStatus.PAST_DUE
    return Transition(outcome=LedgerOutcome.APPLIED, state=state)


def _on_checkout_completed(
    state: SubscriptionState, envelope: BillingEventEnvelope
) -> Transition:
    session = StripeCheckoutSessionData.model_validate(envelope.data_object)
    if session.customer:
        state.external_customer_ref = session.customer
    if session.subscription:
        state.external_subscription_ref = session.subscription
    return Transition(outcome=LedgerOutcome.APPLIED, state=state)


def _on_manual_override(
    state: SubscriptionState, envelope: BillingEventEnvelope
) -> Transition:
    target = OverridePayload.model_validate(envelope.raw_body).target

    if target.plan is not None:
        state.plan = target.plan
    if target.status is not None:
        state.status = target.status
        if target.status == SubscriptionStatus.CANCELED:
            state.canceled_at = state.canceled_at or envelope.occurred_at
        else:
            state.canceled_at = None
    if target.current_period_end is not None:
        state.current_period_end = target.current_period_end
    if target.grace_until is not None:
        state.grace_until = target.grace_until
    return Transition(outcome=LedgerOutcome.APPLIED, state=state)


_HANDLERS: Dict[
    str, Callable[[SubscriptionState, BillingEventEnvelope], Transition]
] = {
    EventType.SUBSCRIPTION_CREATED.value: _on_subscription_created,
    EventType.SUBSCRIPTION_UPDATED.value: _on_subscription_updated,
    EventType.SUBSCRIPTION_DELETED.value: _on_subscription_deleted,
    EventType.INVOICE_PAYMENT_SUCCEEDED.value: _on_payment_succeeded,
    EventType.INVOICE_PAID.value: _on_payment_succeeded,
    EventType.INVOICE_PAYMENT_FAILED.value: _on_payment_failed,
    EventType.CHECKOUT_SESSION_COMPLETED.value: _on_checkout_completed,
    EventType.MANUAL_OVERRIDE.value: _on_manual_override,
}


def handles(event_type: str) -> bool:
    return event_type in _HANDLERS


def next_state(current: SubscriptionState, envelope: BillingEventEnvelope) -> Transition:
    """
    Compute the aggregate state after envelope.

    Event types without a handler leave the state untouched with outcome
    IGNORED. current is never mutated.
    """
    handler = _HANDLERS.get(envelope.event_type)
    if handler is None:
        return Transition(outcome=LedgerOutcome.IGNORED, state=current)
    return handler(current.model_copy(), envelope)
