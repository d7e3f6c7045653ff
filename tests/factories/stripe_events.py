"""
Builders for Stripe webhook events and signed deliveries.
"""

import hashlib
import hmac
import json
import time
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Optional

# Events default to an hour ago; periods to a window around now
BASE_TIME = datetime.now(timezone.utc).replace(microsecond=0) - timedelta(hours=1)
PERIOD_START = BASE_TIME - timedelta(days=1)


def ts(moment: datetime) -> int:
    return int(moment.timestamp())


def stripe_event(
    event_type: str,
    obj: dict[str, Any],
    created: datetime = BASE_TIME,
    event_id: Optional[str] = None,
) -> dict[str, Any]:
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "created": ts(created),
        "livemode": False,
        "data": {"object": obj},
    }


def subscription_object(
    account_id: Optional[int],
    status: str = "active",
    plan: Optional[str] = "tier2",
    subscription_id: str = "sub_test123",
    customer_id: str = "cus_test123",
    period_start: datetime = PERIOD_START,
    period_end: Optional[datetime] = None,
    cancel_at_period_end: bool = False,
    canceled_at: Optional[datetime] = None,
    trial_end: Optional[datetime] = None,
) -> dict[str, Any]:
    metadata = {}
    if account_id is not None:
        metadata["account_id"] = str(account_id)
    if plan is not None:
        metadata["plan"] = plan
    return {
        "id": subscription_id,
        "object": "subscription",
        "customer": customer_id,
        "status": status,
        "current_period_start": ts(period_start),
        "current_period_end": ts(period_end or period_start + timedelta(days=30)),
        "cancel_at_period_end": cancel_at_period_end,
        "canceled_at": ts(canceled_at) if canceled_at else None,
        "trial_end": ts(trial_end) if trial_end else None,
        "items": {"data": []},
        "metadata": metadata,
    }


def invoice_object(
    subscription_id: str = "sub_test123",
    customer_id: str = "cus_test123",
    period_start: Optional[datetime] = None,
    period_end: Optional[datetime] = None,
) -> dict[str, Any]:
    lines = []
    if period_start and period_end:
        lines.append({"period": {"start": ts(period_start), "end": ts(period_end)}})
    return {
        "id": f"in_{uuid.uuid4().hex[:16]}",
        "object": "invoice",
        "customer": customer_id,
        "subscription": subscription_id,
        "status": "paid",
        "lines": {"data": lines},
        "metadata": {},
    }


def sign_payload(payload: bytes, secret: str, timestamp: Optional[int] = None) -> str:
    """stripe-signature header for payload, as Stripe computes it."""
    timestamp = timestamp if timestamp is not None else int(time.time())
    signed = f"{timestamp}.{payload.decode('utf-8')}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def signed_delivery(event: dict[str, Any], secret: str) -> tuple[bytes, str]:
    payload = json.dumps(event).encode("utf-8")
    return payload, sign_payload(payload, secret)
