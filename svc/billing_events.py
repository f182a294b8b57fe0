from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Union

from utils.payments import coerce_stripe_id, stripe_get

CHECKOUT_COMPLETED = "checkout.session.completed"
INVOICE_PAYMENT_SUCCEEDED = "invoice.payment_succeeded"
INVOICE_PAYMENT_FAILED = "invoice.payment_failed"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"


class MissingEventDataError(ValueError):
    """Raised when a recognised event lacks the fields needed to act on it."""

    def __init__(self, event_type: str, event_id: Optional[str], missing: List[str]):
        self.event_type = event_type
        self.event_id = event_id
        self.missing = missing
        super().__init__(f"{event_type} event {event_id or '<no id>'} is missing: {', '.join(missing)}")


# --- Event variants ----------------------------------------------------------

@dataclass(frozen=True)
class CheckoutCompleted:
    event_id: Optional[str]
    session_id: Optional[str]
    user_id: str
    plan_id: str
    customer_id: str
    subscription_id: str


@dataclass(frozen=True)
class InvoicePaymentSucceeded:
    event_id: Optional[str]
    subscription_id: str


@dataclass(frozen=True)
class InvoicePaymentFailed:
    event_id: Optional[str]
    subscription_id: str


@dataclass(frozen=True)
class SubscriptionUpdated:
    event_id: Optional[str]
    subscription_id: str
    status: str
    price_id: Optional[str]


@dataclass(frozen=True)
class SubscriptionDeleted:
    event_id: Optional[str]
    subscription_id: str


@dataclass(frozen=True)
class UnrecognizedEvent:
    event_id: Optional[str]
    event_type: Optional[str]


BillingEvent = Union[
    CheckoutCompleted,
    InvoicePaymentSucceeded,
    InvoicePaymentFailed,
    SubscriptionUpdated,
    SubscriptionDeleted,
    UnrecognizedEvent,
]


# --- helpers -----------------------------------------------------------------

def _require(event_type: str, event_id: Optional[str], fields: Dict[str, Optional[str]]) -> None:
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise MissingEventDataError(event_type, event_id, missing)


def _invoice_subscription_id(invoice: Any) -> Optional[str]:
    # API versions from 2025-03 onward nest the subscription under parent.subscription_details
    return coerce_stripe_id(stripe_get(invoice, "subscription")) or coerce_stripe_id(
        stripe_get(invoice, "parent", "subscription_details", "subscription")
    )


def _first_price_id(subscription: Any) -> Optional[str]:
    items = stripe_get(subscription, "items", "data") or []
    if not items:
        return None
    return coerce_stripe_id(stripe_get(items[0], "price"))


# --- parsing -----------------------------------------------------------------

def _parse_checkout(event_id: Optional[str], session: Any) -> CheckoutCompleted:
    fields = {
        "client_reference_id": stripe_get(session, "client_reference_id"),
        "metadata.plan_id": stripe_get(session, "metadata", "plan_id"),
        "customer": coerce_stripe_id(stripe_get(session, "customer")),
        "subscription": coerce_stripe_id(stripe_get(session, "subscription")),
    }
    _require(CHECKOUT_COMPLETED, event_id, fields)
    return CheckoutCompleted(
        event_id=event_id,
        session_id=stripe_get(session, "id"),
        user_id=fields["client_reference_id"],
        plan_id=fields["metadata.plan_id"],
        customer_id=fields["customer"],
        subscription_id=fields["subscription"],
    )


def _parse_invoice(event_type: str, event_id: Optional[str], invoice: Any) -> BillingEvent:
    subscription_id = _invoice_subscription_id(invoice)
    _require(event_type, event_id, {"subscription": subscription_id})
    if event_type == INVOICE_PAYMENT_SUCCEEDED:
        return InvoicePaymentSucceeded(event_id=event_id, subscription_id=subscription_id)
    return InvoicePaymentFailed(event_id=event_id, subscription_id=subscription_id)


def _parse_subscription_updated(event_id: Optional[str], subscription: Any) -> SubscriptionUpdated:
    fields = {
        "id": coerce_stripe_id(stripe_get(subscription, "id")),
        "status": stripe_get(subscription, "status"),
    }
    _require(SUBSCRIPTION_UPDATED, event_id, fields)
    return SubscriptionUpdated(
        event_id=event_id,
        subscription_id=fields["id"],
        status=fields["status"],
        price_id=_first_price_id(subscription),
    )


def _parse_subscription_deleted(event_id: Optional[str], subscription: Any) -> SubscriptionDeleted:
    subscription_id = coerce_stripe_id(stripe_get(subscription, "id"))
    _require(SUBSCRIPTION_DELETED, event_id, {"id": subscription_id})
    return SubscriptionDeleted(event_id=event_id, subscription_id=subscription_id)


def parse_billing_event(event: Dict[str, Any]) -> BillingEvent:
    """
    Turn a verified Stripe event into one of the typed variants above.

    Unknown event types become ``UnrecognizedEvent``. A recognised type whose
    payload lacks a required field raises ``MissingEventDataError`` naming
    every missing field, so no handler ever sees a partial event.
    """
    event_type = stripe_get(event, "type")
    event_id = stripe_get(event, "id")
    obj = stripe_get(event, "data", "object")

    if event_type == CHECKOUT_COMPLETED:
        return _parse_checkout(event_id, obj)
    if event_type in (INVOICE_PAYMENT_SUCCEEDED, INVOICE_PAYMENT_FAILED):
        return _parse_invoice(event_type, event_id, obj)
    if event_type == SUBSCRIPTION_UPDATED:
        return _parse_subscription_updated(event_id, obj)
    if event_type == SUBSCRIPTION_DELETED:
        return _parse_subscription_deleted(event_id, obj)
    return UnrecognizedEvent(event_id=event_id, event_type=event_type)
