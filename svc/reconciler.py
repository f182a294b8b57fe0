from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Dict, Optional

import stripe

from database.crud import ProfileDataError, ProfileRepository
from svc.billing_events import (
    BillingEvent,
    CheckoutCompleted,
    InvoicePaymentFailed,
    InvoicePaymentSucceeded,
    MissingEventDataError,
    SubscriptionDeleted,
    SubscriptionUpdated,
    parse_billing_event,
)
from utils.logger import get_logger
from utils.payments import FREE_PLAN_ID, SubscriptionStatus

logger = get_logger()

APPLIED = "applied"
IGNORED = "ignored"
SKIPPED = "skipped"
UNMATCHED = "unmatched"


class WebhookVerificationError(Exception):
    """Raised when a webhook payload cannot be authenticated or decoded."""


@dataclass
class ReconcileOutcome:
    event_type: Optional[str]
    action: str
    rows_updated: int = 0
    detail: Optional[str] = None


def verify_webhook(payload: bytes | str, signature: Optional[str], secret: str) -> Dict[str, Any]:
    """Check the Stripe-Signature header against the raw body and return the decoded event."""
    if not signature:
        raise WebhookVerificationError("Missing Stripe signature header.")

    try:
        text = payload.decode("utf-8") if isinstance(payload, bytes) else payload
    except UnicodeDecodeError as exc:
        raise WebhookVerificationError("Payload is not valid UTF-8.") from exc

    try:
        stripe.WebhookSignature.verify_header(
            text, signature, secret, tolerance=stripe.Webhook.DEFAULT_TOLERANCE
        )
    except stripe.SignatureVerificationError as exc:
        raise WebhookVerificationError(str(exc)) from exc

    try:
        event = json.loads(text)
    except ValueError as exc:
        raise WebhookVerificationError(f"Invalid payload: {exc}") from exc
    if not isinstance(event, dict):
        raise WebhookVerificationError("Invalid payload: expected a JSON object.")
    return event


class BillingReconciler:
    """
    Applies verified Stripe billing events to profile rows.

    Every mutation is a field-level overwrite taken from the payload, so a
    redelivered event leaves the row exactly as the first delivery did.
    Events arriving out of order are applied in arrival order.
    """

    def __init__(self, profiles: ProfileRepository, webhook_secret: str, free_plan_id: str = FREE_PLAN_ID):
        self.profiles = profiles
        self.webhook_secret = webhook_secret
        self.free_plan_id = free_plan_id

    def handle(self, payload: bytes | str, signature: Optional[str]) -> ReconcileOutcome:
        event = verify_webhook(payload, signature, self.webhook_secret)
        logger.info("Stripe webhook received: %s (%s)", event.get("type"), event.get("id"))
        return self.apply(event)

    def apply(self, event: Dict[str, Any]) -> ReconcileOutcome:
        event_type = event.get("type")
        try:
            parsed = parse_billing_event(event)
        except MissingEventDataError as exc:
            logger.error("Missing critical data in Stripe event, acknowledging without update: %s", exc)
            return ReconcileOutcome(event_type=event_type, action=SKIPPED, detail=str(exc))

        try:
            return self._dispatch(event_type, parsed)
        except ProfileDataError as exc:
            logger.error(
                "Profile store rejected Stripe event %s (%s), acknowledging without update: %s",
                event.get("id"),
                event_type,
                exc,
            )
            return ReconcileOutcome(event_type=event_type, action=SKIPPED, detail=str(exc))

    def _dispatch(self, event_type: Optional[str], parsed: BillingEvent) -> ReconcileOutcome:
        if isinstance(parsed, CheckoutCompleted):
            return self._on_checkout_completed(event_type, parsed)
        if isinstance(parsed, InvoicePaymentSucceeded):
            return self._set_status(event_type, parsed.subscription_id, SubscriptionStatus.ACTIVE.value)
        if isinstance(parsed, InvoicePaymentFailed):
            return self._set_status(event_type, parsed.subscription_id, SubscriptionStatus.PAST_DUE.value)
        if isinstance(parsed, SubscriptionUpdated):
            return self._on_subscription_updated(event_type, parsed)
        if isinstance(parsed, SubscriptionDeleted):
            return self._on_subscription_deleted(event_type, parsed)

        logger.info("Unhandled Stripe event type %s", event_type)
        return ReconcileOutcome(event_type=event_type, action=IGNORED)

    def _on_checkout_completed(self, event_type: Optional[str], event: CheckoutCompleted) -> ReconcileOutcome:
        rows = self.profiles.update_profile(
            event.user_id,
            plan_id=event.plan_id,
            stripe_customer_id=event.customer_id,
            stripe_subscription_id=event.subscription_id,
            subscription_status=SubscriptionStatus.ACTIVE.value,
        )
        if rows:
            logger.info(
                "Profile updated for user %s to plan %s after checkout %s",
                event.user_id,
                event.plan_id,
                event.session_id,
            )
        return self._outcome(event_type, rows, f"profile {event.user_id}")

    def _set_status(self, event_type: Optional[str], subscription_id: str, status: str) -> ReconcileOutcome:
        rows = self.profiles.update_profile_by_subscription(subscription_id, subscription_status=status)
        if rows:
            logger.info("Profile status set to %s for subscription %s", status, subscription_id)
        return self._outcome(event_type, rows, f"subscription {subscription_id}")

    def _on_subscription_updated(self, event_type: Optional[str], event: SubscriptionUpdated) -> ReconcileOutcome:
        fields: Dict[str, Any] = {"subscription_status": event.status}
        if event.price_id:
            plan_id = self.profiles.get_plan_id_for_price(event.price_id)
            if plan_id:
                fields["plan_id"] = plan_id
            else:
                # keep whatever plan the profile already has
                logger.warning(
                    "Could not map Stripe price %s to an internal plan on subscription %s; plan left unchanged.",
                    event.price_id,
                    event.subscription_id,
                )

        rows = self.profiles.update_profile_by_subscription(event.subscription_id, **fields)
        if rows:
            logger.info(
                "Subscription %s updated. Status: %s, plan: %s",
                event.subscription_id,
                event.status,
                fields.get("plan_id", "unchanged"),
            )
        return self._outcome(event_type, rows, f"subscription {event.subscription_id}")

    def _on_subscription_deleted(self, event_type: Optional[str], event: SubscriptionDeleted) -> ReconcileOutcome:
        rows = self.profiles.update_profile_by_subscription(
            event.subscription_id,
            subscription_status=SubscriptionStatus.CANCELED.value,
            plan_id=self.free_plan_id,
        )
        if rows:
            logger.info("Subscription %s canceled; profile reverted to %s", event.subscription_id, self.free_plan_id)
        return self._outcome(event_type, rows, f"subscription {event.subscription_id}")

    @staticmethod
    def _outcome(event_type: Optional[str], rows: int, target: str) -> ReconcileOutcome:
        if rows == 0:
            logger.warning("No profile matched %s for %s event", target, event_type)
            return ReconcileOutcome(event_type=event_type, action=UNMATCHED, detail=target)
        return ReconcileOutcome(event_type=event_type, action=APPLIED, rows_updated=rows, detail=target)
