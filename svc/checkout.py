from __future__ import annotations

from typing import Any, Dict, Optional

import stripe

from database.crud import ProfileRepository
from utils.logger import get_logger

logger = get_logger()


class PlanMappingError(Exception):
    """Raised when a Stripe price has no internal plan."""


def _success_url(frontend_url: str) -> str:
    return f"{frontend_url}/dashboard?payment=success&session_id={{CHECKOUT_SESSION_ID}}"


def _cancel_url(frontend_url: str) -> str:
    return f"{frontend_url}/auth?payment=cancelled"


def build_session_params(
    *,
    user_id: str,
    price_id: str,
    plan_id: str,
    user_email: str,
    customer_id: Optional[str],
    frontend_url: str,
) -> Dict[str, Any]:
    params: Dict[str, Any] = {
        "payment_method_types": ["card"],
        "line_items": [{"price": price_id, "quantity": 1}],
        "mode": "subscription",
        "success_url": _success_url(frontend_url),
        "cancel_url": _cancel_url(frontend_url),
        "client_reference_id": user_id,
        "metadata": {"supabase_user_id": user_id, "plan_id": plan_id},
    }
    # an existing customer keeps its saved payment methods; otherwise Stripe creates one from the email
    if customer_id:
        params["customer"] = customer_id
    else:
        params["customer_email"] = user_email
    return params


def create_subscription_checkout(
    profiles: ProfileRepository,
    *,
    user_id: str,
    price_id: str,
    user_email: str,
    frontend_url: str,
) -> str:
    """Create a subscription Checkout Session for the user and return its id."""
    profile = profiles.get_profile(user_id)
    customer_id = profile.stripe_customer_id if profile else None

    plan_id = profiles.get_plan_id_for_price(price_id)
    if not plan_id:
        raise PlanMappingError(f"Could not find internal plan_id for Stripe price {price_id}")

    params = build_session_params(
        user_id=user_id,
        price_id=price_id,
        plan_id=plan_id,
        user_email=user_email,
        customer_id=customer_id,
        frontend_url=frontend_url,
    )
    session = stripe.checkout.Session.create(**params)
    logger.info("Created Stripe checkout session %s for user %s (plan %s)", session.id, user_id, plan_id)
    return session.id
