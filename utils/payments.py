from __future__ import annotations

from enum import Enum
from typing import Any, Optional

FREE_PLAN_ID = "free"


class SubscriptionStatus(str, Enum):
    ACTIVE = "active"
    PAST_DUE = "past_due"
    CANCELED = "canceled"


def stripe_get(obj: Any, *path: str) -> Any:
    """Walk nested keys through dicts or Stripe objects, returning None on a gap."""
    current = obj
    for key in path:
        if current is None:
            return None
        if isinstance(current, dict):
            current = current.get(key)
        elif hasattr(current, key):
            current = getattr(current, key)
        else:
            return None
    return current


def coerce_stripe_id(value: Any) -> Optional[str]:
    """Ensure Stripe identifiers are plain strings, even when the object was expanded."""
    if not value:
        return None
    if isinstance(value, str):
        return value
    potential_id = value.get("id") if isinstance(value, dict) else getattr(value, "id", None)
    if isinstance(potential_id, str) and potential_id:
        return potential_id
    return None
