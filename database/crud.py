from __future__ import annotations

from typing import Any, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from .models import Plan, Profile


class ProfileStoreError(Exception):
    """Raised when the profile store cannot complete a read or write."""


class ProfileDataError(Exception):
    """Raised when the store rejects a write because of the values it was given."""


class ProfileRepository:
    """Field-level reads and writes against the profiles and plans tables."""

    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: str) -> Optional[Profile]:
        return self._scalar(select(Profile).where(Profile.id == user_id))

    def get_profile_by_subscription(self, subscription_id: str) -> Optional[Profile]:
        return self._scalar(select(Profile).where(Profile.stripe_subscription_id == subscription_id))

    def get_plan_id_for_price(self, price_id: str) -> Optional[str]:
        return self._scalar(select(Plan.id).where(Plan.stripe_price_id_monthly == price_id))

    def update_profile(self, user_id: str, **fields: Any) -> int:
        return self._update(Profile.id == user_id, fields)

    def update_profile_by_subscription(self, subscription_id: str, **fields: Any) -> int:
        return self._update(Profile.stripe_subscription_id == subscription_id, fields)

    def _scalar(self, statement) -> Any:
        try:
            return self.db.execute(statement).scalar_one_or_none()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ProfileStoreError(str(exc)) from exc

    def _update(self, criterion, fields: dict[str, Any]) -> int:
        """Apply only the given columns to the matching rows; returns the row count."""
        if not fields:
            return 0
        try:
            result = self.db.execute(update(Profile).where(criterion).values(**fields))
            self.db.commit()
        except IntegrityError as exc:
            # unknown plan id and similar constraint failures; retrying will not help
            self.db.rollback()
            raise ProfileDataError(str(exc.orig)) from exc
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise ProfileStoreError(str(exc)) from exc
        return result.rowcount or 0
