from __future__ import annotations

import argparse
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

# The models import registers the tables with SQLAlchemy's metadata.
from database.models import Plan
from database.session import Base, db_session, engine
from utils.payments import FREE_PLAN_ID


logger = logging.getLogger(__name__)


def seed_free_plan() -> None:
    """Make sure the free-plan sentinel exists so profiles can always reference it."""
    with db_session() as session:
        existing = session.execute(select(Plan).where(Plan.id == FREE_PLAN_ID)).scalar_one_or_none()
        if existing is None:
            session.add(Plan(id=FREE_PLAN_ID, name="Free", stripe_price_id_monthly=None))
            logger.info("Seeded '%s' plan.", FREE_PLAN_ID)


def init_database(*, drop_existing: bool = False) -> None:
    """Create the database schema on the configured engine and seed the free plan."""
    try:
        if drop_existing:
            logger.warning("Dropping existing tables before re-creating schema.")
            Base.metadata.drop_all(bind=engine)
        Base.metadata.create_all(bind=engine)
        seed_free_plan()
    except SQLAlchemyError as exc:
        logger.exception("Failed to initialise database schema: %s", exc)
        raise
    else:
        logger.info("Database schema initialised successfully.")


def _parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Initialise the database schema for the Generative CMS backend."
    )
    parser.add_argument(
        "--drop-existing",
        action="store_true",
        help="Drop existing tables before creating the schema.",
    )
    return parser.parse_args(argv)


def main(argv: Optional[list[str]] = None) -> None:
    args = _parse_args(argv)
    init_database(drop_existing=args.drop_existing)


if __name__ == "__main__":
    main()
