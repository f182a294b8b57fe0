import os
from contextlib import contextmanager
from typing import Any, Dict, Generator, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine, URL, make_url
from sqlalchemy.orm import Session, declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

DEFAULT_DATABASE_URL = "sqlite:///./generative_cms.db"


def _is_memory_sqlite(url: URL) -> bool:
    return url.drivername.startswith("sqlite") and url.database in (None, "", ":memory:")


def _resolve_database_url(raw_url: str | None) -> Tuple[URL, Dict[str, Any]]:
    """Normalize the DATABASE_URL environment variable for SQLAlchemy.

    Supabase Postgres requires SSL and we talk to it through the psycopg
    driver, so plain postgres URLs are upgraded and sslmode=require is
    injected when it is absent.
    """
    url = make_url(raw_url or DEFAULT_DATABASE_URL)

    if url.drivername.startswith("sqlite"):
        return url, {"check_same_thread": False}

    if url.drivername in {"postgres", "postgresql"}:
        url = url.set(drivername="postgresql+psycopg")

    query = dict(url.query)
    if "sslmode" not in query and url.drivername.startswith("postgresql"):
        query["sslmode"] = "require"
        url = url.set(query=query)

    return url, {}


def _create_engine() -> Engine:
    url, connect_args = _resolve_database_url(os.getenv("DATABASE_URL"))
    if _is_memory_sqlite(url):
        # every connection must see the same in-memory database
        return create_engine(url, future=True, connect_args=connect_args, poolclass=StaticPool)
    return create_engine(url, future=True, pool_pre_ping=True, connect_args=connect_args)


engine = _create_engine()
SessionLocal = sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False, future=True)
Base = declarative_base()


def get_db() -> Generator[Session, None, None]:
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


@contextmanager
def db_session():
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()
