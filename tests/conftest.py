import hashlib
import hmac
import json
import os
import time
from typing import Any, Dict, List, Optional

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["STRIPE_WEBHOOK_SECRET"] = "whsec_test_secret"
os.environ["STRIPE_SECRET_KEY"] = "sk_test_dummy"

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402
from jose import jwt  # noqa: E402

from database.crud import ProfileRepository  # noqa: E402
from database.initialize import seed_free_plan  # noqa: E402
from database.models import Plan, Profile  # noqa: E402
from database.session import Base, SessionLocal, engine  # noqa: E402
from main import app, get_ai_proxy  # noqa: E402
from svc.ai_proxy import AIProxy  # noqa: E402
from svc.genai_client import ModelResponse  # noqa: E402
from utils.auth import get_identity_client  # noqa: E402

WEBHOOK_SECRET = "whsec_test_secret"
USER_ID = "3f1c9a52-7d2e-4c7b-9a0e-1b2c3d4e5f60"
USER_EMAIL = "writer@example.com"
VALID_TOKEN = jwt.encode({"sub": USER_ID, "role": "authenticated"}, "local-test-key", algorithm="HS256")


def sign_payload(payload: str, secret: str = WEBHOOK_SECRET, timestamp: Optional[int] = None) -> str:
    """Build a Stripe-Signature header the same way Stripe does."""
    timestamp = int(time.time()) if timestamp is None else timestamp
    signed = f"{timestamp}.{payload}".encode("utf-8")
    signature = hmac.new(secret.encode("utf-8"), signed, hashlib.sha256).hexdigest()
    return f"t={timestamp},v1={signature}"


def make_event(event_type: str, obj: Dict[str, Any], event_id: str = "evt_test_1") -> Dict[str, Any]:
    return {"id": event_id, "object": "event", "type": event_type, "data": {"object": obj}}


def encode_event(event: Dict[str, Any]) -> str:
    return json.dumps(event)


class FakeIdentity:
    def __init__(self, users: Optional[Dict[str, Dict[str, Any]]] = None, error: Optional[Exception] = None):
        self.users = users if users is not None else {VALID_TOKEN: {"id": USER_ID, "email": USER_EMAIL}}
        self.error = error
        self.calls: List[str] = []

    async def get_user(self, token: str) -> Optional[Dict[str, Any]]:
        self.calls.append(token)
        if self.error is not None:
            raise self.error
        return self.users.get(token)


class FakeModel:
    def __init__(
        self,
        text: str = "[]",
        grounding_chunks: Optional[List[Dict[str, Any]]] = None,
        image_bytes: Optional[bytes] = b"\xff\xd8\xff",
        error: Optional[Exception] = None,
    ):
        self.text = text
        self.grounding_chunks = grounding_chunks or []
        self.image_bytes = image_bytes
        self.error = error
        self.text_calls: List[Dict[str, Any]] = []
        self.image_calls: List[Dict[str, Any]] = []

    async def generate_text(self, prompt: str, **kwargs: Any) -> ModelResponse:
        self.text_calls.append({"prompt": prompt, **kwargs})
        if self.error is not None:
            raise self.error
        return ModelResponse(text=self.text, grounding_chunks=list(self.grounding_chunks))

    async def generate_image(self, prompt: str, **kwargs: Any) -> Optional[bytes]:
        self.image_calls.append({"prompt": prompt, **kwargs})
        if self.error is not None:
            raise self.error
        return self.image_bytes


@pytest.fixture(autouse=True)
def database():
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    seed_free_plan()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture
def foreign_keys():
    """Enforce foreign keys on the shared in-memory SQLite connection, as Postgres always does."""
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=ON")
    yield
    with engine.connect() as conn:
        conn.exec_driver_sql("PRAGMA foreign_keys=OFF")


@pytest.fixture
def db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def repository(db):
    return ProfileRepository(db)


@pytest.fixture
def seed(db):
    """Insert plans and profiles; returns a helper that re-reads a profile from a fresh session."""

    def _seed(plans: Optional[Dict[str, Optional[str]]] = None, profiles: Optional[List[Dict[str, Any]]] = None):
        for plan_id, price_id in (plans or {}).items():
            db.add(Plan(id=plan_id, name=plan_id.title(), stripe_price_id_monthly=price_id))
        db.commit()
        for fields in profiles or []:
            db.add(Profile(**fields))
        db.commit()

    return _seed


@pytest.fixture
def load_profile():
    def _load(user_id: str) -> Optional[Profile]:
        session = SessionLocal()
        try:
            return session.get(Profile, user_id)
        finally:
            session.close()

    return _load


@pytest.fixture
def fake_identity():
    return FakeIdentity()


@pytest.fixture
def fake_model():
    return FakeModel()


@pytest.fixture
def client(fake_identity, fake_model):
    app.dependency_overrides[get_identity_client] = lambda: fake_identity
    app.dependency_overrides[get_ai_proxy] = lambda: AIProxy(fake_model)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    return {"Authorization": f"Bearer {VALID_TOKEN}"}
