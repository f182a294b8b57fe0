from __future__ import annotations

import os
from functools import lru_cache
from typing import Any, Awaitable, Dict

from dotenv import load_dotenv

load_dotenv()

import stripe  # noqa: E402
from fastapi import Depends, FastAPI, HTTPException, Request, status  # noqa: E402
from fastapi.middleware.cors import CORSMiddleware  # noqa: E402
from fastapi.responses import JSONResponse  # noqa: E402
from pydantic import BaseModel, ConfigDict, Field  # noqa: E402
from sqlalchemy.orm import Session  # noqa: E402

from database.crud import ProfileRepository, ProfileStoreError  # noqa: E402
from database.initialize import init_database  # noqa: E402
from database.session import get_db  # noqa: E402
from svc.ai_proxy import AIProxy  # noqa: E402
from svc.checkout import PlanMappingError, create_subscription_checkout  # noqa: E402
from svc.genai_client import ErrorKind, GeminiClient, ModelDispatchError  # noqa: E402
from svc.reconciler import BillingReconciler, WebhookVerificationError  # noqa: E402
from svc.response_parser import AIProxyError  # noqa: E402
from utils.auth import SUPABASE_SERVICE_ROLE_KEY, SUPABASE_URL, AuthContext, get_auth_context  # noqa: E402
from utils.logger import setup_logger  # noqa: E402

logger = setup_logger()

STRIPE_SECRET_KEY = os.getenv("STRIPE_SECRET_KEY")
STRIPE_WEBHOOK_SECRET = os.getenv("STRIPE_WEBHOOK_SECRET")
FRONTEND_URL = os.getenv("FRONTEND_URL", "http://localhost:5173")
GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")

if STRIPE_SECRET_KEY:
    stripe.api_key = STRIPE_SECRET_KEY


class CheckoutSessionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    price_id: str | None = Field(default=None, alias="priceId")
    user_email: str | None = Field(default=None, alias="userEmail")


class CheckoutSessionResponse(BaseModel):
    sessionId: str


class ImageRequest(BaseModel):
    prompt: str | None = None
    title: str | None = None


class NamesRequest(BaseModel):
    niche: str | None = None


class KeywordsRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    niche_or_topic: str | None = Field(default=None, alias="nicheOrTopic")


class ArticleRequest(BaseModel):
    keyword: str | None = None
    niche: str | None = None


app = FastAPI(title="generative-cms-backend", version="0.1.0")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[FRONTEND_URL],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.on_event("startup")
def on_startup() -> None:
    init_database()


# --- Dependencies --------------------------------------------------------------

def get_profile_repository(db: Session = Depends(get_db)) -> ProfileRepository:
    return ProfileRepository(db)


def get_reconciler(profiles: ProfileRepository = Depends(get_profile_repository)) -> BillingReconciler:
    if not STRIPE_WEBHOOK_SECRET:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe webhook secret is not configured.",
        )
    return BillingReconciler(profiles, STRIPE_WEBHOOK_SECRET)


@lru_cache(maxsize=1)
def _gemini_client() -> GeminiClient:
    return GeminiClient(GEMINI_API_KEY)


def get_ai_proxy() -> AIProxy:
    try:
        return AIProxy(_gemini_client())
    except ModelDispatchError as exc:
        raise AIProxyError(exc.message, kind=exc.kind) from exc


def _ensure_stripe_configured() -> None:
    if not stripe.api_key:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Stripe API key is not configured.",
        )


# --- Service routes --------------------------------------------------------------

@app.get("/api")
async def root() -> Dict[str, str]:
    return {"message": "Hello from Generative CMS Pro Backend!"}


@app.get("/api/health")
async def health_check() -> Dict[str, Any]:
    """Report which upstream providers have configuration, without revealing values."""
    return {
        "status": "ok",
        "stripe_configured": bool(STRIPE_SECRET_KEY),
        "stripe_webhook_configured": bool(STRIPE_WEBHOOK_SECRET),
        "supabase_configured": bool(SUPABASE_URL and SUPABASE_SERVICE_ROLE_KEY),
        "gemini_configured": bool(GEMINI_API_KEY),
    }


# --- Billing --------------------------------------------------------------------

@app.post("/api/stripe-webhooks")
async def stripe_webhook(
    request: Request,
    reconciler: BillingReconciler = Depends(get_reconciler),
) -> JSONResponse:
    payload = await request.body()
    signature = request.headers.get("stripe-signature")

    try:
        outcome = reconciler.handle(payload, signature)
    except WebhookVerificationError as exc:
        logger.warning("Webhook signature verification failed: %s", exc)
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Webhook Error: {exc}") from exc
    except ProfileStoreError as exc:
        # a 5xx makes Stripe redeliver; every mutation is an overwrite so that is safe
        logger.error("Profile store failure while applying Stripe event: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to apply webhook event.",
        ) from exc

    logger.info("Stripe event %s handled: %s", outcome.event_type, outcome.action)
    return JSONResponse(status_code=200, content={"received": True})


@app.post("/api/create-checkout-session", response_model=CheckoutSessionResponse)
async def create_checkout_session(
    payload: CheckoutSessionRequest,
    auth: AuthContext = Depends(get_auth_context),
    profiles: ProfileRepository = Depends(get_profile_repository),
) -> CheckoutSessionResponse:
    if not payload.price_id or not payload.user_email:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing priceId, userId, or userEmail.")
    _ensure_stripe_configured()

    try:
        session_id = create_subscription_checkout(
            profiles,
            user_id=auth.user_id,
            price_id=payload.price_id,
            user_email=payload.user_email,
            frontend_url=FRONTEND_URL,
        )
    except PlanMappingError as exc:
        logger.error("%s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal server error: Plan mapping failed.",
        ) from exc
    except stripe.StripeError as exc:  # pragma: no cover - requires Stripe API
        logger.error("Stripe checkout session creation failed: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Unable to initiate checkout session with Stripe.",
        ) from exc

    return CheckoutSessionResponse(sessionId=session_id)


# --- AI proxy -------------------------------------------------------------------

@app.exception_handler(AIProxyError)
async def ai_proxy_error_handler(request: Request, exc: AIProxyError) -> JSONResponse:
    return _proxy_error_response(exc)


def _proxy_error_response(exc: AIProxyError) -> JSONResponse:
    status_code = status.HTTP_429_TOO_MANY_REQUESTS if exc.kind == ErrorKind.RATE_LIMITED else exc.status_code
    logger.error("Gemini API proxy error (%s): %s", exc.kind.value, exc.message)
    return JSONResponse(status_code=status_code, content={"error": exc.message or "AI service error"})


async def _proxy(action: Awaitable[Dict[str, Any]]) -> JSONResponse:
    try:
        result = await action
    except AIProxyError as exc:
        return _proxy_error_response(exc)
    except Exception as exc:
        logger.error("Unexpected Gemini API proxy error: %s", exc, exc_info=True)
        return JSONResponse(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, content={"error": "AI service error"})
    return JSONResponse(status_code=200, content=result)


@app.post("/api/ai/generate-image")
async def generate_image(
    payload: ImageRequest,
    auth: AuthContext = Depends(get_auth_context),
    proxy: AIProxy = Depends(get_ai_proxy),
) -> JSONResponse:
    return await _proxy(proxy.generate_image(payload.prompt, payload.title))


@app.post("/api/ai/suggest-names")
async def suggest_names(
    payload: NamesRequest,
    auth: AuthContext = Depends(get_auth_context),
    proxy: AIProxy = Depends(get_ai_proxy),
) -> JSONResponse:
    return await _proxy(proxy.suggest_names(payload.niche))


@app.post("/api/ai/suggest-keywords")
async def suggest_keywords(
    payload: KeywordsRequest,
    auth: AuthContext = Depends(get_auth_context),
    proxy: AIProxy = Depends(get_ai_proxy),
) -> JSONResponse:
    return await _proxy(proxy.suggest_keywords(payload.niche_or_topic))


@app.post("/api/ai/generate-article")
async def generate_article(
    payload: ArticleRequest,
    auth: AuthContext = Depends(get_auth_context),
    proxy: AIProxy = Depends(get_ai_proxy),
) -> JSONResponse:
    return await _proxy(proxy.generate_article(payload.keyword, payload.niche))
