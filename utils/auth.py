from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Optional

import httpx
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from utils.logger import get_logger

logger = get_logger()

SUPABASE_URL = os.getenv("SUPABASE_URL")
SUPABASE_SERVICE_ROLE_KEY = os.getenv("SUPABASE_SERVICE_ROLE_KEY")


def _load_identity_timeout() -> float:
    raw_timeout = os.getenv("IDENTITY_TIMEOUT_SECONDS")
    if not raw_timeout:
        return 10.0
    try:
        parsed = float(raw_timeout)
    except ValueError:
        return 10.0
    return max(parsed, 1.0)


IDENTITY_TIMEOUT_SECONDS = _load_identity_timeout()

security = HTTPBearer(auto_error=False)


class IdentityProviderError(Exception):
    """Raised when the identity provider itself cannot answer."""


@dataclass
class AuthContext:
    token: str
    user: Dict[str, Any]
    user_id: str
    email: Optional[str]


class SupabaseIdentityClient:
    """Resolves access tokens through the Supabase Auth ``/user`` endpoint."""

    def __init__(self, base_url: str, api_key: str, timeout: float = IDENTITY_TIMEOUT_SECONDS, transport=None):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.transport = transport

    async def get_user(self, token: str) -> Optional[Dict[str, Any]]:
        """Return the user for ``token``, or None when the provider rejects it."""
        headers = {"apikey": self.api_key, "Authorization": f"Bearer {token}"}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.get(f"{self.base_url}/auth/v1/user", headers=headers)
        except httpx.HTTPError as exc:
            raise IdentityProviderError(f"Identity provider request failed: {exc}") from exc

        if response.status_code in (status.HTTP_401_UNAUTHORIZED, status.HTTP_403_FORBIDDEN):
            return None
        if response.status_code != status.HTTP_200_OK:
            raise IdentityProviderError(f"Identity provider returned HTTP {response.status_code}")
        try:
            user = response.json()
        except ValueError as exc:
            raise IdentityProviderError("Identity provider returned a non-JSON body") from exc
        return user if isinstance(user, dict) else None


@lru_cache(maxsize=1)
def get_identity_client() -> SupabaseIdentityClient:
    missing = []
    if not SUPABASE_URL:
        missing.append("SUPABASE_URL")
    if not SUPABASE_SERVICE_ROLE_KEY:
        missing.append("SUPABASE_SERVICE_ROLE_KEY")
    if missing:
        message = f"Missing Supabase configuration values: {', '.join(missing)}"
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=message)
    return SupabaseIdentityClient(SUPABASE_URL, SUPABASE_SERVICE_ROLE_KEY)


def _check_token_structure(token: str) -> None:
    # reject anything that is not a JWT before spending a network round trip
    try:
        jwt.get_unverified_header(token)
    except JWTError as exc:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: Invalid token") from exc


async def get_auth_context(
    credentials: HTTPAuthorizationCredentials = Depends(security),
    identity: SupabaseIdentityClient = Depends(get_identity_client),
) -> AuthContext:
    if credentials is None or not credentials.credentials:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: Missing or malformed token")
    token = credentials.credentials
    _check_token_structure(token)

    try:
        user = await identity.get_user(token)
    except IdentityProviderError as exc:
        logger.error("Internal error during token verification: %s", exc)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Internal Server Error verifying token",
        ) from exc

    user_id = user.get("id") if user else None
    if not user_id:
        logger.warning("Identity provider rejected bearer token")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized: Invalid token")

    return AuthContext(token=token, user=user, user_id=user_id, email=user.get("email"))
