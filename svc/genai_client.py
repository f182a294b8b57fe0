"""
Gemini / Imagen adapter.

Wraps the google-genai SDK behind two coroutines the AI proxy needs and maps
every SDK failure to a ``ModelDispatchError`` whose ``kind`` tells callers
whether the provider ran out of quota.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from google import genai
from google.genai import types

from utils.logger import get_logger

logger = get_logger()

GEMINI_API_KEY = os.getenv("GEMINI_API_KEY")
DEFAULT_TEXT_MODEL = os.getenv("GEMINI_TEXT_MODEL", "gemini-2.5-flash")
DEFAULT_IMAGE_MODEL = os.getenv("GEMINI_IMAGE_MODEL", "imagen-3.0-generate-002")

_QUOTA_MARKERS = ("resource_exhausted", "quota")


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    GENERIC = "generic"


class ModelDispatchError(Exception):
    """Raised when the generative model call fails."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.GENERIC, original_error: Exception | None = None):
        self.message = message
        self.kind = kind
        self.original_error = original_error
        super().__init__(message)


@dataclass
class ModelResponse:
    text: str
    grounding_chunks: List[Dict[str, Any]] = field(default_factory=list)


def classify_model_error(exc: Exception) -> ErrorKind:
    """Quota exhaustion shows up as HTTP 429, status RESOURCE_EXHAUSTED, or only in the message."""
    if getattr(exc, "code", None) == 429:
        return ErrorKind.RATE_LIMITED
    status = getattr(exc, "status", None)
    if isinstance(status, str) and status.upper() == "RESOURCE_EXHAUSTED":
        return ErrorKind.RATE_LIMITED
    message = str(exc).lower()
    if any(marker in message for marker in _QUOTA_MARKERS):
        return ErrorKind.RATE_LIMITED
    return ErrorKind.GENERIC


def _dispatch_error(exc: Exception) -> ModelDispatchError:
    kind = classify_model_error(exc)
    return ModelDispatchError(str(exc) or "AI service error", kind=kind, original_error=exc)


def _grounding_chunks(response: Any) -> List[Dict[str, Any]]:
    candidates = getattr(response, "candidates", None) or []
    if not candidates:
        return []
    metadata = getattr(candidates[0], "grounding_metadata", None)
    chunks = getattr(metadata, "grounding_chunks", None) or []
    serialized: List[Dict[str, Any]] = []
    for chunk in chunks:
        if hasattr(chunk, "model_dump"):
            serialized.append(chunk.model_dump(mode="json", exclude_none=True))
        elif isinstance(chunk, dict):
            serialized.append(chunk)
    return serialized


class GeminiClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        *,
        client: Any = None,
        text_model: str = DEFAULT_TEXT_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
    ):
        if client is None:
            api_key = api_key or GEMINI_API_KEY
            if not api_key:
                raise ModelDispatchError("GEMINI_API_KEY is not configured.")
            client = genai.Client(api_key=api_key)
        self.client = client
        self.text_model = text_model
        self.image_model = image_model

    async def generate_text(
        self,
        prompt: str,
        *,
        json_response: bool = True,
        google_search: bool = False,
        model: Optional[str] = None,
    ) -> ModelResponse:
        config_kwargs: Dict[str, Any] = {}
        if google_search:
            config_kwargs["tools"] = [types.Tool(google_search=types.GoogleSearch())]
        elif json_response:
            # the API rejects a JSON mime type combined with tool use
            config_kwargs["response_mime_type"] = "application/json"

        try:
            response = await self.client.aio.models.generate_content(
                model=model or self.text_model,
                contents=prompt,
                config=types.GenerateContentConfig(**config_kwargs),
            )
        except Exception as exc:
            raise _dispatch_error(exc) from exc

        text = getattr(response, "text", None)
        if not text:
            raise ModelDispatchError("No text received from AI.")
        return ModelResponse(text=text, grounding_chunks=_grounding_chunks(response))

    async def generate_image(
        self,
        prompt: str,
        *,
        mime_type: str = "image/jpeg",
        model: Optional[str] = None,
    ) -> Optional[bytes]:
        try:
            response = await self.client.aio.models.generate_images(
                model=model or self.image_model,
                prompt=prompt,
                config=types.GenerateImagesConfig(number_of_images=1, output_mime_type=mime_type),
            )
        except Exception as exc:
            raise _dispatch_error(exc) from exc

        images = getattr(response, "generated_images", None) or []
        if not images:
            return None
        image = getattr(images[0], "image", None)
        return getattr(image, "image_bytes", None)
