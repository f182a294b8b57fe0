from __future__ import annotations

import base64
from typing import Any, Dict, Optional

from svc.genai_client import GeminiClient, ModelDispatchError, ModelResponse
from svc.response_parser import (
    AIProxyError,
    MissingParameterError,
    expect_object,
    expect_string_list,
    parse_json_payload,
)
from utils.cleaner import clean_str
from utils.logger import get_logger

logger = get_logger()

IMAGE_MIME_TYPE = "image/jpeg"

NAMES_PROMPT = (
    'Suggest 5 creative and brandable website names for a niche about: "{niche}". '
    'Return them as a JSON array of strings. Example: ["Name 1", "Name 2"]'
)

KEYWORDS_PROMPT = (
    'Generate a list of 10-15 relevant SEO keywords for content related to "{topic}". '
    "Return as a JSON array of strings."
)

ARTICLE_PROMPT = """
Generate a detailed blog post about "{keyword}" within the niche of "{niche}".
The article should be engaging, informative, and SEO-friendly.
Provide a featured image prompt (16:9 aspect ratio) and 2-3 inline image prompts.
Return the output as a single JSON object with the following structure:
{{
  "title": "Article Title",
  "body": "HTML content of the article body...",
  "featuredImagePrompt": "Prompt for the featured image...",
  "inlineImagePrompts": ["Prompt for inline image 1...", "Prompt for inline image 2..."]
}}
"""


def image_prompt_for(prompt: Optional[str], title: Optional[str]) -> str:
    prompt = clean_str(prompt)
    if prompt:
        return prompt
    title = clean_str(title)
    if title:
        return f"Featured image for article titled: {title}"
    raise MissingParameterError("Prompt or title is required for image generation.")


def _required(value: Any, message: str) -> str:
    cleaned = clean_str(value)
    if not cleaned:
        raise MissingParameterError(message)
    return cleaned


class AIProxy:
    """Builds prompts, calls the model and validates what comes back."""

    def __init__(self, model: GeminiClient):
        self.model = model

    async def _text(self, prompt: str, **kwargs: Any) -> ModelResponse:
        try:
            return await self.model.generate_text(prompt, **kwargs)
        except ModelDispatchError as exc:
            raise AIProxyError(exc.message, kind=exc.kind) from exc

    async def generate_image(self, prompt: Optional[str] = None, title: Optional[str] = None) -> Dict[str, str]:
        image_prompt = image_prompt_for(prompt, title)
        try:
            image_bytes = await self.model.generate_image(image_prompt, mime_type=IMAGE_MIME_TYPE)
        except ModelDispatchError as exc:
            raise AIProxyError(exc.message, kind=exc.kind) from exc
        if not image_bytes:
            raise AIProxyError("No image data received from AI.")
        encoded = base64.b64encode(image_bytes).decode("ascii")
        return {"imageUrl": f"data:{IMAGE_MIME_TYPE};base64,{encoded}"}

    async def suggest_names(self, niche: Optional[str]) -> Dict[str, Any]:
        niche = _required(niche, "Niche is required.")
        response = await self._text(NAMES_PROMPT.format(niche=niche))
        names = expect_string_list(parse_json_payload(response.text), "names")
        return {"names": names}

    async def suggest_keywords(self, topic: Optional[str]) -> Dict[str, Any]:
        topic = _required(topic, "Niche or Topic is required.")
        response = await self._text(KEYWORDS_PROMPT.format(topic=topic), google_search=True)
        keywords = expect_string_list(parse_json_payload(response.text), "keywords")
        return {"keywords": keywords, "groundingMetadata": response.grounding_chunks or []}

    async def generate_article(self, keyword: Optional[str], niche: Optional[str]) -> Dict[str, Any]:
        keyword = clean_str(keyword)
        niche = clean_str(niche)
        if not keyword or not niche:
            raise MissingParameterError("Keyword and Niche are required.")
        response = await self._text(ARTICLE_PROMPT.format(keyword=keyword, niche=niche))
        # contents are passed through as-is; only the top level is checked
        article_parts = expect_object(parse_json_payload(response.text), "article")
        logger.info("Generated article for keyword %r with %d fields", keyword, len(article_parts))
        return {"articleParts": article_parts}
