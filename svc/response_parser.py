from __future__ import annotations

import json
import re
from typing import Any, Dict, List

from svc.genai_client import ErrorKind

_fence_re = re.compile(r"^```(\w*)?\s*\n?(.*?)\n?\s*```$", re.DOTALL)


class AIProxyError(Exception):
    """Base error for the AI proxy; ``kind`` decides between 429 and 500."""

    status_code = 500

    def __init__(self, message: str = "AI service error", kind: ErrorKind = ErrorKind.GENERIC):
        self.message = message
        self.kind = kind
        super().__init__(message)


class MissingParameterError(AIProxyError):
    status_code = 400


class ResponseParseError(AIProxyError):
    """The model text was not valid JSON."""


class ResponseShapeError(AIProxyError):
    """The JSON parsed but does not match the expected contract."""


def strip_code_fence(text: str) -> str:
    """Unwrap ```lang ... ``` fencing; unfenced text is returned trimmed."""
    stripped = text.strip()
    match = _fence_re.match(stripped)
    if match and match.group(2):
        return match.group(2).strip()
    return stripped


def parse_json_payload(text: str) -> Any:
    try:
        return json.loads(strip_code_fence(text))
    except (TypeError, ValueError) as exc:
        raise ResponseParseError(f"AI returned invalid JSON: {exc}") from exc


def expect_string_list(value: Any, label: str) -> List[str]:
    if not isinstance(value, list) or not all(isinstance(item, str) for item in value):
        raise ResponseShapeError(f"AI did not return a valid JSON array of strings for {label}.")
    return value


def expect_object(value: Any, label: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise ResponseShapeError(f"AI did not return a JSON object for {label}.")
    return value
