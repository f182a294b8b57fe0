import re
from typing import Any

_space_re = re.compile(r"\s+")


def clean_str(value: Any) -> str | None:
    """Collapse whitespace in request parameters; blank values become None."""
    if value is None or isinstance(value, (dict, list)):
        return None
    text = _space_re.sub(" ", str(value)).strip()
    return text or None
