"""
JSON utilities for pulling structured data out of LLM responses.
"""

import json
import re
from typing import Any, Dict, Optional

from .errors import ResponseParseError

# Greedy: spans from the first "{" to the last "}" in the text.
_JSON_OBJECT_RE = re.compile(r"\{.*\}", re.DOTALL)


def find_json_object(text: str) -> Optional[str]:
    """Return the candidate JSON object substring in ``text``, or None."""
    if not text:
        return None
    match = _JSON_OBJECT_RE.search(text)
    return match.group(0) if match else None


def extract_json_object(text: str) -> Dict[str, Any]:
    """Locate and parse the JSON object embedded in free-form text.

    Args:
        text: Raw generated text

    Returns:
        The parsed object

    Raises:
        ResponseParseError: If no object is present or it does not parse
    """
    candidate = find_json_object(text)
    if candidate is None:
        raise ResponseParseError("Could not find a JSON object in response")

    try:
        parsed = json.loads(candidate)
    except json.JSONDecodeError as e:
        raise ResponseParseError(f"Could not parse JSON from response: {e}") from e
    except RecursionError as e:
        raise ResponseParseError("Could not parse JSON from response: nesting too deep") from e

    return parsed


__all__ = ["find_json_object", "extract_json_object"]
