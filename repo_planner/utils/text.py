"""Text helpers for bounding AI context and reading model output."""

import json
import re
from typing import Any

from repo_planner.exceptions import AIResponseError

_CODE_FENCE = re.compile(r"```(?:json)?", re.IGNORECASE)

TRUNCATION_NOTICE = "\n\n... (content truncated to prevent token limits)"


def truncate_content(content: str, max_length: int) -> str:
    """Truncate text to ``max_length`` characters plus a notice.

    The cut moves back to the last newline when that newline lies beyond 80%
    of the limit, so files are not split mid-line.
    """
    if len(content) <= max_length:
        return content

    truncated = content[:max_length]
    last_newline = truncated.rfind("\n")
    if last_newline > max_length * 0.8:
        truncated = truncated[:last_newline]

    return truncated + TRUNCATION_NOTICE


def shorten(text: str, max_length: int, ellipsis: str = "...") -> str:
    """Cut ``text`` to at most ``max_length`` characters, ending in ``ellipsis``."""
    if len(text) <= max_length:
        return text
    return text[: max_length - len(ellipsis)] + ellipsis


def extract_json_object(text: str) -> dict[str, Any]:
    """Extract the JSON object embedded in a model completion.

    Code fences are stripped and the outermost ``{...}`` span is parsed.

    Raises:
        AIResponseError: If no JSON object can be parsed
    """
    cleaned = _CODE_FENCE.sub("", text).strip()
    match = re.search(r"\{.*\}", cleaned, re.DOTALL)
    if not match:
        raise AIResponseError("No JSON object found in AI response", response_text=text[:500])
    try:
        data = json.loads(match.group(0))
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Invalid JSON in AI response: {e}", response_text=text[:500]) from e
    if not isinstance(data, dict):
        raise AIResponseError("AI response JSON is not an object", response_text=text[:500])
    return data


def collapse_whitespace(text: str) -> str:
    """Join all lines of ``text`` into one, with single spaces between words."""
    return " ".join(text.split())
