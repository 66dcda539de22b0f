import json
import re
from typing import Any, Dict, List, Union, Optional

from app.utils.logging import get_logger

LOGGER = get_logger(__name__)

_FENCE_PATTERN = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)
_TRAILING_COMMA_PATTERN = re.compile(r",\s*([}\]])")


def parse_json_safely(text: str) -> Union[Dict[str, Any], List[Any], None]:
    """Parse JSON from model output, handling common formatting issues.

    Handles:
    - Markdown code blocks (```json ... ```), including prose around them
    - Text before the first brace or after the last one
    - Trailing commas before a closing brace/bracket
    - Output cut off at the token limit (open strings and brackets are closed)

    Args:
        text: The text containing JSON

    Returns:
        Parsed JSON object or None if parsing fails
    """
    if not text:
        return None

    cleaned_text = text.strip()
    fence_match = _FENCE_PATTERN.search(cleaned_text)
    if fence_match:
        cleaned_text = fence_match.group(1).strip()
    elif cleaned_text.startswith("```"):
        # Opening fence without a closing one, typically a truncated response
        cleaned_text = re.sub(r"^```(?:json)?", "", cleaned_text).strip()

    try:
        return json.loads(cleaned_text)
    except json.JSONDecodeError as e:
        LOGGER.warning(f"Initial JSON parse failed: {e}, attempting repairs...")

    candidate = _slice_to_json(cleaned_text)
    if candidate is None:
        LOGGER.error("No JSON object or array found in response")
        return None

    candidate = _TRAILING_COMMA_PATTERN.sub(r"\1", candidate)
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        pass

    repaired = _close_truncated_json(candidate)
    try:
        result = json.loads(_TRAILING_COMMA_PATTERN.sub(r"\1", repaired))
        LOGGER.info("Parsed JSON after closing truncated output")
        return result
    except json.JSONDecodeError as e:
        LOGGER.error(f"Failed to parse JSON: {e}")
        return None


def _slice_to_json(text: str) -> Optional[str]:
    """Cut the text down to the span starting at the first { or [."""
    starts = [pos for pos in (text.find("{"), text.find("[")) if pos != -1]
    if not starts:
        return None
    start = min(starts)
    closer = "}" if text[start] == "{" else "]"
    end = text.rfind(closer)
    if end > start:
        complete = text[start:end + 1]
        try:
            json.loads(_TRAILING_COMMA_PATTERN.sub(r"\1", complete))
            return complete
        except json.JSONDecodeError:
            pass
    return text[start:]


def _close_truncated_json(text: str) -> str:
    """Close any string, object or array left open when output was cut off.

    A dangling key or partial element after the last comma is dropped first.
    """
    stack: List[str] = []
    in_string = False
    escaped = False
    last_safe = 0

    for index, char in enumerate(text):
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]":
            if stack:
                stack.pop()
            last_safe = index + 1
        elif char == ",":
            last_safe = index

    if not stack and not in_string:
        return text

    trimmed = text[:last_safe] if last_safe else text
    # Recount what is still open after trimming
    stack = []
    in_string = False
    escaped = False
    for char in trimmed:
        if in_string:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == '"':
                in_string = False
            continue
        if char == '"':
            in_string = True
        elif char in "{[":
            stack.append("}" if char == "{" else "]")
        elif char in "}]" and stack:
            stack.pop()

    suffix = '"' if in_string else ""
    return trimmed.rstrip().rstrip(",") + suffix + "".join(reversed(stack))
