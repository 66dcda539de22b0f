"""Scrub secrets and internal addresses from error text shown to callers."""

import re

from app.core.constants import MAX_ERROR_MESSAGE_LENGTH

_SECRET_PATTERNS = [
    (re.compile(r"(?i)bearer\s+[A-Za-z0-9._~+/=-]+"), "Bearer [redacted]"),
    (re.compile(r"(?i)\b(api[_-]?key|key|token|secret|password)(\s*[=:]\s*)[^\s,;]+"), r"\1\2[redacted]"),
    (re.compile(r"AIza[0-9A-Za-z_-]{20,}"), "[redacted]"),
    (re.compile(r"\bsk-[A-Za-z0-9_-]{10,}"), "[redacted]"),
    (re.compile(r"(?i)\b[a-z][a-z0-9+.-]*://\S+"), "[service-url]"),
]


def redact_error_message(message: object, max_length: int = MAX_ERROR_MESSAGE_LENGTH) -> str:
    """Return a caller-safe version of an error message.

    Strips API keys, bearer tokens and URLs, collapses whitespace and caps the
    length, ending truncated text with "...".
    """
    text = str(message) if message is not None else ""
    for pattern, replacement in _SECRET_PATTERNS:
        text = pattern.sub(replacement, text)
    text = " ".join(text.split())
    if not text:
        text = "Unknown error"
    if len(text) > max_length:
        text = text[: max_length - 3] + "..."
    return text
