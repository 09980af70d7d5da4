"""Error message sanitization to keep credentials out of reports."""

from __future__ import annotations

import os
import re

_SECRET_PATTERNS: list[tuple[str, str]] = [
    (r"sk-ant-[a-zA-Z0-9_-]+", "[REDACTED_KEY]"),
    (r"sk-[a-zA-Z0-9_-]{20,}", "[REDACTED_KEY]"),
    (r"gh[pousr]_[A-Za-z0-9]{20,}", "[REDACTED_TOKEN]"),
    (r"github_pat_[A-Za-z0-9_]{20,}", "[REDACTED_TOKEN]"),
    (r"Bearer\s+\S+", "Bearer [REDACTED]"),
    (r"(?i)(x-)?api-key:\s*\S+", r"\1api-key: [REDACTED]"),
    (r"Authorization:\s*\S+", "Authorization: [REDACTED]"),
]


def sanitize_error(message: str) -> str:
    """Redact API keys, tokens and the user's home path from a message."""
    if not message:
        return message

    sanitized = message
    for pattern, replacement in _SECRET_PATTERNS:
        sanitized = re.sub(pattern, replacement, sanitized)

    home = os.environ.get("HOME") or os.environ.get("USERPROFILE") or ""
    if home and home != "/":
        sanitized = sanitized.replace(home, "[USER_HOME]")

    return sanitized
