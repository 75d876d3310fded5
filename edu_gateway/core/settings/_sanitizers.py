"""Helpers to sanitize environment variable values before validation."""

from __future__ import annotations

import json
from typing import Any


def strip_inline_comment(value: str) -> str:
    """Remove inline comments of the form ``"value  # comment"``.

    A ``#`` only starts a comment when it follows whitespace, so values such
    as ``redis://h#frag`` are left untouched.
    """
    idx = value.find("#")
    if idx == -1:
        return value.strip()
    if idx == 0:
        return ""
    if not value[idx - 1].isspace():
        return value.strip()
    return value[:idx].strip()


def sanitize_inline_numeric(value: Any) -> Any:
    """Normalize numeric env vars that may include inline comments."""
    if isinstance(value, str):
        cleaned = strip_inline_comment(value)
        if cleaned:
            return cleaned
    return value


def split_csv(value: Any) -> Any:
    """Accept ``"a, b,c"`` as well as JSON lists for list-valued settings."""
    if not isinstance(value, str):
        return value
    if value.lstrip().startswith("["):
        parsed = json.loads(value)
        return [str(item) for item in parsed] if isinstance(parsed, list) else parsed
    return [part.strip() for part in value.split(",") if part.strip()]
