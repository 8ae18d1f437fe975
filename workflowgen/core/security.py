"""Helpers that keep credential literals out of prompts and generated workflows."""
from __future__ import annotations

import re
from typing import Any, Iterable

SECRET_KEY_PATTERN = re.compile(
    r"(api[_\-]?key|apikey|token|password|passwd|secret|authorization|credential)",
    re.IGNORECASE,
)
REDACTED_PLACEHOLDER = "{{ env.REDACTED_SECRET }}"
_PLACEHOLDER_RE = re.compile(r"^\{\{\s*env\.[A-Z0-9_]+\s*\}\}$")


def env_name(value: str) -> str:
    """Upper-snake environment variable name for an arbitrary key."""
    cleaned = re.sub(r"[^A-Za-z0-9]+", "_", value).strip("_")
    cleaned = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", cleaned)
    return cleaned.upper() or "SECRET"


def placeholder(name: str) -> str:
    return "{{ env.%s }}" % env_name(name)


def is_placeholder(value: Any) -> bool:
    return isinstance(value, str) and bool(_PLACEHOLDER_RE.match(value.strip()))


def is_secret_key(key: str) -> bool:
    return bool(SECRET_KEY_PATTERN.search(key))


def redact_secrets(value: Any, secrets: Iterable[str] = (), key: str | None = None) -> Any:
    """
    Return a copy of ``value`` with credential material replaced by placeholders.

    Strings under secret-looking keys become ``{{ env.<KEY> }}``; any known secret
    literal found elsewhere is replaced by the generic redaction placeholder.
    """
    known = [s for s in secrets if s]
    if isinstance(value, dict):
        return {k: redact_secrets(v, known, key=str(k)) for k, v in value.items()}
    if isinstance(value, list):
        return [redact_secrets(item, known, key=key) for item in value]
    if isinstance(value, str):
        if key is not None and is_secret_key(key) and value and not _is_reference(value):
            return placeholder(key)
        return scrub_text(value, known)
    return value


def scrub_text(text: str, secrets: Iterable[str]) -> str:
    for secret in secrets:
        if secret and secret in text:
            text = text.replace(secret, REDACTED_PLACEHOLDER)
    return text


def _is_reference(value: str) -> bool:
    # n8n expressions resolve at run time and carry no literal.
    return is_placeholder(value) or value.lstrip().startswith("={{")
