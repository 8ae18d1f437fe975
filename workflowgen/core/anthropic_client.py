"""Thin wrapper around Anthropic async client."""
from __future__ import annotations

import httpx
from anthropic import AsyncAnthropic


def build_anthropic_client(
    api_key: str,
    timeout_seconds: float,
    api_version: str | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> AsyncAnthropic:
    """SDK retries are disabled; the model router owns retry and fallback."""
    kwargs = {"api_key": api_key, "timeout": timeout_seconds, "max_retries": 0}
    if api_version:
        kwargs["default_headers"] = {"anthropic-version": api_version}
    if http_client is not None:
        kwargs["http_client"] = http_client
    return AsyncAnthropic(**kwargs)
