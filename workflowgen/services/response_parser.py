"""Pull the JSON object out of a model reply."""
from __future__ import annotations

import json
import logging
import re
from typing import Any

from workflowgen.core.exceptions import ParseError

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


def _try_load(candidate: str) -> Any | None:
    candidate = candidate.strip()
    if not candidate:
        return None
    try:
        return json.loads(candidate)
    except json.JSONDecodeError:
        return None


def extract_json(text: str) -> dict[str, Any]:
    """
    Parse the first JSON object found in ``text``.

    Tried in order: a fenced code block, the whole reply, then the span from the
    first ``{`` to the last ``}``.
    """
    if not text or not text.strip():
        raise ParseError("Model reply was empty")

    candidates: list[str] = []
    fenced = _FENCED_BLOCK.search(text)
    if fenced:
        candidates.append(fenced.group(1))
    candidates.append(text)
    start, end = text.find("{"), text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        parsed = _try_load(candidate)
        if isinstance(parsed, dict):
            return parsed

    logger.warning(f"Could not extract JSON from model reply ({len(text)} chars)")
    raise ParseError("Model reply did not contain a JSON object")
