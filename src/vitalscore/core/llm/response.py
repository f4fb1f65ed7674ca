"""Response parsing for advisory LLM output."""

from __future__ import annotations

import json
import logging
import math
import re
from typing import Any

logger = logging.getLogger(__name__)

# First flat JSON object in the completion. Models often wrap the object in
# prose or a code fence even when told not to.
_JSON_OBJECT = re.compile(r"\{[^{}]*\}", re.DOTALL)


class LLMResponseError(Exception):
    """Raised when LLM output cannot be turned into the expected structure."""


def extract_json_object(content: str) -> dict[str, Any]:
    """Return the first JSON object embedded in ``content``.

    Raises:
        LLMResponseError: If no object is present or it does not parse.
    """
    if not content or not content.strip():
        raise LLMResponseError("Empty completion")

    stripped = content.strip()
    candidates = [stripped] if stripped.startswith("{") else []
    candidates.extend(m.group(0) for m in _JSON_OBJECT.finditer(content))

    for candidate in candidates:
        try:
            parsed = json.loads(candidate)
        except (json.JSONDecodeError, TypeError):
            continue
        if isinstance(parsed, dict):
            return parsed

    logger.debug("No JSON object found in completion of %d chars", len(content))
    raise LLMResponseError("Completion did not contain a JSON object")


def read_number(payload: dict[str, Any], *keys: str) -> float:
    """Read the first present key of ``keys`` as a finite float.

    Accepts camelCase and snake_case spellings of the same field.

    Raises:
        LLMResponseError: If none of the keys is present or the value is
            not a finite number.
    """
    for key in keys:
        if key not in payload:
            continue
        value = payload[key]
        if isinstance(value, bool):
            raise LLMResponseError(f"Field {key!r} is a boolean, expected a number")
        try:
            number = float(value)
        except (TypeError, ValueError) as exc:
            raise LLMResponseError(f"Field {key!r} is not numeric: {value!r}") from exc
        if not math.isfinite(number):
            raise LLMResponseError(f"Field {key!r} is not finite: {value!r}")
        return number
    raise LLMResponseError(f"Missing field: {keys[0]!r}")
