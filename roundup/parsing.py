"""
Structured-output parsing.

Models wrap JSON in prose or code fences often enough that every model
reply goes through ``parse_structured_model_output`` rather than a bare
``json.loads``.
"""

from __future__ import annotations

import json
import logging
import re
from typing import Any, Optional, TypeVar, overload

from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


class RoundupError(Exception):
    """Base class for errors raised by the roundup pipeline."""


class MalformedOutputError(RoundupError):
    """The model reply contained no parseable JSON. Never retried."""


@overload
def parse_structured_model_output(raw_text: Optional[str]) -> Any: ...


@overload
def parse_structured_model_output(raw_text: Optional[str], schema: type[T]) -> T: ...


def parse_structured_model_output(raw_text, schema=None):
    """Extract and decode the first JSON object or array in *raw_text*.

    Args:
        raw_text: The model's message content.
        schema: Optional Pydantic model to validate the decoded value into.

    Returns:
        The decoded JSON value, or a *schema* instance when one is given.

    Raises:
        MalformedOutputError: If the text is empty, holds no decodable JSON,
            or the JSON does not validate against *schema*.
    """
    if not raw_text or not raw_text.strip():
        raise MalformedOutputError("The AI returned an empty response.")

    data = _decode_first_json(raw_text)

    if schema is None:
        return data
    try:
        return schema.model_validate(data)
    except ValidationError as exc:
        raise MalformedOutputError(
            f"Response did not match {schema.__name__}: {exc.error_count()} error(s)"
        ) from exc


def _decode_first_json(raw_text: str) -> Any:
    text = _FENCE_RE.sub("", raw_text.strip())
    try:
        return json.loads(text)
    except json.JSONDecodeError:
        pass

    # Try each opening bracket in turn; raw_decode stops at the end of the
    # first complete value, so trailing prose is ignored.
    decoder = json.JSONDecoder()
    for match in re.finditer(r"[\[{]", text):
        try:
            value, _ = decoder.raw_decode(text, match.start())
        except json.JSONDecodeError:
            continue
        if isinstance(value, (dict, list)):
            return value

    logger.error("Failed to parse JSON response: %.500s", raw_text)
    raise MalformedOutputError("Invalid JSON format: no JSON object or array found")


def string_list(value: Any) -> list[str]:
    """Coerce a decoded JSON value to a list of non-blank, stripped strings."""
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if v is not None and str(v).strip()]
