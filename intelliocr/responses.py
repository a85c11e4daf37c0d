"""Parsing of raw model output into extracted records."""

import json
import logging
import re
from typing import Optional

from intelliocr.errors import MalformedResponseError, NoResponseError
from intelliocr.schemas import ExtractedRecord

logger = logging.getLogger(__name__)

_FENCE_OPEN = re.compile(r"^```(?:json)?\s*", re.IGNORECASE)
_FENCE_CLOSE = re.compile(r"\s*```$")


def strip_code_fence(text: str) -> str:
    """Remove a surrounding markdown code fence, if present."""
    text = text.strip()
    if text.startswith("```"):
        text = _FENCE_OPEN.sub("", text)
        text = _FENCE_CLOSE.sub("", text)
    return text


def parse_response(text: Optional[str]) -> list[ExtractedRecord]:
    """Convert the model's response text into a list of records.

    A bare JSON object is wrapped into a one-element list. Record keys are
    returned verbatim and are not checked against the requested fields.

    Args:
        text: Raw response text

    Returns:
        List of extracted records

    Raises:
        NoResponseError: If the response is empty or blank
        MalformedResponseError: If the text is not valid JSON or an entry is
            not a JSON object
    """
    if not text or not text.strip():
        raise NoResponseError()

    cleaned = strip_code_fence(text)
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as e:
        logger.error(f"Model response is not valid JSON: {e}")
        logger.debug(f"Unparseable response: {cleaned[:500]}")
        raise MalformedResponseError() from e

    if not isinstance(parsed, list):
        parsed = [parsed]

    if not all(isinstance(item, dict) for item in parsed):
        logger.error(f"Model response contains non-object entries: {cleaned[:200]}")
        raise MalformedResponseError("The model returned entries that are not JSON objects.")
    return parsed
