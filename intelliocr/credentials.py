"""Credential resolution and validation."""

import json
import logging
from typing import Optional

from intelliocr.adapters import ExtractorAdapter, get_adapter
from intelliocr.errors import MissingCredentialError
from intelliocr import config
from intelliocr.retry import ErrorKind, classify_error
from intelliocr.schemas import ValidationResult, ValidationStatus

logger = logging.getLogger(__name__)


def resolve_credential(
    user_credential: Optional[str], deployment_credential: Optional[str] = None
) -> str:
    """Pick the credential to use for a request.

    A non-empty user-supplied credential wins over the deployment default.

    Args:
        user_credential: Credential entered by the user, may be empty
        deployment_credential: Operator-provisioned credential; defaults to
            config.DEPLOYMENT_API_KEY

    Returns:
        Effective credential

    Raises:
        MissingCredentialError: If neither source has a value
    """
    if deployment_credential is None:
        deployment_credential = config.DEPLOYMENT_API_KEY

    for candidate in (user_credential, deployment_credential):
        if candidate and candidate.strip():
            return candidate.strip()
    raise MissingCredentialError()


def extract_error_detail(error_text: str) -> str:
    """Pull a readable message out of a JSON error payload embedded in text.

    Falls back to the raw text when no JSON object can be parsed.
    """
    start = error_text.find("{")
    end = error_text.rfind("}") + 1
    if start >= 0 and end > start:
        try:
            payload = json.loads(error_text[start:end])
        except json.JSONDecodeError:
            return error_text

        if isinstance(payload, dict):
            error = payload.get("error")
            if isinstance(error, dict) and error.get("message"):
                return str(error["message"])
            if isinstance(error, str) and error:
                return error
            if payload.get("message"):
                return str(payload["message"])
    return error_text


async def validate_credential(
    credential: Optional[str], adapter: Optional[ExtractorAdapter] = None
) -> ValidationResult:
    """Check a credential with a single low-cost probe.

    Never retries: the caller wants immediate feedback.

    Args:
        credential: Credential to check
        adapter: Adapter to probe with; built from the credential if omitted

    Returns:
        ValidationResult (valid, invalid, or quota)
    """
    if not credential or not credential.strip():
        return ValidationResult(status=ValidationStatus.INVALID, detail="Empty API key")

    if adapter is None:
        adapter = get_adapter(credential.strip())

    try:
        await adapter.probe()
        return ValidationResult(status=ValidationStatus.VALID)
    except Exception as e:
        detail = extract_error_detail(str(e))
        kind = classify_error(e)
        logger.warning(f"API key validation failed ({kind.value}): {detail}")
        if kind in (ErrorKind.QUOTA, ErrorKind.OVERLOAD):
            return ValidationResult(status=ValidationStatus.QUOTA, detail=detail)
        return ValidationResult(status=ValidationStatus.INVALID, detail=detail)
