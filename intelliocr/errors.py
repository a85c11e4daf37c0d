"""Error taxonomy for the analysis pipeline.

Every failure that the pipeline can classify is raised as a subclass of
``IntelliOCRError``. Each class carries a ``kind`` identifier and a short
message suitable for direct display. Failures that cannot be classified are
not wrapped: the original exception propagates unchanged.
"""


class IntelliOCRError(Exception):
    """Base class for classified pipeline failures."""

    kind = "error"
    default_message = "Analysis failed"

    def __init__(self, message: str | None = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message


class MissingCredentialError(IntelliOCRError):
    kind = "missing_credential"
    default_message = "Missing API key. Enter an API key to start analysis."


class InvalidCredentialError(IntelliOCRError):
    kind = "invalid_credential"
    default_message = "Invalid API key. Please re-enter your API key."


class QuotaExceededError(IntelliOCRError):
    """Rate limit or quota hit; the credential itself may be fine."""

    kind = "quota"
    default_message = "API quota exceeded or rate limited. Please try again shortly."


class ServerOverloadError(IntelliOCRError):
    kind = "overload"
    default_message = "The model service is overloaded. Please try again shortly."


class MalformedResponseError(IntelliOCRError):
    kind = "malformed_response"
    default_message = "The model returned a response that is not valid JSON."


class NoResponseError(MalformedResponseError):
    kind = "no_response"
    default_message = "No response from the model."


class NormalizationUnavailableError(IntelliOCRError):
    kind = "normalization_unavailable"
    default_message = "Image could not be processed for upload."


class ModelRequestError(Exception):
    """Non-success HTTP response from a model endpoint.

    The string form keeps the status line and the raw body so that
    signature-based classification sees the same text the service sent.
    """

    def __init__(self, status_code: int, body: str, reason: str = ""):
        self.status_code = status_code
        self.body = body
        self.reason = reason
        status_line = f"{status_code} {reason}".strip()
        super().__init__(f"{status_line}: {body}" if body else status_line)
