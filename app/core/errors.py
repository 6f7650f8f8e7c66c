"""
Suggestion Errors — typed failures surfaced by the gift suggestion pipeline.

Every error carries a stable ``code`` that the API layer returns to clients,
an HTTP status for that response, and a ``retryable`` flag so the frontend
can tell "try again shortly" apart from a persistent output mismatch.
"""

from typing import Any, Optional

DETAILS_LIMIT = 2000
MALFORMED_EXCERPT_LIMIT = 8000


class SuggestionError(Exception):
    """Base class for all typed pipeline failures."""

    code: str = "internal_error"
    status_code: int = 500
    retryable: bool = False

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        details: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status = status
        self.details = details[:DETAILS_LIMIT] if details else details

    def to_dict(self) -> dict[str, Any]:
        """Serialize for the ``error`` member of an API response."""
        body: dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "retryable": self.retryable,
        }
        if self.details:
            body["details"] = self.details
        return body


class InvalidGiftRequestError(SuggestionError):
    code = "validation_error"
    status_code = 400


class AIUnavailableError(SuggestionError):
    """Transient backend status (429/503) persisted through every retry."""

    code = "ai_api_unavailable"
    status_code = 503
    retryable = True


class AINotConfiguredError(SuggestionError):
    """No API key is configured for the selected provider."""

    code = "ai_not_configured"
    status_code = 503


class AIAPIError(SuggestionError):
    """Backend answered with a non-transient HTTP error."""

    code = "ai_api_error"
    status_code = 502


class AIParseError(SuggestionError):
    """Transport succeeded but the response body was not JSON."""

    code = "ai_parse_error"
    status_code = 502


class AIRequestFailedError(SuggestionError):
    """Network-level failure after retries were exhausted."""

    code = "ai_request_failed"
    status_code = 502
    retryable = True


class AIRequestFatalError(AIRequestFailedError):
    code = "ai_request_failed_fatal"
    retryable = False


class MalformedAIOutputError(SuggestionError):
    """No usable JSON object could be recovered from the model text."""

    code = "ai_malformed_json"
    status_code = 502

    def __init__(self, message: str, *, details: Optional[str] = None) -> None:
        super().__init__(message)
        # Model output excerpts get a larger limit than DETAILS_LIMIT
        self.details = details[:MALFORMED_EXCERPT_LIMIT] if details else details


class StorageError(SuggestionError):
    """Raised by persistence collaborators; never by the pipeline itself."""

    code = "storage_error"
    status_code = 500
