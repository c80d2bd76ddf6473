"""Error taxonomy for the store assistant.

``AssistantError`` subclasses abort the request and map to an HTTP status.
``QueryError`` subclasses only ever end up in the envelope's ``resultsError``.
"""
from typing import Optional


class AssistantError(Exception):
    """Raised for infrastructure faults that end the request with a non-200 status."""

    status_code = 500
    default_message = "Unknown error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigError(AssistantError):
    default_message = "Assistant is not configured"


class UpstreamAuthError(ConfigError):
    default_message = "LLM_API_KEY is not configured"


class UpstreamRateLimited(AssistantError):
    status_code = 429
    default_message = "Rate limit exceeded. Please try again in a moment."


class UpstreamQuotaExhausted(AssistantError):
    status_code = 402
    default_message = "AI credits exhausted. Please add credits to continue."


class UpstreamError(AssistantError):
    default_message = "AI gateway error"


class QueryError(Exception):
    """Raised when the data portion of a query intent cannot be served."""

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class ParseError(QueryError):
    pass


class AllowlistError(QueryError):
    pass


class ExecutionError(QueryError):
    pass


class PrimaryExecutionFailed(Exception):
    """Raised when the read-only function path cannot serve a query; triggers fallback."""
    pass
