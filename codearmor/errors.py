"""
Error taxonomy for the analysis engine.

Upstream failures carry a generic message that is safe to show a user; the
detailed cause stays on the exception chain and in the logs. Rate limiting is
deliberately outside this hierarchy because it is an expected, user-actionable
condition rather than a failure.
"""

import math


class CodeArmorError(RuntimeError):
    """Base class for analysis failures."""

    user_message = "Analysis failed. Please try again."


class InvalidRequestError(CodeArmorError):
    """Raised when owner/repo/PR number or snippet input is rejected."""

    def __init__(self, message: str):
        super().__init__(message)
        self.user_message = message


class UpstreamError(CodeArmorError):
    """Raised when the source host or the classifier is unavailable."""

    retryable = False

    def __init__(self, message: str, service: str = "upstream", status_code: int | None = None):
        super().__init__(message)
        self.service = service
        self.status_code = status_code
        self.user_message = f"Failed to reach {service}. Please try again."


class UpstreamTimeout(UpstreamError):
    """Raised when an outbound call exceeds its timeout."""

    retryable = True

    def __init__(self, message: str, service: str = "upstream"):
        super().__init__(message, service=service)
        self.user_message = f"{service} timed out. Please try again in a moment."


class ClassificationError(CodeArmorError):
    """Raised when the model response is empty or violates the output contract.

    Never downgraded to an empty finding list: zero findings must only ever
    mean the model reported no vulnerabilities.
    """

    user_message = "Failed to parse analysis results."


class RateLimitExceeded(Exception):
    """Raised when a caller exhausts its request window."""

    def __init__(self, operation: str, identifier: str, reset_time: float, retry_after: float):
        super().__init__(
            f"Rate limit exceeded for {operation}. Try again in {math.ceil(retry_after)} seconds."
        )
        self.operation = operation
        self.identifier = identifier
        self.reset_time = reset_time
        self.retry_after = retry_after
