from __future__ import annotations


class AppError(RuntimeError):
    """Base application error."""


class BadRequest(AppError):
    """Invalid request data."""


class DependencyError(AppError):
    """External dependency failed (e.g., AI backend, configuration)."""


class ProcessingError(AppError):
    """
    Base class for every failure surfaced by the processing pipeline.

    Processing errors are never raised across the orchestrator boundary;
    they travel inside a ``Failure`` and end up as a human-readable message
    in the pipeline's error state.
    """

    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __str__(self) -> str:
        return self.message


class ValidationError(ProcessingError, BadRequest):
    """Bad input shape or size, detected before any network call."""


class NetworkError(ProcessingError):
    """Transport-level failure while talking to the AI backend."""

    retryable = True


class BackendTimeoutError(NetworkError):
    """The AI backend did not answer within its time bound."""


class QuotaExceededError(ProcessingError):
    """Backend quota or rate limit exhausted."""

    retryable = True


class AuthenticationError(ProcessingError):
    """Backend rejected our credentials."""


class ModelUnavailableError(ProcessingError):
    """Requested model is missing or temporarily unavailable."""

    retryable = True


class SafetyRejectedError(ProcessingError):
    """Backend refused the request on content-safety grounds."""


class OperationCancelledError(ProcessingError):
    """Operation stopped at a cancellation checkpoint."""

    def __init__(self, message: str = "Operation cancelled") -> None:
        super().__init__(message)


class UnexpectedError(ProcessingError):
    """Catch-all wrapper; keeps the original exception for diagnostics."""

    def __init__(self, message: str, cause: BaseException | None = None) -> None:
        super().__init__(message)
        self.cause = cause

    @classmethod
    def wrap(cls, exc: BaseException, context: str = "Unexpected error") -> "UnexpectedError":
        return cls(f"{context}: {exc}", cause=exc)


def classify_backend_error(status_code: int | None, detail: str) -> ProcessingError:
    """
    Map a backend failure (HTTP status and/or message text) onto the
    processing error taxonomy.
    """
    text = (detail or "").lower()
    message = detail or f"Backend returned status {status_code}"

    if status_code in (401, 403) or "unauthorized" in text or "authentication" in text:
        return AuthenticationError(message)
    if status_code == 429 or "quota" in text or "rate limit" in text or "too many requests" in text:
        return QuotaExceededError(message)
    if "safety" in text or "blocked" in text:
        return SafetyRejectedError(message)
    if status_code == 404 or "model not found" in text:
        return ModelUnavailableError(message)
    if status_code is not None and status_code >= 500:
        return ModelUnavailableError(message)
    if status_code is not None and 400 <= status_code < 500:
        return ValidationError(message)
    if "timeout" in text or "timed out" in text:
        return BackendTimeoutError(message)
    if "connection" in text or "network" in text or "socket" in text:
        return NetworkError(message)
    return UnexpectedError(message)
