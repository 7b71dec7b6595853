"""
Custom exceptions for the legislative ETL pipeline with structured error context.

Each exception carries a context dictionary for debugging and monitoring.
Only ValidationError and PhaseFatalError end a pipeline run; extraction,
oversized payload and commit failures are recovered locally and recorded
as run statistics.

Exception Hierarchy:
    ETLException (base)
    ├── ValidationError
    ├── ExtractionError
    │   ├── APIExtractionError
    │   │   ├── NetworkError (retryable)
    │   │   ├── RateLimitError (retryable)
    │   │   ├── ResourceNotFoundError (non-retryable)
    │   │   └── BadRequestError (non-retryable)
    │   └── RetryExhaustedError
    ├── TransformationError
    │   └── NormalizationError
    ├── LoadError
    │   ├── OversizedPayloadError
    │   ├── StoreCommitError
    │   ├── InvalidDocumentPathError
    │   └── DocumentNotFoundError
    ├── PhaseFatalError
    └── RetryableError / NonRetryableError (mixins)
"""

from typing import Optional, Dict, Any
from datetime import datetime, timezone


class ETLException(Exception):
    """
    Base exception for all ETL-related errors.

    Attributes:
        message: Human-readable error message
        context: Additional context information (deputy, path, timestamp, etc.)
        original_exception: The original exception that was caught (if any)
    """

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        self.message = message
        self.context = context or {}
        self.original_exception = original_exception
        self.timestamp = datetime.now(timezone.utc)

        self.context["error_timestamp"] = self.timestamp.isoformat()

        super().__init__(message)
        if original_exception:
            self.__cause__ = original_exception

    def __str__(self) -> str:
        """Format error message with context."""
        base_msg = f"{self.__class__.__name__}: {self.message}"

        if self.context:
            context_str = ", ".join(f"{k}={v}" for k, v in self.context.items())
            base_msg += f" | Context: {context_str}"

        if self.original_exception:
            base_msg += f" | Caused by: {type(self.original_exception).__name__}: {str(self.original_exception)}"

        return base_msg

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging/storage."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "original_error": str(self.original_exception) if self.original_exception else None
        }


# ============================================================================
# Retry Strategy Mixins
# ============================================================================

class RetryableError(ETLException):
    """
    Mixin for errors that should trigger retry logic.

    Use this for transient errors like:
    - Network timeouts
    - Rate limiting (HTTP 429)
    - Service unavailable (HTTP 5xx)
    """
    pass


class NonRetryableError(ETLException):
    """
    Mixin for errors that should NOT trigger retry logic.

    Use this for permanent errors like:
    - Resource not found (HTTP 404)
    - Invalid request parameters (HTTP 400)
    """
    pass


# ============================================================================
# Validation Errors
# ============================================================================

class ValidationError(ETLException):
    """
    Pre-flight configuration problem reported before any I/O.

    Context should include:
        - errors: The full list of validation messages
    """
    pass


# ============================================================================
# Extraction Errors
# ============================================================================

class ExtractionError(ETLException):
    """Base exception for data extraction failures."""
    pass


class APIExtractionError(ExtractionError):
    """
    Exception raised when a call to the upstream API fails.

    Context should include:
        - api_path: The API path that failed
        - status_code: HTTP status code (if applicable)
        - response_body: Response body (truncated if large)
    """
    pass


class NetworkError(RetryableError, APIExtractionError):
    """Transient upstream failure (timeout, transport error, HTTP 5xx)."""
    pass


class RateLimitError(RetryableError, APIExtractionError):
    """Rate limiting errors (HTTP 429) that should be retried with backoff."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[float] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after
        if retry_after:
            self.context["retry_after"] = retry_after


class ResourceNotFoundError(NonRetryableError, APIExtractionError):
    """Resource not found errors (HTTP 404) that should not be retried."""
    pass


class BadRequestError(NonRetryableError, APIExtractionError):
    """Invalid request parameters (HTTP 400) that should not be retried."""
    pass


class RetryExhaustedError(ExtractionError):
    """Raised when every retry attempt of an operation has failed."""

    def __init__(
        self,
        message: str,
        label: str,
        attempts: int,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        context = dict(context or {})
        context.update({"label": label, "attempts": attempts})
        super().__init__(message, context, original_exception)
        self.label = label
        self.attempts = attempts


# ============================================================================
# Transformation Errors
# ============================================================================

class TransformationError(ETLException):
    """Base exception for data transformation failures."""
    pass


class NormalizationError(TransformationError):
    """
    Exception raised when an upstream record cannot be normalized.

    Context should include:
        - deputy_id: Deputy the record belongs to
        - record_type: expense or speech
    """
    pass


# ============================================================================
# Load Errors
# ============================================================================

class LoadError(ETLException):
    """Base exception for data loading failures."""
    pass


class OversizedPayloadError(LoadError):
    """A single document too large to ever fit in a batch."""

    def __init__(
        self,
        message: str,
        estimated_bytes: int,
        limit_bytes: int,
        context: Optional[Dict[str, Any]] = None
    ):
        context = dict(context or {})
        context.update({"estimated_bytes": estimated_bytes, "limit_bytes": limit_bytes})
        super().__init__(message, context)
        self.estimated_bytes = estimated_bytes
        self.limit_bytes = limit_bytes


class StoreCommitError(LoadError):
    """A batch failed to commit (store error or commit timeout)."""

    def __init__(
        self,
        message: str,
        operation_count: int,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        context = dict(context or {})
        context["operation_count"] = operation_count
        super().__init__(message, context, original_exception)
        self.operation_count = operation_count


class InvalidDocumentPathError(LoadError):
    """Document path does not have an even number of segments."""
    pass


class DocumentNotFoundError(LoadError):
    """A patch targeted a document that does not exist."""
    pass


# ============================================================================
# Orchestration Errors
# ============================================================================

class PhaseFatalError(ETLException):
    """Uncaught exception raised by a pipeline phase."""

    def __init__(
        self,
        message: str,
        phase: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None
    ):
        context = dict(context or {})
        context["phase"] = phase
        super().__init__(message, context, original_exception)
        self.phase = phase
