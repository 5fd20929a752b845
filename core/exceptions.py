"""
Custom exceptions for the import pipeline with structured error context.

Exception Hierarchy:
    ImportException (base)
    ├── BatchNotFoundError
    ├── RunNotFoundError
    ├── ScriptError
    │   ├── ImporterNotConfiguredError
    │   ├── ScriptTimeoutError
    │   └── ProviderError
    │       ├── AuthenticationError
    │       ├── RateLimitError
    │       └── NetworkError
    └── DatabaseError

Pre-flight conditions of a trigger (no data sources, already running) are
not exceptions; they are returned as ``TriggerResult`` values.
"""

from typing import Optional, Dict, Any
from datetime import datetime


class ImportException(Exception):
    """
    Base exception for all import-related errors.

    Attributes:
        message: Human-readable error message (what a Run records)
        context: Additional context information (batch, data source, etc.)
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
        self.timestamp = datetime.utcnow()

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
# Lookup Errors
# ============================================================================

class BatchNotFoundError(ImportException):
    """Raised when an import batch id does not exist."""
    pass


class RunNotFoundError(ImportException):
    """Raised when an import run id does not exist."""
    pass


# ============================================================================
# Script Errors
# ============================================================================

class ScriptError(ImportException):
    """
    Base exception for a single script failure.

    Context should include:
        - provider: Provider of the data source
        - resource: Resource name of the script
    """
    pass


class ImporterNotConfiguredError(ScriptError):
    """Raised when a catalog resource has no importer registered."""
    pass


class ScriptTimeoutError(ScriptError):
    """
    Raised when a script exceeds its execution timeout.

    Context should include:
        - timeout_seconds: The timeout that was exceeded
    """
    pass


class ProviderError(ScriptError):
    """Base exception for provider API failures raised by importers."""
    pass


class AuthenticationError(ProviderError):
    """Authentication failures (HTTP 401, 403) against a provider."""
    pass


class RateLimitError(ProviderError):
    """Provider rate limiting (HTTP 429)."""

    def __init__(
        self,
        message: str,
        context: Optional[Dict[str, Any]] = None,
        original_exception: Optional[Exception] = None,
        retry_after: Optional[int] = None
    ):
        super().__init__(message, context, original_exception)
        self.retry_after = retry_after  # Seconds to wait before retry
        if retry_after:
            self.context["retry_after"] = retry_after


class NetworkError(ProviderError):
    """Network-related errors talking to a provider."""
    pass


# ============================================================================
# Persistence Errors
# ============================================================================

class DatabaseError(ImportException):
    """
    Exception raised when batch/run persistence fails.

    Context should include:
        - operation: Type of database operation (INSERT, UPDATE)
        - table_name: Name of the table
    """
    pass


def error_message_for(error: BaseException) -> str:
    """Human-readable message recorded on a failed Run."""
    if isinstance(error, ImportException):
        return error.message
    message = str(error)
    return message if message else type(error).__name__
