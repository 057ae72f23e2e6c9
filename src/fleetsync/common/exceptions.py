"""Custom exceptions for FleetSync.

Provides a hierarchy of exceptions with stable error codes, CLI exit
codes and structured error payloads.
"""

from typing import Any


class FleetSyncError(Exception):
    """Base exception for all FleetSync errors."""

    exit_code: int = 1
    error_code: str = "INTERNAL_ERROR"
    message: str = "An internal error occurred"

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        cause: Exception | None = None,
    ) -> None:
        """Initialize exception with optional details.

        Args:
            message: Human-readable error message.
            details: Additional error details for debugging.
            cause: Original exception that caused this error.
        """
        self.message = message or self.message
        self.details = details or {}
        self.cause = cause
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to a dictionary for CLI output."""
        result = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = self.details
        return result


# Invalid input
class ValidationError(FleetSyncError):
    """Input validation failed."""

    exit_code = 2
    error_code = "VALIDATION_ERROR"
    message = "Validation failed"


# Missing records
class NotFoundError(FleetSyncError):
    """Resource not found."""

    exit_code = 3
    error_code = "NOT_FOUND"
    message = "Resource not found"


class ProviderNotFoundError(NotFoundError):
    """Provider not found."""

    error_code = "PROVIDER_NOT_FOUND"
    message = "Provider not found"


class ProjectNotFoundError(NotFoundError):
    """Project not found."""

    error_code = "PROJECT_NOT_FOUND"
    message = "Project not found"


# Conflicting records
class ConflictError(FleetSyncError):
    """Resource conflict."""

    exit_code = 4
    error_code = "CONFLICT"
    message = "Resource conflict"


class DuplicateProviderError(ConflictError):
    """Duplicate provider."""

    error_code = "DUPLICATE_PROVIDER"
    message = "Provider with this name already exists"


# Configuration problems, raised before any external call
class ConfigurationError(FleetSyncError):
    """Configuration error."""

    exit_code = 5
    error_code = "CONFIGURATION_ERROR"
    message = "Configuration error"


class BackendConfigurationError(ConfigurationError):
    """State backend location is incomplete."""

    error_code = "BACKEND_CONFIGURATION_ERROR"
    message = "State backend configuration is incomplete"


# Persistence problems
class StateStoreError(FleetSyncError):
    """State store operation failed."""

    exit_code = 6
    error_code = "STATE_STORE_ERROR"
    message = "State store operation failed"


# External commands and documents
class ExternalServiceError(FleetSyncError):
    """External service error."""

    exit_code = 7
    error_code = "EXTERNAL_SERVICE_ERROR"
    message = "External service unavailable"


class CommandFailedError(ExternalServiceError):
    """External command exited non-zero or could not be started."""

    error_code = "COMMAND_FAILED"
    message = "External command failed"


class CommandTimeoutError(ExternalServiceError):
    """External command exceeded its time limit."""

    error_code = "COMMAND_TIMEOUT"
    message = "External command timed out"


class CommandOutputLimitError(ExternalServiceError):
    """External command produced more output than allowed."""

    error_code = "COMMAND_OUTPUT_LIMIT"
    message = "External command output exceeded the size limit"


class StateDocumentError(ExternalServiceError):
    """State document missing or malformed."""

    error_code = "STATE_DOCUMENT_ERROR"
    message = "State document could not be read"
