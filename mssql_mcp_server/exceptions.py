"""
Error taxonomy for the SQL execution tool.

Every failure the tool can report is a ``ToolError`` carrying an ``ErrorType``
tag, so internal code and tests branch on the tag rather than on message text.
Errors are rendered to text only at the tool boundary (``format_error_message``),
because the MCP client is expected to receive actionable text, not a protocol fault.
"""
from enum import Enum
from typing import Any, Dict, Optional


class ErrorType(str, Enum):
    """Kinds of failure the SQL tool can report."""

    CONFIG_MISSING = "config_missing"        # Connection string empty at acquire time
    CONNECTION_FAILED = "connection_failed"  # Open or health-check failed
    EXECUTION_FAILED = "execution_failed"    # Dispatch, timeout or column metadata failed
    ITERATION_FAILED = "iteration_failed"    # Cursor failed mid-stream
    PARAMETER_MISSING = "parameter_missing"  # Required tool argument absent


class ToolError(Exception):
    """Base class for errors raised by the SQL tool."""

    error_type: ErrorType = ErrorType.EXECUTION_FAILED

    def __init__(
        self,
        message: str,
        *,
        error_type: Optional[ErrorType] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        if error_type is not None:
            self.error_type = error_type
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class ToolInputError(ToolError):
    """Raised when a tool invocation carries invalid or missing arguments."""

    def __init__(self, message: str, *, param_name: Optional[str] = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.param_name = param_name


class ConfigMissingError(ToolError):
    error_type = ErrorType.CONFIG_MISSING


class ConnectionFailedError(ToolError):
    error_type = ErrorType.CONNECTION_FAILED


class ExecutionFailedError(ToolError):
    error_type = ErrorType.EXECUTION_FAILED


class IterationFailedError(ToolError):
    error_type = ErrorType.ITERATION_FAILED


class ParameterMissingError(ToolInputError):
    error_type = ErrorType.PARAMETER_MISSING


class ConnectionUnavailableError(ToolError):
    """Wraps a connection manager failure seen while running a query.

    Keeps the tag of the underlying error so callers can still tell a missing
    configuration apart from an unreachable server.
    """

    def __init__(self, cause: ToolError):
        super().__init__(
            f"database connection unavailable: {cause}",
            error_type=cause.error_type,
            details=dict(cause.details),
        )
        self.cause = cause


def format_error_message(error: BaseException) -> str:
    """Render an error as the text returned to the MCP client."""
    return f"Error: {error}"
