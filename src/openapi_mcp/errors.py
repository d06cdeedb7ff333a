"""
Name: Errors.
Description: Structured error type shared by every component. Each error carries a stable code, a human-readable message and a JSON-serializable details payload so it can be returned to a remote caller as-is.
"""

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import ValidationError


class ErrorCode(str, Enum):
    """Stable error kinds."""

    CONFIG_ERROR = "CONFIG_ERROR"
    API_NOT_FOUND = "API_NOT_FOUND"
    ENDPOINT_NOT_FOUND = "ENDPOINT_NOT_FOUND"
    AUTH_ERROR = "AUTH_ERROR"
    REQUEST_ERROR = "REQUEST_ERROR"
    SCHEMA_ERROR = "SCHEMA_ERROR"


class OpenApiMcpError(Exception):
    """Error raised by openapi-mcp components.

    Args:
        code: Error kind
        message: Human-readable message
        details: Optional JSON-serializable payload describing the failure
    """

    def __init__(self, code: ErrorCode, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.code = ErrorCode(code)
        self.message = message
        self.details = details

    def to_dict(self) -> Dict[str, Any]:
        """Convert the error to a JSON-serializable dictionary.

        Returns:
            Dictionary with code, message and (when present) details
        """
        payload: Dict[str, Any] = {"code": self.code.value, "message": self.message}
        if self.details is not None:
            payload["details"] = self.details
        return payload

    def __repr__(self) -> str:
        return f"OpenApiMcpError({self.code.value}, {self.message!r})"


def validation_issues(error: ValidationError) -> list:
    """Flatten a pydantic ValidationError into path/message pairs."""
    return [
        {"path": list(issue.get("loc", ())), "message": issue.get("msg", "")}
        for issue in error.errors()
    ]


def from_validation_error(
    error: ValidationError, code: ErrorCode, subject: str
) -> OpenApiMcpError:
    """Wrap a pydantic ValidationError into an OpenApiMcpError.

    The message names the first offending field, like ``retry429.maxRetries: ...``.

    Args:
        error: The validation error
        code: Error kind to use
        subject: Fallback field name when the issue has no location

    Returns:
        An OpenApiMcpError with the issue list as details
    """
    issues = validation_issues(error)
    first = issues[0] if issues else {"path": [], "message": str(error)}
    path = ".".join(str(part) for part in first["path"]) or subject
    return OpenApiMcpError(code, f"{path}: {first['message']}", {"issues": issues})


def as_error_response(error: BaseException) -> Dict[str, Any]:
    """Convert any exception into a structured error payload.

    Args:
        error: The exception to convert

    Returns:
        Dictionary with code, message and optional details
    """
    if isinstance(error, OpenApiMcpError):
        return error.to_dict()

    return {
        "code": ErrorCode.REQUEST_ERROR.value,
        "message": str(error) or error.__class__.__name__,
    }
