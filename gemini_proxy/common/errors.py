"""
Error Definitions

Defines the proxy's exception classes. Every error carries the OpenAI error
vocabulary (type / code) together with the HTTP status it is reported with.
"""

from typing import Any, Optional


class AppError(Exception):
    """
    Application Base Exception

    Base class for all custom exceptions, containing error message, type, and code.
    """

    def __init__(
        self,
        message: str,
        error_type: str = "api_error",
        code: str = "internal_error",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 500,
    ):
        """
        Initialize exception

        Args:
            message: Error message
            error_type: OpenAI error type
            code: OpenAI error code
            details: Extra error details (never sent to clients)
            status_code: HTTP status code
        """
        super().__init__(message)
        self.message = message
        self.error_type = error_type
        self.code = code
        self.details = details or {}
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary format (for API response)

        Returns:
            dict: OpenAI-compatible error body
        """
        return {
            "error": {
                "message": self.message,
                "type": self.error_type,
                "code": self.code,
            }
        }


class InvalidRequestError(AppError):
    """
    Invalid Request Error

    Raised when the request is malformed or misses required input.
    """

    def __init__(
        self,
        message: str = "Invalid request",
        code: str = "bad_request",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="invalid_request_error",
            code=code,
            details=details,
            status_code=400,
        )


class AuthenticationError(AppError):
    """
    Authentication Error

    Raised when the consumer API key is missing or wrong.
    """

    def __init__(
        self,
        message: str = "Invalid API key",
        code: str = "invalid_api_key",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="authentication_error",
            code=code,
            details=details,
            status_code=401,
        )


class NotFoundError(AppError):
    """Raised when a requested model does not exist."""

    def __init__(
        self,
        message: str = "Model not found",
        code: str = "model_not_found",
        details: Optional[dict[str, Any]] = None,
    ):
        super().__init__(
            message=message,
            error_type="invalid_request_error",
            code=code,
            details=details,
            status_code=404,
        )


class UpstreamError(AppError):
    """
    Upstream Service Error

    Raised when the engine fails or returns nothing usable.
    """

    def __init__(
        self,
        message: str = "Upstream service error",
        code: str = "server_error",
        details: Optional[dict[str, Any]] = None,
        status_code: int = 502,
    ):
        super().__init__(
            message=message,
            error_type="api_error",
            code=code,
            details=details,
            status_code=status_code,
        )


class RequestAbortedError(AppError):
    """Raised when the client went away while the engine was still running."""

    def __init__(self, message: str = "Request aborted by client"):
        super().__init__(
            message=message,
            error_type="api_error",
            code="request_aborted",
            status_code=499,
        )
