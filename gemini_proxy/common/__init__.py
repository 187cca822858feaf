"""
Common Module Initialization
"""

from gemini_proxy.common.error_translator import error_json_response, to_openai_error
from gemini_proxy.common.errors import (
    AppError,
    AuthenticationError,
    InvalidRequestError,
    NotFoundError,
    RequestAbortedError,
    UpstreamError,
)

__all__ = [
    "AppError",
    "AuthenticationError",
    "InvalidRequestError",
    "NotFoundError",
    "RequestAbortedError",
    "UpstreamError",
    "error_json_response",
    "to_openai_error",
]
