"""
Error Translator

Normalizes every failure shape the proxy can meet (application errors,
request validation errors, upstream provider errors, plain exceptions) into
one OpenAI-compatible error body and HTTP status.
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Optional

import httpx
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from gemini_proxy.common.errors import AppError


@dataclass(frozen=True)
class ExtractedError:
    """Status and message pulled out of a foreign provider error."""

    status: int
    message: str


@dataclass(frozen=True)
class TranslatedError:
    """Result of translating an error: HTTP status plus OpenAI error body."""

    status_code: int
    body: dict[str, Any]

    @property
    def error_type(self) -> str:
        return self.body["error"]["type"]

    @property
    def code(self) -> str:
        return self.body["error"]["code"]

    @property
    def message(self) -> str:
        return self.body["error"]["message"]


def map_status_to_error_type(status: int) -> tuple[str, str]:
    """
    Map an HTTP status code to the OpenAI (type, code) pair.

    Args:
        status: HTTP status code

    Returns:
        tuple: (error type, error code)
    """
    if status == 400:
        return "invalid_request_error", "bad_request"
    if status == 401:
        return "authentication_error", "invalid_api_key"
    if status == 403:
        return "permission_error", "insufficient_permissions"
    if status == 404:
        return "invalid_request_error", "model_not_found"
    if status == 429:
        return "rate_limit_error", "rate_limit_exceeded"
    if status >= 500:
        return "api_error", "server_error"
    return "api_error", "internal_error"


def create_openai_error(status: int, message: str) -> dict[str, Any]:
    """Build an OpenAI error body for a status code."""
    error_type, code = map_status_to_error_type(status)
    return {
        "error": {
            "message": message,
            "type": error_type,
            "code": code,
        }
    }


def is_openai_error_format(obj: Any) -> bool:
    """Whether `obj` already looks like {"error": {"message": str, "type": str}}."""
    if not isinstance(obj, Mapping):
        return False
    error = obj.get("error")
    return (
        isinstance(error, Mapping)
        and isinstance(error.get("message"), str)
        and isinstance(error.get("type"), str)
    )


def _field(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, Mapping):
        return obj.get(name)
    return getattr(obj, name, None)


def _as_status(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    return None


def _response_data(response: Any) -> Any:
    data = _field(response, "data")
    if data is None and isinstance(response, httpx.Response):
        try:
            data = response.text
        except httpx.ResponseNotRead:
            data = None
    return data


def _message_from_payload(payload: Any) -> Optional[str]:
    # Gemini's streaming endpoint wraps error bodies in a one-element list
    if isinstance(payload, list) and payload:
        payload = payload[0]
    if not isinstance(payload, Mapping):
        return None
    error = payload.get("error")
    if isinstance(error, Mapping) and isinstance(error.get("message"), str):
        return error["message"]
    if isinstance(payload.get("message"), str):
        return payload["message"]
    return None


def _message_from_data(data: Any) -> Optional[str]:
    if isinstance(data, (bytes, bytearray)):
        data = data.decode("utf-8", errors="ignore")
    if isinstance(data, str):
        if not data.strip():
            return None
        try:
            parsed = json.loads(data)
        except json.JSONDecodeError:
            return data
        return _message_from_payload(parsed)
    return _message_from_payload(data)


def extract_provider_error(error: Any) -> Optional[ExtractedError]:
    """
    Extract status and message from a provider-style error.

    Accepts objects and mappings carrying either a direct `status` /
    `status_code`, or a nested `response.status` / `response.status_code`.

    Returns:
        Optional[ExtractedError]: None when no status can be discovered
    """
    if error is None:
        return None

    response = _field(error, "response")
    status = _as_status(_field(error, "status"))
    if status is None:
        status = _as_status(_field(error, "status_code"))
    if status is None:
        status = _as_status(_field(response, "status"))
    if status is None:
        status = _as_status(_field(response, "status_code"))
    if status is None:
        return None

    message = None
    if response is not None:
        message = _message_from_data(_response_data(response))

    if not message:
        top_level = _field(error, "message")
        if isinstance(top_level, str) and top_level:
            message = top_level
        elif isinstance(error, BaseException) and str(error):
            message = str(error)

    if not message:
        status_text = _field(response, "statusText") or _field(response, "reason_phrase")
        if isinstance(status_text, str) and status_text:
            message = status_text

    return ExtractedError(status=status, message=message or f"HTTP {status} error")


def _validation_message(errors: list[Any]) -> str:
    messages = []
    for err in errors:
        loc = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        msg = err.get("msg", "Invalid value")
        messages.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(messages) or "Request validation failed"


def to_openai_error(error: BaseException) -> TranslatedError:
    """
    Translate any error into (status, OpenAI error body).

    Args:
        error: The caught exception

    Returns:
        TranslatedError: status code and body
    """
    if isinstance(error, AppError):
        return TranslatedError(status_code=error.status_code, body=error.to_dict())

    if isinstance(error, (RequestValidationError, PydanticValidationError)):
        message = _validation_message(list(error.errors()))
        return TranslatedError(status_code=400, body=create_openai_error(400, message))

    if isinstance(error, StarletteHTTPException):
        message = error.detail if isinstance(error.detail, str) else f"HTTP {error.status_code} error"
        return TranslatedError(
            status_code=error.status_code,
            body=create_openai_error(error.status_code, message),
        )

    extracted = extract_provider_error(error)
    if extracted is not None:
        return TranslatedError(
            status_code=extracted.status,
            body=create_openai_error(extracted.status, extracted.message),
        )

    message = str(error) or "Internal server error"
    return TranslatedError(status_code=500, body=create_openai_error(500, message))


def error_json_response(error: BaseException) -> JSONResponse:
    """Render a translated error as a FastAPI JSON response."""
    translated = to_openai_error(error)
    return JSONResponse(content=translated.body, status_code=translated.status_code)
