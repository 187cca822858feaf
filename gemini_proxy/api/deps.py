"""
API Dependency Injection Module

Provides dependencies required by FastAPI routes.
"""

import hmac
from typing import Annotated, Optional

from fastapi import Depends, Header, Request

from gemini_proxy.common.errors import AuthenticationError
from gemini_proxy.config import Settings
from gemini_proxy.converters.message_converter import MessageConverter
from gemini_proxy.services import ChatCompletionService, ModelService
from gemini_proxy.session.session_registry import SessionRegistry


# ============ Application State ============

def get_app_settings(request: Request) -> Settings:
    """Settings the application was created with"""
    return request.app.state.settings


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_session_registry(request: Request) -> SessionRegistry:
    return request.app.state.session_registry


def get_message_converter(request: Request) -> MessageConverter:
    return request.app.state.message_converter


# ============ Service Dependencies ============

def get_chat_service(
    settings: AppSettings,
    registry: Annotated[SessionRegistry, Depends(get_session_registry)],
    converter: Annotated[MessageConverter, Depends(get_message_converter)],
) -> ChatCompletionService:
    """Get chat completion service"""
    return ChatCompletionService(
        registry,
        converter,
        include_reasoning=settings.INCLUDE_THINKING,
        stream_queue_size=settings.STREAM_QUEUE_SIZE,
    )


_model_service = ModelService()


def get_model_service() -> ModelService:
    """Get model catalog service"""
    return _model_service


# ============ Authentication Dependencies ============

def _extract_bearer_token(authorization: Optional[str]) -> Optional[str]:
    if not authorization:
        return None
    parts = authorization.split(" ")
    if len(parts) != 2 or parts[0].lower() != "bearer" or not parts[1]:
        return None
    return parts[1]


async def verify_api_key(
    settings: AppSettings,
    authorization: Optional[str] = Header(None, description="Bearer token"),
) -> None:
    """
    Consumer API key check

    Enabled only when PROXY_API_KEY is set, otherwise every request passes.

    Raises:
        AuthenticationError: header missing/malformed, or key mismatch
    """
    expected = settings.PROXY_API_KEY
    if not expected:
        return

    token = _extract_bearer_token(authorization)
    if token is None:
        raise AuthenticationError(
            message="Missing Authorization header. Expected: Bearer <api_key>",
            code="missing_api_key",
        )
    if not hmac.compare_digest(token.encode("utf-8"), expected.encode("utf-8")):
        raise AuthenticationError(message="Invalid API key", code="invalid_api_key")


# Dependency type aliases
ChatServiceDep = Annotated[ChatCompletionService, Depends(get_chat_service)]
ModelServiceDep = Annotated[ModelService, Depends(get_model_service)]
