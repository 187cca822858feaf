"""
Gemini OpenAI Proxy Application Entry Point

FastAPI application main entry, including router registration and application configuration.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from gemini_proxy import __version__
from gemini_proxy.api.proxy import openai_router
from gemini_proxy.common.error_translator import error_json_response
from gemini_proxy.common.errors import AppError
from gemini_proxy.config import Settings, get_settings
from gemini_proxy.converters.message_converter import MessageConverter
from gemini_proxy.engine.base import EngineClient
from gemini_proxy.engine.gemini_client import GeminiClient
from gemini_proxy.logging_config import setup_logging
from gemini_proxy.session.session_registry import SessionRegistry

logger = logging.getLogger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    engine_client: Optional[EngineClient] = None,
) -> FastAPI:
    """
    Build the FastAPI application

    Args:
        settings: Configuration (environment/.env when None)
        engine_client: Engine to proxy to (Gemini REST client when None)

    Returns:
        FastAPI: configured application
    """
    settings = settings or get_settings()
    setup_logging(settings)

    if engine_client is None:
        engine_client = GeminiClient(
            api_key=settings.GEMINI_API_KEY,
            base_url=settings.GEMINI_BASE_URL,
            timeout=settings.HTTP_TIMEOUT,
        )

    registry = SessionRegistry(
        engine_client,
        mode=settings.SESSION_MODE,
        default_model=settings.DEFAULT_MODEL,
        working_directory=settings.WORKING_DIR,
    )
    message_converter = MessageConverter(image_fetch_timeout=settings.IMAGE_FETCH_TIMEOUT)

    # Application Lifecycle Management
    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if not settings.GEMINI_API_KEY and isinstance(engine_client, GeminiClient):
            logger.warning("GEMINI_API_KEY not set - engine requests will be rejected upstream")
        if settings.PROXY_API_KEY:
            logger.info("Consumer API key authentication enabled")
        else:
            logger.info("PROXY_API_KEY not set - consumer authentication disabled")
        logger.info(
            "Session mode: %s, include thinking: %s", settings.SESSION_MODE, settings.INCLUDE_THINKING
        )
        yield
        # Shutdown
        await message_converter.close()
        await registry.close()

    app = FastAPI(
        title=settings.APP_NAME,
        description="OpenAI Chat Completions compatible proxy for Google Gemini",
        version=__version__,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.session_registry = registry
    app.state.message_converter = message_converter

    # Configure CORS
    allowed_origins = settings.cors_origin_list
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=allowed_origins != ["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Global Exception Handlers
    @app.exception_handler(AppError)
    async def app_error_handler(request: Request, exc: AppError):
        """Handle application custom exceptions"""
        if exc.status_code >= 500:
            logger.error("Request failed: %s %s: %s", request.method, request.url.path, exc.message)
        else:
            logger.warning("Request rejected: %s %s: %s", request.method, request.url.path, exc.message)
        return error_json_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.warning("Request validation failed: %s %s", request.method, request.url.path)
        return error_json_response(exc)

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return error_json_response(exc)

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """
        Handle uncaught exceptions

        The stack trace is logged, only the message is returned to clients.
        """
        logger.error(
            "Uncaught exception: %s\nPath: %s",
            str(exc),
            request.url.path,
            exc_info=exc,
        )
        return error_json_response(exc)

    # Health Check Endpoint
    @app.get("/health", tags=["Health"])
    async def health_check():
        """
        Health Check

        Used for service liveness checks.
        """
        return {"status": "healthy"}

    @app.get("/", tags=["Health"])
    async def root():
        """Basic service information"""
        return {
            "name": settings.APP_NAME,
            "version": __version__,
            "description": "OpenAI-compatible proxy for Google Gemini",
            "endpoints": ["/v1/chat/completions", "/v1/models", "/v1/models/{id}"],
        }

    # Register Proxy Routers
    app.include_router(openai_router)

    return app


app = create_app()
