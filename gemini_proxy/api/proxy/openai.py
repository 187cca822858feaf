"""
OpenAI Proxy API

Provides OpenAI-compatible API endpoints.
"""

import asyncio
import logging
from typing import Any, AsyncIterator, Awaitable, Callable

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.types import Receive, Scope, Send

from gemini_proxy.api.deps import ChatServiceDep, ModelServiceDep, verify_api_key
from gemini_proxy.common.error_translator import error_json_response
from gemini_proxy.common.errors import AppError, InvalidRequestError
from gemini_proxy.domain.chat import ChatCompletionRequest

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Proxy - OpenAI"], dependencies=[Depends(verify_api_key)])

DISCONNECT_POLL_INTERVAL = 0.5

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def _log_failure(e: Exception) -> None:
    if isinstance(e, AppError) and e.status_code < 500:
        logger.warning("Chat completion rejected: %s (%s)", e.message, e.code)
    else:
        logger.error(f"Chat completion failed: {str(e)}", exc_info=True)


async def _watch_disconnect(request: Request, abort_signal: asyncio.Event) -> None:
    while not abort_signal.is_set():
        if await request.is_disconnected():
            logger.info("Client disconnected, aborting completion")
            abort_signal.set()
            return
        await asyncio.sleep(DISCONNECT_POLL_INTERVAL)


async def _run_with_disconnect_watch(
    request: Request,
    abort_signal: asyncio.Event,
    call: Callable[[], Awaitable[Any]],
) -> Any:
    watcher = asyncio.create_task(_watch_disconnect(request, abort_signal))
    try:
        return await call()
    finally:
        watcher.cancel()
        await asyncio.gather(watcher, return_exceptions=True)


class AbortableStreamingResponse(StreamingResponse):
    """
    Streaming response bound to a completion's abort signal.

    A disconnect watcher runs while the body is sent. The body generator is
    closed when the response ends, whether the server cancelled it or `send`
    raised for a vanished client.
    """

    def __init__(
        self,
        content: AsyncIterator[bytes],
        request: Request,
        abort_signal: asyncio.Event,
        **kwargs: Any,
    ):
        super().__init__(content, **kwargs)
        self.request = request
        self.abort_signal = abort_signal

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        watcher = asyncio.create_task(_watch_disconnect(self.request, self.abort_signal))
        try:
            await super().__call__(scope, receive, send)
        finally:
            self.abort_signal.set()
            watcher.cancel()
            await asyncio.gather(watcher, return_exceptions=True)
            aclose = getattr(self.body_iterator, "aclose", None)
            if aclose is not None:
                await aclose()


async def _parse_request(request: Request) -> ChatCompletionRequest:
    try:
        body = await request.json()
    except ValueError as e:
        raise InvalidRequestError(
            message="Request body must be valid JSON", code="invalid_json"
        ) from e
    if not isinstance(body, dict):
        raise InvalidRequestError(message="Request body must be a JSON object")
    return ChatCompletionRequest.model_validate(body)


@router.get("/v1/models")
async def list_models(service: ModelServiceDep):
    """
    OpenAI Models API (List)

    Returns the models this proxy advertises.
    """
    return service.list_models().model_dump()


@router.get("/v1/models/{model_id}")
async def retrieve_model(model_id: str, service: ModelServiceDep):
    """
    OpenAI Models API (Retrieve)

    Unknown ids raise NotFoundError, reported by the application error handler.
    """
    return service.get_model(model_id).model_dump()


@router.post("/v1/chat/completions")
async def chat_completions(request: Request, service: ChatServiceDep):
    """
    OpenAI Chat Completions API

    Streams `text/event-stream` frames when `stream` is true, otherwise
    returns a single `chat.completion` object.
    """
    abort_signal = asyncio.Event()
    try:
        chat_request = await _parse_request(request)

        if chat_request.is_stream:
            frames = await service.stream_completion(chat_request, abort_signal)
            return AbortableStreamingResponse(
                frames,
                request=request,
                abort_signal=abort_signal,
                media_type="text/event-stream",
                headers=SSE_HEADERS,
            )

        response = await _run_with_disconnect_watch(
            request,
            abort_signal,
            lambda: service.create_completion(chat_request, abort_signal),
        )
        return JSONResponse(content=response)

    except Exception as e:
        _log_failure(e)
        return error_json_response(e)
