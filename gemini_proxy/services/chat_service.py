"""
Chat Completion Service Module

Orchestrates one Chat Completions request:
validate -> convert -> acquire session -> invoke engine -> stream or aggregate.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, AsyncGenerator, Optional, Union

from gemini_proxy.common.error_translator import to_openai_error
from gemini_proxy.common.errors import InvalidRequestError, RequestAbortedError
from gemini_proxy.common.sse import DONE_SENTINEL, encode_sse_data, encode_sse_item, encode_sse_json
from gemini_proxy.converters import (
    ConversionResult,
    MessageConverter,
    build_generation_config,
    convert_tool_choice,
    convert_tools,
)
from gemini_proxy.domain.chat import ChatCompletionRequest
from gemini_proxy.session.session_registry import SessionRegistry
from gemini_proxy.streaming.aggregator import aggregate
from gemini_proxy.streaming.channel import EventChannel
from gemini_proxy.streaming.stream_adapter import StreamAdapter

logger = logging.getLogger(__name__)


@dataclass
class PreparedTurn:
    """Converted request, ready for submission to a session."""

    conversion: ConversionResult
    generation_config: Optional[dict[str, Any]] = None
    tools: Optional[list[dict[str, Any]]] = None
    tool_config: Optional[dict[str, Any]] = None


class ChatCompletionService:
    """
    Chat Completion Service

    Input validation and conversion happen before any engine call, so their
    failures surface as ordinary HTTP errors even for streaming requests.
    """

    def __init__(
        self,
        registry: SessionRegistry,
        converter: MessageConverter,
        include_reasoning: bool = True,
        stream_queue_size: int = 64,
    ):
        self.registry = registry
        self.converter = converter
        self.include_reasoning = include_reasoning
        self.stream_queue_size = stream_queue_size

    def validate(self, request: ChatCompletionRequest) -> None:
        """
        Validate required request fields

        Raises:
            InvalidRequestError: messages empty or model missing
        """
        if not request.messages:
            raise InvalidRequestError(
                message="messages is required and must be a non-empty array",
                code="invalid_messages",
            )
        if not request.model:
            raise InvalidRequestError(
                message="model is required",
                code="invalid_model",
            )

    async def prepare(self, request: ChatCompletionRequest) -> PreparedTurn:
        self.validate(request)
        logger.debug(
            "Chat completion request: model=%s stream=%s messages=%d tools=%d",
            request.model,
            request.is_stream,
            len(request.messages or []),
            len(request.tools or []),
        )

        conversion = await self.converter.convert(request.messages or [])
        if not conversion.contents:
            raise InvalidRequestError(message="No user message found", code="invalid_messages")

        tools = convert_tools(request.tools)
        return PreparedTurn(
            conversion=conversion,
            generation_config=build_generation_config(
                request, include_thoughts=self.include_reasoning
            ),
            tools=tools,
            # Gemini rejects a function calling config without declarations
            tool_config=convert_tool_choice(request.tool_choice) if tools else None,
        )

    async def _run(
        self,
        request: ChatCompletionRequest,
        turn: PreparedTurn,
        abort_signal: asyncio.Event,
    ) -> AsyncGenerator[Union[dict[str, Any], str], None]:
        contents = turn.conversion.contents
        async with self.registry.acquire(model=request.model) as session:
            chat = session.client
            # Clients resend the whole conversation; the last turn is the new message
            chat.set_history(contents[:-1])
            events = chat.send_message_stream(
                contents[-1],
                model=request.model,
                system_instruction=turn.conversion.system_instruction,
                generation_config=turn.generation_config,
                tools=turn.tools,
                tool_config=turn.tool_config,
                abort_signal=abort_signal,
            )
            adapter = StreamAdapter(request.model or session.model, self.include_reasoning)
            async with EventChannel(
                events, maxsize=self.stream_queue_size, abort_signal=abort_signal
            ) as channel:
                async for chunk in adapter.adapt(channel):
                    yield chunk

    async def create_completion(
        self,
        request: ChatCompletionRequest,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> dict[str, Any]:
        """
        Non-streaming completion

        Returns:
            dict: `chat.completion` response body

        Raises:
            AppError: validation, conversion or empty engine output
            EngineAPIError: engine rejected the request
        """
        turn = await self.prepare(request)
        chunks = self._run(request, turn, abort_signal or asyncio.Event())
        try:
            return await aggregate(chunks, request.model or "")
        finally:
            await chunks.aclose()

    async def stream_completion(
        self,
        request: ChatCompletionRequest,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[bytes, None]:
        """
        Streaming completion

        Returns an SSE byte generator. Errors raised once streaming has begun
        are sent in-band as an error frame followed by `[DONE]`.
        """
        turn = await self.prepare(request)
        return self._stream_frames(request, turn, abort_signal or asyncio.Event())

    async def _stream_frames(
        self,
        request: ChatCompletionRequest,
        turn: PreparedTurn,
        abort_signal: asyncio.Event,
    ) -> AsyncGenerator[bytes, None]:
        chunks = self._run(request, turn, abort_signal)
        try:
            async for chunk in chunks:
                yield encode_sse_item(chunk)
        except RequestAbortedError:
            logger.info("Client disconnected, stream aborted: model=%s", request.model)
        except Exception as e:
            logger.error("Streaming chat completion failed: %s", e, exc_info=True)
            yield encode_sse_json(to_openai_error(e).body)
            yield encode_sse_data(DONE_SENTINEL)
        finally:
            abort_signal.set()
            await chunks.aclose()
