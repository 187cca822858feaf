"""
Response Aggregator

Folds a sequence of streaming chunks back into a single non-streaming
`chat.completion` response.
"""

import time
import uuid
from dataclasses import dataclass
from typing import Any, AsyncIterable, Optional, Union

from gemini_proxy.common.errors import UpstreamError

EMPTY_RESPONSE_MESSAGE = (
    "No content received from the model. The request may have been rejected."
)


@dataclass
class ToolCallBuilder:
    """Accumulates the fragments of one tool call."""

    id: Optional[str] = None
    name: str = ""
    arguments: str = ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id or f"call_{uuid.uuid4().hex}",
            "type": "function",
            "function": {"name": self.name, "arguments": self.arguments},
        }


class ResponseAggregator:
    """Chunk accumulator; `build()` produces the final response body."""

    def __init__(self, model: str):
        self.model = model
        self._id: Optional[str] = None
        self._created: Optional[int] = None
        self._content: list[str] = []
        self._reasoning: list[str] = []
        # index -> builder, indices may arrive sparse or out of order
        self._tool_calls: dict[int, ToolCallBuilder] = {}
        self._finish_reason: Optional[str] = None
        self._usage: Optional[dict[str, Any]] = None

    def feed(self, chunk: Union[dict[str, Any], str]) -> None:
        if not isinstance(chunk, dict):
            return

        if self._id is None and isinstance(chunk.get("id"), str):
            self._id = chunk["id"]
        if self._created is None and isinstance(chunk.get("created"), int):
            self._created = chunk["created"]
        if isinstance(chunk.get("usage"), dict):
            self._usage = chunk["usage"]

        for choice in chunk.get("choices") or []:
            delta = choice.get("delta") or {}

            content = delta.get("content")
            if isinstance(content, str):
                self._content.append(content)

            reasoning = delta.get("reasoning_content")
            if isinstance(reasoning, str):
                self._reasoning.append(reasoning)

            for tc in delta.get("tool_calls") or []:
                index = tc.get("index", len(self._tool_calls))
                builder = self._tool_calls.setdefault(index, ToolCallBuilder())
                if tc.get("id"):
                    builder.id = tc["id"]
                fn = tc.get("function") or {}
                if fn.get("name"):
                    builder.name += fn["name"]
                if fn.get("arguments"):
                    builder.arguments += fn["arguments"]

            if choice.get("finish_reason"):
                self._finish_reason = choice["finish_reason"]

    def build(self) -> dict[str, Any]:
        """
        Build the aggregated response.

        Raises:
            UpstreamError: The stream carried neither content nor tool calls
        """
        content = "".join(self._content)
        if not content and not self._tool_calls:
            raise UpstreamError(message=EMPTY_RESPONSE_MESSAGE, code="empty_response")

        message: dict[str, Any] = {
            "role": "assistant",
            "content": content or None,
        }
        reasoning = "".join(self._reasoning)
        if reasoning:
            message["reasoning_content"] = reasoning
        if self._tool_calls:
            message["tool_calls"] = [
                builder.to_dict() for _, builder in sorted(self._tool_calls.items())
            ]

        usage = {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0}
        usage.update(self._usage or {})
        return {
            "id": self._id or f"chatcmpl-{uuid.uuid4().hex}",
            "object": "chat.completion",
            "created": self._created or int(time.time()),
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "message": message,
                    "finish_reason": self._finish_reason or "stop",
                }
            ],
            "usage": usage,
        }


async def aggregate(
    chunks: AsyncIterable[Union[dict[str, Any], str]], model: str
) -> dict[str, Any]:
    """Consume an adapted chunk stream and return the non-streaming response."""
    aggregator = ResponseAggregator(model)
    async for chunk in chunks:
        aggregator.feed(chunk)
    return aggregator.build()
