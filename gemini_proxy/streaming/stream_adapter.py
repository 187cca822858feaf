"""
Stream Adapter

Turns engine stream events into OpenAI `chat.completion.chunk` dicts,
terminated by the literal "[DONE]" sentinel.
"""

import json
import time
import uuid
from typing import Any, AsyncGenerator, AsyncIterable, Optional, Union

from gemini_proxy.common.sse import DONE_SENTINEL
from gemini_proxy.domain.events import (
    ContentEvent,
    FinishedEvent,
    StreamEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
)

_FINISH_REASON_MAP = {
    "STOP": "stop",
    "MAX_TOKENS": "length",
    "SAFETY": "content_filter",
    "RECITATION": "content_filter",
    "OTHER": "content_filter",
}


def map_finish_reason(reason: Optional[str]) -> str:
    """Map a Gemini finish reason to OpenAI; unknown or missing -> "stop"."""
    if reason is None:
        return "stop"
    return _FINISH_REASON_MAP.get(reason, "stop")


def _token_count(usage: dict[str, Any], key: str) -> int:
    value = usage.get(key)
    return value if isinstance(value, int) and not isinstance(value, bool) else 0


def gemini_usage_to_openai(usage: Any) -> dict[str, Any]:
    """
    Map Gemini `usageMetadata` to OpenAI `usage`.

    Gemini counts thinking tokens apart from candidate tokens, OpenAI folds
    them into `completion_tokens` and reports them again as reasoning tokens.
    """
    if not isinstance(usage, dict):
        return {}
    prompt = _token_count(usage, "promptTokenCount")
    thoughts = _token_count(usage, "thoughtsTokenCount")
    completion = _token_count(usage, "candidatesTokenCount") + thoughts
    total = _token_count(usage, "totalTokenCount") or prompt + completion

    out: dict[str, Any] = {
        "prompt_tokens": prompt,
        "completion_tokens": completion,
        "total_tokens": total,
    }
    if "cachedContentTokenCount" in usage:
        out["prompt_tokens_details"] = {
            "cached_tokens": _token_count(usage, "cachedContentTokenCount")
        }
    if thoughts:
        out["completion_tokens_details"] = {"reasoning_tokens": thoughts}
    return out


class StreamAdapter:
    """
    Engine events -> OpenAI streaming chunks.

    Every chunk of one response shares the same `id` and `created`. Only the
    first chunk carries `delta.role`. Tool-call indices are contiguous from 0.
    """

    def __init__(self, model: str, include_reasoning: bool = True):
        self.model = model
        self.include_reasoning = include_reasoning

    def _chunk(
        self,
        chunk_id: str,
        created: int,
        delta: dict[str, Any],
        finish_reason: Optional[str] = None,
    ) -> dict[str, Any]:
        return {
            "id": chunk_id,
            "object": "chat.completion.chunk",
            "created": created,
            "model": self.model,
            "choices": [
                {
                    "index": 0,
                    "delta": delta,
                    "finish_reason": finish_reason,
                }
            ],
        }

    async def adapt(
        self, events: AsyncIterable[StreamEvent]
    ) -> AsyncGenerator[Union[dict[str, Any], str], None]:
        chunk_id = f"chatcmpl-{uuid.uuid4().hex}"
        created = int(time.time())
        is_first = True
        tool_index = 0
        finished: Optional[FinishedEvent] = None

        async for event in events:
            if isinstance(event, FinishedEvent):
                finished = event
                continue

            delta: dict[str, Any] = {}
            if isinstance(event, ContentEvent):
                if event.text:
                    delta["content"] = event.text
            elif isinstance(event, ThoughtEvent):
                if self.include_reasoning and event.description:
                    delta["reasoning_content"] = event.description
            elif isinstance(event, ToolCallRequestEvent):
                delta["tool_calls"] = [
                    {
                        "index": tool_index,
                        "id": event.call_id,
                        "type": "function",
                        "function": {
                            "name": event.name,
                            "arguments": json.dumps(event.args, ensure_ascii=False),
                        },
                    }
                ]
                tool_index += 1

            if is_first:
                delta = {"role": "assistant", **delta}
                is_first = False

            if delta:
                yield self._chunk(chunk_id, created, delta)

        final = self._chunk(
            chunk_id,
            created,
            {},
            finish_reason=map_finish_reason(finished.reason if finished else None),
        )
        if finished is not None and finished.usage:
            final["usage"] = gemini_usage_to_openai(finished.usage)
        yield final
        yield DONE_SENTINEL
