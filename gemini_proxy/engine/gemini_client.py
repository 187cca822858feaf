"""
Google Gemini Engine Client

Streams `streamGenerateContent` over SSE and turns each candidate part into a
semantic stream event.
"""

import asyncio
import json
import logging
import re
import uuid
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Optional

import httpx

from gemini_proxy.common.sse import SSEDecoder
from gemini_proxy.config import get_settings
from gemini_proxy.domain.events import (
    ContentEvent,
    FinishedEvent,
    StreamEvent,
    ThoughtEvent,
    ToolCallRequestEvent,
)
from gemini_proxy.engine.base import EngineAPIError, EngineChat, EngineClient

logger = logging.getLogger(__name__)

_THOUGHT_SUBJECT = re.compile(r"^\s*\*\*(.+?)\*\*\s*", re.DOTALL)


def parse_thought(text: str) -> tuple[str, str]:
    """Split a thought into its bold `**Subject**` heading and the description."""
    match = _THOUGHT_SUBJECT.match(text)
    if not match:
        return "", text
    return match.group(1).strip(), text[match.end():]


@dataclass
class _TurnState:
    model_parts: list[dict[str, Any]] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Optional[dict[str, Any]] = None


class GeminiChat(EngineChat):
    """Conversation backed by the Gemini REST API."""

    def __init__(self, client: "GeminiClient", model: str, working_directory: str = "."):
        super().__init__(model=model, working_directory=working_directory)
        self._client = client

    def _build_body(
        self,
        content: dict[str, Any],
        system_instruction: Optional[str],
        generation_config: Optional[dict[str, Any]],
        tools: Optional[list[dict[str, Any]]],
        tool_config: Optional[dict[str, Any]],
    ) -> dict[str, Any]:
        body: dict[str, Any] = {"contents": [*self._history, content]}
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        if generation_config:
            body["generationConfig"] = generation_config
        if tools:
            body["tools"] = tools
        if tool_config:
            body["toolConfig"] = tool_config
        return body

    async def send_message_stream(
        self,
        content: dict[str, Any],
        *,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        generation_config: Optional[dict[str, Any]] = None,
        tools: Optional[list[dict[str, Any]]] = None,
        tool_config: Optional[dict[str, Any]] = None,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> AsyncGenerator[StreamEvent, None]:
        target_model = model or self.model
        body = self._build_body(content, system_instruction, generation_config, tools, tool_config)
        url = self._client.build_url(f"/v1beta/models/{target_model}:streamGenerateContent")

        logger.debug(
            "Gemini Stream Request: url=%s turns=%d body=%s",
            url,
            len(body["contents"]),
            json.dumps(body, ensure_ascii=False)[:2000],
        )

        decoder = SSEDecoder()
        state = _TurnState()
        http = await self._client.get_http_client()

        try:
            async with http.stream(
                "POST",
                url,
                params={"alt": "sse"},
                headers=self._client.prepare_headers(),
                json=body,
            ) as response:
                if response.status_code >= 400:
                    await response.aread()
                    reason = response.reason_phrase or "Upstream error"
                    raise EngineAPIError(
                        status=response.status_code,
                        message=f"{response.status_code} {reason}",
                        response=response,
                    )

                async for chunk in response.aiter_bytes():
                    if abort_signal is not None and abort_signal.is_set():
                        logger.info("Gemini stream aborted: model=%s", target_model)
                        return
                    for payload in decoder.feed(chunk):
                        for event in self._handle_payload(payload, state):
                            yield event

                for payload in decoder.flush():
                    for event in self._handle_payload(payload, state):
                        yield event

        except httpx.TimeoutException as e:
            raise EngineAPIError(status=504, message=f"Request timeout: {str(e)}") from e
        except httpx.RequestError as e:
            raise EngineAPIError(status=502, message=f"Request error: {str(e)}") from e

        self.add_history(content)
        if state.model_parts:
            self.add_history({"role": "model", "parts": state.model_parts})

        yield FinishedEvent(reason=state.finish_reason, usage=state.usage)

    def _handle_payload(self, payload: str, state: _TurnState) -> list[StreamEvent]:
        if not payload or payload.strip() == "[DONE]":
            return []
        try:
            data = json.loads(payload)
        except json.JSONDecodeError:
            logger.warning("Skipping undecodable Gemini SSE payload: %s", payload[:200])
            return []
        if not isinstance(data, dict):
            return []

        error = data.get("error")
        if isinstance(error, dict):
            status = error.get("code") if isinstance(error.get("code"), int) else 500
            raise EngineAPIError(status=status, message=str(error.get("message") or "Engine error"))

        usage = data.get("usageMetadata")
        if isinstance(usage, dict):
            state.usage = usage

        events: list[StreamEvent] = []
        candidates = data.get("candidates")
        if not isinstance(candidates, list) or not candidates:
            feedback = data.get("promptFeedback")
            if isinstance(feedback, dict) and feedback.get("blockReason"):
                state.finish_reason = "SAFETY"
            return events

        cand = candidates[0] if isinstance(candidates[0], dict) else {}
        content = cand.get("content", {})
        parts = content.get("parts", []) if isinstance(content, dict) else []
        if isinstance(parts, list):
            for part in parts:
                if not isinstance(part, dict):
                    continue
                text = part.get("text")
                if part.get("thought"):
                    if isinstance(text, str) and text:
                        subject, description = parse_thought(text)
                        events.append(ThoughtEvent(subject=subject, description=description))
                    continue

                state.model_parts.append(part)
                if isinstance(text, str) and text:
                    events.append(ContentEvent(text=text))
                fc = part.get("functionCall")
                if isinstance(fc, dict) and isinstance(fc.get("name"), str):
                    args = fc.get("args")
                    events.append(
                        ToolCallRequestEvent(
                            call_id=fc.get("id") or f"call_{uuid.uuid4().hex}",
                            name=fc["name"],
                            args=args if isinstance(args, dict) else {},
                        )
                    )

        if cand.get("finishReason"):
            state.finish_reason = cand["finishReason"]
        return events


class GeminiClient(EngineClient):
    """Google Gemini native API client."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: Optional[int] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        settings = get_settings()
        self.api_key = api_key if api_key is not None else settings.GEMINI_API_KEY
        self.base_url = base_url or settings.GEMINI_BASE_URL
        self.timeout = timeout or settings.HTTP_TIMEOUT
        self._http: Optional[httpx.AsyncClient] = http_client

    def prepare_headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["x-goog-api-key"] = self.api_key
        return headers

    def build_url(self, path: str) -> str:
        cleaned_base = self.base_url.rstrip("/")
        cleaned_path = path if path.startswith("/") else f"/{path}"
        return f"{cleaned_base}{cleaned_path}"

    async def get_http_client(self) -> httpx.AsyncClient:
        """
        Get or create HTTP client instance

        Returns:
            httpx.AsyncClient: HTTP client instance
        """
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=httpx.Timeout(self.timeout))
        return self._http

    def create_chat(self, model: str, working_directory: str = ".") -> GeminiChat:
        return GeminiChat(self, model=model, working_directory=working_directory)

    async def close(self) -> None:
        """Close HTTP Client"""
        if self._http is not None:
            await self._http.aclose()
            self._http = None
