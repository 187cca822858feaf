"""
Model Engine Base Classes

Defines the abstract contract the proxy consumes: submit one conversation
turn, receive an ordered stream of semantic events.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import Any, AsyncIterator, Optional

import httpx

from gemini_proxy.domain.events import StreamEvent


class EngineAPIError(Exception):
    """
    Engine API Error

    Raised when the engine rejects a request. Carries the upstream status and,
    when available, the (already read) HTTP response.
    """

    def __init__(
        self,
        status: int,
        message: str,
        response: Optional[httpx.Response] = None,
    ):
        super().__init__(message)
        self.status = status
        self.message = message
        self.response = response


class EngineChat(ABC):
    """
    One conversation with the engine.

    Holds the turn history that is sent ahead of every new message.
    """

    def __init__(self, model: str, working_directory: str = "."):
        self.model = model
        self.working_directory = working_directory
        self._history: list[dict[str, Any]] = []

    @property
    def history(self) -> list[dict[str, Any]]:
        return list(self._history)

    def set_history(self, contents: list[dict[str, Any]]) -> None:
        """Replace the whole history (clients resend the conversation each call)."""
        self._history = list(contents)

    def add_history(self, content: dict[str, Any]) -> None:
        self._history.append(content)

    @abstractmethod
    def send_message_stream(
        self,
        content: dict[str, Any],
        *,
        model: Optional[str] = None,
        system_instruction: Optional[str] = None,
        generation_config: Optional[dict[str, Any]] = None,
        tools: Optional[list[dict[str, Any]]] = None,
        tool_config: Optional[dict[str, Any]] = None,
        abort_signal: Optional[asyncio.Event] = None,
    ) -> AsyncIterator[StreamEvent]:
        """
        Submit `content` as the next turn and stream the engine's events.

        Args:
            content: Gemini Content dict for the new turn
            model: Overrides the chat's model for this turn
            system_instruction: System instruction text
            generation_config: Gemini generationConfig overrides
            tools: Gemini tool declarations
            tool_config: Gemini toolConfig
            abort_signal: Set by the caller to stop generation early

        Yields:
            StreamEvent: events in emission order, FinishedEvent last
        """
        pass


class EngineClient(ABC):
    """Factory for engine chats, owning any shared transport."""

    @abstractmethod
    def create_chat(self, model: str, working_directory: str = ".") -> EngineChat:
        pass

    async def close(self) -> None:
        """Release transport resources"""
        return None
