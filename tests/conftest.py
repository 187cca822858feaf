"""
Test Configuration Module
"""

import asyncio
from typing import Any, AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gemini_proxy.config import Settings
from gemini_proxy.domain.events import ContentEvent, FinishedEvent
from gemini_proxy.engine.base import EngineChat, EngineClient
from gemini_proxy.main import create_app

DEFAULT_USAGE = {"promptTokenCount": 5, "candidatesTokenCount": 2, "totalTokenCount": 7}


class FakeChat(EngineChat):
    """Engine chat replaying scripted events and recording every call."""

    def __init__(self, engine: "FakeEngineClient", model: str, working_directory: str):
        super().__init__(model=model, working_directory=working_directory)
        self.engine = engine

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
    ):
        engine = self.engine
        engine.calls.append(
            {
                "chat": self,
                "history": self.history,
                "content": content,
                "model": model,
                "system_instruction": system_instruction,
                "generation_config": generation_config,
                "tools": tools,
                "tool_config": tool_config,
                "abort_signal": abort_signal,
            }
        )
        engine.active += 1
        engine.max_active = max(engine.max_active, engine.active)
        try:
            for item in engine.next_script():
                if engine.delay:
                    await asyncio.sleep(engine.delay)
                if isinstance(item, BaseException):
                    raise item
                yield item
            while engine.endless:
                await asyncio.sleep(0.01)
                yield ContentEvent(text="more")
        finally:
            engine.active -= 1
            engine.closed_streams += 1


class FakeEngineClient(EngineClient):
    """
    Scripted engine.

    Each call consumes the next script; the last script is reused once the
    others are used up. Exceptions in a script are raised at that position.
    """

    def __init__(self, scripts: Optional[list[list[Any]]] = None, delay: float = 0.0):
        self.scripts = list(scripts or [])
        self.delay = delay
        self.endless = False
        self.calls: list[dict[str, Any]] = []
        self.chats: list[FakeChat] = []
        self.active = 0
        self.max_active = 0
        self.closed_streams = 0
        self.closed = False

    def set_script(self, *events: Any) -> None:
        self.scripts = [list(events)]

    def next_script(self) -> list[Any]:
        if len(self.scripts) > 1:
            return self.scripts.pop(0)
        return list(self.scripts[0]) if self.scripts else []

    def create_chat(self, model: str, working_directory: str = ".") -> FakeChat:
        chat = FakeChat(self, model=model, working_directory=working_directory)
        self.chats.append(chat)
        return chat

    async def close(self) -> None:
        self.closed = True


def make_settings(**overrides: Any) -> Settings:
    values: dict[str, Any] = {
        "GEMINI_API_KEY": "test-gemini-key",
        "PROXY_API_KEY": None,
        "INCLUDE_THINKING": True,
        "SESSION_MODE": "per_request",
        "DEFAULT_MODEL": "gemini-2.5-flash",
        "STREAM_QUEUE_SIZE": 8,
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_engine() -> FakeEngineClient:
    return FakeEngineClient(
        scripts=[[ContentEvent(text="Test response"), FinishedEvent(reason="STOP", usage=DEFAULT_USAGE)]]
    )


@pytest.fixture
def app(settings: Settings, fake_engine: FakeEngineClient):
    return create_app(settings, engine_client=fake_engine)


@pytest_asyncio.fixture
async def client(app) -> AsyncGenerator[AsyncClient, None]:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


@pytest.fixture
def engine_factory():
    """Build additional scripted engines: engine_factory(scripts, delay=...)"""
    return FakeEngineClient


@pytest.fixture
def settings_factory():
    """Build Settings isolated from the environment: settings_factory(**overrides)"""
    return make_settings
