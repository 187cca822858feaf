"""
OpenAI SDK Compatibility Tests

Drives the proxy with the official `openai` client over an ASGI transport.
"""

import httpx
import pytest
from openai import AsyncOpenAI, RateLimitError

from gemini_proxy.domain.events import ContentEvent, FinishedEvent
from gemini_proxy.engine.base import EngineAPIError


def _sdk(app) -> AsyncOpenAI:
    http_client = httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test")
    return AsyncOpenAI(api_key="unused", base_url="http://test/v1", http_client=http_client, max_retries=0)


@pytest.mark.asyncio
async def test_sdk_chat_completion(app):
    client = _sdk(app)
    completion = await client.chat.completions.create(
        model="gemini-2.5-flash",
        messages=[{"role": "user", "content": "Hello"}],
    )
    assert completion.choices[0].message.content == "Test response"
    assert completion.choices[0].finish_reason == "stop"
    assert completion.usage.total_tokens == 7
    await client.close()


@pytest.mark.asyncio
async def test_sdk_streaming(app, fake_engine):
    fake_engine.set_script(
        ContentEvent(text="one "),
        ContentEvent(text="two"),
        FinishedEvent(reason="STOP"),
    )
    client = _sdk(app)
    stream = await client.chat.completions.create(
        model="gemini-2.5-flash",
        messages=[{"role": "user", "content": "count"}],
        stream=True,
    )
    text = ""
    finish_reasons = []
    async for chunk in stream:
        if chunk.choices[0].delta.content:
            text += chunk.choices[0].delta.content
        if chunk.choices[0].finish_reason:
            finish_reasons.append(chunk.choices[0].finish_reason)
    assert text == "one two"
    assert finish_reasons == ["stop"]
    await client.close()


@pytest.mark.asyncio
async def test_sdk_models(app):
    client = _sdk(app)
    page = await client.models.list()
    assert "gemini-2.5-flash" in [m.id for m in page.data]
    model = await client.models.retrieve("auto")
    assert model.owned_by == "google"
    await client.close()


@pytest.mark.asyncio
async def test_sdk_sees_typed_errors(app, fake_engine):
    fake_engine.set_script(EngineAPIError(status=429, message="Slow down"))
    client = _sdk(app)
    with pytest.raises(RateLimitError) as exc_info:
        await client.chat.completions.create(
            model="gemini-2.5-flash",
            messages=[{"role": "user", "content": "Hello"}],
        )
    assert exc_info.value.status_code == 429
    await client.close()
