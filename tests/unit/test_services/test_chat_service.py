import asyncio
import json

import pytest

from gemini_proxy.common.errors import InvalidRequestError, UpstreamError
from gemini_proxy.converters.message_converter import MessageConverter
from gemini_proxy.domain.chat import ChatCompletionRequest
from gemini_proxy.domain.events import ContentEvent, FinishedEvent, ToolCallRequestEvent
from gemini_proxy.engine.base import EngineAPIError
from gemini_proxy.services.chat_service import ChatCompletionService
from gemini_proxy.session.session_registry import SessionRegistry


def _service(engine, mode="per_request", include_reasoning=True, queue_size=4):
    registry = SessionRegistry(engine, mode=mode)
    return ChatCompletionService(
        registry,
        MessageConverter(),
        include_reasoning=include_reasoning,
        stream_queue_size=queue_size,
    )


def _request(messages=None, **kwargs) -> ChatCompletionRequest:
    body = {
        "model": "gemini-2.5-flash",
        "messages": messages if messages is not None else [{"role": "user", "content": "Hi"}],
    }
    body.update(kwargs)
    return ChatCompletionRequest.model_validate(body)


def _frames(raw: list[bytes]) -> list:
    out = []
    for frame in raw:
        text = frame.decode()
        assert text.startswith("data: ") and text.endswith("\n\n")
        payload = text[len("data: "):-2]
        out.append(payload if payload == "[DONE]" else json.loads(payload))
    return out


class TestValidation:
    @pytest.mark.asyncio
    async def test_empty_messages(self, fake_engine):
        with pytest.raises(InvalidRequestError) as exc_info:
            await _service(fake_engine).create_completion(_request(messages=[]))
        assert exc_info.value.code == "invalid_messages"
        assert fake_engine.calls == []

    @pytest.mark.asyncio
    async def test_missing_model(self, fake_engine):
        request = ChatCompletionRequest.model_validate({"messages": [{"role": "user", "content": "x"}]})
        with pytest.raises(InvalidRequestError) as exc_info:
            await _service(fake_engine).create_completion(request)
        assert exc_info.value.code == "invalid_model"

    @pytest.mark.asyncio
    async def test_no_user_message(self, fake_engine):
        with pytest.raises(InvalidRequestError) as exc_info:
            await _service(fake_engine).create_completion(
                _request(messages=[{"role": "system", "content": "be nice"}])
            )
        assert exc_info.value.code == "invalid_messages"
        assert exc_info.value.message == "No user message found"

    @pytest.mark.asyncio
    async def test_streaming_validation_fails_before_streaming(self, fake_engine):
        with pytest.raises(InvalidRequestError):
            await _service(fake_engine).stream_completion(_request(messages=[], stream=True))
        assert fake_engine.chats == []


class TestCreateCompletion:
    @pytest.mark.asyncio
    async def test_test_response(self, fake_engine):
        response = await _service(fake_engine).create_completion(_request())

        assert response["object"] == "chat.completion"
        assert response["model"] == "gemini-2.5-flash"
        assert response["choices"][0]["message"]["content"] == "Test response"
        assert response["choices"][0]["finish_reason"] == "stop"
        assert response["usage"] == {"prompt_tokens": 5, "completion_tokens": 2, "total_tokens": 7}

    @pytest.mark.asyncio
    async def test_history_and_last_turn(self, fake_engine):
        await _service(fake_engine).create_completion(
            _request(
                messages=[
                    {"role": "system", "content": "sys"},
                    {"role": "user", "content": "one"},
                    {"role": "assistant", "content": "two"},
                    {"role": "user", "content": "three"},
                ],
                temperature=0.5,
            )
        )
        call = fake_engine.calls[0]
        assert call["history"] == [
            {"role": "user", "parts": [{"text": "one"}]},
            {"role": "model", "parts": [{"text": "two"}]},
        ]
        assert call["content"] == {"role": "user", "parts": [{"text": "three"}]}
        assert call["system_instruction"] == "sys"
        assert call["model"] == "gemini-2.5-flash"
        assert call["generation_config"] == {
            "temperature": 0.5,
            "thinkingConfig": {"includeThoughts": True},
        }

    @pytest.mark.asyncio
    async def test_empty_engine_output_raises(self, fake_engine):
        fake_engine.set_script(FinishedEvent(reason="STOP"))
        with pytest.raises(UpstreamError) as exc_info:
            await _service(fake_engine).create_completion(_request())
        assert exc_info.value.code == "empty_response"

    @pytest.mark.asyncio
    async def test_engine_error_propagates(self, fake_engine):
        fake_engine.set_script(EngineAPIError(status=429, message="Too many requests"))
        with pytest.raises(EngineAPIError):
            await _service(fake_engine).create_completion(_request())
        assert fake_engine.active == 0

    @pytest.mark.asyncio
    async def test_tool_calls_aggregated(self, fake_engine):
        fake_engine.set_script(
            ToolCallRequestEvent(call_id="c1", name="a", args={"x": 1}),
            ToolCallRequestEvent(call_id="c2", name="b", args={}),
            FinishedEvent(reason="STOP"),
        )
        response = await _service(fake_engine).create_completion(_request())
        tool_calls = response["choices"][0]["message"]["tool_calls"]
        assert [tc["function"]["name"] for tc in tool_calls] == ["a", "b"]
        assert response["choices"][0]["message"]["content"] is None

    @pytest.mark.asyncio
    async def test_tool_choice_without_tools_is_dropped(self, fake_engine):
        await _service(fake_engine).create_completion(_request(tool_choice="required"))

        assert fake_engine.calls[0]["tools"] is None
        assert fake_engine.calls[0]["tool_config"] is None


class TestStreamCompletion:
    @pytest.mark.asyncio
    async def test_frames(self, fake_engine):
        fake_engine.set_script(
            ContentEvent(text="Hel"),
            ContentEvent(text="lo"),
            FinishedEvent(reason="STOP"),
        )
        stream = await _service(fake_engine).stream_completion(_request(stream=True))
        frames = _frames([frame async for frame in stream])

        assert frames[-1] == "[DONE]"
        assert frames[0]["choices"][0]["delta"] == {"role": "assistant", "content": "Hel"}
        assert frames[1]["choices"][0]["delta"] == {"content": "lo"}
        assert frames[2]["choices"][0]["finish_reason"] == "stop"

    @pytest.mark.asyncio
    async def test_mid_stream_error_is_sent_in_band(self, fake_engine):
        fake_engine.set_script(
            ContentEvent(text="partial"),
            EngineAPIError(status=429, message="Too many requests"),
        )
        stream = await _service(fake_engine).stream_completion(_request(stream=True))
        frames = _frames([frame async for frame in stream])

        assert frames[0]["choices"][0]["delta"]["content"] == "partial"
        assert frames[1] == {
            "error": {
                "message": "Too many requests",
                "type": "rate_limit_error",
                "code": "rate_limit_exceeded",
            }
        }
        assert frames[2] == "[DONE]"
        assert len(frames) == 3

    @pytest.mark.asyncio
    async def test_abort_closes_engine_stream(self, fake_engine):
        fake_engine.set_script(ContentEvent(text="first"))
        fake_engine.endless = True
        abort = asyncio.Event()

        stream = await _service(fake_engine).stream_completion(_request(stream=True), abort)
        first = await stream.__anext__()
        assert b"first" in first

        abort.set()
        rest = [frame async for frame in stream]

        assert rest == []
        assert fake_engine.active == 0
        assert fake_engine.closed_streams == 1

    @pytest.mark.asyncio
    async def test_closing_stream_early_releases_engine(self, fake_engine):
        fake_engine.set_script(ContentEvent(text="first"))
        fake_engine.endless = True

        stream = await _service(fake_engine, mode="shared").stream_completion(_request(stream=True))
        await stream.__anext__()
        await stream.aclose()

        assert fake_engine.active == 0
        assert fake_engine.calls[0]["abort_signal"].is_set()


class TestSharedSession:
    @pytest.mark.asyncio
    async def test_requests_do_not_interleave(self, engine_factory):
        engine = engine_factory(
            scripts=[[ContentEvent(text="a"), ContentEvent(text="b"), FinishedEvent(reason="STOP")]],
            delay=0.01,
        )
        service = _service(engine, mode="shared")

        responses = await asyncio.gather(
            *(service.create_completion(_request(messages=[{"role": "user", "content": f"q{i}"}])) for i in range(3))
        )

        assert [r["choices"][0]["message"]["content"] for r in responses] == ["ab", "ab", "ab"]
        assert engine.max_active == 1
        assert len(engine.chats) == 1
        assert sorted(call["content"]["parts"][0]["text"] for call in engine.calls) == ["q0", "q1", "q2"]
        assert all(call["history"] == [] for call in engine.calls)

    @pytest.mark.asyncio
    async def test_shared_history_replaced_per_request(self, engine_factory):
        engine = engine_factory(scripts=[[ContentEvent(text="ok"), FinishedEvent(reason="STOP")]])
        service = _service(engine, mode="shared")

        await service.create_completion(_request(messages=[{"role": "user", "content": "first"}]))
        await service.create_completion(
            _request(
                messages=[
                    {"role": "user", "content": "hello"},
                    {"role": "assistant", "content": "hi"},
                    {"role": "user", "content": "again"},
                ]
            )
        )

        assert engine.calls[1]["history"] == [
            {"role": "user", "parts": [{"text": "hello"}]},
            {"role": "model", "parts": [{"text": "hi"}]},
        ]
