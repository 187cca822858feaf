import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from gemini_proxy.main import create_app

CHAT_BODY = {"model": "gemini-2.5-flash", "messages": [{"role": "user", "content": "hi"}]}


@pytest_asyncio.fixture
async def secured_client(settings_factory, fake_engine):
    app = create_app(settings_factory(PROXY_API_KEY="sk-proxy"), engine_client=fake_engine)
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c


class TestConsumerAuth:
    @pytest.mark.asyncio
    async def test_missing_header(self, secured_client, fake_engine):
        response = await secured_client.post("/v1/chat/completions", json=CHAT_BODY)
        assert response.status_code == 401
        assert response.json() == {
            "error": {
                "message": "Missing Authorization header. Expected: Bearer <api_key>",
                "type": "authentication_error",
                "code": "missing_api_key",
            }
        }
        assert fake_engine.calls == []

    @pytest.mark.asyncio
    async def test_malformed_header(self, secured_client):
        response = await secured_client.get("/v1/models", headers={"Authorization": "sk-proxy"})
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "missing_api_key"

    @pytest.mark.asyncio
    async def test_wrong_key(self, secured_client):
        response = await secured_client.get(
            "/v1/models", headers={"Authorization": "Bearer sk-wrong"}
        )
        assert response.status_code == 401
        assert response.json()["error"]["code"] == "invalid_api_key"

    @pytest.mark.asyncio
    async def test_valid_key(self, secured_client):
        response = await secured_client.post(
            "/v1/chat/completions",
            json=CHAT_BODY,
            headers={"Authorization": "Bearer sk-proxy"},
        )
        assert response.status_code == 200
        assert response.json()["choices"][0]["message"]["content"] == "Test response"

    @pytest.mark.asyncio
    async def test_public_routes(self, secured_client):
        assert (await secured_client.get("/health")).status_code == 200
        assert (await secured_client.get("/")).status_code == 200
        assert (await secured_client.get("/docs")).status_code == 200


@pytest.mark.asyncio
async def test_auth_disabled_without_key(client):
    response = await client.get("/v1/models")
    assert response.status_code == 200
