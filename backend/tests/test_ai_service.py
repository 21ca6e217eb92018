import json
import httpx
import pytest

from app.core.errors import AIProviderError, AIProviderTimeout, MissingApiKey
from app.services.ai_service import AIService

MESSAGES = [{"role": "user", "content": "hello"}]


def _completion(content):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


@pytest.fixture
def provider(monkeypatch):
    """Route AIService traffic to a handler list; records the models requested."""
    state = {"responses": [], "models": []}
    real_client = httpx.AsyncClient

    def handler(request: httpx.Request):
        state["models"].append(json.loads(request.content)["model"])
        response = state["responses"].pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def client_factory(**kwargs):
        return real_client(transport=httpx.MockTransport(handler), **kwargs)

    monkeypatch.setattr(httpx, "AsyncClient", client_factory)
    return state


async def test_missing_key_fails_before_any_request(provider):
    with pytest.raises(MissingApiKey):
        await AIService(api_key="").generate_completion(MESSAGES)
    assert provider["models"] == []


async def test_returns_first_successful_completion(provider):
    provider["responses"] = [httpx.Response(200, json=_completion('{"summary": "ok"}'))]

    content = await AIService(api_key="key", model="primary").generate_completion(MESSAGES, json_mode=True)

    assert content == '{"summary": "ok"}'
    assert provider["models"] == ["primary"]


async def test_falls_back_when_json_mode_is_rejected(provider):
    provider["responses"] = [
        httpx.Response(400, json={"error": {"message": "response_format is not supported"}}),
        httpx.Response(200, json=_completion("fine")),
    ]

    content = await AIService(api_key="key", model="primary").generate_completion(MESSAGES, json_mode=True)

    assert content == "fine"
    assert provider["models"][0] == "primary"
    assert len(provider["models"]) == 2


async def test_server_error_is_provider_error(provider):
    provider["responses"] = [httpx.Response(500, text="upstream exploded")]

    with pytest.raises(AIProviderError):
        await AIService(api_key="key").generate_completion(MESSAGES)


async def test_empty_completion_is_provider_error(provider):
    provider["responses"] = [httpx.Response(200, json={"choices": []})]

    with pytest.raises(AIProviderError):
        await AIService(api_key="key").generate_completion(MESSAGES)


async def test_timeout_is_reported_separately(provider):
    provider["responses"] = [httpx.ReadTimeout("too slow")]

    with pytest.raises(AIProviderTimeout):
        await AIService(api_key="key").generate_completion(MESSAGES)
