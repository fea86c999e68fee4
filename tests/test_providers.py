import json

import httpx
import pytest

from pingai.core.errors import ModelListError
from pingai.core.schema import ChatMessage, ChatRequest
from pingai.providers import (
    AnthropicCompatibleProvider,
    GeminiCompatibleProvider,
    OpenAICompatibleProvider,
    get_adapter,
)


def make_client(handler):
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


def make_request(base_url="https://api.example.com/v1/", model="test-model", messages=None):
    return ChatRequest(
        base_url=base_url,
        api_key="sk-test-key",
        model=model,
        messages=messages or [ChatMessage(role="user", content="Hi, reply with exactly: OK")],
    )


SUCCESS_BODIES = {
    OpenAICompatibleProvider: (
        {"choices": [{"message": {"role": "assistant", "content": "OK"}}], "usage": {"prompt_tokens": 12, "completion_tokens": 1}},
        {"choices": [{"message": {"role": "assistant", "content": "OK"}}]},
    ),
    AnthropicCompatibleProvider: (
        {"content": [{"type": "text", "text": "OK"}], "usage": {"input_tokens": 12, "output_tokens": 1}},
        {"content": [{"type": "text", "text": "OK"}]},
    ),
    GeminiCompatibleProvider: (
        {"candidates": [{"content": {"parts": [{"text": "OK"}]}}], "usageMetadata": {"promptTokenCount": 12, "candidatesTokenCount": 1}},
        {"candidates": [{"content": {"parts": [{"text": "OK"}]}}]},
    ),
}

ADAPTERS = list(SUCCESS_BODIES)


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_chat_success_with_usage(adapter_cls):
    body, _ = SUCCESS_BODIES[adapter_cls]

    async with make_client(lambda request: httpx.Response(200, json=body)) as client:
        resp = await adapter_cls(client=client).chat(make_request())

    assert resp.error == ""
    assert resp.content == "OK"
    assert resp.prompt_tokens == 12
    assert resp.completion_tokens == 1
    assert resp.status_code == 200


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_chat_success_without_usage_defaults_to_zero(adapter_cls):
    _, body = SUCCESS_BODIES[adapter_cls]

    async with make_client(lambda request: httpx.Response(200, json=body)) as client:
        resp = await adapter_cls(client=client).chat(make_request())

    assert resp.ok
    assert resp.content == "OK"
    assert resp.prompt_tokens == 0
    assert resp.completion_tokens == 0


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_chat_http_error_is_soft_failure_with_truncated_body(adapter_cls):
    async with make_client(lambda request: httpx.Response(503, text="x" * 1000)) as client:
        resp = await adapter_cls(client=client).chat(make_request())

    assert resp.error == "HTTP 503"
    assert resp.status_code == 503
    assert resp.raw_body == "x" * 300 + "..."


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_chat_short_error_body_is_kept_whole(adapter_cls):
    async with make_client(lambda request: httpx.Response(401, text='  {"error": "bad key"}\n')) as client:
        resp = await adapter_cls(client=client).chat(make_request())

    assert resp.error == "HTTP 401"
    assert resp.raw_body == '{"error": "bad key"}'


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_chat_malformed_body(adapter_cls):
    async with make_client(lambda request: httpx.Response(200, text="<html>gateway</html>")) as client:
        resp = await adapter_cls(client=client).chat(make_request())

    assert resp.error == "JSON parse error"
    assert resp.raw_body == "<html>gateway</html>"


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_chat_provider_error_field(adapter_cls):
    body = {"error": {"message": "model not found", "type": "invalid_request_error"}}
    async with make_client(lambda request: httpx.Response(200, json=body)) as client:
        resp = await adapter_cls(client=client).chat(make_request())

    assert resp.error == "model not found"
    assert resp.content == ""


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "adapter_cls, body, expected",
    [
        (OpenAICompatibleProvider, {"choices": []}, "empty choices"),
        (AnthropicCompatibleProvider, {"content": []}, "empty content"),
        (GeminiCompatibleProvider, {"candidates": []}, "empty response"),
    ],
)
async def test_chat_empty_payload(adapter_cls, body, expected):
    async with make_client(lambda request: httpx.Response(200, json=body)) as client:
        resp = await adapter_cls(client=client).chat(make_request())

    assert resp.error == expected


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_chat_transport_error_propagates(adapter_cls):
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    async with make_client(handler) as client:
        with pytest.raises(httpx.ConnectError):
            await adapter_cls(client=client).chat(make_request())


@pytest.mark.asyncio
async def test_openai_request_shape():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=SUCCESS_BODIES[OpenAICompatibleProvider][0])

    async with make_client(handler) as client:
        await OpenAICompatibleProvider(client=client).chat(make_request())

    request = seen[0]
    assert request.method == "POST"
    assert str(request.url) == "https://api.example.com/v1/chat/completions"
    assert request.headers["Authorization"] == "Bearer sk-test-key"
    payload = json.loads(request.content)
    assert payload == {
        "model": "test-model",
        "messages": [{"role": "user", "content": "Hi, reply with exactly: OK"}],
    }


@pytest.mark.asyncio
async def test_anthropic_request_shape():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=SUCCESS_BODIES[AnthropicCompatibleProvider][0])

    async with make_client(handler) as client:
        await AnthropicCompatibleProvider(client=client).chat(make_request(base_url="https://api.anthropic.com/v1"))

    request = seen[0]
    assert str(request.url) == "https://api.anthropic.com/v1/messages"
    assert request.headers["x-api-key"] == "sk-test-key"
    assert request.headers["anthropic-version"] == "2023-06-01"
    assert "Authorization" not in request.headers
    payload = json.loads(request.content)
    assert payload["max_tokens"] == 256
    assert "stream" not in payload


@pytest.mark.asyncio
async def test_gemini_request_maps_assistant_role_and_uses_key_param():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=SUCCESS_BODIES[GeminiCompatibleProvider][0])

    messages = [
        ChatMessage(role="user", content="Remember this number: 42. Just reply OK."),
        ChatMessage(role="assistant", content="OK"),
        ChatMessage(role="user", content="What number did I ask you to remember?"),
    ]
    async with make_client(handler) as client:
        await GeminiCompatibleProvider(client=client).chat(
            make_request(base_url="https://generativelanguage.googleapis.com/v1beta", model="gemini-1.5-flash", messages=messages)
        )

    request = seen[0]
    assert request.url.path == "/v1beta/models/gemini-1.5-flash:generateContent"
    assert request.url.params["key"] == "sk-test-key"
    payload = json.loads(request.content)
    assert [c["role"] for c in payload["contents"]] == ["user", "model", "user"]
    assert payload["contents"][1]["parts"] == [{"text": "OK"}]


@pytest.mark.asyncio
async def test_gemini_accepts_resource_style_model_name():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json=SUCCESS_BODIES[GeminiCompatibleProvider][0])

    async with make_client(handler) as client:
        await GeminiCompatibleProvider(client=client).chat(
            make_request(base_url="https://generativelanguage.googleapis.com/v1beta", model="models/gemini-1.5-pro")
        )

    assert seen[0].url.path == "/v1beta/models/gemini-1.5-pro:generateContent"


def test_get_adapter_dispatch():
    assert isinstance(get_adapter("openai"), OpenAICompatibleProvider)
    assert isinstance(get_adapter("anthropic"), AnthropicCompatibleProvider)
    assert isinstance(get_adapter("gemini"), GeminiCompatibleProvider)
    assert isinstance(get_adapter("Gemini "), GeminiCompatibleProvider)
    assert isinstance(get_adapter("azure"), OpenAICompatibleProvider)
    assert isinstance(get_adapter(""), OpenAICompatibleProvider)


@pytest.mark.asyncio
async def test_list_models_openai():
    body = {"object": "list", "data": [{"id": "gpt-4o"}, {"id": "gpt-4o-mini"}]}
    async with make_client(lambda request: httpx.Response(200, json=body)) as client:
        models = await OpenAICompatibleProvider(client=client).list_models("https://api.example.com/v1", "sk")

    assert models == ["gpt-4o", "gpt-4o-mini"]


@pytest.mark.asyncio
async def test_list_models_gemini_strips_resource_prefix():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"models": [{"name": "models/gemini-1.5-pro"}, {"name": "gemini-2.0-flash"}]})

    async with make_client(handler) as client:
        models = await GeminiCompatibleProvider(client=client).list_models(
            "https://generativelanguage.googleapis.com/v1beta/", "AIza-key"
        )

    assert models == ["gemini-1.5-pro", "gemini-2.0-flash"]
    assert seen[0].url.path == "/v1beta/models"
    assert seen[0].url.params["key"] == "AIza-key"


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_list_models_non_2xx_raises(adapter_cls):
    async with make_client(lambda request: httpx.Response(404, text="not found")) as client:
        with pytest.raises(ModelListError, match="HTTP 404: not found"):
            await adapter_cls(client=client).list_models("https://api.example.com/v1", "sk")


@pytest.mark.asyncio
@pytest.mark.parametrize("adapter_cls", ADAPTERS)
async def test_connectivity_returns_any_status(adapter_cls):
    async with make_client(lambda request: httpx.Response(503, text="overloaded")) as client:
        code = await adapter_cls(client=client).check_connectivity("https://api.example.com/v1", "sk")

    assert code == 503


@pytest.mark.asyncio
async def test_connectivity_anthropic_sends_auth_headers():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(401)

    async with make_client(handler) as client:
        code = await AnthropicCompatibleProvider(client=client).check_connectivity("https://api.anthropic.com/v1", "sk-ant")

    assert code == 401
    assert seen[0].method == "GET"
    assert str(seen[0].url) == "https://api.anthropic.com/v1/models"
    assert seen[0].headers["x-api-key"] == "sk-ant"


@pytest.mark.asyncio
async def test_connectivity_transport_error_propagates():
    def handler(request):
        raise httpx.ConnectError("name resolution failed", request=request)

    async with make_client(handler) as client:
        with pytest.raises(httpx.ConnectError):
            await OpenAICompatibleProvider(client=client).check_connectivity("https://nowhere.invalid", "sk")
