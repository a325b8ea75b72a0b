import json

import httpx
import pytest

from express_learning.ai_client import AIClient, pdf_file_part
from express_learning.errors import AIClientError
from express_learning.settings import settings


def _client(provider, handler, **kwargs):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return AIClient(provider, api_key="secret", http_client=http, **kwargs)


@pytest.mark.asyncio
async def test_openai_chat_completion_json_mode():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["auth"] = request.headers["Authorization"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={"choices": [{"message": {"content": '{"ok": true}'}}]})

    client = _client("openai", handler, model="gpt-test", base_url="https://llm.example/v1/")
    messages = [{"role": "system", "content": "sys"}, {"role": "user", "content": "hi"}]

    assert await client.complete(messages) == '{"ok": true}'
    assert seen["url"] == "https://llm.example/v1/chat/completions"
    assert seen["auth"] == "Bearer secret"
    assert seen["body"] == {
        "model": "gpt-test",
        "messages": messages,
        "response_format": {"type": "json_object"},
    }


@pytest.mark.asyncio
async def test_openai_without_json_mode_omits_response_format():
    bodies = []

    def handler(request):
        bodies.append(json.loads(request.content))
        return httpx.Response(200, json={"choices": [{"message": {"content": None}}]})

    client = _client("openai", handler)
    assert await client.complete([{"role": "user", "content": "hi"}], json_mode=False) == ""
    assert "response_format" not in bodies[0]


@pytest.mark.asyncio
async def test_gemini_generate_content_payload():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["key"] = request.url.params["key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, json={
            "candidates": [{"content": {"parts": [{"text": '{"a":'}, {"text": " 1}"}]}}],
        })

    client = _client("gemini", handler, model="gemini-test", base_url="https://gen.example/v1beta")
    messages = [
        {"role": "system", "content": "Be strict."},
        {"role": "user", "content": [pdf_file_part("QUJD"), {"type": "text", "text": "Outline it"}]},
    ]

    assert await client.complete(messages) == '{"a": 1}'
    assert seen["path"] == "/v1beta/models/gemini-test:generateContent"
    assert seen["key"] == "secret"
    assert seen["body"] == {
        "contents": [{
            "role": "user",
            "parts": [
                {"inlineData": {"mimeType": "application/pdf", "data": "QUJD"}},
                {"text": "Outline it"},
            ],
        }],
        "systemInstruction": {"parts": [{"text": "Be strict."}]},
        "generationConfig": {"responseMimeType": "application/json"},
    }


@pytest.mark.asyncio
async def test_http_error_becomes_ai_client_error():
    client = _client("openai", lambda request: httpx.Response(500, text="upstream down"))
    with pytest.raises(AIClientError) as exc:
        await client.complete([{"role": "user", "content": "hi"}])
    assert exc.value.status_code == 502
    assert exc.value.error_code == "LLM_REQUEST_FAILED"
    assert exc.value.context["body"] == "upstream down"


@pytest.mark.asyncio
async def test_network_error_becomes_ai_client_error():
    def handler(request):
        raise httpx.ConnectError("connection refused", request=request)

    client = _client("openai", handler)
    with pytest.raises(AIClientError):
        await client.complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_unexpected_envelope():
    client = _client("openai", lambda request: httpx.Response(200, json={"choices": []}))
    with pytest.raises(AIClientError):
        await client.complete([{"role": "user", "content": "hi"}])


@pytest.mark.asyncio
async def test_generate_image_inline_bytes():
    def handler(request):
        assert request.url.path.endswith("/images/generations")
        body = json.loads(request.content)
        assert "photosynthesis" in body["prompt"]
        return httpx.Response(200, json={"data": [{"b64_json": "QUJD"}]})

    client = _client("openai", handler)
    assert await client.generate_image("photosynthesis") == "data:image/png;base64,QUJD"


@pytest.mark.asyncio
async def test_generate_image_downloads_hosted_url():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"data": [{"url": "https://cdn.example/img.png"}]})
        return httpx.Response(200, content=b"ABC")

    client = _client("openai", handler)
    assert await client.generate_image("tides") == "data:image/png;base64,QUJD"


@pytest.mark.asyncio
async def test_generate_image_keeps_url_when_download_fails():
    def handler(request):
        if request.method == "POST":
            return httpx.Response(200, json={"data": [{"url": "https://cdn.example/img.png"}]})
        return httpx.Response(403)

    client = _client("openai", handler)
    assert await client.generate_image("tides") == "https://cdn.example/img.png"


def test_unknown_provider():
    with pytest.raises(ValueError):
        AIClient("mystery", api_key="x")


def test_missing_key(monkeypatch):
    monkeypatch.setattr(settings, "gemini_api_key", None)
    with pytest.raises(ValueError):
        AIClient("gemini")


def test_pdf_file_part_keeps_existing_data_uri():
    part = pdf_file_part("data:application/pdf;base64,QUJD", filename="notes.pdf")
    assert part == {"type": "file", "file": {"filename": "notes.pdf", "file_data": "data:application/pdf;base64,QUJD"}}
