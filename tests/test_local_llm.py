from urllib import error

import pytest

from cozyvillage.local_llm import (
    DEFAULT_OLLAMA_BASE_URL,
    LocalLLMError,
    _perform_ollama_request,
    build_chat_payload,
    call_ollama_chat,
    resolve_base_url,
)


@pytest.mark.asyncio
async def test_call_ollama_chat_builds_payload(monkeypatch):
    captured: dict[str, object] = {}

    def fake_request(payload, base_url, timeout):
        captured["payload"] = payload
        captured["base_url"] = base_url
        captured["timeout"] = timeout
        return "Ada bakes scones"

    monkeypatch.setattr("cozyvillage.local_llm._perform_ollama_request", fake_request)

    result = await call_ollama_chat(
        system_prompt="System context",
        user_prompt="User payload",
        llm_model="llama3.1",
        base_url="http://localhost:11434/",
        timeout=30,
        temperature=0.95,
    )

    assert result == "Ada bakes scones"
    payload = captured["payload"]
    assert payload["model"] == "llama3.1"
    assert payload["messages"][0] == {"role": "system", "content": "System context"}
    assert payload["messages"][1] == {"role": "user", "content": "User payload"}
    assert payload["options"] == {"temperature": 0.95}
    assert captured["base_url"] == "http://localhost:11434"
    assert captured["timeout"] == 30


@pytest.mark.asyncio
async def test_call_ollama_chat_rejects_empty_prompt():
    with pytest.raises(LocalLLMError):
        await call_ollama_chat(system_prompt="s", user_prompt="   ", llm_model="llama3.1")


def test_http_errors_keep_their_status(monkeypatch):
    def fake_urlopen(req, timeout):
        raise error.HTTPError(req.full_url, 429, "Too Many Requests", hdrs=None, fp=None)

    monkeypatch.setattr("cozyvillage.local_llm.request.urlopen", fake_urlopen)

    with pytest.raises(LocalLLMError) as excinfo:
        _perform_ollama_request({"model": "llama3.1"}, "http://localhost:11434", 5)

    assert excinfo.value.status == 429
    assert "429" in str(excinfo.value)


class FakeResponse:
    def __init__(self, body: str):
        self.body = body

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        return False

    def read(self):
        return self.body.encode("utf-8")


def test_blank_reply_is_returned_as_empty_text(monkeypatch):
    monkeypatch.setattr(
        "cozyvillage.local_llm.request.urlopen",
        lambda req, timeout: FakeResponse('{"message": {"role": "assistant", "content": ""}}'),
    )

    assert _perform_ollama_request({"model": "llama3.1"}, "http://localhost:11434", 5) == ""


def test_non_json_reply_raises(monkeypatch):
    monkeypatch.setattr("cozyvillage.local_llm.request.urlopen", lambda req, timeout: FakeResponse("<html>"))

    with pytest.raises(LocalLLMError) as excinfo:
        _perform_ollama_request({"model": "llama3.1"}, "http://localhost:11434", 5)

    assert excinfo.value.status is None


def test_base_url_resolution(monkeypatch):
    monkeypatch.setenv("OLLAMA_BASE_URL", "http://gpu-box:11434/")
    assert resolve_base_url() == "http://gpu-box:11434"
    assert resolve_base_url("http://other:1/") == "http://other:1"

    monkeypatch.delenv("OLLAMA_BASE_URL")
    assert resolve_base_url() == DEFAULT_OLLAMA_BASE_URL


def test_payload_omits_blank_system_prompt_and_temperature():
    payload = build_chat_payload(system_prompt="  ", user_prompt="hi", llm_model="llama3.1")

    assert payload["messages"] == [{"role": "user", "content": "hi"}]
    assert "options" not in payload
    assert payload["stream"] is False
