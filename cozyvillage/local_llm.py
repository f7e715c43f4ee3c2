"""Chat completions from a local Ollama server.

The village treats Ollama as one more provider behind ``LLMGateway``. The
server is reached over its REST ``/api/chat`` route with a blocking urllib
request run on a worker thread, so no extra HTTP client is needed.
"""

from __future__ import annotations

import asyncio
import json
import os
from typing import Any
from urllib import error, request

DEFAULT_OLLAMA_BASE_URL = "http://127.0.0.1:11434"
CHAT_PATH = "/api/chat"


class LocalLLMError(RuntimeError):
    """A local model call failed.

    ``status`` is the HTTP status when the server answered at all; a 429 is
    reported to the tick as a rate limit rather than a plain error.
    """

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


def resolve_base_url(base_url: str | None = None) -> str:
    """Pick the explicit URL, then OLLAMA_BASE_URL, then the local default."""

    return (base_url or os.getenv("OLLAMA_BASE_URL") or DEFAULT_OLLAMA_BASE_URL).rstrip("/")


def build_chat_payload(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    temperature: float | None = None,
) -> dict[str, Any]:
    """Assemble a non-streaming ``/api/chat`` request body."""

    user_prompt = user_prompt.strip()
    if not user_prompt:
        raise LocalLLMError("Refusing to send an empty user prompt to Ollama.")

    messages = [{"role": "user", "content": user_prompt}]
    system_prompt = system_prompt.strip()
    if system_prompt:
        messages.insert(0, {"role": "system", "content": system_prompt})

    payload: dict[str, Any] = {"model": llm_model, "messages": messages, "stream": False}
    if temperature is not None:
        payload["options"] = {"temperature": temperature}
    return payload


def _reply_text(raw: str) -> str:
    try:
        body = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise LocalLLMError("Ollama answered with something other than JSON.") from exc
    # A missing or empty message is passed through as "" and handled as an empty completion.
    return (body.get("message") or {}).get("content") or ""


def _perform_ollama_request(payload: dict[str, Any], base_url: str, timeout: float) -> str:
    """POST the payload and return the assistant text. Blocking."""

    url = base_url + CHAT_PATH
    req = request.Request(
        url,
        data=json.dumps(payload).encode("utf-8"),
        headers={"Content-Type": "application/json"},
        method="POST",
    )

    try:
        with request.urlopen(req, timeout=timeout) as resp:
            return _reply_text(resp.read().decode("utf-8"))
    except error.HTTPError as exc:
        detail = exc.read().decode("utf-8", errors="ignore") if exc.fp else ""
        raise LocalLLMError(
            f"Ollama returned HTTP {exc.code} for {_model_label(payload)}: {detail or exc.reason}",
            status=exc.code,
        ) from exc
    except error.URLError as exc:
        raise LocalLLMError(f"Ollama unreachable at {url}: {exc.reason}") from exc


def _model_label(payload: dict[str, Any]) -> str:
    return str(payload.get("model") or "unknown model")


async def call_ollama_chat(
    *,
    system_prompt: str,
    user_prompt: str,
    llm_model: str,
    base_url: str | None = None,
    timeout: float = 60.0,
    temperature: float | None = None,
) -> str:
    """Send one chat turn to Ollama and return the reply text ("" when blank)."""

    payload = build_chat_payload(
        system_prompt=system_prompt,
        user_prompt=user_prompt,
        llm_model=llm_model,
        temperature=temperature,
    )
    return await asyncio.to_thread(_perform_ollama_request, payload, resolve_base_url(base_url), timeout)


__all__ = [
    "DEFAULT_OLLAMA_BASE_URL",
    "LocalLLMError",
    "build_chat_payload",
    "call_ollama_chat",
    "resolve_base_url",
]
