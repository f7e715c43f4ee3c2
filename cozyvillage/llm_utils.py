"""Language model gateway: one text completion per call, rate-limit aware."""

from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Optional

from mirascope import llm
from tenacity import AsyncRetrying, RetryCallState, retry_if_result, stop_after_attempt, wait_random

from .config import Config
from .local_llm import call_ollama_chat
from .logging_utils import log_error, log_llm
from .prompts import RenderedPrompt
from .results import COMPLETION_ERROR, COMPLETION_RATE_LIMITED, Completion

LLM_TIMEOUT_SECONDS = 30.0
RATE_LIMIT_STATUS = 429


def is_rate_limit_error(exc: BaseException) -> bool:
    """Return True when an exception carries an HTTP 429 from the provider.

    Provider SDK errors (openai, anthropic, groq, ...) expose ``status_code``;
    httpx errors expose it on ``response``; LocalLLMError exposes ``status``.
    """

    for candidate in (
        getattr(exc, "status_code", None),
        getattr(exc, "status", None),
        getattr(getattr(exc, "response", None), "status_code", None),
    ):
        if candidate == RATE_LIMIT_STATUS:
            return True
    return False


def _combine_prompt(prompt: RenderedPrompt) -> str:
    sections = [section.strip() for section in (prompt.system, prompt.user) if section and section.strip()]
    return "\n\n".join(sections)


class LLMGateway:
    """Thin wrapper around a completion provider.

    ``complete`` never raises. Every outcome is reported as a Completion so the
    tick can decide between retrying, using the text and falling back.
    """

    def __init__(
        self,
        provider: str,
        model: str,
        *,
        base_url: Optional[str] = None,
        timeout: float = LLM_TIMEOUT_SECONDS,
    ) -> None:
        self.provider = provider.strip().lower()
        self.model = model
        self.base_url = base_url
        self.timeout = timeout

    @property
    def is_local(self) -> bool:
        return self.provider == "ollama"

    async def _invoke_remote(self, prompt: RenderedPrompt, model: str, temperature: float) -> str:
        @llm.call(
            provider=self.provider,
            model=model,
            call_params={"temperature": temperature},
        )
        async def _invoke(text: str) -> str:
            return text

        response = await _invoke(_combine_prompt(prompt))
        return response.content

    async def _invoke_local(self, prompt: RenderedPrompt, model: str, temperature: float) -> str:
        return await call_ollama_chat(
            system_prompt=prompt.system,
            user_prompt=prompt.user,
            llm_model=model,
            base_url=self.base_url,
            timeout=self.timeout,
            temperature=temperature,
        )

    async def complete(
        self,
        prompt: RenderedPrompt,
        *,
        model: Optional[str] = None,
        temperature: float = 1.0,
    ) -> Completion:
        resolved_model = model or self.model
        invoke = self._invoke_local if self.is_local else self._invoke_remote
        log_llm(f"[LLM] {self.provider}/{resolved_model} (temperature {temperature:.2f})")
        try:
            text = await asyncio.wait_for(
                invoke(prompt, resolved_model, temperature),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            return Completion(
                status=COMPLETION_ERROR,
                reason=f"timed out after {int(self.timeout)}s",
            )
        except Exception as exc:
            if is_rate_limit_error(exc):
                return Completion(status=COMPLETION_RATE_LIMITED, reason=str(exc))
            return Completion(status=COMPLETION_ERROR, reason=f"{type(exc).__name__}: {exc}")
        return Completion.from_text(text)


def build_gateway(config: type[Config] = Config) -> Optional[LLMGateway]:
    """Build the gateway from configuration, or None when no credential is set."""

    if config.llm_api_key() is None:
        return None
    return LLMGateway(
        config.LLM_PROVIDER,
        config.LLM_MODEL,
        base_url=config.LOCAL_LLM_BASE_URL,
    )


def _log_rate_limited(retry_state: RetryCallState) -> None:
    delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
    log_error(f"[LLM] Rate limited; retrying once in {int(delay * 1000)}ms")


def _last_completion(retry_state: RetryCallState) -> Completion:
    return retry_state.outcome.result()


async def complete_with_rate_limit_retry(
    gateway: LLMGateway,
    prompt: RenderedPrompt,
    *,
    model: Optional[str] = None,
    temperature: float = 1.0,
    delay_range: tuple[float, float] = (0.5, 0.8),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> Completion:
    """Request a completion, retrying exactly once after a jittered delay on 429.

    Only a rate-limited result triggers the retry; errors and empty text are
    returned as-is for the caller to fall back on. If the retry is rate limited
    too, that last completion is returned.
    """

    low, high = delay_range
    retrying = AsyncRetrying(
        retry=retry_if_result(lambda completion: completion.rate_limited),
        stop=stop_after_attempt(2),
        wait=wait_random(min=low, max=high),
        sleep=sleep,
        before_sleep=_log_rate_limited,
        retry_error_callback=_last_completion,
    )
    return await retrying(gateway.complete, prompt, model=model, temperature=temperature)
