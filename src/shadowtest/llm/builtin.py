"""LiteLLM-backed engine: one client for OpenAI, Anthropic, Ollama and friends."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any

import litellm
from litellm.exceptions import (
    APIConnectionError,
    APIError,
    AuthenticationError,
    BadGatewayError,
    BadRequestError,
    InternalServerError,
    NotFoundError,
    PermissionDeniedError,
    RateLimitError,
    ServiceUnavailableError,
    Timeout,
    UnprocessableEntityError,
)

from shadowtest.llm.engine import (
    GenerationRequest,
    LLMAuthError,
    LLMConnectionError,
    LLMEngine,
    LLMError,
    LLMRateLimitError,
    LLMResponse,
)

logger = logging.getLogger(__name__)

litellm.suppress_debug_info = True

_SERVER_ERROR_THRESHOLD = 500
_TRANSIENT_MARKERS = ("timeout", "timed out", "overloaded", "temporarily unavailable")

# LiteLLM exception -> error raised once retries are exhausted.
_RETRYABLE: dict[type[Exception], type[LLMError]] = {
    RateLimitError: LLMRateLimitError,
    APIConnectionError: LLMConnectionError,
    Timeout: LLMConnectionError,
    ServiceUnavailableError: LLMError,
    InternalServerError: LLMError,
    BadGatewayError: LLMError,
}

# Provider failures that are not retried: oversized prompts, unknown models and the like.
_FATAL = (
    BadRequestError,
    NotFoundError,
    PermissionDeniedError,
    UnprocessableEntityError,
    APIError,
)

_PROVIDER_ERRORS = (*_RETRYABLE, *_FATAL)


@dataclass
class RetryConfig:
    """Backoff schedule for rate limits, dropped connections and 5xx answers."""

    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0


@dataclass
class RateLimitConfig:
    requests_per_minute: int = 60


@dataclass
class _TokenBucket:
    """Client-side request budget, refilled continuously at ``capacity`` per minute."""

    capacity: int
    tokens: float = 0.0
    last_refill: float = field(default_factory=time.monotonic)

    def __post_init__(self) -> None:
        self.tokens = float(self.capacity)

    @property
    def _per_second(self) -> float:
        return self.capacity / 60.0

    async def acquire(self) -> None:
        while True:
            now = time.monotonic()
            self.tokens = min(
                float(self.capacity), self.tokens + (now - self.last_refill) * self._per_second
            )
            self.last_refill = now
            if self.tokens >= 1.0:
                self.tokens -= 1.0
                return
            await asyncio.sleep(min((1.0 - self.tokens) / self._per_second, 1.0))


class BuiltinLLM(LLMEngine):
    """Routes every request through ``litellm.acompletion``.

    The provider is chosen by the model string (``"gpt-4o"``,
    ``"anthropic/claude-sonnet-4-5"``, ``"ollama/codellama"``).  Requests are
    paced by a token bucket; rate limits, connection failures and transient
    server errors are retried with exponential backoff, authentication errors
    are not.
    """

    def __init__(  # noqa: PLR0913
        self,
        model: str,
        *,
        api_key: str | None = None,
        base_url: str | None = None,
        temperature: float = 0.2,
        max_tokens: int = 4096,
        retry: RetryConfig | None = None,
        rate_limit: RateLimitConfig | None = None,
    ) -> None:
        self._model = model
        self._api_key = api_key
        self._base_url = base_url
        self._temperature = temperature
        self._max_tokens = max_tokens
        self._retry = retry or RetryConfig()
        self._bucket = _TokenBucket(
            capacity=(rate_limit or RateLimitConfig()).requests_per_minute
        )

    @property
    def model_name(self) -> str:
        return self._model

    async def generate(self, request: GenerationRequest) -> LLMResponse:
        kwargs = self._completion_kwargs(request)
        logger.debug(
            "LLM request: model=%s, messages=%d, max_tokens=%d",
            kwargs["model"],
            len(request.messages),
            kwargs["max_tokens"],
        )
        response = self._to_response(await self._call_with_retry(kwargs), kwargs["model"])
        if response.truncated:
            logger.warning(
                "Response from %s hit max_tokens=%d; generated code may be cut off",
                response.model,
                kwargs["max_tokens"],
            )
        return response

    def _completion_kwargs(self, request: GenerationRequest) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": request.model or self._model,
            "messages": [{"role": m.role, "content": m.content} for m in request.messages],
            "temperature": self._temperature if request.temperature is None else request.temperature,
            "max_tokens": request.max_tokens or self._max_tokens,
        }
        if self._api_key:
            kwargs["api_key"] = self._api_key
        if self._base_url:
            kwargs["api_base"] = self._base_url
        kwargs.update(request.extra)
        return kwargs

    async def _call_with_retry(self, kwargs: dict[str, Any]) -> Any:
        attempts = self._retry.max_retries + 1
        for attempt in range(1, attempts + 1):
            await self._bucket.acquire()
            try:
                return await litellm.acompletion(**kwargs)
            except AuthenticationError as exc:
                raise LLMAuthError(str(exc)) from exc
            except _PROVIDER_ERRORS as exc:
                final = _final_error(exc)
                if final is None or attempt == attempts:
                    raise (final or LLMError)(str(exc)) from exc
                delay = self._backoff_delay(attempt - 1)
                logger.warning(
                    "%s (attempt %d/%d), retrying in %.1fs",
                    type(exc).__name__,
                    attempt,
                    attempts,
                    delay,
                )
                await asyncio.sleep(delay)
        raise LLMError("No attempts were made")

    def _backoff_delay(self, attempt: int) -> float:
        delay = self._retry.base_delay * self._retry.backoff_factor**attempt
        return min(delay, self._retry.max_delay)

    @staticmethod
    def _to_response(raw: Any, model: str) -> LLMResponse:
        choice = raw.choices[0]
        usage = getattr(raw, "usage", None)
        return LLMResponse(
            text=choice.message.content or "",
            model=raw.model or model,
            prompt_tokens=usage.prompt_tokens if usage else 0,
            completion_tokens=usage.completion_tokens if usage else 0,
            finish_reason=getattr(choice, "finish_reason", None) or "",
        )


def _final_error(exc: Exception) -> type[LLMError] | None:
    """Error to raise once retries run out, or ``None`` if *exc* must not be retried."""
    for litellm_type, error_type in _RETRYABLE.items():
        if isinstance(exc, litellm_type):
            return error_type
    status = getattr(exc, "status_code", None)
    if isinstance(status, int) and status >= _SERVER_ERROR_THRESHOLD:
        return LLMError
    message = str(exc).lower()
    if any(marker in message for marker in _TRANSIENT_MARKERS):
        return LLMError
    return None
