"""Build the configured :class:`LLMEngine`."""

from __future__ import annotations

from typing import TYPE_CHECKING

from shadowtest.llm.builtin import BuiltinLLM, RateLimitConfig, RetryConfig
from shadowtest.llm.engine import LLMEngine, LLMError

if TYPE_CHECKING:
    from shadowtest.llm.config import LLMConfig

OLLAMA_URL = "http://localhost:11434"


def _ollama_model(model: str) -> str:
    return model if model.startswith("ollama/") else f"ollama/{model}"


def create_engine(config: LLMConfig) -> LLMEngine:
    """Engine for *config*; ``ollama`` mode is LiteLLM pointed at a local server.

    Raises:
        LLMError: No model is set, or the mode is not recognised.
    """
    if not config.model:
        raise LLMError(
            "No LLM model configured. Set 'llm.model' in .shadowtest.yml or SHADOWTEST_LLM_MODEL."
        )

    if config.mode == "builtin":
        model, base_url = config.model, config.base_url
    elif config.mode == "ollama":
        model, base_url = _ollama_model(config.model), config.base_url or OLLAMA_URL
    else:
        raise LLMError(f"Unsupported LLM mode: {config.mode!r}")

    return BuiltinLLM(
        model,
        api_key=config.api_key or None,
        base_url=base_url or None,
        temperature=config.temperature,
        max_tokens=config.max_tokens,
        retry=RetryConfig(max_retries=config.max_retries),
        rate_limit=RateLimitConfig(requests_per_minute=config.requests_per_minute),
    )
