"""The ``llm`` block of ``.shadowtest.yml``.

String fields may reference the environment as ``${NAME}``; absent keys fall
back to ``SHADOWTEST_LLM_*`` variables, so a bare checkout can be driven from
CI secrets alone::

    llm:
      model: claude-sonnet-4-5
      api_key: ${ANTHROPIC_API_KEY}
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass
from typing import Any

_PLACEHOLDER = re.compile(r"\$\{(\w+)}")

SUPPORTED_MODES = frozenset({"builtin", "ollama"})

# Field -> environment variable consulted when the file omits it.
_ENV_FALLBACKS = {
    "provider": "SHADOWTEST_LLM_PROVIDER",
    "model": "SHADOWTEST_LLM_MODEL",
    "api_key": "SHADOWTEST_LLM_API_KEY",
    "base_url": "SHADOWTEST_LLM_BASE_URL",
}


def resolve_env_vars(value: str) -> str:
    """Expand ``${NAME}`` references; unset variables expand to ``""``."""
    return _PLACEHOLDER.sub(lambda m: os.environ.get(m.group(1), ""), value)


@dataclass
class LLMConfig:
    provider: str = "openai"
    model: str = ""
    """LiteLLM model string, e.g. ``gpt-4o`` or ``anthropic/claude-sonnet-4-5``."""

    api_key: str = ""
    base_url: str = ""
    mode: str = "builtin"
    """``builtin`` talks to hosted APIs; ``ollama`` to a local server, no key needed."""

    temperature: float = 0.2
    max_tokens: int = 4096
    requests_per_minute: int = 60
    max_retries: int = 3

    @property
    def is_configured(self) -> bool:
        needs_key = self.mode != "ollama"
        return bool(self.model) and (bool(self.api_key) or not needs_key)


def build_llm_config(raw: dict[str, Any]) -> LLMConfig:
    defaults = LLMConfig()
    strings = {
        name: resolve_env_vars(str(raw.get(name, os.environ.get(var, getattr(defaults, name)))))
        for name, var in _ENV_FALLBACKS.items()
    }
    return LLMConfig(
        **strings,
        mode=str(raw.get("mode", defaults.mode)),
        temperature=float(raw.get("temperature", defaults.temperature)),
        max_tokens=int(raw.get("max_tokens", defaults.max_tokens)),
        requests_per_minute=int(raw.get("requests_per_minute", defaults.requests_per_minute)),
        max_retries=int(raw.get("max_retries", defaults.max_retries)),
    )
