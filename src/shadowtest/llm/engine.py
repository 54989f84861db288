"""LLMEngine — what the synthesizer and repair loop need from a model."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field

_FINISH_LENGTH = "length"


@dataclass
class LLMResponse:
    """Text and token accounting for one completed call."""

    text: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str = ""
    """Provider stop reason; ``"length"`` means the output hit ``max_tokens``."""

    @property
    def total_tokens(self) -> int:
        return self.prompt_tokens + self.completion_tokens

    @property
    def truncated(self) -> bool:
        return self.finish_reason == _FINISH_LENGTH


@dataclass
class LLMMessage:
    role: str
    """``system``, ``user`` or ``assistant``."""

    content: str


@dataclass
class GenerationRequest:
    """One chat-style call: the conversation plus per-call overrides.

    ``None`` for ``model``, ``temperature`` or ``max_tokens`` keeps the
    engine's configured value.
    """

    messages: list[LLMMessage]
    model: str | None = None
    temperature: float | None = None
    max_tokens: int | None = None
    extra: dict[str, object] = field(default_factory=dict)


class LLMEngine(ABC):
    """A model the pipeline can ask for test code.

    Callers only rely on :meth:`generate` returning text or raising
    :class:`LLMError`; which provider or model sits behind it is irrelevant.
    """

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> LLMResponse:
        """Run *request* against the model.

        Raises:
            LLMError: The call failed and will not be retried further.
        """

    @property
    @abstractmethod
    def model_name(self) -> str: ...


class LLMError(Exception):
    """The model call failed."""


class LLMAuthError(LLMError):
    """Missing or rejected API key."""


class LLMRateLimitError(LLMError):
    """Provider kept answering 429 after all retries."""


class LLMConnectionError(LLMError):
    """Provider unreachable after all retries."""
