"""LLM integration layer for shadowtest."""

from shadowtest.llm.builtin import BuiltinLLM
from shadowtest.llm.config import LLMConfig
from shadowtest.llm.engine import LLMEngine, LLMError, LLMResponse
from shadowtest.llm.factory import create_engine
from shadowtest.llm.responses import MalformedResponse

__all__ = [
    "BuiltinLLM",
    "LLMConfig",
    "LLMEngine",
    "LLMError",
    "LLMResponse",
    "MalformedResponse",
    "create_engine",
]
