"""Prompt templates for environment setup, test generation and repair."""

from shadowtest.llm.prompts.base import PromptSection, PromptTemplate, RenderedPrompt
from shadowtest.llm.prompts.fix import BuildFixTemplate, FixContext, SyntaxFixTemplate
from shadowtest.llm.prompts.generation import GenerationContext, UnitTestTemplate
from shadowtest.llm.prompts.setup import EnvironmentSetupTemplate

__all__ = [
    "BuildFixTemplate",
    "EnvironmentSetupTemplate",
    "FixContext",
    "GenerationContext",
    "PromptSection",
    "PromptTemplate",
    "RenderedPrompt",
    "SyntaxFixTemplate",
    "UnitTestTemplate",
]
