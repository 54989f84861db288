"""Prompt templates: a system instruction plus ``## Label`` sections as the user turn."""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any

from shadowtest.llm.engine import GenerationRequest, LLMMessage

logger = logging.getLogger(__name__)

_SECTION_RULE = "\n\n---\n\n"


@dataclass
class PromptSection:
    label: str
    content: str


@dataclass
class RenderedPrompt:
    messages: list[LLMMessage] = field(default_factory=list)

    def _first(self, role: str) -> str:
        return next((m.content for m in self.messages if m.role == role), "")

    @property
    def system_message(self) -> str:
        return self._first("system")

    @property
    def user_message(self) -> str:
        return self._first("user")

    def to_request(self) -> GenerationRequest:
        return GenerationRequest(messages=list(self.messages))


class PromptTemplate[C](ABC):
    """One kind of request to the model, parameterised by its context type *C*.

    Templates that expect a structured answer set :attr:`json_shape`; the
    shape is then appended as an "Output Format" section.
    """

    json_shape: dict[str, Any] | None = None

    @property
    @abstractmethod
    def name(self) -> str: ...

    @abstractmethod
    def _system_instruction(self, context: C) -> str: ...

    @abstractmethod
    def _build_sections(self, context: C) -> list[PromptSection]: ...

    def render(self, context: C) -> RenderedPrompt:
        sections = self._build_sections(context)
        if self.json_shape is not None:
            sections.append(json_output_section(self.json_shape))
        user = _join_sections(sections)
        logger.debug("Rendered %s prompt (%d sections, %d chars)", self.name, len(sections), len(user))
        return RenderedPrompt(
            messages=[
                LLMMessage(role="system", content=self._system_instruction(context)),
                LLMMessage(role="user", content=user),
            ],
        )


# ── Section builders ──────────────────────────────────────────────


def code_section(label: str, code: str, language: str, *, path: str = "") -> PromptSection:
    fenced = f"```{language}\n{code}\n```"
    return PromptSection(label, f"File: {path}\n\n{fenced}" if path else fenced)


def bullet_section(label: str, items: list[str], *, empty: str = "None.") -> PromptSection:
    return PromptSection(label, "\n".join(f"- {item}" for item in items) or empty)


def json_output_section(shape: dict[str, Any]) -> PromptSection:
    """The closing instruction for templates that want a ``<json>``-wrapped object."""
    return PromptSection(
        "Output Format",
        "Respond with a single JSON object wrapped in <json></json> tags, "
        "with no other commentary. The object must have this shape:\n\n"
        f"<json>\n{json.dumps(shape, indent=2)}\n</json>",
    )


def _join_sections(sections: list[PromptSection]) -> str:
    return _SECTION_RULE.join(f"## {s.label}\n\n{s.content}" for s in sections if s.content)
