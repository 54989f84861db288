"""Tree-sitter grammars for the languages generated tests are written in."""

from __future__ import annotations

import functools
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, cast

import tree_sitter_language_pack as tslp

if TYPE_CHECKING:
    import tree_sitter
    from tree_sitter_language_pack import SupportedLanguage

logger = logging.getLogger(__name__)

# Source suffix -> tree-sitter grammar name.
EXTENSION_TO_LANGUAGE: dict[str, str] = {
    ".py": "python",
    ".js": "javascript",
    ".mjs": "javascript",
    ".cjs": "javascript",
    ".jsx": "javascript",
    ".ts": "typescript",
    ".mts": "typescript",
    ".cts": "typescript",
    ".tsx": "tsx",
}

GRAMMARS = frozenset(EXTENSION_TO_LANGUAGE.values())


@dataclass(frozen=True)
class ErrorSpan:
    """1-based, inclusive line range covered by an ``ERROR`` or ``MISSING`` node."""

    start_line: int
    end_line: int
    missing: bool = False
    """``True`` when the parser had to insert a token that is not in the source."""

    def describe(self) -> str:
        if self.start_line == self.end_line:
            where = f"line {self.start_line}"
        else:
            where = f"lines {self.start_line}-{self.end_line}"
        suffix = " (missing token)" if self.missing else ""
        return f"Syntax error at {where}{suffix}"


def language_for_path(path: str | Path) -> str | None:
    """Grammar for *path* by its last suffix, e.g. ``typescript`` for ``a.test.ts``."""
    return EXTENSION_TO_LANGUAGE.get(Path(path).suffix.lower())


@functools.cache
def load_parser(language: str) -> tree_sitter.Parser:
    """Parser for *language*, built once per process.

    Raises:
        ValueError: *language* is not one of :data:`GRAMMARS`.
    """
    if language not in GRAMMARS:
        raise ValueError(f"Unsupported language: {language}")
    logger.debug("Loading tree-sitter grammar %s", language)
    return tslp.get_parser(cast("SupportedLanguage", language))


def error_spans(code: str, language: str) -> list[ErrorSpan]:
    """Parse *code* and return its error spans in source order.

    Nested error nodes are reported once, through their outermost ``ERROR``.
    Returns an empty list when the code parses cleanly.
    """
    root = load_parser(language).parse(code.encode("utf-8")).root_node
    if not root.has_error:
        return []

    spans: list[ErrorSpan] = []
    stack: list[tree_sitter.Node] = [root]
    while stack:
        node = stack.pop()
        if node.is_error or node.is_missing:
            spans.append(
                ErrorSpan(node.start_point.row + 1, node.end_point.row + 1, missing=node.is_missing)
            )
            continue
        stack.extend(reversed(node.children))

    if not spans:
        # has_error without a located node: blame the whole file.
        spans.append(ErrorSpan(1, code.count("\n") + 1))
    return sorted(set(spans), key=lambda s: (s.start_line, s.end_line, s.missing))
