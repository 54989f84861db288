"""Best-effort extraction of a function's source slice without a full parse.

Declarations are located with regular expressions and their bodies delimited by
nested-brace matching that skips strings and comments (indentation for Python).
The result is always tagged: :class:`Found` or :class:`NotFound`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

_IDENT = r"[A-Za-z_$][\w$]*"
_MODIFIERS = r"(?:(?:public|private|protected|static|async|readonly|override|abstract|get|set)\s+)*"
_PY_CLASS_RE = re.compile(r"^([ \t]*)class\s+(\w+)\b[^\n]*:", re.MULTILINE)
_JS_CLASS_RE = re.compile(rf"\bclass\s+({_IDENT})(?:\s*<[^{{]*?>)?[^{{;]*\{{")


@dataclass(frozen=True)
class Found:
    """The declaration was located."""

    code: str
    start_line: int
    """1-based line of the declaration's first line."""


@dataclass(frozen=True)
class NotFound:
    """The declaration could not be located."""

    reason: str


type Extraction = Found | NotFound


class Membership(Enum):
    """How a target function is reached from a test."""

    FREE = "free"
    INSTANCE = "instance"
    STATIC = "static"


@dataclass(frozen=True)
class ClassMembership:
    kind: Membership = Membership.FREE
    class_name: str = ""


# ── Declaration shapes ────────────────────────────────────────────


def _declaration_patterns(name: str) -> list[re.Pattern[str]]:
    """Regexes for the supported declaration shapes, in priority order."""
    n = re.escape(name)
    return [
        # function foo(…) / export async function foo(…) / function* foo(…)
        re.compile(
            rf"^[ \t]*(?:export\s+)?(?:default\s+)?(?:declare\s+)?(?:async\s+)?"
            rf"function\s*\*?\s*{n}\s*(?:<[^>(]*>)?\s*\(",
            re.MULTILINE,
        ),
        # const foo = (…) => … / const foo = async function (…) / const foo = x => …
        re.compile(
            rf"^[ \t]*(?:export\s+)?(?:const|let|var)\s+{n}\b[^=\n]*=\s*(?:async\s+)?"
            rf"(?:function\b|\(|<|{_IDENT}\s*=>)",
            re.MULTILINE,
        ),
        # class method or arrow-valued class property
        re.compile(
            rf"^[ \t]*{_MODIFIERS}\*?{n}\s*(?:<[^>(]*>)?\s*(?:\(|(?::[^=\n]+)?=\s*(?:async\s+)?\()",
            re.MULTILINE,
        ),
    ]


def _python_pattern(name: str) -> re.Pattern[str]:
    return re.compile(rf"^([ \t]*)(?:async\s+)?def\s+{re.escape(name)}\s*\(", re.MULTILINE)


# ── Public API ────────────────────────────────────────────────────


def extract_function(source: str, name: str, *, language: str = "typescript") -> Extraction:
    """Return the source slice of the first declaration of *name*."""
    if not name:
        return NotFound("empty function name")
    if language == "python":
        return _extract_python(source, name)

    for pattern in _declaration_patterns(name):
        for match in pattern.finditer(source):
            matched = match.group(0)
            if matched.endswith("=>"):
                end = _arrow_body_end(source, match.end())
            elif matched.endswith("("):
                end = _declaration_end(source, match.end() - 1)
            else:
                end = _declaration_end(source, match.end())
            if end is None:
                continue
            return Found(
                code=source[match.start() : end].rstrip(),
                start_line=source.count("\n", 0, match.start()) + 1,
            )
    return NotFound(f"no declaration of {name!r} found")


def classify_membership(
    source: str, name: str, *, language: str = "typescript"
) -> ClassMembership:
    """Decide whether *name* is a free function, instance method or static method."""
    if language == "python":
        return _classify_python(source, name)

    method_re = re.compile(
        rf"^[ \t]*((?:(?:public|private|protected|static|async|readonly|override|abstract)\s+)*)"
        rf"\*?{re.escape(name)}\s*(?:<[^>(]*>)?\s*(?:\(|(?::[^=\n]+)?=)",
        re.MULTILINE,
    )
    for cls in _JS_CLASS_RE.finditer(source):
        open_idx = cls.end() - 1
        close_idx = find_matching(source, open_idx)
        if close_idx is None:
            continue
        body = source[open_idx + 1 : close_idx]
        for method in method_re.finditer(body):
            if brace_depth(body, method.start()) != 0:
                continue
            kind = Membership.STATIC if "static" in method.group(1).split() else Membership.INSTANCE
            return ClassMembership(kind=kind, class_name=cls.group(1))
    return ClassMembership()


def extract_return_type(code: str, *, language: str = "typescript") -> str | None:
    """Return the declared return type from an extracted slice, if any."""
    if language == "python":
        match = re.search(r"\)\s*->\s*([^:\n]+?)\s*:", code)
        return match.group(1).strip() if match else None

    open_idx = code.find("(")
    if open_idx == -1:
        return None
    close_idx = find_matching(code, open_idx, "(", ")")
    if close_idx is None:
        return None
    rest = close_idx + 1
    arrow = re.match(r"\s*:\s*([^;{}]*?)\s*=>", code[rest:])
    if arrow:
        return " ".join(arrow.group(1).split()) or None

    brace_idx = _body_open_brace(code, rest)
    if brace_idx is None:
        return None
    annotation = code[rest:brace_idx].strip()
    if not annotation.startswith(":"):
        return None
    return " ".join(annotation[1:].split()) or None


# ── Brace scanning ────────────────────────────────────────────────


def find_matching(text: str, open_idx: int, open_ch: str = "{", close_ch: str = "}") -> int | None:
    """Index of the bracket closing the one at *open_idx*, skipping strings and comments."""
    depth = 0
    for idx, ch in _scan_code(text, open_idx):
        if ch == open_ch:
            depth += 1
        elif ch == close_ch:
            depth -= 1
            if depth == 0:
                return idx
    return None


def brace_depth(text: str, offset: int) -> int:
    """Curly-brace nesting depth at *offset* (strings and comments ignored)."""
    depth = 0
    for idx, ch in _scan_code(text, 0):
        if idx >= offset:
            break
        if ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
    return depth


def _scan_code(text: str, start: int) -> Iterator[tuple[int, str]]:
    """Yield ``(index, char)`` for characters outside strings and comments."""
    i = start
    n = len(text)
    while i < n:
        ch = text[i]
        if text.startswith(("//", "/*"), i):
            i = _skip_comment(text, i)
            continue
        if ch in "'\"`":
            i = _skip_string(text, i, ch)
            continue
        yield i, ch
        i += 1


def _skip_comment(text: str, i: int) -> int:
    if text.startswith("//", i):
        end = text.find("\n", i)
        return len(text) if end == -1 else end
    end = text.find("*/", i + 2)
    return len(text) if end == -1 else end + 2


def _skip_string(text: str, i: int, quote: str) -> int:
    i += 1
    while i < len(text):
        ch = text[i]
        if ch == "\\":
            i += 2
            continue
        if ch == quote:
            return i + 1
        if ch == "\n" and quote != "`":
            return i + 1
        i += 1
    return i


def _declaration_end(source: str, pos: int) -> int | None:
    """End offset of a declaration whose parameter list opens at or after *pos*."""
    paren_idx = source.find("(", pos)
    if paren_idx == -1:
        return None
    params_end = find_matching(source, paren_idx, "(", ")")
    if params_end is None:
        return None

    rest_start = params_end + 1
    arrow = re.match(r"\s*(?::[^;{}]*?)?=>", source[rest_start:])
    if arrow:
        return _arrow_body_end(source, rest_start + arrow.end())

    brace_idx = _body_open_brace(source, rest_start)
    if brace_idx is None:
        return None
    close = find_matching(source, brace_idx)
    return None if close is None else close + 1


def _arrow_body_end(source: str, start: int) -> int | None:
    body_start = start
    while body_start < len(source) and source[body_start].isspace():
        body_start += 1
    if body_start < len(source) and source[body_start] == "{":
        close = find_matching(source, body_start)
        return None if close is None else close + 1
    return _statement_end(source, body_start)


_TYPE_CONTINUATION = frozenset({":", "|", "&", ",", "<", "=>"})
_CLOSERS = {"(": ")", "[": "]", "{": "}"}


def _body_open_brace(source: str, start: int) -> int | None:
    """Locate the ``{`` opening a function body after its parameter list.

    A return-type annotation may sit in between. Anything else first (``;``,
    ``.``, an operator) means this was a call or an overload signature.
    """
    i = start
    n = len(source)
    in_annotation = False
    angle = 0
    prev = ""
    while i < n:
        ch = source[i]
        if ch.isspace():
            i += 1
            continue
        if source.startswith(("//", "/*"), i):
            i = _skip_comment(source, i)
            continue
        if not in_annotation:
            if ch == ":":
                in_annotation = True
                prev = ch
                i += 1
                continue
            return i if ch == "{" else None

        if ch in "'\"`":
            i = _skip_string(source, i, ch)
            prev = "literal"
            continue
        if ch in "([" or (ch == "{" and (angle or prev in _TYPE_CONTINUATION)):
            close = find_matching(source, i, ch, _CLOSERS[ch])
            if close is None:
                return None
            i = close + 1
            prev = _CLOSERS[ch]
            continue
        if ch == "{":
            return i
        if ch == ";":
            return None
        if ch == ">" and prev == "=":
            prev = "=>"
            i += 1
            continue
        if ch == "<":
            angle += 1
        elif ch == ">":
            angle = max(angle - 1, 0)
        prev = ch
        i += 1
    return None


def _statement_end(source: str, start: int) -> int:
    depth = 0
    for idx, ch in _scan_code(source, start):
        if ch in "([{":
            depth += 1
        elif ch in ")]}":
            if depth == 0:
                return idx
            depth -= 1
        elif depth == 0 and ch in ";\n":
            return idx + 1 if ch == ";" else idx
    return len(source)


# ── Python ────────────────────────────────────────────────────────


def _extract_python(source: str, name: str) -> Extraction:
    match = _python_pattern(name).search(source)
    if match is None:
        return NotFound(f"no declaration of {name!r} found")

    indent = len(match.group(1).expandtabs())
    start = match.start()
    lines = source[start:].splitlines(keepends=True)
    kept = [lines[0]]
    for line in lines[1:]:
        stripped = line.strip()
        if stripped and len(line) - len(line.lstrip()) <= indent and not stripped.startswith(")"):
            break
        kept.append(line)
    return Found(
        code="".join(kept).rstrip(),
        start_line=source.count("\n", 0, start) + 1,
    )


def _classify_python(source: str, name: str) -> ClassMembership:
    match = _python_pattern(name).search(source)
    if match is None:
        return ClassMembership()

    def_indent = len(match.group(1).expandtabs())
    if def_indent == 0:
        return ClassMembership()

    owner = None
    for cls in _PY_CLASS_RE.finditer(source, 0, match.start()):
        if len(cls.group(1).expandtabs()) < def_indent:
            owner = cls
    if owner is None:
        return ClassMembership()

    preceding = source[: match.start()].rstrip().splitlines()
    decorator = preceding[-1].strip() if preceding else ""
    kind = Membership.STATIC if decorator in {"@staticmethod", "@classmethod"} else Membership.INSTANCE
    return ClassMembership(kind=kind, class_name=owner.group(2))
