"""Type-annotation completion for bare TypeScript declarations."""

from __future__ import annotations

import re

_IDENT = r"[A-Za-z_$][\w$]*"
_BARE_DECLARATION_RE = re.compile(
    rf"^(?P<indent>[ \t]*)(?P<keyword>let|const|var)\s+"
    rf"(?P<names>{_IDENT}(?:\s*,\s*{_IDENT})*)\s*;",
    re.MULTILINE,
)
_TS_EXTENSIONS = (".ts", ".tsx", ".mts", ".cts")


def applies_to(file_extension: str) -> bool:
    return file_extension.endswith(_TS_EXTENSIONS)


def complete_annotations(code: str) -> tuple[str, int]:
    """Give every bare ``let x;`` style declaration an explicit ``any`` type.

    Returns the new code and the number of declarations changed.  Running it
    twice changes nothing the second time.
    """
    count = 0

    def _annotate(match: re.Match[str]) -> str:
        nonlocal count
        count += 1
        names = [name.strip() for name in match.group("names").split(",")]
        typed = ", ".join(f"{name}: any" for name in names)
        return f"{match.group('indent')}{match.group('keyword')} {typed};"

    return _BARE_DECLARATION_RE.sub(_annotate, code), count
