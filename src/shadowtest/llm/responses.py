"""Typed views over generative-service responses.

Every structured request kind has its own result type.  Parsers accept JSON
wrapped in ``<json>…</json>`` tags, a fenced ```` ```json ```` block, or a bare
object, and raise :class:`MalformedResponse` when a required field is missing
instead of handing ``None`` to downstream stages.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Any

from shadowtest.llm.engine import LLMError

logger = logging.getLogger(__name__)

_JSON_TAG_RE = re.compile(r"<json>\s*(.*?)\s*</json>", re.DOTALL | re.IGNORECASE)
_FENCE_RE = re.compile(r"```([\w+-]*)[ \t]*\n(.*?)```", re.DOTALL)

IMPORT_STYLES = frozenset({"esm", "commonjs", "native"})


class MalformedResponse(LLMError):
    """The service answered, but not with the shape the request asked for."""

    def __init__(self, kind: str, problem: str, raw: str = "") -> None:
        super().__init__(f"Malformed {kind} response: {problem}")
        self.kind = kind
        self.problem = problem
        self.raw = raw


# ── Extraction helpers ───────────────────────────────────────────


def extract_json(text: str) -> dict[str, Any] | None:
    """Find and parse the JSON object in an LLM response, or return ``None``."""
    candidates: list[str] = []

    tagged = _JSON_TAG_RE.search(text)
    if tagged:
        candidates.append(tagged.group(1))

    for lang, body in _FENCE_RE.findall(text):
        if lang.lower() in {"json", ""}:
            candidates.append(body)

    candidates.append(text)

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidates.append(text[start : end + 1])

    for candidate in candidates:
        try:
            obj = json.loads(candidate.strip())
        except json.JSONDecodeError:
            continue
        if isinstance(obj, dict):
            return obj
    return None


def extract_code_block(text: str) -> str | None:
    """Return the body of the first non-JSON fenced code block, if any."""
    for lang, body in _FENCE_RE.findall(text):
        if lang.lower() != "json" and body.strip():
            return body.strip("\n")
    return None


def _require_str(data: dict[str, Any], key: str, kind: str, raw: str) -> str:
    value = data.get(key)
    if not isinstance(value, str) or not value.strip():
        raise MalformedResponse(kind, f"missing required field {key!r}", raw)
    return value


def _optional_str(data: dict[str, Any], key: str, default: str = "") -> str:
    value = data.get(key)
    return value if isinstance(value, str) else default


def _str_list(value: object) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v) for v in value if isinstance(v, (str, int, float))]


# ── Environment setup ────────────────────────────────────────────


@dataclass(frozen=True)
class DependencySpec:
    """A package the test environment needs."""

    name: str
    version: str = ""
    dev: bool = True

    @property
    def spec(self) -> str:
        """Installer-ready ``name@version`` (or just ``name``)."""
        return f"{self.name}@{self.version}" if self.version else self.name


@dataclass(frozen=True)
class ConfigFileSpec:
    """A config file the service wants written, relative to the project root."""

    path: str
    content: str


@dataclass
class EnvironmentSetupResult:
    """Parsed answer to the environment-setup request."""

    language: str
    framework: str
    test_directory: str
    file_extension: str
    run_command: str
    import_style: str = "commonjs"
    module_system: str = "commonjs"
    direct_command: str = ""
    dependencies: list[DependencySpec] = field(default_factory=list)
    config_files: list[ConfigFileSpec] = field(default_factory=list)


def parse_environment_setup(text: str) -> EnvironmentSetupResult:
    """Parse an environment-setup response.

    Raises:
        MalformedResponse: No JSON object, or a required field is absent.
    """
    kind = "environment setup"
    data = extract_json(text)
    if data is None:
        raise MalformedResponse(kind, "no JSON object found", text)

    language = _require_str(data, "language", kind, text).strip().lower()
    if "framework" not in data and "testing_framework" in data:
        data["framework"] = data["testing_framework"]
    framework = _require_str(data, "framework", kind, text).strip().lower()
    test_directory = _require_str(data, "test_directory", kind, text).strip().strip("/")
    file_extension = _require_str(data, "file_extension", kind, text).strip()
    if not file_extension.startswith("."):
        file_extension = f".{file_extension}"
    run_command = _require_str(data, "run_command", kind, text).strip()

    default_style = "native" if language not in {"typescript", "javascript"} else "commonjs"
    import_style = _optional_str(data, "import_style", default_style).strip().lower()
    if import_style not in IMPORT_STYLES:
        raise MalformedResponse(kind, f"unknown import_style {import_style!r}", text)

    dependencies: list[DependencySpec] = []
    for dep in data.get("dependencies") or []:
        if isinstance(dep, str) and dep.strip():
            dependencies.append(DependencySpec(name=dep.strip()))
        elif isinstance(dep, dict) and isinstance(dep.get("name"), str) and dep["name"].strip():
            dependencies.append(
                DependencySpec(
                    name=dep["name"].strip(),
                    version=str(dep.get("version") or "").strip(),
                    dev=bool(dep.get("dev", True)),
                )
            )

    config_files = [
        ConfigFileSpec(path=str(cfg["path"]), content=str(cfg.get("content", "")))
        for cfg in data.get("config_files") or []
        if isinstance(cfg, dict) and isinstance(cfg.get("path"), str) and cfg["path"].strip()
    ]

    return EnvironmentSetupResult(
        language=language,
        framework=framework,
        test_directory=test_directory or "UnitTests",
        file_extension=file_extension,
        run_command=run_command,
        import_style=import_style,
        module_system=_optional_str(data, "module_system", import_style).strip().lower(),
        direct_command=_optional_str(data, "direct_command").strip(),
        dependencies=dependencies,
        config_files=config_files,
    )


# ── Per-target generation ────────────────────────────────────────


@dataclass
class GenerationResult:
    """Parsed answer to a per-target test generation request."""

    test_code: str
    imports: list[str] = field(default_factory=list)
    mocks: list[str] = field(default_factory=list)

    def render(self) -> str:
        """Imports, then mock registrations, then the test body."""
        parts: list[str] = []
        if self.imports:
            parts.append("\n".join(self.imports))
        if self.mocks:
            parts.append("\n".join(self.mocks))
        parts.append(self.test_code.strip("\n"))
        return "\n\n".join(parts)


def parse_generation(text: str) -> GenerationResult:
    """Parse a generation response.

    A response with no JSON but a fenced code block is accepted as raw test code.

    Raises:
        MalformedResponse: Neither a usable JSON object nor a code block was found.
    """
    kind = "test generation"
    data = extract_json(text)
    if data is None or "test_code" not in data:
        code = extract_code_block(text)
        if code:
            logger.debug("Generation response had no JSON; using fenced code block")
            return GenerationResult(test_code=code)
        if data is None:
            raise MalformedResponse(kind, "no JSON object or code block found", text)

    test_code = _require_str(data, "test_code", kind, text)
    mocks: list[str] = []
    for mock in data.get("mocks") or []:
        if isinstance(mock, str) and mock.strip():
            mocks.append(mock.strip())
        elif isinstance(mock, dict) and isinstance(mock.get("statement"), str):
            mocks.append(mock["statement"].strip())

    return GenerationResult(
        test_code=test_code,
        imports=[line.strip() for line in _str_list(data.get("imports")) if line.strip()],
        mocks=mocks,
    )


# ── Fix requests (syntax and build repair) ───────────────────────


@dataclass
class FixResult:
    """Parsed answer to a fix request."""

    fixed_code: str
    status: str = "pass"
    explanation: str = ""
    remaining_issues: list[str] = field(default_factory=list)


def parse_fix(text: str) -> FixResult:
    """Parse a fix response.

    Raises:
        MalformedResponse: No ``fixed_code`` could be recovered, or the service
            reported that it could not fix the code.
    """
    kind = "fix"
    data = extract_json(text)
    if data is None or ("fixed_code" not in data and "status" not in data):
        code = extract_code_block(text)
        if code:
            return FixResult(fixed_code=code)
        if data is None:
            raise MalformedResponse(kind, "no JSON object or code block found", text)

    status = _optional_str(data, "status", "pass").strip().lower() or "pass"
    explanation = _optional_str(data, "explanation")
    if status == "error":
        raise MalformedResponse(kind, f"service declined to fix: {explanation}", text)

    return FixResult(
        fixed_code=_require_str(data, "fixed_code", kind, text),
        status=status,
        explanation=explanation,
        remaining_issues=_str_list(data.get("remaining_issues")),
    )
