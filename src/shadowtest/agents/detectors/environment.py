"""Environment profiler — decide once per project how tests are written and run.

The first run asks the generative service for a test setup based on an
:class:`EnvironmentFingerprint`, installs what it needs, writes its config files
and persists a :class:`TestEnvManifest`.  Every later run reuses that manifest
without calling the service or any process.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

from shadowtest.agents.detectors.fingerprint import collect_fingerprint, is_test_runner_config
from shadowtest.llm.engine import LLMError
from shadowtest.llm.prompts.setup import EnvironmentSetupTemplate
from shadowtest.llm.responses import parse_environment_setup
from shadowtest.models.manifest import TestEnvManifest, default_manifest
from shadowtest.models.store import load_manifest, save_manifest
from shadowtest.utils.cancellation import check_cancelled
from shadowtest.utils.subprocess_runner import SubprocessError, run_subprocess

if TYPE_CHECKING:
    from shadowtest.llm.engine import LLMEngine
    from shadowtest.llm.responses import ConfigFileSpec, DependencySpec, EnvironmentSetupResult
    from shadowtest.utils.cancellation import CancellationToken

logger = logging.getLogger(__name__)

DEFAULT_INSTALL_TIMEOUT = 180.0

MERGE_MARKER = "shadowtest: suggested test configuration"

_HASH_COMMENT_SUFFIXES = frozenset({".ini", ".cfg", ".toml", ".py", ".yml", ".yaml"})


@dataclass
class InstallWarning:
    """A dependency install that failed; the run continues without it."""

    command: str
    message: str


@dataclass
class EnvironmentSetupReport:
    """What happened while preparing a new environment."""

    manifest: TestEnvManifest
    from_cache: bool = False
    used_default: bool = False
    installed: list[str] = field(default_factory=list)
    warnings: list[InstallWarning] = field(default_factory=list)
    written_files: list[str] = field(default_factory=list)
    merged_files: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)


async def ensure_environment(
    project_root: str | Path,
    llm: LLMEngine,
    *,
    cancel: CancellationToken | None = None,
    install_timeout: float = DEFAULT_INSTALL_TIMEOUT,
) -> TestEnvManifest:
    """Return the project's manifest, creating and persisting it on first use."""
    report = await prepare_environment(
        project_root, llm, cancel=cancel, install_timeout=install_timeout
    )
    return report.manifest


async def prepare_environment(
    project_root: str | Path,
    llm: LLMEngine,
    *,
    cancel: CancellationToken | None = None,
    install_timeout: float = DEFAULT_INSTALL_TIMEOUT,
) -> EnvironmentSetupReport:
    """Like :func:`ensure_environment` but reports installs, writes and warnings."""
    root = Path(project_root)
    cached = load_manifest(root)
    if cached is not None:
        logger.debug("Reusing cached test environment manifest")
        return EnvironmentSetupReport(manifest=cached, from_cache=True)

    fingerprint = collect_fingerprint(root)
    logger.info(
        "Detecting test environment (language=%s, framework=%s)",
        fingerprint.primary_language,
        fingerprint.existing_framework or "none",
    )

    check_cancelled(cancel, "environment setup request")
    prompt = EnvironmentSetupTemplate().render(fingerprint)
    try:
        response = await llm.generate(prompt.to_request())
        setup = parse_environment_setup(response.text)
    except LLMError as exc:
        logger.warning("Environment detection failed, using the default manifest: %s", exc)
        manifest = default_manifest()
        save_manifest(root, manifest)
        return EnvironmentSetupReport(manifest=manifest, used_default=True)

    manifest = manifest_from_setup(setup)
    report = EnvironmentSetupReport(manifest=manifest)

    check_cancelled(cancel, "dependency install")
    await _install_dependencies(root, manifest, setup.dependencies, report, install_timeout)

    for config_file in setup.config_files:
        _write_config_file(root, config_file, report)
    (root / manifest.test_directory).mkdir(parents=True, exist_ok=True)

    save_manifest(root, manifest)
    return report


def manifest_from_setup(setup: EnvironmentSetupResult) -> TestEnvManifest:
    return TestEnvManifest(
        language=setup.language,
        framework=setup.framework,
        import_style=setup.import_style,
        module_system=setup.module_system or setup.import_style,
        test_directory=setup.test_directory,
        file_extension=setup.file_extension,
        run_command=setup.run_command,
        direct_command=setup.direct_command or setup.run_command,
    )


# ── Dependency installation ──────────────────────────────────────


def install_commands(
    root: Path, manifest: TestEnvManifest, dependencies: list[DependencySpec]
) -> list[list[str]]:
    """Installer invocations: dev dependencies first, then production ones."""
    if not dependencies:
        return []

    if manifest.is_python:
        specs = [_python_spec(dep) for dep in dependencies]
        return [["python", "-m", "pip", "install", *specs]]

    dev = [dep.spec for dep in dependencies if dep.dev]
    prod = [dep.spec for dep in dependencies if not dep.dev]
    if (root / "pnpm-lock.yaml").is_file():
        base, dev_flag, prod_flag = ["pnpm", "add"], "--save-dev", "--save-prod"
    elif (root / "yarn.lock").is_file():
        base, dev_flag, prod_flag = ["yarn", "add"], "--dev", ""
    else:
        base, dev_flag, prod_flag = ["npm", "install"], "--save-dev", "--save"

    commands: list[list[str]] = []
    if dev:
        commands.append([*base, dev_flag, *dev])
    if prod:
        commands.append([*base, *([prod_flag] if prod_flag else []), *prod])
    return commands


def _python_spec(dep: DependencySpec) -> str:
    if not dep.version:
        return dep.name
    if dep.version[0].isdigit():
        return f"{dep.name}=={dep.version}"
    return f"{dep.name}{dep.version}"


async def _install_dependencies(
    root: Path,
    manifest: TestEnvManifest,
    dependencies: list[DependencySpec],
    report: EnvironmentSetupReport,
    timeout: float,
) -> None:
    specs = {dep.spec for dep in dependencies} | {_python_spec(dep) for dep in dependencies}
    for command in install_commands(root, manifest, dependencies):
        printable = " ".join(command)
        logger.info("Installing test dependencies: %s", printable)
        try:
            result = await run_subprocess(command, cwd=root, timeout=timeout)
        except SubprocessError as exc:
            _record_install_warning(report, printable, str(exc))
            continue
        if result.success:
            report.installed.extend(arg for arg in command if arg in specs)
        else:
            detail = result.stderr.strip().splitlines()[-1:] or [f"exit code {result.returncode}"]
            _record_install_warning(report, printable, detail[0])


def _record_install_warning(report: EnvironmentSetupReport, command: str, message: str) -> None:
    logger.warning("Dependency install failed (%s): %s", command, message)
    report.warnings.append(InstallWarning(command=command, message=message))


# ── Config files ──────────────────────────────────────────────────


def _write_config_file(root: Path, spec: ConfigFileSpec, report: EnvironmentSetupReport) -> None:
    target = (root / spec.path).resolve()
    if not target.is_relative_to(root.resolve()):
        logger.warning("Refusing to write config outside the project: %s", spec.path)
        report.skipped_files.append(spec.path)
        return

    if not target.exists():
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(spec.content, encoding="utf-8")
        logger.info("Wrote %s", spec.path)
        report.written_files.append(spec.path)
        return

    if not is_test_runner_config(target):
        logger.info("Leaving existing %s untouched", spec.path)
        report.skipped_files.append(spec.path)
        return

    existing = target.read_text(encoding="utf-8")
    merged = merge_config_content(existing, spec.content, target.suffix)
    if merged != existing:
        target.write_text(merged, encoding="utf-8")
        logger.info("Merged suggested settings into %s", spec.path)
        report.merged_files.append(spec.path)


def merge_config_content(existing: str, incoming: str, suffix: str) -> str:
    """Merge *incoming* test-runner config into *existing* without losing settings.

    JSON objects are deep-merged with existing keys winning.  Anything else gets
    the suggestion appended once as a marked, commented-out block.
    """
    old = _load_json_object(existing)
    new = _load_json_object(incoming)
    if old is not None and new is not None:
        return json.dumps(deep_merge(old, new), indent=2) + "\n"

    if MERGE_MARKER in existing or not incoming.strip():
        return existing

    prefix = "#" if suffix.lower() in _HASH_COMMENT_SUFFIXES else "//"
    block = [f"{prefix} --- {MERGE_MARKER} ---"]
    block.extend(f"{prefix} {line}".rstrip() for line in incoming.strip().splitlines())
    block.append(f"{prefix} --- end {MERGE_MARKER} ---")
    separator = "" if existing.endswith("\n") or not existing else "\n"
    return f"{existing}{separator}\n" + "\n".join(block) + "\n"


def deep_merge(existing: dict[str, Any], incoming: dict[str, Any]) -> dict[str, Any]:
    """Recursively add keys from *incoming*; values already in *existing* win."""
    merged = dict(existing)
    for key, value in incoming.items():
        if key not in merged:
            merged[key] = value
        elif isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = deep_merge(merged[key], value)
    return merged


def _load_json_object(text: str) -> dict[str, Any] | None:
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        return None
    return data if isinstance(data, dict) else None
