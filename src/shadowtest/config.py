"""Configuration parsing from ``.shadowtest.yml``."""

from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from shadowtest.llm.config import SUPPORTED_MODES, LLMConfig, build_llm_config

logger = logging.getLogger(__name__)

CONFIG_FILENAME = ".shadowtest.yml"

_ENV_VAR_RE = re.compile(r"\$\{(\w+)\}")

_MAX_TEMPERATURE = 2.0


class ConfigError(Exception):
    """Raised when ``.shadowtest.yml`` exists but cannot be parsed."""


def _resolve_env_vars(value: str) -> str:
    """Replace ``${VAR_NAME}`` placeholders with environment variable values."""

    def _replace(match: re.Match[str]) -> str:
        var = match.group(1)
        resolved = os.environ.get(var)
        if resolved is None:
            logger.warning("Environment variable %s is not set (referenced in config)", var)
            return ""
        return resolved

    return _ENV_VAR_RE.sub(_replace, value)


def _resolve_dict(data: dict[str, Any]) -> dict[str, Any]:
    """Recursively resolve environment variables in a dictionary."""
    result: dict[str, Any] = {}
    for key, value in data.items():
        if isinstance(value, str):
            result[key] = _resolve_env_vars(value)
        elif isinstance(value, dict):
            result[key] = _resolve_dict(value)
        elif isinstance(value, list):
            result[key] = [
                _resolve_env_vars(item) if isinstance(item, str) else item for item in value
            ]
        else:
            result[key] = value
    return result


@dataclass
class PipelineSettings:
    """Knobs for one synthesis run."""

    cap: int = 5
    """Maximum number of targets taken from the ranked list."""

    test_file_name: str = "generated"
    """Base name of the generated file (``<name>.test<ext>``)."""

    install_timeout: float = 180.0
    build_timeout: float = 60.0
    run_timeout: float = 120.0


@dataclass
class ShadowConfig:
    """Complete configuration for a project."""

    root: str
    llm: LLMConfig = field(default_factory=LLMConfig)
    pipeline: PipelineSettings = field(default_factory=PipelineSettings)


def _section(raw: dict[str, Any], key: str) -> dict[str, Any]:
    value = raw.get(key, {})
    return value if isinstance(value, dict) else {}


def load_config(root: str | Path) -> ShadowConfig:
    """Load ``.shadowtest.yml`` from *root*.

    Falls back to defaults and ``SHADOWTEST_LLM_*`` environment variables when
    the file is missing or incomplete.

    Raises:
        ConfigError: The file exists but is not valid YAML or has bad values.
    """
    root_path = Path(root).resolve()
    config_file = root_path / CONFIG_FILENAME

    raw: dict[str, Any] = {}
    if config_file.is_file():
        try:
            parsed = yaml.safe_load(config_file.read_text(encoding="utf-8"))
        except yaml.YAMLError as exc:
            raise ConfigError(f"Invalid YAML in {config_file}: {exc}") from exc
        if isinstance(parsed, dict):
            raw = _resolve_dict(parsed)

    pipeline_raw = _section(raw, "pipeline")
    try:
        llm = build_llm_config(_section(raw, "llm"))
        pipeline = PipelineSettings(
            cap=int(pipeline_raw.get("cap", 5)),
            test_file_name=str(pipeline_raw.get("test_file_name", "generated")),
            install_timeout=float(pipeline_raw.get("install_timeout", 180)),
            build_timeout=float(pipeline_raw.get("build_timeout", 60)),
            run_timeout=float(pipeline_raw.get("run_timeout", 120)),
        )
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Invalid value in {config_file}: {exc}") from exc

    return ShadowConfig(root=str(root_path), llm=llm, pipeline=pipeline)


def _validate_llm_config(llm: LLMConfig) -> list[str]:
    """Validate LLM configuration fields."""
    errors: list[str] = []

    if llm.mode not in SUPPORTED_MODES:
        errors.append(
            f"llm.mode must be one of: {', '.join(sorted(SUPPORTED_MODES))} (got: {llm.mode})"
        )

    if not llm.model:
        errors.append("llm.model is required (or set SHADOWTEST_LLM_MODEL)")

    if llm.mode == "builtin" and llm.model and not llm.api_key:
        errors.append("llm.api_key is required in builtin mode (or set SHADOWTEST_LLM_API_KEY)")

    if llm.temperature < 0 or llm.temperature > _MAX_TEMPERATURE:
        errors.append(
            f"llm.temperature should be between 0 and {_MAX_TEMPERATURE} "
            f"(got: {llm.temperature})"
        )

    if llm.max_tokens < 1:
        errors.append(f"llm.max_tokens must be positive (got: {llm.max_tokens})")

    if llm.requests_per_minute < 1:
        errors.append(
            f"llm.requests_per_minute must be positive (got: {llm.requests_per_minute})"
        )

    return errors


def _validate_pipeline_config(pipeline: PipelineSettings) -> list[str]:
    """Validate pipeline execution settings."""
    errors: list[str] = []

    if pipeline.cap < 1:
        errors.append(f"pipeline.cap must be at least 1 (got: {pipeline.cap})")

    if not pipeline.test_file_name.strip() or "/" in pipeline.test_file_name:
        errors.append("pipeline.test_file_name must be a bare file name")

    for key in ("install_timeout", "build_timeout", "run_timeout"):
        value = getattr(pipeline, key)
        if value <= 0:
            errors.append(f"pipeline.{key} must be positive (got: {value})")

    return errors


def validate_config(config: ShadowConfig) -> list[str]:
    """Validate the configuration and return a list of error messages.

    Returns an empty list if the configuration is valid.
    """
    errors: list[str] = []
    errors.extend(_validate_llm_config(config.llm))
    errors.extend(_validate_pipeline_config(config.pipeline))
    return errors
