"""State persistence under ``.shadow/``: the environment manifest and the last result."""

from __future__ import annotations

import json
import logging
from pathlib import Path

from shadowtest.models.manifest import TestEnvManifest
from shadowtest.models.result import TestGenerationResult

logger = logging.getLogger(__name__)

STATE_DIR = ".shadow"
_MANIFEST_FILENAME = "test-env.json"
_LAST_RESULT_FILENAME = "test-last.json"
_REPORT_FILENAME = "test-report.md"


def state_dir(root: str | Path) -> Path:
    """Return the ``.shadow/`` directory for a project root."""
    return Path(root) / STATE_DIR


def manifest_path(root: str | Path) -> Path:
    return state_dir(root) / _MANIFEST_FILENAME


def last_result_path(root: str | Path) -> Path:
    return state_dir(root) / _LAST_RESULT_FILENAME


def report_path(root: str | Path) -> Path:
    return state_dir(root) / _REPORT_FILENAME


def _write_json(path: Path, data: dict[str, object]) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2) + "\n", encoding="utf-8")
    return path


def _read_json(path: Path) -> dict[str, object] | None:
    if not path.is_file():
        return None
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Failed to read %s: %s", path, exc)
        return None
    return data if isinstance(data, dict) else None


def save_manifest(root: str | Path, manifest: TestEnvManifest) -> Path:
    """Serialise *manifest* to ``.shadow/test-env.json``, creating the directory."""
    out = _write_json(manifest_path(root), manifest.to_dict())
    logger.info("Test environment manifest saved to %s", out)
    return out


def load_manifest(root: str | Path) -> TestEnvManifest | None:
    """Load the cached manifest, or ``None`` when it is missing or unreadable."""
    data = _read_json(manifest_path(root))
    if data is None:
        return None
    try:
        return TestEnvManifest.from_dict(data)
    except KeyError as exc:
        logger.warning("Ignoring incomplete manifest: %s", exc)
        return None


def delete_manifest(root: str | Path) -> bool:
    """Remove the cached manifest. Returns ``True`` if a file was deleted."""
    path = manifest_path(root)
    if not path.is_file():
        return False
    path.unlink()
    logger.info("Deleted %s", path)
    return True


def save_last_result(root: str | Path, result: TestGenerationResult) -> Path:
    """Overwrite ``.shadow/test-last.json`` with *result*."""
    return _write_json(last_result_path(root), result.to_dict())


def load_last_result(root: str | Path) -> TestGenerationResult | None:
    data = _read_json(last_result_path(root))
    if data is None:
        return None
    return TestGenerationResult.from_dict(data)
