"""Target registry — cap the ranked target list and alias colliding function names."""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from typing import TYPE_CHECKING

from shadowtest.models.target import AliasAssignment, TestTarget

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

logger = logging.getLogger(__name__)

DEFAULT_CAP = 5

# Conventional suffixes dropped from a file stem when building an alias.
ALIAS_SUFFIXES: tuple[str, ...] = (
    "Provider",
    "Service",
    "Handler",
    "Manager",
    "Controller",
    "Helper",
    "Utils",
    "Util",
)

_NON_IDENT_RE = re.compile(r"[^A-Za-z0-9_$]")


def select_targets(
    all_targets: Sequence[TestTarget],
    cap: int = DEFAULT_CAP,
) -> tuple[list[TestTarget], AliasAssignment]:
    """Keep the first *cap* targets in input order and alias collisions.

    Identical ``(function_name, file)`` pairs inside that window are then
    removed (first wins), so a repeated entry shrinks the selection instead of
    pulling in targets ranked below the cap.

    Raises:
        ValueError: If *cap* is less than 1.
    """
    if cap < 1:
        raise ValueError(f"cap must be at least 1, got {cap}")

    seen: set[tuple[str, str]] = set()
    selected: list[TestTarget] = []
    for target in all_targets[:cap]:
        if target.key in seen:
            logger.debug("Dropping duplicate target %s in %s", target.function_name, target.file)
            continue
        seen.add(target.key)
        selected.append(target)

    if len(all_targets) > len(selected):
        logger.info("Selected %d of %d targets", len(selected), len(all_targets))
    return selected, assign_aliases(selected)


def assign_aliases(targets: Iterable[TestTarget]) -> AliasAssignment:
    """Give every occurrence of a name found in several files a unique alias.

    The alias is ``<name><CapitalizedStem>``; colliding aliases get a numeric
    suffix (``2``, ``3``, …) in first-seen order.
    """
    ordered = list(targets)
    files_by_name: dict[str, set[str]] = {}
    for target in ordered:
        files_by_name.setdefault(target.function_name, set()).add(target.file)

    assignment = AliasAssignment()
    # Names that stay unaliased are taken too.
    used = {name for name, files in files_by_name.items() if len(files) < 2}
    for target in ordered:
        if len(files_by_name[target.function_name]) < 2:
            continue
        if assignment.alias_for(target) is not None:
            continue
        base = f"{target.function_name}{alias_stem(target.file)}"
        alias = base
        counter = 2
        while alias in used:
            alias = f"{base}{counter}"
            counter += 1
        used.add(alias)
        assignment.assign(target, alias)
        logger.debug("Aliased %s (%s) as %s", target.function_name, target.file, alias)
    return assignment


def alias_stem(file: str) -> str:
    """Capitalised identifier derived from a file's stem.

    ``anthropicProvider.ts`` → ``Anthropic``; ``Utils.ts`` stays ``Utils``
    because stripping the suffix would leave nothing.
    """
    stem = Path(file.replace("\\", "/")).name
    stem = stem.lstrip(".").split(".", 1)[0]
    for suffix in ALIAS_SUFFIXES:
        if stem.endswith(suffix) and len(stem) > len(suffix):
            stem = stem[: -len(suffix)]
            break
    stem = _NON_IDENT_RE.sub("", stem)
    if not stem:
        return "File"
    return stem[0].upper() + stem[1:]


def load_targets(path: str | Path) -> list[TestTarget]:
    """Read a ranked target list from a JSON file.

    Accepts either a bare list or an object with a ``targets`` (or
    ``functions``) list.

    Raises:
        ValueError: The file is not a JSON list of targets.
    """
    try:
        data = json.loads(Path(path).read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"{path} is not valid JSON: {exc}") from exc

    if isinstance(data, dict):
        data = data.get("targets", data.get("functions"))
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of targets")
    return [TestTarget.from_dict(item) for item in data if isinstance(item, dict)]
