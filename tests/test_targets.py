"""Tests for target selection, alias assignment, and target loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from shadowtest.agents.analyzers.targets import (
    alias_stem,
    assign_aliases,
    load_targets,
    select_targets,
)
from shadowtest.models.target import TestTarget


def _t(name: str, file: str) -> TestTarget:
    return TestTarget(function_name=name, file=file)


# ── select_targets ───────────────────────────────────────────────


class TestSelectTargets:
    def test_cap_keeps_first_elements_in_order(self) -> None:
        targets = [_t(f"fn{i}", f"src/f{i}.ts") for i in range(8)]

        selected, _ = select_targets(targets, cap=5)

        assert selected == targets[:5]

    def test_default_cap_is_five(self) -> None:
        targets = [_t(f"fn{i}", f"src/f{i}.ts") for i in range(7)]

        selected, _ = select_targets(targets)

        assert len(selected) == 5

    def test_shorter_list_untouched(self) -> None:
        targets = [_t("a", "a.ts"), _t("b", "b.ts")]

        selected, aliases = select_targets(targets, cap=5)

        assert selected == targets
        assert len(aliases) == 0

    def test_exact_duplicates_dropped_after_cap(self) -> None:
        targets = [_t("a", "a.ts"), _t("a", "a.ts"), _t("b", "b.ts"), _t("c", "c.ts")]

        selected, _ = select_targets(targets, cap=3)

        assert [t.function_name for t in selected] == ["a", "b"]

    def test_duplicate_never_pulls_in_targets_past_the_cap(self) -> None:
        f, g = _t("f", "x.ts"), _t("g", "y.ts")

        selected, _ = select_targets([f, f, g], cap=2)

        assert selected == [f]

    def test_invalid_cap(self) -> None:
        with pytest.raises(ValueError, match="cap must be at least 1"):
            select_targets([_t("a", "a.ts")], cap=0)

    def test_empty_input(self) -> None:
        selected, aliases = select_targets([], cap=5)

        assert selected == []
        assert aliases.aliases == []


# ── assign_aliases ───────────────────────────────────────────────


class TestAssignAliases:
    def test_duplicate_names_get_file_derived_aliases(self) -> None:
        a, b = _t("parse", "a.ts"), _t("parse", "b.ts")

        aliases = assign_aliases([a, b])

        assert aliases.alias_for(a) == "parseA"
        assert aliases.alias_for(b) == "parseB"

    def test_provider_suffix_stripped(self) -> None:
        first = _t("sendRequest", "src/providers/anthropicProvider.ts")
        second = _t("sendRequest", "src/providers/openaiProvider.ts")

        aliases = assign_aliases([first, second])

        assert aliases.alias_for(first) == "sendRequestAnthropic"
        assert aliases.alias_for(second) == "sendRequestOpenai"

    def test_unique_names_unaliased(self) -> None:
        a, b, c = _t("parse", "a.ts"), _t("parse", "b.ts"), _t("format", "c.ts")

        aliases = assign_aliases([a, b, c])

        assert aliases.alias_for(c) is None
        assert len(aliases) == 2

    def test_colliding_aliases_get_numeric_suffix(self) -> None:
        first = _t("load", "src/a/config.ts")
        second = _t("load", "src/b/config.ts")

        aliases = assign_aliases([first, second])

        assert aliases.alias_for(first) == "loadConfig"
        assert aliases.alias_for(second) == "loadConfig2"

    def test_alias_avoids_unaliased_name(self) -> None:
        taken = _t("parseA", "x.ts")
        a, b = _t("parse", "a.ts"), _t("parse", "b.ts")

        aliases = assign_aliases([taken, a, b])

        assert aliases.alias_for(a) == "parseA2"
        assert aliases.alias_for(b) == "parseB"

    def test_aliases_unique_and_deterministic(self) -> None:
        batch = [
            _t("run", "src/jobs/run.ts"),
            _t("run", "lib/jobs/run.ts"),
            _t("run", "src/runService.ts"),
            _t("stop", "a.ts"),
            _t("stop", "b.ts"),
        ]

        first = assign_aliases(batch).aliases
        second = assign_aliases(batch).aliases

        assert first == second
        assert len(set(first)) == len(first) == 5


def test_alias_stem() -> None:
    assert alias_stem("src/anthropicProvider.ts") == "Anthropic"
    assert alias_stem("src/Utils.ts") == "Utils"
    assert alias_stem("lib/my-module.test.js") == "Mymodule"
    assert alias_stem("pkg\\helpers.py") == "Helpers"


# ── TestTarget / load_targets ────────────────────────────────────


def test_target_from_dict_camel_case() -> None:
    target = TestTarget.from_dict(
        {"functionName": "add", "filePath": "src\\math.ts", "priority": "3", "edgeCases": ["0", ""]}
    )

    assert target.function_name == "add"
    assert target.file == "src/math.ts"
    assert target.priority == 3
    assert target.edge_cases == ("0",)


def test_target_from_dict_missing_fields() -> None:
    with pytest.raises(ValueError, match="function name and a file"):
        TestTarget.from_dict({"function_name": "add"})


def test_target_round_trip_dict() -> None:
    target = TestTarget("add", "src/math.ts", priority=2, rationale="core", edge_cases=("neg",))

    assert TestTarget.from_dict(target.to_dict()) == target


def test_load_targets_list(tmp_path: Path) -> None:
    path = tmp_path / "targets.json"
    path.write_text(json.dumps([{"function_name": "a", "file": "a.ts"}, "junk"]))

    assert load_targets(path) == [TestTarget("a", "a.ts")]


def test_load_targets_wrapped_object(tmp_path: Path) -> None:
    path = tmp_path / "targets.json"
    path.write_text(json.dumps({"targets": [{"name": "b", "file": "b.py"}]}))

    assert [t.function_name for t in load_targets(path)] == ["b"]


def test_load_targets_invalid_json(tmp_path: Path) -> None:
    path = tmp_path / "targets.json"
    path.write_text("{not json")

    with pytest.raises(ValueError, match="not valid JSON"):
        load_targets(path)


def test_load_targets_not_a_list(tmp_path: Path) -> None:
    path = tmp_path / "targets.json"
    path.write_text(json.dumps({"other": 1}))

    with pytest.raises(ValueError, match="must contain a list"):
        load_targets(path)
