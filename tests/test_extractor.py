"""Tests for the best-effort function extractor and class-membership detection."""

from __future__ import annotations

from shadowtest.parsing.extractor import (
    Found,
    Membership,
    NotFound,
    brace_depth,
    classify_membership,
    extract_function,
    extract_return_type,
    find_matching,
)

_TS_SOURCE = """\
import { db } from './db';

export function add(a: number, b: number): number {
  return a + b;
}

export const double = (x: number): number => x * 2;

const fetchUser = async (id: string): Promise<User> => {
  const row = await db.get(id);
  return { id, name: row.name };
};

function greet(name: string): string {
  const closing = "}";
  return `hi ${name} ${closing}`;
}

export class Calculator {
  static create(): Calculator {
    return new Calculator();
  }

  multiply(a: number, b: number): number {
    return a * b;
  }

  private readonly ratio = (n: number) => n / 100;
}
"""

_PY_SOURCE = """\
import math


class Cart:
    def total(self) -> float:
        return sum(self.items)

    @staticmethod
    def empty() -> "Cart":
        return Cart()


def helper(x):
    return math.floor(x)
"""


# ── extract_function (TypeScript / JavaScript) ───────────────────


class TestExtractFunction:
    def test_exported_function(self) -> None:
        result = extract_function(_TS_SOURCE, "add")

        assert isinstance(result, Found)
        assert result.code == (
            "export function add(a: number, b: number): number {\n  return a + b;\n}"
        )
        assert result.start_line == 3

    def test_expression_arrow(self) -> None:
        result = extract_function(_TS_SOURCE, "double")

        assert isinstance(result, Found)
        assert result.code == "export const double = (x: number): number => x * 2;"

    def test_block_arrow_with_generic_return(self) -> None:
        result = extract_function(_TS_SOURCE, "fetchUser")

        assert isinstance(result, Found)
        assert result.code.startswith("const fetchUser = async (id: string)")
        assert result.code.endswith("}")
        assert "return { id, name: row.name };" in result.code

    def test_braces_inside_strings_ignored(self) -> None:
        result = extract_function(_TS_SOURCE, "greet")

        assert isinstance(result, Found)
        assert result.code.endswith("${closing}`;\n}")

    def test_class_method(self) -> None:
        result = extract_function(_TS_SOURCE, "multiply")

        assert isinstance(result, Found)
        assert "return a * b;" in result.code
        assert "create" not in result.code

    def test_overload_signatures_skipped(self) -> None:
        source = (
            "export function parse(x: string): number;\n"
            "export function parse(x: number): number;\n"
            "export function parse(x: any): number {\n"
            "  return Number(x);\n"
            "}\n"
        )

        result = extract_function(source, "parse")

        assert isinstance(result, Found)
        assert result.start_line == 3
        assert "return Number(x);" in result.code

    def test_call_site_is_not_a_declaration(self) -> None:
        source = "const total = add(1, 2);\nconsole.log(add(3, 4));\n"

        assert isinstance(extract_function(source, "add"), NotFound)

    def test_missing_function(self) -> None:
        result = extract_function(_TS_SOURCE, "subtract")

        assert isinstance(result, NotFound)
        assert "subtract" in result.reason

    def test_empty_name(self) -> None:
        assert isinstance(extract_function(_TS_SOURCE, ""), NotFound)

    def test_unbalanced_body(self) -> None:
        assert isinstance(extract_function("function broken(a) {\n  if (a) {\n", "broken"), NotFound)


# ── classify_membership ──────────────────────────────────────────


class TestClassifyMembership:
    def test_free_function(self) -> None:
        assert classify_membership(_TS_SOURCE, "add").kind is Membership.FREE

    def test_instance_method(self) -> None:
        membership = classify_membership(_TS_SOURCE, "multiply")

        assert membership.kind is Membership.INSTANCE
        assert membership.class_name == "Calculator"

    def test_static_method(self) -> None:
        membership = classify_membership(_TS_SOURCE, "create")

        assert membership.kind is Membership.STATIC
        assert membership.class_name == "Calculator"

    def test_arrow_property_is_instance_member(self) -> None:
        assert classify_membership(_TS_SOURCE, "ratio").kind is Membership.INSTANCE

    def test_nested_call_not_a_member(self) -> None:
        source = "class Runner {\n  run() {\n    if (ok) {\n      helper();\n    }\n  }\n}\n"

        assert classify_membership(source, "helper").kind is Membership.FREE

    def test_python_membership(self) -> None:
        assert classify_membership(_PY_SOURCE, "total", language="python").kind is Membership.INSTANCE
        assert classify_membership(_PY_SOURCE, "empty", language="python").kind is Membership.STATIC
        assert classify_membership(_PY_SOURCE, "helper", language="python").kind is Membership.FREE


# ── Python extraction ────────────────────────────────────────────


def test_extract_python_method() -> None:
    result = extract_function(_PY_SOURCE, "total", language="python")

    assert isinstance(result, Found)
    assert result.code == "    def total(self) -> float:\n        return sum(self.items)"


def test_extract_python_function_to_end_of_file() -> None:
    result = extract_function(_PY_SOURCE, "helper", language="python")

    assert isinstance(result, Found)
    assert result.code == "def helper(x):\n    return math.floor(x)"


def test_extract_python_missing() -> None:
    assert isinstance(extract_function(_PY_SOURCE, "nothing", language="python"), NotFound)


# ── Return types ─────────────────────────────────────────────────


def test_return_type_function() -> None:
    assert extract_return_type("function add(a: number): number {\n}") == "number"


def test_return_type_generic() -> None:
    code = "async function load(id: string): Promise<Map<string, number>> {\n}"

    assert extract_return_type(code) == "Promise<Map<string, number>>"


def test_return_type_arrow() -> None:
    assert extract_return_type("const f = (x: number): string => String(x);") == "string"


def test_return_type_absent() -> None:
    assert extract_return_type("function f(a) {\n  return a;\n}") is None


def test_return_type_python() -> None:
    assert extract_return_type("def f(x) -> list[int]:\n    pass", language="python") == "list[int]"
    assert extract_return_type("def f(x):\n    pass", language="python") is None


# ── Brace helpers ────────────────────────────────────────────────


def test_find_matching_skips_comments() -> None:
    text = "{ // }\n  /* } */ '}' }"

    assert find_matching(text, 0) == len(text) - 1


def test_find_matching_parentheses() -> None:
    text = "call(a, (b), c)"

    assert find_matching(text, 4, "(", ")") == len(text) - 1


def test_find_matching_unbalanced() -> None:
    assert find_matching("{ {", 0) is None


def test_brace_depth() -> None:
    text = "a { b { c } d"

    assert brace_depth(text, text.index("c")) == 2
    assert brace_depth(text, text.index("d")) == 1
