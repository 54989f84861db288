"""Unit test runner adapters."""

from shadowtest.adapters.unit.jest_adapter import JestAdapter
from shadowtest.adapters.unit.pytest_adapter import PytestAdapter
from shadowtest.adapters.unit.vitest_adapter import VitestAdapter

__all__ = [
    "JestAdapter",
    "PytestAdapter",
    "VitestAdapter",
]
