"""Vitest adapter — its JSON reporter prints Jest's result shape."""

from __future__ import annotations

from shadowtest.adapters.base import command_tokens
from shadowtest.adapters.unit.jest_adapter import JestAdapter


class VitestAdapter(JestAdapter):
    """Vitest via ``--reporter=json``."""

    @property
    def name(self) -> str:
        return "vitest"

    def matches(self, argv: list[str]) -> bool:
        return "vitest" in command_tokens(argv)

    def structured_flags(self) -> list[str]:
        return ["--reporter=json"]

    def build_command(self, argv: list[str], test_file: str) -> list[str]:
        # ``vitest`` alone starts watch mode outside CI.
        tokens = command_tokens(argv)
        if "vitest" in tokens and not {"run", "--run"} & tokens:
            argv = [*argv, "--run"]
        return super().build_command(argv, test_file)
