"""Test targets and the per-run alias assignment for colliding names."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TestTarget:
    """A function selected upstream as worth testing."""

    __test__ = False

    function_name: str
    file: str
    """Path of the source file, relative to the project root."""

    priority: int = 0
    rationale: str = ""
    edge_cases: tuple[str, ...] = ()

    @property
    def key(self) -> tuple[str, str]:
        return (self.function_name, self.file)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> TestTarget:
        """Accept both snake_case and camelCase keys.

        Raises:
            ValueError: ``function_name`` or ``file`` is missing.
        """
        name = data.get("function_name") or data.get("functionName") or data.get("name")
        file = data.get("file") or data.get("file_path") or data.get("filePath")
        if not name or not file:
            raise ValueError(f"Target needs a function name and a file: {data!r}")
        edge_cases = data.get("edge_cases") or data.get("edgeCases") or []
        try:
            priority = int(data.get("priority", 0))
        except (TypeError, ValueError):
            priority = 0
        return cls(
            function_name=str(name),
            file=str(file).replace("\\", "/"),
            priority=priority,
            rationale=str(data.get("rationale") or data.get("reason") or ""),
            edge_cases=tuple(str(e) for e in edge_cases if e),
        )

    def to_dict(self) -> dict[str, object]:
        return {
            "function_name": self.function_name,
            "file": self.file,
            "priority": self.priority,
            "rationale": self.rationale,
            "edge_cases": list(self.edge_cases),
        }


@dataclass
class AliasAssignment:
    """Aliases for function names that occur in more than one selected file.

    Lives for one run only and is never persisted.
    """

    _by_key: dict[tuple[str, str], str] = field(default_factory=dict)

    def assign(self, target: TestTarget, alias: str) -> None:
        self._by_key[target.key] = alias

    def alias_for(self, target: TestTarget) -> str | None:
        """Return the alias for *target*, or ``None`` when its name is unique."""
        return self._by_key.get(target.key)

    @property
    def aliases(self) -> list[str]:
        """All assigned aliases in assignment order."""
        return list(self._by_key.values())

    def __len__(self) -> int:
        return len(self._by_key)
