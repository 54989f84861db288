"""Terminal reporter with rich output formatting."""

from __future__ import annotations

from typing import TYPE_CHECKING

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from shadowtest.agents.reporters.markdown import pass_rate, recommendations
from shadowtest.models.result import CaseStatus

if TYPE_CHECKING:
    from shadowtest.models.manifest import TestEnvManifest
    from shadowtest.models.result import TestGenerationResult

console = Console()

_PERFECT_RATE = 100.0
_GOOD_RATE = 80.0
_MAX_MESSAGE_LENGTH = 80


def _pass_rate_color(rate: float) -> str:
    """Return a Rich color name for a given pass-rate percentage."""
    if rate >= _PERFECT_RATE:
        return "green"
    if rate >= _GOOD_RATE:
        return "yellow"
    return "red"


class CLIReporter:
    """Rich terminal output for generation runs."""

    def __init__(self, output: Console | None = None) -> None:
        self.console = output or console

    def print_header(self, title: str) -> None:
        self.console.print(Panel(f"[bold white]{title}[/bold white]", border_style="cyan", padding=(0, 2)))

    def print_success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {message}")

    def print_error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {message}")

    def print_warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {message}")

    def print_info(self, message: str) -> None:
        self.console.print(f"[dim]{message}[/dim]")

    def print_progress(self, current: int, total: int, function_name: str) -> None:
        """Inline progress line, used as the pipeline's progress callback."""
        self.console.print(f"  [dim]({current}/{total})[/dim] Generating test for {function_name}")

    def print_manifest(self, manifest: TestEnvManifest) -> None:
        table = Table(title="Test Environment", title_style="bold cyan", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        for key, value in manifest.to_dict().items():
            table.add_row(key, value or "-")
        self.console.print(table)

    def print_result(self, result: TestGenerationResult) -> None:
        """Summary table, per-case failures, build errors and recommendations."""
        table = Table(title="Generation Result", title_style="bold cyan", show_header=False)
        table.add_column("Metric", style="bold")
        table.add_column("Value")
        table.add_row("Test blocks", str(result.tests_generated))
        table.add_row("Test file", result.test_file_path or "-")
        table.add_row("Passed", f"[green]{result.passed}[/green]")
        table.add_row("Failed", f"[red]{result.failed}[/red]" if result.failed else "0")
        rate = pass_rate(result)
        if rate is not None:
            color = _pass_rate_color(rate)
            table.add_row("Pass rate", f"[{color}]{rate:.0f}%[/{color}]")
        if result.removed_mocks:
            table.add_row("Removed mocks", ", ".join(result.removed_mocks))
        self.console.print(table)

        if result.aborted:
            self.print_error("Tests skipped: the project's own code does not compile")
            for error in result.build_errors or []:
                if error.is_user_code:
                    self.console.print(f"  [red]{error.describe()}[/red]")

        for failure in result.failures:
            self.print_warning(f"No test for {failure.function_name} ({failure.file_name}): {failure.reason}")

        run = result.run_result
        if run is not None:
            for case in run.cases:
                if case.status in {CaseStatus.FAILED, CaseStatus.ERROR}:
                    message = case.failure_message.strip().splitlines()
                    first = message[0][:_MAX_MESSAGE_LENGTH] if message else ""
                    self.console.print(f"  [red]✗[/red] {case.name} [dim]{first}[/dim]")

        self.print_recommendations(recommendations(result))

    def print_recommendations(self, items: list[str]) -> None:
        if not items:
            return
        self.console.print("\n[bold cyan]Recommendations:[/bold cyan]")
        for i, rec in enumerate(items, 1):
            self.console.print(f"  {i}. {rec}")


reporter = CLIReporter()
