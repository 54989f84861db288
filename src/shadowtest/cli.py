"""shadowtest CLI — top-level command group."""

from __future__ import annotations

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import TYPE_CHECKING

import click
from rich.console import Console
from rich.logging import RichHandler

from shadowtest import __version__
from shadowtest.agents.analyzers.targets import load_targets
from shadowtest.agents.detectors.environment import prepare_environment
from shadowtest.agents.pipelines.generate import run_generation
from shadowtest.agents.reporters.markdown import write_report
from shadowtest.agents.reporters.terminal import reporter
from shadowtest.config import ConfigError, load_config, validate_config
from shadowtest.llm.engine import LLMError
from shadowtest.llm.factory import create_engine
from shadowtest.models.store import delete_manifest, load_last_result, load_manifest
from shadowtest.utils.cancellation import CancellationToken, PipelineCancelled

if TYPE_CHECKING:
    from collections.abc import Awaitable

    from shadowtest.agents.detectors.environment import EnvironmentSetupReport
    from shadowtest.config import ShadowConfig
    from shadowtest.llm.engine import LLMEngine
    from shadowtest.models.result import TestGenerationResult
    from shadowtest.models.target import TestTarget

logger = logging.getLogger(__name__)

_EXIT_CANCELLED = 130

_path_option = click.option(
    "--path",
    default=".",
    type=click.Path(exists=True, file_okay=False, resolve_path=True),
    help="Project root directory.",
)
_json_option = click.option(
    "--json-output", "as_json", is_flag=True, help="Output raw JSON instead of tables."
)


def _setup_logging(*, verbose: bool) -> None:
    """Route log records through rich; LiteLLM stays quiet unless verbose."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=verbose)],
    )
    for noisy in ("LiteLLM", "litellm", "httpx", "httpcore"):
        logging.getLogger(noisy).setLevel(logging.DEBUG if verbose else logging.WARNING)


def _load_config_or_exit(path: str) -> ShadowConfig:
    try:
        return load_config(path)
    except ConfigError as exc:
        reporter.print_error(str(exc))
        sys.exit(1)


def _engine_or_exit(config: ShadowConfig) -> LLMEngine:
    if not config.llm.is_configured:
        reporter.print_error(
            "LLM is not configured. Set llm.model (and llm.api_key) in .shadowtest.yml "
            "or the SHADOWTEST_LLM_MODEL / SHADOWTEST_LLM_API_KEY environment variables."
        )
        sys.exit(1)
    try:
        return create_engine(config.llm)
    except LLMError as exc:
        reporter.print_error(str(exc))
        sys.exit(1)


async def _with_sigint(token: CancellationToken, work: Awaitable[object]) -> object:
    """Await *work* with Ctrl-C mapped to *token* instead of ``KeyboardInterrupt``."""
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        logger.debug("Cannot install a SIGINT handler; Ctrl-C will interrupt immediately")
        return await work
    try:
        return await work
    finally:
        loop.remove_signal_handler(signal.SIGINT)


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging.")
@click.version_option(version=__version__, prog_name="shadowtest")
@click.pass_context
def cli(ctx: click.Context, *, verbose: bool) -> None:
    """shadowtest — generate, validate, repair and run unit tests with an LLM."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    _setup_logging(verbose=verbose)


# ── generate ─────────────────────────────────────────────────────


@cli.command()
@click.argument("targets_json", type=click.Path(exists=True, dir_okay=False, resolve_path=True))
@_path_option
@click.option(
    "--cap",
    type=click.IntRange(min=1),
    default=None,
    help="Maximum number of targets to generate tests for (default: pipeline.cap).",
)
@_json_option
def generate(targets_json: str, path: str, cap: int | None, *, as_json: bool) -> None:
    """Generate, validate and run tests for the functions listed in TARGETS_JSON.

    TARGETS_JSON is a ranked list of {"function_name", "file", ...} objects.
    Exits 1 when the project does not compile or any generated test fails.
    """
    config = _load_config_or_exit(path)
    try:
        targets: list[TestTarget] = load_targets(targets_json)
    except (OSError, ValueError) as exc:
        reporter.print_error(f"Could not read targets: {exc}")
        sys.exit(1)

    engine = _engine_or_exit(config)
    token = CancellationToken()
    on_progress = None if as_json else reporter.print_progress

    if not as_json:
        count = min(len(targets), cap or config.pipeline.cap)
        reporter.print_header(f"Generating tests for {count} target(s)")

    try:
        result: TestGenerationResult = asyncio.run(  # type: ignore[assignment]
            _with_sigint(
                token,
                run_generation(
                    path,
                    targets,
                    engine,
                    config=config,
                    cap=cap,
                    cancel=token,
                    on_progress=on_progress,
                ),
            )
        )
    except PipelineCancelled as exc:
        reporter.print_warning(str(exc))
        sys.exit(_EXIT_CANCELLED)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
    else:
        reporter.print_result(result)
        if result.output:
            reporter.print_info(result.output)

    if result.aborted or result.failed > 0:
        sys.exit(1)


# ── env ──────────────────────────────────────────────────────────


@cli.command()
@_path_option
@click.option("--reset", is_flag=True, help="Delete the cached manifest.")
@click.option(
    "--detect",
    is_flag=True,
    help="Detect and set up the environment now if no manifest is cached.",
)
@_json_option
def env(path: str, *, reset: bool, detect: bool, as_json: bool) -> None:
    """Show the cached test environment manifest (.shadow/test-env.json)."""
    if reset:
        if delete_manifest(path):
            reporter.print_success("Deleted cached test environment manifest")
        else:
            reporter.print_info("No cached test environment manifest to delete")
        return

    manifest = load_manifest(path)
    if manifest is None and detect:
        config = _load_config_or_exit(path)
        engine = _engine_or_exit(config)
        token = CancellationToken()
        try:
            report: EnvironmentSetupReport = asyncio.run(  # type: ignore[assignment]
                _with_sigint(
                    token,
                    prepare_environment(
                        path,
                        engine,
                        cancel=token,
                        install_timeout=config.pipeline.install_timeout,
                    ),
                )
            )
        except PipelineCancelled as exc:
            reporter.print_warning(str(exc))
            sys.exit(_EXIT_CANCELLED)
        if not as_json:
            _display_setup_report(report)
        manifest = report.manifest

    if manifest is None:
        if as_json:
            click.echo("null")
        else:
            reporter.print_info(
                "No cached test environment. Run with --detect or run 'shadowtest generate'."
            )
        return

    if as_json:
        click.echo(json.dumps(manifest.to_dict(), indent=2))
    else:
        reporter.print_manifest(manifest)


def _display_setup_report(report: EnvironmentSetupReport) -> None:
    if report.used_default:
        reporter.print_warning("Environment detection failed; using the default manifest")
    if report.installed:
        reporter.print_success("Installed " + ", ".join(report.installed))
    for written in report.written_files:
        reporter.print_success(f"Wrote {written}")
    for merged in report.merged_files:
        reporter.print_success(f"Merged suggested settings into {merged}")
    for skipped in report.skipped_files:
        reporter.print_info(f"Left existing {skipped} unchanged")
    for warning in report.warnings:
        reporter.print_warning(f"{warning.command}: {warning.message}")


# ── last / report ────────────────────────────────────────────────


@cli.command()
@_path_option
@_json_option
def last(path: str, *, as_json: bool) -> None:
    """Show the result of the last generate run (.shadow/test-last.json)."""
    result = load_last_result(path)
    if result is None:
        reporter.print_error("No previous run found. Run 'shadowtest generate' first.")
        sys.exit(1)
    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return
    reporter.print_result(result)
    if result.output:
        reporter.print_info(result.output)


@cli.command()
@_path_option
def report(path: str) -> None:
    """Write a Markdown report of the last run to .shadow/test-report.md."""
    result = load_last_result(path)
    if result is None:
        reporter.print_error("No previous run found. Run 'shadowtest generate' first.")
        sys.exit(1)
    written = write_report(path, result)
    reporter.print_success(f"Report written to {Path(written).relative_to(path)}")


# ── config ───────────────────────────────────────────────────────


@cli.group("config")
def config_group() -> None:
    """Inspect `.shadowtest.yml` configuration."""


@config_group.command("validate")
@_path_option
def config_validate(path: str) -> None:
    """Check `.shadowtest.yml` for missing or invalid values."""
    config = _load_config_or_exit(path)
    errors = validate_config(config)
    if errors:
        for error in errors:
            reporter.print_error(error)
        sys.exit(1)
    reporter.print_success("Configuration is valid")


if __name__ == "__main__":
    cli()
