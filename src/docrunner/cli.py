"""Command-line interface for DocRunner."""

import logging
import sys
from pathlib import Path
from typing import Optional

import click
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from docrunner import __version__
from docrunner.config import DocRunnerConfig
from docrunner.core.runner import TestRunner
from docrunner.errors import TestIdError
from docrunner.report.generator import ReportGenerator
from docrunner.report.render import render_collection, render_json, render_summary
from docrunner.report.tree import build_tree

console = Console()
err_console = Console(stderr=True)


def configure_logging(verbose: bool) -> None:
    """Send log records to stderr through rich."""
    root = logging.getLogger("docrunner")
    root.handlers.clear()
    root.addHandler(RichHandler(console=err_console, show_path=False, markup=False))
    root.setLevel(logging.DEBUG if verbose else logging.WARNING)
    root.propagate = False


def load_config(config_path: Optional[str]) -> DocRunnerConfig:
    """Load an explicit configuration file or search for one."""
    try:
        if config_path:
            return DocRunnerConfig.from_file(config_path)
        return DocRunnerConfig.find_and_load()
    except (ValidationError, ValueError) as e:
        raise click.UsageError(f"Invalid configuration: {e}") from e


@click.command()
@click.version_option(version=__version__, prog_name="docrunner")
@click.argument("target")
@click.option(
    "-I",
    "--include",
    "include_paths",
    multiple=True,
    type=click.Path(file_okay=False),
    help="Additional module search root (repeatable)",
)
@click.option("--collect-only", "--co", "collect_only", is_flag=True, help="List tests without running them")
@click.option(
    "--diagnostic-format",
    type=click.Choice(["text", "json"], case_sensitive=False),
    default=None,
    help="Output encoding (default: text)",
)
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, dir_okay=False),
    help="Path to configuration file (default: docrunner.json)",
)
@click.option("--jobs", "-j", type=click.IntRange(min=1), default=None, help="Parallel work units")
@click.option("--timeout", type=click.IntRange(min=1), default=None, help="Seconds allowed per test or suite")
@click.option("--html-report", type=click.Path(dir_okay=False), default=None, help="Also write an HTML report")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def main(
    target: str,
    include_paths: tuple[str, ...],
    collect_only: bool,
    diagnostic_format: Optional[str],
    config_path: Optional[str],
    jobs: Optional[int],
    timeout: Optional[int],
    html_report: Optional[str],
    verbose: bool,
) -> None:
    """DocRunner - run test functions and executable docstring examples.

    TARGET is a directory, a test file, or FILE::TEST-ID naming one test.
    """
    configure_logging(verbose)

    config = load_config(config_path).with_overrides(
        search_paths=list(include_paths),
        jobs=jobs,
        timeout_seconds=timeout,
        report_format=diagnostic_format,
        html_filename=html_report,
    )

    runner = TestRunner(config, Path.cwd())
    try:
        discovery = runner.discover(target)
    except FileNotFoundError as e:
        raise click.BadParameter(str(e), param_hint="TARGET") from e
    except TestIdError as e:
        raise click.BadParameter(str(e), param_hint="TARGET") from e

    as_json = config.report.format == "json"

    if collect_only:
        tree = build_tree(discovery)
        if as_json:
            click.echo(render_json(tree, discovery.errors, collect_only=True))
        else:
            render_collection(console, tree, discovery.errors)
        sys.exit(0 if discovery.success else 1)

    result = runner.execute(discovery)
    tree = build_tree(discovery, result.outcome_map())

    if as_json:
        click.echo(render_json(tree, discovery.errors))
    else:
        render_summary(console, tree, discovery.errors)

    if config.report.html_filename:
        report_path = ReportGenerator(config.report).generate(tree, config.report.html_filename, discovery.errors)
        err_console.print(f"[green]Report generated:[/green] {report_path}")

    sys.exit(1 if result.failed or not discovery.success else 0)


if __name__ == "__main__":
    main()
