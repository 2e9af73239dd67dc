"""Text and JSON rendering of the report tree."""

import json
from typing import Sequence

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from docrunner.core.models import OutcomeKind
from docrunner.errors import DiscoveryError
from docrunner.report.tree import ReportNode, Totals, compute_totals


def node_to_dict(node: ReportNode, collect_only: bool) -> dict:
    """Convert a report node to its JSON object, children in discovery order."""
    key = "id" if collect_only else "testID"
    data: dict = {key: node.id}

    if node.is_leaf:
        if collect_only:
            data["location"] = node.location.to_dict()
        elif node.outcome is not None:
            data.update(node.outcome.to_dict())
    else:
        data["children"] = [node_to_dict(child, collect_only) for child in node.children]
    return data


def render_json(
    root: ReportNode,
    errors: Sequence[DiscoveryError] = (),
    collect_only: bool = False,
) -> str:
    """Render the whole tree as a JSON document."""
    document = node_to_dict(root, collect_only)
    document.setdefault("children", [])
    totals = compute_totals(root)
    if collect_only:
        document["summary"] = {"discovered": totals.discovered}
    else:
        document["summary"] = totals.to_dict()
    document["errors"] = [error.to_dict() for error in errors]
    return json.dumps(document, indent=2)


def render_collection(console: Console, root: ReportNode, errors: Sequence[DiscoveryError] = ()) -> None:
    """Print the nested collection listing."""

    def walk(node: ReportNode, depth: int) -> None:
        style = "cyan" if node.is_leaf else "bold"
        console.print(f"{'  ' * depth}[{style}]{escape(node.id)}[/{style}]", soft_wrap=True)
        for child in node.children:
            walk(child, depth + 1)

    walk(root, 0)
    totals = compute_totals(root)
    console.print(f"\n[bold]{totals.discovered}[/bold] tests collected")
    _print_errors(console, errors)


def render_summary(console: Console, root: ReportNode, errors: Sequence[DiscoveryError] = ()) -> Totals:
    """Print totals followed by one detail block per failed test."""
    totals = compute_totals(root)

    console.print("\n" + "=" * 50)
    console.print("[bold]Test Results Summary[/bold]")
    console.print("=" * 50)

    table = Table(show_header=False, box=None)
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Share", justify="right", style="dim")

    table.add_row("Discovered", str(totals.discovered), "")
    table.add_row("Passed", f"[green]{totals.passed}[/green]", f"{totals.percentage(totals.passed):.1f}%")
    table.add_row("Failed", f"[red]{totals.failed}[/red]", f"{totals.percentage(totals.failed):.1f}%")
    table.add_row("Skipped", f"[yellow]{totals.skipped}[/yellow]", f"{totals.percentage(totals.skipped):.1f}%")

    console.print(table)

    failed = [
        leaf
        for leaf in root.leaves()
        if leaf.outcome is not None and leaf.outcome.kind in (OutcomeKind.FAILURE, OutcomeKind.EXECUTION_ERROR)
    ]
    for leaf in failed:
        label = "FAILED" if leaf.outcome.kind == OutcomeKind.FAILURE else "ERROR"
        console.print(f"\n[red]{label}[/red] {escape(leaf.id)}", soft_wrap=True)
        console.print(f"  {escape(leaf.outcome.error)}", soft_wrap=True)
        if leaf.outcome.stdout:
            console.print("  [dim]--- stdout ---[/dim]")
            console.print(escape(leaf.outcome.stdout.rstrip()), soft_wrap=True)
        if leaf.outcome.stderr:
            console.print("  [dim]--- stderr ---[/dim]")
            console.print(escape(leaf.outcome.stderr.rstrip()), soft_wrap=True)

    _print_errors(console, errors)

    if failed or errors:
        console.print("\n[red]Some tests failed![/red]")
    else:
        console.print("\n[green]All tests passed![/green]")
    return totals


def _print_errors(console: Console, errors: Sequence[DiscoveryError]) -> None:
    for error in errors:
        console.print(
            f"\n[red]DISCOVERY ERROR[/red] {escape(error.node_id or '')}: {escape(error.message)}",
            soft_wrap=True,
        )
