"""Rich output formatting helpers for the pkggraph CLI.

Provides consistent, severity-colored terminal output for diagnostics,
resolution summaries, module graphs, and pin records.

Severity Color Mapping:
    ERROR = bold red, WARNING = yellow, INFO = cyan, DEBUG = dim
"""

from __future__ import annotations

import json
from typing import Any

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from pkggraph.core.dependency import Resolution
from pkggraph.core.diagnostics import DiagnosticsScope, Severity
from pkggraph.core.graph import ModulesGraph
from pkggraph.core.pins import PinRecord

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.ERROR: "bold red",
    Severity.WARNING: "yellow",
    Severity.INFO: "cyan",
    Severity.DEBUG: "dim",
}

console = Console()


def severity_style(severity: Severity) -> str:
    """Return the Rich style string for a given severity level."""
    return _SEVERITY_STYLES.get(severity, "white")


def print_diagnostics(diagnostics: DiagnosticsScope, min_severity: Severity = Severity.INFO) -> None:
    """Print recorded diagnostics grouped by package.

    Session-wide entries are printed first, then one block per package in
    the order the package's first entry was recorded.
    """
    grouped = diagnostics.by_package()
    ordered = sorted(grouped.items(), key=lambda item: item[0] is not None)
    for package, entries in ordered:
        shown = [e for e in entries if e.severity >= min_severity]
        if not shown:
            continue
        console.print(Text(package or "(session)", style="bold"))
        for entry in shown:
            label = Text(f"  {entry.severity.name.lower()}: ", style=severity_style(entry.severity))
            console.print(label + Text(entry.message))


def print_resolution_summary(resolution: Resolution) -> None:
    """Print the resolved package table, or the conflicts on failure."""
    if resolution.success:
        console.print(
            Panel("[bold green]Resolution successful[/bold green]",
                  title="Dependency Resolution")
        )
        table = Table(show_header=True)
        table.add_column("Package", style="bold")
        table.add_column("Resolved State")
        table.add_column("Root", justify="center")
        for identity, pkg in resolution.packages.items():
            table.add_row(str(identity), str(pkg.bound), "yes" if pkg.is_root else "")
        console.print(table)
    else:
        console.print(
            Panel("[bold red]Resolution failed[/bold red]",
                  title="Dependency Resolution")
        )
        for conflict in resolution.conflicts:
            console.print(f"  [red]- {escape(conflict)}[/red]")


def print_graph(graph: ModulesGraph) -> None:
    """Print modules with their direct dependencies, in build order."""
    table = Table(title="Modules Graph", show_header=True, header_style="bold")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Module", style="bold")
    table.add_column("Kind")
    table.add_column("Depends On")
    for position, node in enumerate(graph.topological_order, start=1):
        deps = ", ".join(str(d) for d in graph.dependencies_of(node)) or "-"
        table.add_row(str(position), str(node), node.kind.value, deps)
    console.print(table)
    console.print(
        f"[bold]{len(graph.packages)}[/bold] packages | "
        f"[bold]{len(graph)}[/bold] modules | "
        f"{len(graph.edge_indices)} edges"
    )


def print_pins(record: PinRecord) -> None:
    if len(record) == 0:
        console.print("[dim]No pins recorded.[/dim]")
        return
    table = Table(title="Pins", show_header=True, header_style="bold")
    table.add_column("Package", style="bold")
    table.add_column("State")
    table.add_column("Location", style="dim")
    table.add_column("Checksum", style="dim")
    for pin in record:
        table.add_row(str(pin.identity), str(pin.state), pin.location, pin.checksum[:19])
    console.print(table)


def print_pin_changes(changes: dict[str, Any]) -> None:
    """Print the added/removed/changed pins of a ``PinRecord.diff``."""
    if not any(changes.get(k) for k in ("added", "removed", "changed")):
        console.print("[dim]Pins unchanged.[/dim]")
        return
    for name in changes.get("added", []):
        console.print(f"  [green]+ {name}[/green]")
    for name in changes.get("removed", []):
        console.print(f"  [red]- {name}[/red]")
    for change in changes.get("changed", []):
        console.print(
            f"  [yellow]~ {change['identity']} {change['field']}: "
            f"{change['old']} -> {change['new']}[/yellow]"
        )


def diagnostics_to_json(diagnostics: DiagnosticsScope) -> list[dict[str, Any]]:
    return [
        {
            "severity": entry.severity.name.lower(),
            "package": entry.package,
            "message": entry.message,
        }
        for entry in diagnostics.entries
    ]


def print_json(data: Any) -> None:
    """Print data as formatted JSON to stdout."""
    console.print_json(json.dumps(data, default=str))
