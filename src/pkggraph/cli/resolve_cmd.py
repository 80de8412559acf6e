"""``pkggraph resolve`` and ``pkggraph graph`` --- resolve a workspace.

A workspace file (YAML or JSON) holds the root manifests, either as a
single manifest mapping or under a ``roots:`` list, and may also carry the
package index under ``packages:``. A separate index can be given with
``--index``.

Exit Codes:
    0 --- Resolution and graph construction succeeded.
    1 --- A fatal diagnostic was recorded.
    2 --- The workspace or index could not be read.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any

import click

from pkggraph.core.dependency import (
    InMemoryFetcher,
    Manifest,
    ResolverOptions,
    load_document,
)
from pkggraph.core.diagnostics import DiagnosticsScope, Severity
from pkggraph.core.pins import DEFAULT_PIN_FILE, PinStore
from pkggraph.core.session import SessionResult, resolve_and_build_graph_sync


def _load_workspace(
    workspace: Path, index: Path | None
) -> tuple[list[Manifest], InMemoryFetcher]:
    """Read root manifests and the package index.

    Raises:
        click.UsageError: If a file cannot be read or is malformed.
    """
    try:
        data = load_document(workspace)
        raw_roots: list[dict[str, Any]] = (
            list(data["roots"]) if "roots" in data else [data]
        )
        roots = [Manifest.from_dict(raw) for raw in raw_roots]
        index_data = load_document(index) if index is not None else data
        fetcher = InMemoryFetcher.from_dict(index_data)
    except (OSError, ValueError, KeyError, TypeError) as exc:
        raise click.UsageError(f"cannot load workspace: {exc}") from exc
    return roots, fetcher


def _run(
    workspace: str,
    index: str | None,
    pins: str | None,
    no_pins: bool,
    max_passes: int,
    save_pins: bool,
    verbose: bool,
) -> SessionResult:
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    workspace_path = Path(workspace)
    try:
        roots, fetcher = _load_workspace(workspace_path, Path(index) if index else None)
    except click.UsageError as exc:
        click.echo(f"Error: {exc.message}", err=True)
        sys.exit(2)

    store = None
    if not no_pins:
        store = PinStore(Path(pins) if pins else workspace_path.parent / DEFAULT_PIN_FILE)

    diagnostics = DiagnosticsScope()
    options = ResolverOptions(max_passes=max_passes)
    return resolve_and_build_graph_sync(
        roots, fetcher, store, diagnostics, options, save_pins=save_pins
    )


def _common_options(func: Any) -> Any:
    options = [
        click.argument("workspace", type=click.Path(exists=True, dir_okay=False)),
        click.option(
            "--index", "-i",
            type=click.Path(exists=True, dir_okay=False),
            default=None,
            help="Package index file (default: 'packages' section of WORKSPACE).",
        ),
        click.option(
            "--pins", "-p",
            type=click.Path(dir_okay=False),
            default=None,
            help=f"Pin record path (default: <workspace dir>/{DEFAULT_PIN_FILE}).",
        ),
        click.option("--no-pins", is_flag=True, help="Ignore and do not write pins."),
        click.option(
            "--max-passes",
            type=click.IntRange(min=1),
            default=ResolverOptions().max_passes,
            show_default=True,
            help="Maximum resolution re-runs after narrowed requirements.",
        ),
        click.option("--json", "as_json", is_flag=True, help="Output results as JSON."),
        click.option("--verbose", "-v", is_flag=True, help="Enable debug logging."),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.command("resolve")
@_common_options
def resolve_command(
    workspace: str,
    index: str | None,
    pins: str | None,
    no_pins: bool,
    max_passes: int,
    as_json: bool,
    verbose: bool,
) -> None:
    """Resolve WORKSPACE's dependencies and record the pins.

    Exit code 0 on success, 1 if any fatal diagnostic was recorded, 2 if
    the input files cannot be read.
    """
    from pkggraph.cli.output import (
        diagnostics_to_json,
        print_diagnostics,
        print_json,
        print_pin_changes,
        print_resolution_summary,
    )

    result = _run(workspace, index, pins, no_pins, max_passes, True, verbose)

    if as_json:
        resolution = result.resolution
        print_json({
            "success": result.success,
            "packages": resolution.installed if resolution is not None else {},
            "pin_changes": result.pin_changes,
            "diagnostics": diagnostics_to_json(result.diagnostics),
        })
    else:
        print_diagnostics(result.diagnostics, Severity.INFO)
        if result.resolution is not None:
            print_resolution_summary(result.resolution)
        changes = result.pin_changes
        if changes is not None:
            click.echo("\nPin changes:")
            print_pin_changes(changes)

    sys.exit(0 if result.success else 1)


@click.command("graph")
@_common_options
def graph_command(
    workspace: str,
    index: str | None,
    pins: str | None,
    no_pins: bool,
    max_passes: int,
    as_json: bool,
    verbose: bool,
) -> None:
    """Print WORKSPACE's modules graph in build order.

    Pins are read as hints but never written by this command.
    """
    from pkggraph.cli.output import (
        diagnostics_to_json,
        print_diagnostics,
        print_graph,
        print_json,
    )

    result = _run(workspace, index, pins, no_pins, max_passes, False, verbose)

    if as_json:
        payload: dict[str, Any] = {
            "success": result.success,
            "diagnostics": diagnostics_to_json(result.diagnostics),
        }
        if result.graph is not None:
            payload["graph"] = result.graph.to_dict()
        print_json(payload)
    else:
        print_diagnostics(result.diagnostics, Severity.WARNING)
        if result.graph is not None:
            print_graph(result.graph)

    sys.exit(0 if result.success else 1)
