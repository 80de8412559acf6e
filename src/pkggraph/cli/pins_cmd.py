"""``pkggraph pins`` --- inspect and invalidate the pin record.

Usage::

    pkggraph pins show pkggraph-pins.json
    pkggraph pins invalidate pkggraph-pins.json swift-syntax
"""

from __future__ import annotations

import sys
from pathlib import Path

import click
from rich.markup import escape

from pkggraph.core.pins import PinStore


@click.group("pins")
def pins_group() -> None:
    """Inspect or edit the pin record."""


@pins_group.command("show")
@click.argument("path", type=click.Path(dir_okay=False))
@click.option("--json", "as_json", is_flag=True, help="Output the raw record.")
def pins_show_command(path: str, as_json: bool) -> None:
    """Show the pins recorded in PATH.

    Exit code 0 if the record is valid, 1 if validation found problems.
    """
    from pkggraph.cli.output import console, print_json, print_pins

    record = PinStore(Path(path)).load()
    problems = record.validate()
    if as_json:
        print_json(record.to_dict())
    else:
        print_pins(record)
        for problem in problems:
            console.print(f"  [red]- {escape(problem)}[/red]")
    sys.exit(1 if problems else 0)


@pins_group.command("invalidate")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.argument("identities", nargs=-1, required=True)
def pins_invalidate_command(path: str, identities: tuple[str, ...]) -> None:
    """Drop the pins for IDENTITIES so they are re-resolved next run."""
    store = PinStore(Path(path))
    before = store.load()
    after = store.invalidate(identities)
    removed = before.diff(after)["removed"]
    if removed:
        click.echo(f"Invalidated: {', '.join(removed)}")
    else:
        click.echo("No matching pins.")
    sys.exit(0)
