"""pkggraph CLI --- dependency resolution and module graphs for source packages.

Entry point for the ``pkggraph`` command-line tool. Registers all
subcommands under a single Click group.

Commands:
    resolve    --- Resolve a workspace and record the pins.
    graph      --- Print the modules graph in build order.
    pins       --- Show or invalidate the pin record.

Usage::

    pkggraph resolve workspace.yaml
    pkggraph resolve workspace.yaml --index packages.yaml --json
    pkggraph graph workspace.yaml
    pkggraph pins show pkggraph-pins.json
    pkggraph pins invalidate pkggraph-pins.json swift-syntax
"""

from __future__ import annotations

import click

from pkggraph import __version__
from pkggraph.cli.pins_cmd import pins_group
from pkggraph.cli.resolve_cmd import graph_command, resolve_command


@click.group()
@click.version_option(version=__version__)
def cli() -> None:
    """pkggraph: resolve package dependencies into a module graph.

    Reconciles version requirements across packages, pins the result for
    reproducible runs, and builds a cycle-free graph of modules for build
    planning.
    """


# Register all subcommands
cli.add_command(resolve_command)
cli.add_command(graph_command)
cli.add_command(pins_group)
