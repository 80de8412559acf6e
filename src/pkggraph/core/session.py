"""Resolution session: pins -> resolver -> graph builder -> pins.

``resolve_and_build_graph`` is the entry point exposed to the CLI layer.
It loads the pin record, drops the pins whose root requirements changed
(in memory only), resolves versions, builds the modules graph, and writes
the new pin baseline only when every stage succeeded.

An aborted session (task cancellation or ``KeyboardInterrupt``) keeps
whatever diagnostics were collected, records a warning, and re-raises
without touching the pin record.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Sequence

from pkggraph.core.dependency import (
    Manifest,
    PackageFetcher,
    Resolution,
    ResolverOptions,
    VersionResolver,
)
from pkggraph.core.diagnostics import DiagnosticsScope
from pkggraph.core.graph import GraphBuilder, ModulesGraph
from pkggraph.core.pins import PinRecord, PinStore
from pkggraph.exceptions import PinStoreError

logger = logging.getLogger(__name__)


@dataclass
class SessionResult:
    """Everything a caller needs after one resolution session.

    Attributes:
        graph: The modules graph, or None if any stage failed.
        diagnostics: The scope holding every recorded entry.
        resolution: The version resolution result (None if aborted early).
        pins: The pin record written by this session, if any.
        previous_pins: The pin record loaded at session start, if any.
    """

    graph: ModulesGraph | None
    diagnostics: DiagnosticsScope
    resolution: Resolution | None = None
    pins: PinRecord | None = None
    previous_pins: PinRecord | None = None

    @property
    def success(self) -> bool:
        return self.graph is not None and not self.diagnostics.has_fatal()

    @property
    def pin_changes(self) -> dict[str, object] | None:
        """Diff between the loaded and the written pin record."""
        if self.pins is None or self.previous_pins is None:
            return None
        return self.previous_pins.diff(self.pins)


async def resolve_and_build_graph(
    roots: Sequence[Manifest],
    fetcher: PackageFetcher,
    pin_store: PinStore | None = None,
    diagnostics: DiagnosticsScope | None = None,
    options: ResolverOptions | None = None,
    save_pins: bool = True,
) -> SessionResult:
    """Resolve *roots* and build their modules graph.

    Args:
        roots: Root package manifests.
        fetcher: Fetch collaborator for every non-root package.
        pin_store: Pin store to read hints from and write on success.
        diagnostics: Scope to record into; a fresh one is created if None.
        options: Resolver tunables.
        save_pins: Write the pin record on success (read-only if False).

    Returns:
        A ``SessionResult``. ``graph`` is None if a fatal diagnostic was
        recorded by any stage.

    Raises:
        asyncio.CancelledError: If the session was aborted.
    """
    diagnostics = diagnostics if diagnostics is not None else DiagnosticsScope()
    result = SessionResult(graph=None, diagnostics=diagnostics)

    hints: PinRecord | None = None
    if pin_store is not None:
        result.previous_pins = pin_store.load()
        stale = result.previous_pins.stale_identities(roots)
        hints = result.previous_pins.without(stale)
        for identity in sorted(stale):
            if identity in result.previous_pins:
                diagnostics.note("root requirement changed; pin ignored", identity)

    try:
        resolution = await VersionResolver(fetcher, hints, diagnostics, options).resolve(roots)
    except asyncio.CancelledError:
        diagnostics.warning("resolution aborted; pins were not updated")
        raise
    result.resolution = resolution
    if not resolution.success:
        return result

    graph = GraphBuilder(resolution.packages, diagnostics).build()
    if graph is None:
        return result
    result.graph = graph

    if pin_store is not None and save_pins:
        try:
            result.pins = pin_store.save(resolution)
        except PinStoreError as exc:
            logger.error("Failed to save pins: %s", exc)
            diagnostics.error(exc)
    return result


def resolve_and_build_graph_sync(
    roots: Sequence[Manifest],
    fetcher: PackageFetcher,
    pin_store: PinStore | None = None,
    diagnostics: DiagnosticsScope | None = None,
    options: ResolverOptions | None = None,
    save_pins: bool = True,
) -> SessionResult:
    """Run ``resolve_and_build_graph`` to completion in a new event loop."""
    diagnostics = diagnostics if diagnostics is not None else DiagnosticsScope()
    try:
        return asyncio.run(
            resolve_and_build_graph(
                roots, fetcher, pin_store, diagnostics, options, save_pins
            )
        )
    except KeyboardInterrupt:
        diagnostics.warning("resolution aborted by user; pins were not updated")
        raise
