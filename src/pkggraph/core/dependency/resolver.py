"""Version resolution: exactly one manifest per package identity.

Starting from the root manifests, the resolver walks dependency
declarations breadth-first in declaration order. For every identity it
keeps the *accumulated* requirement, i.e. the intersection of everything
that was asked of it so far, and binds the identity to one concrete state:

1. the prior pin, if it still satisfies the accumulated requirement;
2. otherwise the highest available version inside an interval requirement,
   or the named branch, revision, or local path.

Each bound package is expanded once: its manifest is loaded and its own
declarations are enqueued. If a later declaration narrows an identity so
that its already-expanded choice is no longer acceptable, the pass is
re-run from the roots with the narrowed requirement imposed up front. An
entry is never superseded in place. An imposition remembers the states its
requirers were bound to, and is withdrawn (with another re-run) as soon as
one of them is bound differently or not reached at all.

Fetches for the members of one breadth-first wave are awaited together;
results are applied in wave order, so the outcome does not depend on the
order in which fetches complete. All resolver state is owned by the single
coroutine running ``resolve``.
"""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict, deque
from dataclasses import dataclass, field
from typing import Any, Iterator, Mapping, Sequence

from pkggraph.core.dependency.constraints import (
    BoundVersion,
    BranchRequirement,
    ExactRequirement,
    LocalRequirement,
    RangeRequirement,
    Requirement,
    RevisionRequirement,
    Version,
    allows,
    allows_version,
    intersect,
    span_in_majors,
)
from pkggraph.core.dependency.fetch import PackageFetcher
from pkggraph.core.dependency.manifest import DependencyDecl, Manifest, PackageIdentity
from pkggraph.core.diagnostics import DiagnosticsScope
from pkggraph.exceptions import (
    DependencyCycleError,
    ManifestLoadError,
    PkgGraphError,
    ResolutionError,
    VersionConflictError,
)

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Options and results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ResolverOptions:
    """Tunables for a resolution session.

    Attributes:
        prefer_pins: Keep a prior pin whenever it still satisfies the
            accumulated requirement.
        max_passes: Upper bound on re-runs caused by narrowed requirements.
        wide_range_majors: Ranges spanning more major versions than this
            produce a warning.
    """

    prefer_pins: bool = True
    max_passes: int = 16
    wide_range_majors: int = 1


@dataclass(frozen=True)
class ResolvedPackage:
    """One entry of the resolved set: a manifest and the state it was loaded at."""

    manifest: Manifest
    bound: BoundVersion
    is_root: bool = False

    @property
    def identity(self) -> PackageIdentity:
        return self.manifest.identity


class ResolvedSet(Mapping[PackageIdentity, ResolvedPackage]):
    """Read-only, ordered mapping of identity to resolved package.

    Iteration order is discovery order: roots first, then breadth-first.
    """

    def __init__(self, packages: Sequence[ResolvedPackage] = ()) -> None:
        self._packages: dict[PackageIdentity, ResolvedPackage] = {}
        for pkg in packages:
            if pkg.identity in self._packages:
                raise ValueError(f"Duplicate package identity: {pkg.identity}")
            self._packages[pkg.identity] = pkg

    def __getitem__(self, identity: PackageIdentity) -> ResolvedPackage:
        return self._packages[identity]

    def __iter__(self) -> Iterator[PackageIdentity]:
        return iter(self._packages)

    def __len__(self) -> int:
        return len(self._packages)

    def __repr__(self) -> str:
        inner = ", ".join(f"{k}@{v.bound}" for k, v in self._packages.items())
        return f"ResolvedSet({inner})"

    @property
    def roots(self) -> list[ResolvedPackage]:
        return [pkg for pkg in self._packages.values() if pkg.is_root]

    def get_by_name(self, name: str) -> ResolvedPackage | None:
        """Look up a package by identity or (case-insensitive) display name."""
        key = name.lower()
        found = self._packages.get(PackageIdentity(key))
        if found is not None:
            return found
        for pkg in self._packages.values():
            if pkg.manifest.display_name.lower() == key:
                return pkg
        return None


@dataclass
class Resolution:
    """Result of version resolution.

    A successful resolution holds exactly one entry per identity reachable
    from the roots. A failed one holds no packages: partial results are not
    usable for building. The reasons are recorded in the diagnostics scope
    and summarised in ``conflicts``.

    Attributes:
        success: True if every requirement was satisfied without cycles.
        packages: The resolved set. Empty if resolution failed.
        requirements: Accumulated requirement per non-root identity.
        conflicts: Messages of the fatal problems. Empty on success.
        passes: Number of passes run (re-runs happen when a requirement
            narrowed below an already-expanded choice).
    """

    success: bool
    packages: ResolvedSet = field(default_factory=ResolvedSet)
    requirements: dict[PackageIdentity, Requirement] = field(default_factory=dict)
    conflicts: list[str] = field(default_factory=list)
    passes: int = 1

    @property
    def installed(self) -> dict[str, str]:
        """``identity -> state`` strings, in resolution order."""
        return {str(k): str(v.bound) for k, v in self.packages.items()}


# ---------------------------------------------------------------------------
# Internal pass state
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class _WorkItem:
    decl: DependencyDecl
    requirer: PackageIdentity
    chain: tuple[PackageIdentity, ...]


class _Restart(Exception):
    """The pass must be re-run with a different set of impositions.

    With a *requirement*, an expanded package's choice was invalidated and
    the narrowed requirement is imposed on *identity* from the start of the
    next pass. Without one, the imposition on *identity* lost a source and
    is withdrawn.
    """

    def __init__(
        self,
        identity: PackageIdentity,
        requirement: Requirement | None,
        requirers: list[tuple[str, Requirement]] | None = None,
        sources: dict[PackageIdentity, BoundVersion] | None = None,
    ) -> None:
        if requirement is None:
            message = f"requirement imposed on {identity} withdrawn"
        else:
            message = f"{identity} narrowed to {requirement}"
        super().__init__(message)
        self.identity = identity
        self.requirement = requirement
        self.requirers = requirers or []
        self.sources = sources or {}


@dataclass
class _Imposed:
    """A narrowed requirement carried into later passes.

    ``sources`` maps every requirer that contributed to the state it was
    bound to at the time; the imposition only holds while all of them are
    bound the same way.
    """

    requirement: Requirement
    requirers: list[tuple[str, Requirement]]
    sources: dict[PackageIdentity, BoundVersion] = field(default_factory=dict)


class _Pass:
    """State of a single resolution pass."""

    def __init__(self, imposed: Mapping[PackageIdentity, _Imposed]) -> None:
        self.imposed = dict(imposed)
        self.accumulated: dict[PackageIdentity, Requirement] = {
            k: v.requirement for k, v in imposed.items()
        }
        self.requirers: dict[PackageIdentity, list[tuple[str, Requirement]]] = defaultdict(list)
        self.sources: dict[PackageIdentity, dict[PackageIdentity, BoundVersion]] = defaultdict(dict)
        for identity, entry in imposed.items():
            self.requirers[identity].extend(entry.requirers)
            self.sources[identity].update(entry.sources)
        self.packages: dict[PackageIdentity, ResolvedPackage] = {}
        self.chains: dict[PackageIdentity, tuple[PackageIdentity, ...]] = {}
        self.failed: set[PackageIdentity] = set()
        # Recorded into the diagnostics scope only once the final pass is known.
        self.errors: list[tuple[PkgGraphError, object]] = []

    def add_requirer(
        self,
        identity: PackageIdentity,
        requirer: PackageIdentity,
        bound: BoundVersion,
        req: Requirement,
    ) -> None:
        entry = (str(requirer), req)
        if entry not in self.requirers[identity]:
            self.requirers[identity].append(entry)
        self.sources[identity][requirer] = bound

    def stale_imposition(self, complete: bool = False) -> PackageIdentity | None:
        """Return an identity whose imposition no longer holds, if any.

        A source bound to another state invalidates the imposition at once.
        A source that was never bound only does so once the pass is
        *complete*.
        """
        for identity, entry in self.imposed.items():
            for source, bound in entry.sources.items():
                current = self.packages.get(source)
                if current is None:
                    if complete:
                        return identity
                elif current.bound != bound:
                    return identity
        return None


# ---------------------------------------------------------------------------
# VersionResolver
# ---------------------------------------------------------------------------


class VersionResolver:
    """Computes one manifest per package identity satisfying all requirements.

    Args:
        fetcher: The fetch collaborator.
        pins: Prior pin record (anything with ``get(identity)`` returning an
            object with a ``state`` ``BoundVersion``), or None.
        diagnostics: Scope receiving errors, warnings, and notes.
        options: Resolver tunables.
    """

    def __init__(
        self,
        fetcher: PackageFetcher,
        pins: Any | None = None,
        diagnostics: DiagnosticsScope | None = None,
        options: ResolverOptions | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._pins = pins
        self._diagnostics = diagnostics if diagnostics is not None else DiagnosticsScope()
        self._options = options or ResolverOptions()
        self._reported: set[tuple[str, PackageIdentity, PackageIdentity]] = set()

    async def resolve(self, roots: Sequence[Manifest]) -> Resolution:
        """Resolve the transitive closure of *roots*.

        Returns:
            A ``Resolution``. Fatal problems are recorded in the diagnostics
            scope and make ``success`` False.
        """
        imposed: dict[PackageIdentity, _Imposed] = {}
        self._reported = set()
        passes = 0
        while True:
            passes += 1
            state = _Pass(imposed)
            try:
                await self._run_pass(roots, state)
            except _Restart as restart:
                if passes >= self._options.max_passes:
                    error = ResolutionError(
                        f"resolution did not converge after {passes} passes "
                        f"(last change: {restart})"
                    )
                    self._diagnostics.error(error, restart.identity)
                    return Resolution(success=False, conflicts=[str(error)], passes=passes)
                logger.debug("%s; re-running resolution", restart)
                if restart.requirement is None:
                    imposed.pop(restart.identity, None)
                else:
                    imposed[restart.identity] = _Imposed(
                        restart.requirement, restart.requirers, restart.sources
                    )
                continue
            except (asyncio.CancelledError, KeyboardInterrupt):
                self._record_errors(state)
                raise
            break

        if not state.errors:
            self._check_package_cycles(state)

        if state.errors:
            self._record_errors(state)
            return Resolution(
                success=False,
                conflicts=[str(e) for e, _ in state.errors],
                passes=passes,
            )

        packages = ResolvedSet(list(state.packages.values()))
        logger.info("Resolved %d packages in %d pass(es)", len(packages), passes)
        return Resolution(
            success=True,
            packages=packages,
            requirements=dict(state.accumulated),
            passes=passes,
        )

    # -- Pass ---------------------------------------------------------------

    async def _run_pass(self, roots: Sequence[Manifest], state: _Pass) -> None:
        queue: deque[_WorkItem] = deque()
        root_ids = {root.identity for root in roots}

        for root in roots:
            if root.identity in state.packages:
                continue
            state.packages[root.identity] = ResolvedPackage(
                manifest=root,
                bound=BoundVersion(path=root.location),
                is_root=True,
            )
            state.chains[root.identity] = (root.identity,)
        for root in roots:
            for decl in root.resolved_dependencies():
                queue.append(_WorkItem(decl, root.identity, (root.identity,)))

        while queue:
            wave = list(queue)
            queue.clear()
            to_bind: list[PackageIdentity] = []
            for item in wave:
                identity = self._accumulate(item, state, root_ids)
                if identity is not None and identity not in to_bind:
                    to_bind.append(identity)
                    state.chains[identity] = item.chain + (identity,)

            bound = await self._gather(
                to_bind, [self._select(i, state) for i in to_bind], state
            )
            loaded = await self._gather(
                list(bound),
                [self._load(i, b) for i, b in bound.items()],
                state,
            )
            for identity, manifest in loaded.items():
                state.packages[identity] = ResolvedPackage(manifest, bound[identity])
                for decl in manifest.resolved_dependencies():
                    queue.append(_WorkItem(decl, identity, state.chains[identity]))
            self._check_impositions(state)
        self._check_impositions(state, complete=True)

    def _accumulate(
        self,
        item: _WorkItem,
        state: _Pass,
        root_ids: set[PackageIdentity],
    ) -> PackageIdentity | None:
        """Fold one declaration into the accumulated requirement.

        Returns the identity if it now needs a (new) binding, else None.
        """
        decl = item.decl
        identity = decl.identity

        if identity in item.chain:
            start = item.chain.index(identity)
            self._fail(
                state,
                DependencyCycleError(list(item.chain[start:]) + [identity]),
                item.requirer,
            )
            return None
        if identity in root_ids or identity in state.failed:
            return None

        self._warn_requirement(item)
        requirer_bound = state.packages[item.requirer].bound
        state.add_requirer(identity, item.requirer, requirer_bound, decl.requirement)

        previous = state.accumulated.get(identity)
        merged = decl.requirement if previous is None else intersect(previous, decl.requirement)
        if merged is None:
            state.failed.add(identity)
            self._fail(
                state,
                VersionConflictError(identity, state.requirers[identity]),
                identity,
            )
            return None
        state.accumulated[identity] = merged

        current = state.packages.get(identity)
        if current is not None:
            if allows(merged, current.bound) and allows(decl.requirement, current.bound):
                return None
            raise _Restart(
                identity,
                merged,
                list(state.requirers[identity]),
                dict(state.sources[identity]),
            )
        return identity

    async def _gather(
        self,
        identities: list[PackageIdentity],
        coros: list[Any],
        state: _Pass,
    ) -> dict[PackageIdentity, Any]:
        results = await asyncio.gather(*coros, return_exceptions=True)
        out: dict[PackageIdentity, Any] = {}
        for identity, result in zip(identities, results):
            if isinstance(result, PkgGraphError):
                state.failed.add(identity)
                self._fail(state, result, identity)
            elif isinstance(result, BaseException):
                raise result
            else:
                out[identity] = result
        return out

    # -- Selection ----------------------------------------------------------

    async def _select(self, identity: PackageIdentity, state: _Pass) -> BoundVersion:
        requirement = state.accumulated[identity]

        pinned = self._pinned_state(identity)
        if pinned is not None:
            if allows(requirement, pinned) and all(
                allows(r, pinned) for _, r in state.requirers[identity]
            ):
                logger.debug("Keeping pin %s@%s", identity, pinned)
                return pinned
            if self._first_report("pin", identity, identity):
                self._diagnostics.note(
                    f"pinned state {pinned} no longer satisfies {requirement}; re-resolving",
                    identity,
                )

        if isinstance(requirement, (ExactRequirement, RangeRequirement)):
            versions = await self._fetcher.available_versions(identity, requirement)
            return BoundVersion(version=self._highest(identity, requirement, versions, state))
        if isinstance(requirement, BranchRequirement):
            return BoundVersion(branch=requirement.name)
        if isinstance(requirement, RevisionRequirement):
            return BoundVersion(revision=requirement.revision)
        if isinstance(requirement, LocalRequirement):
            return BoundVersion(path=requirement.path)
        raise TypeError(f"Unknown requirement kind: {type(requirement).__name__}")

    def _highest(
        self,
        identity: PackageIdentity,
        requirement: Requirement,
        versions: Sequence[Version],
        state: _Pass,
    ) -> Version:
        # Prerelease admission depends on the bounds, so every declaration
        # is checked, not only their intersection.
        satisfying = [
            v
            for v in versions
            if allows_version(requirement, v)
            and all(allows_version(r, v) for _, r in state.requirers[identity])
        ]
        if not satisfying:
            available = ", ".join(str(v) for v in sorted(versions)) or "none"
            raise VersionConflictError(
                identity,
                state.requirers[identity],
                reason=f"no available version satisfies {requirement}; available: {available}",
            )
        return max(satisfying)

    def _pinned_state(self, identity: PackageIdentity) -> BoundVersion | None:
        if self._pins is None or not self._options.prefer_pins:
            return None
        pin = self._pins.get(identity)
        return pin.state if pin is not None else None

    async def _load(self, identity: PackageIdentity, bound: BoundVersion) -> Manifest:
        manifest = await self._fetcher.load_manifest(identity, bound)
        if manifest.identity != identity:
            raise ManifestLoadError(
                identity, f"manifest declares identity {manifest.identity}"
            )
        pin = self._pins.get(identity) if self._pins is not None else None
        checksum = getattr(pin, "checksum", "")
        if (
            checksum
            and pin.state == bound
            and checksum != manifest.checksum
            and self._first_report("checksum", identity, identity)
        ):
            self._diagnostics.warning(
                f"manifest content at pinned state {bound} changed since it was pinned",
                identity,
            )
        return manifest

    # -- Diagnostics --------------------------------------------------------

    def _fail(self, state: _Pass, error: PkgGraphError, package: object) -> None:
        state.errors.append((error, package))

    def _record_errors(self, state: _Pass) -> None:
        for error, package in state.errors:
            self._diagnostics.error(error, package)

    def _check_impositions(self, state: _Pass, complete: bool = False) -> None:
        stale = state.stale_imposition(complete)
        if stale is not None:
            raise _Restart(stale, None)

    def _first_report(
        self, kind: str, package: PackageIdentity, subject: PackageIdentity
    ) -> bool:
        # Passes re-run after a restart must not repeat warnings and notes.
        key = (kind, package, subject)
        if key in self._reported:
            return False
        self._reported.add(key)
        return True

    def _warn_requirement(self, item: _WorkItem) -> None:
        if not self._first_report("requirement", item.requirer, item.decl.identity):
            return
        requirement = item.decl.requirement
        span = span_in_majors(requirement)
        if isinstance(requirement, RangeRequirement) and requirement.upper is None:
            self._diagnostics.warning(
                f"dependency on {item.decl.identity} has no upper version bound ({requirement})",
                item.requirer,
            )
        elif span is not None and span > self._options.wide_range_majors:
            self._diagnostics.warning(
                f"dependency on {item.decl.identity} uses a wide version range "
                f"{requirement} spanning {span} major versions",
                item.requirer,
            )
        elif isinstance(requirement, BranchRequirement):
            self._diagnostics.note(
                f"dependency on {item.decl.identity} tracks {requirement}",
                item.requirer,
            )

    def _check_package_cycles(self, state: _Pass) -> None:
        """Report package-level cycles among the expanded packages.

        The per-path chain check only sees cycles along the path through
        which a package was first reached; this DFS covers the rest.
        """
        adj: dict[PackageIdentity, list[PackageIdentity]] = {}
        for identity, pkg in state.packages.items():
            adj[identity] = [
                d.identity
                for d in pkg.manifest.resolved_dependencies()
                if d.identity in state.packages
            ]

        WHITE, GRAY, BLACK = 0, 1, 2
        color: dict[PackageIdentity, int] = {i: WHITE for i in adj}
        for start in adj:
            if color[start] != WHITE:
                continue
            color[start] = GRAY
            path: list[PackageIdentity] = [start]
            stack: list[tuple[PackageIdentity, int]] = [(start, 0)]
            while stack:
                node, pos = stack[-1]
                if pos < len(adj[node]):
                    stack[-1] = (node, pos + 1)
                    nxt = adj[node][pos]
                    if color[nxt] == GRAY:
                        cycle = path[path.index(nxt):] + [nxt]
                        self._fail(state, DependencyCycleError(cycle), node)
                    elif color[nxt] == WHITE:
                        color[nxt] = GRAY
                        path.append(nxt)
                        stack.append((nxt, 0))
                else:
                    color[node] = BLACK
                    path.pop()
                    stack.pop()
