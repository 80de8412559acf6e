"""Graph builder: resolved package set -> ModulesGraph.

A pure, single-threaded transformation. One pass per package checks target
names and registers nodes; a global pass checks product names; then every
target dependency is resolved to arena indices and the result is sorted
topologically.

Problems are recorded into the diagnostics scope and checking continues,
so that one run reports as many independent problems as possible. The
builder returns None if anything fatal was recorded.
"""

from __future__ import annotations

import heapq
import logging

from pkggraph.core.dependency import (
    ByNameReference,
    Manifest,
    PackageIdentity,
    ProductReference,
    ResolvedSet,
    Target,
    TargetDependency,
    TargetReference,
)
from pkggraph.core.diagnostics import DiagnosticsScope
from pkggraph.core.graph.models import ModuleKey, ModuleNode, ModulesGraph
from pkggraph.exceptions import (
    DependencyCycleError,
    DuplicateProductError,
    DuplicateTargetError,
    MissingProductError,
    MissingTargetError,
    PkgGraphError,
)

logger = logging.getLogger(__name__)


class GraphBuilder:
    """Builds the ModulesGraph for a resolved package set.

    Args:
        packages: The resolved set, immutable for the builder's lifetime.
        diagnostics: Scope receiving the fatal problems found.
    """

    def __init__(
        self,
        packages: ResolvedSet,
        diagnostics: DiagnosticsScope | None = None,
    ) -> None:
        self._packages = packages
        self._diagnostics = diagnostics if diagnostics is not None else DiagnosticsScope()
        self._errors: list[PkgGraphError] = []
        self._nodes: list[ModuleNode] = []
        self._index: dict[ModuleKey, int] = {}
        self._products: dict[tuple[PackageIdentity, str], tuple[int, ...]] = {}

    @property
    def errors(self) -> list[PkgGraphError]:
        """Fatal problems found by the last ``build()``."""
        return list(self._errors)

    def build(self) -> ModulesGraph | None:
        """Construct the graph.

        Returns:
            The ``ModulesGraph``, or None if any fatal problem was found.
        """
        self._errors = []
        self._nodes = []
        self._index = {}
        self._products = {}

        excluded = self._register_targets()
        self._register_products()

        dependencies: list[list[int]] = [[] for _ in self._nodes]
        for identity, pkg in self._packages.items():
            if identity in excluded:
                continue
            for target in pkg.manifest.targets:
                src = self._index[ModuleKey(identity, target.name)]
                for dep in target.dependencies:
                    for dst in self._resolve(pkg.manifest, target, dep):
                        if dst not in dependencies[src]:
                            dependencies[src].append(dst)

        if self._errors:
            return None

        order = self._topological_sort(dependencies)
        if order is None:
            return None

        logger.info(
            "Built modules graph: %d modules, %d edges",
            len(self._nodes),
            sum(len(d) for d in dependencies),
        )
        return ModulesGraph(
            self._packages,
            self._nodes,
            dependencies,
            self._products,
            order,
        )

    def _fail(self, error: PkgGraphError, package: object) -> None:
        self._errors.append(error)
        self._diagnostics.error(error, package)

    # -- Step 1: targets ----------------------------------------------------

    def _register_targets(self) -> set[PackageIdentity]:
        """Create one node per (package, target); return packages with duplicates."""
        excluded: set[PackageIdentity] = set()
        for identity, pkg in self._packages.items():
            reported: set[str] = set()
            for target in pkg.manifest.targets:
                key = ModuleKey(identity, target.name)
                if key in self._index:
                    if target.name not in reported:
                        reported.add(target.name)
                        self._fail(DuplicateTargetError(identity, target.name), identity)
                    excluded.add(identity)
                    continue
                node = ModuleNode(len(self._nodes), identity, target)
                self._index[key] = node.index
                self._nodes.append(node)
        return excluded

    # -- Step 2: products ---------------------------------------------------

    def _register_products(self) -> None:
        owners: dict[str, PackageIdentity] = {}
        for identity, pkg in self._packages.items():
            for product in pkg.manifest.products:
                owner = owners.get(product.name)
                if owner is not None:
                    self._fail(
                        DuplicateProductError(product.name, [owner, identity]),
                        identity,
                    )
                    continue
                owners[product.name] = identity

                backing: list[int] = []
                for target_name in product.targets:
                    index = self._index.get(ModuleKey(identity, target_name))
                    if index is None:
                        self._fail(
                            MissingTargetError(identity, f"product {product.name}", target_name),
                            identity,
                        )
                        continue
                    backing.append(index)
                self._products[(identity, product.name)] = tuple(backing)

    # -- Step 3: references -------------------------------------------------

    def _resolve(
        self, manifest: Manifest, target: Target, dep: TargetDependency
    ) -> tuple[int, ...]:
        identity = manifest.identity
        if isinstance(dep, TargetReference):
            index = self._index.get(ModuleKey(identity, dep.name))
            if index is None:
                self._fail(MissingTargetError(identity, target.name, dep.name), identity)
                return ()
            return (index,)

        if isinstance(dep, ProductReference):
            owner = self._package_for(manifest, dep.package)
            if owner is None:
                known = self._packages.get_by_name(dep.package)
                reason = (
                    f"package {dep.package!r} is not a dependency of {identity}"
                    if known is not None
                    else f"unknown package {dep.package!r}"
                )
                self._fail(
                    MissingProductError(identity, target.name, dep.name, dep.package, reason),
                    identity,
                )
                return ()
            backing = self._products.get((owner, dep.name))
            if backing is None:
                self._fail(
                    MissingProductError(identity, target.name, dep.name, owner), identity
                )
                return ()
            return backing

        if isinstance(dep, ByNameReference):
            index = self._index.get(ModuleKey(identity, dep.name))
            if index is not None:
                return (index,)
            for decl in manifest.resolved_dependencies():
                backing = self._products.get((decl.identity, dep.name))
                if backing is not None:
                    return backing
            self._fail(
                MissingProductError(
                    identity,
                    target.name,
                    dep.name,
                    reason="no target of this package or product of its dependencies has that name",
                ),
                identity,
            )
            return ()

        raise TypeError(f"Unknown target dependency kind: {type(dep).__name__}")

    def _package_for(self, manifest: Manifest, name: str) -> PackageIdentity | None:
        """Map a package name used in a product reference to a resolved identity.

        Accepts the referring package itself, or one of its declared
        dependencies named by identity, alias, or display name.
        """
        key = name.lower()
        if key in (manifest.identity.value, manifest.display_name.lower()):
            return manifest.identity
        for decl in manifest.resolved_dependencies():
            names = {n.lower() for n in decl.names()}
            resolved = self._packages.get(decl.identity)
            if resolved is not None:
                names.add(resolved.manifest.display_name.lower())
            if key in names:
                return decl.identity if resolved is not None else None
        return None

    # -- Step 5: ordering ---------------------------------------------------

    def _topological_sort(self, dependencies: list[list[int]]) -> list[int] | None:
        """Kahn's algorithm; ties broken by arena index for determinism."""
        remaining = [len(d) for d in dependencies]
        dependents: list[list[int]] = [[] for _ in dependencies]
        for src, targets in enumerate(dependencies):
            for dst in targets:
                dependents[dst].append(src)

        ready = [i for i, count in enumerate(remaining) if count == 0]
        heapq.heapify(ready)
        order: list[int] = []
        while ready:
            current = heapq.heappop(ready)
            order.append(current)
            for dependent in dependents[current]:
                remaining[dependent] -= 1
                if remaining[dependent] == 0:
                    heapq.heappush(ready, dependent)

        if len(order) == len(dependencies):
            return order

        cycle = self._find_cycle(dependencies, {i for i, c in enumerate(remaining) if c > 0})
        first = self._nodes[cycle[0]]
        self._fail(
            DependencyCycleError([str(self._nodes[i]) for i in cycle], level="module"),
            first.package,
        )
        return None

    @staticmethod
    def _find_cycle(dependencies: list[list[int]], candidates: set[int]) -> list[int]:
        """Return one cycle among *candidates* as ``[a, b, ..., a]``."""
        WHITE, GRAY, BLACK = 0, 1, 2
        color = {i: WHITE for i in candidates}
        for start in sorted(candidates):
            if color[start] != WHITE:
                continue
            stack: list[tuple[int, int]] = [(start, 0)]
            path: list[int] = [start]
            color[start] = GRAY
            while stack:
                node, pos = stack[-1]
                targets = [t for t in dependencies[node] if t in candidates]
                if pos < len(targets):
                    stack[-1] = (node, pos + 1)
                    nxt = targets[pos]
                    if color[nxt] == GRAY:
                        return path[path.index(nxt):] + [nxt]
                    if color[nxt] == WHITE:
                        color[nxt] = GRAY
                        path.append(nxt)
                        stack.append((nxt, 0))
                else:
                    color[node] = BLACK
                    path.pop()
                    stack.pop()
        raise AssertionError("topological sort failed without a cycle")
