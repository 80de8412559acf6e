"""ModulesGraph: the arena of module nodes produced by the graph builder.

Nodes are stored once in an arena and addressed by index; an edge is a
pair of indices. Every logical module ``(package, target)`` therefore has
exactly one node no matter how many dependents reach it, including through
diamond-shaped product references.

The graph is immutable after construction. A changed manifest means a new
resolution and a new graph.
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
from typing import Iterator, Mapping, Sequence

from pkggraph.core.dependency import (
    PackageIdentity,
    ResolvedSet,
    Target,
    TargetKind,
)


@dataclass(frozen=True, order=True)
class ModuleKey:
    """Identifies one module: a target within a package."""

    package: PackageIdentity
    name: str

    def __str__(self) -> str:
        return f"{self.package}.{self.name}"


@dataclass(frozen=True)
class ModuleNode:
    """A target of a resolved package, as a node of the graph.

    Attributes:
        index: Position in the graph's arena.
        package: Identity of the owning package.
        target: The target description.
    """

    index: int
    package: PackageIdentity
    target: Target

    @property
    def key(self) -> ModuleKey:
        return ModuleKey(self.package, self.target.name)

    @property
    def name(self) -> str:
        return self.target.name

    @property
    def kind(self) -> TargetKind:
        return self.target.kind

    def __str__(self) -> str:
        return str(self.key)


class ModulesGraph:
    """Acyclic graph of modules with dependency edges.

    Example::

        graph = GraphBuilder(resolution.packages, diagnostics).build()
        hal = graph.node("swift-firmware", "HAL")
        [str(n) for n in graph.dependencies_of(hal)]   # ["swift-mmio.MMIO"]
        [str(n) for n in graph.topological_order]      # dependencies first
    """

    def __init__(
        self,
        packages: ResolvedSet,
        nodes: Sequence[ModuleNode],
        dependencies: Sequence[Sequence[int]],
        products: Mapping[tuple[PackageIdentity, str], Sequence[int]],
        order: Sequence[int],
    ) -> None:
        self._packages = packages
        self._nodes = tuple(nodes)
        self._deps = tuple(tuple(d) for d in dependencies)
        self._index = {node.key: node.index for node in self._nodes}
        self._products = {k: tuple(v) for k, v in products.items()}
        self._order = tuple(order)

        dependents: list[list[int]] = [[] for _ in self._nodes]
        for src, targets in enumerate(self._deps):
            for dst in targets:
                dependents[dst].append(src)
        self._dependents = tuple(tuple(d) for d in dependents)

    # -- Basic access -------------------------------------------------------

    @property
    def packages(self) -> ResolvedSet:
        """The resolved package set the graph was built from."""
        return self._packages

    @property
    def nodes(self) -> tuple[ModuleNode, ...]:
        return self._nodes

    def __len__(self) -> int:
        return len(self._nodes)

    def __iter__(self) -> Iterator[ModuleNode]:
        return iter(self._nodes)

    def __contains__(self, key: object) -> bool:
        return key in self._index

    def node(self, package: PackageIdentity | str, name: str) -> ModuleNode | None:
        """Return the node for target *name* of *package*, or None."""
        if isinstance(package, str):
            package = PackageIdentity(package.lower())
        index = self._index.get(ModuleKey(package, name))
        return self._nodes[index] if index is not None else None

    @property
    def edges(self) -> list[tuple[ModuleKey, ModuleKey]]:
        """All ``(dependent, dependency)`` pairs in arena order."""
        return [
            (self._nodes[src].key, self._nodes[dst].key)
            for src, targets in enumerate(self._deps)
            for dst in targets
        ]

    @property
    def edge_indices(self) -> list[tuple[int, int]]:
        return [(src, dst) for src, targets in enumerate(self._deps) for dst in targets]

    # -- Queries ------------------------------------------------------------

    def dependencies_of(self, node: ModuleNode) -> list[ModuleNode]:
        """Direct dependencies of *node*, in declaration order."""
        return [self._nodes[i] for i in self._deps[node.index]]

    def dependents_of(self, node: ModuleNode) -> list[ModuleNode]:
        """Modules that depend directly on *node*."""
        return [self._nodes[i] for i in self._dependents[node.index]]

    def transitive_dependencies(self, node: ModuleNode) -> list[ModuleNode]:
        """All modules reachable from *node*, breadth-first, excluding *node*."""
        seen = {node.index}
        out: list[ModuleNode] = []
        queue: deque[int] = deque([node.index])
        while queue:
            current = queue.popleft()
            for dep in self._deps[current]:
                if dep not in seen:
                    seen.add(dep)
                    out.append(self._nodes[dep])
                    queue.append(dep)
        return out

    def product(self, package: PackageIdentity | str, name: str) -> list[ModuleNode]:
        """The nodes backing product *name* of *package* (empty if unknown)."""
        if isinstance(package, str):
            package = PackageIdentity(package.lower())
        return [self._nodes[i] for i in self._products.get((package, name), ())]

    def modules_of(self, package: PackageIdentity | str) -> list[ModuleNode]:
        if isinstance(package, str):
            package = PackageIdentity(package.lower())
        return [n for n in self._nodes if n.package == package]

    def root_modules(self) -> list[ModuleNode]:
        """Modules declared by root packages."""
        roots = {pkg.identity for pkg in self._packages.roots}
        return [n for n in self._nodes if n.package in roots]

    @property
    def topological_order(self) -> list[ModuleNode]:
        """Every node, each after all of its dependencies."""
        return [self._nodes[i] for i in self._order]

    def to_dict(self) -> dict[str, object]:
        """JSON-friendly summary used by the CLI."""
        return {
            "packages": {
                str(identity): str(pkg.bound) for identity, pkg in self._packages.items()
            },
            "modules": [
                {
                    "module": str(node),
                    "kind": node.kind.value,
                    "dependencies": [str(d) for d in self.dependencies_of(node)],
                }
                for node in self._nodes
            ],
            "order": [str(node) for node in self.topological_order],
        }
