"""pkggraph exception hierarchy.

All public exceptions inherit from PkgGraphError, giving callers a single
base class to catch when they want to handle any pkggraph-specific failure
without swallowing unrelated errors.

The resolver and the graph builder do not raise most of these directly:
they record them into a ``DiagnosticsScope`` so that one invocation can
report as many independent problems as possible. The exception objects
carry the structured details (cycle path, requirers, package names) that
the CLI renders.
"""

from __future__ import annotations

from typing import Sequence


class PkgGraphError(Exception):
    """Base exception for all pkggraph errors."""


class ResolutionError(PkgGraphError):
    """Raised when dependency resolution fails.

    Groups version conflicts, package-level cycles, and manifest loading
    failures encountered while computing the resolved package set.
    """


class GraphBuildError(PkgGraphError):
    """Raised when the modules graph cannot be constructed.

    Groups duplicate declarations, dangling references, and module-level
    cycles found while building the graph from a resolved package set.
    """


class ManifestLoadError(ResolutionError):
    """Raised when a package manifest is malformed or cannot be fetched.

    Fatal for the subtree rooted at that package.
    """

    def __init__(self, identity: object, message: str) -> None:
        self.identity = identity
        super().__init__(f"failed to load manifest for {identity}: {message}")


class VersionConflictError(ResolutionError):
    """Raised when the requirements on one package cannot all be satisfied.

    Attributes:
        identity: The package whose requirements conflict.
        requirers: ``(requirer, requirement)`` pairs, one per declaration
            that contributed to the conflict.
    """

    def __init__(
        self,
        identity: object,
        requirers: Sequence[tuple[object, object]],
        reason: str = "",
    ) -> None:
        self.identity = identity
        self.requirers = list(requirers)
        parts = ", ".join(f"{who} requires {req}" for who, req in self.requirers)
        message = f"conflicting requirements for {identity}: {parts}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class DependencyCycleError(ResolutionError, GraphBuildError):
    """Raised when a dependency cycle is found.

    Used both for package-level cycles (found during resolution) and for
    module-level cycles (found during graph construction).

    Attributes:
        path: The cycle as an ordered list, first element repeated last.
    """

    def __init__(self, path: Sequence[object], level: str = "package") -> None:
        self.path = [str(p) for p in path]
        self.level = level
        super().__init__(
            f"cyclic {level} dependency: {' -> '.join(self.path)}"
        )


class DuplicateTargetError(GraphBuildError):
    """Raised when a package declares two targets with the same name."""

    def __init__(self, package: object, target: str) -> None:
        self.package = package
        self.target = target
        super().__init__(f"package {package} declares target {target!r} more than once")


class DuplicateProductError(GraphBuildError):
    """Raised when a product name is declared by more than one package."""

    def __init__(self, product: str, packages: Sequence[object]) -> None:
        self.product = product
        self.packages = [str(p) for p in packages]
        super().__init__(
            f"product {product!r} is declared by more than one package: "
            f"{', '.join(self.packages)}"
        )


class MissingTargetError(GraphBuildError):
    """Raised when a reference names a target that does not exist."""

    def __init__(self, package: object, referrer: str, target: str) -> None:
        self.package = package
        self.referrer = referrer
        self.target = target
        super().__init__(
            f"{referrer!r} in package {package} references unknown target {target!r}"
        )


class MissingProductError(GraphBuildError):
    """Raised when a target depends on a product that cannot be found."""

    def __init__(
        self,
        package: object,
        referrer: str,
        product: str,
        product_package: object | None = None,
        reason: str = "",
    ) -> None:
        self.package = package
        self.referrer = referrer
        self.product = product
        self.product_package = product_package
        where = f" in package {product_package}" if product_package else ""
        message = (
            f"target {referrer!r} in package {package} depends on unknown "
            f"product {product!r}{where}"
        )
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class PinStoreError(PkgGraphError, OSError):
    """Raised when the pin record cannot be written.

    Reading never raises: an absent or unreadable pin file is treated as
    an empty record.
    """
