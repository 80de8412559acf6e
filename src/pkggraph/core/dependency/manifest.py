"""Manifest data model: identities, dependency declarations, products, targets.

These are pure, immutable data holders. A manifest arrives already parsed
and validated from the (external) loader; ``from_dict``/``to_dict`` convert
between the model and its structured description, i.e. the mapping form
found in YAML or JSON documents.
"""

from __future__ import annotations

import hashlib
import json
import posixpath
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Union

from pkggraph.core.dependency.constraints import (
    LocalRequirement,
    Requirement,
    parse_requirement,
    requirement_to_dict,
)


# ---------------------------------------------------------------------------
# PackageIdentity
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class PackageIdentity:
    """Normalized key identifying "the same package" across a resolution.

    Derived from a source location or local path: the last path component,
    without a trailing ``.git``, lower-cased. ``/swift-mmio`` and
    ``https://github.com/apple/Swift-MMIO.git`` both map to ``swift-mmio``.
    """

    value: str

    @classmethod
    def from_location(cls, location: str) -> PackageIdentity:
        trimmed = location.strip().rstrip("/")
        if "://" in trimmed:
            trimmed = trimmed.split("://", 1)[1]
        elif ":" in trimmed and not trimmed.startswith("/"):
            # scp-style "git@host:owner/repo.git"
            trimmed = trimmed.split(":", 1)[1]
        last = trimmed.rsplit("/", 1)[-1]
        if last.endswith(".git"):
            last = last[: -len(".git")]
        if not last:
            raise ValueError(f"Cannot derive a package identity from {location!r}")
        return cls(last.lower())

    def __str__(self) -> str:
        return self.value


def _is_relative_path(location: str) -> bool:
    return "://" not in location and not location.startswith("/") and ":" not in location


def _resolve_location(base: str, location: str) -> str:
    if not _is_relative_path(location) or not base or "://" in base:
        return location
    return posixpath.normpath(posixpath.join(base, location))


# ---------------------------------------------------------------------------
# Dependency declarations
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DependencyDecl:
    """A package-level dependency: "this package needs *identity* at *requirement*".

    Attributes:
        identity: Identity of the required package.
        requirement: Constraint on the required package's version.
        location: Where the package comes from (URL or path). Relative paths
            are relative to the declaring package's location.
        alias: Optional name by which the declaring package's targets refer
            to this dependency in product references.
    """

    identity: PackageIdentity
    requirement: Requirement
    location: str = ""
    alias: str | None = None

    def rebased(self, base_location: str) -> DependencyDecl:
        """Resolve a relative location against the declaring package's location.

        The identity is recomputed from the resolved location, so two
        packages referring to the same directory through different relative
        paths agree on the identity.
        """
        if not self.location or not _is_relative_path(self.location):
            return self
        location = _resolve_location(base_location, self.location)
        requirement = self.requirement
        if isinstance(requirement, LocalRequirement):
            requirement = LocalRequirement(_resolve_location(base_location, requirement.path))
        return replace(
            self,
            identity=PackageIdentity.from_location(location),
            location=location,
            requirement=requirement,
        )

    def names(self) -> set[str]:
        """Names under which targets of the declaring package may refer to it."""
        found = {self.identity.value}
        if self.alias:
            found.add(self.alias)
        return found

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "identity": self.identity.value,
            "requirement": requirement_to_dict(self.requirement),
        }
        if self.location:
            data["location"] = self.location
        if self.alias:
            data["alias"] = self.alias
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DependencyDecl:
        location = str(data.get("location", ""))
        requirement = parse_requirement(data["requirement"])
        if not location and isinstance(requirement, LocalRequirement):
            location = requirement.path
        identity = data.get("identity")
        if identity is None:
            if not location:
                raise ValueError("Dependency declaration needs an identity or a location")
            identity_obj = PackageIdentity.from_location(location)
        else:
            identity_obj = PackageIdentity(str(identity).lower())
        return cls(
            identity=identity_obj,
            requirement=requirement,
            location=location,
            alias=data.get("alias"),
        )


# ---------------------------------------------------------------------------
# Target dependency references
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class TargetReference:
    """Dependency on another target of the same package."""

    name: str

    def __str__(self) -> str:
        return f"target {self.name}"


@dataclass(frozen=True)
class ProductReference:
    """Dependency on a product of a package (by identity, alias, or name)."""

    name: str
    package: str

    def __str__(self) -> str:
        return f"product {self.name} of {self.package}"


@dataclass(frozen=True)
class ByNameReference:
    """A bare name: a target of the same package, else a dependency's product."""

    name: str

    def __str__(self) -> str:
        return self.name


TargetDependency = Union[TargetReference, ProductReference, ByNameReference]


def target_dependency_from_dict(data: Any) -> TargetDependency:
    """Parse ``"Name"``, ``{"target": ...}``, or ``{"product": ..., "package": ...}``."""
    if isinstance(data, str):
        return ByNameReference(data)
    if isinstance(data, dict):
        if "product" in data:
            return ProductReference(str(data["product"]), str(data["package"]))
        if "target" in data:
            return TargetReference(str(data["target"]))
    raise ValueError(f"Invalid target dependency: {data!r}")


def target_dependency_to_dict(dep: TargetDependency) -> Any:
    if isinstance(dep, ProductReference):
        return {"product": dep.name, "package": dep.package}
    if isinstance(dep, TargetReference):
        return {"target": dep.name}
    if isinstance(dep, ByNameReference):
        return dep.name
    raise TypeError(f"Unknown target dependency kind: {type(dep).__name__}")


# ---------------------------------------------------------------------------
# Products and targets
# ---------------------------------------------------------------------------


class ProductKind(str, Enum):
    LIBRARY = "library"
    EXECUTABLE = "executable"
    PLUGIN = "plugin"
    MACRO = "macro"


class TargetKind(str, Enum):
    REGULAR = "regular"
    TEST = "test"
    EXECUTABLE = "executable"
    MACRO = "macro"
    PLUGIN = "plugin"


_LINKAGES = ("automatic", "static", "dynamic")


@dataclass(frozen=True)
class Product:
    """A named, externally consumable unit backed by one or more targets.

    Attributes:
        name: Product name; unique across every package visible to a root.
        kind: Library, executable, plugin, or macro.
        targets: Names of the backing targets, all in the same package.
        linkage: For libraries, "automatic", "static", or "dynamic".
    """

    name: str
    kind: ProductKind = ProductKind.LIBRARY
    targets: tuple[str, ...] = ()
    linkage: str | None = None

    def __post_init__(self) -> None:
        if self.linkage is not None:
            if self.kind is not ProductKind.LIBRARY:
                raise ValueError(f"Only library products have a linkage: {self.name!r}")
            if self.linkage not in _LINKAGES:
                raise ValueError(f"Unknown library linkage: {self.linkage!r}")

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "kind": self.kind.value,
            "targets": list(self.targets),
        }
        if self.linkage is not None:
            data["linkage"] = self.linkage
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Product:
        kind = ProductKind(data.get("kind", "library"))
        return cls(
            name=str(data["name"]),
            kind=kind,
            targets=tuple(str(t) for t in data.get("targets", [data["name"]])),
            linkage=data.get("linkage"),
        )


@dataclass(frozen=True)
class Target:
    """The finest-grained compilable module of a package."""

    name: str
    kind: TargetKind = TargetKind.REGULAR
    dependencies: tuple[TargetDependency, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "kind": self.kind.value,
            "dependencies": [target_dependency_to_dict(d) for d in self.dependencies],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Target:
        return cls(
            name=str(data["name"]),
            kind=TargetKind(data.get("kind", "regular")),
            dependencies=tuple(
                target_dependency_from_dict(d) for d in data.get("dependencies", [])
            ),
        )


# ---------------------------------------------------------------------------
# Manifest
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Manifest:
    """Structured description of one package.

    Immutable once loaded; a changed manifest means a new resolution.

    Attributes:
        identity: The package's identity.
        display_name: Human-facing package name (may differ from identity).
        location: Source location or local path of the package.
        dependencies: Package-level dependency declarations, in order.
        products: Products the package vends.
        targets: Targets the package declares.
    """

    identity: PackageIdentity
    display_name: str
    location: str = ""
    dependencies: tuple[DependencyDecl, ...] = ()
    products: tuple[Product, ...] = ()
    targets: tuple[Target, ...] = field(default=())

    def target(self, name: str) -> Target | None:
        for target in self.targets:
            if target.name == name:
                return target
        return None

    def product(self, name: str) -> Product | None:
        for product in self.products:
            if product.name == name:
                return product
        return None

    def resolved_dependencies(self) -> tuple[DependencyDecl, ...]:
        """Dependency declarations with locations rebased on this package."""
        return tuple(dep.rebased(self.location) for dep in self.dependencies)

    @property
    def checksum(self) -> str:
        """SHA-256 of the canonical JSON form, as ``sha256:<hex>``."""
        canonical = json.dumps(self.to_dict(), sort_keys=True, separators=(",", ":"))
        return f"sha256:{hashlib.sha256(canonical.encode('utf-8')).hexdigest()}"

    def to_dict(self) -> dict[str, Any]:
        return {
            "identity": self.identity.value,
            "name": self.display_name,
            "location": self.location,
            "dependencies": [d.to_dict() for d in self.dependencies],
            "products": [p.to_dict() for p in self.products],
            "targets": [t.to_dict() for t in self.targets],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Manifest:
        """Build a manifest from its structured description.

        ``identity`` defaults to the identity derived from ``location``,
        falling back to ``name``.

        Raises:
            ValueError: If required fields are missing or malformed.
            KeyError: If a nested entry lacks a required key.
        """
        name = data.get("name")
        location = str(data.get("location", ""))
        identity = data.get("identity")
        if identity is not None:
            identity_obj = PackageIdentity(str(identity).lower())
        elif location:
            identity_obj = PackageIdentity.from_location(location)
        elif name:
            identity_obj = PackageIdentity(str(name).lower())
        else:
            raise ValueError("Manifest needs at least one of identity, location, or name")
        return cls(
            identity=identity_obj,
            display_name=str(name or identity_obj.value),
            location=location,
            dependencies=tuple(
                DependencyDecl.from_dict(d) for d in data.get("dependencies", [])
            ),
            products=tuple(Product.from_dict(p) for p in data.get("products", [])),
            targets=tuple(Target.from_dict(t) for t in data.get("targets", [])),
        )
