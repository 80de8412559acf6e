"""Requirement model, manifest model, fetch protocol, and version resolution.

All public names are re-exported here so callers can write
``from pkggraph.core.dependency import VersionResolver``.

Import order matters: ``manifest`` depends on ``constraints``, ``fetch``
on both, and ``resolver`` on all three.
"""

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
    is_interval,
    parse_requirement,
    requirement_to_dict,
    span_in_majors,
)
from pkggraph.core.dependency.manifest import (
    ByNameReference,
    DependencyDecl,
    Manifest,
    PackageIdentity,
    Product,
    ProductKind,
    ProductReference,
    Target,
    TargetDependency,
    TargetKind,
    TargetReference,
)
from pkggraph.core.dependency.fetch import (
    InMemoryFetcher,
    PackageFetcher,
    load_document,
)
from pkggraph.core.dependency.resolver import (
    Resolution,
    ResolvedPackage,
    ResolvedSet,
    ResolverOptions,
    VersionResolver,
)

__all__ = [
    "BoundVersion",
    "BranchRequirement",
    "ByNameReference",
    "DependencyDecl",
    "ExactRequirement",
    "InMemoryFetcher",
    "LocalRequirement",
    "Manifest",
    "PackageFetcher",
    "PackageIdentity",
    "Product",
    "ProductKind",
    "ProductReference",
    "RangeRequirement",
    "Requirement",
    "Resolution",
    "ResolvedPackage",
    "ResolvedSet",
    "ResolverOptions",
    "RevisionRequirement",
    "Target",
    "TargetDependency",
    "TargetKind",
    "TargetReference",
    "Version",
    "VersionResolver",
    "allows",
    "allows_version",
    "intersect",
    "is_interval",
    "load_document",
    "parse_requirement",
    "requirement_to_dict",
    "span_in_majors",
]
