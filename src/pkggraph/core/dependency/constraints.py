"""Versions, dependency requirements, and requirement intersection.

This module provides the value types used to express a constraint on a
package version and the total order over versions needed to evaluate them.

Requirements form a closed set of variants:

- ``ExactRequirement(v)``: exactly version ``v``.
- ``RangeRequirement(lower, upper)``: the half-open interval ``[lower, upper)``.
- ``BranchRequirement(name)``: the tip of a source-control branch.
- ``RevisionRequirement(revision)``: a specific source-control revision.
- ``LocalRequirement(path)``: an on-disk package, used as-is.

Exact and range requirements are *interval* requirements and combine by set
intersection. The other three are not interval-based: two of them are
compatible only when they are equal.

References
----------
.. [SemVer] Preston-Werner, T. (2013). "Semantic Versioning 2.0.0."
   https://semver.org/
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Union


# ---------------------------------------------------------------------------
# Version: totally ordered semantic version
# ---------------------------------------------------------------------------

_SEMVER_RE = re.compile(
    r"^v?(?P<major>0|[1-9]\d*)(?:\.(?P<minor>0|[1-9]\d*))?(?:\.(?P<patch>0|[1-9]\d*))?"
    r"(?:-(?P<pre>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z\-.]+))?$"
)


def _prerelease_key(identifiers: tuple[str, ...]) -> tuple:
    # SemVer 2.0.0 section 11: a version without prerelease sorts after
    # every prerelease of the same triple; numeric identifiers sort before
    # alphanumeric ones and compare numerically.
    if not identifiers:
        return (1,)
    parts = tuple(
        (0, int(ident), "") if ident.isdigit() else (1, 0, ident)
        for ident in identifiers
    )
    return (0, parts)


@dataclass(frozen=True)
class Version:
    """A semantic version ``major.minor.patch[-prerelease]``.

    Versions are compared on ``(major, minor, patch)`` first; a prerelease
    version orders strictly before the same triple without a prerelease tag.
    Build metadata is not part of the version's identity.
    """

    major: int
    minor: int = 0
    patch: int = 0
    prerelease: tuple[str, ...] = ()

    @classmethod
    def parse(cls, text: str | Version) -> Version:
        """Parse ``"1.2.3"``, ``"1.2"``, ``"v2"``, or ``"1.0.0-beta.1+build"``.

        Raises:
            ValueError: If *text* is not a valid version.
        """
        if isinstance(text, Version):
            return text
        m = _SEMVER_RE.match(str(text).strip())
        if not m:
            raise ValueError(f"Invalid semantic version: {text!r}")
        pre = m.group("pre")
        return cls(
            int(m.group("major")),
            int(m.group("minor") or 0),
            int(m.group("patch") or 0),
            tuple(pre.split(".")) if pre else (),
        )

    @property
    def sort_key(self) -> tuple:
        return (self.major, self.minor, self.patch, _prerelease_key(self.prerelease))

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def next_major(self) -> Version:
        return Version(self.major + 1, 0, 0)

    def next_minor(self) -> Version:
        return Version(self.major, self.minor + 1, 0)

    def __lt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key < other.sort_key

    def __le__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key <= other.sort_key

    def __gt__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key > other.sort_key

    def __ge__(self, other: Version) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self.sort_key >= other.sort_key

    def __str__(self) -> str:
        core = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            return f"{core}-{'.'.join(self.prerelease)}"
        return core

    def __repr__(self) -> str:
        return f"Version({str(self)!r})"


# ---------------------------------------------------------------------------
# BoundVersion: the concrete state a package was resolved to
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BoundVersion:
    """Concrete state of a resolved package.

    Exactly one of ``version``, ``branch``, ``revision`` or ``path`` is the
    primary key of the state. A branch state may additionally record the
    revision the branch pointed at when it was resolved.
    """

    version: Version | None = None
    branch: str | None = None
    revision: str | None = None
    path: str | None = None

    @property
    def kind(self) -> str:
        if self.version is not None:
            return "version"
        if self.branch is not None:
            return "branch"
        if self.revision is not None:
            return "revision"
        return "local"

    def to_dict(self) -> dict[str, str]:
        data: dict[str, str] = {}
        if self.version is not None:
            data["version"] = str(self.version)
        if self.branch is not None:
            data["branch"] = self.branch
        if self.revision is not None:
            data["revision"] = self.revision
        if self.path is not None:
            data["path"] = self.path
        return data

    @classmethod
    def from_dict(cls, data: dict[str, str]) -> BoundVersion:
        version = data.get("version")
        return cls(
            version=Version.parse(version) if version else None,
            branch=data.get("branch"),
            revision=data.get("revision"),
            path=data.get("path"),
        )

    def __str__(self) -> str:
        if self.version is not None:
            return str(self.version)
        if self.branch is not None:
            if self.revision:
                return f"{self.branch}@{self.revision[:12]}"
            return self.branch
        if self.revision is not None:
            return self.revision
        return f"local({self.path})"


# ---------------------------------------------------------------------------
# Requirement variants
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExactRequirement:
    """Exactly one version."""

    version: Version

    def __str__(self) -> str:
        return f"=={self.version}"


@dataclass(frozen=True)
class RangeRequirement:
    """Half-open interval ``[lower, upper)``.

    ``upper`` of None means unbounded above.
    """

    lower: Version
    upper: Version | None = None

    @classmethod
    def up_to_next_major(cls, version: Version | str) -> RangeRequirement:
        """``[v, (v.major+1).0.0)``."""
        v = Version.parse(version)
        return cls(v, v.next_major())

    @classmethod
    def up_to_next_minor(cls, version: Version | str) -> RangeRequirement:
        """``[v, v.major.(v.minor+1).0)``."""
        v = Version.parse(version)
        return cls(v, v.next_minor())

    @property
    def is_empty(self) -> bool:
        return self.upper is not None and self.lower >= self.upper

    def contains(self, version: Version) -> bool:
        """Membership test.

        Prerelease versions are only members when a bound is itself a
        prerelease, and never when they share the upper bound's release
        triple (``2.0.0-beta`` is not in ``[1.0.0, 2.0.0)``).
        """
        if version.is_prerelease:
            upper = self.upper
            if not self.lower.is_prerelease and (upper is None or not upper.is_prerelease):
                return False
            if (
                upper is not None
                and not upper.is_prerelease
                and (version.major, version.minor, version.patch)
                == (upper.major, upper.minor, upper.patch)
            ):
                return False
        if version < self.lower:
            return False
        return self.upper is None or version < self.upper

    def __str__(self) -> str:
        upper = str(self.upper) if self.upper is not None else "*"
        return f"[{self.lower}, {upper})"


@dataclass(frozen=True)
class BranchRequirement:
    """Tip of a named source-control branch."""

    name: str

    def __str__(self) -> str:
        return f"branch {self.name}"


@dataclass(frozen=True)
class RevisionRequirement:
    """A specific source-control revision."""

    revision: str

    def __str__(self) -> str:
        return f"revision {self.revision}"


@dataclass(frozen=True)
class LocalRequirement:
    """An on-disk package at *path*, used without version selection."""

    path: str

    def __str__(self) -> str:
        return f"local {self.path}"


Requirement = Union[
    ExactRequirement,
    RangeRequirement,
    BranchRequirement,
    RevisionRequirement,
    LocalRequirement,
]

_INTERVAL_KINDS = (ExactRequirement, RangeRequirement)
_OPAQUE_KINDS = (BranchRequirement, RevisionRequirement, LocalRequirement)


def _check_kind(requirement: object) -> None:
    if not isinstance(requirement, _INTERVAL_KINDS + _OPAQUE_KINDS):
        raise TypeError(f"Unknown requirement kind: {type(requirement).__name__}")


def is_interval(requirement: Requirement) -> bool:
    """Return True for requirements that denote a set of versions."""
    _check_kind(requirement)
    return isinstance(requirement, _INTERVAL_KINDS)


def intersect(a: Requirement, b: Requirement) -> Requirement | None:
    """Intersect two requirements on the same package.

    Pure function over the closed set of requirement kinds.

    Returns:
        The requirement denoting the intersection of the two version sets,
        or None if the intersection is empty (a conflict).

    Raises:
        TypeError: If either argument is not a known requirement kind.
    """
    _check_kind(a)
    _check_kind(b)

    if isinstance(a, _OPAQUE_KINDS) or isinstance(b, _OPAQUE_KINDS):
        return a if a == b else None

    if isinstance(a, ExactRequirement):
        if isinstance(b, ExactRequirement):
            return a if a.version == b.version else None
        return a if b.contains(a.version) else None

    if isinstance(b, ExactRequirement):
        return b if a.contains(b.version) else None

    lower = max(a.lower, b.lower)
    if a.upper is None:
        upper = b.upper
    elif b.upper is None:
        upper = a.upper
    else:
        upper = min(a.upper, b.upper)
    result = RangeRequirement(lower, upper)
    return None if result.is_empty else result


def allows(requirement: Requirement, bound: BoundVersion) -> bool:
    """Return True if the concrete state *bound* satisfies *requirement*."""
    _check_kind(requirement)
    if isinstance(requirement, ExactRequirement):
        return bound.version == requirement.version
    if isinstance(requirement, RangeRequirement):
        return bound.version is not None and requirement.contains(bound.version)
    if isinstance(requirement, BranchRequirement):
        return bound.branch == requirement.name
    if isinstance(requirement, RevisionRequirement):
        return bound.branch is None and bound.revision == requirement.revision
    return bound.path == requirement.path


def allows_version(requirement: Requirement, version: Version) -> bool:
    """Return True if *version* is in the set denoted by an interval requirement."""
    return is_interval(requirement) and allows(requirement, BoundVersion(version=version))


def span_in_majors(requirement: Requirement) -> int | None:
    """Number of major versions a range covers, or None if unbounded/not a range."""
    if isinstance(requirement, RangeRequirement) and requirement.upper is not None:
        upper = requirement.upper
        majors = upper.major - requirement.lower.major
        if upper.minor == 0 and upper.patch == 0 and not upper.prerelease:
            return majors
        return majors + 1
    return None


def parse_requirement(spec: object) -> Requirement:
    """Build a requirement from its structured description.

    Accepted forms (as produced by ``requirement_to_dict``)::

        {"exact": "1.2.3"}
        {"range": ["1.0.0", "2.0.0"]}        # upper may be null
        {"upToNextMajor": "1.0.0"}
        {"upToNextMinor": "1.2.0"}
        {"branch": "main"}
        {"revision": "abc123"}
        {"local": "../other"}

    A bare version string is shorthand for ``upToNextMajor``.

    Raises:
        ValueError: If the description is not recognised.
    """
    if isinstance(spec, str):
        return RangeRequirement.up_to_next_major(spec)
    if not isinstance(spec, dict) or len(spec) != 1:
        raise ValueError(f"Invalid requirement description: {spec!r}")
    ((key, value),) = spec.items()
    if key == "exact":
        return ExactRequirement(Version.parse(value))
    if key == "range":
        lower, upper = value
        return RangeRequirement(
            Version.parse(lower), Version.parse(upper) if upper is not None else None
        )
    if key == "upToNextMajor":
        return RangeRequirement.up_to_next_major(value)
    if key == "upToNextMinor":
        return RangeRequirement.up_to_next_minor(value)
    if key == "branch":
        return BranchRequirement(str(value))
    if key == "revision":
        return RevisionRequirement(str(value))
    if key == "local":
        return LocalRequirement(str(value))
    raise ValueError(f"Unknown requirement kind: {key!r}")


def requirement_to_dict(requirement: Requirement) -> dict[str, object]:
    """Inverse of ``parse_requirement``."""
    _check_kind(requirement)
    if isinstance(requirement, ExactRequirement):
        return {"exact": str(requirement.version)}
    if isinstance(requirement, RangeRequirement):
        upper = str(requirement.upper) if requirement.upper is not None else None
        return {"range": [str(requirement.lower), upper]}
    if isinstance(requirement, BranchRequirement):
        return {"branch": requirement.name}
    if isinstance(requirement, RevisionRequirement):
        return {"revision": requirement.revision}
    return {"local": requirement.path}
