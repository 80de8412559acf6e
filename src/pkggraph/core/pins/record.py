"""PinRecord core class: pin management and deterministic serialization.

The ``PinRecord`` is the in-memory form of ``pkggraph-pins.json``. It
holds one ``PinnedPackage`` per resolved, non-local package plus the
requirements that the root packages declared at the time, which later
runs use to tell which pins were invalidated by a manifest edit.

Determinism guarantee: ``to_json()`` produces byte-identical output for
equal content. Pins and keys are sorted and no timestamp is written, so
re-running an unchanged resolution leaves the file untouched in content.
"""

from __future__ import annotations

import json
from typing import Any, Iterator, Sequence

from pkggraph.core.dependency import (
    Manifest,
    PackageIdentity,
    requirement_to_dict,
)
from pkggraph.core.pins.models import PIN_RECORD_VERSION, PinnedPackage


def root_requirements(roots: Sequence[Manifest]) -> dict[str, list[dict[str, Any]]]:
    """Requirements declared by *roots*, keyed by dependency identity."""
    declared: dict[str, list[dict[str, Any]]] = {}
    for root in roots:
        for decl in root.resolved_dependencies():
            declared.setdefault(decl.identity.value, []).append(
                requirement_to_dict(decl.requirement)
            )
    return declared


class PinRecord:
    """Record of the last successful resolution.

    Example::

        record = PinRecord()
        record.add_pin(PinnedPackage(
            identity=PackageIdentity("swift-mmio"),
            location="/swift-mmio",
            state=BoundVersion(version=Version(1, 0, 0)),
            checksum="sha256:abcd...",
        ))
        record.to_json()
    """

    def __init__(
        self,
        pins: Sequence[PinnedPackage] = (),
        roots: dict[str, list[dict[str, Any]]] | None = None,
    ) -> None:
        self._pins: dict[PackageIdentity, PinnedPackage] = {}
        for pin in pins:
            self._pins[pin.identity] = pin
        self._roots: dict[str, list[dict[str, Any]]] = dict(roots or {})

    # -- Pin management -----------------------------------------------------

    def add_pin(self, pin: PinnedPackage) -> None:
        """Add a pin, replacing any pin with the same identity."""
        self._pins[pin.identity] = pin

    def get(self, identity: PackageIdentity | str) -> PinnedPackage | None:
        if isinstance(identity, str):
            identity = PackageIdentity(identity.lower())
        return self._pins.get(identity)

    def __contains__(self, identity: object) -> bool:
        return identity in self._pins

    def __iter__(self) -> Iterator[PinnedPackage]:
        return (self._pins[k] for k in sorted(self._pins))

    def __len__(self) -> int:
        return len(self._pins)

    @property
    def identities(self) -> list[PackageIdentity]:
        return sorted(self._pins)

    @property
    def roots(self) -> dict[str, list[dict[str, Any]]]:
        """Root-declared requirements at the time of the last success."""
        return {k: list(v) for k, v in self._roots.items()}

    def without(self, identities: set[PackageIdentity]) -> PinRecord:
        """Return a copy with the pins for *identities* removed."""
        return PinRecord(
            [pin for pin in self if pin.identity not in identities],
            self._roots,
        )

    def stale_identities(self, roots: Sequence[Manifest]) -> set[PackageIdentity]:
        """Identities whose root-declared requirements changed since this record.

        Covers edited, added, and removed root declarations.
        """
        current = root_requirements(roots)
        changed = {
            name
            for name in set(current) | set(self._roots)
            if current.get(name) != self._roots.get(name)
        }
        return {PackageIdentity(name) for name in changed}

    # -- Serialization ------------------------------------------------------

    def to_dict(self) -> dict[str, Any]:
        pins: dict[str, Any] = {}
        for pin in self:
            entry: dict[str, Any] = {
                "location": pin.location,
                "state": pin.state.to_dict(),
            }
            if pin.checksum:
                entry["checksum"] = pin.checksum
            pins[pin.identity.value] = entry
        return {
            "version": PIN_RECORD_VERSION,
            "pins": pins,
            "roots": {k: self._roots[k] for k in sorted(self._roots)},
        }

    def to_json(self, indent: int = 2) -> str:
        """Deterministic JSON form, newline-terminated."""
        return json.dumps(self.to_dict(), indent=indent, sort_keys=True) + "\n"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, PinRecord):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    def __repr__(self) -> str:
        return f"PinRecord({', '.join(f'{p.identity}@{p.state}' for p in self)})"
