"""Pin record operations: deserialization, validation, and diffing.

These are attached to the ``PinRecord`` class at import time (in
``__init__.py``) to keep each source file focused while presenting a single
unified API to callers.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pkggraph.core.dependency import BoundVersion, PackageIdentity
from pkggraph.core.pins.models import _CHECKSUM_RE, PIN_RECORD_VERSION, PinnedPackage


def _from_dict(cls: type, data: dict[str, Any]) -> Any:
    """Deserialize a pin record from a dict (parsed JSON).

    Raises:
        ValueError: If the record version is unsupported or a state is
            malformed.
    """
    version = data.get("version", PIN_RECORD_VERSION)
    if version != PIN_RECORD_VERSION:
        raise ValueError(f"Unsupported pin record version: {version!r}")

    pins = []
    for name, entry in (data.get("pins") or {}).items():
        pins.append(
            PinnedPackage(
                identity=PackageIdentity(name),
                location=entry.get("location", ""),
                state=BoundVersion.from_dict(entry.get("state", {})),
                checksum=entry.get("checksum", ""),
            )
        )
    return cls(pins, data.get("roots") or {})


def _from_json(cls: type, json_str: str) -> Any:
    """Deserialize from a JSON string.

    Raises:
        json.JSONDecodeError: If the string is not valid JSON.
    """
    data = json.loads(json_str)
    if not isinstance(data, dict):
        raise ValueError("Pin record must be a JSON object")
    return cls.from_dict(data)


def _read(cls: type, path: Path) -> Any:
    """Read a pin record from disk.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the file is not a valid pin record.
    """
    return cls.from_json(path.read_text(encoding="utf-8"))


def _validate(self: Any) -> list[str]:
    """Check the record for internal consistency.

    1. Every pin has exactly one primary state (version, branch, revision).
    2. Local states are never pinned.
    3. Every checksum matches ``sha256:<64-hex-chars>``.

    Returns:
        List of validation error messages. Empty means valid.
    """
    errors: list[str] = []
    for pin in self:
        state = pin.state
        primaries = [
            x for x in (state.version, state.branch) if x is not None
        ]
        if state.branch is None and state.revision is not None:
            primaries.append(state.revision)
        if len(primaries) != 1:
            errors.append(f"Pin {pin.identity} has an ambiguous or empty state: {state.to_dict()}")
        if state.path is not None:
            errors.append(f"Pin {pin.identity} pins a local package")
        if pin.checksum and not _CHECKSUM_RE.match(pin.checksum):
            errors.append(f"Pin {pin.identity} has invalid checksum format: {pin.checksum!r}")
    return errors


def _diff(self: Any, other: Any) -> dict[str, Any]:
    """Compare two records.

    - **added**: identities pinned in ``other`` but not in ``self``.
    - **removed**: identities pinned in ``self`` but not in ``other``.
    - **changed**: identities pinned in both with a different state or
      checksum.

    Returns:
        Dict with keys 'added', 'removed', 'changed'.
    """
    mine = {p.identity: p for p in self}
    theirs = {p.identity: p for p in other}

    changes: list[dict[str, Any]] = []
    for identity in sorted(set(mine) & set(theirs)):
        old, new = mine[identity], theirs[identity]
        if old.state != new.state:
            changes.append({
                "identity": identity.value,
                "field": "state",
                "old": str(old.state),
                "new": str(new.state),
            })
        if old.checksum != new.checksum:
            changes.append({
                "identity": identity.value,
                "field": "checksum",
                "old": old.checksum,
                "new": new.checksum,
            })

    return {
        "added": sorted(i.value for i in set(theirs) - set(mine)),
        "removed": sorted(i.value for i in set(mine) - set(theirs)),
        "changed": changes,
    }
