"""Pin record factory: constructing a record from a resolution result.

The normal workflow::

    resolution = await VersionResolver(fetcher, store.load()).resolve(roots)
    if resolution.success:
        store.save(resolution)   # uses PinRecord.from_resolution
"""

from __future__ import annotations

from typing import Any

from pkggraph.core.pins.models import PinnedPackage
from pkggraph.core.pins.record import root_requirements


def _from_resolution(cls: type, resolution: Any) -> Any:
    """Create a pin record from a successful ``Resolution``.

    Roots and local packages are not pinned: they are always used as found
    on disk.

    Raises:
        ValueError: If the resolution was not successful.
    """
    if not resolution.success:
        raise ValueError(
            "Cannot create pin record from failed resolution. "
            f"Conflicts: {resolution.conflicts}"
        )

    pins = []
    for identity, pkg in resolution.packages.items():
        if pkg.is_root or pkg.bound.kind == "local":
            continue
        pins.append(
            PinnedPackage(
                identity=identity,
                location=pkg.manifest.location,
                state=pkg.bound,
                checksum=pkg.manifest.checksum,
            )
        )
    roots = [pkg.manifest for pkg in resolution.packages.roots]
    return cls(pins, root_requirements(roots))
