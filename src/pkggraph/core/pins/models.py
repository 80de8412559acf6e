"""Pin record data models.

Pure data holders with no business logic, safe to import from anywhere in
the pins package without circular-dependency concerns.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from pkggraph.core.dependency import BoundVersion, PackageIdentity

# ---------------------------------------------------------------------------
# Checksum format: "sha256:<64-hex-characters>"
# ---------------------------------------------------------------------------

_CHECKSUM_RE = re.compile(r"^sha256:[0-9a-f]{64}$")

PIN_RECORD_VERSION: int = 1


@dataclass(frozen=True)
class PinnedPackage:
    """A single pin: the state a package was resolved to last time.

    Attributes:
        identity: The pinned package.
        location: Where the package came from.
        state: Version, branch, or revision it was bound to.
        checksum: Manifest content checksum, ``sha256:<hex>``.
    """

    identity: PackageIdentity
    location: str
    state: BoundVersion
    checksum: str = ""
