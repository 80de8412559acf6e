"""Durable pin store with atomic replace semantics.

The store is an explicit object injected into a session; there is no
process-wide pin state. Its lifecycle is ``load`` once at session start,
optionally ``invalidate`` entries whose root requirements changed, and
``save`` after a successful resolution only.

Writes go to a temporary file in the destination directory which is then
renamed over the record with ``os.replace``, so a crash or abort mid-write
leaves the previous record intact.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Iterable

from pkggraph.core.dependency import PackageIdentity
from pkggraph.core.pins.record import PinRecord
from pkggraph.exceptions import PinStoreError

logger = logging.getLogger(__name__)

DEFAULT_PIN_FILE = "pkggraph-pins.json"


class PinStore:
    """Reads and writes the pin record at *path*."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._record: PinRecord | None = None

    @property
    def path(self) -> Path:
        return self._path

    @property
    def record(self) -> PinRecord:
        """The loaded record (loading it on first access)."""
        if self._record is None:
            return self.load()
        return self._record

    def load(self) -> PinRecord:
        """Read the pin record.

        An absent or unreadable file yields an empty record: resolution
        then proceeds unconstrained by pins.

        Returns:
            The loaded ``PinRecord``.
        """
        if not self._path.exists():
            logger.debug("No pin record at %s", self._path)
            self._record = PinRecord()
            return self._record
        try:
            self._record = PinRecord.read(self._path)
        except (OSError, UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError):
            logger.warning("Ignoring unreadable pin record: %s", self._path, exc_info=True)
            self._record = PinRecord()
        return self._record

    def save(self, resolution: Any) -> PinRecord:
        """Persist a successful resolution as the new pin baseline.

        Returns:
            The written ``PinRecord``.

        Raises:
            ValueError: If the resolution was not successful.
            PinStoreError: If the record cannot be written.
        """
        record = PinRecord.from_resolution(resolution)
        self.write(record)
        return record

    def invalidate(self, identities: Iterable[PackageIdentity | str]) -> PinRecord:
        """Drop the pins for *identities* so they are re-resolved next run.

        Pins for other identities remain valid hints. The change is
        persisted if a record file exists.

        Returns:
            The updated ``PinRecord``.

        Raises:
            PinStoreError: If the updated record cannot be written.
        """
        targets = {
            i if isinstance(i, PackageIdentity) else PackageIdentity(str(i).lower())
            for i in identities
        }
        record = self.record
        dropped = sorted(i.value for i in targets if i in record)
        updated = record.without(targets)
        if dropped:
            logger.info("Invalidated pins: %s", ", ".join(dropped))
            if self._path.exists():
                self.write(updated)
        self._record = updated
        return updated

    def write(self, record: PinRecord) -> None:
        """Atomically replace the record file with *record*.

        Raises:
            PinStoreError: On any filesystem failure.
        """
        data = record.to_json().encode("utf-8")
        directory = self._path.parent
        tmp_name: str | None = None
        try:
            directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=directory
            )
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
        except OSError as exc:
            raise PinStoreError(f"cannot write pin record {self._path}: {exc}") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.debug("Could not remove temporary file %s", tmp_name)
        self._record = record
        logger.info("Wrote %d pins to %s", len(record), self._path)
