"""Pin store --- durable record of the last successful resolution.

The package is split into focused submodules:

- ``models``: ``PinnedPackage`` and the checksum format.
- ``record``: the ``PinRecord`` class with pin management and deterministic
  serialization.
- ``operations``: deserialization (``from_dict``, ``from_json``, ``read``),
  validation, and diffing.
- ``factory``: ``from_resolution``, building a record from a resolution.
- ``store``: ``PinStore``, with ``load``/``save``/``invalidate`` and atomic
  writes.
"""

from pkggraph.core.pins.models import PIN_RECORD_VERSION, PinnedPackage
from pkggraph.core.pins.record import PinRecord, root_requirements

# Attach operations to PinRecord as methods/classmethods
from pkggraph.core.pins import operations as _ops
from pkggraph.core.pins import factory as _factory

PinRecord.from_dict = classmethod(_ops._from_dict)
PinRecord.from_json = classmethod(_ops._from_json)
PinRecord.read = classmethod(_ops._read)
PinRecord.validate = _ops._validate
PinRecord.diff = _ops._diff
PinRecord.from_resolution = classmethod(_factory._from_resolution)

from pkggraph.core.pins.store import DEFAULT_PIN_FILE, PinStore  # noqa: E402

__all__ = [
    "DEFAULT_PIN_FILE",
    "PIN_RECORD_VERSION",
    "PinRecord",
    "PinStore",
    "PinnedPackage",
    "root_requirements",
]
