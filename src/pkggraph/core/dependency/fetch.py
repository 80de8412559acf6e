"""Fetch collaborator protocol and the in-memory package index.

The resolver never talks to a registry or a source-control host directly.
It consumes a ``PackageFetcher``: given a package identity it lists the
available versions, and given a concrete state it returns the manifest.
Both calls are coroutines so that fetches for independent packages can be
awaited concurrently.

``InMemoryFetcher`` serves manifests from a mapping, optionally loaded from
a YAML or JSON package index file::

    packages:
      swift-syntax:
        versions:
          "1.0.0": {name: swift-syntax, location: /swift-syntax, ...}
        branches:
          main: {...}
        revisions:
          8f2c1e0: {...}
        local: {...}
"""

from __future__ import annotations

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, Protocol, Sequence, runtime_checkable

import yaml

from pkggraph.core.dependency.constraints import BoundVersion, Requirement, Version
from pkggraph.core.dependency.manifest import Manifest, PackageIdentity
from pkggraph.exceptions import ManifestLoadError

logger = logging.getLogger(__name__)


@runtime_checkable
class PackageFetcher(Protocol):
    """What the resolver needs from the outside world."""

    async def available_versions(
        self, identity: PackageIdentity, requirement: Requirement
    ) -> Sequence[Version]:
        """Return the versions of *identity* that exist, in ascending order.

        *requirement* is a hint; callers filter the result themselves.
        """
        ...

    async def load_manifest(
        self, identity: PackageIdentity, bound: BoundVersion
    ) -> Manifest:
        """Return the manifest of *identity* at state *bound*.

        Raises:
            ManifestLoadError: If the manifest cannot be obtained.
        """
        ...


class _PackageEntry:
    def __init__(self) -> None:
        self.versions: dict[Version, Manifest] = {}
        self.branches: dict[str, Manifest] = {}
        self.revisions: dict[str, Manifest] = {}
        self.local: Manifest | None = None


class InMemoryFetcher:
    """``PackageFetcher`` backed by manifests held in memory.

    Args:
        delays: Optional per-identity latency (seconds) applied to every
            call, for exercising out-of-order completion.
    """

    def __init__(self, delays: dict[str, float] | None = None) -> None:
        self._packages: dict[PackageIdentity, _PackageEntry] = {}
        self._delays = dict(delays or {})
        self.requests: list[tuple[str, str]] = []

    # -- Registration -------------------------------------------------------

    def _entry(self, identity: PackageIdentity) -> _PackageEntry:
        return self._packages.setdefault(identity, _PackageEntry())

    def add_version(self, version: Version | str, manifest: Manifest) -> None:
        self._entry(manifest.identity).versions[Version.parse(version)] = manifest

    def add_branch(self, branch: str, manifest: Manifest) -> None:
        self._entry(manifest.identity).branches[branch] = manifest

    def add_revision(self, revision: str, manifest: Manifest) -> None:
        self._entry(manifest.identity).revisions[revision] = manifest

    def add_local(self, manifest: Manifest) -> None:
        self._entry(manifest.identity).local = manifest

    @property
    def identities(self) -> list[PackageIdentity]:
        return sorted(self._packages)

    # -- PackageFetcher -----------------------------------------------------

    async def _wait(self, identity: PackageIdentity) -> None:
        delay = self._delays.get(identity.value)
        if delay:
            await asyncio.sleep(delay)

    async def available_versions(
        self, identity: PackageIdentity, requirement: Requirement
    ) -> Sequence[Version]:
        self.requests.append(("versions", identity.value))
        await self._wait(identity)
        entry = self._packages.get(identity)
        if entry is None:
            raise ManifestLoadError(identity, "package not found in index")
        return sorted(entry.versions)

    async def load_manifest(
        self, identity: PackageIdentity, bound: BoundVersion
    ) -> Manifest:
        self.requests.append(("manifest", f"{identity.value}@{bound}"))
        await self._wait(identity)
        entry = self._packages.get(identity)
        if entry is None:
            raise ManifestLoadError(identity, "package not found in index")

        manifest: Manifest | None
        if bound.version is not None:
            manifest = entry.versions.get(bound.version)
        elif bound.branch is not None:
            manifest = entry.branches.get(bound.branch)
        elif bound.revision is not None:
            manifest = entry.revisions.get(bound.revision)
        else:
            manifest = entry.local
        if manifest is None:
            raise ManifestLoadError(identity, f"no manifest for state {bound}")
        return manifest

    # -- Index files --------------------------------------------------------

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> InMemoryFetcher:
        """Build a fetcher from a parsed package index.

        Raises:
            ValueError: If an entry is malformed.
        """
        fetcher = cls()
        for name, entry in (data.get("packages") or {}).items():
            identity = PackageIdentity(str(name).lower())

            def _load(raw: dict[str, Any]) -> Manifest:
                raw = dict(raw)
                raw.setdefault("identity", identity.value)
                return Manifest.from_dict(raw)

            for version, raw in (entry.get("versions") or {}).items():
                fetcher.add_version(str(version), _load(raw))
            for branch, raw in (entry.get("branches") or {}).items():
                fetcher.add_branch(str(branch), _load(raw))
            for revision, raw in (entry.get("revisions") or {}).items():
                fetcher.add_revision(str(revision), _load(raw))
            if entry.get("local"):
                fetcher.add_local(_load(entry["local"]))
        logger.debug("Loaded package index with %d packages", len(fetcher._packages))
        return fetcher

    @classmethod
    def from_index(cls, path: Path) -> InMemoryFetcher:
        """Load a package index from a YAML or JSON file.

        Raises:
            FileNotFoundError: If *path* does not exist.
            ValueError: If the file is not a valid index.
        """
        return cls.from_dict(load_document(path))


def load_document(path: Path) -> dict[str, Any]:
    """Read a YAML (or JSON) document and return its top-level mapping.

    Raises:
        FileNotFoundError: If *path* does not exist.
        ValueError: If the file cannot be parsed or is not a mapping.
    """
    text = path.read_text(encoding="utf-8")
    try:
        if path.suffix == ".json":
            data = json.loads(text)
        else:
            data = yaml.safe_load(text)
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Cannot parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"{path} does not contain a mapping")
    return data
