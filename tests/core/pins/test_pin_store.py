"""Tests for PinStore: load/save/invalidate and atomic writes."""

from __future__ import annotations

import asyncio
import os
from pathlib import Path

import pytest

from pkggraph.core.dependency import (
    BoundVersion,
    InMemoryFetcher,
    Manifest,
    PackageIdentity,
    Resolution,
    Version,
    VersionResolver,
)
from pkggraph.core.pins import DEFAULT_PIN_FILE, PinnedPackage, PinRecord, PinStore
from pkggraph.exceptions import PinStoreError


@pytest.fixture
def store(tmp_path: Path) -> PinStore:
    return PinStore(tmp_path / DEFAULT_PIN_FILE)


@pytest.fixture
def resolution(firmware_root: Manifest, firmware_fetcher: InMemoryFetcher) -> Resolution:
    result = asyncio.run(VersionResolver(firmware_fetcher).resolve([firmware_root]))
    assert result.success
    return result


def _record(*names: str) -> PinRecord:
    return PinRecord([
        PinnedPackage(PackageIdentity(n), f"/{n}", BoundVersion(version=Version(1)))
        for n in names
    ])


class TestLoad:
    """Reading never fails: absent or broken files yield an empty record."""

    def test_absent_file(self, store: PinStore) -> None:
        record = store.load()
        assert len(record) == 0
        assert not store.path.exists()

    def test_unreadable_json(self, store: PinStore) -> None:
        store.path.write_text("{not json", encoding="utf-8")
        assert len(store.load()) == 0

    def test_wrong_version(self, store: PinStore) -> None:
        store.path.write_text('{"version": 7, "pins": {}}', encoding="utf-8")
        assert len(store.load()) == 0

    def test_malformed_state(self, store: PinStore) -> None:
        store.path.write_text(
            '{"version": 1, "pins": {"a": {"state": {"version": "not-a-version"}}}}',
            encoding="utf-8",
        )
        assert len(store.load()) == 0

    def test_record_property_loads_lazily(self, store: PinStore) -> None:
        store.write(_record("a"))
        fresh = PinStore(store.path)
        assert [p.identity.value for p in fresh.record] == ["a"]


class TestSave:
    def test_save_writes_record(self, store: PinStore, resolution: Resolution) -> None:
        record = store.save(resolution)
        assert store.path.exists()
        assert PinStore(store.path).load() == record

    def test_save_is_idempotent(self, store: PinStore, resolution: Resolution) -> None:
        """Saving the same resolution twice leaves byte-identical content."""
        store.save(resolution)
        first = store.path.read_bytes()
        store.save(resolution)
        assert store.path.read_bytes() == first

    def test_save_failed_resolution_raises(self, store: PinStore) -> None:
        with pytest.raises(ValueError):
            store.save(Resolution(success=False))
        assert not store.path.exists()

    def test_creates_parent_directory(self, tmp_path: Path, resolution: Resolution) -> None:
        store = PinStore(tmp_path / "nested" / "dir" / DEFAULT_PIN_FILE)
        store.save(resolution)
        assert store.path.exists()


class TestAtomicWrite:
    def test_no_temporary_files_left(self, store: PinStore) -> None:
        store.write(_record("a"))
        store.write(_record("a", "b"))
        assert sorted(os.listdir(store.path.parent)) == [DEFAULT_PIN_FILE]

    def test_failed_replace_keeps_previous_record(
        self, store: PinStore, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        store.write(_record("a"))
        before = store.path.read_bytes()

        def _fail(src: str, dst: str) -> None:
            raise OSError("disk full")

        monkeypatch.setattr(os, "replace", _fail)
        with pytest.raises(PinStoreError, match="disk full"):
            store.write(_record("a", "b"))
        monkeypatch.undo()

        assert store.path.read_bytes() == before
        assert sorted(os.listdir(store.path.parent)) == [DEFAULT_PIN_FILE]

    def test_pin_store_error_is_os_error(self) -> None:
        assert issubclass(PinStoreError, OSError)


class TestInvalidate:
    def test_invalidate_persists(self, store: PinStore) -> None:
        store.write(_record("a", "b"))
        updated = store.invalidate(["a"])
        assert [p.identity.value for p in updated] == ["b"]
        assert [p.identity.value for p in PinStore(store.path).load()] == ["b"]

    def test_invalidate_is_case_insensitive(self, store: PinStore) -> None:
        store.write(_record("swift-syntax"))
        assert len(store.invalidate(["Swift-Syntax"])) == 0

    def test_invalidate_unknown_identity_is_noop(self, store: PinStore) -> None:
        store.write(_record("a"))
        before = store.path.stat().st_mtime_ns
        store.invalidate([PackageIdentity("ghost")])
        assert store.path.stat().st_mtime_ns == before

    def test_invalidate_without_file_does_not_create_one(self, store: PinStore) -> None:
        store.invalidate(["a"])
        assert not store.path.exists()
