"""Tests for the resolve-and-build session.

Validates the end-to-end flow (pins -> resolution -> graph -> pins), that
pins are written only on full success, that stale pins are ignored but not
erased on failure, and that aborted sessions leave the record untouched.
"""

from __future__ import annotations

import asyncio
import copy
import json
from pathlib import Path

import pytest

from pkggraph.core.dependency import InMemoryFetcher, Manifest
from pkggraph.core.diagnostics import DiagnosticsScope, Severity
from pkggraph.core.pins import DEFAULT_PIN_FILE, PinStore
from pkggraph.core.session import (
    SessionResult,
    resolve_and_build_graph,
    resolve_and_build_graph_sync,
)
from pkggraph.exceptions import ManifestLoadError, PinStoreError


@pytest.fixture
def store(tmp_path: Path) -> PinStore:
    return PinStore(tmp_path / DEFAULT_PIN_FILE)


def _with_requirement(root: Manifest, requirement: dict) -> Manifest:
    data = copy.deepcopy(root.to_dict())
    data["dependencies"][0]["requirement"] = requirement
    return Manifest.from_dict(data)


class TestSuccessfulSession:
    def test_graph_and_pins(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
    ) -> None:
        result = resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        assert result.success
        assert result.graph is not None
        assert len(result.graph) == 8
        assert result.pins is not None
        assert [p.identity.value for p in result.pins] == ["mmio", "swift-syntax"]
        assert store.path.exists()

    def test_pin_changes_on_first_run(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
    ) -> None:
        result = resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        assert result.pin_changes == {
            "added": ["mmio", "swift-syntax"],
            "removed": [],
            "changed": [],
        }

    def test_second_run_is_byte_identical(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
    ) -> None:
        resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        first = store.path.read_bytes()
        result = resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        assert store.path.read_bytes() == first
        assert result.pin_changes == {"added": [], "removed": [], "changed": []}

    def test_without_pin_store(
        self, firmware_root: Manifest, firmware_fetcher: InMemoryFetcher
    ) -> None:
        result = resolve_and_build_graph_sync([firmware_root], firmware_fetcher)
        assert result.success
        assert result.pins is None
        assert result.pin_changes is None

    def test_read_only_session(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
    ) -> None:
        result = resolve_and_build_graph_sync(
            [firmware_root], firmware_fetcher, store, save_pins=False
        )
        assert result.success
        assert not store.path.exists()

    def test_async_entry_point(
        self, firmware_root: Manifest, firmware_fetcher: InMemoryFetcher
    ) -> None:
        result = asyncio.run(resolve_and_build_graph([firmware_root], firmware_fetcher))
        assert isinstance(result, SessionResult)
        assert result.success


class TestPinsAcrossRuns:
    def test_existing_pin_is_kept(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
    ) -> None:
        """A newer satisfying release does not displace a valid pin."""
        first = resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        mmio = first.resolution.packages.get_by_name("mmio").manifest
        firmware_fetcher.add_version("1.3.0", mmio)
        result = resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        assert result.resolution.installed["mmio"] == "1.2.0"

    def test_edited_root_requirement_invalidates_pin(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
        diagnostics: DiagnosticsScope,
    ) -> None:
        resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        edited = _with_requirement(firmware_root, {"exact": "1.0.0"})
        result = resolve_and_build_graph_sync([edited], firmware_fetcher, store, diagnostics)
        assert result.success
        assert result.resolution.installed["mmio"] == "1.0.0"
        notes = [d for d in diagnostics.entries if d.severity is Severity.INFO]
        assert any(d.package == "mmio" and "pin ignored" in d.message for d in notes)

    def test_failure_does_not_touch_pins(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
    ) -> None:
        resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        before = store.path.read_bytes()

        broken = _with_requirement(firmware_root, {"exact": "9.0.0"})
        result = resolve_and_build_graph_sync([broken], firmware_fetcher, store)
        assert not result.success
        assert result.graph is None
        assert result.pins is None
        assert store.path.read_bytes() == before

    def test_graph_failure_does_not_touch_pins(
        self, firmware_fetcher: InMemoryFetcher, store: PinStore
    ) -> None:
        root = Manifest.from_dict({
            "name": "firmware",
            "location": "/firmware",
            "dependencies": [{"location": "/mmio", "requirement": "1.0.0"}],
            "targets": [{"name": "Core", "dependencies": [{"product": "Nope", "package": "mmio"}]}],
        })
        result = resolve_and_build_graph_sync([root], firmware_fetcher, store)
        assert result.resolution.success
        assert result.graph is None
        assert not result.success
        assert not store.path.exists()


class TestFailureModes:
    def test_pin_write_failure_is_a_diagnostic(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        def _fail(self: PinStore, record: object) -> None:
            raise PinStoreError("read-only file system")

        monkeypatch.setattr(PinStore, "write", _fail)
        result = resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        assert result.graph is not None
        assert not result.success
        assert any(isinstance(d.error, PinStoreError) for d in result.diagnostics.errors())

    def test_cancelled_session_records_warning(
        self,
        firmware_root: Manifest,
        store: PinStore,
        diagnostics: DiagnosticsScope,
    ) -> None:
        fetcher = InMemoryFetcher(delays={"mmio": 10.0})
        fetcher.add_version(
            "1.0.0", Manifest.from_dict({"name": "mmio", "location": "/mmio"})
        )

        async def _run() -> None:
            task = asyncio.create_task(
                resolve_and_build_graph([firmware_root], fetcher, store, diagnostics)
            )
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(_run())
        assert any("aborted" in d.message for d in diagnostics.entries)
        assert not store.path.exists()

    def test_cancelled_session_keeps_errors_found_so_far(
        self, store: PinStore, diagnostics: DiagnosticsScope
    ) -> None:
        """ghost fails in the first wave; the session is cancelled while slow loads."""
        fetcher = InMemoryFetcher(delays={"slow": 10.0})
        fetcher.add_version("1.0.0", Manifest.from_dict({
            "name": "a",
            "location": "/a",
            "dependencies": [{"location": "/slow", "requirement": "1.0.0"}],
        }))
        fetcher.add_version("1.0.0", Manifest.from_dict({"name": "slow", "location": "/slow"}))
        root = Manifest.from_dict({
            "name": "app",
            "location": "/app",
            "dependencies": [
                {"location": "/ghost", "requirement": "1.0.0"},
                {"location": "/a", "requirement": "1.0.0"},
            ],
        })

        async def _run() -> None:
            task = asyncio.create_task(
                resolve_and_build_graph([root], fetcher, store, diagnostics)
            )
            await asyncio.sleep(0.05)
            task.cancel()
            await task

        with pytest.raises(asyncio.CancelledError):
            asyncio.run(_run())
        assert diagnostics.has_fatal()
        missing = [d for d in diagnostics.errors() if isinstance(d.error, ManifestLoadError)]
        assert [d.package for d in missing] == ["ghost"]
        assert not store.path.exists()

    def test_pin_file_is_json(
        self,
        firmware_root: Manifest,
        firmware_fetcher: InMemoryFetcher,
        store: PinStore,
    ) -> None:
        resolve_and_build_graph_sync([firmware_root], firmware_fetcher, store)
        data = json.loads(store.path.read_text(encoding="utf-8"))
        assert data["pins"]["mmio"]["state"] == {"version": "1.2.0"}
