"""Tests for the manifest model: identities, declarations, products, targets.

Validates identity normalization from locations, relative location
rebasing, target dependency reference parsing, product validation, and
manifest (de)serialization and checksums.
"""

from __future__ import annotations

import pytest

from pkggraph.core.dependency import (
    ByNameReference,
    DependencyDecl,
    LocalRequirement,
    Manifest,
    PackageIdentity,
    Product,
    ProductKind,
    ProductReference,
    RangeRequirement,
    TargetKind,
    TargetReference,
)
from pkggraph.core.dependency.manifest import (
    target_dependency_from_dict,
    target_dependency_to_dict,
)


class TestPackageIdentity:
    """Tests for ``PackageIdentity.from_location``."""

    @pytest.mark.parametrize(
        ("location", "expected"),
        [
            ("/swift-mmio", "swift-mmio"),
            ("https://github.com/apple/Swift-MMIO.git", "swift-mmio"),
            ("https://github.com/apple/swift-mmio/", "swift-mmio"),
            ("git@github.com:apple/swift-mmio.git", "swift-mmio"),
            ("../Packages/MMIO", "mmio"),
        ],
    )
    def test_from_location(self, location: str, expected: str) -> None:
        assert PackageIdentity.from_location(location) == PackageIdentity(expected)

    def test_empty_location_raises(self) -> None:
        with pytest.raises(ValueError, match="Cannot derive"):
            PackageIdentity.from_location("/")

    def test_identities_are_ordered(self) -> None:
        ids = [PackageIdentity("b"), PackageIdentity("a")]
        assert sorted(ids) == [PackageIdentity("a"), PackageIdentity("b")]


class TestDependencyDecl:
    """Tests for dependency declarations."""

    def test_identity_from_location(self) -> None:
        decl = DependencyDecl.from_dict(
            {"location": "https://example.com/Swift-Syntax.git", "requirement": "509.0.0"}
        )
        assert decl.identity == PackageIdentity("swift-syntax")
        assert decl.requirement == RangeRequirement.up_to_next_major("509.0.0")

    def test_local_requirement_supplies_location(self) -> None:
        decl = DependencyDecl.from_dict({"requirement": {"local": "../utils"}})
        assert decl.location == "../utils"
        assert decl.identity == PackageIdentity("utils")

    def test_missing_identity_and_location_raises(self) -> None:
        with pytest.raises(ValueError, match="needs an identity or a location"):
            DependencyDecl.from_dict({"requirement": "1.0.0"})

    def test_rebased_relative_location(self) -> None:
        """Relative paths resolve against the declaring package's location."""
        decl = DependencyDecl.from_dict({"requirement": {"local": "../utils"}})
        rebased = decl.rebased("/work/app")
        assert rebased.location == "/work/utils"
        assert rebased.requirement == LocalRequirement("/work/utils")
        assert rebased.identity == PackageIdentity("utils")

    def test_rebased_leaves_urls_alone(self) -> None:
        decl = DependencyDecl.from_dict(
            {"location": "https://example.com/a.git", "requirement": "1.0.0"}
        )
        assert decl.rebased("/work/app") is decl

    def test_names_include_alias(self) -> None:
        decl = DependencyDecl.from_dict(
            {"identity": "swift-syntax", "requirement": "509.0.0", "alias": "Syntax"}
        )
        assert decl.names() == {"swift-syntax", "Syntax"}

    def test_to_dict_round_trip(self) -> None:
        data = {
            "identity": "mmio",
            "requirement": {"range": ["1.0.0", "2.0.0"]},
            "location": "/mmio",
            "alias": "MMIOPackage",
        }
        assert DependencyDecl.from_dict(data).to_dict() == data


class TestTargetDependencies:
    """Tests for target dependency reference parsing."""

    def test_bare_string_is_by_name(self) -> None:
        assert target_dependency_from_dict("HAL") == ByNameReference("HAL")

    def test_target_reference(self) -> None:
        assert target_dependency_from_dict({"target": "HAL"}) == TargetReference("HAL")

    def test_product_reference(self) -> None:
        ref = target_dependency_from_dict({"product": "MMIO", "package": "mmio"})
        assert ref == ProductReference("MMIO", "mmio")

    def test_invalid_reference_raises(self) -> None:
        with pytest.raises(ValueError, match="Invalid target dependency"):
            target_dependency_from_dict({"module": "X"})

    def test_to_dict(self) -> None:
        assert target_dependency_to_dict(ProductReference("MMIO", "mmio")) == {
            "product": "MMIO",
            "package": "mmio",
        }


class TestProduct:
    """Tests for product validation."""

    def test_targets_default_to_product_name(self) -> None:
        assert Product.from_dict({"name": "MMIO"}).targets == ("MMIO",)

    def test_library_linkage(self) -> None:
        product = Product.from_dict({"name": "MMIO", "linkage": "static"})
        assert product.linkage == "static"

    def test_linkage_on_executable_raises(self) -> None:
        with pytest.raises(ValueError, match="Only library products"):
            Product("tool", ProductKind.EXECUTABLE, ("tool",), linkage="static")

    def test_unknown_linkage_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown library linkage"):
            Product("MMIO", linkage="shared")


class TestManifest:
    """Tests for ``Manifest`` lookups and serialization."""

    @pytest.fixture
    def manifest(self) -> Manifest:
        return Manifest.from_dict(
            {
                "name": "MMIO",
                "location": "https://github.com/apple/swift-mmio.git",
                "dependencies": [{"location": "../swift-syntax", "requirement": "509.0.0"}],
                "products": [{"name": "MMIO", "targets": ["MMIO"]}],
                "targets": [
                    {"name": "MMIO", "dependencies": ["MMIOMacros"]},
                    {"name": "MMIOMacros", "kind": "macro"},
                ],
            }
        )

    def test_identity_from_location(self, manifest: Manifest) -> None:
        assert manifest.identity == PackageIdentity("swift-mmio")
        assert manifest.display_name == "MMIO"

    def test_identity_falls_back_to_name(self) -> None:
        assert Manifest.from_dict({"name": "Firmware"}).identity == PackageIdentity("firmware")

    def test_manifest_without_name_raises(self) -> None:
        with pytest.raises(ValueError, match="at least one of"):
            Manifest.from_dict({"targets": []})

    def test_lookups(self, manifest: Manifest) -> None:
        assert manifest.target("MMIOMacros").kind is TargetKind.MACRO
        assert manifest.target("Missing") is None
        assert manifest.product("MMIO") is not None
        assert manifest.product("Other") is None

    def test_url_locations_are_not_rebased(self, manifest: Manifest) -> None:
        (decl,) = manifest.resolved_dependencies()
        assert decl.location == "../swift-syntax"

    def test_checksum_format(self, manifest: Manifest) -> None:
        assert manifest.checksum.startswith("sha256:")
        assert len(manifest.checksum) == len("sha256:") + 64

    def test_checksum_is_content_based(self, manifest: Manifest) -> None:
        again = Manifest.from_dict(manifest.to_dict())
        assert again == manifest
        assert again.checksum == manifest.checksum

    def test_checksum_changes_with_content(self, manifest: Manifest) -> None:
        data = manifest.to_dict()
        data["targets"] = data["targets"][:1]
        assert Manifest.from_dict(data).checksum != manifest.checksum
