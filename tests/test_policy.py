"""Tests for packaging policy."""

from pathlib import PurePosixPath

import pytest
from conftest import LINUX_TRIPLE, WINDOWS_TRIPLE

from pyembed_packaging.core.errors import ExtensionModuleError, ResourceLocationError
from pyembed_packaging.core.file_data import FileEntry, MemoryData
from pyembed_packaging.core.locations import ConcreteResourceLocation
from pyembed_packaging.distribution import resolve_distribution
from pyembed_packaging.policy import (
    ExtensionModuleFilter,
    PackagingPolicy,
    create_packaging_policy,
)
from pyembed_packaging.resources import (
    FileResource,
    LibraryDependency,
    PythonExtensionModule,
    PythonModuleSource,
    PythonPackageResource,
)


def _extension(name: str, variant: str = "default", **kwargs) -> PythonExtensionModule:
    return PythonExtensionModule(
        name=name,
        init_fn=f"PyInit_{name}",
        extension_file_suffix=".so",
        shared_library=None,
        variant=variant,
        **kwargs,
    )


def _source(name: str, **kwargs) -> PythonModuleSource:
    return PythonModuleSource(
        name=name,
        source=MemoryData(b"x = 1\n"),
        is_package=False,
        cache_tag="cpython-312",
        **kwargs,
    )


def _in_memory_policy(**kwargs) -> PackagingPolicy:
    return PackagingPolicy(resources_location=ConcreteResourceLocation.in_memory(), **kwargs)


class TestCreatePackagingPolicy:
    """Test default policies derived from a distribution."""

    def test_linux_uses_relative_path(self, distribution) -> None:
        """Test that distributions without in-memory loading use lib/."""
        policy = create_packaging_policy(distribution)

        assert policy.resources_location == ConcreteResourceLocation.relative_path("lib")
        assert policy.resources_location_fallback is None
        assert not policy.allow_in_memory_shared_library_loading

    def test_windows_uses_memory_with_fallback(self, make_distribution, windows_manifest) -> None:
        """Test that in-memory capable distributions fall back to lib/."""
        dist = resolve_distribution(make_distribution(windows_manifest))

        policy = create_packaging_policy(dist)

        assert policy.resources_location == ConcreteResourceLocation.in_memory()
        assert policy.resources_location_fallback == ConcreteResourceLocation.relative_path("lib")
        assert policy.allow_in_memory_shared_library_loading

    def test_tables_copied(self, distribution) -> None:
        """Test that broken extensions and no-bytecode modules are registered."""
        policy = create_packaging_policy(distribution)

        assert policy.is_broken_extension(LINUX_TRIPLE, "_crypt")
        assert not policy.is_broken_extension(WINDOWS_TRIPLE, "_crypt")
        assert "test.bad_coding" in policy.no_bytecode_modules

    def test_defaults(self, distribution) -> None:
        """Test the default inclusion switches."""
        policy = create_packaging_policy(distribution)

        assert policy.extension_module_filter is ExtensionModuleFilter.ALL
        assert policy.include_distribution_sources
        assert policy.include_non_distribution_sources
        assert not policy.include_distribution_resources
        assert not policy.include_test
        assert policy.bytecode_optimize_level_zero
        assert not policy.bytecode_optimize_level_one
        assert not policy.bytecode_optimize_level_two


class TestBrokenExtensions:
    """Test broken extension registration."""

    def test_register_is_idempotent(self) -> None:
        """Test that registering a pair twice records it once."""
        policy = PackagingPolicy()
        policy.register_broken_extension(LINUX_TRIPLE, "nis")
        policy.register_broken_extension(LINUX_TRIPLE, "nis")

        assert policy.broken_extensions_for(LINUX_TRIPLE) == ["nis"]

    def test_unknown_triple_has_none(self) -> None:
        """Test that unregistered triples have no broken extensions."""
        assert PackagingPolicy().broken_extensions_for("wasm32-wasi") == []


class TestResolveExtensionModules:
    """Test extension variant resolution and filtering."""

    def test_first_variant_by_default(self) -> None:
        """Test that the first listed variant is chosen."""
        policy = PackagingPolicy()
        variants = [_extension("_ssl", "openssl-3"), _extension("_ssl", "openssl-1.1")]

        chosen = policy.resolve_extension_module_variant("_ssl", variants, LINUX_TRIPLE)

        assert chosen is variants[0]

    def test_preferred_variant(self) -> None:
        """Test that a configured preference picks the matching variant."""
        policy = PackagingPolicy()
        policy.set_preferred_extension_module_variant("_ssl", "openssl-1.1")
        variants = [_extension("_ssl", "openssl-3"), _extension("_ssl", "openssl-1.1")]

        chosen = policy.resolve_extension_module_variant("_ssl", variants, LINUX_TRIPLE)

        assert chosen is variants[1]

    def test_missing_preferred_variant(self) -> None:
        """Test that an unavailable preference is an error."""
        policy = PackagingPolicy()
        policy.set_preferred_extension_module_variant("_ssl", "libressl")

        with pytest.raises(ExtensionModuleError, match="libressl"):
            policy.resolve_extension_module_variant(
                "_ssl", [_extension("_ssl", "openssl-3")], LINUX_TRIPLE
            )

    def test_broken_extension_skipped_even_when_required(self) -> None:
        """Test that the denylist wins over the required flag."""
        policy = PackagingPolicy()
        policy.register_broken_extension(LINUX_TRIPLE, "_crypt")

        resolved = policy.resolve_python_extension_modules(
            {"_crypt": [_extension("_crypt", required=True)]}, LINUX_TRIPLE
        )

        assert resolved == []

    def test_broken_only_for_its_triple(self) -> None:
        """Test that the denylist is per target triple."""
        policy = PackagingPolicy()
        policy.register_broken_extension(LINUX_TRIPLE, "_crypt")

        resolved = policy.resolve_python_extension_modules(
            {"_crypt": [_extension("_crypt")]}, WINDOWS_TRIPLE
        )

        assert [m.name for m in resolved] == ["_crypt"]

    def test_ordered_by_name(self) -> None:
        """Test that resolved modules are sorted by name."""
        policy = PackagingPolicy()

        resolved = policy.resolve_python_extension_modules(
            {"zlib": [_extension("zlib")], "_abc": [_extension("_abc")]}, LINUX_TRIPLE
        )

        assert [m.name for m in resolved] == ["_abc", "zlib"]

    def test_minimal_filter(self) -> None:
        """Test that the minimal filter keeps builtin and required modules."""
        policy = PackagingPolicy(extension_module_filter=ExtensionModuleFilter.MINIMAL)
        modules = {
            "_json": [_extension("_json", builtin_default=True)],
            "_io": [_extension("_io", required=True)],
            "_sqlite3": [_extension("_sqlite3")],
        }

        resolved = policy.resolve_python_extension_modules(modules, LINUX_TRIPLE)

        assert [m.name for m in resolved] == ["_io", "_json"]

    def test_no_libraries_filter(self) -> None:
        """Test that the no-libraries filter allows only system dependencies."""
        policy = PackagingPolicy(extension_module_filter=ExtensionModuleFilter.NO_LIBRARIES)
        modules = {
            "_sqlite3": [
                _extension("_sqlite3", link_libraries=(LibraryDependency(name="sqlite3"),))
            ],
            "_ctypes": [
                _extension("_ctypes", link_libraries=(LibraryDependency(name="dl", system=True),))
            ],
            "_scproxy": [
                _extension(
                    "_scproxy",
                    link_libraries=(LibraryDependency(name="CoreFoundation", framework=True),),
                )
            ],
        }

        resolved = policy.resolve_python_extension_modules(modules, LINUX_TRIPLE)

        assert [m.name for m in resolved] == ["_ctypes", "_scproxy"]


class TestFilterPythonResource:
    """Test resource inclusion decisions."""

    def test_test_modules_excluded_by_default(self) -> None:
        """Test that test modules need include_test."""
        policy = PackagingPolicy()
        resource = _source("test.test_os", is_stdlib=True, is_test=True)

        assert not policy.filter_python_resource(resource)

        policy.include_test = True
        assert policy.filter_python_resource(resource)

    def test_stdlib_package_resources(self) -> None:
        """Test that stdlib resources need include_distribution_resources."""
        policy = PackagingPolicy()
        stdlib = PythonPackageResource("email", "architecture.rst", MemoryData(b""), is_stdlib=True)
        app = PythonPackageResource("app", "data.json", MemoryData(b""))

        assert not policy.filter_python_resource(stdlib)
        assert policy.filter_python_resource(app)

        policy.include_distribution_resources = True
        assert policy.filter_python_resource(stdlib)

    def test_file_resources(self) -> None:
        """Test that file resources need include_file_resources."""
        policy = PackagingPolicy()
        resource = FileResource(PurePosixPath("etc/app.conf"), FileEntry(MemoryData(b"")))

        assert not policy.filter_python_resource(resource)

        policy.include_file_resources = True
        assert policy.filter_python_resource(resource)


class TestDeriveAddCollectionContext:
    """Test per-resource collection contexts."""

    def test_requires_location(self) -> None:
        """Test that a policy without a location cannot classify resources."""
        with pytest.raises(ResourceLocationError, match="no resources location"):
            PackagingPolicy().derive_add_collection_context(_source("app"))

    def test_locations_copied(self) -> None:
        """Test that placements come from the policy."""
        policy = _in_memory_policy(
            resources_location_fallback=ConcreteResourceLocation.relative_path("lib")
        )

        context = policy.derive_add_collection_context(_source("app"))

        assert context.include
        assert context.location == ConcreteResourceLocation.in_memory()
        assert context.location_fallback == ConcreteResourceLocation.relative_path("lib")

    def test_source_switches(self) -> None:
        """Test that source retention depends on the module's origin."""
        policy = _in_memory_policy(include_distribution_sources=False)

        assert not policy.derive_add_collection_context(_source("os", is_stdlib=True)).store_source
        assert policy.derive_add_collection_context(_source("app")).store_source

    def test_bytecode_levels(self) -> None:
        """Test that bytecode levels mirror the policy."""
        policy = _in_memory_policy(bytecode_optimize_level_two=True)

        context = policy.derive_add_collection_context(_source("app"))

        assert context.optimize_level_zero
        assert not context.optimize_level_one
        assert context.optimize_level_two

    def test_no_bytecode_module(self) -> None:
        """Test that listed modules get no bytecode at any level."""
        policy = _in_memory_policy(bytecode_optimize_level_one=True)
        policy.register_no_bytecode_module("test.bad_coding")

        context = policy.derive_add_collection_context(_source("test.bad_coding"))

        assert not context.optimize_level_zero
        assert not context.optimize_level_one
        assert not context.optimize_level_two

    def test_non_module_resources_have_no_bytecode(self) -> None:
        """Test that package resources carry no bytecode decisions."""
        policy = _in_memory_policy()
        resource = PythonPackageResource("app", "data.json", MemoryData(b"{}"))

        context = policy.derive_add_collection_context(resource)

        assert not context.store_source
        assert not context.optimize_level_zero
