"""Type definitions for distribution descriptors.

This module defines TypedDict classes that mirror the JSON schema structure
defined in schemas/python_json.schema.json (the ``python/PYTHON.json``
descriptor shipped inside a distribution).
"""

from typing import TypedDict


class _LinkEntryRequired(TypedDict):
    name: str  # Library name passed to the linker


class LinkEntry(_LinkEntryRequired, total=False):
    """A library a core or extension object file links against."""

    path_static: str | None  # Static library, relative to python/
    path_dynamic: str | None  # Shared library, relative to python/
    framework: bool | None  # macOS framework
    system: bool | None  # Library provided by the system


class _ExtensionVariantRequired(TypedDict):
    in_core: bool  # Compiled into libpython by default
    init_fn: str  # Module init function symbol
    links: list[LinkEntry]
    objs: list[str]  # Object files, relative to python/
    required: bool  # Interpreter cannot start without it
    variant: str  # Variant name (e.g. "default")


class ExtensionVariant(_ExtensionVariantRequired, total=False):
    """One build variant of an extension module."""

    licenses: list[str] | None  # SPDX identifiers
    license_paths: list[str] | None  # License texts, relative to python/
    license_public_domain: bool | None
    static_lib: str | None
    shared_lib: str | None


class _CoreBuildInfoRequired(TypedDict):
    objs: list[str]  # Object files making up libpython
    links: list[LinkEntry]


class CoreBuildInfo(_CoreBuildInfoRequired, total=False):
    """Build artifacts of the interpreter core."""

    shared_lib: str | None
    static_lib: str | None


class BuildInfo(TypedDict):
    """Build artifacts of the distribution."""

    core: CoreBuildInfo
    extensions: dict[str, list[ExtensionVariant]]
    inittab_object: str  # Object defining the builtin module init table
    inittab_source: str
    inittab_cflags: list[str]
    object_file_format: str


class _DistributionManifestRequired(TypedDict):
    version: str  # Descriptor schema version
    target_triple: str
    optimizations: str
    python_tag: str  # PEP 425 Python tag
    python_config_vars: dict[str, str]
    python_platform_tag: str
    python_implementation_cache_tag: str  # e.g. "cpython-312"
    python_implementation_hex_version: int
    python_implementation_name: str
    python_implementation_version: list[str]
    python_version: str
    python_major_minor_version: str
    python_paths: dict[str, str]  # Role -> path relative to python/
    python_paths_abstract: dict[str, str]
    python_exe: str  # Executable, relative to python/
    python_stdlib_test_packages: list[str]
    python_suffixes: dict[str, list[str]]  # Suffix class -> suffixes
    python_bytecode_magic_number: str  # Hex encoded
    python_symbol_visibility: str
    python_extension_module_loading: list[str]
    libpython_link_mode: str  # "static" or "shared"
    crt_features: list[str]
    run_tests: str
    build_info: BuildInfo


class DistributionManifest(_DistributionManifestRequired, total=False):
    """Complete descriptor for a distribution."""

    python_abi_tag: str | None
    apple_sdk_canonical_name: str | None
    apple_sdk_platform: str | None
    apple_sdk_version: str | None
    apple_sdk_deployment_target: str | None
    licenses: list[str] | None
    license_path: str | None
    tcl_library_path: str | None
    tcl_library_paths: list[str] | None
