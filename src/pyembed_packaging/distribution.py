"""Resolved model of an extracted Python distribution.

:func:`resolve_distribution` turns a distribution root directory into an
immutable :class:`Distribution`. Resolution is fail-closed: unexpected
directory entries, missing path roles and dangling paths all abort it, so
the model never stores a path that does not exist.
"""

import logging
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from types import MappingProxyType
from typing import TYPE_CHECKING

from . import tables
from .core.errors import DistributionLayoutError, UnsupportedDistributionError
from .core.file_data import FileData, FileEntry, PathData
from .core.licensing import ComponentFlavor, ComponentKind, LicensedComponent
from .core.types import DistributionManifest, ExtensionVariant
from .manifest import MANIFEST_FILENAME, RUNTIME_DIR_NAME, parse_manifest_from_distribution
from .resources import (
    LibraryDependency,
    PythonExtensionModule,
    PythonModuleSource,
    PythonPackageResource,
    PythonResource,
)
from .scanner import (
    PythonModuleSuffixes,
    find_python_resources,
    is_package_from_path,
    is_test_module,
    relative_posix_path,
    walk_tree_files,
)

if TYPE_CHECKING:
    from .context.interpreter import EmbeddedInterpreterConfig
    from .policy import PackagingPolicy

logger = logging.getLogger(__name__)

# Entries tolerated in the distribution root besides the runtime directory
IGNORED_ROOT_ENTRIES = frozenset({".DS_Store"})

# Entries allowed inside the runtime directory
RUNTIME_DIR_ENTRIES = frozenset(
    {"build", "install", "lib", "licenses", "LICENSE.rst", MANIFEST_FILENAME}
)


class LinkMode(Enum):
    """How libpython is linked into the produced binary."""

    STATIC = "static"
    DYNAMIC = "dynamic"

    @classmethod
    def from_manifest(cls, value: str) -> "LinkMode":
        """Map the descriptor's ``libpython_link_mode`` value.

        Raises:
            UnsupportedDistributionError: If the mode is unknown
        """
        if value == "static":
            return cls.STATIC
        if value == "shared":
            return cls.DYNAMIC
        raise UnsupportedDistributionError(f"unhandled link mode: {value}")


@dataclass(frozen=True)
class AppleSdkInfo:
    """Apple SDK a macOS distribution was built against."""

    canonical_name: str
    platform: str
    version: str
    deployment_target: str


@dataclass(frozen=True)
class Distribution:
    """A resolved, queryable Python distribution.

    Attributes:
        base_dir: Distribution root directory
        target_triple: Target triple the distribution runs on
        python_implementation: Implementation name (e.g. ``cpython``)
        python_tag: PEP 425 Python tag
        python_abi_tag: PEP 425 ABI tag, if any
        python_platform_tag: sysconfig platform tag
        version: Full interpreter version
        python_exe: Interpreter executable
        stdlib_path: Root of the standard library
        stdlib_test_packages: Standard library packages holding tests
        link_mode: How libpython is linked
        libpython_shared_library: libpython shared library (dynamic mode)
        python_symbol_visibility: Symbol visibility of the build
        extension_module_loading: Extension loading capabilities
        apple_sdk_info: SDK metadata for Apple targets
        core_license: Licensing of the distribution itself
        licenses: SPDX identifiers of the distribution
        license_path: License text, relative to the runtime directory
        tcl_library_path: Root of the Tcl support files
        tcl_library_paths: Subdirectories of ``tcl_library_path`` to ship
        objs_core: Core object files, relative path -> absolute path
        links_core: Libraries the core links against
        extension_modules: Extension module name -> build variants
        includes: Header files, relative path -> absolute path
        libraries: Static libraries, name -> path
        py_modules: Standard library module name -> source path
        resources: Package -> resource name -> path
        inittab_object: Object defining the builtin init table
        inittab_cflags: Compiler flags for building the init table
        cache_tag: Bytecode cache tag (e.g. ``cpython-312``)
        module_suffixes: Module filename suffixes
        crt_features: C runtime features
        config_vars: Interpreter build configuration variables
        bytecode_magic_number: Bytecode header magic number
    """

    base_dir: Path
    target_triple: str
    python_implementation: str
    python_tag: str
    python_abi_tag: str | None
    python_platform_tag: str
    version: str
    python_exe: Path
    stdlib_path: Path
    stdlib_test_packages: tuple[str, ...]
    link_mode: LinkMode
    libpython_shared_library: Path | None
    python_symbol_visibility: str
    extension_module_loading: tuple[str, ...]
    apple_sdk_info: AppleSdkInfo | None
    core_license: LicensedComponent | None
    licenses: tuple[str, ...] | None
    license_path: Path | None
    tcl_library_path: Path | None
    tcl_library_paths: tuple[str, ...] | None
    objs_core: Mapping[str, Path]
    links_core: tuple[LibraryDependency, ...]
    extension_modules: Mapping[str, tuple[PythonExtensionModule, ...]]
    includes: Mapping[str, Path]
    libraries: Mapping[str, Path]
    py_modules: Mapping[str, Path]
    resources: Mapping[str, Mapping[str, Path]]
    inittab_object: Path
    inittab_cflags: tuple[str, ...]
    cache_tag: str
    module_suffixes: PythonModuleSuffixes
    crt_features: tuple[str, ...]
    config_vars: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    bytecode_magic_number: bytes = b""

    def is_extension_module_file_loadable(self) -> bool:
        """Whether the distribution can load file-based extension modules."""
        return "shared-library" in self.extension_module_loading

    def supports_in_memory_shared_library_loading(self) -> bool:
        """Whether extension modules can be loaded from memory.

        Only Windows builds that export symbols by default and load shared
        library extensions qualify.
        """
        return (
            tables.is_windows_triple(self.target_triple)
            and self.python_symbol_visibility == "dllexport"
            and self.is_extension_module_file_loadable()
        )

    def compatible_host_triples(self) -> list[str]:
        return tables.compatible_host_triples(self.target_triple)

    def python_major_minor_version(self) -> str:
        return parse_python_major_minor_version(self.version)

    def python_implementation_short(self) -> str:
        """Short implementation name used in tags (e.g. ``cp``).

        Raises:
            UnsupportedDistributionError: If the implementation is unknown
        """
        short = tables.implementation_short_name(self.python_implementation)
        if short is None:
            raise UnsupportedDistributionError(
                f"unknown Python implementation: {self.python_implementation}"
            )
        return short

    def python_abi_tag_or_none(self) -> str | None:
        return self.python_abi_tag

    def python_platform_compatibility_tag(self) -> str:
        """PEP 425 platform tag of binaries compatible with this distribution.

        Raises:
            UnsupportedDistributionError: If the platform tag is unknown
        """
        tag = tables.platform_compatibility_tag(self.python_platform_tag)
        if tag is None:
            raise UnsupportedDistributionError(
                f"unknown Python platform tag: {self.python_platform_tag}"
            )
        return tag

    def is_stdlib_test_package(self, name: str) -> bool:
        return is_test_module(name, self.stdlib_test_packages)

    def tcl_files(self) -> list[tuple[str, FileEntry]]:
        """Tcl support files to install next to the binary.

        Returns:
            ``(relative path, entry)`` pairs in walk order; empty when the
            distribution ships no Tcl library
        """
        if self.tcl_library_path is None or not self.tcl_library_paths:
            return []

        files: list[tuple[str, FileEntry]] = []
        for subdir in self.tcl_library_paths:
            for path in walk_tree_files(self.tcl_library_path / subdir):
                rel = relative_posix_path(path, self.tcl_library_path)
                files.append((rel, FileEntry.from_path(path)))
        return files

    def iter_python_resources(self) -> Iterator[PythonResource]:
        """Every Python resource the distribution provides.

        Extension module variants come first, then standard library module
        sources, then package resources, each group ordered by name.
        """
        for name in sorted(self.extension_modules):
            yield from self.extension_modules[name]

        for name in sorted(self.py_modules):
            path = self.py_modules[name]
            yield PythonModuleSource(
                name=name,
                source=PathData(path),
                is_package=is_package_from_path(path),
                cache_tag=self.cache_tag,
                is_stdlib=True,
                is_test=self.is_stdlib_test_package(name),
            )

        for package in sorted(self.resources):
            for resource_name, path in sorted(self.resources[package].items()):
                yield PythonPackageResource(
                    leaf_package=package,
                    relative_name=resource_name,
                    data=PathData(path),
                    is_stdlib=True,
                    is_test=self.is_stdlib_test_package(package),
                )

    def create_packaging_policy(self) -> "PackagingPolicy":
        from .policy import create_packaging_policy

        return create_packaging_policy(self)

    def create_interpreter_config(self) -> "EmbeddedInterpreterConfig":
        from .context.interpreter import EmbeddedInterpreterConfig

        return EmbeddedInterpreterConfig.for_distribution(self)


def parse_python_major_minor_version(version: str) -> str:
    """Reduce a version to ``X.Y``.

    Example:
        "3.12.4" -> "3.12"; "3" -> "3.0"
    """
    if "." not in version:
        version = f"{version}.0"
    return ".".join(version.split(".")[:2])


def _check_directory_entries(directory: Path, allowed: frozenset[str], what: str) -> None:
    for entry in sorted(directory.iterdir(), key=lambda p: p.name):
        if entry.name not in allowed:
            raise DistributionLayoutError(f"unexpected entry in {what}: {entry.name}")


def _require_exists(path: Path, what: str) -> Path:
    if not path.exists():
        raise DistributionLayoutError(f"{what} does not exist: {path}")
    return path


def _frozen_list(values: list[str] | None) -> tuple[str, ...] | None:
    return tuple(values) if values is not None else None


def _scanned_path(data: FileData) -> Path:
    path = data.backing_path
    if path is None:
        raise AssertionError("scanned stdlib content must be backed by a file")
    return path


def _register_link(
    entry: LibraryDependency, libraries: dict[str, Path]
) -> LibraryDependency:
    if entry.static_library is not None and entry.static_library.backing_path is not None:
        _require_exists(entry.static_library.backing_path, f"static library {entry.name}")
        libraries[entry.name] = entry.static_library.backing_path
    if entry.dynamic_library is not None and entry.dynamic_library.backing_path is not None:
        _require_exists(entry.dynamic_library.backing_path, f"shared library {entry.name}")
    return entry


def _resolve_core_license(
    manifest: DistributionManifest, python_path: Path
) -> LicensedComponent | None:
    license_path = manifest.get("license_path")
    if not license_path:
        return None

    path = _require_exists(python_path / license_path, "Python license")
    component = LicensedComponent(
        flavor=ComponentFlavor(
            ComponentKind.PYTHON_DISTRIBUTION, manifest["python_implementation_name"]
        ),
        licenses=list(manifest.get("licenses") or []),
    )
    component.add_license_text(path.read_text(encoding="utf-8"))
    return component


def _resolve_extension_variant(
    module: str,
    entry: ExtensionVariant,
    python_path: Path,
    libraries: dict[str, Path],
    core_license: LicensedComponent | None,
) -> PythonExtensionModule:
    shared_lib = entry.get("shared_lib")
    extension_file_suffix = ""
    if shared_lib and "." in shared_lib:
        extension_file_suffix = shared_lib[shared_lib.rfind(".") :]

    object_file_data = tuple(
        PathData(_require_exists(python_path / obj, f"object file of {module}"))
        for obj in entry["objs"]
    )

    links = tuple(
        _register_link(LibraryDependency.from_link_entry(link, python_path), libraries)
        for link in entry["links"]
    )

    flavor = ComponentFlavor(ComponentKind.PYTHON_STDLIB_EXTENSION_MODULE, module)
    if entry.get("license_public_domain"):
        license = LicensedComponent(flavor=flavor, public_domain=True)
    elif entry.get("licenses"):
        license = LicensedComponent(flavor=flavor, licenses=list(entry["licenses"] or []))
    elif core_license is not None:
        license = LicensedComponent(flavor=flavor, licenses=list(core_license.licenses))
    else:
        license = LicensedComponent(flavor=flavor)

    for license_path in entry.get("license_paths") or []:
        path = _require_exists(python_path / license_path, f"license of {module}")
        license.add_license_text(path.read_text(encoding="utf-8"))

    shared_library = None
    if shared_lib:
        shared_library = PathData(
            _require_exists(python_path / shared_lib, f"shared library of {module}")
        )

    return PythonExtensionModule(
        name=module,
        init_fn=entry["init_fn"],
        extension_file_suffix=extension_file_suffix,
        shared_library=shared_library,
        object_file_data=object_file_data,
        is_package=False,
        link_libraries=links,
        is_stdlib=True,
        builtin_default=entry["in_core"],
        required=entry["required"],
        variant=entry["variant"],
        license=license,
    )


def _resolve_apple_sdk_info(manifest: DistributionManifest) -> AppleSdkInfo | None:
    canonical_name = manifest.get("apple_sdk_canonical_name")
    if not canonical_name:
        return None

    values = {}
    for key in ("apple_sdk_platform", "apple_sdk_version", "apple_sdk_deployment_target"):
        value = manifest.get(key)
        if not value:
            raise DistributionLayoutError(f"{key} not defined")
        values[key] = value

    return AppleSdkInfo(
        canonical_name=canonical_name,
        platform=values["apple_sdk_platform"],
        version=values["apple_sdk_version"],
        deployment_target=values["apple_sdk_deployment_target"],
    )


def resolve_distribution(dist_dir: Path) -> Distribution:
    """Resolve an extracted distribution directory.

    Args:
        dist_dir: Distribution root (the directory containing ``python/``)

    Returns:
        The resolved distribution

    Raises:
        DistributionLayoutError: On unexpected entries, missing path roles
            or referenced paths that do not exist
        ManifestError: If the descriptor is missing or invalid
        UnsupportedDistributionError: If the link mode is unknown
    """
    if not dist_dir.is_dir():
        raise DistributionLayoutError(f"{dist_dir} is not a directory")

    _check_directory_entries(
        dist_dir,
        IGNORED_ROOT_ENTRIES | {RUNTIME_DIR_NAME},
        "distribution root directory",
    )

    python_path = dist_dir / RUNTIME_DIR_NAME
    if not python_path.is_dir():
        raise DistributionLayoutError(f"{python_path} is not a directory")

    _check_directory_entries(python_path, RUNTIME_DIR_ENTRIES, f"{RUNTIME_DIR_NAME}/ directory")

    manifest = parse_manifest_from_distribution(dist_dir)
    build_info = manifest["build_info"]

    core_license = _resolve_core_license(manifest, python_path)

    objs_core: dict[str, Path] = {}
    for obj in build_info["core"]["objs"]:
        objs_core[obj] = _require_exists(python_path / obj, "core object file")

    libraries: dict[str, Path] = {}
    links_core = [
        _register_link(LibraryDependency.from_link_entry(entry, python_path), libraries)
        for entry in build_info["core"]["links"]
    ]

    extension_modules: dict[str, list[PythonExtensionModule]] = {}
    for module in sorted(build_info["extensions"]):
        extension_modules[module] = [
            _resolve_extension_variant(module, entry, python_path, libraries, core_license)
            for entry in build_info["extensions"][module]
        ]

    python_paths = manifest["python_paths"]

    if "include" not in python_paths:
        raise DistributionLayoutError("include path not defined in distribution")
    include_path = _require_exists(python_path / python_paths["include"], "include directory")

    includes = {
        relative_posix_path(path, include_path): path for path in walk_tree_files(include_path)
    }

    if "stdlib" not in python_paths:
        raise DistributionLayoutError("stdlib path not defined in distribution")
    stdlib_path = _require_exists(python_path / python_paths["stdlib"], "stdlib directory")

    module_suffixes = PythonModuleSuffixes.from_manifest(manifest["python_suffixes"])

    py_modules: dict[str, Path] = {}
    resources: dict[str, dict[str, Path]] = {}
    for resource in find_python_resources(
        stdlib_path,
        manifest["python_implementation_cache_tag"],
        module_suffixes,
        is_stdlib=True,
    ):
        if isinstance(resource, PythonModuleSource):
            py_modules[resource.name] = _scanned_path(resource.source)
        elif isinstance(resource, PythonPackageResource):
            resources.setdefault(resource.leaf_package, {})[resource.relative_name] = (
                _scanned_path(resource.data)
            )

    link_mode = LinkMode.from_manifest(manifest["libpython_link_mode"])
    libpython_shared_library = None
    if link_mode is LinkMode.DYNAMIC:
        shared_lib = build_info["core"].get("shared_lib")
        if not shared_lib:
            raise DistributionLayoutError("shared link mode without a core shared library")
        libpython_shared_library = _require_exists(
            python_path / shared_lib, "libpython shared library"
        )

    tcl_library_path = None
    tcl_library = manifest.get("tcl_library_path")
    if tcl_library:
        tcl_library_path = _require_exists(python_path / tcl_library, "Tcl library")

    license_path = manifest.get("license_path")

    distribution = Distribution(
        base_dir=dist_dir,
        target_triple=manifest["target_triple"],
        python_implementation=manifest["python_implementation_name"],
        python_tag=manifest["python_tag"],
        python_abi_tag=manifest.get("python_abi_tag"),
        python_platform_tag=manifest["python_platform_tag"],
        version=manifest["python_version"],
        python_exe=_require_exists(python_path / manifest["python_exe"], "Python executable"),
        stdlib_path=stdlib_path,
        stdlib_test_packages=tuple(manifest["python_stdlib_test_packages"]),
        link_mode=link_mode,
        libpython_shared_library=libpython_shared_library,
        python_symbol_visibility=manifest["python_symbol_visibility"],
        extension_module_loading=tuple(manifest["python_extension_module_loading"]),
        apple_sdk_info=_resolve_apple_sdk_info(manifest),
        core_license=core_license,
        licenses=_frozen_list(manifest.get("licenses")),
        license_path=Path(license_path) if license_path else None,
        tcl_library_path=tcl_library_path,
        tcl_library_paths=_frozen_list(manifest.get("tcl_library_paths")),
        objs_core=MappingProxyType(objs_core),
        links_core=tuple(links_core),
        extension_modules=MappingProxyType(
            {name: tuple(variants) for name, variants in extension_modules.items()}
        ),
        includes=MappingProxyType(includes),
        libraries=MappingProxyType(libraries),
        py_modules=MappingProxyType(py_modules),
        resources=MappingProxyType(
            {package: MappingProxyType(entries) for package, entries in resources.items()}
        ),
        inittab_object=_require_exists(
            python_path / build_info["inittab_object"], "inittab object"
        ),
        inittab_cflags=tuple(build_info["inittab_cflags"]),
        cache_tag=manifest["python_implementation_cache_tag"],
        module_suffixes=module_suffixes,
        crt_features=tuple(manifest["crt_features"]),
        config_vars=MappingProxyType(dict(manifest["python_config_vars"])),
        bytecode_magic_number=bytes.fromhex(manifest["python_bytecode_magic_number"]),
    )

    logger.info(
        "resolved %s distribution for %s (%d stdlib modules, %d extension modules)",
        distribution.version,
        distribution.target_triple,
        len(py_modules),
        len(extension_modules),
    )
    return distribution
