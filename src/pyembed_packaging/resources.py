"""Classified Python resources.

Scanning a distribution or an application directory yields values of the
types below. Each describes one embeddable artifact (module source,
bytecode, package resource, extension module, shared library, plain file)
and knows where it would live under a relative-path prefix.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from pathlib import Path, PurePosixPath

from .core.file_data import FileData, FileEntry, PathData
from .core.licensing import LicensedComponent
from .core.types import LinkEntry


class BytecodeOptimizationLevel(IntEnum):
    """Bytecode optimization level (``python -O`` count)."""

    ZERO = 0
    ONE = 1
    TWO = 2


def bytecode_filename(module_leaf: str, cache_tag: str, level: BytecodeOptimizationLevel) -> str:
    """PEP 3147/488 filename of a bytecode file.

    Example:
        ("json", "cpython-312", ONE) -> "json.cpython-312.opt-1.pyc"
    """
    if level == BytecodeOptimizationLevel.ZERO:
        return f"{module_leaf}.{cache_tag}.pyc"
    return f"{module_leaf}.{cache_tag}.opt-{int(level)}.pyc"


def _module_path_parts(name: str) -> list[str]:
    return name.split(".")


def module_source_path(prefix: str, name: str, is_package: bool) -> PurePosixPath:
    """Relative path of a module's source under ``prefix``."""
    parts = _module_path_parts(name)
    if is_package:
        return PurePosixPath(prefix, *parts, "__init__.py")
    return PurePosixPath(prefix, *parts[:-1], f"{parts[-1]}.py")


def module_bytecode_path(
    prefix: str,
    name: str,
    is_package: bool,
    cache_tag: str,
    level: BytecodeOptimizationLevel,
) -> PurePosixPath:
    """Relative path of a module's bytecode under ``prefix``."""
    parts = _module_path_parts(name)
    if is_package:
        return PurePosixPath(
            prefix, *parts, "__pycache__", bytecode_filename("__init__", cache_tag, level)
        )
    return PurePosixPath(
        prefix, *parts[:-1], "__pycache__", bytecode_filename(parts[-1], cache_tag, level)
    )


@dataclass(frozen=True)
class LibraryDependency:
    """A library an object file or extension module depends on.

    A library may ship a static form, a dynamic form, both or neither
    (system libraries and frameworks are found by the linker).

    Attributes:
        name: Library name handed to the linker
        static_library: Static library content
        static_filename: Filename the static library materializes as
        dynamic_library: Shared library content
        dynamic_filename: Filename the shared library materializes as
        framework: Whether this is a system framework (macOS)
        system: Whether this is a system library
    """

    name: str
    static_library: FileData | None = None
    static_filename: Path | None = None
    dynamic_library: FileData | None = None
    dynamic_filename: Path | None = None
    framework: bool = False
    system: bool = False

    @classmethod
    def from_link_entry(cls, entry: LinkEntry, python_path: Path) -> "LibraryDependency":
        """Build a dependency from a descriptor link entry.

        Args:
            entry: Link entry from PYTHON.json
            python_path: Runtime content root the entry paths are relative to

        Returns:
            Dependency with path-backed (unread) library content
        """
        path_static = entry.get("path_static")
        path_dynamic = entry.get("path_dynamic")

        return cls(
            name=entry["name"],
            static_library=PathData(python_path / path_static) if path_static else None,
            static_filename=Path(Path(path_static).name) if path_static else None,
            dynamic_library=PathData(python_path / path_dynamic) if path_dynamic else None,
            dynamic_filename=Path(Path(path_dynamic).name) if path_dynamic else None,
            framework=bool(entry.get("framework")),
            system=bool(entry.get("system")),
        )

    def to_memory(self) -> "LibraryDependency":
        """Copy with every library backing read into memory."""
        return LibraryDependency(
            name=self.name,
            static_library=self.static_library.to_memory() if self.static_library else None,
            static_filename=self.static_filename,
            dynamic_library=self.dynamic_library.to_memory() if self.dynamic_library else None,
            dynamic_filename=self.dynamic_filename,
            framework=self.framework,
            system=self.system,
        )


@dataclass(frozen=True)
class PythonModuleSource:
    """Source code of a Python module."""

    name: str
    source: FileData
    is_package: bool
    cache_tag: str
    is_stdlib: bool = False
    is_test: bool = False

    @property
    def package(self) -> str:
        """Package this module belongs to (itself for packages)."""
        if self.is_package:
            return self.name
        return self.name.rpartition(".")[0]

    def resolve_path(self, prefix: str) -> PurePosixPath:
        return module_source_path(prefix, self.name, self.is_package)

    def resolve_bytecode_path(
        self, prefix: str, level: BytecodeOptimizationLevel
    ) -> PurePosixPath:
        return module_bytecode_path(prefix, self.name, self.is_package, self.cache_tag, level)


@dataclass(frozen=True)
class PythonModuleBytecode:
    """Already compiled bytecode of a Python module."""

    name: str
    bytecode: FileData
    optimize_level: BytecodeOptimizationLevel
    is_package: bool
    cache_tag: str
    is_stdlib: bool = False
    is_test: bool = False

    def resolve_path(self, prefix: str) -> PurePosixPath:
        return module_bytecode_path(
            prefix, self.name, self.is_package, self.cache_tag, self.optimize_level
        )


@dataclass(frozen=True)
class PythonPackageResource:
    """A non-module file inside a Python package."""

    leaf_package: str
    relative_name: str
    data: FileData
    is_stdlib: bool = False
    is_test: bool = False

    @property
    def symbolic_name(self) -> str:
        return f"{self.leaf_package}:{self.relative_name}"

    def resolve_path(self, prefix: str) -> PurePosixPath:
        return PurePosixPath(prefix, *self.leaf_package.split("."), self.relative_name)


@dataclass(frozen=True)
class PythonPackageDistributionResource:
    """A file in a package's ``.dist-info`` metadata directory."""

    package: str
    version: str
    name: str
    data: FileData

    @property
    def symbolic_name(self) -> str:
        return f"{self.package}:{self.name}"

    def resolve_path(self, prefix: str) -> PurePosixPath:
        return PurePosixPath(prefix, f"{self.package}-{self.version}.dist-info", self.name)


@dataclass(frozen=True)
class PythonExtensionModule:
    """A compiled extension module (one build variant of it).

    Attributes:
        name: Full module name
        init_fn: Symbol of the module init function
        extension_file_suffix: Suffix of the shared library file (e.g. ``.so``)
        shared_library: Shared library providing the module, if any
        object_file_data: Object files for linking the module in statically
        is_package: Whether the module is a package
        link_libraries: Libraries the module must be linked against
        is_stdlib: Whether the module ships with the distribution
        builtin_default: Whether the distribution compiles it into libpython
        required: Whether the interpreter needs it to start
        variant: Build variant name
        license: Licensing of the module
    """

    name: str
    init_fn: str | None
    extension_file_suffix: str
    shared_library: FileData | None
    object_file_data: tuple[FileData, ...] = ()
    is_package: bool = False
    link_libraries: tuple[LibraryDependency, ...] = ()
    is_stdlib: bool = False
    builtin_default: bool = False
    required: bool = False
    variant: str | None = None
    license: LicensedComponent | None = field(default=None, compare=False)

    def file_name(self) -> str:
        leaf = self.name.rpartition(".")[2]
        return f"{leaf}{self.extension_file_suffix}"

    def resolve_path(self, prefix: str) -> PurePosixPath:
        parts = self.name.split(".")
        if self.is_package:
            return PurePosixPath(prefix, *parts, f"__init__{self.extension_file_suffix}")
        return PurePosixPath(prefix, *parts[:-1], self.file_name())

    def in_libpython(self) -> bool:
        return self.builtin_default


@dataclass(frozen=True)
class SharedLibrary:
    """A shared library an extension module needs at run time."""

    name: str
    data: FileData
    filename: str

    def resolve_path(self, prefix: str) -> PurePosixPath:
        return PurePosixPath(prefix, self.filename)


@dataclass(frozen=True)
class FileResource:
    """An arbitrary file identified by its relative path."""

    path: PurePosixPath
    entry: FileEntry

    @property
    def name(self) -> str:
        return str(self.path)


PythonResource = (
    PythonModuleSource
    | PythonModuleBytecode
    | PythonPackageResource
    | PythonPackageDistributionResource
    | PythonExtensionModule
    | SharedLibrary
    | FileResource
)
