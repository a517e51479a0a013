"""Collected resources awaiting compilation.

A :class:`PrePackagedResource` gathers every contribution made under one
resource name: source, up to three bytecode slots, extension module and
shared library content, package resources and arbitrary file data. Each
contribution lives either in memory or at a relative path; a single name
may mix both (in-memory source with a relative-path shared library, say).
"""

from dataclasses import dataclass
from pathlib import PurePosixPath

from ..core.file_data import FileData
from ..resources import BytecodeOptimizationLevel


@dataclass(frozen=True)
class BytecodeFromSource:
    """Bytecode to be compiled from module source."""

    source: FileData


@dataclass(frozen=True)
class ProvidedBytecode:
    """Bytecode that was already compiled."""

    bytecode: FileData


BytecodeProvider = BytecodeFromSource | ProvidedBytecode


@dataclass(frozen=True)
class RelativePathData:
    """Content to install at a path relative to the produced binary."""

    path: PurePosixPath
    data: FileData


@dataclass(frozen=True)
class RelativePathBytecode:
    """Bytecode to install at a path relative to the produced binary."""

    path: PurePosixPath
    provider: BytecodeProvider


@dataclass
class PrePackagedResource:
    """Everything collected under one resource name."""

    name: str
    is_package: bool = False
    is_namespace_package: bool = False
    is_module: bool = False
    is_builtin_extension_module: bool = False
    is_frozen_module: bool = False
    is_extension_module: bool = False
    is_shared_library: bool = False
    is_utf8_filename_data: bool = False
    file_executable: bool = False

    in_memory_source: FileData | None = None
    in_memory_bytecode: BytecodeProvider | None = None
    in_memory_bytecode_opt1: BytecodeProvider | None = None
    in_memory_bytecode_opt2: BytecodeProvider | None = None
    in_memory_extension_module_shared_library: FileData | None = None
    in_memory_package_resources: dict[str, FileData] | None = None
    in_memory_distribution_resources: dict[str, FileData] | None = None
    in_memory_shared_library: FileData | None = None
    shared_library_dependency_names: list[str] | None = None

    relative_path_module_source: RelativePathData | None = None
    relative_path_bytecode: RelativePathBytecode | None = None
    relative_path_bytecode_opt1: RelativePathBytecode | None = None
    relative_path_bytecode_opt2: RelativePathBytecode | None = None
    relative_path_extension_module_shared_library: RelativePathData | None = None
    relative_path_package_resources: dict[str, RelativePathData] | None = None
    relative_path_distribution_resources: dict[str, RelativePathData] | None = None
    relative_path_shared_library: RelativePathData | None = None

    file_data_embedded: FileData | None = None
    file_data_relative_path: RelativePathData | None = None

    def set_in_memory_bytecode(
        self, level: BytecodeOptimizationLevel, provider: BytecodeProvider
    ) -> None:
        if level == BytecodeOptimizationLevel.ZERO:
            self.in_memory_bytecode = provider
        elif level == BytecodeOptimizationLevel.ONE:
            self.in_memory_bytecode_opt1 = provider
        else:
            self.in_memory_bytecode_opt2 = provider

    def set_relative_path_bytecode(
        self, level: BytecodeOptimizationLevel, entry: RelativePathBytecode
    ) -> None:
        if level == BytecodeOptimizationLevel.ZERO:
            self.relative_path_bytecode = entry
        elif level == BytecodeOptimizationLevel.ONE:
            self.relative_path_bytecode_opt1 = entry
        else:
            self.relative_path_bytecode_opt2 = entry

    def in_memory_bytecode_slots(
        self,
    ) -> list[tuple[BytecodeOptimizationLevel, BytecodeProvider | None]]:
        return [
            (BytecodeOptimizationLevel.ZERO, self.in_memory_bytecode),
            (BytecodeOptimizationLevel.ONE, self.in_memory_bytecode_opt1),
            (BytecodeOptimizationLevel.TWO, self.in_memory_bytecode_opt2),
        ]

    def relative_path_bytecode_slots(
        self,
    ) -> list[tuple[BytecodeOptimizationLevel, RelativePathBytecode | None]]:
        return [
            (BytecodeOptimizationLevel.ZERO, self.relative_path_bytecode),
            (BytecodeOptimizationLevel.ONE, self.relative_path_bytecode_opt1),
            (BytecodeOptimizationLevel.TWO, self.relative_path_bytecode_opt2),
        ]

    def flags(self) -> list[str]:
        """Names of the role flags that are set, in a fixed order."""
        names = [
            "is_package",
            "is_namespace_package",
            "is_module",
            "is_builtin_extension_module",
            "is_frozen_module",
            "is_extension_module",
            "is_shared_library",
            "is_utf8_filename_data",
            "file_executable",
        ]
        return [n for n in names if getattr(self, n)]
