"""Compilation of collected resources into their packed form.

Compiling turns every :class:`PrePackagedResource` into a
:class:`CompiledResource`: bytecode is produced by a
:class:`BytecodeCompiler`, in-memory content becomes entries of the packed
resources archive and relative-path content becomes entries of a
:class:`FileManifest`.

The packed resources archive is a zip file written deterministically:
members are sorted and carry a fixed timestamp, so identical inputs give
byte-identical archives.
"""

import io
import json
import logging
import marshal
import struct
import subprocess
import zipfile
from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from importlib.util import MAGIC_NUMBER, source_hash
from pathlib import Path
from typing import IO, TYPE_CHECKING, Protocol

from ..core.errors import BytecodeCompileError
from ..core.file_data import FileData, FileEntry, MemoryData
from ..file_manifest import FileManifest
from ..resources import BytecodeOptimizationLevel
from .prepackaged import BytecodeFromSource, BytecodeProvider, PrePackagedResource, ProvidedBytecode

if TYPE_CHECKING:
    from .collector import ResourceCollector

logger = logging.getLogger(__name__)

# Earliest timestamp a zip archive can represent
ZIP_TIMESTAMP = (1980, 1, 1, 0, 0, 0)

PACKED_RESOURCES_INDEX = "index.json"

_BYTECODE_KEYS = {
    BytecodeOptimizationLevel.ZERO: "bytecode",
    BytecodeOptimizationLevel.ONE: "bytecode-opt1",
    BytecodeOptimizationLevel.TWO: "bytecode-opt2",
}


class BytecodeHeaderMode(Enum):
    """How the 16-byte bytecode header validates against the source (PEP 552)."""

    MODIFIED_TIME = "modified-time"
    UNCHECKED_HASH = "unchecked-hash"
    CHECKED_HASH = "checked-hash"


class BytecodeCompiler(Protocol):
    """Turns module source into a complete ``.pyc`` payload."""

    def compile(
        self,
        source: bytes,
        filename: str,
        optimize: BytecodeOptimizationLevel,
        header_mode: BytecodeHeaderMode,
    ) -> bytes: ...


def bytecode_header(magic: bytes, source: bytes, header_mode: BytecodeHeaderMode) -> bytes:
    """Build the 16-byte header preceding marshalled code.

    ``MODIFIED_TIME`` headers record a zero timestamp so output stays
    reproducible.
    """
    if header_mode is BytecodeHeaderMode.MODIFIED_TIME:
        return (
            magic
            + (0).to_bytes(4, "little")
            + (0).to_bytes(4, "little")
            + (len(source) & 0xFFFFFFFF).to_bytes(4, "little")
        )
    if header_mode is BytecodeHeaderMode.UNCHECKED_HASH:
        return magic + (0b01).to_bytes(4, "little") + source_hash(source)
    if header_mode is BytecodeHeaderMode.CHECKED_HASH:
        return magic + (0b11).to_bytes(4, "little") + source_hash(source)
    raise AssertionError(f"Unhandled bytecode header mode: {header_mode}")


class HostBytecodeCompiler:
    """Compiles bytecode with the running interpreter.

    The output is only loadable by an interpreter with the same bytecode
    format as the host, so only the host's magic number is accepted.

    Raises:
        BytecodeCompileError: If ``magic_number`` is not the host's
    """

    def __init__(self, magic_number: bytes | None = None):
        if magic_number and magic_number != MAGIC_NUMBER:
            raise BytecodeCompileError(
                f"running interpreter writes bytecode with magic {MAGIC_NUMBER.hex()}, "
                f"not {magic_number.hex()}; compile with the target's interpreter"
            )
        self.magic_number = MAGIC_NUMBER

    def compile(
        self,
        source: bytes,
        filename: str,
        optimize: BytecodeOptimizationLevel,
        header_mode: BytecodeHeaderMode,
    ) -> bytes:
        try:
            code = compile(source, filename, "exec", dont_inherit=True, optimize=int(optimize))
        except (SyntaxError, ValueError) as e:
            raise BytecodeCompileError(f"unable to compile {filename}: {e}") from e

        return bytecode_header(self.magic_number, source, header_mode) + marshal.dumps(code)


# Runs inside the compiling interpreter. Requests are
# <name length, source length, optimize> followed by name and source;
# replies are <status, payload length> followed by marshalled code or
# the error message.
_COMPILER_SCRIPT = """
import marshal, struct, sys
inp, out = sys.stdin.buffer, sys.stdout.buffer
while True:
    head = inp.read(12)
    if len(head) < 12:
        break
    name_len, source_len, optimize = struct.unpack("<III", head)
    name = inp.read(name_len).decode("utf-8")
    source = inp.read(source_len)
    try:
        payload = marshal.dumps(compile(source, name, "exec", dont_inherit=True, optimize=optimize))
        status = 0
    except (SyntaxError, ValueError) as e:
        payload = str(e).encode("utf-8")
        status = 1
    out.write(struct.pack("<II", status, len(payload)))
    out.write(payload)
    out.flush()
"""


class SubprocessBytecodeCompiler:
    """Compiles bytecode with another interpreter running in a subprocess.

    The interpreter is started on first use and kept running until
    :meth:`close`. Use it as a context manager to close it reliably.

    Args:
        python_exe: Interpreter whose bytecode format is wanted
        magic_number: Magic number written into headers
    """

    def __init__(self, python_exe: Path, magic_number: bytes):
        self.python_exe = python_exe
        self.magic_number = magic_number
        self._proc: subprocess.Popen | None = None

    def __enter__(self) -> "SubprocessBytecodeCompiler":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _process(self) -> subprocess.Popen:
        if self._proc is None:
            try:
                self._proc = subprocess.Popen(
                    [str(self.python_exe), "-I", "-c", _COMPILER_SCRIPT],
                    stdin=subprocess.PIPE,
                    stdout=subprocess.PIPE,
                )
            except OSError as e:
                raise BytecodeCompileError(f"unable to run {self.python_exe}: {e}") from e
        return self._proc

    def _read_exactly(self, stream: IO[bytes], size: int) -> bytes:
        data = stream.read(size)
        if len(data) != size:
            raise BytecodeCompileError(f"{self.python_exe} stopped responding")
        return data

    def compile(
        self,
        source: bytes,
        filename: str,
        optimize: BytecodeOptimizationLevel,
        header_mode: BytecodeHeaderMode,
    ) -> bytes:
        proc = self._process()
        if proc.stdin is None or proc.stdout is None:
            raise AssertionError("compiler process has no pipes")

        name = filename.encode("utf-8")
        try:
            proc.stdin.write(struct.pack("<III", len(name), len(source), int(optimize)))
            proc.stdin.write(name)
            proc.stdin.write(source)
            proc.stdin.flush()
        except OSError as e:
            raise BytecodeCompileError(f"{self.python_exe} stopped responding: {e}") from e

        status, size = struct.unpack("<II", self._read_exactly(proc.stdout, 8))
        payload = self._read_exactly(proc.stdout, size)
        if status != 0:
            raise BytecodeCompileError(
                f"unable to compile {filename}: {payload.decode('utf-8', errors='replace')}"
            )

        return bytecode_header(self.magic_number, source, header_mode) + payload

    def close(self) -> None:
        """Stop the compiling interpreter."""
        if self._proc is None:
            return
        proc, self._proc = self._proc, None
        if proc.stdin is not None:
            proc.stdin.close()
        if proc.stdout is not None:
            proc.stdout.close()
        proc.wait()


@dataclass
class CompiledResource:
    """A resource in its final form.

    Attributes:
        name: Resource name
        flags: Role flags that are set
        in_memory: Key -> content embedded in the packed resources
        relative_path: Key -> path of content installed next to the binary
        shared_library_dependency_names: Shared libraries loaded first
    """

    name: str
    flags: list[str] = field(default_factory=list)
    in_memory: dict[str, bytes] = field(default_factory=dict)
    relative_path: dict[str, str] = field(default_factory=dict)
    shared_library_dependency_names: list[str] = field(default_factory=list)

    def to_document(self) -> dict[str, object]:
        document: dict[str, object] = {
            "name": self.name,
            "flags": list(self.flags),
            "in_memory": sorted(self.in_memory),
            "relative_path": [self.relative_path[k] for k in sorted(self.relative_path)],
        }
        if self.shared_library_dependency_names:
            document["shared_library_dependency_names"] = list(
                self.shared_library_dependency_names
            )
        return document


class CompiledResourcesCollection:
    """Compiled resources plus the files to install next to the binary."""

    def __init__(self) -> None:
        self.resources: dict[str, CompiledResource] = {}
        self.extra_files = FileManifest()

    def __len__(self) -> int:
        return len(self.resources)

    def iter_resources(self) -> Iterator[CompiledResource]:
        for name in sorted(self.resources):
            yield self.resources[name]

    def to_document(self) -> list[dict[str, object]]:
        return [resource.to_document() for resource in self.iter_resources()]

    def packed_resources_bytes(self) -> bytes:
        """Serialize in-memory content as a deterministic zip archive.

        Members are ``<resource name>/<key>``, plus an ``index.json``
        describing every resource.
        """
        members: list[tuple[str, bytes]] = []
        for resource in self.iter_resources():
            for key in sorted(resource.in_memory):
                members.append((f"{resource.name}/{key}", resource.in_memory[key]))

        index = json.dumps(self.to_document(), indent=2, sort_keys=True).encode("utf-8")
        members.append((PACKED_RESOURCES_INDEX, index))
        members.sort(key=lambda m: m[0])

        buf = io.BytesIO()
        with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
            for arcname, data in members:
                info = zipfile.ZipInfo(arcname, date_time=ZIP_TIMESTAMP)
                info.compress_type = zipfile.ZIP_DEFLATED
                info.external_attr = 0o644 << 16
                zf.writestr(info, data)
        return buf.getvalue()

    def write_packed_resources(self, path: Path) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(self.packed_resources_bytes())


def _resolve_bytecode(
    compiler: BytecodeCompiler,
    name: str,
    provider: BytecodeProvider,
    level: BytecodeOptimizationLevel,
) -> bytes:
    if isinstance(provider, ProvidedBytecode):
        return provider.bytecode.resolve_content()
    if isinstance(provider, BytecodeFromSource):
        return compiler.compile(
            provider.source.resolve_content(),
            name,
            level,
            BytecodeHeaderMode.UNCHECKED_HASH,
        )
    raise AssertionError(f"Unhandled bytecode provider: {type(provider).__name__}")


def _add_extra_file(
    compiled: CompiledResourcesCollection,
    resource: CompiledResource,
    key: str,
    path: str,
    data: FileData,
    executable: bool = False,
) -> None:
    resource.relative_path[key] = path
    compiled.extra_files.add_file_entry(path, FileEntry(data=data, executable=executable))


def compile_resource(
    entry: PrePackagedResource,
    compiler: BytecodeCompiler,
    compiled: CompiledResourcesCollection,
) -> CompiledResource:
    """Compile one collected entry, registering its relative-path files."""
    resource = CompiledResource(name=entry.name, flags=entry.flags())

    if entry.in_memory_source is not None:
        resource.in_memory["source"] = entry.in_memory_source.resolve_content()

    for level, provider in entry.in_memory_bytecode_slots():
        if provider is not None:
            resource.in_memory[_BYTECODE_KEYS[level]] = _resolve_bytecode(
                compiler, entry.name, provider, level
            )

    if entry.in_memory_extension_module_shared_library is not None:
        resource.in_memory["extension-module"] = (
            entry.in_memory_extension_module_shared_library.resolve_content()
        )

    for name, data in sorted((entry.in_memory_package_resources or {}).items()):
        resource.in_memory[f"resource:{name}"] = data.resolve_content()

    for name, data in sorted((entry.in_memory_distribution_resources or {}).items()):
        resource.in_memory[f"distribution-resource:{name}"] = data.resolve_content()

    if entry.in_memory_shared_library is not None:
        resource.in_memory["shared-library"] = entry.in_memory_shared_library.resolve_content()

    if entry.file_data_embedded is not None:
        resource.in_memory["file"] = entry.file_data_embedded.resolve_content()

    if entry.relative_path_module_source is not None:
        rel = entry.relative_path_module_source
        _add_extra_file(compiled, resource, "source", str(rel.path), rel.data)

    for level, rel_bytecode in entry.relative_path_bytecode_slots():
        if rel_bytecode is not None:
            bytecode = _resolve_bytecode(compiler, entry.name, rel_bytecode.provider, level)
            _add_extra_file(
                compiled,
                resource,
                _BYTECODE_KEYS[level],
                str(rel_bytecode.path),
                MemoryData(bytecode),
            )

    if entry.relative_path_extension_module_shared_library is not None:
        rel = entry.relative_path_extension_module_shared_library
        _add_extra_file(
            compiled, resource, "extension-module", str(rel.path), rel.data, executable=True
        )

    for name, rel in sorted((entry.relative_path_package_resources or {}).items()):
        _add_extra_file(compiled, resource, f"resource:{name}", str(rel.path), rel.data)

    for name, rel in sorted((entry.relative_path_distribution_resources or {}).items()):
        _add_extra_file(
            compiled, resource, f"distribution-resource:{name}", str(rel.path), rel.data
        )

    if entry.relative_path_shared_library is not None:
        rel = entry.relative_path_shared_library
        _add_extra_file(
            compiled, resource, "shared-library", str(rel.path), rel.data, executable=True
        )

    if entry.file_data_relative_path is not None:
        rel = entry.file_data_relative_path
        _add_extra_file(
            compiled, resource, "file", str(rel.path), rel.data, executable=entry.file_executable
        )

    if entry.shared_library_dependency_names:
        resource.shared_library_dependency_names = list(entry.shared_library_dependency_names)

    return resource


def _namespace_parents(names: list[str]) -> list[str]:
    """Parent packages of ``names`` that are not themselves collected."""
    existing = set(names)
    parents: set[str] = set()
    for name in names:
        parts = name.split(".")
        for end in range(1, len(parts)):
            parent = ".".join(parts[:end])
            if parent not in existing:
                parents.add(parent)
    return sorted(parents)


def compile_collected_resources(
    collector: "ResourceCollector", compiler: BytecodeCompiler
) -> CompiledResourcesCollection:
    """Compile every entry of a collector.

    Parent packages of collected modules that were not collected
    themselves are emitted as namespace packages so the importer can
    resolve the dotted names.

    Args:
        collector: Populated collector
        compiler: Bytecode compiler for source-derived bytecode

    Returns:
        The compiled collection
    """
    compiled = CompiledResourcesCollection()
    module_names: list[str] = []

    for name, entry in collector.iter_resources():
        compiled.resources[name] = compile_resource(entry, compiler, compiled)
        if entry.is_module or entry.is_package or entry.is_extension_module:
            module_names.append(name)

    for parent in _namespace_parents(module_names):
        if parent not in compiled.resources:
            compiled.resources[parent] = CompiledResource(
                name=parent, flags=["is_package", "is_namespace_package"]
            )

    logger.info(
        "compiled %d resources (%d extra files)", len(compiled.resources), len(compiled.extra_files)
    )
    return compiled
