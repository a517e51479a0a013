"""Tests for resource compilation and the packed resources archive."""

import io
import json
import marshal
import sys
import zipfile
from importlib.util import MAGIC_NUMBER, source_hash
from pathlib import Path

import pytest
from conftest import RecordingCompiler

from pyembed_packaging.collector import (
    BytecodeHeaderMode,
    CompiledResourcesCollection,
    HostBytecodeCompiler,
    ResourceCollector,
    SubprocessBytecodeCompiler,
)
from pyembed_packaging.collector.compiled import ZIP_TIMESTAMP, bytecode_header
from pyembed_packaging.core.errors import BytecodeCompileError
from pyembed_packaging.core.file_data import MemoryData
from pyembed_packaging.core.locations import AbstractResourceLocation, ConcreteResourceLocation
from pyembed_packaging.resources import (
    BytecodeOptimizationLevel,
    PythonExtensionModule,
    PythonModuleSource,
    PythonPackageResource,
)

MAGIC = bytes.fromhex("cb0d0d0a")
IN_MEMORY = ConcreteResourceLocation.in_memory()
LIB = ConcreteResourceLocation.relative_path("lib")


def _collector() -> ResourceCollector:
    return ResourceCollector(
        allowed_locations=[AbstractResourceLocation.IN_MEMORY, AbstractResourceLocation.RELATIVE_PATH],
        allowed_extension_module_locations=[AbstractResourceLocation.RELATIVE_PATH],
        allow_new_builtin_extension_modules=True,
        allow_files=False,
    )


def _source(name: str, source: bytes = b"x = 1\n", is_package: bool = False) -> PythonModuleSource:
    return PythonModuleSource(
        name=name, source=MemoryData(source), is_package=is_package, cache_tag="cpython-312"
    )


class TestBytecodeHeader:
    """Test PEP 552 headers."""

    def test_unchecked_hash(self) -> None:
        """Test that unchecked hash headers carry the source hash."""
        header = bytecode_header(MAGIC, b"x = 1\n", BytecodeHeaderMode.UNCHECKED_HASH)

        assert len(header) == 16
        assert header[:4] == MAGIC
        assert header[4:8] == (1).to_bytes(4, "little")
        assert header[8:] == source_hash(b"x = 1\n")

    def test_checked_hash(self) -> None:
        """Test the checked hash flag."""
        header = bytecode_header(MAGIC, b"", BytecodeHeaderMode.CHECKED_HASH)
        assert header[4:8] == (3).to_bytes(4, "little")

    def test_modified_time_is_reproducible(self) -> None:
        """Test that timestamp headers record zero time and the source size."""
        header = bytecode_header(MAGIC, b"abc", BytecodeHeaderMode.MODIFIED_TIME)

        assert header[4:12] == b"\x00" * 8
        assert header[12:] == (3).to_bytes(4, "little")


class TestHostBytecodeCompiler:
    """Test compilation with the running interpreter."""

    def test_compiles_with_magic(self) -> None:
        """Test that output is the header followed by marshalled code."""
        compiler = HostBytecodeCompiler(MAGIC_NUMBER)

        pyc = compiler.compile(
            b"x = 1\n", "app", BytecodeOptimizationLevel.ZERO, BytecodeHeaderMode.UNCHECKED_HASH
        )

        assert pyc[:4] == MAGIC_NUMBER
        code = marshal.loads(pyc[16:])
        namespace: dict = {}
        exec(code, namespace)
        assert namespace["x"] == 1

    def test_default_magic(self) -> None:
        """Test that the host magic number is used by default."""
        assert HostBytecodeCompiler().magic_number == MAGIC_NUMBER

    def test_foreign_magic_rejected(self) -> None:
        """Test that bytecode for another interpreter version is refused."""
        with pytest.raises(BytecodeCompileError, match="target's interpreter"):
            HostBytecodeCompiler(bytes.fromhex("00000d0a"))

    def test_optimize_strips_asserts(self) -> None:
        """Test that the optimization level is honored."""
        compiler = HostBytecodeCompiler(MAGIC_NUMBER)
        source = b"def f():\n    assert False\n    return 1\n"

        pyc = compiler.compile(
            source, "app", BytecodeOptimizationLevel.ONE, BytecodeHeaderMode.UNCHECKED_HASH
        )

        namespace: dict = {}
        exec(marshal.loads(pyc[16:]), namespace)
        assert namespace["f"]() == 1

    def test_syntax_error(self) -> None:
        """Test that invalid source raises a packaging error."""
        compiler = HostBytecodeCompiler(MAGIC_NUMBER)

        with pytest.raises(BytecodeCompileError, match="broken"):
            compiler.compile(
                b"def (:\n",
                "broken",
                BytecodeOptimizationLevel.ZERO,
                BytecodeHeaderMode.UNCHECKED_HASH,
            )



class TestSubprocessBytecodeCompiler:
    """Test compilation with an interpreter in a subprocess."""

    def test_compiles_with_magic(self) -> None:
        """Test that the requested magic heads code from the other interpreter."""
        magic = bytes.fromhex("00000d0a")

        with SubprocessBytecodeCompiler(Path(sys.executable), magic) as compiler:
            first = compiler.compile(
                b"x = 1\n", "app", BytecodeOptimizationLevel.ZERO, BytecodeHeaderMode.UNCHECKED_HASH
            )
            second = compiler.compile(
                b"y = 2\n", "lib", BytecodeOptimizationLevel.ZERO, BytecodeHeaderMode.UNCHECKED_HASH
            )

        assert first[:4] == magic
        assert first[8:16] == source_hash(b"x = 1\n")
        namespace: dict = {}
        exec(marshal.loads(first[16:]), namespace)
        exec(marshal.loads(second[16:]), namespace)
        assert namespace["x"] == 1
        assert namespace["y"] == 2

    def test_optimize_strips_asserts(self) -> None:
        """Test that the optimization level reaches the other interpreter."""
        source = b"def f():\n    assert False\n    return 1\n"

        with SubprocessBytecodeCompiler(Path(sys.executable), MAGIC_NUMBER) as compiler:
            pyc = compiler.compile(
                source, "app", BytecodeOptimizationLevel.TWO, BytecodeHeaderMode.UNCHECKED_HASH
            )

        namespace: dict = {}
        exec(marshal.loads(pyc[16:]), namespace)
        assert namespace["f"]() == 1

    def test_syntax_error_keeps_process(self) -> None:
        """Test that a syntax error is reported and later sources still compile."""
        with SubprocessBytecodeCompiler(Path(sys.executable), MAGIC_NUMBER) as compiler:
            with pytest.raises(BytecodeCompileError, match="unable to compile broken"):
                compiler.compile(
                    b"def (:\n",
                    "broken",
                    BytecodeOptimizationLevel.ZERO,
                    BytecodeHeaderMode.UNCHECKED_HASH,
                )

            pyc = compiler.compile(
                b"x = 1\n", "app", BytecodeOptimizationLevel.ZERO, BytecodeHeaderMode.UNCHECKED_HASH
            )

        assert pyc[:4] == MAGIC_NUMBER

    def test_missing_interpreter(self, tmp_path: Path) -> None:
        """Test that an interpreter that cannot start raises a packaging error."""
        compiler = SubprocessBytecodeCompiler(tmp_path / "missing-python", MAGIC_NUMBER)

        with pytest.raises(BytecodeCompileError, match="unable to run"):
            compiler.compile(
                b"x = 1\n", "app", BytecodeOptimizationLevel.ZERO, BytecodeHeaderMode.UNCHECKED_HASH
            )

    def test_close_is_idempotent(self) -> None:
        """Test that closing twice is harmless."""
        compiler = SubprocessBytecodeCompiler(Path(sys.executable), MAGIC_NUMBER)
        compiler.compile(
            b"x = 1\n", "app", BytecodeOptimizationLevel.ZERO, BytecodeHeaderMode.UNCHECKED_HASH
        )

        compiler.close()
        compiler.close()

class TestCompileResources:
    """Test compiling a populated collector."""

    def test_in_memory_module(self) -> None:
        """Test that in-memory source and bytecode land in the packed content."""
        collector = _collector()
        module = _source("app")
        collector.add_python_module_source(module, IN_MEMORY)
        collector.add_python_module_bytecode_from_source(
            module, BytecodeOptimizationLevel.ONE, IN_MEMORY
        )
        compiler = RecordingCompiler()

        compiled = collector.compile_resources(compiler)

        resource = compiled.resources["app"]
        assert resource.flags == ["is_module"]
        assert resource.in_memory == {"source": b"x = 1\n", "bytecode-opt1": b"PYC\x01x = 1\n"}
        assert compiler.calls == [
            ("app", BytecodeOptimizationLevel.ONE, BytecodeHeaderMode.UNCHECKED_HASH)
        ]
        assert len(compiled.extra_files) == 0

    def test_relative_path_content_becomes_extra_files(self) -> None:
        """Test that relative-path content is installed next to the binary."""
        collector = _collector()
        module = _source("app", is_package=True)
        collector.add_python_module_source(module, LIB)
        collector.add_python_module_bytecode_from_source(
            module, BytecodeOptimizationLevel.ZERO, LIB
        )
        collector.add_python_package_resource(
            PythonPackageResource("app", "data.json", MemoryData(b"{}")), LIB
        )

        compiled = collector.compile_resources(RecordingCompiler())

        resource = compiled.resources["app"]
        assert resource.in_memory == {}
        assert resource.relative_path == {
            "source": "lib/app/__init__.py",
            "bytecode": "lib/app/__pycache__/__init__.cpython-312.pyc",
            "resource:data.json": "lib/app/data.json",
        }
        paths = [str(path) for path, _entry in compiled.extra_files.iter_entries()]
        assert paths == [
            "lib/app/__init__.py",
            "lib/app/__pycache__/__init__.cpython-312.pyc",
            "lib/app/data.json",
        ]

    def test_extension_shared_library_executable(self) -> None:
        """Test that extension module files are marked executable."""
        collector = _collector()
        collector.add_python_extension_module(
            PythonExtensionModule(
                name="_ssl",
                init_fn="PyInit__ssl",
                extension_file_suffix=".so",
                shared_library=MemoryData(b"\x7fELF"),
            ),
            LIB,
        )

        compiled = collector.compile_resources(RecordingCompiler())

        entry = compiled.extra_files.get("lib/_ssl.so")
        assert entry is not None
        assert entry.executable

    def test_namespace_parents(self) -> None:
        """Test that uncollected parent packages are synthesized."""
        collector = _collector()
        collector.add_python_module_source(_source("ns.inner.mod"), IN_MEMORY)

        compiled = collector.compile_resources(RecordingCompiler())

        assert sorted(compiled.resources) == ["ns", "ns.inner", "ns.inner.mod"]
        assert compiled.resources["ns"].flags == ["is_package", "is_namespace_package"]

    def test_builtin_extension_has_no_content(self) -> None:
        """Test that builtin extensions are recorded by flag only."""
        collector = _collector()
        collector.add_builtin_python_extension_module(
            PythonExtensionModule(
                name="_json",
                init_fn="PyInit__json",
                extension_file_suffix="",
                shared_library=None,
                builtin_default=True,
            )
        )

        compiled = collector.compile_resources(RecordingCompiler())

        resource = compiled.resources["_json"]
        assert resource.flags == ["is_builtin_extension_module"]
        assert resource.in_memory == {}


class TestPackedResources:
    """Test the packed resources archive."""

    def _compiled(self) -> CompiledResourcesCollection:
        collector = _collector()
        collector.add_python_module_source(_source("b"), IN_MEMORY)
        collector.add_python_module_source(_source("a", b"y = 2\n"), IN_MEMORY)
        return collector.compile_resources(RecordingCompiler())

    def test_members(self) -> None:
        """Test that members are sorted and include the index."""
        data = self._compiled().packed_resources_bytes()

        with zipfile.ZipFile(io.BytesIO(data)) as zf:
            assert zf.namelist() == ["a/source", "b/source", "index.json"]
            assert zf.read("a/source") == b"y = 2\n"
            index = json.loads(zf.read("index.json"))
            assert all(info.date_time == ZIP_TIMESTAMP for info in zf.infolist())

        assert [entry["name"] for entry in index] == ["a", "b"]
        assert index[0]["in_memory"] == ["source"]

    def test_deterministic(self) -> None:
        """Test that identical inputs give identical bytes."""
        assert self._compiled().packed_resources_bytes() == self._compiled().packed_resources_bytes()

    def test_write(self, tmp_path) -> None:
        """Test writing the archive to disk."""
        compiled = self._compiled()
        path = tmp_path / "out" / "packed-resources"

        compiled.write_packed_resources(path)

        assert path.read_bytes() == compiled.packed_resources_bytes()
