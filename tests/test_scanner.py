"""Tests for scanner module."""

import tempfile
from pathlib import Path

import pytest

from pyembed_packaging.core.file_data import PathData
from pyembed_packaging.resources import (
    PythonExtensionModule,
    PythonModuleSource,
    PythonPackageDistributionResource,
    PythonPackageResource,
)
from pyembed_packaging.scanner import (
    PythonModuleSuffixes,
    find_python_resources,
    is_package_from_path,
    is_test_module,
    validate_path_safety,
    walk_tree_files,
)

SUFFIXES = PythonModuleSuffixes(
    source=(".py",),
    bytecode=(".pyc",),
    optimized_bytecode=(".opt-1.pyc", ".opt-2.pyc"),
    extension=(".cpython-312-x86_64-linux-gnu.so", ".abi3.so", ".so"),
)


def _touch(root: Path, rel: str, content: bytes = b"") -> Path:
    path = root / rel
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(content)
    return path


class TestValidatePathSafety:
    """Test path traversal prevention."""

    def test_allows_paths_within_base(self) -> None:
        """Test that paths within base directory are allowed."""
        with tempfile.TemporaryDirectory() as tmpdir:
            base = Path(tmpdir)
            safe_path = base / "subdir" / "file.txt"
            # Should not raise
            validate_path_safety(safe_path, base)

    def test_rejects_path_traversal(self) -> None:
        """Test that path traversal attempts are rejected."""
        with tempfile.TemporaryDirectory() as tmpdir:
            base = Path(tmpdir)
            # Create a path that tries to escape
            dangerous_path = base / ".." / ".." / "etc" / "passwd"

            with pytest.raises(ValueError, match="escapes base directory"):
                validate_path_safety(dangerous_path, base)

    def test_allows_symlinks_within_base(self) -> None:
        """Test that symlinks within base directory are allowed."""
        with tempfile.TemporaryDirectory() as tmpdir:
            base = Path(tmpdir)
            target = base / "target.txt"
            target.write_text("test")
            link = base / "link.txt"
            link.symlink_to(target)

            # Should not raise
            validate_path_safety(link, base)


class TestWalkTreeFiles:
    """Test deterministic directory traversal."""

    def test_lexical_order(self, tmp_path: Path) -> None:
        """Test that files are yielded in sorted order, depth first."""
        for rel in ("b.txt", "a/z.txt", "a/b/c.txt", "c.txt", "A.txt"):
            _touch(tmp_path, rel)

        rels = [p.relative_to(tmp_path).as_posix() for p in walk_tree_files(tmp_path)]

        assert rels == ["A.txt", "a/b/c.txt", "a/z.txt", "b.txt", "c.txt"]

    def test_directories_not_yielded(self, tmp_path: Path) -> None:
        """Test that empty directories produce nothing."""
        (tmp_path / "empty" / "nested").mkdir(parents=True)

        assert list(walk_tree_files(tmp_path)) == []


class TestModuleClassificationHelpers:
    """Test small classification helpers."""

    def test_is_package_from_path(self) -> None:
        """Test that only __init__ files denote packages."""
        assert is_package_from_path(Path("json/__init__.py"))
        assert not is_package_from_path(Path("json/decoder.py"))

    def test_is_test_module(self) -> None:
        """Test that test packages match by prefix on a dotted boundary."""
        assert is_test_module("test", ["test"])
        assert is_test_module("test.support.script", ["test"])
        assert not is_test_module("tests", ["test"])
        assert not is_test_module("test", [])

    def test_suffixes_from_manifest_defaults(self) -> None:
        """Test that missing suffix classes fall back to defaults."""
        suffixes = PythonModuleSuffixes.from_manifest({"extension": [".pyd"]})

        assert suffixes.source == (".py",)
        assert suffixes.bytecode == (".pyc",)
        assert suffixes.extension == (".pyd",)


class TestFindPythonResources:
    """Test classification of a directory tree into resources."""

    def _scan(self, root: Path, **kwargs) -> list:
        return list(find_python_resources(root, "cpython-312", SUFFIXES, **kwargs))

    def test_modules_and_packages(self, tmp_path: Path) -> None:
        """Test that sources become modules named by their dotted path."""
        _touch(tmp_path, "top.py")
        _touch(tmp_path, "pkg/__init__.py")
        _touch(tmp_path, "pkg/sub/__init__.py")
        _touch(tmp_path, "pkg/sub/mod.py")

        resources = self._scan(tmp_path)

        assert all(isinstance(r, PythonModuleSource) for r in resources)
        by_name = {r.name: r for r in resources}
        assert sorted(by_name) == ["pkg", "pkg.sub", "pkg.sub.mod", "top"]
        assert by_name["pkg"].is_package
        assert by_name["pkg.sub"].is_package
        assert not by_name["pkg.sub.mod"].is_package
        assert by_name["top"].cache_tag == "cpython-312"

    def test_sources_are_path_backed(self, tmp_path: Path) -> None:
        """Test that scanning does not read file content."""
        path = _touch(tmp_path, "top.py", b"x = 1\n")

        (resource,) = self._scan(tmp_path)

        assert isinstance(resource.source, PathData)
        assert resource.source.path == path

    def test_top_level_init_ignored(self, tmp_path: Path) -> None:
        """Test that an __init__ at the scan root is not a module."""
        _touch(tmp_path, "__init__.py")
        _touch(tmp_path, "mod.py")

        assert [r.name for r in self._scan(tmp_path)] == ["mod"]

    def test_bytecode_and_stdlib_extensions_skipped(self, tmp_path: Path) -> None:
        """Test that compiled stdlib files are left to the descriptor."""
        _touch(tmp_path, "pkg/__init__.py")
        _touch(tmp_path, "pkg/fast.cpython-312-x86_64-linux-gnu.so")
        _touch(tmp_path, "pkg/legacy.pyc")
        _touch(tmp_path, "pkg/legacy.opt-1.pyc")
        _touch(tmp_path, "pkg/__pycache__/__init__.cpython-312.pyc")

        assert [r.name for r in self._scan(tmp_path, is_stdlib=True)] == ["pkg"]

    def test_application_extension_modules(self, tmp_path: Path) -> None:
        """Test that extension files outside the stdlib become extension modules."""
        _touch(tmp_path, "app/__init__.py")
        so = _touch(tmp_path, "app/_speedups.cpython-312-x86_64-linux-gnu.so", b"\x7fELF")
        _touch(tmp_path, "native/__init__.abi3.so")
        _touch(tmp_path, "bad-dir/_mod.so")

        resources = self._scan(tmp_path)

        extensions = [r for r in resources if isinstance(r, PythonExtensionModule)]
        assert [r.name for r in extensions] == ["app._speedups", "native"]

        speedups = extensions[0]
        assert speedups.init_fn == "PyInit__speedups"
        assert speedups.extension_file_suffix == ".cpython-312-x86_64-linux-gnu.so"
        assert speedups.shared_library == PathData(so)
        assert not speedups.is_package
        assert not speedups.is_stdlib
        assert str(speedups.resolve_path("lib")) == (
            "lib/app/_speedups.cpython-312-x86_64-linux-gnu.so"
        )

        native = extensions[1]
        assert native.is_package
        assert native.init_fn == "PyInit_native"
        assert str(native.resolve_path("lib")) == "lib/native/__init__.abi3.so"

    def test_package_resources(self, tmp_path: Path) -> None:
        """Test that data files belong to their deepest package."""
        _touch(tmp_path, "pkg/__init__.py")
        _touch(tmp_path, "pkg/data/__init__.py")
        _touch(tmp_path, "pkg/data/table.csv")
        _touch(tmp_path, "pkg/templates/page.html")

        resources = [r for r in self._scan(tmp_path) if isinstance(r, PythonPackageResource)]

        assert [(r.leaf_package, r.relative_name) for r in resources] == [
            ("pkg.data", "table.csv"),
            ("pkg", "templates/page.html"),
        ]

    def test_files_outside_packages_skipped(self, tmp_path: Path) -> None:
        """Test that loose data files and non-package directories are ignored."""
        _touch(tmp_path, "README.txt")
        _touch(tmp_path, "lib-dynload/_ssl.so")
        _touch(tmp_path, "scripts/tool.txt")

        assert self._scan(tmp_path) == []

    def test_non_identifier_directories_not_modules(self, tmp_path: Path) -> None:
        """Test that sources below non-identifier directories are not modules."""
        _touch(tmp_path, "pkg/__init__.py")
        _touch(tmp_path, "pkg/some-dir/helper.py")

        resources = self._scan(tmp_path)

        assert [type(r) for r in resources] == [PythonModuleSource, PythonPackageResource]
        assert resources[1].relative_name == "some-dir/helper.py"

    def test_dist_info(self, tmp_path: Path) -> None:
        """Test that dist-info content becomes distribution resources."""
        _touch(tmp_path, "requests-2.31.0.dist-info/METADATA")
        _touch(tmp_path, "requests-2.31.0.dist-info/licenses/LICENSE")

        resources = self._scan(tmp_path)

        assert all(isinstance(r, PythonPackageDistributionResource) for r in resources)
        assert [(r.package, r.version, r.name) for r in resources] == [
            ("requests", "2.31.0", "METADATA"),
            ("requests", "2.31.0", "licenses/LICENSE"),
        ]

    def test_site_packages_ignored(self, tmp_path: Path) -> None:
        """Test that a nested site-packages directory is not scanned."""
        _touch(tmp_path, "site-packages/extra/__init__.py")
        _touch(tmp_path, "os.py")

        assert [r.name for r in self._scan(tmp_path)] == ["os"]

    def test_stdlib_and_test_flags(self, tmp_path: Path) -> None:
        """Test that classification flags are applied."""
        _touch(tmp_path, "test/__init__.py")
        _touch(tmp_path, "test/data.txt")
        _touch(tmp_path, "json.py")

        resources = self._scan(tmp_path, is_stdlib=True, test_packages=["test"])

        flags = {getattr(r, "name", None) or r.relative_name: r.is_test for r in resources}
        assert flags == {"json": False, "test": True, "data.txt": True}
        assert all(r.is_stdlib for r in resources)

    def test_repeated_scans_identical(self, tmp_path: Path) -> None:
        """Test that scanning twice yields the same sequence."""
        for rel in ("b/__init__.py", "a/__init__.py", "a/x.dat", "c.py"):
            _touch(tmp_path, rel)

        assert self._scan(tmp_path) == self._scan(tmp_path)
