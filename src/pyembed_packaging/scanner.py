"""Directory scanning and Python resource classification.

This module handles filesystem traversal with path validation, and turns
a directory tree (a distribution's standard library or an application
package root) into classified Python resources. Traversal order is
lexical so repeated scans over the same tree yield identical sequences.
"""

import logging
from collections.abc import Iterator, Sequence
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath

from .core.file_data import PathData
from .resources import (
    PythonExtensionModule,
    PythonModuleSource,
    PythonPackageDistributionResource,
    PythonPackageResource,
    PythonResource,
)

logger = logging.getLogger(__name__)

# Directories never scanned for resources
IGNORED_DIRECTORIES = frozenset({"__pycache__", "site-packages"})


@dataclass(frozen=True)
class PythonModuleSuffixes:
    """Filename suffixes for each kind of Python module file."""

    source: tuple[str, ...] = (".py",)
    bytecode: tuple[str, ...] = (".pyc",)
    debug_bytecode: tuple[str, ...] = ()
    optimized_bytecode: tuple[str, ...] = ()
    extension: tuple[str, ...] = field(default_factory=tuple)

    @classmethod
    def from_manifest(cls, suffixes: dict[str, list[str]]) -> "PythonModuleSuffixes":
        """Build from the ``python_suffixes`` table of a descriptor.

        Missing suffix classes fall back to the defaults above.
        """
        default = cls()
        return cls(
            source=tuple(suffixes.get("source", default.source)),
            bytecode=tuple(suffixes.get("bytecode", default.bytecode)),
            debug_bytecode=tuple(suffixes.get("debug_bytecode", default.debug_bytecode)),
            optimized_bytecode=tuple(
                suffixes.get("optimized_bytecode", default.optimized_bytecode)
            ),
            extension=tuple(suffixes.get("extension", default.extension)),
        )

    def compiled_suffixes(self) -> tuple[str, ...]:
        return self.bytecode + self.debug_bytecode + self.optimized_bytecode


def validate_path_safety(path: Path, base_dir: Path) -> None:
    """Validate that a path stays within the base directory.

    This prevents path traversal attacks.

    Args:
        path: Path to validate
        base_dir: Base directory that path must be within

    Raises:
        ValueError: If path escapes the base directory
    """
    resolved_path = path.resolve()
    resolved_base = base_dir.resolve()

    if not resolved_path.is_relative_to(resolved_base):
        raise ValueError(f"Path {path} escapes base directory {base_dir}")


def walk_tree_files(root: Path) -> Iterator[Path]:
    """Recursively yield every file under ``root`` in lexical order.

    Entries of each directory are sorted by name and directories are
    descended into at their sorted position, so the sequence is stable
    across runs and platforms.

    Args:
        root: Directory to walk

    Yields:
        Paths of regular files (directories are not yielded)
    """
    for entry in sorted(root.iterdir(), key=lambda p: p.name):
        if entry.is_dir():
            yield from walk_tree_files(entry)
        else:
            yield entry


def relative_posix_path(path: Path, root: Path) -> str:
    """``path`` relative to ``root`` with forward slashes."""
    return path.relative_to(root).as_posix()


def is_package_from_path(path: Path) -> bool:
    """Whether a module source path denotes a package (``__init__``)."""
    return path.name.startswith("__init__.")


def is_test_module(name: str, test_packages: Sequence[str]) -> bool:
    """Whether a module or package name lies inside one of ``test_packages``."""
    for package in test_packages:
        if name == package or name.startswith(f"{package}."):
            return True
    return False


def _strip_suffix(filename: str, suffixes: Sequence[str]) -> str | None:
    # Longest suffix first so ".cpython-312-x86_64-linux-gnu.so" beats ".so"
    for suffix in sorted(suffixes, key=len, reverse=True):
        if filename.endswith(suffix) and len(filename) > len(suffix):
            return filename[: -len(suffix)]
    return None


def _all_identifiers(parts: Sequence[str]) -> bool:
    return all(part.isidentifier() for part in parts)


class _PackageIndex:
    """Caches which directories under a root are regular packages."""

    def __init__(self, root: Path, source_suffixes: Sequence[str]):
        self.root = root
        self.source_suffixes = source_suffixes
        self._cache: dict[tuple[str, ...], bool] = {}

    def is_package(self, parts: tuple[str, ...]) -> bool:
        if not parts or not _all_identifiers(parts):
            return False
        if parts not in self._cache:
            directory = self.root.joinpath(*parts)
            self._cache[parts] = any(
                (directory / f"__init__{suffix}").is_file() for suffix in self.source_suffixes
            )
        return self._cache[parts]

    def leaf_package(self, dir_parts: tuple[str, ...]) -> tuple[str, ...] | None:
        """Deepest package directory containing ``dir_parts``."""
        for end in range(len(dir_parts), 0, -1):
            candidate = dir_parts[:end]
            if self.is_package(candidate):
                return candidate
        return None


def _extension_module(
    path: Path, dir_parts: tuple[str, ...], stem: str
) -> PythonExtensionModule | None:
    if not (_all_identifiers(dir_parts) and stem.isidentifier()):
        logger.debug("ignoring extension module file %s: not importable", path)
        return None

    is_package = stem == "__init__"
    if is_package and not dir_parts:
        return None
    parts = dir_parts if is_package else dir_parts + (stem,)

    return PythonExtensionModule(
        name=".".join(parts),
        init_fn=f"PyInit_{parts[-1]}",
        extension_file_suffix=path.name[len(stem) :],
        shared_library=PathData(path),
        is_package=is_package,
    )


def find_python_resources(
    root: Path,
    cache_tag: str,
    suffixes: PythonModuleSuffixes,
    *,
    is_stdlib: bool = False,
    test_packages: Sequence[str] = (),
) -> Iterator[PythonResource]:
    """Classify every file under ``root`` as a Python resource.

    Module sources become :class:`PythonModuleSource`; files inside a
    package become :class:`PythonPackageResource` of the deepest enclosing
    package; files in ``*.dist-info`` directories become
    :class:`PythonPackageDistributionResource`. Outside the standard
    library, extension module files become file-based
    :class:`PythonExtensionModule`; standard library extensions are
    described by the distribution descriptor and skipped. Bytecode files
    and files outside any package are skipped.

    Args:
        root: Directory to scan
        cache_tag: Bytecode cache tag of the target interpreter
        suffixes: Module filename suffixes of the target interpreter
        is_stdlib: Whether resources belong to the standard library
        test_packages: Packages whose content is classified as tests

    Yields:
        Classified resources in lexical path order
    """
    packages = _PackageIndex(root, suffixes.source)

    for path in walk_tree_files(root):
        rel = PurePosixPath(relative_posix_path(path, root))
        parts = rel.parts

        if any(part in IGNORED_DIRECTORIES for part in parts[:-1]):
            continue

        filename = parts[-1]

        if len(parts) >= 2 and parts[0].endswith(".dist-info"):
            dist_name = parts[0][: -len(".dist-info")]
            package, _, version = dist_name.partition("-")
            yield PythonPackageDistributionResource(
                package=package,
                version=version,
                name="/".join(parts[1:]),
                data=PathData(path),
            )
            continue

        if _strip_suffix(filename, suffixes.compiled_suffixes()) is not None:
            continue
        extension_stem = _strip_suffix(filename, suffixes.extension)
        if extension_stem is not None:
            if not is_stdlib:
                module = _extension_module(path, parts[:-1], extension_stem)
                if module is not None:
                    yield module
            continue

        stem = _strip_suffix(filename, suffixes.source)
        dir_parts = parts[:-1]

        if stem is not None and _all_identifiers(dir_parts) and stem.isidentifier():
            if stem == "__init__":
                if not dir_parts:
                    logger.debug("ignoring top-level %s", rel)
                    continue
                name = ".".join(dir_parts)
                is_package = True
            else:
                name = ".".join(dir_parts + (stem,))
                is_package = False

            yield PythonModuleSource(
                name=name,
                source=PathData(path),
                is_package=is_package,
                cache_tag=cache_tag,
                is_stdlib=is_stdlib,
                is_test=is_test_module(name, test_packages),
            )
            continue

        leaf = packages.leaf_package(dir_parts)
        if leaf is None:
            logger.debug("ignoring %s: not inside a package", rel)
            continue

        leaf_package = ".".join(leaf)
        yield PythonPackageResource(
            leaf_package=leaf_package,
            relative_name="/".join(parts[len(leaf):]),
            data=PathData(path),
            is_stdlib=is_stdlib,
            is_test=is_test_module(leaf_package, test_packages),
        )
