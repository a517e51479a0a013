"""Application packages from a local directory.

This source scans a directory laid out like ``site-packages`` (top-level
modules, packages and ``*.dist-info`` directories) and classifies its
content for the target distribution's interpreter.
"""

import sys
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..distribution import Distribution
from ..registry import SourceRegistry
from ..resources import (
    PythonExtensionModule,
    PythonModuleSource,
    PythonPackageDistributionResource,
    PythonPackageResource,
    PythonResource,
)
from ..scanner import PythonModuleSuffixes, find_python_resources
from .base import ResourceSource


class PackageRootSource(ResourceSource):
    """Source adapter for a directory of Python packages.

    Example:
        >>> source = PackageRootSource(Path('app/src'), cache_tag='cpython-312')
        >>> names = [r.name for r in source.iter_resources()]
    """

    def __init__(
        self,
        path: Path,
        cache_tag: str,
        suffixes: PythonModuleSuffixes | None = None,
        test_packages: tuple[str, ...] = (),
    ):
        """Initialize package root source.

        Args:
            path: Directory to scan
            cache_tag: Bytecode cache tag of the target interpreter
            suffixes: Module filename suffixes (default: ``.py`` sources)
            test_packages: Packages classified as tests

        Raises:
            ValueError: If path doesn't exist or isn't a directory
        """
        self.path = path.resolve()

        if not self.path.exists():
            raise ValueError(f"Path does not exist: {self.path}")

        if not self.path.is_dir():
            raise ValueError(f"Path is not a directory: {self.path}")

        self.cache_tag = cache_tag
        self.suffixes = suffixes or PythonModuleSuffixes()
        self.test_packages = test_packages

    @property
    def name(self) -> str:
        return f"package-root:{self.path}"

    def iter_resources(self) -> Iterator[PythonResource]:
        return find_python_resources(
            self.path,
            self.cache_tag,
            self.suffixes,
            is_stdlib=False,
            test_packages=self.test_packages,
        )

    def describe(self) -> dict[str, Any]:
        modules = 0
        extension_modules = 0
        resources = 0
        distributions: set[str] = set()
        for resource in self.iter_resources():
            if isinstance(resource, PythonModuleSource):
                modules += 1
            elif isinstance(resource, PythonExtensionModule):
                extension_modules += 1
            elif isinstance(resource, PythonPackageResource):
                resources += 1
            elif isinstance(resource, PythonPackageDistributionResource):
                distributions.add(f"{resource.package}-{resource.version}")
        return {
            "path": str(self.path),
            "modules": modules,
            "extension_modules": extension_modules,
            "package_resources": resources,
            "distributions": sorted(distributions),
        }


def _create_package_root_source(
    path: Path, distribution: Distribution | None = None, **kwargs
) -> PackageRootSource:
    """Factory function for creating package root sources.

    Args:
        path: Directory to scan
        distribution: Target distribution supplying the cache tag and
            module suffixes; the running interpreter's are used otherwise
        **kwargs: Passed to :class:`PackageRootSource`

    Returns:
        PackageRootSource instance
    """
    if distribution is not None:
        return PackageRootSource(
            path,
            cache_tag=distribution.cache_tag,
            suffixes=distribution.module_suffixes,
            **kwargs,
        )

    return PackageRootSource(path, cache_tag=sys.implementation.cache_tag, **kwargs)


SourceRegistry.register_factory("package-root", _create_package_root_source)
