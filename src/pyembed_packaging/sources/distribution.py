"""Resources of the Python distribution itself."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

from ..distribution import Distribution, resolve_distribution
from ..registry import SourceRegistry
from ..resources import PythonResource
from .base import ResourceSource


class DistributionSource(ResourceSource):
    """Standard library modules, resources and extension modules.

    Extension modules are resolved through the builder's packaging policy
    when added, so broken modules are dropped and preferred variants are
    honored.

    Example:
        >>> source = DistributionSource(resolve_distribution(Path('/dist')))
        >>> source.add_to_builder(builder)
    """

    def __init__(self, distribution: Distribution):
        self.distribution = distribution

    @property
    def name(self) -> str:
        return f"distribution:{self.distribution.base_dir}"

    def iter_resources(self) -> Iterator[PythonResource]:
        return self.distribution.iter_python_resources()

    def describe(self) -> dict[str, Any]:
        dist = self.distribution
        return {
            "base_dir": str(dist.base_dir),
            "target_triple": dist.target_triple,
            "python_implementation": dist.python_implementation,
            "python_version": dist.version,
            "python_tag": dist.python_tag,
            "python_abi_tag": dist.python_abi_tag_or_none(),
            "python_platform_tag": dist.python_platform_tag,
            "compatible_host_triples": dist.compatible_host_triples(),
            "link_mode": dist.link_mode.value,
            "libpython_shared_library": (
                str(dist.libpython_shared_library) if dist.libpython_shared_library else None
            ),
            "extension_module_loading": list(dist.extension_module_loading),
            "in_memory_shared_library_loading": dist.supports_in_memory_shared_library_loading(),
            "cache_tag": dist.cache_tag,
            "stdlib_modules": len(dist.py_modules),
            "stdlib_resource_packages": len(dist.resources),
            "extension_modules": {
                name: [variant.variant for variant in variants]
                for name, variants in sorted(dist.extension_modules.items())
            },
            "core_objects": len(dist.objs_core),
            "licenses": list(dist.licenses or []),
        }

    def add_to_builder(self, builder) -> int:
        """Add the distribution's resources through the builder's policy.

        Raises:
            ValueError: If the builder targets another distribution
        """
        if builder.target_distribution is not self.distribution:
            raise ValueError(f"{self.name} is not the builder's target distribution")
        return builder.add_distribution_resources()


def _create_distribution_source(
    distribution: Distribution | None = None, path: Path | None = None, **kwargs
) -> DistributionSource:
    """Factory function for creating distribution sources.

    Args:
        distribution: Already resolved distribution
        path: Distribution root to resolve when no distribution is given
        **kwargs: Additional parameters (unused)

    Returns:
        DistributionSource instance

    Raises:
        ValueError: If neither a distribution nor a path is given
    """
    if distribution is None:
        if path is None:
            raise ValueError("a distribution or a distribution path is required")
        distribution = resolve_distribution(path)
    return DistributionSource(distribution)


SourceRegistry.register_factory("distribution", _create_distribution_source)
