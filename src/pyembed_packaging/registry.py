"""Source registry for factory-based pipeline creation.

This module provides a central registry for resource source factories,
enabling callers to add sources to a pipeline by name.
"""

from pathlib import Path
from typing import TYPE_CHECKING, Callable

if TYPE_CHECKING:
    from .pipeline import EmbeddingPipeline
    from .sources.base import ResourceSource


class SourceRegistry:
    """Central registry for resource source factories.

    Sources register themselves when their module is imported. Factories
    receive the pipeline's target distribution as the ``distribution``
    keyword argument along with any caller-supplied arguments.
    """

    _factories: dict[str, Callable[..., "ResourceSource"]] = {}

    @classmethod
    def register_factory(cls, name: str, factory: Callable[..., "ResourceSource"]) -> None:
        """Register a factory function for creating sources.

        Args:
            name: Name of the source (e.g., 'distribution', 'package-root')
            factory: Callable that creates a ResourceSource instance

        Example:
            >>> def create_root_source(path: Path, **kwargs) -> PackageRootSource:
            ...     return PackageRootSource(path, cache_tag='cpython-312')
            >>> SourceRegistry.register_factory('package-root', create_root_source)
        """
        cls._factories[name] = factory

    @classmethod
    def create_source(cls, source_name: str, **kwargs) -> "ResourceSource":
        """Create a source from a registered factory.

        Args:
            source_name: Name of the registered source
            **kwargs: Arguments passed to the source factory

        Returns:
            The created source

        Raises:
            ValueError: If source_name is not registered
        """
        if source_name not in cls._factories:
            available = ", ".join(sorted(cls._factories)) or "none"
            raise ValueError(
                f"Unknown source: '{source_name}'. Available sources: {available}"
            )

        return cls._factories[source_name](**kwargs)

    @classmethod
    def create_pipeline(cls, dist_dir: Path, **kwargs) -> "EmbeddingPipeline":
        """Create a pipeline for a distribution with its resources as a source.

        Args:
            dist_dir: Root directory of the extracted distribution
            **kwargs: Arguments passed to :class:`EmbeddingPipeline`

        Returns:
            EmbeddingPipeline with the 'distribution' source added

        Example:
            >>> pipeline = SourceRegistry.create_pipeline(
            ...     Path('/dist'),
            ...     link_mode=LinkMode.STATIC,
            ... )
        """
        # Import here to avoid circular dependency
        from .distribution import resolve_distribution
        from .pipeline import EmbeddingPipeline

        pipeline = EmbeddingPipeline(resolve_distribution(dist_dir), **kwargs)
        pipeline.add_source_by_name("distribution")
        return pipeline

    @classmethod
    def list_sources(cls) -> list[str]:
        """List all registered source names.

        Returns:
            List of registered source names

        Example:
            >>> SourceRegistry.list_sources()
            ['distribution', 'package-root']
        """
        return list(cls._factories.keys())
