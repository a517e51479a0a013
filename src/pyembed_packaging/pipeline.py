"""Embedding pipeline.

This module provides the main interface for turning a distribution plus
any number of resource sources into embedding artifacts.
"""

import logging
from pathlib import Path

from .collector.compiled import BytecodeCompiler
from .context.builder import EmbeddedExecutableBuilder
from .context.embedded import EmbeddedPythonContext
from .distribution import Distribution
from .registry import SourceRegistry
from .sources.base import ResourceSource

logger = logging.getLogger(__name__)


class EmbeddingPipeline:
    """Main interface for preparing an embedded interpreter.

    The pipeline owns an :class:`EmbeddedExecutableBuilder` for the target
    distribution and feeds every registered source through it.

    Example:
        >>> # Via registry (recommended)
        >>> pipeline = SourceRegistry.create_pipeline(Path('/dist'))
        >>> pipeline.add_source_by_name('package-root', path=Path('app'))
        >>> pipeline.prepare(Path('build/embedded'))
        >>>
        >>> # Direct instantiation (advanced)
        >>> pipeline = EmbeddingPipeline(resolve_distribution(Path('/dist')))
        >>> pipeline.add_source(DistributionSource(pipeline.distribution))
    """

    def __init__(
        self,
        distribution: Distribution,
        compiler: BytecodeCompiler | None = None,
        opt_level: str = "1",
        **builder_kwargs,
    ):
        """Initialize the pipeline.

        Args:
            distribution: Resolved target distribution
            compiler: Bytecode compiler (default: the running interpreter)
            opt_level: Optimization level for compiling generated sources
            **builder_kwargs: Passed to
                :meth:`EmbeddedExecutableBuilder.from_distribution`
        """
        self.distribution = distribution
        self.compiler = compiler
        self.opt_level = opt_level
        self.builder = EmbeddedExecutableBuilder.from_distribution(distribution, **builder_kwargs)
        self.sources: list[ResourceSource] = []
        self._collected = False

    def add_source(self, source: ResourceSource) -> None:
        """Queue a source whose resources are added on collection."""
        if self._collected:
            raise RuntimeError("resources were already collected")
        self.sources.append(source)

    def add_source_by_name(self, source_name: str, **kwargs) -> ResourceSource:
        """Create a registered source for this pipeline's distribution and queue it.

        Args:
            source_name: Name of the registered source
            **kwargs: Arguments passed to the source factory

        Returns:
            The created source
        """
        source = SourceRegistry.create_source(
            source_name, distribution=self.distribution, **kwargs
        )
        self.add_source(source)
        return source

    def collect(self) -> None:
        """Populate the builder with core state and every source's resources."""
        if self._collected:
            return

        self.builder.add_distribution_core_state()
        for source in self.sources:
            count = source.add_to_builder(self.builder)
            logger.info("%s: added %d resources", source.name, count)

        self._collected = True

    def build_context(self) -> EmbeddedPythonContext:
        """Collect resources and assemble the embedding context."""
        self.collect()
        return self.builder.to_embedded_python_context(self.compiler, self.opt_level)

    def prepare(self, dest_dir: Path) -> EmbeddedPythonContext:
        """Assemble the embedding context and write its artifacts.

        Args:
            dest_dir: Output directory

        Returns:
            The written context
        """
        context = self.build_context()
        context.write_artifacts(dest_dir)
        return context
