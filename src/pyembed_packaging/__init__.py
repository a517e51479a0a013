"""pyembed-packaging - Python distribution embedding packager.

This package resolves extracted standalone Python distributions, decides
where every Python resource lives at run time under a packaging policy,
and assembles the embedding context a linker stage needs to produce a
binary with an embedded interpreter.
"""

# Core library interface
from .context import EmbeddedExecutableBuilder, EmbeddedPythonContext, PackedResourcesLoadMode
from .distribution import Distribution, LinkMode, resolve_distribution
from .pipeline import EmbeddingPipeline
from .policy import PackagingPolicy, create_packaging_policy
from .registry import SourceRegistry
from .sources import DistributionSource, PackageRootSource, ResourceSource

# Core utilities
from .collector import ResourceCollector
from .core import (
    AbstractResourceLocation,
    ConcreteResourceLocation,
    PackagingError,
    validate_context_with_error_details,
)
from .manifest import parse_manifest

# CLI interface
from .cli import main

__version__ = "0.1.0"

__all__ = [
    # Primary library interface
    "EmbeddingPipeline",
    "SourceRegistry",
    "ResourceSource",
    "DistributionSource",
    "PackageRootSource",
    "EmbeddedExecutableBuilder",
    "EmbeddedPythonContext",
    "PackedResourcesLoadMode",
    "Distribution",
    "LinkMode",
    "resolve_distribution",
    "PackagingPolicy",
    "create_packaging_policy",
    # Core utilities
    "AbstractResourceLocation",
    "ConcreteResourceLocation",
    "PackagingError",
    "ResourceCollector",
    "parse_manifest",
    "validate_context_with_error_details",
    "main",
]
