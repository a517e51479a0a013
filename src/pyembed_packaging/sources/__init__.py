"""Resource sources for the embedding pipeline.

This package contains the base interface for resource sources and the
built-in implementations. Each implementation registers itself with the
SourceRegistry when imported.
"""

from .base import ResourceSource
from .distribution import DistributionSource
from .package_root import PackageRootSource

__all__ = ["DistributionSource", "PackageRootSource", "ResourceSource"]
