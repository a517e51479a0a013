"""Base abstractions for resource sources.

A resource source produces classified Python resources that the pipeline
feeds through the packaging policy into a binary's resource collector.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterator
from typing import TYPE_CHECKING, Any

from ..resources import PythonResource

if TYPE_CHECKING:
    from ..context.builder import EmbeddedExecutableBuilder


class ResourceSource(ABC):
    """Abstract base class for all resource sources.

    Implementations know how to find resources in one kind of location
    (an extracted distribution, an application package directory, ...)
    while the pipeline stays unaware of where resources come from.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable name of this source, used in logs."""

    @abstractmethod
    def iter_resources(self) -> Iterator[PythonResource]:
        """Yield every resource this source provides.

        Yields:
            Classified resources in a deterministic order
        """

    @abstractmethod
    def describe(self) -> dict[str, Any]:
        """Summarize the source as JSON-compatible data."""

    def add_to_builder(self, builder: "EmbeddedExecutableBuilder") -> int:
        """Add this source's resources to a builder.

        Args:
            builder: Builder whose packaging policy decides placement

        Returns:
            Number of resources the policy included
        """
        return builder.add_python_resources(self.iter_resources())
