"""Resource placement locations.

Two forms exist. :class:`AbstractResourceLocation` describes *permitted*
placements; :class:`ConcreteResourceLocation` describes an *actual*
placement decision. A concrete location converts losslessly to its abstract
form; the reverse is not defined because a relative-path prefix carries
information the abstract form discards.
"""

from dataclasses import dataclass
from enum import Enum

RELATIVE_PATH_PREFIX = "filesystem-relative"


class AbstractResourceLocation(Enum):
    """Where a resource may be placed."""

    IN_MEMORY = "in-memory"
    RELATIVE_PATH = "relative-path"


@dataclass(frozen=True)
class ConcreteResourceLocation:
    """Where a resource will be placed.

    ``prefix`` is ``None`` for in-memory placement and holds the directory
    (relative to the produced binary) for relative-path placement. Use the
    :meth:`in_memory` and :meth:`relative_path` constructors.
    """

    prefix: str | None = None

    @classmethod
    def in_memory(cls) -> "ConcreteResourceLocation":
        return cls(prefix=None)

    @classmethod
    def relative_path(cls, prefix: str) -> "ConcreteResourceLocation":
        return cls(prefix=prefix)

    @property
    def is_in_memory(self) -> bool:
        return self.prefix is None

    def to_abstract(self) -> AbstractResourceLocation:
        """Convert to the abstract form."""
        if self.prefix is None:
            return AbstractResourceLocation.IN_MEMORY
        return AbstractResourceLocation.RELATIVE_PATH

    def __str__(self) -> str:
        if self.prefix is None:
            return "in-memory"
        return f"{RELATIVE_PATH_PREFIX}:{self.prefix}"

    @classmethod
    def parse(cls, value: str) -> "ConcreteResourceLocation":
        """Parse ``in-memory`` or ``filesystem-relative:<prefix>``.

        Args:
            value: Textual location

        Returns:
            Parsed location

        Raises:
            ValueError: If the value is not a valid location
        """
        if value == "in-memory":
            return cls.in_memory()

        kind, sep, prefix = value.partition(":")
        if not sep or kind != RELATIVE_PATH_PREFIX:
            raise ValueError(f"{value} is not a valid resource location")
        return cls.relative_path(prefix)
