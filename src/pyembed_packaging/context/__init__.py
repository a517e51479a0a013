"""Assembly of the embedding context handed to the linking stage."""

from .builder import EmbeddedExecutableBuilder
from .embedded import (
    CONTEXT_FILENAME,
    BuildFlag,
    EmbeddedPythonContext,
    PackedResourcesLoadMode,
    PythonImplementation,
)
from .interpreter import (
    EmbeddedInterpreterConfig,
    InterpreterConfig,
    InterpreterProfile,
    MemoryAllocatorBackend,
    PackedResourcesSource,
)
from .link import LibPythonBuildContext, LinkSettings

__all__ = [
    "CONTEXT_FILENAME",
    "BuildFlag",
    "EmbeddedExecutableBuilder",
    "EmbeddedInterpreterConfig",
    "EmbeddedPythonContext",
    "InterpreterConfig",
    "InterpreterProfile",
    "LibPythonBuildContext",
    "LinkSettings",
    "MemoryAllocatorBackend",
    "PackedResourcesLoadMode",
    "PackedResourcesSource",
    "PythonImplementation",
]
