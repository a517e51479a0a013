"""Resource collection and compilation.

The collector holds every resource destined for a binary, keyed by name,
and enforces where each may be placed. Collected resources compile into a
:class:`CompiledResourcesCollection`.
"""

from .collector import ResourceCollector
from .compiled import (
    BytecodeCompiler,
    BytecodeHeaderMode,
    CompiledResource,
    CompiledResourcesCollection,
    HostBytecodeCompiler,
    SubprocessBytecodeCompiler,
)
from .prepackaged import BytecodeFromSource, PrePackagedResource, ProvidedBytecode

__all__ = [
    "BytecodeCompiler",
    "BytecodeFromSource",
    "BytecodeHeaderMode",
    "CompiledResource",
    "CompiledResourcesCollection",
    "HostBytecodeCompiler",
    "PrePackagedResource",
    "ProvidedBytecode",
    "ResourceCollector",
    "SubprocessBytecodeCompiler",
]
