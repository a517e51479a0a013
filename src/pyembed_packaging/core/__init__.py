"""Core utilities shared by every pipeline stage.

This package contains schema validation, descriptor type definitions,
the exception hierarchy, deferred file content, resource locations and
licensing metadata.
"""

from .errors import (
    BytecodeCompileError,
    DistributionLayoutError,
    EmbeddingContextError,
    ExtensionModuleError,
    FileManifestError,
    ManifestError,
    ManifestNotFoundError,
    ManifestParseError,
    ManifestSchemaError,
    ManifestVersionError,
    PackagingError,
    ResourceLocationError,
    UnsupportedDistributionError,
)
from .file_data import FileData, FileEntry, MemoryData, PathData
from .licensing import ComponentFlavor, ComponentKind, LicensedComponent, LicensedComponents
from .locations import AbstractResourceLocation, ConcreteResourceLocation
from .types import BuildInfo, DistributionManifest, ExtensionVariant, LinkEntry
from .validator import validate_context_with_error_details, validate_manifest_document

__all__ = [
    "AbstractResourceLocation",
    "BuildInfo",
    "BytecodeCompileError",
    "ComponentFlavor",
    "ComponentKind",
    "ConcreteResourceLocation",
    "DistributionLayoutError",
    "DistributionManifest",
    "EmbeddingContextError",
    "ExtensionModuleError",
    "ExtensionVariant",
    "FileData",
    "FileEntry",
    "FileManifestError",
    "LicensedComponent",
    "LicensedComponents",
    "LinkEntry",
    "ManifestError",
    "ManifestNotFoundError",
    "ManifestParseError",
    "ManifestSchemaError",
    "ManifestVersionError",
    "MemoryData",
    "PackagingError",
    "PathData",
    "ResourceLocationError",
    "UnsupportedDistributionError",
    "validate_context_with_error_details",
    "validate_manifest_document",
]
