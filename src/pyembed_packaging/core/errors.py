"""Exception types raised by the packaging pipeline.

Every failure the pipeline can report derives from :class:`PackagingError`.
Errors are never retried: they propagate to the caller, which aborts the
whole build. Lower-level causes are chained with ``raise ... from err`` so
the command line can print a readable cause chain.
"""


class PackagingError(Exception):
    """Base class for all packaging pipeline failures."""


class ManifestError(PackagingError):
    """Base class for distribution descriptor (PYTHON.json) failures."""


class ManifestNotFoundError(ManifestError):
    """Raised when a distribution carries no descriptor.

    This means the distribution is not of a supported shape; callers
    should abort rather than retry.
    """


class ManifestParseError(ManifestError):
    """Raised when the descriptor is not a JSON object with a string version."""


class ManifestVersionError(ManifestError):
    """Raised when the descriptor declares an unsupported schema version.

    Attributes:
        found: Version declared by the descriptor
        expected: Version understood by this pipeline
    """

    def __init__(self, found: str, expected: str):
        self.found = found
        self.expected = expected
        super().__init__(
            f"unsupported manifest version {found}, expected {expected}"
        )


class ManifestSchemaError(ManifestError):
    """Raised when the descriptor does not conform to the strict schema."""


class DistributionLayoutError(PackagingError):
    """Raised when a distribution directory has unexpected or missing content."""


class ResourceLocationError(PackagingError):
    """Raised when a resource is added to a location the policy forbids.

    Attributes:
        resource_name: Name of the offending resource
    """

    def __init__(self, resource_name: str, message: str):
        self.resource_name = resource_name
        super().__init__(f"{resource_name}: {message}")


class ExtensionModuleError(PackagingError):
    """Raised when an extension module cannot be packaged."""


class UnsupportedDistributionError(PackagingError):
    """Raised when a distribution uses a feature this pipeline cannot handle."""


class FileManifestError(PackagingError):
    """Raised when an extra file entry has an invalid destination path."""


class BytecodeCompileError(PackagingError):
    """Raised when module source cannot be compiled to bytecode."""


class EmbeddingContextError(PackagingError):
    """Raised when an embedding context document fails validation."""
