"""The final embedding context.

An :class:`EmbeddedPythonContext` is everything the linking stage needs to
produce a binary with an embedded interpreter: link settings, packed
resources, files to install next to the binary, interpreter configuration
and licensing.
"""

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any

from jsonschema import ValidationError

from ..collector.compiled import CompiledResourcesCollection
from ..core.errors import EmbeddingContextError, UnsupportedDistributionError
from ..core.file_data import FileEntry, MemoryData
from ..core.licensing import LicensedComponents
from ..core.validator import format_validation_error, validate_context_document
from ..distribution import LinkMode
from ..file_manifest import FileManifest
from .interpreter import EmbeddedInterpreterConfig
from .link import LinkSettings

logger = logging.getLogger(__name__)

CONTEXT_FILENAME = "embedding-context.json"

# Placeholder for the directory of the produced binary
ORIGIN = "$ORIGIN"


class PythonImplementation(Enum):
    CPYTHON = "cpython"
    PYPY = "pypy"

    @classmethod
    def from_name(cls, name: str) -> "PythonImplementation":
        """Map a distribution's implementation name.

        Raises:
            UnsupportedDistributionError: If the implementation is unknown
        """
        if name.startswith("cpython"):
            return cls.CPYTHON
        if name.startswith("pypy"):
            return cls.PYPY
        raise UnsupportedDistributionError(f"unknown Python implementation: {name}")


class BuildFlag(Enum):
    """Interpreter build flags that change the C ABI."""

    PY_DEBUG = "Py_DEBUG"
    PY_REF_DEBUG = "Py_REF_DEBUG"
    PY_TRACE_REFS = "Py_TRACE_REFS"
    COUNT_ALLOCS = "COUNT_ALLOCS"

    @classmethod
    def from_config_vars(cls, config_vars: Mapping[str, str]) -> list["BuildFlag"]:
        """Flags whose configuration variable is set to ``1``."""
        return [flag for flag in cls if config_vars.get(flag.value) == "1"]


class PackedResourcesLoadModeKind(Enum):
    NONE = "none"
    EMBEDDED_IN_BINARY = "embedded-in-binary"
    BINARY_RELATIVE_PATH_MEMORY_MAPPED = "binary-relative-path-memory-mapped"


@dataclass(frozen=True)
class PackedResourcesLoadMode:
    """How the binary loads packed resources at run time.

    Use the :meth:`none`, :meth:`embedded_in_binary` and
    :meth:`binary_relative_path_memory_mapped` constructors.
    """

    kind: PackedResourcesLoadModeKind
    path: str | None = None

    @classmethod
    def none(cls) -> "PackedResourcesLoadMode":
        return cls(PackedResourcesLoadModeKind.NONE)

    @classmethod
    def embedded_in_binary(cls, filename: str) -> "PackedResourcesLoadMode":
        return cls(PackedResourcesLoadModeKind.EMBEDDED_IN_BINARY, filename)

    @classmethod
    def binary_relative_path_memory_mapped(cls, path: str) -> "PackedResourcesLoadMode":
        return cls(PackedResourcesLoadModeKind.BINARY_RELATIVE_PATH_MEMORY_MAPPED, path)

    def __str__(self) -> str:
        if self.path is None:
            return self.kind.value
        return f"{self.kind.value}:{self.path}"


@dataclass
class EmbeddedPythonContext:
    """Artifacts and settings for embedding an interpreter in a binary.

    Attributes:
        config: Interpreter configuration
        link_settings: Instructions for the linker
        compiled_resources: The compiled resource table
        pending_resources: Packed resources still to be written, with the
            filename each is written to
        packed_resources_load_mode: How the binary finds packed resources
        extra_files: Files to install next to the binary
        host_triple: Triple of the machine building the binary
        target_triple: Triple the binary runs on
        python_implementation: Interpreter implementation
        python_version: ``X.Y`` interpreter version
        python_build_flags: ABI-relevant build flags
        link_mode: How libpython is linked
        licensing_filename: File the licensing report is installed as
        licensing: Licensing of everything embedded
    """

    config: EmbeddedInterpreterConfig
    link_settings: LinkSettings
    compiled_resources: CompiledResourcesCollection
    pending_resources: list[tuple[CompiledResourcesCollection, str]]
    packed_resources_load_mode: PackedResourcesLoadMode
    extra_files: FileManifest
    host_triple: str
    target_triple: str
    python_implementation: PythonImplementation
    python_version: str
    python_build_flags: list[BuildFlag] = field(default_factory=list)
    link_mode: LinkMode = LinkMode.STATIC
    licensing_filename: str | None = None
    licensing: LicensedComponents = field(default_factory=LicensedComponents)

    def synchronize_licensing(self) -> None:
        """Install the licensing report as an extra file, if one is named."""
        if self.licensing_filename is None:
            return

        document = self.licensing.aggregate_license_document()
        self.extra_files.add_file_entry(
            self.licensing_filename,
            FileEntry(data=MemoryData(document.encode("utf-8")), executable=False),
        )

        for component in self.licensing.unlicensed_components():
            logger.warning("no license information for %s", component.flavor)

    def to_document(self) -> dict[str, Any]:
        """Render the context as a JSON-compatible document."""
        return {
            "host_triple": self.host_triple,
            "target_triple": self.target_triple,
            "python_implementation": self.python_implementation.value,
            "python_version": self.python_version,
            "python_build_flags": [flag.value for flag in self.python_build_flags],
            "link_mode": self.link_mode.value,
            "config": self.config.to_document(),
            "link_settings": self.link_settings.to_document(),
            "resources": self.compiled_resources.to_document(),
            "pending_resources": [path for _resources, path in self.pending_resources],
            "packed_resources_load_mode": str(self.packed_resources_load_mode),
            "extra_files": self.extra_files.to_document(),
            "licensing_filename": self.licensing_filename,
            "licensing": self.licensing.to_summary(),
        }

    def write_packed_resources(self, dest_dir: Path) -> list[Path]:
        """Write pending packed resources into ``dest_dir``."""
        written = []
        for resources, filename in self.pending_resources:
            path = dest_dir / filename
            resources.write_packed_resources(path)
            written.append(path)
        return written

    def write_artifacts(self, dest_dir: Path) -> Path:
        """Write every artifact into ``dest_dir``.

        Writes the pending packed resources, materializes the extra files
        and writes the validated context document.

        Args:
            dest_dir: Output directory (created if missing)

        Returns:
            Path of the written context document

        Raises:
            EmbeddingContextError: If the document fails schema validation
        """
        document = self.to_document()
        try:
            validate_context_document(document)
        except ValidationError as e:
            raise EmbeddingContextError(format_validation_error(e)) from e

        dest_dir.mkdir(parents=True, exist_ok=True)
        self.write_packed_resources(dest_dir)
        self.extra_files.materialize_files(dest_dir)

        context_path = dest_dir / CONTEXT_FILENAME
        with context_path.open("w", encoding="utf-8") as f:
            json.dump(document, f, indent=2)
            f.write("\n")

        logger.info("wrote embedding context to %s", context_path)
        return context_path
