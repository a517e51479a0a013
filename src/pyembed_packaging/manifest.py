"""Distribution descriptor parsing.

A distribution describes itself in ``python/PYTHON.json``. Parsing happens
in two phases: the raw bytes are first decoded as a generic JSON document
so the ``version`` field can be checked on its own, and only a supported
version is then validated against the strict schema. An evolved schema
therefore fails with "unsupported manifest version" rather than with an
opaque structural mismatch.
"""

import json
import logging
from pathlib import Path
from typing import Any

from jsonschema import ValidationError

from .core.errors import (
    ManifestNotFoundError,
    ManifestParseError,
    ManifestSchemaError,
    ManifestVersionError,
)
from .core.types import DistributionManifest
from .core.validator import format_validation_error, validate_manifest_document

logger = logging.getLogger(__name__)

# The single descriptor schema version this pipeline understands
MANIFEST_VERSION = "7"

# Directory holding runtime content, relative to the distribution root
RUNTIME_DIR_NAME = "python"

MANIFEST_FILENAME = "PYTHON.json"


def parse_manifest(path: Path) -> DistributionManifest:
    """Parse and validate a distribution descriptor.

    Args:
        path: Path to a PYTHON.json file

    Returns:
        The validated descriptor

    Raises:
        ManifestNotFoundError: If the descriptor does not exist
        ManifestParseError: If it is not a JSON object with a string version
        ManifestVersionError: If the version is not supported
        ManifestSchemaError: If the content does not match the schema
    """
    if not path.exists():
        raise ManifestNotFoundError(
            f"{path} does not exist; are you using an up-to-date Python "
            f"distribution that conforms with our requirements?"
        )

    buf = path.read_bytes()

    try:
        document: Any = json.loads(buf)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ManifestParseError(f"{path} is not valid JSON: {e}") from e

    if not isinstance(document, dict):
        raise ManifestParseError(f"{path} does not parse to an object")

    check_manifest_version(document)

    try:
        validate_manifest_document(document)
    except ValidationError as e:
        raise ManifestSchemaError(f"{path}: {format_validation_error(e)}") from e

    logger.debug("parsed %s (target %s)", path, document["target_triple"])
    return document  # type: ignore[return-value]


def check_manifest_version(document: dict[str, Any]) -> None:
    """Check the ``version`` field of a decoded descriptor.

    Args:
        document: Generic decoded JSON object

    Raises:
        ManifestParseError: If the version is missing or not a string
        ManifestVersionError: If the version is not :data:`MANIFEST_VERSION`
    """
    if "version" not in document:
        raise ManifestParseError(f"version key not present in {MANIFEST_FILENAME}")

    version = document["version"]
    if not isinstance(version, str):
        raise ManifestParseError("unable to parse version as a string")

    if version != MANIFEST_VERSION:
        raise ManifestVersionError(found=version, expected=MANIFEST_VERSION)


def manifest_path(dist_dir: Path) -> Path:
    """Location of the descriptor inside a distribution root."""
    return dist_dir / RUNTIME_DIR_NAME / MANIFEST_FILENAME


def parse_manifest_from_distribution(dist_dir: Path) -> DistributionManifest:
    """Parse the descriptor of the distribution rooted at ``dist_dir``."""
    return parse_manifest(manifest_path(dist_dir))


def python_exe_path(dist_dir: Path) -> Path:
    """Resolve the path to the interpreter executable in a distribution.

    Args:
        dist_dir: Distribution root directory

    Returns:
        Absolute path of the executable (not checked for existence)
    """
    manifest = parse_manifest_from_distribution(dist_dir)
    return dist_dir / RUNTIME_DIR_NAME / manifest["python_exe"]
