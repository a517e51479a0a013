"""JSON Schema validation for distribution descriptors and embedding contexts.

This module loads the formal JSON Schemas shipped with the package and
validates documents against them.
"""

import json
from pathlib import Path
from typing import Any

import jsonschema
from jsonschema import ValidationError

# Path to the schema directory (relative to this module)
# src/pyembed_packaging/core/validator.py -> src/pyembed_packaging/schemas/
SCHEMA_DIR = Path(__file__).parent.parent / "schemas"

MANIFEST_SCHEMA_PATH = SCHEMA_DIR / "python_json.schema.json"
CONTEXT_SCHEMA_PATH = SCHEMA_DIR / "embedding_context.schema.json"


def load_schema(path: Path) -> dict[str, Any]:
    """Load a JSON schema from disk.

    Args:
        path: Path to the schema file

    Returns:
        Dictionary containing the JSON Schema.

    Raises:
        FileNotFoundError: If schema file doesn't exist
        json.JSONDecodeError: If schema is invalid JSON
    """
    if not path.exists():
        raise FileNotFoundError(f"Schema file not found: {path}")

    with path.open("r", encoding="utf-8") as f:
        return json.load(f)  # type: ignore[no-any-return]


def format_validation_error(error: ValidationError) -> str:
    """Build a user-friendly message from a schema validation error.

    Args:
        error: The validation error raised by jsonschema

    Returns:
        Message naming the failing location and the reason
    """
    error_path = " -> ".join(str(p) for p in error.path) if error.path else "root"
    return f"Validation error at {error_path}: {error.message}"


def validate_manifest_document(document: dict[str, Any]) -> None:
    """Validate a distribution descriptor against the strict schema.

    Args:
        document: Decoded PYTHON.json content

    Raises:
        ValidationError: If the document doesn't conform to the schema
        FileNotFoundError: If schema file is missing
    """
    schema = load_schema(MANIFEST_SCHEMA_PATH)
    jsonschema.validate(instance=document, schema=schema)


def validate_context_document(document: dict[str, Any]) -> None:
    """Validate an embedding context document before it is written.

    Args:
        document: Embedding context rendered as JSON-compatible data

    Raises:
        ValidationError: If the document doesn't conform to the schema
        FileNotFoundError: If schema file is missing
    """
    schema = load_schema(CONTEXT_SCHEMA_PATH)
    jsonschema.validate(instance=document, schema=schema)


def validate_context_with_error_details(document: dict[str, Any]) -> tuple[bool, str | None]:
    """Validate an embedding context and return detailed error information.

    This is a convenience wrapper that catches validation errors and
    returns user-friendly error messages.

    Args:
        document: Embedding context document

    Returns:
        Tuple of (is_valid, error_message). error_message is None if valid.
    """
    try:
        validate_context_document(document)
        return True, None
    except ValidationError as e:
        return False, format_validation_error(e)
    except (FileNotFoundError, json.JSONDecodeError) as e:
        return False, f"Schema error: {e}"
