"""Python source encoding detection (PEP 263)."""

import re

DEFAULT_SOURCE_ENCODING = "utf-8"

# Encoding declaration comment; only honored on the first two lines
CODING_RE = re.compile(rb"^[ \t\f]*#.*?coding[:=][ \t]*([-_.a-zA-Z0-9]+)")


def python_source_encoding(source: bytes) -> str:
    """Return the encoding declared by Python source.

    Args:
        source: Raw module source

    Returns:
        Declared encoding name, or ``utf-8`` when nothing is declared

    Example:
        >>> python_source_encoding(b"# -*- coding: latin-1 -*-\\n")
        'latin-1'
    """
    for line in source.splitlines()[:2]:
        match = CODING_RE.match(line)
        if match:
            return match.group(1).decode("ascii")
    return DEFAULT_SOURCE_ENCODING


def decode_python_source(source: bytes) -> str:
    """Decode Python source with its declared encoding.

    Declared codecs that are unknown or cannot decode to text with
    replacement (``hex``, ``idna``) fall back to UTF-8. Undecodable bytes
    are replaced rather than raising.
    """
    try:
        return source.decode(python_source_encoding(source), errors="replace")
    except (LookupError, UnicodeError):
        return source.decode(DEFAULT_SOURCE_ENCODING, errors="replace")


def has_dunder_file(source: bytes) -> bool:
    """Whether decoded source mentions ``__file__``."""
    return "__file__" in decode_python_source(source)
