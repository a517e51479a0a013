"""Manifest of files to install next to the produced binary.

Destination paths are relative POSIX paths. Absolute paths and paths that
climb out of the destination with ``..`` are rejected when added, so a
manifest can always be materialized inside its target directory.
"""

import hashlib
import logging
import os
from collections.abc import Iterator
from pathlib import Path, PurePosixPath

from .core.errors import FileManifestError
from .core.file_data import FileEntry
from .scanner import validate_path_safety

logger = logging.getLogger(__name__)


def normalize_destination(path: str | PurePosixPath) -> PurePosixPath:
    """Validate and normalize a relative destination path.

    Args:
        path: Destination relative to the install directory

    Returns:
        Normalized path

    Raises:
        FileManifestError: If the path is empty, absolute or escapes
            the install directory
    """
    text = str(path).replace("\\", "/")
    pure = PurePosixPath(text)

    if pure.is_absolute() or (len(text) > 1 and text[1] == ":"):
        raise FileManifestError(f"destination path must be relative: {path}")

    parts = [part for part in pure.parts if part != "."]
    if not parts:
        raise FileManifestError(f"destination path is empty: {path!r}")
    if ".." in parts:
        raise FileManifestError(f"destination path escapes install directory: {path}")

    return PurePosixPath(*parts)


class FileManifest:
    """Accumulates ``destination path -> FileEntry`` pairs."""

    def __init__(self) -> None:
        self._files: dict[PurePosixPath, FileEntry] = {}

    def __len__(self) -> int:
        return len(self._files)

    def __contains__(self, path: object) -> bool:
        if not isinstance(path, (str, PurePosixPath)):
            return False
        try:
            return normalize_destination(path) in self._files
        except FileManifestError:
            return False

    def add_file_entry(self, path: str | PurePosixPath, entry: FileEntry) -> None:
        """Add a file, replacing any entry at the same destination.

        Raises:
            FileManifestError: If the destination path is invalid
        """
        self._files[normalize_destination(path)] = entry

    def add_manifest(self, other: "FileManifest") -> None:
        for path, entry in other.iter_entries():
            self._files[path] = entry

    def get(self, path: str | PurePosixPath) -> FileEntry | None:
        return self._files.get(normalize_destination(path))

    def iter_entries(self) -> Iterator[tuple[PurePosixPath, FileEntry]]:
        """Entries ordered by destination path."""
        for path in sorted(self._files):
            yield path, self._files[path]

    def to_document(self) -> list[dict[str, object]]:
        """Describe entries for the embedding context document.

        Content is read to compute sizes and digests.
        """
        document: list[dict[str, object]] = []
        for path, entry in self.iter_entries():
            content = entry.resolve_content()
            document.append(
                {
                    "path": str(path),
                    "size": len(content),
                    "executable": entry.executable,
                    "sha256": hashlib.sha256(content).hexdigest(),
                }
            )
        return document

    def materialize_files(self, dest_dir: Path) -> list[Path]:
        """Write every entry below ``dest_dir``.

        Args:
            dest_dir: Install directory (created if missing)

        Returns:
            Written paths in manifest order

        Raises:
            ValueError: If a destination resolves outside ``dest_dir``
            OSError: If a file cannot be written
        """
        dest_dir.mkdir(parents=True, exist_ok=True)
        written: list[Path] = []

        for rel, entry in self.iter_entries():
            target = dest_dir.joinpath(*rel.parts)
            validate_path_safety(target, dest_dir)

            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(entry.resolve_content())
            if entry.executable:
                os.chmod(target, 0o755)

            written.append(target)

        logger.debug("materialized %d files in %s", len(written), dest_dir)
        return written
