"""File content with deferred resolution.

Large binaries (static libraries, shared libraries, object files) are kept
as path references until the moment they are serialized. :data:`FileData`
is a closed sum type: a :class:`PathData` has not been read yet, a
:class:`MemoryData` already holds its bytes.
"""

from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class PathData:
    """Content backed by a file on disk that has not been read."""

    path: Path

    def resolve_content(self) -> bytes:
        """Read the backing file.

        Returns:
            File content

        Raises:
            OSError: If the file cannot be read
        """
        return self.path.read_bytes()

    def to_memory(self) -> "MemoryData":
        """Read the backing file into a :class:`MemoryData`."""
        return MemoryData(self.resolve_content())

    @property
    def backing_path(self) -> Path | None:
        return self.path


@dataclass(frozen=True)
class MemoryData:
    """Content held in memory."""

    data: bytes

    def resolve_content(self) -> bytes:
        return self.data

    def to_memory(self) -> "MemoryData":
        return self

    @property
    def backing_path(self) -> Path | None:
        return None


FileData = PathData | MemoryData


@dataclass(frozen=True)
class FileEntry:
    """A file to materialize next to the produced binary.

    Attributes:
        data: Content of the file
        executable: Whether the file should be marked executable
    """

    data: FileData
    executable: bool = False

    def resolve_content(self) -> bytes:
        return self.data.resolve_content()

    def to_memory(self) -> "FileEntry":
        return FileEntry(data=self.data.to_memory(), executable=self.executable)

    @classmethod
    def from_path(cls, path: Path) -> "FileEntry":
        """Create an entry referencing a file, keeping its executable bit.

        Args:
            path: Existing file

        Returns:
            Entry backed by the path (content not read)
        """
        executable = bool(path.stat().st_mode & 0o111)
        return cls(data=PathData(path), executable=executable)
