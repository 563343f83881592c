"""Abstract source interface.

This module defines the capability contract every content provider
implements. A source serves two audiences:

- Indexing: ``fetch_all``, ``fetch_changes`` and ``get_metadata`` populate a
  persisted index.
- Clients: ``list_files`` and ``read_file`` browse the live source and must
  reflect its current state even between syncs.

It also holds the change-detection policy shared by versioned sources when
deciding whether an incremental sync is possible.
"""

from abc import ABC, abstractmethod
from collections.abc import Iterable

from core.ingestion.ignore import AUGMENTIGNORE, GITIGNORE
from core.ingestion.models import FileChanges, FileEntry, FileInfo, SourceMetadata

IGNORE_FILES: frozenset[str] = frozenset({GITIGNORE, AUGMENTIGNORE})

DEFAULT_MAX_INCREMENTAL_CHANGES = 100


class SourceError(Exception):
    """Exception raised when a source cannot be reached or read.

    Attributes:
        message: Explanation of the error.
        source: Identifier of the source, if applicable.
    """

    def __init__(self, message: str, source: str | None = None) -> None:
        """Initialize the SourceError.

        Args:
            message: Explanation of the error.
            source: Identifier of the source.
        """
        self.message = message
        self.source = source

        full_message = f"{message} (source={source})" if source else message
        super().__init__(full_message)


class SourceConfigError(SourceError):
    """A source was constructed with missing or invalid settings."""


def normalize_path(path: str) -> str:
    """Normalize a directory or file path for use with source APIs.

    Removes a leading ``./`` and leading or trailing slashes, and collapses
    repeated slashes. Root representations become ``""``.
    """
    if path.startswith("./"):
        path = path[2:]
    path = path.strip("/")
    while "//" in path:
        path = path.replace("//", "/")
    return "" if path == "." else path


class ChangeDetectionPolicy:
    """Rules deciding when an incremental sync must fall back to a full one.

    Attributes:
        max_changes: Largest change set processed incrementally.
    """

    def __init__(self, max_changes: int = DEFAULT_MAX_INCREMENTAL_CHANGES) -> None:
        self.max_changes = max_changes

    @staticmethod
    def ignore_files_changed(changed_paths: Iterable[str]) -> bool:
        """Check if a root-level ignore file is among the changed paths."""
        return any(path in IGNORE_FILES for path in changed_paths)

    def too_many_changes(self, count: int) -> bool:
        """Check if a change set is too large to process incrementally."""
        return count > self.max_changes


class Source(ABC):
    """Abstract base class for content sources.

    Attributes:
        type: Source type, matching ``SourceMetadata.type``.
    """

    type: str

    @abstractmethod
    async def fetch_all(self) -> list[FileEntry]:
        """Fetch every indexable file for a full index.

        Files are filtered at this boundary: ignore files, the content filter,
        then ``.gitignore``. Safe to call repeatedly; never mutates the source.

        Returns:
            All files that passed filtering.

        Raises:
            SourceError: If the source cannot be read.
        """
        ...

    @abstractmethod
    async def fetch_changes(self, previous: SourceMetadata) -> FileChanges | None:
        """Fetch changes since a previous sync.

        Returning None is a normal outcome meaning the caller must run a full
        ``fetch_all``: history was rewritten, ignore files changed, the change
        set is too large, or the source cannot track changes.

        Args:
            previous: Metadata stored by the previous sync.

        Returns:
            Filtered changes, or None if an incremental sync is not possible.

        Raises:
            SourceError: If the source cannot be reached.
        """
        ...

    @abstractmethod
    async def get_metadata(self) -> SourceMetadata:
        """Get metadata describing the current state of the source."""
        ...

    @abstractmethod
    async def list_files(self, directory: str = "") -> list[FileInfo]:
        """List the immediate children of a directory.

        Args:
            directory: Directory path relative to the root, ``""`` for root.

        Returns:
            Files and directories directly under ``directory``; empty if the
            directory does not exist.
        """
        ...

    @abstractmethod
    async def read_file(self, path: str) -> str | None:
        """Read a single file.

        Args:
            path: Relative path to the file.

        Returns:
            File contents, or None if it does not exist or is not readable.
        """
        ...
