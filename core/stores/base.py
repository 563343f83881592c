"""Abstract index store interfaces.

This module defines the read contract shared by every index store, the write
contract of stores that own their indexes, the store error hierarchy and the
key sanitization applied by persistent backends.

Not-found is always reported as ``None``. Backend failures raise, so that a
missing index is never confused with an unreachable store.
"""

import json
import re
from abc import ABC, abstractmethod

from pydantic import ValidationError

from .models import IndexState, IndexStateSearchOnly

STATE_FILENAME = "state.json"
SEARCH_FILENAME = "search.json"

_UNSAFE_KEY_CHARS = re.compile(r"[^a-zA-Z0-9_-]")
_REPEATED_UNDERSCORES = re.compile(r"__+")


def sanitize_key(name: str) -> str:
    """Make an index name safe for use as a path or object key segment.

    Characters outside ``[a-zA-Z0-9_-]`` become ``_``, runs of underscores
    collapse to one, and leading or trailing underscores are removed.

    Args:
        name: Index name.

    Returns:
        The sanitized key, possibly empty.
    """
    key = _UNSAFE_KEY_CHARS.sub("_", name)
    key = _REPEATED_UNDERSCORES.sub("_", key)
    return key.strip("_")


class StoreError(Exception):
    """Exception raised when an index store operation fails.

    Attributes:
        message: Explanation of the error.
        name: Index name, if applicable.
    """

    def __init__(self, message: str, name: str | None = None) -> None:
        """Initialize the StoreError.

        Args:
            message: Explanation of the error.
            name: Index name.
        """
        self.message = message
        self.name = name

        full_message = f"{message} (index={name})" if name is not None else message
        super().__init__(full_message)


class InvalidStateError(StoreError):
    """A persisted state record is malformed or of the wrong kind."""


class InvalidIndexKeyError(StoreError):
    """An index name sanitizes to an empty key where one is required."""


class ReadOnlyIndexError(StoreError):
    """A write was attempted on an index the store does not own."""


class IndexStoreReader(ABC):
    """Read-only access to named index states."""

    @abstractmethod
    async def load_state(self, name: str) -> IndexState | None:
        """Load the full state of an index.

        Args:
            name: Index name.

        Returns:
            The full state, or None if the index does not exist.

        Raises:
            StoreError: If the backend fails or the record is invalid.
        """
        ...

    @abstractmethod
    async def load_search(self, name: str) -> IndexStateSearchOnly | None:
        """Load the search-only state of an index.

        Args:
            name: Index name.

        Returns:
            The search state, or None if the index does not exist.

        Raises:
            StoreError: If the backend fails or the record is invalid.
        """
        ...

    @abstractmethod
    async def list(self) -> list[str]:
        """List the names of available indexes."""
        ...


class IndexStore(IndexStoreReader):
    """Index store that owns its indexes and can write them.

    Implementations serialize writes per index name within a process;
    cross-process exclusion is the caller's responsibility.
    """

    @abstractmethod
    async def save(
        self, name: str, full_state: IndexState, search_state: IndexStateSearchOnly
    ) -> None:
        """Save both representations of an index.

        Args:
            name: Index name.
            full_state: State used for incremental updates.
            search_state: State used for querying.
        """
        ...

    @abstractmethod
    async def delete(self, name: str) -> None:
        """Delete an index. Deleting a missing index is a no-op."""
        ...


def decode_state(data: str | bytes, name: str) -> IndexState:
    """Decode a persisted full state record.

    Raises:
        InvalidStateError: If the record is not a full state, for example a
            search-only record stored in its place.
    """
    try:
        raw = json.loads(data)
    except ValueError as e:
        raise InvalidStateError(f"State record is not valid JSON: {e}", name=name) from e

    context_state = raw.get("contextState") if isinstance(raw, dict) else None
    if not isinstance(context_state, dict) or "blobs" not in context_state:
        raise InvalidStateError(
            "State record is missing the blobs field; this looks like a search-only "
            "record, use load_search() instead",
            name=name,
        )

    try:
        return IndexState.model_validate(raw)
    except ValidationError as e:
        raise InvalidStateError(f"Invalid state record: {e}", name=name) from e


def decode_search(data: str | bytes, name: str) -> IndexStateSearchOnly:
    """Decode a persisted search-only state record.

    Full state records are accepted and projected to their search fields,
    with ``mode`` rewritten to match.

    Raises:
        InvalidStateError: If the record cannot be decoded.
    """
    try:
        raw = json.loads(data)
        if isinstance(raw, dict) and isinstance(raw.get("contextState"), dict):
            raw["contextState"].pop("blobs", None)
            raw["contextState"]["mode"] = "search-only"
        return IndexStateSearchOnly.model_validate(raw)
    except ValueError as e:
        raise InvalidStateError(f"Invalid search record: {e}", name=name) from e
