"""Index state stores.

This module provides the store contracts and backends that persist index
state by name, plus the composite and layered readers that serve indexes
from several locations.

Example:
    >>> from core.stores import FilesystemStore, ReadOnlyLayeredStore, CompositeStoreReader
    >>> from core.stores import parse_index_specs
    >>> remote = CompositeStoreReader.from_specs(parse_index_specs(["s3://bucket/indexes/docs"]))
    >>> store = ReadOnlyLayeredStore(FilesystemStore(), remote)
    >>> state = await store.load_state("docs")  # local "docs" wins if present
    >>> names = await store.list()
"""

from .base import (
    SEARCH_FILENAME,
    STATE_FILENAME,
    IndexStore,
    IndexStoreReader,
    InvalidIndexKeyError,
    InvalidStateError,
    ReadOnlyIndexError,
    StoreError,
    sanitize_key,
)
from .composite import CompositeStoreReader, StoreEntry
from .filesystem import FilesystemStore
from .index_spec import (
    IndexSpec,
    IndexSpecError,
    IndexSpecType,
    parse_index_spec,
    parse_index_specs,
)
from .layered import LayeredStore, ReadOnlyLayeredStore
from .memory import MemoryStore
from .models import (
    FullContextState,
    IndexState,
    IndexStateSearchOnly,
    SearchOnlyContextState,
)
from .s3 import S3Store

__all__ = [
    # Contracts
    "IndexStoreReader",
    "IndexStore",
    "sanitize_key",
    "STATE_FILENAME",
    "SEARCH_FILENAME",
    # Errors
    "StoreError",
    "InvalidStateError",
    "InvalidIndexKeyError",
    "ReadOnlyIndexError",
    # Models
    "IndexState",
    "IndexStateSearchOnly",
    "FullContextState",
    "SearchOnlyContextState",
    # Backends
    "FilesystemStore",
    "MemoryStore",
    "S3Store",
    # Composition
    "CompositeStoreReader",
    "StoreEntry",
    "ReadOnlyLayeredStore",
    "LayeredStore",
    # Index specs
    "IndexSpec",
    "IndexSpecError",
    "IndexSpecType",
    "parse_index_spec",
    "parse_index_specs",
]
