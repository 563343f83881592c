"""Ingestion module for content filtering and source data models.

This module provides the content filter applied to every file at the
ingestion boundary, ``.gitignore``-style rule matching, and the data models
shared by sources, stores and the indexer. The sync driver lives in
``core.ingestion.indexer``.

Example:
    >>> from core.ingestion import should_filter_file
    >>> should_filter_file("keys/id_rsa", b"secret").reason
    'keyish_pattern'

    >>> from core.ingestion.indexer import Indexer
    >>> result = await Indexer().index(source, store, "my-index")
    >>> print(f"{result.type.value}: {result.files_indexed} files")
"""

from .filter import (
    DEFAULT_MAX_FILE_SIZE,
    REASON_BINARY,
    REASON_DOTDOT,
    REASON_KEYISH,
    FilterResult,
    always_ignore_path,
    is_keyish_path,
    is_valid_file_size,
    is_valid_utf8,
    should_filter_file,
)
from .ignore import AUGMENTIGNORE, GITIGNORE, IgnoreRules, IngestFilter
from .models import (
    BitBucketSourceMetadata,
    BitBucketStoredConfig,
    FileChanges,
    FileEntry,
    FileInfo,
    GitHubSourceMetadata,
    GitHubStoredConfig,
    GitLabSourceMetadata,
    GitLabStoredConfig,
    GitSourceMetadata,
    GitStoredConfig,
    IndexResult,
    IndexResultType,
    SourceMetadata,
    WebsiteSourceMetadata,
    WebsiteStoredConfig,
    parse_source_metadata,
    resolved_ref,
    source_identifier,
)

__all__ = [
    # Content filter
    "should_filter_file",
    "FilterResult",
    "DEFAULT_MAX_FILE_SIZE",
    "REASON_DOTDOT",
    "REASON_KEYISH",
    "REASON_BINARY",
    "always_ignore_path",
    "is_keyish_path",
    "is_valid_file_size",
    "is_valid_utf8",
    # Ignore rules
    "IgnoreRules",
    "IngestFilter",
    "AUGMENTIGNORE",
    "GITIGNORE",
    # Models
    "FileEntry",
    "FileInfo",
    "FileChanges",
    "SourceMetadata",
    "GitHubSourceMetadata",
    "GitHubStoredConfig",
    "GitLabSourceMetadata",
    "GitLabStoredConfig",
    "BitBucketSourceMetadata",
    "BitBucketStoredConfig",
    "GitSourceMetadata",
    "GitStoredConfig",
    "WebsiteSourceMetadata",
    "WebsiteStoredConfig",
    "parse_source_metadata",
    "source_identifier",
    "resolved_ref",
    "IndexResult",
    "IndexResultType",
]
