"""Content sources.

This module provides the source contract every content provider implements,
the shared change-detection policy, and the built-in providers.

Example:
    >>> from core.sources import GitSource
    >>> source = GitSource("https://github.com/octocat/Hello-World.git")
    >>> files = await source.fetch_all()
    >>> changes = await source.fetch_changes(previous_metadata)
    >>> if changes is None:
    ...     files = await source.fetch_all()  # full re-index
"""

from .base import (
    DEFAULT_MAX_INCREMENTAL_CHANGES,
    IGNORE_FILES,
    ChangeDetectionPolicy,
    Source,
    SourceConfigError,
    SourceError,
    normalize_path,
)
from .archive import extract_tarball
from .git import GitSource
from .website import WebsiteSource

__all__ = [
    # Contract
    "Source",
    "SourceError",
    "SourceConfigError",
    "normalize_path",
    "extract_tarball",
    # Change detection
    "ChangeDetectionPolicy",
    "IGNORE_FILES",
    "DEFAULT_MAX_INCREMENTAL_CHANGES",
    # Providers
    "GitSource",
    "WebsiteSource",
]
