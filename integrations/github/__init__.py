"""GitHub integration for context-sync.

This module provides:
- GitHub API client for the repository endpoints indexing needs
- A source that indexes a GitHub repository via tarballs and the compare API
"""

from core.sources.archive import extract_tarball

from .client import GitHubClient, GitHubClientConfig
from .models import (
    ComparisonStatus,
    FileStatus,
    GitHubCommit,
    GitHubComparison,
    GitHubContentItem,
    GitHubFile,
)
from .source import GitHubSource

__all__ = [
    # Client
    "GitHubClient",
    "GitHubClientConfig",
    # Models
    "ComparisonStatus",
    "FileStatus",
    "GitHubCommit",
    "GitHubComparison",
    "GitHubContentItem",
    "GitHubFile",
    # Source
    "GitHubSource",
    "extract_tarball",
]
