"""GitLab integration for context-sync.

This module provides:
- GitLab API client for the repository endpoints indexing needs
- A source that indexes a GitLab project via archives and the compare API
"""

from .client import DEFAULT_GITLAB_URL, GitLabClient, GitLabClientConfig
from .models import GitLabCommit, GitLabComparison, GitLabDiff, GitLabTreeItem
from .source import GitLabSource

__all__ = [
    # Client
    "GitLabClient",
    "GitLabClientConfig",
    "DEFAULT_GITLAB_URL",
    # Models
    "GitLabCommit",
    "GitLabComparison",
    "GitLabDiff",
    "GitLabTreeItem",
    # Source
    "GitLabSource",
]
