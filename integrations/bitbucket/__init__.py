"""Bitbucket integration for context-sync.

This module provides:
- Bitbucket Cloud API client for the repository endpoints indexing needs
- A source that indexes a Bitbucket repository via git and the diffstat API
"""

from .client import DEFAULT_BITBUCKET_API_URL, BitBucketClient, BitBucketClientConfig
from .models import BitBucketCommitFile, BitBucketDiffStat, BitBucketSrcItem, DiffStatus
from .source import BitBucketSource, default_clone_url

__all__ = [
    # Client
    "BitBucketClient",
    "BitBucketClientConfig",
    "DEFAULT_BITBUCKET_API_URL",
    # Models
    "BitBucketCommitFile",
    "BitBucketDiffStat",
    "BitBucketSrcItem",
    "DiffStatus",
    # Source
    "BitBucketSource",
    "default_clone_url",
]
