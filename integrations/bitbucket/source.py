"""Bitbucket repository source.

This module provides a source for repositories hosted on Bitbucket Cloud.
Full syncs mirror the repository with git, which avoids API rate limits on
large trees; incremental syncs use the diffstat API between the previously
indexed commit and the current one. Client reads go through the source API
at the same commit.
"""

import asyncio
from collections.abc import Awaitable
from pathlib import Path
from typing import TypeVar
from urllib.parse import quote

import httpx
import structlog

from core.config import get_settings
from core.ingestion.ignore import AUGMENTIGNORE, GITIGNORE, IngestFilter
from core.ingestion.models import (
    BitBucketSourceMetadata,
    BitBucketStoredConfig,
    FileChanges,
    FileEntry,
    FileInfo,
    SourceMetadata,
)
from core.sources.base import (
    ChangeDetectionPolicy,
    Source,
    SourceConfigError,
    SourceError,
    normalize_path,
)
from core.sources.git import GitSource

from .client import DEFAULT_BITBUCKET_API_URL, BitBucketClient, BitBucketClientConfig
from .models import DiffStatus

logger = structlog.get_logger(__name__)

T = TypeVar("T")


def default_clone_url(workspace: str, repo: str, token: str) -> str:
    """Build the token-authenticated HTTPS clone URL of a repository."""
    return f"https://x-token-auth:{quote(token, safe='')}@bitbucket.org/{workspace}/{repo}.git"


class BitBucketSource(Source):
    """Source backed by a Bitbucket Cloud repository.

    The ref is resolved to a commit SHA once and cached for the lifetime of
    the instance, so metadata, fetches and client reads agree.

    Attributes:
        workspace: Workspace slug.
        repo: Repository slug.
        ref: Branch, tag or commit to index.
    """

    type = "bitbucket"

    def __init__(
        self,
        workspace: str,
        repo: str,
        ref: str = "HEAD",
        token: str | None = None,
        base_url: str | None = None,
        clone_url: str | None = None,
        cache_dir: str | Path | None = None,
        max_file_size: int | None = None,
        max_incremental_changes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the BitBucketSource.

        Args:
            workspace: Workspace slug.
            repo: Repository slug.
            ref: Branch, tag or commit to index.
            token: Bitbucket token, defaults to the ``BITBUCKET_TOKEN`` setting.
            base_url: API base URL, defaults to the ``BITBUCKET_API_URL``
                setting.
            clone_url: Remote used for full syncs, defaults to the
                token-authenticated bitbucket.org URL.
            cache_dir: Directory for the local mirror, defaults to the
                ``git_cache_dir`` setting.
            max_file_size: Maximum file size in bytes, defaults to the
                ``max_file_size`` setting.
            max_incremental_changes: Largest change set synced incrementally,
                defaults to the ``max_incremental_changes`` setting.
            transport: Optional httpx transport, used by tests.

        Raises:
            SourceConfigError: If no token is configured or the repository is
                not fully specified.
        """
        if not workspace or not repo:
            raise SourceConfigError("Bitbucket source requires both workspace and repo")

        settings = get_settings()
        token = token or settings.bitbucket_token
        if not token:
            raise SourceConfigError(
                "Bitbucket token required. Set BITBUCKET_TOKEN or pass a token",
                source=f"{workspace}/{repo}",
            )

        self.workspace = workspace
        self.repo = repo
        self.ref = ref
        self.base_url = (base_url or settings.bitbucket_api_url).rstrip("/")
        self.clone_url = clone_url or default_clone_url(workspace, repo, token)
        self.cache_dir = cache_dir
        self.max_file_size = max_file_size or settings.max_file_size
        self.policy = ChangeDetectionPolicy(
            settings.max_incremental_changes
            if max_incremental_changes is None
            else max_incremental_changes
        )

        self._client = BitBucketClient(
            BitBucketClientConfig(access_token=token, base_url=self.base_url),
            transport=transport,
        )
        self._resolved_ref: str | None = None
        self._logger = logger.bind(component="bitbucket_source", repo=self.full_name)

    @property
    def full_name(self) -> str:
        """Repository name as ``workspace/repo``."""
        return f"{self.workspace}/{self.repo}"

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()

    async def _call(self, operation: Awaitable[T], action: str) -> T:
        """Await a client call, surfacing transport failures as SourceError."""
        try:
            return await operation
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to {action}: {e}", source=self.full_name) from e

    async def _resolve_ref(self) -> str:
        """Resolve the configured ref to a commit SHA, cached per instance.

        ``HEAD`` stands for the repository's main branch. Names that are not
        branches are resolved as tags or commit SHAs.
        """
        if self._resolved_ref:
            return self._resolved_ref

        ref = self.ref
        if ref == "HEAD":
            main_branch = await self._call(
                self._client.get_main_branch(self.workspace, self.repo),
                "read repository",
            )
            ref = main_branch or "main"

        sha = await self._call(
            self._client.get_branch_head(self.workspace, self.repo, ref),
            f"resolve ref {ref!r}",
        )
        if sha is None:
            sha = await self._call(
                self._client.get_commit(self.workspace, self.repo, ref),
                f"resolve ref {ref!r}",
            )

        self._resolved_ref = sha
        return sha

    async def _read_bytes(self, path: str, ref: str) -> bytes | None:
        return await self._call(
            self._client.get_file_bytes(self.workspace, self.repo, path, ref),
            f"read {path}",
        )

    async def _load_filter(self, ref: str) -> IngestFilter:
        """Build the ingest filter from the ignore files at a commit."""
        augmentignore, gitignore = await asyncio.gather(
            self._read_bytes(AUGMENTIGNORE, ref),
            self._read_bytes(GITIGNORE, ref),
        )
        return IngestFilter.from_bytes(augmentignore, gitignore, self.max_file_size)

    async def fetch_all(self) -> list[FileEntry]:
        sha = await self._resolve_ref()
        mirror = GitSource(
            self.clone_url,
            ref=sha,
            cache_dir=self.cache_dir,
            max_file_size=self.max_file_size,
        )
        files = await mirror.fetch_all()
        self._logger.info("Fetched repository files", commit=sha[:8], files=len(files))
        return files

    async def _is_ancestor(self, base: str, head: str) -> bool:
        """Check that base is reachable from head, False if base is gone."""
        try:
            merge_base = await self._client.get_merge_base(self.workspace, self.repo, base, head)
        except httpx.HTTPStatusError as e:
            self._logger.info("Merge base lookup failed", status=e.response.status_code)
            return False
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to compare commits: {e}", source=self.full_name) from e
        return merge_base == base

    async def fetch_changes(self, previous: SourceMetadata) -> FileChanges | None:
        if not isinstance(previous, BitBucketSourceMetadata) or not previous.resolved_ref:
            return None

        previous_ref = previous.resolved_ref
        current_ref = await self._resolve_ref()

        if previous_ref == current_ref:
            return FileChanges()

        if not await self._is_ancestor(previous_ref, current_ref):
            self._logger.info("Force push detected, full re-index required")
            return None

        diffstat = await self._call(
            self._client.get_diffstat(self.workspace, self.repo, previous_ref, current_ref),
            "list changed files",
        )

        changed_paths = [d.new_path for d in diffstat if d.new_path]
        changed_paths += [d.old_path for d in diffstat if d.old_path]
        if self.policy.ignore_files_changed(changed_paths):
            self._logger.info("Ignore files changed, full re-index required")
            return None

        if self.policy.too_many_changes(len(diffstat)):
            self._logger.info("Too many changes, full re-index required", changes=len(diffstat))
            return None

        ingest_filter = await self._load_filter(current_ref)
        changes = FileChanges()

        for diff in diffstat:
            if diff.status == DiffStatus.REMOVED or diff.new_path is None:
                if diff.old_path:
                    changes.removed.append(diff.old_path)
                continue

            renamed = diff.status == DiffStatus.RENAMED and diff.old_path != diff.new_path
            if renamed and diff.old_path:
                changes.removed.append(diff.old_path)

            content = await self._read_bytes(diff.new_path, current_ref)
            if content is None or not ingest_filter.accepts(diff.new_path, content):
                continue

            entry = FileEntry(path=diff.new_path, content=content)
            if diff.status == DiffStatus.ADDED:
                changes.added.append(entry)
            else:
                changes.modified.append(entry)

        self._logger.info(
            "Computed incremental changes",
            base=previous_ref[:8],
            head=current_ref[:8],
            added=len(changes.added),
            modified=len(changes.modified),
            removed=len(changes.removed),
        )
        return changes

    async def get_metadata(self) -> SourceMetadata:
        sha = await self._resolve_ref()
        return BitBucketSourceMetadata(
            config=BitBucketStoredConfig(
                workspace=self.workspace,
                repo=self.repo,
                base_url=None if self.base_url == DEFAULT_BITBUCKET_API_URL else self.base_url,
                ref=self.ref,
            ),
            resolved_ref=sha,
        )

    async def list_files(self, directory: str = "") -> list[FileInfo]:
        sha = await self._resolve_ref()
        items = await self._call(
            self._client.list_directory(self.workspace, self.repo, normalize_path(directory), sha),
            f"list {directory or '/'}",
        )
        if items is None:
            return []
        return [FileInfo(path=item.path, is_directory=item.is_directory) for item in items]

    async def read_file(self, path: str) -> str | None:
        path = normalize_path(path)
        if not path:
            return None

        sha = await self._resolve_ref()
        data = await self._read_bytes(path, sha)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            return None
