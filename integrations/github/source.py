"""GitHub repository source.

This module provides a source for repositories hosted on GitHub. Full syncs
download a tarball of the resolved commit; incremental syncs use the compare
API between the previously indexed commit and the current one. Client reads
go through the contents API at the same commit.

Requests authenticate with a token, or as a GitHub App installation when an
App ID, private key and installation ID are configured instead.
"""

import asyncio
import tarfile
from collections.abc import Awaitable
from typing import TypeVar

import httpx
import structlog

from core.config import get_settings
from core.ingestion.ignore import AUGMENTIGNORE, GITIGNORE, IngestFilter
from core.ingestion.models import (
    FileChanges,
    FileEntry,
    FileInfo,
    GitHubSourceMetadata,
    GitHubStoredConfig,
    SourceMetadata,
)
from core.sources.archive import extract_tarball
from core.sources.base import (
    ChangeDetectionPolicy,
    Source,
    SourceConfigError,
    SourceError,
    normalize_path,
)

from .client import GitHubClient, GitHubClientConfig
from .models import FileStatus, GitHubComparison

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class GitHubSource(Source):
    """Source backed by a GitHub repository.

    The ref is resolved to a commit SHA once and cached for the lifetime of
    the instance, so metadata, fetches and client reads agree.

    Attributes:
        owner: Repository owner (user or organization).
        repo: Repository name.
        ref: Branch, tag or commit to index.
    """

    type = "github"

    def __init__(
        self,
        owner: str,
        repo: str,
        ref: str = "HEAD",
        token: str | None = None,
        base_url: str | None = None,
        max_file_size: int | None = None,
        max_incremental_changes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        app_id: int | None = None,
        private_key: str | None = None,
        installation_id: int | None = None,
    ) -> None:
        """Initialize the GitHubSource.

        Args:
            owner: Repository owner.
            repo: Repository name.
            ref: Branch, tag or commit to index.
            token: GitHub token, defaults to the ``GITHUB_TOKEN`` setting.
            base_url: API base URL, defaults to the ``GITHUB_API_URL`` setting.
            max_file_size: Maximum file size in bytes, defaults to the
                ``max_file_size`` setting.
            max_incremental_changes: Largest change set synced incrementally,
                defaults to the ``max_incremental_changes`` setting.
            transport: Optional httpx transport, used by tests.
            app_id: GitHub App ID, defaults to the ``GITHUB_APP_ID`` setting.
            private_key: App private key in PEM form, defaults to the
                ``GITHUB_APP_PRIVATE_KEY`` setting.
            installation_id: App installation ID, defaults to the
                ``GITHUB_APP_INSTALLATION_ID`` setting.

        Raises:
            SourceConfigError: If neither a token nor complete App credentials
                are configured, or the repository is not fully specified.
        """
        if not owner or not repo:
            raise SourceConfigError("GitHub source requires both owner and repo")

        settings = get_settings()
        config = GitHubClientConfig(
            access_token=token or settings.github_token,
            app_id=app_id or settings.github_app_id,
            private_key=private_key or settings.github_app_private_key,
            installation_id=installation_id or settings.github_app_installation_id,
            base_url=base_url or settings.github_api_url,
        )
        if not config.has_credentials:
            raise SourceConfigError(
                "GitHub token required. Set GITHUB_TOKEN, configure GITHUB_APP_ID, "
                "GITHUB_APP_PRIVATE_KEY and GITHUB_APP_INSTALLATION_ID, or pass a token",
                source=f"{owner}/{repo}",
            )

        self.owner = owner
        self.repo = repo
        self.ref = ref
        self.max_file_size = max_file_size or settings.max_file_size
        self.policy = ChangeDetectionPolicy(
            settings.max_incremental_changes
            if max_incremental_changes is None
            else max_incremental_changes
        )

        self._client = GitHubClient(config, transport=transport)
        self._resolved_ref: str | None = None
        self._logger = logger.bind(component="github_source", repo=self.full_name)

    @property
    def full_name(self) -> str:
        """Repository name as ``owner/repo``."""
        return f"{self.owner}/{self.repo}"

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
        """Resolve the configured ref to a commit SHA, cached per instance."""
        if self._resolved_ref:
            return self._resolved_ref

        commit = await self._call(
            self._client.get_commit(self.owner, self.repo, self.ref),
            f"resolve ref {self.ref!r}",
        )
        self._resolved_ref = commit.sha
        return commit.sha

    async def _read_bytes(self, path: str, ref: str) -> bytes | None:
        return await self._call(
            self._client.get_file_bytes(self.owner, self.repo, path, ref),
            f"read {path}",
        )

    async def _load_filter(self, ref: str) -> IngestFilter:
        """Build the ingest filter from the ignore files at a commit."""
        augmentignore, gitignore = await asyncio.gather(
            self._read_bytes(AUGMENTIGNORE, ref),
            self._read_bytes(GITIGNORE, ref),
        )
        return self._make_filter(augmentignore, gitignore)

    def _make_filter(self, augmentignore: bytes | None, gitignore: bytes | None) -> IngestFilter:
        return IngestFilter.from_bytes(augmentignore, gitignore, self.max_file_size)

    async def fetch_all(self) -> list[FileEntry]:
        sha = await self._resolve_ref()
        data = await self._call(
            self._client.download_tarball(self.owner, self.repo, sha),
            "download tarball",
        )

        try:
            contents = await asyncio.get_event_loop().run_in_executor(
                None, extract_tarball, data
            )
        except (tarfile.TarError, OSError) as e:
            raise SourceError(f"Invalid tarball: {e}", source=self.full_name) from e

        ingest_filter = self._make_filter(contents.get(AUGMENTIGNORE), contents.get(GITIGNORE))
        files = [
            FileEntry(path=path, content=content)
            for path, content in contents.items()
            if ingest_filter.accepts(path, content)
        ]

        self._logger.info(
            "Extracted files from tarball",
            commit=sha[:8],
            extracted=len(contents),
            files=len(files),
        )
        return files

    async def _compare(self, base: str, head: str) -> GitHubComparison | None:
        """Compare two commits, None if the comparison is impossible."""
        try:
            return await self._client.compare_commits(self.owner, self.repo, base, head)
        except httpx.HTTPStatusError as e:
            # Base commit no longer exists, typically after a force push
            self._logger.info("Compare failed", status=e.response.status_code)
            return None
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to compare commits: {e}", source=self.full_name) from e

    async def fetch_changes(self, previous: SourceMetadata) -> FileChanges | None:
        if not isinstance(previous, GitHubSourceMetadata) or not previous.resolved_ref:
            return None

        previous_ref = previous.resolved_ref
        current_ref = await self._resolve_ref()

        if previous_ref == current_ref:
            return FileChanges()

        comparison = await self._compare(previous_ref, current_ref)
        if comparison is None or not comparison.is_linear:
            self._logger.info("Force push detected, full re-index required")
            return None

        changed_paths = [f.filename for f in comparison.files]
        changed_paths += [f.previous_filename for f in comparison.files if f.previous_filename]
        if self.policy.ignore_files_changed(changed_paths):
            self._logger.info("Ignore files changed, full re-index required")
            return None

        if self.policy.too_many_changes(len(comparison.files)):
            self._logger.info(
                "Too many changes, full re-index required", changes=len(comparison.files)
            )
            return None

        ingest_filter = await self._load_filter(current_ref)
        changes = FileChanges()

        for file in comparison.files:
            if file.status == FileStatus.REMOVED:
                changes.removed.append(file.filename)
                continue
            if file.status == FileStatus.UNCHANGED:
                continue

            if file.status == FileStatus.RENAMED and file.previous_filename:
                changes.removed.append(file.previous_filename)

            content = await self._read_bytes(file.filename, current_ref)
            if content is None or not ingest_filter.accepts(file.filename, content):
                continue

            entry = FileEntry(path=file.filename, content=content)
            if file.status in (FileStatus.ADDED, FileStatus.COPIED):
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
        return GitHubSourceMetadata(
            config=GitHubStoredConfig(owner=self.owner, repo=self.repo, ref=self.ref),
            resolved_ref=sha,
        )

    async def list_files(self, directory: str = "") -> list[FileInfo]:
        sha = await self._resolve_ref()
        items = await self._call(
            self._client.list_directory(self.owner, self.repo, normalize_path(directory), sha),
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
