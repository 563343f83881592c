"""GitLab repository source.

This module provides a source for projects hosted on gitlab.com or a
self-hosted GitLab instance. Full syncs download an archive of the resolved
commit; incremental syncs use the compare API between the previously indexed
commit and the current one. Client reads go through the repository files and
tree APIs at the same commit.
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
    GitLabSourceMetadata,
    GitLabStoredConfig,
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

from .client import DEFAULT_GITLAB_URL, GitLabClient, GitLabClientConfig
from .models import GitLabComparison

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class GitLabSource(Source):
    """Source backed by a GitLab project.

    The ref is resolved to a commit SHA once and cached for the lifetime of
    the instance, so metadata, fetches and client reads agree.

    Attributes:
        project_id: Numeric project ID or ``group/project`` path.
        ref: Branch, tag or commit to index.
        base_url: Instance URL.
    """

    type = "gitlab"

    def __init__(
        self,
        project_id: str,
        ref: str = "HEAD",
        token: str | None = None,
        base_url: str | None = None,
        max_file_size: int | None = None,
        max_incremental_changes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitLabSource.

        Args:
            project_id: Numeric project ID or ``group/project`` path.
            ref: Branch, tag or commit to index.
            token: GitLab token, defaults to the ``GITLAB_TOKEN`` setting.
            base_url: Instance URL, defaults to the ``GITLAB_URL`` setting.
            max_file_size: Maximum file size in bytes, defaults to the
                ``max_file_size`` setting.
            max_incremental_changes: Largest change set synced incrementally,
                defaults to the ``max_incremental_changes`` setting.
            transport: Optional httpx transport, used by tests.

        Raises:
            SourceConfigError: If no token is configured or no project given.
        """
        if not project_id:
            raise SourceConfigError("GitLab source requires a project ID or path")

        settings = get_settings()
        token = token or settings.gitlab_token
        if not token:
            raise SourceConfigError(
                "GitLab token required. Set GITLAB_TOKEN or pass a token",
                source=project_id,
            )

        self.project_id = project_id
        self.ref = ref
        self.base_url = (base_url or settings.gitlab_url).rstrip("/")
        self.max_file_size = max_file_size or settings.max_file_size
        self.policy = ChangeDetectionPolicy(
            settings.max_incremental_changes
            if max_incremental_changes is None
            else max_incremental_changes
        )

        self._client = GitLabClient(
            GitLabClientConfig(access_token=token, base_url=self.base_url),
            transport=transport,
        )
        self._resolved_ref: str | None = None
        self._logger = logger.bind(component="gitlab_source", project=project_id)

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        await self._client.close()

    async def _call(self, operation: Awaitable[T], action: str) -> T:
        """Await a client call, surfacing transport failures as SourceError."""
        try:
            return await operation
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to {action}: {e}", source=self.project_id) from e

    async def _resolve_ref(self) -> str:
        """Resolve the configured ref to a commit SHA, cached per instance."""
        if self._resolved_ref:
            return self._resolved_ref

        commit = await self._call(
            self._client.get_commit(self.project_id, self.ref),
            f"resolve ref {self.ref!r}",
        )
        self._resolved_ref = commit.id
        return commit.id

    async def _read_bytes(self, path: str, ref: str) -> bytes | None:
        return await self._call(
            self._client.get_file_bytes(self.project_id, path, ref),
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
        data = await self._call(
            self._client.download_archive(self.project_id, sha),
            "download archive",
        )

        try:
            contents = await asyncio.get_event_loop().run_in_executor(
                None, extract_tarball, data
            )
        except (tarfile.TarError, OSError) as e:
            raise SourceError(f"Invalid archive: {e}", source=self.project_id) from e

        ingest_filter = IngestFilter.from_bytes(
            contents.get(AUGMENTIGNORE), contents.get(GITIGNORE), self.max_file_size
        )
        files = [
            FileEntry(path=path, content=content)
            for path, content in contents.items()
            if ingest_filter.accepts(path, content)
        ]

        self._logger.info(
            "Extracted files from archive",
            commit=sha[:8],
            extracted=len(contents),
            files=len(files),
        )
        return files

    async def _compare(self, base: str, head: str) -> GitLabComparison | None:
        """Compare two commits, None if the comparison is impossible."""
        try:
            return await self._client.compare(self.project_id, base, head)
        except httpx.HTTPStatusError as e:
            # One of the commits no longer exists, typically after a force push
            self._logger.info("Compare failed", status=e.response.status_code)
            return None
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to compare commits: {e}", source=self.project_id) from e

    async def _is_ancestor(self, base: str, head: str) -> bool:
        """Check that every commit of base is reachable from head."""
        reverse = await self._compare(head, base)
        return reverse is not None and not reverse.commits

    async def fetch_changes(self, previous: SourceMetadata) -> FileChanges | None:
        if not isinstance(previous, GitLabSourceMetadata) or not previous.resolved_ref:
            return None

        previous_ref = previous.resolved_ref
        current_ref = await self._resolve_ref()

        if previous_ref == current_ref:
            return FileChanges()

        comparison = await self._compare(previous_ref, current_ref)
        if comparison is None or not await self._is_ancestor(previous_ref, current_ref):
            self._logger.info("Force push detected, full re-index required")
            return None

        changed_paths = [d.new_path for d in comparison.diffs]
        changed_paths += [d.old_path for d in comparison.diffs]
        if self.policy.ignore_files_changed(changed_paths):
            self._logger.info("Ignore files changed, full re-index required")
            return None

        if comparison.compare_timeout or self.policy.too_many_changes(len(comparison.diffs)):
            self._logger.info(
                "Too many changes, full re-index required", changes=len(comparison.diffs)
            )
            return None

        ingest_filter = await self._load_filter(current_ref)
        changes = FileChanges()

        for diff in comparison.diffs:
            if diff.deleted_file:
                changes.removed.append(diff.old_path)
                continue

            if diff.renamed_file and diff.old_path != diff.new_path:
                changes.removed.append(diff.old_path)

            content = await self._read_bytes(diff.new_path, current_ref)
            if content is None or not ingest_filter.accepts(diff.new_path, content):
                continue

            entry = FileEntry(path=diff.new_path, content=content)
            if diff.new_file:
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
        return GitLabSourceMetadata(
            config=GitLabStoredConfig(
                project_id=self.project_id,
                base_url=None if self.base_url == DEFAULT_GITLAB_URL else self.base_url,
                ref=self.ref,
            ),
            resolved_ref=sha,
        )

    async def list_files(self, directory: str = "") -> list[FileInfo]:
        sha = await self._resolve_ref()
        items = await self._call(
            self._client.list_tree(self.project_id, normalize_path(directory), sha),
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
