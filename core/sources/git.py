"""Git remote source.

This module provides a source for any git remote reachable by the ``git``
executable (HTTPS, SSH or a local path). The remote is mirrored into a local
cache directory; files are read straight from commit trees, so no working
tree is ever checked out. Incremental syncs diff the previously indexed
commit against the current one. Uses GitPython for Git operations.
"""

import asyncio
import hashlib
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, Any
from urllib.parse import urlparse, urlunparse

import structlog

from core.config import get_settings
from core.ingestion.ignore import AUGMENTIGNORE, GITIGNORE, IngestFilter
from core.ingestion.models import (
    FileChanges,
    FileEntry,
    FileInfo,
    GitSourceMetadata,
    GitStoredConfig,
    SourceMetadata,
)

from .base import (
    ChangeDetectionPolicy,
    Source,
    SourceConfigError,
    SourceError,
    normalize_path,
)

if TYPE_CHECKING:
    from git import Commit, Repo

logger = structlog.get_logger(__name__)


def redact_url(url: str) -> str:
    """Remove credentials from a remote URL before it is stored."""
    parsed = urlparse(url)
    if not parsed.username and not parsed.password:
        return url
    netloc = parsed.hostname or ""
    if parsed.port:
        netloc = f"{netloc}:{parsed.port}"
    return urlunparse(parsed._replace(netloc=netloc))


def default_cache_dir() -> Path:
    """Get the default directory holding git mirrors."""
    return Path(tempfile.gettempdir()) / "context-sync" / "git"


class GitSource(Source):
    """Source backed by a git remote.

    The resolved commit is cached for the lifetime of the instance so that
    metadata, full fetches and client reads agree. Create a new instance to
    pick up new commits.

    Attributes:
        url: Remote URL or local path.
        ref: Branch, tag or commit to index.
        cache_dir: Directory holding the local mirror.
        clone_timeout: Timeout in seconds for clone and fetch operations.
    """

    type = "git"

    def __init__(
        self,
        url: str,
        ref: str | None = None,
        cache_dir: str | Path | None = None,
        max_file_size: int | None = None,
        max_incremental_changes: int | None = None,
        clone_timeout: int | None = None,
    ) -> None:
        """Initialize the GitSource.

        Args:
            url: Remote URL or local path of the repository.
            ref: Branch, tag or commit to index, None for the remote HEAD.
            cache_dir: Directory for local mirrors, defaults to the
                ``git_cache_dir`` setting.
            max_file_size: Maximum file size in bytes, defaults to the
                ``max_file_size`` setting.
            max_incremental_changes: Largest change set synced incrementally,
                defaults to the ``max_incremental_changes`` setting.
            clone_timeout: Timeout in seconds for clone and fetch operations,
                defaults to the ``git_clone_timeout`` setting.
        """
        if not url:
            raise SourceConfigError("Git source requires a repository URL")

        self.url = url
        self.ref = ref
        settings = get_settings()
        self.cache_dir = Path(cache_dir or settings.git_cache_dir or default_cache_dir())
        self.clone_timeout = clone_timeout or settings.git_clone_timeout
        self.max_file_size = max_file_size or settings.max_file_size
        self.policy = ChangeDetectionPolicy(
            settings.max_incremental_changes
            if max_incremental_changes is None
            else max_incremental_changes
        )

        self._repo: Repo | None = None
        self._resolved_ref: str | None = None
        self._lock = asyncio.Lock()
        self._logger = logger.bind(component="git_source", url=redact_url(url))

    @property
    def mirror_path(self) -> Path:
        """Path of the local mirror for this remote."""
        digest = hashlib.sha256(self.url.encode()).hexdigest()[:16]
        return self.cache_dir / digest

    async def _run(self, func: Any, timeout: float | None = None) -> Any:
        """Run a blocking git operation in the thread pool.

        Raises:
            SourceError: If the operation fails or times out.
        """
        future = asyncio.get_event_loop().run_in_executor(None, func)
        try:
            if timeout is None:
                return await future
            return await asyncio.wait_for(future, timeout=timeout)
        except TimeoutError as e:
            raise SourceError(
                f"Git operation timed out after {timeout}s", source=redact_url(self.url)
            ) from e
        except SourceError:
            raise
        except Exception as e:
            raise SourceError(f"Git operation failed: {e}", source=redact_url(self.url)) from e

    async def _get_repo(self) -> "Repo":
        """Clone or refresh the local mirror, once per instance."""
        async with self._lock:
            if self._repo is not None:
                return self._repo

            from git import InvalidGitRepositoryError, NoSuchPathError, Repo

            path = self.mirror_path

            def _open_or_clone() -> "Repo":
                try:
                    repo = Repo(str(path))
                except (InvalidGitRepositoryError, NoSuchPathError):
                    path.parent.mkdir(parents=True, exist_ok=True)
                    self._logger.info("Cloning mirror", path=str(path))
                    return Repo.clone_from(self.url, str(path), mirror=True)

                self._logger.debug("Fetching mirror", path=str(path))
                repo.git.fetch("origin", "--prune")
                return repo

            self._repo = await self._run(_open_or_clone, timeout=self.clone_timeout)
            return self._repo

    def _commit(self, repo: "Repo", rev: str) -> "Commit":
        try:
            return repo.commit(rev)
        except Exception as e:
            raise SourceError(f"Commit not found: {rev}", source=redact_url(self.url)) from e

    async def _resolve_ref(self) -> str:
        """Resolve the configured ref to a commit SHA, cached per instance."""
        if self._resolved_ref:
            return self._resolved_ref

        repo = await self._get_repo()
        rev = self.ref or "HEAD"

        def _resolve() -> str:
            hexsha: str = self._commit(repo, rev).hexsha
            return hexsha

        self._resolved_ref = await self._run(_resolve)
        return self._resolved_ref

    @staticmethod
    def _read_blob(commit: "Commit", path: str) -> bytes | None:
        try:
            item = commit.tree / path
        except KeyError:
            return None
        if item.type != "blob":
            return None
        data: bytes = item.data_stream.read()
        return data

    def _build_filter(self, commit: "Commit") -> IngestFilter:
        return IngestFilter.from_bytes(
            self._read_blob(commit, AUGMENTIGNORE),
            self._read_blob(commit, GITIGNORE),
            self.max_file_size,
        )

    async def fetch_all(self) -> list[FileEntry]:
        repo = await self._get_repo()
        sha = await self._resolve_ref()

        def _collect() -> list[FileEntry]:
            commit = self._commit(repo, sha)
            ingest_filter = self._build_filter(commit)
            files: list[FileEntry] = []
            for item in commit.tree.traverse():
                if item.type != "blob":
                    continue
                content: bytes = item.data_stream.read()
                if ingest_filter.accepts(item.path, content):
                    files.append(FileEntry(path=item.path, content=content))
            return files

        files: list[FileEntry] = await self._run(_collect)
        self._logger.info("Fetched repository files", commit=sha[:8], files=len(files))
        return files

    async def fetch_changes(self, previous: SourceMetadata) -> FileChanges | None:
        if not isinstance(previous, GitSourceMetadata) or not previous.resolved_ref:
            return None

        previous_ref = previous.resolved_ref
        repo = await self._get_repo()
        current_ref = await self._resolve_ref()

        if previous_ref == current_ref:
            return FileChanges()

        def _diff() -> FileChanges | None:
            try:
                base = repo.commit(previous_ref)
            except Exception:
                self._logger.info("Previous commit unreachable, full re-index required")
                return None

            if not repo.is_ancestor(base, current_ref):
                self._logger.info("History rewritten, full re-index required")
                return None

            target = self._commit(repo, current_ref)
            diff_index = base.diff(target)

            changed_paths = {d.a_path for d in diff_index if d.a_path} | {
                d.b_path for d in diff_index if d.b_path
            }
            if self.policy.ignore_files_changed(changed_paths):
                self._logger.info("Ignore files changed, full re-index required")
                return None

            if self.policy.too_many_changes(len(diff_index)):
                self._logger.info(
                    "Too many changes, full re-index required", changes=len(diff_index)
                )
                return None

            ingest_filter = self._build_filter(target)
            changes = FileChanges()

            for diff_item in diff_index:
                change_type = diff_item.change_type
                if change_type == "D":
                    changes.removed.append(diff_item.a_path)
                    continue

                if change_type == "R" and diff_item.a_path:
                    changes.removed.append(diff_item.a_path)

                path = diff_item.b_path
                content = self._read_blob(target, path)
                if content is None or not ingest_filter.accepts(path, content):
                    continue

                entry = FileEntry(path=path, content=content)
                if change_type == "A":
                    changes.added.append(entry)
                else:
                    changes.modified.append(entry)

            return changes

        changes: FileChanges | None = await self._run(_diff)
        if changes is not None:
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
        return GitSourceMetadata(
            config=GitStoredConfig(url=redact_url(self.url), ref=self.ref),
            resolved_ref=sha,
        )

    async def list_files(self, directory: str = "") -> list[FileInfo]:
        repo = await self._get_repo()
        sha = await self._resolve_ref()
        directory = normalize_path(directory)

        def _list() -> list[FileInfo]:
            tree = self._commit(repo, sha).tree
            if directory:
                try:
                    tree = tree / directory
                except KeyError:
                    return []
                if tree.type != "tree":
                    return []
            return [
                FileInfo(path=item.path, is_directory=item.type == "tree")
                for item in tree
                if item.type in ("tree", "blob")
            ]

        result: list[FileInfo] = await self._run(_list)
        return result

    async def read_file(self, path: str) -> str | None:
        repo = await self._get_repo()
        sha = await self._resolve_ref()
        path = normalize_path(path)
        if not path:
            return None

        def _read() -> str | None:
            data = self._read_blob(self._commit(repo, sha), path)
            if data is None:
                return None
            try:
                return data.decode("utf-8")
            except UnicodeDecodeError:
                return None

        result: str | None = await self._run(_read)
        return result
