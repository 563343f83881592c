"""Pydantic models for the ingestion module.

This module defines the data models shared by sources, the content filter and
the indexer: file entries and listings, change sets for incremental syncs,
per-provider source metadata and indexing results.
"""

from datetime import UTC, datetime
from enum import Enum
from typing import Annotated, Any, Literal
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def iso_timestamp() -> str:
    """Get the current UTC time as an ISO-8601 string."""
    return datetime.now(tz=UTC).isoformat().replace("+00:00", "Z")


class FileEntry(BaseModel):
    """A file with its raw contents, produced by a source.

    Attributes:
        path: Relative POSIX path from the source root, no leading slash.
        content: Raw file bytes.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(..., description="Relative path from the source root")
    content: bytes = Field(..., description="Raw file contents")

    @property
    def text(self) -> str:
        """Decode the content as UTF-8 text."""
        return self.content.decode("utf-8")

    @property
    def size(self) -> int:
        """Size of the content in bytes."""
        return len(self.content)


class FileInfo(BaseModel):
    """Lightweight listing record for a file or directory.

    Attributes:
        path: Relative path from the source root.
        is_directory: Whether the entry is a directory.
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    path: str = Field(..., description="Relative path from the source root")
    is_directory: bool = Field(False, description="Whether the entry is a directory")

    @property
    def type(self) -> str:
        """Entry type as ``"file"`` or ``"directory"``."""
        return "directory" if self.is_directory else "file"


class FileChanges(BaseModel):
    """Changes detected since the last sync.

    Added and modified entries carry full contents; removed entries are bare
    paths.
    """

    model_config = ConfigDict(extra="forbid")

    added: list[FileEntry] = Field(default_factory=list, description="Files added")
    modified: list[FileEntry] = Field(default_factory=list, description="Files modified")
    removed: list[str] = Field(default_factory=list, description="Paths removed")

    @property
    def is_empty(self) -> bool:
        """Whether no file was added, modified or removed."""
        return not (self.added or self.modified or self.removed)


# ---------------------------------------------------------------------------
# Source metadata
# ---------------------------------------------------------------------------


class _StoredModel(BaseModel):
    """Base for persisted models using camelCase keys on the wire."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)


class GitHubStoredConfig(_StoredModel):
    """GitHub source config, without the token."""

    owner: str
    repo: str
    ref: str | None = None


class GitStoredConfig(_StoredModel):
    """Generic git remote config, without credentials."""

    url: str
    ref: str | None = None


class GitLabStoredConfig(_StoredModel):
    """GitLab source config, without the token.

    ``base_url`` is only recorded for self-hosted instances.
    """

    project_id: str = Field(..., alias="projectId")
    base_url: str | None = Field(None, alias="baseUrl")
    ref: str | None = None


class BitBucketStoredConfig(_StoredModel):
    """Bitbucket Cloud source config, without the token."""

    workspace: str
    repo: str
    base_url: str | None = Field(None, alias="baseUrl")
    ref: str | None = None


class WebsiteStoredConfig(_StoredModel):
    """Website crawler config."""

    url: str
    max_depth: int | None = Field(None, alias="maxDepth")
    max_pages: int | None = Field(None, alias="maxPages")
    include_paths: list[str] | None = Field(None, alias="includePaths")
    exclude_paths: list[str] | None = Field(None, alias="excludePaths")
    respect_robots_txt: bool | None = Field(None, alias="respectRobotsTxt")
    user_agent: str | None = Field(None, alias="userAgent")
    delay_ms: int | None = Field(None, alias="delayMs")


class GitHubSourceMetadata(_StoredModel):
    """Metadata for an index synced from a GitHub repository."""

    type: Literal["github"] = "github"
    config: GitHubStoredConfig
    resolved_ref: str | None = Field(None, alias="resolvedRef")
    synced_at: str = Field(default_factory=iso_timestamp, alias="syncedAt")


class GitSourceMetadata(_StoredModel):
    """Metadata for an index synced from a git remote."""

    type: Literal["git"] = "git"
    config: GitStoredConfig
    resolved_ref: str | None = Field(None, alias="resolvedRef")
    synced_at: str = Field(default_factory=iso_timestamp, alias="syncedAt")


class GitLabSourceMetadata(_StoredModel):
    """Metadata for an index synced from a GitLab project."""

    type: Literal["gitlab"] = "gitlab"
    config: GitLabStoredConfig
    resolved_ref: str | None = Field(None, alias="resolvedRef")
    synced_at: str = Field(default_factory=iso_timestamp, alias="syncedAt")


class BitBucketSourceMetadata(_StoredModel):
    """Metadata for an index synced from a Bitbucket repository."""

    type: Literal["bitbucket"] = "bitbucket"
    config: BitBucketStoredConfig
    resolved_ref: str | None = Field(None, alias="resolvedRef")
    synced_at: str = Field(default_factory=iso_timestamp, alias="syncedAt")


class WebsiteSourceMetadata(_StoredModel):
    """Metadata for an index built by crawling a website."""

    type: Literal["website"] = "website"
    config: WebsiteStoredConfig
    synced_at: str = Field(default_factory=iso_timestamp, alias="syncedAt")


SourceMetadata = Annotated[
    GitHubSourceMetadata
    | GitLabSourceMetadata
    | BitBucketSourceMetadata
    | GitSourceMetadata
    | WebsiteSourceMetadata,
    Field(discriminator="type"),
]

_source_metadata_adapter: TypeAdapter[SourceMetadata] = TypeAdapter(SourceMetadata)


def parse_source_metadata(data: dict[str, Any]) -> SourceMetadata:
    """Validate a serialized source metadata mapping into its variant.

    Args:
        data: Mapping as produced by ``model_dump(by_alias=True)``.

    Returns:
        The matching metadata variant.

    Raises:
        pydantic.ValidationError: If the type is unknown or fields are invalid.
    """
    return _source_metadata_adapter.validate_python(data)


def source_identifier(meta: SourceMetadata) -> str:
    """Get a human-readable identifier for a source."""
    match meta:
        case GitHubSourceMetadata():
            return f"{meta.config.owner}/{meta.config.repo}"
        case GitLabSourceMetadata():
            return meta.config.project_id
        case BitBucketSourceMetadata():
            return f"{meta.config.workspace}/{meta.config.repo}"
        case GitSourceMetadata():
            return meta.config.url
        case WebsiteSourceMetadata():
            return urlparse(meta.config.url).hostname or meta.config.url


def resolved_ref(meta: SourceMetadata) -> str | None:
    """Get the resolved commit of a versioned source, None otherwise."""
    if isinstance(
        meta,
        GitHubSourceMetadata | GitLabSourceMetadata | BitBucketSourceMetadata | GitSourceMetadata,
    ):
        return meta.resolved_ref
    return None


# ---------------------------------------------------------------------------
# Indexing results
# ---------------------------------------------------------------------------


class IndexResultType(str, Enum):
    """Kind of index operation performed."""

    FULL = "full"
    INCREMENTAL = "incremental"
    UNCHANGED = "unchanged"


class IndexResult(BaseModel):
    """Result of an indexing operation.

    Attributes:
        type: Full re-index, incremental update, or unchanged.
        files_indexed: Number of files added or modified in the index.
        files_removed: Number of files removed from the index.
        files_new_or_modified: Files whose content was newly indexed.
        files_unchanged: Files skipped because their blob already existed.
        duration_ms: Total duration in milliseconds.
    """

    model_config = ConfigDict(extra="forbid")

    type: IndexResultType = Field(..., description="Index operation type")
    files_indexed: int = Field(0, ge=0, description="Files added or modified")
    files_removed: int = Field(0, ge=0, description="Files removed")
    files_new_or_modified: int = Field(0, ge=0, description="Newly indexed files")
    files_unchanged: int = Field(0, ge=0, description="Already indexed files")
    duration_ms: int = Field(0, ge=0, description="Duration in ms")
