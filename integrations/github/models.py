"""Pydantic models for GitHub integration.

This module defines data models for the GitHub entities a repository source
needs: commits, commit comparisons, changed files and directory contents.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class FileStatus(str, Enum):
    """File change status in a commit or comparison."""

    ADDED = "added"
    MODIFIED = "modified"
    REMOVED = "removed"
    RENAMED = "renamed"
    COPIED = "copied"
    CHANGED = "changed"
    UNCHANGED = "unchanged"


class ComparisonStatus(str, Enum):
    """Relationship between the base and head of a comparison."""

    AHEAD = "ahead"
    BEHIND = "behind"
    DIVERGED = "diverged"
    IDENTICAL = "identical"


class GitHubFile(BaseModel):
    """GitHub file in a commit or comparison."""

    model_config = ConfigDict(frozen=True)

    filename: str = Field(..., description="File path")
    status: FileStatus = Field(..., description="Change status")
    additions: int = Field(default=0, description="Lines added")
    deletions: int = Field(default=0, description="Lines deleted")
    changes: int = Field(default=0, description="Total changes")
    previous_filename: str | None = Field(None, description="Previous name if renamed")


class GitHubCommit(BaseModel):
    """GitHub commit model."""

    model_config = ConfigDict(frozen=True)

    sha: str = Field(..., description="Commit SHA")
    message: str = Field(default="", description="Commit message")
    html_url: str | None = Field(None, description="Commit URL")
    parents: list[str] = Field(default_factory=list, description="Parent commit SHAs")


class GitHubComparison(BaseModel):
    """Result of comparing two commits."""

    model_config = ConfigDict(frozen=True)

    status: ComparisonStatus = Field(..., description="Comparison status")
    ahead_by: int = Field(default=0, description="Commits head is ahead of base")
    behind_by: int = Field(default=0, description="Commits head is behind base")
    total_commits: int = Field(default=0, description="Commits in the comparison")
    files: list[GitHubFile] = Field(default_factory=list, description="Changed files")

    @property
    def is_linear(self) -> bool:
        """Whether head descends from base without rewritten history."""
        if self.status in (ComparisonStatus.DIVERGED, ComparisonStatus.BEHIND):
            return False
        return self.behind_by == 0


class GitHubContentItem(BaseModel):
    """Entry of a directory listing from the contents API."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Entry name")
    path: str = Field(..., description="Path from repository root")
    type: str = Field(..., description="Entry type (file, dir, symlink, submodule)")
    sha: str | None = Field(None, description="Blob or tree SHA")
    size: int = Field(default=0, description="Size in bytes")

    @property
    def is_directory(self) -> bool:
        """Whether the entry is a directory."""
        return self.type == "dir"
