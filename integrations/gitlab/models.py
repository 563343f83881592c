"""Pydantic models for GitLab integration.

This module defines data models for the GitLab entities a repository source
needs: commits, commit comparisons, changed files and repository trees.
"""

from pydantic import BaseModel, ConfigDict, Field


class GitLabCommit(BaseModel):
    """GitLab commit model."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Commit SHA")
    title: str = Field(default="", description="First line of the message")
    parent_ids: list[str] = Field(default_factory=list, description="Parent commit SHAs")


class GitLabDiff(BaseModel):
    """File changed between two commits."""

    model_config = ConfigDict(frozen=True)

    old_path: str = Field(..., description="Path before the change")
    new_path: str = Field(..., description="Path after the change")
    new_file: bool = Field(default=False, description="Whether the file was added")
    renamed_file: bool = Field(default=False, description="Whether the file was renamed")
    deleted_file: bool = Field(default=False, description="Whether the file was deleted")


class GitLabComparison(BaseModel):
    """Result of comparing two commits.

    ``commits`` lists the commits reachable from the head but not from the
    base, so a comparison in the reverse direction is empty exactly when the
    base is an ancestor of the head.
    """

    model_config = ConfigDict(frozen=True)

    commits: list[GitLabCommit] = Field(default_factory=list, description="Commits compared")
    diffs: list[GitLabDiff] = Field(default_factory=list, description="Changed files")
    compare_timeout: bool = Field(default=False, description="Whether the diff was cut short")


class GitLabTreeItem(BaseModel):
    """Entry of a repository tree listing."""

    model_config = ConfigDict(frozen=True)

    id: str | None = Field(None, description="Blob or tree SHA")
    name: str = Field(..., description="Entry name")
    path: str = Field(..., description="Path from repository root")
    type: str = Field(..., description="Entry type (blob, tree, commit)")

    @property
    def is_directory(self) -> bool:
        """Whether the entry is a directory."""
        return self.type == "tree"
