"""Pydantic models for Bitbucket integration.

This module defines data models for the Bitbucket Cloud entities a repository
source needs: diffstat entries and source tree listings.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class DiffStatus(str, Enum):
    """File change status in a diffstat."""

    ADDED = "added"
    REMOVED = "removed"
    MODIFIED = "modified"
    RENAMED = "renamed"
    MERGE_CONFLICT = "merge conflict"
    REMOTE_DELETED = "remote deleted"
    LOCAL_DELETED = "local deleted"


class BitBucketCommitFile(BaseModel):
    """Side of a diffstat entry."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path from repository root")


class BitBucketDiffStat(BaseModel):
    """File changed between two commits."""

    model_config = ConfigDict(frozen=True)

    status: DiffStatus = Field(..., description="Change status")
    old: BitBucketCommitFile | None = Field(None, description="File before the change")
    new: BitBucketCommitFile | None = Field(None, description="File after the change")

    @property
    def old_path(self) -> str | None:
        return self.old.path if self.old else None

    @property
    def new_path(self) -> str | None:
        return self.new.path if self.new else None


class BitBucketSrcItem(BaseModel):
    """Entry of a source directory listing."""

    model_config = ConfigDict(frozen=True)

    path: str = Field(..., description="Path from repository root")
    type: str = Field(..., description="Entry type (commit_file, commit_directory)")
    size: int = Field(default=0, description="Size in bytes")

    @property
    def is_directory(self) -> bool:
        """Whether the entry is a directory."""
        return self.type == "commit_directory"
