"""Pydantic models for persisted index state.

The context state is owned by the context engine and moved opaquely by the
stores. The full state carries the ``blobs`` table needed for incremental
updates; the search-only projection drops it.
"""

from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

from core.ingestion.models import SourceMetadata

INDEX_STATE_VERSION = 1


class _StateModel(BaseModel):
    """Base for persisted models using camelCase keys on the wire."""

    model_config = ConfigDict(frozen=True, extra="forbid", populate_by_name=True)

    def to_json(self) -> str:
        """Serialize with wire aliases and indentation."""
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to a JSON-compatible mapping with wire aliases."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class _ContextStateModel(_StateModel):
    """Base for engine-owned context state.

    Fields an engine records beyond the ones modelled here are kept and
    written back unchanged, so stores move the state without loss.
    """

    model_config = ConfigDict(frozen=True, extra="allow", populate_by_name=True)

    checkpoint_id: str | None = Field(None, alias="checkpointId")
    added_blobs: list[str] = Field(default_factory=list, alias="addedBlobs")
    deleted_blobs: list[str] = Field(default_factory=list, alias="deletedBlobs")


class SearchOnlyContextState(_ContextStateModel):
    """Context engine state sufficient for querying only."""

    mode: Literal["search-only"] = "search-only"


class FullContextState(_ContextStateModel):
    """Context engine state including the blob table.

    Attributes:
        blobs: ``(blob_name, path)`` pairs for every indexed file.
    """

    mode: Literal["full"] = "full"
    blobs: list[tuple[str, str]] = Field(..., description="Blob name and path pairs")


class IndexState(_StateModel):
    """Full durable representation of one named index."""

    version: Literal[1] = INDEX_STATE_VERSION
    context_state: FullContextState = Field(..., alias="contextState")
    source: SourceMetadata


class IndexStateSearchOnly(_StateModel):
    """Reduced projection of an index used for querying."""

    version: Literal[1] = INDEX_STATE_VERSION
    context_state: SearchOnlyContextState = Field(..., alias="contextState")
    source: SourceMetadata
