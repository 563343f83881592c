"""Context engine contracts.

The context engine owns the searchable representation of an index. The
indexer drives it through ``ContextEngine``; query tools only need
``SearchEngine``. Neither contract says anything about ranking.
"""

from collections.abc import Callable, Sequence
from typing import Protocol, Self, runtime_checkable

from pydantic import BaseModel, Field

from core.ingestion.models import FileEntry
from core.stores.models import FullContextState, SearchOnlyContextState

ProgressCallback = Callable[[int, int, str], None]


class IndexingOutcome(BaseModel):
    """Paths processed by a single ``add_to_index`` call.

    Attributes:
        newly_uploaded: Paths whose content was not yet indexed.
        already_uploaded: Paths whose exact content was already indexed.
    """

    newly_uploaded: list[str] = Field(default_factory=list, description="New content")
    already_uploaded: list[str] = Field(default_factory=list, description="Known content")


@runtime_checkable
class SearchEngine(Protocol):
    """Answers natural-language queries over an index."""

    async def search(self, query: str, max_output_length: int | None = None) -> str | None:
        """Search the index.

        Args:
            query: Natural-language query.
            max_output_length: Upper bound on the returned text length.

        Returns:
            Formatted results, or None if nothing matched.
        """
        ...


@runtime_checkable
class ContextEngine(Protocol):
    """Mutable index state driven by the indexer."""

    @classmethod
    def create(cls) -> Self:
        """Create an empty context."""
        ...

    @classmethod
    def restore(cls, state: FullContextState) -> Self:
        """Rebuild a context from a previously exported full state."""
        ...

    async def add_to_index(
        self, files: Sequence[FileEntry], on_progress: ProgressCallback | None = None
    ) -> IndexingOutcome:
        """Add or replace files in the index."""
        ...

    async def remove_from_index(self, paths: Sequence[str]) -> None:
        """Remove files from the index by path."""
        ...

    def export_full(self) -> FullContextState:
        """Export the state needed for later incremental updates."""
        ...

    def export_search_only(self) -> SearchOnlyContextState:
        """Export the state needed for querying only."""
        ...
