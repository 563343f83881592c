"""In-memory index store, for tests and ephemeral indexes."""

from dataclasses import dataclass

from .base import IndexStore
from .models import IndexState, IndexStateSearchOnly


@dataclass
class StoredIndex:
    """Both representations of one stored index."""

    full_state: IndexState
    search_state: IndexStateSearchOnly


class MemoryStore(IndexStore):
    """Index store keeping states in a dict.

    States are deep-copied on the way in and out, so callers can never mutate
    stored data through a returned object.
    """

    def __init__(self, initial_data: dict[str, StoredIndex] | None = None) -> None:
        self._data: dict[str, StoredIndex] = dict(initial_data or {})

    @property
    def size(self) -> int:
        """Number of stored indexes."""
        return len(self._data)

    def has(self, name: str) -> bool:
        """Check if an index is stored."""
        return name in self._data

    def clear(self) -> None:
        """Remove every index."""
        self._data.clear()

    async def load_state(self, name: str) -> IndexState | None:
        stored = self._data.get(name)
        if stored is None:
            return None
        return stored.full_state.model_copy(deep=True)

    async def load_search(self, name: str) -> IndexStateSearchOnly | None:
        stored = self._data.get(name)
        if stored is None:
            return None
        return stored.search_state.model_copy(deep=True)

    async def save(
        self, name: str, full_state: IndexState, search_state: IndexStateSearchOnly
    ) -> None:
        self._data[name] = StoredIndex(
            full_state=full_state.model_copy(deep=True),
            search_state=search_state.model_copy(deep=True),
        )

    async def delete(self, name: str) -> None:
        self._data.pop(name, None)

    async def list(self) -> list[str]:
        return list(self._data)
