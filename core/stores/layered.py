"""Layered index stores.

Compose a primary store with a remote reader. Reads consult the primary
first and only fall through to the remote when the primary has no entry, so
a local index shadows a remote index of the same name. Listing queries both
backends concurrently and returns the sorted union.

Remote failures propagate; they are never reported as a missing index.
"""

import asyncio

import structlog

from .base import IndexStore, IndexStoreReader, ReadOnlyIndexError
from .models import IndexState, IndexStateSearchOnly

logger = structlog.get_logger(__name__)


async def merged_names(*readers: IndexStoreReader) -> list[str]:
    """List several readers concurrently and return sorted, unique names."""
    results = await asyncio.gather(*(reader.list() for reader in readers))
    return sorted({name for names in results for name in names})


class ReadOnlyLayeredStore(IndexStoreReader):
    """Read-only composition of a primary store and a remote reader.

    Attributes:
        primary: Store consulted first.
        remote: Reader consulted when the primary misses.
    """

    def __init__(self, primary: IndexStoreReader, remote: IndexStoreReader) -> None:
        self.primary = primary
        self.remote = remote

    async def load_state(self, name: str) -> IndexState | None:
        state = await self.primary.load_state(name)
        if state is not None:
            return state
        return await self.remote.load_state(name)

    async def load_search(self, name: str) -> IndexStateSearchOnly | None:
        state = await self.primary.load_search(name)
        if state is not None:
            return state
        return await self.remote.load_search(name)

    async def list(self) -> list[str]:
        return await merged_names(self.primary, self.remote)


class LayeredStore(ReadOnlyLayeredStore, IndexStore):
    """Layered store whose writes go to the local store only.

    Remote indexes are not locally owned: deleting a name that exists only
    remotely is refused.
    """

    primary: IndexStore

    def __init__(self, local: IndexStore, remote: IndexStoreReader) -> None:
        super().__init__(local, remote)
        self._logger = logger.bind(component="layered_store")

    @property
    def local(self) -> IndexStore:
        """The writable local store."""
        return self.primary

    async def save(
        self, name: str, full_state: IndexState, search_state: IndexStateSearchOnly
    ) -> None:
        await self.primary.save(name, full_state, search_state)

    async def delete(self, name: str) -> None:
        local_names, remote_names = await asyncio.gather(self.primary.list(), self.remote.list())
        if name not in local_names and name in remote_names:
            raise ReadOnlyIndexError(
                "Cannot delete a remote index, remote indexes are read-only", name=name
            )

        self._logger.debug("deleting_local_index", name=name)
        await self.primary.delete(name)
