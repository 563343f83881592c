"""Index synchronization driver.

This module provides the Indexer class which keeps a named index in a store
in step with its source. It performs a full index when no previous state
exists or the source cannot describe its changes, an incremental update when
it can, and nothing at all when the source is unchanged.
"""

import time
from collections.abc import Sequence

import structlog

from core.context import BlobContext, ContextEngine, ProgressCallback
from core.sources.base import Source
from core.stores.base import IndexStore
from core.stores.models import IndexState, IndexStateSearchOnly

from .models import FileChanges, FileEntry, IndexResult, IndexResultType, source_identifier

logger = structlog.get_logger(__name__)


class SourceMismatchError(Exception):
    """Exception raised when a stored index belongs to a different kind of source.

    Attributes:
        message: Explanation of the error.
        name: Index name.
    """

    def __init__(self, message: str, name: str | None = None) -> None:
        """Initialize the SourceMismatchError.

        Args:
            message: Explanation of the error.
            name: Index name.
        """
        self.message = message
        self.name = name

        full_message = f"{message} (index={name})" if name else message
        super().__init__(full_message)


class Indexer:
    """Drives full and incremental syncs of a source into a store.

    Only one sync per index name may run at a time; stores serialize writes
    per name, but overlapping syncs of the same name are the caller's
    responsibility.

    Attributes:
        context_factory: Context engine class used to create and restore
            index contexts.
    """

    def __init__(self, context_factory: type[ContextEngine] = BlobContext) -> None:
        """Initialize the Indexer.

        Args:
            context_factory: Context engine class, BlobContext by default.
        """
        self.context_factory = context_factory

    async def index(
        self,
        source: Source,
        store: IndexStore,
        name: str,
        progress_callback: ProgressCallback | None = None,
    ) -> IndexResult:
        """Sync a source into a named index.

        Args:
            source: Source to read from.
            store: Store holding the index.
            name: Index name.
            progress_callback: Optional callback for progress updates.
                Called with (current, total, current_file) on each file.

        Returns:
            IndexResult describing the operation performed.

        Raises:
            SourceMismatchError: If the stored index was built from a
                different kind of source.
            SourceError: If the source cannot be read.
            StoreError: If the store cannot be read or written.
        """
        start_time = time.monotonic()
        log = logger.bind(index=name, source_type=source.type)

        previous = await store.load_state(name)
        if previous is None:
            log.info("No previous state, running full index")
            return await self._full_index(source, store, name, start_time, progress_callback)

        if previous.source.type != source.type:
            raise SourceMismatchError(
                f"Index was built from a {previous.source.type} source "
                f"({source_identifier(previous.source)}), not {source.type}",
                name=name,
            )

        changes = await source.fetch_changes(previous.source)

        # Start from an empty context so deleted files never survive
        if changes is None:
            log.info("Incremental sync not possible, running full index")
            return await self._full_index(source, store, name, start_time, progress_callback)

        if changes.is_empty:
            log.info("Source unchanged")
            return IndexResult(
                type=IndexResultType.UNCHANGED,
                duration_ms=self._elapsed_ms(start_time),
            )

        return await self._incremental_index(
            source, store, name, previous, changes, start_time, progress_callback
        )

    @staticmethod
    def _elapsed_ms(start_time: float) -> int:
        return int((time.monotonic() - start_time) * 1000)

    async def _save(
        self, source: Source, store: IndexStore, name: str, context: ContextEngine
    ) -> None:
        metadata = await source.get_metadata()
        full_state = IndexState(context_state=context.export_full(), source=metadata)
        search_state = IndexStateSearchOnly(
            context_state=context.export_search_only(), source=metadata
        )
        await store.save(name, full_state, search_state)

    async def _add(
        self,
        context: ContextEngine,
        files: Sequence[FileEntry],
        progress_callback: ProgressCallback | None,
    ) -> tuple[int, int]:
        if not files:
            return 0, 0
        logger.info("Indexing files", count=len(files))
        outcome = await context.add_to_index(files, on_progress=progress_callback)
        return len(outcome.newly_uploaded), len(outcome.already_uploaded)

    async def _full_index(
        self,
        source: Source,
        store: IndexStore,
        name: str,
        start_time: float,
        progress_callback: ProgressCallback | None,
    ) -> IndexResult:
        context = self.context_factory.create()
        files = await source.fetch_all()

        new_or_modified, unchanged = await self._add(context, files, progress_callback)
        await self._save(source, store, name, context)

        result = IndexResult(
            type=IndexResultType.FULL,
            files_indexed=len(files),
            files_new_or_modified=new_or_modified,
            files_unchanged=unchanged,
            duration_ms=self._elapsed_ms(start_time),
        )
        logger.info("Full index complete", index=name, **result.model_dump(exclude={"type"}))
        return result

    async def _incremental_index(
        self,
        source: Source,
        store: IndexStore,
        name: str,
        previous: IndexState,
        changes: FileChanges,
        start_time: float,
        progress_callback: ProgressCallback | None,
    ) -> IndexResult:
        context = self.context_factory.restore(previous.context_state)

        if changes.removed:
            logger.info("Removing files from index", count=len(changes.removed))
            await context.remove_from_index(changes.removed)

        files = [*changes.added, *changes.modified]
        new_or_modified, unchanged = await self._add(context, files, progress_callback)
        await self._save(source, store, name, context)

        result = IndexResult(
            type=IndexResultType.INCREMENTAL,
            files_indexed=len(files),
            files_removed=len(changes.removed),
            files_new_or_modified=new_or_modified,
            files_unchanged=unchanged,
            duration_ms=self._elapsed_ms(start_time),
        )
        logger.info(
            "Incremental index complete", index=name, **result.model_dump(exclude={"type"})
        )
        return result
