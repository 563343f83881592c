"""Content-addressed reference context engine.

Every file becomes a blob named by the SHA-256 of its path and content, so
re-adding an unchanged file is detected without storing any content. The
context tracks blobs added and deleted since it was created or restored.
"""

import hashlib
from collections.abc import Sequence

import structlog

from core.ingestion.models import FileEntry
from core.stores.models import FullContextState, SearchOnlyContextState

from .engine import IndexingOutcome, ProgressCallback

logger = structlog.get_logger(__name__)


def blob_name(path: str, content: bytes) -> str:
    """Compute the blob name of a file."""
    digest = hashlib.sha256()
    digest.update(path.encode("utf-8"))
    digest.update(content)
    return digest.hexdigest()


class BlobContext:
    """In-process context engine tracking indexed blobs.

    Attributes:
        blobs: Mapping of blob name to path for every indexed file.
        added_blobs: Blob names added since the last checkpoint.
        deleted_blobs: Blob names deleted since the last checkpoint.
    """

    def __init__(
        self,
        blobs: dict[str, str] | None = None,
        added_blobs: list[str] | None = None,
        deleted_blobs: list[str] | None = None,
        checkpoint_id: str | None = None,
    ) -> None:
        self.blobs: dict[str, str] = dict(blobs or {})
        self.added_blobs: list[str] = list(added_blobs or [])
        self.deleted_blobs: list[str] = list(deleted_blobs or [])
        self.checkpoint_id = checkpoint_id
        self._by_path = {path: name for name, path in self.blobs.items()}

    @classmethod
    def create(cls) -> "BlobContext":
        return cls()

    @classmethod
    def restore(cls, state: FullContextState) -> "BlobContext":
        return cls(
            blobs=dict(state.blobs),
            added_blobs=state.added_blobs,
            deleted_blobs=state.deleted_blobs,
            checkpoint_id=state.checkpoint_id,
        )

    @property
    def paths(self) -> set[str]:
        """Paths of every indexed file."""
        return set(self._by_path)

    def _drop(self, name: str) -> None:
        path = self.blobs.pop(name)
        self._by_path.pop(path, None)
        if name in self.added_blobs:
            self.added_blobs.remove(name)
        else:
            self.deleted_blobs.append(name)

    async def add_to_index(
        self, files: Sequence[FileEntry], on_progress: ProgressCallback | None = None
    ) -> IndexingOutcome:
        outcome = IndexingOutcome()
        total = len(files)

        for i, file in enumerate(files, start=1):
            name = blob_name(file.path, file.content)
            if name in self.blobs:
                outcome.already_uploaded.append(file.path)
            else:
                previous = self._by_path.get(file.path)
                if previous is not None:
                    self._drop(previous)
                self.blobs[name] = file.path
                self._by_path[file.path] = name
                self.added_blobs.append(name)
                outcome.newly_uploaded.append(file.path)

            if on_progress:
                on_progress(i, total, file.path)

        logger.debug(
            "blobs_added",
            new=len(outcome.newly_uploaded),
            existing=len(outcome.already_uploaded),
        )
        return outcome

    async def remove_from_index(self, paths: Sequence[str]) -> None:
        for path in paths:
            name = self._by_path.get(path)
            if name is not None:
                self._drop(name)

    def _checkpoint(self) -> str:
        digest = hashlib.sha256()
        for name in sorted(self.blobs):
            digest.update(name.encode("ascii"))
        return digest.hexdigest()[:32]

    def export_full(self) -> FullContextState:
        return FullContextState(
            mode="full",
            checkpoint_id=self._checkpoint(),
            added_blobs=list(self.added_blobs),
            deleted_blobs=list(self.deleted_blobs),
            blobs=sorted(self.blobs.items()),
        )

    def export_search_only(self) -> SearchOnlyContextState:
        return SearchOnlyContextState(
            mode="search-only",
            checkpoint_id=self._checkpoint(),
            added_blobs=list(self.added_blobs),
            deleted_blobs=list(self.deleted_blobs),
        )
