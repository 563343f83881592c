"""Filesystem index store.

Layout under the base directory::

    {base}/indexes/{key}/state.json
    {base}/indexes/{key}/search.json

A name that sanitizes to an empty key (such as ``"."``) addresses the base
directory itself, which lets a directory holding a single exported index be
opened directly.
"""

import asyncio
import os
import shutil
import tempfile
from collections import defaultdict
from collections.abc import Callable
from pathlib import Path
from typing import Any, TypeVar

import structlog

from core.config import get_settings

from .base import (
    SEARCH_FILENAME,
    STATE_FILENAME,
    IndexStore,
    InvalidIndexKeyError,
    StoreError,
    decode_search,
    decode_state,
    sanitize_key,
)
from .models import IndexState, IndexStateSearchOnly

logger = structlog.get_logger(__name__)

INDEXES_SUBDIR = "indexes"

T = TypeVar("T")


def _read_text(path: Path) -> str | None:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None


def _remove_tree(path: Path) -> None:
    if path.is_dir():
        shutil.rmtree(path)


def _write_atomic(path: Path, data: str) -> None:
    """Write a file through a temporary sibling and rename it into place."""
    fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=path.parent)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            handle.write(data)
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class FilesystemStore(IndexStore):
    """Index store persisting JSON files on the local filesystem.

    Attributes:
        base_path: Root directory of the store.
    """

    def __init__(self, base_path: str | Path | None = None) -> None:
        """Initialize the FilesystemStore.

        Args:
            base_path: Root directory, defaults to the ``store_path`` setting.
        """
        self.base_path = Path(base_path) if base_path else get_settings().store_path
        self._locks: defaultdict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._logger = logger.bind(component="filesystem_store", base_path=str(self.base_path))

    def key_dir(self, name: str) -> Path:
        """Directory holding the files of an index."""
        key = sanitize_key(name)
        if not key:
            return self.base_path
        return self.base_path / INDEXES_SUBDIR / key

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.get_event_loop().run_in_executor(None, func, *args)
        except OSError as e:
            raise StoreError(f"Filesystem operation failed: {e}") from e

    async def load_state(self, name: str) -> IndexState | None:
        data = await self._run(_read_text, self.key_dir(name) / STATE_FILENAME)
        if data is None:
            return None
        return decode_state(data, name)

    async def load_search(self, name: str) -> IndexStateSearchOnly | None:
        data = await self._run(_read_text, self.key_dir(name) / SEARCH_FILENAME)
        if data is None:
            return None
        return decode_search(data, name)

    async def save(
        self, name: str, full_state: IndexState, search_state: IndexStateSearchOnly
    ) -> None:
        key_dir = self.key_dir(name)

        def _save() -> None:
            key_dir.mkdir(parents=True, exist_ok=True)
            _write_atomic(key_dir / SEARCH_FILENAME, search_state.to_json())
            _write_atomic(key_dir / STATE_FILENAME, full_state.to_json())

        async with self._locks[sanitize_key(name)]:
            await self._run(_save)
        self._logger.info("Saved index", name=name, path=str(key_dir))

    async def delete(self, name: str) -> None:
        # An empty key would address the whole store
        if not sanitize_key(name):
            raise InvalidIndexKeyError("Index name sanitizes to an empty key", name=name)

        key_dir = self.key_dir(name)
        async with self._locks[sanitize_key(name)]:
            await self._run(_remove_tree, key_dir)
        self._logger.info("Deleted index", name=name)

    async def list(self) -> list[str]:
        indexes_dir = self.base_path / INDEXES_SUBDIR

        def _list() -> list[str]:
            if not indexes_dir.is_dir():
                return []
            return [
                entry.name
                for entry in indexes_dir.iterdir()
                if entry.is_dir() and (entry / STATE_FILENAME).is_file()
            ]

        names: list[str] = await self._run(_list)
        return names
