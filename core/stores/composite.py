"""Read-only view over indexes named by index specs.

Routes each display name to the store and key its spec points at. Stores are
built once from the specs; the default filesystem store is shared by every
plain-name spec.
"""

from dataclasses import dataclass

from core.config import get_s3_config

from .base import IndexStoreReader
from .filesystem import FilesystemStore
from .index_spec import IndexSpec, IndexSpecError, IndexSpecType
from .models import IndexState, IndexStateSearchOnly
from .s3 import S3Store

# Key addressing the base directory of a filesystem store
_BASE_DIR_KEY = "."


@dataclass(frozen=True)
class StoreEntry:
    """Where one display name resolves to."""

    display_name: str
    store: IndexStoreReader
    key: str


def split_s3_url(url: str) -> tuple[str, str, str]:
    """Split ``s3://bucket/prefix/name`` into bucket, prefix and key.

    Raises:
        IndexSpecError: If the URL has no path after the bucket.
    """
    bucket, sep, key_path = url[len("s3://") :].partition("/")
    if not sep or not key_path.strip("/"):
        raise IndexSpecError("S3 URL is missing a path after the bucket", spec=url)

    key_path = key_path.strip("/")
    prefix, _, key = key_path.rpartition("/")
    return bucket, f"{prefix}/" if prefix else "", key


class CompositeStoreReader(IndexStoreReader):
    """Aggregates indexes from several locations behind display names."""

    def __init__(self, entries: list[StoreEntry]) -> None:
        self._entries = {entry.display_name: entry for entry in entries}

    @classmethod
    def from_specs(
        cls,
        specs: list[IndexSpec],
        default_store: FilesystemStore | None = None,
    ) -> "CompositeStoreReader":
        """Build a reader from parsed index specs.

        Args:
            specs: Parsed specs with unique display names.
            default_store: Store for plain-name specs, defaults to a
                FilesystemStore at the configured store path.

        Returns:
            The composite reader.
        """
        entries: list[StoreEntry] = []

        for spec in specs:
            store: IndexStoreReader
            match spec.type:
                case IndexSpecType.NAME:
                    if default_store is None:
                        default_store = FilesystemStore()
                    store, key = default_store, spec.value
                case IndexSpecType.PATH:
                    store, key = FilesystemStore(spec.value), _BASE_DIR_KEY
                case IndexSpecType.S3:
                    bucket, prefix, key = split_s3_url(spec.value)
                    config = get_s3_config().model_copy(update={"bucket": bucket, "prefix": prefix})
                    store = S3Store(config)

            entries.append(StoreEntry(display_name=spec.display_name, store=store, key=key))

        return cls(entries)

    async def load_state(self, name: str) -> IndexState | None:
        entry = self._entries.get(name)
        if entry is None:
            return None
        return await entry.store.load_state(entry.key)

    async def load_search(self, name: str) -> IndexStateSearchOnly | None:
        entry = self._entries.get(name)
        if entry is None:
            return None
        return await entry.store.load_search(entry.key)

    async def list(self) -> list[str]:
        return list(self._entries)
