"""S3 index store.

Stores each index as two objects, ``{prefix}{key}/state.json`` and
``{prefix}{key}/search.json``, in any S3-compatible bucket. boto3 is
synchronous, so every call runs in the default executor.
"""

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

import boto3
import structlog
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from core.config import ConfigurationError, S3Config, get_s3_config

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

T = TypeVar("T")

_NOT_FOUND_CODES = frozenset({"NoSuchKey", "404", "NotFound"})


def normalize_prefix(prefix: str) -> str:
    """Ensure a non-empty key prefix ends with ``/``."""
    if not prefix or prefix.endswith("/"):
        return prefix
    return f"{prefix}/"


class S3Store(IndexStore):
    """Index store backed by an S3 bucket.

    Attributes:
        bucket: Bucket name.
        prefix: Key prefix, empty or ending with ``/``.
    """

    def __init__(self, config: S3Config | None = None, client: Any | None = None) -> None:
        """Initialize the S3Store.

        Args:
            config: S3 settings, defaults to the ``CC_S3_*`` environment.
            client: Preconfigured boto3 S3 client.

        Raises:
            ConfigurationError: If no bucket is configured.
        """
        config = config or get_s3_config()
        if not config.bucket:
            raise ConfigurationError("S3 store requires a bucket", setting="CC_S3_BUCKET")

        self.bucket = config.bucket
        self.prefix = normalize_prefix(config.prefix)
        self._client = client or boto3.client(
            "s3",
            region_name=config.region,
            endpoint_url=config.endpoint,
            config=Config(s3={"addressing_style": "path" if config.force_path_style else "auto"}),
        )
        self._logger = logger.bind(component="s3_store", bucket=self.bucket, prefix=self.prefix)

    def object_key(self, name: str, filename: str) -> str:
        """Object key of one of an index's files.

        Raises:
            InvalidIndexKeyError: If the name sanitizes to an empty key.
        """
        key = sanitize_key(name)
        if not key:
            raise InvalidIndexKeyError("Index name sanitizes to an empty key", name=name)
        return f"{self.prefix}{key}/{filename}"

    async def _run(self, func: Callable[..., T], name: str | None = None, **kwargs: Any) -> T:
        try:
            return await asyncio.get_event_loop().run_in_executor(None, lambda: func(**kwargs))
        except (BotoCoreError, ClientError) as e:
            raise StoreError(f"S3 request failed: {e}", name=name) from e

    async def _get(self, name: str, filename: str) -> bytes | None:
        key = self.object_key(name, filename)

        def _fetch() -> bytes | None:
            try:
                response = self._client.get_object(Bucket=self.bucket, Key=key)
            except ClientError as e:
                if e.response.get("Error", {}).get("Code") in _NOT_FOUND_CODES:
                    return None
                raise
            body: bytes = response["Body"].read()
            return body

        return await self._run(_fetch, name=name)

    async def load_state(self, name: str) -> IndexState | None:
        data = await self._get(name, STATE_FILENAME)
        if not data:
            return None
        return decode_state(data, name)

    async def load_search(self, name: str) -> IndexStateSearchOnly | None:
        data = await self._get(name, SEARCH_FILENAME)
        if not data:
            return None
        return decode_search(data, name)

    async def save(
        self, name: str, full_state: IndexState, search_state: IndexStateSearchOnly
    ) -> None:
        # State goes last: it is what the next sync diffs against
        objects = [
            (self.object_key(name, SEARCH_FILENAME), search_state.to_json()),
            (self.object_key(name, STATE_FILENAME), full_state.to_json()),
        ]
        for key, body in objects:
            await self._run(
                self._client.put_object,
                name=name,
                Bucket=self.bucket,
                Key=key,
                Body=body.encode("utf-8"),
                ContentType="application/json",
            )
        self._logger.info("Saved index", name=name)

    async def delete(self, name: str) -> None:
        keys = [self.object_key(name, STATE_FILENAME), self.object_key(name, SEARCH_FILENAME)]
        await asyncio.gather(
            *(
                self._run(self._client.delete_object, name=name, Bucket=self.bucket, Key=key)
                for key in keys
            )
        )
        self._logger.info("Deleted index", name=name)

    async def list(self) -> list[str]:
        def _list() -> list[str]:
            names: list[str] = []
            paginator = self._client.get_paginator("list_objects_v2")
            for page in paginator.paginate(Bucket=self.bucket, Prefix=self.prefix, Delimiter="/"):
                for common in page.get("CommonPrefixes", []):
                    name = common.get("Prefix", "")[len(self.prefix) :].rstrip("/")
                    if name:
                        names.append(name)
            return names

        return await self._run(_list)
