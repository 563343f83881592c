"""Bitbucket API client.

This module provides an async client for the Bitbucket Cloud REST (2.0)
endpoints used to index repositories. Requests authenticate with a
repository, project or workspace access token.
"""

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from .models import BitBucketDiffStat, BitBucketSrcItem

logger = structlog.get_logger(__name__)

DEFAULT_BITBUCKET_API_URL = "https://api.bitbucket.org/2.0"
PAGE_SIZE = 100


class BitBucketClientConfig(BaseModel):
    """Configuration for Bitbucket client."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., description="Access token")
    base_url: str = Field(default=DEFAULT_BITBUCKET_API_URL, description="API base URL")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Maximum retry attempts")


class BitBucketClient:
    """Async Bitbucket Cloud API client."""

    def __init__(
        self,
        config: BitBucketClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the Bitbucket client.

        Args:
            config: Client configuration.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config
        self._transport = transport
        self._logger = logger.bind(component="bitbucket_client")
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BitBucketClient":
        """Enter async context."""
        await self._ensure_client()
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Exit async context."""
        await self.close()

    async def _ensure_client(self) -> httpx.AsyncClient:
        """Ensure HTTP client is initialized."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(
                base_url=self.config.base_url.rstrip("/"),
                timeout=self.config.timeout,
                headers={
                    "Authorization": f"Bearer {self.config.access_token}",
                    "Accept": "application/json",
                },
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send a request, retrying server errors.

        ``path`` may also be an absolute URL, as returned in ``next`` links.

        Raises:
            httpx.HTTPStatusError: If the request fails.
        """
        client = await self._ensure_client()

        attempt = 0
        while True:
            attempt += 1
            response = await client.request(method=method, url=path, params=params)
            try:
                response.raise_for_status()
            except httpx.HTTPStatusError as e:
                if attempt < self.config.max_retries and e.response.status_code >= 500:
                    self._logger.warning(
                        "request_failed_retrying",
                        attempt=attempt,
                        status=e.response.status_code,
                    )
                    continue
                raise
            return response

    async def _request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        response = await self._send("GET", path, params=params)
        return response.json()

    async def _paginate(self, path: str, params: dict[str, Any] | None = None) -> list[Any]:
        """Fetch every page of a paginated endpoint, following ``next`` links."""
        values: list[Any] = []
        data = await self._request(path, params={**(params or {}), "pagelen": PAGE_SIZE})
        values.extend(data.get("values", []))
        while data.get("next"):
            data = await self._request(data["next"])
            values.extend(data.get("values", []))
        return values

    @staticmethod
    def _repo_path(workspace: str, repo: str) -> str:
        return f"/repositories/{quote(workspace, safe='')}/{quote(repo, safe='')}"

    # Ref operations

    async def get_main_branch(self, workspace: str, repo: str) -> str | None:
        """Get the name of the repository's main branch."""
        data = await self._request(self._repo_path(workspace, repo))
        mainbranch = data.get("mainbranch") or {}
        name: str | None = mainbranch.get("name")
        return name

    async def get_branch_head(self, workspace: str, repo: str, branch: str) -> str | None:
        """Get the commit a branch points to, None if there is no such branch."""
        try:
            data = await self._request(
                f"{self._repo_path(workspace, repo)}/refs/branches/{quote(branch, safe='')}"
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        target = data.get("target") or {}
        sha: str | None = target.get("hash")
        return sha

    async def get_commit(self, workspace: str, repo: str, ref: str) -> str:
        """Resolve a tag or commit SHA to a full commit hash."""
        data = await self._request(
            f"{self._repo_path(workspace, repo)}/commit/{quote(ref, safe='')}"
        )
        sha: str = data["hash"]
        return sha

    async def get_merge_base(self, workspace: str, repo: str, base: str, head: str) -> str:
        """Get the best common ancestor of two commits."""
        data = await self._request(f"{self._repo_path(workspace, repo)}/merge-base/{base}..{head}")
        sha: str = data["hash"]
        return sha

    async def get_diffstat(
        self, workspace: str, repo: str, base: str, head: str
    ) -> list[BitBucketDiffStat]:
        """List the files changed between two commits."""
        values = await self._paginate(f"{self._repo_path(workspace, repo)}/diffstat/{base}..{head}")
        return [BitBucketDiffStat.model_validate(value) for value in values]

    # Content operations

    def _src_path(self, workspace: str, repo: str, ref: str, path: str) -> str:
        encoded = "/".join(quote(segment, safe="") for segment in path.split("/") if segment)
        return f"{self._repo_path(workspace, repo)}/src/{quote(ref, safe='')}/{encoded}"

    async def get_file_bytes(self, workspace: str, repo: str, path: str, ref: str) -> bytes | None:
        """Get the raw bytes of a file, None if it does not exist."""
        try:
            response = await self._send("GET", self._src_path(workspace, repo, ref, path))
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return response.content

    async def list_directory(
        self, workspace: str, repo: str, path: str, ref: str
    ) -> list[BitBucketSrcItem] | None:
        """List a directory without recursing.

        Returns:
            Directory entries, or None if the path is missing or is a file.
        """
        try:
            response = await self._send(
                "GET", self._src_path(workspace, repo, ref, path), params={"pagelen": PAGE_SIZE}
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise

        # Files come back as raw content rather than a listing
        if not response.headers.get("content-type", "").startswith("application/json"):
            return None
        data = response.json()
        if not isinstance(data, dict) or "values" not in data:
            return None

        values = list(data["values"])
        while data.get("next"):
            data = await self._request(data["next"])
            values.extend(data.get("values", []))
        return [BitBucketSrcItem.model_validate(value) for value in values]
