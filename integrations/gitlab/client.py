"""GitLab API client.

This module provides an async client for the GitLab REST (v4) endpoints used
to index repositories, on gitlab.com or a self-hosted instance. Requests
authenticate with a personal, project or group access token.
"""

from typing import Any
from urllib.parse import quote

import httpx
import structlog
from pydantic import BaseModel, ConfigDict, Field

from .models import GitLabCommit, GitLabComparison, GitLabTreeItem

logger = structlog.get_logger(__name__)

DEFAULT_GITLAB_URL = "https://gitlab.com"
PAGE_SIZE = 100


def encode_segment(value: str) -> str:
    """Percent-encode a value used as a single path segment, slashes included."""
    return quote(value, safe="")


class GitLabClientConfig(BaseModel):
    """Configuration for GitLab client."""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., description="Access token")
    base_url: str = Field(default=DEFAULT_GITLAB_URL, description="Instance URL")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Maximum retry attempts")

    @property
    def api_url(self) -> str:
        """REST API root of the instance."""
        return f"{self.base_url.rstrip('/')}/api/v4"


class GitLabClient:
    """Async GitLab API client.

    Projects are addressed by numeric ID or by ``group/project`` path; paths
    are encoded as a single segment as the API requires.
    """

    def __init__(
        self,
        config: GitLabClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitLab client.

        Args:
            config: Client configuration.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config
        self._transport = transport
        self._logger = logger.bind(component="gitlab_client")
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "GitLabClient":
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
                base_url=self.config.api_url,
                timeout=self.config.timeout,
                headers={"PRIVATE-TOKEN": self.config.access_token},
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

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> Any:
        response = await self._send(method, path, params=params)
        return response.json()

    async def _paginate(self, path: str, params: dict[str, Any]) -> list[Any]:
        """Fetch every page of a list endpoint, following ``x-next-page``."""
        items: list[Any] = []
        page = "1"
        while page:
            response = await self._send(
                "GET", path, params={**params, "per_page": PAGE_SIZE, "page": page}
            )
            items.extend(response.json())
            page = response.headers.get("x-next-page", "")
        return items

    @staticmethod
    def _project_path(project: str) -> str:
        return f"/projects/{encode_segment(project)}/repository"

    # Commit operations

    async def get_commit(self, project: str, ref: str) -> GitLabCommit:
        """Get the commit a branch, tag, SHA or ``HEAD`` points to."""
        data = await self._request(
            "GET", f"{self._project_path(project)}/commits/{encode_segment(ref)}"
        )
        return GitLabCommit.model_validate(data)

    async def compare(self, project: str, base: str, head: str) -> GitLabComparison:
        """Compare two commits.

        Args:
            project: Project ID or path.
            base: Commit compared from.
            head: Commit compared to.

        Returns:
            Commits in head but not in base, and the files changed.
        """
        data = await self._request(
            "GET",
            f"{self._project_path(project)}/compare",
            params={"from": base, "to": head},
        )
        return GitLabComparison.model_validate(data)

    # Content operations

    async def get_file_bytes(self, project: str, path: str, ref: str) -> bytes | None:
        """Get the raw bytes of a file, None if it does not exist."""
        try:
            response = await self._send(
                "GET",
                f"{self._project_path(project)}/files/{encode_segment(path)}/raw",
                params={"ref": ref},
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return response.content

    async def list_tree(
        self, project: str, path: str = "", ref: str | None = None
    ) -> list[GitLabTreeItem] | None:
        """List a directory without recursing.

        Returns:
            Directory entries, or None if the path does not exist.
        """
        params: dict[str, Any] = {}
        if ref:
            params["ref"] = ref
        if path:
            params["path"] = path
        try:
            data = await self._paginate(f"{self._project_path(project)}/tree", params)
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise
        return [GitLabTreeItem.model_validate(item) for item in data]

    async def download_archive(self, project: str, ref: str) -> bytes:
        """Download a gzipped tarball of the repository at a commit."""
        self._logger.info("downloading_archive", project=project, ref=ref)
        response = await self._send(
            "GET", f"{self._project_path(project)}/archive.tar.gz", params={"sha": ref}
        )
        return response.content
