"""GitHub API client.

This module provides an async client for the GitHub REST endpoints used to
index repositories, including authentication via GitHub App or personal
access token.
"""

import base64
import time
from typing import Any

import httpx
import jwt
import structlog
from pydantic import BaseModel, ConfigDict, Field

from .models import (
    ComparisonStatus,
    FileStatus,
    GitHubCommit,
    GitHubComparison,
    GitHubContentItem,
    GitHubFile,
)

logger = structlog.get_logger(__name__)


class GitHubClientConfig(BaseModel):
    """Configuration for GitHub client."""

    model_config = ConfigDict(frozen=True)

    # GitHub App authentication
    app_id: int | None = Field(None, description="GitHub App ID")
    private_key: str | None = Field(None, description="GitHub App private key (PEM)")
    installation_id: int | None = Field(None, description="Installation ID")

    # Personal access token authentication
    access_token: str | None = Field(None, description="Personal access token")

    # API settings
    base_url: str = Field(default="https://api.github.com", description="API base URL")
    timeout: float = Field(default=30.0, description="Request timeout in seconds")
    max_retries: int = Field(default=3, description="Maximum retry attempts")

    @property
    def has_credentials(self) -> bool:
        """Whether a token or complete App credentials are configured."""
        if self.access_token:
            return True
        return bool(self.app_id and self.private_key and self.installation_id)


class GitHubClient:
    """Async GitHub API client.

    Supports authentication via GitHub App or personal access token.
    Provides the repository read operations needed for indexing.
    """

    def __init__(
        self,
        config: GitHubClientConfig,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the GitHub client.

        Args:
            config: Client configuration.
            transport: Optional httpx transport, used by tests.
        """
        self.config = config
        self._transport = transport
        self._logger = logger.bind(component="github_client")
        self._http_client: httpx.AsyncClient | None = None
        self._installation_token: str | None = None
        self._token_expires_at: float = 0

    async def __aenter__(self) -> "GitHubClient":
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
                base_url=self.config.base_url,
                timeout=self.config.timeout,
                headers={"Accept": "application/vnd.github+json"},
                follow_redirects=True,
                transport=self._transport,
            )
        return self._http_client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def _generate_jwt(self) -> str:
        """Generate a JWT for GitHub App authentication.

        Returns:
            JWT token string.
        """
        if not self.config.app_id or not self.config.private_key:
            raise ValueError("GitHub App credentials not configured")

        now = int(time.time())
        payload = {
            "iat": now - 60,  # Issued 60 seconds ago
            "exp": now + 600,  # Expires in 10 minutes
            "iss": str(self.config.app_id),
        }

        token: str = jwt.encode(payload, self.config.private_key, algorithm="RS256")
        return token

    async def _get_installation_token(self) -> str:
        """Get or refresh installation access token.

        Returns:
            Installation access token.
        """
        if self._installation_token and time.time() < self._token_expires_at - 60:
            return self._installation_token

        if not self.config.installation_id:
            raise ValueError("Installation ID not configured")

        client = await self._ensure_client()
        jwt_token = self._generate_jwt()

        response = await client.post(
            f"/app/installations/{self.config.installation_id}/access_tokens",
            headers={"Authorization": f"Bearer {jwt_token}"},
        )
        response.raise_for_status()

        data = response.json()
        token: str = data["token"]
        self._installation_token = token
        # Token expires in 1 hour
        self._token_expires_at = time.time() + 3600

        self._logger.debug("obtained_installation_token")
        return token

    async def _get_auth_header(self) -> dict[str, str]:
        """Get authorization header for API requests."""
        if self.config.access_token:
            return {"Authorization": f"Bearer {self.config.access_token}"}
        elif self.config.app_id:
            token = await self._get_installation_token()
            return {"Authorization": f"Bearer {token}"}
        else:
            return {}

    async def _send(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
    ) -> httpx.Response:
        """Send an authenticated request, retrying server errors.

        Args:
            method: HTTP method.
            path: API path.
            params: Query parameters.

        Returns:
            The successful response.

        Raises:
            httpx.HTTPStatusError: If the request fails.
        """
        client = await self._ensure_client()
        headers = await self._get_auth_header()

        attempt = 0
        while True:
            attempt += 1
            response = await client.request(method=method, url=path, params=params, headers=headers)

            if response.status_code == 401 and self.config.app_id and attempt == 1:
                # Token expired, refresh and retry once
                self._installation_token = None
                headers = await self._get_auth_header()
                continue

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
    ) -> dict[str, Any] | list[Any]:
        """Make an authenticated API request and decode its JSON body."""
        response = await self._send(method, path, params=params)
        result: dict[str, Any] | list[Any] = response.json()
        return result

    # Commit operations

    async def get_commit(self, owner: str, repo: str, ref: str) -> GitHubCommit:
        """Get the commit a ref points to.

        Args:
            owner: Repository owner.
            repo: Repository name.
            ref: Branch, tag, SHA or ``HEAD``.

        Returns:
            GitHubCommit object.
        """
        data = await self._request("GET", f"/repos/{owner}/{repo}/commits/{ref}")
        return self._parse_commit(data)  # type: ignore[arg-type]

    async def compare_commits(
        self, owner: str, repo: str, base: str, head: str
    ) -> GitHubComparison:
        """Compare two commits.

        Args:
            owner: Repository owner.
            repo: Repository name.
            base: Base commit.
            head: Head commit.

        Returns:
            Comparison including the files changed.
        """
        data = await self._request("GET", f"/repos/{owner}/{repo}/compare/{base}...{head}")
        return self._parse_comparison(data)  # type: ignore[arg-type]

    # Content operations

    async def get_contents(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> dict[str, Any] | list[Any] | None:
        """Get raw contents API data for a path.

        Returns:
            A dict for files, a list for directories, or None if not found.
        """
        params = {"ref": ref} if ref else None
        try:
            return await self._request(
                "GET", f"/repos/{owner}/{repo}/contents/{path.lstrip('/')}", params=params
            )
        except httpx.HTTPStatusError as e:
            if e.response.status_code == 404:
                return None
            raise

    async def get_file_bytes(
        self, owner: str, repo: str, path: str, ref: str | None = None
    ) -> bytes | None:
        """Get the raw bytes of a file.

        Returns:
            File bytes, or None if the path is missing or not a file.
        """
        data = await self.get_contents(owner, repo, path, ref)
        if not isinstance(data, dict) or data.get("type") != "file":
            return None

        if data.get("encoding") == "base64":
            return base64.b64decode(data.get("content", ""))

        # Files over 1 MB come back without inline content
        response = await self._send(
            "GET",
            f"/repos/{owner}/{repo}/git/blobs/{data['sha']}",
        )
        blob = response.json()
        return base64.b64decode(blob.get("content", ""))

    async def list_directory(
        self, owner: str, repo: str, path: str = "", ref: str | None = None
    ) -> list[GitHubContentItem] | None:
        """List a directory.

        Returns:
            Directory entries, or None if the path is missing or is a file.
        """
        data = await self.get_contents(owner, repo, path, ref)
        if not isinstance(data, list):
            return None
        return [self._parse_content_item(item) for item in data]

    async def download_tarball(self, owner: str, repo: str, ref: str) -> bytes:
        """Download a gzipped tarball of the repository at a ref."""
        self._logger.info("downloading_tarball", repo=f"{owner}/{repo}", ref=ref)
        response = await self._send("GET", f"/repos/{owner}/{repo}/tarball/{ref}")
        return response.content

    # Parsing helpers

    def _parse_file(self, data: dict[str, Any]) -> GitHubFile:
        """Parse file data."""
        return GitHubFile(
            filename=data["filename"],
            status=FileStatus(data.get("status", "modified")),
            additions=data.get("additions", 0),
            deletions=data.get("deletions", 0),
            changes=data.get("changes", 0),
            previous_filename=data.get("previous_filename"),
        )

    def _parse_commit(self, data: dict[str, Any]) -> GitHubCommit:
        """Parse commit data."""
        commit_data = data.get("commit", {})
        return GitHubCommit(
            sha=data["sha"],
            message=commit_data.get("message", data.get("message", "")),
            html_url=data.get("html_url"),
            parents=[p["sha"] for p in data.get("parents", [])],
        )

    def _parse_comparison(self, data: dict[str, Any]) -> GitHubComparison:
        """Parse comparison data."""
        return GitHubComparison(
            status=ComparisonStatus(data.get("status", "diverged")),
            ahead_by=data.get("ahead_by", 0),
            behind_by=data.get("behind_by", 0),
            total_commits=data.get("total_commits", 0),
            files=[self._parse_file(f) for f in data.get("files", [])],
        )

    def _parse_content_item(self, data: dict[str, Any]) -> GitHubContentItem:
        """Parse a directory listing entry."""
        return GitHubContentItem(
            name=data.get("name", data["path"].rsplit("/", 1)[-1]),
            path=data["path"],
            type=data.get("type", "file"),
            sha=data.get("sha"),
            size=data.get("size", 0),
        )
