"""Settings management for context-sync.

This module provides centralized configuration management using
pydantic-settings. All configuration is loaded from environment variables
(or a ``.env`` file) with sensible defaults.
"""

from functools import lru_cache
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_STORE_PATH = Path.home() / ".augment" / "context-connectors"
DEFAULT_S3_PREFIX = "context-connectors/"


class ConfigurationError(Exception):
    """Exception raised when a required setting is missing or invalid.

    Attributes:
        message: Explanation of the error.
        setting: Name of the offending setting, if applicable.
    """

    def __init__(self, message: str, setting: str | None = None) -> None:
        """Initialize the ConfigurationError.

        Args:
            message: Explanation of the error.
            setting: Name of the offending setting.
        """
        self.message = message
        self.setting = setting

        full_message = f"{message} (setting={setting})" if setting else message
        super().__init__(full_message)


class Settings(BaseSettings):
    """Application settings loaded from environment variables.

    Attributes:
        log_level: Logging level.
        log_json: Render logs as JSON instead of console output.

        store_path: Base directory of the local filesystem store.

        github_token: Token used by the GitHub source.
        github_api_url: GitHub REST API base URL.
        github_app_id: GitHub App used instead of a token.
        github_app_private_key: PEM private key of the GitHub App.
        github_app_installation_id: Installation the App acts as.

        gitlab_token: Token used by the GitLab source.
        gitlab_url: GitLab instance URL, without the API path.

        bitbucket_token: Token used by the Bitbucket source.
        bitbucket_api_url: Bitbucket REST API base URL.

        max_file_size: Largest file in bytes accepted by the content filter.
        max_incremental_changes: Largest change set synced incrementally.

        git_clone_timeout: Timeout in seconds for git clone and fetch.
        git_cache_dir: Directory holding git mirrors, None for a temp dir.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Logging
    log_level: str = Field(default="INFO", description="Logging level")
    log_json: bool = Field(default=False, description="Render logs as JSON")

    # Local store
    store_path: Path = Field(
        default=DEFAULT_STORE_PATH,
        validation_alias=AliasChoices("context_connectors_store_path", "store_path"),
        description="Base directory of the filesystem store",
    )

    # GitHub
    github_token: str | None = Field(default=None, description="GitHub token")
    github_api_url: str = Field(
        default="https://api.github.com",
        description="GitHub REST API base URL",
    )
    github_app_id: int | None = Field(default=None, description="GitHub App ID")
    github_app_private_key: str | None = Field(
        default=None,
        description="GitHub App private key (PEM)",
    )
    github_app_installation_id: int | None = Field(
        default=None,
        description="GitHub App installation ID",
    )

    # GitLab
    gitlab_token: str | None = Field(default=None, description="GitLab token")
    gitlab_url: str = Field(
        default="https://gitlab.com",
        description="GitLab instance URL",
    )

    # Bitbucket
    bitbucket_token: str | None = Field(default=None, description="Bitbucket token")
    bitbucket_api_url: str = Field(
        default="https://api.bitbucket.org/2.0",
        description="Bitbucket REST API base URL",
    )

    # Ingestion
    max_file_size: int = Field(
        default=1024 * 1024,
        gt=0,
        description="Maximum indexed file size in bytes",
    )
    max_incremental_changes: int = Field(
        default=100,
        ge=0,
        description="Largest change set processed incrementally",
    )

    # Git
    git_clone_timeout: int = Field(
        default=300,
        gt=0,
        description="Timeout in seconds for clone and fetch operations",
    )
    git_cache_dir: Path | None = Field(
        default=None,
        description="Directory holding git mirrors",
    )


class S3Config(BaseSettings):
    """S3 store settings, read from ``CC_S3_*`` environment variables.

    ``bucket`` defaults to an empty string; stores validate it when they are
    constructed.

    Attributes:
        bucket: Bucket name.
        prefix: Key prefix for all indexes.
        region: AWS region.
        endpoint: Custom endpoint for S3-compatible services.
        force_path_style: Use path-style addressing.
    """

    model_config = SettingsConfigDict(
        env_prefix="CC_S3_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    bucket: str = Field(default="", description="Bucket name")
    prefix: str = Field(default=DEFAULT_S3_PREFIX, description="Key prefix")
    region: str | None = Field(default=None, description="AWS region")
    endpoint: str | None = Field(default=None, description="Custom S3 endpoint")
    force_path_style: bool = Field(default=False, description="Use path-style URLs")


@lru_cache
def get_settings() -> Settings:
    """Get cached application settings.

    Returns:
        The application settings instance.
    """
    return Settings()


@lru_cache
def get_s3_config() -> S3Config:
    """Get cached S3 settings from the environment.

    Returns:
        The S3 settings instance.
    """
    return S3Config()
