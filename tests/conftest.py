"""Pytest configuration and shared fixtures.

This module provides common fixtures used across the test suite: isolated
settings, temporary git repositories, and factories for source metadata and
index states.
"""

import io
import subprocess
import tarfile
from collections.abc import Callable, Generator
from pathlib import Path

import pytest

from core.config import get_s3_config, get_settings
from core.ingestion.models import (
    FileEntry,
    GitHubSourceMetadata,
    GitHubStoredConfig,
    SourceMetadata,
)
from core.stores.models import (
    FullContextState,
    IndexState,
    IndexStateSearchOnly,
    SearchOnlyContextState,
)

# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------


@pytest.fixture(autouse=True)
def isolated_settings(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> Generator[Path, None, None]:
    """Point the default store at a temp dir and reset cached settings."""
    store_path = tmp_path / "store"
    monkeypatch.setenv("CONTEXT_CONNECTORS_STORE_PATH", str(store_path))
    for var in (
        "GITHUB_TOKEN",
        "GITHUB_APP_ID",
        "GITHUB_APP_PRIVATE_KEY",
        "GITHUB_APP_INSTALLATION_ID",
        "GITLAB_TOKEN",
        "GITLAB_URL",
        "BITBUCKET_TOKEN",
        "BITBUCKET_API_URL",
    ):
        monkeypatch.delenv(var, raising=False)
    for var in ("CC_S3_BUCKET", "CC_S3_PREFIX", "CC_S3_REGION", "CC_S3_ENDPOINT"):
        monkeypatch.delenv(var, raising=False)

    get_settings.cache_clear()
    get_s3_config.cache_clear()
    yield store_path
    get_settings.cache_clear()
    get_s3_config.cache_clear()


# ---------------------------------------------------------------------------
# Git repository fixtures
# ---------------------------------------------------------------------------


def run_git(repo_path: Path, *args: str) -> str:
    """Run a git command in a repository and return its stdout."""
    result = subprocess.run(
        ["git", *args],
        cwd=repo_path,
        capture_output=True,
        check=True,
        text=True,
    )
    return result.stdout.strip()


def commit_all(repo_path: Path, message: str) -> str:
    """Stage everything, commit, and return the new commit SHA."""
    run_git(repo_path, "add", "-A")
    run_git(repo_path, "commit", "-m", message)
    return run_git(repo_path, "rev-parse", "HEAD")


@pytest.fixture
def temp_git_repo(tmp_path: Path) -> Path:
    """Create a temporary git repository with a mix of indexable and filtered files."""
    repo_path = tmp_path / "test_repo"
    repo_path.mkdir()

    run_git(repo_path, "init")
    run_git(repo_path, "config", "user.email", "test@example.com")
    run_git(repo_path, "config", "user.name", "Test User")

    (repo_path / ".gitignore").write_text("*.log\nbuild/\n")
    (repo_path / "README.md").write_text("# Sample project\n")

    src_dir = repo_path / "src"
    src_dir.mkdir()
    (src_dir / "app.py").write_text('def main():\n    print("hello")\n')
    (src_dir / "util.py").write_text("def add(a, b):\n    return a + b\n")

    # Filtered by the content filter
    (repo_path / "id_rsa").write_text("not really a key\n")
    (repo_path / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\x00\x00\xff\xfe")

    run_git(repo_path, "add", "-A")
    # Committed despite .gitignore, so only the ignore rules can drop it
    (repo_path / "debug.log").write_text("log line\n")
    run_git(repo_path, "add", "-f", "debug.log")
    run_git(repo_path, "commit", "-m", "Initial commit")

    return repo_path


# ---------------------------------------------------------------------------
# Archive helpers
# ---------------------------------------------------------------------------


def make_tarball(files: dict[str, bytes], root: str = "octocat-hello-abc123") -> bytes:
    """Build a gzipped tarball with every file under a single root directory."""
    buffer = io.BytesIO()
    with tarfile.open(fileobj=buffer, mode="w:gz") as archive:
        root_info = tarfile.TarInfo(root)
        root_info.type = tarfile.DIRTYPE
        archive.addfile(root_info)
        for path, content in files.items():
            info = tarfile.TarInfo(f"{root}/{path}")
            info.size = len(content)
            archive.addfile(info, io.BytesIO(content))
    return buffer.getvalue()


@pytest.fixture
def git_cache_dir(tmp_path: Path) -> Path:
    """Directory for git mirrors."""
    return tmp_path / "git-cache"


# ---------------------------------------------------------------------------
# State factories
# ---------------------------------------------------------------------------


@pytest.fixture
def make_metadata() -> Callable[..., SourceMetadata]:
    """Factory for GitHub source metadata."""

    def _make(ref: str = "abc123", owner: str = "octocat", repo: str = "hello") -> SourceMetadata:
        return GitHubSourceMetadata(
            config=GitHubStoredConfig(owner=owner, repo=repo, ref="main"),
            resolved_ref=ref,
            synced_at="2024-01-01T00:00:00Z",
        )

    return _make


@pytest.fixture
def make_states(
    make_metadata: Callable[..., SourceMetadata],
) -> Callable[..., tuple[IndexState, IndexStateSearchOnly]]:
    """Factory for a matching pair of full and search-only states."""

    def _make(
        paths: list[str] | None = None, ref: str = "abc123"
    ) -> tuple[IndexState, IndexStateSearchOnly]:
        paths = paths if paths is not None else ["a.txt"]
        blobs = [(f"blob-{path}", path) for path in paths]
        metadata = make_metadata(ref=ref)
        full = IndexState(
            context_state=FullContextState(
                checkpoint_id=f"cp-{ref}",
                added_blobs=[name for name, _ in blobs],
                blobs=blobs,
            ),
            source=metadata,
        )
        search = IndexStateSearchOnly(
            context_state=SearchOnlyContextState(
                checkpoint_id=f"cp-{ref}",
                added_blobs=[name for name, _ in blobs],
            ),
            source=metadata,
        )
        return full, search

    return _make


@pytest.fixture
def sample_files() -> list[FileEntry]:
    """Files covering the accepted and rejected cases of the content filter."""
    return [
        FileEntry(path="a.txt", content=b"0123456789"),
        FileEntry(path="id_rsa", content=b"0123456789"),
        FileEntry(path="big.bin", content=b"a" * (2 * 1024 * 1024)),
    ]
