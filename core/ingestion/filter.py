"""Content filtering for ingested files.

Decides whether a candidate file may enter an index. Checks run in a fixed
order and the first rejection wins:

1. Path contains ``..``.
2. Content larger than the configured maximum.
3. Key or credential-like file names.
4. Content that is not round-trip stable UTF-8.

Ignore files are applied around these checks by ``IngestFilter`` (see
``ignore.py``): ``.augmentignore`` before them and ``.gitignore`` after.
"""

import re

from pydantic import BaseModel, ConfigDict

DEFAULT_MAX_FILE_SIZE = 1024 * 1024

KEYISH_PATTERN = re.compile(
    r"(\.git|.*\.pem|.*\.key|.*\.pfx|.*\.p12|.*\.jks|.*\.keystore|.*\.pkcs12"
    r"|.*\.crt|.*\.cer|id_rsa|id_ed25519|id_ecdsa|id_dsa)",
    re.DOTALL,
)

REASON_DOTDOT = "path_contains_dotdot"
REASON_KEYISH = "keyish_pattern"
REASON_BINARY = "binary_file"


class FilterResult(BaseModel):
    """Outcome of the content filter.

    Attributes:
        filtered: True if the file must be skipped.
        reason: Reason code when filtered.
    """

    model_config = ConfigDict(frozen=True)

    filtered: bool
    reason: str | None = None


_KEEP = FilterResult(filtered=False)


def always_ignore_path(path: str) -> bool:
    """Check if a path must be ignored regardless of content."""
    return ".." in path


def is_keyish_path(path: str) -> bool:
    """Check if the file name looks like key or credential material.

    Only the final path segment is matched.
    """
    filename = path.rsplit("/", 1)[-1]
    return KEYISH_PATTERN.fullmatch(filename) is not None


def is_valid_file_size(size_bytes: int, max_file_size: int = DEFAULT_MAX_FILE_SIZE) -> bool:
    """Check if a file size is within the limit."""
    return size_bytes <= max_file_size


def is_valid_utf8(content: bytes) -> bool:
    """Check that content decodes as UTF-8 and re-encodes to the same bytes."""
    try:
        decoded = content.decode("utf-8")
    except UnicodeDecodeError:
        return False
    return decoded.encode("utf-8") == content


def should_filter_file(
    path: str,
    content: bytes,
    max_file_size: int | None = None,
) -> FilterResult:
    """Decide whether a file should be filtered out.

    Args:
        path: Relative path of the file.
        content: Raw file bytes.
        max_file_size: Maximum size in bytes, defaults to 1 MiB.

    Returns:
        FilterResult with ``filtered=True`` and a reason code if the file
        must be skipped, ``filtered=False`` otherwise.
    """
    if always_ignore_path(path):
        return FilterResult(filtered=True, reason=REASON_DOTDOT)

    limit = DEFAULT_MAX_FILE_SIZE if max_file_size is None else max_file_size
    if not is_valid_file_size(len(content), limit):
        return FilterResult(filtered=True, reason=f"file_too_large ({len(content)} bytes)")

    if is_keyish_path(path):
        return FilterResult(filtered=True, reason=REASON_KEYISH)

    if not is_valid_utf8(content):
        return FilterResult(filtered=True, reason=REASON_BINARY)

    return _KEEP
