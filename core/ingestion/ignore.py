"""Ignore-file matching for the ingestion boundary.

This module parses ``.gitignore``-style rule files and combines them with the
content filter into the single keep/reject decision sources apply to every
file before it reaches an index.
"""

import re
from dataclasses import dataclass

import structlog

from .filter import FilterResult, should_filter_file

logger = structlog.get_logger(__name__)

AUGMENTIGNORE = ".augmentignore"
GITIGNORE = ".gitignore"

REASON_AUGMENTIGNORE = "augmentignore"
REASON_GITIGNORE = "gitignore"


def _translate(pattern: str) -> str:
    """Translate a gitignore glob into a regular expression body."""
    out: list[str] = []
    i = 0
    n = len(pattern)
    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**/", i):
                out.append("(?:.*/)?")
                i += 3
                continue
            if pattern.startswith("**", i):
                out.append(".*")
                i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        elif c == "[":
            end = pattern.find("]", i + 1)
            if end == -1:
                out.append(re.escape(c))
            else:
                body = pattern[i + 1 : end]
                if body.startswith("!"):
                    body = "^" + body[1:]
                out.append(f"[{body}]")
                i = end
        elif c == "\\" and i + 1 < n:
            i += 1
            out.append(re.escape(pattern[i]))
        else:
            out.append(re.escape(c))
        i += 1
    return "".join(out)


@dataclass(frozen=True)
class _Rule:
    """A single parsed ignore rule."""

    pattern: str
    negated: bool
    directory_only: bool
    anchored: bool
    regex: re.Pattern[str]

    def matches(self, candidate: str) -> bool:
        target = candidate if self.anchored else candidate.rsplit("/", 1)[-1]
        return self.regex.fullmatch(target) is not None


class IgnoreRules:
    """Parsed set of ``.gitignore``-style rules.

    Supports comments, blank lines, negation with ``!``, directory-only
    patterns ending in ``/``, root-anchored patterns and ``**``. Later rules
    override earlier ones, and a file inside an ignored directory stays
    ignored.
    """

    def __init__(self, text: str = "") -> None:
        """Initialize the rule set.

        Args:
            text: Contents of an ignore file.
        """
        self._rules: list[_Rule] = []
        if text:
            self.add(text)

    def __len__(self) -> int:
        return len(self._rules)

    def add(self, text: str) -> "IgnoreRules":
        """Add rules from the contents of an ignore file.

        Args:
            text: Contents of an ignore file.

        Returns:
            This instance, for chaining.
        """
        for raw in text.splitlines():
            rule = self._parse_line(raw)
            if rule is not None:
                self._rules.append(rule)
        return self

    def _parse_line(self, raw: str) -> _Rule | None:
        line = raw.rstrip("\r")
        # Trailing spaces are insignificant unless escaped
        if not line.endswith("\\ "):
            line = line.rstrip(" ")
        if not line or line.startswith("#"):
            return None

        negated = False
        if line.startswith("!"):
            negated = True
            line = line[1:]
        elif line.startswith("\\!") or line.startswith("\\#"):
            line = line[1:]

        directory_only = line.endswith("/")
        line = line.rstrip("/")
        if not line:
            return None

        anchored = "/" in line
        line = line.lstrip("/")
        if line.startswith("**/"):
            anchored = True

        return _Rule(
            pattern=raw,
            negated=negated,
            directory_only=directory_only,
            anchored=anchored,
            regex=re.compile(_translate(line), re.DOTALL),
        )

    def _match_candidate(self, candidate: str, is_dir: bool) -> bool:
        ignored = False
        for rule in self._rules:
            if rule.directory_only and not is_dir:
                continue
            if rule.matches(candidate):
                ignored = not rule.negated
        return ignored

    def ignores(self, path: str) -> bool:
        """Check if a path is ignored.

        Args:
            path: Relative POSIX path of a file.

        Returns:
            True if the file or one of its parent directories is ignored.
        """
        if not self._rules:
            return False

        parts = [p for p in path.replace("\\", "/").split("/") if p and p != "."]
        for i in range(1, len(parts) + 1):
            candidate = "/".join(parts[:i])
            if self._match_candidate(candidate, is_dir=i < len(parts)):
                return True
        return False


class IngestFilter:
    """Keep/reject decision applied by sources at the ingestion boundary.

    Evaluates ``.augmentignore`` rules, then the content filter, then
    ``.gitignore`` rules.

    Attributes:
        augmentignore: Project-level ignore rules.
        gitignore: Source-control ignore rules.
        max_file_size: Maximum file size in bytes, None for the default.
    """

    def __init__(
        self,
        augmentignore: IgnoreRules | None = None,
        gitignore: IgnoreRules | None = None,
        max_file_size: int | None = None,
    ) -> None:
        self.augmentignore = augmentignore or IgnoreRules()
        self.gitignore = gitignore or IgnoreRules()
        self.max_file_size = max_file_size

    @classmethod
    def from_bytes(
        cls,
        augmentignore: bytes | None,
        gitignore: bytes | None,
        max_file_size: int | None = None,
    ) -> "IngestFilter":
        """Build a filter from raw ignore file contents, None where a file is absent."""

        def _rules(data: bytes | None) -> IgnoreRules:
            if data is None:
                return IgnoreRules()
            return IgnoreRules(data.decode("utf-8", errors="replace"))

        return cls(_rules(augmentignore), _rules(gitignore), max_file_size)

    def check(self, path: str, content: bytes) -> FilterResult:
        """Run every check and return the first rejection, if any.

        Args:
            path: Relative path of the file.
            content: Raw file bytes.

        Returns:
            FilterResult describing the decision.
        """
        if self.augmentignore.ignores(path):
            return FilterResult(filtered=True, reason=REASON_AUGMENTIGNORE)

        result = should_filter_file(path, content, self.max_file_size)
        if result.filtered:
            return result

        if self.gitignore.ignores(path):
            return FilterResult(filtered=True, reason=REASON_GITIGNORE)

        return result

    def accepts(self, path: str, content: bytes) -> bool:
        """Check if a file may be indexed, logging the reason when it may not."""
        result = self.check(path, content)
        if result.filtered:
            logger.debug("file_filtered", path=path, reason=result.reason)
            return False
        return True
