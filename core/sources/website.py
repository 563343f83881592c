"""Website crawler source.

This module provides a source that crawls a website breadth-first from a
start URL, converts each HTML page to markdown-flavoured text and exposes the
pages as ``.md`` files. Websites have no change-tracking primitive, so every
sync is a full crawl.
"""

import asyncio
import re
from dataclasses import dataclass, field
from urllib.parse import urldefrag, urljoin, urlparse

import httpx
import structlog
from bs4 import BeautifulSoup, Comment, Doctype, NavigableString, Tag

from core.config import get_settings
from core.ingestion.ignore import IngestFilter
from core.ingestion.models import (
    FileChanges,
    FileEntry,
    FileInfo,
    SourceMetadata,
    WebsiteSourceMetadata,
    WebsiteStoredConfig,
)

from .base import Source, SourceConfigError, SourceError, normalize_path

logger = structlog.get_logger(__name__)

DEFAULT_MAX_DEPTH = 3
DEFAULT_MAX_PAGES = 100
DEFAULT_USER_AGENT = "ContextSync/1.0"
DEFAULT_DELAY_MS = 100

_SKIPPED_TAGS = ["script", "style", "nav", "header", "footer", "aside", "noscript"]
_MAIN_TAGS = ["article", "main"]
_HEADINGS = {f"h{i}": i for i in range(1, 7)}
_BLOCK_TAGS = frozenset({"p", "div", "section", "br", "tr", "table", "ul", "ol", "blockquote"})
_LINK_SCHEMES_SKIPPED = ("mailto:", "tel:", "javascript:")


def match_path_pattern(path: str, pattern: str) -> bool:
    """Match a URL path against a glob where ``*`` spans any characters."""
    regex = "".join(
        ".*" if c == "*" else "." if c == "?" else re.escape(c) for c in pattern
    )
    return re.fullmatch(regex, path) is not None


def page_path(url: str) -> str:
    """Derive the stored file path of a crawled page.

    The root page becomes ``index.md``; a query string is appended with
    unsafe characters replaced so distinct queries do not overwrite each other.
    """
    parsed = urlparse(url)
    path = parsed.path
    if path in ("", "/"):
        path = "/index"
    if parsed.query:
        path = f"{path}_{re.sub(r'[^a-zA-Z0-9_=-]', '_', parsed.query)}"
    return path.lstrip("/") + ".md"


def _render(node: Tag, out: list[str], preformatted: bool = False) -> None:
    """Append the markdown-flavoured text of a node's children to ``out``."""
    for child in node.children:
        if isinstance(child, (Comment, Doctype)):
            continue
        if isinstance(child, NavigableString):
            out.append(str(child) if preformatted else re.sub(r"\s+", " ", str(child)))
            continue
        if not isinstance(child, Tag):
            continue

        name = child.name
        if name in _HEADINGS:
            out.append("\n\n" + "#" * _HEADINGS[name] + " ")
            _render(child, out, preformatted)
            out.append("\n\n")
        elif name == "li":
            out.append("\n- ")
            _render(child, out, preformatted)
        elif name == "pre":
            out.append("\n```\n")
            _render(child, out, preformatted=True)
            out.append("\n```\n")
        else:
            if name in _BLOCK_TAGS:
                out.append("\n\n")
            _render(child, out, preformatted)


@dataclass
class ParsedPage:
    """Title, readable text and raw links of an HTML page."""

    title: str
    text: str
    links: list[str]


def parse_html(html: str) -> ParsedPage:
    """Convert an HTML page to markdown-flavoured text.

    Links are collected from the whole document, boilerplate elements
    included. The text comes from the first ``article`` or ``main`` element
    when it has any, otherwise from the body.
    """
    soup = BeautifulSoup(html, "html.parser")
    links = [str(a["href"]) for a in soup.find_all("a", href=True)]

    title = ""
    if soup.title is not None:
        title = soup.title.get_text().strip()
        soup.title.decompose()
    for tag in soup.find_all(_SKIPPED_TAGS):
        tag.decompose()

    root = soup.find(_MAIN_TAGS)
    if root is None or not root.get_text(strip=True):
        root = soup.body or soup

    out: list[str] = []
    _render(root, out)
    text = re.sub(r"[ \t]+", " ", "".join(out))
    text = re.sub(r" *\n *", "\n", text)
    text = re.sub(r"\n{3,}", "\n\n", text).strip()
    return ParsedPage(title=title, text=f"# {title}\n\n{text}" if title else text, links=links)


@dataclass
class CrawledPage:
    """A page fetched during a crawl."""

    url: str
    path: str
    content: str
    title: str
    links: list[str] = field(default_factory=list)


class WebsiteSource(Source):
    """Source that crawls a website.

    Traversal always follows same-origin links up to ``max_depth``; include
    and exclude patterns only decide which pages are indexed. Crawl results
    are cached for the lifetime of the instance.
    """

    type = "website"

    def __init__(
        self,
        url: str,
        max_depth: int = DEFAULT_MAX_DEPTH,
        max_pages: int = DEFAULT_MAX_PAGES,
        include_paths: list[str] | None = None,
        exclude_paths: list[str] | None = None,
        respect_robots_txt: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
        delay_ms: int = DEFAULT_DELAY_MS,
        max_file_size: int | None = None,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the WebsiteSource.

        Args:
            url: Start URL of the crawl.
            max_depth: Maximum link depth from the start page.
            max_pages: Maximum number of pages indexed.
            include_paths: Glob patterns a page path must match to be indexed.
            exclude_paths: Glob patterns excluding page paths from the index.
            respect_robots_txt: Skip paths disallowed by ``robots.txt``.
            user_agent: User-Agent header sent with every request.
            delay_ms: Delay between page requests in milliseconds.
            max_file_size: Maximum page size in bytes, defaults to the
                ``max_file_size`` setting.
            timeout: Request timeout in seconds.
            transport: Optional httpx transport, used by tests.

        Raises:
            SourceConfigError: If the URL is not an absolute http(s) URL.
        """
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise SourceConfigError("Website source requires an absolute http(s) URL", source=url)

        self.url = url
        self.origin = f"{parsed.scheme}://{parsed.netloc}"
        self.max_depth = max_depth
        self.max_pages = max_pages
        self.include_paths = include_paths or []
        self.exclude_paths = exclude_paths or []
        self.respect_robots_txt = respect_robots_txt
        self.user_agent = user_agent
        self.delay_ms = delay_ms
        self.timeout = timeout

        self._filter = IngestFilter(max_file_size=max_file_size or get_settings().max_file_size)
        self._transport = transport
        self._pages: list[CrawledPage] | None = None
        self._robots_rules: list[str] | None = None
        self._logger = logger.bind(component="website_source", origin=self.origin)

    def _http_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=self.timeout,
            headers={"User-Agent": self.user_agent},
            follow_redirects=True,
            transport=self._transport,
        )

    # Robots and URL rules

    def parse_robots_txt(self, content: str) -> list[str]:
        """Collect ``Disallow`` prefixes applying to this crawler."""
        rules: list[str] = []
        applies = False
        agent = self.user_agent.lower()
        for line in content.splitlines():
            line = line.split("#", 1)[0].strip()
            key, _, value = line.partition(":")
            key = key.strip().lower()
            value = value.strip()
            if key == "user-agent":
                applies = value == "*" or value.lower() == agent
            elif applies and key == "disallow" and value:
                rules.append(value)
        return rules

    async def _load_robots(self, client: httpx.AsyncClient) -> list[str]:
        if self._robots_rules is not None:
            return self._robots_rules
        self._robots_rules = []
        if not self.respect_robots_txt:
            return self._robots_rules

        try:
            response = await client.get(f"{self.origin}/robots.txt")
        except httpx.HTTPError as e:
            self._logger.debug("robots_txt_unavailable", error=str(e))
            return self._robots_rules
        if response.is_success:
            self._robots_rules = self.parse_robots_txt(response.text)
        return self._robots_rules

    def _allowed_by_robots(self, path: str) -> bool:
        return not any(path.startswith(rule) for rule in self._robots_rules or [])

    def should_index(self, url: str) -> bool:
        """Check the include and exclude patterns for a page URL."""
        path = urlparse(url).path or "/"
        if any(match_path_pattern(path, p) for p in self.exclude_paths):
            return False
        if self.include_paths:
            return any(match_path_pattern(path, p) for p in self.include_paths)
        return True

    def _normalize_link(self, href: str, base: str) -> str | None:
        if href.startswith(_LINK_SCHEMES_SKIPPED):
            return None
        url, _ = urldefrag(urljoin(base, href))
        parsed = urlparse(url)
        if f"{parsed.scheme}://{parsed.netloc}" != self.origin:
            return None
        if parsed.path != "/" and parsed.path.endswith("/"):
            url = parsed._replace(path=parsed.path.rstrip("/")).geturl()
        return url

    # Fetching

    async def _fetch_page(self, client: httpx.AsyncClient, url: str) -> CrawledPage | None:
        """Fetch and convert one page.

        Returns:
            The page, or None for error statuses and non-HTML responses.

        Raises:
            SourceError: If the request fails at the transport level.
        """
        try:
            response = await client.get(url, headers={"Accept": "text/html,application/xhtml+xml"})
        except httpx.HTTPError as e:
            raise SourceError(f"Failed to fetch page: {e}", source=url) from e

        if not response.is_success:
            return None
        if "text/html" not in response.headers.get("content-type", ""):
            return None

        parsed = parse_html(response.text)
        links = [
            link for href in parsed.links if (link := self._normalize_link(href, url)) is not None
        ]
        return CrawledPage(
            url=url,
            path=page_path(url),
            content=parsed.text,
            title=parsed.title or urlparse(url).path,
            links=links,
        )

    async def crawl(self) -> list[CrawledPage]:
        """Crawl the site once, caching the pages.

        Raises:
            SourceError: If the start page cannot be reached.
        """
        if self._pages is not None:
            return self._pages

        pages: list[CrawledPage] = []
        visited: set[str] = set()
        start = self._normalize_link(self.url, self.url) or self.url
        queue: list[tuple[str, int]] = [(start, 0)]

        self._logger.info(
            "Starting crawl", url=self.url, max_depth=self.max_depth, max_pages=self.max_pages
        )

        async with self._http_client() as client:
            await self._load_robots(client)

            while queue and len(pages) < self.max_pages:
                url, depth = queue.pop(0)
                if url in visited:
                    continue
                visited.add(url)

                if not self._allowed_by_robots(urlparse(url).path or "/"):
                    continue

                if len(visited) > 1 and self.delay_ms:
                    await asyncio.sleep(self.delay_ms / 1000)

                try:
                    page = await self._fetch_page(client, url)
                except SourceError:
                    if depth == 0:
                        raise
                    self._logger.warning("Page fetch failed", url=url)
                    continue
                if page is None:
                    continue

                if depth < self.max_depth:
                    queue.extend((link, depth + 1) for link in page.links if link not in visited)

                if not self.should_index(url):
                    continue

                pages.append(page)
                self._logger.debug("crawled_page", url=url, count=len(pages))

        self._logger.info("Crawl complete", pages=len(pages))
        self._pages = pages
        return pages

    async def fetch_all(self) -> list[FileEntry]:
        files: list[FileEntry] = []
        for page in await self.crawl():
            content = page.content.encode("utf-8")
            if self._filter.accepts(page.path, content):
                files.append(FileEntry(path=page.path, content=content))
        return files

    async def fetch_changes(self, previous: SourceMetadata) -> FileChanges | None:
        # No change tracking for websites
        return None

    async def get_metadata(self) -> SourceMetadata:
        return WebsiteSourceMetadata(
            config=WebsiteStoredConfig(
                url=self.url,
                max_depth=self.max_depth,
                max_pages=self.max_pages,
                include_paths=self.include_paths or None,
                exclude_paths=self.exclude_paths or None,
                respect_robots_txt=self.respect_robots_txt,
                user_agent=self.user_agent if self.user_agent != DEFAULT_USER_AGENT else None,
                delay_ms=self.delay_ms if self.delay_ms != DEFAULT_DELAY_MS else None,
            ),
        )

    async def list_files(self, directory: str = "") -> list[FileInfo]:
        # Pages are flat, all live in the root
        if normalize_path(directory):
            return []
        return [FileInfo(path=page.path) for page in await self.crawl()]

    async def read_file(self, path: str) -> str | None:
        path = normalize_path(path)
        if not path:
            return None

        for page in self._pages or []:
            if page.path == path:
                return page.content

        stem = path.removesuffix(".md")
        url = f"{self.origin}/" if stem == "index" else f"{self.origin}/{stem}"
        async with self._http_client() as client:
            page = await self._fetch_page(client, url)
        return page.content if page else None
