"""
Breadth-first crawler for a documentation site.

Each fetched page is split into heading sections; every section with enough
text is stored as its own document, keyed by the page URL plus the heading
anchor. Outbound links are filtered down to the documentation subtree of
the configured domain.
"""
from collections import deque
from dataclasses import dataclass
from typing import List, Optional
from urllib.parse import urlparse, urlunparse

from bs4 import BeautifulSoup, Tag
from loguru import logger

from .config import Settings
from .deadline import Deadline, check_deadline
from .error_classifier import simplify_error
from .errors import FetchError, ProviderError, StorageError
from .fetcher import ContentFetcher, resolve_url, strip_fragment
from .rag.types import IngestResult
from .rag.vector_store import VectorStore

CONTENT_CONTAINERS = (".td-content", "main", "article")
SECTION_HEADINGS = ("h1", "h2", "h3")
BINARY_EXTENSIONS = (".png", ".jpg", ".jpeg", ".gif", ".svg", ".ico", ".pdf", ".zip")
TAXONOMY_SEGMENTS = ("/tag/", "/category/")
SKIPPED_LINK_PREFIXES = ("#", "mailto:", "javascript:")


@dataclass
class Section:
    """One heading and the paragraphs that follow it."""
    title: str
    url: str
    content: str


def normalize_base_url(base_url: str, default_domain: str) -> str:
    """Fill in a missing scheme (https) and host (the docs domain)."""
    parsed = urlparse(base_url.strip())
    scheme = parsed.scheme or "https"
    netloc = parsed.netloc
    path = parsed.path
    if not netloc:
        # "kiali.io/docs/" parses as a bare path
        first, _, rest = path.lstrip("/").partition("/")
        if "." in first:
            netloc, path = first, "/" + rest
        else:
            netloc = default_domain
            if not path.startswith("/"):
                path = "/" + path
    return urlunparse((scheme, netloc, path or "/", parsed.params, parsed.query, parsed.fragment))


def host_matches(url: str, domain: str) -> bool:
    """True when the URL's host is the domain or one of its subdomains."""
    host = (urlparse(url).hostname or "").lower()
    domain = domain.lower()
    return host == domain or host.endswith("." + domain)


def should_crawl(url: str, domain: str, path_prefix: str) -> bool:
    """Decide whether a discovered link belongs to the documentation subtree."""
    parsed = urlparse(url)
    if not parsed.netloc or not host_matches(url, domain):
        return False
    if path_prefix not in parsed.path:
        return False
    lower = parsed.path.lower()
    if lower.endswith(BINARY_EXTENSIONS):
        return False
    return not any(segment in lower for segment in TAXONOMY_SEGMENTS)


def find_content_root(soup: BeautifulSoup) -> Tag:
    """First matching content container, or the whole document."""
    for selector in CONTENT_CONTAINERS:
        root = soup.select_one(selector)
        if root is not None:
            return root
    return soup


def _collect_paragraphs(heading: Tag) -> str:
    paragraphs = []
    for sibling in heading.find_next_siblings():
        if sibling.name in SECTION_HEADINGS:
            break
        if sibling.name == "p":
            text = sibling.get_text().strip()
            if text:
                paragraphs.append(text)
    return "\n\n".join(paragraphs)


def extract_sections(soup: BeautifulSoup, page_url: str) -> List[Section]:
    """
    Split a page into sections.

    Headings with an id come first (section URL gets '#id'). Pages without
    any fall back to plain h2 headings, and then to a single section holding
    the page title and all container text.
    """
    root = find_content_root(soup)

    anchored = root.select("h1[id], h2[id], h3[id]")
    if anchored:
        sections = []
        for heading in anchored:
            title = heading.get_text().strip()
            if not title:
                continue
            sections.append(Section(
                title=title,
                url=f"{page_url}#{heading['id']}" if heading.get("id") else page_url,
                content=_collect_paragraphs(heading),
            ))
        return sections

    plain = [h for h in root.find_all("h2") if h.get_text().strip()]
    if plain:
        return [
            Section(title=h.get_text().strip(), url=page_url, content=_collect_paragraphs(h))
            for h in plain
        ]

    title_tag = soup.find("title")
    title = title_tag.get_text().strip() if title_tag else ""
    return [Section(title=title, url=page_url, content=root.get_text().strip())]


def collect_links(soup: BeautifulSoup, page_url: str, domain: str, path_prefix: str) -> List[str]:
    """Crawlable links found in the page's content container, fragments stripped."""
    root = find_content_root(soup)
    links = []
    for anchor in root.find_all("a", href=True):
        href = anchor["href"].strip()
        if not href or href.startswith(SKIPPED_LINK_PREFIXES):
            continue
        link = strip_fragment(resolve_url(page_url, href))
        if should_crawl(link, domain, path_prefix):
            links.append(link)
    return links


class SiteCrawler:
    """Crawls a documentation site and stores its sections."""

    def __init__(self, fetcher: ContentFetcher, store: VectorStore, settings: Settings):
        self.fetcher = fetcher
        self.store = store
        self.domain = settings.docs_domain
        self.path_prefix = settings.docs_path_prefix
        self.max_pages = settings.crawl_max_pages
        self.min_section_chars = settings.min_section_chars

    def crawl(self, base_url: str, deadline: Optional[Deadline] = None) -> IngestResult:
        """
        Visit every reachable documentation page starting from base_url.

        Per-page and per-section failures are logged and skipped. Only
        configuration problems and deadline expiry abort the crawl.

        Args:
            base_url: Starting URL (scheme and host are filled in if missing)
            deadline: Optional request deadline

        Returns:
            IngestResult with ingested and skipped section counts
        """
        start = normalize_base_url(base_url, self.domain)
        result = IngestResult()
        visited = set()
        frontier = deque([start])
        pages_fetched = 0

        logger.info(f"Crawling {start} (domain={self.domain}, max_pages={self.max_pages or 'unbounded'})")

        while frontier:
            check_deadline(deadline)
            url = frontier.popleft()
            if url in visited:
                continue
            visited.add(url)

            if not host_matches(url, self.domain):
                logger.debug(f"Skipping off-domain URL: {url}")
                continue

            if self.max_pages and pages_fetched >= self.max_pages:
                logger.warning(f"Page cap of {self.max_pages} reached; {len(frontier) + 1} URLs left unvisited")
                break
            pages_fetched += 1

            try:
                soup = self.fetcher.fetch_structured(url, deadline)
            except FetchError as e:
                logger.warning(f"Skipping page {url}: {simplify_error(e)}")
                continue

            for section in extract_sections(soup, url):
                self._ingest_section(section, result, deadline)

            for link in collect_links(soup, url, self.domain, self.path_prefix):
                if link not in visited:
                    frontier.append(link)

        logger.success(
            f"Crawl finished: {pages_fetched} pages, {result.ingested} ingested, {result.skipped} skipped"
        )
        return result

    def _ingest_section(self, section: Section, result: IngestResult, deadline: Optional[Deadline]):
        if len(section.content.strip()) < self.min_section_chars:
            return

        try:
            if self.store.document_exists(section.url, deadline):
                result.skipped += 1
                return
            self.store.upsert_document(section.title, section.url, section.content, deadline)
        except (ProviderError, StorageError) as e:
            logger.error(f"Upsert failed for {section.url}: {simplify_error(e)}")
            return

        result.ingested += 1
        logger.debug(f"Ingested section: {section.title} ({section.url})")
