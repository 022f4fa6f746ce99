"""
Media-list expansion and ingestion.

A request is one URL or a comma-separated list. Playlist URLs are expanded
to video URLs through the YouTube Data API when a key is configured, and by
scraping the playlist page otherwise. Every resolved URL is fetched as raw
text and stored as one document.
"""
import json
import re
from typing import List, Optional
from urllib.parse import parse_qs, urlencode, urlparse

from loguru import logger

from .config import Settings
from .deadline import Deadline, check_deadline
from .error_classifier import simplify_error
from .errors import FetchError, ProviderError, StorageError, ValidationError
from .fetcher import ContentFetcher, resolve_url
from .rag.types import IngestResult
from .rag.vector_store import VectorStore

PLAYLIST_ITEMS_URL = "https://www.googleapis.com/youtube/v3/playlistItems"
WATCH_URL = "https://www.youtube.com/watch?v="
MEDIA_TITLE = "YouTube Video"
PAGE_SIZE = 50

VIDEO_ID_PATTERN = re.compile(r'(?:v=|/v/|youtu\.be/|/embed/|/watch\?.*v=)([^&\n?#]+)')


def is_playlist_url(url: str) -> bool:
    return "youtube.com/playlist" in url or ("list=" in url and "youtube.com" in url)


def extract_playlist_id(url: str) -> str:
    """The 'list' query parameter, or '' when absent."""
    values = parse_qs(urlparse(url).query).get("list")
    return values[0] if values else ""


def extract_video_id(url: str) -> Optional[str]:
    """Extract video ID from any YouTube URL format."""
    match = VIDEO_ID_PATTERN.search(url)
    return match.group(1) if match else None


def normalize_watch_url(url: str) -> str:
    """Rewrite '/embed/<id>' links to the canonical watch form."""
    if "/embed/" in urlparse(url).path:
        video_id = extract_video_id(url)
        if video_id:
            return WATCH_URL + video_id
    return url


def split_url_list(value: str) -> List[str]:
    """Split a comma-separated list, dropping empty entries."""
    return [part.strip() for part in value.split(",") if part.strip()]


def dedupe(urls: List[str]) -> List[str]:
    """Remove repeats, keeping first-seen order."""
    seen = set()
    result = []
    for url in urls:
        if url not in seen:
            seen.add(url)
            result.append(url)
    return result


class MediaListExpander:
    """Resolves playlists to video URLs and ingests the videos."""

    def __init__(self, fetcher: ContentFetcher, store: VectorStore, settings: Settings):
        self.fetcher = fetcher
        self.store = store
        self.api_key = settings.youtube_api_key
        self.min_media_chars = settings.min_media_chars

    def expand_via_api(self, playlist_id: str, deadline: Optional[Deadline] = None) -> List[str]:
        """
        Page through playlistItems and return watch URLs.

        Raises:
            FetchError: A page request failed
            ValueError: A page was not a valid JSON object
        """
        urls = []
        page_token = ""
        while True:
            check_deadline(deadline)
            params = {
                "part": "contentDetails",
                "playlistId": playlist_id,
                "maxResults": str(PAGE_SIZE),
                "key": self.api_key,
            }
            if page_token:
                params["pageToken"] = page_token
            payload = json.loads(self.fetcher.fetch_raw(f"{PLAYLIST_ITEMS_URL}?{urlencode(params)}", deadline))
            if not isinstance(payload, dict):
                raise ValueError(f"playlist page is a JSON {type(payload).__name__}, not an object")

            for item in payload.get("items") or []:
                video_id = (item.get("contentDetails") or {}).get("videoId")
                if video_id:
                    urls.append(WATCH_URL + video_id)

            page_token = payload.get("nextPageToken") or ""
            if not page_token:
                break

        logger.debug(f"Playlist API returned {len(urls)} videos for {playlist_id}")
        return urls

    def expand_via_html(self, playlist_url: str, deadline: Optional[Deadline] = None) -> List[str]:
        """Scrape watch links from the playlist page."""
        soup = self.fetcher.fetch_structured(playlist_url, deadline)
        urls = []
        for anchor in soup.find_all("a", href=True):
            href = anchor["href"]
            if "/watch?" in href and "v=" in href:
                urls.append(normalize_watch_url(resolve_url(playlist_url, href)))
        return dedupe(urls)

    def expand_playlist(self, playlist_url: str, deadline: Optional[Deadline] = None) -> List[str]:
        """
        Expand one playlist, preferring the API and falling back to HTML.

        Raises:
            FetchError: The HTML fallback could not be fetched
        """
        playlist_id = extract_playlist_id(playlist_url)
        if playlist_id and self.api_key:
            try:
                urls = self.expand_via_api(playlist_id, deadline)
                if urls:
                    return urls
                logger.info(f"Playlist API returned no videos for {playlist_id}; parsing HTML")
            except (FetchError, ValueError) as e:
                logger.warning(f"Playlist API failed, falling back to HTML: {simplify_error(e)}")
        return self.expand_via_html(playlist_url, deadline)

    def expand(self, value: str, deadline: Optional[Deadline] = None) -> List[str]:
        """
        Resolve a URL or comma-separated list to deduplicated item URLs.

        Raises:
            ValidationError: If the input holds no URL
        """
        if not value or "http" not in value:
            raise ValidationError("expect URLs or use external ingestion pipeline")

        expanded = []
        for url in split_url_list(value):
            check_deadline(deadline)
            if not is_playlist_url(url):
                expanded.append(url)
                continue
            try:
                expanded.extend(self.expand_playlist(url, deadline))
            except FetchError as e:
                logger.error(f"Playlist expansion failed for {url}: {simplify_error(e)}")
        return dedupe(expanded)

    def ingest(self, value: str, deadline: Optional[Deadline] = None) -> IngestResult:
        """
        Expand the input and store every item not already present.

        Args:
            value: URL or comma-separated URLs (videos and/or playlists)
            deadline: Optional request deadline

        Returns:
            IngestResult with ingested and skipped counts
        """
        urls = self.expand(value, deadline)
        result = IngestResult()
        logger.info(f"Ingesting {len(urls)} media items")

        for url in urls:
            check_deadline(deadline)
            try:
                if self.store.document_exists(url, deadline):
                    result.skipped += 1
                    continue
            except StorageError as e:
                logger.error(f"Existence check failed for {url}: {simplify_error(e)}")
                continue

            try:
                body = self.fetcher.fetch_raw(url, deadline)
            except FetchError as e:
                logger.warning(f"Skipping media item {url}: {simplify_error(e)}")
                continue
            if len(body) < self.min_media_chars:
                logger.warning(f"Skipping media item with {len(body)} chars: {url}")
                continue

            try:
                self.store.upsert_document(MEDIA_TITLE, url, body, deadline)
            except (ProviderError, StorageError) as e:
                logger.error(f"Upsert failed for {url}: {simplify_error(e)}")
                continue
            result.ingested += 1

        logger.success(f"Media ingestion finished: {result.ingested} ingested, {result.skipped} skipped")
        return result
