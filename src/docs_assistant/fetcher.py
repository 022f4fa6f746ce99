"""
Content fetching over HTTPS.

One bounded-timeout GET per call, no retries and no caching. Anything other
than a 200 response is a FetchError.
"""
import time
from typing import Optional
from urllib.parse import urldefrag, urljoin, urlparse

import requests
from bs4 import BeautifulSoup
from loguru import logger

from .deadline import Deadline, call_timeout, check_deadline, run_with_deadline
from .debug_logger import record_api_call
from .errors import DeadlineExceeded, FetchError, redact_secrets

USER_AGENT = "docs-assistant/0.1 (+https://kiali.io)"


def resolve_url(base: str, href: str) -> str:
    """Resolve href against base; absolute hrefs come back unchanged."""
    if urlparse(href).scheme:
        return href
    return urljoin(base, href)


def strip_fragment(url: str) -> str:
    """Drop the '#fragment' part of a URL."""
    return urldefrag(url)[0]


class ContentFetcher:
    """Fetches pages as parsed HTML or raw text."""

    def __init__(self, timeout: float = 20.0, session: Optional[requests.Session] = None):
        """
        Initialize fetcher.

        Args:
            timeout: Per-request timeout in seconds
            session: Optional requests session (tests inject a fake one)
        """
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    def _get(self, url: str, deadline: Optional[Deadline] = None) -> requests.Response:
        timeout = call_timeout(deadline, self.timeout)
        started = time.monotonic()
        try:
            response = run_with_deadline(deadline, self.session.get, url, timeout=timeout)
        except requests.exceptions.Timeout as e:
            record_api_call("fetch", url, None, (time.monotonic() - started) * 1000, str(e))
            if deadline is not None and deadline.expired:
                raise DeadlineExceeded(f"fetch {redact_secrets(url)} exceeded the request deadline") from e
            raise FetchError(url, f"timed out: {e}") from e
        except requests.exceptions.RequestException as e:
            record_api_call("fetch", url, None, (time.monotonic() - started) * 1000, str(e))
            raise FetchError(url, str(e)) from e

        elapsed_ms = (time.monotonic() - started) * 1000
        record_api_call(
            "fetch", url, response.status_code, elapsed_ms,
            None if response.status_code == 200 else f"status {response.status_code}",
        )
        if response.status_code != 200:
            raise FetchError(url, f"status {response.status_code}", status_code=response.status_code)

        check_deadline(deadline)
        logger.debug(f"Fetched {redact_secrets(url)} ({len(response.content)} bytes, {elapsed_ms:.0f}ms)")
        return response

    def fetch_structured(self, url: str, deadline: Optional[Deadline] = None) -> BeautifulSoup:
        """
        Fetch a page and parse it as HTML.

        Raises:
            FetchError: Transport failure or non-200 status
            DeadlineExceeded: The request deadline ran out
        """
        response = self._get(url, deadline)
        return BeautifulSoup(response.content, "html.parser")

    def fetch_raw(self, url: str, deadline: Optional[Deadline] = None) -> str:
        """Fetch a URL and return its body as text."""
        return self._get(url, deadline).text
