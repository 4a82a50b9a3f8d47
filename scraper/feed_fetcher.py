"""Retrieval of raw calendar feeds over HTTP or from disk."""
import logging
import time
from pathlib import Path
from typing import Iterable, Optional
from urllib.parse import unquote, urlparse

import requests
from bs4 import BeautifulSoup

from processor.errors import NetworkError

logger = logging.getLogger(__name__)


class FeedFetcher:
    """Fetcher for iCalendar feed bodies."""

    USER_AGENT = "MergedStayCalendar/1.0"
    ENCODINGS = ("utf-8-sig", "utf-8", "cp1252", "latin-1")

    def __init__(
        self,
        timeout: int = 30,
        max_retries: int = 3,
        base_delay: float = 1,
        proxy_prefixes: Optional[Iterable[str]] = None
    ):
        """
        Initialize the feed fetcher.

        Args:
            timeout: HTTP request timeout in seconds (default: 30)
            max_retries: Attempts per feed before falling back (default: 3)
            base_delay: First backoff delay in seconds (default: 1)
            proxy_prefixes: CORS-style proxy prefixes tried once each after
                direct retrieval fails
        """
        self.timeout = timeout
        self.max_retries = max(1, max_retries)
        self.base_delay = base_delay
        self.proxy_prefixes = [p for p in (proxy_prefixes or []) if p]

    def fetch(self, locator: str) -> str:
        """
        Retrieve a feed body.

        Args:
            locator: http(s) URL, file:// URL or local path

        Returns:
            Decoded calendar text

        Raises:
            NetworkError: If the feed cannot be retrieved
        """
        if not locator or not locator.strip():
            raise NetworkError("Source has no locator", locator=locator)

        locator = locator.strip()
        scheme = urlparse(locator).scheme.lower()

        if scheme in ('http', 'https'):
            return self._fetch_url(locator)
        if scheme == 'file':
            return self._read_file(Path(unquote(urlparse(locator).path)), locator)
        return self._read_file(Path(locator), locator)

    def _fetch_url(self, url: str) -> str:
        """
        Fetch a feed URL with retry logic, then proxy fallback.

        Args:
            url: Feed URL

        Returns:
            Decoded calendar text
        """
        try:
            return self._get_with_retries(url)
        except requests.RequestException as e:
            last_error = e

        for prefix in self.proxy_prefixes:
            proxied = prefix + url
            try:
                logger.info(f"Retrying {url} through proxy {prefix}")
                return self._get(proxied, url)
            except requests.RequestException as e:
                logger.warning(f"Proxy {prefix} failed for {url}: {e}")
                last_error = e

        raise NetworkError(
            f"Failed to fetch {url}: {last_error}", locator=url
        ) from last_error

    def _get_with_retries(self, url: str) -> str:
        """
        Fetch a URL with exponential backoff.

        Args:
            url: Feed URL

        Returns:
            Decoded calendar text

        Raises:
            requests.RequestException: If all retry attempts fail
        """
        for attempt in range(self.max_retries):
            try:
                logger.info(f"Fetching feed {url} (attempt {attempt + 1}/{self.max_retries})")
                return self._get(url, url)

            except requests.RequestException as e:
                if attempt < self.max_retries - 1:
                    delay = self.base_delay * (2 ** attempt)
                    logger.warning(
                        f"Request failed (attempt {attempt + 1}/{self.max_retries}): {e}. "
                        f"Retrying in {delay} seconds..."
                    )
                    time.sleep(delay)
                else:
                    logger.error(
                        f"All {self.max_retries} retry attempts failed. Last error: {e}"
                    )
                    raise

    def _get(self, request_url: str, feed_url: str) -> str:
        """Perform one GET and validate the payload."""
        response = requests.get(
            request_url,
            timeout=self.timeout,
            headers={'User-Agent': self.USER_AGENT}
        )
        response.raise_for_status()
        text = self.decode(response.content)
        self._reject_html(text, response.headers.get('Content-Type', ''), feed_url)
        return text

    def _read_file(self, path: Path, locator: str) -> str:
        """
        Read a feed stored on disk.

        Args:
            path: File path
            locator: Original locator, for error messages

        Returns:
            Decoded calendar text
        """
        try:
            data = path.read_bytes()
        except OSError as e:
            raise NetworkError(f"Failed to read {locator}: {e}", locator=locator) from e

        logger.info(f"Read {len(data)} bytes from {path}")
        return self.decode(data)

    def decode(self, raw: bytes) -> str:
        """
        Decode a feed body, trying common encodings in order.

        Args:
            raw: Undecoded body

        Returns:
            Decoded text
        """
        for encoding in self.ENCODINGS:
            try:
                return raw.decode(encoding)
            except UnicodeDecodeError:
                continue
        return raw.decode('utf-8', errors='replace')

    def _reject_html(self, text: str, content_type: str, url: str) -> None:
        """
        Raise if a server answered with a web page instead of a feed.

        Login walls and error pages are often served with status 200.

        Args:
            text: Decoded body
            content_type: Response Content-Type header
            url: Feed URL, for error messages
        """
        if 'text/html' not in content_type.lower() and not text.lstrip().startswith('<'):
            return

        soup = BeautifulSoup(text, 'html.parser')
        title = soup.title.get_text(strip=True) if soup.title else ''
        raise NetworkError(
            f"{url} returned an HTML page instead of a calendar"
            + (f": '{title}'" if title else ''),
            locator=url
        )
