"""Unit tests for FeedFetcher."""
import re
from unittest.mock import patch

import pytest
import responses
from requests.exceptions import Timeout

from processor.errors import NetworkError
from scraper.feed_fetcher import FeedFetcher

FEED_URL = "https://feeds.example.com/listing/42.ics"

FEED_BODY = (
    "BEGIN:VCALENDAR\r\n"
    "VERSION:2.0\r\n"
    "BEGIN:VEVENT\r\n"
    "UID:42@example.com\r\n"
    "DTSTART;VALUE=DATE:20240601\r\n"
    "DTEND;VALUE=DATE:20240603\r\n"
    "SUMMARY:Reserved\r\n"
    "END:VEVENT\r\n"
    "END:VCALENDAR\r\n"
)


@pytest.fixture(autouse=True)
def no_sleep():
    """Skip backoff delays."""
    with patch('scraper.feed_fetcher.time.sleep') as mock_sleep:
        yield mock_sleep


class TestFeedFetcher:
    """Test cases for FeedFetcher class."""

    @responses.activate
    def test_fetch_success(self):
        """Test successful feed retrieval."""
        responses.add(
            responses.GET, FEED_URL,
            body=FEED_BODY, status=200, content_type='text/calendar'
        )

        fetcher = FeedFetcher(timeout=30)
        text = fetcher.fetch(FEED_URL)

        assert text == FEED_BODY
        assert len(responses.calls) == 1
        assert responses.calls[0].request.headers['User-Agent'] == FeedFetcher.USER_AGENT

    @responses.activate
    def test_fetch_with_retry_success(self, no_sleep):
        """Test retry logic succeeds after initial failures."""
        responses.add(responses.GET, FEED_URL, body="Server Error", status=500)
        responses.add(responses.GET, FEED_URL, body="Server Error", status=500)
        responses.add(
            responses.GET, FEED_URL,
            body=FEED_BODY, status=200, content_type='text/calendar'
        )

        fetcher = FeedFetcher(timeout=30)
        text = fetcher.fetch(FEED_URL)

        assert text == FEED_BODY
        assert len(responses.calls) == 3
        assert [c.args[0] for c in no_sleep.call_args_list] == [1, 2]

    @responses.activate
    def test_fetch_all_retries_fail(self):
        """Test that NetworkError is raised when all retries fail."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body="Server Error", status=500)

        fetcher = FeedFetcher(timeout=30)

        with pytest.raises(NetworkError) as exc_info:
            fetcher.fetch(FEED_URL)

        assert exc_info.value.locator == FEED_URL
        assert len(responses.calls) == 3

    @responses.activate
    def test_fetch_timeout(self):
        """Test timeout handling."""
        for _ in range(3):
            responses.add(responses.GET, FEED_URL, body=Timeout("Request timed out"))

        fetcher = FeedFetcher(timeout=30)

        with pytest.raises(NetworkError, match="timed out"):
            fetcher.fetch(FEED_URL)

        assert len(responses.calls) == 3

    @responses.activate
    def test_proxy_fallback(self):
        """Test that proxies are tried after direct retrieval fails."""
        responses.add(responses.GET, FEED_URL, body="Forbidden", status=403)
        responses.add(
            responses.GET, re.compile(r"https://proxy\.example\.com/.*"),
            body=FEED_BODY, status=200, content_type='text/calendar'
        )

        fetcher = FeedFetcher(max_retries=1, proxy_prefixes=["https://proxy.example.com/"])
        text = fetcher.fetch(FEED_URL)

        assert text == FEED_BODY
        assert len(responses.calls) == 2
        assert responses.calls[1].request.url.startswith("https://proxy.example.com/")

    @responses.activate
    def test_proxy_fallback_fails(self):
        """Test that the error surfaces when proxies fail too."""
        responses.add(responses.GET, FEED_URL, body="Forbidden", status=403)
        responses.add(
            responses.GET, re.compile(r"https://proxy\.example\.com/.*"),
            body="Bad Gateway", status=502
        )

        fetcher = FeedFetcher(max_retries=1, proxy_prefixes=["https://proxy.example.com/"])

        with pytest.raises(NetworkError):
            fetcher.fetch(FEED_URL)

        assert len(responses.calls) == 2

    @responses.activate
    def test_html_page_rejected(self):
        """Test that an HTML login page is not mistaken for a feed."""
        responses.add(
            responses.GET, FEED_URL,
            body="<html><head><title>Log in</title></head><body></body></html>",
            status=200, content_type='text/html'
        )

        fetcher = FeedFetcher()

        with pytest.raises(NetworkError, match="Log in"):
            fetcher.fetch(FEED_URL)

        assert len(responses.calls) == 1

    def test_read_local_path(self, tmp_path):
        """Test reading an exported file from disk."""
        path = tmp_path / "export.ics"
        path.write_bytes(FEED_BODY.encode('utf-8'))

        assert FeedFetcher().fetch(str(path)) == FEED_BODY

    def test_read_file_url(self, tmp_path):
        """Test reading a file:// locator."""
        path = tmp_path / "export.ics"
        path.write_bytes(FEED_BODY.encode('utf-8'))

        assert FeedFetcher().fetch(path.as_uri()) == FEED_BODY

    def test_missing_file(self, tmp_path):
        """Test that unreadable files are network errors."""
        with pytest.raises(NetworkError):
            FeedFetcher().fetch(str(tmp_path / "missing.ics"))

    def test_empty_locator(self):
        """Test that a blank locator is rejected."""
        with pytest.raises(NetworkError):
            FeedFetcher().fetch("  ")

    def test_decode_byte_order_mark(self):
        """Test that a UTF-8 BOM is stripped."""
        assert FeedFetcher().decode(b"\xef\xbb\xbfBEGIN:VCALENDAR") == "BEGIN:VCALENDAR"

    def test_decode_cp1252(self):
        """Test fallback to cp1252 for legacy feeds."""
        assert FeedFetcher().decode("SUMMARY:Café".encode('cp1252')) == "SUMMARY:Café"
