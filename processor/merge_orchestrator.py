"""Merge orchestration across calendar sources."""
import logging
from concurrent.futures import ThreadPoolExecutor
from typing import Iterable, List, Optional, Sequence, Tuple, Union

from processor.deduplicator import BookingDeduplicator
from processor.errors import NetworkError, ParseError
from processor.feed_parser import FeedParser
from processor.models import (
    BookingEvent,
    MergeResult,
    Source,
    SourceFailure,
    SourceKind,
)

logger = logging.getLogger(__name__)

FeedInput = Tuple[Source, Optional[str]]

CALENDAR_MARKER = 'BEGIN:VCALENDAR'


def sort_events(events: Iterable[BookingEvent]) -> List[BookingEvent]:
    """Order events by start, then uid, then title."""
    return sorted(events, key=lambda event: (event.start, event.uid or '', event.title))


class MergeOrchestrator:
    """Coordinates retrieval, parsing and deduplication of many sources."""

    def __init__(
        self,
        fetcher=None,
        parser: Optional[FeedParser] = None,
        deduplicator: Optional[BookingDeduplicator] = None,
        max_workers: int = 8
    ):
        """
        Initialize the orchestrator.

        Args:
            fetcher: Retrieval collaborator exposing fetch(locator) -> str;
                required only for sources given as locators
            parser: Feed parser (default: FeedParser())
            deduplicator: Resolver (default: BookingDeduplicator())
            max_workers: Maximum concurrent source retrievals (default: 8)
        """
        self.fetcher = fetcher
        self.parser = parser or FeedParser()
        self.deduplicator = deduplicator or BookingDeduplicator()
        self.max_workers = max(1, max_workers)

    def merge(self, feeds: Sequence[FeedInput]) -> MergeResult:
        """
        Merge every source into one deduplicated, sorted event set.

        A failure in one source is recorded and that source contributes
        no events; it never aborts the other sources.

        Args:
            feeds: (Source, locator_or_text) pairs; None means the
                source's own locator, text containing BEGIN:VCALENDAR is
                used as the feed body as-is

        Returns:
            MergeResult with events and per-source failures
        """
        feeds = list(feeds)
        logger.info(f"Merging {len(feeds)} calendar sources")

        if not feeds:
            return MergeResult()

        workers = min(self.max_workers, len(feeds))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            outcomes = list(pool.map(self._load_source, feeds))

        combined = []
        failures = []
        for outcome in outcomes:
            if isinstance(outcome, SourceFailure):
                failures.append(outcome)
            else:
                combined.extend(outcome)

        events = sort_events(self.deduplicator.dedupe(combined))

        logger.info(
            f"Merged {len(events)} events from {len(feeds) - len(failures)} sources, "
            f"{len(failures)} sources failed"
        )
        return MergeResult(events=events, failures=failures)

    def extend(
        self,
        previous: Iterable[BookingEvent],
        new_events: Iterable[BookingEvent]
    ) -> List[BookingEvent]:
        """
        Re-deduplicate a previous merge together with new events.

        Args:
            previous: Events from an earlier merge
            new_events: Freshly parsed events, e.g. from an upload

        Returns:
            Sorted, deduplicated union; earlier events win on identity
        """
        return sort_events(self.deduplicator.dedupe(list(previous) + list(new_events)))

    def ingest_upload(
        self,
        previous: MergeResult,
        raw_text: str,
        filename: str,
        kind: Union[str, SourceKind, None] = None
    ) -> MergeResult:
        """
        Add a one-off uploaded calendar file to an existing merge.

        Args:
            previous: Result of an earlier merge
            raw_text: Uploaded file contents
            filename: Uploaded file name, used to name the source
            kind: Assumed channel of the upload

        Returns:
            New MergeResult; on a parse failure the previous events are
            kept and the failure is appended
        """
        source = Source.for_upload(filename, kind)

        try:
            new_events = self.parser.parse(
                raw_text, source.id, source.display_name, source.color_tag
            )
        except ParseError as e:
            logger.warning(f"Uploaded file '{filename}' could not be parsed: {e}")
            return MergeResult(
                events=list(previous.events),
                failures=list(previous.failures) + [self._failure(source, e)]
            )

        logger.info(f"Ingested {len(new_events)} events from upload '{filename}'")
        return MergeResult(
            events=self.extend(previous.events, new_events),
            failures=list(previous.failures)
        )

    def _load_source(self, feed: FeedInput) -> Union[List[BookingEvent], SourceFailure]:
        """
        Retrieve and parse one source, capturing any failure.

        Args:
            feed: (Source, locator_or_text) pair

        Returns:
            Parsed events, or a SourceFailure
        """
        source, locator_or_text = feed

        try:
            raw_text = self._retrieve(source, locator_or_text)
            events = self.parser.parse(
                raw_text, source.id, source.display_name, source.color_tag
            )
        except Exception as e:
            logger.warning(
                f"Source '{source.display_name}' failed: {e}",
                extra={'source_id': source.id, 'error_type': type(e).__name__},
                exc_info=not isinstance(e, (NetworkError, ParseError))
            )
            return self._failure(source, e)

        logger.info(f"Source '{source.display_name}' contributed {len(events)} events")
        return events

    def _retrieve(self, source: Source, locator_or_text: Optional[str]) -> str:
        """Resolve a feed input to calendar text."""
        if locator_or_text and CALENDAR_MARKER in locator_or_text:
            return locator_or_text

        locator = locator_or_text or source.locator
        if not locator:
            raise NetworkError(f"Source '{source.display_name}' has no locator")
        if self.fetcher is None:
            raise NetworkError(f"No fetcher configured to retrieve {locator}", locator=locator)
        return self.fetcher.fetch(locator)

    @staticmethod
    def _failure(source: Source, error: Exception) -> SourceFailure:
        return SourceFailure(
            source_id=source.id,
            source_name=source.display_name,
            error_type=type(error).__name__,
            message=str(error)
        )
