"""Export of merged booking events as an iCalendar document."""
import logging
from datetime import datetime, timezone
from typing import Callable, Iterable, Optional

from icalendar import Calendar, Event

from processor.feed_parser import IdFactory, random_id
from processor.models import DEFAULT_TITLE, BookingEvent

logger = logging.getLogger(__name__)

PRODUCT_ID = '-//Merged Stay Calendar//Feed Merge//EN'
UID_SUFFIX = '@mergedbnb'
CALENDAR_MEDIA_TYPE = 'text/calendar; charset=utf-8'
CALENDAR_FILENAME = 'merged-bnb-calendar.ics'


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CalendarExporter:
    """Serializes booking events into a standalone iCalendar document."""

    def __init__(
        self,
        clock: Optional[Callable[[], datetime]] = None,
        id_factory: Optional[IdFactory] = None
    ):
        """
        Initialize the exporter.

        Args:
            clock: Returns the generation timestamp (default: now, UTC)
            id_factory: Identity generator for events carrying neither a
                uid nor a local id (default: random)
        """
        self.clock = clock or utc_now
        self.id_factory = id_factory or random_id

    def export(self, events: Iterable[BookingEvent]) -> str:
        """
        Build the merged calendar document.

        Args:
            events: Events to emit, in output order

        Returns:
            iCalendar text with CRLF line endings and UTC timestamps
        """
        calendar = Calendar()
        calendar.add('version', '2.0')
        calendar.add('prodid', PRODUCT_ID)
        calendar.add('calscale', 'GREGORIAN')

        stamp = self.clock().astimezone(timezone.utc)
        count = 0
        for event in events:
            calendar.add_component(self._build_component(event, stamp))
            count += 1

        logger.info(f"Exported {count} events to merged calendar")
        return calendar.to_ical().decode('utf-8')

    def _build_component(self, event: BookingEvent, stamp: datetime) -> Event:
        """
        Build one VEVENT block.

        Args:
            event: Event to serialize
            stamp: Generation timestamp shared by the whole document

        Returns:
            icalendar Event component
        """
        component = Event()
        component.add('uid', self.export_uid(event))
        component.add('dtstamp', stamp)
        component.add('dtstart', event.start.astimezone(timezone.utc))
        component.add('dtend', event.end.astimezone(timezone.utc))
        title = single_line(event.title)
        component.add('summary', title if title.strip() else DEFAULT_TITLE)
        component.add('description', single_line(event.source_name) or 'Merged')
        return component

    def export_uid(self, event: BookingEvent) -> str:
        """
        Identity token written for an event.

        Feed-supplied uids are kept verbatim so a re-imported export
        resolves to the same bookings; synthesized ids get a domain-like
        suffix.

        Args:
            event: Event being exported

        Returns:
            UID property value
        """
        if event.uid:
            return event.uid
        return f"{event.local_id or self.id_factory()}{UID_SUFFIX}"


def single_line(text: Optional[str]) -> str:
    """Replace embedded line breaks with spaces."""
    if not text:
        return ''
    return text.replace('\r\n', ' ').replace('\n', ' ').replace('\r', ' ')
