"""Feed parser for turning iCalendar text into booking events."""
import logging
import uuid
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, List, Optional, Union

from icalendar import Calendar

from processor.errors import ParseError
from processor.models import DEFAULT_TITLE, BookingEvent, RawEventFields

logger = logging.getLogger(__name__)

IdFactory = Callable[[], str]

_DATE_PROPERTIES = ('DTSTART', 'DTEND', 'DURATION')


def random_id() -> str:
    """Default identity generator for events without a uid."""
    return uuid.uuid4().hex


class FeedParser:
    """Parser for iCalendar feed documents."""

    def __init__(self, id_factory: Optional[IdFactory] = None):
        """
        Initialize the feed parser.

        Args:
            id_factory: Zero-argument callable returning a fresh identity
                for each event block that carries no UID (default: random)
        """
        self.id_factory = id_factory or random_id

    def parse(
        self,
        raw_text: str,
        source_id: str,
        source_name: str,
        color_tag: Optional[str] = None
    ) -> List[BookingEvent]:
        """
        Parse one calendar document into booking events.

        Args:
            raw_text: iCalendar document text
            source_id: Id of the source the text came from
            source_name: Display name of that source
            color_tag: Presentation color carried on each event

        Returns:
            List of BookingEvent objects in document order

        Raises:
            ParseError: If the document is malformed or any event block
                lacks a usable start time
        """
        calendar = self._load_calendar(raw_text)

        events = []
        for index, component in enumerate(calendar.walk('VEVENT')):
            fields = self._extract_fields(component, index)
            events.append(
                self._build_event(fields, source_id, source_name, color_tag)
            )

        logger.debug(f"Parsed {len(events)} events from source '{source_name}'")
        return events

    def _load_calendar(self, raw_text: str) -> Calendar:
        """
        Decode the document structure.

        Args:
            raw_text: iCalendar document text

        Returns:
            Top-level VCALENDAR component
        """
        if not raw_text or not raw_text.strip():
            raise ParseError("Calendar document is empty")

        try:
            calendar = Calendar.from_ical(raw_text)
        except (ValueError, IndexError) as e:
            raise ParseError(f"Unparsable calendar document: {e}") from e

        if calendar.name != 'VCALENDAR':
            raise ParseError(
                f"Expected a VCALENDAR document, found {calendar.name or 'nothing'}"
            )

        return calendar

    def _extract_fields(self, component, index: int) -> RawEventFields:
        """
        Read the optional fields of one VEVENT block.

        Args:
            component: icalendar VEVENT component
            index: Position of the block in the document, for messages

        Returns:
            RawEventFields with whatever the block supplies
        """
        for name, message in getattr(component, 'errors', []):
            if name and name.upper() in _DATE_PROPERTIES:
                raise ParseError(
                    f"Event #{index + 1} has a malformed {name.upper()} value: {message}"
                )

        uid = component.get('UID')
        summary = component.get('SUMMARY')

        fields = RawEventFields(
            uid=str(uid).strip() if uid is not None else None,
            summary=str(summary) if summary is not None else None,
            start=self._decoded(component, 'DTSTART', index),
            end=self._decoded(component, 'DTEND', index),
            duration=self._decoded(component, 'DURATION', index)
        )

        if fields.start is None:
            raise ParseError(f"Event #{index + 1} is missing required DTSTART")

        return fields

    def _decoded(self, component, name: str, index: int):
        """Return the typed value of a date property or None if absent."""
        prop = component.get(name)
        if prop is None:
            return None

        value = getattr(prop, 'dt', None)
        expected = timedelta if name == 'DURATION' else date
        if not isinstance(value, expected):
            raise ParseError(
                f"Event #{index + 1} has a malformed {name} value: {prop!r}"
            )
        return value

    def _build_event(
        self,
        fields: RawEventFields,
        source_id: str,
        source_name: str,
        color_tag: Optional[str]
    ) -> BookingEvent:
        """
        Apply default-filling rules to produce a BookingEvent.

        Args:
            fields: Raw fields of one event block
            source_id: Owning source id
            source_name: Owning source display name
            color_tag: Presentation color

        Returns:
            BookingEvent with normalized UTC bounds
        """
        uid = fields.uid or None
        title = fields.summary if fields.summary and fields.summary.strip() else DEFAULT_TITLE

        is_all_day = not isinstance(fields.start, datetime)
        start = to_utc(fields.start)

        if fields.end is not None:
            end = to_utc(fields.end)
        elif fields.duration is not None:
            end = start + fields.duration
        else:
            end = start

        if end < start:
            logger.warning(
                f"Event '{title}' from '{source_name}' ends before it starts; "
                f"clamping end to start"
            )
            end = start

        return BookingEvent(
            uid=uid,
            title=title,
            start=start,
            end=end,
            source_id=source_id,
            source_name=source_name,
            is_all_day=is_all_day,
            color_tag=color_tag,
            local_id=uid or self.id_factory()
        )


def to_utc(value: Union[date, datetime]) -> datetime:
    """
    Normalize an iCalendar date or date-time to an aware UTC datetime.

    Whole-day dates map to midnight UTC; floating date-times are read
    as UTC.

    Args:
        value: date or datetime decoded from a feed

    Returns:
        Timezone-aware datetime in UTC
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    return datetime.combine(value, time.min, tzinfo=timezone.utc)
