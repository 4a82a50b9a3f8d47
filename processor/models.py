"""Data models for feed merging."""
import uuid
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from pathlib import PurePath
from typing import List, Optional, Union

from processor.errors import ValidationError

DEFAULT_TITLE = "Booking"

# Separator for fallback identity keys; not expected inside titles
KEY_SEPARATOR = "\x1f"


class SourceKind(Enum):
    """Channel a source belongs to, used for labels and colors only."""
    AIRBNB = "airbnb"
    BOOKING = "booking"
    OTHER = "other"

    @classmethod
    def from_value(cls, value: Union[str, "SourceKind", None]) -> "SourceKind":
        """Resolve a kind, falling back to OTHER for anything unknown."""
        if isinstance(value, cls):
            return value
        try:
            return cls((value or "").strip().lower())
        except ValueError:
            return cls.OTHER

    @property
    def label(self) -> str:
        return _KIND_LABELS[self]

    @property
    def color_tag(self) -> str:
        return _KIND_COLORS[self]


_KIND_LABELS = {
    SourceKind.AIRBNB: "Airbnb",
    SourceKind.BOOKING: "Booking.com",
    SourceKind.OTHER: "Other",
}

_KIND_COLORS = {
    SourceKind.AIRBNB: "bg-rose-500",
    SourceKind.BOOKING: "bg-blue-500",
    SourceKind.OTHER: "bg-emerald-500",
}


@dataclass(frozen=True)
class Source:
    """Configured origin of bookings."""
    id: str
    display_name: str
    kind: SourceKind = SourceKind.OTHER
    locator: Optional[str] = None

    @classmethod
    def create(
        cls,
        display_name: str,
        kind: Union[str, SourceKind, None] = None,
        locator: Optional[str] = None
    ) -> "Source":
        """Create a source with a freshly generated id."""
        return cls(
            id=uuid.uuid4().hex,
            display_name=display_name,
            kind=SourceKind.from_value(kind),
            locator=locator
        )

    @classmethod
    def for_upload(
        cls,
        filename: str,
        kind: Union[str, SourceKind, None] = None
    ) -> "Source":
        """
        Create the source for a one-off uploaded file.

        Args:
            filename: Name of the uploaded file (e.g. "beach-house.ics")
            kind: Assumed channel of the upload

        Returns:
            Source without a locator, named after the file
        """
        name = PurePath(filename).name
        if name.lower().endswith(".ics"):
            name = name[:-4]
        return cls.create(f"{name} (upload)", kind=kind)

    @property
    def label(self) -> str:
        return self.kind.label

    @property
    def color_tag(self) -> str:
        return self.kind.color_tag


@dataclass
class RawEventFields:
    """Optional fields read from one event block before defaults apply."""
    uid: Optional[str] = None
    summary: Optional[str] = None
    start: Optional[Union[date, datetime]] = None
    end: Optional[Union[date, datetime]] = None
    duration: Optional[timedelta] = None


@dataclass(frozen=True)
class BookingEvent:
    """Normalized booking; start and end are UTC-aware datetimes."""
    uid: Optional[str]
    title: str
    start: datetime
    end: datetime
    source_id: str
    source_name: str
    is_all_day: bool = False
    color_tag: Optional[str] = None
    local_id: Optional[str] = None

    def __post_init__(self):
        if self.end < self.start:
            raise ValidationError(
                f"Event '{self.title}' ends before it starts "
                f"({self.end.isoformat()} < {self.start.isoformat()})"
            )

    @property
    def fallback_key(self) -> str:
        """Identity used when the feed supplied no uid."""
        return KEY_SEPARATOR.join(
            [self.title, self.start.isoformat(), self.end.isoformat()]
        )

    @property
    def duration(self) -> timedelta:
        return self.end - self.start


@dataclass(frozen=True)
class ConflictPair:
    """Two overlapping events, earlier start first."""
    earlier: BookingEvent
    later: BookingEvent

    @property
    def overlap_start(self) -> datetime:
        return self.later.start

    @property
    def overlap_end(self) -> datetime:
        return min(self.earlier.end, self.later.end)

    def involves_sources(self) -> List[str]:
        """Display names of the sources on each side of the pair."""
        return [self.earlier.source_name, self.later.source_name]


@dataclass(frozen=True)
class SourceFailure:
    """A source that contributed no events to a merge."""
    source_id: str
    source_name: str
    error_type: str
    message: str

    def describe(self) -> str:
        return f"{self.source_name}: {self.message}"


@dataclass
class MergeResult:
    """Deduplicated, sorted events plus per-source failures."""
    events: List[BookingEvent] = field(default_factory=list)
    failures: List[SourceFailure] = field(default_factory=list)

    @property
    def has_failures(self) -> bool:
        return len(self.failures) > 0
