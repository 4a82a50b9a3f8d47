"""Unit tests for ConflictDetector."""
import itertools
import random
from datetime import datetime, timedelta, timezone

import pytest

from processor.conflict_detector import ConflictDetector
from processor.models import BookingEvent

BASE = datetime(2024, 6, 1, tzinfo=timezone.utc)


def booking(title, start, end, source='src-1'):
    """Create a BookingEvent from hour offsets relative to BASE."""
    return BookingEvent(
        uid=title,
        title=title,
        start=BASE + timedelta(hours=start),
        end=BASE + timedelta(hours=end),
        source_id=source,
        source_name=source
    )


def overlaps(a, b):
    return a.start < b.end and b.start < a.end


@pytest.fixture
def detector():
    return ConflictDetector()


class TestConflictDetector:
    """Test cases for ConflictDetector class."""

    def test_guest_scenario(self, detector):
        """Test the classic cross-channel double booking."""
        guest_a = BookingEvent(
            uid="a@airbnb.com",
            title="Guest A",
            start=datetime(2024, 6, 1, 14, 0, tzinfo=timezone.utc),
            end=datetime(2024, 6, 3, 10, 0, tzinfo=timezone.utc),
            source_id='airbnb',
            source_name='Airbnb'
        )
        guest_b = BookingEvent(
            uid="b@booking.com",
            title="Guest B",
            start=datetime(2024, 6, 2, 14, 0, tzinfo=timezone.utc),
            end=datetime(2024, 6, 5, 10, 0, tzinfo=timezone.utc),
            source_id='booking',
            source_name='Booking.com'
        )

        conflicts = detector.detect_conflicts([guest_b, guest_a])

        assert len(conflicts) == 1
        assert conflicts[0].earlier is guest_a
        assert conflicts[0].later is guest_b
        assert conflicts[0].overlap_start == guest_b.start
        assert conflicts[0].overlap_end == guest_a.end
        assert conflicts[0].involves_sources() == ['Airbnb', 'Booking.com']

    def test_back_to_back_not_conflict(self, detector):
        """Test that checkout at checkin time is not a conflict."""
        morning = booking("Morning", 9, 11)
        midday = booking("Midday", 11, 13)

        assert detector.detect_conflicts([morning, midday]) == []

    def test_contained_event_after_non_overlapping_neighbour(self, detector):
        """Test that the early exit is evaluated per event."""
        long_stay = booking("Long", 0, 100)
        short = booking("Short", 1, 2)
        later = booking("Later", 50, 60)

        conflicts = detector.detect_conflicts([long_stay, short, later])
        pairs = [(c.earlier.title, c.later.title) for c in conflicts]

        assert pairs == [("Long", "Short"), ("Long", "Later")]

    def test_same_source_overlap_reported(self, detector):
        """Test that overlap is purely temporal, not source-aware."""
        a = booking("A", 0, 10, source='same')
        b = booking("B", 5, 15, source='same')

        assert len(detector.detect_conflicts([a, b])) == 1

    def test_zero_duration_event(self, detector):
        """Test zero-duration events inside and at the edge of a stay."""
        stay = booking("Stay", 0, 10)
        inside = booking("Inside", 5, 5)
        at_start = booking("AtStart", 0, 0)

        conflicts = detector.detect_conflicts([stay, inside, at_start])
        pairs = [(c.earlier.title, c.later.title) for c in conflicts]

        assert pairs == [("Stay", "Inside")]

    def test_input_not_mutated(self, detector):
        """Test that the caller's sequence order is untouched."""
        events = [booking("B", 5, 15), booking("A", 0, 10)]

        detector.detect_conflicts(events)

        assert [e.title for e in events] == ["B", "A"]

    def test_matches_brute_force(self, detector):
        """Test completeness: every overlapping pair appears exactly once."""
        rng = random.Random(42)
        events = []
        for index in range(40):
            start = rng.randint(0, 200)
            events.append(booking(f"E{index}", start, start + rng.randint(0, 30)))

        conflicts = detector.detect_conflicts(events)
        reported = [frozenset((c.earlier.title, c.later.title)) for c in conflicts]
        expected = {
            frozenset((a.title, b.title))
            for a, b in itertools.combinations(events, 2)
            if overlaps(a, b)
        }

        assert len(reported) == len(set(reported))
        assert set(reported) == expected
        for conflict in conflicts:
            assert conflict.earlier.start <= conflict.later.start

    def test_empty_input(self, detector):
        """Test that no events produce no conflicts."""
        assert detector.detect_conflicts([]) == []
