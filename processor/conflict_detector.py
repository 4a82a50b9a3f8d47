"""Detection of overlapping bookings."""
import logging
from typing import Iterable, List

from processor.models import BookingEvent, ConflictPair

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Finds pairs of events whose time ranges overlap."""

    def detect_conflicts(self, events: Iterable[BookingEvent]) -> List[ConflictPair]:
        """
        Report every pair of overlapping events, regardless of source.

        Events are swept in start order. For each event the forward scan
        stops at the first later event starting at or after its end;
        since the copy is start-sorted nothing beyond that point can
        overlap it. Back-to-back bookings do not conflict.

        Worst case is O(n^2) when every booking overlaps every other.

        Args:
            events: Deduplicated event sequence

        Returns:
            List of ConflictPair objects in scan order
        """
        ordered = sorted(events, key=lambda event: event.start)
        conflicts = []

        for i, current in enumerate(ordered):
            for candidate in ordered[i + 1:]:
                if candidate.start >= current.end:
                    break
                if current.start < candidate.end:
                    conflicts.append(ConflictPair(earlier=current, later=candidate))

        if conflicts:
            logger.info(f"Detected {len(conflicts)} overlapping booking pairs")
        return conflicts
