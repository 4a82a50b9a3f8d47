"""Identity resolution and deduplication of booking events."""
import logging
from typing import Iterable, List, Tuple

from processor.models import BookingEvent

logger = logging.getLogger(__name__)


class BookingDeduplicator:
    """Collapses events that describe the same real-world booking."""

    def dedupe(self, events: Iterable[BookingEvent]) -> List[BookingEvent]:
        """
        Drop every event whose identity was already seen.

        The first event observed for a key wins; later duplicates are
        discarded whole, attributes included. The result keeps the order
        of first occurrences, so running it twice changes nothing.

        Args:
            events: Full combined event sequence

        Returns:
            List of unique BookingEvent objects
        """
        seen = set()
        unique = []
        dropped = 0

        for event in events:
            key = self.dedupe_key(event)
            if key in seen:
                dropped += 1
                continue
            seen.add(key)
            unique.append(event)

        if dropped:
            logger.debug(f"Dropped {dropped} duplicate events, kept {len(unique)}")
        return unique

    @staticmethod
    def dedupe_key(event: BookingEvent) -> Tuple[str, str]:
        """
        Identity key for an event: its uid, else title + start + end.

        Args:
            event: BookingEvent to key

        Returns:
            Tuple tagged with the kind of key so uids and fallback keys
            never collide
        """
        if event.uid:
            return ('uid', event.uid)
        return ('fallback', event.fallback_key)
