"""Overlap engine for detecting scheduling conflicts.

This module finds stored events whose intervals overlap a candidate event,
either one candidate at a time or for a whole batch (the occurrences of a
recurring series). All intervals are expected to be in the same canonical zone.

Intervals are half-open: ``a.start < b.end and b.start < a.end``. Detection is
a scan over the stored events; the batch form sorts both sides by start time
so it can stop early, but the worst case stays quadratic.
"""

import logging
from typing import Iterable, List, Tuple

from calendar_engine.core.models import Event

# Configure module logger
logger = logging.getLogger(__name__)


class ConflictDetector:
    """Finds overlapping intervals between candidate and stored events."""

    def find_conflicts(self, candidate: Event, existing: Iterable[Event]) -> List[Event]:
        """Find stored events that overlap a candidate.

        An event never conflicts with itself, so a stored event sharing the
        candidate's identifier is ignored.

        Args:
            candidate: The event being admitted or moved.
            existing: The events already stored.

        Returns:
            The overlapping stored events, sorted by start time.
        """
        conflicts = [
            event for event in existing
            if event.id != candidate.id and candidate.overlaps_with(event)
        ]
        if conflicts:
            logger.debug(
                f"'{candidate.subject}' ({candidate.start.isoformat()} to "
                f"{candidate.end.isoformat()}) overlaps {len(conflicts)} event(s)"
            )
        return sorted(conflicts, key=lambda event: event.start)

    def has_conflict(self, candidate: Event, existing: Iterable[Event]) -> bool:
        return any(
            event.id != candidate.id and candidate.overlaps_with(event)
            for event in existing
        )

    def find_batch_conflicts(
        self, candidates: List[Event], existing: Iterable[Event]
    ) -> List[Tuple[Event, Event]]:
        """Find every overlap involving a batch of candidates.

        Candidates are compared against the stored events and against each
        other, so a batch that would double-book itself is also reported.

        Args:
            candidates: Events to be admitted together.
            existing: The events already stored.

        Returns:
            Pairs of (candidate, conflicting event).
        """
        # Early optimization: an empty batch cannot conflict
        if not candidates:
            return []

        # Pre-sort so both loops can stop as soon as intervals move past each other
        candidates_sorted = sorted(candidates, key=lambda event: event.start)
        existing_sorted = sorted(existing, key=lambda event: event.start)

        earliest_start = candidates_sorted[0].start
        latest_end = max(event.end for event in candidates_sorted)

        conflicts = []
        for stored in existing_sorted:
            # Nothing later in the stored list can reach the batch
            if stored.start >= latest_end:
                break
            # Skip events that end before the batch begins
            if stored.end <= earliest_start:
                continue

            for candidate in candidates_sorted:
                if candidate.start >= stored.end:
                    break
                if candidate.id != stored.id and candidate.overlaps_with(stored):
                    conflicts.append((candidate, stored))

        for index, first in enumerate(candidates_sorted):
            for second in candidates_sorted[index + 1:]:
                if second.start >= first.end:
                    break
                conflicts.append((second, first))

        if conflicts:
            logger.info(f"Found {len(conflicts)} conflicting pair(s) in a batch of {len(candidates)}")
        return conflicts
