"""
Auto-Allocation Engine: greedy court/time placement of encounters.

Given encounters, time-block reservations and courts, assigns each
allocatable encounter a court and start time. Pure and deterministic: the
same inputs always produce the same schedule.

Algorithm:
1. Partition encounters by (division_id, phase_id). Partitions run in
   (phase sort order, division_id, phase_id) order.
2. A block applies to a partition when its division matches and its phase
   is null or matches. No applicable block: every encounter in the
   partition is skipped with "no time block".
3. Within a partition encounters are placed in (round_number, input
   position) order. This ordering decides which encounters are skipped
   when blocks are too small: later rounds lose out first.
4. Each encounter takes the earliest feasible (start, court) across all
   applicable blocks, ties broken by court id. Feasible means:
   - start >= block start and start + duration <= block end
   - no overlap with any encounter on that court, keeping the division's
     changeover gap on both sides
   - no overlap with any encounter sharing a participant unit, across every
     division in the run and pre-existing assignments
5. No feasible slot: skipped with "no feasible slot in block".

Greedy, not optimal: every assignment made is conflict-free, but the
number of skipped encounters and the makespan are not minimised.

Non-goals:
- Rest rules between a unit's encounters
- Court balancing
- Rolling back partially completed runs on cancellation
"""

import logging
from collections import OrderedDict
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional, Protocol, Sequence, Tuple

from courtflow.services.conflict_detector import ScheduleOccupancy
from courtflow.services.grid_snapshot import CourtSlot, EncounterSlot, TimeBlockSpec
from courtflow.utils.durations import DEFAULT_CHANGEOVER_MINUTES

logger = logging.getLogger(__name__)

SKIP_NO_TIME_BLOCK = "no time block"
SKIP_NO_FEASIBLE_SLOT = "no feasible slot in block"
SKIP_CANCELLED = "allocation cancelled"

PartitionKey = Tuple[int, Optional[int]]


class AllocationError(Exception):
    """Base exception for allocation errors"""

    pass


class AllocationValidationError(AllocationError):
    """Allocation inputs are unusable"""

    pass


class AllocationInProgressError(AllocationError):
    """Another allocation run holds the event"""

    pass


@dataclass
class BlockWindow:
    start: datetime
    end: datetime
    court_ids: List[int]


@dataclass
class SkippedEncounter:
    encounter_id: int
    division_id: int
    phase_id: Optional[int]
    reason: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "encounter_id": self.encounter_id,
            "division_id": self.division_id,
            "phase_id": self.phase_id,
            "reason": self.reason,
        }


@dataclass
class PartitionSummary:
    division_id: int
    phase_id: Optional[int]
    assigned: int = 0
    skipped: int = 0
    skip_reasons: Dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "division_id": self.division_id,
            "phase_id": self.phase_id,
            "assigned": self.assigned,
            "skipped": self.skipped,
            "skip_reasons": dict(self.skip_reasons),
        }


@dataclass
class AllocationSummary:
    total_assigned: int = 0
    total_skipped: int = 0
    total_cleared: int = 0
    cancelled: bool = False
    courts_used: List[int] = field(default_factory=list)
    estimated_end_time: Optional[datetime] = None
    partitions: List[PartitionSummary] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total_assigned": self.total_assigned,
            "total_skipped": self.total_skipped,
            "total_cleared": self.total_cleared,
            "cancelled": self.cancelled,
            "courts_used": self.courts_used,
            "estimated_end_time": self.estimated_end_time.isoformat() if self.estimated_end_time else None,
            "partitions": [p.to_dict() for p in self.partitions],
        }


@dataclass
class AllocationResult:
    assigned: List[EncounterSlot] = field(default_factory=list)
    skipped: List[SkippedEncounter] = field(default_factory=list)
    cleared: List[int] = field(default_factory=list)
    summary: AllocationSummary = field(default_factory=AllocationSummary)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "assigned": [
                {
                    "encounter_id": e.encounter_id,
                    "court_id": e.court_id,
                    "start_time": e.start_time.isoformat(),
                    "end_time": e.end_time.isoformat(),
                }
                for e in self.assigned
            ],
            "skipped": [s.to_dict() for s in self.skipped],
        }


# ----------------------------------------------------------------------------
# Placement strategies
# ----------------------------------------------------------------------------


class PlacementStrategy(Protocol):
    def next_slot(
        self,
        encounter: EncounterSlot,
        windows: Sequence[BlockWindow],
        occupancy: ScheduleOccupancy,
        gap_minutes: int,
        check_units: bool,
    ) -> Optional[Tuple[int, datetime]]:
        """Return (court_id, start_time) for the encounter, or None if it cannot be placed."""
        ...


class EarliestSlotStrategy:
    """
    Earliest feasible start across all eligible courts, ties by court id.

    The earliest feasible start on a court is always the window start or the
    end of a blocking booking (court booking end + gap, or unit booking end),
    so only those candidate times are examined.
    """

    def next_slot(
        self,
        encounter: EncounterSlot,
        windows: Sequence[BlockWindow],
        occupancy: ScheduleOccupancy,
        gap_minutes: int,
        check_units: bool,
    ) -> Optional[Tuple[int, datetime]]:
        duration = timedelta(minutes=encounter.duration_minutes)
        gap = timedelta(minutes=gap_minutes)

        unit_ends = []
        if check_units:
            unit_ends = [b.end for unit in encounter.units for b in occupancy.unit_bookings(unit)]

        best: Optional[Tuple[datetime, int]] = None
        for window in windows:
            latest_start = window.end - duration
            if latest_start < window.start:
                continue
            for court_id in window.court_ids:
                candidates = {window.start}
                candidates.update(b.end + gap for b in occupancy.court_bookings(court_id))
                candidates.update(unit_ends)
                for t in sorted(c for c in candidates if window.start <= c <= latest_start):
                    if best is not None and (t, court_id) >= best:
                        break
                    if occupancy.is_free(court_id, encounter.units, t, t + duration, gap_minutes, check_units):
                        best = (t, court_id)
                        break

        if best is None:
            return None
        return best[1], best[0]


# ----------------------------------------------------------------------------
# Engine
# ----------------------------------------------------------------------------


def partition_sort_key(key: PartitionKey, phase_order: Dict[int, int]) -> Tuple:
    division_id, phase_id = key
    order = phase_order.get(phase_id, 0) if phase_id is not None else 0
    return (order, division_id, phase_id if phase_id is not None else -1)


def encounter_sort_key(item: Tuple[int, EncounterSlot]) -> Tuple:
    """Earlier rounds first; ties keep the input order."""
    position, enc = item
    return (enc.round_number, position)


class AllocationEngine:
    def __init__(self, strategy: Optional[PlacementStrategy] = None):
        self.strategy = strategy or EarliestSlotStrategy()

    def allocate(
        self,
        encounters: Sequence[EncounterSlot],
        blocks: Sequence[TimeBlockSpec],
        courts: Sequence[CourtSlot],
        clear_existing: bool = False,
        changeover_by_division: Optional[Dict[int, int]] = None,
        phase_order: Optional[Dict[int, int]] = None,
        respect_player_overlap: bool = True,
        should_cancel: Optional[Callable[[], bool]] = None,
    ) -> AllocationResult:
        """
        Place unscheduled encounters into the given blocks.

        Input encounters are not mutated; placed copies are returned in
        ``result.assigned``. With ``clear_existing`` the assignments of
        allocatable encounters covered by a block are dropped first
        (reported in ``result.cleared``) so re-runs are idempotent.
        Encounters that are in progress, completed, cancelled or byes are
        never moved; their assignments stay as fixed occupancy.
        """
        changeover_by_division = changeover_by_division or {}
        phase_order = phase_order or {}
        result = AllocationResult()

        active_courts = sorted(c.court_id for c in courts if c.is_active)
        known_courts = set(active_courts)
        for block in blocks:
            if block.end_time <= block.start_time:
                raise AllocationValidationError(
                    f"Time block for division {block.division_id} ends before it starts"
                )

        work = [replace(e) for e in encounters]

        if clear_existing:
            for enc in work:
                if enc.is_allocatable and enc.is_scheduled and self._has_block(enc, blocks):
                    enc.clear()
                    result.cleared.append(enc.encounter_id)

        occupancy = ScheduleOccupancy(e for e in work if e.is_scheduled)

        partitions: "OrderedDict[PartitionKey, List[Tuple[int, EncounterSlot]]]" = OrderedDict()
        for position, enc in enumerate(work):
            if enc.is_allocatable and not enc.is_scheduled:
                partitions.setdefault((enc.division_id, enc.phase_id), []).append((position, enc))

        ordered_keys = sorted(partitions, key=lambda k: partition_sort_key(k, phase_order))
        for index, key in enumerate(ordered_keys):
            division_id, phase_id = key
            members = sorted(partitions[key], key=encounter_sort_key)
            part = PartitionSummary(division_id=division_id, phase_id=phase_id)
            result.summary.partitions.append(part)

            if should_cancel is not None and should_cancel():
                result.summary.cancelled = True
                logger.warning("Allocation cancelled before partition %s (%d remaining)", key, len(ordered_keys) - index)
                for remaining in ordered_keys[index:]:
                    if remaining != key:
                        part = PartitionSummary(division_id=remaining[0], phase_id=remaining[1])
                        result.summary.partitions.append(part)
                    self._skip_all(partitions[remaining], SKIP_CANCELLED, part, result)
                break

            windows = self._windows_for(division_id, phase_id, blocks, active_courts, known_courts)
            if not windows:
                self._skip_all(members, SKIP_NO_TIME_BLOCK, part, result)
                logger.warning("No time block for division %s phase %s", division_id, phase_id)
                continue

            gap = changeover_by_division.get(division_id, DEFAULT_CHANGEOVER_MINUTES)
            for _, enc in members:
                slot = self.strategy.next_slot(enc, windows, occupancy, gap, respect_player_overlap)
                if slot is None:
                    self._skip(enc, SKIP_NO_FEASIBLE_SLOT, part, result)
                    continue
                court_id, start = slot
                enc.place(court_id, start)
                occupancy.add(enc)
                result.assigned.append(enc)
                part.assigned += 1
                logger.debug("Placed encounter %s on court %s at %s", enc.encounter_id, court_id, start)

        summary = result.summary
        summary.total_assigned = len(result.assigned)
        summary.total_skipped = len(result.skipped)
        summary.total_cleared = len(result.cleared)
        summary.courts_used = sorted({e.court_id for e in result.assigned})
        summary.estimated_end_time = max((e.end_time for e in result.assigned), default=None)
        return result

    @staticmethod
    def _has_block(enc: EncounterSlot, blocks: Sequence[TimeBlockSpec]) -> bool:
        return any(b.applies_to(enc.division_id, enc.phase_id) for b in blocks)

    @staticmethod
    def _windows_for(
        division_id: int,
        phase_id: Optional[int],
        blocks: Sequence[TimeBlockSpec],
        active_courts: List[int],
        known_courts: set,
    ) -> List[BlockWindow]:
        windows = []
        for block in blocks:
            if not block.applies_to(division_id, phase_id):
                continue
            if block.court_ids:
                court_ids = sorted({c for c in block.court_ids if c in known_courts})
            else:
                court_ids = list(active_courts)
            windows.append(BlockWindow(start=block.start_time, end=block.end_time, court_ids=court_ids))
        return windows

    @staticmethod
    def _skip(enc: EncounterSlot, reason: str, part: PartitionSummary, result: AllocationResult) -> None:
        result.skipped.append(SkippedEncounter(enc.encounter_id, enc.division_id, enc.phase_id, reason))
        part.skipped += 1
        part.skip_reasons[reason] = part.skip_reasons.get(reason, 0) + 1

    def _skip_all(self, members, reason: str, part: PartitionSummary, result: AllocationResult) -> None:
        for _, enc in members:
            self._skip(enc, reason, part, result)


def allocate(
    encounters: Sequence[EncounterSlot],
    blocks: Sequence[TimeBlockSpec],
    courts: Sequence[CourtSlot],
    clear_existing: bool = False,
    **options,
) -> AllocationResult:
    """Allocate with the default greedy strategy."""
    return AllocationEngine().allocate(encounters, blocks, courts, clear_existing, **options)
