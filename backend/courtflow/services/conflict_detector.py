"""
Conflict Detector & Move Validator.

ScheduleOccupancy is the single conflict-checking primitive. Two entry
points use it with different strictness:

- Auto-allocation (allocation_engine) treats any court or participant
  overlap as a hard constraint and never places an encounter into one.
- Manual moves (evaluate_move) apply the move regardless and report the
  overlaps as soft conflicts for the operator to resolve.

Overlap test for half-open intervals [s1, e1) and [s2, e2):
    s1 < e2 and s2 < e1
A court gap (changeover) widens the occupied interval on both sides.
"""

from collections import defaultdict
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from courtflow.services.grid_snapshot import CourtSlot, EncounterSlot

COURT_OVERLAP = "CourtOverlap"
PLAYER_OVERLAP = "PlayerOverlap"


@dataclass
class ScheduleConflict:
    conflict_type: str
    first_encounter_id: int
    second_encounter_id: int
    message: str
    court_id: Optional[int] = None
    unit_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "conflict_type": self.conflict_type,
            "encounter_ids": [self.first_encounter_id, self.second_encounter_id],
            "court_id": self.court_id,
            "unit_id": self.unit_id,
            "message": self.message,
        }


@dataclass(frozen=True)
class Booking:
    encounter_id: int
    start: datetime
    end: datetime


def _overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    return start1 < end2 and start2 < end1


class ScheduleOccupancy:
    """Court and participant bookings of a grid, indexed for overlap queries."""

    def __init__(self, encounters: Iterable[EncounterSlot] = ()):
        self._by_court: Dict[int, List[Booking]] = defaultdict(list)
        self._by_unit: Dict[int, List[Booking]] = defaultdict(list)
        for enc in encounters:
            self.add(enc)

    def add(self, enc: EncounterSlot) -> None:
        interval = enc.interval()
        if enc.court_id is None or interval is None:
            return
        booking = Booking(enc.encounter_id, interval[0], interval[1])
        self._by_court[enc.court_id].append(booking)
        for unit in enc.units:
            self._by_unit[unit].append(booking)

    def court_bookings(self, court_id: int) -> List[Booking]:
        return self._by_court.get(court_id, [])

    def unit_bookings(self, unit_id: int) -> List[Booking]:
        return self._by_unit.get(unit_id, [])

    def court_clashes(
        self,
        court_id: int,
        start: datetime,
        end: datetime,
        gap_minutes: int = 0,
        exclude_id: Optional[int] = None,
    ) -> List[Booking]:
        gap = timedelta(minutes=gap_minutes)
        return [
            b
            for b in self.court_bookings(court_id)
            if b.encounter_id != exclude_id and _overlaps(start, end + gap, b.start, b.end + gap)
        ]

    def unit_clashes(
        self,
        units: Sequence[int],
        start: datetime,
        end: datetime,
        exclude_id: Optional[int] = None,
    ) -> List[Tuple[int, Booking]]:
        return [
            (unit, b)
            for unit in units
            for b in self.unit_bookings(unit)
            if b.encounter_id != exclude_id and _overlaps(start, end, b.start, b.end)
        ]

    def is_free(
        self,
        court_id: int,
        units: Sequence[int],
        start: datetime,
        end: datetime,
        gap_minutes: int = 0,
        check_units: bool = True,
    ) -> bool:
        if self.court_clashes(court_id, start, end, gap_minutes):
            return False
        if check_units and self.unit_clashes(units, start, end):
            return False
        return True


# ----------------------------------------------------------------------------
# Detection (interval sweep)
# ----------------------------------------------------------------------------


def _court_label(courts_by_id: Dict[int, CourtSlot], court_id: int) -> str:
    court = courts_by_id.get(court_id)
    return court.label if court else str(court_id)


def _sweep(items: List[EncounterSlot]) -> List[Tuple[EncounterSlot, EncounterSlot]]:
    """
    Sort by start and compare each encounter against the latest-ending one
    seen so far. O(n log n); reports each overlapping neighbour once.
    """
    items = sorted(items, key=lambda e: (e.start_time, e.encounter_id))
    pairs: List[Tuple[EncounterSlot, EncounterSlot]] = []
    latest: Optional[EncounterSlot] = None
    for enc in items:
        if latest is not None and latest.interval()[1] > enc.start_time:
            pairs.append((latest, enc))
        if latest is None or enc.interval()[1] > latest.interval()[1]:
            latest = enc
    return pairs


def detect_conflicts(
    courts: Sequence[CourtSlot],
    encounters: Sequence[EncounterSlot],
    include_player_overlaps: bool = True,
) -> List[ScheduleConflict]:
    """Court double-bookings (and participant overlaps) in a grid."""
    courts_by_id = {c.court_id: c for c in courts}
    scheduled = [e for e in encounters if e.is_scheduled]

    by_court: Dict[int, List[EncounterSlot]] = defaultdict(list)
    for enc in scheduled:
        by_court[enc.court_id].append(enc)

    conflicts: List[ScheduleConflict] = []
    for court_id in sorted(by_court):
        label = _court_label(courts_by_id, court_id)
        for prev, nxt in _sweep(by_court[court_id]):
            conflicts.append(
                ScheduleConflict(
                    conflict_type=COURT_OVERLAP,
                    first_encounter_id=prev.encounter_id,
                    second_encounter_id=nxt.encounter_id,
                    court_id=court_id,
                    message=f'Court {label}: "{prev.display_name}" overlaps with "{nxt.display_name}"',
                )
            )

    if include_player_overlaps:
        by_unit: Dict[int, List[EncounterSlot]] = defaultdict(list)
        for enc in scheduled:
            for unit in enc.units:
                by_unit[unit].append(enc)
        for unit in sorted(by_unit):
            for prev, nxt in _sweep(by_unit[unit]):
                conflicts.append(
                    ScheduleConflict(
                        conflict_type=PLAYER_OVERLAP,
                        first_encounter_id=prev.encounter_id,
                        second_encounter_id=nxt.encounter_id,
                        unit_id=unit,
                        message=f'Unit {unit}: "{prev.display_name}" overlaps with "{nxt.display_name}"',
                    )
                )
    return conflicts


# ----------------------------------------------------------------------------
# Manual move (soft)
# ----------------------------------------------------------------------------


def evaluate_move(
    courts: Sequence[CourtSlot],
    encounters: Sequence[EncounterSlot],
    moved: EncounterSlot,
) -> List[ScheduleConflict]:
    """
    Conflicts the moved encounter (already carrying its new court/time) has
    with the rest of the grid. Other pre-existing conflicts are not reported.
    """
    interval = moved.interval()
    if moved.court_id is None or interval is None:
        return []
    start, end = interval

    others = [e for e in encounters if e.encounter_id != moved.encounter_id]
    by_id = {e.encounter_id: e for e in others}
    occupancy = ScheduleOccupancy(others)
    label = _court_label({c.court_id: c for c in courts}, moved.court_id)

    conflicts: List[ScheduleConflict] = []
    for booking in sorted(occupancy.court_clashes(moved.court_id, start, end), key=lambda b: (b.start, b.encounter_id)):
        other = by_id[booking.encounter_id]
        conflicts.append(
            ScheduleConflict(
                conflict_type=COURT_OVERLAP,
                first_encounter_id=moved.encounter_id,
                second_encounter_id=other.encounter_id,
                court_id=moved.court_id,
                message=f'Court {label}: "{moved.display_name}" overlaps with "{other.display_name}"',
            )
        )
    for unit, booking in occupancy.unit_clashes(moved.units, start, end):
        other = by_id[booking.encounter_id]
        conflicts.append(
            ScheduleConflict(
                conflict_type=PLAYER_OVERLAP,
                first_encounter_id=moved.encounter_id,
                second_encounter_id=other.encounter_id,
                unit_id=unit,
                message=f'Unit {unit}: "{moved.display_name}" overlaps with "{other.display_name}"',
            )
        )
    return conflicts


def conflict_message(conflicts: List[ScheduleConflict]) -> str:
    if not conflicts:
        return "Encounter moved"
    return "Moved with conflicts: " + "; ".join(c.message for c in conflicts)
