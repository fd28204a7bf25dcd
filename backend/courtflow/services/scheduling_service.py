"""
Scheduling Service - applies the allocation engine and conflict detector
to a persisted event.

Every operation reads a fresh GridSnapshot through GridRepository, runs the
pure engine code, and writes the resulting assignments back in one commit.

Concurrency:
- One allocation run per event at a time (process-local lock registry).
  A second run for the same event fails fast with AllocationInProgressError
  instead of computing against a snapshot that is about to go stale.
- Manual moves are not serialised; each reads its own snapshot right
  before applying.
"""

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence

from sqlmodel import Session, select

from courtflow.models.court import Court
from courtflow.models.division import Division
from courtflow.models.encounter import Encounter, EncounterStatus
from courtflow.services.allocation_engine import (
    AllocationEngine,
    AllocationInProgressError,
    AllocationResult,
    AllocationValidationError,
    PlacementStrategy,
)
from courtflow.services.conflict_detector import (
    ScheduleConflict,
    conflict_message,
    detect_conflicts,
    evaluate_move,
)
from courtflow.services.grid_repository import GridNotFoundError, GridRepository
from courtflow.services.grid_snapshot import GridSnapshot, TimeBlockSpec
from courtflow.utils.datetimes import naive_utc

logger = logging.getLogger(__name__)

_registry_guard = threading.Lock()
_event_locks: Dict[int, threading.Lock] = {}


@contextmanager
def event_allocation_lock(event_id: int) -> Iterator[None]:
    with _registry_guard:
        lock = _event_locks.setdefault(event_id, threading.Lock())
    if not lock.acquire(blocking=False):
        raise AllocationInProgressError(f"An allocation run is already in progress for event {event_id}")
    try:
        yield
    finally:
        lock.release()


@dataclass
class MoveResult:
    ok: bool
    has_conflicts: bool = False
    message: str = ""
    conflicts: List[ScheduleConflict] = field(default_factory=list)
    encounter: Optional[Encounter] = None
    not_found: bool = False

    def to_dict(self) -> Dict[str, Any]:
        enc = self.encounter
        return {
            "ok": self.ok,
            "has_conflicts": self.has_conflicts,
            "message": self.message,
            "conflicts": [c.to_dict() for c in self.conflicts],
            "encounter_id": enc.id if enc else None,
            "court_id": enc.court_id if enc else None,
            "start_time": enc.start_time.isoformat() if enc and enc.start_time else None,
            "end_time": enc.end_time.isoformat() if enc and enc.end_time else None,
            "scheduling_status": enc.scheduling_status if enc else None,
        }


# ----------------------------------------------------------------------------
# Auto-allocation (hard constraints)
# ----------------------------------------------------------------------------


def _persist(repo: GridRepository, result: AllocationResult) -> None:
    assigned_ids = {e.encounter_id for e in result.assigned}
    for encounter_id in result.cleared:
        if encounter_id not in assigned_ids:
            repo.save_assignment(encounter_id, None, None)
    repo.save_slots(result.assigned)
    repo.session.commit()


def auto_allocate(
    session: Session,
    event_id: int,
    blocks: Optional[Sequence[TimeBlockSpec]] = None,
    clear_existing: bool = False,
    respect_player_overlap: bool = True,
    strategy: Optional[PlacementStrategy] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> AllocationResult:
    """
    Allocate the event's unscheduled encounters.

    ``blocks`` defaults to the event's persisted time blocks. Partial results
    of a cancelled run are persisted as-is.
    """
    repo = GridRepository(session)
    with event_allocation_lock(event_id):
        snapshot = repo.load_grid(event_id)
        block_specs = list(blocks) if blocks is not None else snapshot.blocks
        result = AllocationEngine(strategy).allocate(
            snapshot.encounters,
            block_specs,
            snapshot.courts,
            clear_existing,
            changeover_by_division=snapshot.changeover_by_division,
            phase_order=snapshot.phase_order,
            respect_player_overlap=respect_player_overlap,
            should_cancel=should_cancel,
        )
        _persist(repo, result)

    summary = result.summary
    logger.info(
        "Auto-allocated event %s: %d assigned, %d skipped, %d cleared%s",
        event_id,
        summary.total_assigned,
        summary.total_skipped,
        summary.total_cleared,
        " (cancelled)" if summary.cancelled else "",
    )
    return result


def assign_single_encounter(session: Session, encounter_id: int) -> AllocationResult:
    """
    Place one encounter at its earliest feasible slot.

    Uses the division's persisted blocks; without any, the event's grid
    window on the division's available courts.
    """
    encounter = session.get(Encounter, encounter_id)
    if not encounter:
        raise GridNotFoundError(f"Encounter {encounter_id} not found")
    if encounter.is_bye or encounter.status in EncounterStatus.FROZEN:
        raise AllocationValidationError(f"Encounter {encounter_id} cannot be auto-assigned (status {encounter.status})")

    repo = GridRepository(session)
    with event_allocation_lock(encounter.event_id):
        snapshot = repo.load_grid(encounter.event_id)
        target = snapshot.encounter(encounter_id)
        target.clear()

        blocks = [b for b in snapshot.blocks if b.applies_to(target.division_id, target.phase_id)]
        if not blocks:
            start, end = snapshot.grid_window
            court_ids = [c.id for c in available_courts(session, target.division_id, target.phase_id)]
            blocks = [
                TimeBlockSpec(
                    division_id=target.division_id,
                    phase_id=target.phase_id,
                    court_ids=court_ids,
                    start_time=start,
                    end_time=end,
                )
            ]

        # Only the target is unscheduled; everything else is fixed occupancy
        candidates = [e for e in snapshot.encounters if e.is_scheduled or e.encounter_id == encounter_id]
        result = AllocationEngine().allocate(
            candidates,
            blocks,
            snapshot.courts,
            changeover_by_division=snapshot.changeover_by_division,
            phase_order=snapshot.phase_order,
        )
        if result.assigned:
            repo.save_slots(result.assigned)
        else:
            repo.save_assignment(encounter_id, None, None)
        session.commit()

    logger.info("Assign-single encounter %s: %s", encounter_id, "assigned" if result.assigned else "skipped")
    return result


# ----------------------------------------------------------------------------
# Manual move (soft constraints)
# ----------------------------------------------------------------------------


def move_encounter(
    session: Session,
    encounter_id: int,
    court_id: Optional[int],
    start_time: Optional[datetime],
) -> MoveResult:
    """
    Move an encounter to a court/time, or unschedule it (no court, no time).

    The move is applied even when it overlaps other bookings; the overlaps
    come back as conflicts with has_conflicts=True.
    """
    encounter = session.get(Encounter, encounter_id)
    if not encounter:
        return MoveResult(ok=False, message=f"Encounter {encounter_id} not found", not_found=True)
    start_time = naive_utc(start_time)

    repo = GridRepository(session)
    snapshot = repo.load_grid(encounter.event_id)
    moved = snapshot.encounter(encounter_id)

    if court_id is None and start_time is None:
        row = repo.save_assignment(encounter_id, None, None)
        session.commit()
        session.refresh(row)
        return MoveResult(ok=True, message="Encounter unscheduled", encounter=row)

    if court_id is None or start_time is None:
        return MoveResult(ok=False, message="Both court_id and start_time are required to schedule an encounter")

    if snapshot.court(court_id) is None:
        return MoveResult(ok=False, message=f"Court {court_id} not found for this event", not_found=True)

    moved.place(court_id, start_time)
    conflicts = evaluate_move(snapshot.courts, snapshot.encounters, moved)

    row = repo.save_assignment(encounter_id, moved.court_id, moved.start_time, moved.end_time)
    session.commit()
    session.refresh(row)

    if conflicts:
        logger.warning("Encounter %s moved with %d conflict(s)", encounter_id, len(conflicts))
    return MoveResult(
        ok=True,
        has_conflicts=bool(conflicts),
        message=conflict_message(conflicts),
        conflicts=conflicts,
        encounter=row,
    )


# ----------------------------------------------------------------------------
# Read-side operations
# ----------------------------------------------------------------------------


def detect_conflicts_for_event(session: Session, event_id: int) -> List[ScheduleConflict]:
    snapshot = GridRepository(session).load_grid(event_id)
    return detect_conflicts(snapshot.courts, snapshot.encounters)


def load_grid(session: Session, event_id: int) -> GridSnapshot:
    return GridRepository(session).load_grid(event_id)


def clear_schedule(session: Session, division_id: int, phase_id: Optional[int] = None) -> int:
    """Clear court/time of a division's (or one phase's) encounters; started or finished ones are kept."""
    query = select(Encounter).where(Encounter.division_id == division_id, Encounter.court_id != None)  # noqa: E711
    if phase_id is not None:
        query = query.where(Encounter.phase_id == phase_id)

    repo = GridRepository(session)
    cleared = 0
    for encounter in session.exec(query).all():
        if encounter.status in (EncounterStatus.COMPLETED, EncounterStatus.IN_PROGRESS):
            continue
        repo.save_assignment(encounter.id, None, None)
        cleared += 1
    session.commit()
    logger.info("Cleared %d assignment(s) for division %s phase %s", cleared, division_id, phase_id)
    return cleared


def available_courts(session: Session, division_id: int, phase_id: Optional[int] = None) -> List[Court]:
    """
    Courts a division (phase) may use: the union of its applicable blocks'
    courts. No blocks, or a block open to any court, means all active courts.
    """
    division = session.get(Division, division_id)
    if not division:
        raise GridNotFoundError(f"Division {division_id} not found")

    repo = GridRepository(session)
    courts = [c for c in repo.courts(division.event_id) if c.is_active]
    blocks = [repo.block_spec(b) for b in repo.time_blocks(division.event_id, division_id)]
    blocks = [b for b in blocks if b.applies_to(division_id, phase_id) or phase_id is None]

    if not blocks or any(not b.court_ids for b in blocks):
        return courts
    allowed = {court_id for b in blocks for court_id in b.court_ids}
    return [c for c in courts if c.id in allowed]
