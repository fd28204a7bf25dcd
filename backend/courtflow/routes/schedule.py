from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session

from courtflow.database import get_session
from courtflow.models.division import Division
from courtflow.services.allocation_engine import AllocationInProgressError, AllocationValidationError
from courtflow.services.grid_repository import GridNotFoundError, GridRepository
from courtflow.services.grid_snapshot import TimeBlockSpec
from courtflow.services.scheduling_service import (
    assign_single_encounter,
    auto_allocate,
    available_courts,
    clear_schedule,
    detect_conflicts_for_event,
    load_grid,
    move_encounter,
)
from courtflow.utils.datetimes import naive_utc

router = APIRouter()


# ============================================================================
# Request models
# ============================================================================


class TimeBlockIn(BaseModel):
    division_id: int
    phase_id: Optional[int] = None
    court_ids: List[int] = []
    court_group_id: Optional[int] = None
    start_time: datetime
    end_time: datetime

    @field_validator("start_time", "end_time")
    @classmethod
    def to_naive_utc(cls, v):
        return naive_utc(v)

    @model_validator(mode="after")
    def validate_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be greater than start_time")
        return self


class AutoAllocateRequest(BaseModel):
    # None = use the event's persisted time blocks
    blocks: Optional[List[TimeBlockIn]] = None
    clear_existing: bool = False
    respect_player_overlap: bool = True


class MoveRequest(BaseModel):
    court_id: Optional[int] = None
    start_time: Optional[datetime] = None

    @field_validator("start_time")
    @classmethod
    def to_naive_utc(cls, v):
        return naive_utc(v)


# ============================================================================
# Grid
# ============================================================================


@router.get("/events/{event_id}/schedule/grid")
def get_schedule_grid(event_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Courts, encounters (scheduled or not) and time blocks of an event"""
    try:
        snapshot = load_grid(session, event_id)
    except GridNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")

    grid_start, grid_end = snapshot.grid_window
    encounters = [
        {
            "encounter_id": e.encounter_id,
            "division_id": e.division_id,
            "phase_id": e.phase_id,
            "round_number": e.round_number,
            "label": e.display_name,
            "unit1_id": e.unit1_id,
            "unit2_id": e.unit2_id,
            "duration_minutes": e.duration_minutes,
            "court_id": e.court_id,
            "start_time": e.start_time.isoformat() if e.start_time else None,
            "end_time": e.end_time.isoformat() if e.end_time else None,
            "status": e.status,
            "is_bye": e.is_bye,
            "scheduling_status": "Scheduled" if e.is_scheduled else "Unscheduled",
        }
        for e in snapshot.encounters
    ]
    return {
        "event_id": event_id,
        "grid_start": grid_start.isoformat(),
        "grid_end": grid_end.isoformat(),
        "courts": [
            {"court_id": c.court_id, "label": c.label, "sort_order": c.sort_order, "is_active": c.is_active}
            for c in snapshot.courts
        ],
        "encounters": encounters,
        "blocks": [
            {
                "block_id": b.block_id,
                "division_id": b.division_id,
                "phase_id": b.phase_id,
                "court_ids": b.court_ids,
                "start_time": b.start_time.isoformat(),
                "end_time": b.end_time.isoformat(),
            }
            for b in snapshot.blocks
        ],
        "unscheduled_count": sum(1 for e in snapshot.encounters if not e.is_scheduled and not e.is_bye),
    }


# ============================================================================
# Auto-allocation (hard constraints)
# ============================================================================


@router.post("/events/{event_id}/schedule/auto-allocate")
def auto_allocate_event(
    event_id: int,
    request: Optional[AutoAllocateRequest] = None,
    session: Session = Depends(get_session),
):
    """Place unscheduled encounters at their earliest conflict-free court/time"""
    request = request or AutoAllocateRequest()
    repo = GridRepository(session)

    blocks = None
    try:
        if request.blocks is not None:
            blocks = [
                TimeBlockSpec(
                    division_id=b.division_id,
                    phase_id=b.phase_id,
                    court_ids=repo.expand_court_ids(b.court_ids, b.court_group_id),
                    start_time=b.start_time,
                    end_time=b.end_time,
                )
                for b in request.blocks
            ]
        result = auto_allocate(
            session,
            event_id,
            blocks=blocks,
            clear_existing=request.clear_existing,
            respect_player_overlap=request.respect_player_overlap,
        )
    except GridNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except AllocationInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AllocationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return result.to_dict()


@router.post("/encounters/{encounter_id}/assign-single")
def assign_single(encounter_id: int, session: Session = Depends(get_session)):
    """Place one encounter at its earliest feasible slot"""
    try:
        result = assign_single_encounter(session, encounter_id)
    except GridNotFoundError:
        raise HTTPException(status_code=404, detail="Encounter not found")
    except AllocationInProgressError as e:
        raise HTTPException(status_code=409, detail=str(e))
    except AllocationValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    body = result.to_dict()
    body["ok"] = bool(result.assigned)
    if result.assigned:
        body["message"] = "Encounter assigned"
    else:
        body["message"] = result.skipped[0].reason if result.skipped else "Encounter not assigned"
    return body


# ============================================================================
# Conflicts / manual moves (soft constraints)
# ============================================================================


@router.get("/events/{event_id}/schedule/conflicts")
def get_schedule_conflicts(event_id: int, session: Session = Depends(get_session)):
    """Court and player overlaps among the event's scheduled encounters"""
    try:
        conflicts = detect_conflicts_for_event(session, event_id)
    except GridNotFoundError:
        raise HTTPException(status_code=404, detail="Event not found")

    return {
        "event_id": event_id,
        "total": len(conflicts),
        "conflicts": [c.to_dict() for c in conflicts],
    }


@router.post("/encounters/{encounter_id}/move")
def move(encounter_id: int, request: MoveRequest, session: Session = Depends(get_session)):
    """
    Move (or unschedule) an encounter.

    Overlaps do not block the move; they are reported with has_conflicts.
    """
    result = move_encounter(session, encounter_id, request.court_id, request.start_time)
    if result.not_found:
        raise HTTPException(status_code=404, detail=result.message)
    if not result.ok:
        raise HTTPException(status_code=400, detail=result.message)
    return result.to_dict()


# ============================================================================
# Division helpers
# ============================================================================


@router.post("/divisions/{division_id}/schedule/clear")
def clear_division_schedule(
    division_id: int,
    phase_id: Optional[int] = Query(default=None),
    session: Session = Depends(get_session),
):
    """Unschedule a division's (or phase's) encounters; in-progress and completed ones stay"""
    if not session.get(Division, division_id):
        raise HTTPException(status_code=404, detail="Division not found")

    cleared = clear_schedule(session, division_id, phase_id)
    return {"division_id": division_id, "phase_id": phase_id, "cleared": cleared}


@router.get("/divisions/{division_id}/available-courts")
def get_available_courts(
    division_id: int,
    phase_id: Optional[int] = Query(default=None),
    session: Session = Depends(get_session),
):
    """Courts a division (phase) may be scheduled on"""
    try:
        courts = available_courts(session, division_id, phase_id)
    except GridNotFoundError:
        raise HTTPException(status_code=404, detail="Division not found")

    return [{"court_id": c.id, "label": c.label, "sort_order": c.sort_order} for c in courts]
