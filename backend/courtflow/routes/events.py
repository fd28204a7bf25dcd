from datetime import date, datetime, time
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator, model_validator
from sqlmodel import Session, select

from courtflow.database import get_session
from courtflow.models.division import Division, DivisionPhase
from courtflow.models.encounter import Encounter
from courtflow.models.event import Event
from courtflow.services.bracket_resolver import BracketResolutionError
from courtflow.services.encounter_service import EncounterGenerationError, generate_phase_encounters
from courtflow.services.grid_repository import GridNotFoundError
from courtflow.services.phase_graph import ALLOWED_BEST_OF
from courtflow.services.template_service import (
    TemplateActivationError,
    TemplateError,
    TemplateNotFoundError,
    apply_template_to_division,
)

router = APIRouter()


# ============================================================================
# Events
# ============================================================================


class EventCreate(BaseModel):
    name: str
    event_date: date
    grid_start_time: time = time(8, 0)
    grid_end_time: time = time(18, 0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("grid_start_time", "grid_end_time")
    @classmethod
    def validate_wall_clock(cls, v):
        if v.tzinfo is not None:
            raise ValueError("grid times are wall-clock times without a UTC offset")
        return v

    @model_validator(mode="after")
    def validate_times(self):
        if self.grid_end_time <= self.grid_start_time:
            raise ValueError("grid_end_time must be greater than grid_start_time")
        return self


class EventResponse(BaseModel):
    id: int
    name: str
    event_date: date
    grid_start_time: time
    grid_end_time: time

    class Config:
        from_attributes = True


@router.post("/events", response_model=EventResponse, status_code=201)
def create_event(event_data: EventCreate, session: Session = Depends(get_session)):
    """Create an event (one scheduling grid)"""
    event = Event(**event_data.model_dump())
    session.add(event)
    session.commit()
    session.refresh(event)
    return event


@router.get("/events/{event_id}", response_model=EventResponse)
def get_event(event_id: int, session: Session = Depends(get_session)):
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


# ============================================================================
# Divisions
# ============================================================================


class DivisionCreate(BaseModel):
    name: str
    game_duration_minutes: int = Field(default=20, ge=1)
    games_per_match: int = 1
    matches_per_encounter: int = Field(default=1, ge=1)
    changeover_minutes: int = Field(default=2, ge=0)
    match_buffer_minutes: int = Field(default=5, ge=0)

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()

    @field_validator("games_per_match")
    @classmethod
    def validate_games_per_match(cls, v):
        if v not in ALLOWED_BEST_OF:
            raise ValueError(f"games_per_match must be one of {list(ALLOWED_BEST_OF)}")
        return v


class DivisionUpdate(BaseModel):
    name: Optional[str] = None
    game_duration_minutes: Optional[int] = Field(default=None, ge=1)
    games_per_match: Optional[int] = None
    matches_per_encounter: Optional[int] = Field(default=None, ge=1)
    changeover_minutes: Optional[int] = Field(default=None, ge=0)
    match_buffer_minutes: Optional[int] = Field(default=None, ge=0)

    @field_validator("games_per_match")
    @classmethod
    def validate_games_per_match(cls, v):
        if v is not None and v not in ALLOWED_BEST_OF:
            raise ValueError(f"games_per_match must be one of {list(ALLOWED_BEST_OF)}")
        return v


class DivisionResponse(BaseModel):
    id: int
    event_id: int
    name: str
    template_id: Optional[int] = None
    game_duration_minutes: int
    games_per_match: int
    matches_per_encounter: int
    changeover_minutes: int
    match_buffer_minutes: int

    class Config:
        from_attributes = True


class DivisionPhaseResponse(BaseModel):
    id: int
    division_id: int
    template_phase_key: Optional[str] = None
    name: str
    phase_type: str
    sort_order: int
    incoming_slot_count: int
    advancing_slot_count: int
    pool_count: int
    best_of: int
    match_duration_minutes: Optional[int] = None
    seeding_strategy: str
    include_consolation: bool
    award_type: Optional[str] = None

    class Config:
        from_attributes = True


@router.post("/events/{event_id}/divisions", response_model=DivisionResponse, status_code=201)
def create_division(event_id: int, division_data: DivisionCreate, session: Session = Depends(get_session)):
    """Create a division with its duration/changeover configuration"""
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")

    existing = session.exec(
        select(Division).where(Division.event_id == event_id, Division.name == division_data.name)
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Division '{division_data.name}' already exists")

    division = Division(event_id=event_id, **division_data.model_dump())
    session.add(division)
    session.commit()
    session.refresh(division)
    return division


@router.get("/events/{event_id}/divisions", response_model=List[DivisionResponse])
def list_divisions(event_id: int, session: Session = Depends(get_session)):
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return session.exec(select(Division).where(Division.event_id == event_id).order_by(Division.id)).all()


@router.put("/divisions/{division_id}", response_model=DivisionResponse)
def update_division(division_id: int, division_data: DivisionUpdate, session: Session = Depends(get_session)):
    """Update a division's configuration (affects encounters generated afterwards)"""
    division = session.get(Division, division_id)
    if not division:
        raise HTTPException(status_code=404, detail="Division not found")

    for field_name, value in division_data.model_dump(exclude_unset=True).items():
        setattr(division, field_name, value)
    session.add(division)
    session.commit()
    session.refresh(division)
    return division


@router.get("/divisions/{division_id}/phases", response_model=List[DivisionPhaseResponse])
def list_division_phases(division_id: int, session: Session = Depends(get_session)):
    division = session.get(Division, division_id)
    if not division:
        raise HTTPException(status_code=404, detail="Division not found")
    return session.exec(
        select(DivisionPhase).where(DivisionPhase.division_id == division_id).order_by(DivisionPhase.sort_order)
    ).all()


@router.post("/divisions/{division_id}/apply-template/{template_id}", response_model=List[DivisionPhaseResponse])
def apply_template(division_id: int, template_id: int, session: Session = Depends(get_session)):
    """Materialise an active template's phases for a division"""
    try:
        return apply_template_to_division(session, division_id, template_id)
    except (GridNotFoundError, TemplateNotFoundError) as e:
        raise HTTPException(status_code=404, detail=str(e))
    except TemplateActivationError as e:
        detail = {"message": str(e)}
        if e.validation is not None:
            detail["violations"] = [v.to_dict() for v in e.validation.violations]
        raise HTTPException(status_code=400, detail=detail)
    except TemplateError as e:
        raise HTTPException(status_code=409, detail=str(e))


# ============================================================================
# Encounters
# ============================================================================


class GenerateEncountersRequest(BaseModel):
    unit_ids: Optional[List[int]] = None
    unit_count: Optional[int] = None
    playoff_units_per_pool: Optional[int] = None

    @model_validator(mode="after")
    def validate_units(self):
        if self.unit_ids is not None and len(set(self.unit_ids)) != len(self.unit_ids):
            raise ValueError("unit_ids must be unique")
        return self


class EncounterResponse(BaseModel):
    id: int
    division_id: int
    phase_id: Optional[int] = None
    round_number: int
    encounter_number: int
    bracket: str
    pool_index: Optional[int] = None
    label: Optional[str] = None
    unit1_id: Optional[int] = None
    unit2_id: Optional[int] = None
    unit1_seed: Optional[int] = None
    unit2_seed: Optional[int] = None
    is_bye: bool
    is_conditional: bool
    duration_minutes: int
    court_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: str
    scheduling_status: str

    class Config:
        from_attributes = True


@router.post("/divisions/{division_id}/phases/{phase_id}/encounters/generate", status_code=201)
def generate_encounters(
    division_id: int,
    phase_id: int,
    request: GenerateEncountersRequest,
    session: Session = Depends(get_session),
):
    """Resolve a phase's bracket/pools and create its encounters"""
    try:
        resolution, encounters = generate_phase_encounters(
            session,
            division_id,
            phase_id,
            unit_ids=request.unit_ids,
            unit_count=request.unit_count,
            playoff_units_per_pool=request.playoff_units_per_pool,
        )
    except BracketResolutionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except EncounterGenerationError as e:
        status = 404 if "not found" in str(e) else 409
        raise HTTPException(status_code=status, detail=str(e))

    summary = resolution.to_dict()
    summary.pop("skeleton")
    return {
        "resolution": summary,
        "encounters": [EncounterResponse.model_validate(e).model_dump(mode="json") for e in encounters],
    }


@router.get("/divisions/{division_id}/encounters", response_model=List[EncounterResponse])
def list_division_encounters(
    division_id: int,
    phase_id: Optional[int] = None,
    session: Session = Depends(get_session),
):
    division = session.get(Division, division_id)
    if not division:
        raise HTTPException(status_code=404, detail="Division not found")

    query = select(Encounter).where(Encounter.division_id == division_id)
    if phase_id is not None:
        query = query.where(Encounter.phase_id == phase_id)
    return session.exec(query.order_by(Encounter.phase_id, Encounter.round_number, Encounter.encounter_number)).all()
