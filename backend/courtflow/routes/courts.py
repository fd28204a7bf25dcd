from datetime import datetime
from typing import List, Optional, Union

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session, select

from courtflow.database import get_session
from courtflow.models.court import Court, CourtGroup, CourtGroupCourt
from courtflow.models.division import Division, DivisionPhase
from courtflow.models.event import Event
from courtflow.models.time_block import TimeBlock
from courtflow.utils.courts import numbered_court_labels, parse_court_names
from courtflow.utils.datetimes import naive_utc

router = APIRouter()


# ============================================================================
# Courts
# ============================================================================


class CourtBulkCreate(BaseModel):
    court_names: Optional[Union[str, List[str]]] = None
    count: Optional[int] = None

    @model_validator(mode="after")
    def validate_source(self):
        if not parse_court_names(self.court_names) and not self.count:
            raise ValueError("Provide court_names or a positive count")
        if self.count is not None and self.count < 0:
            raise ValueError("count must be >= 0")
        return self


class CourtUpdate(BaseModel):
    label: Optional[str] = None
    sort_order: Optional[int] = None
    is_active: Optional[bool] = None


class CourtResponse(BaseModel):
    id: int
    event_id: int
    label: str
    sort_order: int
    is_active: bool

    class Config:
        from_attributes = True


def _event_or_404(session: Session, event_id: int) -> Event:
    event = session.get(Event, event_id)
    if not event:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@router.post("/events/{event_id}/courts/bulk", response_model=List[CourtResponse], status_code=201)
def create_courts_bulk(event_id: int, data: CourtBulkCreate, session: Session = Depends(get_session)):
    """Create courts from a label list ("1,5,6") or a count; existing labels are skipped"""
    _event_or_404(session, event_id)

    existing = session.exec(select(Court).where(Court.event_id == event_id)).all()
    existing_labels = {c.label for c in existing}
    next_order = max((c.sort_order for c in existing), default=0) + 1

    labels = parse_court_names(data.court_names)
    if not labels:
        labels = numbered_court_labels(data.count, existing_labels)

    created = []
    for label in labels:
        if label in existing_labels:
            continue
        court = Court(event_id=event_id, label=label, sort_order=next_order)
        next_order += 1
        session.add(court)
        created.append(court)

    session.commit()
    for court in created:
        session.refresh(court)
    return created


@router.get("/events/{event_id}/courts", response_model=List[CourtResponse])
def list_courts(event_id: int, session: Session = Depends(get_session)):
    _event_or_404(session, event_id)
    return session.exec(select(Court).where(Court.event_id == event_id).order_by(Court.sort_order, Court.id)).all()


@router.put("/courts/{court_id}", response_model=CourtResponse)
def update_court(court_id: int, data: CourtUpdate, session: Session = Depends(get_session)):
    """Rename, reorder or (de)activate a court"""
    court = session.get(Court, court_id)
    if not court:
        raise HTTPException(status_code=404, detail="Court not found")

    update_dict = data.model_dump(exclude_unset=True)
    new_label = update_dict.get("label")
    if new_label is not None:
        new_label = new_label.strip()
        if not new_label:
            raise HTTPException(status_code=400, detail="label cannot be empty")
        clash = session.exec(
            select(Court).where(Court.event_id == court.event_id, Court.label == new_label, Court.id != court_id)
        ).first()
        if clash:
            raise HTTPException(status_code=409, detail=f"Court '{new_label}' already exists")
        update_dict["label"] = new_label

    for field, value in update_dict.items():
        setattr(court, field, value)

    session.add(court)
    session.commit()
    session.refresh(court)
    return court


# ============================================================================
# Court groups
# ============================================================================


class CourtGroupCreate(BaseModel):
    name: str
    court_ids: List[int] = []

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()


class CourtGroupResponse(BaseModel):
    id: int
    event_id: int
    name: str
    court_ids: List[int]


def _group_response(session: Session, group: CourtGroup) -> CourtGroupResponse:
    links = session.exec(select(CourtGroupCourt).where(CourtGroupCourt.court_group_id == group.id)).all()
    return CourtGroupResponse(
        id=group.id,
        event_id=group.event_id,
        name=group.name,
        court_ids=sorted(link.court_id for link in links),
    )


def _check_event_courts(session: Session, event_id: int, court_ids: List[int]) -> None:
    if not court_ids:
        return
    found = session.exec(select(Court.id).where(Court.event_id == event_id, Court.id.in_(court_ids))).all()
    missing = sorted(set(court_ids) - set(found))
    if missing:
        raise HTTPException(status_code=400, detail=f"Courts not found for this event: {missing}")


@router.post("/events/{event_id}/court-groups", response_model=CourtGroupResponse, status_code=201)
def create_court_group(event_id: int, data: CourtGroupCreate, session: Session = Depends(get_session)):
    """Create a named set of courts that time blocks can reference"""
    _event_or_404(session, event_id)

    existing = session.exec(
        select(CourtGroup).where(CourtGroup.event_id == event_id, CourtGroup.name == data.name)
    ).first()
    if existing:
        raise HTTPException(status_code=409, detail=f"Court group '{data.name}' already exists")
    _check_event_courts(session, event_id, data.court_ids)

    group = CourtGroup(event_id=event_id, name=data.name)
    session.add(group)
    session.flush()
    for court_id in sorted(set(data.court_ids)):
        session.add(CourtGroupCourt(court_group_id=group.id, court_id=court_id))
    session.commit()
    session.refresh(group)
    return _group_response(session, group)


@router.get("/events/{event_id}/court-groups", response_model=List[CourtGroupResponse])
def list_court_groups(event_id: int, session: Session = Depends(get_session)):
    _event_or_404(session, event_id)
    groups = session.exec(select(CourtGroup).where(CourtGroup.event_id == event_id).order_by(CourtGroup.id)).all()
    return [_group_response(session, g) for g in groups]


# ============================================================================
# Time blocks
# ============================================================================


class TimeBlockCreate(BaseModel):
    division_id: int
    phase_id: Optional[int] = None
    court_ids: List[int] = []
    court_group_id: Optional[int] = None
    start_time: datetime
    end_time: datetime
    label: Optional[str] = None
    is_active: bool = True

    @field_validator("start_time", "end_time")
    @classmethod
    def to_naive_utc(cls, v):
        return naive_utc(v)

    @model_validator(mode="after")
    def validate_times(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be greater than start_time")
        return self


class TimeBlockResponse(BaseModel):
    id: int
    event_id: int
    division_id: int
    phase_id: Optional[int]
    court_group_id: Optional[int]
    court_ids: List[int]
    start_time: datetime
    end_time: datetime
    label: Optional[str]
    is_active: bool

    class Config:
        from_attributes = True


@router.get("/events/{event_id}/time-blocks", response_model=List[TimeBlockResponse])
def get_time_blocks(event_id: int, division_id: Optional[int] = None, session: Session = Depends(get_session)):
    """Get all time blocks for an event"""
    _event_or_404(session, event_id)

    query = select(TimeBlock).where(TimeBlock.event_id == event_id)
    if division_id is not None:
        query = query.where(TimeBlock.division_id == division_id)
    return session.exec(query.order_by(TimeBlock.start_time, TimeBlock.id)).all()


@router.post("/events/{event_id}/time-blocks", response_model=TimeBlockResponse, status_code=201)
def create_time_block(event_id: int, block_data: TimeBlockCreate, session: Session = Depends(get_session)):
    """Reserve courts for a division (or one of its phases) during a window"""
    _event_or_404(session, event_id)

    division = session.get(Division, block_data.division_id)
    if not division or division.event_id != event_id:
        raise HTTPException(status_code=404, detail="Division not found")
    if block_data.phase_id is not None:
        phase = session.get(DivisionPhase, block_data.phase_id)
        if not phase or phase.division_id != division.id:
            raise HTTPException(status_code=404, detail="Phase not found")
    if block_data.court_group_id is not None:
        group = session.get(CourtGroup, block_data.court_group_id)
        if not group or group.event_id != event_id:
            raise HTTPException(status_code=404, detail="Court group not found")
    _check_event_courts(session, event_id, block_data.court_ids)

    block = TimeBlock(event_id=event_id, **block_data.model_dump())
    session.add(block)
    session.commit()
    session.refresh(block)
    return block


@router.delete("/time-blocks/{block_id}")
def delete_time_block(block_id: int, session: Session = Depends(get_session)):
    """Delete a time block"""
    block = session.get(TimeBlock, block_id)
    if not block:
        raise HTTPException(status_code=404, detail="Time block not found")

    session.delete(block)
    session.commit()
    return {"message": "Time block deleted successfully"}
