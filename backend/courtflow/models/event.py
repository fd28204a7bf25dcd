from datetime import date, datetime, time
from typing import TYPE_CHECKING, List, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtflow.models.court import Court, CourtGroup
    from courtflow.models.division import Division
    from courtflow.models.encounter import Encounter
    from courtflow.models.time_block import TimeBlock


class Event(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    event_date: date
    # Bounds of the scheduling grid shown to operators (same-day)
    grid_start_time: time = Field(default=time(8, 0))
    grid_end_time: time = Field(default=time(18, 0))
    created_at: datetime = Field(default_factory=datetime.utcnow)

    # Relationships
    divisions: List["Division"] = Relationship(back_populates="event")
    courts: List["Court"] = Relationship(back_populates="event")
    court_groups: List["CourtGroup"] = Relationship(back_populates="event")
    time_blocks: List["TimeBlock"] = Relationship(back_populates="event")
    encounters: List["Encounter"] = Relationship(back_populates="event")
