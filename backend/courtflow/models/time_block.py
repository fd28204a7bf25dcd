from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON
from sqlmodel import Column, Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtflow.models.event import Event


class TimeBlock(SQLModel, table=True):
    """Reservation of courts for a division (optionally one phase) during a window."""

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id")
    division_id: int = Field(foreign_key="division.id")
    phase_id: Optional[int] = Field(default=None, foreign_key="divisionphase.id")  # null = any phase
    court_group_id: Optional[int] = Field(default=None, foreign_key="courtgroup.id")
    court_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))  # empty = any court
    start_time: datetime
    end_time: datetime
    label: Optional[str] = Field(default=None)
    is_active: bool = Field(default=True)

    event: "Event" = Relationship(back_populates="time_blocks")
