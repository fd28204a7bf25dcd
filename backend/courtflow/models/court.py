from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtflow.models.event import Event


class CourtGroupCourt(SQLModel, table=True):
    """Membership link between a court group and a court."""

    court_group_id: Optional[int] = Field(default=None, foreign_key="courtgroup.id", primary_key=True)
    court_id: Optional[int] = Field(default=None, foreign_key="court.id", primary_key=True)


class Court(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("event_id", "label", name="uq_event_court_label"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id")
    label: str
    sort_order: int = Field(default=0)
    is_active: bool = Field(default=True)

    event: "Event" = Relationship(back_populates="courts")
    groups: List["CourtGroup"] = Relationship(back_populates="courts", link_model=CourtGroupCourt)


class CourtGroup(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("event_id", "name", name="uq_event_court_group"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id")
    name: str

    event: "Event" = Relationship(back_populates="court_groups")
    courts: List["Court"] = Relationship(back_populates="groups", link_model=CourtGroupCourt)
