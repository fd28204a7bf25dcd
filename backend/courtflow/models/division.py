from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import UniqueConstraint as SAUniqueConstraint
from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtflow.models.event import Event


class Division(SQLModel, table=True):
    __table_args__ = (SAUniqueConstraint("event_id", "name", name="uq_event_division"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id")
    name: str
    template_id: Optional[int] = Field(default=None, foreign_key="tournamenttemplate.id")

    # Duration inputs (minutes)
    game_duration_minutes: int = Field(default=20)
    games_per_match: int = Field(default=1)
    matches_per_encounter: int = Field(default=1)
    changeover_minutes: int = Field(default=2)  # gap between consecutive encounters on one court
    match_buffer_minutes: int = Field(default=5)  # added to every encounter's duration

    # Relationships
    event: "Event" = Relationship(back_populates="divisions")
    phases: List["DivisionPhase"] = Relationship(back_populates="division")


class DivisionPhase(SQLModel, table=True):
    """A template phase materialised for one division."""

    __table_args__ = (SAUniqueConstraint("division_id", "sort_order", name="uq_division_phase_order"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    division_id: int = Field(foreign_key="division.id")
    template_phase_key: Optional[str] = Field(default=None)  # stable phase id inside the template
    name: str
    phase_type: str  # PhaseType value
    sort_order: int
    incoming_slot_count: int = Field(default=0)
    advancing_slot_count: int = Field(default=0)
    pool_count: int = Field(default=0)
    best_of: int = Field(default=1)
    match_duration_minutes: Optional[int] = Field(default=None)
    seeding_strategy: str = Field(default="Sequential")
    include_consolation: bool = Field(default=False)
    award_type: Optional[str] = Field(default=None)

    division: "Division" = Relationship(back_populates="phases")
