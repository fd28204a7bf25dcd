from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlmodel import Field, Relationship, SQLModel

if TYPE_CHECKING:
    from courtflow.models.event import Event


class EncounterStatus:
    """Match-progression status values (owned by upstream match logic)."""

    SCHEDULED = "Scheduled"
    READY = "Ready"
    IN_PROGRESS = "InProgress"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"

    ALL = (SCHEDULED, READY, IN_PROGRESS, COMPLETED, CANCELLED)
    # Encounters in these states keep their court/time during allocation
    FROZEN = (IN_PROGRESS, COMPLETED, CANCELLED)


class Encounter(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    event_id: int = Field(foreign_key="event.id")
    division_id: int = Field(foreign_key="division.id")
    phase_id: Optional[int] = Field(default=None, foreign_key="divisionphase.id")

    # Skeleton position
    round_number: int = Field(default=1)
    encounter_number: int = Field(default=1)
    bracket: str = Field(default="Main")  # Main | Winners | Losers | GrandFinal | Pool | Playoff | ...
    pool_index: Optional[int] = Field(default=None)
    label: Optional[str] = Field(default=None)

    # Participants (external unit ids; null until the bracket resolves them)
    unit1_id: Optional[int] = Field(default=None)
    unit2_id: Optional[int] = Field(default=None)
    unit1_seed: Optional[int] = Field(default=None)
    unit2_seed: Optional[int] = Field(default=None)
    is_bye: bool = Field(default=False)
    is_conditional: bool = Field(default=False)

    duration_minutes: int = Field(default=25)

    # Court/time assignment (set only by allocation or a manual move)
    court_id: Optional[int] = Field(default=None, foreign_key="court.id")
    start_time: Optional[datetime] = Field(default=None)
    end_time: Optional[datetime] = Field(default=None)

    status: str = Field(default=EncounterStatus.SCHEDULED)
    created_at: datetime = Field(default_factory=datetime.utcnow)
    updated_at: Optional[datetime] = Field(default=None)

    event: "Event" = Relationship(back_populates="encounters")

    @property
    def scheduling_status(self) -> str:
        """Unscheduled/Scheduled, independent of the match-progression status."""
        return "Scheduled" if self.court_id is not None and self.start_time is not None else "Unscheduled"
