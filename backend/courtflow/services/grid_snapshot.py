"""
In-memory snapshot of an event's scheduling grid.

The allocation engine and the conflict detector operate only on these
plain dataclasses; GridRepository builds them from the database and writes
assignments back.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from courtflow.models.encounter import EncounterStatus


@dataclass
class CourtSlot:
    court_id: int
    label: str
    sort_order: int = 0
    is_active: bool = True


@dataclass
class TimeBlockSpec:
    division_id: int
    start_time: datetime
    end_time: datetime
    phase_id: Optional[int] = None
    court_ids: List[int] = field(default_factory=list)  # empty = any active court
    block_id: Optional[int] = None

    def applies_to(self, division_id: int, phase_id: Optional[int]) -> bool:
        return self.division_id == division_id and (self.phase_id is None or self.phase_id == phase_id)


@dataclass
class EncounterSlot:
    encounter_id: int
    division_id: int
    phase_id: Optional[int]
    duration_minutes: int
    round_number: int = 1
    unit1_id: Optional[int] = None
    unit2_id: Optional[int] = None
    court_id: Optional[int] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    status: str = EncounterStatus.SCHEDULED
    is_bye: bool = False
    label: Optional[str] = None

    @property
    def units(self) -> Tuple[int, ...]:
        return tuple(u for u in (self.unit1_id, self.unit2_id) if u is not None)

    @property
    def is_scheduled(self) -> bool:
        return self.court_id is not None and self.start_time is not None

    @property
    def is_allocatable(self) -> bool:
        """Allocation may (re)place this encounter."""
        return not self.is_bye and self.status not in EncounterStatus.FROZEN

    @property
    def display_name(self) -> str:
        return self.label or f"Encounter {self.encounter_id}"

    def interval(self) -> Optional[Tuple[datetime, datetime]]:
        if self.start_time is None:
            return None
        end = self.end_time or self.start_time + timedelta(minutes=self.duration_minutes)
        return self.start_time, end

    def place(self, court_id: Optional[int], start_time: Optional[datetime]) -> None:
        self.court_id = court_id
        self.start_time = start_time
        self.end_time = start_time + timedelta(minutes=self.duration_minutes) if start_time else None

    def clear(self) -> None:
        self.place(None, None)


@dataclass
class GridSnapshot:
    event_id: int
    event_date: date
    grid_start_time: time
    grid_end_time: time
    courts: List[CourtSlot] = field(default_factory=list)
    encounters: List[EncounterSlot] = field(default_factory=list)
    blocks: List[TimeBlockSpec] = field(default_factory=list)
    divisions: List[int] = field(default_factory=list)
    changeover_by_division: Dict[int, int] = field(default_factory=dict)
    phase_order: Dict[int, int] = field(default_factory=dict)

    def encounter(self, encounter_id: int) -> Optional[EncounterSlot]:
        for e in self.encounters:
            if e.encounter_id == encounter_id:
                return e
        return None

    def court(self, court_id: int) -> Optional[CourtSlot]:
        for c in self.courts:
            if c.court_id == court_id:
                return c
        return None

    @property
    def grid_window(self) -> Tuple[datetime, datetime]:
        return (
            datetime.combine(self.event_date, self.grid_start_time),
            datetime.combine(self.event_date, self.grid_end_time),
        )
