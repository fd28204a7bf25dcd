"""
GridRepository - the persistence boundary of the scheduling engine.

Builds in-memory GridSnapshots from the database and writes court/time
assignments and templates back. Court groups are expanded into explicit
court id lists here, so the engine only ever sees court ids.
"""

from datetime import datetime, timedelta
from typing import Iterable, List, Optional

from sqlmodel import Session, select

from courtflow.models.court import Court, CourtGroup, CourtGroupCourt
from courtflow.models.division import Division, DivisionPhase
from courtflow.models.encounter import Encounter
from courtflow.models.event import Event
from courtflow.models.template import TournamentTemplate
from courtflow.models.time_block import TimeBlock
from courtflow.services.grid_snapshot import CourtSlot, EncounterSlot, GridSnapshot, TimeBlockSpec


class GridNotFoundError(LookupError):
    """Event (or another grid entity) does not exist"""

    pass


def encounter_to_slot(encounter: Encounter) -> EncounterSlot:
    return EncounterSlot(
        encounter_id=encounter.id,
        division_id=encounter.division_id,
        phase_id=encounter.phase_id,
        duration_minutes=encounter.duration_minutes,
        round_number=encounter.round_number,
        unit1_id=encounter.unit1_id,
        unit2_id=encounter.unit2_id,
        court_id=encounter.court_id,
        start_time=encounter.start_time,
        end_time=encounter.end_time,
        status=encounter.status,
        is_bye=encounter.is_bye,
        label=encounter.label,
    )


class GridRepository:
    def __init__(self, session: Session):
        self.session = session

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get_event(self, event_id: int) -> Event:
        event = self.session.get(Event, event_id)
        if not event:
            raise GridNotFoundError(f"Event {event_id} not found")
        return event

    def courts(self, event_id: int) -> List[Court]:
        return self.session.exec(
            select(Court).where(Court.event_id == event_id).order_by(Court.sort_order, Court.id)
        ).all()

    def group_court_ids(self, court_group_id: int) -> List[int]:
        links = self.session.exec(
            select(CourtGroupCourt).where(CourtGroupCourt.court_group_id == court_group_id)
        ).all()
        return sorted(link.court_id for link in links)

    def expand_court_ids(self, court_ids: Iterable[int], court_group_id: Optional[int]) -> List[int]:
        """Explicit court ids plus the members of the court group (if any)."""
        expanded = set(court_ids or [])
        if court_group_id is not None:
            group = self.session.get(CourtGroup, court_group_id)
            if not group:
                raise GridNotFoundError(f"Court group {court_group_id} not found")
            expanded.update(self.group_court_ids(court_group_id))
        return sorted(expanded)

    def time_blocks(self, event_id: int, division_id: Optional[int] = None) -> List[TimeBlock]:
        query = select(TimeBlock).where(TimeBlock.event_id == event_id, TimeBlock.is_active == True)  # noqa: E712
        if division_id is not None:
            query = query.where(TimeBlock.division_id == division_id)
        return self.session.exec(query.order_by(TimeBlock.start_time, TimeBlock.id)).all()

    def block_spec(self, block: TimeBlock) -> TimeBlockSpec:
        return TimeBlockSpec(
            division_id=block.division_id,
            phase_id=block.phase_id,
            court_ids=self.expand_court_ids(block.court_ids, block.court_group_id),
            start_time=block.start_time,
            end_time=block.end_time,
            block_id=block.id,
        )

    def load_grid(self, event_id: int) -> GridSnapshot:
        """Fresh snapshot of courts, encounters and blocks for an event."""
        event = self.get_event(event_id)

        divisions = self.session.exec(select(Division).where(Division.event_id == event_id)).all()
        division_ids = [d.id for d in divisions]
        phases: List[DivisionPhase] = []
        if division_ids:
            phases = self.session.exec(
                select(DivisionPhase).where(DivisionPhase.division_id.in_(division_ids))
            ).all()

        encounters = self.session.exec(
            select(Encounter)
            .where(Encounter.event_id == event_id)
            .order_by(Encounter.division_id, Encounter.phase_id, Encounter.round_number, Encounter.encounter_number, Encounter.id)
        ).all()

        return GridSnapshot(
            event_id=event_id,
            event_date=event.event_date,
            grid_start_time=event.grid_start_time,
            grid_end_time=event.grid_end_time,
            courts=[
                CourtSlot(court_id=c.id, label=c.label, sort_order=c.sort_order, is_active=c.is_active)
                for c in self.courts(event_id)
            ],
            encounters=[encounter_to_slot(e) for e in encounters],
            blocks=[self.block_spec(b) for b in self.time_blocks(event_id)],
            divisions=division_ids,
            changeover_by_division={d.id: d.changeover_minutes for d in divisions},
            phase_order={p.id: p.sort_order for p in phases},
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def save_assignment(
        self,
        encounter_id: int,
        court_id: Optional[int],
        start_time: Optional[datetime],
        end_time: Optional[datetime] = None,
    ) -> Encounter:
        """Set or clear an encounter's court/time. The caller commits."""
        encounter = self.session.get(Encounter, encounter_id)
        if not encounter:
            raise GridNotFoundError(f"Encounter {encounter_id} not found")
        encounter.court_id = court_id
        encounter.start_time = start_time
        if start_time is None:
            encounter.end_time = None
        else:
            encounter.end_time = end_time or start_time + timedelta(minutes=encounter.duration_minutes)
        encounter.updated_at = datetime.utcnow()
        self.session.add(encounter)
        return encounter

    def save_slots(self, slots: Iterable[EncounterSlot]) -> int:
        count = 0
        for slot in slots:
            self.save_assignment(slot.encounter_id, slot.court_id, slot.start_time, slot.end_time)
            count += 1
        return count

    def load_template(self, template_id: int) -> TournamentTemplate:
        template = self.session.get(TournamentTemplate, template_id)
        if not template:
            raise GridNotFoundError(f"Template {template_id} not found")
        return template

    def save_template(self, template: TournamentTemplate) -> TournamentTemplate:
        template.updated_at = datetime.utcnow()
        self.session.add(template)
        self.session.commit()
        self.session.refresh(template)
        return template

