"""
Encounter generation: expands a division phase into persisted encounters.

The bracket resolver supplies the skeleton; this module binds seeds to
units (when an ordered unit list is given), derives durations from the
division/phase configuration and writes Encounter rows.
"""

import logging
from typing import List, Optional, Sequence, Tuple

from sqlmodel import Session, select

from courtflow.models.division import Division, DivisionPhase
from courtflow.models.encounter import Encounter, EncounterStatus
from courtflow.services.bracket_resolver import (
    BracketResolution,
    bind_units,
    resolve_bracket,
)
from courtflow.services.phase_graph import AwardType, Phase, PhaseType, SeedingStrategy
from courtflow.utils.durations import duration_for

logger = logging.getLogger(__name__)


class EncounterGenerationError(Exception):
    """Phase encounters cannot be (re)generated"""

    pass


def phase_from_row(row: DivisionPhase) -> Phase:
    return Phase(
        phase_id=row.template_phase_key or str(row.id),
        name=row.name,
        phase_type=PhaseType(row.phase_type),
        sort_order=row.sort_order,
        incoming_slot_count=row.incoming_slot_count,
        advancing_slot_count=row.advancing_slot_count,
        pool_count=row.pool_count,
        best_of=row.best_of,
        match_duration_minutes=row.match_duration_minutes,
        seeding_strategy=SeedingStrategy(row.seeding_strategy),
        include_consolation=row.include_consolation,
        award_type=AwardType(row.award_type) if row.award_type else None,
    )


def generate_phase_encounters(
    session: Session,
    division_id: int,
    phase_id: int,
    unit_ids: Optional[Sequence[int]] = None,
    unit_count: Optional[int] = None,
    playoff_units_per_pool: Optional[int] = None,
) -> Tuple[BracketResolution, List[Encounter]]:
    """
    Resolve a phase and persist its encounter skeleton.

    Unscheduled encounters previously generated for the phase are replaced.
    Refuses when any of them is already on the grid or has started.
    """
    division = session.get(Division, division_id)
    row = session.get(DivisionPhase, phase_id)
    if not division or not row or row.division_id != division_id:
        raise EncounterGenerationError(f"Phase {phase_id} not found in division {division_id}")

    phase = phase_from_row(row)
    count = len(unit_ids) if unit_ids else (unit_count or phase.incoming_slot_count)
    resolution = resolve_bracket(phase, count, playoff_units_per_pool=playoff_units_per_pool)
    skeleton = bind_units(resolution, unit_ids) if unit_ids else resolution.skeleton

    previous = session.exec(select(Encounter).where(Encounter.phase_id == phase_id)).all()
    locked = [e for e in previous if e.scheduling_status == "Scheduled" or e.status in EncounterStatus.FROZEN]
    if locked:
        raise EncounterGenerationError(
            f"Phase {phase_id} has {len(locked)} scheduled or started encounter(s); clear the schedule first"
        )
    for old in previous:
        session.delete(old)
    session.flush()

    duration = duration_for(division, row)
    encounters = []
    for item in skeleton:
        encounter = Encounter(
            event_id=division.event_id,
            division_id=division_id,
            phase_id=phase_id,
            round_number=item.round_number,
            encounter_number=item.encounter_number,
            bracket=item.bracket,
            pool_index=item.pool_index,
            label=f"{row.name} {item.round_name} #{item.encounter_number}".strip(),
            unit1_id=item.unit1_id,
            unit2_id=item.unit2_id,
            unit1_seed=item.seed1,
            unit2_seed=item.seed2,
            is_bye=item.is_bye,
            is_conditional=item.is_conditional,
            duration_minutes=duration,
        )
        session.add(encounter)
        encounters.append(encounter)
    session.commit()
    for encounter in encounters:
        session.refresh(encounter)

    logger.info(
        "Generated %d encounters for division %s phase %s (%s, %d units)",
        len(encounters),
        division_id,
        phase_id,
        phase.phase_type.value,
        count,
    )
    return resolution, encounters
