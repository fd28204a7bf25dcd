"""
Wire format for tournament templates.

Clients (the template editor) send camelCase documents; snake_case keys are
accepted too. Rules on the wire address phases by ``sortOrder``; the domain
model (services.phase_graph) addresses them by stable phase id.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from courtflow.services.phase_graph import (
    AdvancementRule,
    AwardType,
    ExitPosition,
    FlexibleTemplate,
    Phase,
    StructuredTemplate,
    Template,
)


class CandidateModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PhaseCandidate(CandidateModel):
    phase_id: Optional[str] = None
    name: str = ""
    phase_type: str = "SingleElimination"
    sort_order: int = 0
    incoming_slot_count: int = 0
    advancing_slot_count: int = 0
    pool_count: int = 0
    best_of: int = 1
    match_duration_minutes: Optional[int] = None
    seeding_strategy: str = "Sequential"
    include_consolation: bool = False
    award_type: Optional[str] = None


class AdvancementRuleCandidate(CandidateModel):
    source_phase_order: int
    source_pool_index: Optional[int] = None
    finish_position: int
    target_phase_order: int
    target_slot_number: int


class ExitPositionCandidate(CandidateModel):
    rank: int
    label: str = ""
    award_type: Optional[str] = None


class GenerateBracketCandidate(CandidateModel):
    type: str
    consolation: bool = False
    calculate_byes: bool = True


class TemplateCandidate(CandidateModel):
    name: Optional[str] = None
    is_flexible: bool = False
    generate_bracket: Optional[GenerateBracketCandidate] = None
    phases: List[PhaseCandidate] = []
    advancement_rules: List[AdvancementRuleCandidate] = []
    exit_positions: List[ExitPositionCandidate] = []


def phase_to_candidate(phase: Phase) -> PhaseCandidate:
    return PhaseCandidate(
        phase_id=phase.phase_id,
        name=phase.name,
        phase_type=phase.phase_type.value,
        sort_order=phase.sort_order,
        incoming_slot_count=phase.incoming_slot_count,
        advancing_slot_count=phase.advancing_slot_count,
        pool_count=phase.pool_count,
        best_of=phase.best_of,
        match_duration_minutes=phase.match_duration_minutes,
        seeding_strategy=phase.seeding_strategy.value,
        include_consolation=phase.include_consolation,
        award_type=phase.award_type.value if phase.award_type else None,
    )


def _exit_to_candidate(exit_position: ExitPosition) -> ExitPositionCandidate:
    award = exit_position.award_type
    return ExitPositionCandidate(
        rank=exit_position.rank,
        label=exit_position.label,
        award_type=award.value if award and award != AwardType.NONE else None,
    )


def rules_to_candidates(template: StructuredTemplate, rules: List[AdvancementRule]) -> List[AdvancementRuleCandidate]:
    return [AdvancementRuleCandidate(**template.rule_view(r)) for r in rules]


def template_to_candidate(template: Template) -> TemplateCandidate:
    """Serialise a domain template back into its wire document."""
    exits = [_exit_to_candidate(e) for e in template.exit_positions]
    if isinstance(template, FlexibleTemplate):
        spec = template.generate_bracket
        return TemplateCandidate(
            name=template.name,
            is_flexible=True,
            generate_bracket=GenerateBracketCandidate(
                type=spec.type.value,
                consolation=spec.consolation,
                calculate_byes=spec.calculate_byes,
            ),
            exit_positions=exits,
        )
    return TemplateCandidate(
        name=template.name,
        is_flexible=False,
        phases=[phase_to_candidate(p) for p in template.phases],
        advancement_rules=rules_to_candidates(template, template.rules),
        exit_positions=exits,
    )


def dump_candidate(candidate: TemplateCandidate) -> Dict[str, Any]:
    """camelCase JSON document, as stored in TournamentTemplate.structure_json."""
    return candidate.model_dump(mode="json", by_alias=True)
