"""
Template persistence and activation.

Templates are stored as their wire document (camelCase JSON). Saving never
requires a valid template (drafts are allowed); activation does, and a
template with violations cannot be activated. Phase ids are assigned on
save so they stay stable across loads and structural edits.
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlmodel import Session, select

from courtflow.models.division import Division, DivisionPhase
from courtflow.models.encounter import Encounter
from courtflow.models.template import TournamentTemplate
from courtflow.services.advancement_rules import AdvancementPolicy, auto_generate_rules
from courtflow.services.grid_repository import GridNotFoundError, GridRepository
from courtflow.services.phase_graph import FlexibleTemplate, Phase, Template, new_phase_id
from courtflow.services.template_validator import TemplateValidationResult, parse_candidate, validate_template
from courtflow.utils.template_schema import dump_candidate, template_to_candidate

logger = logging.getLogger(__name__)


class TemplateError(Exception):
    """Base exception for template errors"""

    pass


class TemplateNotFoundError(TemplateError):
    pass


class TemplateActivationError(TemplateError):
    """Template has violations (or is not active when it must be)"""

    def __init__(self, message: str, validation: Optional[TemplateValidationResult] = None):
        super().__init__(message)
        self.validation = validation


def _load(session: Session, template_id: int) -> TournamentTemplate:
    try:
        return GridRepository(session).load_template(template_id)
    except GridNotFoundError as e:
        raise TemplateNotFoundError(str(e)) from e


def _normalise_document(document: Dict[str, Any]) -> Dict[str, Any]:
    """Give every phase a stable id; malformed documents are stored untouched."""
    candidate, _ = parse_candidate(document)
    if candidate is None:
        return document
    for phase in candidate.phases:
        if not phase.phase_id:
            phase.phase_id = new_phase_id()
    return dump_candidate(candidate)


def save_template(
    session: Session,
    name: str,
    document: Dict[str, Any],
    description: Optional[str] = None,
    template_id: Optional[int] = None,
) -> TournamentTemplate:
    """Create or replace a template. Updating an active template deactivates it."""
    if template_id is not None:
        template = _load(session, template_id)
    else:
        template = TournamentTemplate(name=name)

    structure = _normalise_document(document)
    template.name = name
    template.description = description
    template.structure_json = structure
    template.is_flexible = bool(structure.get("isFlexible", structure.get("is_flexible", False)))
    template.is_active = False
    template.activated_at = None
    return GridRepository(session).save_template(template)


def with_default_rules(
    document: Dict[str, Any],
    policy: Optional[AdvancementPolicy] = None,
) -> Tuple[Dict[str, Any], TemplateValidationResult]:
    """
    Replace a structured document's advancement rules with the generated defaults.

    Existing rules are discarded before validation, so only phase-level
    problems can block generation. Returns the new document and its
    validation result.
    """
    candidate, issues = parse_candidate(document)
    if candidate is None:
        raise TemplateActivationError("Template document is malformed", TemplateValidationResult(violations=issues))
    if candidate.is_flexible:
        raise TemplateError("Flexible templates have no advancement rules")

    stripped = candidate.model_copy(update={"advancement_rules": []})
    result = validate_template(stripped)
    if not result.ok:
        raise TemplateActivationError("Template phases have violations", result)

    template = result.template
    template.replace_rules(auto_generate_rules(template.phases, policy))
    regenerated = dump_candidate(template_to_candidate(template))
    return regenerated, validate_template(regenerated)


def load_template(session: Session, template_id: int) -> Tuple[TournamentTemplate, TemplateValidationResult]:
    template = _load(session, template_id)
    return template, validate_template(template.structure_json)


def activate_template(session: Session, template_id: int) -> Tuple[TournamentTemplate, TemplateValidationResult]:
    template, result = load_template(session, template_id)
    if not result.ok:
        logger.warning("Template %s activation blocked: %s", template_id, result.violation_codes())
        raise TemplateActivationError(f"Template {template_id} has {len(result.violations)} violation(s)", result)

    template.is_active = True
    template.activated_at = datetime.utcnow()
    template = GridRepository(session).save_template(template)
    logger.info("Template %s activated", template_id)
    return template, result


def active_domain_template(session: Session, template_id: int) -> Template:
    template, result = load_template(session, template_id)
    if not template.is_active:
        raise TemplateActivationError(f"Template {template_id} is not active")
    if not result.ok:
        raise TemplateActivationError(f"Template {template_id} no longer validates", result)
    return result.template


def _phase_rows(division_id: int, template: Template) -> List[DivisionPhase]:
    if isinstance(template, FlexibleTemplate):
        spec = template.generate_bracket
        phases = [
            Phase(
                phase_id="flexible",
                name=spec.type.value,
                phase_type=spec.type,
                sort_order=1,
                include_consolation=spec.consolation,
            )
        ]
    else:
        phases = template.phases

    return [
        DivisionPhase(
            division_id=division_id,
            template_phase_key=p.phase_id,
            name=p.name,
            phase_type=p.phase_type.value,
            sort_order=p.sort_order,
            incoming_slot_count=p.incoming_slot_count,
            advancing_slot_count=p.advancing_slot_count,
            pool_count=p.pool_count,
            best_of=p.best_of,
            match_duration_minutes=p.match_duration_minutes,
            seeding_strategy=p.seeding_strategy.value,
            include_consolation=p.include_consolation,
            award_type=p.award_type.value if p.award_type else None,
        )
        for p in phases
    ]


def apply_template_to_division(session: Session, division_id: int, template_id: int) -> List[DivisionPhase]:
    """Materialise an active template's phases for a division (replacing its current phases)."""
    division = session.get(Division, division_id)
    if not division:
        raise GridNotFoundError(f"Division {division_id} not found")

    domain = active_domain_template(session, template_id)

    existing = session.exec(select(Encounter).where(Encounter.division_id == division_id)).first()
    if existing:
        raise TemplateError(f"Division {division_id} already has encounters; delete them before applying a template")

    for old in session.exec(select(DivisionPhase).where(DivisionPhase.division_id == division_id)).all():
        session.delete(old)
    session.flush()

    rows = _phase_rows(division_id, domain)
    for row in rows:
        session.add(row)
    division.template_id = template_id
    session.add(division)
    session.commit()
    for row in rows:
        session.refresh(row)

    logger.info("Applied template %s to division %s (%d phases)", template_id, division_id, len(rows))
    return rows
