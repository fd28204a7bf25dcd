from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, field_validator, model_validator
from sqlmodel import Session, select

from courtflow.database import get_session
from courtflow.models.template import TournamentTemplate
from courtflow.services.advancement_rules import AdvancementPolicy, RemainderPolicy, SlotOrder
from courtflow.services.bracket_resolver import BracketResolutionError, bind_units, resolve_bracket, resolve_flexible
from courtflow.services.phase_graph import FLEXIBLE_BRACKET_TYPES, GenerateBracketSpec, PhaseType
from courtflow.services.template_service import (
    TemplateActivationError,
    TemplateError,
    TemplateNotFoundError,
    activate_template,
    load_template,
    save_template,
    with_default_rules,
)
from courtflow.services.template_validator import TemplateValidationResult, build_phase, validate_phase, validate_template
from courtflow.utils.template_schema import GenerateBracketCandidate, PhaseCandidate

router = APIRouter()


def _violations_detail(message: str, validation: Optional[TemplateValidationResult]) -> Dict[str, Any]:
    detail: Dict[str, Any] = {"message": message}
    if validation is not None:
        detail["violations"] = [v.to_dict() for v in validation.violations]
        detail["warnings"] = [w.to_dict() for w in validation.warnings]
    return detail


# ============================================================================
# Validation / rule generation (stateless)
# ============================================================================


class AutoRulesRequest(BaseModel):
    template: Dict[str, Any]
    slot_order: SlotOrder = SlotOrder.BY_POOL
    remainder: RemainderPolicy = RemainderPolicy.DROP


@router.post("/templates/validate")
def validate_template_document(document: Dict[str, Any]):
    """Validate a candidate template; always 200, problems are in the body"""
    return validate_template(document).to_dict()


@router.post("/templates/auto-generate-rules")
def auto_generate_template_rules(request: AutoRulesRequest):
    """Replace a template's advancement rules with the default phase-to-phase wiring"""
    policy = AdvancementPolicy(slot_order=request.slot_order, remainder=request.remainder)
    try:
        document, validation = with_default_rules(request.template, policy)
    except TemplateActivationError as e:
        raise HTTPException(status_code=400, detail=_violations_detail(str(e), e.validation))
    except TemplateError as e:
        raise HTTPException(status_code=400, detail=str(e))

    return {
        "template": document,
        "advancement_rules": document.get("advancementRules", []),
        "validation": validation.to_dict(),
    }


# ============================================================================
# Persistence / activation
# ============================================================================


class TemplateSave(BaseModel):
    name: str
    description: Optional[str] = None
    structure: Dict[str, Any]

    @field_validator("name")
    @classmethod
    def validate_name(cls, v):
        if not v or not v.strip():
            raise ValueError("name cannot be empty")
        return v.strip()


class TemplateResponse(BaseModel):
    id: int
    name: str
    description: Optional[str]
    is_flexible: bool
    is_active: bool
    activated_at: Optional[datetime]
    structure: Dict[str, Any]
    validation: Dict[str, Any]


def _template_response(template: TournamentTemplate, validation: TemplateValidationResult) -> TemplateResponse:
    return TemplateResponse(
        id=template.id,
        name=template.name,
        description=template.description,
        is_flexible=template.is_flexible,
        is_active=template.is_active,
        activated_at=template.activated_at,
        structure=template.structure_json,
        validation=validation.to_dict(),
    )


@router.post("/templates", response_model=TemplateResponse, status_code=201)
def create_template(data: TemplateSave, session: Session = Depends(get_session)):
    """Save a template draft (saving does not require it to be valid)"""
    template = save_template(session, data.name, data.structure, description=data.description)
    return _template_response(template, validate_template(template.structure_json))


@router.get("/templates", response_model=List[TemplateResponse])
def list_templates(session: Session = Depends(get_session)):
    templates = session.exec(select(TournamentTemplate).order_by(TournamentTemplate.id)).all()
    return [_template_response(t, validate_template(t.structure_json)) for t in templates]


@router.get("/templates/{template_id}", response_model=TemplateResponse)
def get_template(template_id: int, session: Session = Depends(get_session)):
    try:
        template, validation = load_template(session, template_id)
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    return _template_response(template, validation)


@router.put("/templates/{template_id}", response_model=TemplateResponse)
def update_template(template_id: int, data: TemplateSave, session: Session = Depends(get_session)):
    """Replace a template's document; an active template goes back to draft"""
    try:
        template = save_template(
            session, data.name, data.structure, description=data.description, template_id=template_id
        )
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    return _template_response(template, validate_template(template.structure_json))


@router.post("/templates/{template_id}/activate", response_model=TemplateResponse)
def activate(template_id: int, session: Session = Depends(get_session)):
    """Activate a template; blocked (400) while it has violations"""
    try:
        template, validation = activate_template(session, template_id)
    except TemplateNotFoundError:
        raise HTTPException(status_code=404, detail="Template not found")
    except TemplateActivationError as e:
        raise HTTPException(status_code=400, detail=_violations_detail(str(e), e.validation))
    return _template_response(template, validation)


# ============================================================================
# Bracket preview
# ============================================================================


class BracketResolveRequest(BaseModel):
    phase: Optional[PhaseCandidate] = None
    generate_bracket: Optional[GenerateBracketCandidate] = None
    unit_count: Optional[int] = None
    unit_ids: Optional[List[int]] = None
    playoff_units_per_pool: Optional[int] = None
    materialize_byes: bool = True

    @model_validator(mode="after")
    def validate_source(self):
        if (self.phase is None) == (self.generate_bracket is None):
            raise ValueError("Provide exactly one of phase or generate_bracket")
        if self.unit_count is None and not self.unit_ids:
            raise ValueError("Provide unit_count or unit_ids")
        if self.unit_ids and self.unit_count is not None and self.unit_count != len(self.unit_ids):
            raise ValueError("unit_count must match the number of unit_ids")
        return self


@router.post("/brackets/resolve")
def resolve_bracket_preview(request: BracketResolveRequest):
    """Resolve bracket size, byes, rounds and the encounter skeleton for a unit count"""
    unit_count = request.unit_count if request.unit_count is not None else len(request.unit_ids)

    try:
        if request.generate_bracket is not None:
            spec = request.generate_bracket
            try:
                bracket_type = PhaseType(spec.type)
            except ValueError:
                bracket_type = None
            if bracket_type not in FLEXIBLE_BRACKET_TYPES:
                raise HTTPException(status_code=400, detail=f"Unsupported generate_bracket type '{spec.type}'")
            resolution = resolve_flexible(
                GenerateBracketSpec(
                    type=bracket_type,
                    consolation=spec.consolation,
                    calculate_byes=spec.calculate_byes,
                ),
                unit_count,
            )
        else:
            validation = validate_phase(request.phase)
            if not validation.ok:
                raise HTTPException(status_code=400, detail=_violations_detail("Phase has violations", validation))
            resolution = resolve_bracket(
                build_phase(request.phase),
                unit_count,
                playoff_units_per_pool=request.playoff_units_per_pool,
                materialize_byes=request.materialize_byes,
            )

        body = resolution.to_dict()
        if request.unit_ids:
            body["skeleton"] = [e.to_dict() for e in bind_units(resolution, request.unit_ids)]
    except BracketResolutionError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return body
