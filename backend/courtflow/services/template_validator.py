"""
Template Validator - structural checks that gate template activation.

Violations are fatal (activation is blocked until they are fixed); warnings
are informational. Nothing is silently corrected: the caller receives every
problem as a structured issue with a stable code and a path into the
candidate document.

Structured templates:
- at least one phase, sort orders 1..N without gaps or duplicates
- rules reference existing source/target phase orders
- source_pool_index only on multi-pool Pools sources, and < their pool count
- no two rules write the same (target phase, target slot)
- advancing_slot_count vs. outgoing rule count (warning only: downstream
  slots may legitimately receive byes)

Flexible templates: phases and rules are ignored; only the generator spec
(its type must be a supported bracket kind) and the exit positions are
checked.
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import ValidationError

from courtflow.services.phase_graph import (
    ALLOWED_BEST_OF,
    BRACKET_PHASE_TYPES,
    FLEXIBLE_BRACKET_TYPES,
    AdvancementRule,
    AwardType,
    ExitPosition,
    FlexibleTemplate,
    GenerateBracketSpec,
    Phase,
    PhaseType,
    SeedingStrategy,
    StructuredTemplate,
    Template,
    new_phase_id,
)
from courtflow.utils.template_schema import PhaseCandidate, TemplateCandidate

logger = logging.getLogger(__name__)


@dataclass
class TemplateIssue:
    code: str
    message: str
    path: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "path": self.path}


@dataclass
class TemplateValidationResult:
    violations: List[TemplateIssue] = field(default_factory=list)
    warnings: List[TemplateIssue] = field(default_factory=list)
    template: Optional[Template] = None

    @property
    def ok(self) -> bool:
        return not self.violations

    def violation_codes(self) -> List[str]:
        return [v.code for v in self.violations]

    def warning_codes(self) -> List[str]:
        return [w.code for w in self.warnings]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "violations": [v.to_dict() for v in self.violations],
            "warnings": [w.to_dict() for w in self.warnings],
        }


def _enum_value(enum_cls, raw: Optional[str]):
    if raw is None:
        return None
    try:
        return enum_cls(raw)
    except ValueError:
        return None


def _check_phase(phase: PhaseCandidate, path: str, result: TemplateValidationResult) -> None:
    phase_type = _enum_value(PhaseType, phase.phase_type)
    if phase_type is None:
        result.violations.append(
            TemplateIssue("PHASE_TYPE_UNKNOWN", f"Unknown phase type '{phase.phase_type}'", f"{path}.phaseType")
        )
    if _enum_value(SeedingStrategy, phase.seeding_strategy) is None:
        result.violations.append(
            TemplateIssue(
                "SEEDING_STRATEGY_UNKNOWN",
                f"Unknown seeding strategy '{phase.seeding_strategy}'",
                f"{path}.seedingStrategy",
            )
        )
    if phase.best_of not in ALLOWED_BEST_OF:
        result.violations.append(
            TemplateIssue("BEST_OF_INVALID", f"bestOf must be one of {list(ALLOWED_BEST_OF)}", f"{path}.bestOf")
        )
    if phase.incoming_slot_count < 0 or phase.advancing_slot_count < 0:
        result.violations.append(
            TemplateIssue("SLOT_COUNT_INVALID", "Slot counts must be >= 0", path)
        )
    if phase.match_duration_minutes is not None and phase.match_duration_minutes <= 0:
        result.violations.append(
            TemplateIssue(
                "MATCH_DURATION_INVALID", "matchDurationMinutes must be > 0", f"{path}.matchDurationMinutes"
            )
        )
    if phase_type == PhaseType.POOLS and phase.pool_count < 1:
        result.violations.append(
            TemplateIssue("POOL_COUNT_INVALID", "Pools phase needs poolCount >= 1", f"{path}.poolCount")
        )
    elif phase.pool_count < 0:
        result.violations.append(TemplateIssue("POOL_COUNT_INVALID", "poolCount must be >= 0", f"{path}.poolCount"))
    elif phase.incoming_slot_count and phase.pool_count > phase.incoming_slot_count:
        result.violations.append(
            TemplateIssue(
                "POOL_COUNT_INVALID",
                f"poolCount {phase.pool_count} exceeds incomingSlotCount {phase.incoming_slot_count}",
                f"{path}.poolCount",
            )
        )

    if phase.award_type is not None:
        if _enum_value(AwardType, phase.award_type) is None:
            result.violations.append(
                TemplateIssue("AWARD_TYPE_UNKNOWN", f"Unknown award type '{phase.award_type}'", f"{path}.awardType")
            )
        elif phase_type is not None and phase_type != PhaseType.AWARD:
            result.warnings.append(
                TemplateIssue("AWARD_TYPE_IGNORED", "awardType only applies to Award phases", f"{path}.awardType")
            )
    if phase.include_consolation and phase_type is not None and phase_type not in BRACKET_PHASE_TYPES:
        result.warnings.append(
            TemplateIssue(
                "CONSOLATION_IGNORED",
                "includeConsolation only applies to bracket phases",
                f"{path}.includeConsolation",
            )
        )


def _check_sort_orders(candidate: TemplateCandidate, result: TemplateValidationResult) -> None:
    orders = [p.sort_order for p in candidate.phases]
    counts = Counter(orders)
    for order, count in sorted(counts.items()):
        if count > 1:
            result.violations.append(
                TemplateIssue("SORT_ORDER_DUPLICATE", f"sortOrder {order} is used by {count} phases", "phases")
            )
    expected = set(range(1, len(orders) + 1))
    missing = sorted(expected - set(orders))
    unexpected = sorted(set(orders) - expected)
    if missing or unexpected:
        result.violations.append(
            TemplateIssue(
                "SORT_ORDER_GAP",
                f"sortOrder must be 1..{len(orders)} (missing {missing}, unexpected {unexpected})",
                "phases",
            )
        )


def _check_rules(candidate: TemplateCandidate, result: TemplateValidationResult) -> None:
    by_order: Dict[int, PhaseCandidate] = {}
    for p in candidate.phases:
        by_order.setdefault(p.sort_order, p)

    seen_slots: Dict[Tuple[int, int], int] = {}
    for index, rule in enumerate(candidate.advancement_rules):
        path = f"advancementRules[{index}]"
        source = by_order.get(rule.source_phase_order)
        target = by_order.get(rule.target_phase_order)

        if source is None:
            result.violations.append(
                TemplateIssue(
                    "RULE_UNKNOWN_SOURCE_PHASE",
                    f"sourcePhaseOrder {rule.source_phase_order} does not reference a phase",
                    f"{path}.sourcePhaseOrder",
                )
            )
        if target is None:
            result.violations.append(
                TemplateIssue(
                    "RULE_UNKNOWN_TARGET_PHASE",
                    f"targetPhaseOrder {rule.target_phase_order} does not reference a phase",
                    f"{path}.targetPhaseOrder",
                )
            )

        if rule.finish_position < 1:
            result.violations.append(
                TemplateIssue("RULE_FINISH_POSITION_INVALID", "finishPosition must be >= 1", f"{path}.finishPosition")
            )

        if source is not None:
            pool_groups = _candidate_pool_groups(source)
            if rule.source_pool_index is not None:
                if pool_groups <= 1:
                    result.violations.append(
                        TemplateIssue(
                            "RULE_POOL_INDEX_NOT_POOLED",
                            f"Phase {rule.source_phase_order} is not a multi-pool Pools phase; sourcePoolIndex must be null",
                            f"{path}.sourcePoolIndex",
                        )
                    )
                elif not 0 <= rule.source_pool_index < pool_groups:
                    result.violations.append(
                        TemplateIssue(
                            "RULE_POOL_INDEX_OUT_OF_RANGE",
                            f"sourcePoolIndex {rule.source_pool_index} must be < poolCount {pool_groups} "
                            f"of phase {rule.source_phase_order}",
                            f"{path}.sourcePoolIndex",
                        )
                    )
            elif pool_groups > 1:
                result.warnings.append(
                    TemplateIssue(
                        "RULE_POOL_INDEX_MISSING",
                        f"Phase {rule.source_phase_order} has {pool_groups} pools but the rule names none",
                        f"{path}.sourcePoolIndex",
                    )
                )

        if target is not None:
            slot = rule.target_slot_number
            if slot < 1 or (target.incoming_slot_count and slot > target.incoming_slot_count):
                result.violations.append(
                    TemplateIssue(
                        "RULE_TARGET_SLOT_OUT_OF_RANGE",
                        f"targetSlotNumber {slot} outside 1..{target.incoming_slot_count} "
                        f"of phase {rule.target_phase_order}",
                        f"{path}.targetSlotNumber",
                    )
                )
            key = (rule.target_phase_order, slot)
            if key in seen_slots:
                result.violations.append(
                    TemplateIssue(
                        "RULE_DUPLICATE_TARGET_SLOT",
                        f"Slot {slot} of phase {rule.target_phase_order} is already filled by "
                        f"advancementRules[{seen_slots[key]}]",
                        path,
                    )
                )
            else:
                seen_slots[key] = index

        if source is not None and target is not None and rule.source_phase_order >= rule.target_phase_order:
            result.warnings.append(
                TemplateIssue(
                    "RULE_BACKWARD_FLOW",
                    f"Rule flows from phase {rule.source_phase_order} to phase {rule.target_phase_order}",
                    path,
                )
            )


def _check_advancing_counts(candidate: TemplateCandidate, result: TemplateValidationResult) -> None:
    outgoing: Dict[int, int] = defaultdict(int)
    for rule in candidate.advancement_rules:
        outgoing[rule.source_phase_order] += 1

    last_order = max((p.sort_order for p in candidate.phases), default=0)
    for index, phase in enumerate(candidate.phases):
        count = outgoing.get(phase.sort_order, 0)
        # The last phase's finishers leave the tournament (exit positions)
        if phase.sort_order == last_order and count == 0:
            continue
        if count != phase.advancing_slot_count:
            result.warnings.append(
                TemplateIssue(
                    "ADVANCING_COUNT_MISMATCH",
                    f"Phase {phase.sort_order} advances {phase.advancing_slot_count} but {count} rules source from it",
                    f"phases[{index}].advancingSlotCount",
                )
            )


def _check_exit_positions(candidate: TemplateCandidate, result: TemplateValidationResult) -> None:
    ranks = Counter(e.rank for e in candidate.exit_positions)
    for index, exit_position in enumerate(candidate.exit_positions):
        path = f"exitPositions[{index}]"
        if exit_position.rank < 1:
            result.violations.append(TemplateIssue("EXIT_RANK_INVALID", "rank must be >= 1", f"{path}.rank"))
        if exit_position.award_type is not None and _enum_value(AwardType, exit_position.award_type) is None:
            result.violations.append(
                TemplateIssue(
                    "AWARD_TYPE_UNKNOWN", f"Unknown award type '{exit_position.award_type}'", f"{path}.awardType"
                )
            )
    for rank, count in sorted(ranks.items()):
        if count > 1:
            result.violations.append(
                TemplateIssue("EXIT_RANK_DUPLICATE", f"Exit rank {rank} is defined {count} times", "exitPositions")
            )


def _candidate_pool_groups(phase: PhaseCandidate) -> int:
    phase_type = _enum_value(PhaseType, phase.phase_type)
    if phase_type == PhaseType.POOLS:
        return phase.pool_count
    return 0


# ----------------------------------------------------------------------------
# Domain construction (only called once the candidate is known to be valid)
# ----------------------------------------------------------------------------


def _build_exit_positions(candidate: TemplateCandidate) -> List[ExitPosition]:
    return [
        ExitPosition(
            rank=e.rank,
            label=e.label,
            award_type=AwardType(e.award_type) if e.award_type else AwardType.NONE,
        )
        for e in sorted(candidate.exit_positions, key=lambda e: e.rank)
    ]


def build_phase(candidate: PhaseCandidate) -> Phase:
    return Phase(
        phase_id=candidate.phase_id or new_phase_id(),
        name=candidate.name or f"Phase {candidate.sort_order}",
        phase_type=PhaseType(candidate.phase_type),
        sort_order=candidate.sort_order,
        incoming_slot_count=candidate.incoming_slot_count,
        advancing_slot_count=candidate.advancing_slot_count,
        pool_count=candidate.pool_count,
        best_of=candidate.best_of,
        match_duration_minutes=candidate.match_duration_minutes,
        seeding_strategy=SeedingStrategy(candidate.seeding_strategy),
        include_consolation=candidate.include_consolation,
        award_type=AwardType(candidate.award_type) if candidate.award_type else None,
    )


def build_template(candidate: TemplateCandidate) -> Template:
    if candidate.is_flexible:
        spec = candidate.generate_bracket
        return FlexibleTemplate(
            generate_bracket=GenerateBracketSpec(
                type=PhaseType(spec.type),
                consolation=spec.consolation,
                calculate_byes=spec.calculate_byes,
            ),
            exit_positions=_build_exit_positions(candidate),
            name=candidate.name,
        )

    phases = [build_phase(p) for p in candidate.phases]
    id_by_order = {p.sort_order: p.phase_id for p in phases}
    rules = [
        AdvancementRule(
            source_phase_id=id_by_order[r.source_phase_order],
            finish_position=r.finish_position,
            target_phase_id=id_by_order[r.target_phase_order],
            target_slot_number=r.target_slot_number,
            source_pool_index=r.source_pool_index,
        )
        for r in candidate.advancement_rules
    ]
    return StructuredTemplate(
        phases=phases,
        rules=rules,
        exit_positions=_build_exit_positions(candidate),
        name=candidate.name,
    )


def parse_candidate(raw: Union[TemplateCandidate, Dict[str, Any]]) -> Tuple[Optional[TemplateCandidate], List[TemplateIssue]]:
    """Parse a raw document; malformed input becomes violations, never an exception."""
    if isinstance(raw, TemplateCandidate):
        return raw, []
    try:
        return TemplateCandidate.model_validate(raw), []
    except ValidationError as e:
        issues = [
            TemplateIssue("MALFORMED", err["msg"], ".".join(str(part) for part in err["loc"]))
            for err in e.errors()
        ]
        return None, issues


def validate_template(raw: Union[TemplateCandidate, Dict[str, Any]]) -> TemplateValidationResult:
    """
    Validate a candidate template.

    Returns a TemplateValidationResult; when ``ok`` it also carries the
    domain template (phases with stable ids, rules keyed by phase id).
    """
    result = TemplateValidationResult()
    candidate, parse_issues = parse_candidate(raw)
    if candidate is None:
        result.violations.extend(parse_issues)
        return result

    if candidate.is_flexible:
        spec = candidate.generate_bracket
        if spec is None:
            result.violations.append(
                TemplateIssue("GENERATE_BRACKET_MISSING", "Flexible template needs generateBracket", "generateBracket")
            )
        elif _enum_value(PhaseType, spec.type) not in FLEXIBLE_BRACKET_TYPES:
            supported = sorted(t.value for t in FLEXIBLE_BRACKET_TYPES)
            result.violations.append(
                TemplateIssue(
                    "GENERATE_BRACKET_TYPE_UNSUPPORTED",
                    f"generateBracket.type '{spec.type}' must be one of {supported}",
                    "generateBracket.type",
                )
            )
    else:
        if not candidate.phases:
            result.violations.append(TemplateIssue("NO_PHASES", "Template needs at least one phase", "phases"))
        for index, phase in enumerate(candidate.phases):
            _check_phase(phase, f"phases[{index}]", result)
        explicit_ids = Counter(p.phase_id for p in candidate.phases if p.phase_id)
        for phase_id, count in sorted(explicit_ids.items()):
            if count > 1:
                result.violations.append(
                    TemplateIssue("PHASE_ID_DUPLICATE", f"phaseId '{phase_id}' is used by {count} phases", "phases")
                )
        _check_sort_orders(candidate, result)
        _check_rules(candidate, result)
        _check_advancing_counts(candidate, result)
    _check_exit_positions(candidate, result)

    if result.ok:
        result.template = build_template(candidate)
    else:
        logger.debug("Template validation failed: %s", result.violation_codes())
    return result


def validate_phase(candidate: PhaseCandidate) -> TemplateValidationResult:
    """Check a single phase definition (used for ad-hoc bracket previews)."""
    result = TemplateValidationResult()
    _check_phase(candidate, "phase", result)
    return result
