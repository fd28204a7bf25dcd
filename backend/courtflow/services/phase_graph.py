"""
Phase Graph Model - in-memory representation of a tournament template.

A structured template is an ordered list of phases plus advancement rules
that route finish positions of one phase into incoming slots of another.
A flexible template carries only a bracket generator spec; its phases are
derived at runtime from the incoming unit count.

Identity:
- Phases are identified by a stable ``phase_id``.
- ``sort_order`` is a derived attribute, recomputed (1..N, dense) after
  every structural edit.
- Rules reference phases by id, so reordering or removing a phase never
  silently re-targets a rule.
"""

import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Dict, List, Optional, Union


class PhaseType(str, Enum):
    DRAW = "Draw"
    SINGLE_ELIMINATION = "SingleElimination"
    DOUBLE_ELIMINATION = "DoubleElimination"
    ROUND_ROBIN = "RoundRobin"
    POOLS = "Pools"
    BRACKET_ROUND = "BracketRound"
    SWISS = "Swiss"
    AWARD = "Award"


class SeedingStrategy(str, Enum):
    CROSS_POOL = "CrossPool"
    SEQUENTIAL = "Sequential"
    MANUAL = "Manual"


class AwardType(str, Enum):
    GOLD = "Gold"
    SILVER = "Silver"
    BRONZE = "Bronze"
    NONE = "none"


# Phase types that accept include_consolation
BRACKET_PHASE_TYPES = {
    PhaseType.SINGLE_ELIMINATION,
    PhaseType.DOUBLE_ELIMINATION,
    PhaseType.BRACKET_ROUND,
}

# Bracket kinds a flexible template may generate
FLEXIBLE_BRACKET_TYPES = {
    PhaseType.SINGLE_ELIMINATION,
    PhaseType.DOUBLE_ELIMINATION,
    PhaseType.ROUND_ROBIN,
}

ALLOWED_BEST_OF = (1, 3, 5)


def new_phase_id() -> str:
    return f"ph-{uuid.uuid4().hex[:10]}"


@dataclass
class Phase:
    phase_id: str
    name: str
    phase_type: PhaseType
    sort_order: int = 0
    incoming_slot_count: int = 0
    advancing_slot_count: int = 0
    pool_count: int = 0
    best_of: int = 1
    match_duration_minutes: Optional[int] = None
    seeding_strategy: SeedingStrategy = SeedingStrategy.SEQUENTIAL
    include_consolation: bool = False
    award_type: Optional[AwardType] = None

    @property
    def pool_groups(self) -> int:
        """Number of pools a rule may address via source_pool_index (0 = not pooled)."""
        if self.phase_type != PhaseType.POOLS:
            return 0
        return self.pool_count

    @property
    def is_multi_pool(self) -> bool:
        return self.pool_groups > 1


@dataclass(frozen=True)
class AdvancementRule:
    source_phase_id: str
    finish_position: int
    target_phase_id: str
    target_slot_number: int
    source_pool_index: Optional[int] = None


@dataclass(frozen=True)
class ExitPosition:
    rank: int
    label: str
    award_type: AwardType = AwardType.NONE


DEFAULT_EXIT_POSITIONS = [
    ExitPosition(rank=1, label="Champion", award_type=AwardType.GOLD),
    ExitPosition(rank=2, label="Runner-up", award_type=AwardType.SILVER),
    ExitPosition(rank=3, label="3rd Place", award_type=AwardType.BRONZE),
]


@dataclass(frozen=True)
class GenerateBracketSpec:
    type: PhaseType
    consolation: bool = False
    calculate_byes: bool = True


class PhaseGraphError(Exception):
    """Structural edit on a template failed"""

    pass


@dataclass
class FlexibleTemplate:
    generate_bracket: GenerateBracketSpec
    exit_positions: List[ExitPosition] = field(default_factory=list)
    name: Optional[str] = None

    kind = "flexible"


@dataclass
class StructuredTemplate:
    phases: List[Phase] = field(default_factory=list)
    rules: List[AdvancementRule] = field(default_factory=list)
    exit_positions: List[ExitPosition] = field(default_factory=list)
    name: Optional[str] = None

    kind = "structured"

    def __post_init__(self):
        self.phases.sort(key=lambda p: p.sort_order)
        self.renumber()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def phase(self, phase_id: str) -> Phase:
        for p in self.phases:
            if p.phase_id == phase_id:
                return p
        raise PhaseGraphError(f"Phase {phase_id} not found")

    def phase_at(self, sort_order: int) -> Optional[Phase]:
        if 1 <= sort_order <= len(self.phases):
            return self.phases[sort_order - 1]
        return None

    def order_of(self, phase_id: str) -> int:
        return self.phase(phase_id).sort_order

    def rules_from(self, phase_id: str) -> List[AdvancementRule]:
        return [r for r in self.rules if r.source_phase_id == phase_id]

    def rules_into(self, phase_id: str) -> List[AdvancementRule]:
        return [r for r in self.rules if r.target_phase_id == phase_id]

    def rule_view(self, rule: AdvancementRule) -> Dict[str, Optional[int]]:
        """Order-based view of a rule (the wire representation)."""
        return {
            "source_phase_order": self.order_of(rule.source_phase_id),
            "source_pool_index": rule.source_pool_index,
            "finish_position": rule.finish_position,
            "target_phase_order": self.order_of(rule.target_phase_id),
            "target_slot_number": rule.target_slot_number,
        }

    # ------------------------------------------------------------------
    # Structural edits
    # ------------------------------------------------------------------

    def renumber(self) -> None:
        for index, p in enumerate(self.phases, start=1):
            p.sort_order = index

    def add_phase(self, phase: Phase, position: Optional[int] = None) -> Phase:
        """Insert a phase at a 1-based position (append when omitted)."""
        if any(p.phase_id == phase.phase_id for p in self.phases):
            raise PhaseGraphError(f"Phase {phase.phase_id} already exists")
        if position is None or position > len(self.phases):
            self.phases.append(phase)
        else:
            self.phases.insert(max(position, 1) - 1, phase)
        self.renumber()
        return phase

    def remove_phase(self, phase_id: str) -> Phase:
        """Remove a phase, drop every rule touching it, renumber the rest."""
        removed = self.phase(phase_id)
        self.phases = [p for p in self.phases if p.phase_id != phase_id]
        self.rules = [r for r in self.rules if phase_id not in (r.source_phase_id, r.target_phase_id)]
        self.renumber()
        return removed

    def move_phase(self, phase_id: str, offset: int) -> None:
        """Move a phase up (negative) or down (positive) in the order."""
        current = self.order_of(phase_id) - 1
        target = min(max(current + offset, 0), len(self.phases) - 1)
        if target == current:
            return
        moved = self.phases.pop(current)
        self.phases.insert(target, moved)
        self.renumber()

    def replace_rules(self, rules: List[AdvancementRule]) -> None:
        known = {p.phase_id for p in self.phases}
        for r in rules:
            if r.source_phase_id not in known or r.target_phase_id not in known:
                raise PhaseGraphError("Rule references a phase outside this template")
        self.rules = list(rules)

    def copy(self) -> "StructuredTemplate":
        return StructuredTemplate(
            phases=[replace(p) for p in self.phases],
            rules=list(self.rules),
            exit_positions=list(self.exit_positions),
            name=self.name,
        )


Template = Union[StructuredTemplate, FlexibleTemplate]
