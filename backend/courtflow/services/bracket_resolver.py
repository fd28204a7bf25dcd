"""
Bracket Resolver - derives bracket shape and encounter skeletons.

Given a phase (or a flexible generator spec) and an incoming unit count,
this module computes bracket size, byes, round count and the ordered list of
encounter placeholders for the phase. It never touches the database.

Formulas:
- Single elimination: bracket_size = next power of two >= n,
  bye_count = bracket_size - n, round_count = log2(bracket_size),
  bracket_size - 1 encounters (+1 third-place encounter with consolation).
- Double elimination: same bracket size/byes; winners bracket
  (bracket_size - 1), losers bracket (bracket_size - 2), grand final and one
  conditional grand-final reset: 2 * (bracket_size - 1) + 1 encounters.
  round_count is reported as 2 * log2(bracket_size).
- Round robin: n * (n - 1) / 2 matches per pool, n - 1 rounds per unit.
  With pools, units are split into pools of ceil(n / pool_count) (the last
  pool may be shorter).
- Pools + playoff: pool play plus a single-elimination bracket sized from
  playoff_units_per_pool * pool_count, seeded across pools.

Seeding:
- Byes go to the top seeds (standard bracket order pairs 1 v N).
- Sequential: pools take contiguous seed blocks.
- CrossPool: seeds are dealt round-robin across pools.
- Manual: the externally supplied order is used as-is (contiguous fill).
"""

import logging
import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence, Tuple

from courtflow.services.phase_graph import GenerateBracketSpec, Phase, PhaseType, SeedingStrategy

logger = logging.getLogger(__name__)


class BracketResolutionError(Exception):
    """Phase cannot be resolved for the given unit count"""

    pass


class BracketLabel:
    MAIN = "Main"
    WINNERS = "Winners"
    LOSERS = "Losers"
    GRAND_FINAL = "GrandFinal"
    GRAND_FINAL_RESET = "GrandFinalReset"
    CONSOLATION = "Consolation"
    POOL = "Pool"
    PLAYOFF = "Playoff"
    SWISS = "Swiss"


@dataclass
class SkeletonEncounter:
    round_number: int
    bracket: str
    encounter_number: int = 0
    pool_index: Optional[int] = None
    seed1: Optional[int] = None
    seed2: Optional[int] = None
    is_bye: bool = False
    is_conditional: bool = False
    round_name: str = ""
    unit1_id: Optional[int] = None
    unit2_id: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "round_number": self.round_number,
            "encounter_number": self.encounter_number,
            "bracket": self.bracket,
            "pool_index": self.pool_index,
            "seed1": self.seed1,
            "seed2": self.seed2,
            "is_bye": self.is_bye,
            "is_conditional": self.is_conditional,
            "round_name": self.round_name,
            "unit1_id": self.unit1_id,
            "unit2_id": self.unit2_id,
        }


@dataclass
class BracketResolution:
    phase_type: PhaseType
    unit_count: int
    bracket_size: Optional[int] = None
    bye_count: int = 0
    round_count: int = 0
    total_encounters: int = 0
    schedule_rounds: int = 0
    pool_sizes: List[int] = field(default_factory=list)
    matches_per_pool: List[int] = field(default_factory=list)
    pools: List[List[int]] = field(default_factory=list)  # seeds per pool
    skeleton: List[SkeletonEncounter] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "phase_type": self.phase_type.value,
            "unit_count": self.unit_count,
            "bracket_size": self.bracket_size,
            "bye_count": self.bye_count,
            "round_count": self.round_count,
            "total_encounters": self.total_encounters,
            "schedule_rounds": self.schedule_rounds,
            "pool_sizes": self.pool_sizes,
            "matches_per_pool": self.matches_per_pool,
            "pools": self.pools,
            "skeleton": [e.to_dict() for e in self.skeleton],
        }


# ----------------------------------------------------------------------------
# Shape helpers
# ----------------------------------------------------------------------------


def next_power_of_two(n: int) -> int:
    if n <= 1:
        return 1
    return 2 ** math.ceil(math.log2(n))


def bracket_order(size: int) -> List[int]:
    """
    Seed numbers in bracket-line order for a power-of-two bracket.

    Adjacent entries meet in round 1: size 8 -> [1, 8, 4, 5, 2, 7, 3, 6].
    Seeds 1 and 2 can only meet in the final.
    """
    order = [1]
    while len(order) < size:
        mirror = len(order) * 2 + 1
        order = [s for seed in order for s in (seed, mirror - seed)]
    return order


def round_name(units_in_round: int) -> str:
    if units_in_round == 2:
        return "Final"
    if units_in_round == 4:
        return "Semifinal"
    if units_in_round == 8:
        return "Quarterfinal"
    return f"Round of {units_in_round}"


def pool_label(pool_index: int) -> str:
    return chr(ord("A") + pool_index) if pool_index < 26 else str(pool_index + 1)


def pool_sizes_for(unit_count: int, pool_count: int) -> List[int]:
    """
    Pool sizes of ceil(n / P), the last pool(s) shorter.

    When ceil-sized pools would leave a pool empty (e.g. 9 units in 4 pools),
    sizes are balanced instead so every pool keeps at least one unit.
    """
    if pool_count < 1:
        raise BracketResolutionError("pool_count must be >= 1")
    if pool_count > unit_count:
        raise BracketResolutionError(f"pool_count {pool_count} exceeds unit count {unit_count}")

    capacity = math.ceil(unit_count / pool_count)
    sizes: List[int] = []
    remaining = unit_count
    for _ in range(pool_count):
        size = min(capacity, remaining)
        sizes.append(size)
        remaining -= size
    if 0 in sizes:
        base, extra = divmod(unit_count, pool_count)
        sizes = [base + (1 if i < extra else 0) for i in range(pool_count)]
    return sizes


def assign_pools(unit_count: int, pool_count: int, strategy: SeedingStrategy) -> List[List[int]]:
    """Distribute seeds 1..n into pools (lists of seeds, best first)."""
    sizes = pool_sizes_for(unit_count, pool_count)
    pools: List[List[int]] = [[] for _ in sizes]

    if strategy == SeedingStrategy.CROSS_POOL:
        pool = 0
        for seed in range(1, unit_count + 1):
            while len(pools[pool]) >= sizes[pool]:
                pool = (pool + 1) % pool_count
            pools[pool].append(seed)
            pool = (pool + 1) % pool_count
        return pools

    # Sequential and Manual: contiguous seed blocks in the given order
    seed = 1
    for index, size in enumerate(sizes):
        pools[index] = list(range(seed, seed + size))
        seed += size
    return pools


def cross_pool_order(pool_count: int, advancing_per_pool: int) -> List[Tuple[int, int]]:
    """
    Playoff seed order for pool finishers: every pool's 1st, then every 2nd...

    Returns (pool_index, finish_position) in seed order.
    """
    return [
        (pool, position)
        for position in range(1, advancing_per_pool + 1)
        for pool in range(pool_count)
    ]


def round_robin_pairings(size: int) -> List[Tuple[int, int, int]]:
    """
    Circle-method pairings as (round, idx_a, idx_b) with 0-based positions.

    Odd sizes add a phantom position; whoever meets it sits the round out,
    so an odd pool needs ``size`` rounds instead of ``size - 1``.
    """
    if size < 2:
        return []
    slots = size + 1 if size % 2 == 1 else size
    phantom = size if size % 2 == 1 else -1
    positions = list(range(slots))
    half = slots // 2

    pairings: List[Tuple[int, int, int]] = []
    for round_number in range(1, slots):
        for i in range(half):
            a, b = positions[i], positions[slots - 1 - i]
            if phantom in (a, b):
                continue
            pairings.append((round_number, min(a, b), max(a, b)))
        # Fix position 0, rotate the rest clockwise
        positions = [positions[0]] + [positions[-1]] + positions[1:-1]
    return pairings


# ----------------------------------------------------------------------------
# Per-type builders (skeleton entries are numbered afterwards)
# ----------------------------------------------------------------------------


def _elimination_first_round(
    bracket_size: int,
    unit_count: int,
    label: str,
    round_number: int,
) -> List[SkeletonEncounter]:
    order = bracket_order(bracket_size)
    encounters = []
    for i in range(0, bracket_size, 2):
        a, b = order[i], order[i + 1]
        top, bottom = min(a, b), max(a, b)
        is_bye = bottom > unit_count
        encounters.append(
            SkeletonEncounter(
                round_number=round_number,
                bracket=label,
                seed1=top,
                seed2=None if is_bye else bottom,
                is_bye=is_bye,
                round_name=round_name(bracket_size),
            )
        )
    return encounters


def _single_elimination(
    unit_count: int,
    include_consolation: bool,
    label: str = BracketLabel.MAIN,
    round_offset: int = 0,
) -> Tuple[List[SkeletonEncounter], int, int, int]:
    """Returns (skeleton, bracket_size, round_count, total_encounters)."""
    bracket_size = next_power_of_two(unit_count)
    rounds = int(math.log2(bracket_size))

    skeleton = _elimination_first_round(bracket_size, unit_count, label, round_offset + 1)
    for r in range(2, rounds + 1):
        units_in_round = bracket_size // (2 ** (r - 1))
        for _ in range(units_in_round // 2):
            skeleton.append(
                SkeletonEncounter(round_number=round_offset + r, bracket=label, round_name=round_name(units_in_round))
            )

    total = bracket_size - 1
    if include_consolation and bracket_size >= 4:
        skeleton.append(
            SkeletonEncounter(
                round_number=round_offset + rounds,
                bracket=BracketLabel.CONSOLATION,
                round_name="3rd Place",
            )
        )
        total += 1
    return skeleton, bracket_size, rounds, total


def _double_elimination(unit_count: int) -> Tuple[List[SkeletonEncounter], int, int, int]:
    bracket_size = next_power_of_two(unit_count)
    k = int(math.log2(bracket_size))

    # Winners round r is played at schedule round 1 (r=1) or 2(r-1) so the
    # losers bracket can absorb each winners round before the next one drops.
    skeleton: List[SkeletonEncounter] = []
    for enc in _elimination_first_round(bracket_size, unit_count, BracketLabel.WINNERS, 1):
        enc.round_name = f"Winners {enc.round_name}"
        skeleton.append(enc)
    for r in range(2, k + 1):
        units_in_round = bracket_size // (2 ** (r - 1))
        for _ in range(units_in_round // 2):
            skeleton.append(
                SkeletonEncounter(
                    round_number=2 * (r - 1),
                    bracket=BracketLabel.WINNERS,
                    round_name=f"Winners {round_name(units_in_round)}",
                )
            )

    # Losers bracket: pairs of rounds with bracket_size / 2^(j+1) encounters
    losers_round = 0
    for j in range(1, k):
        count = bracket_size // (2 ** (j + 1))
        for _ in range(2):
            losers_round += 1
            for _ in range(count):
                skeleton.append(
                    SkeletonEncounter(
                        round_number=losers_round + 1,
                        bracket=BracketLabel.LOSERS,
                        round_name=f"Losers Round {losers_round}",
                    )
                )

    skeleton.append(SkeletonEncounter(round_number=2 * k, bracket=BracketLabel.GRAND_FINAL, round_name="Grand Final"))
    skeleton.append(
        SkeletonEncounter(
            round_number=2 * k + 1,
            bracket=BracketLabel.GRAND_FINAL_RESET,
            is_conditional=True,
            round_name="Grand Final Reset",
        )
    )
    skeleton.sort(key=lambda e: e.round_number)
    total = 2 * (bracket_size - 1) + 1
    return skeleton, bracket_size, 2 * k, total


def _pool_play(
    pools: List[List[int]],
    label: str = BracketLabel.POOL,
) -> Tuple[List[SkeletonEncounter], int]:
    """Round-robin inside every pool, interleaved by round. Returns (skeleton, schedule_rounds)."""
    by_round: Dict[int, List[SkeletonEncounter]] = {}
    for pool_index, seeds in enumerate(pools):
        for round_number, a, b in round_robin_pairings(len(seeds)):
            by_round.setdefault(round_number, []).append(
                SkeletonEncounter(
                    round_number=round_number,
                    bracket=label,
                    pool_index=pool_index,
                    seed1=seeds[a],
                    seed2=seeds[b],
                    round_name=f"Pool {pool_label(pool_index)} Round {round_number}",
                )
            )
    skeleton = [enc for r in sorted(by_round) for enc in by_round[r]]
    return skeleton, max(by_round, default=0)


def _number(skeleton: List[SkeletonEncounter]) -> List[SkeletonEncounter]:
    for index, enc in enumerate(skeleton, start=1):
        enc.encounter_number = index
    return skeleton


# ----------------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------------


def resolve_bracket(
    phase: Phase,
    unit_count: int,
    playoff_units_per_pool: Optional[int] = None,
    materialize_byes: bool = True,
) -> BracketResolution:
    """
    Resolve a phase for ``unit_count`` incoming units.

    Raises BracketResolutionError when no bracket/pool shape exists
    (fewer than 2 units, more pools than units, oversized playoff).
    """
    if unit_count < 2:
        raise BracketResolutionError(f"Cannot resolve a bracket for {unit_count} unit(s); at least 2 are required")

    phase_type = phase.phase_type
    result = BracketResolution(phase_type=phase_type, unit_count=unit_count)

    if phase_type == PhaseType.SINGLE_ELIMINATION:
        skeleton, size, rounds, total = _single_elimination(unit_count, phase.include_consolation)
        result.bracket_size = size
        result.bye_count = size - unit_count
        result.round_count = rounds
        result.schedule_rounds = rounds
        result.total_encounters = total
        result.skeleton = skeleton

    elif phase_type == PhaseType.DOUBLE_ELIMINATION:
        skeleton, size, rounds, total = _double_elimination(unit_count)
        result.bracket_size = size
        result.bye_count = size - unit_count
        result.round_count = rounds
        result.schedule_rounds = rounds + 1
        result.total_encounters = total
        result.skeleton = skeleton

    elif phase_type in (PhaseType.ROUND_ROBIN, PhaseType.POOLS):
        _resolve_pools(phase, unit_count, playoff_units_per_pool, result)

    elif phase_type == PhaseType.SWISS:
        rounds = math.ceil(math.log2(unit_count))
        per_round = unit_count // 2
        result.round_count = rounds
        result.schedule_rounds = rounds
        result.bye_count = unit_count % 2
        result.total_encounters = rounds * per_round
        result.skeleton = [
            SkeletonEncounter(round_number=r, bracket=BracketLabel.SWISS, round_name=f"Swiss Round {r}")
            for r in range(1, rounds + 1)
            for _ in range(per_round)
        ]

    elif phase_type == PhaseType.BRACKET_ROUND:
        # Odd count: seed 1 takes the bye, the rest fold 2 v n, 3 v n-1, ...
        encounters = []
        first = 1
        if unit_count % 2 == 1:
            encounters.append(
                SkeletonEncounter(
                    round_number=1, bracket=BracketLabel.MAIN, seed1=1, is_bye=True, round_name=round_name(unit_count)
                )
            )
            first = 2
        for top in range(first, first + (unit_count - first + 1) // 2):
            encounters.append(
                SkeletonEncounter(
                    round_number=1,
                    bracket=BracketLabel.MAIN,
                    seed1=top,
                    seed2=unit_count + first - top,
                    round_name=round_name(unit_count),
                )
            )
        result.round_count = 1
        result.schedule_rounds = 1
        result.bye_count = unit_count % 2
        result.total_encounters = len(encounters)
        result.skeleton = encounters

    # Draw and Award phases produce no encounters

    if not materialize_byes:
        result.skeleton = [e for e in result.skeleton if not e.is_bye]
    _number(result.skeleton)

    logger.debug(
        "Resolved %s for %d units: %d encounters (%d in skeleton)",
        phase_type.value,
        unit_count,
        result.total_encounters,
        len(result.skeleton),
    )
    return result


def _resolve_pools(
    phase: Phase,
    unit_count: int,
    playoff_units_per_pool: Optional[int],
    result: BracketResolution,
) -> None:
    pool_count = max(phase.pool_count, 1)
    pools = assign_pools(unit_count, pool_count, phase.seeding_strategy)
    sizes = [len(p) for p in pools]
    matches = [s * (s - 1) // 2 for s in sizes]

    skeleton, schedule_rounds = _pool_play(pools)
    result.pools = pools
    result.pool_sizes = sizes
    result.matches_per_pool = matches
    result.round_count = max(sizes) - 1
    result.schedule_rounds = schedule_rounds
    result.total_encounters = sum(matches)

    if playoff_units_per_pool:
        if playoff_units_per_pool > min(sizes):
            raise BracketResolutionError(
                f"playoff_units_per_pool {playoff_units_per_pool} exceeds smallest pool size {min(sizes)}"
            )
        playoff_units = playoff_units_per_pool * pool_count
        if playoff_units < 2:
            raise BracketResolutionError("Playoff needs at least 2 advancing units")
        playoff, size, rounds, total = _single_elimination(
            playoff_units,
            phase.include_consolation,
            label=BracketLabel.PLAYOFF,
            round_offset=schedule_rounds,
        )
        skeleton.extend(playoff)
        result.bracket_size = size
        result.bye_count = size - playoff_units
        result.round_count += rounds
        result.schedule_rounds += rounds
        result.total_encounters += total

    result.skeleton = skeleton


def resolve_flexible(spec: GenerateBracketSpec, unit_count: int) -> BracketResolution:
    """Resolve a flexible template's generator for the runtime unit count."""
    phase = Phase(
        phase_id="flexible",
        name=spec.type.value,
        phase_type=spec.type,
        incoming_slot_count=unit_count,
        include_consolation=spec.consolation,
    )
    return resolve_bracket(phase, unit_count, materialize_byes=spec.calculate_byes)


def bind_units(resolution: BracketResolution, unit_ids: Sequence[int]) -> List[SkeletonEncounter]:
    """
    Map seeds onto unit ids (unit_ids[0] is seed 1).

    The order is taken as given: for Manual seeding this is the externally
    supplied ordering. Placeholders fed by earlier encounters stay unbound.
    """
    if len(unit_ids) < resolution.unit_count and any(e.seed1 or e.seed2 for e in resolution.skeleton):
        raise BracketResolutionError(
            f"Expected {resolution.unit_count} unit ids for seeding, got {len(unit_ids)}"
        )

    def unit_for(seed: Optional[int]) -> Optional[int]:
        if seed is None or seed > len(unit_ids):
            return None
        return unit_ids[seed - 1]

    return [replace(e, unit1_id=unit_for(e.seed1), unit2_id=unit_for(e.seed2)) for e in resolution.skeleton]
