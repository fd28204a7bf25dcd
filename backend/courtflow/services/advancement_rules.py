"""
Default advancement rule generation.

Rules are derived from phase slot counts alone (no hidden state), so the
generator is idempotent: the same phase list always yields the same rules.

Each phase feeds the next phase in sort order. The number of advancing
units is A = min(source.advancing_slot_count, target.incoming_slot_count).

- Non-pooled source: finish positions 1..A fill target slots 1..A.
- Multi-pool source (P pools): floor(A / P) finishers per pool (at least 1),
  source_pool_index assigned sequentially. How the A mod P remainder and
  the slot interleaving are handled is an AdvancementPolicy choice.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence

from courtflow.services.phase_graph import AdvancementRule, Phase


class SlotOrder(str, Enum):
    # Pool 0 fills its slots first, then pool 1, ... (A1, A2, B1, B2)
    BY_POOL = "by_pool"
    # Every pool's 1st, then every pool's 2nd, ... (A1, B1, A2, B2)
    BY_FINISH = "by_finish"


class RemainderPolicy(str, Enum):
    # floor(A/P) per pool (minimum 1); A mod P extra slots stay empty
    DROP = "drop"
    # A mod P extra finishers come from the lowest-index pools
    SPREAD = "spread"


@dataclass(frozen=True)
class AdvancementPolicy:
    slot_order: SlotOrder = SlotOrder.BY_POOL
    remainder: RemainderPolicy = RemainderPolicy.DROP


DEFAULT_POLICY = AdvancementPolicy()


def per_pool_advancing(advancing: int, pool_count: int, remainder: RemainderPolicy) -> List[int]:
    """Number of finishers each pool sends forward."""
    base = advancing // pool_count
    if remainder == RemainderPolicy.SPREAD:
        extra = advancing - base * pool_count
        return [base + (1 if i < extra else 0) for i in range(pool_count)]
    return [max(1, base)] * pool_count


def _pooled_rules(
    source: Phase,
    target: Phase,
    advancing: int,
    policy: AdvancementPolicy,
) -> List[AdvancementRule]:
    counts = per_pool_advancing(advancing, source.pool_groups, policy.remainder)

    if policy.slot_order == SlotOrder.BY_FINISH:
        order = [
            (pool, position)
            for position in range(1, max(counts) + 1)
            for pool in range(len(counts))
            if position <= counts[pool]
        ]
    else:
        order = [(pool, position) for pool in range(len(counts)) for position in range(1, counts[pool] + 1)]

    rules: List[AdvancementRule] = []
    for slot, (pool, position) in enumerate(order, start=1):
        if target.incoming_slot_count and slot > target.incoming_slot_count:
            break
        rules.append(
            AdvancementRule(
                source_phase_id=source.phase_id,
                finish_position=position,
                target_phase_id=target.phase_id,
                target_slot_number=slot,
                source_pool_index=pool,
            )
        )
    return rules


def auto_generate_rules(
    phases: Sequence[Phase],
    policy: Optional[AdvancementPolicy] = None,
) -> List[AdvancementRule]:
    """Compute the default rule set linking each phase to the next one."""
    policy = policy or DEFAULT_POLICY
    ordered = sorted(phases, key=lambda p: (p.sort_order, p.phase_id))

    rules: List[AdvancementRule] = []
    for source, target in zip(ordered, ordered[1:]):
        advancing = min(source.advancing_slot_count, target.incoming_slot_count)
        if advancing <= 0:
            continue

        if source.is_multi_pool:
            rules.extend(_pooled_rules(source, target, advancing, policy))
            continue

        for position in range(1, advancing + 1):
            rules.append(
                AdvancementRule(
                    source_phase_id=source.phase_id,
                    finish_position=position,
                    target_phase_id=target.phase_id,
                    target_slot_number=position,
                )
            )
    return rules
