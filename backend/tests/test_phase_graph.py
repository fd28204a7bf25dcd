"""Structured template editing: phase ids stay stable, sort orders are renumbered."""
import pytest

from courtflow.services.phase_graph import (
    AdvancementRule,
    Phase,
    PhaseGraphError,
    PhaseType,
    StructuredTemplate,
    new_phase_id,
)
from courtflow.services.template_validator import validate_template
from courtflow.utils.template_schema import dump_candidate, template_to_candidate


@pytest.fixture
def three_phase():
    phases = [
        Phase(phase_id="rr", name="Round Robin", phase_type=PhaseType.ROUND_ROBIN, sort_order=1,
              incoming_slot_count=8, advancing_slot_count=4),
        Phase(phase_id="semis", name="Semis", phase_type=PhaseType.SINGLE_ELIMINATION, sort_order=2,
              incoming_slot_count=4, advancing_slot_count=2),
        Phase(phase_id="final", name="Final", phase_type=PhaseType.SINGLE_ELIMINATION, sort_order=3,
              incoming_slot_count=2),
    ]
    rules = [AdvancementRule("rr", p, "semis", p) for p in range(1, 5)]
    rules += [AdvancementRule("semis", p, "final", p) for p in range(1, 3)]
    return StructuredTemplate(phases=phases, rules=rules)


def test_phases_sorted_and_numbered_on_construction():
    template = StructuredTemplate(
        phases=[
            Phase(phase_id="b", name="B", phase_type=PhaseType.SWISS, sort_order=7),
            Phase(phase_id="a", name="A", phase_type=PhaseType.SWISS, sort_order=3),
        ]
    )
    assert [(p.phase_id, p.sort_order) for p in template.phases] == [("a", 1), ("b", 2)]


def test_remove_phase_drops_its_rules_and_renumbers(three_phase):
    three_phase.remove_phase("semis")

    assert [p.phase_id for p in three_phase.phases] == ["rr", "final"]
    assert [p.sort_order for p in three_phase.phases] == [1, 2]
    assert three_phase.rules == []


def test_rules_follow_phase_ids_when_reordered(three_phase):
    three_phase.move_phase("final", -1)

    assert [p.phase_id for p in three_phase.phases] == ["rr", "final", "semis"]
    # Rules keep pointing at the same phases; only their order view changes
    view = three_phase.rule_view(three_phase.rules_into("final")[0])
    assert view["source_phase_order"] == 3
    assert view["target_phase_order"] == 2


def test_move_phase_clamps_to_bounds(three_phase):
    three_phase.move_phase("rr", -5)
    assert three_phase.phases[0].phase_id == "rr"

    three_phase.move_phase("rr", 10)
    assert [p.phase_id for p in three_phase.phases] == ["semis", "final", "rr"]


def test_add_phase_at_position(three_phase):
    added = three_phase.add_phase(
        Phase(phase_id="qf", name="Quarters", phase_type=PhaseType.SINGLE_ELIMINATION), position=2
    )

    assert added.sort_order == 2
    assert [p.phase_id for p in three_phase.phases] == ["rr", "qf", "semis", "final"]
    assert three_phase.phase_at(4).phase_id == "final"
    assert three_phase.phase_at(5) is None


def test_add_phase_rejects_duplicate_id(three_phase):
    with pytest.raises(PhaseGraphError):
        three_phase.add_phase(Phase(phase_id="rr", name="Again", phase_type=PhaseType.SWISS))


def test_replace_rules_rejects_foreign_phase(three_phase):
    with pytest.raises(PhaseGraphError):
        three_phase.replace_rules([AdvancementRule("rr", 1, "elsewhere", 1)])


def test_copy_is_independent(three_phase):
    clone = three_phase.copy()
    clone.remove_phase("rr")

    assert len(three_phase.phases) == 3
    assert len(clone.phases) == 2


def test_pool_groups():
    assert Phase(phase_id="p", name="P", phase_type=PhaseType.POOLS, pool_count=4).pool_groups == 4
    assert not Phase(phase_id="p1", name="P1", phase_type=PhaseType.POOLS, pool_count=1).is_multi_pool
    # round robin pools are never addressed by source_pool_index
    assert Phase(phase_id="r", name="R", phase_type=PhaseType.ROUND_ROBIN, pool_count=2).pool_groups == 0
    assert not Phase(phase_id="r", name="R", phase_type=PhaseType.ROUND_ROBIN, pool_count=2).is_multi_pool
    assert Phase(phase_id="s", name="S", phase_type=PhaseType.SINGLE_ELIMINATION, pool_count=3).pool_groups == 0


def test_new_phase_ids_are_unique():
    ids = {new_phase_id() for _ in range(100)}
    assert len(ids) == 100
    assert all(i.startswith("ph-") for i in ids)


def test_document_round_trip_keeps_ids(three_phase):
    """Serialising and re-validating a template keeps phase ids and rules."""
    document = dump_candidate(template_to_candidate(three_phase))

    assert document["phases"][0]["phaseId"] == "rr"
    assert document["advancementRules"][0]["sourcePhaseOrder"] == 1

    result = validate_template(document)
    assert result.ok
    assert [p.phase_id for p in result.template.phases] == ["rr", "semis", "final"]
    assert result.template.rules == three_phase.rules
