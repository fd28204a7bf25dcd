"""
Bracket resolution: sizes, byes, round counts and encounter skeletons.

Resolution is pure, so these tests need no database.
"""
import pytest

from courtflow.services.bracket_resolver import (
    BracketLabel,
    BracketResolutionError,
    assign_pools,
    bind_units,
    bracket_order,
    cross_pool_order,
    next_power_of_two,
    pool_sizes_for,
    resolve_bracket,
    resolve_flexible,
    round_robin_pairings,
)
from courtflow.services.phase_graph import GenerateBracketSpec, Phase, PhaseType, SeedingStrategy


def make_phase(phase_type, pools=0, consolation=False, seeding=SeedingStrategy.SEQUENTIAL):
    return Phase(
        phase_id="p1",
        name="Test",
        phase_type=phase_type,
        sort_order=1,
        pool_count=pools,
        include_consolation=consolation,
        seeding_strategy=seeding,
    )


# ----------------------------------------------------------------------------
# Helpers
# ----------------------------------------------------------------------------


def test_next_power_of_two():
    assert [next_power_of_two(n) for n in (1, 2, 3, 5, 8, 9, 16, 17)] == [1, 2, 4, 8, 8, 16, 16, 32]


def test_bracket_order_keeps_top_seeds_apart():
    assert bracket_order(8) == [1, 8, 4, 5, 2, 7, 3, 6]
    order = bracket_order(16)
    assert sorted(order) == list(range(1, 17))
    # Seeds 1 and 2 sit in opposite halves
    assert order.index(1) < 8 <= order.index(2)


def test_pool_sizes_ceil_then_shorter_last():
    assert pool_sizes_for(10, 2) == [5, 5]
    assert pool_sizes_for(10, 3) == [4, 4, 2]
    assert pool_sizes_for(7, 1) == [7]


def test_pool_sizes_never_leave_an_empty_pool():
    assert pool_sizes_for(9, 4) == [3, 2, 2, 2]


def test_pool_sizes_errors():
    with pytest.raises(BracketResolutionError):
        pool_sizes_for(4, 0)
    with pytest.raises(BracketResolutionError):
        pool_sizes_for(3, 4)


def test_assign_pools_sequential_vs_cross_pool():
    assert assign_pools(8, 2, SeedingStrategy.SEQUENTIAL) == [[1, 2, 3, 4], [5, 6, 7, 8]]
    assert assign_pools(8, 2, SeedingStrategy.CROSS_POOL) == [[1, 3, 5, 7], [2, 4, 6, 8]]
    assert assign_pools(8, 2, SeedingStrategy.MANUAL) == [[1, 2, 3, 4], [5, 6, 7, 8]]


def test_cross_pool_respects_shorter_pools():
    pools = assign_pools(10, 3, SeedingStrategy.CROSS_POOL)

    assert [len(p) for p in pools] == [4, 4, 2]
    assert sorted(s for p in pools for s in p) == list(range(1, 11))
    assert pools[0][0] == 1 and pools[1][0] == 2 and pools[2][0] == 3


def test_cross_pool_order():
    assert cross_pool_order(2, 2) == [(0, 1), (1, 1), (0, 2), (1, 2)]


@pytest.mark.parametrize("size", [2, 3, 4, 5, 6, 7, 8])
def test_round_robin_pairings_everyone_meets_once(size):
    pairings = round_robin_pairings(size)
    pairs = [(a, b) for _, a, b in pairings]

    assert len(pairs) == size * (size - 1) // 2
    assert len(set(pairs)) == len(pairs)

    # Nobody plays twice in the same round
    for round_number in {r for r, _, _ in pairings}:
        players = [p for r, a, b in pairings if r == round_number for p in (a, b)]
        assert len(players) == len(set(players))


# ----------------------------------------------------------------------------
# Single elimination
# ----------------------------------------------------------------------------


class TestSingleElimination:
    def test_five_units(self):
        result = resolve_bracket(make_phase(PhaseType.SINGLE_ELIMINATION), 5)

        assert result.bracket_size == 8
        assert result.bye_count == 3
        assert result.round_count == 3
        assert result.total_encounters == 7
        assert len(result.skeleton) == 7

        first_round = [e for e in result.skeleton if e.round_number == 1]
        assert [(e.seed1, e.seed2, e.is_bye) for e in first_round] == [
            (1, None, True),
            (4, 5, False),
            (2, None, True),
            (3, None, True),
        ]

    def test_power_of_two_has_no_byes(self):
        result = resolve_bracket(make_phase(PhaseType.SINGLE_ELIMINATION), 8)

        assert result.bye_count == 0
        assert not any(e.is_bye for e in result.skeleton)
        assert [e.round_name for e in result.skeleton if e.round_number == 3] == ["Final"]

    def test_consolation_adds_third_place(self):
        result = resolve_bracket(make_phase(PhaseType.SINGLE_ELIMINATION, consolation=True), 8)

        assert result.total_encounters == 8
        third = [e for e in result.skeleton if e.bracket == BracketLabel.CONSOLATION]
        assert len(third) == 1
        assert third[0].round_number == 3

    def test_encounters_numbered_in_order(self):
        result = resolve_bracket(make_phase(PhaseType.SINGLE_ELIMINATION), 6)
        assert [e.encounter_number for e in result.skeleton] == list(range(1, 8))

    def test_byes_can_be_left_out(self):
        result = resolve_bracket(make_phase(PhaseType.SINGLE_ELIMINATION), 5, materialize_byes=False)

        assert result.total_encounters == 7
        assert len(result.skeleton) == 4
        assert not any(e.is_bye for e in result.skeleton)


# ----------------------------------------------------------------------------
# Double elimination
# ----------------------------------------------------------------------------


class TestDoubleElimination:
    def test_eight_units(self):
        result = resolve_bracket(make_phase(PhaseType.DOUBLE_ELIMINATION), 8)

        assert result.bracket_size == 8
        assert result.total_encounters == 15
        assert result.round_count == 6
        assert len(result.skeleton) == 15

        by_bracket = {}
        for e in result.skeleton:
            by_bracket[e.bracket] = by_bracket.get(e.bracket, 0) + 1
        assert by_bracket == {
            BracketLabel.WINNERS: 7,
            BracketLabel.LOSERS: 6,
            BracketLabel.GRAND_FINAL: 1,
            BracketLabel.GRAND_FINAL_RESET: 1,
        }

        conditional = [e for e in result.skeleton if e.is_conditional]
        assert len(conditional) == 1
        assert conditional[0].bracket == BracketLabel.GRAND_FINAL_RESET
        assert conditional[0] is result.skeleton[-1]

    def test_skeleton_ordered_by_round(self):
        result = resolve_bracket(make_phase(PhaseType.DOUBLE_ELIMINATION), 6)
        rounds = [e.round_number for e in result.skeleton]

        assert rounds == sorted(rounds)
        assert result.bye_count == 2

    def test_two_units(self):
        result = resolve_bracket(make_phase(PhaseType.DOUBLE_ELIMINATION), 2)
        assert result.total_encounters == 3
        assert [e.bracket for e in result.skeleton] == [
            BracketLabel.WINNERS,
            BracketLabel.GRAND_FINAL,
            BracketLabel.GRAND_FINAL_RESET,
        ]


# ----------------------------------------------------------------------------
# Round robin / pools
# ----------------------------------------------------------------------------


class TestPools:
    def test_round_robin_two_pools(self):
        result = resolve_bracket(make_phase(PhaseType.ROUND_ROBIN, pools=2), 10)

        assert result.pool_sizes == [5, 5]
        assert result.matches_per_pool == [10, 10]
        assert result.total_encounters == 20
        assert result.round_count == 4
        assert len(result.skeleton) == 20
        assert {e.pool_index for e in result.skeleton} == {0, 1}

    def test_single_pool_round_robin(self):
        result = resolve_bracket(make_phase(PhaseType.ROUND_ROBIN), 4)

        assert result.pool_sizes == [4]
        assert result.total_encounters == 6
        assert result.round_count == 3
        assert result.schedule_rounds == 3

    def test_pool_encounters_reference_their_pool_seeds(self):
        result = resolve_bracket(make_phase(PhaseType.POOLS, pools=2, seeding=SeedingStrategy.CROSS_POOL), 8)

        for e in result.skeleton:
            assert e.seed1 in result.pools[e.pool_index]
            assert e.seed2 in result.pools[e.pool_index]

    def test_pools_with_playoff(self):
        result = resolve_bracket(make_phase(PhaseType.POOLS, pools=4), 12, playoff_units_per_pool=2)

        playoff = [e for e in result.skeleton if e.bracket == BracketLabel.PLAYOFF]
        pool_play = [e for e in result.skeleton if e.bracket == BracketLabel.POOL]

        assert len(pool_play) == 12
        assert len(playoff) == 7
        assert result.total_encounters == 19
        assert result.bracket_size == 8
        # Playoff rounds come after every pool round
        assert min(e.round_number for e in playoff) > max(e.round_number for e in pool_play)

    def test_playoff_larger_than_smallest_pool(self):
        with pytest.raises(BracketResolutionError):
            resolve_bracket(make_phase(PhaseType.POOLS, pools=4), 12, playoff_units_per_pool=4)

    def test_more_pools_than_units(self):
        with pytest.raises(BracketResolutionError):
            resolve_bracket(make_phase(PhaseType.POOLS, pools=5), 4)


# ----------------------------------------------------------------------------
# Other phase types
# ----------------------------------------------------------------------------


def test_swiss_rounds():
    result = resolve_bracket(make_phase(PhaseType.SWISS), 8)

    assert result.round_count == 3
    assert result.total_encounters == 12
    assert len(result.skeleton) == 12


def test_bracket_round_odd_count_gives_top_seed_a_bye():
    result = resolve_bracket(make_phase(PhaseType.BRACKET_ROUND), 5)

    assert [(e.seed1, e.seed2, e.is_bye) for e in result.skeleton] == [
        (1, None, True),
        (2, 5, False),
        (3, 4, False),
    ]


@pytest.mark.parametrize("phase_type", [PhaseType.DRAW, PhaseType.AWARD])
def test_non_playing_phases_have_no_encounters(phase_type):
    result = resolve_bracket(make_phase(phase_type), 6)
    assert result.skeleton == []
    assert result.total_encounters == 0


@pytest.mark.parametrize("phase_type", list(PhaseType))
@pytest.mark.parametrize("unit_count", [0, 1])
def test_fewer_than_two_units_is_an_error(phase_type, unit_count):
    with pytest.raises(BracketResolutionError):
        resolve_bracket(make_phase(phase_type, pools=1), unit_count)


# ----------------------------------------------------------------------------
# Flexible generator / unit binding
# ----------------------------------------------------------------------------


def test_flexible_generator_without_byes():
    spec = GenerateBracketSpec(type=PhaseType.SINGLE_ELIMINATION, calculate_byes=False)
    result = resolve_flexible(spec, 5)

    assert result.bracket_size == 8
    assert result.bye_count == 3
    assert len(result.skeleton) == 4


def test_flexible_generator_with_consolation():
    spec = GenerateBracketSpec(type=PhaseType.SINGLE_ELIMINATION, consolation=True)
    assert resolve_flexible(spec, 4).total_encounters == 4


def test_bind_units_maps_seeds():
    result = resolve_bracket(make_phase(PhaseType.SINGLE_ELIMINATION), 4)
    bound = bind_units(result, [10, 20, 30, 40])

    first_round = [(e.unit1_id, e.unit2_id) for e in bound if e.round_number == 1]
    assert first_round == [(10, 40), (20, 30)]
    # Later rounds are fed by earlier encounters
    assert all(e.unit1_id is None and e.unit2_id is None for e in bound if e.round_number == 2)
    # The resolution itself is untouched
    assert result.skeleton[0].unit1_id is None


def test_bind_units_needs_enough_ids():
    result = resolve_bracket(make_phase(PhaseType.SINGLE_ELIMINATION), 4)
    with pytest.raises(BracketResolutionError):
        bind_units(result, [1, 2])
