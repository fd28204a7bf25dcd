"""Encounter duration derivation from division and phase configuration."""
from types import SimpleNamespace

from courtflow.utils.durations import duration_for, encounter_duration_minutes


def division(**overrides):
    values = dict(
        game_duration_minutes=20,
        games_per_match=1,
        matches_per_encounter=1,
        match_buffer_minutes=5,
    )
    values.update(overrides)
    return SimpleNamespace(**values)


def test_defaults():
    assert encounter_duration_minutes() == 25


def test_division_configuration():
    assert duration_for(division()) == 25
    assert duration_for(division(games_per_match=3)) == 65
    assert duration_for(division(matches_per_encounter=3, match_buffer_minutes=0)) == 60


def test_phase_overrides_division():
    phase = SimpleNamespace(match_duration_minutes=15, best_of=3)
    assert duration_for(division(games_per_match=5), phase) == 50


def test_phase_without_overrides_falls_back():
    phase = SimpleNamespace(match_duration_minutes=None, best_of=None)
    assert duration_for(division(game_duration_minutes=30), phase) == 35


def test_zero_buffer_is_respected():
    assert encounter_duration_minutes(game_duration_minutes=20, match_buffer_minutes=0) == 20
