"""
Encounter duration derivation.

duration = per_game_minutes * best_of * matches_per_encounter + match_buffer_minutes

- per_game_minutes: phase match_duration_minutes, else division
  game_duration_minutes, else 20
- best_of: phase best_of, else division games_per_match, else 1

changeover_minutes is not part of the duration: it is the minimum gap the
allocator leaves between consecutive encounters on the same court.
"""
from typing import Optional

DEFAULT_GAME_MINUTES = 20
DEFAULT_CHANGEOVER_MINUTES = 2
DEFAULT_BUFFER_MINUTES = 5


def encounter_duration_minutes(
    phase_match_minutes: Optional[int] = None,
    phase_best_of: Optional[int] = None,
    game_duration_minutes: Optional[int] = None,
    games_per_match: Optional[int] = None,
    matches_per_encounter: Optional[int] = None,
    match_buffer_minutes: Optional[int] = None,
) -> int:
    per_game = phase_match_minutes or game_duration_minutes or DEFAULT_GAME_MINUTES
    best_of = phase_best_of or games_per_match or 1
    per_encounter = matches_per_encounter or 1
    buffer = DEFAULT_BUFFER_MINUTES if match_buffer_minutes is None else match_buffer_minutes
    return per_game * best_of * per_encounter + buffer


def duration_for(division, phase=None) -> int:
    """Duration for a Division row and an optional DivisionPhase row."""
    return encounter_duration_minutes(
        phase_match_minutes=getattr(phase, "match_duration_minutes", None),
        phase_best_of=getattr(phase, "best_of", None),
        game_duration_minutes=division.game_duration_minutes,
        games_per_match=division.games_per_match,
        matches_per_encounter=division.matches_per_encounter,
        match_buffer_minutes=division.match_buffer_minutes,
    )
