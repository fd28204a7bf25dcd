"""Conflict detection on a grid and soft-constraint move evaluation."""
from datetime import datetime

from courtflow.services.conflict_detector import (
    COURT_OVERLAP,
    PLAYER_OVERLAP,
    ScheduleOccupancy,
    conflict_message,
    detect_conflicts,
    evaluate_move,
)
from courtflow.services.grid_snapshot import CourtSlot, EncounterSlot

COURTS = [CourtSlot(court_id=1, label="1"), CourtSlot(court_id=2, label="Center")]


def at(hour, minute=0):
    return datetime(2026, 3, 14, hour, minute)


def enc(encounter_id, court_id=None, start=None, duration=30, units=(None, None), label=None):
    slot = EncounterSlot(
        encounter_id=encounter_id,
        division_id=1,
        phase_id=1,
        duration_minutes=duration,
        unit1_id=units[0],
        unit2_id=units[1],
        label=label,
    )
    slot.place(court_id, start)
    return slot


# ----------------------------------------------------------------------------
# Occupancy primitive
# ----------------------------------------------------------------------------


class TestOccupancy:
    def test_adjacent_encounters_do_not_clash(self):
        occupancy = ScheduleOccupancy([enc(1, 1, at(9))])
        assert occupancy.is_free(1, (), at(9, 30), at(10))

    def test_changeover_gap_applies_on_both_sides(self):
        occupancy = ScheduleOccupancy([enc(1, 1, at(9))])

        assert not occupancy.is_free(1, (), at(9, 30), at(10), gap_minutes=5)
        assert occupancy.is_free(1, (), at(9, 35), at(10, 5), gap_minutes=5)
        # Ending right before the booking also needs the gap
        assert not occupancy.is_free(1, (), at(8, 30), at(9), gap_minutes=5)
        assert occupancy.is_free(1, (), at(8, 25), at(8, 55), gap_minutes=5)

    def test_unit_clash_on_other_court(self):
        occupancy = ScheduleOccupancy([enc(1, 1, at(9), units=(10, 11))])

        assert not occupancy.is_free(2, (11, 12), at(9, 15), at(9, 45))
        assert occupancy.is_free(2, (11, 12), at(9, 15), at(9, 45), check_units=False)

    def test_unscheduled_encounters_are_ignored(self):
        occupancy = ScheduleOccupancy([enc(1)])
        assert occupancy.court_bookings(1) == []


# ----------------------------------------------------------------------------
# Detection
# ----------------------------------------------------------------------------


class TestDetectConflicts:
    def test_clean_grid(self):
        encounters = [enc(1, 1, at(9)), enc(2, 1, at(9, 30)), enc(3, 2, at(9))]
        assert detect_conflicts(COURTS, encounters) == []

    def test_court_overlap(self):
        encounters = [enc(1, 2, at(9), label="Semi 1"), enc(2, 2, at(9, 15), label="Semi 2")]

        conflicts = detect_conflicts(COURTS, encounters)

        assert len(conflicts) == 1
        assert conflicts[0].conflict_type == COURT_OVERLAP
        assert conflicts[0].court_id == 2
        assert conflicts[0].message == 'Court Center: "Semi 1" overlaps with "Semi 2"'

    def test_long_encounter_overlapping_two_later_ones(self):
        encounters = [enc(1, 1, at(9), duration=120), enc(2, 1, at(9, 30)), enc(3, 1, at(10, 30))]

        pairs = {(c.first_encounter_id, c.second_encounter_id) for c in detect_conflicts(COURTS, encounters)}

        assert pairs == {(1, 2), (1, 3)}

    def test_player_overlap(self):
        encounters = [enc(1, 1, at(9), units=(10, 11)), enc(2, 2, at(9, 15), units=(11, 12))]

        conflicts = detect_conflicts(COURTS, encounters)

        assert [c.conflict_type for c in conflicts] == [PLAYER_OVERLAP]
        assert conflicts[0].unit_id == 11
        assert detect_conflicts(COURTS, encounters, include_player_overlaps=False) == []

    def test_deterministic(self):
        encounters = [enc(i, 1 + i % 2, at(9, i * 5), units=(i, i + 1)) for i in range(1, 8)]
        first = [c.to_dict() for c in detect_conflicts(COURTS, encounters)]
        second = [c.to_dict() for c in detect_conflicts(COURTS, list(reversed(encounters)))]
        assert first == second


# ----------------------------------------------------------------------------
# Moves
# ----------------------------------------------------------------------------


class TestEvaluateMove:
    def test_move_into_occupied_court(self):
        encounters = [enc(1, 1, at(9), label="A"), enc(2, 2, at(9), label="B")]
        moved = encounters[1]
        moved.place(1, at(9, 15))

        conflicts = evaluate_move(COURTS, encounters, moved)

        assert len(conflicts) == 1
        assert conflicts[0].first_encounter_id == 2
        assert conflicts[0].second_encounter_id == 1
        assert conflict_message(conflicts) == 'Moved with conflicts: Court 1: "B" overlaps with "A"'

    def test_move_to_free_slot(self):
        encounters = [enc(1, 1, at(9)), enc(2, 2, at(9))]
        moved = encounters[1]
        moved.place(1, at(9, 30))

        conflicts = evaluate_move(COURTS, encounters, moved)

        assert conflicts == []
        assert conflict_message(conflicts) == "Encounter moved"

    def test_preexisting_conflicts_elsewhere_not_reported(self):
        encounters = [enc(1, 2, at(9)), enc(2, 2, at(9, 10)), enc(3, 1, at(11))]
        moved = encounters[2]
        moved.place(1, at(12))

        assert evaluate_move(COURTS, encounters, moved) == []

    def test_unscheduled_move_has_no_conflicts(self):
        encounters = [enc(1, 1, at(9))]
        assert evaluate_move(COURTS, encounters, enc(2)) == []
