from courtflow.models.court import Court, CourtGroup, CourtGroupCourt
from courtflow.models.division import Division, DivisionPhase
from courtflow.models.encounter import Encounter, EncounterStatus
from courtflow.models.event import Event
from courtflow.models.template import TournamentTemplate
from courtflow.models.time_block import TimeBlock

__all__ = [
    "Event",
    "Division",
    "DivisionPhase",
    "Court",
    "CourtGroup",
    "CourtGroupCourt",
    "TimeBlock",
    "Encounter",
    "EncounterStatus",
    "TournamentTemplate",
]
