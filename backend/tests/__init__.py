# Force SQLModel table registration at test discovery time
# This ensures all models are registered before any test database creation
from courtflow.models.court import Court, CourtGroup, CourtGroupCourt  # noqa: F401
from courtflow.models.division import Division, DivisionPhase  # noqa: F401
from courtflow.models.encounter import Encounter  # noqa: F401
from courtflow.models.event import Event  # noqa: F401
from courtflow.models.template import TournamentTemplate  # noqa: F401
from courtflow.models.time_block import TimeBlock  # noqa: F401
