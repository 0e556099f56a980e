from courtside.models.bracket import Bracket
from courtside.models.match import Match
from courtside.models.schedule import Schedule
from courtside.models.team import Team
from courtside.models.time_slot import TimeSlot
from courtside.models.tournament import Tournament

__all__ = [
    "Tournament",
    "Team",
    "Bracket",
    "Match",
    "TimeSlot",
    "Schedule",
]
