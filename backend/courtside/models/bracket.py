from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime
from sqlmodel import Column, Field, Relationship, SQLModel

from courtside.utils.time_display import utc_now

if TYPE_CHECKING:
    from courtside.models.match import Match
    from courtside.models.tournament import Tournament

BRACKET_ACTIVE = "active"
BRACKET_COMPLETED = "completed"


class Bracket(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    # One active bracket per tournament; regeneration replaces the row
    tournament_id: int = Field(foreign_key="tournament.id", unique=True)
    format: str  # single-elimination | round-robin
    team_ids: List[int] = Field(default_factory=list, sa_column=Column(JSON))
    total_teams: int
    total_rounds: int
    status: str = Field(default=BRACKET_ACTIVE)

    # Denormalized round tree for rendering:
    # {"rounds": [{"round": 1, "matches": [{"match_number": 1, "team1_id": .., "team2_id": .., "is_bye": false}]}]}
    rounds_json: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON))

    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    runner_up_team_id: Optional[int] = Field(default=None, foreign_key="team.id")
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    tournament: "Tournament" = Relationship(back_populates="bracket")
    matches: List["Match"] = Relationship(back_populates="bracket")

    def round_nodes(self, round_number: int) -> List[Dict[str, Any]]:
        for rnd in (self.rounds_json or {}).get("rounds", []):
            if rnd.get("round") == round_number:
                return rnd.get("matches", [])
        return []

    def node(self, round_number: int, match_number: int) -> Optional[Dict[str, Any]]:
        for node in self.round_nodes(round_number):
            if node.get("match_number") == match_number:
                return node
        return None
