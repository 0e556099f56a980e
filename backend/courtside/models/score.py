"""
Point-by-point score embedded in Match.score_json.

Point counters hold raw point counts for the current game (tennis display
values such as 15/30/40/AD are derived at render time). Completed sets are
append-only; the current set's games live in team1_games/team2_games.
"""
from typing import List, Literal, Optional

from pydantic import BaseModel, Field

Side = Literal["team1", "team2"]


class SetScore(BaseModel):
    number: int = Field(ge=1)
    team1_games: int = Field(default=0, ge=0)
    team2_games: int = Field(default=0, ge=0)
    # Points of the deciding tiebreak game, when the set had one
    team1_tiebreak: Optional[int] = None
    team2_tiebreak: Optional[int] = None
    is_tiebreak: bool = False
    is_completed: bool = True


class Score(BaseModel):
    team1_points: int = 0
    team2_points: int = 0
    team1_games: int = 0
    team2_games: int = 0
    team1_sets: int = 0
    team2_sets: int = 0
    current_set: int = 1
    # True while the current game is a tiebreak (6-6, or a match-tiebreak format)
    in_tiebreak: bool = False
    sets: List[SetScore] = Field(default_factory=list)

    is_deuce: bool = False
    advantage: Optional[Side] = None
    is_match_point: bool = False
    is_set_point: bool = False
    winner: Optional[Side] = None

    def points(self, side: str) -> int:
        return self.team1_points if side == "team1" else self.team2_points

    def games(self, side: str) -> int:
        return self.team1_games if side == "team1" else self.team2_games

    def sets_won(self, side: str) -> int:
        return self.team1_sets if side == "team1" else self.team2_sets
