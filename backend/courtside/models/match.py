from datetime import datetime
from typing import TYPE_CHECKING, Any, Dict, Optional

from sqlalchemy import JSON, CheckConstraint, DateTime, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from courtside.utils.time_display import utc_now

if TYPE_CHECKING:
    from courtside.models.bracket import Bracket
    from courtside.models.tournament import Tournament

MATCH_PENDING = "pending"
MATCH_SCHEDULED = "scheduled"
MATCH_IN_PROGRESS = "in-progress"
MATCH_COMPLETED = "completed"

MATCH_STATUSES = (MATCH_PENDING, MATCH_SCHEDULED, MATCH_IN_PROGRESS, MATCH_COMPLETED)


class Match(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("bracket_id", "round", "match_number", name="uq_match_bracket_round_number"),
        CheckConstraint("team1_id IS NULL OR team2_id IS NULL OR team1_id != team2_id", name="ck_match_distinct_teams"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    bracket_id: int = Field(foreign_key="bracket.id", index=True)
    round: int  # 1-based
    match_number: int  # 1-based within round

    # Null until the feeder matches complete
    team1_id: Optional[int] = Field(default=None, foreign_key="team.id")
    team2_id: Optional[int] = Field(default=None, foreign_key="team.id")

    status: str = Field(default=MATCH_PENDING)  # pending | scheduled | in-progress | completed
    match_format: str = Field(default="best-of-3")
    game_format: str = Field(default="regular")
    score_json: Optional[Dict[str, Any]] = Field(default=None, sa_column=Column(JSON, nullable=True))
    winner_team_id: Optional[int] = Field(default=None, foreign_key="team.id")

    # Render cache of the bound slot; the slot row is the source of truth
    time_slot_id: Optional[int] = Field(default=None, foreign_key="timeslot.id", index=True)
    scheduled_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))  # UTC
    court: Optional[str] = Field(default=None)

    started_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    completed_at: Optional[datetime] = Field(default=None, sa_column=Column(DateTime, nullable=True))
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    tournament: "Tournament" = Relationship(back_populates="matches")
    bracket: "Bracket" = Relationship(back_populates="matches")

    @property
    def has_both_teams(self) -> bool:
        return self.team1_id is not None and self.team2_id is not None

    def team_for_side(self, side: str) -> Optional[int]:
        return self.team1_id if side == "team1" else self.team2_id
