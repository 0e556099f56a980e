from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, DateTime
from sqlmodel import Column, Field, Relationship, SQLModel

from courtside.utils.time_display import utc_now

if TYPE_CHECKING:
    from courtside.models.bracket import Bracket
    from courtside.models.match import Match
    from courtside.models.schedule import Schedule
    from courtside.models.team import Team
    from courtside.models.time_slot import TimeSlot

FORMAT_SINGLE_ELIMINATION = "single-elimination"
FORMAT_DOUBLE_ELIMINATION = "double-elimination"
FORMAT_ROUND_ROBIN = "round-robin"


class Tournament(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    format: str = Field(default=FORMAT_SINGLE_ELIMINATION)  # single-elimination | round-robin | double-elimination
    match_format: str = Field(default="best-of-3")  # best-of-3 | best-of-5
    game_format: str = Field(default="regular")  # regular | tiebreak-8 | tiebreak-10

    # Scheduling window; daily times are wall-clock "HH:MM" in `timezone`
    start_date: date
    end_date: date
    daily_start_time: str = Field(default="18:00")
    daily_end_time: str = Field(default="22:00")
    timezone: str = Field(default="UTC")
    match_duration: int = Field(default=60)  # minutes
    break_between_matches: int = Field(default=0)  # minutes
    available_courts: Optional[List[str]] = Field(default=None, sa_column=Column(JSON))
    auto_schedule_enabled: bool = Field(default=False)

    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    # Relationships
    teams: List["Team"] = Relationship(back_populates="tournament")
    bracket: Optional["Bracket"] = Relationship(
        back_populates="tournament", sa_relationship_kwargs={"uselist": False}
    )
    matches: List["Match"] = Relationship(back_populates="tournament")
    time_slots: List["TimeSlot"] = Relationship(back_populates="tournament")
    schedule: Optional["Schedule"] = Relationship(
        back_populates="tournament", sa_relationship_kwargs={"uselist": False}
    )
