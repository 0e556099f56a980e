from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, DateTime, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from courtside.utils.time_display import utc_now

if TYPE_CHECKING:
    from courtside.models.tournament import Tournament

SKILL_LEVELS = ("beginner", "intermediate", "advanced", "professional")


class Team(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "seed", name="uq_tournament_seed"),
        SAUniqueConstraint("tournament_id", "name", name="uq_tournament_team_name"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    name: str
    player_ids: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    seed: Optional[int] = Field(default=None)  # 1-based (1=highest)
    average_skill_level: str = Field(default="intermediate")
    # Teams referenced by matches are deactivated, never deleted
    is_active: bool = Field(default=True)
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    tournament: "Tournament" = Relationship(back_populates="teams")
