from datetime import date, datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import JSON, DateTime
from sqlmodel import Column, Field, Relationship, SQLModel

from courtside.utils.time_display import utc_now

if TYPE_CHECKING:
    from courtside.models.tournament import Tournament


class Schedule(SQLModel, table=True):
    """Slot-generation parameters and aggregate counts; one per tournament."""

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", unique=True)
    start_date: date
    end_date: date
    daily_start_time: str
    daily_end_time: str
    courts: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    slot_duration: int  # minutes
    break_between_matches: int = Field(default=0)
    total_slots: int = Field(default=0)
    total_matches: int = Field(default=0)
    scheduled_matches: int = Field(default=0)
    estimated_duration_hours: int = Field(default=0)
    generated_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    tournament: "Tournament" = Relationship(back_populates="schedule")
