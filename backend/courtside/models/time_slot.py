from datetime import datetime
from typing import TYPE_CHECKING, Optional

from sqlalchemy import DateTime, UniqueConstraint as SAUniqueConstraint
from sqlmodel import Column, Field, Relationship, SQLModel

from courtside.utils.time_display import utc_now

if TYPE_CHECKING:
    from courtside.models.tournament import Tournament

SLOT_AVAILABLE = "available"
SLOT_BOOKED = "booked"


class TimeSlot(SQLModel, table=True):
    __table_args__ = (
        SAUniqueConstraint("tournament_id", "court", "start_time", name="uq_slot_tournament_court_start"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    tournament_id: int = Field(foreign_key="tournament.id", index=True)
    court: str
    # Absolute instants, stored as naive UTC
    start_time: datetime = Field(sa_column=Column(DateTime, nullable=False, index=True))
    end_time: datetime = Field(sa_column=Column(DateTime, nullable=False))
    duration_minutes: int
    status: str = Field(default=SLOT_AVAILABLE)  # available | booked
    # Plain column, not a foreign key: Match.time_slot_id already references
    # this table and the pair would form a dependency cycle on delete.
    match_id: Optional[int] = Field(default=None, index=True)
    created_at: datetime = Field(default_factory=utc_now, sa_column=Column(DateTime, nullable=False))

    tournament: "Tournament" = Relationship(back_populates="time_slots")

    def overlaps(self, other: "TimeSlot") -> bool:
        return self.court == other.court and self.start_time < other.end_time and other.start_time < self.end_time
