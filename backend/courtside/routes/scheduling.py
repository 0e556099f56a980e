"""
Schedule endpoints: slot/schedule generation, assignment, manual moves and
a binding consistency check. Times are returned as UTC instants plus a
rendering in the tournament's timezone.
"""
from datetime import date, datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from courtside.auth import Authorizer, get_actor_id, get_authorizer
from courtside.database import get_session
from courtside.models.schedule import Schedule
from courtside.models.time_slot import TimeSlot
from courtside.routes.common import get_match_or_404, get_tournament_or_404, mutation_guard
from courtside.routes.matches import MatchRead, match_to_read
from courtside.services import match_scheduler
from courtside.services.slot_generator import SlotParams, generate_slots
from courtside.utils.time_display import format_local

router = APIRouter()


class ScheduleGenerateRequest(BaseModel):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    daily_start_time: Optional[str] = None
    daily_end_time: Optional[str] = None
    courts: Optional[List[str]] = None
    slot_duration: Optional[int] = None
    break_minutes: Optional[int] = None

    def to_params(self) -> SlotParams:
        return SlotParams(**self.model_dump())


class ScheduleRead(BaseModel):
    id: int
    tournament_id: int
    start_date: date
    end_date: date
    daily_start_time: str
    daily_end_time: str
    courts: List[str]
    slot_duration: int
    break_between_matches: int
    total_slots: int
    total_matches: int
    scheduled_matches: int
    estimated_duration_hours: int
    generated_at: datetime

    class Config:
        from_attributes = True


class SlotRead(BaseModel):
    id: int
    court: str
    start_time: datetime
    end_time: datetime
    start_local: Optional[str] = None
    end_local: Optional[str] = None
    duration_minutes: int
    status: str
    match_id: Optional[int] = None


class ScheduleView(BaseModel):
    schedule: Optional[ScheduleRead] = None
    slots: List[SlotRead]


class RescheduleRequest(BaseModel):
    slot_id: int


class SwapRequest(BaseModel):
    match_a_id: int
    match_b_id: int


def _slot_to_read(slot: TimeSlot, tz_name: Optional[str]) -> SlotRead:
    return SlotRead(
        id=slot.id,
        court=slot.court,
        start_time=slot.start_time,
        end_time=slot.end_time,
        start_local=format_local(slot.start_time, tz_name),
        end_local=format_local(slot.end_time, tz_name),
        duration_minutes=slot.duration_minutes,
        status=slot.status,
        match_id=slot.match_id,
    )


@router.post("/tournaments/{tournament_id}/schedule/generate", response_model=ScheduleRead)
def generate_schedule(
    tournament_id: int,
    payload: Optional[ScheduleGenerateRequest] = None,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> ScheduleRead:
    """Regenerate every slot (tournament settings unless overridden), then assign ready matches."""
    get_tournament_or_404(session, tournament_id)
    params = payload.to_params() if payload else None
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        schedule = match_scheduler.generate_schedule(session, tournament_id, params)
    return ScheduleRead.model_validate(schedule)


@router.post("/tournaments/{tournament_id}/schedule/slots", response_model=Dict[str, int])
def regenerate_slots(
    tournament_id: int,
    payload: Optional[ScheduleGenerateRequest] = None,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, int]:
    """Regenerate slots only; every match loses its slot binding."""
    get_tournament_or_404(session, tournament_id)
    params = payload.to_params() if payload else None
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        slots = generate_slots(session, tournament_id, params)
    return {"total_slots": len(slots)}


@router.get("/tournaments/{tournament_id}/schedule", response_model=ScheduleView)
def get_schedule(tournament_id: int, session: Session = Depends(get_session)) -> ScheduleView:
    tournament = get_tournament_or_404(session, tournament_id)
    schedule = session.exec(select(Schedule).where(Schedule.tournament_id == tournament_id)).first()
    slots = session.exec(
        select(TimeSlot).where(TimeSlot.tournament_id == tournament_id).order_by(TimeSlot.start_time, TimeSlot.court)
    ).all()
    return ScheduleView(
        schedule=ScheduleRead.model_validate(schedule) if schedule else None,
        slots=[_slot_to_read(s, tournament.timezone) for s in slots],
    )


@router.post("/tournaments/{tournament_id}/schedule/assign", response_model=Dict[str, Any])
def assign_matches(
    tournament_id: int,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Any]:
    """Bind every ready, unscheduled match to the earliest available slot."""
    get_tournament_or_404(session, tournament_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        result = match_scheduler.assign(session, tournament_id)
    return result.to_dict()


@router.put("/tournaments/{tournament_id}/matches/{match_id}/reschedule", response_model=MatchRead)
def reschedule_match(
    tournament_id: int,
    match_id: int,
    payload: RescheduleRequest,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> MatchRead:
    """Move a match to a specific slot. 409 when another match holds it."""
    get_match_or_404(session, tournament_id, match_id)
    slot = session.get(TimeSlot, payload.slot_id)
    if not slot or slot.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail="Time slot not found")
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        match = match_scheduler.reschedule(session, match_id, payload.slot_id)
    return match_to_read(match, get_tournament_or_404(session, tournament_id).timezone)


@router.post("/tournaments/{tournament_id}/schedule/swap", response_model=List[MatchRead])
def swap_matches(
    tournament_id: int,
    payload: SwapRequest,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> List[MatchRead]:
    """Exchange the slots of two scheduled matches."""
    get_match_or_404(session, tournament_id, payload.match_a_id)
    get_match_or_404(session, tournament_id, payload.match_b_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        match_a, match_b = match_scheduler.swap(session, payload.match_a_id, payload.match_b_id)
    tz_name = get_tournament_or_404(session, tournament_id).timezone
    return [match_to_read(match_a, tz_name), match_to_read(match_b, tz_name)]


@router.delete("/tournaments/{tournament_id}/matches/{match_id}/slot", response_model=MatchRead)
def unschedule_match(
    tournament_id: int,
    match_id: int,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> MatchRead:
    get_match_or_404(session, tournament_id, match_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        match = match_scheduler.unschedule(session, match_id)
    return match_to_read(match, get_tournament_or_404(session, tournament_id).timezone)


@router.get("/tournaments/{tournament_id}/schedule/check", response_model=Dict[str, Any])
def check_schedule(tournament_id: int, session: Session = Depends(get_session)) -> Dict[str, Any]:
    """Report match/slot binding inconsistencies (empty list means consistent)."""
    get_tournament_or_404(session, tournament_id)
    problems = match_scheduler.check_bindings(session, tournament_id)
    return {"ok": not problems, "problems": problems}
