"""
Time slot generation.

Slots are built in memory first (build_slots is pure), then written in one
transaction: matches are unbound from the old slots, the old slots are
deleted, the new ones inserted and the Schedule row updated. A failed
commit rolls back to the previous slot set and the whole unit is retried.

Each day's window is resolved from the tournament's wall-clock times in its
timezone, so slots across a DST change keep their local start times while
being stored as UTC instants.
"""
import logging
import math
import threading
from dataclasses import asdict, dataclass
from datetime import date, datetime, timedelta
from typing import Any, Dict, List, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from courtside import config
from courtside.errors import GenerationFailure, NotFoundError, ValidationError
from courtside.models.match import MATCH_COMPLETED, MATCH_IN_PROGRESS, MATCH_SCHEDULED, MATCH_PENDING, Match
from courtside.models.schedule import Schedule
from courtside.models.time_slot import SLOT_AVAILABLE, TimeSlot
from courtside.models.tournament import Tournament
from courtside.utils.time_display import local_to_utc, parse_hhmm, utc_now

logger = logging.getLogger(__name__)

MIN_SLOT_DURATION = 15
MAX_SLOT_DURATION = 300


@dataclass
class SlotParams:
    """Overrides for a generation run; unset fields fall back to the tournament."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None
    daily_start_time: Optional[str] = None
    daily_end_time: Optional[str] = None
    courts: Optional[List[str]] = None
    slot_duration: Optional[int] = None
    break_minutes: Optional[int] = None

    def overrides(self) -> Dict[str, Any]:
        return {k: v for k, v in asdict(self).items() if v is not None}


@dataclass
class SlotSpec:
    court: str
    start_time: datetime
    end_time: datetime
    duration_minutes: int

    def to_model(self, tournament_id: int) -> TimeSlot:
        return TimeSlot(
            tournament_id=tournament_id,
            court=self.court,
            start_time=self.start_time,
            end_time=self.end_time,
            duration_minutes=self.duration_minutes,
            status=SLOT_AVAILABLE,
        )


def resolve_params(tournament: Tournament, params: Optional[SlotParams] = None) -> SlotParams:
    """Fill every field of a SlotParams from the tournament where not overridden."""
    resolved = SlotParams(
        start_date=tournament.start_date,
        end_date=tournament.end_date,
        daily_start_time=tournament.daily_start_time,
        daily_end_time=tournament.daily_end_time,
        courts=list(tournament.available_courts or []),
        slot_duration=tournament.match_duration or config.DEFAULT_MATCH_DURATION,
        break_minutes=tournament.break_between_matches or 0,
    )
    if params is not None:
        for key, value in params.overrides().items():
            setattr(resolved, key, value)
    return resolved


def capped_end_date(start_date: date, end_date: date, max_days: Optional[int] = None) -> date:
    """Last day that gets slots once the day cap applies."""
    cap = config.MAX_SCHEDULE_DAYS if max_days is None else max_days
    return min(end_date, start_date + timedelta(days=cap - 1))


def _normalize_courts(courts: Optional[List[str]]) -> List[str]:
    labels = [str(c).strip() for c in (courts or [])]
    if not labels or any(not c for c in labels):
        raise ValidationError("At least one named court is required", invariant="courts")
    if len(set(labels)) != len(labels):
        raise ValidationError(f"Duplicate court labels: {labels}", invariant="courts")
    return labels


def _check_no_overlap(specs: List[SlotSpec]) -> None:
    by_court: Dict[str, List[SlotSpec]] = {}
    for spec in specs:
        by_court.setdefault(spec.court, []).append(spec)
    for court, court_specs in by_court.items():
        court_specs.sort(key=lambda s: s.start_time)
        for earlier, later in zip(court_specs, court_specs[1:]):
            if later.start_time < earlier.end_time:
                raise GenerationFailure(
                    f"Generated slots overlap on court {court} at {later.start_time}",
                    invariant="slot-no-overlap",
                )


def build_slots(
    tournament: Tournament,
    *,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    daily_start_time: Optional[str] = None,
    daily_end_time: Optional[str] = None,
    courts: Optional[List[str]] = None,
    slot_duration: Optional[int] = None,
    break_minutes: Optional[int] = None,
    max_days: Optional[int] = None,
) -> List[SlotSpec]:
    """
    Build the slot grid for a tournament without touching the database.

    For each day in [start_date, end_date] (capped at max_days) and each
    court, slots start at the daily start time and step by duration + break;
    a slot is emitted only when it ends by the daily end time.
    """
    p = resolve_params(
        tournament,
        SlotParams(
            start_date=start_date,
            end_date=end_date,
            daily_start_time=daily_start_time,
            daily_end_time=daily_end_time,
            courts=courts,
            slot_duration=slot_duration,
            break_minutes=break_minutes,
        ),
    )

    day_start = parse_hhmm(p.daily_start_time, "daily_start_time")
    day_end = parse_hhmm(p.daily_end_time, "daily_end_time")
    if day_start >= day_end:
        raise ValidationError(
            f"Daily start {p.daily_start_time} must be before daily end {p.daily_end_time}",
            invariant="daily-window",
        )
    if not isinstance(p.slot_duration, int) or not MIN_SLOT_DURATION <= p.slot_duration <= MAX_SLOT_DURATION:
        raise ValidationError(
            f"Slot duration must be {MIN_SLOT_DURATION}-{MAX_SLOT_DURATION} minutes, got {p.slot_duration}",
            invariant="slot-duration",
        )
    if not isinstance(p.break_minutes, int) or p.break_minutes < 0:
        raise ValidationError(f"Break must be a non-negative number of minutes, got {p.break_minutes}")
    labels = _normalize_courts(p.courts)

    days = (p.end_date - p.start_date).days + 1
    if days <= 0:
        raise ValidationError(f"End date {p.end_date} is before start date {p.start_date}", invariant="date-range")
    last_day = capped_end_date(p.start_date, p.end_date, max_days)
    if last_day < p.end_date:
        capped = (last_day - p.start_date).days + 1
        logger.warning(
            "Tournament %s spans %d days; generating slots for the first %d only", tournament.id, days, capped
        )
        days = capped

    duration = timedelta(minutes=p.slot_duration)
    step = duration + timedelta(minutes=p.break_minutes)
    specs: List[SlotSpec] = []
    for offset in range(days):
        day = p.start_date + timedelta(days=offset)
        window_start = local_to_utc(day, day_start, tournament.timezone)
        window_end = local_to_utc(day, day_end, tournament.timezone)
        for court in labels:
            cursor = window_start
            while cursor + duration <= window_end:
                specs.append(
                    SlotSpec(
                        court=court,
                        start_time=cursor,
                        end_time=cursor + duration,
                        duration_minutes=p.slot_duration,
                    )
                )
                cursor += step

    _check_no_overlap(specs)
    return specs


def _unbind_matches(session: Session, tournament_id: int) -> int:
    bound = session.exec(
        select(Match).where(Match.tournament_id == tournament_id, Match.time_slot_id.is_not(None))
    ).all()
    for match in bound:
        match.time_slot_id = None
        # Started and finished matches keep where they were played
        if match.status not in (MATCH_IN_PROGRESS, MATCH_COMPLETED):
            match.scheduled_at = None
            match.court = None
        if match.status == MATCH_SCHEDULED:
            match.status = MATCH_PENDING
        session.add(match)
    return len(bound)


def _record_schedule(session: Session, tournament_id: int, p: SlotParams, total_slots: int) -> Schedule:
    schedule = session.exec(select(Schedule).where(Schedule.tournament_id == tournament_id)).first()
    if schedule is None:
        schedule = Schedule(
            tournament_id=tournament_id,
            start_date=p.start_date,
            end_date=p.end_date,
            daily_start_time=p.daily_start_time,
            daily_end_time=p.daily_end_time,
            slot_duration=p.slot_duration,
        )
    total_matches = len(session.exec(select(Match.id).where(Match.tournament_id == tournament_id)).all())

    schedule.start_date = p.start_date
    schedule.end_date = p.end_date
    schedule.daily_start_time = p.daily_start_time
    schedule.daily_end_time = p.daily_end_time
    schedule.courts = list(p.courts)
    schedule.slot_duration = p.slot_duration
    schedule.break_between_matches = p.break_minutes
    schedule.total_slots = total_slots
    schedule.total_matches = total_matches
    schedule.scheduled_matches = 0
    schedule.estimated_duration_hours = math.ceil(total_matches * p.slot_duration / len(p.courts) / 60)
    schedule.generated_at = utc_now()
    session.add(schedule)
    return schedule


def _replace_slots(session: Session, tournament_id: int, specs: List[SlotSpec], p: SlotParams) -> List[TimeSlot]:
    unbound = _unbind_matches(session, tournament_id)
    old_slots = session.exec(select(TimeSlot).where(TimeSlot.tournament_id == tournament_id)).all()
    for slot in old_slots:
        session.delete(slot)
    # Deletes must reach the database before inserts reuse (court, start_time)
    session.flush()

    new_slots = [spec.to_model(tournament_id) for spec in specs]
    session.add_all(new_slots)
    _record_schedule(session, tournament_id, p, len(new_slots))
    session.flush()

    logger.debug(
        "Tournament %d: unbound %d matches, replaced %d slots with %d",
        tournament_id,
        unbound,
        len(old_slots),
        len(new_slots),
    )
    return new_slots


def generate_slots(
    session: Session,
    tournament_id: int,
    params: Optional[SlotParams] = None,
    *,
    max_days: Optional[int] = None,
    retries: Optional[int] = None,
    cancel_event: Optional[threading.Event] = None,
) -> List[TimeSlot]:
    """
    Replace every slot of a tournament with a freshly built grid.

    Input errors raise ValidationError before anything is written. Database
    errors roll back to the previous slot set; after `retries` extra attempts
    (SLOT_GENERATION_RETRIES by default) GenerationFailure is raised. A set
    cancel_event aborts the run before it commits.
    """
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found")

    p = resolve_params(tournament, params)
    specs = build_slots(tournament, max_days=max_days, **p.overrides())
    # The schedule summary covers only the days that received slots
    p.end_date = capped_end_date(p.start_date, p.end_date, max_days)

    attempts = 1 + (config.SLOT_GENERATION_RETRIES if retries is None else max(retries, 0))
    last_error: Optional[SQLAlchemyError] = None
    for attempt in range(1, attempts + 1):
        try:
            slots = _replace_slots(session, tournament_id, specs, p)
            if cancel_event is not None and cancel_event.is_set():
                session.rollback()
                raise GenerationFailure(
                    f"Slot generation for tournament {tournament_id} was cancelled", invariant="cancelled"
                )
            session.commit()
        except SQLAlchemyError as exc:
            session.rollback()
            last_error = exc
            logger.warning(
                "Slot generation for tournament %d failed (attempt %d/%d): %s",
                tournament_id,
                attempt,
                attempts,
                exc,
            )
            continue

        logger.info(
            "Generated %d slots for tournament %d (%s to %s, %d courts)",
            len(slots),
            tournament_id,
            p.start_date,
            p.end_date,
            len(p.courts),
        )
        return slots

    logger.error("Slot generation for tournament %d gave up after %d attempts", tournament_id, attempts)
    raise GenerationFailure(
        f"Slot generation for tournament {tournament_id} failed after {attempts} attempts: {last_error}",
        invariant="slot-generation-atomic",
    ) from last_error
