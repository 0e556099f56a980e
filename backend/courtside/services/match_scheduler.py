"""
Match-to-slot binding.

Deterministic first-fit: ready matches in (round, match_number) order take
available slots in (start_time, court) order. A binding is always written on
both sides (TimeSlot.match_id and Match.time_slot_id) in the same commit;
check_bindings() reports any row where the two disagree.

Non-goals:
- Rest rules or match spacing
- Court balancing heuristics
- "Best fit" optimization
"""
import logging
import time
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import Session, select

from courtside.errors import NotFoundError, SlotConflictError, ValidationError
from courtside.models.match import (
    MATCH_COMPLETED,
    MATCH_IN_PROGRESS,
    MATCH_PENDING,
    MATCH_SCHEDULED,
    Match,
)
from courtside.models.schedule import Schedule
from courtside.models.time_slot import SLOT_AVAILABLE, SLOT_BOOKED, TimeSlot
from courtside.models.tournament import Tournament
from courtside.services.slot_generator import SlotParams, generate_slots

logger = logging.getLogger(__name__)


class AssignResult:
    """Structured result from an assign run"""

    def __init__(self):
        self.assigned: List[Tuple[int, int]] = []  # (match_id, slot_id)
        self.unassigned_match_ids: List[int] = []
        self.total_candidates = 0
        self.total_available_slots = 0
        self.duration_ms: Optional[int] = None

    @property
    def assigned_count(self) -> int:
        return len(self.assigned)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "assigned_count": self.assigned_count,
            "unassigned_count": len(self.unassigned_match_ids),
            "total_candidates": self.total_candidates,
            "total_available_slots": self.total_available_slots,
            "assigned": [{"match_id": m, "slot_id": s} for m, s in self.assigned],
            "unassigned_match_ids": self.unassigned_match_ids,
            "duration_ms": self.duration_ms,
        }


def get_match_sort_key(match: Match) -> Tuple:
    """Order: round -> match_number -> id"""
    return (match.round, match.match_number, match.id or 0)


def get_slot_sort_key(slot: TimeSlot) -> Tuple:
    """Order: start_time -> court -> id (chronological, court by court)"""
    return (slot.start_time, slot.court, slot.id or 0)


def _is_candidate_match(match: Match) -> bool:
    return (
        match.status in (MATCH_PENDING, MATCH_SCHEDULED)
        and match.has_both_teams
        and match.time_slot_id is None
    )


def _is_open_slot(slot: TimeSlot, not_before: Optional[datetime]) -> bool:
    if slot.status != SLOT_AVAILABLE or slot.match_id is not None:
        return False
    return not_before is None or slot.start_time >= not_before


def pair_matches_to_slots(
    matches: Sequence[Match],
    slots: Sequence[TimeSlot],
    not_before: Optional[datetime] = None,
) -> List[Tuple[Match, TimeSlot]]:
    """
    Pure pairing of ready matches with open slots.

    Matches without both teams, already holding a slot, or already started
    are skipped. Slots starting before `not_before` are skipped.
    """
    candidates = sorted((m for m in matches if _is_candidate_match(m)), key=get_match_sort_key)
    open_slots = sorted((s for s in slots if _is_open_slot(s, not_before)), key=get_slot_sort_key)
    return list(zip(candidates, open_slots))


def _bind(match: Match, slot: TimeSlot) -> None:
    slot.status = SLOT_BOOKED
    slot.match_id = match.id
    match.time_slot_id = slot.id
    match.scheduled_at = slot.start_time
    match.court = slot.court
    if match.status == MATCH_PENDING:
        match.status = MATCH_SCHEDULED


def _release_slot(slot: TimeSlot) -> None:
    slot.status = SLOT_AVAILABLE
    slot.match_id = None


def _clear_match_slot(match: Match) -> None:
    match.time_slot_id = None
    match.scheduled_at = None
    match.court = None
    if match.status == MATCH_SCHEDULED:
        match.status = MATCH_PENDING


def _get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id, populate_existing=True)
    if not match:
        raise NotFoundError(f"Match {match_id} not found", match_id=match_id)
    return match


def _get_slot(session: Session, slot_id: int) -> TimeSlot:
    slot = session.get(TimeSlot, slot_id, populate_existing=True)
    if not slot:
        raise NotFoundError(f"Time slot {slot_id} not found", slot_id=slot_id)
    return slot


def refresh_schedule_counts(session: Session, tournament_id: int) -> Optional[Schedule]:
    """Recompute Schedule.total_matches / scheduled_matches. Does not commit."""
    schedule = session.exec(select(Schedule).where(Schedule.tournament_id == tournament_id)).first()
    if schedule is None:
        return None
    session.flush()
    matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    schedule.total_matches = len(matches)
    schedule.scheduled_matches = sum(1 for m in matches if m.time_slot_id is not None)
    session.add(schedule)
    return schedule


def assign(session: Session, tournament_id: int, not_before: Optional[datetime] = None) -> AssignResult:
    """
    Bind every ready, unscheduled match of a tournament to the earliest open slot.

    Idempotent: a second run with nothing new to place changes nothing.
    """
    started = time.monotonic()
    result = AssignResult()

    matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    slots = session.exec(select(TimeSlot).where(TimeSlot.tournament_id == tournament_id)).all()

    candidates = [m for m in matches if _is_candidate_match(m)]
    result.total_candidates = len(candidates)
    result.total_available_slots = sum(1 for s in slots if _is_open_slot(s, not_before))

    pairs = pair_matches_to_slots(matches, slots, not_before)
    for match, slot in pairs:
        _bind(match, slot)
        session.add(match)
        session.add(slot)
        result.assigned.append((match.id, slot.id))

    placed = {m.id for m, _ in pairs}
    result.unassigned_match_ids = sorted(m.id for m in candidates if m.id not in placed)

    try:
        refresh_schedule_counts(session, tournament_id)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    result.duration_ms = int((time.monotonic() - started) * 1000)
    if pairs or result.unassigned_match_ids:
        logger.info(
            "Assigned %d matches for tournament %d (%d left without a slot)",
            result.assigned_count,
            tournament_id,
            len(result.unassigned_match_ids),
        )
    return result


def reschedule(session: Session, match_id: int, slot_id: int) -> Match:
    """
    Move a match onto a specific slot.

    The target must be available, booked by nobody (an orphan), or already
    this match's slot. The previous slot is freed in the same commit.
    """
    match = _get_match(session, match_id)
    slot = _get_slot(session, slot_id)

    if slot.tournament_id != match.tournament_id:
        raise ValidationError(
            f"Slot {slot_id} belongs to another tournament", match_id=match_id, slot_id=slot_id
        )
    if match.status in (MATCH_IN_PROGRESS, MATCH_COMPLETED):
        raise ValidationError(
            f"Match {match_id} is {match.status} and cannot be rescheduled", match_id=match_id, slot_id=slot_id
        )
    if slot.match_id is not None and slot.match_id != match.id:
        raise SlotConflictError(
            f"Slot {slot_id} is already booked by match {slot.match_id}",
            match_id=match_id,
            slot_id=slot_id,
            invariant="slot-single-booking",
        )
    if match.time_slot_id == slot.id and slot.match_id == match.id and slot.status == SLOT_BOOKED:
        return match

    try:
        if match.time_slot_id is not None and match.time_slot_id != slot.id:
            previous = session.get(TimeSlot, match.time_slot_id, populate_existing=True)
            if previous is not None and previous.match_id in (match.id, None):
                _release_slot(previous)
                session.add(previous)
        _bind(match, slot)
        session.add(match)
        session.add(slot)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    session.refresh(match)
    logger.info("Rescheduled match %d to slot %d (%s, court %s)", match.id, slot.id, slot.start_time, slot.court)
    return match


def swap(session: Session, match_a_id: int, match_b_id: int) -> Tuple[Match, Match]:
    """Exchange the slots of two scheduled matches in one commit."""
    if match_a_id == match_b_id:
        raise ValidationError("Cannot swap a match with itself", match_id=match_a_id)

    match_a = _get_match(session, match_a_id)
    match_b = _get_match(session, match_b_id)
    if match_a.tournament_id != match_b.tournament_id:
        raise ValidationError("Matches belong to different tournaments", match_id=match_b_id)

    for m in (match_a, match_b):
        if m.status in (MATCH_IN_PROGRESS, MATCH_COMPLETED):
            raise ValidationError(f"Match {m.id} is {m.status} and cannot be moved", match_id=m.id)
        if m.time_slot_id is None:
            raise SlotConflictError(
                f"Match {m.id} has no slot to swap", match_id=m.id, invariant="swap-requires-slots"
            )

    slot_a = _get_slot(session, match_a.time_slot_id)
    slot_b = _get_slot(session, match_b.time_slot_id)
    for m, s in ((match_a, slot_a), (match_b, slot_b)):
        if s.match_id != m.id:
            raise SlotConflictError(
                f"Slot {s.id} does not point back at match {m.id}",
                match_id=m.id,
                slot_id=s.id,
                invariant="bidirectional-binding",
            )

    try:
        _bind(match_a, slot_b)
        _bind(match_b, slot_a)
        session.add_all([match_a, match_b, slot_a, slot_b])
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    session.refresh(match_a)
    session.refresh(match_b)
    logger.info("Swapped slots of matches %d and %d", match_a.id, match_b.id)
    return match_a, match_b


def unschedule(session: Session, match_id: int) -> Match:
    """Free the slot of a match that has not started."""
    match = _get_match(session, match_id)
    if match.status in (MATCH_IN_PROGRESS, MATCH_COMPLETED):
        raise ValidationError(f"Match {match_id} is {match.status} and cannot be unscheduled", match_id=match_id)
    if match.time_slot_id is None:
        return match

    try:
        slot = session.get(TimeSlot, match.time_slot_id, populate_existing=True)
        if slot is not None and slot.match_id in (match.id, None):
            _release_slot(slot)
            session.add(slot)
        _clear_match_slot(match)
        session.add(match)
        refresh_schedule_counts(session, match.tournament_id)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        raise

    session.refresh(match)
    logger.info("Unscheduled match %d", match.id)
    return match


def check_bindings(session: Session, tournament_id: int) -> List[str]:
    """
    Report every match/slot inconsistency of a tournament.

    An empty list means: each booked slot names exactly one match that points
    back at it, no match points at a slot that does not point back, and no
    two slots on the same court overlap.
    """
    problems: List[str] = []
    matches = {
        m.id: m for m in session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    }
    slots = session.exec(select(TimeSlot).where(TimeSlot.tournament_id == tournament_id)).all()
    slots_by_id = {s.id: s for s in slots}

    for slot in slots:
        if slot.status == SLOT_BOOKED and slot.match_id is None:
            problems.append(f"Slot {slot.id} is booked but names no match")
        elif slot.status == SLOT_AVAILABLE and slot.match_id is not None:
            problems.append(f"Slot {slot.id} is available but names match {slot.match_id}")
        if slot.match_id is not None:
            owner = matches.get(slot.match_id)
            if owner is None:
                problems.append(f"Slot {slot.id} names missing match {slot.match_id}")
            elif owner.time_slot_id != slot.id:
                problems.append(f"Slot {slot.id} names match {owner.id}, which points at slot {owner.time_slot_id}")

    for match in matches.values():
        if match.time_slot_id is None:
            continue
        slot = slots_by_id.get(match.time_slot_id)
        if slot is None:
            problems.append(f"Match {match.id} points at missing slot {match.time_slot_id}")
        elif slot.match_id != match.id:
            problems.append(f"Match {match.id} points at slot {slot.id}, which names match {slot.match_id}")

    by_court: Dict[str, List[TimeSlot]] = {}
    for slot in slots:
        by_court.setdefault(slot.court, []).append(slot)
    for court, court_slots in by_court.items():
        court_slots.sort(key=lambda s: s.start_time)
        for earlier, later in zip(court_slots, court_slots[1:]):
            if earlier.overlaps(later):
                problems.append(f"Slots {earlier.id} and {later.id} overlap on court {court}")

    return problems


def generate_schedule(
    session: Session,
    tournament_id: int,
    params: Optional[SlotParams] = None,
    *,
    max_days: Optional[int] = None,
) -> Schedule:
    """
    Regenerate slots for a tournament, then bind every ready match.

    Returns the refreshed Schedule row with its aggregate counts.
    """
    generate_slots(session, tournament_id, params, max_days=max_days)
    assign(session, tournament_id)

    schedule = session.exec(select(Schedule).where(Schedule.tournament_id == tournament_id)).first()
    if schedule is None:
        raise NotFoundError(f"Schedule for tournament {tournament_id} was not recorded")
    session.refresh(schedule)

    logger.info(
        "Schedule for tournament %d: %d slots, %d/%d matches placed, ~%dh",
        tournament_id,
        schedule.total_slots,
        schedule.scheduled_matches,
        schedule.total_matches,
        schedule.estimated_duration_hours,
    )
    return schedule


def auto_schedule_if_enabled(
    session: Session, tournament_id: int, not_before: Optional[datetime] = None
) -> Optional[AssignResult]:
    """Place newly ready matches when the tournament opted into auto scheduling."""
    tournament = session.get(Tournament, tournament_id)
    if tournament is None or not tournament.auto_schedule_enabled:
        return None
    if not tournament.available_courts:
        logger.warning("Tournament %d has auto scheduling on but no courts; skipping", tournament_id)
        return None

    has_slots = session.exec(select(TimeSlot.id).where(TimeSlot.tournament_id == tournament_id)).first()
    if has_slots is None:
        generate_slots(session, tournament_id)
    return assign(session, tournament_id, not_before=not_before)
