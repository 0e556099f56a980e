"""
Match runtime: start, point-by-point scoring and direct final scores.

A point that decides the match completes it and advances the winner in the
same commit, so a completed match never exists without its advancement.
"""
import logging

from sqlmodel import Session

from courtside.errors import NotFoundError, TournamentEngineError, ValidationError
from courtside.models.match import (
    MATCH_COMPLETED,
    MATCH_IN_PROGRESS,
    MATCH_PENDING,
    MATCH_SCHEDULED,
    Match,
)
from courtside.models.score import Score, SetScore
from courtside.services.bracket_service import advance_winner
from courtside.services.match_scheduler import auto_schedule_if_enabled
from courtside.services.scoring import (
    SIDES,
    award_point,
    initialize_score,
    load_score,
    match_tiebreak_target,
    validate_score,
)
from courtside.utils.time_display import utc_now

logger = logging.getLogger(__name__)


def _get_match(session: Session, match_id: int) -> Match:
    match = session.get(Match, match_id)
    if not match:
        raise NotFoundError(f"Match {match_id} not found", match_id=match_id)
    return match


def _complete(session: Session, match: Match, score: Score) -> None:
    """Mark the match completed and advance its winner; caller commits."""
    match.score_json = score.model_dump()
    match.status = MATCH_COMPLETED
    match.winner_team_id = match.team_for_side(score.winner)
    match.completed_at = utc_now()
    session.add(match)
    session.flush()
    advance_winner(session, match, commit=False)


def _commit_or_rollback(session: Session) -> None:
    try:
        session.commit()
    except Exception:
        session.rollback()
        raise


def start_match(session: Session, match_id: int) -> Match:
    """Move a ready match to in-progress. Starting a running match is a no-op."""
    match = _get_match(session, match_id)
    if match.status == MATCH_IN_PROGRESS:
        return match
    if match.status == MATCH_COMPLETED:
        raise ValidationError(f"Match {match_id} is already completed", match_id=match_id)
    if match.status not in (MATCH_PENDING, MATCH_SCHEDULED) or not match.has_both_teams:
        raise ValidationError(f"Match {match_id} does not have both teams yet", match_id=match_id)

    if match.score_json is None:
        match.score_json = initialize_score(match.match_format, match.game_format).model_dump()
    match.status = MATCH_IN_PROGRESS
    match.started_at = utc_now()
    session.add(match)
    _commit_or_rollback(session)
    session.refresh(match)

    logger.info("Match %d started", match.id)
    return match


def record_point(session: Session, match_id: int, side: str) -> Match:
    """
    Award one point to `side` ("team1" or "team2") of an in-progress match.

    When the point decides the match, the match completes and its winner
    advances in the same commit; a bracket error rolls both back.
    """
    if side not in SIDES:
        raise ValidationError(f"Point winner must be 'team1' or 'team2', got {side!r}", match_id=match_id)
    match = _get_match(session, match_id)
    if match.status != MATCH_IN_PROGRESS:
        raise ValidationError(
            f"Match {match_id} is {match.status}; points are only recorded while in progress",
            match_id=match_id,
        )

    score = load_score(match.score_json, match.match_format, match.game_format)
    if score.winner is not None:
        raise ValidationError(f"Match {match_id} score is already decided", match_id=match_id)

    updated = award_point(score, side, match.match_format, match.game_format)

    try:
        if updated.winner is not None:
            _complete(session, match, updated)
        else:
            match.score_json = updated.model_dump()
            session.add(match)
        session.commit()
    except TournamentEngineError:
        session.rollback()
        raise

    session.refresh(match)
    if match.status == MATCH_COMPLETED:
        logger.info("Match %d completed, winner team %d", match.id, match.winner_team_id)
        auto_schedule_if_enabled(session, match.tournament_id, not_before=utc_now())
        session.refresh(match)
    return match


def set_final_score(session: Session, match_id: int, team1_score: int, team2_score: int) -> Match:
    """
    Record the final tiebreak points of a tiebreak-format match directly.

    The score must be terminal: the winner reached the target (8 or 10) with
    a 2-point lead, and play stopped at the first point that did so.
    """
    match = _get_match(session, match_id)
    target = match_tiebreak_target(match.game_format)
    if target is None:
        raise ValidationError(
            f"Match {match_id} plays regular games; enter it point by point", match_id=match_id
        )
    if match.status == MATCH_COMPLETED:
        raise ValidationError(f"Match {match_id} is already completed", match_id=match_id)
    if not match.has_both_teams:
        raise ValidationError(f"Match {match_id} does not have both teams yet", match_id=match_id)
    if team1_score < 0 or team2_score < 0:
        raise ValidationError("Scores cannot be negative", match_id=match_id)

    hi, lo = max(team1_score, team2_score), min(team1_score, team2_score)
    if hi < target or hi - lo < 2 or (hi > target and hi - lo != 2):
        raise ValidationError(
            f"{team1_score}-{team2_score} is not a finished tiebreak to {target}",
            match_id=match_id,
            invariant="terminal-score",
        )

    winner = "team1" if team1_score > team2_score else "team2"
    score = Score(
        team1_games=1 if winner == "team1" else 0,
        team2_games=1 if winner == "team2" else 0,
        team1_sets=1 if winner == "team1" else 0,
        team2_sets=1 if winner == "team2" else 0,
        current_set=1,
        sets=[
            SetScore(
                number=1,
                team1_games=1 if winner == "team1" else 0,
                team2_games=1 if winner == "team2" else 0,
                team1_tiebreak=team1_score,
                team2_tiebreak=team2_score,
                is_tiebreak=True,
            )
        ],
        winner=winner,
    )
    validate_score(score, match.match_format, match.game_format)

    if match.started_at is None:
        match.started_at = utc_now()
    try:
        _complete(session, match, score)
        session.commit()
    except TournamentEngineError:
        session.rollback()
        raise

    session.refresh(match)
    logger.info("Final score %d-%d recorded for match %d", team1_score, team2_score, match.id)
    auto_schedule_if_enabled(session, match.tournament_id, not_before=utc_now())
    session.refresh(match)
    return match
