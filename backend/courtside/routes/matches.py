"""
Match runtime endpoints: listing, start, point-by-point scoring, direct
final scores for tiebreak formats and manual advancement.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field
from sqlmodel import Session, select

from courtside.auth import Authorizer, get_actor_id, get_authorizer
from courtside.database import get_session
from courtside.models.match import Match
from courtside.models.tournament import Tournament
from courtside.routes.common import get_match_or_404, get_tournament_or_404, mutation_guard
from courtside.services import match_runtime
from courtside.services.bracket_service import advance_winner
from courtside.services.scoring import load_score, point_label
from courtside.utils.time_display import format_local

router = APIRouter()


class MatchRead(BaseModel):
    id: int
    tournament_id: int
    bracket_id: int
    round: int
    match_number: int
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None
    status: str
    match_format: str
    game_format: str
    score: Optional[Dict[str, Any]] = None
    point_labels: Optional[Dict[str, str]] = None
    winner_team_id: Optional[int] = None
    time_slot_id: Optional[int] = None
    court: Optional[str] = None
    scheduled_at: Optional[datetime] = None
    scheduled_at_local: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None


class PointRequest(BaseModel):
    side: str = Field(description="'team1' or 'team2'")


class FinalScoreRequest(BaseModel):
    team1_score: int
    team2_score: int


def match_to_read(match: Match, tz_name: Optional[str]) -> MatchRead:
    labels = None
    if match.score_json is not None:
        score = load_score(match.score_json, match.match_format, match.game_format)
        labels = {"team1": point_label(score, "team1"), "team2": point_label(score, "team2")}
    return MatchRead(
        id=match.id,
        tournament_id=match.tournament_id,
        bracket_id=match.bracket_id,
        round=match.round,
        match_number=match.match_number,
        team1_id=match.team1_id,
        team2_id=match.team2_id,
        status=match.status,
        match_format=match.match_format,
        game_format=match.game_format,
        score=match.score_json,
        point_labels=labels,
        winner_team_id=match.winner_team_id,
        time_slot_id=match.time_slot_id,
        court=match.court,
        scheduled_at=match.scheduled_at,
        scheduled_at_local=format_local(match.scheduled_at, tz_name),
        started_at=match.started_at,
        completed_at=match.completed_at,
    )


def _tz(session: Session, tournament_id: int) -> Optional[str]:
    tournament = session.get(Tournament, tournament_id)
    return tournament.timezone if tournament else None


@router.get("/tournaments/{tournament_id}/matches", response_model=List[MatchRead])
def list_matches(tournament_id: int, session: Session = Depends(get_session)) -> List[MatchRead]:
    """All matches of a tournament. Stable order: round, match_number."""
    tournament = get_tournament_or_404(session, tournament_id)
    matches = session.exec(
        select(Match).where(Match.tournament_id == tournament_id).order_by(Match.round, Match.match_number)
    ).all()
    return [match_to_read(m, tournament.timezone) for m in matches]


@router.get("/tournaments/{tournament_id}/matches/{match_id}", response_model=MatchRead)
def get_match(tournament_id: int, match_id: int, session: Session = Depends(get_session)) -> MatchRead:
    match = get_match_or_404(session, tournament_id, match_id)
    return match_to_read(match, _tz(session, tournament_id))


@router.post("/tournaments/{tournament_id}/matches/{match_id}/start", response_model=MatchRead)
def start_match(
    tournament_id: int,
    match_id: int,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> MatchRead:
    get_match_or_404(session, tournament_id, match_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        match = match_runtime.start_match(session, match_id)
    return match_to_read(match, _tz(session, tournament_id))


@router.post("/tournaments/{tournament_id}/matches/{match_id}/points", response_model=MatchRead)
def record_point(
    tournament_id: int,
    match_id: int,
    payload: PointRequest,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> MatchRead:
    """Award one point. The deciding point completes the match and advances the winner."""
    get_match_or_404(session, tournament_id, match_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        match = match_runtime.record_point(session, match_id, payload.side)
    return match_to_read(match, _tz(session, tournament_id))


@router.put("/tournaments/{tournament_id}/matches/{match_id}/final-score", response_model=MatchRead)
def set_final_score(
    tournament_id: int,
    match_id: int,
    payload: FinalScoreRequest,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> MatchRead:
    """Enter the final tiebreak points of a tiebreak-8 / tiebreak-10 match."""
    get_match_or_404(session, tournament_id, match_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        match = match_runtime.set_final_score(session, match_id, payload.team1_score, payload.team2_score)
    return match_to_read(match, _tz(session, tournament_id))


@router.post("/tournaments/{tournament_id}/matches/{match_id}/advance", response_model=Dict[str, Optional[int]])
def advance_match(
    tournament_id: int,
    match_id: int,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, Optional[int]]:
    """Manually run advancement for a completed match (repair). Idempotent."""
    match = get_match_or_404(session, tournament_id, match_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        target = advance_winner(session, match)
    return {"target_match_id": target.id if target else None}
