"""
Bracket endpoints: generate (replacing any existing bracket), read, and bulk
re-resolve advancement.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel
from sqlmodel import Session, select

from courtside.auth import Authorizer, get_actor_id, get_authorizer
from courtside.database import get_session
from courtside.models.bracket import Bracket
from courtside.routes.common import get_tournament_or_404, mutation_guard
from courtside.services.bracket_service import generate_bracket, resolve_all_advancements
from courtside.services.match_scheduler import auto_schedule_if_enabled

router = APIRouter()


class BracketRead(BaseModel):
    id: int
    tournament_id: int
    format: str
    team_ids: List[int]
    total_teams: int
    total_rounds: int
    status: str
    rounds: List[Dict[str, Any]]
    winner_team_id: Optional[int] = None
    runner_up_team_id: Optional[int] = None
    created_at: datetime


def _bracket_to_read(bracket: Bracket) -> BracketRead:
    return BracketRead(
        id=bracket.id,
        tournament_id=bracket.tournament_id,
        format=bracket.format,
        team_ids=list(bracket.team_ids or []),
        total_teams=bracket.total_teams,
        total_rounds=bracket.total_rounds,
        status=bracket.status,
        rounds=(bracket.rounds_json or {}).get("rounds", []),
        winner_team_id=bracket.winner_team_id,
        runner_up_team_id=bracket.runner_up_team_id,
        created_at=bracket.created_at,
    )


@router.post("/tournaments/{tournament_id}/bracket", response_model=BracketRead, status_code=201)
def create_bracket(
    tournament_id: int,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> BracketRead:
    """Generate the bracket from the tournament's seeded teams. Replaces any existing bracket."""
    get_tournament_or_404(session, tournament_id)
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        bracket = generate_bracket(session, tournament_id)
        auto_schedule_if_enabled(session, tournament_id)
        session.refresh(bracket)
    return _bracket_to_read(bracket)


@router.get("/tournaments/{tournament_id}/bracket", response_model=BracketRead)
def get_bracket(tournament_id: int, session: Session = Depends(get_session)) -> BracketRead:
    get_tournament_or_404(session, tournament_id)
    bracket = session.exec(select(Bracket).where(Bracket.tournament_id == tournament_id)).first()
    if not bracket:
        raise HTTPException(status_code=404, detail="Bracket not found")
    return _bracket_to_read(bracket)


@router.post("/tournaments/{tournament_id}/bracket/resolve", response_model=Dict[str, int])
def resolve_bracket(
    tournament_id: int,
    session: Session = Depends(get_session),
    authorizer: Authorizer = Depends(get_authorizer),
    actor_id: Optional[str] = Depends(get_actor_id),
) -> Dict[str, int]:
    """Re-apply advancement for every completed match (repair). Idempotent."""
    get_tournament_or_404(session, tournament_id)
    bracket = session.exec(select(Bracket).where(Bracket.tournament_id == tournament_id)).first()
    if not bracket:
        raise HTTPException(status_code=404, detail="Bracket not found")
    with mutation_guard(session, tournament_id, authorizer, actor_id):
        result = resolve_all_advancements(session, bracket.id)
        auto_schedule_if_enabled(session, tournament_id)
    return result
