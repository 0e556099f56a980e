"""Shared route helpers: error translation, lookups and the mutation guard."""
from contextlib import contextmanager
from typing import Iterator, Optional

from fastapi import HTTPException
from sqlmodel import Session

from courtside.auth import Authorizer, require_mutation_rights
from courtside.errors import (
    GenerationFailure,
    InconsistentBracketError,
    NotFoundError,
    SlotConflictError,
    TournamentEngineError,
    ValidationError,
)
from courtside.locking import tournament_lock
from courtside.models.match import Match
from courtside.models.tournament import Tournament

STATUS_BY_ERROR = (
    (NotFoundError, 404),
    (ValidationError, 422),
    (InconsistentBracketError, 409),
    (SlotConflictError, 409),
    (GenerationFailure, 503),
)


def to_http_exception(exc: TournamentEngineError) -> HTTPException:
    for error_type, status_code in STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.to_dict())
    return HTTPException(status_code=500, detail=exc.to_dict())


@contextmanager
def engine_errors() -> Iterator[None]:
    try:
        yield
    except TournamentEngineError as exc:
        raise to_http_exception(exc) from exc


@contextmanager
def mutation_guard(
    session: Session, tournament_id: int, authorizer: Authorizer, actor_id: Optional[str]
) -> Iterator[None]:
    """Authorize, then hold the tournament lock and translate engine errors.

    Rows the route looked up before the lock may have been changed by the
    request that held it, so they are expired and reload on next access.
    """
    require_mutation_rights(authorizer, actor_id, tournament_id)
    with tournament_lock(tournament_id), engine_errors():
        session.expire_all()
        yield


def get_tournament_or_404(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise HTTPException(status_code=404, detail="Tournament not found")
    return tournament


def get_match_or_404(session: Session, tournament_id: int, match_id: int) -> Match:
    get_tournament_or_404(session, tournament_id)
    match = session.get(Match, match_id)
    if not match or match.tournament_id != tournament_id:
        raise HTTPException(status_code=404, detail="Match not found")
    return match
