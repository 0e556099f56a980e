"""
Authorization seam.

User, club and session management live outside the engine. The engine only
asks one question before mutating a match or schedule: may this actor do it?
Deployments plug their own Authorizer in through the get_authorizer
dependency override.
"""
from typing import Optional, Protocol

from fastapi import Header, HTTPException


class Authorizer(Protocol):
    def can_mutate(self, actor_id: Optional[str], tournament_id: int) -> bool: ...


class AllowAllAuthorizer:
    """Default used when no external authorizer is wired in."""

    def can_mutate(self, actor_id: Optional[str], tournament_id: int) -> bool:
        return True


_default_authorizer = AllowAllAuthorizer()


def get_authorizer() -> Authorizer:
    return _default_authorizer


def get_actor_id(x_actor_id: Optional[str] = Header(default=None)) -> Optional[str]:
    return x_actor_id


def require_mutation_rights(authorizer: Authorizer, actor_id: Optional[str], tournament_id: int) -> None:
    """Raise 403 unless the actor may mutate this tournament's matches/schedule."""
    if not authorizer.can_mutate(actor_id, tournament_id):
        raise HTTPException(
            status_code=403,
            detail=f"Actor {actor_id or '<anonymous>'} may not modify tournament {tournament_id}",
        )
