"""
Bracket generation and winner advancement.

Single elimination: teams are ordered by seed and round 1 pairs them
(1,2), (3,4), ... A trailing odd entrant is a bye: a virtual node in the
round tree with no Match row. Every round r feeds round r+1 uniformly:

    winner of (r, k) -> (r+1, ceil(k/2)), team1 when k is odd, team2 when even

When the target node is a bye, the team passes straight through to the
following round. Round robin: every pairing is a round-1 match and nothing
advances; the bracket completes once all matches are completed.

Guarantees:
    - Deterministic (same seeds -> same bracket)
    - A single elimination bracket of n teams has exactly n-1 Match rows
    - advance_winner() is idempotent and never overwrites a different team
"""
import logging
import math
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy.orm.attributes import flag_modified
from sqlmodel import Session, select

from courtside.errors import InconsistentBracketError, NotFoundError, ValidationError
from courtside.models.bracket import BRACKET_ACTIVE, BRACKET_COMPLETED, Bracket
from courtside.models.match import MATCH_COMPLETED, MATCH_PENDING, MATCH_SCHEDULED, Match
from courtside.models.team import Team
from courtside.models.time_slot import SLOT_AVAILABLE, TimeSlot
from courtside.models.tournament import (
    FORMAT_DOUBLE_ELIMINATION,
    FORMAT_ROUND_ROBIN,
    FORMAT_SINGLE_ELIMINATION,
    Tournament,
)
from courtside.services.match_scheduler import refresh_schedule_counts
from courtside.services.scoring import initialize_score

logger = logging.getLogger(__name__)

SUPPORTED_FORMATS = (FORMAT_SINGLE_ELIMINATION, FORMAT_ROUND_ROBIN)


@dataclass
class MatchSpec:
    round: int
    match_number: int
    team1_id: Optional[int] = None
    team2_id: Optional[int] = None


@dataclass
class BracketPlan:
    format: str
    team_ids: List[int]
    total_rounds: int
    rounds: List[Dict[str, Any]] = field(default_factory=list)
    matches: List[MatchSpec] = field(default_factory=list)

    def rounds_json(self) -> Dict[str, Any]:
        return {"rounds": self.rounds}


def _seed_sort_key(team: Team) -> Tuple[int, int]:
    return (team.seed, team.id)


def _validate_seeds(teams: Sequence[Team]) -> List[Team]:
    if len(teams) < 2:
        raise ValidationError(f"At least 2 teams are required, got {len(teams)}", invariant="seed-list")

    ids = [t.id for t in teams]
    if any(i is None for i in ids) or len(set(ids)) != len(ids):
        raise ValidationError("Team ids must be present and unique", invariant="seed-list")

    seeds = [t.seed for t in teams]
    if any(s is None or not isinstance(s, int) or s < 1 for s in seeds):
        raise ValidationError("Every team needs a positive integer seed", invariant="seed-list")
    if len(set(seeds)) != len(seeds):
        raise ValidationError("Seeds must be unique", invariant="seed-list")

    return sorted(teams, key=_seed_sort_key)


def _target_position(round_number: int, match_number: int) -> Tuple[int, int, str]:
    """(round, match_number, side) fed by the winner of (round_number, match_number)."""
    side = "team1" if match_number % 2 == 1 else "team2"
    return round_number + 1, (match_number + 1) // 2, side


def _single_elimination_plan(ordered: List[Team]) -> BracketPlan:
    # Entrants per round: n, ceil(n/2), ... down to the 2 finalists
    entrants = [len(ordered)]
    while entrants[-1] > 1:
        entrants.append(math.ceil(entrants[-1] / 2))
    total_rounds = len(entrants) - 1

    nodes: Dict[Tuple[int, int], Dict[str, Any]] = {}
    rounds: List[Dict[str, Any]] = []
    for round_number in range(1, total_rounds + 1):
        count = entrants[round_number - 1]
        round_nodes = []
        for match_number in range(1, math.ceil(count / 2) + 1):
            node = {
                "match_number": match_number,
                "team1_id": None,
                "team2_id": None,
                "is_bye": 2 * match_number > count,
            }
            nodes[(round_number, match_number)] = node
            round_nodes.append(node)
        rounds.append({"round": round_number, "matches": round_nodes})

    for index, team in enumerate(ordered):
        node = nodes[(1, index // 2 + 1)]
        node["team1_id" if index % 2 == 0 else "team2_id"] = team.id

    # Carry bye teams forward; a bye can feed another bye in the next round
    for round_number in range(1, total_rounds):
        for node in rounds[round_number - 1]["matches"]:
            if node["is_bye"] and node["team1_id"] is not None:
                target_round, target_number, side = _target_position(round_number, node["match_number"])
                nodes[(target_round, target_number)][f"{side}_id"] = node["team1_id"]

    matches = [
        MatchSpec(
            round=rnd["round"],
            match_number=node["match_number"],
            team1_id=node["team1_id"],
            team2_id=node["team2_id"],
        )
        for rnd in rounds
        for node in rnd["matches"]
        if not node["is_bye"]
    ]
    return BracketPlan(
        format=FORMAT_SINGLE_ELIMINATION,
        team_ids=[t.id for t in ordered],
        total_rounds=total_rounds,
        rounds=rounds,
        matches=matches,
    )


def _round_robin_plan(ordered: List[Team]) -> BracketPlan:
    matches: List[MatchSpec] = []
    for i in range(len(ordered)):
        for j in range(i + 1, len(ordered)):
            matches.append(
                MatchSpec(round=1, match_number=len(matches) + 1, team1_id=ordered[i].id, team2_id=ordered[j].id)
            )
    rounds = [
        {
            "round": 1,
            "matches": [
                {"match_number": m.match_number, "team1_id": m.team1_id, "team2_id": m.team2_id, "is_bye": False}
                for m in matches
            ],
        }
    ]
    return BracketPlan(
        format=FORMAT_ROUND_ROBIN,
        team_ids=[t.id for t in ordered],
        total_rounds=len(ordered) - 1,
        rounds=rounds,
        matches=matches,
    )


def build_bracket_plan(teams: Sequence[Team], bracket_format: str) -> BracketPlan:
    """
    Pure bracket layout for a seeded team list.

    Raises ValidationError for a bad seed list or an unsupported format.
    Double elimination is recognised but not generated.
    """
    if bracket_format == FORMAT_DOUBLE_ELIMINATION:
        raise ValidationError("Double elimination brackets are not supported", invariant="bracket-format")
    if bracket_format not in SUPPORTED_FORMATS:
        raise ValidationError(f"Unknown bracket format: {bracket_format!r}", invariant="bracket-format")

    ordered = _validate_seeds(teams)
    if bracket_format == FORMAT_ROUND_ROBIN:
        return _round_robin_plan(ordered)
    return _single_elimination_plan(ordered)


def _get_tournament(session: Session, tournament_id: int) -> Tournament:
    tournament = session.get(Tournament, tournament_id)
    if not tournament:
        raise NotFoundError(f"Tournament {tournament_id} not found")
    return tournament


def _delete_existing_bracket(session: Session, tournament_id: int) -> None:
    """Remove the current bracket and its matches, freeing any slots they hold."""
    old_matches = session.exec(select(Match).where(Match.tournament_id == tournament_id)).all()
    match_ids = [m.id for m in old_matches]
    if match_ids:
        held = session.exec(select(TimeSlot).where(TimeSlot.match_id.in_(match_ids))).all()
        for slot in held:
            slot.match_id = None
            slot.status = SLOT_AVAILABLE
            session.add(slot)
    for match in old_matches:
        session.delete(match)

    old_bracket = session.exec(select(Bracket).where(Bracket.tournament_id == tournament_id)).first()
    if old_bracket:
        session.delete(old_bracket)
    session.flush()

    if old_matches or old_bracket:
        logger.info("Replaced bracket for tournament %d (%d old matches removed)", tournament_id, len(old_matches))


def generate_bracket(session: Session, tournament_id: int) -> Bracket:
    """
    (Re)generate the bracket of a tournament from its active, seeded teams.

    The previous bracket, its matches and their slot bindings are replaced
    in the same commit as the new rows.
    """
    tournament = _get_tournament(session, tournament_id)
    teams = session.exec(
        select(Team).where(Team.tournament_id == tournament_id, Team.is_active == True)  # noqa: E712
    ).all()
    plan = build_bracket_plan(teams, tournament.format)
    initial_score = initialize_score(tournament.match_format, tournament.game_format).model_dump()

    _delete_existing_bracket(session, tournament_id)

    bracket = Bracket(
        tournament_id=tournament_id,
        format=plan.format,
        team_ids=plan.team_ids,
        total_teams=len(plan.team_ids),
        total_rounds=plan.total_rounds,
        status=BRACKET_ACTIVE,
        rounds_json=plan.rounds_json(),
    )
    session.add(bracket)
    session.flush()

    for spec in plan.matches:
        session.add(
            Match(
                tournament_id=tournament_id,
                bracket_id=bracket.id,
                round=spec.round,
                match_number=spec.match_number,
                team1_id=spec.team1_id,
                team2_id=spec.team2_id,
                status=MATCH_PENDING,
                match_format=tournament.match_format,
                game_format=tournament.game_format,
                score_json=dict(initial_score),
            )
        )
    session.flush()
    refresh_schedule_counts(session, tournament_id)
    session.commit()
    session.refresh(bracket)

    logger.info(
        "Generated %s bracket for tournament %d: %d teams, %d rounds, %d matches",
        plan.format,
        tournament_id,
        bracket.total_teams,
        bracket.total_rounds,
        len(plan.matches),
    )
    return bracket


def _set_node_team(bracket: Bracket, round_number: int, match_number: int, side: str, team_id: int) -> None:
    node = bracket.node(round_number, match_number)
    if node is None:
        return
    node[f"{side}_id"] = team_id
    # JSON column mutated in place
    flag_modified(bracket, "rounds_json")


def _complete_round_robin(session: Session, bracket: Bracket) -> None:
    matches = session.exec(select(Match).where(Match.bracket_id == bracket.id)).all()
    if not matches or any(m.status != MATCH_COMPLETED for m in matches):
        return

    wins = {team_id: 0 for team_id in bracket.team_ids}
    for m in matches:
        if m.winner_team_id in wins:
            wins[m.winner_team_id] += 1
    # Ties go to the better seed (earlier in team_ids)
    standings = sorted(bracket.team_ids, key=lambda t: (-wins[t], bracket.team_ids.index(t)))
    bracket.status = BRACKET_COMPLETED
    bracket.winner_team_id = standings[0]
    bracket.runner_up_team_id = standings[1] if len(standings) > 1 else None
    session.add(bracket)
    logger.info("Round robin bracket %d completed, winner team %s", bracket.id, bracket.winner_team_id)


def _advance(session: Session, match: Match) -> Tuple[Optional[Match], bool]:
    """Place the winner of a completed match; returns (target, changed)."""
    if match.status != MATCH_COMPLETED:
        raise InconsistentBracketError(
            f"Match {match.id} is {match.status}; only completed matches advance",
            match_id=match.id,
            invariant="advance-requires-completed",
        )
    winner = match.winner_team_id
    if winner is None or winner not in (match.team1_id, match.team2_id):
        raise InconsistentBracketError(
            f"Match {match.id} winner {winner} is not one of its teams",
            match_id=match.id,
            invariant="winner-in-match",
        )

    bracket = session.get(Bracket, match.bracket_id)
    if bracket is None:
        raise InconsistentBracketError(f"Match {match.id} has no bracket", match_id=match.id)

    if bracket.format == FORMAT_ROUND_ROBIN:
        _complete_round_robin(session, bracket)
        return None, False

    round_number, match_number = match.round, match.match_number
    while True:
        if round_number >= bracket.total_rounds:
            # Final: no target, the bracket is decided
            if bracket.status == BRACKET_COMPLETED and bracket.winner_team_id == winner:
                return None, False
            loser = match.team2_id if winner == match.team1_id else match.team1_id
            bracket.status = BRACKET_COMPLETED
            bracket.winner_team_id = winner
            bracket.runner_up_team_id = loser
            session.add(bracket)
            logger.info("Bracket %d completed, winner team %d", bracket.id, winner)
            return None, True

        target_round, target_number, side = _target_position(round_number, match_number)
        node = bracket.node(target_round, target_number)
        if node is None:
            raise InconsistentBracketError(
                f"Round {target_round} match {target_number} missing from bracket {bracket.id}",
                match_id=match.id,
                invariant="advance-target-exists",
            )
        if not node.get("is_bye"):
            break
        _set_node_team(bracket, target_round, target_number, "team1", winner)
        round_number, match_number = target_round, target_number

    target = session.exec(
        select(Match).where(
            Match.bracket_id == bracket.id,
            Match.round == target_round,
            Match.match_number == target_number,
        )
    ).first()
    if target is None:
        raise InconsistentBracketError(
            f"Round {target_round} match {target_number} has no match row",
            match_id=match.id,
            invariant="advance-target-exists",
        )

    current = getattr(target, f"{side}_id")
    if current == winner:
        return target, False
    if current is not None:
        raise InconsistentBracketError(
            f"Match {target.id} {side} already holds team {current}, cannot place team {winner}",
            match_id=target.id,
            invariant="advance-no-overwrite",
        )
    other = target.team2_id if side == "team1" else target.team1_id
    if other == winner:
        raise InconsistentBracketError(
            f"Team {winner} already placed in match {target.id}",
            match_id=target.id,
            invariant="advance-no-overwrite",
        )

    setattr(target, f"{side}_id", winner)
    if target.has_both_teams and target.status == MATCH_PENDING:
        target.status = MATCH_SCHEDULED
    session.add(target)
    _set_node_team(bracket, target_round, target_number, side, winner)
    session.add(bracket)

    logger.info(
        "Advanced team %d from match %d to round %d match %d (%s)",
        winner,
        match.id,
        target_round,
        target_number,
        side,
    )
    return target, True


def advance_winner(session: Session, match: Match, commit: bool = True) -> Optional[Match]:
    """
    Move the winner of a completed match into its next-round slot.

    Returns the target match, or None when the completed match was the final
    (or the bracket is round robin). With commit=False the caller owns the
    transaction, so a point and its advancement land together.
    """
    target, _changed = _advance(session, match)
    if commit:
        session.commit()
        if target is not None:
            session.refresh(target)
    return target


def resolve_all_advancements(session: Session, bracket_id: int) -> Dict[str, int]:
    """
    Re-apply advancement for every completed match of a bracket.

    Returns:
        Dict with:
        - matches_processed: number of completed matches processed
        - teams_advanced: number of slots (or bracket results) newly filled
        - unknown_before: count of matches with a null team before
        - unknown_after: count of matches with a null team after

    Guarantees:
        - Idempotent (safe to call multiple times)
        - Deterministic ordering (round, then match number)
    """
    bracket = session.get(Bracket, bracket_id)
    if bracket is None:
        raise NotFoundError(f"Bracket {bracket_id} not found")

    all_matches = session.exec(select(Match).where(Match.bracket_id == bracket_id)).all()
    unknown_before = sum(1 for m in all_matches if not m.has_both_teams)

    completed = session.exec(
        select(Match)
        .where(Match.bracket_id == bracket_id, Match.status == MATCH_COMPLETED)
        .order_by(Match.round, Match.match_number)
    ).all()

    teams_advanced = 0
    try:
        for match in completed:
            _target, changed = _advance(session, match)
            if changed:
                teams_advanced += 1
        session.commit()
    except InconsistentBracketError:
        session.rollback()
        raise

    session.expire_all()
    all_after = session.exec(select(Match).where(Match.bracket_id == bracket_id)).all()
    unknown_after = sum(1 for m in all_after if not m.has_both_teams)

    return {
        "matches_processed": len(completed),
        "teams_advanced": teams_advanced,
        "unknown_before": unknown_before,
        "unknown_after": unknown_after,
    }
