"""
Tennis scoring state machine.

award_point() is pure: the input Score is never mutated, a deep copy with the
point applied is returned. Game rules:

- regular games: first to 4 points with a 2-point lead (3-3 and level is
  deuce, a one-point lead from there is advantage)
- sets: first to 6 games with a 2-game lead; at 6-6 a tiebreak game to 7
  points (win by 2) decides the set 7-6
- matches: first to 2 sets (best-of-3) or 3 sets (best-of-5)
- tiebreak-8 / tiebreak-10: the match is a single set made of one
  first-to-N, win-by-2 tiebreak game; no deuce or advantage

Flags (is_deuce, advantage, is_set_point, is_match_point) are recomputed
after every point so renderers never re-derive them.
"""
from typing import Any, Dict, Optional

from pydantic import ValidationError as PydanticValidationError

from courtside.errors import ValidationError
from courtside.models.score import Score, SetScore

SIDES = ("team1", "team2")

SETS_TO_WIN = {"best-of-3": 2, "best-of-5": 3}
# Points needed to take the single tiebreak game of a match-tiebreak format
MATCH_TIEBREAK_TARGET = {"regular": None, "tiebreak-8": 8, "tiebreak-10": 10}

POINTS_TO_WIN_GAME = 4
GAMES_TO_WIN_SET = 6
SET_TIEBREAK_TARGET = 7

POINT_LABELS = ("0", "15", "30", "40")


def _other(side: str) -> str:
    return "team2" if side == "team1" else "team1"


def sets_to_win(match_format: str) -> int:
    try:
        return SETS_TO_WIN[match_format]
    except KeyError:
        raise ValidationError(f"Unknown match format: {match_format!r}", invariant="match-format") from None


def match_tiebreak_target(game_format: str) -> Optional[int]:
    try:
        return MATCH_TIEBREAK_TARGET[game_format]
    except KeyError:
        raise ValidationError(f"Unknown game format: {game_format!r}", invariant="game-format") from None


def initialize_score(match_format: str = "best-of-3", game_format: str = "regular") -> Score:
    sets_to_win(match_format)
    target = match_tiebreak_target(game_format)
    return Score(in_tiebreak=target is not None)


def load_score(
    data: Optional[Dict[str, Any]],
    match_format: str = "best-of-3",
    game_format: str = "regular",
) -> Score:
    """Rehydrate a Score from Match.score_json (a fresh score when it is empty)."""
    if data is None:
        return initialize_score(match_format, game_format)
    try:
        score = Score.model_validate(data)
    except PydanticValidationError as exc:
        raise ValidationError(f"Malformed score: {exc.errors()[0].get('msg', exc)}", invariant="score-shape") from exc
    if match_tiebreak_target(game_format) is not None and score.winner is None:
        score.in_tiebreak = True
    return score


def award_point(
    score: Score,
    side: str,
    match_format: str = "best-of-3",
    game_format: str = "regular",
) -> Score:
    """Return a new Score with one point awarded to `side`.

    A score that already has a winner is returned unchanged (as a copy);
    refusing further points on a finished match is the caller's job.
    """
    if side not in SIDES:
        raise ValidationError(f"Point winner must be 'team1' or 'team2', got {side!r}", invariant="side")
    needed = sets_to_win(match_format)
    target = match_tiebreak_target(game_format)
    validate_score(score, match_format, game_format)

    updated = score.model_copy(deep=True)
    if updated.winner is not None:
        return updated
    if target is not None:
        # The only game of a match-tiebreak format is always a tiebreak
        updated.in_tiebreak = True

    _apply_point(updated, side, needed, target)
    _refresh_flags(updated, needed, target)
    return updated


def _apply_point(score: Score, side: str, needed: int, target: Optional[int]) -> None:
    if side == "team1":
        score.team1_points += 1
    else:
        score.team2_points += 1

    mine = score.points(side)
    theirs = score.points(_other(side))
    if score.in_tiebreak:
        to_win = target or SET_TIEBREAK_TARGET
        if mine >= to_win and mine - theirs >= 2:
            _win_game(score, side, needed, target)
    elif mine >= POINTS_TO_WIN_GAME and mine - theirs >= 2:
        _win_game(score, side, needed, target)


def _win_game(score: Score, side: str, needed: int, target: Optional[int]) -> None:
    tiebreak_points = (score.team1_points, score.team2_points) if score.in_tiebreak else None
    score.team1_points = 0
    score.team2_points = 0
    score.in_tiebreak = False

    if side == "team1":
        score.team1_games += 1
    else:
        score.team2_games += 1

    if target is not None:
        # Match tiebreak: the single game is the whole (only) set
        _win_set(score, side, 1, tiebreak_points)
        return

    mine = score.games(side)
    theirs = score.games(_other(side))
    if tiebreak_points is not None or (mine >= GAMES_TO_WIN_SET and mine - theirs >= 2):
        _win_set(score, side, needed, tiebreak_points)
    elif score.team1_games == GAMES_TO_WIN_SET and score.team2_games == GAMES_TO_WIN_SET:
        score.in_tiebreak = True


def _win_set(score: Score, side: str, needed: int, tiebreak_points: Optional[tuple]) -> None:
    score.sets.append(
        SetScore(
            number=score.current_set,
            team1_games=score.team1_games,
            team2_games=score.team2_games,
            team1_tiebreak=tiebreak_points[0] if tiebreak_points else None,
            team2_tiebreak=tiebreak_points[1] if tiebreak_points else None,
            is_tiebreak=tiebreak_points is not None,
            is_completed=True,
        )
    )
    if side == "team1":
        score.team1_sets += 1
    else:
        score.team2_sets += 1

    if score.sets_won(side) >= needed:
        # Final games stay visible; nothing else moves once the match is won
        score.winner = side
        return

    score.current_set += 1
    score.team1_games = 0
    score.team2_games = 0


def _refresh_flags(score: Score, needed: int, target: Optional[int]) -> None:
    if score.winner is not None:
        score.is_deuce = False
        score.advantage = None
        score.is_set_point = False
        score.is_match_point = False
        return

    p1, p2 = score.team1_points, score.team2_points
    if score.in_tiebreak:
        score.is_deuce = False
        score.advantage = None
    else:
        both_at_forty = p1 >= 3 and p2 >= 3
        score.is_deuce = both_at_forty and p1 == p2
        if both_at_forty and abs(p1 - p2) == 1:
            score.advantage = "team1" if p1 > p2 else "team2"
        else:
            score.advantage = None

    # Probe the next point for each side on a scratch copy
    set_point = False
    match_point = False
    for side in SIDES:
        probe = score.model_copy(deep=True)
        sets_before = probe.sets_won(side)
        _apply_point(probe, side, needed, target)
        if probe.sets_won(side) > sets_before:
            set_point = True
        if probe.winner == side:
            match_point = True
    score.is_set_point = set_point
    score.is_match_point = match_point


def _is_final_set_score(s: SetScore, target: Optional[int]) -> bool:
    hi, lo = max(s.team1_games, s.team2_games), min(s.team1_games, s.team2_games)
    if target is not None:
        if (hi, lo) != (1, 0) or s.team1_tiebreak is None or s.team2_tiebreak is None:
            return False
        return _is_final_tiebreak(s.team1_tiebreak, s.team2_tiebreak, target)
    if s.is_tiebreak:
        if (hi, lo) != (7, 6) or s.team1_tiebreak is None or s.team2_tiebreak is None:
            return False
        return _is_final_tiebreak(s.team1_tiebreak, s.team2_tiebreak, SET_TIEBREAK_TARGET)
    return (hi == GAMES_TO_WIN_SET and lo <= GAMES_TO_WIN_SET - 2) or (hi, lo) == (7, 5)


def _is_final_tiebreak(a: int, b: int, to_win: int) -> bool:
    hi, lo = max(a, b), min(a, b)
    return hi >= to_win and hi - lo >= 2 and (hi == to_win or hi - lo == 2)


def _set_winner(s: SetScore) -> str:
    return "team1" if s.team1_games > s.team2_games else "team2"


def validate_score(score: Score, match_format: str = "best-of-3", game_format: str = "regular") -> None:
    """Reject counters no legal sequence of points could have produced."""
    needed = sets_to_win(match_format)
    target = match_tiebreak_target(game_format)
    if target is not None:
        needed = 1

    counters = (
        score.team1_points,
        score.team2_points,
        score.team1_games,
        score.team2_games,
        score.team1_sets,
        score.team2_sets,
    )
    if any(c < 0 for c in counters):
        raise ValidationError("Score counters cannot be negative", invariant="non-negative")
    if score.current_set < 1:
        raise ValidationError("current_set must be at least 1", invariant="current-set")

    for index, completed in enumerate(score.sets, start=1):
        if completed.number != index or not completed.is_completed:
            raise ValidationError(f"Set {index} is out of order or not completed", invariant="sets-append-only")
        if not _is_final_set_score(completed, target):
            raise ValidationError(
                f"Set {index} score {completed.team1_games}-{completed.team2_games} is not a finished set",
                invariant="set-score",
            )

    won1 = sum(1 for s in score.sets if _set_winner(s) == "team1")
    won2 = len(score.sets) - won1
    if (won1, won2) != (score.team1_sets, score.team2_sets):
        raise ValidationError("Set counters disagree with completed sets", invariant="set-count")
    if max(won1, won2) > needed:
        raise ValidationError("More sets won than the match format allows", invariant="set-count")

    if score.winner is not None:
        if score.sets_won(score.winner) != needed:
            raise ValidationError("Winner has not won the required number of sets", invariant="winner")
        if score.current_set != len(score.sets):
            raise ValidationError("current_set must point at the deciding set", invariant="current-set")
        return

    if max(won1, won2) >= needed:
        raise ValidationError("Match is decided but has no winner", invariant="winner")
    if score.current_set != len(score.sets) + 1:
        raise ValidationError("current_set must follow the completed sets", invariant="current-set")

    g1, g2 = score.team1_games, score.team2_games
    p1, p2 = score.team1_points, score.team2_points
    if target is not None:
        if (g1, g2) != (0, 0):
            raise ValidationError("Match tiebreak formats play a single tiebreak game", invariant="game-count")
        if max(p1, p2) >= target and abs(p1 - p2) >= 2:
            raise ValidationError("Tiebreak game is already decided", invariant="point-count")
        return

    if max(g1, g2) > GAMES_TO_WIN_SET + 1 or (max(g1, g2) >= GAMES_TO_WIN_SET and abs(g1 - g2) >= 2):
        raise ValidationError(f"Games {g1}-{g2} form a finished set", invariant="game-count")
    if max(g1, g2) == GAMES_TO_WIN_SET + 1:
        raise ValidationError(f"Games {g1}-{g2} cannot be an unfinished set", invariant="game-count")
    if score.in_tiebreak != (g1 == GAMES_TO_WIN_SET and g2 == GAMES_TO_WIN_SET):
        raise ValidationError("Tiebreak is played at 6-6 only", invariant="tiebreak")
    to_win = SET_TIEBREAK_TARGET if score.in_tiebreak else POINTS_TO_WIN_GAME
    if max(p1, p2) >= to_win and abs(p1 - p2) >= 2:
        raise ValidationError(f"Game at {p1}-{p2} points is already decided", invariant="point-count")


def point_label(score: Score, side: str) -> str:
    """Display value of a side's points in the current game."""
    mine = score.points(side)
    if score.in_tiebreak:
        return str(mine)
    theirs = score.points(_other(side))
    if mine >= 3 and theirs >= 3:
        if mine > theirs:
            return "AD"
        return "40"
    return POINT_LABELS[min(mine, 3)]
