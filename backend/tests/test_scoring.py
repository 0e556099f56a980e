"""Scoring state machine: point sequence, deuce/advantage, sets, tiebreaks, match end, flags."""
from itertools import product

import pytest

from courtside.errors import ValidationError
from courtside.models.score import Score
from courtside.services.scoring import (
    award_point,
    initialize_score,
    load_score,
    point_label,
    validate_score,
)


def play(score, sides, match_format="best-of-3", game_format="regular"):
    for side in sides:
        score = award_point(score, side, match_format, game_format)
    return score


def game(side, count=1):
    """Points for `count` straight games won to love."""
    return [side] * 4 * count


def alternating_games(pairs):
    sides = []
    for _ in range(pairs):
        sides += game("team1") + game("team2")
    return sides


def labels(score):
    return point_label(score, "team1"), point_label(score, "team2")


def test_initialize_score_defaults():
    score = initialize_score()
    assert score.team1_points == 0 and score.team2_points == 0
    assert score.team1_games == 0 and score.team2_games == 0
    assert score.current_set == 1
    assert score.sets == []
    assert score.in_tiebreak is False
    assert score.winner is None


def test_initialize_tiebreak_format_starts_in_tiebreak():
    assert initialize_score("best-of-3", "tiebreak-10").in_tiebreak is True


@pytest.mark.parametrize("match_format,game_format", [("best-of-7", "regular"), ("best-of-3", "pro-set")])
def test_unknown_formats_rejected(match_format, game_format):
    with pytest.raises(ValidationError):
        initialize_score(match_format, game_format)


def test_point_sequence_labels():
    score = initialize_score()
    seen = [labels(score)]
    for _ in range(3):
        score = award_point(score, "team1")
        seen.append(labels(score))
    assert seen == [("0", "0"), ("15", "0"), ("30", "0"), ("40", "0")]

    score = award_point(score, "team1")
    assert score.team1_games == 1
    assert (score.team1_points, score.team2_points) == (0, 0)


def test_deuce_and_advantage():
    score = play(initialize_score(), ["team1", "team2"] * 3)
    assert score.is_deuce is True
    assert score.advantage is None
    assert labels(score) == ("40", "40")

    score = award_point(score, "team1")
    assert score.is_deuce is False
    assert score.advantage == "team1"
    assert labels(score) == ("AD", "40")

    score = award_point(score, "team2")
    assert score.is_deuce is True
    assert score.advantage is None

    score = play(score, ["team2", "team2"])
    assert score.team2_games == 1
    assert score.is_deuce is False
    assert score.advantage is None


def test_award_point_does_not_mutate_input():
    score = play(initialize_score(), ["team1", "team2", "team1"])
    before = score.model_dump()
    updated = award_point(score, "team2")
    assert score.model_dump() == before
    assert updated is not score
    assert updated.team2_points == 2


def test_invalid_side_rejected():
    with pytest.raises(ValidationError):
        award_point(initialize_score(), "team3")


def test_set_won_six_love():
    score = play(initialize_score(), game("team1", 6))
    assert score.team1_sets == 1
    assert len(score.sets) == 1
    assert (score.sets[0].team1_games, score.sets[0].team2_games) == (6, 0)
    assert score.sets[0].is_tiebreak is False
    assert score.current_set == 2
    assert (score.team1_games, score.team2_games) == (0, 0)


def test_set_needs_two_game_lead():
    score = play(initialize_score(), alternating_games(5))
    assert (score.team1_games, score.team2_games) == (5, 5)

    score = play(score, game("team1"))
    assert (score.team1_games, score.team2_games) == (6, 5)
    assert score.sets == []

    score = play(score, game("team1"))
    assert score.team1_sets == 1
    assert (score.sets[0].team1_games, score.sets[0].team2_games) == (7, 5)


def test_tiebreak_at_six_all():
    score = play(initialize_score(), alternating_games(6))
    assert (score.team1_games, score.team2_games) == (6, 6)
    assert score.in_tiebreak is True

    score = play(score, ["team1", "team1", "team2"])
    assert labels(score) == ("2", "1")

    score = play(score, ["team1"] * 5)
    assert score.in_tiebreak is False
    assert score.team1_sets == 1
    first = score.sets[0]
    assert (first.team1_games, first.team2_games) == (7, 6)
    assert first.is_tiebreak is True
    assert (first.team1_tiebreak, first.team2_tiebreak) == (7, 1)


def test_tiebreak_needs_two_point_lead():
    score = play(initialize_score(), alternating_games(6))
    score = play(score, ["team1", "team2"] * 6)
    assert (score.team1_points, score.team2_points) == (6, 6)
    assert score.is_deuce is False

    score = award_point(score, "team1")
    assert score.sets == []
    score = award_point(score, "team1")
    assert score.team1_sets == 1
    assert (score.sets[0].team1_tiebreak, score.sets[0].team2_tiebreak) == (8, 6)


def test_best_of_three_match_end():
    score = play(initialize_score(), game("team1", 12))
    assert score.winner == "team1"
    assert score.team1_sets == 2
    assert len(score.sets) == 2
    assert score.current_set == 2
    assert score.is_match_point is False

    again = award_point(score, "team2")
    assert again == score
    assert again is not score


def test_best_of_five_needs_three_sets():
    score = play(initialize_score("best-of-5"), game("team2", 12), match_format="best-of-5")
    assert score.winner is None
    assert score.team2_sets == 2
    assert score.current_set == 3

    score = play(score, game("team2", 6), match_format="best-of-5")
    assert score.winner == "team2"
    assert score.team2_sets == 3


def test_match_tiebreak_to_ten_win_by_two():
    score = initialize_score("best-of-3", "tiebreak-10")
    score = play(score, ["team1", "team2"] * 9, game_format="tiebreak-10")
    assert (score.team1_points, score.team2_points) == (9, 9)
    assert score.is_deuce is False

    score = award_point(score, "team1", "best-of-3", "tiebreak-10")
    assert score.winner is None
    score = award_point(score, "team1", "best-of-3", "tiebreak-10")
    assert score.winner == "team1"
    assert len(score.sets) == 1
    only = score.sets[0]
    assert (only.team1_games, only.team2_games) == (1, 0)
    assert (only.team1_tiebreak, only.team2_tiebreak) == (11, 9)
    assert score.current_set == 1


def test_match_tiebreak_to_eight():
    score = play(initialize_score("best-of-3", "tiebreak-8"), ["team2"] * 8, game_format="tiebreak-8")
    assert score.winner == "team2"
    assert (score.sets[0].team1_tiebreak, score.sets[0].team2_tiebreak) == (0, 8)


def test_set_point_and_match_point_flags():
    # 5-0 in the first set, 40-0: set point but not match point
    score = play(initialize_score(), game("team1", 5) + ["team1"] * 3)
    assert score.is_set_point is True
    assert score.is_match_point is False

    # Same position one set up: match point
    score = play(initialize_score(), game("team1", 6) + game("team1", 5) + ["team1"] * 3)
    assert score.team1_sets == 1
    assert score.is_set_point is True
    assert score.is_match_point is True

    # 15-0 at 5-0 is neither
    score = play(initialize_score(), game("team1", 5) + ["team1"])
    assert score.is_set_point is False
    assert score.is_match_point is False


def test_set_point_in_tiebreak():
    score = play(initialize_score(), alternating_games(6) + ["team1", "team2"] * 5 + ["team1"])
    assert (score.team1_points, score.team2_points) == (6, 5)
    assert score.is_set_point is True
    assert score.is_match_point is False


def test_match_point_in_match_tiebreak():
    score = play(initialize_score("best-of-3", "tiebreak-10"), ["team1"] * 9, game_format="tiebreak-10")
    assert score.is_match_point is True
    assert score.is_set_point is True


def test_flags_truthful_over_all_short_sequences():
    """Every sequence of up to 8 points: flags agree with the raw counters."""
    for length in range(1, 9):
        for sides in product(("team1", "team2"), repeat=length):
            score = play(initialize_score(), sides)
            validate_score(score)
            p1, p2 = score.team1_points, score.team2_points
            assert score.is_deuce == (p1 >= 3 and p2 >= 3 and p1 == p2)
            if p1 >= 3 and p2 >= 3 and abs(p1 - p2) == 1:
                assert score.advantage == ("team1" if p1 > p2 else "team2")
            else:
                assert score.advantage is None
            # At most two games can finish in 8 points: no set is ever at stake
            assert score.is_set_point is False
            assert score.is_match_point is False
            assert score.team1_games + score.team2_games <= 2


def test_validate_rejects_impossible_counters():
    with pytest.raises(ValidationError):
        validate_score(Score(team1_points=-1))
    with pytest.raises(ValidationError):
        validate_score(Score(team1_games=7))
    with pytest.raises(ValidationError):
        validate_score(Score(team1_sets=1))
    with pytest.raises(ValidationError):
        validate_score(Score(team1_points=5, team2_points=1))
    with pytest.raises(ValidationError):
        validate_score(Score(in_tiebreak=True))
    with pytest.raises(ValidationError):
        validate_score(Score(current_set=2))


def test_award_point_rejects_impossible_score():
    with pytest.raises(ValidationError):
        award_point(Score(team1_games=9), "team1")


def test_load_score_rejects_malformed_json():
    with pytest.raises(ValidationError):
        load_score({"team1_points": "lots"})
    assert load_score(None) == Score()


def test_tiebreak_format_starts_from_zeroed_score():
    score = award_point(Score(), "team1", "best-of-3", "tiebreak-10")
    assert score.in_tiebreak is True
    assert labels(score) == ("1", "0")

    score = play(Score(), ["team2"] * 8, game_format="tiebreak-8")
    assert score.winner == "team2"
    assert score.sets[0].team2_tiebreak == 8


def test_load_score_follows_game_format():
    assert load_score(None, "best-of-3", "tiebreak-10").in_tiebreak is True
    stored = Score(team1_points=3).model_dump()
    assert labels(load_score(stored, "best-of-3", "tiebreak-8")) == ("3", "0")
    validate_score(Score(team1_points=3), "best-of-3", "tiebreak-8")
