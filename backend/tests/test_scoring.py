import pytest

from padelclub.exceptions import ValidationError
from padelclub.scoring import padel


@pytest.mark.parametrize(
    "p1, p2, pair1_won",
    [
        (6, 0, True),
        (6, 4, True),
        (4, 6, False),
        (7, 5, True),
        (5, 7, False),
        (7, 6, True),
        (6, 7, False),
    ],
)
def test_valid_sets(p1, p2, pair1_won):
    assert padel.validate_set(p1, p2) is pair1_won


@pytest.mark.parametrize(
    "p1, p2, code",
    [
        (6, 6, "draw_not_allowed"),
        (0, 0, "draw_not_allowed"),
        (6, 5, "invalid_set_score"),
        (7, 4, "invalid_set_score"),
        (8, 6, "invalid_set_score"),
        (5, 3, "invalid_set_score"),
        (-1, 6, "invalid_score"),
    ],
)
def test_invalid_sets(p1, p2, code):
    with pytest.raises(ValidationError) as exc:
        padel.validate_set(p1, p2)
    assert exc.value.code == code


def test_two_set_win():
    result = padel.validate_sets([(6, 4), (6, 3)])
    assert result.winner == "A"
    assert result.wins == {"A": 2, "B": 0}
    assert result.pair1_won


def test_three_set_win_for_pair_two():
    result = padel.validate_sets([(6, 4), (3, 6), (5, 7)])
    assert result.winner == "B"
    assert result.wins == {"A": 1, "B": 2}


def test_split_sets_require_third():
    with pytest.raises(ValidationError) as exc:
        padel.validate_sets([(6, 0), (0, 6)])
    assert exc.value.code == "third_set_required"
    assert exc.value.detail == "Sets are 1-1. Provide 3rd set."


def test_third_set_after_decided_match_rejected():
    with pytest.raises(ValidationError) as exc:
        padel.validate_sets([(6, 0), (6, 1), (6, 2)])
    assert exc.value.code == "match_already_decided"


@pytest.mark.parametrize("sets", [[(6, 0)], [(6, 0), (0, 6), (6, 0), (6, 0)]])
def test_set_count_bounds(sets):
    with pytest.raises(ValidationError) as exc:
        padel.validate_sets(sets)
    assert exc.value.code == "invalid_set_count"


def test_error_names_the_offending_set():
    with pytest.raises(ValidationError) as exc:
        padel.validate_sets([(6, 2), (6, 5)])
    assert exc.value.code == "invalid_set_score"
    assert exc.value.detail.startswith("Set 2:")


def test_requires_third_set_helper():
    assert padel.requires_third_set([(6, 4), (4, 6)])
    assert not padel.requires_third_set([(6, 4), (6, 4)])
    assert not padel.requires_third_set([(6, 4)])


def test_format_score_and_winning_side():
    assert padel.format_score([(6, 4), (4, 6), (7, 5)]) == "6-4 4-6 7-5"
    assert padel.winning_side({"A": 2, "B": 1}) == "A"
    assert padel.winning_side({"A": 0, "B": 2}) == "B"
    assert padel.winning_side({"A": 1, "B": 1}) is None
