"""Tests for round-robin scheduling."""

from itertools import combinations

import pytest

from quiz_tournaments.exceptions import ValidationError
from quiz_tournaments.schedule import build_round_robin, count_rounds


@pytest.mark.parametrize("n", range(2, 17))
def test_every_pair_meets_exactly_once(n):
    fixtures = build_round_robin(list(range(n)))

    pairs = [frozenset((f.home, f.away)) for f in fixtures]
    assert len(fixtures) == n * (n - 1) // 2
    assert set(pairs) == {frozenset(p) for p in combinations(range(n), 2)}
    assert len(set(pairs)) == len(pairs)


@pytest.mark.parametrize("n", range(2, 17))
def test_nobody_plays_twice_in_a_round(n):
    fixtures = build_round_robin(list(range(n)))

    assert max(f.round_number for f in fixtures) == count_rounds(n)
    for round_number in range(1, count_rounds(n) + 1):
        playing = [
            side
            for f in fixtures
            if f.round_number == round_number
            for side in (f.home, f.away)
        ]
        assert len(playing) == len(set(playing))


def test_odd_field_rests_one_participant_per_round():
    fixtures = build_round_robin(["a", "b", "c", "d", "e"])

    assert count_rounds(5) == 5
    for round_number in range(1, 6):
        assert len([f for f in fixtures if f.round_number == round_number]) == 2


def test_labels_and_numbering():
    fixtures = build_round_robin(["a", "b", "c", "d"])

    assert [f.label for f in fixtures[:3]] == ["J1M1", "J1M2", "J2M3"]
    assert [f.match_number for f in fixtures] == list(range(1, 7))
    assert {f.slot_number for f in fixtures} == {1, 2}


def test_too_few_entries():
    with pytest.raises(ValidationError):
        build_round_robin(["a"])
