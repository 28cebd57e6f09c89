"""Tests for winner propagation, final positions and rewards."""

import asyncio

import pytest

from quiz_tournaments.advancement import build_reward_grants, lowest_open_round
from quiz_tournaments.models import (
    MatchStatus,
    TournamentFormat,
    TournamentStatus,
)


def by_label(detail, label: str):
    return next(m for m in detail.matches if m.bracket_label == label)


def seeds(detail) -> dict[int, int]:
    """Seed number -> participant id."""
    return {p.seed: p.id for p in detail.participants}


@pytest.mark.integration
class TestBracketAdvancement:
    def test_five_of_eight_with_byes(self, manager, new_tournament, play_match):
        detail = new_tournament(5)
        seed = seeds(detail)

        assert len(detail.matches) == 7
        first_round = [m for m in detail.matches if m.round_number == 1]
        assert len([m for m in first_round if m.status == MatchStatus.BYE]) == 3
        real = [m for m in first_round if m.status == MatchStatus.PENDING]
        assert len(real) == 1
        assert (real[0].participant_a_id, real[0].participant_b_id) == (seed[4], seed[5])
        assert all(not m.question_sequence for m in first_round if m.status == MatchStatus.BYE)

        # Byes already moved seeds 1, 2 and 3 forward.
        sf1, sf2 = by_label(detail, "SF1"), by_label(detail, "SF2")
        assert (sf1.participant_a_id, sf1.participant_b_id) == (seed[1], None)
        assert (sf2.participant_a_id, sf2.participant_b_id) == (seed[2], seed[3])
        assert detail.tournament.status == TournamentStatus.READY
        assert detail.tournament.current_round == 1

        participants = {p.id: p for p in detail.participants}
        for s in (1, 2, 3):
            assert participants[seed[s]].wins == 1
            assert participants[seed[s]].losses == 0

        status = asyncio.run(manager.get_round_status(detail.tournament.id, 1))
        assert (status.total_matches, status.bye_matches, status.pending_matches) == (4, 3, 1)
        assert not status.all_completed

        play_match(real[0].id, {seed[5]: [True, True, True]})
        assert asyncio.run(manager.get_round_status(detail.tournament.id, 1)).all_completed

        after = asyncio.run(manager.get_tournament(detail.tournament.id))
        sf1 = by_label(after, "SF1")
        assert (sf1.participant_a_id, sf1.participant_b_id) == (seed[1], seed[5])
        assert after.tournament.current_round == 2
        loser = next(p for p in after.participants if p.id == seed[4])
        assert loser.eliminated and loser.eliminated_in_round == 1

    def test_full_bracket_positions_and_rewards(
        self, manager, new_tournament, play_match, rewards
    ):
        detail = new_tournament(4)
        seed = seeds(detail)
        sf1, sf2 = by_label(detail, "SF1"), by_label(detail, "SF2")
        assert (sf1.participant_a_id, sf1.participant_b_id) == (seed[1], seed[4])
        assert (sf2.participant_a_id, sf2.participant_b_id) == (seed[2], seed[3])

        play_match(sf1.id, {seed[1]: [True] * 3, seed[4]: [True, True, False]})
        play_match(sf2.id, {seed[2]: [True, False, False], seed[3]: [True, True, False]})

        mid = asyncio.run(manager.get_tournament(detail.tournament.id))
        final = by_label(mid, "FINAL1")
        assert (final.participant_a_id, final.participant_b_id) == (seed[1], seed[3])
        assert mid.tournament.status == TournamentStatus.ACTIVE
        assert rewards.granted == {}

        result = play_match(final.id, {seed[1]: [True] * 3})
        assert result.advancement.tournament_finished

        done = asyncio.run(manager.get_tournament(detail.tournament.id))
        tournament = done.tournament
        assert tournament.status == TournamentStatus.FINISHED
        assert tournament.finished_at is not None
        assert tournament.first_place_id == seed[1]
        assert tournament.second_place_id == seed[3]
        # Seed 4 answered more questions right than seed 2 across the event.
        assert tournament.third_place_id == seed[4]

        positions = {p.id: p.final_position for p in done.participants}
        assert positions == {seed[1]: 1, seed[3]: 2, seed[4]: 3, seed[2]: None}

        grants = {g.participant_id: (g.xp, g.points) for g in rewards.granted[tournament.id]}
        assert grants == {
            seed[1]: (100, 50),
            seed[3]: (50, 25),
            seed[4]: (25, 10),
            seed[2]: (10, 0),
        }

    def test_two_player_bracket_has_no_third_place(self, new_tournament, play_match, manager):
        detail = new_tournament(2)
        final = by_label(detail, "FINAL1")

        play_match(final.id, {final.participant_b_id: [True] * 3})

        tournament = asyncio.run(manager.get_tournament(detail.tournament.id)).tournament
        assert tournament.first_place_id == final.participant_b_id
        assert tournament.second_place_id == final.participant_a_id
        assert tournament.third_place_id is None

    def test_three_player_bracket_has_one_real_semifinal(self, new_tournament, play_match, manager):
        detail = new_tournament(3)
        seed = seeds(detail)

        play_match(by_label(detail, "SF2").id, {seed[2]: [True] * 3})
        final = by_label(asyncio.run(manager.get_tournament(detail.tournament.id)), "FINAL1")
        play_match(final.id, {seed[2]: [True] * 3})

        done = asyncio.run(manager.get_tournament(detail.tournament.id))
        assert done.tournament.first_place_id == seed[2]
        assert done.tournament.second_place_id == seed[1]
        assert done.tournament.third_place_id is None


@pytest.mark.integration
class TestLeagueAdvancement:
    def test_league_finishes_in_standings_order(
        self, manager, new_tournament, play_match, rewards
    ):
        detail = new_tournament(3, format=TournamentFormat.LEAGUE)
        seed = seeds(detail)
        assert len(detail.matches) == 3
        assert detail.tournament.total_rounds == 3
        assert all(m.next_match_id is None for m in detail.matches)

        for match in detail.matches:
            pair = {match.participant_a_id, match.participant_b_id}
            if seed[1] in pair:
                play_match(match.id, {seed[1]: [True] * 3})
            else:
                play_match(match.id, {seed[2]: [True] * 3, seed[3]: [True] * 3})

        done = asyncio.run(manager.get_tournament(detail.tournament.id))
        assert done.tournament.status == TournamentStatus.FINISHED
        positions = {p.id: p.final_position for p in done.participants}
        assert positions == {seed[1]: 1, seed[2]: 2, seed[3]: 3}

        standings = asyncio.run(manager.get_standings(detail.tournament.id))
        assert [row.participant_id for row in standings] == [seed[1], seed[2], seed[3]]
        assert [row.points for row in standings] == [6, 1, 1]

        grants = {g.participant_id: g.xp for g in rewards.granted[done.tournament.id]}
        assert grants == {seed[1]: 100, seed[2]: 50, seed[3]: 25}
        assert all(not p.eliminated for p in done.participants)


def test_lowest_open_round(new_tournament):
    detail = new_tournament(5)
    assert lowest_open_round(detail.matches, 3) == 1
    assert lowest_open_round([], 3) == 3


def test_reward_grants_without_positions(new_tournament):
    detail = new_tournament(2, generate=False)

    grants = build_reward_grants(detail.tournament, detail.participants)

    assert [(g.xp, g.points, g.final_position) for g in grants] == [(10, 0, None)] * 2
