"""League table derived from completed matches."""

from dataclasses import dataclass

from .models import MatchStatus, StandingRow, TournamentMatch, TournamentParticipant

POINTS_FOR_WIN = 3
POINTS_FOR_DRAW = 1


@dataclass
class _Tally:
    participant: TournamentParticipant
    wins: int = 0
    draws: int = 0
    losses: int = 0
    points_for: int = 0
    points_against: int = 0

    @property
    def played(self) -> int:
        return self.wins + self.draws + self.losses

    @property
    def points(self) -> int:
        return POINTS_FOR_WIN * self.wins + POINTS_FOR_DRAW * self.draws

    @property
    def score_difference(self) -> int:
        return self.points_for - self.points_against


def calculate_standings(
    participants: list[TournamentParticipant], matches: list[TournamentMatch]
) -> list[StandingRow]:
    """Rank participants by points, then score difference, then points scored.

    Only completed matches count. Rows that are still level on all three keys
    stay in seed order.
    """
    tallies = {p.id: _Tally(p) for p in participants if p.id is not None}

    for match in matches:
        if match.status != MatchStatus.COMPLETED:
            continue
        if match.participant_a_id is None or match.participant_b_id is None:
            continue

        for own_id, own_score, other_score in (
            (match.participant_a_id, match.score_a, match.score_b),
            (match.participant_b_id, match.score_b, match.score_a),
        ):
            tally = tallies.get(own_id)
            if tally is None:
                continue
            tally.points_for += own_score
            tally.points_against += other_score
            if match.winner_id is None:
                tally.draws += 1
            elif match.winner_id == own_id:
                tally.wins += 1
            else:
                tally.losses += 1

    ordered = sorted(
        tallies.values(),
        key=lambda t: (-t.points, -t.score_difference, -t.points_for, t.participant.seed),
    )

    return [
        StandingRow(
            rank=rank,
            participant_id=tally.participant.id or 0,
            seed=tally.participant.seed,
            display_name=tally.participant.display_name,
            played=tally.played,
            wins=tally.wins,
            draws=tally.draws,
            losses=tally.losses,
            points_for=tally.points_for,
            points_against=tally.points_against,
            score_difference=tally.score_difference,
            points=tally.points,
        )
        for rank, tally in enumerate(ordered, start=1)
    ]
