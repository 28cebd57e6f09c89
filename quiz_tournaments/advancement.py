"""Advancement engine: what happens after a match is decided.

Runs inside the transaction that resolved the match, so tallies, bracket
propagation and a possible tournament finish commit together with it.
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from config.settings import EnginePolicy

from .database import TournamentDatabaseManager
from .exceptions import ConflictError
from .models import (
    MatchStatus,
    RewardGrant,
    Tournament,
    TournamentFormat,
    TournamentMatch,
    TournamentParticipant,
    TournamentStatus,
)
from .standings import calculate_standings

logger = logging.getLogger(__name__)

RESOLVED_STATUSES = (MatchStatus.COMPLETED, MatchStatus.BYE)


@dataclass
class AdvancementOutcome:
    """Side effects of resolving one match."""

    tournament_finished: bool = False
    grants: list[RewardGrant] = field(default_factory=list)
    tournament: Tournament | None = None


def build_reward_grants(
    tournament: Tournament, participants: list[TournamentParticipant]
) -> list[RewardGrant]:
    """Reward tier for every podium position, participation XP for everyone else."""
    tiers = tournament.rewards
    podium = {
        1: (tiers.xp_first, tiers.points_first),
        2: (tiers.xp_second, tiers.points_second),
        3: (tiers.xp_third, tiers.points_third),
    }

    grants = []
    for participant in participants:
        if participant.id is None:
            continue
        xp, points = podium.get(
            participant.final_position or 0, (tiers.xp_participation, 0)
        )
        grants.append(
            RewardGrant(
                participant_id=participant.id,
                reference_id=participant.reference_id,
                participant_kind=tournament.participant_kind,
                final_position=participant.final_position,
                xp=xp,
                points=points,
            )
        )
    return grants


def lowest_open_round(matches: list[TournamentMatch], total_rounds: int) -> int:
    """Lowest round that still has an undecided match, or the last round."""
    open_rounds = [m.round_number for m in matches if m.status not in RESOLVED_STATUSES]
    return min(open_rounds) if open_rounds else total_rounds


def pick_third_place(
    semifinals: list[TournamentMatch],
    participants: dict[int, TournamentParticipant],
) -> int | None:
    """Best losing semifinalist: most correct answers, then the better seed."""
    losers = []
    for match in semifinals:
        if match.status != MatchStatus.COMPLETED or match.winner_id is None:
            continue
        loser_id = match.opponent_of(match.winner_id)
        if loser_id is not None and loser_id in participants:
            losers.append(participants[loser_id])

    if len(losers) < 2:
        return None

    best = min(losers, key=lambda p: (-p.questions_correct, p.seed))
    return best.id


class AdvancementEngine:
    """Applies match results to participants, the bracket and the tournament."""

    def __init__(
        self,
        db: TournamentDatabaseManager,
        policy: EnginePolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.policy = policy or EnginePolicy()
        self.clock = clock

    def apply_bye(self, match: TournamentMatch, conn: sqlite3.Connection) -> None:
        """Credit the automatic winner of a bye and move them on. No loss is recorded."""
        if match.winner_id is None:
            raise ValueError(f"Bye match {match.id} has no winner")

        self.db.record_participant_result(match.winner_id, wins=1, conn=conn)
        self._place_winner(match, conn)
        logger.debug(f"Bye in match {match.id}: participant {match.winner_id} advances")

    def on_match_completed(
        self, match: TournamentMatch, tournament: Tournament, conn: sqlite3.Connection
    ) -> AdvancementOutcome:
        """Record the result of a completed match and finish the tournament if due."""
        if tournament.format == TournamentFormat.BRACKET:
            self._record_bracket_result(match, conn)
        else:
            self._record_league_result(match, conn)

        if tournament.id is None:
            raise ValueError("Tournament must be persisted before advancing")

        matches = self.db.get_matches(tournament.id, conn=conn)
        if any(m.status not in RESOLVED_STATUSES for m in matches):
            current_round = lowest_open_round(matches, tournament.total_rounds)
            if current_round != tournament.current_round:
                self.db.update_tournament(
                    tournament.id, conn=conn, current_round=current_round
                )
                logger.info(f"Tournament {tournament.id} advanced to round {current_round}")
            return AdvancementOutcome()

        return self._finish(tournament, matches, conn)

    def _record_bracket_result(
        self, match: TournamentMatch, conn: sqlite3.Connection
    ) -> None:
        if match.winner_id is None:
            raise ValueError(f"Bracket match {match.id} completed without a winner")

        loser_id = match.opponent_of(match.winner_id)
        self.db.record_participant_result(match.winner_id, wins=1, conn=conn)
        if loser_id is not None:
            self.db.record_participant_result(
                loser_id, losses=1, eliminated_in_round=match.round_number, conn=conn
            )
        self._place_winner(match, conn)

    def _record_league_result(
        self, match: TournamentMatch, conn: sqlite3.Connection
    ) -> None:
        if match.participant_a_id is None or match.participant_b_id is None:
            raise ValueError(f"League match {match.id} is missing a participant")

        if match.winner_id is None:
            for participant_id in (match.participant_a_id, match.participant_b_id):
                self.db.record_participant_result(participant_id, draws=1, conn=conn)
            return

        loser_id = match.opponent_of(match.winner_id)
        self.db.record_participant_result(match.winner_id, wins=1, conn=conn)
        if loser_id is not None:
            self.db.record_participant_result(loser_id, losses=1, conn=conn)

    def _place_winner(self, match: TournamentMatch, conn: sqlite3.Connection) -> None:
        if match.next_match_id is None or match.next_slot is None or match.winner_id is None:
            return

        if not self.db.assign_slot(
            match.next_match_id, match.next_slot, match.winner_id, conn=conn
        ):
            raise ConflictError(
                f"Slot {match.next_slot.value} of match {match.next_match_id} is already filled",
                "Bracket slot is already taken",
            )
        logger.debug(
            f"Participant {match.winner_id} placed in match {match.next_match_id} "
            f"slot {match.next_slot.value}"
        )

    def _finish(
        self,
        tournament: Tournament,
        matches: list[TournamentMatch],
        conn: sqlite3.Connection,
    ) -> AdvancementOutcome:
        assert tournament.id is not None
        participants = self.db.get_participants(tournament.id, conn=conn)
        positions = self._final_positions(tournament, participants, matches)

        for participant in participants:
            if participant.id is None:
                continue
            participant.final_position = positions.get(participant.id)
            if participant.final_position is not None:
                self.db.set_final_position(
                    participant.id, participant.final_position, conn=conn
                )

        by_position = {position: pid for pid, position in positions.items()}
        now = self.clock()
        if not self.db.update_tournament_status(
            tournament.id,
            TournamentStatus.FINISHED,
            expected=TournamentStatus.ACTIVE,
            conn=conn,
            finished_at=now,
            current_round=tournament.total_rounds,
            first_place_id=by_position.get(1),
            second_place_id=by_position.get(2),
            third_place_id=by_position.get(3),
        ):
            raise ConflictError(
                f"Tournament {tournament.id} is not active and cannot finish",
                "Tournament is not active",
            )

        finished = tournament.model_copy(
            update={
                "status": TournamentStatus.FINISHED,
                "finished_at": now,
                "current_round": tournament.total_rounds,
                "first_place_id": by_position.get(1),
                "second_place_id": by_position.get(2),
                "third_place_id": by_position.get(3),
            }
        )
        logger.info(
            f"Tournament {tournament.id} finished: winner participant {by_position.get(1)}"
        )
        return AdvancementOutcome(
            tournament_finished=True,
            grants=build_reward_grants(finished, participants),
            tournament=finished,
        )

    def _final_positions(
        self,
        tournament: Tournament,
        participants: list[TournamentParticipant],
        matches: list[TournamentMatch],
    ) -> dict[int, int]:
        if tournament.format == TournamentFormat.LEAGUE:
            standings = calculate_standings(participants, matches)
            return {row.participant_id: row.rank for row in standings}

        final = next(
            (m for m in matches if m.round_number == tournament.total_rounds), None
        )
        if final is None or final.winner_id is None:
            raise ValueError(f"Tournament {tournament.id} has no decided final")

        positions = {final.winner_id: 1}
        runner_up = final.opponent_of(final.winner_id)
        if runner_up is not None:
            positions[runner_up] = 2

        if self.policy.third_place == "best_semifinal_loser" and tournament.total_rounds >= 2:
            semifinals = [
                m for m in matches if m.round_number == tournament.total_rounds - 1
            ]
            by_id = {p.id: p for p in participants if p.id is not None}
            third = pick_third_place(semifinals, by_id)
            if third is not None:
                positions[third] = 3

        return positions
