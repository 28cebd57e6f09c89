"""Tournament management: setup, generation and match progression."""

import logging
import random
import sqlite3
from collections.abc import Callable
from datetime import datetime
from typing import Any

from config.settings import AppConfig, EnginePolicy, TournamentDefaults

from .advancement import AdvancementEngine, build_reward_grants, lowest_open_round
from .bracket import is_power_of_two, plan_bracket
from .database import TournamentDatabaseManager
from .exceptions import ConflictError, NotFoundError, ValidationError
from .match_engine import CompletionResult, MatchEngine
from .models import (
    AnswerRecord,
    MatchDetail,
    MatchStatus,
    RoundStatus,
    StandingRow,
    Tournament,
    TournamentCreateRequest,
    TournamentDetail,
    TournamentFormat,
    TournamentMatch,
    TournamentParticipant,
    TournamentStatus,
    TournamentSummary,
    TournamentUpdateRequest,
)
from .providers import (
    QuestionBankProvider,
    RewardService,
    RosterEntry,
    RosterProvider,
)
from .questions import Question, normalize_question
from .schedule import build_round_robin, count_rounds
from .standings import calculate_standings

logger = logging.getLogger(__name__)

MIN_PARTICIPANTS = 2


class TournamentManager:
    """Manages tournament creation, progression, and bracket generation."""

    def __init__(
        self,
        db: TournamentDatabaseManager,
        question_bank: QuestionBankProvider,
        roster: RosterProvider,
        rewards: RewardService,
        config: AppConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
        rng: random.Random | None = None,
    ):
        self.db = db
        self.question_bank = question_bank
        self.roster = roster
        self.rewards = rewards
        self.config = config or AppConfig()
        self.clock = clock
        self.rng = rng or random.Random()
        self.advancement = AdvancementEngine(db, self.policy, clock)
        self.matches = MatchEngine(db, self.advancement, self.policy, clock)

    @property
    def defaults(self) -> TournamentDefaults:
        return self.config.defaults

    @property
    def policy(self) -> EnginePolicy:
        return self.config.policy

    # =========================================================================
    # HELPERS
    # =========================================================================

    def _require_tournament(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> Tournament:
        tournament = self.db.get_tournament(tournament_id, conn=conn)
        if not tournament:
            raise NotFoundError("tournament", tournament_id)
        return tournament

    @staticmethod
    def _require_draft(tournament: Tournament, action: str) -> None:
        if tournament.status != TournamentStatus.DRAFT:
            raise ValidationError(
                f"Cannot {action}: tournament {tournament.id} is {tournament.status.value}",
                "Tournament can only be changed while it is a draft",
            )

    def _validate_capacity(self, tournament_format: TournamentFormat, capacity: int) -> None:
        max_capacity = self.policy.max_capacity
        if not MIN_PARTICIPANTS <= capacity <= max_capacity:
            raise ValidationError(
                f"Capacity {capacity} outside {MIN_PARTICIPANTS}..{max_capacity}",
                f"Capacity must be between {MIN_PARTICIPANTS} and {max_capacity}",
            )
        if tournament_format == TournamentFormat.BRACKET and not is_power_of_two(capacity):
            raise ValidationError(
                f"Bracket capacity {capacity} is not a power of two",
                "Bracket capacity must be a power of two",
            )

    async def _draw_questions(
        self, tournament: Tournament, count: int, exclude: list[str] | None = None
    ) -> list[Question]:
        raw_questions = await self.question_bank.draw_questions(
            tournament.question_bank_ids, count, exclude or []
        )
        return [normalize_question(raw) for raw in raw_questions[:count]]

    async def _grant_rewards(self, tournament_id: int) -> None:
        """Deliver rewards of a finished tournament at most once.

        The claim is released when the reward service fails, so completing
        the final match again retries the delivery.
        """
        if not self.db.claim_reward_delivery(tournament_id):
            return

        tournament = self._require_tournament(tournament_id)
        grants = build_reward_grants(tournament, self.db.get_participants(tournament_id))
        try:
            await self.rewards.grant(tournament, grants)
        except Exception as e:
            self.db.release_reward_delivery(tournament_id)
            logger.error(f"Failed to grant rewards for tournament {tournament_id}: {e}")
            raise
        logger.info(f"Rewards granted for tournament {tournament_id}")

    # =========================================================================
    # TOURNAMENT SETUP
    # =========================================================================

    async def create_tournament(self, request: TournamentCreateRequest) -> Tournament:
        """Create a draft tournament, filling unset options from the defaults."""
        capacity = request.capacity or self.defaults.capacity
        self._validate_capacity(request.format, capacity)

        logger.info(
            f"Creating tournament: {request.name} ({request.format.value}, capacity {capacity})"
        )

        tournament = Tournament(
            name=request.name,
            description=request.description,
            format=request.format,
            participant_kind=request.participant_kind,
            capacity=capacity,
            status=TournamentStatus.DRAFT,
            questions_per_match=request.questions_per_match
            or self.defaults.questions_per_match,
            seconds_per_question=request.seconds_per_question
            or self.defaults.seconds_per_question,
            question_bank_ids=request.question_bank_ids,
            rewards=request.rewards or self.defaults.rewards,
            created_at=self.clock(),
        )
        tournament.id = self.db.create_tournament(tournament)
        return tournament

    async def update_tournament(
        self, tournament_id: int, changes: TournamentUpdateRequest
    ) -> Tournament:
        """Change the configuration of a draft tournament."""
        fields = changes.model_dump(exclude_none=True)
        if "rewards" in fields and changes.rewards is not None:
            fields["rewards"] = changes.rewards

        with self.db.transaction() as conn:
            tournament = self._require_tournament(tournament_id, conn)
            self._require_draft(tournament, "update configuration")

            if "capacity" in fields:
                self._validate_capacity(tournament.format, fields["capacity"])
                registered = len(self.db.get_participants(tournament_id, conn=conn))
                if fields["capacity"] < registered:
                    raise ValidationError(
                        f"Capacity {fields['capacity']} below {registered} registered participants",
                        "Capacity is lower than the number of participants",
                    )

            if fields:
                self.db.update_tournament(tournament_id, conn=conn, **fields)
                logger.info(f"Updated tournament {tournament_id}: {sorted(fields)}")

            return self._require_tournament(tournament_id, conn)

    async def list_tournaments(
        self, limit: int | None = None, offset: int = 0
    ) -> list[TournamentSummary]:
        return self.db.list_tournaments(limit, offset)

    async def get_tournament(self, tournament_id: int) -> TournamentDetail:
        """Tournament with participants (seed order) and every match."""
        detail = self.db.get_tournament_detail(tournament_id)
        if not detail:
            raise NotFoundError("tournament", tournament_id)
        return detail

    async def delete_tournament(self, tournament_id: int) -> None:
        """Delete a tournament with its participants, matches and answers."""
        if not self.db.delete_tournament(tournament_id):
            raise NotFoundError("tournament", tournament_id)

    # =========================================================================
    # PARTICIPANTS
    # =========================================================================

    async def add_participants(
        self, tournament_id: int, reference_ids: list[str]
    ) -> list[TournamentParticipant]:
        """Register roster entries as participants, all or none.

        New participants are seeded after the existing ones, ordered by the
        roster's seed hint (entries without a hint go last).
        """
        if not reference_ids:
            raise ValidationError("No participants given", "Select at least one participant")
        duplicates = {r for r in reference_ids if reference_ids.count(r) > 1}
        if duplicates:
            raise ConflictError(
                f"Participants listed more than once: {sorted(duplicates)}",
                "A participant was selected twice",
            )

        tournament = self._require_tournament(tournament_id)
        self._require_draft(tournament, "add participants")
        entries = await self.roster.resolve(tournament.participant_kind, reference_ids)

        def by_hint(entry: RosterEntry) -> tuple[bool, int]:
            return (entry.seed_hint is None, entry.seed_hint or 0)

        entries = sorted(entries, key=by_hint)

        with self.db.transaction() as conn:
            tournament = self._require_tournament(tournament_id, conn)
            self._require_draft(tournament, "add participants")

            existing = self.db.get_participants(tournament_id, conn=conn)
            registered = {p.reference_id for p in existing}
            already = [e.reference_id for e in entries if e.reference_id in registered]
            if already:
                raise ConflictError(
                    f"Already registered in tournament {tournament_id}: {already}",
                    "A participant is already registered",
                )
            if len(existing) + len(entries) > tournament.capacity:
                raise ValidationError(
                    f"Tournament {tournament_id} holds {tournament.capacity} participants; "
                    f"{len(existing)} registered, {len(entries)} requested",
                    "Tournament is full",
                )

            added = []
            for seed, entry in enumerate(entries, start=len(existing) + 1):
                participant = TournamentParticipant(
                    tournament_id=tournament_id,
                    seed=seed,
                    reference_id=entry.reference_id,
                    display_name=entry.display_name,
                )
                participant.id = self.db.add_participant(participant, conn=conn)
                added.append(participant)

            logger.info(f"Added {len(added)} participants to tournament {tournament_id}")
            return added

    async def remove_participant(self, participant_id: int) -> list[TournamentParticipant]:
        """Remove a participant from a draft and close the gap in the seeds."""
        with self.db.transaction() as conn:
            participant = self.db.get_participant(participant_id, conn=conn)
            if not participant:
                raise NotFoundError("participant", participant_id)

            tournament = self._require_tournament(participant.tournament_id, conn)
            self._require_draft(tournament, "remove participants")

            self.db.delete_participant(participant_id, conn=conn)
            remaining = self.db.get_participants(participant.tournament_id, conn=conn)
            self.db.set_seeds([p.id for p in remaining if p.id is not None], conn=conn)

            logger.info(
                f"Removed participant {participant_id} from tournament {participant.tournament_id}"
            )
            return self.db.get_participants(participant.tournament_id, conn=conn)

    async def shuffle_seeds(self, tournament_id: int) -> list[TournamentParticipant]:
        """Randomly reassign seeds 1..N."""
        with self.db.transaction() as conn:
            tournament = self._require_tournament(tournament_id, conn)
            self._require_draft(tournament, "shuffle seeds")

            participant_ids = [
                p.id for p in self.db.get_participants(tournament_id, conn=conn) if p.id is not None
            ]
            self.rng.shuffle(participant_ids)
            self.db.set_seeds(participant_ids, conn=conn)

            logger.info(f"Shuffled seeds of tournament {tournament_id}")
            return self.db.get_participants(tournament_id, conn=conn)

    # =========================================================================
    # GENERATION
    # =========================================================================

    def _check_generation(
        self, tournament_id: int, conn: sqlite3.Connection
    ) -> tuple[Tournament, list[TournamentParticipant]]:
        tournament = self._require_tournament(tournament_id, conn)
        if self.db.count_matches(tournament_id, conn=conn):
            raise ConflictError(
                f"Tournament {tournament_id} already has matches",
                "Matches were already generated",
            )
        self._require_draft(tournament, "generate matches")

        participants = self.db.get_participants(tournament_id, conn=conn)
        if len(participants) < MIN_PARTICIPANTS:
            raise ValidationError(
                f"Tournament {tournament_id} has {len(participants)} participants, "
                f"needs at least {MIN_PARTICIPANTS}",
                f"At least {MIN_PARTICIPANTS} participants are needed",
            )
        return tournament, participants

    async def generate_bracket(self, tournament_id: int) -> TournamentDetail:
        """Create every match of the tournament and mark it ready.

        League tournaments get their round-robin schedule instead.
        """
        tournament = self._require_tournament(tournament_id)
        if tournament.format == TournamentFormat.LEAGUE:
            return await self.build_schedule(tournament_id)

        with self.db.transaction() as conn:
            tournament, participants = self._check_generation(tournament_id, conn)
            plan = plan_bracket(participants)
            now = self.clock()

            # Later rounds first so each match knows the id of the match it feeds.
            match_ids: dict[tuple[int, int], int] = {}
            byes: list[TournamentMatch] = []
            for round_matches in reversed(plan.rounds):
                for planned in round_matches:
                    downstream = plan.feeds(planned.round_number, planned.index)
                    bye_winner = planned.bye_winner
                    match = TournamentMatch(
                        tournament_id=tournament_id,
                        round_number=planned.round_number,
                        slot_number=planned.slot_number,
                        bracket_label=planned.label,
                        status=MatchStatus.BYE if planned.is_bye else MatchStatus.PENDING,
                        participant_a_id=planned.side_a.id if planned.side_a else None,
                        participant_b_id=planned.side_b.id if planned.side_b else None,
                        winner_id=bye_winner.id if bye_winner else None,
                        next_match_id=(
                            match_ids[(downstream.round_number, downstream.index)]
                            if downstream
                            else None
                        ),
                        next_slot=planned.next_slot if downstream else None,
                        completed_at=now if planned.is_bye else None,
                    )
                    match.id = self.db.add_match(match, conn=conn)
                    match_ids[(planned.round_number, planned.index)] = match.id
                    if planned.is_bye:
                        byes.append(match)

            for bye in byes:
                self.advancement.apply_bye(bye, conn)

            self.db.update_tournament_status(
                tournament_id,
                TournamentStatus.READY,
                expected=TournamentStatus.DRAFT,
                conn=conn,
                total_rounds=plan.total_rounds,
                current_round=lowest_open_round(
                    self.db.get_matches(tournament_id, conn=conn), plan.total_rounds
                ),
            )

            logger.info(
                f"Generated bracket for tournament {tournament_id}: {len(participants)} "
                f"participants, {plan.total_matches} matches, {plan.byes} byes"
            )
            detail = self.db.get_tournament_detail(tournament_id, conn=conn)
            assert detail is not None
            return detail

    async def build_schedule(self, tournament_id: int) -> TournamentDetail:
        """Create the full round-robin schedule of a league and mark it ready."""
        with self.db.transaction() as conn:
            tournament, participants = self._check_generation(tournament_id, conn)
            if tournament.format != TournamentFormat.LEAGUE:
                raise ValidationError(
                    f"Tournament {tournament_id} is a {tournament.format.value}, not a league",
                    "Only league tournaments have a round-robin schedule",
                )

            fixtures = build_round_robin(participants)
            for fixture in fixtures:
                self.db.add_match(
                    TournamentMatch(
                        tournament_id=tournament_id,
                        round_number=fixture.round_number,
                        slot_number=fixture.slot_number,
                        bracket_label=fixture.label,
                        participant_a_id=fixture.home.id,
                        participant_b_id=fixture.away.id,
                    ),
                    conn=conn,
                )

            self.db.update_tournament_status(
                tournament_id,
                TournamentStatus.READY,
                expected=TournamentStatus.DRAFT,
                conn=conn,
                total_rounds=count_rounds(len(participants)),
                current_round=1,
            )

            logger.info(
                f"Built schedule for tournament {tournament_id}: {len(participants)} "
                f"participants, {len(fixtures)} matches"
            )
            detail = self.db.get_tournament_detail(tournament_id, conn=conn)
            assert detail is not None
            return detail

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    async def pause_tournament(self, tournament_id: int) -> Tournament:
        """Hold an active tournament; matches cannot be played while paused."""
        tournament = self._require_tournament(tournament_id)
        if not self.db.update_tournament_status(
            tournament_id, TournamentStatus.PAUSED, expected=TournamentStatus.ACTIVE
        ):
            raise ConflictError(
                f"Tournament {tournament_id} is {tournament.status.value}, not active",
                "Only an active tournament can be paused",
            )
        return self._require_tournament(tournament_id)

    async def resume_tournament(self, tournament_id: int) -> Tournament:
        tournament = self._require_tournament(tournament_id)
        if not self.db.update_tournament_status(
            tournament_id, TournamentStatus.ACTIVE, expected=TournamentStatus.PAUSED
        ):
            raise ConflictError(
                f"Tournament {tournament_id} is {tournament.status.value}, not paused",
                "Only a paused tournament can be resumed",
            )
        return self._require_tournament(tournament_id)

    async def get_standings(self, tournament_id: int) -> list[StandingRow]:
        """League table; brackets have no standings."""
        detail = await self.get_tournament(tournament_id)
        if detail.tournament.format != TournamentFormat.LEAGUE:
            raise ValidationError(
                f"Tournament {tournament_id} is a bracket; standings are league only",
                "Standings are only available for leagues",
            )
        return calculate_standings(detail.participants, detail.matches)

    async def get_round_status(self, tournament_id: int, round_number: int) -> RoundStatus:
        tournament = self._require_tournament(tournament_id)
        if not 1 <= round_number <= max(tournament.total_rounds, 1):
            raise ValidationError(
                f"Round {round_number} outside 1..{tournament.total_rounds} for tournament {tournament_id}",
                "Unknown round",
            )
        return self.db.get_round_status(tournament_id, round_number)

    # =========================================================================
    # MATCHES
    # =========================================================================

    async def get_match(self, match_id: int) -> MatchDetail:
        return self.matches.detail(match_id)

    async def start_match(self, match_id: int) -> MatchDetail:
        """Draw questions for a pending match and start it."""
        _, tournament = self.matches.check_startable(match_id)
        questions = await self._draw_questions(tournament, tournament.questions_per_match)
        self.matches.start(match_id, questions)
        return self.matches.detail(match_id)

    async def submit_answer(
        self,
        match_id: int,
        participant_id: int,
        answer: Any,
        time_spent_ms: int | None = None,
    ) -> AnswerRecord:
        return self.matches.submit_answer(match_id, participant_id, answer, time_spent_ms)

    async def reveal_result(self, match_id: int) -> MatchDetail:
        self.matches.reveal(match_id)
        return self.matches.detail(match_id)

    async def next_question(self, match_id: int) -> MatchDetail:
        self.matches.next_question(match_id)
        return self.matches.detail(match_id)

    async def complete_match(self, match_id: int) -> CompletionResult:
        """Decide a match, advancing the winner and finishing the tournament when due.

        A drawn bracket match may instead get a sudden-death question and stay
        in progress. Completing an already completed match returns it as is.
        """
        match = await self._current_match(match_id)

        sudden_death_question = None
        if match.status == MatchStatus.IN_PROGRESS:
            tournament = self._require_tournament(match.tournament_id)
            if self.matches.wants_sudden_death(match, tournament):
                drawn = await self._draw_questions(
                    tournament, 1, exclude=match.question_sequence
                )
                if drawn:
                    sudden_death_question = drawn[0]
                else:
                    logger.info(
                        f"No sudden-death question left for match {match_id}; seeding decides"
                    )

        result = self.matches.complete(match_id, match, sudden_death_question)
        if result.completed:
            await self._grant_rewards(match.tournament_id)
        return result

    async def _current_match(self, match_id: int) -> TournamentMatch:
        match = self.db.get_match(match_id)
        if not match:
            raise NotFoundError("match", match_id)
        return match
