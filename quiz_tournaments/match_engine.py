"""Match state machine.

A match moves PENDING -> IN_PROGRESS -> COMPLETED; byes are created already
resolved. While in progress every question cycles ANSWERING -> REVEALED.
Each step runs in one write transaction and guards its update with the state
it read, so a duplicated or concurrent request changes nothing and surfaces
as a ``ConflictError`` (completion is the exception: it is idempotent).
"""

import logging
import sqlite3
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from config.settings import EnginePolicy

from .advancement import AdvancementEngine, AdvancementOutcome
from .database import TournamentDatabaseManager
from .exceptions import ConflictError, NotFoundError, ValidationError
from .models import (
    AnswerRecord,
    MatchDetail,
    MatchStatus,
    QuestionPhase,
    Tournament,
    TournamentFormat,
    TournamentMatch,
    TournamentStatus,
)
from .questions import Question, canonical_answer, evaluate_answer

logger = logging.getLogger(__name__)

PLAYABLE_TOURNAMENT_STATUSES = (TournamentStatus.READY, TournamentStatus.ACTIVE)


@dataclass
class CompletionResult:
    """What a completion request did to a match."""

    match: TournamentMatch
    completed: bool  # False while a sudden-death question is being played
    already_completed: bool = False
    advancement: AdvancementOutcome = field(default_factory=AdvancementOutcome)


def questions_resolved(match: TournamentMatch) -> bool:
    """True when no question of the match is still waiting for its reveal."""
    if match.questions_exhausted:
        return True
    last = len(match.question_sequence) - 1
    return (
        match.current_question_index == last
        and match.question_phase == QuestionPhase.REVEALED
    )


class MatchEngine:
    """Runs head-to-head matches question by question."""

    def __init__(
        self,
        db: TournamentDatabaseManager,
        advancement: AdvancementEngine,
        policy: EnginePolicy | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.db = db
        self.advancement = advancement
        self.policy = policy or EnginePolicy()
        self.clock = clock

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _require_match(
        self, match_id: int, conn: sqlite3.Connection | None = None
    ) -> TournamentMatch:
        match = self.db.get_match(match_id, conn=conn)
        if not match:
            raise NotFoundError("match", match_id)
        return match

    def _require_tournament(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> Tournament:
        tournament = self.db.get_tournament(tournament_id, conn=conn)
        if not tournament:
            raise NotFoundError("tournament", tournament_id)
        return tournament

    @staticmethod
    def _require_playable(tournament: Tournament) -> None:
        if tournament.status not in PLAYABLE_TOURNAMENT_STATUSES:
            raise ConflictError(
                f"Tournament {tournament.id} is {tournament.status.value}; matches cannot be played",
                f"Tournament is {tournament.status.value}",
            )

    @staticmethod
    def _require_in_progress(match: TournamentMatch) -> None:
        if match.status != MatchStatus.IN_PROGRESS:
            raise ConflictError(
                f"Match {match.id} is {match.status.value}, not in progress",
                "Match is not in progress",
            )

    def _require_active_question(
        self, match: TournamentMatch, conn: sqlite3.Connection
    ) -> Question:
        if match.questions_exhausted:
            raise ConflictError(
                f"Match {match.id} has no active question", "No active question"
            )
        assert match.id is not None
        question = self.db.get_match_question(
            match.id, match.current_question_index, conn=conn
        )
        if question is None:
            raise ConflictError(
                f"Match {match.id} is missing question {match.current_question_index}",
                "No active question",
            )
        return question

    # -------------------------------------------------------------------------
    # Start
    # -------------------------------------------------------------------------

    def check_startable(self, match_id: int) -> tuple[TournamentMatch, Tournament]:
        """Validate a start request before any questions are drawn."""
        match = self._require_match(match_id)
        tournament = self._require_tournament(match.tournament_id)
        self._validate_start(match, tournament)
        return match, tournament

    def _validate_start(self, match: TournamentMatch, tournament: Tournament) -> None:
        if match.status != MatchStatus.PENDING:
            raise ConflictError(
                f"Match {match.id} is {match.status.value} and cannot be started",
                "Match has already started",
            )
        if match.participant_a_id is None or match.participant_b_id is None:
            raise ConflictError(
                f"Match {match.id} is still waiting for its participants",
                "Match participants are not decided yet",
            )
        self._require_playable(tournament)

    def start(self, match_id: int, questions: list[Question]) -> TournamentMatch:
        """Start a pending match with the questions drawn for it."""
        if not questions:
            raise ValidationError(
                f"No questions available for match {match_id}",
                "The question bank has no questions for this match",
            )

        now = self.clock()
        with self.db.transaction() as conn:
            match = self._require_match(match_id, conn)
            tournament = self._require_tournament(match.tournament_id, conn)
            self._validate_start(match, tournament)

            if not self.db.transition_match(
                match_id,
                MatchStatus.PENDING,
                MatchStatus.IN_PROGRESS,
                conn=conn,
                question_sequence=[q.id for q in questions],
                current_question_index=0,
                question_phase=QuestionPhase.ANSWERING,
                question_started_at=now,
                started_at=now,
            ):
                raise ConflictError(
                    f"Match {match_id} was started concurrently", "Match has already started"
                )
            self.db.add_match_questions(match_id, questions, conn=conn)

            if tournament.status == TournamentStatus.READY:
                assert tournament.id is not None
                self.db.update_tournament_status(
                    tournament.id,
                    TournamentStatus.ACTIVE,
                    expected=TournamentStatus.READY,
                    conn=conn,
                    started_at=now,
                )

            logger.info(
                f"Started match {match_id} ({match.bracket_label}) with {len(questions)} questions"
            )
            return self._require_match(match_id, conn)

    # -------------------------------------------------------------------------
    # Answer / reveal / next
    # -------------------------------------------------------------------------

    def submit_answer(
        self,
        match_id: int,
        participant_id: int,
        answer: Any,
        time_spent_ms: int | None = None,
    ) -> AnswerRecord:
        """Record one side's answer to the active question.

        The answer is evaluated now, but the score only moves at reveal.
        A malformed answer raises before anything is written.
        """
        with self.db.transaction() as conn:
            match = self._require_match(match_id, conn)
            self._require_in_progress(match)
            self._require_playable(self._require_tournament(match.tournament_id, conn))

            if match.side_of(participant_id) is None:
                raise ValidationError(
                    f"Participant {participant_id} does not play in match {match_id}",
                    "You are not part of this match",
                )

            question = self._require_active_question(match, conn)
            if match.question_phase != QuestionPhase.ANSWERING:
                raise ConflictError(
                    f"Question {match.current_question_index} of match {match_id} is already revealed",
                    "This question is closed",
                )

            evaluation = evaluate_answer(question, answer)
            record = AnswerRecord(
                match_id=match_id,
                question_index=match.current_question_index,
                participant_id=participant_id,
                submitted_answer=evaluation.normalized_answer,
                is_correct=evaluation.is_correct,
                pair_results=evaluation.pair_results,
                time_spent_ms=time_spent_ms,
                submitted_at=self.clock(),
            )
            record_id = self.db.add_answer(record, conn=conn)
            if record_id is None:
                raise ConflictError(
                    f"Participant {participant_id} already answered question "
                    f"{match.current_question_index} of match {match_id}",
                    "Answer already submitted",
                )

            record.id = record_id
            logger.debug(
                f"Match {match_id} q{match.current_question_index}: participant "
                f"{participant_id} answered ({'correct' if record.is_correct else 'wrong'})"
            )
            return record

    def _time_limit(self, question: Question, tournament: Tournament) -> timedelta:
        seconds = question.time_limit_seconds or tournament.seconds_per_question
        return timedelta(seconds=seconds)

    def reveal(self, match_id: int) -> TournamentMatch:
        """Close the active question and score it.

        Allowed once both sides answered or once the time limit has passed;
        sides without an answer get a timed-out, incorrect record.
        """
        now = self.clock()
        with self.db.transaction() as conn:
            match = self._require_match(match_id, conn)
            self._require_in_progress(match)
            tournament = self._require_tournament(match.tournament_id, conn)
            self._require_playable(tournament)
            question = self._require_active_question(match, conn)

            index = match.current_question_index
            if match.question_phase == QuestionPhase.REVEALED:
                raise ConflictError(
                    f"Question {index} of match {match_id} is already revealed",
                    "Result already revealed",
                )

            answers = {a.participant_id: a for a in self.db.get_answers(match_id, index, conn=conn)}
            sides = [match.participant_a_id, match.participant_b_id]
            missing = [pid for pid in sides if pid is not None and pid not in answers]

            elapsed = (
                match.question_started_at is not None
                and now - match.question_started_at >= self._time_limit(question, tournament)
            )
            if missing and not elapsed:
                raise ConflictError(
                    f"Match {match_id} question {index}: waiting for answers and time remains",
                    "Both players must answer before the reveal",
                )

            for participant_id in missing:
                record = AnswerRecord(
                    match_id=match_id,
                    question_index=index,
                    participant_id=participant_id,
                    submitted_answer=None,
                    is_correct=False,
                    timed_out=True,
                    submitted_at=now,
                )
                if self.db.add_answer(record, conn=conn) is None:
                    raise ConflictError(
                        f"Answer for participant {participant_id} appeared during reveal",
                        "Result already revealed",
                    )
                answers[participant_id] = record

            def correct(pid: int | None) -> bool:
                return pid is not None and answers[pid].is_correct

            if not self.db.reveal_question(
                match_id,
                index,
                1 if correct(match.participant_a_id) else 0,
                1 if correct(match.participant_b_id) else 0,
                conn=conn,
            ):
                raise ConflictError(
                    f"Question {index} of match {match_id} was revealed concurrently",
                    "Result already revealed",
                )

            for participant_id in sides:
                if participant_id is not None:
                    self.db.record_question_tally(
                        participant_id, correct(participant_id), conn=conn
                    )

            revealed = self._require_match(match_id, conn)
            logger.info(
                f"Match {match_id} q{index} revealed: score {revealed.score_a}-{revealed.score_b}"
            )
            return revealed

    def next_question(self, match_id: int) -> TournamentMatch:
        """Move past a revealed question; past the last one the match awaits completion."""
        with self.db.transaction() as conn:
            match = self._require_match(match_id, conn)
            self._require_in_progress(match)
            self._require_playable(self._require_tournament(match.tournament_id, conn))

            if match.questions_exhausted:
                raise ConflictError(
                    f"Match {match_id} has no questions left", "No questions left"
                )
            if match.question_phase != QuestionPhase.REVEALED:
                raise ConflictError(
                    f"Question {match.current_question_index} of match {match_id} is not revealed yet",
                    "Reveal the result first",
                )

            if not self.db.advance_question(
                match_id, match.current_question_index, self.clock(), conn=conn
            ):
                raise ConflictError(
                    f"Match {match_id} moved on concurrently", "Question already advanced"
                )
            return self._require_match(match_id, conn)

    # -------------------------------------------------------------------------
    # Completion
    # -------------------------------------------------------------------------

    def wants_sudden_death(self, match: TournamentMatch, tournament: Tournament) -> bool:
        """Whether completing this match now should extend it by a tie-break question."""
        return (
            tournament.format == TournamentFormat.BRACKET
            and self.policy.bracket_tie_break == "sudden_death"
            and match.status == MatchStatus.IN_PROGRESS
            and match.score_a == match.score_b
            and match.sudden_death_questions < self.policy.max_sudden_death_questions
            and questions_resolved(match)
        )

    def _decide_winner(
        self, match: TournamentMatch, tournament: Tournament, conn: sqlite3.Connection
    ) -> int | None:
        if match.score_a > match.score_b:
            return match.participant_a_id
        if match.score_b > match.score_a:
            return match.participant_b_id
        if tournament.format == TournamentFormat.LEAGUE:
            return None

        # Drawn bracket match with no tie-break left: the better seed goes through.
        seeds = {}
        for participant_id in (match.participant_a_id, match.participant_b_id):
            if participant_id is None:
                continue
            participant = self.db.get_participant(participant_id, conn=conn)
            if participant:
                seeds[participant_id] = participant.seed
        winner = min(seeds, key=lambda pid: seeds[pid])
        logger.info(f"Match {match.id} drawn; seed {seeds[winner]} advances")
        return winner

    def complete(
        self,
        match_id: int,
        seen: TournamentMatch | None = None,
        sudden_death_question: Question | None = None,
    ) -> CompletionResult:
        """Decide an in-progress match and hand it to the advancement engine.

        ``seen`` is the match state the caller based its decisions on (for
        example drawing a sudden-death question). If the match moved on in
        the meantime the request is rejected rather than acting on stale data.
        """
        now = self.clock()
        with self.db.transaction() as conn:
            match = self._require_match(match_id, conn)

            if match.status == MatchStatus.COMPLETED:
                return CompletionResult(match=match, completed=True, already_completed=True)
            if match.status != MatchStatus.IN_PROGRESS:
                raise ConflictError(
                    f"Match {match_id} is {match.status.value} and cannot be completed",
                    "Match is not in progress",
                )
            if seen is not None and (
                seen.current_question_index,
                seen.question_phase,
                seen.sudden_death_questions,
            ) != (
                match.current_question_index,
                match.question_phase,
                match.sudden_death_questions,
            ):
                raise ConflictError(
                    f"Match {match_id} changed while it was being completed",
                    "Match changed, try again",
                )

            tournament = self._require_tournament(match.tournament_id, conn)
            self._require_playable(tournament)

            if sudden_death_question is not None and self.wants_sudden_death(match, tournament):
                if not self.db.append_sudden_death_question(
                    match, sudden_death_question, now, conn=conn
                ):
                    raise ConflictError(
                        f"Match {match_id} changed while adding a tie-break question",
                        "Match changed, try again",
                    )
                extended = self._require_match(match_id, conn)
                logger.info(
                    f"Match {match_id} tied {match.score_a}-{match.score_b}; "
                    f"sudden-death question {extended.sudden_death_questions} added"
                )
                return CompletionResult(match=extended, completed=False)

            winner_id = self._decide_winner(match, tournament, conn)
            if not self.db.transition_match(
                match_id,
                MatchStatus.IN_PROGRESS,
                MatchStatus.COMPLETED,
                conn=conn,
                winner_id=winner_id,
                completed_at=now,
            ):
                raise ConflictError(
                    f"Match {match_id} was completed concurrently", "Match already completed"
                )

            completed = self._require_match(match_id, conn)
            outcome = self.advancement.on_match_completed(completed, tournament, conn)
            logger.info(
                f"Completed match {match_id} ({completed.bracket_label}) "
                f"{completed.score_a}-{completed.score_b}, winner {winner_id}"
            )
            return CompletionResult(match=completed, completed=True, advancement=outcome)

    # -------------------------------------------------------------------------
    # Views
    # -------------------------------------------------------------------------

    def detail(self, match_id: int) -> MatchDetail:
        """Match with its active question and the answers players may already see.

        The canonical answer and the answers to the active question stay
        hidden until that question is revealed.
        """
        with self.db.transaction() as conn:
            match = self._require_match(match_id, conn)

            active_question = None
            revealed = match.question_phase == QuestionPhase.REVEALED
            if match.status == MatchStatus.IN_PROGRESS and not match.questions_exhausted:
                question = self.db.get_match_question(
                    match_id, match.current_question_index, conn=conn
                )
                if question is not None:
                    active_question = question.public_view()
                    active_question["index"] = match.current_question_index
                    active_question["phase"] = match.question_phase.value
                    if revealed:
                        active_question["correct_answer"] = canonical_answer(question)

            answers = [
                a
                for a in self.db.get_answers(match_id, conn=conn)
                if match.status != MatchStatus.IN_PROGRESS
                or a.question_index < match.current_question_index
                or revealed
            ]
            return MatchDetail(match=match, active_question=active_question, answers=answers)
