"""Tournament database operations."""

import json
import logging
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any

from config.settings import RewardTiers

from .models import (
    AnswerRecord,
    MatchSlot,
    MatchStatus,
    ParticipantKind,
    QuestionPhase,
    RoundStatus,
    Tournament,
    TournamentDetail,
    TournamentFormat,
    TournamentMatch,
    TournamentParticipant,
    TournamentStatus,
    TournamentSummary,
)
from .questions import Question, dump_question, load_question
from .schema import SchemaManager

logger = logging.getLogger(__name__)

# Columns a caller may set through update_tournament / transition helpers
TOURNAMENT_MUTABLE_COLUMNS = {
    "name",
    "description",
    "capacity",
    "current_round",
    "total_rounds",
    "questions_per_match",
    "seconds_per_question",
    "question_bank_ids",
    "rewards",
    "started_at",
    "finished_at",
    "first_place_id",
    "second_place_id",
    "third_place_id",
}

MATCH_MUTABLE_COLUMNS = {
    "winner_id",
    "question_sequence",
    "current_question_index",
    "question_phase",
    "question_started_at",
    "started_at",
    "completed_at",
    "score_a",
    "score_b",
}


def _encode(value: Any) -> Any:
    """Convert model values into SQLite-friendly column values."""
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, (TournamentStatus, MatchStatus, QuestionPhase, MatchSlot)):
        return value.value
    if isinstance(value, RewardTiers):
        return value.model_dump_json()
    if isinstance(value, list):
        return json.dumps(value)
    return value


class TournamentDatabaseManager:
    """Manages SQLite database operations for tournaments.

    Every public method accepts an optional ``conn``. Without one it runs in
    its own transaction; with one it joins the caller's transaction so that
    multi-step operations (bracket generation, match completion plus
    advancement) commit or roll back as a unit.
    """

    def __init__(self, db_path: str = "tournaments.db", timeout: float = 10.0):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self._initialize_schema()

    def _initialize_schema(self) -> None:
        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
        with self.transaction() as conn:
            SchemaManager().initialize_database_schema(conn.cursor())

    def _connect(self) -> sqlite3.Connection:
        # Autocommit mode; transactions are opened explicitly below.
        conn = sqlite3.connect(self.db_path, timeout=self.timeout, isolation_level=None)
        conn.row_factory = sqlite3.Row  # Enable column access by name
        conn.execute("PRAGMA foreign_keys = ON")
        return conn

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Open a write transaction that holds the database write lock."""
        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            yield conn
            conn.execute("COMMIT")
        except BaseException as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            if isinstance(e, sqlite3.Error):
                logger.error(f"Tournament database error: {e}")
            raise
        finally:
            conn.close()

    @contextmanager
    def _get_connection(
        self, conn: sqlite3.Connection | None = None
    ) -> Iterator[sqlite3.Connection]:
        """Join the caller's transaction or run in a fresh one."""
        if conn is not None:
            yield conn
            return
        with self.transaction() as own:
            yield own

    # =========================================================================
    # ROW CONVERSION
    # =========================================================================

    @staticmethod
    def _row_to_tournament(row: sqlite3.Row) -> Tournament:
        return Tournament(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            format=TournamentFormat(row["format"]),
            participant_kind=ParticipantKind(row["participant_kind"]),
            capacity=row["capacity"],
            status=TournamentStatus(row["status"]),
            current_round=row["current_round"],
            total_rounds=row["total_rounds"],
            questions_per_match=row["questions_per_match"],
            seconds_per_question=row["seconds_per_question"],
            question_bank_ids=json.loads(row["question_bank_ids"] or "[]"),
            rewards=RewardTiers.model_validate_json(row["rewards"] or "{}"),
            created_at=row["created_at"],
            started_at=row["started_at"],
            finished_at=row["finished_at"],
            first_place_id=row["first_place_id"],
            second_place_id=row["second_place_id"],
            third_place_id=row["third_place_id"],
            rewards_granted=bool(row["rewards_granted"]),
        )

    @staticmethod
    def _row_to_participant(row: sqlite3.Row) -> TournamentParticipant:
        return TournamentParticipant(
            id=row["id"],
            tournament_id=row["tournament_id"],
            seed=row["seed"],
            reference_id=row["reference_id"],
            display_name=row["display_name"],
            wins=row["wins"],
            draws=row["draws"],
            losses=row["losses"],
            eliminated=bool(row["eliminated"]),
            eliminated_in_round=row["eliminated_in_round"],
            questions_answered=row["questions_answered"],
            questions_correct=row["questions_correct"],
            final_position=row["final_position"],
        )

    @staticmethod
    def _row_to_match(row: sqlite3.Row) -> TournamentMatch:
        return TournamentMatch(
            id=row["id"],
            tournament_id=row["tournament_id"],
            round_number=row["round_number"],
            slot_number=row["slot_number"],
            bracket_label=row["bracket_label"],
            status=MatchStatus(row["status"]),
            participant_a_id=row["participant_a_id"],
            participant_b_id=row["participant_b_id"],
            score_a=row["score_a"],
            score_b=row["score_b"],
            winner_id=row["winner_id"],
            current_question_index=row["current_question_index"],
            question_sequence=json.loads(row["question_sequence"] or "[]"),
            question_phase=QuestionPhase(row["question_phase"]),
            question_started_at=row["question_started_at"],
            next_match_id=row["next_match_id"],
            next_slot=MatchSlot(row["next_slot"]) if row["next_slot"] else None,
            sudden_death_questions=row["sudden_death_questions"],
            started_at=row["started_at"],
            completed_at=row["completed_at"],
        )

    @staticmethod
    def _row_to_answer(row: sqlite3.Row) -> AnswerRecord:
        return AnswerRecord(
            id=row["id"],
            match_id=row["match_id"],
            question_index=row["question_index"],
            participant_id=row["participant_id"],
            submitted_answer=(
                json.loads(row["submitted_answer"])
                if row["submitted_answer"] is not None
                else None
            ),
            is_correct=bool(row["is_correct"]),
            pair_results=(
                json.loads(row["pair_results"]) if row["pair_results"] else None
            ),
            time_spent_ms=row["time_spent_ms"],
            timed_out=bool(row["timed_out"]),
            submitted_at=row["submitted_at"],
        )

    # =========================================================================
    # TOURNAMENTS
    # =========================================================================

    def create_tournament(
        self, tournament: Tournament, conn: sqlite3.Connection | None = None
    ) -> int:
        """Create a new tournament and return its ID."""
        with self._get_connection(conn) as conn:
            cursor = conn.execute(
                """
                INSERT INTO tournaments (
                    name, description, format, participant_kind, capacity, status,
                    current_round, total_rounds, questions_per_match,
                    seconds_per_question, question_bank_ids, rewards, created_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    tournament.name,
                    tournament.description,
                    tournament.format.value,
                    tournament.participant_kind.value,
                    tournament.capacity,
                    tournament.status.value,
                    tournament.current_round,
                    tournament.total_rounds,
                    tournament.questions_per_match,
                    tournament.seconds_per_question,
                    json.dumps(tournament.question_bank_ids),
                    tournament.rewards.model_dump_json(),
                    _encode(tournament.created_at or datetime.now()),
                ),
            )

            tournament_id = cursor.lastrowid
            if tournament_id is None:
                raise RuntimeError("Failed to get tournament ID from database")

            logger.info(f"Created tournament {tournament_id}: {tournament.name}")
            return tournament_id

    def get_tournament(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> Tournament | None:
        """Get tournament by ID."""
        with self._get_connection(conn) as conn:
            row = conn.execute(
                "SELECT * FROM tournaments WHERE id = ?", (tournament_id,)
            ).fetchone()
            return self._row_to_tournament(row) if row else None

    def list_tournaments(
        self, limit: int | None = None, offset: int = 0
    ) -> list[TournamentSummary]:
        """List tournaments with summary information."""
        with self._get_connection() as conn:
            query = """
                SELECT t.id, t.name, t.format, t.status, t.capacity, t.current_round,
                       t.total_rounds, t.created_at,
                       (SELECT COUNT(*) FROM tournament_participants p
                        WHERE p.tournament_id = t.id) AS participant_count
                FROM tournaments t
                ORDER BY t.created_at DESC, t.id DESC
            """

            params: list[Any] = []
            if limit:
                query += " LIMIT ? OFFSET ?"
                params.extend([limit, offset])

            rows = conn.execute(query, params).fetchall()

            return [
                TournamentSummary(
                    id=row["id"],
                    name=row["name"],
                    format=TournamentFormat(row["format"]),
                    status=TournamentStatus(row["status"]),
                    capacity=row["capacity"],
                    participant_count=row["participant_count"],
                    current_round=row["current_round"],
                    total_rounds=row["total_rounds"],
                    created_at=row["created_at"],
                )
                for row in rows
            ]

    def update_tournament(
        self,
        tournament_id: int,
        conn: sqlite3.Connection | None = None,
        **fields: Any,
    ) -> bool:
        """Update configuration or bookkeeping columns of a tournament."""
        unknown = set(fields) - TOURNAMENT_MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update tournament columns: {sorted(unknown)}")
        if not fields:
            return False

        set_clauses = [f"{column} = ?" for column in fields]
        params: list[Any] = [_encode(value) for value in fields.values()]
        params.append(tournament_id)

        with self._get_connection(conn) as conn:
            cursor = conn.execute(
                f"UPDATE tournaments SET {', '.join(set_clauses)} WHERE id = ?",
                params,
            )
            return cursor.rowcount > 0

    def update_tournament_status(
        self,
        tournament_id: int,
        status: TournamentStatus,
        expected: TournamentStatus | None = None,
        conn: sqlite3.Connection | None = None,
        **fields: Any,
    ) -> bool:
        """Move a tournament to a new status.

        With ``expected`` the update is a compare-and-set: it only applies
        if the stored status still equals ``expected``.
        """
        unknown = set(fields) - TOURNAMENT_MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update tournament columns: {sorted(unknown)}")

        set_clauses = ["status = ?"] + [f"{column} = ?" for column in fields]
        params: list[Any] = [status.value] + [_encode(v) for v in fields.values()]
        query = f"UPDATE tournaments SET {', '.join(set_clauses)} WHERE id = ?"
        params.append(tournament_id)
        if expected is not None:
            query += " AND status = ?"
            params.append(expected.value)

        with self._get_connection(conn) as conn:
            updated = conn.execute(query, params).rowcount > 0

            if updated:
                logger.info(
                    f"Updated tournament {tournament_id} status to {status.value}"
                )

            return updated

    def claim_reward_delivery(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> bool:
        """Mark a finished tournament's rewards as delivered; False if already claimed."""
        with self._get_connection(conn) as conn:
            return (
                conn.execute(
                    """
                    UPDATE tournaments SET rewards_granted = 1
                    WHERE id = ? AND status = ? AND rewards_granted = 0
                    """,
                    (tournament_id, TournamentStatus.FINISHED.value),
                ).rowcount
                > 0
            )

    def release_reward_delivery(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> None:
        """Undo a claim after the reward service failed, so a retry delivers again."""
        with self._get_connection(conn) as conn:
            conn.execute(
                "UPDATE tournaments SET rewards_granted = 0 WHERE id = ?",
                (tournament_id,),
            )
        logger.info(f"Reward delivery for tournament {tournament_id} reopened")

    def delete_tournament(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> bool:
        """Delete tournament and all related data."""
        with self._get_connection(conn) as conn:
            # Break the self-reference chain first so cascades cannot trip on it.
            conn.execute(
                "UPDATE tournament_matches SET next_match_id = NULL WHERE tournament_id = ?",
                (tournament_id,),
            )
            conn.execute(
                """
                UPDATE tournament_matches
                SET participant_a_id = NULL, participant_b_id = NULL, winner_id = NULL
                WHERE tournament_id = ?
                """,
                (tournament_id,),
            )
            deleted = (
                conn.execute(
                    "DELETE FROM tournaments WHERE id = ?", (tournament_id,)
                ).rowcount
                > 0
            )

            if deleted:
                logger.info(f"Deleted tournament {tournament_id}")

            return deleted

    # =========================================================================
    # PARTICIPANTS
    # =========================================================================

    def add_participant(
        self, participant: TournamentParticipant, conn: sqlite3.Connection | None = None
    ) -> int:
        """Add participant to tournament."""
        with self._get_connection(conn) as conn:
            cursor = conn.execute(
                """
                INSERT INTO tournament_participants (
                    tournament_id, seed, reference_id, display_name
                ) VALUES (?, ?, ?, ?)
                """,
                (
                    participant.tournament_id,
                    participant.seed,
                    participant.reference_id,
                    participant.display_name,
                ),
            )

            participant_id = cursor.lastrowid
            if participant_id is None:
                raise RuntimeError("Failed to get participant ID from database")

            return participant_id

    def get_participants(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> list[TournamentParticipant]:
        """Get all participants for a tournament, ordered by seed."""
        with self._get_connection(conn) as conn:
            rows = conn.execute(
                """
                SELECT * FROM tournament_participants
                WHERE tournament_id = ?
                ORDER BY seed
                """,
                (tournament_id,),
            ).fetchall()
            return [self._row_to_participant(row) for row in rows]

    def get_participant(
        self, participant_id: int, conn: sqlite3.Connection | None = None
    ) -> TournamentParticipant | None:
        with self._get_connection(conn) as conn:
            row = conn.execute(
                "SELECT * FROM tournament_participants WHERE id = ?", (participant_id,)
            ).fetchone()
            return self._row_to_participant(row) if row else None

    def delete_participant(
        self, participant_id: int, conn: sqlite3.Connection | None = None
    ) -> bool:
        with self._get_connection(conn) as conn:
            return (
                conn.execute(
                    "DELETE FROM tournament_participants WHERE id = ?", (participant_id,)
                ).rowcount
                > 0
            )

    def set_seeds(
        self,
        ordered_participant_ids: list[int],
        conn: sqlite3.Connection | None = None,
    ) -> None:
        """Renumber seeds 1..N following the given order."""
        with self._get_connection(conn) as conn:
            # Park the rows on negative seeds first; (tournament_id, seed) is unique.
            conn.executemany(
                "UPDATE tournament_participants SET seed = -seed WHERE id = ?",
                [(participant_id,) for participant_id in ordered_participant_ids],
            )
            conn.executemany(
                "UPDATE tournament_participants SET seed = ? WHERE id = ?",
                [
                    (seed, participant_id)
                    for seed, participant_id in enumerate(ordered_participant_ids, start=1)
                ],
            )

    def record_participant_result(
        self,
        participant_id: int,
        wins: int = 0,
        draws: int = 0,
        losses: int = 0,
        eliminated_in_round: int | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Increment match tallies, optionally marking the participant eliminated."""
        with self._get_connection(conn) as conn:
            query = """
                UPDATE tournament_participants
                SET wins = wins + ?, draws = draws + ?, losses = losses + ?
            """
            params: list[Any] = [wins, draws, losses]
            if eliminated_in_round is not None:
                query += ", eliminated = 1, eliminated_in_round = ?"
                params.append(eliminated_in_round)
            query += " WHERE id = ?"
            params.append(participant_id)

            updated = conn.execute(query, params).rowcount > 0
            if updated and eliminated_in_round is not None:
                logger.info(
                    f"Eliminated participant {participant_id} in round {eliminated_in_round}"
                )
            return updated

    def record_question_tally(
        self,
        participant_id: int,
        correct: bool,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        with self._get_connection(conn) as conn:
            conn.execute(
                """
                UPDATE tournament_participants
                SET questions_answered = questions_answered + 1,
                    questions_correct = questions_correct + ?
                WHERE id = ?
                """,
                (1 if correct else 0, participant_id),
            )

    def set_final_position(
        self,
        participant_id: int,
        position: int | None,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        with self._get_connection(conn) as conn:
            conn.execute(
                "UPDATE tournament_participants SET final_position = ? WHERE id = ?",
                (position, participant_id),
            )

    # =========================================================================
    # MATCHES
    # =========================================================================

    def add_match(
        self, match: TournamentMatch, conn: sqlite3.Connection | None = None
    ) -> int:
        """Add match to tournament."""
        with self._get_connection(conn) as conn:
            cursor = conn.execute(
                """
                INSERT INTO tournament_matches (
                    tournament_id, round_number, slot_number, bracket_label, status,
                    participant_a_id, participant_b_id, winner_id, next_match_id,
                    next_slot, completed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    match.tournament_id,
                    match.round_number,
                    match.slot_number,
                    match.bracket_label,
                    match.status.value,
                    match.participant_a_id,
                    match.participant_b_id,
                    match.winner_id,
                    match.next_match_id,
                    _encode(match.next_slot),
                    _encode(match.completed_at),
                ),
            )

            match_id = cursor.lastrowid
            if match_id is None:
                raise RuntimeError("Failed to get match ID from database")

            return match_id

    def get_match(
        self, match_id: int, conn: sqlite3.Connection | None = None
    ) -> TournamentMatch | None:
        with self._get_connection(conn) as conn:
            row = conn.execute(
                "SELECT * FROM tournament_matches WHERE id = ?", (match_id,)
            ).fetchone()
            return self._row_to_match(row) if row else None

    def get_matches(
        self,
        tournament_id: int,
        round_number: int | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> list[TournamentMatch]:
        """Get matches for tournament, optionally filtered by round."""
        with self._get_connection(conn) as conn:
            if round_number is not None:
                rows = conn.execute(
                    """
                    SELECT * FROM tournament_matches
                    WHERE tournament_id = ? AND round_number = ?
                    ORDER BY slot_number
                    """,
                    (tournament_id, round_number),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM tournament_matches
                    WHERE tournament_id = ?
                    ORDER BY round_number, slot_number
                    """,
                    (tournament_id,),
                ).fetchall()

            return [self._row_to_match(row) for row in rows]

    def count_matches(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> int:
        with self._get_connection(conn) as conn:
            row = conn.execute(
                "SELECT COUNT(*) AS count FROM tournament_matches WHERE tournament_id = ?",
                (tournament_id,),
            ).fetchone()
            return int(row["count"])

    def transition_match(
        self,
        match_id: int,
        expected: MatchStatus,
        status: MatchStatus,
        conn: sqlite3.Connection | None = None,
        **fields: Any,
    ) -> bool:
        """Compare-and-set a match status; False when another writer got there first."""
        unknown = set(fields) - MATCH_MUTABLE_COLUMNS
        if unknown:
            raise ValueError(f"Cannot update match columns: {sorted(unknown)}")

        set_clauses = ["status = ?"] + [f"{column} = ?" for column in fields]
        params: list[Any] = [status.value] + [_encode(v) for v in fields.values()]
        params.extend([match_id, expected.value])

        with self._get_connection(conn) as conn:
            updated = (
                conn.execute(
                    f"""
                    UPDATE tournament_matches
                    SET {', '.join(set_clauses)}
                    WHERE id = ? AND status = ?
                    """,
                    params,
                ).rowcount
                > 0
            )

            if updated:
                logger.info(f"Updated match {match_id} status to {status.value}")

            return updated

    def assign_slot(
        self,
        match_id: int,
        slot: MatchSlot,
        participant_id: int,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Fill an empty side of a match; False if that side is already taken."""
        column = "participant_a_id" if slot == MatchSlot.A else "participant_b_id"
        with self._get_connection(conn) as conn:
            return (
                conn.execute(
                    f"""
                    UPDATE tournament_matches SET {column} = ?
                    WHERE id = ? AND {column} IS NULL
                    """,
                    (participant_id, match_id),
                ).rowcount
                > 0
            )

    def reveal_question(
        self,
        match_id: int,
        question_index: int,
        add_score_a: int,
        add_score_b: int,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Score the active question once; False if it was already revealed."""
        with self._get_connection(conn) as conn:
            return (
                conn.execute(
                    """
                    UPDATE tournament_matches
                    SET score_a = score_a + ?, score_b = score_b + ?,
                        question_phase = 'revealed'
                    WHERE id = ? AND status = 'in_progress'
                      AND current_question_index = ?
                      AND question_phase = 'answering'
                    """,
                    (add_score_a, add_score_b, match_id, question_index),
                ).rowcount
                > 0
            )

    def advance_question(
        self,
        match_id: int,
        question_index: int,
        started_at: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Move from a revealed question to the next one; compare-and-set on index."""
        with self._get_connection(conn) as conn:
            return (
                conn.execute(
                    """
                    UPDATE tournament_matches
                    SET current_question_index = current_question_index + 1,
                        question_phase = 'answering',
                        question_started_at = ?
                    WHERE id = ? AND status = 'in_progress'
                      AND current_question_index = ?
                      AND question_phase = 'revealed'
                    """,
                    (started_at.isoformat(), match_id, question_index),
                ).rowcount
                > 0
            )

    def append_sudden_death_question(
        self,
        match: TournamentMatch,
        question: Question,
        started_at: datetime,
        conn: sqlite3.Connection | None = None,
    ) -> bool:
        """Extend an exhausted, drawn match by one tie-break question."""
        if match.id is None:
            raise ValueError("Match must be persisted before extending it")

        position = len(match.question_sequence)
        sequence = match.question_sequence + [question.id]
        with self._get_connection(conn) as conn:
            updated = (
                conn.execute(
                    """
                    UPDATE tournament_matches
                    SET question_sequence = ?,
                        current_question_index = ?,
                        question_phase = 'answering',
                        question_started_at = ?,
                        sudden_death_questions = sudden_death_questions + 1
                    WHERE id = ? AND status = 'in_progress'
                      AND sudden_death_questions = ?
                      AND current_question_index = ?
                    """,
                    (
                        json.dumps(sequence),
                        position,
                        started_at.isoformat(),
                        match.id,
                        match.sudden_death_questions,
                        match.current_question_index,
                    ),
                ).rowcount
                > 0
            )
            if updated:
                self.add_match_questions(match.id, [question], position, conn=conn)
            return updated

    def get_round_status(
        self, tournament_id: int, round_number: int
    ) -> RoundStatus:
        """Get status of all matches in a round."""
        with self._get_connection() as conn:
            rows = conn.execute(
                """
                SELECT status, COUNT(*) as count
                FROM tournament_matches
                WHERE tournament_id = ? AND round_number = ?
                GROUP BY status
                """,
                (tournament_id, round_number),
            ).fetchall()

            status_counts = {row["status"]: row["count"] for row in rows}
            total_matches = sum(status_counts.values())
            completed_matches = status_counts.get(MatchStatus.COMPLETED.value, 0)
            bye_matches = status_counts.get(MatchStatus.BYE.value, 0)

            return RoundStatus(
                round_number=round_number,
                total_matches=total_matches,
                completed_matches=completed_matches,
                pending_matches=status_counts.get(MatchStatus.PENDING.value, 0),
                in_progress_matches=status_counts.get(MatchStatus.IN_PROGRESS.value, 0),
                bye_matches=bye_matches,
                all_completed=total_matches > 0
                and completed_matches + bye_matches == total_matches,
            )

    # =========================================================================
    # QUESTIONS AND ANSWERS
    # =========================================================================

    def add_match_questions(
        self,
        match_id: int,
        questions: list[Question],
        start_position: int = 0,
        conn: sqlite3.Connection | None = None,
    ) -> None:
        """Snapshot normalized questions for a match."""
        with self._get_connection(conn) as conn:
            conn.executemany(
                """
                INSERT INTO match_questions (match_id, position, question_id, payload)
                VALUES (?, ?, ?, ?)
                """,
                [
                    (match_id, start_position + offset, question.id, dump_question(question))
                    for offset, question in enumerate(questions)
                ],
            )

    def get_match_question(
        self, match_id: int, position: int, conn: sqlite3.Connection | None = None
    ) -> Question | None:
        with self._get_connection(conn) as conn:
            row = conn.execute(
                "SELECT payload FROM match_questions WHERE match_id = ? AND position = ?",
                (match_id, position),
            ).fetchone()
            return load_question(row["payload"]) if row else None

    def add_answer(
        self, record: AnswerRecord, conn: sqlite3.Connection | None = None
    ) -> int | None:
        """Store an answer; None if this participant already answered this question."""
        with self._get_connection(conn) as conn:
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO match_answers (
                    match_id, question_index, participant_id, submitted_answer,
                    is_correct, pair_results, time_spent_ms, timed_out, submitted_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    record.match_id,
                    record.question_index,
                    record.participant_id,
                    (
                        json.dumps(record.submitted_answer)
                        if record.submitted_answer is not None
                        else None
                    ),
                    int(record.is_correct),
                    json.dumps(record.pair_results) if record.pair_results else None,
                    record.time_spent_ms,
                    int(record.timed_out),
                    _encode(record.submitted_at or datetime.now()),
                ),
            )
            if cursor.rowcount == 0:
                return None
            return cursor.lastrowid

    def get_answers(
        self,
        match_id: int,
        question_index: int | None = None,
        conn: sqlite3.Connection | None = None,
    ) -> list[AnswerRecord]:
        with self._get_connection(conn) as conn:
            if question_index is None:
                rows = conn.execute(
                    """
                    SELECT * FROM match_answers WHERE match_id = ?
                    ORDER BY question_index, id
                    """,
                    (match_id,),
                ).fetchall()
            else:
                rows = conn.execute(
                    """
                    SELECT * FROM match_answers
                    WHERE match_id = ? AND question_index = ?
                    ORDER BY id
                    """,
                    (match_id, question_index),
                ).fetchall()
            return [self._row_to_answer(row) for row in rows]

    # =========================================================================
    # AGGREGATE VIEWS
    # =========================================================================

    def get_tournament_detail(
        self, tournament_id: int, conn: sqlite3.Connection | None = None
    ) -> TournamentDetail | None:
        """Get tournament with participants and matches from one snapshot."""
        with self._get_connection(conn) as conn:
            tournament = self.get_tournament(tournament_id, conn=conn)
            if not tournament:
                return None

            return TournamentDetail(
                tournament=tournament,
                participants=self.get_participants(tournament_id, conn=conn),
                matches=self.get_matches(tournament_id, conn=conn),
            )
