"""Tournament system data models."""

from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field

from config.settings import RewardTiers


class TournamentFormat(Enum):
    """Competition structure."""

    BRACKET = "bracket"  # Single elimination
    LEAGUE = "league"  # Round robin


class ParticipantKind(Enum):
    """What a participant row refers to in the roster."""

    INDIVIDUAL = "individual"
    TEAM = "team"


class TournamentStatus(Enum):
    """Tournament lifecycle status."""

    DRAFT = "draft"
    READY = "ready"
    ACTIVE = "active"
    PAUSED = "paused"
    FINISHED = "finished"


class MatchStatus(Enum):
    """Individual match status."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    BYE = "bye"


class QuestionPhase(Enum):
    """Step of the active question inside an in-progress match."""

    ANSWERING = "answering"
    REVEALED = "revealed"


class MatchSlot(Enum):
    """Side of a downstream bracket match that a winner feeds into."""

    A = "a"
    B = "b"


class TournamentCreateRequest(BaseModel):
    """Request to create a new tournament.

    Unset numeric fields fall back to the configured tournament defaults.
    """

    name: str = Field(..., min_length=1, description="Tournament name")
    description: str = Field(default="", description="Free text shown to players")
    format: TournamentFormat = Field(default=TournamentFormat.BRACKET)
    participant_kind: ParticipantKind = Field(default=ParticipantKind.INDIVIDUAL)
    capacity: int | None = Field(default=None, description="Maximum participants")
    questions_per_match: int | None = Field(default=None, ge=1)
    seconds_per_question: int | None = Field(default=None, ge=1)
    question_bank_ids: list[str] = Field(
        default_factory=list, description="Question banks to draw match questions from"
    )
    rewards: RewardTiers | None = None


class TournamentUpdateRequest(BaseModel):
    """Partial configuration update, only accepted while the tournament is a draft."""

    name: str | None = Field(default=None, min_length=1)
    description: str | None = None
    capacity: int | None = None
    questions_per_match: int | None = Field(default=None, ge=1)
    seconds_per_question: int | None = Field(default=None, ge=1)
    question_bank_ids: list[str] | None = None
    rewards: RewardTiers | None = None


class Tournament(BaseModel):
    """Complete tournament information."""

    id: int | None = None
    name: str
    description: str = ""
    format: TournamentFormat
    participant_kind: ParticipantKind
    capacity: int
    status: TournamentStatus = TournamentStatus.DRAFT
    current_round: int = 0
    total_rounds: int = 0
    questions_per_match: int
    seconds_per_question: int
    question_bank_ids: list[str] = Field(default_factory=list)
    rewards: RewardTiers = Field(default_factory=RewardTiers)
    created_at: datetime | None = None
    started_at: datetime | None = None
    finished_at: datetime | None = None
    first_place_id: int | None = None
    second_place_id: int | None = None
    third_place_id: int | None = None
    rewards_granted: bool = False  # Set once the reward service accepted the grants


class TournamentParticipant(BaseModel):
    """Tournament participant (seeded student or team)."""

    id: int | None = None
    tournament_id: int
    seed: int  # 1..N, contiguous
    reference_id: str  # Student or team id from the roster
    display_name: str
    wins: int = 0
    draws: int = 0
    losses: int = 0
    eliminated: bool = False
    eliminated_in_round: int | None = None
    questions_answered: int = 0
    questions_correct: int = 0
    final_position: int | None = None


class TournamentMatch(BaseModel):
    """Individual head-to-head match."""

    id: int | None = None
    tournament_id: int
    round_number: int
    slot_number: int  # Position within round, 1-based
    bracket_label: str
    status: MatchStatus = MatchStatus.PENDING
    participant_a_id: int | None = None
    participant_b_id: int | None = None
    score_a: int = 0
    score_b: int = 0
    winner_id: int | None = None  # NULL while unresolved, or for a league draw
    current_question_index: int = 0
    question_sequence: list[str] = Field(default_factory=list)
    question_phase: QuestionPhase = QuestionPhase.ANSWERING
    question_started_at: datetime | None = None
    next_match_id: int | None = None  # NULL for the final and league matches
    next_slot: MatchSlot | None = None
    sudden_death_questions: int = 0
    started_at: datetime | None = None
    completed_at: datetime | None = None

    @property
    def is_bye(self) -> bool:
        return self.status == MatchStatus.BYE

    @property
    def questions_exhausted(self) -> bool:
        return self.current_question_index >= len(self.question_sequence)

    def side_of(self, participant_id: int) -> MatchSlot | None:
        """Return which side a participant plays on, if any."""
        if participant_id == self.participant_a_id:
            return MatchSlot.A
        if participant_id == self.participant_b_id:
            return MatchSlot.B
        return None

    def opponent_of(self, participant_id: int) -> int | None:
        if participant_id == self.participant_a_id:
            return self.participant_b_id
        return self.participant_a_id


class AnswerRecord(BaseModel):
    """One participant's answer to one question of a match."""

    id: int | None = None
    match_id: int
    question_index: int
    participant_id: int
    submitted_answer: Any = None  # None when the time limit elapsed unanswered
    is_correct: bool
    pair_results: list[bool] | None = None  # MATCHING only
    time_spent_ms: int | None = None
    timed_out: bool = False
    submitted_at: datetime | None = None


class TournamentSummary(BaseModel):
    """Tournament summary for listing."""

    id: int
    name: str
    format: TournamentFormat
    status: TournamentStatus
    capacity: int
    participant_count: int
    current_round: int
    total_rounds: int
    created_at: datetime


class TournamentDetail(BaseModel):
    """Tournament with its participants and every match."""

    tournament: Tournament
    participants: list[TournamentParticipant]
    matches: list[TournamentMatch]


class MatchDetail(BaseModel):
    """Match with the active question and recorded answers."""

    match: TournamentMatch
    active_question: dict[str, Any] | None = None
    answers: list[AnswerRecord] = Field(default_factory=list)


class RoundStatus(BaseModel):
    """Status of all matches in a round."""

    round_number: int
    total_matches: int
    completed_matches: int
    pending_matches: int
    in_progress_matches: int
    bye_matches: int
    all_completed: bool


class StandingRow(BaseModel):
    """One line of a league table."""

    rank: int
    participant_id: int
    seed: int
    display_name: str
    played: int
    wins: int
    draws: int
    losses: int
    points_for: int
    points_against: int
    score_difference: int
    points: int


class RewardGrant(BaseModel):
    """Reward owed to one participant once a tournament finishes."""

    participant_id: int
    reference_id: str
    participant_kind: ParticipantKind
    final_position: int | None
    xp: int
    points: int
