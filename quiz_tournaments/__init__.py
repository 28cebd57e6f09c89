"""Tournament system for classroom quiz competitions."""

from .manager import TournamentManager
from .database import TournamentDatabaseManager
from .api import TournamentAPI
from .exceptions import ConflictError, NotFoundError, TournamentError, ValidationError
from .providers import (
    LoggingRewardService,
    QuestionBankProvider,
    RewardService,
    RosterEntry,
    RosterProvider,
    StaticQuestionBank,
    StaticRoster,
)
from .models import (
    Tournament,
    TournamentParticipant,
    TournamentMatch,
    TournamentStatus,
    TournamentFormat,
    TournamentCreateRequest,
    TournamentUpdateRequest,
    TournamentSummary,
    TournamentDetail,
    ParticipantKind,
    MatchStatus,
    MatchDetail,
    AnswerRecord,
    RoundStatus,
    StandingRow,
    RewardGrant,
)

__all__ = [
    "TournamentManager",
    "TournamentDatabaseManager",
    "TournamentAPI",
    "TournamentError",
    "ValidationError",
    "ConflictError",
    "NotFoundError",
    "QuestionBankProvider",
    "RosterProvider",
    "RewardService",
    "RosterEntry",
    "StaticQuestionBank",
    "StaticRoster",
    "LoggingRewardService",
    "Tournament",
    "TournamentParticipant",
    "TournamentMatch",
    "TournamentStatus",
    "TournamentFormat",
    "TournamentCreateRequest",
    "TournamentUpdateRequest",
    "TournamentSummary",
    "TournamentDetail",
    "ParticipantKind",
    "MatchStatus",
    "MatchDetail",
    "AnswerRecord",
    "RoundStatus",
    "StandingRow",
    "RewardGrant",
]
