"""Collaborators the tournament engine consumes but does not own.

Question banks, the student/team roster and the reward ledger live in other
services. The engine only sees the protocols below; the static implementations
back the default server and the test suite.
"""

import json
import logging
import random
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from .exceptions import NotFoundError
from .models import ParticipantKind, RewardGrant, Tournament

logger = logging.getLogger(__name__)

RawQuestion = Mapping[str, Any]


@dataclass
class RosterEntry:
    """A student or team as the roster knows it."""

    reference_id: str
    display_name: str
    seed_hint: int | None = None  # Lower is stronger; None sorts last


class QuestionBankProvider(Protocol):
    """Source of raw question payloads."""

    async def draw_questions(
        self, bank_ids: Sequence[str], count: int, exclude: Sequence[str] = ()
    ) -> list[RawQuestion]:
        """Return up to ``count`` questions from the banks, skipping ``exclude`` ids."""
        ...


class RosterProvider(Protocol):
    """Resolves participant references to display data."""

    async def resolve(
        self, kind: ParticipantKind, reference_ids: Sequence[str]
    ) -> list[RosterEntry]:
        """Return one entry per id, in request order; unknown ids raise NotFoundError."""
        ...


class RewardService(Protocol):
    """Applies XP and points once a tournament finishes."""

    async def grant(self, tournament: Tournament, grants: list[RewardGrant]) -> None:
        ...


class StaticQuestionBank:
    """In-memory question banks keyed by bank id."""

    def __init__(
        self,
        banks: Mapping[str, Sequence[RawQuestion]],
        rng: random.Random | None = None,
    ):
        self._banks = {bank_id: list(questions) for bank_id, questions in banks.items()}
        self._rng = rng or random.Random()

    @classmethod
    def from_file(cls, path: Path, rng: random.Random | None = None) -> "StaticQuestionBank":
        """Load banks from a JSON object of bank id -> list of questions."""
        if not path.exists():
            logger.warning(f"Question bank file not found: {path}; starting with no banks")
            return cls({}, rng)

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        logger.info(f"Loaded {len(data)} question banks from {path}")
        return cls(data, rng)

    def add_bank(self, bank_id: str, questions: Sequence[RawQuestion]) -> None:
        self._banks[bank_id] = list(questions)

    async def draw_questions(
        self, bank_ids: Sequence[str], count: int, exclude: Sequence[str] = ()
    ) -> list[RawQuestion]:
        excluded = set(exclude)
        seen: set[str] = set()
        pool: list[RawQuestion] = []

        for bank_id in bank_ids or list(self._banks):
            if bank_id not in self._banks:
                raise NotFoundError("question bank", bank_id)
            for question in self._banks[bank_id]:
                question_id = str(question.get("id", ""))
                if question_id in excluded or question_id in seen:
                    continue
                seen.add(question_id)
                pool.append(question)

        if len(pool) <= count:
            self._rng.shuffle(pool)
            return pool
        return self._rng.sample(pool, count)


class StaticRoster:
    """In-memory roster of students and teams."""

    def __init__(self, entries: Mapping[ParticipantKind, Sequence[RosterEntry]] | None = None):
        self._entries: dict[ParticipantKind, dict[str, RosterEntry]] = {
            kind: {} for kind in ParticipantKind
        }
        for kind, kind_entries in (entries or {}).items():
            for entry in kind_entries:
                self.register(kind, entry)

    @classmethod
    def from_file(cls, path: Path) -> "StaticRoster":
        """Load a roster from JSON: {"individual": [...], "team": [...]}."""
        if not path.exists():
            logger.warning(f"Roster file not found: {path}; starting with an empty roster")
            return cls()

        with open(path, "r", encoding="utf-8") as f:
            data = json.load(f)

        return cls(
            {
                ParticipantKind(kind): [RosterEntry(**entry) for entry in entries]
                for kind, entries in data.items()
            }
        )

    def register(self, kind: ParticipantKind, entry: RosterEntry) -> None:
        self._entries[kind][entry.reference_id] = entry

    async def resolve(
        self, kind: ParticipantKind, reference_ids: Sequence[str]
    ) -> list[RosterEntry]:
        known = self._entries[kind]
        for reference_id in reference_ids:
            if reference_id not in known:
                raise NotFoundError(kind.value, reference_id)
        return [known[reference_id] for reference_id in reference_ids]


class LoggingRewardService:
    """Reward service that logs grants and keeps them for inspection."""

    def __init__(self) -> None:
        self.granted: dict[int, list[RewardGrant]] = {}

    async def grant(self, tournament: Tournament, grants: list[RewardGrant]) -> None:
        if tournament.id is None:
            raise ValueError("Cannot grant rewards for an unsaved tournament")

        self.granted[tournament.id] = list(grants)
        for grant in grants:
            logger.info(
                f"Tournament {tournament.id}: {grant.participant_kind.value} "
                f"{grant.reference_id} (position {grant.final_position}) "
                f"granted {grant.xp} XP and {grant.points} points"
            )
