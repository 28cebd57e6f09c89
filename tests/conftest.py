"""Pytest configuration and shared fixtures.

This file is automatically loaded by pytest and provides:
- Shared fixtures available to all test modules
- Pytest configuration hooks
- Common test utilities

Learning notes:
- conftest.py is a special filename recognized by pytest
- Fixtures defined here are available to all tests without importing
- Fixtures that return callables ("factories") let a test build exactly the
  tournament it needs while sharing the wiring
"""

import asyncio
import random
from collections.abc import Callable
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from config.settings import AppConfig
from quiz_tournaments import (
    LoggingRewardService,
    RosterEntry,
    StaticQuestionBank,
    StaticRoster,
    TournamentDatabaseManager,
    TournamentManager,
)
from quiz_tournaments.match_engine import CompletionResult
from quiz_tournaments.models import (
    ParticipantKind,
    TournamentCreateRequest,
    TournamentDetail,
    TournamentFormat,
)

CORRECT = 0  # Every bank question below has option 0 as its answer
WRONG = 1


class FakeClock:
    """Controllable stand-in for datetime.now."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2026, 3, 2, 9, 0, 0)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


def single_choice(question_id: str, **extra: Any) -> dict[str, Any]:
    """Raw bank payload with two options, the first one correct."""
    return {
        "id": question_id,
        "type": "SINGLE_CHOICE",
        "text": f"Question {question_id}",
        "options": [{"text": "A", "isCorrect": True}, {"text": "B", "isCorrect": False}],
        **extra,
    }


# =============================================================================
# SHARED FIXTURES - Available to all test modules
# =============================================================================


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def db(tmp_path: Path) -> TournamentDatabaseManager:
    """Fresh database file per test.

    Learning notes:
    - tmp_path is a built-in fixture giving each test its own directory
    - Fixtures can depend on other fixtures just by naming them
    """
    return TournamentDatabaseManager(str(tmp_path / "tournaments.db"))


@pytest.fixture
def question_bank() -> StaticQuestionBank:
    return StaticQuestionBank(
        {"general": [single_choice(f"q{i}") for i in range(1, 13)]},
        rng=random.Random(7),
    )


@pytest.fixture
def roster() -> StaticRoster:
    return StaticRoster(
        {
            ParticipantKind.INDIVIDUAL: [
                RosterEntry(f"s{i}", f"Student {i}", seed_hint=i) for i in range(1, 65)
            ],
            ParticipantKind.TEAM: [
                RosterEntry("t1", "Owls"),
                RosterEntry("t2", "Foxes", seed_hint=1),
            ],
        }
    )


@pytest.fixture
def rewards() -> LoggingRewardService:
    return LoggingRewardService()


@pytest.fixture
def make_manager(
    db: TournamentDatabaseManager,
    question_bank: StaticQuestionBank,
    roster: StaticRoster,
    rewards: LoggingRewardService,
    clock: FakeClock,
) -> Callable[..., TournamentManager]:
    """Factory for managers sharing the test database and providers."""

    def build(
        config: AppConfig | None = None,
        bank: StaticQuestionBank | None = None,
    ) -> TournamentManager:
        return TournamentManager(
            db=db,
            question_bank=bank or question_bank,
            roster=roster,
            rewards=rewards,
            config=config,
            clock=clock,
            rng=random.Random(42),
        )

    return build


@pytest.fixture
def manager(make_manager: Callable[..., TournamentManager]) -> TournamentManager:
    return make_manager()


@pytest.fixture
def new_tournament(
    manager: TournamentManager,
) -> Callable[..., TournamentDetail]:
    """Create a tournament with students s1..sN and generate its matches."""

    def create(
        players: int,
        format: TournamentFormat = TournamentFormat.BRACKET,
        capacity: int | None = None,
        generate: bool = True,
        target: TournamentManager | None = None,
    ) -> TournamentDetail:
        owner = target or manager
        if capacity is None:
            capacity = 64 if format == TournamentFormat.LEAGUE else 8
            while capacity < players:
                capacity *= 2

        async def run() -> TournamentDetail:
            tournament = await owner.create_tournament(
                TournamentCreateRequest(
                    name="Spring Cup",
                    format=format,
                    capacity=capacity,
                    question_bank_ids=["general"],
                )
            )
            assert tournament.id is not None
            await owner.add_participants(
                tournament.id, [f"s{i}" for i in range(1, players + 1)]
            )
            if generate:
                return await owner.generate_bracket(tournament.id)
            return await owner.get_tournament(tournament.id)

        return asyncio.run(run())

    return create


@pytest.fixture
def play_match(manager: TournamentManager) -> Callable[..., CompletionResult]:
    """Play a match through every question, then complete it.

    ``outcomes`` maps participant id to one bool per question; True answers
    correctly, False answers wrong. Missing participants always answer wrong.
    """

    def play(
        match_id: int,
        outcomes: dict[int, list[bool]],
        target: TournamentManager | None = None,
    ) -> CompletionResult:
        owner = target or manager

        async def run() -> CompletionResult:
            detail = await owner.start_match(match_id)
            match = detail.match
            sides = [match.participant_a_id, match.participant_b_id]
            for index in range(len(match.question_sequence)):
                for participant_id in sides:
                    assert participant_id is not None
                    results = outcomes.get(participant_id, [])
                    correct = index < len(results) and results[index]
                    await owner.submit_answer(
                        match_id, participant_id, CORRECT if correct else WRONG
                    )
                await owner.reveal_result(match_id)
                await owner.next_question(match_id)
            return await owner.complete_match(match_id)

        return asyncio.run(run())

    return play


# =============================================================================
# PYTEST CONFIGURATION HOOKS
# =============================================================================


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest with custom markers.

    Learning notes:
    - Hooks allow customizing pytest behavior
    - Markers are used to categorize tests
    - Use with @pytest.mark.slow, etc.
    - Need to import pytest.Config type for strict mode
    """
    config.addinivalue_line(
        "markers", "slow: marks tests as slow (deselect with '-m \"not slow\"')"
    )
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
