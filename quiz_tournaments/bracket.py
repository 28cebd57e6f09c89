"""Single-elimination bracket planning.

The bracket is an arena of rounds: ``rounds[r][i]`` is the i-th match of round
``r + 1`` and its winner feeds ``rounds[r + 1][i // 2]``, on side ``a`` when
``i`` is even and side ``b`` when odd. Planning is pure; the database layer
materializes a plan in one transaction.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import Generic, TypeVar

from .exceptions import ValidationError
from .models import MatchSlot

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class PlannedMatch(Generic[T]):
    """A bracket slot before it exists in storage."""

    round_number: int
    index: int  # 0-based position inside the round
    label: str
    side_a: T | None = None
    side_b: T | None = None
    is_bye: bool = False

    @property
    def slot_number(self) -> int:
        return self.index + 1

    @property
    def next_index(self) -> int:
        return self.index // 2

    @property
    def next_slot(self) -> MatchSlot:
        return MatchSlot.A if self.index % 2 == 0 else MatchSlot.B

    @property
    def bye_winner(self) -> T | None:
        if not self.is_bye:
            return None
        return self.side_a if self.side_a is not None else self.side_b


@dataclass
class BracketPlan(Generic[T]):
    """Every match of every round of a bracket."""

    bracket_size: int
    byes: int
    rounds: list[list[PlannedMatch[T]]] = field(default_factory=list)

    @property
    def total_rounds(self) -> int:
        return len(self.rounds)

    @property
    def total_matches(self) -> int:
        return sum(len(r) for r in self.rounds)

    def feeds(self, round_number: int, index: int) -> PlannedMatch[T] | None:
        """Downstream match that the winner of (round, index) plays in."""
        if round_number >= self.total_rounds:
            return None
        return self.rounds[round_number][index // 2]


def next_power_of_two(n: int) -> int:
    if n < 1:
        raise ValueError("n must be positive")
    return 1 << (n - 1).bit_length()


def is_power_of_two(n: int) -> bool:
    return n >= 1 and n & (n - 1) == 0


def calculate_rounds(bracket_size: int) -> int:
    """Calculate total rounds needed for bracket size."""
    return int(math.log2(bracket_size))


def seed_order(bracket_size: int) -> list[int]:
    """Standard seeding order for a power-of-two bracket.

    Consecutive entries are first-round opponents and always sum to
    ``bracket_size + 1``; seeds 1 and 2 sit in opposite halves so they can
    only meet in the final. For 8: [1, 8, 4, 5, 2, 7, 3, 6].
    """
    if not is_power_of_two(bracket_size) or bracket_size < 2:
        raise ValueError(f"Bracket size must be a power of two >= 2, got {bracket_size}")

    order = [1, 2]
    while len(order) < bracket_size:
        size = len(order) * 2
        order = [s for seed in order for s in (seed, size + 1 - seed)]
    return order


def round_label(round_number: int, total_rounds: int, slot_number: int) -> str:
    """Human-readable bracket position, e.g. FINAL1, SF2, QF3 or R1M4."""
    rounds_from_end = total_rounds - round_number + 1
    if rounds_from_end == 1:
        return f"FINAL{slot_number}"
    if rounds_from_end == 2:
        return f"SF{slot_number}"
    if rounds_from_end == 3:
        return f"QF{slot_number}"
    return f"R{round_number}M{slot_number}"


def plan_bracket(seeded: list[T]) -> BracketPlan[T]:
    """Plan a full bracket for participants ordered by seed (index 0 = seed 1).

    Seeds beyond the field size are empty slots, so byes land on the highest
    seeds first. Later rounds start empty and are filled as winners advance.
    """
    n = len(seeded)
    if n < 2:
        raise ValidationError(
            f"At least 2 participants are required to build a bracket, got {n}",
            "At least 2 participants are needed",
        )

    bracket_size = next_power_of_two(n)
    total_rounds = calculate_rounds(bracket_size)
    plan: BracketPlan[T] = BracketPlan(bracket_size=bracket_size, byes=bracket_size - n)

    order = seed_order(bracket_size)
    first_round: list[PlannedMatch[T]] = []
    for i in range(bracket_size // 2):
        seed_a, seed_b = order[2 * i], order[2 * i + 1]
        side_a = seeded[seed_a - 1] if seed_a <= n else None
        side_b = seeded[seed_b - 1] if seed_b <= n else None
        first_round.append(
            PlannedMatch(
                round_number=1,
                index=i,
                label=round_label(1, total_rounds, i + 1),
                side_a=side_a,
                side_b=side_b,
                is_bye=side_a is None or side_b is None,
            )
        )
    plan.rounds.append(first_round)

    matches_in_round = bracket_size // 4
    for round_number in range(2, total_rounds + 1):
        plan.rounds.append(
            [
                PlannedMatch(
                    round_number=round_number,
                    index=i,
                    label=round_label(round_number, total_rounds, i + 1),
                )
                for i in range(matches_in_round)
            ]
        )
        matches_in_round //= 2

    logger.debug(
        f"Planned bracket: {n} participants, size {bracket_size}, "
        f"{plan.byes} byes, {total_rounds} rounds"
    )
    return plan
