"""Round-robin league scheduling (circle method)."""

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

from .exceptions import ValidationError

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class Fixture(Generic[T]):
    """One league pairing."""

    round_number: int
    slot_number: int  # Position within the round, 1-based
    match_number: int  # Running number across the whole schedule
    home: T
    away: T

    @property
    def label(self) -> str:
        return f"J{self.round_number}M{self.match_number}"


def count_rounds(n: int) -> int:
    """Rounds needed so everyone meets everyone once."""
    return n if n % 2 else n - 1


def build_round_robin(entries: list[T]) -> list[Fixture[T]]:
    """Pair every entry with every other exactly once.

    Entry 0 stays fixed while the rest rotate one position per round and
    position ``i`` meets position ``n - 1 - i``. An odd field gets a rest
    entry; whoever meets it sits the round out and no fixture is produced.
    """
    if len(entries) < 2:
        raise ValidationError(
            f"At least 2 participants are required to build a schedule, got {len(entries)}",
            "At least 2 participants are needed",
        )

    slots: list[T | None] = list(entries)
    if len(slots) % 2:
        slots.append(None)

    n = len(slots)
    half = n // 2
    fixtures: list[Fixture[T]] = []
    match_number = 0

    for round_number in range(1, n):
        slot_number = 0
        for i in range(half):
            home, away = slots[i], slots[n - 1 - i]
            if home is None or away is None:
                continue
            slot_number += 1
            match_number += 1
            fixtures.append(
                Fixture(
                    round_number=round_number,
                    slot_number=slot_number,
                    match_number=match_number,
                    home=home,
                    away=away,
                )
            )
        slots = [slots[0], slots[-1], *slots[1:-1]]

    logger.debug(
        f"Built round robin: {len(entries)} participants, {n - 1} rounds, "
        f"{len(fixtures)} matches"
    )
    return fixtures
