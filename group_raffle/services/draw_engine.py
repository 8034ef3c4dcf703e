"""
Weighted draw engine

Selects winners without replacement from a pool of candidates, each
weighted by its luck modifier. The engine is pure: it never touches the
database and only depends on the injected random source.
"""

import random
from bisect import bisect_right
from dataclasses import dataclass
from itertools import accumulate
from typing import List, Optional, Sequence

from group_raffle.errors import InvalidArgument, NoEligibleWinners


@dataclass(frozen=True)
class DrawCandidate:
    """Participant entering a draw"""
    user_id: int
    name: Optional[str] = None
    luck_modifier: float = 1.0


def luck_modifier_for(previous_wins: int, penalty: float) -> float:
    """
    Compute draw weight from the number of previous wins in the group

    Users who won less often get a higher weight. With a zero penalty
    every participant weighs 1.0.

    Args:
        previous_wins: Wins of the user in earlier raffles of the group
        penalty: Weight reduction factor per previous win

    Returns:
        Weight in the (0, 1] range
    """
    if previous_wins < 0 or penalty < 0:
        raise InvalidArgument("previous_wins and penalty must be non-negative")
    return 1.0 / (1.0 + penalty * previous_wins)


class WeightedDrawEngine:
    """Weighted random sampling without replacement"""

    def __init__(self, rng: Optional[random.Random] = None):
        """
        Initialize engine

        Args:
            rng: Random source, a fresh ``random.Random`` if omitted.
                Pass a seeded instance for reproducible draws.
        """
        self.rng = rng or random.Random()

    def draw(self, pool: Sequence[DrawCandidate], num_winners: int) -> List[DrawCandidate]:
        """
        Draw winners from the pool

        Each round builds cumulative weights over the remaining candidates
        with a positive modifier, picks a uniform point in the total and
        resolves it with a binary search. The winner leaves the pool.

        Args:
            pool: Eligible candidates, user IDs are expected to be unique
            num_winners: Number of winners requested

        Returns:
            Winners in draw order. Fewer than num_winners when the pool
            runs out of selectable candidates, empty for an empty pool.

        Raises:
            InvalidArgument: num_winners is not positive or a modifier is negative
            NoEligibleWinners: pool is not empty but nobody has a positive weight
        """
        if num_winners <= 0:
            raise InvalidArgument(f"num_winners must be positive, got {num_winners}")

        for candidate in pool:
            if candidate.luck_modifier < 0:
                raise InvalidArgument(
                    f"Negative luck modifier {candidate.luck_modifier} for user {candidate.user_id}"
                )

        if not pool:
            return []

        remaining = [c for c in pool if c.luck_modifier > 0]
        if not remaining:
            raise NoEligibleWinners()

        winners: List[DrawCandidate] = []
        while remaining and len(winners) < num_winners:
            cumulative = list(accumulate(c.luck_modifier for c in remaining))
            total = cumulative[-1]
            point = self.rng.random() * total
            index = bisect_right(cumulative, point)
            # Guard against floating point drift at the upper bound
            index = min(index, len(remaining) - 1)
            winners.append(remaining.pop(index))

        return winners
