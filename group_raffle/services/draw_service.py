"""
Draw orchestration

Admin trigger -> eligible pool snapshot -> close raffle -> weighted draw
-> record winners.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Tuple

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from group_raffle.database import crud
from group_raffle.database.models import RaffleStatus
from group_raffle.database.session import session_scope
from group_raffle.errors import NoEligibleWinners, NotFound
from group_raffle.services.draw_engine import DrawCandidate, WeightedDrawEngine, luck_modifier_for
from group_raffle.services.eligibility import EligibilityGate
from group_raffle.services.raffle_registry import CloseResult, RaffleInfo, RaffleRegistry


class DrawStatus(str, Enum):
    COMPLETED = "completed"
    ALREADY_CLOSED = "already_closed"


@dataclass(frozen=True)
class DrawOutcome:
    status: DrawStatus
    raffle: RaffleInfo
    winners: List[DrawCandidate] = field(default_factory=list)
    pool_size: int = 0


class DrawService:
    """Runs a draw for a raffle exactly once"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        registry: RaffleRegistry,
        eligibility: EligibilityGate,
        engine: WeightedDrawEngine,
        luck_win_penalty: float = 0.0,
    ):
        self.session_factory = session_factory
        self.registry = registry
        self.eligibility = eligibility
        self.engine = engine
        self.luck_win_penalty = luck_win_penalty

    async def eligible_pool(self, raffle_id: str) -> Tuple[RaffleInfo, List[DrawCandidate]]:
        """
        Snapshot participants that are still eligible, weighted by past wins

        Returns:
            Tuple of (raffle snapshot, candidates in join order)

        Raises:
            NotFound: Raffle does not exist
        """
        async with session_scope(self.session_factory) as session:
            raffle = await crud.get_raffle(session, raffle_id)
            if raffle is None:
                raise NotFound(f"Raffle {raffle_id} not found")

            participants = await crud.get_raffle_participants(session, raffle_id)
            participants.sort(key=lambda p: (p.joined_at, p.id))

            eligible = []
            for participant in participants:
                decision = await self.eligibility.check_in_session(
                    session, participant.user_id, raffle.group_id
                )
                if decision.eligible:
                    eligible.append(participant)

            win_counts = await crud.get_win_counts(
                session, raffle.group_id, [p.user_id for p in eligible]
            )
            pool = [
                DrawCandidate(
                    user_id=p.user_id,
                    name=p.user_name,
                    luck_modifier=luck_modifier_for(
                        win_counts.get(p.user_id, 0), self.luck_win_penalty
                    ),
                )
                for p in eligible
            ]
            return RaffleInfo.from_model(raffle), pool

    async def perform_draw(self, raffle_id: str) -> DrawOutcome:
        """
        Draw winners for an open raffle

        The raffle stays open when nobody can be selected, so an admin can
        still cancel it. A second call after a successful draw returns
        ``DrawStatus.ALREADY_CLOSED`` and never draws again.

        Raises:
            NotFound: Raffle does not exist
            NoEligibleWinners: Nobody can win. ``raffle_closed`` tells
                whether the raffle was already moved to drawn.
        """
        raffle, pool = await self.eligible_pool(raffle_id)
        if raffle.status != RaffleStatus.OPEN:
            return DrawOutcome(status=DrawStatus.ALREADY_CLOSED, raffle=raffle)

        if not any(c.luck_modifier > 0 for c in pool):
            logger.warning(f"Raffle {raffle_id} has no eligible participants, keeping it open")
            raise NoEligibleWinners(raffle_id, raffle_closed=False)

        if await self.registry.try_close(raffle_id) != CloseResult.OK:
            return DrawOutcome(status=DrawStatus.ALREADY_CLOSED, raffle=raffle)

        # Participants may have joined between the snapshot and the close
        raffle, pool = await self.eligible_pool(raffle_id)
        try:
            winners = self.engine.draw(pool, raffle.num_winners)
        except NoEligibleWinners:
            winners = []

        if not winners:
            logger.error(f"Raffle {raffle_id} closed without any selectable participant")
            raise NoEligibleWinners(raffle_id, raffle_closed=True)

        await self.registry.record_winners(raffle_id, [w.user_id for w in winners])
        logger.success(
            f"Raffle {raffle_id} drawn: {len(winners)} winner(s) from {len(pool)} eligible participant(s)"
        )
        return DrawOutcome(
            status=DrawStatus.COMPLETED,
            raffle=raffle,
            winners=winners,
            pool_size=len(pool),
        )
