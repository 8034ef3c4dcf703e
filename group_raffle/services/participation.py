"""
Participation service

Registers users into open raffles. The unique (raffle, user) insert is
the only source of truth for "already joined", so retries and concurrent
clicks on the join button produce a single participant record.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from group_raffle.database import crud
from group_raffle.database.models import RaffleStatus
from group_raffle.database.session import session_scope
from group_raffle.errors import NotFound
from group_raffle.services.eligibility import EligibilityGate, IneligibilityReason


class JoinStatus(str, Enum):
    ACCEPTED = "accepted"
    ALREADY_JOINED = "already_joined"
    NOT_ELIGIBLE = "not_eligible"
    RAFFLE_CLOSED = "raffle_closed"


@dataclass(frozen=True)
class JoinResult:
    status: JoinStatus
    participant_count: Optional[int] = None
    reason: Optional[IneligibilityReason] = None
    message: str = ""

    @property
    def accepted(self) -> bool:
        return self.status == JoinStatus.ACCEPTED


class ParticipationService:
    """Join flow: raffle open -> eligible -> insert -> count"""

    def __init__(self, session_factory: async_sessionmaker, eligibility: EligibilityGate):
        self.session_factory = session_factory
        self.eligibility = eligibility

    async def join(
        self,
        raffle_id: str,
        user_id: int,
        user_display_name: Optional[str] = None,
    ) -> JoinResult:
        """
        Register a user into a raffle

        All writes happen in one transaction: nothing is stored unless the
        participant row is new and the counter was incremented.

        Args:
            raffle_id: Raffle identifier
            user_id: Telegram user ID
            user_display_name: Name shown in listings and announcements

        Returns:
            JoinResult with the new participant count when accepted

        Raises:
            NotFound: Raffle does not exist
        """
        async with session_scope(self.session_factory) as session:
            raffle = await crud.get_raffle(session, raffle_id)
            if raffle is None:
                raise NotFound(f"Raffle {raffle_id} not found")

            if raffle.status != RaffleStatus.OPEN:
                return JoinResult(status=JoinStatus.RAFFLE_CLOSED)

            decision = await self.eligibility.check_in_session(session, user_id, raffle.group_id)
            if not decision.eligible:
                logger.info(
                    f"User {user_id} not eligible for raffle {raffle_id}: {decision.reason.value}"
                )
                return JoinResult(
                    status=JoinStatus.NOT_ELIGIBLE,
                    reason=decision.reason,
                    message=decision.message,
                )

            inserted = await crud.insert_participant_if_absent(
                session, raffle_id, user_id, user_display_name
            )
            if not inserted:
                logger.debug(f"Duplicate join ignored: user {user_id}, raffle {raffle_id}")
                return JoinResult(status=JoinStatus.ALREADY_JOINED)

            count = await crud.increment_participant_count(session, raffle_id)
            if count is None:
                # Closed after the status read; drop the participant row too
                await session.rollback()
                logger.info(f"Raffle {raffle_id} closed while user {user_id} was joining")
                return JoinResult(status=JoinStatus.RAFFLE_CLOSED)

        logger.info(f"User {user_id} joined raffle {raffle_id} (participants: {count})")
        return JoinResult(status=JoinStatus.ACCEPTED, participant_count=count)
