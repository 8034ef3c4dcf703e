"""
Raffle registry

Owns raffle records and their state transitions. Every transition out of
``open`` is a compare-and-swap on the stored status, so concurrent draw
and cancel requests settle on exactly one outcome.
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import List, Optional, Sequence

from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from group_raffle.database import crud
from group_raffle.database.models import Participant, Raffle, RaffleStatus
from group_raffle.database.session import session_scope
from group_raffle.errors import Conflict, InvalidArgument, NotFound
from group_raffle.utils import new_raffle_id


class CloseResult(str, Enum):
    OK = "ok"
    ALREADY_CLOSED = "already_closed"


class CancelResult(str, Enum):
    OK = "ok"
    ALREADY_TERMINAL = "already_terminal"


@dataclass(frozen=True)
class RaffleInfo:
    id: str
    group_id: int
    num_winners: int
    prize_description: Optional[str]
    status: RaffleStatus
    participant_count: int
    created_by: Optional[int]
    created_at: Optional[datetime]
    performed_at: Optional[datetime]

    @classmethod
    def from_model(cls, raffle: Raffle) -> "RaffleInfo":
        return cls(
            id=raffle.id,
            group_id=raffle.group_id,
            num_winners=raffle.num_winners,
            prize_description=raffle.prize_description,
            status=raffle.status,
            participant_count=raffle.participant_count,
            created_by=raffle.created_by,
            created_at=raffle.created_at,
            performed_at=raffle.performed_at,
        )


@dataclass(frozen=True)
class ParticipantInfo:
    user_id: int
    user_name: Optional[str]
    is_winner: bool
    win_position: Optional[int]
    joined_at: Optional[datetime]

    @classmethod
    def from_model(cls, participant: Participant) -> "ParticipantInfo":
        return cls(
            user_id=participant.user_id,
            user_name=participant.user_name,
            is_winner=participant.is_winner,
            win_position=participant.win_position,
            joined_at=participant.joined_at,
        )


class RaffleRegistry:
    """Creates raffles and moves them through open -> drawn | cancelled"""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def create(
        self,
        group_id: int,
        num_winners: int,
        prize_description: Optional[str] = None,
        group_name: Optional[str] = None,
        raffle_id: Optional[str] = None,
        created_by: Optional[int] = None,
    ) -> str:
        """
        Create an open raffle

        Args:
            group_id: Owning group chat ID
            num_winners: Number of winners to draw, at least 1
            prize_description: Free-form prize text
            group_name: Group title, stored on first sight of the group
            raffle_id: Explicit identifier, generated when omitted

        Returns:
            Raffle identifier

        Raises:
            InvalidArgument: num_winners is not positive
        """
        if num_winners is None or num_winners <= 0:
            raise InvalidArgument(f"num_winners must be at least 1, got {num_winners}")

        raffle_id = raffle_id or new_raffle_id()

        async with session_scope(self.session_factory) as session:
            await crud.get_or_create_group(session, group_id, group_name)
            await crud.create_raffle(
                session,
                raffle_id=raffle_id,
                group_id=group_id,
                num_winners=num_winners,
                prize_description=prize_description,
                created_by=created_by,
            )

        logger.info(f"Raffle {raffle_id} created in group {group_id} ({num_winners} winner(s))")
        return raffle_id

    async def get_status(self, raffle_id: str) -> RaffleStatus:
        """Get raffle status, raises NotFound for unknown IDs"""
        async with session_scope(self.session_factory) as session:
            status = await crud.get_raffle_status(session, raffle_id)

        if status is None:
            raise NotFound(f"Raffle {raffle_id} not found")
        return status

    async def get_raffle(self, raffle_id: str) -> RaffleInfo:
        """Get raffle snapshot, raises NotFound for unknown IDs"""
        async with session_scope(self.session_factory) as session:
            raffle = await crud.get_raffle(session, raffle_id)
            if raffle is None:
                raise NotFound(f"Raffle {raffle_id} not found")
            return RaffleInfo.from_model(raffle)

    async def try_close(self, raffle_id: str) -> CloseResult:
        """
        Atomically move an open raffle to drawn

        Only one caller can ever receive ``CloseResult.OK`` for a raffle.
        """
        async with session_scope(self.session_factory) as session:
            closed = await crud.cas_raffle_status(
                session, raffle_id, RaffleStatus.OPEN, RaffleStatus.DRAWN
            )
            if not closed and await crud.get_raffle_status(session, raffle_id) is None:
                raise NotFound(f"Raffle {raffle_id} not found")

        if closed:
            logger.info(f"Raffle {raffle_id} closed for drawing")
            return CloseResult.OK

        logger.debug(f"Raffle {raffle_id} was already closed")
        return CloseResult.ALREADY_CLOSED

    async def cancel(self, raffle_id: str) -> CancelResult:
        """Atomically move an open raffle to cancelled"""
        async with session_scope(self.session_factory) as session:
            cancelled = await crud.cas_raffle_status(
                session, raffle_id, RaffleStatus.OPEN, RaffleStatus.CANCELLED
            )
            if not cancelled and await crud.get_raffle_status(session, raffle_id) is None:
                raise NotFound(f"Raffle {raffle_id} not found")

        if cancelled:
            logger.info(f"Raffle {raffle_id} cancelled")
            return CancelResult.OK
        return CancelResult.ALREADY_TERMINAL

    async def record_winners(self, raffle_id: str, winner_user_ids: Sequence[int]):
        """
        Mark winners in draw order, positions start at 1

        Raises:
            NotFound: Raffle does not exist
            Conflict: Raffle is not drawn or a winner is not a participant
            InvalidArgument: Same user appears twice
        """
        if len(set(winner_user_ids)) != len(winner_user_ids):
            raise InvalidArgument("Winner list contains duplicates")

        async with session_scope(self.session_factory) as session:
            status = await crud.get_raffle_status(session, raffle_id)
            if status is None:
                raise NotFound(f"Raffle {raffle_id} not found")
            if status != RaffleStatus.DRAWN:
                raise Conflict(f"Raffle {raffle_id} is {status.value}, winners need a drawn raffle")

            for position, user_id in enumerate(winner_user_ids, 1):
                if not await crud.record_winner(session, raffle_id, user_id, position):
                    raise Conflict(f"User {user_id} is not a participant of raffle {raffle_id}")

        logger.info(f"Recorded {len(winner_user_ids)} winner(s) for raffle {raffle_id}")

    async def list_by_status(
        self,
        status: RaffleStatus,
        group_id: Optional[int] = None,
        limit: int = 20,
    ) -> List[RaffleInfo]:
        """List most recent raffles with the given status"""
        async with session_scope(self.session_factory) as session:
            raffles = await crud.get_raffles_by_status(session, status, group_id, limit)
            return [RaffleInfo.from_model(r) for r in raffles]

    async def list_participants(self, raffle_id: str) -> List[ParticipantInfo]:
        """List participants, winners first in draw order"""
        async with session_scope(self.session_factory) as session:
            if await crud.get_raffle_status(session, raffle_id) is None:
                raise NotFound(f"Raffle {raffle_id} not found")
            participants = await crud.get_raffle_participants(session, raffle_id)
            return [ParticipantInfo.from_model(p) for p in participants]
