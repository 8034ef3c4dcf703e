from typing import Dict, List, Optional, Sequence, Tuple
from datetime import date, datetime, timedelta

from sqlalchemy import select, update, delete, func
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from .models import (
    Group, Raffle, Participant, Subscription, GroupAdmin,
    RaffleStatus, SubscriptionStatus, AdminRole
)


def _dialect_insert(session: AsyncSession):
    """Pick the INSERT construct that supports ON CONFLICT for the bound dialect"""
    dialect = session.bind.dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise NotImplementedError(f"Unsupported database dialect: {dialect}")


# ==================== GROUP OPERATIONS ====================

async def get_group(session: AsyncSession, group_id: int) -> Optional[Group]:
    """Get group by Telegram chat ID"""
    return await session.get(Group, group_id)


async def get_or_create_group(
    session: AsyncSession,
    group_id: int,
    name: Optional[str] = None,
) -> Group:
    """
    Get existing group or create new one

    The row is inserted with ON CONFLICT DO NOTHING first, so callers
    racing on a group seen for the first time all get the same row.
    """
    insert = _dialect_insert(session)
    await session.execute(
        insert(Group)
        .values(id=group_id, name=name, requires_subscription=False, created_at=datetime.utcnow())
        .on_conflict_do_nothing(index_elements=["id"])
    )

    group = await session.get(Group, group_id, populate_existing=True)
    if name and group.name != name:
        group.name = name
        await session.flush()

    return group


async def set_requires_subscription(
    session: AsyncSession,
    group_id: int,
    required: bool,
    name: Optional[str] = None,
) -> Group:
    """Turn the subscription requirement of a group on or off"""
    group = await get_or_create_group(session, group_id, name)
    group.requires_subscription = required
    await session.flush()
    return group


# ==================== RAFFLE OPERATIONS ====================

async def create_raffle(
    session: AsyncSession,
    raffle_id: str,
    group_id: int,
    num_winners: int,
    prize_description: Optional[str] = None,
    created_by: Optional[int] = None,
) -> Raffle:
    """Create new open raffle"""
    raffle = Raffle(
        id=raffle_id,
        group_id=group_id,
        num_winners=num_winners,
        prize_description=prize_description,
        created_by=created_by,
        status=RaffleStatus.OPEN,
        participant_count=0,
    )
    session.add(raffle)
    await session.flush()
    return raffle


async def get_raffle(session: AsyncSession, raffle_id: str) -> Optional[Raffle]:
    """Get raffle by ID"""
    return await session.get(Raffle, raffle_id)


async def get_raffle_status(session: AsyncSession, raffle_id: str) -> Optional[RaffleStatus]:
    """Get current raffle status, None if the raffle does not exist"""
    result = await session.execute(
        select(Raffle.status).where(Raffle.id == raffle_id)
    )
    return result.scalar_one_or_none()


async def cas_raffle_status(
    session: AsyncSession,
    raffle_id: str,
    old_status: RaffleStatus,
    new_status: RaffleStatus,
) -> bool:
    """
    Move raffle from old_status to new_status in a single UPDATE

    Returns:
        True if this call performed the transition, False if the raffle
        was not in old_status anymore
    """
    result = await session.execute(
        update(Raffle)
        .where(Raffle.id == raffle_id, Raffle.status == old_status)
        .values(status=new_status, performed_at=datetime.utcnow())
    )
    return result.rowcount == 1


async def get_raffles_by_status(
    session: AsyncSession,
    status: RaffleStatus,
    group_id: Optional[int] = None,
    limit: int = 20,
) -> List[Raffle]:
    """Get most recent raffles with given status"""
    query = select(Raffle).where(Raffle.status == status)
    if group_id is not None:
        query = query.where(Raffle.group_id == group_id)

    result = await session.execute(
        query.order_by(Raffle.created_at.desc()).limit(limit)
    )
    return list(result.scalars().all())


# ==================== PARTICIPANT OPERATIONS ====================

async def insert_participant_if_absent(
    session: AsyncSession,
    raffle_id: str,
    user_id: int,
    user_name: Optional[str] = None,
) -> bool:
    """
    Insert participant unless (raffle_id, user_id) already exists

    Returns:
        True if a new row was inserted, False on conflict
    """
    insert = _dialect_insert(session)
    result = await session.execute(
        insert(Participant)
        .values(
            raffle_id=raffle_id,
            user_id=user_id,
            user_name=user_name,
            is_winner=False,
            joined_at=datetime.utcnow(),
        )
        .on_conflict_do_nothing(index_elements=["raffle_id", "user_id"])
        .returning(Participant.id)
    )
    return result.scalar_one_or_none() is not None


async def increment_participant_count(session: AsyncSession, raffle_id: str) -> Optional[int]:
    """
    Atomically increment cached participant count of an open raffle

    Returns:
        The new count, None if the raffle is no longer open
    """
    result = await session.execute(
        update(Raffle)
        .where(Raffle.id == raffle_id, Raffle.status == RaffleStatus.OPEN)
        .values(participant_count=Raffle.participant_count + 1)
        .returning(Raffle.participant_count)
    )
    return result.scalar_one_or_none()


async def record_winner(
    session: AsyncSession,
    raffle_id: str,
    user_id: int,
    position: int,
) -> bool:
    """Mark participant as winner with 1-based draw position"""
    result = await session.execute(
        update(Participant)
        .where(Participant.raffle_id == raffle_id, Participant.user_id == user_id)
        .values(is_winner=True, win_position=position)
    )
    return result.rowcount == 1


async def get_raffle_participants(session: AsyncSession, raffle_id: str) -> List[Participant]:
    """Get participants, winners first in draw order, then by join time"""
    result = await session.execute(
        select(Participant)
        .where(Participant.raffle_id == raffle_id)
        .order_by(
            Participant.is_winner.desc(),
            Participant.win_position.asc(),
            Participant.joined_at.asc(),
            Participant.id.asc(),
        )
    )
    return list(result.scalars().all())


async def get_win_counts(
    session: AsyncSession,
    group_id: int,
    user_ids: Sequence[int],
) -> Dict[int, int]:
    """Count previous wins of each user across raffles of the group"""
    if not user_ids:
        return {}

    result = await session.execute(
        select(Participant.user_id, func.count(Participant.id))
        .join(Raffle, Raffle.id == Participant.raffle_id)
        .where(
            Raffle.group_id == group_id,
            Participant.is_winner.is_(True),
            Participant.user_id.in_(list(user_ids)),
        )
        .group_by(Participant.user_id)
    )
    return {user_id: count for user_id, count in result.all()}


# ==================== SUBSCRIPTION OPERATIONS ====================

async def get_subscription(
    session: AsyncSession,
    user_id: int,
    group_id: int,
    for_update: bool = False,
) -> Optional[Subscription]:
    """
    Get subscription of a user in a group

    With for_update the row stays locked until the transaction ends
    (PostgreSQL; SQLite already serializes writers).
    """
    query = select(Subscription).where(
        Subscription.user_id == user_id,
        Subscription.group_id == group_id,
    )
    if for_update:
        query = query.with_for_update().execution_options(populate_existing=True)

    result = await session.execute(query)
    return result.scalar_one_or_none()


async def insert_subscription_if_absent(
    session: AsyncSession,
    user_id: int,
    group_id: int,
    start_date: date,
    end_date: date,
    amount_paid: float,
    user_name: Optional[str] = None,
    payment_reference: Optional[str] = None,
    payment_method: str = "PIX",
    registered_by: Optional[int] = None,
) -> bool:
    """
    Create an active subscription unless (user_id, group_id) already has one

    Returns:
        True if a new row was inserted, False on conflict
    """
    insert = _dialect_insert(session)
    now = datetime.utcnow()
    result = await session.execute(
        insert(Subscription)
        .values(
            user_id=user_id,
            group_id=group_id,
            user_name=user_name,
            start_date=start_date,
            end_date=end_date,
            amount_paid=amount_paid,
            status=SubscriptionStatus.ACTIVE,
            payment_reference=payment_reference,
            payment_method=payment_method,
            registered_by=registered_by,
            created_at=now,
            updated_at=now,
        )
        .on_conflict_do_nothing(index_elements=["user_id", "group_id"])
        .returning(Subscription.id)
    )
    return result.scalar_one_or_none() is not None


async def query_active_subscriptions(
    session: AsyncSession,
    today: date,
    window_days: int,
) -> List[Tuple[Subscription, Optional[str]]]:
    """
    Get subscriptions stored as active that end within the window

    Returns:
        List of (subscription, group name) ordered by end date
    """
    result = await session.execute(
        select(Subscription, Group.name)
        .join(Group, Group.id == Subscription.group_id)
        .where(
            Subscription.status == SubscriptionStatus.ACTIVE,
            Subscription.end_date >= today,
            Subscription.end_date <= today + timedelta(days=window_days),
        )
        .order_by(Subscription.end_date.asc(), Subscription.id.asc())
    )
    return [(subscription, group_name) for subscription, group_name in result.all()]


async def get_subscriptions(
    session: AsyncSession,
    group_id: Optional[int] = None,
) -> List[Subscription]:
    """Get all subscriptions, optionally restricted to one group"""
    query = select(Subscription)
    if group_id is not None:
        query = query.where(Subscription.group_id == group_id)

    result = await session.execute(query.order_by(Subscription.end_date.asc()))
    return list(result.scalars().all())


# ==================== ADMIN OPERATIONS ====================

async def get_group_admins(session: AsyncSession) -> List[GroupAdmin]:
    """Get every privileged user entry"""
    result = await session.execute(
        select(GroupAdmin).order_by(GroupAdmin.group_id, GroupAdmin.user_id)
    )
    return list(result.scalars().all())


async def add_group_admin(
    session: AsyncSession,
    user_id: int,
    group_id: Optional[int],
    role: AdminRole = AdminRole.ADMIN,
    user_name: Optional[str] = None,
) -> GroupAdmin:
    """
    Grant a role, updating it if the user already has one in the group

    Single upsert: on (user_id, group_id) for a group, on the partial
    unique index over user_id for a global (NULL group) entry.
    """
    insert = _dialect_insert(session)
    stmt = insert(GroupAdmin).values(
        user_id=user_id,
        group_id=group_id,
        role=role,
        user_name=user_name,
        created_at=datetime.utcnow(),
    )
    if group_id is None:
        target = dict(index_elements=["user_id"], index_where=GroupAdmin.group_id.is_(None))
    else:
        target = dict(index_elements=["user_id", "group_id"])

    result = await session.execute(
        stmt.on_conflict_do_update(
            **target,
            set_={
                "role": stmt.excluded.role,
                "user_name": func.coalesce(stmt.excluded.user_name, GroupAdmin.user_name),
            },
        ).returning(GroupAdmin.id)
    )
    admin_id = result.scalar_one()
    return await session.get(GroupAdmin, admin_id, populate_existing=True)


async def remove_group_admin(
    session: AsyncSession,
    user_id: int,
    group_id: Optional[int],
) -> bool:
    """Revoke a role, returns False if there was nothing to revoke"""
    query = delete(GroupAdmin).where(GroupAdmin.user_id == user_id)
    if group_id is None:
        query = query.where(GroupAdmin.group_id.is_(None))
    else:
        query = query.where(GroupAdmin.group_id == group_id)

    result = await session.execute(query)
    return result.rowcount > 0
