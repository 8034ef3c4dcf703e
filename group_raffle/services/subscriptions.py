"""
Subscription store

Per-user per-group paid periods. Payments are registered by admins and
either extend the current period or start a new one.
"""

from dataclasses import dataclass
from datetime import date
from typing import Callable, List, Optional

from dateutil.relativedelta import relativedelta
from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from group_raffle.database import crud
from group_raffle.database.models import Subscription, SubscriptionStatus
from group_raffle.database.session import session_scope
from group_raffle.errors import InvalidArgument, NotFound


@dataclass(frozen=True)
class SubscriptionInfo:
    """Snapshot of a subscription with status derived from today's date"""
    user_id: int
    group_id: int
    user_name: Optional[str]
    start_date: date
    end_date: date
    amount_paid: float
    status: SubscriptionStatus
    days_remaining: int
    payment_method: str
    payment_reference: Optional[str]

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE


def effective_status(subscription: Subscription, today: date) -> SubscriptionStatus:
    """Status computed from dates, ignoring a stale stored "active" value"""
    if subscription.status == SubscriptionStatus.CANCELLED:
        return SubscriptionStatus.CANCELLED
    if subscription.end_date >= today:
        return SubscriptionStatus.ACTIVE
    return SubscriptionStatus.EXPIRED


def to_info(subscription: Subscription, today: date) -> SubscriptionInfo:
    return SubscriptionInfo(
        user_id=subscription.user_id,
        group_id=subscription.group_id,
        user_name=subscription.user_name,
        start_date=subscription.start_date,
        end_date=subscription.end_date,
        amount_paid=subscription.amount_paid,
        status=effective_status(subscription, today),
        days_remaining=(subscription.end_date - today).days,
        payment_method=subscription.payment_method,
        payment_reference=subscription.payment_reference,
    )


class SubscriptionService:
    """Registers payments and answers subscription queries"""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        today: Callable[[], date],
        period: relativedelta = relativedelta(months=1),
        payment_method: str = "PIX",
    ):
        """
        Initialize subscription service

        Args:
            session_factory: Async session factory
            today: Clock returning the current date in the bot timezone
            period: Length of one paid period
            payment_method: Payment method stored when none is given
        """
        self.session_factory = session_factory
        self.today = today
        self.period = period
        self.payment_method = payment_method

    async def register_payment(
        self,
        user_id: int,
        group_id: int,
        amount: float,
        payment_reference: Optional[str] = None,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        user_name: Optional[str] = None,
        group_name: Optional[str] = None,
        registered_by: Optional[int] = None,
        payment_method: Optional[str] = None,
    ) -> SubscriptionInfo:
        """
        Register a payment for a user in a group

        Automatic mode (no dates): a new or lapsed subscription starts
        today and lasts one period; a running one is extended by one
        period from its current end date. Manual mode (both dates)
        overwrites the period. Paid amounts always accumulate.

        Args:
            user_id: Subscriber Telegram ID
            group_id: Group Telegram chat ID
            amount: Paid amount, must be positive
            payment_reference: Receipt file ID or note
            start_date: Manual period start
            end_date: Manual period end

        Returns:
            Subscription snapshot after the payment

        Raises:
            InvalidArgument: Non-positive amount or inconsistent manual period
        """
        if amount <= 0:
            raise InvalidArgument(f"Payment amount must be positive, got {amount}")
        if (start_date is None) != (end_date is None):
            raise InvalidArgument("Manual period needs both start_date and end_date")
        if start_date is not None and end_date <= start_date:
            raise InvalidArgument("end_date must be after start_date")

        today = self.today()
        method = payment_method or self.payment_method

        async with session_scope(self.session_factory) as session:
            await crud.get_or_create_group(session, group_id, group_name)
            if start_date is None:
                new_start, new_end = today, today + self.period
            else:
                new_start, new_end = start_date, end_date

            created = await crud.insert_subscription_if_absent(
                session,
                user_id=user_id,
                group_id=group_id,
                start_date=new_start,
                end_date=new_end,
                amount_paid=amount,
                user_name=user_name,
                payment_reference=payment_reference,
                payment_method=method,
                registered_by=registered_by,
            )
            subscription = await crud.get_subscription(session, user_id, group_id, for_update=True)

            if created:
                logger.info(
                    f"Subscription created for user {user_id} in group {group_id} "
                    f"until {subscription.end_date}"
                )
                return to_info(subscription, today)

            if start_date is not None:
                subscription.start_date = start_date
                subscription.end_date = end_date
            elif effective_status(subscription, today) != SubscriptionStatus.ACTIVE:
                subscription.start_date = today
                subscription.end_date = today + self.period
            else:
                subscription.end_date = subscription.end_date + self.period

            subscription.amount_paid = (subscription.amount_paid or 0.0) + amount
            subscription.status = SubscriptionStatus.ACTIVE
            subscription.payment_reference = payment_reference or subscription.payment_reference
            subscription.payment_method = method
            subscription.registered_by = registered_by
            if user_name:
                subscription.user_name = user_name
            await session.flush()

            logger.info(
                f"Subscription of user {user_id} in group {group_id} "
                f"now ends {subscription.end_date} (total paid {subscription.amount_paid:.2f})"
            )
            return to_info(subscription, today)

    async def get_subscription(self, user_id: int, group_id: int) -> Optional[SubscriptionInfo]:
        """Get subscription snapshot, None if the user never subscribed"""
        async with session_scope(self.session_factory) as session:
            subscription = await crud.get_subscription(session, user_id, group_id)
            if subscription is None:
                return None
            return to_info(subscription, self.today())

    async def list_by_status(
        self,
        status: Optional[SubscriptionStatus] = None,
        group_id: Optional[int] = None,
    ) -> List[SubscriptionInfo]:
        """List subscriptions filtered by effective status"""
        today = self.today()
        async with session_scope(self.session_factory) as session:
            subscriptions = await crud.get_subscriptions(session, group_id)

        infos = [to_info(s, today) for s in subscriptions]
        if status is not None:
            infos = [info for info in infos if info.status == status]
        return infos

    async def cancel_subscription(self, user_id: int, group_id: int) -> SubscriptionInfo:
        """Cancel subscription, it stops granting eligibility immediately"""
        async with session_scope(self.session_factory) as session:
            subscription = await crud.get_subscription(session, user_id, group_id)
            if subscription is None:
                raise NotFound(f"No subscription for user {user_id} in group {group_id}")

            subscription.status = SubscriptionStatus.CANCELLED
            await session.flush()
            logger.info(f"Subscription of user {user_id} in group {group_id} cancelled")
            return to_info(subscription, self.today())

    async def set_requirement(
        self,
        group_id: int,
        required: bool,
        group_name: Optional[str] = None,
    ) -> bool:
        """Turn subscription gating of a group on or off"""
        async with session_scope(self.session_factory) as session:
            group = await crud.set_requires_subscription(session, group_id, required, group_name)
            logger.info(f"Group {group_id} requires_subscription={group.requires_subscription}")
            return group.requires_subscription
