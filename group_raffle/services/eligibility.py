"""
Eligibility gate

Decides whether a user can take part in raffles of a group. Groups that
do not require a subscription admit everyone.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Callable, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from group_raffle.database import crud
from group_raffle.database.models import Group, Subscription, SubscriptionStatus
from group_raffle.database.session import session_scope
from group_raffle.services.subscriptions import effective_status
from group_raffle.utils import format_date


class IneligibilityReason(str, Enum):
    SUBSCRIPTION_REQUIRED = "subscription_required"
    SUBSCRIPTION_EXPIRED = "subscription_expired"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled"


@dataclass(frozen=True)
class EligibilityDecision:
    eligible: bool
    days_remaining: Optional[int] = None
    reason: Optional[IneligibilityReason] = None
    message: str = ""


def evaluate(
    group: Optional[Group],
    subscription: Optional[Subscription],
    today: date,
) -> EligibilityDecision:
    """
    Compute eligibility from group settings and subscription dates

    Args:
        group: Group record, None for a group the bot has not seen yet
        subscription: Subscription of the user in the group, if any
        today: Current date in the bot timezone

    Returns:
        Eligibility decision with a user facing message
    """
    if group is None or not group.requires_subscription:
        return EligibilityDecision(eligible=True)

    if subscription is None:
        return EligibilityDecision(
            eligible=False,
            reason=IneligibilityReason.SUBSCRIPTION_REQUIRED,
            message=(
                "❌ Assinatura necessária para participar dos sorteios deste grupo.\n"
                "Use /pix no privado do bot para ver como assinar."
            ),
        )

    status = effective_status(subscription, today)
    days_remaining = (subscription.end_date - today).days

    if status == SubscriptionStatus.CANCELLED:
        return EligibilityDecision(
            eligible=False,
            days_remaining=days_remaining,
            reason=IneligibilityReason.SUBSCRIPTION_CANCELLED,
            message="❌ Sua assinatura foi cancelada. Fale com um administrador.",
        )

    if status == SubscriptionStatus.EXPIRED:
        return EligibilityDecision(
            eligible=False,
            days_remaining=days_remaining,
            reason=IneligibilityReason.SUBSCRIPTION_EXPIRED,
            message=(
                f"❌ Assinatura vencida em {format_date(subscription.end_date)}.\n"
                "Renove para voltar a participar dos sorteios."
            ),
        )

    return EligibilityDecision(eligible=True, days_remaining=days_remaining)


class EligibilityGate:
    """Answers "can user U participate in group G" """

    def __init__(self, session_factory: async_sessionmaker, today: Callable[[], date]):
        self.session_factory = session_factory
        self.today = today

    async def check_eligibility(self, user_id: int, group_id: int) -> EligibilityDecision:
        """Check eligibility in a session of its own"""
        async with session_scope(self.session_factory) as session:
            return await self.check_in_session(session, user_id, group_id)

    async def check_in_session(
        self,
        session: AsyncSession,
        user_id: int,
        group_id: int,
    ) -> EligibilityDecision:
        """Check eligibility inside a caller's transaction"""
        group = await crud.get_group(session, group_id)
        if group is None or not group.requires_subscription:
            return evaluate(group, None, self.today())

        subscription = await crud.get_subscription(session, user_id, group_id)
        return evaluate(group, subscription, self.today())
