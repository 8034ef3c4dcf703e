"""Tests for SubscriptionService payment registration and listings."""

from datetime import date, timedelta

import asyncio

import pytest

from conftest import GROUP_ID, TODAY
from group_raffle.database.models import SubscriptionStatus
from group_raffle.errors import InvalidArgument, NotFound
from group_raffle.services.subscriptions import SubscriptionService


async def test_first_payment_starts_today(subscriptions):
    info = await subscriptions.register_payment(10, GROUP_ID, 3.0, payment_reference="file-1")

    assert info.start_date == TODAY
    assert info.end_date == date(2025, 7, 10)
    assert info.amount_paid == 3.0
    assert info.status == SubscriptionStatus.ACTIVE
    assert info.payment_method == "PIX"


async def test_payment_extends_running_subscription(subscriptions):
    await subscriptions.register_payment(10, GROUP_ID, 3.0)

    info = await subscriptions.register_payment(10, GROUP_ID, 5.0)

    assert info.start_date == TODAY
    assert info.end_date == date(2025, 8, 10)
    assert info.amount_paid == 8.0


async def test_payment_after_lapse_restarts_period(session_factory, subscriptions):
    await subscriptions.register_payment(10, GROUP_ID, 3.0)
    later = SubscriptionService(session_factory, lambda: date(2025, 9, 1))

    info = await later.register_payment(10, GROUP_ID, 3.0)

    assert info.start_date == date(2025, 9, 1)
    assert info.end_date == date(2025, 10, 1)
    assert info.amount_paid == 6.0


async def test_month_arithmetic_clamps_to_month_end(session_factory):
    service = SubscriptionService(session_factory, lambda: date(2025, 1, 31))

    info = await service.register_payment(10, GROUP_ID, 3.0)

    assert info.end_date == date(2025, 2, 28)


async def test_manual_period_overwrites_dates(subscriptions):
    await subscriptions.register_payment(10, GROUP_ID, 3.0)

    info = await subscriptions.register_payment(
        10, GROUP_ID, 9.0, start_date=date(2025, 6, 1), end_date=date(2025, 9, 30)
    )

    assert (info.start_date, info.end_date) == (date(2025, 6, 1), date(2025, 9, 30))
    assert info.amount_paid == 12.0


@pytest.mark.parametrize(
    "kwargs",
    [
        {"amount": 0},
        {"amount": -3.0},
        {"amount": 3.0, "start_date": date(2025, 6, 1)},
        {"amount": 3.0, "start_date": date(2025, 6, 1), "end_date": date(2025, 6, 1)},
    ],
)
async def test_invalid_payments_are_rejected(subscriptions, kwargs):
    with pytest.raises(InvalidArgument):
        await subscriptions.register_payment(10, GROUP_ID, **kwargs)


async def test_get_subscription(subscriptions):
    assert await subscriptions.get_subscription(10, GROUP_ID) is None

    await subscriptions.register_payment(10, GROUP_ID, 3.0, user_name="Ana")
    info = await subscriptions.get_subscription(10, GROUP_ID)

    assert info.user_name == "Ana"
    assert info.days_remaining == 30


async def test_list_by_effective_status(subscriptions):
    await subscriptions.register_payment(10, GROUP_ID, 3.0)
    await subscriptions.register_payment(
        11, GROUP_ID, 3.0, start_date=TODAY - timedelta(days=40), end_date=TODAY - timedelta(days=10)
    )
    await subscriptions.register_payment(12, GROUP_ID, 3.0)
    await subscriptions.cancel_subscription(12, GROUP_ID)

    active = await subscriptions.list_by_status(SubscriptionStatus.ACTIVE)
    expired = await subscriptions.list_by_status(SubscriptionStatus.EXPIRED)
    cancelled = await subscriptions.list_by_status(SubscriptionStatus.CANCELLED, group_id=GROUP_ID)

    assert [i.user_id for i in active] == [10]
    assert [i.user_id for i in expired] == [11]
    assert [i.user_id for i in cancelled] == [12]
    assert len(await subscriptions.list_by_status()) == 3


async def test_cancel_unknown_subscription(subscriptions):
    with pytest.raises(NotFound):
        await subscriptions.cancel_subscription(10, GROUP_ID)


async def test_payment_reactivates_cancelled_subscription(subscriptions):
    await subscriptions.register_payment(10, GROUP_ID, 3.0)
    await subscriptions.cancel_subscription(10, GROUP_ID)

    info = await subscriptions.register_payment(10, GROUP_ID, 3.0)

    assert info.status == SubscriptionStatus.ACTIVE
    assert info.start_date == TODAY


async def test_concurrent_first_payments_accumulate(subscriptions):
    """Simultaneous first payments in a new group add up on one subscription."""
    new_group_id = -1002222222222

    results = await asyncio.gather(
        *(subscriptions.register_payment(55, new_group_id, 3.0) for _ in range(3))
    )

    assert len(results) == 3
    info = await subscriptions.get_subscription(55, new_group_id)
    assert info.amount_paid == 9.0
    assert info.start_date == TODAY
    assert info.end_date == date(2025, 9, 10)
    assert len(await subscriptions.list_by_status(group_id=new_group_id)) == 1
