"""Tests for EligibilityGate."""

from datetime import timedelta

import pytest

from conftest import GROUP_ID, TODAY
from group_raffle.services.eligibility import EligibilityGate, IneligibilityReason


async def register(subscriptions, user_id, end_offset):
    return await subscriptions.register_payment(
        user_id=user_id,
        group_id=GROUP_ID,
        amount=3.0,
        start_date=TODAY - timedelta(days=60),
        end_date=TODAY + timedelta(days=end_offset),
    )


async def test_unknown_group_admits_everyone(eligibility):
    decision = await eligibility.check_eligibility(10, -100999)
    assert decision.eligible
    assert decision.reason is None


@pytest.mark.parametrize("end_offset", [None, -30, 5])
async def test_group_without_requirement_always_eligible(eligibility, subscriptions, end_offset):
    """Subscription state is irrelevant while the group does not require one."""
    await subscriptions.set_requirement(GROUP_ID, False)
    if end_offset is not None:
        await register(subscriptions, 10, end_offset)

    decision = await eligibility.check_eligibility(10, GROUP_ID)

    assert decision.eligible


async def test_missing_subscription_is_required(eligibility, subscriptions):
    await subscriptions.set_requirement(GROUP_ID, True)

    decision = await eligibility.check_eligibility(10, GROUP_ID)

    assert not decision.eligible
    assert decision.reason == IneligibilityReason.SUBSCRIPTION_REQUIRED


async def test_active_subscription_reports_days_remaining(eligibility, subscriptions):
    await subscriptions.set_requirement(GROUP_ID, True)
    await register(subscriptions, 10, 5)

    decision = await eligibility.check_eligibility(10, GROUP_ID)

    assert decision.eligible
    assert decision.days_remaining == 5


async def test_last_day_is_still_eligible(eligibility, subscriptions):
    await subscriptions.set_requirement(GROUP_ID, True)
    await register(subscriptions, 10, 0)

    decision = await eligibility.check_eligibility(10, GROUP_ID)

    assert decision.eligible
    assert decision.days_remaining == 0


async def test_day_after_end_is_ineligible_despite_stored_active(
    session_factory, subscriptions
):
    """Stored status says active, dates say expired: dates win."""
    await subscriptions.set_requirement(GROUP_ID, True)
    info = await register(subscriptions, 10, 0)
    assert info.is_active

    next_day = EligibilityGate(session_factory, lambda: TODAY + timedelta(days=1))
    decision = await next_day.check_eligibility(10, GROUP_ID)

    assert not decision.eligible
    assert decision.reason == IneligibilityReason.SUBSCRIPTION_EXPIRED
    assert decision.days_remaining == -1


async def test_cancelled_subscription_is_ineligible(eligibility, subscriptions):
    await subscriptions.set_requirement(GROUP_ID, True)
    await register(subscriptions, 10, 15)
    await subscriptions.cancel_subscription(10, GROUP_ID)

    decision = await eligibility.check_eligibility(10, GROUP_ID)

    assert not decision.eligible
    assert decision.reason == IneligibilityReason.SUBSCRIPTION_CANCELLED
