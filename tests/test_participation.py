"""Tests for ParticipationService join flow."""

import asyncio
from datetime import timedelta

import pytest

from conftest import GROUP_ID, TODAY
from group_raffle.database.models import RaffleStatus
from group_raffle.errors import NotFound
from group_raffle.services.eligibility import IneligibilityReason
from group_raffle.services.participation import JoinStatus


async def subscribe(subscriptions, user_id, days_left, group_id=GROUP_ID):
    await subscriptions.register_payment(
        user_id=user_id,
        group_id=group_id,
        amount=3.0,
        start_date=TODAY - timedelta(days=30),
        end_date=TODAY + timedelta(days=days_left),
        user_name=f"user{user_id}",
    )


async def test_join_open_raffle_is_accepted(registry, participation):
    raffle_id = await registry.create(GROUP_ID, 1, "Prêmio")

    result = await participation.join(raffle_id, 10, "Ana")

    assert result.status == JoinStatus.ACCEPTED
    assert result.accepted
    assert result.participant_count == 1


async def test_join_twice_is_already_joined(registry, participation):
    raffle_id = await registry.create(GROUP_ID, 1, "Prêmio")

    await participation.join(raffle_id, 10, "Ana")
    second = await participation.join(raffle_id, 10, "Ana")

    assert second.status == JoinStatus.ALREADY_JOINED
    assert (await registry.get_raffle(raffle_id)).participant_count == 1


async def test_concurrent_double_join_creates_one_record(registry, participation):
    raffle_id = await registry.create(GROUP_ID, 1, "Prêmio")

    results = await asyncio.gather(
        participation.join(raffle_id, 10, "Ana"),
        participation.join(raffle_id, 10, "Ana"),
    )

    statuses = sorted(r.status.value for r in results)
    assert statuses == [JoinStatus.ACCEPTED.value, JoinStatus.ALREADY_JOINED.value]
    assert len(await registry.list_participants(raffle_id)) == 1
    assert (await registry.get_raffle(raffle_id)).participant_count == 1


async def test_concurrent_joins_count_every_user(registry, participation):
    raffle_id = await registry.create(GROUP_ID, 1, "Prêmio")

    results = await asyncio.gather(
        *(participation.join(raffle_id, user_id, f"user{user_id}") for user_id in range(100, 110))
    )

    assert all(r.status == JoinStatus.ACCEPTED for r in results)
    assert sorted(r.participant_count for r in results) == list(range(1, 11))
    assert (await registry.get_raffle(raffle_id)).participant_count == 10


async def test_join_closed_raffle(registry, participation):
    raffle_id = await registry.create(GROUP_ID, 1, "Prêmio")
    await registry.cancel(raffle_id)

    result = await participation.join(raffle_id, 10, "Ana")

    assert result.status == JoinStatus.RAFFLE_CLOSED
    assert await registry.list_participants(raffle_id) == []


async def test_join_unknown_raffle(participation):
    with pytest.raises(NotFound):
        await participation.join("raffle_missing", 10, "Ana")


async def test_not_eligible_join_has_no_side_effects(registry, participation, subscriptions):
    await subscriptions.set_requirement(GROUP_ID, True)
    raffle_id = await registry.create(GROUP_ID, 1, "Prêmio")

    result = await participation.join(raffle_id, 10, "Ana")

    assert result.status == JoinStatus.NOT_ELIGIBLE
    assert result.reason == IneligibilityReason.SUBSCRIPTION_REQUIRED
    assert result.message
    assert await registry.list_participants(raffle_id) == []
    assert (await registry.get_raffle(raffle_id)).participant_count == 0


async def test_subscription_gated_scenario(registry, participation, subscriptions):
    """Raffle R1 with two winners in a group that requires a subscription."""
    a, b, c, d = 1001, 1002, 1003, 1004
    await subscriptions.set_requirement(GROUP_ID, True)
    await subscribe(subscriptions, a, days_left=5)
    await subscribe(subscriptions, c, days_left=20)
    await subscribe(subscriptions, d, days_left=20)
    raffle_id = await registry.create(GROUP_ID, 2, "Prêmio", raffle_id="R1")

    assert (await participation.join(raffle_id, b, "B")).status == JoinStatus.NOT_ELIGIBLE
    for user_id in (a, c, d):
        assert (await participation.join(raffle_id, user_id, str(user_id))).accepted

    assert (await registry.get_raffle(raffle_id)).participant_count == 3
    assert {p.user_id for p in await registry.list_participants(raffle_id)} == {a, c, d}


async def test_raffle_closed_while_joining(registry, participation, eligibility, monkeypatch):
    """A close that lands between the status read and the insert wins."""
    raffle_id = await registry.create(GROUP_ID, 1)
    check = eligibility.check_in_session

    async def close_first(session, user_id, group_id):
        await registry.try_close(raffle_id)
        return await check(session, user_id, group_id)

    monkeypatch.setattr(eligibility, "check_in_session", close_first)

    result = await participation.join(raffle_id, 10, "Ana")

    assert result.status == JoinStatus.RAFFLE_CLOSED
    info = await registry.get_raffle(raffle_id)
    assert info.status == RaffleStatus.DRAWN
    assert info.participant_count == 0
    assert await registry.list_participants(raffle_id) == []
