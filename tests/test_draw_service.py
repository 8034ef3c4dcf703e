"""Tests for DrawService orchestration."""

import random
from datetime import timedelta

import pytest

from conftest import GROUP_ID, TODAY
from group_raffle.database.models import RaffleStatus
from group_raffle.errors import NoEligibleWinners, NotFound
from group_raffle.services.draw_engine import WeightedDrawEngine
from group_raffle.services.draw_service import DrawService, DrawStatus
from group_raffle.services.eligibility import EligibilityGate


async def open_raffle(registry, participation, num_winners, user_ids):
    raffle_id = await registry.create(GROUP_ID, num_winners, "Prêmio")
    for user_id in user_ids:
        await participation.join(raffle_id, user_id, f"user{user_id}")
    return raffle_id


async def test_draw_selects_and_records_winners(registry, participation, draw_service):
    raffle_id = await open_raffle(registry, participation, 2, [10, 11, 12])

    outcome = await draw_service.perform_draw(raffle_id)

    assert outcome.status == DrawStatus.COMPLETED
    assert outcome.pool_size == 3
    assert len({w.user_id for w in outcome.winners}) == 2
    assert await registry.get_status(raffle_id) == RaffleStatus.DRAWN

    recorded = [p for p in await registry.list_participants(raffle_id) if p.is_winner]
    assert [p.user_id for p in recorded] == [w.user_id for w in outcome.winners]
    assert [p.win_position for p in recorded] == [1, 2]


async def test_second_draw_never_redraws(registry, participation, draw_service):
    raffle_id = await open_raffle(registry, participation, 1, [10, 11])
    first = await draw_service.perform_draw(raffle_id)

    second = await draw_service.perform_draw(raffle_id)

    assert second.status == DrawStatus.ALREADY_CLOSED
    assert second.winners == []
    winners = [p.user_id for p in await registry.list_participants(raffle_id) if p.is_winner]
    assert winners == [first.winners[0].user_id]


async def test_empty_raffle_stays_open(registry, draw_service):
    raffle_id = await registry.create(GROUP_ID, 1, "Prêmio")

    with pytest.raises(NoEligibleWinners) as exc_info:
        await draw_service.perform_draw(raffle_id)

    assert exc_info.value.raffle_closed is False
    assert exc_info.value.raffle_id == raffle_id
    assert await registry.get_status(raffle_id) == RaffleStatus.OPEN


async def test_lapsed_participants_are_left_out(
    registry, participation, subscriptions, session_factory
):
    """A subscription that expired after joining removes the user from the pool."""
    await subscriptions.set_requirement(GROUP_ID, True)
    for user_id, days_left in [(10, 0), (11, 30)]:
        await subscriptions.register_payment(
            user_id, GROUP_ID, 3.0,
            start_date=TODAY - timedelta(days=30),
            end_date=TODAY + timedelta(days=days_left),
        )
    raffle_id = await open_raffle(registry, participation, 2, [10, 11])

    tomorrow_gate = EligibilityGate(session_factory, lambda: TODAY + timedelta(days=1))
    service = DrawService(
        session_factory, registry, tomorrow_gate, WeightedDrawEngine(random.Random(1))
    )

    outcome = await service.perform_draw(raffle_id)

    assert outcome.pool_size == 1
    assert [w.user_id for w in outcome.winners] == [11]


async def test_previous_winners_get_lower_weight(registry, participation, draw_service):
    first = await open_raffle(registry, participation, 1, [10])
    await draw_service.perform_draw(first)

    second = await open_raffle(registry, participation, 1, [10, 11])
    _, pool = await draw_service.eligible_pool(second)

    weights = {c.user_id: c.luck_modifier for c in pool}
    assert weights[11] == 1.0
    assert weights[10] == pytest.approx(1 / 1.5)


async def test_draw_unknown_raffle(draw_service):
    with pytest.raises(NotFound):
        await draw_service.perform_draw("raffle_missing")


async def test_cancelled_raffle_is_not_drawn(registry, participation, draw_service):
    raffle_id = await open_raffle(registry, participation, 1, [10])
    await registry.cancel(raffle_id)

    outcome = await draw_service.perform_draw(raffle_id)

    assert outcome.status == DrawStatus.ALREADY_CLOSED
    assert await registry.get_status(raffle_id) == RaffleStatus.CANCELLED
