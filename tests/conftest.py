"""Pytest configuration and fixtures."""

import random
from datetime import date

import pytest

from group_raffle.config import Settings
from group_raffle.database import create_engine, create_session_factory, init_database
from group_raffle.services.draw_engine import WeightedDrawEngine
from group_raffle.services.draw_service import DrawService
from group_raffle.services.eligibility import EligibilityGate
from group_raffle.services.participation import ParticipationService
from group_raffle.services.raffle_registry import RaffleRegistry
from group_raffle.services.subscriptions import SubscriptionService

TODAY = date(2025, 6, 10)
GROUP_ID = -1001801600131


@pytest.fixture
def settings(tmp_path):
    """Settings pointing to a throwaway SQLite database."""
    return Settings.load(
        _env_file=None,
        TELEGRAM_BOT_TOKEN="123456:TEST",
        ADMIN_USER_IDS="1,2",
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'test.db'}",
        LOG_ROUTING_FILE=str(tmp_path / "log_routing.json"),
        DEFAULT_SUBSCRIPTION_GROUP_ID=GROUP_ID,
    )


@pytest.fixture
async def engine(settings):
    """Engine with all tables created."""
    engine = create_engine(settings)
    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return create_session_factory(engine)


@pytest.fixture
def today():
    return lambda: TODAY


@pytest.fixture
def eligibility(session_factory, today):
    return EligibilityGate(session_factory, today)


@pytest.fixture
def registry(session_factory):
    return RaffleRegistry(session_factory)


@pytest.fixture
def participation(session_factory, eligibility):
    return ParticipationService(session_factory, eligibility)


@pytest.fixture
def subscriptions(session_factory, today):
    return SubscriptionService(session_factory, today)


@pytest.fixture
def draw_service(session_factory, registry, eligibility):
    return DrawService(
        session_factory,
        registry,
        eligibility,
        WeightedDrawEngine(random.Random(42)),
        luck_win_penalty=0.5,
    )


class FakeDelivery:
    """Delivery double recording messages, failing for chosen users."""

    def __init__(self, unreachable=()):
        self.unreachable = set(unreachable)
        self.sent = []

    async def send_direct_message(self, user_id, text):
        if user_id in self.unreachable:
            return False
        self.sent.append((user_id, text))
        return True


class FakeLogSink:
    """Log sink double keeping records in memory."""

    def __init__(self):
        self.records = []

    async def log(self, topic, text):
        self.records.append((topic, text))
        return True

    async def log_subscription(self, text):
        return await self.log("subscription", text)

    async def log_error(self, text):
        return await self.log("error", text)

    async def log_raffle(self, text):
        return await self.log("raffle", text)


@pytest.fixture
def delivery():
    return FakeDelivery()


@pytest.fixture
def log_sink():
    return FakeLogSink()
