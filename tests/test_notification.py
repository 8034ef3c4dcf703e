"""Tests for NotificationService."""

from aiogram.exceptions import TelegramForbiddenError

from group_raffle.services.draw_engine import DrawCandidate
from group_raffle.services.notification import NotificationService


class FakeBot:
    def __init__(self, blocked=()):
        self.blocked = set(blocked)
        self.sent = []

    async def send_message(self, chat_id, text, **kwargs):
        if chat_id in self.blocked:
            raise TelegramForbiddenError(method=None, message="Forbidden: bot was blocked by the user")
        self.sent.append((chat_id, text))


async def test_blocked_user_is_reported_not_raised():
    service = NotificationService(FakeBot(blocked={10}))

    assert await service.send_direct_message(10, "oi") is False
    assert await service.send_direct_message(11, "oi") is True


async def test_winners_are_told_their_position():
    bot = FakeBot(blocked={11})
    service = NotificationService(bot, batch_size=2, batch_pause=0)
    winners = [DrawCandidate(user_id=uid, name=f"user{uid}") for uid in (10, 11, 12)]

    reached = await service.notify_winners(winners, "Kit", "Clubinho", "10/06/2025 12:00")

    assert reached == 2
    assert [chat_id for chat_id, _ in bot.sent] == [10, 12]
    assert "1º lugar" in bot.sent[0][1]
    assert "3º lugar" in bot.sent[1][1]
