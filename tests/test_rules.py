"""Tests for delivery of the rules post."""

from aiogram.exceptions import TelegramBadRequest

from group_raffle.handlers.start import send_rules


class RulesBot:
    def __init__(self, fail=()):
        self.fail = set(fail)
        self.calls = []

    async def copy_message(self, chat_id, from_chat_id, message_id):
        return await self._call("copy", chat_id, from_chat_id, message_id)

    async def forward_message(self, chat_id, from_chat_id, message_id):
        return await self._call("forward", chat_id, from_chat_id, message_id)

    async def send_message(self, chat_id, text):
        return await self._call("send", chat_id, text)

    async def _call(self, name, *args):
        if name in self.fail:
            raise TelegramBadRequest(method=None, message="Bad Request: message to copy not found")
        self.calls.append((name, *args))


def rules_settings(settings, **values):
    return settings.model_copy(update=values)


async def test_rules_post_is_copied(settings):
    bot = RulesBot()
    configured = rules_settings(settings, RULES_CHANNEL="@CentralFortnite", RULES_MESSAGE_ID=49)

    assert await send_rules(bot, 10, configured) == "copied"
    assert bot.calls == [("copy", 10, "@CentralFortnite", 49)]


async def test_rules_fall_back_to_forward_then_link(settings):
    configured = rules_settings(
        settings,
        RULES_CHANNEL="@CentralFortnite",
        RULES_MESSAGE_ID=49,
        RULES_URL="https://t.me/CentralFortnite/49",
    )

    assert await send_rules(RulesBot(fail={"copy"}), 10, configured) == "forwarded"

    bot = RulesBot(fail={"copy", "forward"})
    assert await send_rules(bot, 10, configured) == "link"
    assert "https://t.me/CentralFortnite/49" in bot.calls[0][2]


async def test_rules_not_configured(settings):
    bot = RulesBot()

    assert await send_rules(bot, 10, settings) == "missing"
    assert bot.calls[0][0] == "send"
