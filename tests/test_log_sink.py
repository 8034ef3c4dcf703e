"""Tests for LogSink and LogRouting."""

import json

import pytest
from aiogram.exceptions import TelegramBadRequest

from group_raffle.services.log_sink import LogRouting, LogSink, LogTopic

LOG_GROUP_ID = -1002000000001


class RecordingBot:
    """Bot double for send_message, optionally failing for one thread."""

    def __init__(self, failing_thread=None):
        self.failing_thread = failing_thread
        self.messages = []

    async def send_message(self, chat_id, text, message_thread_id=None, **kwargs):
        if message_thread_id == self.failing_thread:
            raise TelegramBadRequest(method=None, message="Bad Request: message thread not found")
        self.messages.append((chat_id, message_thread_id, text))


@pytest.fixture
def routing_file(tmp_path):
    return tmp_path / "log_routing.json"


async def test_unconfigured_topic_stays_local(routing_file):
    bot = RecordingBot()
    sink = LogSink(bot, str(routing_file))

    assert await sink.log_raffle("🎲 Sorteio criado") is False
    assert bot.messages == []
    assert not sink.routing.configured


async def test_configured_topic_reaches_thread(routing_file):
    bot = RecordingBot()
    sink = LogSink(bot, str(routing_file))
    sink.configure_topic(LogTopic.RAFFLE, LOG_GROUP_ID, 7)

    assert await sink.log_raffle("🎲 Sorteio criado") is True
    assert await sink.log_subscription("💳 Pagamento") is False
    assert bot.messages == [(LOG_GROUP_ID, 7, "🎲 Sorteio criado")]


async def test_without_bot_nothing_is_sent(routing_file):
    sink = LogSink(None, str(routing_file))
    sink.configure_topic(LogTopic.ERROR, LOG_GROUP_ID, 3)

    assert await sink.log_error("boom") is False


def test_configure_topic_persists_routing(routing_file):
    sink = LogSink(None, str(routing_file))
    sink.configure_topic(LogTopic.RAFFLE, LOG_GROUP_ID, 7)
    sink.configure_topic(LogTopic.ADMIN, LOG_GROUP_ID, 9)

    data = json.loads(routing_file.read_text(encoding="utf-8"))
    assert data["log_group_id"] == LOG_GROUP_ID
    assert data["topics"] == {"raffle": 7, "admin": 9}

    reopened = LogSink(None, str(routing_file))
    assert reopened.routing == sink.routing
    assert reopened.routing.target(LogTopic.ADMIN) == (LOG_GROUP_ID, 9)


def test_routing_is_replaced_not_mutated(routing_file):
    sink = LogSink(None, str(routing_file))
    before = sink.routing

    sink.configure_topic(LogTopic.BASIC, LOG_GROUP_ID, 2)

    assert before.target(LogTopic.BASIC) is None
    assert sink.routing.target(LogTopic.BASIC) == (LOG_GROUP_ID, 2)


def test_reload_picks_up_file_changes(routing_file):
    sink = LogSink(None, str(routing_file))
    LogRouting(log_group_id=LOG_GROUP_ID, topics={LogTopic.SETTINGS: 5}).save(routing_file)

    assert sink.routing.target(LogTopic.SETTINGS) is None
    sink.reload()
    assert sink.routing.target(LogTopic.SETTINGS) == (LOG_GROUP_ID, 5)


def test_unreadable_routing_falls_back_to_empty(routing_file):
    routing_file.write_text("{not json", encoding="utf-8")

    sink = LogSink(None, str(routing_file))

    assert sink.routing == LogRouting()


async def test_delivery_failure_is_reported_to_error_topic(routing_file):
    bot = RecordingBot(failing_thread=7)
    sink = LogSink(bot, str(routing_file))
    sink.configure_topic(LogTopic.RAFFLE, LOG_GROUP_ID, 7)
    sink.configure_topic(LogTopic.ERROR, LOG_GROUP_ID, 8)

    assert await sink.log_raffle("🎲 Sorteio criado") is False

    assert len(bot.messages) == 1
    chat_id, thread_id, text = bot.messages[0]
    assert (chat_id, thread_id) == (LOG_GROUP_ID, 8)
    assert "raffle" in text


async def test_failing_error_topic_does_not_recurse(routing_file):
    bot = RecordingBot(failing_thread=8)
    sink = LogSink(bot, str(routing_file))
    sink.configure_topic(LogTopic.ERROR, LOG_GROUP_ID, 8)

    assert await sink.log_error("boom") is False
    assert bot.messages == []


def test_moving_to_another_log_group_forgets_old_threads(routing_file):
    sink = LogSink(None, str(routing_file))
    sink.configure_topic(LogTopic.RAFFLE, LOG_GROUP_ID, 7)
    sink.configure_topic(LogTopic.ADMIN, LOG_GROUP_ID, 9)

    sink.configure_topic(LogTopic.ERROR, -1002000000002, 4)

    assert sink.routing.target(LogTopic.ERROR) == (-1002000000002, 4)
    assert sink.routing.target(LogTopic.RAFFLE) is None
    assert sink.routing.target(LogTopic.ADMIN) is None
