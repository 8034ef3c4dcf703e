"""
Log sink

Sends summary records to topics of a Telegram log group (forum). The
routing is an immutable object read from a JSON file; it only changes
through ``configure_topic`` or ``reload``.
"""

from enum import Enum
from pathlib import Path
from typing import Dict, Optional

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError


class LogTopic(str, Enum):
    SETTINGS = "settings"
    BASIC = "basic"
    RAFFLE = "raffle"
    SUBSCRIPTION = "subscription"
    ADMIN = "admin"
    ERROR = "error"


TOPIC_DESCRIPTIONS = {
    LogTopic.SETTINGS: "Alterações de configurações",
    LogTopic.BASIC: "Ações básicas (registro, etc)",
    LogTopic.RAFFLE: "Sorteios e participações",
    LogTopic.SUBSCRIPTION: "Assinaturas",
    LogTopic.ADMIN: "Ações administrativas",
    LogTopic.ERROR: "Erros do sistema",
}


class LogRouting(BaseModel):
    """Log group and forum thread per topic"""
    model_config = ConfigDict(frozen=True)

    log_group_id: Optional[int] = None
    topics: Dict[LogTopic, Optional[int]] = Field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> "LogRouting":
        """Read routing from JSON, an empty routing when the file is missing"""
        if not path.exists():
            return cls()
        return cls.model_validate_json(path.read_text(encoding="utf-8"))

    def save(self, path: Path):
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(self.model_dump_json(indent=2), encoding="utf-8")

    def with_topic(self, topic: LogTopic, log_group_id: int, thread_id: int) -> "LogRouting":
        """
        Copy of the routing with one topic pointing to a thread

        Thread IDs only make sense inside their own group, so moving to
        another log group forgets the other topics.
        """
        topics = dict(self.topics) if log_group_id == self.log_group_id else {}
        topics[topic] = thread_id
        return LogRouting(log_group_id=log_group_id, topics=topics)

    def target(self, topic: LogTopic) -> Optional[tuple]:
        """(chat_id, thread_id) for the topic, None if not configured"""
        thread_id = self.topics.get(topic)
        if self.log_group_id is None or thread_id is None:
            return None
        return self.log_group_id, thread_id

    @property
    def configured(self) -> bool:
        return self.log_group_id is not None and any(
            thread_id is not None for thread_id in self.topics.values()
        )


class LogSink:
    """Forwards structured records to the configured log topics"""

    def __init__(self, bot: Optional[Bot], routing_file: str, routing: Optional[LogRouting] = None):
        """
        Initialize log sink

        Args:
            bot: Bot used to post records, None keeps records local
            routing_file: JSON file holding the routing
            routing: Preloaded routing, read from routing_file if omitted
        """
        self.bot = bot
        self.routing_file = Path(routing_file)
        self._routing = routing if routing is not None else self._read_routing()

    @property
    def routing(self) -> LogRouting:
        return self._routing

    def _read_routing(self) -> LogRouting:
        try:
            return LogRouting.load(self.routing_file)
        except (OSError, ValidationError) as e:
            logger.error(f"Could not read log routing from {self.routing_file}: {e}")
            return LogRouting()

    def reload(self) -> LogRouting:
        """Replace routing with the current content of the routing file"""
        self._routing = self._read_routing()
        logger.info(f"Log routing reloaded from {self.routing_file}")
        return self._routing

    def configure_topic(self, topic: LogTopic, log_group_id: int, thread_id: int) -> LogRouting:
        """Point a topic to a forum thread and persist the new routing"""
        routing = self._routing.with_topic(topic, log_group_id, thread_id)
        routing.save(self.routing_file)
        self._routing = routing
        logger.info(f"Log topic '{topic.value}' routed to {log_group_id}/{thread_id}")
        return routing

    async def log(self, topic: LogTopic, text: str) -> bool:
        """
        Send record to a topic

        Records for unconfigured topics are written to the local log
        only. Delivery failures are logged, never raised.

        Returns:
            True if the record reached the log group
        """
        logger.info(f"[{topic.value}] {text}")

        target = self._routing.target(topic)
        if target is None or self.bot is None:
            return False

        chat_id, thread_id = target
        try:
            await self.bot.send_message(
                chat_id=chat_id,
                text=text,
                message_thread_id=thread_id,
            )
            return True
        except TelegramAPIError as e:
            logger.warning(f"Failed to send '{topic.value}' log record: {e}")
            if topic != LogTopic.ERROR:
                await self.log(
                    LogTopic.ERROR,
                    f"❌ Falha ao enviar log do tópico <b>{topic.value}</b>: {e}",
                )
            return False

    async def log_raffle(self, text: str) -> bool:
        return await self.log(LogTopic.RAFFLE, text)

    async def log_subscription(self, text: str) -> bool:
        return await self.log(LogTopic.SUBSCRIPTION, text)

    async def log_admin(self, text: str) -> bool:
        return await self.log(LogTopic.ADMIN, text)

    async def log_error(self, text: str) -> bool:
        return await self.log(LogTopic.ERROR, text)
