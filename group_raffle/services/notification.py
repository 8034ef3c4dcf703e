import asyncio
from typing import Optional, Sequence

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError
from loguru import logger

from group_raffle.services.draw_engine import DrawCandidate


def build_winner_message(position: int, raffle_title: str, group_name: str, performed_at: str) -> str:
    """Private congratulation text for one winner"""
    return (
        f"🎉 <b>Parabéns! Você ganhou um sorteio!</b>\n\n"
        f"🏆 <b>Posição:</b> {position}º lugar\n"
        f"📝 <b>Sorteio:</b> {raffle_title}\n"
        f"💬 <b>Grupo:</b> {group_name}\n"
        f"📅 <b>Data:</b> {performed_at}\n\n"
        f"✨ Entre em contato com os administradores para resgatar seu prêmio!"
    )


class NotificationService:
    """Direct messages to users, the delivery side of the bot"""

    def __init__(self, bot: Bot, batch_size: int = 30, batch_pause: float = 1.0):
        """
        Initialize notification service

        Args:
            bot: Aiogram Bot instance
            batch_size: Messages sent concurrently (Telegram allows ~30/s)
            batch_pause: Seconds to wait between two batches
        """
        self.bot = bot
        self.batch_size = batch_size
        self.batch_pause = batch_pause

    async def send_direct_message(self, user_id: int, text: str, **kwargs) -> bool:
        """
        Send a private message

        Users who never started the bot or blocked it cannot be reached.
        That is reported as False, never raised.
        """
        try:
            await self.bot.send_message(chat_id=user_id, text=text, **kwargs)
            return True
        except TelegramAPIError as e:
            logger.warning(f"Failed to send message to {user_id}: {e}")
            return False

    async def notify_winners(
        self,
        winners: Sequence[DrawCandidate],
        raffle_title: str,
        group_name: str,
        performed_at: Optional[str] = None,
    ) -> int:
        """
        Congratulate each winner in private

        Args:
            winners: Winners in draw order, position 1 first
            raffle_title: Escaped first line of the prize description
            group_name: Escaped group title
            performed_at: Formatted draw time

        Returns:
            Number of winners reached
        """
        messages = [
            (winner.user_id, build_winner_message(position, raffle_title, group_name, performed_at or "-"))
            for position, winner in enumerate(winners, 1)
        ]

        reached = 0
        for start in range(0, len(messages), self.batch_size):
            if start:
                await asyncio.sleep(self.batch_pause)
            batch = messages[start:start + self.batch_size]
            results = await asyncio.gather(
                *(self.send_direct_message(user_id, text) for user_id, text in batch)
            )
            reached += sum(results)

        if reached < len(messages):
            logger.info(f"{len(messages) - reached} winner(s) could not be notified in private")
        return reached
