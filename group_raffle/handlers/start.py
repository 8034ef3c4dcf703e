import html

from aiogram import Bot, Router
from aiogram.exceptions import TelegramAPIError
from aiogram.filters import Command, CommandStart
from aiogram.types import Message
from loguru import logger

from group_raffle.config import Settings

router = Router()

HELP_TEXT = (
    "<b>❓ Ajuda</b>\n\n"
    "<b>Para participantes:</b>\n"
    "/start - Boas-vindas\n"
    "/subscription - Status da sua assinatura (privado)\n"
    "/pix - Como pagar a assinatura (privado)\n"
    "/regulamento - Regulamento dos sorteios (privado)\n"
    "/help - Esta ajuda\n\n"
    "<b>Para administradores:</b>\n"
    "/newraffle [vencedores] - Responda a uma foto para criar um sorteio\n"
    "/raffles - Listar sorteios por status\n"
    "/participants ID - Participantes de um sorteio\n"
    "/sub [inicio#fim#valor] - Registrar pagamento (responda ao comprovante)\n"
    "/cancelsub ID - Cancelar assinatura\n"
    "/subscriptions - Listar assinaturas\n"
    "/requiresub on|off - Exigir assinatura no grupo\n"
    "/newadmin, /removeadmin, /admins - Gerenciar administradores\n"
    "/log tipo - Configurar tópicos de log\n\n"
    "Boa sorte! 🍀"
)


@router.message(CommandStart())
async def cmd_start(message: Message):
    """Handle /start command"""
    await message.answer(
        f"Olá, {message.from_user.first_name}! 👋\n\n"
        "Eu organizo os sorteios do grupo.\n\n"
        "🎁 <b>Como funciona:</b>\n"
        "1. Um administrador publica o sorteio no grupo\n"
        "2. Você toca em <b>Participar do sorteio</b>\n"
        "3. Na hora do sorteio, os vencedores são escolhidos aleatoriamente\n"
        "4. Vencedores recebem uma mensagem aqui no privado\n\n"
        "Use /help para ver todos os comandos."
    )


@router.message(Command("help"))
async def cmd_help(message: Message):
    """Handle /help command"""
    await message.answer(HELP_TEXT)


async def send_rules(bot: Bot, chat_id: int, settings: Settings) -> str:
    """
    Deliver the rules post to a chat

    Copies the post from the rules channel, forwards it if copying is
    not allowed, and falls back to a link.

    Returns:
        "copied", "forwarded", "link" or "missing" when nothing is configured
    """
    if settings.RULES_CHANNEL and settings.RULES_MESSAGE_ID:
        try:
            await bot.copy_message(chat_id, settings.RULES_CHANNEL, settings.RULES_MESSAGE_ID)
            return "copied"
        except TelegramAPIError as e:
            logger.warning(f"Could not copy rules post: {e}")

        try:
            await bot.forward_message(chat_id, settings.RULES_CHANNEL, settings.RULES_MESSAGE_ID)
            return "forwarded"
        except TelegramAPIError as e:
            logger.warning(f"Could not forward rules post: {e}")

    if settings.RULES_URL:
        await bot.send_message(
            chat_id,
            f"📋 <b>Regulamento</b>\n\n"
            f"Para ver o regulamento completo, acesse:\n"
            f"🔗 {html.escape(settings.RULES_URL)}",
        )
        return "link"

    await bot.send_message(chat_id, "📋 O regulamento ainda não foi configurado.")
    return "missing"


@router.message(Command("regulamento", "rules"))
async def cmd_rules(message: Message, bot: Bot, settings: Settings):
    """Handle /regulamento command"""
    if message.chat.type != "private":
        await message.reply("📋 Use /regulamento no privado para receber o regulamento completo!")
        return

    delivered = await send_rules(bot, message.chat.id, settings)
    logger.info(f"Rules sent to {message.from_user.id} ({delivered})")
