import html

from aiogram import Router, F, Bot
from aiogram.exceptions import TelegramAPIError, TelegramBadRequest
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message
from loguru import logger

from group_raffle.config import Settings
from group_raffle.database.models import RaffleStatus
from group_raffle.errors import InvalidArgument, NoEligibleWinners, NotFound, RaffleError
from group_raffle.keyboards.inline import raffle_keyboard, raffle_status_keyboard
from group_raffle.services.authorization import AdminDirectory
from group_raffle.services.draw_service import DrawService, DrawStatus
from group_raffle.services.log_sink import LogSink
from group_raffle.services.notification import NotificationService
from group_raffle.services.participation import JoinStatus, ParticipationService
from group_raffle.services.raffle_registry import CancelResult, RaffleRegistry
from group_raffle.utils import format_user_link, local_now, with_participant_count

router = Router()

PARTICIPATION_LOG_EVERY = 10


def get_status_emoji(status: RaffleStatus) -> str:
    """Get emoji for raffle status"""
    emoji_map = {
        RaffleStatus.OPEN: "🟢",
        RaffleStatus.DRAWN: "🏆",
        RaffleStatus.CANCELLED: "❌",
    }
    return emoji_map.get(status, "❓")


def _callback_payload(data: str) -> str:
    """Part after the action prefix, raffle IDs contain underscores themselves"""
    return data.split("_", 1)[1]


async def _edit_caption(callback: CallbackQuery, caption: str, with_buttons: bool, raffle_id: str):
    try:
        await callback.message.edit_caption(
            caption=caption,
            reply_markup=raffle_keyboard(raffle_id) if with_buttons else None,
        )
    except TelegramBadRequest as e:
        if "message is not modified" in str(e):
            logger.debug(f"Caption of raffle {raffle_id} unchanged")
        else:
            logger.warning(f"Failed to edit caption of raffle {raffle_id}: {e}")


@router.message(Command("newraffle"), F.chat.type.in_({"group", "supergroup"}))
async def cmd_new_raffle(
    message: Message,
    command: CommandObject,
    bot: Bot,
    registry: RaffleRegistry,
    admins: AdminDirectory,
    log_sink: LogSink,
):
    """Handle /newraffle [winners] sent as a reply to the prize photo"""
    if not admins.is_privileged(message.from_user.id, message.chat.id):
        await message.reply("❌ Apenas administradores podem criar sorteios.")
        return

    photo_message = message.reply_to_message
    if not photo_message or not photo_message.photo:
        await message.reply(
            "❌ <b>Uso incorreto!</b>\n\n"
            "Responda a uma foto com a descrição do prêmio usando:\n"
            "<code>/newraffle [número de vencedores]</code>"
        )
        return

    try:
        num_winners = int(command.args.strip()) if command.args else 1
    except ValueError:
        await message.reply("❌ O número de vencedores deve ser um número inteiro.")
        return

    prize_caption = photo_message.html_text or ""

    try:
        raffle_id = await registry.create(
            group_id=message.chat.id,
            num_winners=num_winners,
            prize_description=photo_message.caption,
            group_name=message.chat.title,
            created_by=message.from_user.id,
        )
    except InvalidArgument:
        await message.reply("❌ O número de vencedores deve ser pelo menos 1.")
        return

    winners_line = "1 vencedor" if num_winners == 1 else f"{num_winners} vencedores"
    caption = f"{prize_caption}\n\n🏆 {winners_line}".strip()

    post = await message.answer_photo(
        photo=photo_message.photo[-1].file_id,
        caption=caption,
        reply_markup=raffle_keyboard(raffle_id),
    )

    try:
        await bot.pin_chat_message(message.chat.id, post.message_id, disable_notification=True)
    except TelegramAPIError as e:
        logger.warning(f"Could not pin raffle {raffle_id}: {e}")

    await log_sink.log_raffle(
        f"🎉 <b>Novo sorteio criado</b>\n\n"
        f"🎯 ID: <code>{raffle_id}</code>\n"
        f"🏆 Vencedores: {num_winners}\n"
        f"💬 Grupo: {html.escape(message.chat.title or 'Desconhecido')}\n"
        f"👮 Criado por: {format_user_link(message.from_user.id, message.from_user.full_name)}"
    )


@router.callback_query(F.data.startswith("join_"))
async def callback_join(
    callback: CallbackQuery,
    participation: ParticipationService,
    log_sink: LogSink,
):
    """Handle participation button"""
    raffle_id = _callback_payload(callback.data)
    user = callback.from_user

    try:
        result = await participation.join(raffle_id, user.id, user.first_name)
    except NotFound:
        await callback.answer("❌ Sorteio não encontrado.", show_alert=True)
        return
    except RaffleError as e:
        logger.error(f"Join failed for user {user.id}, raffle {raffle_id}: {e}")
        await callback.answer("❌ Erro ao processar participação. Tente novamente.", show_alert=True)
        return

    if result.status == JoinStatus.ALREADY_JOINED:
        await callback.answer("Você já está participando do sorteio.", show_alert=True)
        return
    if result.status == JoinStatus.RAFFLE_CLOSED:
        await callback.answer("Este sorteio já foi encerrado.", show_alert=True)
        return
    if result.status == JoinStatus.NOT_ELIGIBLE:
        await callback.answer(result.message, show_alert=True)
        return

    await callback.answer(f"{user.first_name} está participando do sorteio!", show_alert=True)

    caption = with_participant_count(callback.message.html_text, result.participant_count)
    await _edit_caption(callback, caption, with_buttons=True, raffle_id=raffle_id)

    if result.participant_count % PARTICIPATION_LOG_EVERY == 0:
        await log_sink.log_raffle(
            f"📊 <b>Milestone de participação</b>\n\n"
            f"🎯 Sorteio: <code>{raffle_id}</code>\n"
            f"👥 Total de participantes: {result.participant_count}\n"
            f"💬 Grupo: {html.escape(callback.message.chat.title or 'Desconhecido')}"
        )


@router.callback_query(F.data.startswith("draw_"))
async def callback_draw(
    callback: CallbackQuery,
    settings: Settings,
    admins: AdminDirectory,
    draw_service: DrawService,
    notifications: NotificationService,
    log_sink: LogSink,
):
    """Handle draw button (admins only)"""
    raffle_id = _callback_payload(callback.data)
    chat = callback.message.chat

    if not admins.is_privileged(callback.from_user.id, chat.id):
        await callback.answer("❌ Apenas administradores podem realizar o sorteio.", show_alert=True)
        return

    try:
        outcome = await draw_service.perform_draw(raffle_id)
    except NotFound:
        await callback.answer("❌ Sorteio não encontrado.", show_alert=True)
        return
    except NoEligibleWinners as e:
        if e.raffle_closed:
            await callback.answer("Não foi possível selecionar vencedores.", show_alert=True)
            await log_sink.log_error(
                f"⚠️ <b>Nenhum vencedor selecionado</b>\n\n"
                f"🎯 Sorteio: <code>{raffle_id}</code>\n"
                f"💬 Grupo: {html.escape(chat.title or 'Desconhecido')}\n"
                f"👮 Tentativa por: {html.escape(callback.from_user.full_name)}\n"
                f"O sorteio foi encerrado sem vencedores."
            )
        else:
            await callback.answer(
                "Não há participantes elegíveis no sorteio. Ele continua aberto.",
                show_alert=True,
            )
        return
    except RaffleError as e:
        logger.error(f"Draw failed for raffle {raffle_id}: {e}")
        await log_sink.log_error(
            f"❌ <b>Erro ao realizar sorteio</b>\n\n"
            f"🎯 Sorteio: <code>{raffle_id}</code>\n"
            f"🐛 Erro: {html.escape(str(e))}"
        )
        await callback.answer("Ocorreu um erro ao realizar o sorteio.", show_alert=True)
        return

    if outcome.status == DrawStatus.ALREADY_CLOSED:
        await callback.answer("Este sorteio já foi realizado ou cancelado.", show_alert=True)
        return

    performed_at = local_now(settings.NOTIFIER_TIMEZONE).strftime("%d/%m/%Y %H:%M")
    winner_links = "\n".join(format_user_link(w.user_id, w.name) for w in outcome.winners)
    winner_text = "O vencedor é" if len(outcome.winners) == 1 else "Os vencedores são"

    original_caption = callback.message.html_text or ""
    await _edit_caption(
        callback,
        f"{original_caption}\n\n{winner_text}:\n{winner_links}\n\nSorteio realizado em: {performed_at}",
        with_buttons=False,
        raffle_id=raffle_id,
    )
    await callback.answer("Sorteio finalizado!", show_alert=True)
    await callback.message.answer(f"Parabéns aos vencedores:\n{winner_links}")

    raffle_title = html.escape((outcome.raffle.prize_description or "Sorteio").split("\n")[0])
    await notifications.notify_winners(
        outcome.winners,
        raffle_title=raffle_title,
        group_name=html.escape(chat.title or "Grupo"),
        performed_at=performed_at,
    )

    winners_log = "\n".join(
        f"{position}º - {html.escape(w.name or str(w.user_id))} (<code>{w.user_id}</code>)"
        for position, w in enumerate(outcome.winners, 1)
    )
    await log_sink.log_raffle(
        f"🎊 <b>Sorteio finalizado</b>\n\n"
        f"🎯 ID: <code>{raffle_id}</code>\n"
        f"👥 Participantes elegíveis: {outcome.pool_size}\n"
        f"🏆 Vencedores: {len(outcome.winners)}\n"
        f"{winners_log}\n\n"
        f"💬 Grupo: {html.escape(chat.title or 'Desconhecido')}\n"
        f"👮 Sorteado por: {html.escape(callback.from_user.full_name)} (<code>{callback.from_user.id}</code>)\n"
        f"📅 Data: {performed_at}"
    )


@router.callback_query(F.data.startswith("cancel_"))
async def callback_cancel(
    callback: CallbackQuery,
    registry: RaffleRegistry,
    admins: AdminDirectory,
    log_sink: LogSink,
):
    """Handle cancel button (admins only)"""
    raffle_id = _callback_payload(callback.data)
    chat = callback.message.chat

    if not admins.is_privileged(callback.from_user.id, chat.id):
        await callback.answer("❌ Apenas administradores podem cancelar o sorteio.", show_alert=True)
        return

    try:
        result = await registry.cancel(raffle_id)
    except NotFound:
        await callback.answer("❌ Sorteio não encontrado.", show_alert=True)
        return

    if result == CancelResult.ALREADY_TERMINAL:
        status = await registry.get_status(raffle_id)
        if status == RaffleStatus.DRAWN:
            await callback.answer(
                "❌ Este sorteio já foi realizado e não pode ser cancelado.", show_alert=True
            )
        else:
            await callback.answer("⚠️ Este sorteio já está cancelado.", show_alert=True)
        return

    original_caption = callback.message.html_text or ""
    await _edit_caption(
        callback,
        f"{original_caption}\n\n❌ <b>SORTEIO CANCELADO</b>",
        with_buttons=False,
        raffle_id=raffle_id,
    )
    await callback.answer("✅ Sorteio cancelado com sucesso!", show_alert=True)

    await log_sink.log_raffle(
        f"🚫 <b>Sorteio cancelado</b>\n\n"
        f"🎯 ID: <code>{raffle_id}</code>\n"
        f"💬 Grupo: {html.escape(chat.title or 'Desconhecido')}\n"
        f"👮 Cancelado por: {html.escape(callback.from_user.full_name)}"
    )


@router.message(Command("raffles"))
async def cmd_raffles(message: Message, admins: AdminDirectory):
    """Handle /raffles command - pick a status to list"""
    if not admins.is_privileged(message.from_user.id, message.chat.id):
        await message.answer("❌ Apenas administradores podem listar sorteios.")
        return

    await message.answer(
        "📋 <b>Sorteios</b>\n\nEscolha o status:",
        reply_markup=raffle_status_keyboard(),
    )


@router.callback_query(F.data.startswith("raffles_"))
async def callback_raffles_by_status(
    callback: CallbackQuery,
    registry: RaffleRegistry,
    admins: AdminDirectory,
):
    """List raffles with the chosen status"""
    chat = callback.message.chat
    if not admins.is_privileged(callback.from_user.id, chat.id):
        await callback.answer("Acesso negado", show_alert=True)
        return

    status = RaffleStatus(_callback_payload(callback.data))
    group_id = chat.id if chat.type in ("group", "supergroup") else None
    raffles = await registry.list_by_status(status, group_id=group_id)

    if not raffles:
        text = f"{get_status_emoji(status)} Nenhum sorteio com status <b>{status.value}</b>."
    else:
        lines = [f"{get_status_emoji(status)} <b>Sorteios ({status.value})</b>\n"]
        for raffle in raffles:
            title = html.escape((raffle.prize_description or "Sorteio").split("\n")[0][:40])
            lines.append(
                f"• <code>{raffle.id}</code> - {title} "
                f"({raffle.participant_count} participantes, {raffle.num_winners} vencedor(es))"
            )
        text = "\n".join(lines)

    await callback.message.edit_text(text, reply_markup=raffle_status_keyboard())
    await callback.answer()


@router.message(Command("participants"))
async def cmd_participants(
    message: Message,
    command: CommandObject,
    registry: RaffleRegistry,
    admins: AdminDirectory,
):
    """Handle /participants <raffle_id> command"""
    if not admins.is_privileged(message.from_user.id, message.chat.id):
        await message.answer("❌ Apenas administradores podem ver participantes.")
        return

    if not command.args:
        await message.answer("Uso: <code>/participants ID_DO_SORTEIO</code>")
        return

    raffle_id = command.args.strip()
    try:
        raffle = await registry.get_raffle(raffle_id)
        participants = await registry.list_participants(raffle_id)
    except NotFound:
        await message.answer("❌ Sorteio não encontrado.")
        return

    if not participants:
        await message.answer(f"👥 O sorteio <code>{raffle_id}</code> ainda não tem participantes.")
        return

    lines = [
        f"👥 <b>Participantes de</b> <code>{raffle_id}</code>",
        f"{get_status_emoji(raffle.status)} Status: {raffle.status.value}\n",
    ]
    for participant in participants:
        prefix = f"🏆 {participant.win_position}º" if participant.is_winner else "•"
        lines.append(f"{prefix} {format_user_link(participant.user_id, participant.user_name)}")

    await message.answer("\n".join(lines))
