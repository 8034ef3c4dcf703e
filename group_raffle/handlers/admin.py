import html

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import Message
from loguru import logger

from group_raffle.database.models import AdminRole
from group_raffle.services.authorization import AdminDirectory
from group_raffle.services.log_sink import LogSink, LogTopic, TOPIC_DESCRIPTIONS
from group_raffle.utils import format_user_link

router = Router()


def _topics_help() -> str:
    return "\n".join(
        f"• <code>{topic.value}</code> - {description}"
        for topic, description in TOPIC_DESCRIPTIONS.items()
    )


@router.message(Command("log"), F.chat.type.in_({"group", "supergroup"}))
async def cmd_log(
    message: Message,
    command: CommandObject,
    admins: AdminDirectory,
    log_sink: LogSink,
):
    """Handle /log <topic> sent inside a forum topic of the log group"""
    if not admins.is_owner(message.from_user.id, message.chat.id):
        await message.reply("❌ Apenas o owner pode configurar logs!")
        return

    thread_id = message.message_thread_id if message.is_topic_message else None
    if not thread_id:
        await message.reply(
            "❌ Este comando deve ser usado dentro de um tópico!\n\n"
            "📋 <b>Como configurar:</b>\n"
            "1. Crie tópicos no grupo de logs\n"
            "2. Entre em cada tópico\n"
            "3. Use /log &lt;tipo&gt;\n\n"
            f"<b>Tipos disponíveis:</b>\n{_topics_help()}"
        )
        return

    if not command.args:
        routing = log_sink.routing
        lines = ["📊 <b>Status das Configurações de Log</b>\n"]
        if routing.log_group_id is not None:
            lines.append(f"✅ Grupo de logs: <code>{routing.log_group_id}</code>\n")
        for topic in LogTopic:
            thread = routing.topics.get(topic)
            mark = f"✅ tópico {thread}" if thread else "❌ não configurado"
            lines.append(f"• <code>{topic.value}</code>: {mark}")
        await message.reply("\n".join(lines))
        return

    try:
        topic = LogTopic(command.args.strip().lower())
    except ValueError:
        await message.reply(f"❌ Tipo de log inválido.\n\n<b>Tipos disponíveis:</b>\n{_topics_help()}")
        return

    log_sink.configure_topic(topic, message.chat.id, thread_id)
    await message.reply(f"✅ Logs do tipo <code>{topic.value}</code> serão enviados para este tópico.")
    await log_sink.log(topic, f"🔔 Tópico <b>{topic.value}</b> configurado.")


@router.message(Command("newadmin"), F.chat.type.in_({"group", "supergroup"}))
async def cmd_new_admin(
    message: Message,
    command: CommandObject,
    admins: AdminDirectory,
    log_sink: LogSink,
):
    """Handle /newadmin [admin|moderator|owner] as a reply to the new admin's message"""
    if not admins.is_owner(message.from_user.id, message.chat.id):
        await message.reply("❌ Apenas o owner pode adicionar administradores.")
        return

    if not message.reply_to_message or not message.reply_to_message.from_user:
        await message.reply("Responda a uma mensagem do usuário com <code>/newadmin [cargo]</code>")
        return

    try:
        role = AdminRole((command.args or AdminRole.ADMIN.value).strip().lower())
    except ValueError:
        await message.reply("❌ Cargo inválido. Use: owner, admin ou moderator")
        return

    target = message.reply_to_message.from_user
    await admins.add_admin(target.id, message.chat.id, role, target.full_name)

    user_link = format_user_link(target.id, target.full_name)
    await message.reply(f"✅ {user_link} agora é <b>{role.value}</b> neste grupo.")
    await log_sink.log_admin(
        f"👮 <b>Novo administrador</b>\n\n"
        f"👤 Usuário: {user_link} (<code>{target.id}</code>)\n"
        f"🎖 Cargo: {role.value}\n"
        f"💬 Grupo: {html.escape(message.chat.title or str(message.chat.id))}\n"
        f"➕ Adicionado por: {html.escape(message.from_user.full_name)}"
    )


@router.message(Command("removeadmin"), F.chat.type.in_({"group", "supergroup"}))
async def cmd_remove_admin(message: Message, admins: AdminDirectory, log_sink: LogSink):
    """Handle /removeadmin as a reply to the admin's message"""
    if not admins.is_owner(message.from_user.id, message.chat.id):
        await message.reply("❌ Apenas o owner pode remover administradores.")
        return

    if not message.reply_to_message or not message.reply_to_message.from_user:
        await message.reply("Responda a uma mensagem do administrador com <code>/removeadmin</code>")
        return

    target = message.reply_to_message.from_user
    if not await admins.remove_admin(target.id, message.chat.id):
        await message.reply("⚠️ Este usuário não é administrador neste grupo.")
        return

    await message.reply(f"✅ {format_user_link(target.id, target.full_name)} não é mais administrador.")
    await log_sink.log_admin(
        f"🚫 <b>Administrador removido</b>\n\n"
        f"👤 Usuário: <code>{target.id}</code>\n"
        f"💬 Grupo: {html.escape(message.chat.title or str(message.chat.id))}\n"
        f"➖ Removido por: {html.escape(message.from_user.full_name)}"
    )


@router.message(Command("admins"))
async def cmd_admins(message: Message, admins: AdminDirectory):
    """Handle /admins command - list privileged users"""
    if not admins.is_privileged(message.from_user.id, message.chat.id):
        await message.answer("❌ Apenas administradores podem ver esta lista.")
        return

    snapshot = admins.snapshot
    lines = ["👮 <b>Administradores</b>\n"]
    for owner_id in sorted(snapshot.owner_ids):
        lines.append(f"👑 <code>{owner_id}</code> - owner (global)")
    for entry in snapshot.entries:
        scope = "global" if entry.group_id is None else f"grupo {entry.group_id}"
        lines.append(
            f"• {format_user_link(entry.user_id, entry.user_name)} - {entry.role.value} ({scope})"
        )

    await message.answer("\n".join(lines))


@router.message(Command("reload"))
async def cmd_reload(message: Message, admins: AdminDirectory, log_sink: LogSink):
    """Handle /reload - re-read admin entries and log routing (owners only)"""
    if not admins.is_owner(message.from_user.id):
        await message.answer("❌ Apenas o owner pode recarregar configurações.")
        return

    snapshot = await admins.reload()
    log_sink.reload()
    logger.info(f"Configuration reloaded by {message.from_user.id}")
    await message.answer(
        f"🔄 Configurações recarregadas.\n"
        f"👮 {len(snapshot.entries)} administrador(es) cadastrados."
    )
