import html

from aiogram import Router, F
from aiogram.filters import Command, CommandObject
from aiogram.types import CallbackQuery, Message, MessageOriginUser
from loguru import logger

from group_raffle.config import Settings
from group_raffle.database.models import SubscriptionStatus
from group_raffle.errors import InvalidArgument, NotFound
from group_raffle.keyboards.inline import subscription_status_keyboard
from group_raffle.services.authorization import AdminDirectory
from group_raffle.services.log_sink import LogSink, LogTopic
from group_raffle.services.notification import NotificationService
from group_raffle.services.subscriptions import SubscriptionService
from group_raffle.utils import format_date, format_money, format_user_link, parse_manual_period

router = Router()

PRIVATE_ONLY = "❌ Este comando só pode ser usado no privado do bot."

SUB_USAGE = (
    "❌ <b>Uso incorreto!</b>\n\n"
    "📝 <b>Modo Automático:</b>\n"
    "Responda o comprovante encaminhado com <code>/sub</code>\n\n"
    "📝 <b>Modo Manual:</b>\n"
    "Responda o comprovante com:\n"
    "<code>/sub 01/06/2025#30/09/2025#9</code>\n\n"
    "💡 <b>Formato:</b> <code>data_inicio#data_fim#valor</code>"
)


@router.message(Command("subscription"))
async def cmd_subscription(message: Message, settings: Settings, subscriptions: SubscriptionService):
    """Handle /subscription command - show own subscription"""
    if message.chat.type != "private":
        await message.reply(PRIVATE_ONLY)
        return

    info = await subscriptions.get_subscription(
        message.from_user.id, settings.DEFAULT_SUBSCRIPTION_GROUP_ID
    )

    if info is None or not info.is_active:
        await message.answer(
            "❌ <b>Você não possui assinatura ativa.</b>\n\n"
            "💡 Entre em contato com um administrador para adquirir.\n"
            "📱 Envie seu comprovante de pagamento para o admin.\n\n"
            "💰 Use /pix para ver as informações de pagamento."
        )
        return

    await message.answer(
        f"📋 <b>Sua Assinatura</b>\n\n"
        f"📆 <b>Válida até:</b> {format_date(info.end_date)}\n"
        f"⏰ <b>Dias restantes:</b> {info.days_remaining}\n"
        f"💰 <b>Total pago:</b> {format_money(info.amount_paid)}\n"
        f"✅ <b>Status:</b> Ativa ✓"
    )


@router.message(Command("pix"))
async def cmd_pix(message: Message, settings: Settings):
    """Handle /pix command - payment instructions"""
    if message.chat.type != "private":
        await message.reply("💰 Use /pix no privado para receber as informações de pagamento!")
        return

    amount = format_money(settings.SUBSCRIPTION_DEFAULT_AMOUNT)
    await message.answer(
        f"💰 <b>Pagamento via {html.escape(settings.SUBSCRIPTION_PAYMENT_METHOD)}</b>\n\n"
        f"💵 <b>Valor Mínimo:</b> {amount}/mês\n"
        f"📅 Você pode pagar quantos meses desejar antecipadamente!\n\n"
        f"🔑 <b>Chave PIX:</b>\n<code>{html.escape(settings.PIX_KEY or '-')}</code>\n\n"
        f"📝 <b>Após o pagamento:</b>\n"
        f"1️⃣ Tire um print do comprovante\n"
        f"2️⃣ Envie para um administrador\n"
        f"3️⃣ Aguarde a confirmação da sua assinatura\n\n"
        f"✅ Use /subscription para verificar o status da sua assinatura"
    )


@router.message(Command("sub"))
async def cmd_register_subscription(
    message: Message,
    command: CommandObject,
    settings: Settings,
    admins: AdminDirectory,
    subscriptions: SubscriptionService,
    notifications: NotificationService,
    log_sink: LogSink,
):
    """Handle /sub - register a payment from a forwarded receipt (admins only)"""
    group_id = settings.DEFAULT_SUBSCRIPTION_GROUP_ID

    if message.chat.type != "private":
        await message.reply(PRIVATE_ONLY)
        return

    if not admins.is_privileged(message.from_user.id, group_id):
        await message.answer("❌ Apenas administradores podem registrar assinaturas.")
        return

    receipt = message.reply_to_message
    if not receipt:
        await message.answer(SUB_USAGE)
        return

    origin = receipt.forward_origin
    if not isinstance(origin, MessageOriginUser):
        await message.answer(
            "❌ Não foi possível identificar o usuário.\n\n"
            "💡 O usuário deve enviar o comprovante para você, e você deve encaminhar para este chat.\n"
            "⚠️ Configurações de privacidade podem impedir a identificação."
        )
        return

    target = origin.sender_user
    if receipt.photo:
        payment_reference = receipt.photo[-1].file_id
    elif receipt.document:
        payment_reference = receipt.document.file_id
    else:
        payment_reference = receipt.text or receipt.caption

    start_date = end_date = None
    amount = settings.SUBSCRIPTION_DEFAULT_AMOUNT
    if command.args:
        try:
            start_date, end_date, amount = parse_manual_period(command.args)
        except InvalidArgument as e:
            await message.answer(f"❌ {html.escape(str(e))}\n\n{SUB_USAGE}")
            return

    try:
        info = await subscriptions.register_payment(
            user_id=target.id,
            group_id=group_id,
            amount=amount,
            payment_reference=payment_reference,
            start_date=start_date,
            end_date=end_date,
            user_name=target.full_name,
            registered_by=message.from_user.id,
        )
    except InvalidArgument as e:
        await message.answer(f"❌ {html.escape(str(e))}")
        return

    user_link = format_user_link(target.id, target.full_name)
    await message.answer(
        f"✅ <b>Assinatura registrada!</b>\n\n"
        f"👤 <b>Usuário:</b> {user_link}\n"
        f"📅 <b>Início:</b> {format_date(info.start_date)}\n"
        f"📆 <b>Fim:</b> {format_date(info.end_date)}\n"
        f"💰 <b>Valor:</b> {format_money(amount)} (total {format_money(info.amount_paid)})"
    )

    delivered = await notifications.send_direct_message(
        target.id,
        f"✅ <b>Assinatura confirmada!</b>\n\n"
        f"📆 <b>Válida até:</b> {format_date(info.end_date)}\n"
        f"⏰ <b>Dias restantes:</b> {info.days_remaining}\n\n"
        f"Boa sorte nos sorteios! 🍀",
    )
    if not delivered:
        logger.info(f"Subscriber {target.id} could not be notified about the payment")

    await log_sink.log_subscription(
        f"💳 <b>Assinatura registrada</b>\n\n"
        f"👤 Usuário: {user_link} (<code>{target.id}</code>)\n"
        f"📆 Válida até: {format_date(info.end_date)}\n"
        f"💰 Valor: {format_money(amount)}\n"
        f"👮 Registrado por: {html.escape(message.from_user.full_name)}"
    )


@router.message(Command("cancelsub"))
async def cmd_cancel_subscription(
    message: Message,
    command: CommandObject,
    settings: Settings,
    admins: AdminDirectory,
    subscriptions: SubscriptionService,
    log_sink: LogSink,
):
    """Handle /cancelsub <user_id> (admins only)"""
    group_id = settings.DEFAULT_SUBSCRIPTION_GROUP_ID
    if not admins.is_privileged(message.from_user.id, group_id):
        await message.answer("❌ Apenas administradores podem cancelar assinaturas.")
        return

    try:
        user_id = int((command.args or "").strip())
    except ValueError:
        await message.answer("Uso: <code>/cancelsub ID_DO_USUARIO</code>")
        return

    try:
        await subscriptions.cancel_subscription(user_id, group_id)
    except NotFound:
        await message.answer("❌ Assinatura não encontrada.")
        return

    await message.answer(f"🚫 Assinatura de <code>{user_id}</code> cancelada.")
    await log_sink.log_subscription(
        f"🚫 <b>Assinatura cancelada</b>\n\n"
        f"👤 Usuário: <code>{user_id}</code>\n"
        f"👮 Cancelado por: {html.escape(message.from_user.full_name)}"
    )


@router.message(Command("subscriptions"))
async def cmd_subscriptions(message: Message, settings: Settings, admins: AdminDirectory):
    """Handle /subscriptions command - pick a status to list"""
    if not admins.is_privileged(message.from_user.id, settings.DEFAULT_SUBSCRIPTION_GROUP_ID):
        await message.answer("❌ Apenas administradores podem listar assinaturas.")
        return

    await message.answer(
        "📋 <b>Assinaturas</b>\n\nEscolha o status:",
        reply_markup=subscription_status_keyboard(),
    )


@router.callback_query(F.data.startswith("subs_"))
async def callback_subscriptions_by_status(
    callback: CallbackQuery,
    settings: Settings,
    admins: AdminDirectory,
    subscriptions: SubscriptionService,
):
    """List subscriptions with the chosen status"""
    group_id = settings.DEFAULT_SUBSCRIPTION_GROUP_ID
    if not admins.is_privileged(callback.from_user.id, group_id):
        await callback.answer("Acesso negado", show_alert=True)
        return

    status = SubscriptionStatus(callback.data.split("_", 1)[1])
    infos = await subscriptions.list_by_status(status, group_id=group_id)

    if not infos:
        text = f"Nenhuma assinatura com status <b>{status.value}</b>."
    else:
        lines = [f"📋 <b>Assinaturas ({status.value}): {len(infos)}</b>\n"]
        for info in infos:
            lines.append(
                f"• {format_user_link(info.user_id, info.user_name)} - "
                f"até {format_date(info.end_date)} ({info.days_remaining} dia(s))"
            )
        text = "\n".join(lines)

    await callback.message.edit_text(text, reply_markup=subscription_status_keyboard())
    await callback.answer()


@router.message(Command("requiresub"), F.chat.type.in_({"group", "supergroup"}))
async def cmd_require_subscription(
    message: Message,
    command: CommandObject,
    admins: AdminDirectory,
    subscriptions: SubscriptionService,
    log_sink: LogSink,
):
    """Handle /requiresub on|off - toggle subscription gating of the group"""
    if not admins.is_owner(message.from_user.id, message.chat.id):
        await message.reply("❌ Apenas o owner pode alterar esta configuração.")
        return

    arg = (command.args or "").strip().lower()
    if arg not in ("on", "off"):
        await message.reply("Uso: <code>/requiresub on</code> ou <code>/requiresub off</code>")
        return

    required = arg == "on"
    await subscriptions.set_requirement(message.chat.id, required, group_name=message.chat.title)

    state = "exigida" if required else "não exigida"
    await message.reply(f"⚙️ Assinatura agora é <b>{state}</b> para participar dos sorteios.")
    await log_sink.log(
        LogTopic.SETTINGS,
        f"⚙️ <b>Configuração alterada</b>\n\n"
        f"💬 Grupo: {html.escape(message.chat.title or str(message.chat.id))}\n"
        f"🔒 Assinatura: {state}\n"
        f"👮 Por: {html.escape(message.from_user.full_name)}",
    )
