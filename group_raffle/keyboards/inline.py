from aiogram.types import InlineKeyboardMarkup, InlineKeyboardButton
from aiogram.utils.keyboard import InlineKeyboardBuilder

from group_raffle.database.models import RaffleStatus, SubscriptionStatus


def raffle_keyboard(raffle_id: str) -> InlineKeyboardMarkup:
    """Buttons attached to the raffle post in the group"""
    builder = InlineKeyboardBuilder()

    builder.row(
        InlineKeyboardButton(text="🎁 Participar do sorteio", callback_data=f"join_{raffle_id}")
    )
    builder.row(
        InlineKeyboardButton(text="🎲 Sortear (apenas adm)", callback_data=f"draw_{raffle_id}")
    )
    builder.row(
        InlineKeyboardButton(text="❌ Cancelar sorteio", callback_data=f"cancel_{raffle_id}")
    )

    return builder.as_markup()


def raffle_status_keyboard() -> InlineKeyboardMarkup:
    """Status picker for the /raffles listing"""
    builder = InlineKeyboardBuilder()

    builder.row(
        InlineKeyboardButton(text="🟢 Abertos", callback_data=f"raffles_{RaffleStatus.OPEN.value}"),
        InlineKeyboardButton(text="🏆 Realizados", callback_data=f"raffles_{RaffleStatus.DRAWN.value}"),
    )
    builder.row(
        InlineKeyboardButton(text="❌ Cancelados", callback_data=f"raffles_{RaffleStatus.CANCELLED.value}")
    )

    return builder.as_markup()


def subscription_status_keyboard() -> InlineKeyboardMarkup:
    """Status picker for the /subscriptions listing"""
    builder = InlineKeyboardBuilder()

    builder.row(
        InlineKeyboardButton(
            text="✅ Ativas", callback_data=f"subs_{SubscriptionStatus.ACTIVE.value}"
        ),
        InlineKeyboardButton(
            text="⌛ Vencidas", callback_data=f"subs_{SubscriptionStatus.EXPIRED.value}"
        ),
    )
    builder.row(
        InlineKeyboardButton(
            text="🚫 Canceladas", callback_data=f"subs_{SubscriptionStatus.CANCELLED.value}"
        )
    )

    return builder.as_markup()
