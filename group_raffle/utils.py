"""Utility functions for the bot"""
import html
import re
import secrets
from datetime import date, datetime
from typing import Callable, Optional, Tuple

import pytz

from group_raffle.errors import InvalidArgument


def today_provider(timezone_name: str) -> Callable[[], date]:
    """
    Build a callable returning the current calendar date in a timezone

    Args:
        timezone_name: IANA timezone name, e.g. "America/Sao_Paulo"

    Returns:
        Zero-argument callable used by services as their clock
    """
    tz = pytz.timezone(timezone_name)

    def _today() -> date:
        return datetime.now(tz).date()

    return _today


def local_now(timezone_name: str) -> datetime:
    """Current aware time in a timezone"""
    return datetime.now(pytz.timezone(timezone_name))


def format_date(value: date) -> str:
    """Format date the way Brazilian users read it (dd/mm/yyyy)"""
    return value.strftime("%d/%m/%Y")


def format_money(amount: float) -> str:
    """Format amount in BRL, e.g. R$ 3,00"""
    return f"R$ {amount:.2f}".replace(".", ",")


def format_user_link(user_id: int, name: Optional[str]) -> str:
    """
    Format HTML mention of a user.

    Args:
        user_id: Telegram user ID
        name: Display name, falls back to "Usuário"

    Returns:
        HTML anchor pointing to the user profile
    """
    display_name = html.escape(name or "Usuário")
    return f'<a href="tg://user?id={user_id}">{display_name}</a>'


def new_raffle_id(now: Optional[datetime] = None) -> str:
    """Generate raffle identifier from the creation time in milliseconds"""
    now = now or datetime.now()
    return f"raffle_{int(now.timestamp() * 1000)}_{secrets.token_hex(3)}"


_MANUAL_PERIOD = re.compile(
    r"^\s*(\d{1,2}/\d{1,2}/\d{4})\s*#\s*(\d{1,2}/\d{1,2}/\d{4})\s*#\s*(\d+(?:[.,]\d{1,2})?)\s*$"
)


def parse_manual_period(text: str) -> Tuple[date, date, float]:
    """
    Parse "dd/mm/yyyy#dd/mm/yyyy#amount" used by manual payment registration.

    Args:
        text: Argument of the /sub command

    Returns:
        Tuple of (start_date, end_date, amount)

    Raises:
        InvalidArgument: Text does not match the format or dates are invalid
    """
    match = _MANUAL_PERIOD.match(text or "")
    if not match:
        raise InvalidArgument("Formato inválido. Use: data_inicio#data_fim#valor")

    try:
        start_date = datetime.strptime(match.group(1), "%d/%m/%Y").date()
        end_date = datetime.strptime(match.group(2), "%d/%m/%Y").date()
    except ValueError as e:
        raise InvalidArgument(f"Data inválida: {e}") from e

    amount = float(match.group(3).replace(",", "."))
    return start_date, end_date, amount


_PARTICIPANTS_LINE = re.compile(r"Participantes:\s*\d+")


def with_participant_count(caption: Optional[str], count: int) -> str:
    """
    Add or refresh the "Participantes: N" line of a raffle caption.

    Args:
        caption: Current caption of the raffle post
        count: Participant count to show

    Returns:
        Caption with exactly one up-to-date counter line
    """
    caption = caption or ""
    line = f"Participantes: {count}"
    if _PARTICIPANTS_LINE.search(caption):
        return _PARTICIPANTS_LINE.sub(line, caption, count=1)
    if not caption:
        return line
    return f"{caption}\n\n{line}"
