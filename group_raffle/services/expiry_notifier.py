"""
Subscription expiry notifier

Background service that reminds subscribers of upcoming expirations.
Runs once a day at a fixed wall-clock time in the configured timezone
and messages everyone whose subscription ends within the next two days.
"""

import asyncio
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Callable, Optional, Protocol, Set, Tuple

import pytz
from loguru import logger
from sqlalchemy.ext.asyncio import async_sessionmaker

from group_raffle.config import Settings
from group_raffle.database import crud
from group_raffle.database.session import session_scope
from group_raffle.services.log_sink import LogSink
from group_raffle.utils import format_date, format_money

SCAN_INTERVAL = timedelta(hours=24)


class Delivery(Protocol):
    async def send_direct_message(self, user_id: int, text: str) -> bool:
        ...


class SchedulerState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class ExpiryTier(str, Enum):
    TODAY = "today"
    TOMORROW = "tomorrow"
    IN_TWO_DAYS = "in_two_days"

    @classmethod
    def from_days(cls, days_remaining: int) -> "ExpiryTier":
        if days_remaining <= 0:
            return cls.TODAY
        if days_remaining == 1:
            return cls.TOMORROW
        return cls.IN_TWO_DAYS


@dataclass(frozen=True)
class ExpiryNotice:
    user_id: int
    user_name: Optional[str]
    group_name: Optional[str]
    end_date: date
    days_remaining: int
    amount_paid: float
    tier: ExpiryTier
    delivered: bool = False


@dataclass(frozen=True)
class ScanSummary:
    started_at: datetime
    notices: Tuple[ExpiryNotice, ...] = field(default_factory=tuple)

    @property
    def total(self) -> int:
        return len(self.notices)

    @property
    def notified(self) -> int:
        return sum(1 for n in self.notices if n.delivered)

    @property
    def failed(self) -> int:
        return self.total - self.notified


def next_trigger_time(now: datetime, hour: int, minute: int, tz) -> datetime:
    """
    Next occurrence of hour:minute in tz strictly after now

    Args:
        now: Timezone-aware current time
        hour: Trigger hour in tz
        minute: Trigger minute in tz
        tz: pytz timezone

    Returns:
        Timezone-aware trigger time expressed in tz
    """
    local_now = now.astimezone(tz)
    candidate = tz.localize(datetime.combine(local_now.date(), time(hour, minute)))
    if candidate <= local_now:
        candidate = tz.localize(
            datetime.combine(local_now.date() + timedelta(days=1), time(hour, minute))
        )
    return candidate


def build_expiry_message(notice: ExpiryNotice) -> str:
    """Reminder text for the subscriber, worded per tier"""
    user_name = notice.user_name or "Usuário"
    group_name = notice.group_name or "Grupo"
    end_date = format_date(notice.end_date)
    amount = format_money(notice.amount_paid)

    if notice.tier == ExpiryTier.TODAY:
        return (
            f"⚠️ <b>ÚLTIMO DIA DE ASSINATURA</b>\n\n"
            f"Olá {user_name}!\n\n"
            f"Sua assinatura do <b>{group_name}</b> vence <b>HOJE</b> ({end_date}).\n\n"
            f"💰 <b>Valor pago:</b> {amount}\n\n"
            f"❗ Renove agora para não perder o acesso aos sorteios!\n\n"
            f"📱 Entre em contato com um administrador para renovar."
        )
    if notice.tier == ExpiryTier.TOMORROW:
        return (
            f"⏰ <b>ASSINATURA VENCENDO EM BREVE</b>\n\n"
            f"Olá {user_name}!\n\n"
            f"Sua assinatura do <b>{group_name}</b> vence <b>amanhã</b> ({end_date}).\n\n"
            f"💰 <b>Valor pago:</b> {amount}\n"
            f"⏰ <b>Falta apenas:</b> 1 dia\n\n"
            f"📱 Entre em contato com um administrador para renovar."
        )
    return (
        f"📅 <b>LEMBRETE DE ASSINATURA</b>\n\n"
        f"Olá {user_name}!\n\n"
        f"Sua assinatura do <b>{group_name}</b> vence em <b>{notice.days_remaining} dias</b> ({end_date}).\n\n"
        f"💰 <b>Valor pago:</b> {amount}\n\n"
        f"💡 Não se esqueça de renovar para continuar participando dos sorteios!\n\n"
        f"📱 Entre em contato com um administrador."
    )


class ExpiryNotificationScheduler:
    """
    Daily expiry reminder job

    A scan that is still running when the next one is due causes the
    new one to be skipped until the following day.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker,
        delivery: Delivery,
        log_sink: LogSink,
        timezone: str = "America/Sao_Paulo",
        hour: int = 6,
        minute: int = 0,
        window_days: int = 2,
        message_delay: float = 0.1,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        """
        Initialize scheduler

        Args:
            session_factory: Async session factory (read-only use)
            delivery: Object with ``send_direct_message(user_id, text)``
            log_sink: Receives the summary of every scan
            timezone: Timezone of the trigger time and of "today"
            hour: Trigger hour
            minute: Trigger minute
            window_days: Subscriptions ending within this many days are notified
            message_delay: Pause between two direct messages in seconds
            clock: Returns the current aware time, defaults to UTC now
        """
        self.session_factory = session_factory
        self.delivery = delivery
        self.log_sink = log_sink
        self.tz = pytz.timezone(timezone)
        self.hour = hour
        self.minute = minute
        self.window_days = window_days
        self.message_delay = message_delay
        self.clock = clock or (lambda: datetime.now(pytz.utc))

        self.running = False
        self.is_running = False
        self.task: Optional[asyncio.Task] = None
        self._scan_tasks: Set[asyncio.Task] = set()

    @property
    def state(self) -> SchedulerState:
        return SchedulerState.RUNNING if self.is_running else SchedulerState.IDLE

    async def start(self):
        """Start scheduling task"""
        if self.running:
            logger.warning("Expiry notifier already running")
            return

        self.running = True
        self.task = asyncio.create_task(self._schedule_loop())
        logger.info("Expiry notifier started")

    async def stop(self):
        """Stop scheduling task and any scan in progress"""
        if not self.running:
            return

        self.running = False
        tasks = [t for t in (self.task, *self._scan_tasks) if t]
        for task in tasks:
            task.cancel()
        for task in tasks:
            try:
                await task
            except asyncio.CancelledError:
                pass

        logger.info("Expiry notifier stopped")

    async def _schedule_loop(self):
        """Sleep until the first trigger, then fire every 24 hours"""
        now = self.clock()
        trigger = next_trigger_time(now, self.hour, self.minute, self.tz)
        delay = (trigger - now).total_seconds()
        logger.info(
            f"Next subscription check at {trigger:%d/%m/%Y %H:%M %Z} "
            f"(in {int(delay // 3600)}h {int(delay % 3600 // 60)}min)"
        )
        await asyncio.sleep(delay)

        while self.running:
            self._launch_scan()
            await asyncio.sleep(SCAN_INTERVAL.total_seconds())

    def _launch_scan(self):
        task = asyncio.create_task(self.run_scan())
        self._scan_tasks.add(task)
        task.add_done_callback(self._scan_tasks.discard)

    def today(self) -> date:
        return self.clock().astimezone(self.tz).date()

    async def run_scan(self) -> Optional[ScanSummary]:
        """
        Notify every subscription ending within the window

        Returns:
            Summary of the scan, None if it was skipped because another
            scan is in progress or the subscription query failed
        """
        if self.is_running:
            logger.warning("Subscription check already in progress, skipping")
            return None

        self.is_running = True
        started_at = self.clock().astimezone(self.tz)
        try:
            today = started_at.date()
            logger.info(f"Starting subscription check for {format_date(today)}")

            async with session_scope(self.session_factory) as session:
                rows = await crud.query_active_subscriptions(session, today, self.window_days)

            notices = []
            for subscription, group_name in rows:
                days_remaining = (subscription.end_date - today).days
                notice = ExpiryNotice(
                    user_id=subscription.user_id,
                    user_name=subscription.user_name,
                    group_name=group_name,
                    end_date=subscription.end_date,
                    days_remaining=days_remaining,
                    amount_paid=subscription.amount_paid or 0.0,
                    tier=ExpiryTier.from_days(days_remaining),
                )
                delivered = await self._deliver(notice)
                notices.append(replace(notice, delivered=delivered))
                if self.message_delay > 0:
                    await asyncio.sleep(self.message_delay)

            summary = ScanSummary(started_at=started_at, notices=tuple(notices))
            logger.info(f"Subscription check done: {summary.notified} notified, {summary.failed} failed")
            await self.log_sink.log_subscription(self._format_summary(summary))
            return summary

        except Exception as e:
            logger.exception(f"Subscription check failed: {e}")
            await self.log_sink.log_error(
                f"❌ <b>Erro no Sistema de Notificações</b>\n\n"
                f"🐛 <b>Erro:</b> {e}\n"
                f"📅 <b>Data:</b> {started_at:%d/%m/%Y %H:%M}"
            )
            return None
        finally:
            self.is_running = False

    async def _deliver(self, notice: ExpiryNotice) -> bool:
        try:
            delivered = await self.delivery.send_direct_message(
                notice.user_id, build_expiry_message(notice)
            )
        except Exception as e:
            logger.warning(f"Failed to notify user {notice.user_id}: {e}")
            return False

        if delivered:
            logger.debug(
                f"Notified {notice.user_name} ({notice.user_id}), "
                f"{notice.days_remaining} day(s) remaining"
            )
        return bool(delivered)

    def _format_summary(self, summary: ScanSummary) -> str:
        lines = [
            "📬 <b>Notificações de Vencimento Enviadas</b>\n",
            f"✅ <b>Notificados:</b> {summary.notified}",
            f"❌ <b>Falhas:</b> {summary.failed}",
            f"📅 <b>Total verificado:</b> {summary.total}",
            f"⏰ <b>Horário:</b> {summary.started_at:%d/%m/%Y %H:%M}",
        ]
        if summary.notices:
            lines.append("\n<b>Detalhes:</b>")
            lines.extend(
                f"• {n.user_name or n.user_id} - {n.days_remaining} dia(s) - {n.group_name or 'Grupo'}"
                for n in summary.notices
            )
        return "\n".join(lines)


def create_expiry_notifier(
    session_factory: async_sessionmaker,
    delivery: Delivery,
    log_sink: LogSink,
    settings: Settings,
) -> ExpiryNotificationScheduler:
    """Build the notifier from application settings"""
    return ExpiryNotificationScheduler(
        session_factory,
        delivery,
        log_sink,
        timezone=settings.NOTIFIER_TIMEZONE,
        hour=settings.NOTIFIER_HOUR,
        minute=settings.NOTIFIER_MINUTE,
        window_days=settings.NOTIFIER_WINDOW_DAYS,
        message_delay=settings.NOTIFIER_MESSAGE_DELAY,
    )
