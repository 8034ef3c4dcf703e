import asyncio
import random
import sys
from loguru import logger

from aiogram import Bot, Dispatcher
from aiogram.enums import ParseMode
from aiogram.client.default import DefaultBotProperties
from aiogram.fsm.storage.memory import MemoryStorage

from group_raffle.config import Settings
from group_raffle.database import create_engine, create_session_factory, init_database, check_db_health
from group_raffle.handlers import admin, raffle, start, subscription
from group_raffle.services.authorization import AdminDirectory
from group_raffle.services.draw_engine import WeightedDrawEngine
from group_raffle.services.draw_service import DrawService
from group_raffle.services.eligibility import EligibilityGate
from group_raffle.services.expiry_notifier import ExpiryNotificationScheduler, create_expiry_notifier
from group_raffle.services.log_sink import LogSink
from group_raffle.services.notification import NotificationService
from group_raffle.services.participation import ParticipationService
from group_raffle.services.raffle_registry import RaffleRegistry
from group_raffle.services.subscriptions import SubscriptionService
from group_raffle.utils import today_provider


def configure_logging(settings: Settings):
    """Console and daily rotated file sinks"""
    logger.remove()
    logger.add(
        sys.stderr,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        level=settings.LOG_LEVEL,
    )
    logger.add(
        f"{settings.LOG_DIR}/bot_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="30 days",
        level=settings.LOG_LEVEL,
    )


def build_dispatcher(settings: Settings, bot: Bot, engine) -> Dispatcher:
    """
    Wire services and routers

    Services are exposed to handlers as dispatcher workflow data, so a
    handler receives e.g. ``registry: RaffleRegistry`` by parameter name.
    """
    session_factory = create_session_factory(engine)
    today = today_provider(settings.NOTIFIER_TIMEZONE)

    eligibility = EligibilityGate(session_factory, today)
    registry = RaffleRegistry(session_factory)
    rng = random.Random(settings.RANDOM_SEED) if settings.RANDOM_SEED is not None else random.SystemRandom()
    log_sink = LogSink(bot, settings.LOG_ROUTING_FILE)
    notifications = NotificationService(bot)

    dp = Dispatcher(storage=MemoryStorage())
    dp["settings"] = settings
    dp["engine"] = engine
    dp["log_sink"] = log_sink
    dp["notifications"] = notifications
    dp["eligibility"] = eligibility
    dp["registry"] = registry
    dp["participation"] = ParticipationService(session_factory, eligibility)
    dp["draw_service"] = DrawService(
        session_factory,
        registry,
        eligibility,
        WeightedDrawEngine(rng),
        luck_win_penalty=settings.LUCK_WIN_PENALTY,
    )
    dp["subscriptions"] = SubscriptionService(
        session_factory, today, payment_method=settings.SUBSCRIPTION_PAYMENT_METHOD
    )
    dp["admins"] = AdminDirectory(session_factory, settings.get_admin_ids())
    dp["expiry_notifier"] = create_expiry_notifier(session_factory, notifications, log_sink, settings)

    # Register routers
    dp.include_router(start.router)
    dp.include_router(raffle.router)
    dp.include_router(subscription.router)
    dp.include_router(admin.router)

    # Register startup/shutdown handlers
    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    return dp


async def on_startup(
    bot: Bot,
    settings: Settings,
    engine,
    admins: AdminDirectory,
    expiry_notifier: ExpiryNotificationScheduler,
):
    """Actions on bot startup"""
    logger.info("Bot is starting...")

    try:
        is_healthy = await check_db_health(engine)

        if not is_healthy:
            logger.info("Database needs initialization...")
            await init_database(engine)
        else:
            logger.info("Database is already initialized and healthy")

        logger.success("✅ Database ready")
    except Exception as e:
        logger.error(f"Failed to initialize database: {e}")
        logger.error("Bot cannot start until database is initialized successfully")
        sys.exit(1)

    await admins.reload()

    if settings.NOTIFIER_ENABLED:
        await expiry_notifier.start()
    else:
        logger.info("Expiry notifier disabled")

    admin_ids = settings.get_admin_ids()
    if admin_ids:
        for admin_id in admin_ids:
            try:
                await bot.send_message(admin_id, "🤖 Bot iniciado e pronto para os sorteios!")
            except Exception as e:
                logger.warning(f"Failed to notify admin {admin_id}: {e}")
    else:
        logger.warning("No admin IDs configured")

    logger.success("Bot started successfully!")


async def on_shutdown(bot: Bot, settings: Settings, expiry_notifier: ExpiryNotificationScheduler):
    """Actions on bot shutdown"""
    logger.info("Bot is shutting down...")

    try:
        await expiry_notifier.stop()
    except Exception as e:
        logger.error(f"Error stopping expiry notifier: {e}")

    for admin_id in settings.get_admin_ids():
        try:
            await bot.send_message(admin_id, "🤖 Bot parado")
        except Exception as e:
            logger.warning(f"Failed to notify admin {admin_id}: {e}")

    logger.info("Bot shutdown complete")


async def main():
    """Main function to run the bot"""
    settings = Settings.load()
    configure_logging(settings)

    logger.info("Starting Group Raffle Bot...")

    bot = Bot(
        token=settings.TELEGRAM_BOT_TOKEN,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )
    engine = create_engine(settings)
    dp = build_dispatcher(settings, bot, engine)

    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    except Exception as e:
        logger.opt(exception=True).error(f"Bot crashed: {e}")
    finally:
        await bot.session.close()
        await engine.dispose()


def run():
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        logger.info("Bot stopped by user")


if __name__ == "__main__":
    run()
