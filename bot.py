"""Точка входа бота и планировщика."""

import asyncio
import subprocess
from datetime import datetime, timedelta, timezone

from aiogram import Bot, Dispatcher
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from config import settings
from database.db import async_session_maker, init_db, close_db
from database import crud
from middleware.auth import AuthMiddleware
from handlers import start, phone
from scheduler import tasks
from services.notifications import notifier
from utils.logger import logger


# Глобальный инстанс планировщика
scheduler = AsyncIOScheduler()


def run_migrations() -> None:
    try:
        result = subprocess.run(
            ["alembic", "upgrade", "head"],
            capture_output=True, text=True, timeout=60
        )
    except (OSError, subprocess.TimeoutExpired) as e:
        logger.error(f"Failed to run alembic migrations: {e}")
        return

    if result.returncode == 0:
        logger.info("Alembic migrations applied successfully")
    else:
        logger.error(f"Alembic migration failed: {result.stderr}")


async def ensure_default_admin() -> None:
    """Выдать права админа пользователю DEFAULT_ADMIN_ID."""
    if not settings.default_admin_id:
        return

    async with async_session_maker() as session:
        user = await crud.get_user_by_telegram_id(session, settings.default_admin_id)
        if not user:
            await crud.create_user(
                session,
                telegram_id=settings.default_admin_id,
                first_name="Admin",
                is_admin=True,
            )
            logger.info(f"Created default admin with ID {settings.default_admin_id}")
        elif not user.is_admin:
            await crud.update_user(session, user.id, is_admin=True)
            logger.info(f"Upgraded user {settings.default_admin_id} to admin")
        else:
            logger.info(f"Admin {settings.default_admin_id} already exists")


def setup_scheduler(bot: Bot) -> None:
    scheduler.add_job(
        tasks.cancel_unpaid_bookings,
        trigger='interval',
        minutes=1,
        args=[bot],
        id='cancel_unpaid_bookings',
        replace_existing=True
    )

    scheduler.add_job(
        tasks.sync_pending_payments,
        trigger='interval',
        minutes=5,
        args=[bot],
        id='sync_pending_payments',
        replace_existing=True
    )

    scheduler.add_job(
        tasks.send_return_reminders,
        trigger='interval',
        minutes=5,
        args=[bot],
        id='send_return_reminders',
        replace_existing=True
    )

    scheduler.add_job(
        tasks.scheduler_heartbeat,
        trigger='interval',
        minutes=30,
        args=[bot],
        id='scheduler_heartbeat',
        replace_existing=True
    )


async def on_startup(bot: Bot) -> None:
    """Действия при запуске."""
    logger.info("Bot starting...")

    run_migrations()
    await init_db()
    await ensure_default_admin()

    logger.info("Setting up scheduler...")
    setup_scheduler(bot)

    # Проверяем heartbeat на устаревший планировщик
    last_beat = tasks.read_heartbeat()
    if last_beat and datetime.now(timezone.utc) - last_beat > timedelta(minutes=60):
        logger.warning(
            f"Scheduler was stale! Last heartbeat: {last_beat.isoformat()}. "
            f"Possible scheduler outage detected."
        )

    scheduler.start()
    logger.info(f"Scheduler started with {len(scheduler.get_jobs())} tasks")

    bot_info = await bot.get_me()
    logger.info(f"Bot started: @{bot_info.username}")


async def on_shutdown(bot: Bot) -> None:
    """Действия при остановке."""
    logger.info("Bot shutting down...")

    scheduler.shutdown(wait=True)
    logger.info("Scheduler stopped")

    await notifier.close()
    await close_db()

    logger.info("Bot stopped")


async def main() -> None:
    """Запуск бота."""
    bot = Bot(
        token=settings.bot_token,
        default=DefaultBotProperties(parse_mode=ParseMode.HTML)
    )

    dp = Dispatcher()

    dp.startup.register(on_startup)
    dp.shutdown.register(on_shutdown)

    dp.message.middleware(AuthMiddleware())
    dp.callback_query.middleware(AuthMiddleware())

    dp.include_router(start.router)
    dp.include_router(phone.router)

    logger.info("Starting polling...")
    try:
        await dp.start_polling(bot, allowed_updates=dp.resolve_used_update_types())
    finally:
        await bot.session.close()


if __name__ == "__main__":
    asyncio.run(main())
