"""Задачи планировщика: отмена неоплаченных броней, сверка платежей, напоминания, heartbeat."""

import os
from datetime import datetime, timedelta, timezone

from aiogram import Bot
from aiogram.exceptions import TelegramAPIError

from config import settings
from database.db import async_session_maker
from database import crud
from database.models import BookingStatus
from keyboards.inline import get_booking_keyboard
from services import bookings, payments
from services.exceptions import ServiceError
from utils.helpers import format_datetime
from utils.logger import logger

HEARTBEAT_FILE = "logs/scheduler_heartbeat"

# Платёж младше этого возраста ещё может получить вебхук
PAYMENT_SYNC_DELAY = timedelta(minutes=2)


async def cancel_unpaid_bookings(bot: Bot) -> None:
    """
    Отменяет брони, не оплаченные вовремя.

    Запускается каждую минуту. Отменяет PENDING_PAYMENT-брони, у которых
    created_at + unpaid_booking_timeout_minutes < now. Уведомление о смене
    статуса отправляет сервис броней.
    """
    try:
        async with async_session_maker() as session:
            now = datetime.now(timezone.utc)
            timeout = timedelta(minutes=settings.unpaid_booking_timeout_minutes)
            expired = await crud.get_unpaid_bookings_before(session, now - timeout)

            cancelled_count = 0

            for booking in expired:
                try:
                    await bookings.update_status(session, booking.id, BookingStatus.CANCELLED)
                    cancelled_count += 1
                    logger.info(f"Cancelled unpaid booking {booking.id} (user {booking.user_id})")
                except ServiceError as e:
                    logger.error(f"Failed to cancel unpaid booking {booking.id}: {e}")

            if cancelled_count > 0:
                logger.info(f"Cancelled {cancelled_count} unpaid booking(s)")

    except Exception as e:
        logger.error(f"Error in cancel_unpaid_bookings: {e}", exc_info=True)


async def sync_pending_payments(bot: Bot) -> None:
    """
    Сверяет незавершённые платежи со шлюзом.

    Запускается каждые 5 минут. Подбирает платежи, по которым не пришёл вебхук.
    """
    try:
        async with async_session_maker() as session:
            now = datetime.now(timezone.utc)
            stale = await crud.get_stale_payments(session, now - PAYMENT_SYNC_DELAY)

            updated_count = 0

            for payment in stale:
                previous = payment.status
                try:
                    refreshed = await payments.refresh_payment_status(session, payment.id)
                except ServiceError as e:
                    logger.error(f"Failed to sync payment {payment.id}: {e}")
                    continue

                if refreshed.status != previous:
                    updated_count += 1

            if updated_count > 0:
                logger.info(f"Synced {updated_count} payment(s) from gateway")

    except Exception as e:
        logger.error(f"Error in sync_pending_payments: {e}", exc_info=True)


async def send_return_reminders(bot: Bot) -> None:
    """
    Напоминает вернуть прицеп до окончания аренды.

    Запускается каждые 5 минут. Каждая ACTIVE-бронь, заканчивающаяся в течение
    return_reminder_minutes, получает одно напоминание.
    """
    try:
        async with async_session_maker() as session:
            now = datetime.now(timezone.utc)
            window = timedelta(minutes=settings.return_reminder_minutes)
            ending = await crud.get_bookings_ending_between(session, now, now + window)

            sent_count = 0

            for booking in ending:
                minutes_left = int((booking.end_time - now).total_seconds() / 60)
                try:
                    await bot.send_message(
                        chat_id=booking.user.telegram_id,
                        text=(
                            f"⏰ <b>Напоминание о возврате</b>\n\n"
                            f"Прицеп: {booking.trailer.name}\n"
                            f"Окончание аренды: {format_datetime(booking.end_time)}\n"
                            f"Осталось: {minutes_left} мин\n\n"
                            f"Пожалуйста, верните прицеп вовремя."
                        ),
                        reply_markup=get_booking_keyboard(booking.id)
                    )
                except TelegramAPIError as e:
                    logger.error(
                        f"Failed to send return reminder to user {booking.user_id} "
                        f"for booking {booking.id}: {e}"
                    )
                    continue

                await crud.set_return_reminder_sent(session, booking.id)
                sent_count += 1
                logger.info(
                    f"Sent return reminder for booking {booking.id} "
                    f"to user {booking.user_id} ({minutes_left} min left)"
                )

            if sent_count > 0:
                logger.info(f"Sent {sent_count} return reminder(s)")

    except Exception as e:
        logger.error(f"Error in send_return_reminders: {e}", exc_info=True)


async def scheduler_heartbeat(bot: Bot) -> None:
    """
    Записывает временную метку в файл для мониторинга работоспособности.

    Запускается каждые 30 минут. При старте бота файл проверяется
    для обнаружения простоя планировщика.
    """
    try:
        os.makedirs(os.path.dirname(HEARTBEAT_FILE), exist_ok=True)
        with open(HEARTBEAT_FILE, "w") as f:
            f.write(datetime.now(timezone.utc).isoformat())
        logger.debug("Scheduler heartbeat written")
    except OSError as e:
        logger.error(f"Error writing scheduler heartbeat: {e}")


def read_heartbeat() -> datetime | None:
    """Время последнего heartbeat или None, если файла нет или он повреждён."""
    if not os.path.exists(HEARTBEAT_FILE):
        return None
    try:
        with open(HEARTBEAT_FILE, "r") as f:
            return datetime.fromisoformat(f.read().strip())
    except (OSError, ValueError) as e:
        logger.error(f"Error reading heartbeat file: {e}")
        return None
