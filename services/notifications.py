"""Уведомления пользователям через Telegram Bot API."""

import asyncio

from aiogram import Bot
from aiogram.client.default import DefaultBotProperties
from aiogram.enums import ParseMode
from aiogram.exceptions import TelegramAPIError
from aiogram.types import InlineKeyboardMarkup, ReplyKeyboardMarkup

from config import settings
from database.models import Booking, Payment, PaymentType, User, VerificationStatus
from keyboards.inline import get_booking_keyboard, get_webapp_keyboard
from keyboards.reply import get_contact_keyboard
from utils.helpers import BOOKING_STATUS_TEXT, format_booking_info
from utils.logger import logger


class TelegramNotifier:
    """
    Отправка сообщений без влияния на основной поток.

    Ошибки Telegram логируются и не пробрасываются: уведомление не должно
    откатывать бронь или платёж.
    """

    def __init__(self, bot: Bot | None = None):
        self._bot = bot
        self._tasks: set[asyncio.Task] = set()

    @property
    def bot(self) -> Bot:
        if self._bot is None:
            self._bot = Bot(
                token=settings.bot_token,
                default=DefaultBotProperties(parse_mode=ParseMode.HTML)
            )
        return self._bot

    async def send(
        self,
        chat_id: int,
        text: str,
        reply_markup: InlineKeyboardMarkup | ReplyKeyboardMarkup | None = None,
    ) -> bool:
        try:
            await self.bot.send_message(chat_id=chat_id, text=text, reply_markup=reply_markup)
            return True
        except TelegramAPIError as e:
            logger.error(f"Failed to send message to {chat_id}: {e}")
            return False

    def notify(
        self,
        chat_id: int,
        text: str,
        reply_markup: InlineKeyboardMarkup | ReplyKeyboardMarkup | None = None,
    ) -> asyncio.Task:
        """Запланировать отправку в фоне и сразу вернуть управление."""
        task = asyncio.create_task(self.send(chat_id, text, reply_markup))
        self._tasks.add(task)
        task.add_done_callback(self._on_done)
        return task

    def _on_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"Notification task failed: {exc!r}")

    async def close(self) -> None:
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._bot is not None:
            await self._bot.session.close()
            self._bot = None


notifier = TelegramNotifier()


# ============== MESSAGES ==============

def notify_booking_created(user: User, booking: Booking) -> None:
    notifier.notify(
        user.telegram_id,
        "✅ <b>Бронь создана</b>\n\n"
        f"{format_booking_info(booking)}\n\n"
        "Оплатите аренду в приложении, иначе бронь будет отменена через "
        f"{settings.unpaid_booking_timeout_minutes} мин.",
        reply_markup=get_booking_keyboard(booking.id),
    )


def notify_booking_status(user: User, booking: Booking) -> None:
    status = getattr(booking.status, "value", booking.status)
    notifier.notify(
        user.telegram_id,
        f"🔔 Статус брони #{booking.id} изменён: {BOOKING_STATUS_TEXT.get(status, status)}",
        reply_markup=get_booking_keyboard(booking.id),
    )


def notify_payment_completed(user: User, payment: Payment) -> None:
    if payment.type == PaymentType.DEPOSIT_HOLD:
        text = f"🔒 Залог {payment.amount}₽ заблокирован. Аренда по брони #{payment.booking_id} началась."
    else:
        text = f"💳 Оплата {payment.amount}₽ по брони #{payment.booking_id} получена."
    notifier.notify(user.telegram_id, text, reply_markup=get_booking_keyboard(payment.booking_id))


def notify_payment_refunded(user: User, payment: Payment) -> None:
    notifier.notify(
        user.telegram_id,
        f"↩️ Платёж {payment.amount}₽ по брони #{payment.booking_id} не может быть принят "
        "и возвращён на вашу карту.",
        reply_markup=get_booking_keyboard(payment.booking_id),
    )


def notify_verification_status(user: User) -> None:
    if user.verification_status == VerificationStatus.VERIFIED:
        text = "✅ Ваши документы проверены. Можно бронировать прицепы."
    else:
        text = "❌ Документы не прошли проверку."
        if user.verification_comment:
            text += f"\n\nКомментарий: {user.verification_comment}"
    notifier.notify(user.telegram_id, text, reply_markup=get_webapp_keyboard("/profile", "👤 Профиль"))


def notify_support_reply(user: User, chat_id: int, text: str) -> None:
    notifier.notify(
        user.telegram_id,
        f"💬 <b>Ответ поддержки</b>\n\n{text}",
        reply_markup=get_webapp_keyboard(f"/support/{chat_id}", "💬 Открыть чат"),
    )


async def request_phone(user: User) -> bool:
    """Отправить клавиатуру запроса контакта. Возвращает результат отправки."""
    return await notifier.send(
        user.telegram_id,
        "📱 Для бронирования нужен подтверждённый номер телефона.\n"
        "Нажмите кнопку ниже, чтобы поделиться им.",
        reply_markup=get_contact_keyboard(),
    )
