"""Вспомогательные функции: работа со временем, форматирование."""

from datetime import datetime, timezone
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from config import settings

if TYPE_CHECKING:
    from database.models import Booking

LOCAL_TZ = ZoneInfo(settings.timezone)
UTC = timezone.utc


def now_utc() -> datetime:
    """Текущее время в UTC (timezone-aware)."""
    return datetime.now(UTC)


def ensure_utc(dt: datetime) -> datetime:
    """Привести datetime к UTC. Наивное время считается местным (TIMEZONE)."""
    if dt.tzinfo is None:
        return dt.replace(tzinfo=LOCAL_TZ).astimezone(UTC)
    return dt.astimezone(UTC)


def to_local(dt: datetime) -> datetime:
    """Конвертировать aware datetime в часовой пояс TIMEZONE для отображения."""
    return dt.astimezone(LOCAL_TZ)


def plural_ru(n: int, one: str, few: str, many: str) -> str:
    """Форма слова для числа: 1 день, 2 дня, 5 дней."""
    n = abs(n)
    if n % 10 == 1 and n % 100 != 11:
        return one
    if 2 <= n % 10 <= 4 and not 12 <= n % 100 <= 14:
        return few
    return many


def format_datetime(dt: datetime | None, format_type: str = "user") -> str:
    """
    Форматировать datetime для отображения в местном времени.

    format_type: "user" → дд.мм.гггг ЧЧ:ММ, "report" → гггг-мм-дд ЧЧ:ММ, "short" → дд.мм ЧЧ:ММ
    """
    if dt is None:
        return "-"

    if dt.tzinfo is not None:
        dt = to_local(dt)

    if format_type == "report":
        return dt.strftime("%Y-%m-%d %H:%M")
    elif format_type == "short":
        return dt.strftime("%d.%m %H:%M")
    return dt.strftime("%d.%m.%Y %H:%M")


BOOKING_STATUS_TEXT = {
    "PENDING_PAYMENT": "⏳ Ожидает оплаты",
    "PAID": "💳 Оплачена",
    "ACTIVE": "🚛 Аренда идёт",
    "RETURNED": "↩️ Прицеп возвращён",
    "CLOSED": "✔️ Закрыта",
    "CANCELLED": "❌ Отменена",
}


def format_booking_info(booking: "Booking", verbose: bool = False) -> str:
    """
    Форматировать информацию о брони для сообщения в Telegram.

    verbose=True: добавить разбивку цены и временные метки.
    """
    status = getattr(booking.status, "value", booking.status)
    trailer_name = booking.trailer.name if booking.trailer else f"#{booking.trailer_id}"

    lines = [
        f"<b>Бронь #{booking.id}</b>",
        f"Статус: {BOOKING_STATUS_TEXT.get(status, status)}",
        "",
        f"<b>Прицеп:</b> {trailer_name}",
        f"<b>Начало:</b> {format_datetime(booking.start_time)}",
        f"<b>Конец:</b> {format_datetime(booking.end_time)}",
        f"<b>Сумма аренды:</b> {booking.total}₽",
        f"<b>Залог:</b> {booking.deposit}₽",
    ]

    if verbose:
        lines.append("")
        lines.append(f"Аренда: {booking.base_cost}₽")
        if booking.additional_cost:
            lines.append(f"Забор прицепа: {booking.additional_cost}₽")
        lines.append(f"<b>Создана:</b> {format_datetime(booking.created_at)}")
        if booking.paid_at:
            lines.append(f"<b>Оплачена:</b> {format_datetime(booking.paid_at)}")
        if booking.returned_at:
            lines.append(f"<b>Возвращён:</b> {format_datetime(booking.returned_at)}")

    return "\n".join(lines)
