"""Генератор Excel-отчётов на основе pandas."""

from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional

import pandas as pd
from openpyxl.utils import get_column_letter
from sqlalchemy.ext.asyncio import AsyncSession

from database import crud
from database.models import Booking, BookingStatus, PaymentStatus, PaymentType
from utils.helpers import BOOKING_STATUS_TEXT, format_datetime, now_utc
from utils.logger import logger

REPORTS_DIR = Path("reports/files")

PAYMENT_STATUS_TEXT = {
    "PENDING": "Создан",
    "PROCESSING": "В обработке",
    "COMPLETED": "Проведён",
    "FAILED": "Ошибка",
    "CANCELLED": "Отменён",
    "REFUNDED": "Возвращён",
}

PAYMENT_TYPE_TEXT = {
    "RENTAL": "Аренда",
    "DEPOSIT_HOLD": "Залог",
}


def _value(enum_value) -> str:
    return getattr(enum_value, "value", enum_value)


def _booking_rows(bookings: list[Booking]) -> list[dict]:
    rows = []
    for booking in bookings:
        duration_hours = (booking.end_time - booking.start_time).total_seconds() / 3600
        status = _value(booking.status)
        rows.append({
            "ID брони": booking.id,
            "Статус": BOOKING_STATUS_TEXT.get(status, status),
            "Клиент": booking.user.full_name if booking.user else "",
            "Telegram ID": booking.user.telegram_id if booking.user else "",
            "Телефон": (booking.user.phone_number or "") if booking.user else "",
            "Прицеп": booking.trailer.name if booking.trailer else f"#{booking.trailer_id}",
            "Тариф": "Почасовой" if _value(booking.rental_type) == "HOURLY" else "Посуточный",
            "Начало": format_datetime(booking.start_time, "report"),
            "Конец": format_datetime(booking.end_time, "report"),
            "Длительность (ч)": round(duration_hours, 1),
            "Аренда, ₽": booking.base_cost,
            "Доп. услуги, ₽": booking.additional_cost,
            "Итого, ₽": booking.total,
            "Залог, ₽": booking.deposit,
            "Создана": format_datetime(booking.created_at, "report"),
            "Оплачена": format_datetime(booking.paid_at, "report") if booking.paid_at else "",
            "Возвращён": format_datetime(booking.returned_at, "report") if booking.returned_at else "",
        })
    return rows


def _payment_rows(bookings: list[Booking]) -> list[dict]:
    rows = []
    for booking in bookings:
        for payment in booking.payments:
            status = _value(payment.status)
            payment_type = _value(payment.type)
            rows.append({
                "ID платежа": payment.id,
                "ID брони": booking.id,
                "Тип": PAYMENT_TYPE_TEXT.get(payment_type, payment_type),
                "Сумма, ₽": payment.amount,
                "Статус": PAYMENT_STATUS_TEXT.get(status, status),
                "Заказ": payment.order_id,
                "ID в шлюзе": payment.gateway_payment_id or "",
                "Создан": format_datetime(payment.created_at, "report"),
            })
    return rows


def build_summary(bookings: list[Booking], filter_text: str) -> pd.DataFrame:
    """Сводные показатели по броням периода."""
    statuses = [_value(b.status) for b in bookings]
    rental_revenue = sum(
        p.amount
        for b in bookings
        for p in b.payments
        if _value(p.type) == PaymentType.RENTAL.value and _value(p.status) == PaymentStatus.COMPLETED.value
    )

    return pd.DataFrame({
        "Метрика": [
            "Фильтры",
            "Всего броней",
            "Ожидают оплаты",
            "Активных",
            "Закрытых",
            "Отменённых",
            "Выручка по аренде, ₽",
            "Уникальных клиентов",
            "Уникальных прицепов",
        ],
        "Значение": [
            filter_text,
            len(bookings),
            statuses.count(BookingStatus.PENDING_PAYMENT.value),
            statuses.count(BookingStatus.ACTIVE.value),
            statuses.count(BookingStatus.CLOSED.value),
            statuses.count(BookingStatus.CANCELLED.value),
            rental_revenue,
            len({b.user_id for b in bookings}),
            len({b.trailer_id for b in bookings}),
        ],
    })


def _autosize(worksheet, df: pd.DataFrame) -> None:
    # Ширина колонки по содержимому, не больше 50 символов
    for idx, col in enumerate(df.columns, start=1):
        lengths = df[col].astype(str).str.len()
        max_length = max(lengths.max() if not lengths.empty else 0, len(col)) + 2
        worksheet.column_dimensions[get_column_letter(idx)].width = min(max_length, 50)


async def generate_report(
    session: AsyncSession,
    days: Optional[int] = 30,
    trailer_id: Optional[int] = None,
    user_id: Optional[int] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
) -> Optional[Path]:
    """
    Сгенерировать Excel-отчёт по броням: листы с бронями, платежами и сводкой.

    days=None означает произвольный диапазон (используются start_date/end_date).
    Возвращает путь к файлу или None, если броней за период нет.
    """
    now = now_utc()

    if days is not None:
        date_from = now - timedelta(days=days)
        date_to = now
    elif start_date and end_date:
        date_from = start_date
        date_to = end_date
    else:
        date_from = now - timedelta(days=30)
        date_to = now

    bookings = await crud.get_bookings_for_report(
        session, date_from, date_to, trailer_id=trailer_id, user_id=user_id
    )
    if not bookings:
        logger.info("No bookings found for report")
        return None

    filter_lines = []
    if days is not None:
        filter_lines.append(f"Период: последние {days} дней")
    else:
        filter_lines.append(
            f"Период: {format_datetime(date_from, 'short')} - {format_datetime(date_to, 'short')}"
        )
    if trailer_id is not None:
        filter_lines.append(f"Прицеп: ID {trailer_id}")
    if user_id is not None:
        filter_lines.append(f"Клиент: ID {user_id}")

    df_bookings = pd.DataFrame(_booking_rows(bookings))
    df_payments = pd.DataFrame(
        _payment_rows(bookings),
        columns=["ID платежа", "ID брони", "Тип", "Сумма, ₽", "Статус", "Заказ", "ID в шлюзе", "Создан"],
    )
    df_summary = build_summary(bookings, "; ".join(filter_lines))

    REPORTS_DIR.mkdir(parents=True, exist_ok=True)
    parts = ["booking_report"]
    if days is not None:
        parts.append(f"{days}days")
    else:
        parts.append(f"{date_from.strftime('%Y%m%d')}-{date_to.strftime('%Y%m%d')}")
    if trailer_id:
        parts.append(f"trailer{trailer_id}")
    if user_id:
        parts.append(f"user{user_id}")
    parts.append(now.strftime("%Y%m%d_%H%M%S"))
    file_path = REPORTS_DIR / f"{'_'.join(parts)}.xlsx"

    with pd.ExcelWriter(file_path, engine="openpyxl") as writer:
        df_bookings.to_excel(writer, index=False, sheet_name="Брони")
        _autosize(writer.sheets["Брони"], df_bookings)

        df_payments.to_excel(writer, index=False, sheet_name="Платежи")
        _autosize(writer.sheets["Платежи"], df_payments)

        df_summary.to_excel(writer, index=False, sheet_name="Сводка")
        summary_sheet = writer.sheets["Сводка"]
        summary_sheet.column_dimensions["A"].width = 30
        summary_sheet.column_dimensions["B"].width = 40

    logger.info(f"Generated report: {file_path.name}, {len(bookings)} bookings")
    return file_path
