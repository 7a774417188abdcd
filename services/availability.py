"""Проверка доступности прицепа на период."""

from datetime import datetime
from typing import Iterable

from sqlalchemy.ext.asyncio import AsyncSession

from database import crud
from database.models import Booking, BookingStatus, TrailerStatus

# Брони в этих статусах не занимают прицеп
INACTIVE_STATUSES = frozenset({BookingStatus.CLOSED, BookingStatus.CANCELLED})


def intervals_overlap(
    a_start: datetime,
    a_end: datetime,
    b_start: datetime,
    b_end: datetime,
) -> bool:
    """Пересечение замкнутых интервалов: касание концами тоже конфликт."""
    return a_start <= b_end and a_end >= b_start


def find_conflicts(
    bookings: Iterable[Booking],
    start_time: datetime,
    end_time: datetime,
) -> list[Booking]:
    """Брони, которые пересекаются с [start_time, end_time]."""
    return [
        booking for booking in bookings
        if booking.status not in INACTIVE_STATUSES
        and intervals_overlap(booking.start_time, booking.end_time, start_time, end_time)
    ]


async def is_available(
    session: AsyncSession,
    trailer_id: int,
    start_time: datetime,
    end_time: datetime,
    lock: bool = False,
) -> bool:
    """
    Свободен ли прицеп на период.

    Возвращает False, если прицепа нет или он не в статусе AVAILABLE.
    lock=True блокирует строку прицепа до конца транзакции.
    """
    trailer = await crud.get_trailer(session, trailer_id, for_update=lock)
    if not trailer or trailer.status != TrailerStatus.AVAILABLE:
        return False

    bookings = await crud.get_trailer_bookings_in_window(
        session, trailer_id, start_time, end_time
    )
    return not find_conflicts(bookings, start_time, end_time)
