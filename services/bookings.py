"""Бронирование: расчёт цены, создание брони, смена статусов."""

from datetime import datetime, timedelta

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import crud
from database.models import Booking, BookingStatus
from services import payments
from services.availability import is_available
from services.exceptions import (
    ConflictError,
    ForbiddenError,
    InvalidRangeError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamError,
)
from services.lifecycle import apply_transition, can_transition
from services.notifications import notify_booking_created, notify_booking_status
from services.pricing import Quote, RentalType, calculate_quote, parse_rental_type, validate_range
from utils.helpers import ensure_utc, now_utc
from utils.logger import logger


def check_booking_policy(
    start_time: datetime,
    end_time: datetime,
    now: datetime | None = None,
) -> None:
    """Ограничения на период брони. Бросает InvalidRangeError."""
    duration = validate_range(start_time, end_time)
    now = now or now_utc()

    if start_time < now:
        raise InvalidRangeError("Start time cannot be in the past")
    if start_time > now + timedelta(days=settings.max_future_booking_days):
        raise InvalidRangeError(
            f"Bookings are accepted at most {settings.max_future_booking_days} days ahead"
        )
    if duration > timedelta(days=settings.max_rental_days):
        raise InvalidRangeError(f"Maximum rental period is {settings.max_rental_days} days")


async def get_quote(
    session: AsyncSession,
    trailer_id: int,
    start_time: datetime,
    end_time: datetime,
    rental_type: RentalType | str,
    pickup: bool = False,
) -> Quote:
    start_time, end_time = ensure_utc(start_time), ensure_utc(end_time)
    validate_range(start_time, end_time)

    trailer = await crud.get_trailer(session, trailer_id)
    if not trailer:
        raise NotFoundError("Trailer not found")

    return calculate_quote(trailer.rate_card, start_time, end_time, rental_type, pickup)


async def create_booking(
    session: AsyncSession,
    user_id: int,
    trailer_id: int,
    start_time: datetime,
    end_time: datetime,
    rental_type: RentalType | str,
    pickup: bool = False,
) -> Booking:
    """
    Создать бронь в статусе PENDING_PAYMENT.

    Строка прицепа блокируется до проверки доступности, поэтому из двух
    одновременных пересекающихся запросов проходит только один. Если
    второй всё же дошёл до вставки, его отсекает ограничение в базе.
    """
    rental_type = parse_rental_type(rental_type)
    start_time, end_time = ensure_utc(start_time), ensure_utc(end_time)
    check_booking_policy(start_time, end_time)

    trailer = await crud.get_trailer(session, trailer_id, for_update=True)
    if not trailer:
        raise NotFoundError("Trailer not found")

    if not await is_available(session, trailer_id, start_time, end_time):
        await session.rollback()
        raise ConflictError("Trailer is not available for the selected period")

    quote = calculate_quote(trailer.rate_card, start_time, end_time, rental_type, pickup)

    try:
        booking = await crud.create_booking(
            session,
            user_id=user_id,
            trailer_id=trailer_id,
            start_time=start_time,
            end_time=end_time,
            rental_type=rental_type,
            pickup=pickup,
            quote=quote,
        )
    except IntegrityError as e:
        await session.rollback()
        logger.warning(f"Booking overlap rejected by database for trailer {trailer_id}: {e.orig}")
        raise ConflictError("Trailer is not available for the selected period") from e
    except SQLAlchemyError:
        await session.rollback()
        raise

    booking = await crud.get_booking(session, booking.id, load_relations=True)
    notify_booking_created(booking.user, booking)
    return booking


async def update_status(
    session: AsyncSession,
    booking_id: int,
    new_status: BookingStatus | str,
) -> Booking:
    """
    Перевести бронь в новый статус.

    Закрытие снимает блокировку залога, отмена оплаченной брони возвращает
    оплату, отмена неоплаченной отменяет в шлюзе начатые платежи. Если шлюз
    не ответил, статус не меняется.
    """
    try:
        new_status = BookingStatus(new_status)
    except ValueError:
        raise InvalidTransitionError(f"Unknown booking status: {new_status}") from None

    booking = await crud.get_booking(session, booking_id, load_relations=True)
    if not booking:
        raise NotFoundError("Booking not found")

    previous = BookingStatus(booking.status)
    if not can_transition(previous, new_status):
        raise InvalidTransitionError(
            f"Cannot change booking status from {previous.value} to {new_status.value}"
        )

    try:
        if new_status == BookingStatus.CLOSED:
            await payments.release_deposit(session, booking)
        elif new_status == BookingStatus.CANCELLED and previous == BookingStatus.PAID:
            await payments.refund_rental(session, booking)
        elif new_status == BookingStatus.CANCELLED:
            await payments.cancel_pending_payments(session, booking)
    except UpstreamError:
        await session.rollback()
        logger.error(f"Booking {booking_id}: gateway failed, status stays {previous.value}")
        raise

    apply_transition(booking, new_status)
    await session.commit()

    logger.info(f"Booking {booking_id}: {previous.value} -> {new_status.value}")
    notify_booking_status(booking.user, booking)
    return booking


async def cancel_booking(
    session: AsyncSession,
    booking_id: int,
    user_id: int,
) -> Booking:
    """Отмена брони её владельцем."""
    booking = await crud.get_booking(session, booking_id)
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.user_id != user_id:
        raise ForbiddenError("Booking belongs to another user")

    return await update_status(session, booking_id, BookingStatus.CANCELLED)


async def list_user_bookings(session: AsyncSession, user_id: int) -> list[Booking]:
    return await crud.get_user_bookings(session, user_id)


async def get_user_booking(
    session: AsyncSession,
    booking_id: int,
    user_id: int,
) -> Booking:
    booking = await crud.get_booking(session, booking_id, load_relations=True)
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.user_id != user_id:
        raise ForbiddenError("Booking belongs to another user")
    return booking
