"""Жизненный цикл брони и платежа: допустимые переходы статусов."""

from database.models import Booking, BookingStatus, PaymentStatus
from services.exceptions import InvalidTransitionError
from utils.helpers import now_utc


BOOKING_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.PENDING_PAYMENT: frozenset({BookingStatus.PAID, BookingStatus.CANCELLED}),
    BookingStatus.PAID: frozenset({BookingStatus.ACTIVE, BookingStatus.CANCELLED}),
    BookingStatus.ACTIVE: frozenset({BookingStatus.RETURNED}),
    BookingStatus.RETURNED: frozenset({BookingStatus.CLOSED}),
    BookingStatus.CLOSED: frozenset(),
    BookingStatus.CANCELLED: frozenset(),
}

# Поле с временем перехода в статус
BOOKING_TIMESTAMPS: dict[BookingStatus, str] = {
    BookingStatus.PAID: "paid_at",
    BookingStatus.ACTIVE: "activated_at",
    BookingStatus.RETURNED: "returned_at",
    BookingStatus.CLOSED: "closed_at",
    BookingStatus.CANCELLED: "cancelled_at",
}

PAYMENT_TRANSITIONS: dict[PaymentStatus, frozenset[PaymentStatus]] = {
    PaymentStatus.PENDING: frozenset({
        PaymentStatus.PROCESSING,
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.PROCESSING: frozenset({
        PaymentStatus.COMPLETED,
        PaymentStatus.FAILED,
        PaymentStatus.CANCELLED,
    }),
    PaymentStatus.COMPLETED: frozenset({PaymentStatus.REFUNDED}),
    PaymentStatus.FAILED: frozenset(),
    PaymentStatus.CANCELLED: frozenset(),
    PaymentStatus.REFUNDED: frozenset(),
}


def can_transition(current: BookingStatus, new: BookingStatus) -> bool:
    return new in BOOKING_TRANSITIONS.get(BookingStatus(current), frozenset())


def can_transition_payment(current: PaymentStatus, new: PaymentStatus) -> bool:
    return new in PAYMENT_TRANSITIONS.get(PaymentStatus(current), frozenset())


def apply_transition(booking: Booking, new_status: BookingStatus) -> Booking:
    """
    Перевести бронь в новый статус без коммита.

    Проставляет время перехода и updated_at. Бросает InvalidTransitionError,
    если переход не предусмотрен.
    """
    new_status = BookingStatus(new_status)
    if not can_transition(booking.status, new_status):
        raise InvalidTransitionError(
            f"Cannot change booking status from {BookingStatus(booking.status).value} to {new_status.value}"
        )

    now = now_utc()
    booking.status = new_status
    booking.updated_at = now
    setattr(booking, BOOKING_TIMESTAMPS[new_status], now)
    return booking
