"""Платежи по броням: оплата аренды, блокировка залога, вебхуки, возвраты."""

import asyncio
import uuid
from typing import Any

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from config import settings
from database import crud
from database.models import (
    Booking,
    BookingStatus,
    Payment,
    PaymentStatus,
    PaymentType,
    VerificationStatus,
)
from services.exceptions import (
    AuthError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamError,
)
from services.lifecycle import apply_transition, can_transition, can_transition_payment
from services.notifications import notify_payment_completed, notify_payment_refunded
from services.tinkoff import GatewayResponse, tinkoff_client
from utils.helpers import now_utc
from utils.logger import logger

# Статусы шлюза → статус платежа. AUTHORIZED зависит от типа платежа.
GATEWAY_STATUS_MAP: dict[str, PaymentStatus] = {
    "NEW": PaymentStatus.PROCESSING,
    "FORM_SHOWED": PaymentStatus.PROCESSING,
    "AUTHORIZING": PaymentStatus.PROCESSING,
    "AUTHORIZED": PaymentStatus.PROCESSING,
    "CONFIRMING": PaymentStatus.PROCESSING,
    "CONFIRMED": PaymentStatus.COMPLETED,
    "REJECTED": PaymentStatus.FAILED,
    "AUTH_FAIL": PaymentStatus.FAILED,
    "CANCELED": PaymentStatus.CANCELLED,
    "CANCELLED": PaymentStatus.CANCELLED,
    "DEADLINE_EXPIRED": PaymentStatus.CANCELLED,
    "REFUNDED": PaymentStatus.REFUNDED,
    "PARTIAL_REFUNDED": PaymentStatus.REFUNDED,
    "REVERSED": PaymentStatus.REFUNDED,
}

FINAL_PAYMENT_STATUSES = frozenset({
    PaymentStatus.COMPLETED,
    PaymentStatus.FAILED,
    PaymentStatus.CANCELLED,
    PaymentStatus.REFUNDED,
})

IN_FLIGHT_PAYMENT_STATUSES = frozenset({PaymentStatus.PENDING, PaymentStatus.PROCESSING})

# Бронь, которую можно оплатить платежом данного типа
REQUIRED_BOOKING_STATUS = {
    PaymentType.RENTAL: BookingStatus.PENDING_PAYMENT,
    PaymentType.DEPOSIT_HOLD: BookingStatus.PAID,
}

# Куда переходит бронь после завершения платежа
BOOKING_STATUS_ON_COMPLETE = {
    PaymentType.RENTAL: BookingStatus.PAID,
    PaymentType.DEPOSIT_HOLD: BookingStatus.ACTIVE,
}

STATUS_POLL_ATTEMPTS = 3
STATUS_POLL_BASE_DELAY = 0.5


def map_gateway_status(gateway_status: str | None, payment_type: PaymentType) -> PaymentStatus | None:
    """None для неизвестного статуса шлюза."""
    if not gateway_status:
        return None
    gateway_status = gateway_status.upper()
    if gateway_status == "AUTHORIZED" and payment_type == PaymentType.DEPOSIT_HOLD:
        # Для залога блокировка средств и есть успешный исход
        return PaymentStatus.COMPLETED
    return GATEWAY_STATUS_MAP.get(gateway_status)


def _new_order_id(booking_id: int, payment_type: PaymentType) -> str:
    prefix = "R" if payment_type == PaymentType.RENTAL else "D"
    return f"{booking_id}-{prefix}-{uuid.uuid4().hex[:12]}"


async def create_payment(
    session: AsyncSession,
    booking_id: int,
    user_id: int,
    payment_type: PaymentType | str,
) -> Payment:
    """
    Создать платёж в шлюзе и сохранить его в статусе PENDING.

    Запрос Init не повторяется: повтор мог бы создать второй платёж.
    """
    try:
        payment_type = PaymentType(payment_type)
    except ValueError:
        raise InvalidTransitionError(f"Unsupported payment type: {payment_type}") from None

    booking = await crud.get_booking(session, booking_id, load_relations=True)
    if not booking:
        raise NotFoundError("Booking not found")
    if booking.user_id != user_id:
        raise ForbiddenError("Booking belongs to another user")

    required = REQUIRED_BOOKING_STATUS[payment_type]
    if booking.status != required:
        raise InvalidTransitionError(
            f"{payment_type.value} payment requires booking in {required.value}, "
            f"got {BookingStatus(booking.status).value}"
        )

    if settings.require_verification_for_payment and (
        booking.user.verification_status != VerificationStatus.VERIFIED
    ):
        raise ForbiddenError("Documents must be verified before payment")

    # Повторное нажатие «Оплатить» получает тот же платёж
    for existing in booking.payments:
        if existing.type != payment_type:
            continue
        if existing.status in IN_FLIGHT_PAYMENT_STATUSES:
            logger.info(f"Reusing in-flight payment {existing.id} for booking {booking.id}")
            return existing
        if existing.status == PaymentStatus.COMPLETED:
            raise InvalidTransitionError(
                f"{payment_type.value} payment for booking {booking.id} is already completed"
            )

    amount = booking.total if payment_type == PaymentType.RENTAL else booking.deposit
    order_id = _new_order_id(booking.id, payment_type)
    trailer_name = booking.trailer.name if booking.trailer else f"#{booking.trailer_id}"
    description = (
        f"Аренда прицепа {trailer_name}, бронь #{booking.id}"
        if payment_type == PaymentType.RENTAL
        else f"Залог за прицеп {trailer_name}, бронь #{booking.id}"
    )

    response = await tinkoff_client.init_payment(
        order_id=order_id,
        amount_rub=amount,
        description=description,
        customer_key=str(booking.user.telegram_id),
        data={"bookingId": str(booking.id), "type": payment_type.value},
        two_stage=payment_type == PaymentType.DEPOSIT_HOLD,
    )

    try:
        return await crud.create_payment(
            session,
            booking_id=booking.id,
            user_id=user_id,
            payment_type=payment_type,
            amount=amount,
            order_id=order_id,
            gateway_payment_id=response.payment_id,
            payment_url=response.payment_url,
        )
    except IntegrityError as e:
        # Параллельный запрос уже сохранил платёж этого типа (uq_payments_booking_type_open)
        await session.rollback()
        logger.warning(
            f"Duplicate {payment_type.value} payment for booking {booking.id} rejected: {e.orig}"
        )
        raise ConflictError("Payment for this booking is already in progress") from e


async def apply_gateway_status(
    session: AsyncSession,
    payment: Payment,
    gateway_status: str | None,
) -> bool:
    """
    Применить статус шлюза к платежу и брони.

    Повторный или запрещённый переход игнорируется. Возвращает True,
    если статус платежа изменился.
    """
    new_status = map_gateway_status(gateway_status, PaymentType(payment.type))
    if new_status is None:
        logger.warning(f"Unknown gateway status {gateway_status!r} for payment {payment.id}")
        return False

    current = PaymentStatus(payment.status)
    if new_status == current:
        return False
    if not can_transition_payment(current, new_status):
        logger.warning(
            f"Ignoring payment {payment.id} transition {current.value} -> {new_status.value}"
        )
        return False

    payment.status = new_status
    payment.updated_at = now_utc()

    booking = payment.booking
    if new_status == PaymentStatus.COMPLETED and booking is not None:
        target = BOOKING_STATUS_ON_COMPLETE[PaymentType(payment.type)]
        if can_transition(booking.status, target):
            apply_transition(booking, target)
        else:
            # Бронь отменена или уже оплачена: деньги возвращаются клиенту
            logger.warning(
                f"Payment {payment.id} completed but booking {booking.id} "
                f"is {BookingStatus(booking.status).value}, not moving to {target.value}; refunding"
            )
            try:
                await tinkoff_client.cancel(payment.gateway_payment_id, amount_rub=payment.amount)
            except UpstreamError:
                # Шлюз повторит уведомление, планировщик повторит сверку
                await session.rollback()
                logger.error(f"Payment {payment.id}: refund of unexpected payment failed")
                raise
            payment.status = PaymentStatus.REFUNDED
            new_status = PaymentStatus.REFUNDED

    await session.commit()
    logger.info(f"Payment {payment.id}: {current.value} -> {new_status.value} (gateway {gateway_status})")

    if new_status in (PaymentStatus.COMPLETED, PaymentStatus.REFUNDED):
        user = await crud.get_user(session, payment.user_id)
        if user and new_status == PaymentStatus.COMPLETED:
            notify_payment_completed(user, payment)
        elif user:
            notify_payment_refunded(user, payment)

    return True


async def handle_notification(session: AsyncSession, payload: dict[str, Any]) -> Payment:
    """Уведомление шлюза. Повторная доставка того же статуса ничего не меняет."""
    if not tinkoff_client.verify_notification(payload):
        logger.warning(f"Rejected gateway notification with bad token: OrderId={payload.get('OrderId')}")
        raise AuthError("Invalid notification token")

    payment = None
    gateway_payment_id = payload.get("PaymentId")
    if gateway_payment_id is not None:
        payment = await crud.get_payment_by_gateway_id(session, str(gateway_payment_id))
    if payment is None and payload.get("OrderId"):
        payment = await crud.get_payment_by_order_id(session, str(payload["OrderId"]))
    if payment is None:
        raise NotFoundError("Payment not found")

    await apply_gateway_status(session, payment, payload.get("Status"))
    return payment


async def _get_state_with_retry(gateway_payment_id: str) -> GatewayResponse:
    delay = STATUS_POLL_BASE_DELAY
    for attempt in range(1, STATUS_POLL_ATTEMPTS + 1):
        try:
            return await tinkoff_client.get_state(gateway_payment_id)
        except UpstreamError as e:
            if attempt == STATUS_POLL_ATTEMPTS:
                raise
            logger.warning(
                f"GetState for {gateway_payment_id} failed (attempt {attempt}): {e}, retry in {delay}s"
            )
            await asyncio.sleep(delay)
            delay *= 2


async def refresh_payment_status(
    session: AsyncSession,
    payment_id: int,
    user_id: int | None = None,
) -> Payment:
    """
    Запросить статус платежа у шлюза.

    user_id=None: системный вызов (планировщик), без проверки владельца.
    """
    payment = await crud.get_payment(session, payment_id)
    if not payment:
        raise NotFoundError("Payment not found")
    if user_id is not None and payment.user_id != user_id:
        raise ForbiddenError("Payment belongs to another user")

    if payment.status in FINAL_PAYMENT_STATUSES or not payment.gateway_payment_id:
        return payment

    response = await _get_state_with_retry(payment.gateway_payment_id)
    await apply_gateway_status(session, payment, response.status)
    return payment


async def _cancel_completed(
    session: AsyncSession,
    booking: Booking,
    payment_type: PaymentType,
) -> Payment | None:
    payment = await crud.get_booking_payment(
        session, booking.id, payment_type, PaymentStatus.COMPLETED
    )
    if not payment:
        logger.info(f"No completed {payment_type.value} payment for booking {booking.id}")
        return None

    await tinkoff_client.cancel(payment.gateway_payment_id, amount_rub=payment.amount)

    payment.status = PaymentStatus.REFUNDED
    payment.updated_at = now_utc()
    logger.info(f"Payment {payment.id} ({payment_type.value}) refunded for booking {booking.id}")
    return payment


async def release_deposit(session: AsyncSession, booking: Booking) -> Payment | None:
    """Снять блокировку залога. Коммит делает вызывающий код."""
    return await _cancel_completed(session, booking, PaymentType.DEPOSIT_HOLD)


async def refund_rental(session: AsyncSession, booking: Booking) -> Payment | None:
    """Вернуть оплату аренды. Коммит делает вызывающий код."""
    return await _cancel_completed(session, booking, PaymentType.RENTAL)


async def cancel_pending_payments(session: AsyncSession, booking: Booking) -> list[Payment]:
    """
    Отменить в шлюзе незавершённые платежи брони перед её отменой.

    Cancel в шлюзе срабатывает в любом состоянии: если клиент успел
    оплатить, деньги возвращаются. Коммит делает вызывающий код.
    """
    cancelled = []
    for payment in booking.payments:
        if payment.status not in IN_FLIGHT_PAYMENT_STATUSES:
            continue

        status = PaymentStatus.CANCELLED
        if payment.gateway_payment_id:
            response = await tinkoff_client.cancel(payment.gateway_payment_id)
            if map_gateway_status(response.status, PaymentType(payment.type)) == PaymentStatus.REFUNDED:
                status = PaymentStatus.REFUNDED

        payment.status = status
        payment.updated_at = now_utc()
        cancelled.append(payment)
        logger.info(f"Payment {payment.id} {status.value} together with booking {booking.id}")

    return cancelled
