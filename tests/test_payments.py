"""Tests for payment flows: gateway status mapping, webhooks, refunds."""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from sqlalchemy.exc import IntegrityError

from database.models import BookingStatus, Payment, PaymentStatus, PaymentType, VerificationStatus
from services.exceptions import (
    AuthError,
    ConflictError,
    ForbiddenError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamError,
)
from services.payments import map_gateway_status
from services.tinkoff import GatewayResponse


@pytest.mark.parametrize("gateway_status,payment_type,expected", [
    ("NEW", PaymentType.RENTAL, PaymentStatus.PROCESSING),
    ("AUTHORIZED", PaymentType.RENTAL, PaymentStatus.PROCESSING),
    ("AUTHORIZED", PaymentType.DEPOSIT_HOLD, PaymentStatus.COMPLETED),
    ("CONFIRMED", PaymentType.RENTAL, PaymentStatus.COMPLETED),
    ("REJECTED", PaymentType.RENTAL, PaymentStatus.FAILED),
    ("CANCELED", PaymentType.DEPOSIT_HOLD, PaymentStatus.CANCELLED),
    ("REVERSED", PaymentType.DEPOSIT_HOLD, PaymentStatus.REFUNDED),
    ("confirmed", PaymentType.RENTAL, PaymentStatus.COMPLETED),
    ("SOMETHING_NEW", PaymentType.RENTAL, None),
    (None, PaymentType.RENTAL, None),
])
def test_map_gateway_status(gateway_status, payment_type, expected):
    assert map_gateway_status(gateway_status, payment_type) == expected


@pytest.mark.asyncio
async def test_create_payment_for_foreign_booking(mock_session, sample_booking):
    with patch("services.payments.crud.get_booking", return_value=sample_booking):
        from services.payments import create_payment

        with pytest.raises(ForbiddenError):
            await create_payment(mock_session, sample_booking.id, 999, PaymentType.RENTAL)


@pytest.mark.asyncio
async def test_deposit_requires_paid_booking(mock_session, sample_booking):
    with patch("services.payments.crud.get_booking", return_value=sample_booking):
        from services.payments import create_payment

        with pytest.raises(InvalidTransitionError):
            await create_payment(mock_session, sample_booking.id, sample_booking.user_id, "DEPOSIT_HOLD")


@pytest.mark.asyncio
async def test_create_payment_missing_booking(mock_session):
    with patch("services.payments.crud.get_booking", return_value=None):
        from services.payments import create_payment

        with pytest.raises(NotFoundError):
            await create_payment(mock_session, 1, 1, PaymentType.RENTAL)


@pytest.mark.asyncio
async def test_create_payment_requires_verification_when_enabled(mock_session, sample_booking):
    sample_booking.user.verification_status = VerificationStatus.PENDING

    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.settings.require_verification_for_payment", True):
        from services.payments import create_payment

        with pytest.raises(ForbiddenError):
            await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.RENTAL)


@pytest.mark.asyncio
async def test_create_rental_payment(mock_session, sample_booking, sample_payment):
    response = GatewayResponse(payment_id="777", status="NEW", payment_url="https://pay.example/777")

    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.tinkoff_client.init_payment", new_callable=AsyncMock, return_value=response) as mock_init, \
         patch("services.payments.crud.create_payment", return_value=sample_payment) as mock_create:
        from services.payments import create_payment

        result = await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.RENTAL)

    assert result is sample_payment
    init_kwargs = mock_init.call_args.kwargs
    assert init_kwargs["amount_rub"] == sample_booking.total
    assert init_kwargs["two_stage"] is False
    assert init_kwargs["order_id"].startswith(f"{sample_booking.id}-R-")

    create_kwargs = mock_create.call_args.kwargs
    assert create_kwargs["gateway_payment_id"] == "777"
    assert create_kwargs["amount"] == sample_booking.total


@pytest.mark.asyncio
async def test_create_deposit_hold_is_two_stage(mock_session, sample_booking, sample_payment):
    sample_booking.status = BookingStatus.PAID
    response = GatewayResponse(payment_id="778", status="NEW")

    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.tinkoff_client.init_payment", new_callable=AsyncMock, return_value=response) as mock_init, \
         patch("services.payments.crud.create_payment", return_value=sample_payment) as mock_create:
        from services.payments import create_payment

        await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.DEPOSIT_HOLD)

    assert mock_init.call_args.kwargs["two_stage"] is True
    assert mock_create.call_args.kwargs["amount"] == sample_booking.deposit


@pytest.mark.asyncio
async def test_gateway_failure_creates_no_payment(mock_session, sample_booking):
    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.tinkoff_client.init_payment", new_callable=AsyncMock,
               side_effect=UpstreamError("timeout")) as mock_init, \
         patch("services.payments.crud.create_payment") as mock_create:
        from services.payments import create_payment

        with pytest.raises(UpstreamError):
            await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.RENTAL)

    mock_init.assert_awaited_once()
    mock_create.assert_not_called()


@pytest.mark.asyncio
async def test_confirmed_rental_marks_booking_paid(mock_session, sample_payment, sample_user):
    with patch("services.payments.crud.get_user", return_value=sample_user), \
         patch("services.payments.notify_payment_completed") as mock_notify:
        from services.payments import apply_gateway_status

        changed = await apply_gateway_status(mock_session, sample_payment, "CONFIRMED")

    assert changed is True
    assert sample_payment.status == PaymentStatus.COMPLETED
    assert sample_payment.booking.status == BookingStatus.PAID
    mock_session.commit.assert_awaited_once()
    mock_notify.assert_called_once_with(sample_user, sample_payment)


@pytest.mark.asyncio
async def test_authorized_hold_activates_booking(mock_session, sample_payment, sample_user):
    sample_payment.type = PaymentType.DEPOSIT_HOLD
    sample_payment.booking.status = BookingStatus.PAID

    with patch("services.payments.crud.get_user", return_value=sample_user), \
         patch("services.payments.notify_payment_completed"):
        from services.payments import apply_gateway_status

        await apply_gateway_status(mock_session, sample_payment, "AUTHORIZED")

    assert sample_payment.status == PaymentStatus.COMPLETED
    assert sample_payment.booking.status == BookingStatus.ACTIVE


@pytest.mark.asyncio
async def test_repeated_status_is_noop(mock_session, sample_payment):
    sample_payment.status = PaymentStatus.COMPLETED

    from services.payments import apply_gateway_status

    changed = await apply_gateway_status(mock_session, sample_payment, "CONFIRMED")

    assert changed is False
    mock_session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_late_failure_does_not_override_completion(mock_session, sample_payment):
    sample_payment.status = PaymentStatus.COMPLETED

    from services.payments import apply_gateway_status

    changed = await apply_gateway_status(mock_session, sample_payment, "REJECTED")

    assert changed is False
    assert sample_payment.status == PaymentStatus.COMPLETED


@pytest.mark.asyncio
async def test_notification_with_bad_token_rejected(mock_session):
    with patch("services.payments.tinkoff_client.verify_notification", return_value=False), \
         patch("services.payments.crud.get_payment_by_gateway_id") as mock_lookup:
        from services.payments import handle_notification

        with pytest.raises(AuthError):
            await handle_notification(mock_session, {"PaymentId": 777, "Status": "CONFIRMED", "Token": "bad"})

    mock_lookup.assert_not_called()


@pytest.mark.asyncio
async def test_notification_falls_back_to_order_id(mock_session, sample_payment):
    with patch("services.payments.tinkoff_client.verify_notification", return_value=True), \
         patch("services.payments.crud.get_payment_by_gateway_id", return_value=None), \
         patch("services.payments.crud.get_payment_by_order_id", return_value=sample_payment) as mock_by_order, \
         patch("services.payments.apply_gateway_status", new_callable=AsyncMock) as mock_apply:
        from services.payments import handle_notification

        result = await handle_notification(
            mock_session,
            {"PaymentId": 1, "OrderId": sample_payment.order_id, "Status": "CONFIRMED", "Token": "x"},
        )

    assert result is sample_payment
    mock_by_order.assert_awaited_once_with(mock_session, sample_payment.order_id)
    mock_apply.assert_awaited_once_with(mock_session, sample_payment, "CONFIRMED")


@pytest.mark.asyncio
async def test_notification_for_unknown_payment(mock_session):
    with patch("services.payments.tinkoff_client.verify_notification", return_value=True), \
         patch("services.payments.crud.get_payment_by_gateway_id", return_value=None), \
         patch("services.payments.crud.get_payment_by_order_id", return_value=None):
        from services.payments import handle_notification

        with pytest.raises(NotFoundError):
            await handle_notification(mock_session, {"PaymentId": 1, "OrderId": "x", "Token": "t"})


@pytest.mark.asyncio
async def test_refresh_skips_final_payment(mock_session, sample_payment):
    sample_payment.status = PaymentStatus.COMPLETED

    with patch("services.payments.crud.get_payment", return_value=sample_payment), \
         patch("services.payments.tinkoff_client.get_state", new_callable=AsyncMock) as mock_state:
        from services.payments import refresh_payment_status

        result = await refresh_payment_status(mock_session, sample_payment.id, sample_payment.user_id)

    assert result is sample_payment
    mock_state.assert_not_awaited()


@pytest.mark.asyncio
async def test_refresh_foreign_payment(mock_session, sample_payment):
    with patch("services.payments.crud.get_payment", return_value=sample_payment):
        from services.payments import refresh_payment_status

        with pytest.raises(ForbiddenError):
            await refresh_payment_status(mock_session, sample_payment.id, user_id=999)


@pytest.mark.asyncio
async def test_refresh_retries_gateway(mock_session, sample_payment):
    responses = [UpstreamError("timeout"), GatewayResponse(payment_id="777", status="CONFIRMED")]

    with patch("services.payments.crud.get_payment", return_value=sample_payment), \
         patch("services.payments.tinkoff_client.get_state", new_callable=AsyncMock, side_effect=responses) as mock_state, \
         patch("services.payments.asyncio.sleep", new_callable=AsyncMock) as mock_sleep, \
         patch("services.payments.apply_gateway_status", new_callable=AsyncMock) as mock_apply:
        from services.payments import refresh_payment_status

        await refresh_payment_status(mock_session, sample_payment.id)

    assert mock_state.await_count == 2
    mock_sleep.assert_awaited_once()
    mock_apply.assert_awaited_once_with(mock_session, sample_payment, "CONFIRMED")


@pytest.mark.asyncio
async def test_refund_rental_cancels_in_gateway(mock_session, sample_booking, sample_payment):
    sample_payment.status = PaymentStatus.COMPLETED

    with patch("services.payments.crud.get_booking_payment", return_value=sample_payment), \
         patch("services.payments.tinkoff_client.cancel", new_callable=AsyncMock) as mock_cancel:
        from services.payments import refund_rental

        result = await refund_rental(mock_session, sample_booking)

    assert result is sample_payment
    assert sample_payment.status == PaymentStatus.REFUNDED
    mock_cancel.assert_awaited_once_with(sample_payment.gateway_payment_id, amount_rub=sample_payment.amount)
    mock_session.commit.assert_not_awaited()


@pytest.mark.asyncio
async def test_release_deposit_without_hold(mock_session, sample_booking):
    with patch("services.payments.crud.get_booking_payment", return_value=None), \
         patch("services.payments.tinkoff_client.cancel", new_callable=AsyncMock) as mock_cancel:
        from services.payments import release_deposit

        assert await release_deposit(mock_session, sample_booking) is None

    mock_cancel.assert_not_awaited()


def _payment(payment_id, booking, status, payment_type=PaymentType.RENTAL, gateway_payment_id="900"):
    payment = MagicMock(spec=Payment)
    payment.id = payment_id
    payment.booking_id = booking.id
    payment.booking = booking
    payment.user_id = booking.user_id
    payment.type = payment_type
    payment.amount = booking.total
    payment.status = status
    payment.gateway_payment_id = gateway_payment_id
    return payment


# ============== DUPLICATE PAYMENTS ==============

@pytest.mark.asyncio
async def test_create_payment_reuses_in_flight_payment(mock_session, sample_booking, sample_payment):
    """Второе нажатие «Оплатить» не создаёт новый платёж в шлюзе."""
    sample_payment.status = PaymentStatus.PROCESSING
    sample_booking.payments = [sample_payment]

    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.tinkoff_client.init_payment", new_callable=AsyncMock) as mock_init, \
         patch("services.payments.crud.create_payment") as mock_create:
        from services.payments import create_payment

        result = await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.RENTAL)

    assert result is sample_payment
    mock_init.assert_not_awaited()
    mock_create.assert_not_called()


@pytest.mark.asyncio
async def test_create_payment_ignores_other_type_and_failed_payments(mock_session, sample_booking, sample_payment):
    sample_booking.status = BookingStatus.PAID
    sample_booking.payments = [
        _payment(1, sample_booking, PaymentStatus.COMPLETED),
        _payment(2, sample_booking, PaymentStatus.FAILED, PaymentType.DEPOSIT_HOLD),
    ]
    response = GatewayResponse(payment_id="779", status="NEW")

    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.tinkoff_client.init_payment", new_callable=AsyncMock, return_value=response) as mock_init, \
         patch("services.payments.crud.create_payment", return_value=sample_payment):
        from services.payments import create_payment

        await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.DEPOSIT_HOLD)

    mock_init.assert_awaited_once()


@pytest.mark.asyncio
async def test_create_payment_rejects_already_completed_type(mock_session, sample_booking):
    sample_booking.status = BookingStatus.PAID
    sample_booking.payments = [_payment(1, sample_booking, PaymentStatus.COMPLETED, PaymentType.DEPOSIT_HOLD)]

    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.tinkoff_client.init_payment", new_callable=AsyncMock) as mock_init:
        from services.payments import create_payment

        with pytest.raises(InvalidTransitionError):
            await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.DEPOSIT_HOLD)

    mock_init.assert_not_awaited()


@pytest.mark.asyncio
async def test_concurrent_duplicate_payment_becomes_conflict(mock_session, sample_booking):
    """Второй параллельный платёж отсекается уникальным индексом."""
    response = GatewayResponse(payment_id="780", status="NEW")
    duplicate = IntegrityError("INSERT INTO payments", {}, Exception("uq_payments_booking_type_open"))

    with patch("services.payments.crud.get_booking", return_value=sample_booking), \
         patch("services.payments.tinkoff_client.init_payment", new_callable=AsyncMock, return_value=response), \
         patch("services.payments.crud.create_payment", side_effect=duplicate):
        from services.payments import create_payment

        with pytest.raises(ConflictError):
            await create_payment(mock_session, sample_booking.id, sample_booking.user_id, PaymentType.RENTAL)

    mock_session.rollback.assert_awaited_once()


# ============== LATE COMPLETIONS ==============

@pytest.mark.asyncio
async def test_late_confirmation_on_cancelled_booking_is_refunded(mock_session, sample_payment, sample_user):
    sample_payment.status = PaymentStatus.PROCESSING
    sample_payment.booking.status = BookingStatus.CANCELLED
    refund = GatewayResponse(payment_id="777", status="REFUNDED")

    with patch("services.payments.tinkoff_client.cancel", new_callable=AsyncMock, return_value=refund) as mock_cancel, \
         patch("services.payments.crud.get_user", return_value=sample_user), \
         patch("services.payments.notify_payment_completed") as mock_completed, \
         patch("services.payments.notify_payment_refunded") as mock_refunded:
        from services.payments import apply_gateway_status

        changed = await apply_gateway_status(mock_session, sample_payment, "CONFIRMED")

    assert changed is True
    assert sample_payment.status == PaymentStatus.REFUNDED
    assert sample_payment.booking.status == BookingStatus.CANCELLED
    mock_cancel.assert_awaited_once_with(sample_payment.gateway_payment_id, amount_rub=sample_payment.amount)
    mock_session.commit.assert_awaited_once()
    mock_completed.assert_not_called()
    mock_refunded.assert_called_once_with(sample_user, sample_payment)


@pytest.mark.asyncio
async def test_second_rental_payment_on_paid_booking_is_refunded(mock_session, sample_booking, sample_user):
    sample_booking.status = BookingStatus.PAID
    second = _payment(501, sample_booking, PaymentStatus.PENDING, gateway_payment_id="901")

    with patch("services.payments.tinkoff_client.cancel", new_callable=AsyncMock) as mock_cancel, \
         patch("services.payments.crud.get_user", return_value=sample_user), \
         patch("services.payments.notify_payment_refunded"):
        from services.payments import apply_gateway_status

        await apply_gateway_status(mock_session, second, "CONFIRMED")

    assert second.status == PaymentStatus.REFUNDED
    assert sample_booking.status == BookingStatus.PAID
    mock_cancel.assert_awaited_once_with("901", amount_rub=second.amount)


@pytest.mark.asyncio
async def test_failed_refund_of_late_confirmation_is_retried_later(mock_session, sample_payment):
    sample_payment.status = PaymentStatus.PROCESSING
    sample_payment.booking.status = BookingStatus.CANCELLED

    with patch("services.payments.tinkoff_client.cancel", new_callable=AsyncMock,
               side_effect=UpstreamError("timeout")):
        from services.payments import apply_gateway_status

        with pytest.raises(UpstreamError):
            await apply_gateway_status(mock_session, sample_payment, "CONFIRMED")

    mock_session.rollback.assert_awaited_once()
    mock_session.commit.assert_not_awaited()


# ============== CANCELLATION OF STARTED PAYMENTS ==============

@pytest.mark.asyncio
async def test_cancel_pending_payments_cancels_in_flight_only(mock_session, sample_booking):
    in_flight = _payment(1, sample_booking, PaymentStatus.PROCESSING, gateway_payment_id="901")
    paid_meanwhile = _payment(2, sample_booking, PaymentStatus.PENDING, gateway_payment_id="902")
    no_gateway = _payment(3, sample_booking, PaymentStatus.PENDING, gateway_payment_id=None)
    failed = _payment(4, sample_booking, PaymentStatus.FAILED, gateway_payment_id="904")
    sample_booking.payments = [in_flight, paid_meanwhile, no_gateway, failed]

    responses = {
        "901": GatewayResponse(payment_id="901", status="CANCELED"),
        "902": GatewayResponse(payment_id="902", status="REFUNDED"),
    }

    async def fake_cancel(gateway_payment_id, amount_rub=None):
        return responses[gateway_payment_id]

    with patch("services.payments.tinkoff_client.cancel", side_effect=fake_cancel) as mock_cancel:
        from services.payments import cancel_pending_payments

        result = await cancel_pending_payments(mock_session, sample_booking)

    assert result == [in_flight, paid_meanwhile, no_gateway]
    assert in_flight.status == PaymentStatus.CANCELLED
    assert paid_meanwhile.status == PaymentStatus.REFUNDED
    assert no_gateway.status == PaymentStatus.CANCELLED
    assert failed.status == PaymentStatus.FAILED
    assert mock_cancel.await_count == 2
    mock_session.commit.assert_not_awaited()
