"""Tests for the Excel booking report."""

import pytest
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace
from unittest.mock import AsyncMock, patch

import pandas as pd

from database.models import BookingStatus, PaymentStatus, PaymentType
from reports.generator import build_summary, generate_report

START = datetime(2026, 5, 1, 9, 0, tzinfo=timezone.utc)


def _payment(payment_id, payment_type, status, amount):
    return SimpleNamespace(
        id=payment_id, type=payment_type, status=status, amount=amount,
        order_id=f"order-{payment_id}", gateway_payment_id=None, created_at=START,
    )


def _booking(booking_id, user_id, status, payments):
    return SimpleNamespace(
        id=booking_id,
        user_id=user_id,
        user=SimpleNamespace(full_name=f"User {user_id}", telegram_id=1000 + user_id, phone_number=None),
        trailer_id=10,
        trailer=SimpleNamespace(name="Прицеп 2 м"),
        rental_type="HOURLY",
        status=status,
        start_time=START,
        end_time=START + timedelta(hours=3),
        base_cost=600,
        additional_cost=0,
        total=600,
        deposit=5000,
        created_at=START - timedelta(days=1),
        paid_at=None,
        returned_at=None,
        payments=payments,
    )


@pytest.fixture
def bookings():
    return [
        _booking(1, 1, BookingStatus.CLOSED, [
            _payment(1, PaymentType.RENTAL, PaymentStatus.COMPLETED, 600),
            _payment(2, PaymentType.DEPOSIT_HOLD, PaymentStatus.REFUNDED, 5000),
        ]),
        _booking(2, 1, BookingStatus.CANCELLED, [
            _payment(3, PaymentType.RENTAL, PaymentStatus.FAILED, 600),
        ]),
        _booking(3, 2, BookingStatus.PENDING_PAYMENT, []),
    ]


def test_summary_counts_only_completed_rental_revenue(bookings):
    summary = build_summary(bookings, "Период: последние 30 дней")
    values = dict(zip(summary["Метрика"], summary["Значение"]))

    assert values["Всего броней"] == 3
    assert values["Закрытых"] == 1
    assert values["Отменённых"] == 1
    assert values["Ожидают оплаты"] == 1
    assert values["Выручка по аренде, ₽"] == 600
    assert values["Уникальных клиентов"] == 2


@pytest.mark.asyncio
async def test_generate_report_writes_three_sheets(mock_session, bookings, tmp_path):
    with patch("reports.generator.REPORTS_DIR", tmp_path), \
         patch("reports.generator.crud.get_bookings_for_report", new_callable=AsyncMock, return_value=bookings):
        file_path = await generate_report(mock_session, days=30, trailer_id=10)

    assert file_path.exists()
    assert "trailer10" in file_path.name

    sheets = pd.read_excel(file_path, sheet_name=None)
    assert set(sheets) == {"Брони", "Платежи", "Сводка"}
    assert len(sheets["Брони"]) == 3
    assert len(sheets["Платежи"]) == 3


@pytest.mark.asyncio
async def test_generate_report_empty_period(mock_session, tmp_path):
    with patch("reports.generator.REPORTS_DIR", tmp_path), \
         patch("reports.generator.crud.get_bookings_for_report", new_callable=AsyncMock, return_value=[]):
        assert await generate_report(mock_session, days=7) is None
