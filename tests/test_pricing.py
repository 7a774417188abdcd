"""Tests for the rental price calculator."""

import pytest
from datetime import datetime, timedelta, timezone

from services.exceptions import InvalidRangeError
from services.pricing import RateCard, RentalType, calculate_quote, validate_range

START = datetime(2026, 5, 1, 10, 0, tzinfo=timezone.utc)
CARD = RateCard()


def test_hourly_within_minimum_charges_min_cost():
    quote = calculate_quote(CARD, START, START + timedelta(hours=2), RentalType.HOURLY)

    assert quote.hours == 2
    assert quote.base_cost == 500
    assert quote.total == 500
    assert quote.deposit == 5000


def test_hourly_partial_hour_rounds_up():
    """30 minutes is still one started hour, charged at the minimum."""
    quote = calculate_quote(CARD, START, START + timedelta(minutes=30), "HOURLY")

    assert quote.hours == 1
    assert quote.base_cost == 500


def test_hourly_extra_hours_charged_per_started_hour():
    quote = calculate_quote(CARD, START, START + timedelta(hours=4, minutes=1), RentalType.HOURLY)

    # 5 started hours: minimum covers 2, three extra at 100
    assert quote.hours == 5
    assert quote.base_cost == 500 + 3 * 100
    assert "3 часа" in quote.breakdown["rental"]


def test_daily_counts_started_days():
    quote = calculate_quote(CARD, START, START + timedelta(hours=25), RentalType.DAILY)

    assert quote.days == 2
    assert quote.base_cost == 2 * 900
    assert "2 дня" in quote.breakdown["rental"]


def test_daily_short_period_is_one_day():
    quote = calculate_quote(CARD, START, START + timedelta(hours=3), RentalType.DAILY)

    assert quote.days == 1
    assert quote.base_cost == 900


def test_pickup_added_to_total_not_to_deposit():
    quote = calculate_quote(CARD, START, START + timedelta(hours=2), RentalType.HOURLY, pickup=True)

    assert quote.additional_cost == 500
    assert quote.total == 1000
    assert quote.deposit == 5000
    assert "pickup" in quote.breakdown


def test_custom_rate_card():
    card = RateCard(min_hours=1, min_cost=300, hour_price=150, day_price=1200, deposit=3000, pickup_price=0)
    quote = calculate_quote(card, START, START + timedelta(hours=3), RentalType.HOURLY)

    assert quote.base_cost == 300 + 2 * 150
    assert quote.deposit == 3000


def test_snapshot_uses_client_keys():
    quote = calculate_quote(CARD, START, START + timedelta(hours=2), RentalType.HOURLY)

    assert quote.snapshot() == {"baseCost": 500, "additionalCost": 0, "deposit": 5000, "total": 500}


def test_reversed_range_rejected():
    with pytest.raises(InvalidRangeError):
        calculate_quote(CARD, START, START - timedelta(hours=1), RentalType.HOURLY)


def test_empty_range_rejected():
    with pytest.raises(InvalidRangeError):
        validate_range(START, START)


def test_unknown_rental_type_rejected():
    with pytest.raises(InvalidRangeError):
        calculate_quote(CARD, START, START + timedelta(hours=2), "WEEKLY")


def test_quote_is_deterministic():
    a = calculate_quote(CARD, START, START + timedelta(hours=7), RentalType.HOURLY, pickup=True)
    b = calculate_quote(CARD, START, START + timedelta(hours=7), RentalType.HOURLY, pickup=True)

    assert a == b
