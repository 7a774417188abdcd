"""Калькулятор стоимости аренды прицепа.

Чистые функции без побочных эффектов: одинаковые входные данные всегда дают
одинаковый результат. Суммы в целых рублях.
"""

import enum
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from services.exceptions import InvalidRangeError
from utils.helpers import plural_ru

HOUR = timedelta(hours=1)
DAY = timedelta(hours=24)


class RentalType(str, enum.Enum):
    HOURLY = "HOURLY"
    DAILY = "DAILY"


@dataclass(frozen=True)
class RateCard:
    """Тарифная сетка прицепа."""

    min_hours: int = 2
    min_cost: int = 500
    hour_price: int = 100
    day_price: int = 900
    deposit: int = 5000
    pickup_price: int = 500


DEFAULT_RATE_CARD = RateCard()


@dataclass(frozen=True)
class Quote:
    """Расчёт стоимости, ещё не сохранённый в брони."""

    rental_type: RentalType
    hours: int
    days: int
    base_cost: int
    additional_cost: int
    deposit: int
    total: int
    breakdown: dict[str, str] = field(default_factory=dict)

    def snapshot(self) -> dict[str, int]:
        """Снимок цены для хранения в брони."""
        return {
            "baseCost": self.base_cost,
            "additionalCost": self.additional_cost,
            "deposit": self.deposit,
            "total": self.total,
        }


def _ceil_div(duration: timedelta, unit: timedelta) -> int:
    # timedelta // timedelta is exact integer floor division
    return -((-duration) // unit)


def parse_rental_type(value: RentalType | str) -> RentalType:
    try:
        return RentalType(value)
    except ValueError:
        raise InvalidRangeError(f"Unsupported rental type: {value}") from None


def validate_range(start_time: datetime, end_time: datetime) -> timedelta:
    """Проверить интервал и вернуть его длительность."""
    if start_time is None or end_time is None:
        raise InvalidRangeError("startTime and endTime are required")
    if end_time <= start_time:
        raise InvalidRangeError("End time must be after start time")
    return end_time - start_time


def calculate_quote(
    rate_card: RateCard,
    start_time: datetime,
    end_time: datetime,
    rental_type: RentalType | str,
    pickup: bool = False,
) -> Quote:
    """
    Рассчитать стоимость аренды.

    HOURLY: минимальный тариф покрывает первые min_hours часов, каждый
    следующий начатый час стоит hour_price.
    DAILY: каждые начатые сутки стоят day_price.
    Залог не входит в total: он блокируется отдельным платежом.
    """
    rental_type = parse_rental_type(rental_type)
    duration = validate_range(start_time, end_time)

    hours = _ceil_div(duration, HOUR)
    days = max(1, _ceil_div(duration, DAY))

    if rental_type is RentalType.HOURLY:
        if hours <= rate_card.min_hours:
            base_cost = rate_card.min_cost
            rental_text = (
                f"{rate_card.min_hours} {plural_ru(rate_card.min_hours, 'час', 'часа', 'часов')} "
                f"(минимум) = {rate_card.min_cost}₽"
            )
        else:
            extra_hours = hours - rate_card.min_hours
            extra_cost = extra_hours * rate_card.hour_price
            base_cost = rate_card.min_cost + extra_cost
            rental_text = (
                f"{rate_card.min_hours} {plural_ru(rate_card.min_hours, 'час', 'часа', 'часов')} "
                f"(минимум) = {rate_card.min_cost}₽ + "
                f"{extra_hours} {plural_ru(extra_hours, 'час', 'часа', 'часов')} × "
                f"{rate_card.hour_price}₽ = {extra_cost}₽"
            )
    else:
        base_cost = days * rate_card.day_price
        rental_text = (
            f"{days} {plural_ru(days, 'день', 'дня', 'дней')} × "
            f"{rate_card.day_price}₽ = {base_cost}₽"
        )

    additional_cost = rate_card.pickup_price if pickup else 0

    breakdown = {
        "rental": rental_text,
        "deposit": f"Залог = {rate_card.deposit}₽",
    }
    if pickup:
        breakdown["pickup"] = f"Забор прицепа = {rate_card.pickup_price}₽"

    return Quote(
        rental_type=rental_type,
        hours=hours,
        days=days,
        base_cost=base_cost,
        additional_cost=additional_cost,
        deposit=rate_card.deposit,
        total=base_cost + additional_cost,
        breakdown=breakdown,
    )
