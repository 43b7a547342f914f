from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import datetime, timedelta
from decimal import Decimal

from services.booking_errors import BookingValidationError
from services.money import apply_rate, format_cents


DELIVERY = "DELIVERY"
PICKUP = "PICKUP"
BOOKING_TYPES = {DELIVERY, PICKUP}

WEEKLY_TIER_DAYS = 7
MONTHLY_TIER_DAYS = 30


@dataclass(frozen=True)
class RateCard:
    daily_cents: int
    weekly_cents: int
    monthly_cents: int


@dataclass(frozen=True)
class PriceBreakdown:
    rates: RateCard
    days: int
    weeks: int
    months: int
    subtotal_cents: int
    taxes_cents: int
    float_fee_cents: int
    total_cents: int

    def __post_init__(self) -> None:
        if self.total_cents != self.subtotal_cents + self.taxes_cents + self.float_fee_cents:
            raise ValueError("total must equal subtotal + taxes + float fee")


def rental_days(start: datetime, end: datetime) -> int:
    return math.ceil((end - start) / timedelta(days=1))


def calculate_price(
    rates: RateCard,
    start: datetime,
    end: datetime,
    booking_type: str,
    tax_rate: Decimal,
    float_fee_cents: int,
) -> PriceBreakdown:
    if booking_type not in BOOKING_TYPES:
        raise BookingValidationError(f"Unknown booking type: {booking_type}")
    for label, cents in (("daily", rates.daily_cents), ("weekly", rates.weekly_cents), ("monthly", rates.monthly_cents)):
        if cents is None or cents <= 0:
            raise BookingValidationError(f"Equipment {label} rate must be positive.")

    days = rental_days(start, end)
    if days < 1:
        raise BookingValidationError("Rental must last at least one day.")
    weeks = math.ceil(days / WEEKLY_TIER_DAYS)
    months = math.ceil(days / MONTHLY_TIER_DAYS)

    if days <= WEEKLY_TIER_DAYS:
        subtotal = rates.daily_cents * days
    elif days <= MONTHLY_TIER_DAYS:
        subtotal = rates.weekly_cents * weeks
    else:
        subtotal = rates.monthly_cents * months

    taxes = apply_rate(subtotal, tax_rate)
    float_fee = float_fee_cents if booking_type == DELIVERY else 0
    return PriceBreakdown(
        rates=rates,
        days=days,
        weeks=weeks,
        months=months,
        subtotal_cents=subtotal,
        taxes_cents=taxes,
        float_fee_cents=float_fee,
        total_cents=subtotal + taxes + float_fee,
    )


def serialize_breakdown(breakdown: PriceBreakdown) -> dict:
    return {
        "dailyRate": format_cents(breakdown.rates.daily_cents),
        "weeklyRate": format_cents(breakdown.rates.weekly_cents),
        "monthlyRate": format_cents(breakdown.rates.monthly_cents),
        "subtotal": format_cents(breakdown.subtotal_cents),
        "taxes": format_cents(breakdown.taxes_cents),
        "floatFee": format_cents(breakdown.float_fee_cents),
        "total": format_cents(breakdown.total_cents),
        "duration": {"days": breakdown.days, "weeks": breakdown.weeks, "months": breakdown.months},
    }
