from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from models.booking_models import Booking, Equipment, Payment
from services.booking_errors import BookingValidationError
from services.money import format_cents
from services.pricing_service import BOOKING_TYPES, DELIVERY, PriceBreakdown, RateCard


@dataclass(frozen=True)
class DeliveryInfo:
    address: str | None = None
    city: str | None = None
    province: str | None = None
    postal_code: str | None = None
    special_instructions: str | None = None


def utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_utc_naive(value: datetime | date) -> datetime:
    """Store instants as naive UTC; plain dates mean midnight."""
    if not isinstance(value, datetime):
        return datetime.combine(value, time.min)
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def normalize_range(start: datetime | date, end: datetime | date) -> tuple[datetime, datetime]:
    if start is None or end is None:
        raise BookingValidationError("startDate and endDate are required.")
    start_at = as_utc_naive(start)
    end_at = as_utc_naive(end)
    if end_at <= start_at:
        raise BookingValidationError("endDate must be after startDate.")
    return start_at, end_at


def normalize_booking_type(raw: str | None) -> str:
    booking_type = (raw or "").strip().upper()
    if booking_type not in BOOKING_TYPES:
        raise BookingValidationError(f"Booking type must be one of {', '.join(sorted(BOOKING_TYPES))}.")
    return booking_type


def validate_delivery(booking_type: str, delivery: DeliveryInfo) -> None:
    if booking_type == DELIVERY and not (delivery.address or "").strip():
        raise BookingValidationError("deliveryAddress is required for delivery bookings.")


def rate_card_for(equipment: Equipment) -> RateCard:
    return RateCard(
        daily_cents=equipment.DailyRateCents,
        weekly_cents=equipment.WeeklyRateCents,
        monthly_cents=equipment.MonthlyRateCents,
    )


def build_booking(
    customer_id: int,
    equipment_id: int,
    start: datetime,
    end: datetime,
    booking_type: str,
    delivery: DeliveryInfo,
    breakdown: PriceBreakdown,
    security_deposit_cents: int,
    now: datetime,
) -> Booking:
    return Booking(
        CustomerID=customer_id,
        EquipmentID=equipment_id,
        StartDate=start,
        EndDate=end,
        Type=booking_type,
        Status="PENDING",
        DeliveryAddress=delivery.address,
        DeliveryCity=delivery.city,
        DeliveryProvince=delivery.province,
        DeliveryPostalCode=delivery.postal_code,
        SpecialInstructions=delivery.special_instructions,
        DailyRateCents=breakdown.rates.daily_cents,
        WeeklyRateCents=breakdown.rates.weekly_cents,
        MonthlyRateCents=breakdown.rates.monthly_cents,
        SubtotalCents=breakdown.subtotal_cents,
        TaxesCents=breakdown.taxes_cents,
        FloatFeeCents=breakdown.float_fee_cents,
        TotalCents=breakdown.total_cents,
        SecurityDepositCents=security_deposit_cents,
        CancellationFeeCents=0,
        CreatedDate=now,
        UpdatedDate=now,
    )


def serialize_booking(booking: Booking) -> dict:
    return {
        "bookingID": booking.BookingID,
        "bookingNumber": booking.BookingNumber,
        "customerID": booking.CustomerID,
        "equipmentID": booking.EquipmentID,
        "startDate": booking.StartDate,
        "endDate": booking.EndDate,
        "type": booking.Type,
        "status": booking.Status,
        "deliveryAddress": booking.DeliveryAddress,
        "deliveryCity": booking.DeliveryCity,
        "deliveryProvince": booking.DeliveryProvince,
        "deliveryPostalCode": booking.DeliveryPostalCode,
        "specialInstructions": booking.SpecialInstructions,
        "dailyRate": format_cents(booking.DailyRateCents),
        "weeklyRate": format_cents(booking.WeeklyRateCents),
        "monthlyRate": format_cents(booking.MonthlyRateCents),
        "subtotal": format_cents(booking.SubtotalCents),
        "taxes": format_cents(booking.TaxesCents),
        "floatFee": format_cents(booking.FloatFeeCents),
        "total": format_cents(booking.TotalCents),
        "securityDeposit": format_cents(booking.SecurityDepositCents),
        "cancellationFee": format_cents(booking.CancellationFeeCents),
        "cancelledAt": booking.CancelledAt,
        "cancellationReason": booking.CancellationReason,
        "actualStartDate": booking.ActualStartDate,
        "actualEndDate": booking.ActualEndDate,
        "createdDate": booking.CreatedDate,
        "updatedDate": booking.UpdatedDate,
    }


def serialize_payment(payment: Payment) -> dict:
    return {
        "paymentID": payment.PaymentID,
        "paymentNumber": payment.PaymentNumber,
        "bookingID": payment.BookingID,
        "outcome": payment.Outcome,
        "amount": format_cents(payment.AmountCents),
        "externalReference": payment.ExternalReference,
        "createdDate": payment.CreatedDate,
    }
