from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from datetime import date, datetime
from typing import Callable, TypeVar

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import sessionmaker
from sqlalchemy.orm.exc import StaleDataError

from models.booking_models import Booking, InsuranceRecord, Payment
from services.availability_service import EquipmentLockRegistry, find_conflicts
from services.booking_errors import (
    BookingConflictError,
    BookingValidationError,
    ConcurrencyConflictError,
    InsufficientInsuranceCoverageError,
)
from services.booking_number_service import next_sequence_number
from services.booking_repository import BookingRepository
from services.booking_service import (
    DeliveryInfo,
    as_utc_naive,
    build_booking,
    normalize_booking_type,
    normalize_range,
    rate_card_for,
    utc_now,
    validate_delivery,
)
from services.booking_state_service import (
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    INSURANCE_VERIFIED,
    NO_SHOW,
    PAID,
    apply_cancellation,
    apply_transition,
    ensure_transition,
    normalize_status,
)
from services.insurance_service import (
    APPROVED,
    EXPIRED,
    GENERAL_LIABILITY_REQUIRED_CENTS,
    REJECTED,
    REVIEW_DECISIONS,
    coverage_gaps,
    evaluate_insurance,
    serialize_insurance_record,
    store_validation,
)
from services.money import format_cents
from services.pricing_service import PriceBreakdown, calculate_price
from services.release_gate_service import ReleaseDecision, can_release
from services.rental_settings import RentalSettings


BOOKING_LOGGER = logging.getLogger("booking_engine.bookings")
INSURANCE_LOGGER = logging.getLogger("booking_engine.insurance")
PAYMENT_LOGGER = logging.getLogger("booking_engine.payments")

UNBOOKABLE_EQUIPMENT_STATUSES = {"OUT_OF_SERVICE", "RETIRED"}
CLOSED_FOR_INSURANCE = {COMPLETED, CANCELLED, NO_SHOW}
PAYMENT_SUCCEEDED = "succeeded"
PAYMENT_FAILED = "failed"
_RETRYABLE_PGCODES = {"40001", "40P01"}
_RETRYABLE_MESSAGES = ("database is locked", "deadlock", "could not serialize")

T = TypeVar("T")


@dataclass(frozen=True)
class PaymentEvent:
    booking_id: int
    outcome: str
    amount_cents: int
    reference: str | None = None


@dataclass(frozen=True)
class InsuranceFields:
    insurance_company: str | None = None
    policy_number: str | None = None
    document_type: str = "COI"
    general_liability_limit_cents: int | None = None
    equipment_limit_cents: int | None = None
    deductible_cents: int | None = None
    effective_date: datetime | None = None
    expires_at: datetime | None = None
    additional_insured_included: bool = False
    loss_payee_included: bool = False
    waiver_of_subrogation_included: bool = False


def _is_retryable(exc: Exception) -> bool:
    if isinstance(exc, StaleDataError):
        return True
    if isinstance(exc, DBAPIError):
        if getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES:
            return True
        message = str(exc.orig).lower()
        return any(token in message for token in _RETRYABLE_MESSAGES)
    return False


class BookingEngine:
    """Booking lifecycle, availability, pricing and release rules over one atomic unit of work per call."""

    def __init__(
        self,
        session_factory: sessionmaker,
        settings: RentalSettings | None = None,
        locks: EquipmentLockRegistry | None = None,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._settings = settings or RentalSettings()
        self._locks = locks or EquipmentLockRegistry()
        self._clock = clock
        self._sleep = sleep

    @property
    def settings(self) -> RentalSettings:
        return self._settings

    def _now(self) -> datetime:
        return as_utc_naive(self._clock())

    def _run_atomic(self, action: str, work: Callable[[BookingRepository], T]) -> T:
        attempts = self._settings.max_attempts
        for attempt in range(1, attempts + 1):
            try:
                try:
                    with self._session_factory() as db:
                        with db.begin():
                            return work(BookingRepository(db))
                except (StaleDataError, DBAPIError) as exc:
                    if not _is_retryable(exc):
                        raise
                    raise ConcurrencyConflictError(f"{action} hit a concurrent update") from exc
            except ConcurrencyConflictError as exc:
                BOOKING_LOGGER.warning(
                    "Concurrency conflict action=%s attempt=%s/%s error=%s",
                    action,
                    attempt,
                    attempts,
                    exc.__cause__ or exc,
                )
                if attempt < attempts:
                    self._sleep(self._settings.retry_backoff_seconds * (2 ** (attempt - 1)))
        raise BookingConflictError(f"Could not complete {action} because of concurrent updates. Please retry.")

    # -- availability & pricing -------------------------------------------------

    def check_availability(self, equipment_id: int, start: datetime | date, end: datetime | date) -> bool:
        start_at, end_at = normalize_range(start, end)

        def work(repo: BookingRepository) -> bool:
            repo.load_equipment(equipment_id)
            return not find_conflicts(repo.load_active_bookings(equipment_id), start_at, end_at)

        return self._run_atomic("check_availability", work)

    def find_conflicting_bookings(self, equipment_id: int, start: datetime | date, end: datetime | date) -> list[Booking]:
        start_at, end_at = normalize_range(start, end)

        def work(repo: BookingRepository) -> list[Booking]:
            repo.load_equipment(equipment_id)
            return find_conflicts(repo.load_active_bookings(equipment_id), start_at, end_at)

        return self._run_atomic("find_conflicting_bookings", work)

    def calculate_pricing(self, equipment_id: int, start: datetime | date, end: datetime | date, booking_type: str) -> PriceBreakdown:
        start_at, end_at = normalize_range(start, end)
        normalized_type = normalize_booking_type(booking_type)

        def work(repo: BookingRepository) -> PriceBreakdown:
            equipment = repo.load_equipment(equipment_id)
            return self._price(equipment, start_at, end_at, normalized_type)

        return self._run_atomic("calculate_pricing", work)

    def _price(self, equipment, start: datetime, end: datetime, booking_type: str) -> PriceBreakdown:
        return calculate_price(
            rate_card_for(equipment),
            start,
            end,
            booking_type,
            self._settings.tax_rate,
            self._settings.float_fee_cents,
        )

    # -- bookings ------------------------------------------------------------------

    def create_booking(
        self,
        customer_id: int,
        equipment_id: int,
        start: datetime | date,
        end: datetime | date,
        booking_type: str,
        delivery: DeliveryInfo | None = None,
    ) -> Booking:
        start_at, end_at = normalize_range(start, end)
        normalized_type = normalize_booking_type(booking_type)
        delivery = delivery or DeliveryInfo()
        validate_delivery(normalized_type, delivery)

        def work(repo: BookingRepository) -> Booking:
            now = self._now()
            customer = repo.load_customer(customer_id)
            if customer.IsActive is False:
                raise BookingValidationError("Customer account is inactive.")
            equipment = repo.load_equipment(equipment_id, for_update=True)
            if equipment.Status in UNBOOKABLE_EQUIPMENT_STATUSES:
                raise BookingConflictError(f"Equipment is {equipment.Status} and cannot be booked.")

            conflicts = find_conflicts(repo.load_active_bookings(equipment.EquipmentID), start_at, end_at)
            if conflicts:
                conflicting_ids = [booking.BookingID for booking in conflicts]
                BOOKING_LOGGER.info(
                    "Booking rejected equipment=%s start=%s end=%s conflicts=%s",
                    equipment.EquipmentID,
                    start_at.isoformat(),
                    end_at.isoformat(),
                    conflicting_ids,
                )
                raise BookingConflictError("Equipment is not available for the selected dates", conflicting_ids)

            breakdown = self._price(equipment, start_at, end_at, normalized_type)
            booking = build_booking(
                customer_id=customer.CustomerID,
                equipment_id=equipment.EquipmentID,
                start=start_at,
                end=end_at,
                booking_type=normalized_type,
                delivery=delivery,
                breakdown=breakdown,
                security_deposit_cents=self._settings.security_deposit_cents,
                now=now,
            )
            booking.BookingNumber = next_sequence_number(repo.session, self._settings.booking_prefix, now.date())
            return repo.insert_booking(booking)

        with self._locks.hold(equipment_id):
            booking = self._run_atomic("create_booking", work)

        BOOKING_LOGGER.info(
            "Booking created id=%s number=%s equipment=%s customer=%s total=%s",
            booking.BookingID,
            booking.BookingNumber,
            booking.EquipmentID,
            booking.CustomerID,
            format_cents(booking.TotalCents),
        )
        return booking

    def get_booking(self, booking_id: int) -> Booking:
        return self._run_atomic("get_booking", lambda repo: repo.load_booking(booking_id))

    def list_bookings(
        self,
        status: str | None = None,
        customer_id: int | None = None,
        equipment_id: int | None = None,
        start_date: datetime | date | None = None,
        end_date: datetime | date | None = None,
    ) -> list[Booking]:
        normalized_status = normalize_status(status) if status else None
        start_at = as_utc_naive(start_date) if start_date else None
        end_at = as_utc_naive(end_date) if end_date else None
        return self._run_atomic(
            "list_bookings",
            lambda repo: repo.find_bookings(normalized_status, customer_id, equipment_id, start_at, end_at),
        )

    def update_status(self, booking_id: int, new_status: str) -> Booking:
        target = normalize_status(new_status)
        if target == CANCELLED:
            raise BookingValidationError("Use cancel() with a reason to cancel a booking.")

        def work(repo: BookingRepository) -> tuple[Booking, str]:
            now = self._now()
            booking = repo.load_booking(booking_id, for_update=True)
            ensure_transition(booking.Status, target)
            equipment = repo.load_equipment(booking.EquipmentID)
            if target == INSURANCE_VERIFIED:
                missing = coverage_gaps(repo.load_insurance_records(booking.BookingID), equipment, now)
                if missing:
                    raise InsufficientInsuranceCoverageError(missing)
            previous = apply_transition(booking, target, now, equipment)
            repo.save_booking(booking)
            return booking, previous

        booking, previous = self._run_atomic("update_status", work)
        BOOKING_LOGGER.info("Booking status changed id=%s from=%s to=%s", booking.BookingID, previous, booking.Status)
        return booking

    def cancel(self, booking_id: int, reason: str, cancellation_fee_cents: int = 0) -> Booking:
        if not (reason or "").strip():
            raise BookingValidationError("A cancellation reason is required.")

        def work(repo: BookingRepository) -> tuple[Booking, str]:
            now = self._now()
            booking = repo.load_booking(booking_id, for_update=True)
            equipment = repo.load_equipment(booking.EquipmentID)
            previous = apply_cancellation(booking, reason, cancellation_fee_cents, now, equipment)
            repo.save_booking(booking)
            return booking, previous

        booking, previous = self._run_atomic("cancel", work)
        BOOKING_LOGGER.info(
            "Booking cancelled id=%s from=%s reason=%s fee=%s",
            booking.BookingID,
            previous,
            booking.CancellationReason,
            format_cents(booking.CancellationFeeCents),
        )
        return booking

    def can_release_equipment(self, booking_id: int) -> ReleaseDecision:
        def work(repo: BookingRepository) -> ReleaseDecision:
            booking = repo.load_booking(booking_id)
            equipment = repo.load_equipment(booking.EquipmentID)
            return can_release(booking, equipment, repo.load_insurance_records(booking.BookingID), self._now())

        return self._run_atomic("can_release_equipment", work)

    # -- payments --------------------------------------------------------------------

    def apply_payment_event(self, event: PaymentEvent) -> Booking:
        outcome = (event.outcome or "").strip().lower()
        if outcome not in {PAYMENT_SUCCEEDED, PAYMENT_FAILED}:
            raise BookingValidationError("Payment outcome must be succeeded or failed.")
        if event.amount_cents < 0:
            raise BookingValidationError("Payment amount cannot be negative.")

        def work(repo: BookingRepository) -> Booking:
            now = self._now()
            booking = repo.load_booking(event.booking_id, for_update=True)
            if event.reference and repo.find_payment_by_reference(booking.BookingID, event.reference):
                PAYMENT_LOGGER.info("Duplicate payment event ignored booking=%s reference=%s", booking.BookingID, event.reference)
                return booking

            payment = Payment(
                PaymentNumber=next_sequence_number(repo.session, self._settings.payment_prefix, now.date()),
                BookingID=booking.BookingID,
                Outcome=outcome,
                AmountCents=event.amount_cents,
                ExternalReference=event.reference,
                CreatedDate=now,
            )
            repo.insert_payment(payment)
            PAYMENT_LOGGER.info(
                "Payment recorded booking=%s number=%s outcome=%s amount=%s",
                booking.BookingID,
                payment.PaymentNumber,
                outcome,
                format_cents(event.amount_cents),
            )

            if outcome == PAYMENT_FAILED or booking.Status != CONFIRMED:
                return booking
            paid = repo.total_paid_cents(booking.BookingID)
            if paid < booking.TotalCents:
                PAYMENT_LOGGER.info(
                    "Booking partially paid booking=%s paid=%s total=%s",
                    booking.BookingID,
                    format_cents(paid),
                    format_cents(booking.TotalCents),
                )
                return booking
            apply_transition(booking, PAID, now)
            repo.save_booking(booking)
            return booking

        return self._run_atomic("apply_payment_event", work)

    def list_payments(self, booking_id: int) -> list[Payment]:
        def work(repo: BookingRepository) -> list[Payment]:
            repo.load_booking(booking_id)
            return repo.load_payments(booking_id)

        return self._run_atomic("list_payments", work)

    # -- insurance -------------------------------------------------------------------

    def register_insurance_record(self, booking_id: int, fields: InsuranceFields) -> InsuranceRecord:
        def work(repo: BookingRepository) -> InsuranceRecord:
            now = self._now()
            booking = repo.load_booking(booking_id, for_update=True)
            if booking.Status in CLOSED_FOR_INSURANCE:
                raise BookingValidationError(f"Cannot add insurance to a {booking.Status} booking.")
            equipment = repo.load_equipment(booking.EquipmentID)

            record = InsuranceRecord(
                BookingID=booking.BookingID,
                DocumentNumber=next_sequence_number(repo.session, self._settings.insurance_prefix, now.date()),
                DocumentType=(fields.document_type or "COI").upper(),
                InsuranceCompany=fields.insurance_company,
                PolicyNumber=fields.policy_number,
                GeneralLiabilityLimitCents=fields.general_liability_limit_cents,
                EquipmentLimitCents=fields.equipment_limit_cents,
                DeductibleCents=fields.deductible_cents,
                EffectiveDate=as_utc_naive(fields.effective_date) if fields.effective_date else None,
                ExpiresAt=as_utc_naive(fields.expires_at) if fields.expires_at else None,
                AdditionalInsuredIncluded=fields.additional_insured_included,
                LossPayeeIncluded=fields.loss_payee_included,
                WaiverOfSubrogationIncluded=fields.waiver_of_subrogation_included,
                CreatedDate=now,
            )
            report = evaluate_insurance(record, equipment, now)
            record.Status = APPROVED if report.is_valid else REJECTED
            store_validation(record, report, now)
            repo.insert_insurance_record(record)
            INSURANCE_LOGGER.info(
                "Insurance registered booking=%s document=%s status=%s errors=%s",
                booking.BookingID,
                record.DocumentNumber,
                record.Status,
                len(report.errors),
            )
            self._verify_if_covered(repo, booking, equipment, now)
            return record

        return self._run_atomic("register_insurance_record", work)

    def review_insurance_record(
        self,
        record_id: int,
        decision: str,
        reviewed_by: str,
        notes: str | None = None,
    ) -> InsuranceRecord:
        status = (decision or "").strip().upper()
        if status not in REVIEW_DECISIONS:
            raise BookingValidationError(f"Review decision must be one of {', '.join(sorted(REVIEW_DECISIONS))}.")
        if not (reviewed_by or "").strip():
            raise BookingValidationError("reviewedBy is required.")

        def work(repo: BookingRepository) -> InsuranceRecord:
            now = self._now()
            record = repo.load_insurance_record(record_id, for_update=True)
            booking = repo.load_booking(record.BookingID, for_update=True)
            equipment = repo.load_equipment(booking.EquipmentID)

            record.Status = status
            record.ReviewedBy = reviewed_by.strip()
            record.ReviewedAt = now
            record.ReviewNotes = notes
            store_validation(record, evaluate_insurance(record, equipment, now), now, checked_by=record.ReviewedBy)
            INSURANCE_LOGGER.info(
                "Insurance reviewed record=%s booking=%s status=%s reviewer=%s",
                record.InsuranceRecordID,
                booking.BookingID,
                status,
                record.ReviewedBy,
            )
            if status == APPROVED:
                self._verify_if_covered(repo, booking, equipment, now)
            return record

        return self._run_atomic("review_insurance_record", work)

    def _verify_if_covered(self, repo: BookingRepository, booking: Booking, equipment, now: datetime) -> None:
        if booking.Status != PAID:
            return
        if coverage_gaps(repo.load_insurance_records(booking.BookingID), equipment, now):
            return
        apply_transition(booking, INSURANCE_VERIFIED, now, equipment)
        repo.save_booking(booking)
        BOOKING_LOGGER.info("Booking status changed id=%s from=%s to=%s", booking.BookingID, PAID, INSURANCE_VERIFIED)

    def expire_insurance_records(self, now: datetime | None = None) -> list[InsuranceRecord]:
        def work(repo: BookingRepository) -> list[InsuranceRecord]:
            cutoff = as_utc_naive(now) if now else self._now()
            lapsed = repo.load_lapsed_insurance_records(APPROVED, cutoff)
            for record in lapsed:
                record.Status = EXPIRED
                INSURANCE_LOGGER.info("Insurance expired record=%s booking=%s", record.InsuranceRecordID, record.BookingID)
            repo.session.flush()
            return lapsed

        return self._run_atomic("expire_insurance_records", work)

    def insurance_compliance_report(self, booking_id: int) -> dict:
        def work(repo: BookingRepository) -> dict:
            now = self._now()
            booking = repo.load_booking(booking_id)
            equipment = repo.load_equipment(booking.EquipmentID)
            records = repo.load_insurance_records(booking.BookingID)
            decision = can_release(booking, equipment, records, now)
            return {
                "bookingID": booking.BookingID,
                "status": booking.Status,
                "canRelease": decision.can_release,
                "missingRequirements": list(decision.missing_requirements),
                "documents": [serialize_insurance_record(record) for record in records],
                "requirements": {
                    "generalLiabilityRequired": format_cents(GENERAL_LIABILITY_REQUIRED_CENTS),
                    "equipmentLimitRequired": format_cents(equipment.ReplacementValueCents),
                    "additionalInsuredRequired": True,
                    "lossPayeeRequired": True,
                    "waiverOfSubrogationRequired": True,
                },
                "lastUpdated": now,
            }

        return self._run_atomic("insurance_compliance_report", work)
