from __future__ import annotations

from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from models.booking_models import Booking, Customer, Equipment, InsuranceRecord, Payment
from services.booking_errors import NotFoundError
from services.booking_state_service import ACTIVE_STATUSES


class BookingRepository:
    """SQLAlchemy-backed persistence collaborator for the booking engine.

    Ownership: insurance records and payments belong to their booking and are
    removed with it through the ORM cascade. Nothing here deletes bookings.
    """

    def __init__(self, session: Session):
        self.session = session

    def load_customer(self, customer_id: int) -> Customer:
        customer = self.session.get(Customer, customer_id)
        if not customer:
            raise NotFoundError("Customer not found")
        return customer

    def load_equipment(self, equipment_id: int, for_update: bool = False) -> Equipment:
        stmt = select(Equipment).where(Equipment.EquipmentID == equipment_id)
        if for_update:
            stmt = stmt.with_for_update()
        equipment = self.session.execute(stmt).scalars().first()
        if not equipment:
            raise NotFoundError("Equipment not found")
        return equipment

    def load_active_bookings(self, equipment_id: int) -> list[Booking]:
        stmt = (
            select(Booking)
            .where(Booking.EquipmentID == equipment_id)
            .where(Booking.Status.in_(sorted(ACTIVE_STATUSES)))
            .order_by(Booking.StartDate)
        )
        return list(self.session.execute(stmt).scalars().all())

    def insert_booking(self, booking: Booking) -> Booking:
        self.session.add(booking)
        self.session.flush()
        return booking

    def load_booking(self, booking_id: int, for_update: bool = False) -> Booking:
        stmt = select(Booking).where(Booking.BookingID == booking_id)
        if for_update:
            stmt = stmt.with_for_update()
        booking = self.session.execute(stmt).scalars().first()
        if not booking:
            raise NotFoundError("Booking not found")
        return booking

    def save_booking(self, booking: Booking) -> Booking:
        self.session.add(booking)
        self.session.flush()
        return booking

    def find_bookings(
        self,
        status: str | None = None,
        customer_id: int | None = None,
        equipment_id: int | None = None,
        start_date: datetime | None = None,
        end_date: datetime | None = None,
    ) -> list[Booking]:
        stmt = select(Booking)
        if status:
            stmt = stmt.where(Booking.Status == status)
        if customer_id:
            stmt = stmt.where(Booking.CustomerID == customer_id)
        if equipment_id:
            stmt = stmt.where(Booking.EquipmentID == equipment_id)
        if start_date:
            stmt = stmt.where(Booking.StartDate >= start_date)
        if end_date:
            stmt = stmt.where(Booking.EndDate <= end_date)
        return list(self.session.execute(stmt.order_by(Booking.StartDate, Booking.BookingID)).scalars().all())

    def load_insurance_records(self, booking_id: int) -> list[InsuranceRecord]:
        stmt = (
            select(InsuranceRecord)
            .where(InsuranceRecord.BookingID == booking_id)
            .order_by(InsuranceRecord.InsuranceRecordID)
        )
        return list(self.session.execute(stmt).scalars().all())

    def load_insurance_record(self, record_id: int, for_update: bool = False) -> InsuranceRecord:
        stmt = select(InsuranceRecord).where(InsuranceRecord.InsuranceRecordID == record_id)
        if for_update:
            stmt = stmt.with_for_update()
        record = self.session.execute(stmt).scalars().first()
        if not record:
            raise NotFoundError("Insurance record not found")
        return record

    def load_lapsed_insurance_records(self, status: str, now: datetime) -> list[InsuranceRecord]:
        stmt = (
            select(InsuranceRecord)
            .where(InsuranceRecord.Status == status)
            .where(InsuranceRecord.ExpiresAt.is_not(None))
            .where(InsuranceRecord.ExpiresAt <= now)
        )
        return list(self.session.execute(stmt).scalars().all())

    def insert_insurance_record(self, record: InsuranceRecord) -> InsuranceRecord:
        self.session.add(record)
        self.session.flush()
        return record

    def insert_payment(self, payment: Payment) -> Payment:
        self.session.add(payment)
        self.session.flush()
        return payment

    def load_payments(self, booking_id: int) -> list[Payment]:
        stmt = select(Payment).where(Payment.BookingID == booking_id).order_by(Payment.PaymentID)
        return list(self.session.execute(stmt).scalars().all())

    def find_payment_by_reference(self, booking_id: int, reference: str) -> Payment | None:
        stmt = (
            select(Payment)
            .where(Payment.BookingID == booking_id)
            .where(Payment.ExternalReference == reference)
        )
        return self.session.execute(stmt).scalars().first()

    def total_paid_cents(self, booking_id: int) -> int:
        stmt = (
            select(func.coalesce(func.sum(Payment.AmountCents), 0))
            .where(Payment.BookingID == booking_id)
            .where(Payment.Outcome == "succeeded")
        )
        return int(self.session.execute(stmt).scalar_one())
