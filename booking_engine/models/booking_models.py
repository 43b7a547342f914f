from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import relationship, validates
from sqlalchemy.sql import func

from db.base import Base


class Equipment(Base):
    __tablename__ = "Equipment"

    EquipmentID = Column(Integer, primary_key=True)
    UnitCode = Column(String(50), nullable=False, unique=True)
    SerialNumber = Column(String(100))
    Make = Column(String(100))
    Model = Column(String(100))
    Description = Column(String(1000))
    DailyRateCents = Column(Integer, nullable=False)
    WeeklyRateCents = Column(Integer, nullable=False)
    MonthlyRateCents = Column(Integer, nullable=False)
    ReplacementValueCents = Column(Integer, nullable=False)
    Status = Column(String(20), nullable=False, default="AVAILABLE")
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    Bookings = relationship("Booking", back_populates="Equipment")


class Customer(Base):
    __tablename__ = "Customers"

    CustomerID = Column(Integer, primary_key=True)
    FullName = Column(String(255), nullable=False)
    Email = Column(String(255))
    Phone = Column(String(50))
    IsActive = Column(Boolean, default=True)
    CreatedDate = Column(DateTime, server_default=func.now())

    Bookings = relationship("Booking", back_populates="Customer")


class Booking(Base):
    __tablename__ = "Bookings"

    BookingID = Column(Integer, primary_key=True)
    BookingNumber = Column(String(50), nullable=False, unique=True)
    CustomerID = Column(Integer, ForeignKey("Customers.CustomerID"), nullable=False)
    EquipmentID = Column(Integer, ForeignKey("Equipment.EquipmentID"), nullable=False, index=True)
    StartDate = Column(DateTime, nullable=False)
    EndDate = Column(DateTime, nullable=False)
    Type = Column(String(20), nullable=False, default="DELIVERY")
    Status = Column(String(30), nullable=False, default="PENDING", index=True)
    DeliveryAddress = Column(String(500))
    DeliveryCity = Column(String(100))
    DeliveryProvince = Column(String(100))
    DeliveryPostalCode = Column(String(10))
    SpecialInstructions = Column(String(1000))
    DailyRateCents = Column(Integer, nullable=False)
    WeeklyRateCents = Column(Integer, nullable=False)
    MonthlyRateCents = Column(Integer, nullable=False)
    SubtotalCents = Column(Integer, nullable=False)
    TaxesCents = Column(Integer, nullable=False)
    FloatFeeCents = Column(Integer, nullable=False, default=0)
    TotalCents = Column(Integer, nullable=False)
    SecurityDepositCents = Column(Integer, nullable=False, default=0)
    CancellationFeeCents = Column(Integer, nullable=False, default=0)
    CancelledAt = Column(DateTime)
    CancellationReason = Column(String(1000))
    ActualStartDate = Column(DateTime)
    ActualEndDate = Column(DateTime)
    Version = Column(Integer, nullable=False)
    CreatedDate = Column(DateTime, server_default=func.now())
    UpdatedDate = Column(DateTime, server_default=func.now())

    __mapper_args__ = {"version_id_col": Version}

    Customer = relationship("Customer", back_populates="Bookings")
    Equipment = relationship("Equipment", back_populates="Bookings")
    # Dependents live and die with their booking; the engine itself never deletes.
    InsuranceRecords = relationship(
        "InsuranceRecord",
        back_populates="Booking",
        cascade="all, delete-orphan",
        order_by="InsuranceRecord.InsuranceRecordID",
    )
    Payments = relationship("Payment", back_populates="Booking", cascade="all, delete-orphan")

    @validates("DailyRateCents", "WeeklyRateCents", "MonthlyRateCents")
    def _freeze_rate_snapshot(self, key, value):
        current = getattr(self, key)
        if current is not None and current != value:
            raise ValueError(f"{key} is a rate snapshot and cannot be changed once set.")
        return value


class InsuranceRecord(Base):
    __tablename__ = "InsuranceRecords"

    InsuranceRecordID = Column(Integer, primary_key=True)
    BookingID = Column(Integer, ForeignKey("Bookings.BookingID"), nullable=False, index=True)
    DocumentNumber = Column(String(50), nullable=False, unique=True)
    DocumentType = Column(String(20), nullable=False, default="COI")
    Status = Column(String(20), nullable=False, default="PENDING")
    InsuranceCompany = Column(String(255))
    PolicyNumber = Column(String(100))
    GeneralLiabilityLimitCents = Column(Integer)
    EquipmentLimitCents = Column(Integer)
    DeductibleCents = Column(Integer)
    EffectiveDate = Column(DateTime)
    ExpiresAt = Column(DateTime)
    AdditionalInsuredIncluded = Column(Boolean, default=False)
    LossPayeeIncluded = Column(Boolean, default=False)
    WaiverOfSubrogationIncluded = Column(Boolean, default=False)
    ValidationResults = Column(Text)
    ReviewedBy = Column(String(100))
    ReviewedAt = Column(DateTime)
    ReviewNotes = Column(String(1000))
    CreatedDate = Column(DateTime, server_default=func.now())

    Booking = relationship("Booking", back_populates="InsuranceRecords")


class Payment(Base):
    __tablename__ = "Payments"

    PaymentID = Column(Integer, primary_key=True)
    PaymentNumber = Column(String(50), nullable=False, unique=True)
    BookingID = Column(Integer, ForeignKey("Bookings.BookingID"), nullable=False, index=True)
    Outcome = Column(String(20), nullable=False)
    AmountCents = Column(Integer, nullable=False)
    ExternalReference = Column(String(255))
    CreatedDate = Column(DateTime, server_default=func.now())

    Booking = relationship("Booking", back_populates="Payments")


class BookingSequence(Base):
    __tablename__ = "BookingSequences"
    __table_args__ = (UniqueConstraint("EntityType", "Year", name="uq_booking_sequence_entity_year"),)

    SequenceID = Column(Integer, primary_key=True)
    EntityType = Column(String(10), nullable=False)
    Year = Column(Integer, nullable=False)
    LastValue = Column(Integer, nullable=False, default=0)
