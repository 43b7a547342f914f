import logging
import os
from datetime import date, datetime
from functools import lru_cache

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

load_dotenv()

from db.deps import get_booking_db
from db.session import SessionLocalBooking
from schemas.bookings import CancelRequest, CreateBookingDto, PaymentEventDto, StatusUpdateRequest
from schemas.insurance import InsuranceRecordDto, InsuranceReviewRequest
from services.booking_engine import BookingEngine, InsuranceFields, PaymentEvent
from services.booking_errors import BookingEngineError, BookingValidationError
from services.booking_service import DeliveryInfo, serialize_booking, serialize_payment
from services.insurance_service import serialize_insurance_record
from services.money import to_cents
from services.pricing_service import serialize_breakdown
from services.rental_settings import RentalSettings

app = FastAPI(title="Equipment Booking Engine")
API_LOGGER = logging.getLogger("booking_engine.api")


def _parse_csv_env(name: str, default: str) -> list[str]:
    raw = os.environ.get(name, default)
    return [item.strip() for item in str(raw).split(",") if item.strip()]


_CORS_ALLOW_ORIGINS = _parse_csv_env(
    "CORS_ALLOW_ORIGINS",
    "http://127.0.0.1,http://localhost,http://127.0.0.1:3000,http://localhost:3000",
)
_CORS_ALLOW_CREDENTIALS = str(os.environ.get("CORS_ALLOW_CREDENTIALS", "true")).strip().lower() in {"1", "true", "yes", "on"}
if "*" in _CORS_ALLOW_ORIGINS:
    # Browsers reject wildcard origins with credentials.
    _CORS_ALLOW_CREDENTIALS = False

app.add_middleware(
    CORSMiddleware,
    allow_origins=_CORS_ALLOW_ORIGINS,
    allow_credentials=_CORS_ALLOW_CREDENTIALS,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache
def get_booking_engine() -> BookingEngine:
    return BookingEngine(SessionLocalBooking, RentalSettings.from_env())


@app.exception_handler(BookingEngineError)
async def handle_booking_error(request: Request, exc: BookingEngineError) -> JSONResponse:
    if exc.status_code >= 409:
        API_LOGGER.info("Request rejected path=%s status=%s detail=%s", request.url.path, exc.status_code, exc.message)
    return JSONResponse(status_code=exc.status_code, content=exc.payload())


def _money_to_cents(value, field: str) -> int | None:
    if value is None:
        return None
    cents = to_cents(value)
    if cents < 0:
        raise BookingValidationError(f"{field} cannot be negative.")
    return cents


@app.get("/healthz")
def healthcheck():
    return {"status": "ok"}


@app.get("/api/healthz")
def healthcheck_api(db: Session = Depends(get_booking_db)):
    try:
        db.execute(text("SELECT 1"))
        return {"status": "ok"}
    except SQLAlchemyError as exc:
        raise HTTPException(status_code=503, detail=f"db_unavailable: {exc}") from exc


@app.get("/api/equipment/{equipment_id}/availability")
def get_availability(
    equipment_id: int,
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    engine: BookingEngine = Depends(get_booking_engine),
):
    conflicts = engine.find_conflicting_bookings(equipment_id, start_date, end_date)
    return {
        "equipmentID": equipment_id,
        "startDate": start_date,
        "endDate": end_date,
        "available": not conflicts,
        "conflictingBookingIDs": [booking.BookingID for booking in conflicts],
    }


@app.get("/api/equipment/{equipment_id}/pricing")
def get_pricing(
    equipment_id: int,
    start_date: datetime = Query(..., alias="startDate"),
    end_date: datetime = Query(..., alias="endDate"),
    booking_type: str = Query("DELIVERY", alias="type"),
    engine: BookingEngine = Depends(get_booking_engine),
):
    breakdown = engine.calculate_pricing(equipment_id, start_date, end_date, booking_type)
    return serialize_breakdown(breakdown)


@app.get("/api/bookings")
def list_bookings(
    status: str | None = Query(None),
    customer_id: int | None = Query(None, alias="customerID"),
    equipment_id: int | None = Query(None, alias="equipmentID"),
    start_date: date | None = Query(None, alias="startDate"),
    end_date: date | None = Query(None, alias="endDate"),
    engine: BookingEngine = Depends(get_booking_engine),
):
    bookings = engine.list_bookings(status, customer_id, equipment_id, start_date, end_date)
    return [serialize_booking(booking) for booking in bookings]


@app.post("/api/bookings", status_code=201)
def create_booking(payload: CreateBookingDto, engine: BookingEngine = Depends(get_booking_engine)):
    booking = engine.create_booking(
        customer_id=payload.customerID,
        equipment_id=payload.equipmentID,
        start=payload.startDate,
        end=payload.endDate,
        booking_type=payload.type,
        delivery=DeliveryInfo(
            address=payload.deliveryAddress,
            city=payload.deliveryCity,
            province=payload.deliveryProvince,
            postal_code=payload.deliveryPostalCode,
            special_instructions=payload.specialInstructions,
        ),
    )
    return serialize_booking(booking)


@app.get("/api/bookings/{booking_id}")
def get_booking(booking_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return serialize_booking(engine.get_booking(booking_id))


@app.post("/api/bookings/{booking_id}/status")
def update_booking_status(
    booking_id: int,
    payload: StatusUpdateRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    return serialize_booking(engine.update_status(booking_id, payload.status))


@app.post("/api/bookings/{booking_id}/cancel")
def cancel_booking(booking_id: int, payload: CancelRequest, engine: BookingEngine = Depends(get_booking_engine)):
    fee_cents = _money_to_cents(payload.cancellationFee, "cancellationFee") or 0
    return serialize_booking(engine.cancel(booking_id, payload.reason, fee_cents))


@app.get("/api/bookings/{booking_id}/release-check")
def release_check(booking_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return engine.can_release_equipment(booking_id).as_dict()


@app.post("/api/payments/events")
def payment_event(payload: PaymentEventDto, engine: BookingEngine = Depends(get_booking_engine)):
    booking = engine.apply_payment_event(
        PaymentEvent(
            booking_id=payload.bookingID,
            outcome=payload.outcome,
            amount_cents=_money_to_cents(payload.amount, "amount"),
            reference=payload.reference,
        )
    )
    return serialize_booking(booking)


@app.get("/api/bookings/{booking_id}/payments")
def list_payments(booking_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return [serialize_payment(payment) for payment in engine.list_payments(booking_id)]


@app.post("/api/bookings/{booking_id}/insurance", status_code=201)
def register_insurance(
    booking_id: int,
    payload: InsuranceRecordDto,
    engine: BookingEngine = Depends(get_booking_engine),
):
    record = engine.register_insurance_record(
        booking_id,
        InsuranceFields(
            insurance_company=payload.insuranceCompany,
            policy_number=payload.policyNumber,
            document_type=payload.documentType,
            general_liability_limit_cents=_money_to_cents(payload.generalLiabilityLimit, "generalLiabilityLimit"),
            equipment_limit_cents=_money_to_cents(payload.equipmentLimit, "equipmentLimit"),
            deductible_cents=_money_to_cents(payload.deductible, "deductible"),
            effective_date=payload.effectiveDate,
            expires_at=payload.expiresAt,
            additional_insured_included=payload.additionalInsuredIncluded,
            loss_payee_included=payload.lossPayeeIncluded,
            waiver_of_subrogation_included=payload.waiverOfSubrogationIncluded,
        ),
    )
    return serialize_insurance_record(record)


@app.get("/api/bookings/{booking_id}/insurance/compliance")
def insurance_compliance(booking_id: int, engine: BookingEngine = Depends(get_booking_engine)):
    return engine.insurance_compliance_report(booking_id)


@app.post("/api/insurance/{record_id}/review")
def review_insurance(
    record_id: int,
    payload: InsuranceReviewRequest,
    engine: BookingEngine = Depends(get_booking_engine),
):
    record = engine.review_insurance_record(record_id, payload.status, payload.reviewedBy, payload.reviewNotes)
    return serialize_insurance_record(record)


@app.post("/api/insurance/expire")
def expire_insurance(engine: BookingEngine = Depends(get_booking_engine)):
    expired = engine.expire_insurance_records()
    return {"expiredCount": len(expired), "records": [serialize_insurance_record(record) for record in expired]}
