from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from models.booking_models import Equipment, InsuranceRecord
from services.money import format_cents, format_dollars


PENDING = "PENDING"
UNDER_REVIEW = "UNDER_REVIEW"
APPROVED = "APPROVED"
REJECTED = "REJECTED"
EXPIRED = "EXPIRED"
INSURANCE_STATUSES = {PENDING, UNDER_REVIEW, APPROVED, REJECTED, EXPIRED}
REVIEW_DECISIONS = {UNDER_REVIEW, APPROVED, REJECTED}

GENERAL_LIABILITY_REQUIRED_CENTS = 2_000_000_00

NO_CERTIFICATE = "Valid Certificate of Insurance"
NO_CURRENT_COVERAGE = "Current insurance coverage"


@dataclass(frozen=True)
class ComplianceReport:
    is_valid: bool
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {"isValid": self.is_valid, "errors": list(self.errors), "warnings": list(self.warnings)}


def evaluate_insurance(record: InsuranceRecord, equipment: Equipment, now: datetime) -> ComplianceReport:
    """Check one record against the fixed rental coverage requirements. No side effects."""
    errors: list[str] = []
    warnings: list[str] = []

    general_liability = record.GeneralLiabilityLimitCents
    if general_liability is None or general_liability < GENERAL_LIABILITY_REQUIRED_CENTS:
        errors.append(f"General Liability limit must be at least {format_dollars(GENERAL_LIABILITY_REQUIRED_CENTS)}")

    required_equipment = int(equipment.ReplacementValueCents or 0)
    if record.EquipmentLimitCents is None or record.EquipmentLimitCents < required_equipment:
        errors.append(f"Equipment limit must be at least {format_dollars(required_equipment)}")

    if not record.AdditionalInsuredIncluded:
        errors.append("Rental company must be named as Additional Insured")
    if not record.LossPayeeIncluded:
        errors.append("Rental company must be named as Loss Payee")
    if not record.WaiverOfSubrogationIncluded:
        errors.append("Waiver of Subrogation endorsement is required")

    if record.ExpiresAt is None:
        errors.append("Insurance expiration date is required")
    elif record.ExpiresAt <= now:
        errors.append("Insurance document has expired")

    if record.EffectiveDate is not None and record.EffectiveDate > now:
        warnings.append("Insurance document is not yet effective")

    return ComplianceReport(is_valid=not errors, errors=errors, warnings=warnings)


def is_unexpired(record: InsuranceRecord, now: datetime) -> bool:
    return record.ExpiresAt is not None and record.ExpiresAt > now and record.Status != EXPIRED


def coverage_gaps(records: Iterable[InsuranceRecord], equipment: Equipment, now: datetime) -> list[str]:
    """Return [] when some live record is compliant, else the itemized unmet requirements."""
    candidates = [record for record in records if record.Status != REJECTED and is_unexpired(record, now)]
    if not candidates:
        return [NO_CERTIFICATE, NO_CURRENT_COVERAGE]
    missing: list[str] = []
    for record in candidates:
        report = evaluate_insurance(record, equipment, now)
        if report.is_valid:
            return []
        for error in report.errors:
            if error not in missing:
                missing.append(error)
    return missing


def store_validation(record: InsuranceRecord, report: ComplianceReport, checked_at: datetime, checked_by: str = "system") -> None:
    payload = report.as_dict()
    payload["checkedAt"] = checked_at.isoformat()
    payload["checkedBy"] = checked_by
    record.ValidationResults = json.dumps(payload)


def parse_validation(raw: str | None) -> dict:
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
        return parsed if isinstance(parsed, dict) else {}
    except (ValueError, json.JSONDecodeError):
        return {}


def serialize_insurance_record(record: InsuranceRecord) -> dict:
    return {
        "insuranceRecordID": record.InsuranceRecordID,
        "bookingID": record.BookingID,
        "documentNumber": record.DocumentNumber,
        "documentType": record.DocumentType,
        "status": record.Status,
        "insuranceCompany": record.InsuranceCompany,
        "policyNumber": record.PolicyNumber,
        "generalLiabilityLimit": format_cents(record.GeneralLiabilityLimitCents),
        "equipmentLimit": format_cents(record.EquipmentLimitCents),
        "deductible": format_cents(record.DeductibleCents),
        "effectiveDate": record.EffectiveDate,
        "expiresAt": record.ExpiresAt,
        "additionalInsuredIncluded": bool(record.AdditionalInsuredIncluded),
        "lossPayeeIncluded": bool(record.LossPayeeIncluded),
        "waiverOfSubrogationIncluded": bool(record.WaiverOfSubrogationIncluded),
        "validationResults": parse_validation(record.ValidationResults),
        "reviewedBy": record.ReviewedBy,
        "reviewedAt": record.ReviewedAt,
        "reviewNotes": record.ReviewNotes,
        "createdDate": record.CreatedDate,
    }
