from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable

from models.booking_models import Booking, Equipment, InsuranceRecord
from services.booking_state_service import RELEASABLE_STATUSES
from services.insurance_service import (
    APPROVED,
    NO_CERTIFICATE,
    NO_CURRENT_COVERAGE,
    evaluate_insurance,
    is_unexpired,
)


NOT_READY = "booking not ready"


@dataclass(frozen=True)
class ReleaseDecision:
    can_release: bool
    reason: str
    missing_requirements: list[str] = field(default_factory=list)

    def as_dict(self) -> dict:
        return {
            "canRelease": self.can_release,
            "reason": self.reason,
            "missingRequirements": list(self.missing_requirements),
        }


def can_release(booking: Booking, equipment: Equipment, records: Iterable[InsuranceRecord], now: datetime) -> ReleaseDecision:
    """No COI, no release. Advisory only: never touches booking or equipment state."""
    if booking.Status not in RELEASABLE_STATUSES:
        return ReleaseDecision(
            can_release=False,
            reason=NOT_READY,
            missing_requirements=[f"Booking must be INSURANCE_VERIFIED or READY_FOR_PICKUP (currently {booking.Status})"],
        )

    approved = [record for record in records if record.Status == APPROVED and is_unexpired(record, now)]
    if not approved:
        return ReleaseDecision(
            can_release=False,
            reason="No valid approved insurance documents found",
            missing_requirements=[NO_CERTIFICATE, NO_CURRENT_COVERAGE],
        )

    missing: list[str] = []
    for record in approved:
        report = evaluate_insurance(record, equipment, now)
        if report.is_valid:
            return ReleaseDecision(can_release=True, reason="All insurance requirements met")
        for error in report.errors:
            if error not in missing:
                missing.append(error)

    return ReleaseDecision(
        can_release=False,
        reason="Insurance does not meet requirements",
        missing_requirements=missing,
    )
