from __future__ import annotations

from datetime import datetime

from models.booking_models import Booking, Equipment
from services.booking_errors import BookingValidationError, InvalidStateTransitionError


PENDING = "PENDING"
CONFIRMED = "CONFIRMED"
PAID = "PAID"
INSURANCE_VERIFIED = "INSURANCE_VERIFIED"
READY_FOR_PICKUP = "READY_FOR_PICKUP"
DELIVERED = "DELIVERED"
IN_PROGRESS = "IN_PROGRESS"
COMPLETED = "COMPLETED"
CANCELLED = "CANCELLED"
NO_SHOW = "NO_SHOW"

STATE_TRANSITIONS: dict[str, frozenset[str]] = {
    PENDING: frozenset({CONFIRMED, CANCELLED}),
    CONFIRMED: frozenset({PAID, CANCELLED, NO_SHOW}),
    PAID: frozenset({INSURANCE_VERIFIED, CANCELLED}),
    INSURANCE_VERIFIED: frozenset({READY_FOR_PICKUP, CANCELLED}),
    READY_FOR_PICKUP: frozenset({DELIVERED, CANCELLED}),
    DELIVERED: frozenset({IN_PROGRESS, CANCELLED}),
    IN_PROGRESS: frozenset({COMPLETED}),
    COMPLETED: frozenset(),
    CANCELLED: frozenset(),
    NO_SHOW: frozenset(),
}
ALL_STATUSES = frozenset(STATE_TRANSITIONS)
TERMINAL_STATUSES = frozenset(status for status, targets in STATE_TRANSITIONS.items() if not targets)
ACTIVE_STATUSES = ALL_STATUSES - TERMINAL_STATUSES
RELEASABLE_STATUSES = frozenset({INSURANCE_VERIFIED, READY_FOR_PICKUP})
# Equipment has physically left the yard in these states.
EQUIPMENT_OUT_STATUSES = frozenset({DELIVERED, IN_PROGRESS})

EQUIPMENT_AVAILABLE = "AVAILABLE"
EQUIPMENT_RENTED = "RENTED"


def normalize_status(raw: str | None) -> str:
    status = (raw or "").strip().upper()
    if status not in ALL_STATUSES:
        raise BookingValidationError(f"Unknown booking status: {raw}")
    return status


def is_terminal(status: str) -> bool:
    return status in TERMINAL_STATUSES


def ensure_transition(current: str, target: str) -> None:
    if target not in STATE_TRANSITIONS.get(current, frozenset()):
        raise InvalidStateTransitionError(current=current, target=target)


def apply_transition(booking: Booking, target: str, now: datetime, equipment: Equipment | None = None) -> str:
    """Move ``booking`` to ``target`` and return the previous status.

    Callers run any extra gate (insurance) before this; the edge itself is
    checked here so no path can skip the table.
    """
    current = booking.Status
    ensure_transition(current, target)

    booking.Status = target
    booking.UpdatedDate = now
    if target == DELIVERED:
        booking.ActualStartDate = now
    if target == COMPLETED:
        booking.ActualEndDate = now
    if target == CANCELLED and booking.CancelledAt is None:
        booking.CancelledAt = now

    if equipment is not None:
        _sync_equipment_status(equipment, current, target, now)
    return current


def apply_cancellation(
    booking: Booking,
    reason: str,
    cancellation_fee_cents: int,
    now: datetime,
    equipment: Equipment | None = None,
) -> str:
    cleaned = (reason or "").strip()
    if not cleaned:
        raise BookingValidationError("A cancellation reason is required.")
    if cancellation_fee_cents < 0:
        raise BookingValidationError("Cancellation fee cannot be negative.")
    ensure_transition(booking.Status, CANCELLED)

    booking.CancelledAt = now
    booking.CancellationReason = cleaned
    booking.CancellationFeeCents = cancellation_fee_cents
    return apply_transition(booking, CANCELLED, now, equipment)


def _sync_equipment_status(equipment: Equipment, previous: str, target: str, now: datetime) -> None:
    if target == DELIVERED and equipment.Status == EQUIPMENT_AVAILABLE:
        equipment.Status = EQUIPMENT_RENTED
        equipment.UpdatedDate = now
        return
    if previous in EQUIPMENT_OUT_STATUSES and target in TERMINAL_STATUSES and equipment.Status == EQUIPMENT_RENTED:
        equipment.Status = EQUIPMENT_AVAILABLE
        equipment.UpdatedDate = now
