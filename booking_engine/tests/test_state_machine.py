import os
import sys
import unittest
from datetime import datetime
from pathlib import Path
from types import SimpleNamespace


os.environ.setdefault("BOOKING_ENGINE_DB_URL", "sqlite+pysqlite:///:memory:")

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from services.booking_errors import BookingValidationError, InvalidStateTransitionError
from services.booking_state_service import (
    ACTIVE_STATUSES,
    ALL_STATUSES,
    STATE_TRANSITIONS,
    TERMINAL_STATUSES,
    apply_cancellation,
    apply_transition,
    ensure_transition,
    normalize_status,
)


NOW = datetime(2026, 3, 2, 9, 0)


def make_booking(status):
    return SimpleNamespace(
        Status=status,
        UpdatedDate=None,
        ActualStartDate=None,
        ActualEndDate=None,
        CancelledAt=None,
        CancellationReason=None,
        CancellationFeeCents=0,
    )


class TransitionTableTests(unittest.TestCase):
    def test_every_listed_edge_is_allowed(self):
        for current, targets in STATE_TRANSITIONS.items():
            for target in targets:
                ensure_transition(current, target)

    def test_every_unlisted_edge_is_rejected(self):
        for current in ALL_STATUSES:
            for target in ALL_STATUSES - STATE_TRANSITIONS[current]:
                with self.assertRaises(InvalidStateTransitionError):
                    ensure_transition(current, target)

    def test_terminal_and_active_sets(self):
        self.assertEqual(TERMINAL_STATUSES, {"COMPLETED", "CANCELLED", "NO_SHOW"})
        self.assertNotIn("CANCELLED", ACTIVE_STATUSES)
        self.assertIn("IN_PROGRESS", ACTIVE_STATUSES)

    def test_no_show_only_from_confirmed(self):
        sources = {status for status, targets in STATE_TRANSITIONS.items() if "NO_SHOW" in targets}
        self.assertEqual(sources, {"CONFIRMED"})

    def test_normalize_status(self):
        self.assertEqual(normalize_status(" paid "), "PAID")
        with self.assertRaises(BookingValidationError):
            normalize_status("ARCHIVED")
        with self.assertRaises(BookingValidationError):
            normalize_status(None)


class ApplyTransitionTests(unittest.TestCase):
    def test_delivered_stamps_start_and_rents_equipment(self):
        booking = make_booking("READY_FOR_PICKUP")
        equipment = SimpleNamespace(Status="AVAILABLE", UpdatedDate=None)

        previous = apply_transition(booking, "DELIVERED", NOW, equipment)

        self.assertEqual(previous, "READY_FOR_PICKUP")
        self.assertEqual(booking.Status, "DELIVERED")
        self.assertEqual(booking.ActualStartDate, NOW)
        self.assertEqual(equipment.Status, "RENTED")

    def test_completed_stamps_end_and_frees_equipment(self):
        booking = make_booking("IN_PROGRESS")
        equipment = SimpleNamespace(Status="RENTED", UpdatedDate=None)

        apply_transition(booking, "COMPLETED", NOW, equipment)

        self.assertEqual(booking.ActualEndDate, NOW)
        self.assertEqual(equipment.Status, "AVAILABLE")

    def test_equipment_in_maintenance_is_left_alone(self):
        booking = make_booking("READY_FOR_PICKUP")
        equipment = SimpleNamespace(Status="MAINTENANCE", UpdatedDate=None)

        apply_transition(booking, "DELIVERED", NOW, equipment)

        self.assertEqual(equipment.Status, "MAINTENANCE")

    def test_rejected_edge_leaves_booking_untouched(self):
        booking = make_booking("PENDING")
        with self.assertRaises(InvalidStateTransitionError) as ctx:
            apply_transition(booking, "DELIVERED", NOW)
        self.assertEqual(booking.Status, "PENDING")
        self.assertIsNone(booking.UpdatedDate)
        self.assertEqual(ctx.exception.payload()["from"], "PENDING")
        self.assertEqual(ctx.exception.payload()["to"], "DELIVERED")


class CancellationTests(unittest.TestCase):
    def test_cancel_from_open_states(self):
        for status in ("PENDING", "CONFIRMED", "PAID", "INSURANCE_VERIFIED", "READY_FOR_PICKUP", "DELIVERED"):
            booking = make_booking(status)
            apply_cancellation(booking, "Customer changed plans", 2500, NOW)
            self.assertEqual(booking.Status, "CANCELLED")
            self.assertEqual(booking.CancelledAt, NOW)
            self.assertEqual(booking.CancellationReason, "Customer changed plans")
            self.assertEqual(booking.CancellationFeeCents, 2500)

    def test_cancel_completed_is_rejected(self):
        booking = make_booking("COMPLETED")
        with self.assertRaises(InvalidStateTransitionError):
            apply_cancellation(booking, "Too late", 0, NOW)
        self.assertIsNone(booking.CancelledAt)

    def test_cancel_in_progress_is_rejected(self):
        with self.assertRaises(InvalidStateTransitionError):
            apply_cancellation(make_booking("IN_PROGRESS"), "Mid rental", 0, NOW)

    def test_cancel_requires_reason_and_non_negative_fee(self):
        with self.assertRaises(BookingValidationError):
            apply_cancellation(make_booking("PENDING"), "   ", 0, NOW)
        with self.assertRaises(BookingValidationError):
            apply_cancellation(make_booking("PENDING"), "Valid", -1, NOW)

    def test_cancel_after_delivery_returns_equipment(self):
        booking = make_booking("DELIVERED")
        equipment = SimpleNamespace(Status="RENTED", UpdatedDate=None)
        apply_cancellation(booking, "Unit returned early", 0, NOW, equipment)
        self.assertEqual(equipment.Status, "AVAILABLE")


if __name__ == "__main__":
    unittest.main()
