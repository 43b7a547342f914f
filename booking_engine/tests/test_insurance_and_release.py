import json
import os
import sys
import unittest
from datetime import datetime, timedelta
from pathlib import Path
from types import SimpleNamespace


os.environ.setdefault("BOOKING_ENGINE_DB_URL", "sqlite+pysqlite:///:memory:")

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from services.insurance_service import (
    NO_CERTIFICATE,
    NO_CURRENT_COVERAGE,
    coverage_gaps,
    evaluate_insurance,
    parse_validation,
    store_validation,
)
from services.release_gate_service import NOT_READY, can_release


NOW = datetime(2026, 3, 2, 9, 0)
EQUIPMENT = SimpleNamespace(ReplacementValueCents=12_000_000)


def make_record(**overrides):
    values = {
        "Status": "APPROVED",
        "GeneralLiabilityLimitCents": 200_000_000,
        "EquipmentLimitCents": 12_000_000,
        "EffectiveDate": NOW - timedelta(days=10),
        "ExpiresAt": NOW + timedelta(days=200),
        "AdditionalInsuredIncluded": True,
        "LossPayeeIncluded": True,
        "WaiverOfSubrogationIncluded": True,
        "ValidationResults": None,
    }
    values.update(overrides)
    return SimpleNamespace(**values)


def make_booking(status):
    return SimpleNamespace(Status=status)


class EvaluateInsuranceTests(unittest.TestCase):
    def test_compliant_record(self):
        report = evaluate_insurance(make_record(), EQUIPMENT, NOW)
        self.assertTrue(report.is_valid)
        self.assertEqual(report.errors, [])

    def test_each_shortfall_is_itemized(self):
        record = make_record(
            GeneralLiabilityLimitCents=100_000_000,
            EquipmentLimitCents=5_000_000,
            AdditionalInsuredIncluded=False,
            LossPayeeIncluded=False,
            WaiverOfSubrogationIncluded=False,
        )
        report = evaluate_insurance(record, EQUIPMENT, NOW)
        self.assertFalse(report.is_valid)
        self.assertEqual(
            report.errors,
            [
                "General Liability limit must be at least $2,000,000.00",
                "Equipment limit must be at least $120,000.00",
                "Rental company must be named as Additional Insured",
                "Rental company must be named as Loss Payee",
                "Waiver of Subrogation endorsement is required",
            ],
        )

    def test_limits_are_inclusive(self):
        record = make_record(GeneralLiabilityLimitCents=200_000_000, EquipmentLimitCents=12_000_000)
        self.assertTrue(evaluate_insurance(record, EQUIPMENT, NOW).is_valid)
        record = make_record(EquipmentLimitCents=11_999_999)
        self.assertFalse(evaluate_insurance(record, EQUIPMENT, NOW).is_valid)

    def test_expired_and_missing_expiry(self):
        self.assertIn(
            "Insurance document has expired",
            evaluate_insurance(make_record(ExpiresAt=NOW), EQUIPMENT, NOW).errors,
        )
        self.assertIn(
            "Insurance expiration date is required",
            evaluate_insurance(make_record(ExpiresAt=None), EQUIPMENT, NOW).errors,
        )

    def test_not_yet_effective_is_a_warning(self):
        report = evaluate_insurance(make_record(EffectiveDate=NOW + timedelta(days=3)), EQUIPMENT, NOW)
        self.assertTrue(report.is_valid)
        self.assertEqual(report.warnings, ["Insurance document is not yet effective"])

    def test_store_validation_round_trips_as_json(self):
        record = make_record()
        store_validation(record, evaluate_insurance(record, EQUIPMENT, NOW), NOW, checked_by="reviewer@example.com")
        stored = json.loads(record.ValidationResults)
        self.assertTrue(stored["isValid"])
        self.assertEqual(stored["checkedBy"], "reviewer@example.com")
        self.assertEqual(parse_validation(record.ValidationResults)["checkedAt"], NOW.isoformat())
        self.assertEqual(parse_validation("not json"), {})


class CoverageGapTests(unittest.TestCase):
    def test_no_records(self):
        self.assertEqual(coverage_gaps([], EQUIPMENT, NOW), [NO_CERTIFICATE, NO_CURRENT_COVERAGE])

    def test_rejected_and_expired_records_do_not_count(self):
        records = [make_record(Status="REJECTED"), make_record(ExpiresAt=NOW - timedelta(days=1))]
        self.assertEqual(coverage_gaps(records, EQUIPMENT, NOW), [NO_CERTIFICATE, NO_CURRENT_COVERAGE])

    def test_one_compliant_record_is_enough(self):
        records = [make_record(LossPayeeIncluded=False), make_record()]
        self.assertEqual(coverage_gaps(records, EQUIPMENT, NOW), [])

    def test_gaps_are_deduplicated(self):
        records = [make_record(LossPayeeIncluded=False), make_record(LossPayeeIncluded=False)]
        self.assertEqual(coverage_gaps(records, EQUIPMENT, NOW), ["Rental company must be named as Loss Payee"])


class ReleaseGateTests(unittest.TestCase):
    def test_releases_with_approved_compliant_record(self):
        for status in ("INSURANCE_VERIFIED", "READY_FOR_PICKUP"):
            decision = can_release(make_booking(status), EQUIPMENT, [make_record()], NOW)
            self.assertTrue(decision.can_release)
            self.assertEqual(decision.missing_requirements, [])

    def test_not_ready_statuses(self):
        for status in ("PENDING", "CONFIRMED", "PAID", "DELIVERED", "CANCELLED"):
            decision = can_release(make_booking(status), EQUIPMENT, [make_record()], NOW)
            self.assertFalse(decision.can_release)
            self.assertEqual(decision.reason, NOT_READY)

    def test_pending_review_record_blocks_release(self):
        decision = can_release(make_booking("INSURANCE_VERIFIED"), EQUIPMENT, [make_record(Status="UNDER_REVIEW")], NOW)
        self.assertFalse(decision.can_release)
        self.assertEqual(decision.missing_requirements, [NO_CERTIFICATE, NO_CURRENT_COVERAGE])

    def test_insufficient_equipment_limit_is_reported(self):
        decision = can_release(
            make_booking("READY_FOR_PICKUP"),
            EQUIPMENT,
            [make_record(EquipmentLimitCents=10_000_000)],
            NOW,
        )
        self.assertFalse(decision.can_release)
        self.assertEqual(decision.missing_requirements, ["Equipment limit must be at least $120,000.00"])
        self.assertEqual(decision.as_dict()["canRelease"], False)

    def test_expiry_after_verification_blocks_release(self):
        record = make_record(ExpiresAt=NOW + timedelta(hours=1))
        booking = make_booking("READY_FOR_PICKUP")
        self.assertTrue(can_release(booking, EQUIPMENT, [record], NOW).can_release)
        self.assertFalse(can_release(booking, EQUIPMENT, [record], NOW + timedelta(hours=2)).can_release)


if __name__ == "__main__":
    unittest.main()
