#!/usr/bin/env python3
"""Create the booking engine tables and optionally seed one equipment unit and customer."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

from sqlalchemy import select

APP_DIR = Path(__file__).resolve().parents[1]
if str(APP_DIR) not in sys.path:
    sys.path.insert(0, str(APP_DIR))

from db.base import Base
from db.factory import build_engine, build_session_factory
from models.booking_models import Customer, Equipment
from services.money import to_cents


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Create booking engine tables and optionally seed demo rows.",
    )
    parser.add_argument(
        "--db-url",
        default=os.environ.get("BOOKING_ENGINE_DB_URL", "").strip(),
        help="SQLAlchemy DB URL; defaults to BOOKING_ENGINE_DB_URL env var.",
    )
    parser.add_argument("--seed-equipment", metavar="UNIT_CODE", default=None, help="Unit code of an equipment row to create, e.g. SVL75-001")
    parser.add_argument("--daily-rate", default="350", help="Daily rate in dollars")
    parser.add_argument("--weekly-rate", default="1200", help="Weekly rate in dollars")
    parser.add_argument("--monthly-rate", default="3600", help="Monthly rate in dollars")
    parser.add_argument("--replacement-value", default="120000", help="Replacement value in dollars")
    parser.add_argument("--seed-customer", metavar="FULL_NAME", default=None, help="Name of a customer row to create")
    parser.add_argument("--customer-email", default=None)
    return parser


def main() -> int:
    args = _build_parser().parse_args()
    if not args.db_url:
        print("Missing --db-url (or BOOKING_ENGINE_DB_URL).", file=sys.stderr)
        return 2

    engine = build_engine(args.db_url)
    Base.metadata.create_all(engine)
    print(f"Tables ready: {', '.join(sorted(Base.metadata.tables))}")

    session_factory = build_session_factory(engine)
    with session_factory() as db:
        with db.begin():
            if args.seed_equipment:
                existing = db.execute(
                    select(Equipment).where(Equipment.UnitCode == args.seed_equipment)
                ).scalars().first()
                if existing:
                    print(f"Equipment {args.seed_equipment} already exists (id={existing.EquipmentID}).")
                else:
                    equipment = Equipment(
                        UnitCode=args.seed_equipment,
                        DailyRateCents=to_cents(args.daily_rate),
                        WeeklyRateCents=to_cents(args.weekly_rate),
                        MonthlyRateCents=to_cents(args.monthly_rate),
                        ReplacementValueCents=to_cents(args.replacement_value),
                        Status="AVAILABLE",
                    )
                    db.add(equipment)
                    db.flush()
                    print(f"Created equipment {equipment.UnitCode} (id={equipment.EquipmentID}).")
            if args.seed_customer:
                customer = Customer(FullName=args.seed_customer, Email=args.customer_email, IsActive=True)
                db.add(customer)
                db.flush()
                print(f"Created customer {customer.FullName} (id={customer.CustomerID}).")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
