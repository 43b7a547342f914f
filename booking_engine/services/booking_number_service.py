from __future__ import annotations

from datetime import date

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models.booking_models import BookingSequence


def format_sequence_number(prefix: str, year: int, value: int) -> str:
    return f"{prefix}-{year}-{value:03d}"


def _increment(db: Session, prefix: str, year: int) -> int:
    result = db.execute(
        update(BookingSequence)
        .where(BookingSequence.EntityType == prefix)
        .where(BookingSequence.Year == year)
        .values(LastValue=BookingSequence.LastValue + 1)
        .execution_options(synchronize_session=False)
    )
    return result.rowcount


def next_sequence_number(db: Session, prefix: str, issued_on: date | None = None) -> str:
    """Issue the next ``PREFIX-YEAR-NNN`` number inside the caller's transaction.

    The counter row stays write-locked until the caller commits, and a
    rollback returns the number, so committed numbers are gap-free.
    """
    token = (prefix or "").strip().upper()
    if not token:
        raise ValueError("Sequence prefix is required.")
    year = (issued_on or date.today()).year

    if not _increment(db, token, year):
        try:
            with db.begin_nested():
                db.add(BookingSequence(EntityType=token, Year=year, LastValue=1))
            return format_sequence_number(token, year, 1)
        except IntegrityError:
            # Another writer created the row first.
            if not _increment(db, token, year):
                raise

    value = db.execute(
        select(BookingSequence.LastValue)
        .where(BookingSequence.EntityType == token)
        .where(BookingSequence.Year == year)
    ).scalar_one()
    return format_sequence_number(token, year, value)
