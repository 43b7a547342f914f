from collections.abc import Generator

from .session import SessionLocalBooking


def get_booking_db() -> Generator:
    db = SessionLocalBooking()
    try:
        yield db
    finally:
        db.close()
