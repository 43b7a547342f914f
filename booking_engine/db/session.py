import os

from .factory import build_engine, build_session_factory


def _require_env(name: str) -> str:
    value = os.environ.get(name)
    if not value:
        raise RuntimeError(f"Missing required environment variable: {name}")
    return value


BOOKING_ENGINE_DB_URL = _require_env("BOOKING_ENGINE_DB_URL")

engine_booking = build_engine(BOOKING_ENGINE_DB_URL)

SessionLocalBooking = build_session_factory(engine_booking)
