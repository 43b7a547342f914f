from __future__ import annotations

import threading
from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator

from models.booking_models import Booking
from services.booking_state_service import ACTIVE_STATUSES


def ranges_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
    # Half-open ranges: a booking ending when another starts does not conflict.
    return start_a < end_b and start_b < end_a


def find_conflicts(bookings: Iterable[Booking], start: datetime, end: datetime, exclude_booking_id: int | None = None) -> list[Booking]:
    conflicts: list[Booking] = []
    for booking in bookings:
        if exclude_booking_id is not None and booking.BookingID == exclude_booking_id:
            continue
        if booking.Status not in ACTIVE_STATUSES:
            continue
        if ranges_overlap(booking.StartDate, booking.EndDate, start, end):
            conflicts.append(booking)
    return conflicts


def is_available(bookings: Iterable[Booking], start: datetime, end: datetime) -> bool:
    return not find_conflicts(bookings, start, end)


class EquipmentLockRegistry:
    """One mutual-exclusion lock per equipment id, held across check-and-insert.

    An entry lives only while some caller holds or waits on it.
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[int, list] = {}

    def __len__(self) -> int:
        with self._guard:
            return len(self._locks)

    @contextmanager
    def hold(self, equipment_id: int) -> Iterator[None]:
        key = int(equipment_id)
        with self._guard:
            entry = self._locks.get(key)
            if entry is None:
                entry = [threading.Lock(), 0]
                self._locks[key] = entry
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[key]
