"""
Typed failures raised by the booking engine.

The HTTP adapter maps every BookingEngineError onto a response using
``status_code`` and ``payload()``; nothing else in the engine returns
``None`` to signal a failure.
"""

from __future__ import annotations


class BookingEngineError(Exception):
    """Base exception for all booking engine errors."""

    status_code = 400

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def payload(self) -> dict:
        return {"detail": self.message}


class NotFoundError(BookingEngineError):
    """Raised when a customer, equipment unit, booking or insurance record is absent."""

    status_code = 404


class BookingValidationError(BookingEngineError):
    """Raised for malformed ranges, non-positive rates or missing required fields."""

    status_code = 400


class BookingConflictError(BookingEngineError):
    """Raised when the equipment cannot be booked for the requested range."""

    status_code = 409

    def __init__(self, message: str, conflicting_ids: list[int] | None = None) -> None:
        super().__init__(message)
        self.conflicting_ids = list(conflicting_ids or [])

    def payload(self) -> dict:
        body = super().payload()
        if self.conflicting_ids:
            body["conflictingBookingIDs"] = self.conflicting_ids
        return body


class InvalidStateTransitionError(BookingEngineError):
    status_code = 409

    def __init__(self, current: str, target: str) -> None:
        super().__init__(f"Invalid booking status transition: {current} -> {target}")
        self.current = current
        self.target = target

    def payload(self) -> dict:
        body = super().payload()
        body["from"] = self.current
        body["to"] = self.target
        return body


class InsufficientInsuranceCoverageError(BookingEngineError):
    status_code = 422

    def __init__(self, missing_requirements: list[str]) -> None:
        super().__init__("Insurance coverage does not meet rental requirements")
        self.missing_requirements = list(missing_requirements)

    def payload(self) -> dict:
        body = super().payload()
        body["missingRequirements"] = self.missing_requirements
        return body


class ConcurrencyConflictError(BookingEngineError):
    """Serialization failure inside an atomic operation; retried before surfacing as a conflict."""

    status_code = 409
