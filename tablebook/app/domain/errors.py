from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tablebook.app.domain.models import AlternativeSlot, Conflict


class BookingError(Exception):
    """Base class for every outcome that stops a booking."""

    reason = "booking_error"

    def __init__(self, message: str, *, suggestion: str | None = None):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion


class ValidationError(BookingError):
    reason = "invalid_request"


class FormatError(ValidationError):
    reason = "invalid_format"


class ReservationNotFoundError(ValidationError):
    reason = "reservation_not_found"


class ClosedError(BookingError):
    reason = "closed"

    def __init__(self, message: str, *, next_open_date: date | None = None, suggestion: str | None = None):
        super().__init__(message, suggestion=suggestion)
        self.next_open_date = next_open_date


class InsufficientWindowError(BookingError):
    reason = "insufficient open window"

    def __init__(self, message: str, *, available_minutes: int, duration_minutes: int):
        super().__init__(message)
        self.available_minutes = available_minutes
        self.duration_minutes = duration_minutes


class BoundaryError(BookingError):
    reason = "outside_opening_window"

    def __init__(self, message: str, *, suggestion: str | None = None, last_entry: str | None = None):
        super().__init__(message, suggestion=suggestion)
        self.last_entry = last_entry


class ConflictError(BookingError):
    reason = "table_unavailable"

    def __init__(
        self,
        message: str,
        *,
        conflicts: list[Conflict] | None = None,
        alternatives: list[AlternativeSlot] | None = None,
    ):
        suggestion = alternatives[0].time if alternatives else None
        super().__init__(message, suggestion=suggestion)
        self.conflicts = conflicts or []
        self.alternatives = alternatives or []


class TransientStorageError(BookingError):
    reason = "storage_unavailable"


class ConcurrencyLostRaceError(BookingError):
    reason = "lost_race"
