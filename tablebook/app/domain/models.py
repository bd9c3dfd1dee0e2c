from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date

ACTIVE_STATUSES = ("pending", "confirmed")
RESERVATION_STATUSES = ("pending", "confirmed", "cancelled", "completed", "no-show")
WAITLIST_STATUSES = ("waiting", "seated", "cancelled")


@dataclass(frozen=True)
class Table:
    id: int
    number: str
    capacity: int
    zone: str | None = None
    active: bool = True


@dataclass(frozen=True)
class Reservation:
    id: int
    table_id: int
    service_date: date
    # Minutes from the service date's midnight; past 1440 for the after-midnight tail
    start_minute: int
    duration_minutes: int
    status: str = "confirmed"
    source: str | None = None
    code: str | None = None
    party_size: int | None = None
    customer_name: str | None = None
    contact_phone: str | None = None
    contact_email: str | None = None
    notes: str | None = None

    @property
    def end_minute(self) -> int:
        return self.start_minute + self.duration_minutes

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


@dataclass(frozen=True)
class NewReservation:
    table_id: int
    service_date: date
    start_minute: int
    duration_minutes: int
    party_size: int
    customer_name: str
    source: str = "phone"
    contact_phone: str | None = None
    contact_email: str | None = None
    notes: str | None = None
    status: str = "confirmed"
    code: str | None = None


@dataclass(frozen=True)
class NewWaitlistEntry:
    service_date: date
    party_size: int
    customer_name: str
    contact_phone: str
    contact_email: str | None = None
    preferred_time: str | None = None
    flexible: bool = False
    notes: str | None = None
    priority: int | None = None


@dataclass(frozen=True)
class WaitlistEntry:
    id: int
    service_date: date
    party_size: int
    customer_name: str
    contact_phone: str
    contact_email: str | None = None
    preferred_time: str | None = None
    flexible: bool = False
    notes: str | None = None
    priority: int = 2
    status: str = "waiting"


@dataclass(frozen=True)
class BusinessHours:
    """Weekly schedule entry; weekday follows date.weekday() (0 = Monday)."""

    weekday: int
    closed: bool
    open_minute: int | None = None
    close_minute: int | None = None


@dataclass(frozen=True)
class HoursException:
    service_date: date
    closed: bool
    open_minute: int | None = None
    close_minute: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class ResolvedHours:
    closed: bool
    open_minute: int | None = None
    close_minute: int | None = None
    is_exception: bool = False
    reason: str | None = None

    @property
    def crosses_midnight(self) -> bool:
        if self.closed or self.open_minute is None or self.close_minute is None:
            return False
        return self.close_minute <= self.open_minute


@dataclass(frozen=True)
class LastEntry:
    valid: bool
    available_minutes: int
    crosses_midnight: bool
    last_entry: str | None = None
    last_entry_minute: int | None = None
    reason: str | None = None


@dataclass(frozen=True)
class Conflict:
    reservation_id: int
    start: str
    end: str
    code: str | None = None
    source: str | None = None
    in_progress: bool = False


@dataclass(frozen=True)
class ConflictCheck:
    table_id: int
    valid: bool
    conflicts: tuple[Conflict, ...] = ()
    error: str | None = None


@dataclass(frozen=True)
class AlternativeSlot:
    time: str
    start_minute: int
    free_table_count: int
    minutes_from_requested: int
    is_release_event: bool = False
    is_exact_match: bool = False
    table_ids: tuple[int, ...] = ()


@dataclass(frozen=True)
class BookingWindow:
    hours: ResolvedHours
    duration_minutes: int
    last_entry: LastEntry
    start_minute: int


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    last_entry: str | None = None
    reason: str | None = None
    message: str | None = None
    suggestion: str | None = None
    duration_minutes: int | None = None


@dataclass
class AllocationResult:
    allocated: Table | None
    window: BookingWindow | None = None
    candidates: list[Table] = field(default_factory=list)
    conflicts: list[Conflict] = field(default_factory=list)
    alternatives: list[AlternativeSlot] = field(default_factory=list)


@dataclass(frozen=True)
class BookingRequest:
    service_date: date
    time: str
    party_size: int
    customer_name: str
    duration_minutes: int | None = None
    table_id: int | None = None
    source: str = "phone"
    contact_phone: str | None = None
    contact_email: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class ReservationChanges:
    service_date: date | None = None
    time: str | None = None
    party_size: int | None = None
    duration_minutes: int | None = None
    table_id: int | None = None
    notes: str | None = None

    @property
    def reschedules(self) -> bool:
        return any(
            value is not None
            for value in (self.service_date, self.time, self.party_size, self.duration_minutes, self.table_id)
        )
