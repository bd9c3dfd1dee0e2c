import datetime as dt

from pydantic import BaseModel, Field

# "HH:MM" or "HH:MM:SS"; parsed by the scheduling services
TIME_PATTERN = r"^\d{1,2}:\d{2}(:\d{2})?$"


class AvailabilityCheckIn(BaseModel):
    date: dt.date
    time: str = Field(pattern=TIME_PATTERN)
    party_size: int = Field(ge=1, le=50)
    duration_minutes: int | None = Field(default=None, ge=15, le=480)
    table_id: int | None = None


class ValidateTimeIn(BaseModel):
    date: dt.date
    time: str = Field(pattern=TIME_PATTERN)
    duration_minutes: int | None = Field(default=None, ge=15, le=480)


class ValidationResultOut(BaseModel):
    valid: bool
    last_entry: str | None = None
    reason: str | None = None
    message: str | None = None
    suggestion: str | None = None
    duration_minutes: int | None = None


class TableOut(BaseModel):
    id: int
    number: str
    capacity: int
    zone: str | None = None


class AlternativeSlotOut(BaseModel):
    time: str
    free_table_count: int
    minutes_from_requested: int
    is_release_event: bool
    is_exact_match: bool


class ConflictOut(BaseModel):
    reservation_id: int
    code: str | None = None
    start: str
    end: str
    source: str | None = None
    in_progress: bool = False


class AllocationResultOut(BaseModel):
    allocated: TableOut | None
    duration_minutes: int
    last_entry: str | None = None
    free_table_count: int


class HoursOut(BaseModel):
    date: dt.date
    closed: bool
    open: str | None = None
    close: str | None = None
    crosses_midnight: bool = False
    is_exception: bool = False
    reason: str | None = None


class CommitReservationIn(BaseModel):
    date: dt.date
    time: str = Field(pattern=TIME_PATTERN)
    party_size: int = Field(ge=1, le=50)
    name: str = Field(min_length=1, max_length=200)
    duration_minutes: int | None = Field(default=None, ge=15, le=480)
    table_id: int | None = None
    source: str = Field(default="phone", max_length=20)
    contact_phone: str | None = Field(default=None, max_length=32)
    contact_email: str | None = Field(default=None, max_length=254)
    notes: str | None = Field(default=None, max_length=1024)


class ModifyReservationIn(BaseModel):
    date: dt.date | None = None
    time: str | None = Field(default=None, pattern=TIME_PATTERN)
    party_size: int | None = Field(default=None, ge=1, le=50)
    duration_minutes: int | None = Field(default=None, ge=15, le=480)
    table_id: int | None = None
    notes: str | None = Field(default=None, max_length=1024)


class CancelReservationIn(BaseModel):
    reason: str | None = Field(default=None, max_length=500)


class ReservationOut(BaseModel):
    id: int
    code: str | None = None
    table_id: int
    date: dt.date
    time: str
    duration_minutes: int
    party_size: int | None = None
    status: str
    name: str | None = None
    notes: str | None = None


class WaitlistIn(BaseModel):
    date: dt.date
    party_size: int = Field(ge=1, le=50)
    name: str = Field(min_length=1, max_length=200)
    contact_phone: str = Field(min_length=3, max_length=32)
    contact_email: str | None = Field(default=None, max_length=254)
    preferred_time: str | None = Field(default=None, pattern=TIME_PATTERN)
    flexible: bool = False
    notes: str | None = Field(default=None, max_length=1024)


class WaitlistOut(BaseModel):
    id: int
    date: dt.date
    party_size: int
    preferred_time: str | None = None
    flexible: bool
    priority: int
    status: str
    position: int
