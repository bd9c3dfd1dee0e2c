import logging
from dataclasses import asdict

from fastapi import HTTPException, status

from tablebook.app.domain.errors import (
    BookingError,
    BoundaryError,
    ClosedError,
    ConcurrencyLostRaceError,
    ConflictError,
    InsufficientWindowError,
    ReservationNotFoundError,
    TransientStorageError,
    ValidationError,
)
from tablebook.app.routers.schemas import AlternativeSlotOut, ConflictOut

logger = logging.getLogger(__name__)


def alternatives_payload(alternatives) -> list[dict]:
    return [AlternativeSlotOut.model_validate(asdict(slot)).model_dump() for slot in alternatives]


def to_http_exception(exc: BookingError) -> HTTPException:
    """Translate a booking outcome into the HTTP response the callers expect."""
    if isinstance(exc, ReservationNotFoundError):
        return HTTPException(status.HTTP_404_NOT_FOUND, detail=exc.message)
    if isinstance(exc, ValidationError):
        return HTTPException(status.HTTP_422_UNPROCESSABLE_ENTITY, detail=exc.message)
    if isinstance(exc, (ClosedError, InsufficientWindowError, BoundaryError)):
        detail = {"message": exc.message, "reason": exc.reason, "suggestion": exc.suggestion}
        if isinstance(exc, ClosedError) and exc.next_open_date is not None:
            detail["next_open_date"] = exc.next_open_date.isoformat()
        return HTTPException(status.HTTP_400_BAD_REQUEST, detail=detail)
    if isinstance(exc, ConflictError):
        return HTTPException(
            status.HTTP_409_CONFLICT,
            detail={
                "message": exc.message,
                "suggestion": exc.suggestion,
                "conflicts": [ConflictOut.model_validate(asdict(c)).model_dump() for c in exc.conflicts],
                "alternatives": alternatives_payload(exc.alternatives),
            },
        )
    if isinstance(exc, ConcurrencyLostRaceError):
        return HTTPException(status.HTTP_409_CONFLICT, detail=exc.message)
    if isinstance(exc, TransientStorageError):
        return HTTPException(status.HTTP_503_SERVICE_UNAVAILABLE, detail=exc.message)

    logger.error("Unmapped booking error: %r", exc)
    return HTTPException(status.HTTP_500_INTERNAL_SERVER_ERROR, detail=exc.message)
