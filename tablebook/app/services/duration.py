import logging

from tablebook.app.core.config import settings
from tablebook.app.domain.errors import TransientStorageError
from tablebook.app.domain.store import ReservationStore

logger = logging.getLogger(__name__)


async def resolve_duration(store: ReservationStore, explicit_minutes: int | None = None) -> int:
    """Reservation length to apply for a request.

    An explicit positive value wins. Otherwise the venue default is read fresh on
    every call (operators change it mid-session); only a failed read falls back to
    the configured conservative default.
    """
    if explicit_minutes is not None and explicit_minutes > 0:
        return explicit_minutes

    fallback = settings.DEFAULT_DURATION_FALLBACK
    try:
        current = await store.get_default_duration()
    except TransientStorageError as exc:
        logger.warning("Default duration unavailable (%s), using %s min", exc, fallback)
        return fallback

    if current is None or current <= 0:
        logger.warning("No usable default duration configured, using %s min", fallback)
        return fallback
    return current
