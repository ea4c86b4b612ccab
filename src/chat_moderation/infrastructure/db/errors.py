"""Translation of driver-level failures into the store error taxonomy."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime

from sqlalchemy.exc import IntegrityError, InterfaceError, OperationalError

from chat_moderation.application.ports.store_errors import StoreUnavailableError

logger = logging.getLogger(__name__)


@contextmanager
def translate_store_errors(operation: str) -> Iterator[None]:
    """Re-raise connection and operational failures as StoreUnavailableError."""

    try:
        yield
    except (OperationalError, InterfaceError) as error:
        logger.error("store_unavailable operation=%s error=%s", operation, error)
        raise StoreUnavailableError(f"Durable store unavailable during {operation}") from error


def is_constraint_violation(error: IntegrityError, *markers: str) -> bool:
    """Return whether the integrity error mentions any of the constraint markers."""

    message = str(error.orig).lower()
    return any(marker.lower() in message for marker in markers)


def as_utc(value: datetime) -> datetime:
    """Normalize naive datetimes read back from SQLite to UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value
