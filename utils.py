"""
Storage read retries and input sanitizing for stored text.

Only reads are retried. A locked SQLite file, a Postgres serialization
failure or deadlock, and a dropped asyncpg connection clear up on their own;
anything else propagates on the first attempt.
"""
import asyncio
import functools
import logging
from typing import Iterator, Optional

from asyncpg import exceptions as pg_errors
from sqlalchemy.exc import DBAPIError, OperationalError

logger = logging.getLogger(__name__)

STORAGE_READ_RETRIES = 2
RETRY_BASE_DELAY = 0.05

SQLITE_LOCKED_MESSAGES = ("database is locked", "database table is locked")

ASYNCPG_TRANSIENT_ERRORS = (
    pg_errors.SerializationError,
    pg_errors.DeadlockDetectedError,
    pg_errors.TooManyConnectionsError,
    pg_errors.CannotConnectNowError,
    pg_errors.ConnectionDoesNotExistError,
)


def _error_chain(exc: BaseException) -> Iterator[BaseException]:
    # SQLAlchemy keeps the driver error on ``orig``; the asyncpg adapter
    # re-raises the asyncpg exception as ``__cause__`` of that.
    seen = set()
    current: Optional[BaseException] = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = getattr(current, "orig", None) or current.__cause__


def is_transient_error(exc: BaseException) -> bool:
    """True when a storage read failed for a reason a retry can fix."""
    if isinstance(exc, DBAPIError) and exc.connection_invalidated:
        return True
    for error in _error_chain(exc):
        if isinstance(error, ASYNCPG_TRANSIENT_ERRORS):
            return True
        if isinstance(error, OperationalError):
            message = str(error).lower()
            if any(locked in message for locked in SQLITE_LOCKED_MESSAGES):
                return True
    return False


def retry_storage_read(func):
    """
    Retry a ``BundleStorage`` read method on transient database errors.

    The wrapped storage's session is rolled back between attempts, since
    Postgres refuses further statements in a transaction that has failed.
    """
    @functools.wraps(func)
    async def wrapper(storage, *args, **kwargs):
        for attempt in range(STORAGE_READ_RETRIES + 1):
            try:
                return await func(storage, *args, **kwargs)
            except Exception as e:
                if attempt >= STORAGE_READ_RETRIES or not is_transient_error(e):
                    raise
                delay = RETRY_BASE_DELAY * (2 ** attempt)
                logger.warning(
                    f"Retry {attempt + 1}/{STORAGE_READ_RETRIES} for {func.__name__} "
                    f"after {delay:.2f}s due to: {type(e).__name__}: {str(e)[:100]}"
                )
                await storage.session.rollback()
                await asyncio.sleep(delay)

    return wrapper


def sanitize_string(value: Optional[str], max_length: int = 1000, default: str = "") -> str:
    """Strip null bytes and surrounding whitespace, then cap the length."""
    if value is None:
        return default
    cleaned = str(value).replace("\x00", "").strip()
    return cleaned[:max_length]
