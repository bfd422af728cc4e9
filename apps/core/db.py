# core/db.py

"""
Datastore failure handling.

Reads are idempotent and get one extra attempt after a transient error.
Writes are never retried: a failed write is reported as a DatastoreError
and the caller decides what to do.
"""

from functools import wraps
from django.db import DatabaseError, InterfaceError, OperationalError
import logging

from core.exceptions import DatastoreError
from core.utils import get_access_setting

logger = logging.getLogger(__name__)

TRANSIENT_ERRORS = (OperationalError, InterfaceError)


def retry_read(func):
    """
    Decorator for read-only datastore calls.

    Retries READ_RETRY_ATTEMPTS times on OperationalError/InterfaceError,
    then raises DatastoreError chained from the last error.

    Example:
        @retry_read
        def load_balance(student_id):
            return FinancialRecord.objects.filter(student_id=student_id).aggregate(...)
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        attempts = 1 + max(0, int(get_access_setting('READ_RETRY_ATTEMPTS')))
        last_error = None

        for attempt in range(1, attempts + 1):
            try:
                return func(*args, **kwargs)
            except TRANSIENT_ERRORS as e:
                last_error = e
                logger.warning(
                    f"Read {func.__qualname__} failed (attempt {attempt}/{attempts}): {e}"
                )

        raise DatastoreError(
            f"Read {func.__qualname__} failed after {attempts} attempts"
        ) from last_error

    return wrapper


def guard_write(func):
    """
    Decorator for datastore writes: any DatabaseError becomes DatastoreError.

    IntegrityError is a DatabaseError too, so callers that treat constraint
    violations as outcomes must catch it inside the decorated function.
    """
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except DatabaseError as e:
            logger.error(f"Write {func.__qualname__} failed: {e}", exc_info=True)
            raise DatastoreError(f"Write {func.__qualname__} failed") from e

    return wrapper
