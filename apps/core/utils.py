# core/utils.py

"""
Central utilities for the access-control apps.
Prevents code duplication and ensures consistency across all apps.
"""
from django.conf import settings
from django.core.exceptions import ValidationError
from django.utils import timezone
from datetime import date, datetime, timedelta
import uuid
import logging

logger = logging.getLogger(__name__)


ACCESS_CONTROL_DEFAULTS = {
    'READ_RETRY_ATTEMPTS': 1,
    'PROTECTED_PATH_PREFIXES': ['/portal/', '/results/'],
    'DEFAULT_ACCESS_PERIOD_DAYS': 180,
    'REGISTRATION_DEADLINE_SECONDS': None,
    'STUDENT_ID_ATTRIBUTE': 'student_id',
    'MODULE_RULES': {
        '/portal/results/': 'access',
        '/portal/courses/': 'access',
        '/portal/timetable/': 'access',
        '/portal/financial/': 'payment_approved',
    },
    'ACCESS_EXPIRY_WARNING_DAYS': 7,
    'SEMESTER_END_WARNING_DAYS': 14,
}


# =============================================================================
# SETTINGS
# =============================================================================

def get_access_setting(name):
    """
    Read a value from settings.ACCESS_CONTROL, falling back to the defaults.

    Example:
        >>> from core.utils import get_access_setting
        >>> get_access_setting('READ_RETRY_ATTEMPTS')
        1
    """
    if name not in ACCESS_CONTROL_DEFAULTS:
        raise KeyError(f"Unknown access control setting: {name}")
    configured = getattr(settings, 'ACCESS_CONTROL', None) or {}
    return configured.get(name, ACCESS_CONTROL_DEFAULTS[name])


# =============================================================================
# DATES
# =============================================================================

def get_today():
    """
    Today's date in the configured TIME_ZONE.

    Access windows are whole calendar days, so all policy checks compare
    against the local date rather than the UTC one.
    """
    return timezone.localdate()


def get_current_time():
    """Current aware datetime"""
    return timezone.now()


def validate_date_range(start_date, end_date, allow_same_day=True):
    """
    Validate that start_date precedes end_date.

    Args:
        start_date: Start of the range
        end_date: End of the range
        allow_same_day: Whether start_date == end_date is acceptable

    Returns:
        tuple: (is_valid, error_message)
    """
    if not start_date or not end_date:
        return False, "Both start and end dates are required"

    if allow_same_day:
        if end_date < start_date:
            return False, "End date cannot be before start date"
    elif end_date <= start_date:
        return False, "End date must be after start date"

    return True, None


def default_access_window(start=None):
    """
    Build an (access_valid_from, access_valid_until) tuple starting at
    `start` (default today) and lasting DEFAULT_ACCESS_PERIOD_DAYS.
    """
    start = start or get_today()
    days = get_access_setting('DEFAULT_ACCESS_PERIOD_DAYS')
    return start, start + timedelta(days=days)


# =============================================================================
# VALUES
# =============================================================================

def coerce_uuid(value, field_name):
    """
    Parse an identifier supplied by a caller.

    Raises:
        ValidationError: when value is missing or is not a UUID
    """
    if value is None or value == '':
        raise ValidationError({field_name: f"{field_name} is required"})
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except (ValueError, AttributeError, TypeError):
        raise ValidationError({field_name: f"'{value}' is not a valid identifier"})


def coerce_date(value, field_name):
    """Parse an ISO date string (or pass through a date)"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except (ValueError, TypeError):
        raise ValidationError({field_name: f"'{value}' is not a valid date (YYYY-MM-DD)"})
