# academics/services.py

"""
Academic Services Module

Business logic services for semester periods and registration review:
- Semester Period Management (create, activate, registration window)
- Active Semester Lookup
- Registration Review (approve / reject / cancel)

All write services use @transaction.atomic for data consistency.
Registrations themselves are created only by access.registration.RegistrationWorkflow.
"""

from django.db import transaction
from django.core.exceptions import ValidationError
import logging

from .models import SemesterPeriod, StudentSemesterRegistration
from core.db import retry_read, guard_write
from core.exceptions import InvalidTransition
from core.utils import get_today, get_current_time, validate_date_range
from access.audit import record_access_event
from access.models import AccessAction

logger = logging.getLogger(__name__)


# =============================================================================
# SEMESTER PERIOD SERVICE
# =============================================================================

class SemesterPeriodService:
    """Semester period management operations"""

    @staticmethod
    @guard_write
    @transaction.atomic
    def create_period(period_data):
        """
        Create a new semester period with validation.

        Args:
            period_data (dict): name, academic_year, semester_number,
                start_date, end_date, registration_start_date,
                registration_end_date and optionally is_active /
                is_registration_open

        Returns:
            SemesterPeriod: Created period
        """
        is_valid, error_msg = validate_date_range(
            period_data.get('start_date'),
            period_data.get('end_date'),
            allow_same_day=False,
        )
        if not is_valid:
            raise ValidationError({'end_date': error_msg})

        period_data = dict(period_data)
        make_active = period_data.pop('is_active', False)

        period = SemesterPeriod(**period_data)
        period.full_clean()
        period.save()

        if make_active:
            SemesterPeriodService._deactivate_others(period)
            period.is_active = True
            period.save(update_fields=['is_active'])

        logger.info(f"Created semester period: {period.name}")
        return period

    @staticmethod
    @guard_write
    @transaction.atomic
    def activate(period):
        """
        Make period the current one, deactivating every other active period.

        Returns:
            SemesterPeriod: The activated period
        """
        period = SemesterPeriod.objects.select_for_update().get(pk=period.pk)
        deactivated = SemesterPeriodService._deactivate_others(period)

        period.is_active = True
        period.set_change_reason("Activated")
        period.save(update_fields=['is_active'])

        logger.info(f"Activated semester period {period.name} ({deactivated} others deactivated)")
        return period

    @staticmethod
    @guard_write
    @transaction.atomic
    def deactivate(period):
        period = SemesterPeriod.objects.select_for_update().get(pk=period.pk)
        period.is_active = False
        period.set_change_reason("Deactivated")
        period.save(update_fields=['is_active'])

        logger.info(f"Deactivated semester period {period.name}")
        return period

    @staticmethod
    @guard_write
    @transaction.atomic
    def open_registration(period):
        """Open the registration flag; the date window still applies"""
        period = SemesterPeriod.objects.select_for_update().get(pk=period.pk)
        if period.is_historical(get_today()):
            raise ValidationError(
                f"Cannot open registration for {period.name}: the period has ended"
            )

        period.is_registration_open = True
        period.set_change_reason("Registration opened")
        period.save(update_fields=['is_registration_open'])

        logger.info(f"Opened registration for {period.name}")
        return period

    @staticmethod
    @guard_write
    @transaction.atomic
    def close_registration(period):
        period = SemesterPeriod.objects.select_for_update().get(pk=period.pk)
        period.is_registration_open = False
        period.set_change_reason("Registration closed")
        period.save(update_fields=['is_registration_open'])

        logger.info(f"Closed registration for {period.name}")
        return period

    @staticmethod
    @retry_read
    def get_active_semester(on_date=None):
        """
        The active period covering on_date (default today).

        When several active periods cover the date, the latest-ending wins.

        Returns:
            SemesterPeriod or None
        """
        on_date = on_date or get_today()
        return (
            SemesterPeriod.objects.active()
            .covering(on_date)
            .latest_ending_first()
            .first()
        )

    @staticmethod
    def _deactivate_others(period):
        return (
            SemesterPeriod.objects.active()
            .exclude(pk=period.pk)
            .update(is_active=False, updated_at=get_current_time())
        )


# =============================================================================
# REGISTRATION REVIEW SERVICE
# =============================================================================

class RegistrationReviewService:
    """
    Accounts-office review of semester registrations.

    Every transition locks the registration row, sets status, reviewer and
    review time together, and writes one audit entry.
    """

    @staticmethod
    @guard_write
    @transaction.atomic
    def approve(registration, approved_by, notes=''):
        return RegistrationReviewService._transition(
            registration,
            StudentSemesterRegistration.Status.APPROVED,
            approved_by,
            AccessAction.REGISTRATION_APPROVED,
            notes,
        )

    @staticmethod
    @guard_write
    @transaction.atomic
    def reject(registration, rejected_by, notes=''):
        return RegistrationReviewService._transition(
            registration,
            StudentSemesterRegistration.Status.REJECTED,
            rejected_by,
            AccessAction.REGISTRATION_REJECTED,
            notes,
        )

    @staticmethod
    @guard_write
    @transaction.atomic
    def cancel(registration, cancelled_by, notes=''):
        return RegistrationReviewService._transition(
            registration,
            StudentSemesterRegistration.Status.CANCELLED,
            cancelled_by,
            AccessAction.REGISTRATION_CANCELLED,
            notes,
        )

    @staticmethod
    def _transition(registration, new_status, actor, action_type, notes):
        """
        Apply a review transition.

        Raises:
            InvalidTransition: when the lifecycle does not allow the change
        """
        registration = (
            StudentSemesterRegistration.objects.select_for_update()
            .get(pk=registration.pk)
        )
        if not registration.can_transition_to(new_status):
            raise InvalidTransition(registration, registration.status, new_status)

        registration.status = new_status
        registration.approved_by_id = str(actor)
        registration.approval_date = get_current_time()
        if notes:
            registration.notes = f"{registration.notes}\n{notes}".strip()
        registration.set_change_reason(f"Registration {new_status}")
        registration.save(update_fields=['status', 'approved_by_id', 'approval_date', 'notes'])

        record_access_event(
            student_id=registration.student_id,
            action_type=action_type,
            reason=f"registration_{new_status}",
            payment_approval_id=registration.payment_approval_id,
            semester_registration_id=registration.pk,
            actor_id=actor,
            notes=notes,
        )

        logger.info(
            f"Registration {registration.pk} for student {registration.student_id} "
            f"moved to {new_status} by {actor}"
        )
        return registration
