# access/registration.py

"""
Registration Workflow

Creates semester registrations behind the payment precondition:

    1. validate input, then resolve the semester period (audited when
       missing or unreadable)
    2. lock the student's currently valid payment approval
       (no approval -> policy_denied)
    3. refuse a second registration for the same period (-> conflict)
    4. insert a pending registration linked to the approval
    5. write exactly one audit entry once the transaction has ended

Steps 2-4 run in one transaction. The unique (student, period) constraint
is what serializes concurrent attempts: an insert that loses the race
surfaces as a conflict outcome, never as a second row.
"""

from datetime import datetime, timedelta
from django.core.exceptions import ValidationError
from django.db import connection, transaction, IntegrityError
from django.utils import timezone
import logging

from academics.models import SemesterPeriod, StudentSemesterRegistration
from core.db import retry_read, guard_write
from core.exceptions import DatastoreError, RegistrationTimeout
from core.utils import get_today, get_current_time, coerce_uuid, get_access_setting

from .audit import AccessAuditLogger
from .evaluator import AccessEvaluator
from .models import AccessAction
from .verdicts import (
    RegistrationOutcome,
    RegistrationResult,
    ALREADY_REGISTERED,
    REGISTRATION_CREATED,
)

logger = logging.getLogger(__name__)


class RegistrationWorkflow:
    """
    Usage:
        result = RegistrationWorkflow().register_student(
            student_id, period.pk, registered_by=request.user.pk
        )
        if result.is_conflict:
            ...
    """

    def __init__(self, evaluator=None, audit_logger=None):
        self.audit_logger = audit_logger or AccessAuditLogger()
        self.evaluator = evaluator or AccessEvaluator(audit_logger=self.audit_logger)

    def register_student(self, student_id, semester_period_id, registered_by, notes='',
                         deadline=None, on_date=None):
        """
        Register a student for a semester period.

        Args:
            student_id: Student to register
            semester_period_id: Target SemesterPeriod
            registered_by: Accounts-office actor id
            notes (str): Free text stored on the registration
            deadline (datetime | timedelta | None): When the registration must
                have committed by. Defaults to REGISTRATION_DEADLINE_SECONDS.
            on_date (date, optional): Policy date, default today

        Returns:
            RegistrationResult with outcome success, policy_denied or conflict

        Raises:
            ValidationError: malformed input, or an unknown period (audited as
                register_denied/unknown_period)
            RegistrationTimeout: the deadline passed; nothing was persisted
            DatastoreError: a read or write failed; nothing was persisted
        """
        student_id = coerce_uuid(student_id, 'student_id')
        semester_period_id = coerce_uuid(semester_period_id, 'semester_period_id')
        if registered_by is None or str(registered_by).strip() == '':
            raise ValidationError({'registered_by': "registered_by is required"})
        deadline = self._resolve_deadline(deadline)
        on_date = on_date or get_today()

        try:
            period = retry_read(self._load_period)(semester_period_id)
        except DatastoreError as e:
            self._audit_failure(student_id, semester_period_id, registered_by, 'datastore_error', e)
            raise

        if period is None:
            message = f"Semester period {semester_period_id} does not exist"
            self.audit_logger.record(
                student_id=student_id,
                action_type=AccessAction.REGISTER_DENIED,
                reason='unknown_period',
                actor_id=registered_by,
                notes=message,
            )
            raise ValidationError({'semester_period_id': message})

        try:
            result = self._register(student_id, period, registered_by, notes or '', deadline, on_date)
        except RegistrationTimeout as e:
            self._audit_failure(student_id, period.name, registered_by, 'deadline_exceeded', e)
            raise
        except DatastoreError as e:
            self._audit_failure(student_id, period.name, registered_by, 'datastore_error', e)
            raise

        self._audit_result(result, student_id, registered_by, notes)
        return result

    # -------------------------------------------------------------------------
    # TRANSACTION
    # -------------------------------------------------------------------------

    @guard_write
    def _register(self, student_id, period, registered_by, notes, deadline, on_date):
        with transaction.atomic():
            self._apply_statement_timeout(deadline)

            payment = self.evaluator.check_payment(student_id, on_date, lock=True)
            verdict = self.evaluator.compute(student_id, on_date)

            if not payment.has_valid_payment:
                return RegistrationResult(
                    success=False,
                    outcome=RegistrationOutcome.POLICY_DENIED,
                    message=f"Registration denied: {verdict.denial_reason}",
                    verdict=verdict,
                )

            approval = payment.approval
            existing = self._find_existing(student_id, period)
            if existing is not None:
                return self._conflict(existing.pk, approval.pk, verdict)

            self._check_deadline(deadline)

            try:
                with transaction.atomic():
                    registration = StudentSemesterRegistration.objects.create(
                        student_id=student_id,
                        semester_period=period,
                        registration_date=get_current_time(),
                        registered_by_id=str(registered_by),
                        status=StudentSemesterRegistration.Status.PENDING,
                        payment_approval=approval,
                        notes=notes,
                    )
            except IntegrityError:
                existing_id = (
                    StudentSemesterRegistration.objects
                    .filter(student_id=student_id, semester_period=period)
                    .values_list('pk', flat=True)
                    .first()
                )
                if existing_id is None:
                    raise
                logger.info(
                    f"Concurrent registration detected for student {student_id} "
                    f"in {period.name}"
                )
                return self._conflict(existing_id, approval.pk, verdict)

            self._check_deadline(deadline)

        logger.info(
            f"Registered student {student_id} for {period.name} "
            f"(registration {registration.pk}, approval {approval.pk})"
        )
        return RegistrationResult(
            success=True,
            outcome=RegistrationOutcome.SUCCESS,
            message=REGISTRATION_CREATED,
            registration_id=registration.pk,
            payment_approval_id=approval.pk,
            verdict=verdict,
        )

    @staticmethod
    def _load_period(semester_period_id):
        return SemesterPeriod.objects.filter(pk=semester_period_id).first()

    @staticmethod
    def _find_existing(student_id, period):
        return (
            StudentSemesterRegistration.objects
            .filter(student_id=student_id, semester_period=period)
            .first()
        )

    @staticmethod
    def _conflict(registration_id, payment_approval_id, verdict):
        return RegistrationResult(
            success=False,
            outcome=RegistrationOutcome.CONFLICT,
            message=ALREADY_REGISTERED,
            registration_id=registration_id,
            payment_approval_id=payment_approval_id,
            verdict=verdict,
        )

    # -------------------------------------------------------------------------
    # DEADLINE
    # -------------------------------------------------------------------------

    @staticmethod
    def _resolve_deadline(deadline):
        if deadline is None:
            seconds = get_access_setting('REGISTRATION_DEADLINE_SECONDS')
            if not seconds:
                return None
            deadline = timedelta(seconds=seconds)

        if isinstance(deadline, timedelta):
            return get_current_time() + deadline
        if isinstance(deadline, datetime):
            if timezone.is_naive(deadline):
                return timezone.make_aware(deadline)
            return deadline
        raise ValidationError({'deadline': "deadline must be a datetime or timedelta"})

    @staticmethod
    def _check_deadline(deadline):
        if deadline is not None and get_current_time() >= deadline:
            raise RegistrationTimeout(f"Registration deadline {deadline.isoformat()} exceeded")

    @staticmethod
    def _apply_statement_timeout(deadline):
        """Bound each statement by the remaining time on PostgreSQL"""
        if deadline is None:
            return
        remaining = (deadline - get_current_time()).total_seconds()
        if remaining <= 0:
            raise RegistrationTimeout(f"Registration deadline {deadline.isoformat()} exceeded")
        if connection.vendor == 'postgresql':
            with connection.cursor() as cursor:
                cursor.execute("SET LOCAL statement_timeout = %s", [int(remaining * 1000)])

    # -------------------------------------------------------------------------
    # AUDIT
    # -------------------------------------------------------------------------

    def _audit_result(self, result, student_id, registered_by, notes):
        if result.outcome == RegistrationOutcome.SUCCESS:
            action_type, reason = AccessAction.REGISTER_SUCCEEDED, 'registered'
        elif result.outcome == RegistrationOutcome.CONFLICT:
            action_type, reason = AccessAction.REGISTER_CONFLICT, 'already_registered'
        else:
            action_type, reason = AccessAction.REGISTER_DENIED, result.verdict.reason_code

        self.audit_logger.record(
            student_id=student_id,
            action_type=action_type,
            reason=reason,
            payment_approval_id=result.payment_approval_id,
            semester_registration_id=result.registration_id,
            actor_id=registered_by,
            notes=result.message if not result.success else (notes or ''),
        )

    def _audit_failure(self, student_id, period_label, registered_by, reason, error):
        logger.error(f"Registration of student {student_id} for {period_label} failed: {error}")
        self.audit_logger.record(
            student_id=student_id,
            action_type=AccessAction.REGISTER_FAILED,
            reason=reason,
            actor_id=registered_by,
            notes=f"{period_label}: {error}",
        )
