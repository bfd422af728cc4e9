# access/evaluator.py

"""
Access Decision Evaluator

Combines a student's payment approvals, semester registration and
financial balance into one AccessVerdict.

Policy (first matching denial rule wins):
    a. statements exist, balance is zero, no valid approval
       -> zero-balance denial
    b. no valid approval
       -> payment-not-approved denial
    c. otherwise no denial

    has_access = payment_approved OR (has statements AND balance > 0)

Semester registration is reported but never gates access. The evaluator
does not mutate any state; evaluate() writes one audit entry per call.
"""

from decimal import Decimal
import logging

from fees.models import PaymentApproval
from fees.services import FinancialBalanceReader
from academics.models import StudentSemesterRegistration
from core.db import retry_read
from core.exceptions import DatastoreError
from core.utils import get_today, coerce_uuid, get_access_setting

from .audit import AccessAuditLogger
from .models import AccessAction
from .verdicts import (
    AccessVerdict,
    PaymentCheck,
    PaymentStatus,
    ReasonCode,
    DENIAL_ZERO_BALANCE_NO_APPROVAL,
    DENIAL_PAYMENT_NOT_APPROVED,
    PAYMENT_VERIFIED,
    PAYMENT_NOT_VALID,
    PAYMENT_NOT_FOUND,
    WARNING_ACCESS_EXPIRING,
    WARNING_ACCESS_ENDS_TODAY,
    WARNING_SEMESTER_ENDING,
)

logger = logging.getLogger(__name__)


def find_effective_approval(student_id, on_date, lock=False):
    """
    The approval that grants payment eligibility on on_date, or None.

    With several concurrently valid approvals the latest-expiring one wins.
    lock=True takes a row lock and must run inside a transaction.
    """
    queryset = PaymentApproval.objects.for_student(student_id)
    if lock:
        queryset = queryset.select_for_update()
    return queryset.effectively_active(on_date).latest_expiring_first().first()


def find_current_registration(student_id, on_date):
    """Approved registration in an active period covering on_date (latest-ending period wins)"""
    return (
        StudentSemesterRegistration.objects.for_student(student_id)
        .current_for(on_date)
        .select_related('semester_period')
        .order_by(
            '-semester_period__end_date',
            '-semester_period__start_date',
            '-semester_period__created_at',
            '-id',
        )
        .first()
    )


def derive_denial(payment_approved, has_statements, balance):
    """
    Returns:
        tuple: (has_access, denial_reason, reason_code)
    """
    if has_statements and balance == 0 and not payment_approved:
        denial_reason = DENIAL_ZERO_BALANCE_NO_APPROVAL
    elif not payment_approved:
        denial_reason = DENIAL_PAYMENT_NOT_APPROVED
    else:
        denial_reason = ''

    has_access = payment_approved or (has_statements and balance > 0)

    if payment_approved:
        reason_code = ReasonCode.PAYMENT_APPROVED
    elif has_access:
        reason_code = ReasonCode.BALANCE_OUTSTANDING
    elif denial_reason == DENIAL_ZERO_BALANCE_NO_APPROVAL:
        reason_code = ReasonCode.ZERO_BALANCE_NO_APPROVAL
    else:
        reason_code = ReasonCode.PAYMENT_NOT_APPROVED

    return has_access, denial_reason, str(reason_code)


def access_warnings(has_access, on_date, access_valid_until, semester_end_date):
    """
    Heads-up messages for a student who currently has access.

    Warns when the approval window closes within ACCESS_EXPIRY_WARNING_DAYS
    (including its last day) or the registered semester ends within
    SEMESTER_END_WARNING_DAYS.
    """
    if not has_access:
        return ()

    warnings = []
    if access_valid_until is not None:
        days = (access_valid_until - on_date).days
        if days == 0:
            warnings.append(WARNING_ACCESS_ENDS_TODAY.format(until=access_valid_until.isoformat()))
        elif 0 < days <= get_access_setting('ACCESS_EXPIRY_WARNING_DAYS'):
            warnings.append(WARNING_ACCESS_EXPIRING.format(days=days, until=access_valid_until.isoformat()))

    if semester_end_date is not None:
        days = (semester_end_date - on_date).days
        if 0 < days <= get_access_setting('SEMESTER_END_WARNING_DAYS'):
            warnings.append(WARNING_SEMESTER_ENDING.format(days=days, end=semester_end_date.isoformat()))

    return tuple(warnings)


class AccessEvaluator:
    """
    Usage:
        verdict = AccessEvaluator().evaluate(student_id)
        if not verdict.has_access:
            return render_denied(verdict.denial_reason)
    """

    def __init__(self, audit_logger=None):
        self.audit_logger = audit_logger or AccessAuditLogger()

    # -------------------------------------------------------------------------
    # PUBLIC API
    # -------------------------------------------------------------------------

    def evaluate(self, student_id, on_date=None, actor_id=None):
        """
        Evaluate and audit a student's access.

        Args:
            student_id: Student to evaluate (UUID or its string form)
            on_date (date, optional): Evaluation date, default today
            actor_id: Who asked, if not the student

        Returns:
            AccessVerdict

        Raises:
            ValidationError: malformed student_id (nothing is read or logged)
            DatastoreError: a read failed twice (one audit entry is still written)
        """
        student_id = coerce_uuid(student_id, 'student_id')
        on_date = on_date or get_today()

        try:
            verdict = self.compute(student_id, on_date)
        except DatastoreError as e:
            self.audit_logger.record(
                student_id=student_id,
                action_type=AccessAction.EVALUATE,
                reason='datastore_error',
                actor_id=actor_id,
                notes=str(e),
            )
            raise

        self.audit_logger.record(
            student_id=student_id,
            action_type=AccessAction.EVALUATE,
            reason=verdict.reason_code,
            payment_approval_id=verdict.payment_approval_id,
            semester_registration_id=verdict.semester_registration_id,
            actor_id=actor_id,
            notes=verdict.denial_reason,
        )

        if not verdict.has_access:
            logger.info(f"Access denied for student {student_id} on {on_date}: {verdict.reason_code}")
        return verdict

    def compute(self, student_id, on_date=None):
        """Build the verdict without writing an audit entry"""
        on_date = on_date or get_today()

        balance = FinancialBalanceReader.read(student_id)
        approval = retry_read(find_effective_approval)(student_id, on_date)
        registration = retry_read(find_current_registration)(student_id, on_date)

        payment_approved = approval is not None
        total_balance = balance.total_balance if balance.total_balance is not None else Decimal('0.00')

        has_access, denial_reason, reason_code = derive_denial(
            payment_approved,
            balance.has_statements,
            total_balance,
        )

        access_valid_until = approval.access_valid_until if approval else None
        semester_end_date = registration.semester_period.end_date if registration else None

        return AccessVerdict(
            student_id=student_id,
            evaluated_on=on_date,
            has_access=has_access,
            payment_approved=payment_approved,
            semester_registered=registration is not None,
            access_valid_until=access_valid_until,
            semester_end_date=semester_end_date,
            denial_reason=denial_reason,
            financial_balance=total_balance,
            has_financial_statements=balance.has_statements,
            reason_code=reason_code,
            payment_approval_id=approval.pk if approval else None,
            semester_registration_id=registration.pk if registration else None,
            warnings=access_warnings(has_access, on_date, access_valid_until, semester_end_date),
        )

    def check_payment(self, student_id, on_date=None, lock=False):
        """
        Payment-only sub-check: is there a currently valid approved payment?

        Does not write an audit entry. With lock=True the chosen approval
        row is locked for the caller's transaction and the read is not retried.

        Returns:
            PaymentCheck
        """
        student_id = coerce_uuid(student_id, 'student_id')
        on_date = on_date or get_today()

        if lock:
            approval = find_effective_approval(student_id, on_date, lock=True)
        else:
            approval = retry_read(find_effective_approval)(student_id, on_date)

        if approval is not None:
            return PaymentCheck(
                has_valid_payment=True,
                payment_status=str(PaymentStatus.APPROVED),
                message=PAYMENT_VERIFIED,
                approval=approval,
            )

        has_any = retry_read(self._has_any_approval)(student_id)
        return PaymentCheck(
            has_valid_payment=False,
            payment_status=str(PaymentStatus.EXPIRED if has_any else PaymentStatus.NONE),
            message=PAYMENT_NOT_VALID if has_any else PAYMENT_NOT_FOUND,
        )

    @staticmethod
    def _has_any_approval(student_id):
        return PaymentApproval.objects.for_student(student_id).exists()
