# fees/services.py

"""
Payment Approval Operations

Handles recording, review (approve / reject), revocation and expiry of
payment approvals, plus the read-only financial balance aggregate used by
the access evaluator.

Status changes are the accounts office's transition authority: each one
runs in a single transaction with the approval row locked, sets the
reviewer and review timestamp together with the status, and writes one
audit entry.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Count, Sum
import logging

from fees.models import PaymentApproval, FinancialRecord
from core.db import retry_read, guard_write
from core.exceptions import InvalidTransition
from core.utils import get_today, get_current_time, default_access_window, coerce_uuid
from access.audit import record_access_event
from access.models import AccessAction

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT APPROVAL SERVICE
# =============================================================================

class PaymentApprovalService:
    """Lifecycle of payment approvals"""

    @staticmethod
    @guard_write
    @transaction.atomic
    def record_payment(
        student_id,
        amount_paid,
        payment_date,
        access_valid_from=None,
        access_valid_until=None,
        payment_reference='',
        payment_id=None,
        notes='',
        auto_expire=True,
        recorded_by=None,
    ):
        """
        Record a payment awaiting review.

        Args:
            student_id: Student who paid
            amount_paid (Decimal): Positive amount
            payment_date (date): When the payment was made
            access_valid_from (date, optional): Defaults to payment_date
            access_valid_until (date, optional): Defaults to
                access_valid_from + DEFAULT_ACCESS_PERIOD_DAYS
            payment_reference (str): Bank / receipt reference
            payment_id: Linked payment in the finance subsystem
            notes (str): Free text
            auto_expire (bool): Let the maintenance job mark it expired
            recorded_by: Actor id

        Returns:
            PaymentApproval in 'pending' status

        Raises:
            ValidationError: amount not numeric or not positive, or window not ordered
        """
        student_id = coerce_uuid(student_id, 'student_id')
        try:
            amount = Decimal(str(amount_paid))
        except (InvalidOperation, ValueError, TypeError):
            amount = None
        if amount is None or not amount.is_finite():
            raise ValidationError({'amount_paid': f"'{amount_paid}' is not a valid amount"})

        if access_valid_from is None or access_valid_until is None:
            default_from, default_until = default_access_window(access_valid_from or payment_date)
            access_valid_from = access_valid_from or default_from
            access_valid_until = access_valid_until or default_until

        approval = PaymentApproval(
            student_id=student_id,
            payment_id=payment_id,
            amount_paid=amount,
            payment_reference=payment_reference or '',
            payment_date=payment_date,
            access_valid_from=access_valid_from,
            access_valid_until=access_valid_until,
            status=PaymentApproval.Status.PENDING,
            notes=notes or '',
            auto_expire=auto_expire,
        )
        if recorded_by:
            approval.created_by_id = str(recorded_by)
        approval.full_clean()
        approval.save()

        record_access_event(
            student_id=student_id,
            action_type=AccessAction.PAYMENT_RECORDED,
            reason='payment_pending_review',
            payment_approval_id=approval.pk,
            actor_id=recorded_by,
        )

        logger.info(
            f"Recorded payment {approval.payment_reference or approval.pk} of "
            f"{approval.amount_paid} for student {student_id}"
        )
        return approval

    @staticmethod
    @guard_write
    @transaction.atomic
    def approve(approval, approved_by, notes=None):
        """
        Approve a pending payment, opening its access window.

        Returns:
            The refreshed PaymentApproval
        """
        approval = PaymentApprovalService._lock(approval)
        PaymentApprovalService._ensure_transition(approval, PaymentApproval.Status.APPROVED)

        approval.status = PaymentApproval.Status.APPROVED
        approval.approved_by_id = str(approved_by)
        approval.approval_date = get_current_time()
        if notes:
            approval.notes = notes
        approval.set_change_reason("Payment approved")
        approval.save(update_fields=['status', 'approved_by_id', 'approval_date', 'notes'])

        record_access_event(
            student_id=approval.student_id,
            action_type=AccessAction.PAYMENT_APPROVED,
            reason='payment_approved',
            payment_approval_id=approval.pk,
            actor_id=approved_by,
            notes=notes or '',
        )

        logger.info(
            f"Payment approval {approval.pk} approved by {approved_by}; access "
            f"{approval.access_valid_from} to {approval.access_valid_until}"
        )
        return approval

    @staticmethod
    @guard_write
    @transaction.atomic
    def reject(approval, rejected_by, notes=''):
        """Reject a pending payment"""
        approval = PaymentApprovalService._lock(approval)
        PaymentApprovalService._ensure_transition(approval, PaymentApproval.Status.REJECTED)

        approval.status = PaymentApproval.Status.REJECTED
        approval.approved_by_id = str(rejected_by)
        approval.approval_date = get_current_time()
        if notes:
            approval.notes = notes
        approval.set_change_reason("Payment rejected")
        approval.save(update_fields=['status', 'approved_by_id', 'approval_date', 'notes'])

        record_access_event(
            student_id=approval.student_id,
            action_type=AccessAction.PAYMENT_REJECTED,
            reason='payment_rejected',
            payment_approval_id=approval.pk,
            actor_id=rejected_by,
            notes=notes or '',
        )

        logger.info(f"Payment approval {approval.pk} rejected by {rejected_by}")
        return approval

    @staticmethod
    @guard_write
    @transaction.atomic
    def revoke(approval, revoked_by, reason=''):
        """
        Revoke an approval. Access ends immediately, whatever the date window says.
        """
        approval = PaymentApprovalService._lock(approval)
        PaymentApprovalService._ensure_transition(approval, PaymentApproval.Status.REVOKED)

        approval.status = PaymentApproval.Status.REVOKED
        if reason:
            approval.notes = f"{approval.notes}\nRevoked: {reason}".strip()
        approval.set_change_reason(reason or "Payment approval revoked")
        approval.save(update_fields=['status', 'notes'])

        record_access_event(
            student_id=approval.student_id,
            action_type=AccessAction.PAYMENT_REVOKED,
            reason='manual_revoke',
            payment_approval_id=approval.pk,
            actor_id=revoked_by,
            notes=reason,
        )

        logger.warning(f"Payment approval {approval.pk} revoked by {revoked_by}: {reason}")
        return approval

    @staticmethod
    @guard_write
    @transaction.atomic
    def terminate_student_access(student_id, terminated_by, reason):
        """
        Revoke every live payment approval of a student and cancel their
        pending/approved semester registrations.

        Returns:
            dict: {'revoked_approvals': int, 'cancelled_registrations': int}
        """
        from academics.models import StudentSemesterRegistration

        student_id = coerce_uuid(student_id, 'student_id')
        now = get_current_time()

        approvals = list(
            PaymentApproval.objects.select_for_update()
            .for_student(student_id)
            .filter(status__in=[PaymentApproval.Status.PENDING, PaymentApproval.Status.APPROVED])
        )
        for approval in approvals:
            approval.status = PaymentApproval.Status.REVOKED
            approval.notes = f"{approval.notes}\nAccess terminated: {reason}".strip()
            approval.set_change_reason(reason)
            approval.save(update_fields=['status', 'notes'])

        registrations = list(
            StudentSemesterRegistration.objects.select_for_update()
            .for_student(student_id)
            .filter(status__in=[
                StudentSemesterRegistration.Status.PENDING,
                StudentSemesterRegistration.Status.APPROVED,
            ])
        )
        for registration in registrations:
            registration.status = StudentSemesterRegistration.Status.CANCELLED
            registration.approved_by_id = str(terminated_by)
            registration.approval_date = now
            registration.set_change_reason(reason)
            registration.save(update_fields=['status', 'approved_by_id', 'approval_date'])

        record_access_event(
            student_id=student_id,
            action_type=AccessAction.ACCESS_TERMINATED,
            reason='access_terminated',
            actor_id=terminated_by,
            notes=(
                f"{reason} (revoked {len(approvals)} approvals, "
                f"cancelled {len(registrations)} registrations)"
            ),
        )

        logger.warning(
            f"Access terminated for student {student_id} by {terminated_by}: "
            f"{len(approvals)} approvals revoked, {len(registrations)} registrations cancelled"
        )
        return {
            'revoked_approvals': len(approvals),
            'cancelled_registrations': len(registrations),
        }

    @staticmethod
    @guard_write
    @transaction.atomic
    def expire_lapsed_approvals(on_date=None):
        """
        Mark approved rows whose window has ended as expired.

        Only rows with auto_expire=True are rewritten. Access decisions do
        not depend on this job: expiry is always computed on read.

        Returns:
            int: number of approvals expired
        """
        on_date = on_date or get_today()
        lapsed = list(PaymentApproval.objects.select_for_update().lapsed(on_date))

        for approval in lapsed:
            approval.status = PaymentApproval.Status.EXPIRED
            approval.set_change_reason("Access period ended")
            approval.save(update_fields=['status'])

            record_access_event(
                student_id=approval.student_id,
                action_type=AccessAction.AUTO_EXPIRE,
                reason='access_period_ended',
                payment_approval_id=approval.pk,
            )

        if lapsed:
            logger.info(f"Expired {len(lapsed)} payment approvals as of {on_date}")
        return len(lapsed)

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    @staticmethod
    def _lock(approval):
        """Re-read the approval with a row lock for the rest of the transaction"""
        pk = approval.pk if isinstance(approval, PaymentApproval) else approval
        return PaymentApproval.objects.select_for_update().get(pk=pk)

    @staticmethod
    def _ensure_transition(approval, new_status):
        if not approval.can_transition_to(new_status):
            raise InvalidTransition(approval, approval.status, new_status)


# =============================================================================
# FINANCIAL BALANCE READER
# =============================================================================

@dataclass(frozen=True)
class FinancialBalance:
    total_balance: Decimal
    record_count: int

    @property
    def has_statements(self):
        return self.record_count > 0


class FinancialBalanceReader:
    """Read-only aggregate over a student's financial records"""

    @staticmethod
    @retry_read
    def read(student_id):
        """
        Sum of balances across every financial record of the student.

        Returns:
            FinancialBalance (total 0.00 and count 0 when there are no records)
        """
        totals = FinancialRecord.objects.for_student(student_id).aggregate(
            total=Sum('balance'),
            count=Count('id'),
        )
        return FinancialBalance(
            total_balance=totals['total'] if totals['total'] is not None else Decimal('0.00'),
            record_count=totals['count'] or 0,
        )
