"""
Tests for payment approval operations and the financial balance reader.
"""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.core.exceptions import ValidationError

from access.models import AccessControlLog, AccessAction
from academics.models import StudentSemesterRegistration
from core.exceptions import InvalidTransition
from fees.models import PaymentApproval
from fees.services import PaymentApprovalService, FinancialBalanceReader


pytestmark = pytest.mark.django_db


class TestRecordPayment:

    def test_creates_pending_approval_with_audit_entry(self, student_id):
        approval = PaymentApprovalService.record_payment(
            student_id=student_id,
            amount_paid=Decimal('850000.00'),
            payment_date=date(2024, 1, 5),
            access_valid_from=date(2024, 1, 5),
            access_valid_until=date(2024, 6, 30),
            payment_reference='STANBIC-7781',
            recorded_by='accountant-7',
        )

        assert approval.status == PaymentApproval.Status.PENDING
        assert approval.created_by_id == 'accountant-7'
        log = AccessControlLog.objects.get(payment_approval_id=approval.pk)
        assert log.action_type == AccessAction.PAYMENT_RECORDED

    def test_default_access_window(self, student_id, settings):
        settings.ACCESS_CONTROL = {'DEFAULT_ACCESS_PERIOD_DAYS': 120}

        approval = PaymentApprovalService.record_payment(
            student_id=student_id,
            amount_paid='100.00',
            payment_date=date(2024, 2, 1),
        )

        assert approval.access_valid_from == date(2024, 2, 1)
        assert approval.access_valid_until == date(2024, 2, 1) + timedelta(days=120)

    def test_rejects_non_positive_amount(self, student_id):
        with pytest.raises(ValidationError) as exc:
            PaymentApprovalService.record_payment(
                student_id=student_id,
                amount_paid=Decimal('0'),
                payment_date=date(2024, 1, 5),
            )
        assert 'amount_paid' in exc.value.message_dict
        assert PaymentApproval.objects.count() == 0

    @pytest.mark.parametrize('amount', ['abc', None, 'NaN', ''])
    def test_rejects_non_numeric_amount(self, student_id, amount):
        with pytest.raises(ValidationError) as exc:
            PaymentApprovalService.record_payment(
                student_id=student_id,
                amount_paid=amount,
                payment_date=date(2024, 1, 5),
            )
        assert 'amount_paid' in exc.value.message_dict
        assert not PaymentApproval.objects.exists()
        assert not AccessControlLog.objects.exists()

    def test_rejects_window_ending_on_start_day(self, student_id):
        with pytest.raises(ValidationError) as exc:
            PaymentApprovalService.record_payment(
                student_id=student_id,
                amount_paid=Decimal('10.00'),
                payment_date=date(2024, 1, 5),
                access_valid_from=date(2024, 1, 5),
                access_valid_until=date(2024, 1, 5),
            )
        assert 'access_valid_until' in exc.value.message_dict

    def test_rejects_malformed_student_id(self):
        with pytest.raises(ValidationError):
            PaymentApprovalService.record_payment(
                student_id='not-a-uuid',
                amount_paid=Decimal('10.00'),
                payment_date=date(2024, 1, 5),
            )


class TestReviewTransitions:

    def test_approve_sets_reviewer_and_timestamp_together(self, make_approval, student_id):
        pending = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30),
                                status=PaymentApproval.Status.PENDING)

        approved = PaymentApprovalService.approve(pending, approved_by='accountant-2')

        assert approved.status == PaymentApproval.Status.APPROVED
        assert approved.approved_by_id == 'accountant-2'
        assert approved.approval_date is not None
        assert AccessControlLog.objects.filter(
            payment_approval_id=pending.pk,
            action_type=AccessAction.PAYMENT_APPROVED,
            reason='payment_approved',
        ).count() == 1

    def test_reject_pending(self, make_approval, student_id):
        pending = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30),
                                status=PaymentApproval.Status.PENDING)

        rejected = PaymentApprovalService.reject(pending, rejected_by='accountant-2', notes='Slip unreadable')

        assert rejected.status == PaymentApproval.Status.REJECTED
        assert rejected.notes == 'Slip unreadable'

    def test_cannot_approve_rejected(self, make_approval, student_id):
        rejected = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30),
                                 status=PaymentApproval.Status.REJECTED)

        with pytest.raises(InvalidTransition):
            PaymentApprovalService.approve(rejected, approved_by='accountant-2')

        rejected.refresh_from_db()
        assert rejected.status == PaymentApproval.Status.REJECTED

    def test_cannot_reapprove_approved(self, make_approval, student_id):
        approved = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30))

        with pytest.raises(InvalidTransition):
            PaymentApprovalService.approve(approved, approved_by='accountant-2')

    def test_revoke_invalidates_access_inside_window(self, make_approval, student_id):
        approval = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30))
        assert PaymentApproval.objects.effectively_active(date(2024, 3, 15)).count() == 1

        PaymentApprovalService.revoke(approval, revoked_by='bursar', reason='Cheque bounced')

        assert PaymentApproval.objects.effectively_active(date(2024, 3, 15)).count() == 0
        approval.refresh_from_db()
        assert approval.status == PaymentApproval.Status.REVOKED
        assert 'Cheque bounced' in approval.notes

    def test_revoked_is_terminal(self, make_approval, student_id):
        approval = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30),
                                 status=PaymentApproval.Status.REVOKED)

        with pytest.raises(InvalidTransition):
            PaymentApprovalService.revoke(approval, revoked_by='bursar')

    @pytest.mark.parametrize('status', [
        PaymentApproval.Status.REJECTED,
        PaymentApproval.Status.EXPIRED,
    ])
    def test_closed_approvals_can_still_be_revoked(self, make_approval, student_id, status):
        approval = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30), status=status)

        PaymentApprovalService.revoke(approval, revoked_by='bursar', reason='Forged receipt')

        approval.refresh_from_db()
        assert approval.status == PaymentApproval.Status.REVOKED
        log = AccessControlLog.objects.get(payment_approval_id=approval.pk)
        assert log.action_type == AccessAction.PAYMENT_REVOKED


class TestTerminateStudentAccess:

    def test_revokes_approvals_and_cancels_registrations(
        self, make_approval, make_period, make_registration, student_id
    ):
        approved = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30))
        pending = make_approval(student_id, date(2024, 7, 1), date(2024, 12, 31),
                                status=PaymentApproval.Status.PENDING)
        rejected = make_approval(student_id, date(2023, 7, 1), date(2023, 12, 31),
                                 status=PaymentApproval.Status.REJECTED)
        period = make_period(date(2024, 1, 15), date(2024, 5, 31))
        registration = make_registration(student_id, period, payment_approval=approved)

        summary = PaymentApprovalService.terminate_student_access(
            student_id, terminated_by='registrar', reason='Disciplinary suspension'
        )

        assert summary == {'revoked_approvals': 2, 'cancelled_registrations': 1}
        for approval in (approved, pending):
            approval.refresh_from_db()
            assert approval.status == PaymentApproval.Status.REVOKED
        rejected.refresh_from_db()
        assert rejected.status == PaymentApproval.Status.REJECTED
        registration.refresh_from_db()
        assert registration.status == StudentSemesterRegistration.Status.CANCELLED
        assert AccessControlLog.objects.filter(
            student_id=student_id, action_type=AccessAction.ACCESS_TERMINATED
        ).count() == 1


class TestExpireLapsedApprovals:

    def test_expires_only_lapsed_auto_expiring_rows(self, make_approval, student_id):
        lapsed = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30))
        manual = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30), auto_expire=False)
        last_day = make_approval(student_id, date(2024, 1, 1), date(2024, 7, 1))

        count = PaymentApprovalService.expire_lapsed_approvals(on_date=date(2024, 7, 1))

        assert count == 1
        lapsed.refresh_from_db()
        manual.refresh_from_db()
        last_day.refresh_from_db()
        assert lapsed.status == PaymentApproval.Status.EXPIRED
        assert manual.status == PaymentApproval.Status.APPROVED
        assert last_day.status == PaymentApproval.Status.APPROVED

        log = AccessControlLog.objects.get(action_type=AccessAction.AUTO_EXPIRE)
        assert log.payment_approval_id == lapsed.pk
        assert log.reason == 'access_period_ended'

    def test_nothing_to_expire(self, db):
        assert PaymentApprovalService.expire_lapsed_approvals(on_date=date(2024, 7, 1)) == 0


class TestFinancialBalanceReader:

    def test_no_records(self, student_id):
        balance = FinancialBalanceReader.read(student_id)

        assert balance.total_balance == Decimal('0.00')
        assert balance.record_count == 0
        assert not balance.has_statements

    def test_sums_all_statements(self, make_financial_record, student_id):
        make_financial_record(student_id, '250000.00', semester=1)
        make_financial_record(student_id, '100000.50', semester=2)
        make_financial_record(student_id, '0', semester=1, academic_year='2023/2024')

        balance = FinancialBalanceReader.read(student_id)

        assert balance.total_balance == Decimal('350000.50')
        assert balance.record_count == 3
        assert balance.has_statements
