"""
Tests for PaymentApproval queries and status helpers.
"""

from datetime import date

import pytest
from django.core.exceptions import ValidationError
from django.db import IntegrityError, transaction

from fees.models import PaymentApproval


pytestmark = pytest.mark.django_db


class TestEffectivelyActive:

    def test_window_is_inclusive_at_both_ends(self, make_approval, student_id):
        make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30))
        active = PaymentApproval.objects.for_student(student_id)

        assert active.effectively_active(date(2024, 1, 1)).exists()
        assert active.effectively_active(date(2024, 6, 30)).exists()
        assert not active.effectively_active(date(2023, 12, 31)).exists()
        assert not active.effectively_active(date(2024, 7, 1)).exists()

    @pytest.mark.parametrize('status', [
        PaymentApproval.Status.PENDING,
        PaymentApproval.Status.REJECTED,
        PaymentApproval.Status.EXPIRED,
        PaymentApproval.Status.REVOKED,
    ])
    def test_only_approved_rows_count(self, make_approval, student_id, status):
        make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30), status=status)

        assert not PaymentApproval.objects.effectively_active(date(2024, 3, 15)).exists()

    def test_latest_expiring_first(self, make_approval, student_id):
        short = make_approval(student_id, date(2024, 1, 1), date(2024, 3, 31))
        long = make_approval(student_id, date(2024, 2, 1), date(2024, 8, 31))

        ordered = list(
            PaymentApproval.objects.effectively_active(date(2024, 3, 15)).latest_expiring_first()
        )

        assert ordered == [long, short]


class TestStatusHelpers:

    def test_effective_status_reads_expired_after_window(self, make_approval, student_id):
        approval = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30))

        assert approval.effective_status(date(2024, 6, 30)) == PaymentApproval.Status.APPROVED
        assert approval.effective_status(date(2024, 7, 1)) == PaymentApproval.Status.EXPIRED
        assert approval.is_effective_on(date(2024, 6, 30))
        assert not approval.is_effective_on(date(2024, 7, 1))

    def test_allowed_transitions(self, make_approval, student_id):
        pending = make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30),
                                status=PaymentApproval.Status.PENDING)

        assert pending.can_transition_to(PaymentApproval.Status.APPROVED)
        assert pending.can_transition_to(PaymentApproval.Status.REVOKED)
        assert not pending.can_transition_to(PaymentApproval.Status.EXPIRED)

    def test_clean_requires_reviewer_for_approved(self, student_id):
        approval = PaymentApproval(
            student_id=student_id,
            amount_paid='10.00',
            payment_date=date(2024, 1, 1),
            access_valid_from=date(2024, 1, 1),
            access_valid_until=date(2024, 6, 30),
            status=PaymentApproval.Status.APPROVED,
        )

        with pytest.raises(ValidationError) as exc:
            approval.clean()
        assert 'status' in exc.value.message_dict

    def test_full_clean_reports_non_numeric_amount(self, student_id):
        approval = PaymentApproval(
            student_id=student_id,
            amount_paid='ten thousand',
            payment_date=date(2024, 1, 1),
            access_valid_from=date(2024, 1, 1),
            access_valid_until=date(2024, 6, 30),
        )

        with pytest.raises(ValidationError) as exc:
            approval.full_clean()
        assert 'amount_paid' in exc.value.message_dict


class TestDatastoreConstraints:

    def test_window_order_enforced_by_database(self, make_approval, student_id):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_approval(student_id, date(2024, 6, 30), date(2024, 1, 1))

    def test_status_enforced_by_database(self, make_approval, student_id):
        with pytest.raises(IntegrityError):
            with transaction.atomic():
                make_approval(student_id, date(2024, 1, 1), date(2024, 6, 30), status='refunded')
