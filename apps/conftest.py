"""
Shared fixtures for the access-control test suites.

Factories create rows directly through the ORM so each test states exactly
the approvals, periods and statements it needs.
"""

import uuid
from datetime import date, timedelta
from decimal import Decimal

import pytest
from django.utils import timezone

from academics.models import SemesterPeriod, StudentSemesterRegistration
from access.audit import AccessAuditLogger
from core.utils import get_today
from fees.models import PaymentApproval, FinancialRecord


@pytest.fixture(autouse=True)
def reset_audit_failures():
    AccessAuditLogger.reset_failure_count()
    yield
    AccessAuditLogger.reset_failure_count()


@pytest.fixture
def student_id():
    return uuid.uuid4()


@pytest.fixture
def today():
    return get_today()


@pytest.fixture
def make_approval(db):
    def factory(student_id, valid_from, valid_until, status=PaymentApproval.Status.APPROVED,
                amount=Decimal('1500000.00'), auto_expire=True, **kwargs):
        approved = status in (PaymentApproval.Status.APPROVED, PaymentApproval.Status.EXPIRED)
        return PaymentApproval.objects.create(
            student_id=student_id,
            amount_paid=amount,
            payment_reference=kwargs.pop('payment_reference', 'BANK-001'),
            payment_date=kwargs.pop('payment_date', valid_from),
            access_valid_from=valid_from,
            access_valid_until=valid_until,
            status=status,
            approved_by_id=kwargs.pop('approved_by_id', 'accountant-1' if approved else None),
            approval_date=kwargs.pop('approval_date', timezone.now() if approved else None),
            auto_expire=auto_expire,
            **kwargs
        )
    return factory


@pytest.fixture
def make_period(db):
    def factory(start_date, end_date, is_active=True, is_registration_open=True, **kwargs):
        return SemesterPeriod.objects.create(
            name=kwargs.pop('name', f"Semester {kwargs.get('semester_number', 1)} {start_date.year}"),
            academic_year=kwargs.pop('academic_year', f"{start_date.year}/{start_date.year + 1}"),
            semester_number=kwargs.pop('semester_number', 1),
            start_date=start_date,
            end_date=end_date,
            registration_start_date=kwargs.pop('registration_start_date', start_date - timedelta(days=14)),
            registration_end_date=kwargs.pop('registration_end_date', start_date + timedelta(days=14)),
            is_active=is_active,
            is_registration_open=is_registration_open,
            **kwargs
        )
    return factory


@pytest.fixture
def make_registration(db):
    def factory(student_id, period, status=StudentSemesterRegistration.Status.APPROVED, **kwargs):
        return StudentSemesterRegistration.objects.create(
            student_id=student_id,
            semester_period=period,
            registration_date=timezone.now(),
            status=status,
            **kwargs
        )
    return factory


@pytest.fixture
def make_financial_record(db):
    def factory(student_id, balance, semester=1, academic_year='2024/2025'):
        balance = Decimal(str(balance))
        return FinancialRecord.objects.create(
            student_id=student_id,
            academic_year=academic_year,
            semester=semester,
            total_amount=Decimal('2000000.00'),
            amount_paid=Decimal('2000000.00') - balance,
            balance=balance,
            due_date=date(2024, 9, 30),
        )
    return factory


@pytest.fixture
def current_period(make_period, today):
    """Active period covering today with registration open"""
    return make_period(today - timedelta(days=30), today + timedelta(days=90))


@pytest.fixture
def valid_approval(make_approval, student_id, today):
    """Approval valid from last month until three months from now"""
    return make_approval(student_id, today - timedelta(days=30), today + timedelta(days=90))
