# access/verdicts.py

"""
Value objects returned by the access evaluator and registration workflow.

None of these are persisted. Policy denials and duplicate registrations
are ordinary results carried by RegistrationResult.outcome.
"""

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Optional
import uuid

from django.db import models


# =============================================================================
# DENIAL VOCABULARY
# =============================================================================

DENIAL_ZERO_BALANCE_NO_APPROVAL = (
    "Access denied: You have a zero balance but no payment approval. "
    "Please pay and get approval from the Accounts Office."
)
DENIAL_PAYMENT_NOT_APPROVED = (
    "Payment not approved or access period expired. "
    "Please contact the Accounts Office."
)

PAYMENT_VERIFIED = "Payment verification successful"
PAYMENT_NOT_VALID = (
    "No valid payment approval found. "
    "Payment may be expired, rejected, or access period ended."
)
PAYMENT_NOT_FOUND = (
    "No payment approval found. "
    "Student must make payment and get approval from Accounts Office."
)

ALREADY_REGISTERED = "Student is already registered for this period."
REGISTRATION_CREATED = "Student registered successfully with payment verification."

DENIAL_FINANCIAL_PAYMENT_REQUIRED = "Payment approval required to access financial information"

WARNING_ACCESS_EXPIRING = "Your access will expire in {days} day(s) on {until}."
WARNING_ACCESS_ENDS_TODAY = "Your access ends today ({until}). Please contact the Accounts Office."
WARNING_SEMESTER_ENDING = "Current semester ends in {days} day(s) on {end}."


class ReasonCode(models.TextChoices):
    PAYMENT_APPROVED = 'payment_approved', 'Payment Approved'
    BALANCE_OUTSTANDING = 'balance_outstanding', 'Granted On Outstanding Balance'
    ZERO_BALANCE_NO_APPROVAL = 'zero_balance_no_approval', 'Zero Balance Without Approval'
    PAYMENT_NOT_APPROVED = 'payment_not_approved', 'Payment Not Approved'


class ModuleRule(models.TextChoices):
    """What a protected module demands of the verdict"""
    ACCESS = 'access', 'Requires Access'
    PAYMENT_APPROVED = 'payment_approved', 'Requires Approved Payment'


# =============================================================================
# ACCESS VERDICT
# =============================================================================

@dataclass(frozen=True)
class AccessVerdict:
    """
    The computed access decision for one student on one date.

    denial_reason is empty exactly when payment_approved is true; a student
    granted access on an outstanding balance still carries the
    payment-not-approved reason.
    """

    student_id: uuid.UUID
    evaluated_on: date
    has_access: bool
    payment_approved: bool
    semester_registered: bool
    access_valid_until: Optional[date]
    semester_end_date: Optional[date]
    denial_reason: str
    financial_balance: Decimal
    has_financial_statements: bool
    reason_code: str
    payment_approval_id: Optional[uuid.UUID] = None
    semester_registration_id: Optional[uuid.UUID] = None
    warnings: tuple = ()

    def denial_for(self, rule):
        """
        Reason this verdict refuses a module governed by rule, or '' when it may open.

        Academic modules (results, courses, timetable) follow has_access.
        Financial data needs an approved payment even when access was
        granted on an outstanding balance.
        """
        if rule == ModuleRule.PAYMENT_APPROVED:
            return '' if self.payment_approved else DENIAL_FINANCIAL_PAYMENT_REQUIRED
        return '' if self.has_access else self.denial_reason

    def as_dict(self):
        return {
            'student_id': str(self.student_id),
            'evaluated_on': self.evaluated_on.isoformat(),
            'has_access': self.has_access,
            'payment_approved': self.payment_approved,
            'semester_registered': self.semester_registered,
            'access_valid_until': self.access_valid_until.isoformat() if self.access_valid_until else None,
            'semester_end_date': self.semester_end_date.isoformat() if self.semester_end_date else None,
            'denial_reason': self.denial_reason,
            'financial_balance': str(self.financial_balance),
            'has_financial_statements': self.has_financial_statements,
            'reason_code': self.reason_code,
            'warnings': list(self.warnings),
        }


# =============================================================================
# PAYMENT CHECK
# =============================================================================

class PaymentStatus(models.TextChoices):
    APPROVED = 'approved', 'Approved'
    EXPIRED = 'expired', 'Expired Or Not Valid'
    NONE = 'none', 'No Approval'


@dataclass(frozen=True)
class PaymentCheck:
    """Result of the payment-only sub-check used as the registration precondition"""

    has_valid_payment: bool
    payment_status: str
    message: str
    approval: Optional[object] = None

    @property
    def access_valid_until(self):
        return self.approval.access_valid_until if self.approval else None

    def as_dict(self):
        approval = self.approval
        return {
            'has_valid_payment': self.has_valid_payment,
            'payment_status': self.payment_status,
            'message': self.message,
            'payment_approval_id': str(approval.pk) if approval else None,
            'access_valid_until': approval.access_valid_until.isoformat() if approval else None,
            'amount_paid': str(approval.amount_paid) if approval else None,
            'payment_reference': approval.payment_reference if approval else None,
        }


# =============================================================================
# REGISTRATION RESULT
# =============================================================================

class RegistrationOutcome(models.TextChoices):
    SUCCESS = 'success', 'Registered'
    POLICY_DENIED = 'policy_denied', 'Denied By Payment Policy'
    CONFLICT = 'conflict', 'Already Registered'


@dataclass(frozen=True)
class RegistrationResult:
    success: bool
    outcome: str
    message: str
    registration_id: Optional[uuid.UUID] = None
    payment_approval_id: Optional[uuid.UUID] = None
    verdict: Optional[AccessVerdict] = field(default=None, compare=False)

    @property
    def is_conflict(self):
        return self.outcome == RegistrationOutcome.CONFLICT

    @property
    def is_denied(self):
        return self.outcome == RegistrationOutcome.POLICY_DENIED

    def as_dict(self):
        return {
            'success': self.success,
            'outcome': str(self.outcome),
            'message': self.message,
            'registration_id': str(self.registration_id) if self.registration_id else None,
            'payment_approval_id': str(self.payment_approval_id) if self.payment_approval_id else None,
            'verdict': self.verdict.as_dict() if self.verdict else None,
        }
