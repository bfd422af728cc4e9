# fees/models.py

from datetime import date
from decimal import Decimal
from django.db import models
from django.db.models import F, Q
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from utils.models import BaseModel
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# PAYMENT APPROVAL
# =============================================================================

class PaymentApprovalStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    EXPIRED = 'expired', 'Expired'
    REVOKED = 'revoked', 'Revoked'


class PaymentApprovalQuerySet(models.QuerySet):

    def for_student(self, student_id):
        return self.filter(student_id=student_id)

    def effectively_active(self, on_date):
        """Approved rows whose access window contains on_date (both ends inclusive)"""
        return self.filter(
            status=PaymentApprovalStatus.APPROVED,
            access_valid_from__lte=on_date,
            access_valid_until__gte=on_date,
        )

    def latest_expiring_first(self):
        # Deterministic order: latest expiry, then latest approval, then newest row
        return self.order_by(
            F('access_valid_until').desc(),
            F('approval_date').desc(nulls_last=True),
            F('created_at').desc(),
            F('id').desc(),
        )

    def lapsed(self, on_date):
        """Approved rows whose window ended before on_date and that opt into auto-expiry"""
        return self.filter(
            status=PaymentApprovalStatus.APPROVED,
            access_valid_until__lt=on_date,
            auto_expire=True,
        )


class PaymentApproval(BaseModel):
    """
    A reviewed payment that grants access eligibility for a bounded window.

    Lifecycle:
        pending  -> approved | rejected | revoked
        approved -> revoked | expired
        rejected, expired -> revoked
    Revocation is allowed from every state but revoked itself.
    A row is *effectively active* on a date when it is approved and the
    date falls inside [access_valid_from, access_valid_until]. Expiry is
    computed on read; the stored `expired` status is only written by the
    maintenance job.
    """

    Status = PaymentApprovalStatus

    ALLOWED_TRANSITIONS = {
        Status.PENDING: {Status.APPROVED, Status.REJECTED, Status.REVOKED},
        Status.APPROVED: {Status.REVOKED, Status.EXPIRED},
        Status.REJECTED: {Status.REVOKED},
        Status.EXPIRED: {Status.REVOKED},
        Status.REVOKED: set(),
    }

    # -------------------------------------------------------------------------
    # IDENTITY
    # -------------------------------------------------------------------------

    student_id = models.UUIDField(
        "Student ID",
        db_index=True,
        help_text="Student this approval belongs to (owned by the student records subsystem)"
    )
    payment_id = models.UUIDField(
        "Payment ID",
        null=True,
        blank=True,
        help_text="Linked payment in the finance subsystem, if any"
    )

    # -------------------------------------------------------------------------
    # PAYMENT DETAILS
    # -------------------------------------------------------------------------

    amount_paid = models.DecimalField(
        "Amount Paid",
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))],
    )
    payment_reference = models.CharField("Payment Reference", max_length=100, blank=True)
    payment_date = models.DateField("Payment Date")

    # -------------------------------------------------------------------------
    # APPROVAL
    # -------------------------------------------------------------------------

    approved_by_id = models.CharField(
        "Approved By ID",
        max_length=50,
        null=True,
        blank=True,
        help_text="ID of the accounts-office actor who reviewed this payment"
    )
    approval_date = models.DateTimeField("Approval Date", null=True, blank=True)

    # -------------------------------------------------------------------------
    # ACCESS WINDOW
    # -------------------------------------------------------------------------

    access_valid_from = models.DateField("Access Valid From", db_index=True)
    access_valid_until = models.DateField("Access Valid Until", db_index=True)

    status = models.CharField(
        "Approval Status",
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    notes = models.TextField("Approval Notes", blank=True)
    auto_expire = models.BooleanField(
        "Auto Expire",
        default=True,
        help_text="Whether the maintenance job rewrites this approval to 'expired' once its window ends"
    )

    objects = PaymentApprovalQuerySet.as_manager()

    class Meta:
        verbose_name = "Payment Approval"
        verbose_name_plural = "Payment Approvals"
        ordering = ['-access_valid_until', '-created_at']
        indexes = [
            models.Index(fields=['student_id', 'status']),
            models.Index(fields=['access_valid_from', 'access_valid_until']),
        ]
        constraints = [
            models.CheckConstraint(
                condition=Q(amount_paid__gt=0),
                name='payment_approval_amount_positive',
            ),
            models.CheckConstraint(
                condition=Q(access_valid_until__gt=F('access_valid_from')),
                name='payment_approval_window_ordered',
            ),
            models.CheckConstraint(
                condition=Q(status__in=PaymentApprovalStatus.values),
                name='payment_approval_status_valid',
            ),
        ]

    def __str__(self):
        return (
            f"{self.student_id} {self.amount_paid} "
            f"[{self.access_valid_from} → {self.access_valid_until}] ({self.status})"
        )

    def clean(self):
        super().clean()
        errors = {}

        # Field-level errors (non-numeric amount, unparsable dates) come from clean_fields
        if isinstance(self.amount_paid, Decimal) and self.amount_paid <= 0:
            errors['amount_paid'] = "Amount paid must be greater than zero"

        if isinstance(self.access_valid_from, date) and isinstance(self.access_valid_until, date):
            if self.access_valid_until <= self.access_valid_from:
                errors['access_valid_until'] = "Access must end after it starts"

        if self.status == self.Status.APPROVED and not (self.approved_by_id and self.approval_date):
            errors['status'] = "An approved payment must record who approved it and when"

        if errors:
            raise ValidationError(errors)

    # -------------------------------------------------------------------------
    # STATUS HELPERS
    # -------------------------------------------------------------------------

    def can_transition_to(self, new_status):
        return new_status in self.ALLOWED_TRANSITIONS.get(self.status, set())

    def is_effective_on(self, on_date):
        """Whether this approval grants payment eligibility on on_date"""
        return (
            self.status == self.Status.APPROVED
            and self.access_valid_from <= on_date <= self.access_valid_until
        )

    def effective_status(self, on_date):
        """
        Status as seen by the access policy on on_date.

        An approved row past its window reads as expired even if the
        maintenance job has not rewritten it yet.
        """
        if self.status == self.Status.APPROVED and on_date > self.access_valid_until:
            return self.Status.EXPIRED
        return self.Status(self.status)


# =============================================================================
# FINANCIAL RECORD
# =============================================================================

class FinancialRecordQuerySet(models.QuerySet):

    def for_student(self, student_id):
        return self.filter(student_id=student_id)


class FinancialRecord(BaseModel):
    """
    Per-semester fee statement maintained by the ledger subsystem.

    The access engine only reads these rows: the sum of `balance` across a
    student's statements is the outstanding financial balance.
    """

    class PaymentStatus(models.TextChoices):
        PENDING = 'pending', 'Pending'
        PARTIAL = 'partial', 'Partial'
        PAID = 'paid', 'Paid'
        OVERDUE = 'overdue', 'Overdue'

    student_id = models.UUIDField("Student ID", db_index=True)
    academic_year = models.CharField("Academic Year", max_length=20)
    semester = models.PositiveSmallIntegerField(
        "Semester",
        choices=[(1, 'Semester 1'), (2, 'Semester 2')],
    )
    total_amount = models.DecimalField("Total Amount", max_digits=10, decimal_places=2, default=Decimal('0.00'))
    amount_paid = models.DecimalField("Amount Paid", max_digits=10, decimal_places=2, default=Decimal('0.00'))
    balance = models.DecimalField("Balance", max_digits=10, decimal_places=2, default=Decimal('0.00'))
    payment_status = models.CharField(
        "Payment Status",
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    due_date = models.DateField("Due Date")

    objects = FinancialRecordQuerySet.as_manager()

    class Meta:
        verbose_name = "Financial Record"
        verbose_name_plural = "Financial Records"
        ordering = ['-academic_year', '-semester']
        indexes = [
            models.Index(fields=['student_id']),
        ]

    def __str__(self):
        return f"{self.student_id} {self.academic_year} S{self.semester}: {self.balance}"
