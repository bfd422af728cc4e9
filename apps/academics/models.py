# academics/models.py

from django.db import models
from django.db.models import F, Q
from django.core.exceptions import ValidationError
from utils.models import BaseModel
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# SEMESTER PERIOD MODEL
# =============================================================================

class SemesterPeriodQuerySet(models.QuerySet):

    def active(self):
        return self.filter(is_active=True)

    def covering(self, on_date):
        return self.filter(start_date__lte=on_date, end_date__gte=on_date)

    def latest_ending_first(self):
        # Tolerates several active periods: latest end, then latest start, then newest row
        return self.order_by(
            F('end_date').desc(),
            F('start_date').desc(),
            F('created_at').desc(),
            F('id').desc(),
        )


class SemesterPeriod(BaseModel):
    """
    Administratively defined academic term with its own registration window.

    Examples:
    - "Semester 1 2024/2025" (Sep 1 - Jan 31), registration Aug 15 - Sep 15
    - "Semester 2 2024/2025" (Feb 1 - Jun 30), registration Jan 15 - Feb 15

    At most one period is expected to be active at a time. The activation
    service enforces that, but readers must not rely on it: evaluation picks
    the latest-ending active period when several match.

    Periods whose end date has passed are historical and treated as
    read-only by convention.
    """

    name = models.CharField(
        "Semester Name",
        max_length=100,
        help_text="E.g., 'Semester 1 2024/2025'"
    )
    academic_year = models.CharField(
        "Academic Year",
        max_length=20,
        help_text="E.g., '2024/2025'"
    )
    semester_number = models.PositiveSmallIntegerField(
        "Semester Number",
        choices=[(1, 'Semester 1'), (2, 'Semester 2')],
        db_index=True,
    )

    # -------------------------------------------------------------------------
    # DATE RANGES
    # -------------------------------------------------------------------------

    start_date = models.DateField("Start Date", db_index=True)
    end_date = models.DateField("End Date", db_index=True)
    registration_start_date = models.DateField("Registration Opens")
    registration_end_date = models.DateField("Registration Closes")

    # -------------------------------------------------------------------------
    # STATUS
    # -------------------------------------------------------------------------

    is_active = models.BooleanField(
        "Is Active",
        default=False,
        db_index=True,
        help_text="Whether this is the current academic period"
    )
    is_registration_open = models.BooleanField(
        "Registration Open",
        default=False,
        help_text="Whether students may currently be registered for this period"
    )

    objects = SemesterPeriodQuerySet.as_manager()

    class Meta:
        verbose_name = "Semester Period"
        verbose_name_plural = "Semester Periods"
        ordering = ['-start_date']
        constraints = [
            models.CheckConstraint(
                condition=Q(end_date__gt=F('start_date')),
                name='semester_period_dates_ordered',
            ),
            models.CheckConstraint(
                condition=Q(registration_end_date__gte=F('registration_start_date')),
                name='semester_period_registration_ordered',
            ),
            models.CheckConstraint(
                condition=Q(semester_number__in=[1, 2]),
                name='semester_period_number_valid',
            ),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        super().clean()
        errors = {}

        if self.start_date and self.end_date and self.end_date <= self.start_date:
            errors['end_date'] = "End date must be after start date"

        if (self.registration_start_date and self.registration_end_date
                and self.registration_end_date < self.registration_start_date):
            errors['registration_end_date'] = "Registration cannot close before it opens"

        if self.semester_number not in (1, 2):
            errors['semester_number'] = "Semester number must be 1 or 2"

        if errors:
            raise ValidationError(errors)

    # -------------------------------------------------------------------------
    # HELPERS
    # -------------------------------------------------------------------------

    def is_historical(self, on_date):
        return on_date > self.end_date


# =============================================================================
# STUDENT SEMESTER REGISTRATION MODEL
# =============================================================================

class RegistrationStatus(models.TextChoices):
    PENDING = 'pending', 'Pending'
    APPROVED = 'approved', 'Approved'
    REJECTED = 'rejected', 'Rejected'
    CANCELLED = 'cancelled', 'Cancelled'


class StudentSemesterRegistrationQuerySet(models.QuerySet):

    def for_student(self, student_id):
        return self.filter(student_id=student_id)

    def current_for(self, on_date):
        """Approved registrations in an active period that covers on_date"""
        return self.filter(
            status=RegistrationStatus.APPROVED,
            semester_period__is_active=True,
            semester_period__start_date__lte=on_date,
            semester_period__end_date__gte=on_date,
        )


class StudentSemesterRegistration(BaseModel):
    """
    A student's enrollment claim against one semester period.

    Created only by the registration workflow, which requires a currently
    valid payment approval. Starts pending; reviewed by the accounts office.
    A student registers at most once per period (enforced by the datastore).
    """

    Status = RegistrationStatus

    ALLOWED_TRANSITIONS = {
        Status.PENDING: {Status.APPROVED, Status.REJECTED, Status.CANCELLED},
        Status.APPROVED: {Status.CANCELLED},
        Status.REJECTED: set(),
        Status.CANCELLED: set(),
    }

    student_id = models.UUIDField("Student ID", db_index=True)
    semester_period = models.ForeignKey(
        SemesterPeriod,
        on_delete=models.CASCADE,
        related_name='registrations',
    )
    registration_date = models.DateTimeField("Registration Date")
    registered_by_id = models.CharField(
        "Registered By ID",
        max_length=50,
        null=True,
        blank=True,
        help_text="ID of the accounts-office actor who submitted the registration"
    )

    approved_by_id = models.CharField("Reviewed By ID", max_length=50, null=True, blank=True)
    approval_date = models.DateTimeField("Review Date", null=True, blank=True)

    status = models.CharField(
        "Registration Status",
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
        db_index=True,
    )
    payment_approval = models.ForeignKey(
        'fees.PaymentApproval',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='registrations',
        help_text="Payment approval that satisfied the registration precondition"
    )
    notes = models.TextField("Registration Notes", blank=True)

    objects = StudentSemesterRegistrationQuerySet.as_manager()

    class Meta:
        verbose_name = "Student Semester Registration"
        verbose_name_plural = "Student Semester Registrations"
        ordering = ['-registration_date']
        constraints = [
            models.UniqueConstraint(
                fields=['student_id', 'semester_period'],
                name='unique_student_semester_registration',
            ),
            models.CheckConstraint(
                condition=Q(status__in=RegistrationStatus.values),
                name='semester_registration_status_valid',
            ),
        ]

    def __str__(self):
        return f"{self.student_id} → {self.semester_period} ({self.status})"

    def can_transition_to(self, new_status):
        return new_status in self.ALLOWED_TRANSITIONS.get(self.status, set())
