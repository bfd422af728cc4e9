# access/models.py

"""
Append-only audit trail for access decisions and the registration workflow.

Every Evaluate and RegisterStudent call writes exactly one entry; approval
and registration reviews write one entry each. Entries are never updated or
deleted.
"""

from datetime import datetime, time
from django.db import models
from django.utils import timezone
import uuid
import logging

logger = logging.getLogger(__name__)


class AccessAction(models.TextChoices):
    EVALUATE = 'evaluate', 'Access Evaluated'

    # Registration workflow
    REGISTER_SUCCEEDED = 'register_succeeded', 'Registration Created'
    REGISTER_DENIED = 'register_denied', 'Registration Denied'
    REGISTER_CONFLICT = 'register_conflict', 'Registration Already Exists'
    REGISTER_FAILED = 'register_failed', 'Registration Failed'

    # Payment approval lifecycle
    PAYMENT_RECORDED = 'payment_recorded', 'Payment Recorded'
    PAYMENT_APPROVED = 'payment_approved', 'Payment Approved'
    PAYMENT_REJECTED = 'payment_rejected', 'Payment Rejected'
    PAYMENT_REVOKED = 'payment_revoked', 'Payment Approval Revoked'
    AUTO_EXPIRE = 'auto_expire', 'Payment Approval Expired'
    ACCESS_TERMINATED = 'access_terminated', 'Student Access Terminated'

    # Registration review
    REGISTRATION_APPROVED = 'registration_approved', 'Registration Approved'
    REGISTRATION_REJECTED = 'registration_rejected', 'Registration Rejected'
    REGISTRATION_CANCELLED = 'registration_cancelled', 'Registration Cancelled'


class AccessControlLogQuerySet(models.QuerySet):

    def for_student(self, student_id):
        return self.filter(student_id=student_id)

    def of_action(self, action_type):
        return self.filter(action_type=action_type)

    def between(self, start_date=None, end_date=None):
        """Entries whose timestamp falls within [start_date, end_date] in local time"""
        queryset = self
        tz = timezone.get_current_timezone()
        if start_date:
            queryset = queryset.filter(
                created_at__gte=timezone.make_aware(datetime.combine(start_date, time.min), tz)
            )
        if end_date:
            queryset = queryset.filter(
                created_at__lte=timezone.make_aware(datetime.combine(end_date, time.max), tz)
            )
        return queryset

    def filter_for_oversight(self, student_id=None, start_date=None, end_date=None, action_type=None):
        """
        The audit query surface consumed by oversight dashboards.

        Every filter is optional; results are newest first.
        """
        queryset = self
        if student_id:
            queryset = queryset.for_student(student_id)
        if action_type:
            queryset = queryset.of_action(action_type)
        return queryset.between(start_date, end_date).order_by('-created_at')


class AccessControlLog(models.Model):
    """
    One audit entry: who was evaluated or registered, what happened and why.

    Tracks:
    - What happened (action type, reason code, notes)
    - Which records were involved (payment approval, registration)
    - Who did it (actor id)
    - When and from where (timestamp, IP address, user agent, path)
    """

    Action = AccessAction

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    student_id = models.UUIDField("Student ID", db_index=True)
    action_type = models.CharField(
        "Action Type",
        max_length=50,
        choices=AccessAction.choices,
        db_index=True,
    )
    reason = models.CharField("Reason Code", max_length=100, blank=True)

    # Records involved - plain ids so the trail outlives the rows it mentions
    payment_approval_id = models.UUIDField("Payment Approval ID", null=True, blank=True)
    semester_registration_id = models.UUIDField("Semester Registration ID", null=True, blank=True)

    actor_id = models.CharField(
        "Actor ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of the user who performed the action (empty for self-service and system jobs)"
    )
    notes = models.TextField("Notes", blank=True)

    created_at = models.DateTimeField("Timestamp", db_index=True)

    # Request metadata
    ip_address = models.GenericIPAddressField("IP Address", null=True, blank=True)
    user_agent = models.TextField("User Agent", blank=True)
    request_path = models.CharField("Request Path", max_length=255, blank=True)

    objects = AccessControlLogQuerySet.as_manager()

    class Meta:
        verbose_name = "Access Control Log"
        verbose_name_plural = "Access Control Logs"
        ordering = ['-created_at']
        permissions = [
            ('register_student', "Can register students for a semester period"),
        ]
        indexes = [
            models.Index(fields=['student_id', 'created_at']),
            models.Index(fields=['action_type', 'created_at']),
        ]

    def __str__(self):
        return f"{self.action_type} {self.student_id} at {self.created_at}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Access control log entries are append-only")
        if not self.created_at:
            self.created_at = timezone.now()
        return super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Access control log entries cannot be deleted")
