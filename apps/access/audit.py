# access/audit.py

"""
Best-effort writer for the access-control audit trail.

The business decision never depends on the audit trail being available:
a failed write is logged, counted and broadcast on the audit_write_failed
signal, and the caller carries on.
"""

from threading import Lock
from django.db import transaction
import logging

from core.exceptions import AuditLogFailure
from utils.context import get_request_context

from .models import AccessControlLog
from .signals import audit_write_failed

audit_logger = logging.getLogger("access_audit")
logger = logging.getLogger(__name__)


class AccessAuditLogger:
    """
    Writes AccessControlLog entries.

    Request metadata (IP address, user agent, path) is taken from the
    thread-local request context when the caller does not pass it.
    """

    _failure_lock = Lock()
    _failure_count = 0

    @classmethod
    def failure_count(cls):
        return cls._failure_count

    @classmethod
    def reset_failure_count(cls):
        with cls._failure_lock:
            cls._failure_count = 0

    @classmethod
    def _register_failure(cls):
        with cls._failure_lock:
            cls._failure_count += 1
            return cls._failure_count

    def record(
        self,
        student_id,
        action_type,
        reason='',
        payment_approval_id=None,
        semester_registration_id=None,
        actor_id=None,
        notes='',
        ip_address=None,
        user_agent=None,
        request_path=None,
    ):
        """
        Append one audit entry.

        Args:
            student_id: Student the entry is about
            action_type (str): One of AccessAction
            reason (str): Machine-readable reason code
            payment_approval_id: PaymentApproval involved, if any
            semester_registration_id: StudentSemesterRegistration involved, if any
            actor_id: User who performed the action
            notes (str): Free-text context
            ip_address, user_agent, request_path: Override the request context

        Returns:
            AccessControlLog or None when the write failed
        """
        context = get_request_context() or {}

        entry = {
            'student_id': student_id,
            'action_type': str(action_type),
            'reason': reason or '',
            'payment_approval_id': payment_approval_id,
            'semester_registration_id': semester_registration_id,
            'actor_id': str(actor_id) if actor_id else None,
            'notes': notes or '',
            'ip_address': ip_address or context.get('ip_address'),
            'user_agent': user_agent if user_agent is not None else context.get('user_agent', ''),
            'request_path': (request_path if request_path is not None else context.get('request_path', ''))[:255],
        }

        try:
            return self._write(entry)
        except AuditLogFailure as e:
            failure_count = self._register_failure()
            logger.error(f"Failed to write access audit entry: {e}", exc_info=True)
            audit_write_failed.send(
                sender=self.__class__,
                entry=entry,
                error=e,
                failure_count=failure_count,
            )
            return None

    def _write(self, entry):
        try:
            # Own savepoint: a failed insert must not poison the caller's transaction
            with transaction.atomic():
                log = AccessControlLog.objects.create(**entry)
        except Exception as e:
            raise AuditLogFailure(str(e)) from e

        audit_logger.info(
            f"{entry['action_type']} student={entry['student_id']} reason={entry['reason'] or '-'}"
        )
        return log


def record_access_event(**kwargs):
    """
    Shortcut used by the fees and academics services.

    Example:
        record_access_event(
            student_id=approval.student_id,
            action_type=AccessAction.PAYMENT_REVOKED,
            reason='manual_revoke',
            payment_approval_id=approval.pk,
            actor_id=revoked_by,
        )
    """
    return AccessAuditLogger().record(**kwargs)
