# access/signals.py

"""
Access Control Signals

- audit_write_failed: sent whenever an audit entry could not be written.
  Operational alerting hooks connect here; the default receiver escalates
  the failure on the error log.
"""

from django.dispatch import Signal, receiver
import logging

logger = logging.getLogger(__name__)

# Sent with: entry (dict of the fields that failed to persist), error, failure_count
audit_write_failed = Signal()


@receiver(audit_write_failed)
def alert_on_audit_failure(sender, entry, error, failure_count, **kwargs):
    logger.error(
        f"ALERT: access audit entry lost ({entry.get('action_type')} for "
        f"student {entry.get('student_id')}); {failure_count} failures since start: {error}"
    )
