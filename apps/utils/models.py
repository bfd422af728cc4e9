# utils/models.py

"""
Base model for the access-control apps with audit-trail fields.

Key Features:
- UUID primary keys
- Timezone-aware created/updated timestamps
- User and IP tracking from the thread-local request context
- Change reason tracking
"""

from django.db import models
from django.utils import timezone
import uuid
import logging

logger = logging.getLogger(__name__)


# =============================================================================
# BASE MODEL
# =============================================================================

class BaseModel(models.Model):
    """
    Abstract base model with audit-trail capabilities.

    Features:
    - Automatic user tracking (who created/updated)
    - Real IP address tracking (where operations came from)
    - Change reason tracking (why changes were made)

    The user/IP fields are CharFields rather than foreign keys: actors are
    owned by the authentication subsystem, which may live in another database.
    """

    # Core identification
    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Timestamp fields
    created_at = models.DateTimeField(
        "Created At",
        db_index=True,
        editable=False,
        help_text="When this record was created"
    )
    updated_at = models.DateTimeField(
        "Updated At",
        db_index=True,
        editable=False,
        help_text="When this record was last updated"
    )

    # User tracking - CharField to avoid cross-database FK constraints
    created_by_id = models.CharField(
        "Created By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who created this record"
    )
    updated_by_id = models.CharField(
        "Updated By ID",
        max_length=50,
        null=True,
        blank=True,
        db_index=True,
        help_text="ID of user who last updated this record"
    )

    created_from_ip = models.GenericIPAddressField(
        "Created From IP",
        null=True,
        blank=True,
        help_text="IP address from which this record was created"
    )
    updated_from_ip = models.GenericIPAddressField(
        "Updated From IP",
        null=True,
        blank=True,
        help_text="IP address from which this record was last updated"
    )

    change_reason = models.CharField(
        "Change Reason",
        max_length=255,
        blank=True,
        null=True,
        help_text="Explanation for why this change was made"
    )

    class Meta:
        abstract = True

    def save(self, *args, **kwargs):
        """
        Override save to:
        1. Set timestamps
        2. Populate audit trail fields (created_by, updated_by, IPs)
        """
        from utils.context import get_request_context

        is_new = self._state.adding
        now = timezone.now()

        if is_new:
            # Only set if not already provided (respects manual override)
            if not self.created_at:
                self.created_at = now
            if not self.updated_at:
                self.updated_at = now
        else:
            self.updated_at = now

        context = get_request_context()

        if context:
            user = context.get('user')
            ip_address = context.get('ip_address')

            if is_new:
                if user and not self.created_by_id:
                    self.created_by_id = str(user.pk)
                if ip_address and not self.created_from_ip:
                    self.created_from_ip = ip_address

            if user:
                self.updated_by_id = str(user.pk)
            if ip_address:
                self.updated_from_ip = ip_address
        elif is_new:
            logger.debug(
                f"No request context available when creating {self.__class__.__name__}. "
                f"Audit fields will not be populated."
            )

        # update_fields callers must also persist the refreshed audit columns
        update_fields = kwargs.get('update_fields')
        if update_fields is not None:
            kwargs['update_fields'] = set(update_fields) | {
                'updated_at', 'updated_by_id', 'updated_from_ip', 'change_reason'
            }

        return super().save(*args, **kwargs)

    def set_change_reason(self, reason):
        """
        Set the reason for the next change to this object.

        Usage:
            approval.status = PaymentApproval.Status.REVOKED
            approval.set_change_reason("Cheque bounced")
            approval.save()
        """
        self.change_reason = reason
