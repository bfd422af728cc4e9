# access/management/commands/run_access_maintenance.py

"""
Periodic access-control maintenance.

Marks approved payment approvals whose access window has ended as expired
(only rows with auto_expire set). Access decisions compute expiry on read,
so this job only keeps stored statuses tidy; schedule it daily from cron.

USAGE EXAMPLES:
===============

# 1. Expire everything that lapsed before today
python manage.py run_access_maintenance

# 2. Preview without writing
python manage.py run_access_maintenance --dry-run

# 3. Run as of a specific date
python manage.py run_access_maintenance --date 2024-07-01
"""

from django.core.management.base import BaseCommand, CommandError
from django.core.exceptions import ValidationError
import logging

from academics.services import SemesterPeriodService
from core.exceptions import DatastoreError
from core.utils import get_today, coerce_date
from fees.models import PaymentApproval
from fees.services import PaymentApprovalService
from utils.context import RequestContext

from access.audit import AccessAuditLogger

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = 'Expire lapsed payment approvals and report access-control health'

    def add_arguments(self, parser):
        parser.add_argument(
            '--date', type=str, default=None,
            help='Run as of this date (YYYY-MM-DD) instead of today'
        )
        parser.add_argument(
            '--dry-run', action='store_true',
            help='Report what would be expired without changing anything'
        )

    def handle(self, *args, **options):
        try:
            on_date = coerce_date(options['date'], 'date') if options['date'] else get_today()
        except ValidationError as e:
            raise CommandError(e.message_dict['date'][0])

        try:
            if options['dry_run']:
                count = PaymentApproval.objects.lapsed(on_date).count()
                self.stdout.write(f"[dry run] {count} payment approvals would be expired as of {on_date}.")
            else:
                with RequestContext(user_agent='run_access_maintenance'):
                    count = PaymentApprovalService.expire_lapsed_approvals(on_date)
                self.stdout.write(self.style.SUCCESS(
                    f"Access control maintenance completed. Expired {count} payment approvals."
                ))

            period = SemesterPeriodService.get_active_semester(on_date)
        except DatastoreError as e:
            logger.exception("Access control maintenance failed")
            raise CommandError(f"Access control maintenance failed: {e}")

        if period:
            self.stdout.write(f"Active semester: {period.name} ({period.start_date} to {period.end_date})")
        else:
            self.stdout.write(self.style.WARNING(f"No active semester covers {on_date}."))

        failures = AccessAuditLogger.failure_count()
        if failures:
            self.stdout.write(self.style.WARNING(
                f"{failures} audit entries failed to write since this process started."
            ))
