"""
Tests for the audit logger and the audit query surface.
"""

import uuid
from datetime import date, datetime, time, timedelta
from unittest.mock import MagicMock, patch

import pytest
from django.db import OperationalError
from django.utils import timezone

from access.audit import AccessAuditLogger, record_access_event
from access.models import AccessControlLog, AccessAction
from access.signals import audit_write_failed
from utils.context import RequestContext


pytestmark = pytest.mark.django_db


def log_at(student_id, action_type, on_date):
    return AccessControlLog.objects.create(
        student_id=student_id,
        action_type=action_type,
        created_at=timezone.make_aware(datetime.combine(on_date, time(12, 0))),
    )


class TestAccessAuditLogger:

    def test_records_entry_with_request_context(self, student_id):
        with RequestContext(ip_address='10.0.0.8', user_agent='pytest', request_path='/portal/results/'):
            log = AccessAuditLogger().record(
                student_id=student_id,
                action_type=AccessAction.EVALUATE,
                reason='payment_approved',
                actor_id=17,
            )

        assert log.pk is not None
        assert log.ip_address == '10.0.0.8'
        assert log.user_agent == 'pytest'
        assert log.request_path == '/portal/results/'
        assert log.actor_id == '17'

    def test_explicit_metadata_overrides_context(self, student_id):
        with RequestContext(ip_address='10.0.0.8'):
            log = record_access_event(
                student_id=student_id,
                action_type=AccessAction.EVALUATE,
                ip_address='192.168.1.5',
            )

        assert log.ip_address == '192.168.1.5'

    def test_failure_is_counted_and_signalled(self, student_id):
        handler = MagicMock()
        audit_write_failed.connect(handler)
        try:
            with patch('access.audit.AccessControlLog.objects.create', side_effect=OperationalError("gone")):
                result = AccessAuditLogger().record(student_id=student_id, action_type=AccessAction.EVALUATE)
        finally:
            audit_write_failed.disconnect(handler)

        assert result is None
        assert AccessAuditLogger.failure_count() == 1
        handler.assert_called_once()
        kwargs = handler.call_args.kwargs
        assert kwargs['entry']['student_id'] == student_id
        assert kwargs['failure_count'] == 1

    def test_failure_logged_as_alert(self, student_id, caplog):
        with patch('access.audit.AccessControlLog.objects.create', side_effect=OperationalError("gone")):
            AccessAuditLogger().record(student_id=student_id, action_type=AccessAction.EVALUATE)

        assert any('ALERT' in record.getMessage() for record in caplog.records)

    def test_failed_write_keeps_outer_transaction_usable(self, student_id):
        with patch('access.audit.AccessControlLog.objects.create', side_effect=OperationalError("gone")):
            AccessAuditLogger().record(student_id=student_id, action_type=AccessAction.EVALUATE)

        assert record_access_event(student_id=student_id, action_type=AccessAction.EVALUATE) is not None


class TestAppendOnly:

    def test_entries_cannot_be_updated(self, student_id):
        log = record_access_event(student_id=student_id, action_type=AccessAction.EVALUATE)
        log.reason = 'tampered'

        with pytest.raises(ValueError):
            log.save()

    def test_entries_cannot_be_deleted(self, student_id):
        log = record_access_event(student_id=student_id, action_type=AccessAction.EVALUATE)

        with pytest.raises(ValueError):
            log.delete()
        assert AccessControlLog.objects.filter(pk=log.pk).exists()


class TestOversightQuery:

    def test_filters_by_student_action_and_dates(self, student_id):
        other_student = uuid.uuid4()
        match = log_at(student_id, AccessAction.REGISTER_DENIED, date(2024, 3, 15))
        log_at(student_id, AccessAction.EVALUATE, date(2024, 3, 15))
        log_at(student_id, AccessAction.REGISTER_DENIED, date(2024, 5, 1))
        log_at(other_student, AccessAction.REGISTER_DENIED, date(2024, 3, 15))

        results = AccessControlLog.objects.filter_for_oversight(
            student_id=student_id,
            start_date=date(2024, 3, 1),
            end_date=date(2024, 3, 31),
            action_type=AccessAction.REGISTER_DENIED,
        )

        assert list(results) == [match]

    def test_end_date_is_inclusive(self, student_id):
        log = log_at(student_id, AccessAction.EVALUATE, date(2024, 3, 31))

        results = AccessControlLog.objects.filter_for_oversight(end_date=date(2024, 3, 31))

        assert list(results) == [log]

    def test_newest_first(self, student_id):
        older = log_at(student_id, AccessAction.EVALUATE, date(2024, 3, 1))
        newer = log_at(student_id, AccessAction.EVALUATE, date(2024, 3, 1) + timedelta(days=1))

        assert list(AccessControlLog.objects.filter_for_oversight(student_id=student_id)) == [newer, older]
