"""
Tests for the gateway middleware.
"""

import json
from types import SimpleNamespace
from unittest.mock import patch

import pytest
from django.core.exceptions import ImproperlyConfigured
from django.http import HttpResponse

from access.middleware import AccessControlMiddleware
from access.models import AccessControlLog
from access.verdicts import ModuleRule, DENIAL_FINANCIAL_PAYMENT_REQUIRED, DENIAL_PAYMENT_NOT_APPROVED
from core.exceptions import DatastoreError


pytestmark = pytest.mark.django_db


def student_user(student_id):
    return SimpleNamespace(pk=5, is_authenticated=True, student_id=student_id)


@pytest.fixture
def middleware():
    return AccessControlMiddleware(lambda request: HttpResponse('protected content'))


class TestAccessControlMiddleware:

    def test_denied_student_gets_403(self, middleware, rf, student_id):
        request = rf.get('/portal/results/')
        request.user = student_user(student_id)

        response = middleware(request)

        assert response.status_code == 403
        body = json.loads(response.content)
        assert body['error'] == DENIAL_PAYMENT_NOT_APPROVED
        assert body['verdict']['has_access'] is False
        assert AccessControlLog.objects.count() == 1

    def test_approved_student_passes_with_verdict(self, middleware, rf, student_id, valid_approval):
        request = rf.get('/results/semester-1/')
        request.user = student_user(student_id)

        response = middleware(request)

        assert response.status_code == 200
        assert response.content == b'protected content'
        assert request.access_verdict.has_access

    def test_unprotected_path_is_not_evaluated(self, middleware, rf, student_id):
        request = rf.get('/library/')
        request.user = student_user(student_id)

        assert middleware(request).status_code == 200
        assert not AccessControlLog.objects.exists()

    def test_user_without_student_id_passes(self, middleware, rf):
        request = rf.get('/portal/')
        request.user = SimpleNamespace(pk=1, is_authenticated=True)

        assert middleware(request).status_code == 200
        assert not AccessControlLog.objects.exists()

    def test_anonymous_user_passes(self, middleware, rf, student_id):
        request = rf.get('/portal/')
        request.user = SimpleNamespace(is_authenticated=False, student_id=student_id)

        assert middleware(request).status_code == 200

    def test_datastore_failure_returns_503(self, middleware, rf, student_id):
        request = rf.get('/portal/')
        request.user = student_user(student_id)

        with patch('access.evaluator.FinancialBalanceReader.read', side_effect=DatastoreError("down")):
            response = middleware(request)

        assert response.status_code == 503

    def test_protected_prefixes_come_from_settings(self, middleware, rf, student_id, settings):
        settings.ACCESS_CONTROL = {'PROTECTED_PATH_PREFIXES': ['/exams/']}
        request = rf.get('/portal/')
        request.user = student_user(student_id)

        assert middleware(request).status_code == 200

        request = rf.get('/exams/timetable/')
        request.user = student_user(student_id)
        assert middleware(request).status_code == 403

    def test_outstanding_balance_passes(self, middleware, rf, student_id, make_financial_record):
        make_financial_record(student_id, '120000.00')
        request = rf.get('/portal/')
        request.user = student_user(student_id)

        response = middleware(request)

        assert response.status_code == 200
        assert not request.access_verdict.payment_approved


class TestModuleRules:

    def test_outstanding_balance_cannot_open_financial_module(
        self, middleware, rf, student_id, make_financial_record
    ):
        make_financial_record(student_id, '120000.00')
        request = rf.get('/portal/financial/statements/')
        request.user = student_user(student_id)

        response = middleware(request)

        assert response.status_code == 403
        body = json.loads(response.content)
        assert body['error'] == DENIAL_FINANCIAL_PAYMENT_REQUIRED
        assert body['module_rule'] == 'payment_approved'
        assert body['verdict']['has_access'] is True

    def test_outstanding_balance_opens_results_module(
        self, middleware, rf, student_id, make_financial_record
    ):
        make_financial_record(student_id, '120000.00')
        request = rf.get('/portal/results/semester-1/')
        request.user = student_user(student_id)

        assert middleware(request).status_code == 200

    def test_approved_payment_opens_financial_module(self, middleware, rf, student_id, valid_approval):
        request = rf.get('/portal/financial/statements/')
        request.user = student_user(student_id)

        assert middleware(request).status_code == 200

    def test_module_prefix_is_protected_on_its_own(self, middleware, rf, student_id, settings):
        settings.ACCESS_CONTROL = {
            'PROTECTED_PATH_PREFIXES': [],
            'MODULE_RULES': {'/fees/': 'payment_approved'},
        }
        request = rf.get('/fees/balance/')
        request.user = student_user(student_id)

        assert middleware(request).status_code == 403

    def test_longest_prefix_wins(self, settings):
        settings.ACCESS_CONTROL = {
            'PROTECTED_PATH_PREFIXES': ['/portal/'],
            'MODULE_RULES': {'/portal/financial/': 'payment_approved'},
        }

        assert AccessControlMiddleware.rule_for_path('/portal/financial/x/') == ModuleRule.PAYMENT_APPROVED
        assert AccessControlMiddleware.rule_for_path('/portal/timetable/') == ModuleRule.ACCESS
        assert AccessControlMiddleware.rule_for_path('/library/') is None

    def test_unknown_rule_is_a_configuration_error(self, settings):
        settings.ACCESS_CONTROL = {'MODULE_RULES': {'/portal/library/': 'librarian'}}

        with pytest.raises(ImproperlyConfigured):
            AccessControlMiddleware.rule_for_path('/portal/library/')
