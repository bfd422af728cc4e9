# access/middleware.py

"""
Gateway middleware for protected student areas.

Requests under ACCESS_CONTROL['PROTECTED_PATH_PREFIXES'] or a prefix listed
in ACCESS_CONTROL['MODULE_RULES'], made by an authenticated user that
carries a student id, are evaluated before the view runs:

- module refused   -> 403 JSON with the denial reason
- datastore failed -> 503 JSON
- module allowed   -> request.access_verdict is set and the view runs

Academic modules follow the verdict's has_access. The financial module
needs an approved payment, so a student let in on an outstanding balance
still cannot open it. Everything else passes through untouched.
"""

from django.core.exceptions import ImproperlyConfigured
from django.http import JsonResponse
import logging

from core.exceptions import DatastoreError
from core.utils import get_access_setting

from .evaluator import AccessEvaluator
from .verdicts import ModuleRule

logger = logging.getLogger(__name__)


class AccessControlMiddleware:

    def __init__(self, get_response):
        self.get_response = get_response
        self.evaluator = AccessEvaluator()

    def __call__(self, request):
        request.access_verdict = None

        rule = self.rule_for_path(request.path)
        if rule is not None:
            student_id = self.get_student_id(request)
            if student_id:
                response = self.check_access(request, student_id, rule)
                if response is not None:
                    return response

        return self.get_response(request)

    # ==========================================================================
    # HELPERS
    # ==========================================================================

    @staticmethod
    def rule_for_path(path):
        """ModuleRule governing path, or None when the path is not protected"""
        candidates = {prefix: ModuleRule.ACCESS for prefix in get_access_setting('PROTECTED_PATH_PREFIXES')}
        for prefix, rule in get_access_setting('MODULE_RULES').items():
            try:
                candidates[prefix] = ModuleRule(rule)
            except ValueError:
                raise ImproperlyConfigured(
                    f"ACCESS_CONTROL['MODULE_RULES'][{prefix!r}] must be one of {ModuleRule.values}"
                )

        matches = [prefix for prefix in candidates if path.startswith(prefix)]
        if not matches:
            return None
        return candidates[max(matches, key=len)]

    @staticmethod
    def get_student_id(request):
        user = getattr(request, 'user', None)
        if user is None or not getattr(user, 'is_authenticated', False):
            return None
        return getattr(user, get_access_setting('STUDENT_ID_ATTRIBUTE'), None)

    def check_access(self, request, student_id, rule=ModuleRule.ACCESS):
        """Returns a refusal response, or None when the request may proceed"""
        try:
            verdict = self.evaluator.evaluate(student_id, actor_id=getattr(request.user, 'pk', None))
        except DatastoreError:
            logger.exception(f"Access check failed for student {student_id} on {request.path}")
            return JsonResponse(
                {'error': "Access could not be verified right now. Please try again."},
                status=503,
            )

        denial = verdict.denial_for(rule)
        if denial:
            logger.info(f"Blocked {request.path} ({rule}) for student {student_id}: {verdict.reason_code}")
            return JsonResponse(
                {'error': denial, 'module_rule': str(rule), 'verdict': verdict.as_dict()},
                status=403,
            )

        request.access_verdict = verdict
        return None
