# access/views.py

"""
JSON endpoints for the access engine.

Status codes:
    200/201  decision made or registration created
    400      malformed input (ValidationError)
    403      registration denied by the payment policy, or the caller lacks
             access.register_student / access.view_accesscontrollog
    409      student already registered for the period
    503      datastore unavailable (DatastoreError)
"""

from django.contrib.auth.decorators import login_required, permission_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_http_methods, require_POST
import logging

from core.exceptions import DatastoreError
from core.utils import coerce_uuid, coerce_date
from utils.utils import paginate_queryset, parse_filters, parse_json_body, validation_error_payload

from .evaluator import AccessEvaluator
from .models import AccessControlLog, AccessAction
from .registration import RegistrationWorkflow
from .verdicts import RegistrationOutcome

logger = logging.getLogger(__name__)

OUTCOME_STATUS = {
    RegistrationOutcome.SUCCESS: 201,
    RegistrationOutcome.POLICY_DENIED: 403,
    RegistrationOutcome.CONFLICT: 409,
}


def _datastore_unavailable(error):
    logger.error(f"Datastore unavailable: {error}")
    return JsonResponse(
        {'success': False, 'error': "The access service is temporarily unavailable."},
        status=503,
    )


# =============================================================================
# ACCESS VERDICT
# =============================================================================

@login_required
@require_http_methods(["GET"])
def student_verdict(request, student_id):
    """
    Evaluate a student's access.
    Optional ?on=YYYY-MM-DD evaluates as of another date.
    """
    try:
        on_date = coerce_date(request.GET['on'], 'on') if request.GET.get('on') else None
        verdict = AccessEvaluator().evaluate(student_id, on_date=on_date, actor_id=request.user.pk)
    except ValidationError as e:
        return JsonResponse(validation_error_payload(e), status=400)
    except DatastoreError as e:
        return _datastore_unavailable(e)

    return JsonResponse({'success': True, 'verdict': verdict.as_dict()})


# =============================================================================
# REGISTRATION
# =============================================================================

@login_required
@permission_required('access.register_student', raise_exception=True)
@require_POST
def register_student(request):
    """
    Register a student for a semester period.

    Body: {"student_id": "...", "semester_period_id": "...", "notes": "..."}
    """
    try:
        data = parse_json_body(request)
        result = RegistrationWorkflow().register_student(
            student_id=data.get('student_id'),
            semester_period_id=data.get('semester_period_id'),
            registered_by=request.user.pk,
            notes=data.get('notes', ''),
        )
    except ValidationError as e:
        return JsonResponse(validation_error_payload(e), status=400)
    except DatastoreError as e:
        return _datastore_unavailable(e)

    return JsonResponse(result.as_dict(), status=OUTCOME_STATUS[result.outcome])


# =============================================================================
# AUDIT LOG QUERY
# =============================================================================

@login_required
@permission_required('access.view_accesscontrollog', raise_exception=True)
@require_http_methods(["GET"])
def access_logs(request):
    """
    Filter the audit trail by student, date range and action type.
    Newest first, 50 per page.
    """
    filters = parse_filters(request, ['student_id', 'start_date', 'end_date', 'action_type', 'page'])

    try:
        student_id = coerce_uuid(filters['student_id'], 'student_id') if filters['student_id'] else None
        start_date = coerce_date(filters['start_date'], 'start_date') if filters['start_date'] else None
        end_date = coerce_date(filters['end_date'], 'end_date') if filters['end_date'] else None
        action_type = filters['action_type']
        if action_type and action_type not in AccessAction.values:
            raise ValidationError({'action_type': f"Unknown action type '{action_type}'"})
    except ValidationError as e:
        return JsonResponse(validation_error_payload(e), status=400)

    logs = AccessControlLog.objects.filter_for_oversight(
        student_id=student_id,
        start_date=start_date,
        end_date=end_date,
        action_type=action_type,
    )

    logs_page, paginator = paginate_queryset(request, logs, per_page=50)

    log_list = [{
        'id': str(log.id),
        'student_id': str(log.student_id),
        'action_type': log.action_type,
        'action_display': log.get_action_type_display(),
        'reason': log.reason,
        'payment_approval_id': str(log.payment_approval_id) if log.payment_approval_id else None,
        'semester_registration_id': str(log.semester_registration_id) if log.semester_registration_id else None,
        'actor_id': log.actor_id,
        'notes': log.notes,
        'created_at': log.created_at.isoformat(),
        'ip_address': log.ip_address,
        'user_agent': log.user_agent,
        'request_path': log.request_path,
    } for log in logs_page]

    return JsonResponse({
        'logs': log_list,
        'total_count': paginator.count,
        'page': logs_page.number,
        'num_pages': paginator.num_pages,
        'has_next': logs_page.has_next(),
        'has_previous': logs_page.has_previous(),
    })
