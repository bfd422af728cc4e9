# academics/admin.py

from django.contrib import admin, messages

from core.exceptions import AccessControlError
from .models import SemesterPeriod, StudentSemesterRegistration
from .services import SemesterPeriodService, RegistrationReviewService

AUDIT_FIELDS = [
    'id', 'created_at', 'updated_at', 'created_by_id', 'updated_by_id',
    'created_from_ip', 'updated_from_ip', 'change_reason'
]


@admin.register(SemesterPeriod)
class SemesterPeriodAdmin(admin.ModelAdmin):
    list_display = [
        'name', 'academic_year', 'semester_number', 'start_date', 'end_date',
        'is_active', 'is_registration_open'
    ]
    list_filter = ['academic_year', 'semester_number', 'is_active', 'is_registration_open']
    search_fields = ['name', 'academic_year']
    readonly_fields = AUDIT_FIELDS + ['is_active']
    actions = ['activate_period']

    @admin.action(description="Make the selected period the active one")
    def activate_period(self, request, queryset):
        if queryset.count() != 1:
            self.message_user(request, "Select exactly one period to activate.", level=messages.ERROR)
            return
        period = SemesterPeriodService.activate(queryset.first())
        self.message_user(request, f"{period.name} is now the active period.")


@admin.register(StudentSemesterRegistration)
class StudentSemesterRegistrationAdmin(admin.ModelAdmin):
    list_display = ['student_id', 'semester_period', 'status', 'registration_date', 'approval_date']
    list_filter = ['status', 'semester_period']
    search_fields = ['student_id']
    # Created only by the registration workflow
    readonly_fields = AUDIT_FIELDS + [
        'student_id', 'semester_period', 'registration_date', 'registered_by_id',
        'status', 'approved_by_id', 'approval_date', 'payment_approval'
    ]
    actions = ['approve_selected', 'reject_selected', 'cancel_selected']

    def has_add_permission(self, request):
        return False

    def _apply(self, request, queryset, operation, label):
        done = 0
        for registration in queryset:
            try:
                operation(registration, request.user.pk)
                done += 1
            except AccessControlError as e:
                self.message_user(request, str(e), level=messages.WARNING)
        self.message_user(request, f"{done} registration(s) {label}.")

    @admin.action(description="Approve selected registrations")
    def approve_selected(self, request, queryset):
        self._apply(request, queryset, RegistrationReviewService.approve, 'approved')

    @admin.action(description="Reject selected registrations")
    def reject_selected(self, request, queryset):
        self._apply(request, queryset, RegistrationReviewService.reject, 'rejected')

    @admin.action(description="Cancel selected registrations")
    def cancel_selected(self, request, queryset):
        self._apply(request, queryset, RegistrationReviewService.cancel, 'cancelled')
