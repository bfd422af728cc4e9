# fees/admin.py

from django.contrib import admin, messages

from core.exceptions import AccessControlError
from .models import PaymentApproval, FinancialRecord
from .services import PaymentApprovalService

AUDIT_FIELDS = [
    'id', 'created_at', 'updated_at', 'created_by_id', 'updated_by_id',
    'created_from_ip', 'updated_from_ip', 'change_reason'
]


@admin.register(PaymentApproval)
class PaymentApprovalAdmin(admin.ModelAdmin):
    list_display = [
        'student_id', 'amount_paid', 'payment_reference', 'status',
        'access_valid_from', 'access_valid_until', 'approval_date'
    ]
    list_filter = ['status', 'auto_expire', 'access_valid_until']
    search_fields = ['student_id', 'payment_reference', 'payment_id']
    # Status moves only through the review actions below
    readonly_fields = AUDIT_FIELDS + ['status', 'approved_by_id', 'approval_date']
    actions = ['approve_selected', 'reject_selected', 'revoke_selected']

    fieldsets = (
        ('Payment', {
            'fields': ('student_id', 'payment_id', 'amount_paid', 'payment_reference', 'payment_date')
        }),
        ('Access Window', {
            'fields': ('access_valid_from', 'access_valid_until', 'auto_expire')
        }),
        ('Review', {
            'fields': ('status', 'approved_by_id', 'approval_date', 'notes')
        }),
        ('Audit Trail', {
            'fields': AUDIT_FIELDS,
            'classes': ('collapse',)
        }),
    )

    def _apply(self, request, queryset, operation, label):
        done = 0
        for approval in queryset:
            try:
                operation(approval, request.user.pk)
                done += 1
            except AccessControlError as e:
                self.message_user(request, str(e), level=messages.WARNING)
        self.message_user(request, f"{done} payment approval(s) {label}.")

    @admin.action(description="Approve selected payments")
    def approve_selected(self, request, queryset):
        self._apply(request, queryset, PaymentApprovalService.approve, 'approved')

    @admin.action(description="Reject selected payments")
    def reject_selected(self, request, queryset):
        self._apply(request, queryset, PaymentApprovalService.reject, 'rejected')

    @admin.action(description="Revoke selected approvals")
    def revoke_selected(self, request, queryset):
        self._apply(request, queryset, PaymentApprovalService.revoke, 'revoked')


@admin.register(FinancialRecord)
class FinancialRecordAdmin(admin.ModelAdmin):
    list_display = ['student_id', 'academic_year', 'semester', 'total_amount', 'amount_paid', 'balance', 'payment_status']
    list_filter = ['academic_year', 'semester', 'payment_status']
    search_fields = ['student_id']
    readonly_fields = AUDIT_FIELDS
