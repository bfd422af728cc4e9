# access/admin.py

from django.contrib import admin
from .models import AccessControlLog


@admin.register(AccessControlLog)
class AccessControlLogAdmin(admin.ModelAdmin):
    list_display = [
        'created_at', 'action_type', 'student_id', 'reason',
        'actor_id', 'ip_address'
    ]
    list_filter = ['action_type', 'created_at']
    search_fields = ['student_id', 'reason', 'actor_id', 'notes']
    date_hierarchy = 'created_at'
    readonly_fields = [
        'id', 'student_id', 'action_type', 'reason', 'payment_approval_id',
        'semester_registration_id', 'actor_id', 'notes', 'created_at',
        'ip_address', 'user_agent', 'request_path'
    ]

    fieldsets = (
        ('What Happened', {
            'fields': ('student_id', 'action_type', 'reason', 'notes')
        }),
        ('Records Involved', {
            'fields': ('payment_approval_id', 'semester_registration_id')
        }),
        ('Who, When & Where', {
            'fields': ('actor_id', 'created_at', 'ip_address', 'request_path', 'user_agent')
        }),
    )

    # Append-only trail
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
