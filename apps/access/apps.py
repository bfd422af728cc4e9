# access/apps.py

from django.apps import AppConfig


class AccessConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "access"
    verbose_name = "Access Control"

    def ready(self):
        """
        Import signal handlers when the app is ready.
        This ensures the audit-failure alert receiver is connected.
        """
        import access.signals  # noqa: F401
