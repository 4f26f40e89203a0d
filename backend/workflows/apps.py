from django.apps import AppConfig


class WorkflowsConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'workflows'
    verbose_name = 'Attendance workflows'

    def ready(self):
        # register the attendance_marked receiver
        from . import signals  # noqa: F401
