# exams/apps.py
from django.apps import AppConfig


class ExamsConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "exams"
    verbose_name = "Contests & practice"

    def ready(self):
        # registers the sweeper and lifecycle @shared_task's with the worker
        import exams.tasks  # noqa: F401
