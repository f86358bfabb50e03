from django.apps import AppConfig


class RecruitingConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'recruiting'
    verbose_name = 'Recruiting'

    def ready(self):
        # Connect the dead-letter receiver that keeps upload trackers consistent
        from . import signals  # noqa: F401
