from django.apps import AppConfig


class EvvConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'evv'

    def ready(self):
        from . import signals  # noqa: F401
