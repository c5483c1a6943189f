from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.core'
    verbose_name = 'SkillBridge Progression & Marketplace Core'

    def ready(self):
        """Register inbound event handlers when app is ready."""
        from .events import handlers  # noqa: F401
