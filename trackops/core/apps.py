from django.apps import AppConfig


class CoreConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'trackops.core'

    def ready(self):
        """Connect cache invalidation signals when app is ready"""
        from trackops.core.cache_signals import connect_dashboard_signals
        connect_dashboard_signals()
