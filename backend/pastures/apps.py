from django.apps import AppConfig


class PasturesConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'pastures'
    verbose_name = 'Pasture Management'

    def ready(self):
        """Import signals when app is ready"""
        import pastures.signals
