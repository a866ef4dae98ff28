from django.apps import AppConfig


class CatalogConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'backend.catalog'
    verbose_name = 'Catalog'

    def ready(self):
        """Register QR code settings checks when app is ready"""
        import backend.catalog.checks  # noqa: F401
