"""
Django app configuration for toolkit.
"""

from django.apps import AppConfig


class ToolkitConfig(AppConfig):
    """Configuration for the toolkit application (no models, no signals)."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "toolkit"
    verbose_name = "Toolkit"
