"""
Directory app configuration.
"""

from django.apps import AppConfig


class DirectoryConfig(AppConfig):
    """Configuration for the directory application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "directory"
    verbose_name = "Directory"
