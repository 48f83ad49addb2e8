"""
Django admin configuration for directory models.
"""

from django.contrib import admin

from directory.models import Business


@admin.register(Business)
class BusinessAdmin(admin.ModelAdmin):
    """Admin for Business listings."""

    list_display = ["id", "name", "owner", "contact_email", "created_at"]
    search_fields = ["name", "owner__email", "contact_email"]
    raw_id_fields = ["owner"]
    readonly_fields = ["created_at", "updated_at"]
