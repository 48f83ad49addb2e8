"""
Django admin configuration for subscription ledger models.

All three models are read-only in the admin: Subscription rows change only
through the ReconciliationEngine, SubscriptionEvent rows are immutable and
NotificationRecord rows are derived data.
"""

from django.contrib import admin

from subscriptions.models import NotificationRecord, Subscription, SubscriptionEvent


class ReadOnlyAdmin(admin.ModelAdmin):
    """Admin without add, change or delete permissions."""

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


class SubscriptionEventInline(admin.TabularInline):
    """Audit trail shown on the subscription page."""

    model = SubscriptionEvent
    fields = ["observed_at", "kind", "event_id", "status_after", "tier_after"]
    readonly_fields = fields
    ordering = ["observed_at", "created_at"]
    extra = 0
    can_delete = False
    show_change_link = True

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Subscription)
class SubscriptionAdmin(ReadOnlyAdmin):
    """Premium subscription state per business."""

    list_display = [
        "business",
        "status",
        "tier",
        "renewal_deadline",
        "provider_subscription_id",
        "last_event_at",
        "version",
    ]
    list_filter = ["status", "tier"]
    search_fields = [
        "business__name",
        "provider_subscription_id",
        "customer_id",
        "business__owner__email",
    ]
    ordering = ["renewal_deadline"]
    inlines = [SubscriptionEventInline]

    fieldsets = (
        (None, {"fields": ("business", "status", "tier", "renewal_deadline")}),
        ("Stripe", {"fields": ("provider_subscription_id", "customer_id")}),
        ("History", {"fields": ("cancelled_at", "last_event_at", "version", "metadata")}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(SubscriptionEvent)
class SubscriptionEventAdmin(ReadOnlyAdmin):
    """Append-only event log."""

    list_display = ["event_id", "subscription", "kind", "status_after", "tier_after", "observed_at"]
    list_filter = ["kind", "status_after"]
    search_fields = ["event_id", "subscription__business__name"]
    date_hierarchy = "observed_at"


@admin.register(NotificationRecord)
class NotificationRecordAdmin(ReadOnlyAdmin):
    """Sent renewal reminders."""

    list_display = ["subscription", "kind", "horizon_days", "calendar_date", "recipient"]
    list_filter = ["kind", "horizon_days"]
    search_fields = ["recipient", "subscription__business__name"]
    date_hierarchy = "calendar_date"
