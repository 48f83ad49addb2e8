import uuid

import django.db.models.deletion
import django.utils.timezone
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("directory", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="Subscription",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "business",
                    models.OneToOneField(
                        help_text="Business this subscription belongs to (id is the subscription reference)",
                        on_delete=django.db.models.deletion.PROTECT,
                        primary_key=True,
                        related_name="subscription",
                        serialize=False,
                        to="directory.business",
                    ),
                ),
                (
                    "provider_subscription_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Subscription ID (sub_xxx); cleared on expiry",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "customer_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        help_text="Stripe Customer ID (cus_xxx)",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("none", "None"),
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        default="none",
                        help_text="Current subscription status (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "tier",
                    models.CharField(
                        choices=[("free", "Free"), ("premium", "Premium")],
                        default="free",
                        help_text="Listing tier; premium while the subscription holds benefits",
                        max_length=16,
                    ),
                ),
                (
                    "renewal_deadline",
                    models.DateTimeField(
                        blank=True,
                        help_text="When premium lapses unless a renewal arrives",
                        null=True,
                    ),
                ),
                (
                    "cancelled_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the provider cancelled the subscription",
                        null=True,
                    ),
                ),
                (
                    "last_event_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Provider timestamp of the most recently applied event",
                        null=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Incremented on each save",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON metadata for extensibility",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription",
                "verbose_name_plural": "Subscriptions",
                "ordering": ["business_id"],
                "indexes": [
                    models.Index(
                        fields=["status", "renewal_deadline"],
                        name="sub_status_deadline_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("provider_subscription_id__isnull", False)),
                        fields=("provider_subscription_id",),
                        name="subscription_provider_id_unique",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(
                                ("status__in", ["none", "expired"]),
                                ("tier", "free"),
                            ),
                            models.Q(
                                ("status__in", ["active", "past_due", "cancelled"]),
                                ("tier", "premium"),
                            ),
                            _connector="OR",
                        ),
                        name="subscription_tier_matches_status",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            models.Q(("status", "expired"), _negated=True),
                            ("provider_subscription_id__isnull", True),
                            _connector="OR",
                        ),
                        name="subscription_expired_has_no_provider_id",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="SubscriptionEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "event_id",
                    models.CharField(
                        help_text="Provider event id or deterministic synthetic id (idempotency key)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("created", "Created"),
                            ("renewed", "Renewed"),
                            ("cancelled", "Cancelled"),
                            ("payment_failed", "Payment Failed"),
                            ("status_synced", "Status Synced"),
                            ("expired", "Expired"),
                        ],
                        db_index=True,
                        help_text="Canonical event kind",
                        max_length=32,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Raw event envelope as received",
                    ),
                ),
                (
                    "occurred_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the provider says the event happened",
                        null=True,
                    ),
                ),
                (
                    "observed_at",
                    models.DateTimeField(
                        default=django.utils.timezone.now,
                        help_text="When the event was applied to the ledger",
                    ),
                ),
                (
                    "status_after",
                    models.CharField(
                        choices=[
                            ("none", "None"),
                            ("active", "Active"),
                            ("past_due", "Past Due"),
                            ("cancelled", "Cancelled"),
                            ("expired", "Expired"),
                        ],
                        help_text="Subscription status after this event",
                        max_length=16,
                    ),
                ),
                (
                    "tier_after",
                    models.CharField(
                        choices=[("free", "Free"), ("premium", "Premium")],
                        help_text="Listing tier after this event",
                        max_length=16,
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        help_text="Subscription this event was applied to",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="events",
                        to="subscriptions.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Subscription Event",
                "verbose_name_plural": "Subscription Events",
                "ordering": ["observed_at", "created_at"],
                "indexes": [
                    models.Index(
                        fields=["subscription", "observed_at"],
                        name="sub_event_observed_idx",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="NotificationRecord",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier for this record",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "kind",
                    models.CharField(
                        choices=[
                            ("renewal_reminder", "Renewal Reminder"),
                            ("payment_failure", "Payment Failure"),
                            ("subscription_cancelled", "Subscription Cancelled"),
                        ],
                        default="renewal_reminder",
                        help_text="Kind of notification sent",
                        max_length=32,
                    ),
                ),
                (
                    "horizon_days",
                    models.PositiveSmallIntegerField(
                        help_text="Days until expiry announced by the reminder",
                    ),
                ),
                (
                    "calendar_date",
                    models.DateField(
                        help_text="Local calendar date the reminder was sent on",
                    ),
                ),
                (
                    "recipient",
                    models.EmailField(
                        help_text="Address the reminder was sent to",
                        max_length=254,
                    ),
                ),
                (
                    "subscription",
                    models.ForeignKey(
                        help_text="Subscription the reminder was about",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="notification_records",
                        to="subscriptions.subscription",
                    ),
                ),
            ],
            options={
                "verbose_name": "Notification Record",
                "verbose_name_plural": "Notification Records",
                "ordering": ["-calendar_date", "horizon_days"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("subscription", "horizon_days", "calendar_date"),
                        name="notification_record_once_per_day",
                    )
                ],
            },
        ),
    ]
