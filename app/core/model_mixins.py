"""
Model mixins providing reusable functionality for Django models.

Available Mixins:
    UUIDPrimaryKeyMixin: Use UUID as primary key

Usage:
    from core.models import BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class NotificationRecord(UUIDPrimaryKeyMixin, BaseModel):
        horizon_days = models.PositiveSmallIntegerField()

Note:
    Mixins are abstract and don't create database tables.
"""

from __future__ import annotations

import uuid

from django.db import models


class UUIDPrimaryKeyMixin(models.Model):
    """
    Use UUID as primary key instead of auto-increment integer.

    Fields:
        id: UUIDField as primary key (auto-generated)

    Note:
        Used for append-only log tables whose rows are never addressed
        by an externally meaningful integer id.
    """

    id = models.UUIDField(
        primary_key=True,
        default=uuid.uuid4,
        editable=False,
        help_text="Unique identifier for this record",
    )

    class Meta:
        abstract = True
