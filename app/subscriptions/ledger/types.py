"""
Data types for subscription ledger writes.

Usage:
    from subscriptions.ledger.types import RecordEventParams

    params = RecordEventParams(
        event_id="evt_123",
        kind=EventKind.RENEWED,
        payload=stripe_event,
        occurred_at=occurred_at,
    )
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


@dataclass
class RecordEventParams:
    """
    Parameters for recording one applied event.

    Required Attributes:
        event_id: Idempotency key (provider or synthetic id)
        kind: Canonical event kind

    Optional Attributes:
        payload: Raw envelope stored verbatim
        occurred_at: Provider timestamp
        observed_at: Application time (defaults to now)
    """

    event_id: str
    kind: str
    payload: dict[str, Any] = field(default_factory=dict)
    occurred_at: datetime | None = None
    observed_at: datetime | None = None

    def __post_init__(self) -> None:
        if not self.event_id:
            raise ValueError("event_id is required")
