"""
Event payload types for the TV Scanner event bus.

Defines EventPayload, the envelope for every broadcast (alertsUpdate, pivotUpdate).
"""

from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

from pydantic import BaseModel, Field


class EventPayload(BaseModel):
    """
    Standardized event payload for all broadcasts.

    PURPOSE: Ensure consistent structure for all events published to the event bus.
    USED BY: EventBus publish, WebSocket fan-out.

    Attributes:
        event_type: Event name (alertsUpdate, pivotUpdate).
        source: Component that originated the event.
        data: Event payload, the full row / snapshot array for dashboard events.
        timestamp: When the event was created (UTC).
        correlation_id: Unique ID for tracing the event through the logs.
    """

    event_type: str = Field(
        ...,
        description="Type identifier for the event"
    )
    source: str = Field(
        ...,
        description="Component that generated this event"
    )
    data: Any = Field(
        default=None,
        description="Event-specific payload data"
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when event was created"
    )
    correlation_id: str = Field(
        default_factory=lambda: str(uuid4()),
        description="Unique correlation ID for tracing"
    )

    def to_message(self) -> dict:
        """Return the wire message sent to dashboard clients."""
        return {"event": self.event_type, "data": self.data}
