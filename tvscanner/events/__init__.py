"""
Event bus module for TV Scanner.

Exports EventBus, EventPayload, and the singleton accessors.
"""

from tvscanner.events.types import EventPayload
from tvscanner.events.bus import EventBus, get_event_bus, set_event_bus

__all__ = [
    "EventBus",
    "EventPayload",
    "get_event_bus",
    "set_event_bus",
]
