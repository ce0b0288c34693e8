"""
Event bus for TV Scanner broadcasts.

Local handlers (the WebSocket fan-out) are always invoked. When REDIS_URL is
configured every event is also mirrored to a Redis pub/sub channel so other
processes can follow the dashboard feed.
"""

from typing import Any, Awaitable, Callable, Optional

import redis.asyncio as redis

from tvscanner.events.types import EventPayload
from tvscanner.utils.logger import get_logger

Handler = Callable[[EventPayload], Awaitable[None]]


class EventBus:
    """
    In-process event bus with optional Redis mirror.

    PURPOSE: Decouple the alert store and pivot engine from the transport that
    delivers their updates to subscribers.

    CALLED BY: AlertStore (alertsUpdate), PivotEngine (pivotUpdate).

    Attributes:
        CHANNEL: Redis channel name for mirrored events.
        _redis: Async Redis client instance, None when not mirrored.
        _redis_url: Redis connection URL ("" disables mirroring).
        _handlers: Registry of local event handlers by event type.
    """

    CHANNEL: str = "tvscanner:events"

    def __init__(self, redis_url: str = "") -> None:
        self._redis_url: str = redis_url
        self._redis: Optional[redis.Redis] = None
        self._logger = get_logger("events.bus")
        self._handlers: dict[str, list[Handler]] = {}

    async def connect(self) -> None:
        """
        Establish the Redis mirror connection, if configured.

        A failed connection is logged and the bus keeps working locally.
        """
        if not self._redis_url:
            self._logger.info("event_bus_local_only")
            return
        try:
            self._redis = redis.from_url(self._redis_url, decode_responses=True)
            await self._redis.ping()
            self._logger.info("redis_connected", redis_url=self._redis_url)
        except Exception as e:
            self._logger.warning("redis_connection_failed", error=str(e))
            self._redis = None

    async def disconnect(self) -> None:
        """Close the Redis connection if one is open."""
        if self._redis:
            try:
                await self._redis.aclose()
                self._logger.info("redis_disconnected")
            except Exception as e:
                self._logger.error("redis_disconnection_failed", error=str(e))
            finally:
                self._redis = None

    async def publish(self, event_type: str, data: Any, source: str = "unknown") -> EventPayload:
        """
        Publish an event to local handlers and the Redis mirror.

        Handler and Redis failures are logged and never propagate to the
        publisher.

        Args:
            event_type: Type of event being published.
            data: Event payload.
            source: Component originating the event.

        Returns:
            EventPayload: The envelope that was delivered.
        """
        payload = EventPayload(event_type=event_type, source=source, data=data)

        if self._redis:
            try:
                await self._redis.publish(self.CHANNEL, payload.model_dump_json())
            except Exception as e:
                self._logger.error("redis_publish_failed", event_type=event_type, error=str(e))

        for handler in list(self._handlers.get(event_type, [])):
            try:
                await handler(payload)
            except Exception as e:
                self._logger.error(
                    "handler_error",
                    event_type=event_type,
                    error=str(e),
                    correlation_id=payload.correlation_id,
                )

        self._logger.debug(
            "event_published",
            event_type=event_type,
            source=source,
            correlation_id=payload.correlation_id,
        )
        return payload

    def on(self, event_type: str, handler: Handler) -> None:
        """
        Register a handler for an event type.

        Args:
            event_type: Event type to subscribe to.
            handler: Async callable(EventPayload) -> None.
        """
        self._handlers.setdefault(event_type, []).append(handler)
        self._logger.info("handler_registered", event_type=event_type)

    def off(self, event_type: str, handler: Handler) -> None:
        """Remove a previously registered handler; unknown handlers are ignored."""
        handlers = self._handlers.get(event_type, [])
        if handler in handlers:
            handlers.remove(handler)

    def handler_count(self, event_type: str) -> int:
        """Return the number of local handlers registered for event_type."""
        return len(self._handlers.get(event_type, []))


# Global event bus singleton
_bus: Optional[EventBus] = None


def set_event_bus(bus: Optional[EventBus]) -> None:
    """
    Store an EventBus instance as the global singleton.

    CALLED BY: main.on_startup(), tests.
    """
    global _bus
    _bus = bus


def get_event_bus() -> EventBus:
    """
    Get or create the global EventBus singleton.

    Returns:
        EventBus: Global singleton instance built from settings.REDIS_URL.
    """
    global _bus
    if _bus is None:
        from tvscanner.config.settings import settings
        _bus = EventBus(settings.REDIS_URL)
    return _bus
