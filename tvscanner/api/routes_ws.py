"""
PURPOSE: WebSocket endpoint for real-time dashboard updates in TV Scanner.

Clients connected to /ws/live receive:
- alertsUpdate: the full consolidated alert table after every accepted alert
- pivotUpdate:  the full pivot snapshot array after every pivot tick
- priceUpdate:  live price, day/52-week midpoints and intraday MA20s for the
                alert-table tickers, every price feed tick

The current alert table and latest pivot snapshots are sent on connect so a
freshly opened dashboard does not wait for the next event.
"""

import json
from datetime import datetime, timezone
from typing import Set

from fastapi import APIRouter, WebSocket, WebSocketDisconnect

from tvscanner.config.constants import EventType
from tvscanner.events.bus import EventBus
from tvscanner.events.types import EventPayload
from tvscanner.utils.logger import get_logger

logger = get_logger(__name__)
router = APIRouter(prefix="/ws", tags=["websocket"])


class ConnectionManager:
    """
    PURPOSE: Track connected dashboard sockets and fan events out to them.

    Attributes:
        _clients: Currently connected WebSocket clients.
    """

    def __init__(self) -> None:
        self._clients: Set[WebSocket] = set()

    def add(self, websocket: WebSocket) -> None:
        self._clients.add(websocket)

    def discard(self, websocket: WebSocket) -> None:
        self._clients.discard(websocket)

    def __len__(self) -> int:
        return len(self._clients)

    async def broadcast_event(self, event: EventPayload) -> None:
        """
        PURPOSE: Send an EventBus event to every connected client.

        Clients whose send fails are dropped.

        CALLED BY: EventBus handlers registered in setup_ws_event_handlers()
        """
        message = event.to_message()
        disconnected = []

        for client in list(self._clients):
            try:
                await client.send_json(message)
            except Exception as e:
                logger.warning(
                    "websocket_send_failed",
                    error=str(e),
                    client_count=len(self._clients),
                )
                disconnected.append(client)

        for client in disconnected:
            self._clients.discard(client)


async def setup_ws_event_handlers(event_bus: EventBus, manager: ConnectionManager) -> None:
    """
    PURPOSE: Subscribe the WebSocket fan-out to dashboard events.

    CALLED BY: main.on_startup()
    """
    event_bus.on(EventType.ALERTS_UPDATE.value, manager.broadcast_event)
    event_bus.on(EventType.PIVOT_UPDATE.value, manager.broadcast_event)
    event_bus.on(EventType.PRICE_UPDATE.value, manager.broadcast_event)


# ════════════════════════════════════════════════════════════════
# WebSocket Endpoint
# ════════════════════════════════════════════════════════════════


@router.websocket("/live")
async def websocket_live_updates(websocket: WebSocket) -> None:
    """
    PURPOSE: Stream alertsUpdate / pivotUpdate / priceUpdate events to a dashboard client.

    Behavior:
        1. Accept the connection and register the client
        2. Send the current alert table and latest pivot snapshots
        3. Answer {"type": "ping"} with {"type": "pong"}
        4. Remove the client on disconnect
    """
    app_state = websocket.app.state
    manager: ConnectionManager = app_state.ws_manager

    await websocket.accept()
    manager.add(websocket)
    client_id = id(websocket)
    logger.info("websocket_client_connected", client_id=client_id, total_clients=len(manager))

    try:
        await websocket.send_json({
            "event": EventType.ALERTS_UPDATE.value,
            "data": app_state.processor.store.snapshot(),
        })
        await websocket.send_json({
            "event": EventType.PIVOT_UPDATE.value,
            "data": app_state.pivot_engine.latest(),
        })

        while True:
            data = await websocket.receive_text()
            if not data:
                continue

            try:
                message = json.loads(data)
            except json.JSONDecodeError as e:
                logger.warning("websocket_json_decode_failed", client_id=client_id, error=str(e))
                await websocket.send_json({"type": "error", "message": "Invalid JSON format"})
                continue

            message_type = message.get("type", "unknown") if isinstance(message, dict) else "unknown"
            if message_type == "ping":
                await websocket.send_json({
                    "type": "pong",
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                })
            else:
                logger.debug(
                    "websocket_unknown_message_type",
                    client_id=client_id,
                    message_type=message_type,
                )

    except WebSocketDisconnect:
        logger.info("websocket_client_disconnected", client_id=client_id)

    except Exception as e:
        logger.error("websocket_error", client_id=client_id, error=str(e))

    finally:
        manager.discard(websocket)
        logger.info("websocket_client_cleanup", client_id=client_id, remaining_clients=len(manager))
