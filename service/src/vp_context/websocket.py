"""WebSocket bridge for pages attached to the message bus."""

import asyncio
import json
import logging
from typing import Any, Dict

from fastapi import WebSocket, status
from pydantic import TypeAdapter, ValidationError

from .bus import BACKGROUND, PANEL, MessageBus, page_address
from .exceptions import ConnectionLimitError, InvalidOriginError
from .models.messages import BusMessage, RectSelected

logger = logging.getLogger(__name__)

_message_adapter: TypeAdapter = TypeAdapter(BusMessage)


class PageBridgeManager:
    """
    Attaches remote page affordances to the bus over WebSocket.

    Features:
    - Origin validation (chrome-extension:// only)
    - Connection limits
    - One bus route per connected tab
    - Debug message logging
    """

    def __init__(self, bus: MessageBus, max_connections: int = 100):
        self.bus = bus
        self.max_connections = max_connections
        self.active_connections: Dict[int, WebSocket] = {}

    async def connect(self, tab_id: int, websocket: WebSocket) -> None:
        """
        Accept a page connection and route ``page:<tab_id>`` to it.

        Raises:
            InvalidOriginError: If origin is not chrome-extension://
            ConnectionLimitError: If max connections reached
        """
        origin = websocket.headers.get("origin", "")
        if not origin.startswith("chrome-extension://"):
            logger.warning(f"Rejected connection from invalid origin: {origin}")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
            raise InvalidOriginError(origin)

        if len(self.active_connections) >= self.max_connections:
            logger.warning("Connection limit reached")
            await websocket.close(code=status.WS_1008_POLICY_VIOLATION, reason="Server at capacity")
            raise ConnectionLimitError(self.max_connections)

        await websocket.accept()
        self.active_connections[tab_id] = websocket

        async def deliver(payload: str) -> None:
            await websocket.send_text(payload)

        self.bus.register(page_address(tab_id), deliver)
        logger.info(f"Page connected: tab {tab_id} (total: {len(self.active_connections)})")

    def disconnect(self, tab_id: int) -> None:
        self.active_connections.pop(tab_id, None)
        self.bus.unregister(page_address(tab_id))
        logger.info(f"Page disconnected: tab {tab_id}")

    def get_connection_count(self) -> int:
        return len(self.active_connections)

    async def route_incoming(self, tab_id: int, data: Dict[str, Any]) -> bool:
        """
        Forward one message received from a page onto the bus.

        Region selections go to the panel, everything else to the
        background coordinator.
        """
        logger.debug(f"[WS IN] tab {tab_id} | {data.get('type', 'unknown')} | {json.dumps(data)[:200]}")
        try:
            message = _message_adapter.validate_python(data)
        except ValidationError as e:
            logger.warning(f"Dropping unknown message from tab {tab_id}: {e.errors()[:1]}")
            return False

        target = PANEL if isinstance(message, RectSelected) else BACKGROUND
        return await self.bus.send(page_address(tab_id), target, message, tab_id=tab_id)

    async def serve(self, tab_id: int, websocket: WebSocket, receive_timeout: float) -> None:
        """Receive loop for one connected page."""
        while True:
            try:
                data = await asyncio.wait_for(websocket.receive_json(), timeout=receive_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"[WS] tab {tab_id} | No message in {receive_timeout}s, closing")
                await websocket.close(code=1000, reason="Receive timeout")
                return

            if not isinstance(data, dict):
                logger.warning(f"Dropping non-object message from tab {tab_id}")
                continue
            await self.route_incoming(tab_id, data)
