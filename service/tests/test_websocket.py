"""Tests for the page bridge WebSocket manager."""

import json
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi import WebSocket, WebSocketDisconnect

from vp_context.bus import BACKGROUND, PANEL, MessageBus, page_address
from vp_context.exceptions import ConnectionLimitError, InvalidOriginError
from vp_context.models.messages import ShowTriggerAffordance
from vp_context.websocket import PageBridgeManager


def mock_websocket(origin="chrome-extension://test"):
    websocket = Mock(spec=WebSocket)
    websocket.headers = {"origin": origin}
    websocket.accept = AsyncMock()
    websocket.close = AsyncMock()
    websocket.send_text = AsyncMock()
    websocket.receive_json = AsyncMock()
    return websocket


def capture_route(bus, address):
    received = []

    async def deliver(payload):
        received.append(json.loads(payload))

    bus.register(address, deliver)
    return received


@pytest.mark.asyncio
async def test_rejects_invalid_origin():
    manager = PageBridgeManager(MessageBus())
    websocket = mock_websocket(origin="https://evil.example")

    with pytest.raises(InvalidOriginError):
        await manager.connect(1, websocket)

    websocket.close.assert_awaited_once()
    websocket.accept.assert_not_called()


@pytest.mark.asyncio
async def test_connection_limit():
    manager = PageBridgeManager(MessageBus(), max_connections=1)
    await manager.connect(1, mock_websocket())

    with pytest.raises(ConnectionLimitError):
        await manager.connect(2, mock_websocket())


@pytest.mark.asyncio
async def test_bus_messages_reach_the_page():
    bus = MessageBus()
    manager = PageBridgeManager(bus)
    websocket = mock_websocket()
    await manager.connect(5, websocket)

    assert await bus.send(BACKGROUND, page_address(5), ShowTriggerAffordance(), tab_id=5)

    payload = json.loads(websocket.send_text.await_args.args[0])
    assert payload["message"]["type"] == "show_trigger_affordance"
    assert manager.get_connection_count() == 1

    manager.disconnect(5)
    assert not bus.has_route(page_address(5))
    assert manager.get_connection_count() == 0


@pytest.mark.asyncio
async def test_incoming_messages_are_routed():
    """Region selections go to the panel, everything else to the background."""
    bus = MessageBus()
    panel = capture_route(bus, PANEL)
    background = capture_route(bus, BACKGROUND)
    manager = PageBridgeManager(bus)

    await manager.route_incoming(5, {
        "type": "rect_selected",
        "rect": {"x": 1, "y": 2, "w": 30, "h": 40},
        "scrollX": 0,
        "scrollY": 120,
        "devicePixelRatio": 2,
    })
    await manager.route_incoming(5, {"type": "open_panel_with_context", "context": "hi"})

    assert panel[0]["source"] == "page:5"
    assert panel[0]["message"]["scrollY"] == 120
    assert background[0]["message"] == {"type": "open_panel_with_context", "context": "hi"}
    assert background[0]["tab_id"] == 5


@pytest.mark.asyncio
async def test_unknown_incoming_message_is_dropped():
    bus = MessageBus()
    background = capture_route(bus, BACKGROUND)

    assert await PageBridgeManager(bus).route_incoming(5, {"type": "ping"}) is False
    assert background == []


@pytest.mark.asyncio
async def test_serve_until_disconnect():
    bus = MessageBus()
    background = capture_route(bus, BACKGROUND)
    manager = PageBridgeManager(bus)
    websocket = mock_websocket()
    websocket.receive_json.side_effect = [
        {"type": "open_panel"},
        ["not", "an", "object"],
        WebSocketDisconnect(code=1000),
    ]
    await manager.connect(5, websocket)

    with pytest.raises(WebSocketDisconnect):
        await manager.serve(5, websocket, receive_timeout=1)

    assert [m["message"]["type"] for m in background] == ["open_panel"]
