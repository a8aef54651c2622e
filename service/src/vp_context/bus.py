"""In-process message bus between the page, background and panel endpoints."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Optional, Type

from pydantic import BaseModel, ValidationError

from .models.messages import BusMessage, Envelope

logger = logging.getLogger(__name__)

BACKGROUND = "background"
PANEL = "panel"


def page_address(tab_id: int) -> str:
    return f"page:{tab_id}"


Deliver = Callable[[str], Awaitable[None]]
Handler = Callable[[Envelope], Awaitable[None]]


class MessageBus:
    """
    Routes envelopes between registered addresses.

    Every message is serialized to JSON on send and parsed again on
    delivery, so endpoints never share objects. A delivery callable can
    be a local endpoint queue or a WebSocket bridged page.
    """

    def __init__(self):
        self._routes: Dict[str, Deliver] = {}

    def register(self, address: str, deliver: Deliver) -> None:
        if address in self._routes:
            logger.warning(f"Replacing bus route for {address}")
        self._routes[address] = deliver
        logger.debug(f"Bus route registered: {address}")

    def unregister(self, address: str) -> None:
        self._routes.pop(address, None)
        logger.debug(f"Bus route removed: {address}")

    def has_route(self, address: str) -> bool:
        return address in self._routes

    async def send(
        self,
        source: str,
        target: str,
        message: BusMessage,
        tab_id: Optional[int] = None,
    ) -> bool:
        """
        Serialize and deliver one message.

        Returns:
            True if a route existed and delivery succeeded, False otherwise
        """
        deliver = self._routes.get(target)
        if deliver is None:
            logger.warning(f"No route to {target} for {message.type}")
            return False

        envelope = Envelope(source=source, target=target, tab_id=tab_id, message=message)
        payload = envelope.model_dump_json(by_alias=True)
        logger.debug(f"[BUS OUT] {source} -> {target} | {message.type} | {payload[:200]}")

        try:
            await deliver(payload)
            return True
        except Exception as e:
            logger.error(f"Error delivering {message.type} to {target}: {e}")
            return False


class Endpoint:
    """
    One logical process attached to the bus.

    Incoming payloads are queued and handled in order by a background
    receiver task. Subclasses register one handler per message class
    they accept; unknown or malformed messages are logged and dropped.
    """

    def __init__(self, bus: MessageBus, address: str):
        self.bus = bus
        self.address = address
        self.handlers: Dict[Type[BaseModel], Handler] = {}
        self._queue: "asyncio.Queue[Optional[str]]" = asyncio.Queue()
        self._receiver_task: Optional[asyncio.Task[None]] = None

    def on(self, message_type: Type[BaseModel], handler: Handler) -> None:
        self.handlers[message_type] = handler

    async def _enqueue(self, payload: str) -> None:
        await self._queue.put(payload)

    def attach(self) -> None:
        """Register on the bus and start the receiver task."""
        self.bus.register(self.address, self._enqueue)
        if self._receiver_task is None:
            self._receiver_task = asyncio.create_task(self._receiver_loop())

    async def detach(self) -> None:
        self.bus.unregister(self.address)
        if self._receiver_task:
            await self._queue.put(None)
            await self._receiver_task
            self._receiver_task = None

    async def send(
        self, target: str, message: BusMessage, tab_id: Optional[int] = None
    ) -> bool:
        return await self.bus.send(self.address, target, message, tab_id=tab_id)

    async def drain(self) -> None:
        """Wait until every queued message has been handled."""
        await self._queue.join()

    async def _receiver_loop(self) -> None:
        while True:
            payload = await self._queue.get()
            try:
                if payload is None:
                    return
                await self.dispatch(payload)
            finally:
                self._queue.task_done()

    async def dispatch(self, payload: str) -> None:
        try:
            envelope = Envelope.model_validate_json(payload)
        except ValidationError as e:
            logger.warning(f"[BUS IN] {self.address} | dropped malformed message: {e}")
            return

        message = envelope.message
        logger.debug(f"[BUS IN] {self.address} <- {envelope.source} | {message.type}")

        handler = self.handlers.get(type(message))
        if handler is None:
            logger.info(f"[BUS IN] {self.address} | no handler for {message.type}, dropped")
            return

        try:
            await handler(envelope)
        except Exception as e:
            logger.error(f"Handler for {message.type} at {self.address} failed: {e}", exc_info=True)
