"""Panel endpoint: chat sessions, capture controls and questions."""

import logging
from typing import Optional

from ..bus import BACKGROUND, PANEL, Endpoint, MessageBus
from ..clients.answer import AnswerClient
from ..context_buffer import ContextBuffer
from ..coordinator import CaptureCoordinator
from ..models.capture import CaptureMode
from ..models.messages import Envelope, OpenPanelWithContext, PanelClosed, PanelOpened, RectSelected
from ..models.session import Message
from ..session_store import SessionStore

logger = logging.getLogger(__name__)


class PanelEndpoint(Endpoint):
    """Hosts the capture coordinator and session store for one panel."""

    def __init__(
        self,
        bus: MessageBus,
        store: SessionStore,
        buffer: ContextBuffer,
        coordinator: CaptureCoordinator,
        answer: AnswerClient,
        tab_id: Optional[int] = None,
    ):
        super().__init__(bus, PANEL)
        self.store = store
        self.buffer = buffer
        self.coordinator = coordinator
        self.answer = answer
        self.tab_id = tab_id

        self.on(RectSelected, self._on_rect_selected)
        self.on(OpenPanelWithContext, self._on_context)

    async def open(self) -> None:
        """Load sessions, pick up any captured selection and announce."""
        self.attach()
        await self.store.load()
        await self.store.ensure_active()
        await self.store.consume_captured_selection(self.buffer)
        await self.send(BACKGROUND, PanelOpened(), tab_id=self.tab_id)

    async def close(self) -> None:
        session = self.coordinator.session
        if session and session.mode == CaptureMode.RECORDING:
            await self.coordinator.stop_recording()
        await self.send(BACKGROUND, PanelClosed(), tab_id=self.tab_id)
        await self.detach()

    async def _on_rect_selected(self, envelope: Envelope) -> None:
        self.coordinator.on_rect_selected(envelope.message.to_selection())

    async def _on_context(self, envelope: Envelope) -> None:
        await self.buffer.append(envelope.message.context, "[Selection]")

    async def ask(self, question: str) -> Message:
        """Ask about the current context and record both sides of the exchange."""
        chat = await self.store.ensure_active()
        await self.store.append_message(chat.id, Message(role="user", content=question))

        result = await self.answer.ask(question, self.buffer.text)
        content = result.text if result.ok else f"Error: {result.error}"
        reply = Message(role="assistant", content=content or "")
        await self.store.append_message(chat.id, reply)
        return reply
