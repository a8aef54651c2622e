"""Background coordinator endpoint."""

import logging
from typing import Optional, Set

from ..bus import BACKGROUND, PANEL, Endpoint, MessageBus, page_address
from ..models.messages import (
    Envelope,
    OpenPanel,
    OpenPanelWithContext,
    PanelClosed,
    PanelOpened,
    ShowTriggerAffordance,
)
from ..platform.base import BrowserPlatform
from ..state_store import LAST_CAPTURED_CONTEXT_KEY, StateStore

logger = logging.getLogger(__name__)


class BackgroundCoordinator(Endpoint):
    """
    Tracks which tabs have the panel open and performs platform calls.

    A selection sent from a page is stored as ``lastCapturedContext`` for
    the panel to pick up when it opens; if the panel is already open on
    that tab the selection is forwarded to it directly.
    """

    def __init__(self, bus: MessageBus, platform: BrowserPlatform, state: StateStore):
        super().__init__(bus, BACKGROUND)
        self.platform = platform
        self.state = state
        self.open_tabs: Set[int] = set()

        self.on(OpenPanelWithContext, self._on_open_with_context)
        self.on(OpenPanel, self._on_open_panel)
        self.on(PanelOpened, self._on_panel_opened)
        self.on(PanelClosed, self._on_panel_closed)

    async def _tab_for(self, envelope: Envelope) -> Optional[int]:
        if envelope.tab_id is not None:
            return envelope.tab_id
        tab = await self.platform.active_tab()
        return tab.id if tab else None

    async def _on_open_with_context(self, envelope: Envelope) -> None:
        tab_id = await self._tab_for(envelope)
        context = envelope.message.context

        if tab_id in self.open_tabs and self.bus.has_route(PANEL):
            await self.send(PANEL, envelope.message, tab_id=tab_id)
            return

        if context:
            await self.state.set({LAST_CAPTURED_CONTEXT_KEY: context})
        if tab_id is not None:
            await self.platform.open_panel(tab_id)

    async def _on_open_panel(self, envelope: Envelope) -> None:
        tab_id = await self._tab_for(envelope)
        if tab_id is not None:
            await self.platform.open_panel(tab_id)

    async def _on_panel_opened(self, envelope: Envelope) -> None:
        tab_id = await self._tab_for(envelope)
        if tab_id is not None:
            self.open_tabs.add(tab_id)
            logger.info(f"Panel open on tab {tab_id}")

    async def _on_panel_closed(self, envelope: Envelope) -> None:
        tab_id = await self._tab_for(envelope)
        if tab_id is None:
            return
        self.open_tabs.discard(tab_id)
        logger.info(f"Panel closed on tab {tab_id}")
        await self.send(page_address(tab_id), ShowTriggerAffordance(), tab_id=tab_id)

    def tab_removed(self, tab_id: int) -> None:
        """Forget a closed tab."""
        self.open_tabs.discard(tab_id)
