"""Page affordance endpoint: selection trigger and region overlay host."""

import asyncio
import logging
from typing import Callable, Optional

from ..bus import BACKGROUND, PANEL, Endpoint, MessageBus, page_address
from ..capture.overlay import PageMetrics, RegionSelectorOverlay
from ..config import settings
from ..models.capture import SelectionRect
from ..models.messages import (
    Envelope,
    OpenPanel,
    OpenPanelWithContext,
    RectSelected,
    ShowTriggerAffordance,
)

logger = logging.getLogger(__name__)


class PageAffordance(Endpoint):
    """
    The per-page side of the extension.

    Shows a trigger while text is selected; clicking it sends the
    selection to the background and hides the trigger until the
    background re-arms it. Also hosts at most one region overlay.
    """

    def __init__(
        self,
        bus: MessageBus,
        tab_id: int,
        metrics: Optional[Callable[[], PageMetrics]] = None,
        min_px: Optional[float] = None,
    ):
        super().__init__(bus, page_address(tab_id))
        self.tab_id = tab_id
        self.metrics = metrics or PageMetrics
        self.min_px = min_px if min_px is not None else settings.MIN_SELECTION_PX

        self.armed = True
        self.trigger_visible = False
        self.selection = ""
        self.overlay: Optional[RegionSelectorOverlay] = None
        self._overlay_task: Optional[asyncio.Task[None]] = None

        self.on(ShowTriggerAffordance, self._on_show_trigger)

    def on_selection_change(self, text: str) -> None:
        self.selection = text.strip()
        self.trigger_visible = self.armed and bool(self.selection)

    async def click(self) -> bool:
        """Click the trigger. Returns False if it was not showing."""
        if not self.trigger_visible:
            return False
        sent = await self.send(
            BACKGROUND, OpenPanelWithContext(context=self.selection), tab_id=self.tab_id
        )
        self.trigger_visible = False
        self.armed = False
        return sent

    async def request_panel(self) -> bool:
        return await self.send(BACKGROUND, OpenPanel(), tab_id=self.tab_id)

    async def _on_show_trigger(self, envelope: Envelope) -> None:
        if self.armed:
            return
        self.armed = True
        self.trigger_visible = bool(self.selection)
        logger.debug(f"Trigger re-armed on tab {self.tab_id}")

    async def inject_overlay(self) -> RegionSelectorOverlay:
        """Show the region selector, reusing one that is already on the page."""
        if self.overlay is not None and not self.overlay.removed:
            logger.debug(f"Overlay already present on tab {self.tab_id}")
            return self.overlay

        overlay = RegionSelectorOverlay(
            self.metrics, min_px=self.min_px, on_remove=self._overlay_removed
        )
        self.overlay = overlay
        self._overlay_task = asyncio.create_task(self._forward_selection(overlay))
        return overlay

    async def show_region_selector(self) -> "asyncio.Future[Optional[SelectionRect]]":
        """Inject the overlay and return its outcome future."""
        overlay = await self.inject_overlay()
        return overlay.result

    def _overlay_removed(self, overlay: RegionSelectorOverlay) -> None:
        if self.overlay is overlay:
            self.overlay = None

    async def _forward_selection(self, overlay: RegionSelectorOverlay) -> None:
        selection = await overlay.result
        if selection is None:
            return
        await self.send(PANEL, RectSelected.from_selection(selection), tab_id=self.tab_id)
