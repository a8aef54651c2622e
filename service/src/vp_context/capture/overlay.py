"""Interactive rectangle picker injected into a page."""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..models.capture import Rect, SelectionRect

logger = logging.getLogger(__name__)


@dataclass
class PageMetrics:
    """Scroll offsets and pixel ratio of the page at a point in time."""

    scroll_x: float = 0.0
    scroll_y: float = 0.0
    device_pixel_ratio: float = 1.0


class RegionSelectorOverlay:
    """
    Tracks one drag gesture and resolves ``result`` exactly once.

    pointer_down starts tracking, pointer_move updates the visible
    rectangle, pointer_up finalizes. A selection smaller than
    ``min_px`` in either dimension resolves to None. The overlay removes
    itself on completion.
    """

    def __init__(
        self,
        metrics: Callable[[], PageMetrics],
        min_px: float = 8,
        on_remove: Optional[Callable[["RegionSelectorOverlay"], None]] = None,
    ):
        self._metrics = metrics
        self.min_px = min_px
        self._on_remove = on_remove
        self.result: "asyncio.Future[Optional[SelectionRect]]" = (
            asyncio.get_running_loop().create_future()
        )
        self.box: Optional[Rect] = None
        self._start: Optional[tuple] = None
        self.removed = False

    @property
    def dragging(self) -> bool:
        return self._start is not None

    def _update_box(self, x: float, y: float) -> Rect:
        sx, sy = self._start
        self.box = Rect(x=min(sx, x), y=min(sy, y), w=abs(x - sx), h=abs(y - sy))
        return self.box

    def pointer_down(self, x: float, y: float) -> None:
        if self.removed:
            return
        self._start = (x, y)
        self._update_box(x, y)

    def pointer_move(self, x: float, y: float) -> None:
        if self.removed or not self.dragging:
            return
        self._update_box(x, y)

    def pointer_up(self, x: float, y: float) -> None:
        if self.removed:
            return
        if not self.dragging:
            self._finish(None)
            return

        rect = self._update_box(x, y)
        self._start = None
        metrics = self._metrics()
        selection = SelectionRect(
            rect=rect,
            scroll_x=metrics.scroll_x,
            scroll_y=metrics.scroll_y,
            device_pixel_ratio=metrics.device_pixel_ratio,
        )

        if selection.is_too_small(self.min_px):
            logger.debug(f"Dropping {rect.w}x{rect.h} selection")
            self._finish(None)
            return

        self._finish(selection)

    def cancel(self) -> None:
        if not self.removed:
            self._finish(None)

    def _finish(self, selection: Optional[SelectionRect]) -> None:
        self.removed = True
        self.box = None
        if not self.result.done():
            self.result.set_result(selection)
        if self._on_remove:
            self._on_remove(self)
