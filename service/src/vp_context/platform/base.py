"""Platform port for the privileged calls the background side performs."""

from abc import ABC, abstractmethod
from typing import Awaitable, List, Optional

from pydantic import BaseModel

from ..capture.media import MicrophoneSource
from ..capture.strategies import CaptureStrategy
from ..models.capture import SelectionRect

# Resolves when the overlay removes itself: the selection, or None when
# it was dropped or cancelled.
OverlayOutcome = Awaitable[Optional[SelectionRect]]


class TabInfo(BaseModel):
    """The page a capture targets."""

    id: int
    url: str
    title: Optional[str] = None


class BrowserPlatform(ABC):
    """
    Abstract interface over the host environment.

    Implementations can be backed by different systems:
    - The local desktop (mss screen grabs, sounddevice microphone)
    - A browser extension bridged over WebSocket
    """

    @abstractmethod
    async def active_tab(self) -> Optional[TabInfo]:
        """Return the page in the foreground, if any."""

    @abstractmethod
    async def has_host_permission(self, origin: str) -> bool:
        pass

    @abstractmethod
    async def request_host_permission(self, origin: str) -> bool:
        """Ask the user for access to an origin; False if refused."""

    @abstractmethod
    async def capture_visible_tab(self, tab_id: int) -> Optional[bytes]:
        """PNG snapshot of the visible viewport, or None on failure."""

    @abstractmethod
    async def inject_overlay(self, tab_id: int) -> Optional[OverlayOutcome]:
        """
        Inject the region selector overlay into a page.

        Returns the overlay outcome when the page is hosted in-process,
        None when the page only reports back through RectSelected.
        """

    @abstractmethod
    async def open_panel(self, tab_id: int) -> None:
        pass

    @abstractmethod
    def capture_strategies(self) -> List[CaptureStrategy]:
        """Recording stream strategies, most privileged first."""

    def microphone(self) -> Optional[MicrophoneSource]:
        return None
