"""Desktop platform: screen capture with mss, microphone with sounddevice."""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional

import mss
import mss.tools
import numpy as np
from PIL import Image

from ..capture.media import AudioTrack, MediaStream, MicrophoneSource, VideoTrack
from ..capture.strategies import CaptureStrategy
from ..exceptions import CaptureUnavailableError, PermissionDeniedError, UserCancelledError
from .base import BrowserPlatform, OverlayOutcome, TabInfo

logger = logging.getLogger(__name__)

DESKTOP_TAB_ID = 0

# Receives the monitor list (index 0 is the virtual all-screens monitor),
# returns the chosen index or None when the user dismisses the picker.
MonitorChooser = Callable[[List[Dict[str, int]]], Awaitable[Optional[int]]]

# Shows the region overlay on an in-process page and returns its outcome.
OverlayInjector = Callable[[], Awaitable[OverlayOutcome]]


def _grab_png(monitor_index: int) -> bytes:
    with mss.mss() as sct:
        shot = sct.grab(sct.monitors[monitor_index])
        return mss.tools.to_png(shot.rgb, shot.size)


def _grab_image(monitor_index: int) -> Image.Image:
    with mss.mss() as sct:
        shot = sct.grab(sct.monitors[monitor_index])
        return Image.frombytes("RGB", shot.size, shot.bgra, "raw", "BGRX")


def _list_monitors() -> List[Dict[str, int]]:
    with mss.mss() as sct:
        return list(sct.monitors)


class MonitorVideoTrack(VideoTrack):
    """Frames grabbed from one monitor on demand."""

    def __init__(self, monitor_index: int):
        super().__init__(f"monitor-{monitor_index}")
        self.monitor_index = monitor_index

    async def grab_frame(self) -> Optional[Image.Image]:
        if not self.live:
            return None
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, _grab_image, self.monitor_index)


class DisplayCaptureStrategy(CaptureStrategy):
    """Capture the primary display without asking (privileged path)."""

    name = "display"

    def __init__(self, monitor_index: int = 1):
        self.monitor_index = monitor_index

    async def acquire(self) -> MediaStream:
        loop = asyncio.get_running_loop()
        try:
            monitors = await loop.run_in_executor(None, _list_monitors)
        except mss.exception.ScreenShotError as e:
            raise CaptureUnavailableError(f"No display available: {e}")
        if self.monitor_index >= len(monitors):
            raise CaptureUnavailableError(f"Monitor {self.monitor_index} not found")
        return MediaStream([MonitorVideoTrack(self.monitor_index)])


class PickerCaptureStrategy(CaptureStrategy):
    """Let the user pick which screen to capture."""

    name = "picker"

    def __init__(self, chooser: MonitorChooser):
        self.chooser = chooser

    async def acquire(self) -> MediaStream:
        loop = asyncio.get_running_loop()
        try:
            monitors = await loop.run_in_executor(None, _list_monitors)
        except mss.exception.ScreenShotError as e:
            raise CaptureUnavailableError(f"No display available: {e}")

        choice = await self.chooser(monitors)
        if choice is None:
            raise UserCancelledError()
        if not 0 <= choice < len(monitors):
            raise CaptureUnavailableError(f"Monitor {choice} not found")
        return MediaStream([MonitorVideoTrack(choice)])


class SoundDeviceAudioTrack(AudioTrack):
    """Microphone input buffered by a PortAudio callback."""

    def __init__(self, sample_rate: int = 48000, channels: int = 1, device=None):
        super().__init__("microphone", sample_rate=sample_rate, channels=channels)
        import sounddevice as sd

        self._pending = bytearray()
        self._stream = sd.InputStream(
            samplerate=sample_rate,
            channels=channels,
            dtype="int16",
            device=device,
            callback=self._on_audio,
        )
        self._stream.start()

    def _on_audio(self, indata: np.ndarray, frames, time_info, status) -> None:
        if status:
            logger.debug(f"Microphone status: {status}")
        self._pending.extend(indata.tobytes())

    async def read(self) -> bytes:
        data = bytes(self._pending)
        del self._pending[: len(data)]
        return data

    def _release(self) -> None:
        self._stream.stop()
        self._stream.close()


class SoundDeviceMicrophone(MicrophoneSource):
    def __init__(self, sample_rate: int = 48000, channels: int = 1, device=None):
        self.sample_rate = sample_rate
        self.channels = channels
        self.device = device

    async def open(self) -> MediaStream:
        import sounddevice as sd

        try:
            track = SoundDeviceAudioTrack(self.sample_rate, self.channels, self.device)
        except sd.PortAudioError as e:
            raise PermissionDeniedError(f"Microphone unavailable: {e}")
        return MediaStream([track])


async def _decline_picker(monitors: List[Dict[str, int]]) -> Optional[int]:
    return None


class DesktopPlatform(BrowserPlatform):
    """
    Treats the local screen as a single always-permitted page.

    Region overlays are delegated to an injector callback, normally
    the page affordance endpoint registered for the desktop tab.
    """

    def __init__(
        self,
        chooser: Optional[MonitorChooser] = None,
        monitor_index: int = 1,
        use_microphone: bool = True,
    ):
        self.chooser = chooser or _decline_picker
        self.monitor_index = monitor_index
        self.use_microphone = use_microphone
        self._overlay_injectors: Dict[int, OverlayInjector] = {}

    def register_overlay_injector(
        self, tab_id: int, injector: OverlayInjector
    ) -> None:
        self._overlay_injectors[tab_id] = injector

    async def active_tab(self) -> Optional[TabInfo]:
        return TabInfo(id=DESKTOP_TAB_ID, url="desktop://screen", title="Desktop")

    async def has_host_permission(self, origin: str) -> bool:
        return True

    async def request_host_permission(self, origin: str) -> bool:
        return True

    async def capture_visible_tab(self, tab_id: int) -> Optional[bytes]:
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(None, _grab_png, self.monitor_index)
        except mss.exception.ScreenShotError as e:
            logger.error(f"Screen capture failed: {e}")
            return None

    async def inject_overlay(self, tab_id: int) -> Optional[OverlayOutcome]:
        injector = self._overlay_injectors.get(tab_id)
        if injector is None:
            raise CaptureUnavailableError(f"No page registered for tab {tab_id}")
        return await injector()

    async def open_panel(self, tab_id: int) -> None:
        logger.info(f"Panel requested for tab {tab_id}")

    def capture_strategies(self) -> List[CaptureStrategy]:
        return [
            DisplayCaptureStrategy(self.monitor_index),
            PickerCaptureStrategy(self.chooser),
        ]

    def microphone(self) -> Optional[MicrophoneSource]:
        return SoundDeviceMicrophone() if self.use_microphone else None
