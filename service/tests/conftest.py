"""Shared fixtures and fakes for the capture pipeline tests."""

import io
import shutil
import tempfile
from typing import List, Optional
from unittest.mock import AsyncMock

import numpy as np
import pytest
from PIL import Image

from vp_context.capture.media import AudioTrack, MediaStream, MicrophoneSource, VideoTrack
from vp_context.capture.strategies import CaptureStrategy
from vp_context.clients.base import ServiceResult
from vp_context.context_buffer import ContextBuffer
from vp_context.platform.base import BrowserPlatform, TabInfo
from vp_context.session_store import SessionStore
from vp_context.state_store import StateStore


class FakeVideoTrack(VideoTrack):
    """Serves a solid image; ``color`` can be changed between frames."""

    def __init__(self, label: str = "tab-video", color=(255, 255, 255)):
        super().__init__(label)
        self.color = color
        self.frames_grabbed = 0

    async def grab_frame(self) -> Optional[Image.Image]:
        self.frames_grabbed += 1
        return Image.new("RGB", (32, 24), self.color)


class FakeAudioTrack(AudioTrack):
    """Returns a short block of constant samples on every read."""

    def __init__(self, label: str = "tab-audio", value: int = 1000,
                 sample_rate: int = 8000, channels: int = 1):
        super().__init__(label, sample_rate=sample_rate, channels=channels)
        self.value = value
        self.reads = 0

    async def read(self) -> bytes:
        self.reads += 1
        return np.full(80 * self.channels, self.value, dtype=np.int16).tobytes()


class FakeStrategy(CaptureStrategy):
    """Returns a prepared stream or raises a prepared error."""

    def __init__(self, name: str, stream: Optional[MediaStream] = None,
                 error: Optional[Exception] = None):
        self.name = name
        self.stream = stream
        self.error = error
        self.calls = 0

    async def acquire(self) -> MediaStream:
        self.calls += 1
        if self.error is not None:
            raise self.error
        return self.stream


class FakeMicrophone(MicrophoneSource):
    def __init__(self, track: Optional[AudioTrack] = None,
                 error: Optional[Exception] = None):
        self.track = track
        self.error = error

    async def open(self) -> MediaStream:
        if self.error is not None:
            raise self.error
        return MediaStream([self.track])


class FakePlatform(BrowserPlatform):
    """Records platform calls; the snapshot is a 200x100 gradient PNG."""

    def __init__(self, url: str = "https://example.com/lesson",
                 permitted: bool = True, grant: bool = True,
                 strategies: Optional[List[CaptureStrategy]] = None):
        self.tab = TabInfo(id=7, url=url, title="Lesson")
        self.permitted = permitted
        self.grant = grant
        self.strategies = strategies or []
        self.requested_origins: List[str] = []
        self.injected: List[int] = []
        self.opened_panels: List[int] = []
        self.snapshot = make_png(200, 100)

    async def active_tab(self) -> Optional[TabInfo]:
        return self.tab

    async def has_host_permission(self, origin: str) -> bool:
        return self.permitted

    async def request_host_permission(self, origin: str) -> bool:
        self.requested_origins.append(origin)
        return self.grant

    async def capture_visible_tab(self, tab_id: int) -> Optional[bytes]:
        return self.snapshot

    async def inject_overlay(self, tab_id: int) -> None:
        self.injected.append(tab_id)

    async def open_panel(self, tab_id: int) -> None:
        self.opened_panels.append(tab_id)

    def capture_strategies(self) -> List[CaptureStrategy]:
        return self.strategies


def make_png(width: int, height: int) -> bytes:
    """PNG whose pixel at (x, y) is (x % 256, y % 256, 0)."""
    image = Image.new("RGB", (width, height))
    image.putdata([(x % 256, y % 256, 0) for y in range(height) for x in range(width)])
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def service_mock(text: Optional[str] = "", error: Optional[str] = None) -> AsyncMock:
    """AsyncMock returning a fixed ServiceResult."""
    return AsyncMock(return_value=ServiceResult(text=text, error=error))


@pytest.fixture
def temp_data_dir():
    """Create temporary data directory."""
    temp_dir = tempfile.mkdtemp()
    yield temp_dir
    shutil.rmtree(temp_dir)


@pytest.fixture
async def state_store(temp_data_dir):
    store = StateStore(data_dir=temp_data_dir)
    await store.initialize()
    return store


@pytest.fixture
async def session_store(state_store):
    """Loaded session store with one active chat."""
    store = SessionStore(state_store)
    await store.load()
    await store.create()
    return store


@pytest.fixture
def buffer(session_store):
    return ContextBuffer(session_store, max_chars=20000)
