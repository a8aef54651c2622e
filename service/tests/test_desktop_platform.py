"""Tests for the desktop platform that do not need a real display."""

import pytest

from vp_context.platform import desktop
from vp_context.platform.desktop import (
    DESKTOP_TAB_ID,
    DesktopPlatform,
    DisplayCaptureStrategy,
    MonitorVideoTrack,
    PickerCaptureStrategy,
)
from vp_context.exceptions import CaptureUnavailableError, UserCancelledError

MONITORS = [
    {"left": 0, "top": 0, "width": 3840, "height": 1080},
    {"left": 0, "top": 0, "width": 1920, "height": 1080},
    {"left": 1920, "top": 0, "width": 1920, "height": 1080},
]


@pytest.fixture
def fake_monitors(monkeypatch):
    monkeypatch.setattr(desktop, "_list_monitors", lambda: MONITORS)


@pytest.mark.asyncio
async def test_desktop_is_a_permitted_page():
    platform = DesktopPlatform(use_microphone=False)

    tab = await platform.active_tab()
    assert tab.id == DESKTOP_TAB_ID
    assert await platform.has_host_permission("desktop://screen/*")
    assert platform.microphone() is None


def test_strategies_prefer_display_over_picker():
    names = [s.name for s in DesktopPlatform().capture_strategies()]
    assert names == ["display", "picker"]


@pytest.mark.asyncio
async def test_inject_overlay_uses_registered_page():
    platform = DesktopPlatform()
    calls = []

    async def injector():
        calls.append("injected")
        return "outcome"

    platform.register_overlay_injector(DESKTOP_TAB_ID, injector)
    assert await platform.inject_overlay(DESKTOP_TAB_ID) == "outcome"

    assert calls == ["injected"]
    with pytest.raises(CaptureUnavailableError):
        await platform.inject_overlay(99)


@pytest.mark.asyncio
async def test_display_strategy(fake_monitors):
    stream = await DisplayCaptureStrategy(monitor_index=2).acquire()

    track = stream.video_tracks()[0]
    assert isinstance(track, MonitorVideoTrack)
    assert track.monitor_index == 2

    with pytest.raises(CaptureUnavailableError):
        await DisplayCaptureStrategy(monitor_index=5).acquire()


@pytest.mark.asyncio
async def test_picker_dismissed(fake_monitors):
    async def dismiss(monitors):
        return None

    with pytest.raises(UserCancelledError):
        await PickerCaptureStrategy(dismiss).acquire()


@pytest.mark.asyncio
async def test_picker_choice(fake_monitors):
    offered = []

    async def choose(monitors):
        offered.extend(monitors)
        return 1

    stream = await PickerCaptureStrategy(choose).acquire()

    assert offered == MONITORS
    assert stream.video_tracks()[0].monitor_index == 1


@pytest.mark.asyncio
async def test_stopped_track_grabs_nothing():
    track = MonitorVideoTrack(1)
    track.stop()
    assert await track.grab_frame() is None
