"""Tests for the capture coordinator state machine."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from conftest import FakeAudioTrack, FakePlatform, FakeStrategy, FakeVideoTrack, service_mock
from vp_context.capture.media import MediaStream
from vp_context.clients.ocr import IMAGE_PROMPT, REGION_PROMPT
from vp_context.coordinator import CaptureCoordinator
from vp_context.exceptions import (
    CaptureBusyError,
    CaptureUnavailableError,
    PermissionDeniedError,
    UserCancelledError,
)
from vp_context.models.capture import (
    CaptureMode,
    CaptureStatus,
    Rect,
    SelectionRect,
    UploadedFile,
)
from vp_context.recording import RecordingSessionManager


def _selection(w=120, h=40):
    return SelectionRect(rect=Rect(x=10, y=10, w=w, h=h))


@pytest.fixture
def clients():
    return {
        "ocr": AsyncMock(recognize=service_mock("region text")),
        "transcription": AsyncMock(transcribe=service_mock("spoken words")),
        "documents": AsyncMock(extract=service_mock("pdf text")),
    }


def make_coordinator(buffer, session_store, clients, platform=None, strategies=None,
                     selection_timeout=1.0):
    platform = platform or FakePlatform()
    if strategies is None:
        stream = MediaStream([FakeVideoTrack(), FakeAudioTrack()])
        strategies = [FakeStrategy("tab", stream=stream)]
    recorder = RecordingSessionManager(
        strategies, clients["ocr"], clients["transcription"], buffer,
        sample_interval=60, timeslice=0.01,
    )
    return CaptureCoordinator(
        platform, recorder, clients["ocr"], clients["transcription"],
        clients["documents"], buffer, session_store,
        selection_timeout=selection_timeout, min_px=8,
    )


async def select_when_injected(coordinator, platform, selection):
    while not platform.injected:
        await asyncio.sleep(0.005)
    coordinator.on_rect_selected(selection)


@pytest.mark.asyncio
async def test_region_capture_ocrs_the_selection(buffer, session_store, clients):
    platform = FakePlatform()
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    task = asyncio.create_task(coordinator.start_region_capture())
    await select_when_injected(coordinator, platform, _selection())

    assert await task is True
    assert platform.injected == [7]
    kwargs = clients["ocr"].recognize.await_args.kwargs
    assert kwargs["prompt"] == REGION_PROMPT
    assert "[Preferred Capture]:\nregion text" in buffer.text
    assert coordinator.status == CaptureStatus.IDLE


@pytest.mark.asyncio
async def test_status_is_selecting_while_waiting(buffer, session_store, clients):
    platform = FakePlatform()
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    task = asyncio.create_task(coordinator.start_region_capture())
    while not platform.injected:
        await asyncio.sleep(0.005)

    assert coordinator.session.mode == CaptureMode.REGION
    assert coordinator.status == CaptureStatus.SELECTING

    coordinator.on_rect_selected(_selection())
    await task


@pytest.mark.asyncio
async def test_small_selection_sends_no_ocr(buffer, session_store, clients):
    """A selection under 8 px in either dimension issues zero OCR requests."""
    platform = FakePlatform()
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    task = asyncio.create_task(coordinator.start_region_capture())
    await select_when_injected(coordinator, platform, _selection(w=7, h=100))

    assert await task is False
    clients["ocr"].recognize.assert_not_called()
    assert coordinator.status == CaptureStatus.IDLE


@pytest.mark.asyncio
async def test_selection_timeout_returns_to_idle(buffer, session_store, clients):
    coordinator = make_coordinator(buffer, session_store, clients, selection_timeout=0.02)

    assert await coordinator.start_region_capture() is False
    assert coordinator.status == CaptureStatus.IDLE
    clients["ocr"].recognize.assert_not_called()


@pytest.mark.asyncio
async def test_host_permission_is_requested(buffer, session_store, clients):
    platform = FakePlatform(permitted=False, grant=True)
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    task = asyncio.create_task(coordinator.start_region_capture())
    await select_when_injected(coordinator, platform, _selection())

    assert await task is True
    assert platform.requested_origins == ["https://example.com/*"]


@pytest.mark.asyncio
async def test_permission_refusal_is_recoverable(buffer, session_store, clients):
    """A refused permission leaves an error status and allows a retry."""
    platform = FakePlatform(permitted=False, grant=False)
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    assert await coordinator.start_region_capture() is False
    assert coordinator.status == CaptureStatus.ERROR
    assert "refused" in coordinator.session.error
    assert platform.injected == []

    platform.grant = True
    task = asyncio.create_task(coordinator.start_region_capture())
    await select_when_injected(coordinator, platform, _selection())
    assert await task is True


@pytest.mark.asyncio
async def test_internal_pages_cannot_be_captured(buffer, session_store, clients):
    platform = FakePlatform(url="chrome://settings")
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    assert await coordinator.start_region_capture() is False
    assert coordinator.status == CaptureStatus.ERROR


@pytest.mark.asyncio
async def test_region_ocr_failure_is_visible(buffer, session_store, clients):
    clients["ocr"].recognize = service_mock(None, error="OCR request timed out")
    platform = FakePlatform()
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    task = asyncio.create_task(coordinator.start_region_capture())
    await select_when_injected(coordinator, platform, _selection())
    await task

    assert "[Preferred Capture]:\nOCR error: OCR request timed out" in buffer.text


@pytest.mark.asyncio
async def test_second_capture_is_rejected(buffer, session_store, clients):
    platform = FakePlatform()
    coordinator = make_coordinator(buffer, session_store, clients, platform=platform)

    task = asyncio.create_task(coordinator.start_region_capture())
    while not platform.injected:
        await asyncio.sleep(0.005)

    with pytest.raises(CaptureBusyError):
        await coordinator.start_recording()
    with pytest.raises(CaptureBusyError):
        await coordinator.start_region_capture()

    coordinator.on_rect_selected(_selection())
    await task


@pytest.mark.asyncio
async def test_recording_lifecycle(buffer, session_store, clients):
    coordinator = make_coordinator(buffer, session_store, clients)

    assert await coordinator.start_recording() is True
    assert coordinator.status == CaptureStatus.RECORDING

    await coordinator.stop_recording()

    assert coordinator.status == CaptureStatus.IDLE
    assert "[Video transcript]:\nspoken words" in buffer.text


@pytest.mark.asyncio
async def test_picker_cancel_is_not_an_error(buffer, session_store, clients):
    """Cancelling the picker returns to idle with no OCR and no error entry."""
    coordinator = make_coordinator(buffer, session_store, clients, strategies=[
        FakeStrategy("tab", error=CaptureUnavailableError()),
        FakeStrategy("picker", error=UserCancelledError()),
    ])

    assert await coordinator.start_recording() is False

    assert coordinator.status == CaptureStatus.IDLE
    assert coordinator.session is None
    assert coordinator.notice == "Capture cancelled"
    clients["ocr"].recognize.assert_not_called()
    assert buffer.text == ""


@pytest.mark.asyncio
async def test_recording_acquisition_failure_sets_error(buffer, session_store, clients):
    coordinator = make_coordinator(buffer, session_store, clients, strategies=[
        FakeStrategy("tab", error=CaptureUnavailableError("no tab capture")),
        FakeStrategy("picker", error=PermissionDeniedError("screen capture blocked")),
    ])

    assert await coordinator.start_recording() is False
    assert coordinator.status == CaptureStatus.ERROR
    assert coordinator.notice == "screen capture blocked"


@pytest.mark.asyncio
async def test_stop_without_recording_is_ignored(buffer, session_store, clients):
    coordinator = make_coordinator(buffer, session_store, clients)
    await coordinator.stop_recording()
    assert coordinator.status == CaptureStatus.IDLE


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "filename, content_type, expected",
    [
        ("board.png", "image/png", "[Image: board.png]:\nregion text"),
        ("lecture.mp3", "audio/mpeg", "[Transcript: lecture.mp3]:\nspoken words"),
        ("clip.webm", "video/webm", "[Transcript: clip.webm]:\nspoken words"),
        ("notes.pdf", "application/pdf", "[PDF: notes.pdf]:\npdf text"),
        ("scan.PDF", "", "[PDF: scan.PDF]:\npdf text"),
        ("summary.md", "", "[Text: summary.md]:\nplain words"),
        ("readme.txt", "text/plain", "[Text: readme.txt]:\nplain words"),
        ("data.bin", "application/octet-stream",
         "[Upload]:\n(Uploaded data.bin – unsupported type here)"),
    ],
)
async def test_upload_dispatch(buffer, session_store, clients, filename, content_type, expected):
    coordinator = make_coordinator(buffer, session_store, clients)

    await coordinator.handle_upload(
        UploadedFile(filename=filename, content_type=content_type, data=b"plain words")
    )

    assert expected in buffer.text
    assert coordinator.status == CaptureStatus.IDLE


@pytest.mark.asyncio
async def test_image_upload_uses_image_prompt(buffer, session_store, clients):
    coordinator = make_coordinator(buffer, session_store, clients)

    await coordinator.handle_upload(
        UploadedFile(filename="board.jpg", content_type="image/jpeg", data=b"jpg")
    )

    kwargs = clients["ocr"].recognize.await_args.kwargs
    assert kwargs["prompt"] == IMAGE_PROMPT
    assert kwargs["content_type"] == "image/jpeg"


@pytest.mark.asyncio
async def test_upload_failure_is_visible(buffer, session_store, clients):
    clients["transcription"].transcribe = service_mock(None, error="file too large")
    coordinator = make_coordinator(buffer, session_store, clients)

    await coordinator.handle_upload(
        UploadedFile(filename="talk.wav", content_type="audio/wav", data=b"wav")
    )

    assert "[Upload]:\nError processing talk.wav: file too large" in buffer.text


class BrokenAudioTrack(FakeAudioTrack):
    async def read(self) -> bytes:
        raise OSError("device unplugged")


@pytest.mark.asyncio
async def test_recorder_failure_moves_session_to_error(buffer, session_store, clients):
    """A recorder failure mid-recording frees the coordinator for a new capture."""
    stream = MediaStream([FakeVideoTrack(), BrokenAudioTrack()])
    coordinator = make_coordinator(
        buffer, session_store, clients, strategies=[FakeStrategy("tab", stream=stream)]
    )

    assert await coordinator.start_recording() is True
    for _ in range(200):
        if coordinator.status == CaptureStatus.ERROR:
            break
        await asyncio.sleep(0.01)

    assert coordinator.status == CaptureStatus.ERROR
    assert coordinator.session.error == "Recorder failed: device unplugged"
    assert "Recording error: Recorder failed: device unplugged" in buffer.text

    coordinator.recorder.strategies = [
        FakeStrategy("tab", stream=MediaStream([FakeVideoTrack(), FakeAudioTrack()]))
    ]
    assert await coordinator.start_recording() is True
    await coordinator.stop_recording()
    assert coordinator.status == CaptureStatus.IDLE
