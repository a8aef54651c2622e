"""Capture coordinator: the state machine behind the panel's capture buttons."""

import asyncio
import logging
from pathlib import PurePath
from typing import Optional

from .capture.cropper import crop_frame
from .clients.documents import DocumentClient
from .clients.ocr import IMAGE_PROMPT, REGION_PROMPT, OCRClient
from .clients.transcription import TranscriptionClient
from .config import settings
from .context_buffer import ContextBuffer
from .exceptions import CaptureBusyError, CaptureError, PermissionDeniedError
from .models.capture import (
    CaptureMode,
    CaptureSession,
    CaptureStatus,
    SelectionRect,
    UploadedFile,
)
from .platform.base import BrowserPlatform, OverlayOutcome
from .recording import RecordingSessionManager
from .session_store import SessionStore
from .utils.url_utils import origin_pattern

logger = logging.getLogger(__name__)

REGION_LABEL = "[Preferred Capture]"
UPLOAD_LABEL = "[Upload]"

TEXT_SUFFIXES = (".txt", ".md", ".markdown")


class CaptureCoordinator:
    """
    Runs at most one capture at a time.

    ``session`` is None when idle. A start while another capture is
    active raises CaptureBusyError. Permission refusals leave the
    session in ERROR with a message; the next start replaces it.
    """

    def __init__(
        self,
        platform: BrowserPlatform,
        recorder: RecordingSessionManager,
        ocr: OCRClient,
        transcription: TranscriptionClient,
        documents: DocumentClient,
        buffer: ContextBuffer,
        store: SessionStore,
        selection_timeout: Optional[float] = None,
        min_px: Optional[float] = None,
    ):
        self.platform = platform
        self.recorder = recorder
        self.ocr = ocr
        self.transcription = transcription
        self.documents = documents
        self.buffer = buffer
        self.store = store
        self.selection_timeout = (
            selection_timeout if selection_timeout is not None
            else settings.SELECTION_TIMEOUT_SECONDS
        )
        self.min_px = min_px if min_px is not None else settings.MIN_SELECTION_PX

        self.session: Optional[CaptureSession] = None
        self.notice: Optional[str] = None
        self._pending_selection: Optional["asyncio.Future[Optional[SelectionRect]]"] = None
        recorder.on_abort = self._on_recording_aborted

    @property
    def status(self) -> CaptureStatus:
        return self.session.status if self.session else CaptureStatus.IDLE

    def ensure_idle(self) -> None:
        """Raise CaptureBusyError while another capture is running."""
        if self.session and self.session.is_active:
            raise CaptureBusyError(self.session.mode.value)

    def _begin(self, mode: CaptureMode, status: CaptureStatus) -> CaptureSession:
        self.ensure_idle()
        self.session = CaptureSession(mode=mode, status=status)
        self.notice = None
        logger.info(f"Capture started: {mode.value}")
        return self.session

    def _set_status(self, status: CaptureStatus) -> None:
        if self.session:
            self.session.status = status

    def _finish(self) -> None:
        if self.session:
            logger.info(f"Capture finished: {self.session.mode.value}")
        self.session = None

    def _fail(self, message: str) -> None:
        logger.warning(f"Capture failed: {message}")
        if self.session:
            self.session.status = CaptureStatus.ERROR
            self.session.error = message
        self.notice = message

    # Region capture

    async def _ensure_host_permission(self, url: str) -> None:
        origin = origin_pattern(url)
        if origin is None:
            raise PermissionDeniedError(f"Cannot capture this page: {url or 'unknown'}")
        if await self.platform.has_host_permission(origin):
            return
        if not await self.platform.request_host_permission(origin):
            raise PermissionDeniedError(f"Host permission refused for {origin}")

    async def start_region_capture(self) -> bool:
        """
        Let the user drag a rectangle on the page and OCR it.

        Returns:
            True if a region was captured and sent to OCR
        """
        self._begin(CaptureMode.REGION, CaptureStatus.SELECTING)
        await self.store.ensure_active()

        try:
            tab = await self.platform.active_tab()
            if tab is None:
                raise PermissionDeniedError("No active page to capture")
            await self._ensure_host_permission(tab.url)

            loop = asyncio.get_running_loop()
            self._pending_selection = loop.create_future()
            outcome = await self.platform.inject_overlay(tab.id)
        except CaptureError as e:
            self._pending_selection = None
            self._fail(e.message)
            return False

        try:
            selection = await self._await_selection(self._pending_selection, outcome)
        finally:
            self._pending_selection = None

        if selection is None or selection.is_too_small(self.min_px):
            self._finish()
            return False

        self._set_status(CaptureStatus.CAPTURING)
        try:
            await self._capture_region(tab.id, selection)
        finally:
            self._finish()
        return True

    async def _await_selection(
        self,
        pending: "asyncio.Future[Optional[SelectionRect]]",
        outcome: Optional[OverlayOutcome],
    ) -> Optional[SelectionRect]:
        """
        Wait for RectSelected, giving up early when the overlay reports
        that it removed itself without a selection.
        """
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self.selection_timeout

        try:
            if outcome is not None:
                removed = asyncio.ensure_future(outcome)
                await asyncio.wait(
                    {pending, removed},
                    timeout=self.selection_timeout,
                    return_when=asyncio.FIRST_COMPLETED,
                )
                if not pending.done() and removed.done() and removed.result() is None:
                    logger.info("Region selection dropped")
                    return None
            return await asyncio.wait_for(pending, timeout=max(0, deadline - loop.time()))
        except asyncio.TimeoutError:
            logger.info("No region selected before timeout")
            return None

    def on_rect_selected(self, selection: SelectionRect) -> None:
        """Deliver the overlay's selection to the waiting region capture."""
        pending = self._pending_selection
        if pending is None or pending.done():
            logger.debug("RectSelected with no region capture waiting, dropped")
            return
        pending.set_result(selection)

    async def _capture_region(self, tab_id: int, selection: SelectionRect) -> None:
        snapshot = await self.platform.capture_visible_tab(tab_id)
        if not snapshot:
            await self.buffer.append("OCR error: Could not capture the page", REGION_LABEL)
            return

        loop = asyncio.get_running_loop()
        try:
            png = await loop.run_in_executor(None, crop_frame, snapshot, selection)
        except OSError as e:
            await self.buffer.append(f"OCR error: Could not crop capture: {e}", REGION_LABEL)
            return

        result = await self.ocr.recognize(png, prompt=REGION_PROMPT, filename="region.png")
        if not result.ok:
            await self.buffer.append(f"OCR error: {result.error}", REGION_LABEL)
        elif result.text:
            await self.buffer.append(result.text, REGION_LABEL)

    # Recording

    async def start_recording(self) -> bool:
        """
        Returns:
            True if recording started
        """
        self._begin(CaptureMode.RECORDING, CaptureStatus.RECORDING)
        await self.store.ensure_active()

        try:
            started = await self.recorder.start()
        except CaptureError as e:
            self._fail(e.message)
            return False
        except Exception:
            self._finish()
            raise

        if not started:
            self._finish()
            self.notice = "Capture cancelled"
            return False
        return True

    async def _on_recording_aborted(self, reason: str) -> None:
        if self.session and self.session.mode == CaptureMode.RECORDING:
            self._fail(reason)

    async def stop_recording(self) -> None:
        if not self.session or self.session.mode != CaptureMode.RECORDING:
            logger.warning("stop_recording() with no recording in progress")
            return

        self._set_status(CaptureStatus.FINALIZING)
        try:
            await self.recorder.stop()
        finally:
            self._finish()

    # Uploads

    async def handle_upload(self, upload: UploadedFile) -> None:
        """Turn one uploaded file into a context entry."""
        self._begin(CaptureMode.UPLOAD, CaptureStatus.CAPTURING)
        await self.store.ensure_active()
        try:
            await self._process_upload(upload)
        except Exception as e:
            logger.error(f"Upload {upload.filename} failed: {e}", exc_info=True)
            await self.buffer.append(
                f"Error processing {upload.filename}: {e}", UPLOAD_LABEL
            )
        finally:
            self._finish()

    async def _process_upload(self, upload: UploadedFile) -> None:
        name = upload.filename
        content_type = (upload.content_type or "").lower()
        suffix = PurePath(name).suffix.lower()

        if content_type.startswith("image/"):
            result = await self.ocr.recognize(
                upload.data, prompt=IMAGE_PROMPT, filename=name, content_type=content_type
            )
            label = f"[Image: {name}]"
        elif content_type.startswith(("audio/", "video/")):
            result = await self.transcription.transcribe(upload.data, name, content_type)
            label = f"[Transcript: {name}]"
        elif content_type == "application/pdf" or suffix == ".pdf":
            result = await self.documents.extract(upload.data, name)
            label = f"[PDF: {name}]"
        elif content_type.startswith("text/") or suffix in TEXT_SUFFIXES:
            await self.buffer.append(
                upload.data.decode("utf-8", errors="replace"), f"[Text: {name}]"
            )
            return
        else:
            await self.buffer.append(
                f"(Uploaded {name} – unsupported type here)", UPLOAD_LABEL
            )
            return

        if not result.ok:
            await self.buffer.append(f"Error processing {name}: {result.error}", UPLOAD_LABEL)
        elif result.text:
            await self.buffer.append(result.text, label)
