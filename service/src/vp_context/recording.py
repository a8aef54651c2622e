"""Continuous tab/screen recording with periodic OCR sampling."""

import asyncio
import logging
from enum import Enum
from typing import Awaitable, Callable, List, Optional, Sequence, Set

from .artifact_store import ArtifactStore
from .capture.cropper import encode_png
from .capture.media import MediaStream, MediaTrack, MicrophoneSource
from .capture.mixer import compose_recording_stream
from .capture.recorder import MediaRecorder
from .capture.strategies import AcquisitionAttempt, CaptureStrategy, FallbackChain
from .clients.ocr import FRAME_PROMPT, OCRClient
from .clients.transcription import TranscriptionClient
from .config import settings
from .context_buffer import ContextBuffer, content_hash
from .exceptions import CaptureBusyError, UserCancelledError
from .models.capture import RecordingArtifact

logger = logging.getLogger(__name__)

TRANSCRIPT_LABEL = "[Video transcript]"

RecorderFactory = Callable[..., MediaRecorder]
AbortCallback = Callable[[str], Awaitable[None]]


class RecordingState(str, Enum):
    NOT_RECORDING = "not_recording"
    STARTING = "starting"
    RECORDING = "recording"
    STOPPING = "stopping"


class RecordingSessionManager:
    """
    Owns the capture streams of one recording from start to teardown.

    While recording, a sampler OCRs the current frame every
    ``sample_interval`` seconds and the recorder slices audio and video
    every ``timeslice`` seconds; the two run as independent tasks. Every
    exit path (stop, picker cancellation, acquisition error, recorder
    failure, failed final flush) goes through ``_teardown()``, which
    stops every acquired track. ``on_abort`` is awaited after a failure
    during recording so the owner can leave its recording state.
    """

    def __init__(
        self,
        strategies: Sequence[CaptureStrategy],
        ocr: OCRClient,
        transcription: TranscriptionClient,
        buffer: ContextBuffer,
        microphone: Optional[MicrophoneSource] = None,
        artifact_store: Optional[ArtifactStore] = None,
        sample_interval: Optional[float] = None,
        timeslice: Optional[float] = None,
        recorder_factory: RecorderFactory = MediaRecorder,
        on_abort: Optional[AbortCallback] = None,
    ):
        self.strategies = list(strategies)
        self.ocr = ocr
        self.transcription = transcription
        self.buffer = buffer
        self.microphone = microphone
        self.artifact_store = artifact_store
        self.sample_interval = (
            sample_interval if sample_interval is not None
            else settings.OCR_SAMPLE_INTERVAL_MS / 1000
        )
        self.timeslice = (
            timeslice if timeslice is not None
            else settings.RECORDER_TIMESLICE_MS / 1000
        )
        self.recorder_factory = recorder_factory
        self.on_abort = on_abort

        self.state = RecordingState.NOT_RECORDING
        self.attempts: List[AcquisitionAttempt] = []
        self._tracks: List[MediaTrack] = []
        self._stream: Optional[MediaStream] = None
        self._recorder: Optional[MediaRecorder] = None
        self._sampler_task: Optional[asyncio.Task[None]] = None
        self._sample_tasks: Set[asyncio.Task[None]] = set()
        self._started_at = 0.0
        self._sample_seq = 0
        self._last_accepted_seq = 0
        self._last_sample_hash: Optional[str] = None
        self.ocr_requests = 0

    @property
    def is_recording(self) -> bool:
        return self.state == RecordingState.RECORDING

    def live_tracks(self) -> List[MediaTrack]:
        """Tracks still holding a device (empty once torn down)."""
        return [t for t in self._tracks if t.live]

    async def _open_microphone(self) -> Optional[MediaStream]:
        if self.microphone is None:
            return None
        try:
            mic = await self.microphone.open()
        except Exception as e:
            logger.warning(f"Microphone unavailable, continuing without it: {e}")
            return None
        self._tracks.extend(mic.tracks)
        return mic

    async def start(self) -> bool:
        """
        Acquire streams and begin recording.

        Returns:
            True once recording, False if the user cancelled the picker

        Raises:
            CaptureBusyError: already recording
            CaptureError: no capture strategy succeeded
        """
        if self.state != RecordingState.NOT_RECORDING:
            raise CaptureBusyError("recording")

        self.state = RecordingState.STARTING
        chain = FallbackChain(self.strategies)
        try:
            primary = await chain.acquire()
            self._tracks.extend(primary.tracks)

            microphone = await self._open_microphone()
            self._stream, created = compose_recording_stream(primary, microphone)
            self._tracks.extend(created)

            self._recorder = self.recorder_factory(
                self._stream, timeslice=self.timeslice, on_error=self._on_recorder_error
            )
            self._recorder.start()

            loop = asyncio.get_running_loop()
            self._started_at = loop.time()
            self._sample_seq = 0
            self._last_accepted_seq = 0
            self._last_sample_hash = None
            self._sampler_task = asyncio.create_task(self._sampler_loop())
        except UserCancelledError:
            logger.info("Capture picker cancelled, not recording")
            await self._abandon()
            return False
        except BaseException:
            await self._abandon()
            raise
        finally:
            self.attempts = chain.attempts

        self.state = RecordingState.RECORDING
        logger.info(f"Recording started ({chain.describe()})")
        return True

    async def _abandon(self) -> None:
        if self._recorder:
            await self._recorder.stop()
            self._recorder = None
        self._teardown()
        self.state = RecordingState.NOT_RECORDING

    def _teardown(self) -> None:
        """Release every acquired track."""
        for track in self._tracks:
            try:
                track.stop()
            except Exception as e:
                logger.error(f"Failed to stop track {track.label}: {e}", exc_info=True)
        released = len(self._tracks)
        self._tracks = []
        self._stream = None
        logger.debug(f"Released {released} media track(s)")

    def _elapsed(self) -> int:
        return round(asyncio.get_running_loop().time() - self._started_at)

    async def _sampler_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.sample_interval)
                self._sample_seq += 1
                task = asyncio.create_task(self._sample(self._sample_seq))
                self._sample_tasks.add(task)
                task.add_done_callback(self._sample_done)
        except asyncio.CancelledError:
            pass

    def _sample_done(self, task: "asyncio.Task[None]") -> None:
        self._sample_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error(f"OCR sample failed: {task.exception()}")

    async def _sample(self, seq: int) -> None:
        """OCR one frame and append it if the text changed."""
        stream = self._stream
        if stream is None:
            return
        videos = [t for t in stream.video_tracks() if t.live]
        if not videos:
            return

        try:
            frame = await videos[0].grab_frame()
        except Exception as e:
            logger.warning(f"Frame grab failed: {e}")
            return
        if frame is None:
            return

        loop = asyncio.get_running_loop()
        png = await loop.run_in_executor(None, encode_png, frame)

        offset = self._elapsed()
        self.ocr_requests += 1
        result = await self.ocr.recognize(png, prompt=FRAME_PROMPT, filename="frame.png")

        if not result.ok:
            await self.buffer.append(
                f"OCR error: {result.error}", f"[Video OCR error @ {offset}s]"
            )
            return

        text = (result.text or "").strip()
        if not text:
            return
        if seq < self._last_accepted_seq:
            logger.debug(f"Discarding stale OCR sample {seq}")
            return

        digest = content_hash(text)
        if digest == self._last_sample_hash:
            return

        self._last_sample_hash = digest
        self._last_accepted_seq = seq
        await self.buffer.append(text, f"[Video OCR @ {offset}s]")

    async def _halt_sampler(self) -> None:
        tasks = list(self._sample_tasks)
        if self._sampler_task:
            tasks.append(self._sampler_task)
            self._sampler_task = None
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self._sample_tasks.clear()

    async def _on_recorder_error(self, error: Exception) -> None:
        await self.abort(f"Recorder failed: {error}")

    async def abort(self, reason: str) -> None:
        """Tear down after an error during recording, without transcription."""
        if self.state != RecordingState.RECORDING:
            return
        self.state = RecordingState.STOPPING
        logger.error(f"Recording aborted: {reason}")
        try:
            await self._halt_sampler()
            if self._recorder:
                self._recorder.on_error = None
                await self._recorder.stop()
        except Exception as e:
            logger.error(f"Error while aborting recording: {e}", exc_info=True)
        finally:
            self._recorder = None
            self._teardown()
            self.state = RecordingState.NOT_RECORDING
        await self.buffer.append(f"Recording error: {reason}", TRANSCRIPT_LABEL)
        if self.on_abort:
            await self.on_abort(reason)

    async def stop(self) -> Optional[RecordingArtifact]:
        """
        Stop recording, transcribe and append the transcript.

        Returns:
            The recording artifact, or None if nothing was recorded
        """
        if self.state != RecordingState.RECORDING:
            logger.warning(f"stop() ignored in state {self.state.value}")
            return None

        self.state = RecordingState.STOPPING
        try:
            artifacts: List[RecordingArtifact] = []
            try:
                await self._halt_sampler()
                if self._recorder:
                    await self._recorder.stop()
                    artifacts = self._recorder.artifacts()
            except Exception as e:
                logger.error(f"Final recorder flush failed: {e}", exc_info=True)
                await self.buffer.append(
                    f"Recording error: Final flush failed: {e}", TRANSCRIPT_LABEL
                )
                return None
            finally:
                self._recorder = None
                self._teardown()

            return await self._finalize(artifacts)
        finally:
            self.state = RecordingState.NOT_RECORDING

    async def _finalize(
        self, artifacts: List[RecordingArtifact]
    ) -> Optional[RecordingArtifact]:
        if self.artifact_store and settings.SAVE_RECORDINGS:
            for produced in artifacts:
                try:
                    await self.artifact_store.save(produced)
                except OSError as e:
                    logger.warning(f"Could not keep a copy of the recording: {e}")

        if not artifacts:
            await self.buffer.append(
                "Nothing was recorded; nothing to transcribe.", TRANSCRIPT_LABEL
            )
            return None

        artifact = artifacts[0]
        if not artifact.mime_type.startswith("audio/"):
            await self.buffer.append(
                "No audio was captured; nothing to transcribe.", TRANSCRIPT_LABEL
            )
            return artifact

        result = await self.transcription.transcribe(
            artifact.data, artifact.filename, artifact.mime_type
        )
        if not result.ok:
            await self.buffer.append(f"Transcription error: {result.error}", TRANSCRIPT_LABEL)
        elif result.text:
            await self.buffer.append(result.text, TRANSCRIPT_LABEL)
        else:
            logger.info("Recording uploaded, no transcript returned")
        return artifact
