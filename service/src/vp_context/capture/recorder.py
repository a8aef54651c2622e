"""Time-sliced recorder that accumulates stream output."""

import asyncio
import io
import logging
import os
import tempfile
import time
import wave
from pathlib import Path
from typing import Awaitable, Callable, List, Optional

import cv2
import numpy as np
from PIL import Image

from ..models.capture import RecordingArtifact
from .media import AudioTrack, MediaStream, VideoTrack

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[Exception], Awaitable[None]]


class MediaRecorder:
    """
    Collects the stream's audio and video in fixed time slices.

    Slicing runs as its own task so it never waits on OCR sampling.
    Every slice reads the pending audio and writes one video frame to an
    MJPG AVI file through OpenCV. ``stop()`` performs a final flush
    before returning; the audio slices are then wrapped into a single
    WAV artifact and the video file into an AVI artifact.
    """

    audio_mime_type = "audio/wav"
    video_mime_type = "video/x-msvideo"
    video_fourcc = "MJPG"

    def __init__(
        self,
        stream: MediaStream,
        timeslice: float = 1.0,
        on_error: Optional[ErrorCallback] = None,
    ):
        self.stream = stream
        self.timeslice = timeslice
        self.on_error = on_error
        self.chunks: List[bytes] = []
        self.frames = 0
        self.state = "inactive"
        self._task: Optional[asyncio.Task[None]] = None
        self._started = int(time.time() * 1000)

        audio = stream.audio_tracks()
        self._audio: Optional[AudioTrack] = audio[0] if audio else None
        video = stream.video_tracks()
        self._video: Optional[VideoTrack] = video[0] if video else None

        self._writer: Optional[cv2.VideoWriter] = None
        self._video_path: Optional[Path] = None
        self._frame_size: Optional[tuple] = None
        self._video_data: Optional[bytes] = None

    @property
    def fps(self) -> float:
        return 1.0 / self.timeslice

    def start(self) -> None:
        if self.state != "inactive":
            return
        self.state = "recording"
        self._started = int(time.time() * 1000)
        self._task = asyncio.create_task(self._slice_loop())
        logger.debug(f"Recorder started ({self.timeslice}s slices)")

    async def _flush(self) -> None:
        if self._audio is not None and self._audio.live:
            data = await self._audio.read()
            if data:
                self.chunks.append(data)

        if self._video is not None and self._video.live:
            frame = await self._video.grab_frame()
            if frame is not None:
                loop = asyncio.get_running_loop()
                await loop.run_in_executor(None, self._write_frame, frame)

    def _write_frame(self, frame: Image.Image) -> None:
        if self._writer is None:
            fd, path = tempfile.mkstemp(prefix="vp-recording-", suffix=".avi")
            os.close(fd)
            self._video_path = Path(path)
            self._frame_size = frame.size
            fourcc = cv2.VideoWriter_fourcc(*self.video_fourcc)
            self._writer = cv2.VideoWriter(path, fourcc, self.fps, self._frame_size)

        # The writer is fixed to the first frame's size
        if frame.size != self._frame_size:
            frame = frame.resize(self._frame_size)
        bgr = cv2.cvtColor(np.asarray(frame.convert("RGB")), cv2.COLOR_RGB2BGR)
        self._writer.write(bgr)
        self.frames += 1

    def _close_video(self) -> None:
        """Release the writer, keep the encoded bytes, remove the temp file."""
        if self._writer is not None:
            self._writer.release()
            self._writer = None
        if self._video_path is not None:
            try:
                if self.frames:
                    self._video_data = self._video_path.read_bytes()
            finally:
                self._video_path.unlink(missing_ok=True)
                self._video_path = None

    async def _slice_loop(self) -> None:
        try:
            while True:
                await asyncio.sleep(self.timeslice)
                await self._flush()
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.error(f"Recorder slice failed: {e}", exc_info=True)
            self.state = "inactive"
            self._task = None
            if self.on_error:
                await self.on_error(e)

    async def stop(self) -> None:
        """Stop slicing and wait for the final flush."""
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        try:
            if self.state == "recording":
                await self._flush()
        finally:
            self.state = "inactive"
            loop = asyncio.get_running_loop()
            await loop.run_in_executor(None, self._close_video)
        logger.debug(
            f"Recorder stopped with {len(self.chunks)} audio chunk(s), {self.frames} frame(s)"
        )

    def audio_artifact(self) -> Optional[RecordingArtifact]:
        if self._audio is None or not self.chunks:
            return None

        buffer = io.BytesIO()
        with wave.open(buffer, "wb") as wav:
            wav.setnchannels(self._audio.channels)
            wav.setsampwidth(2)
            wav.setframerate(self._audio.sample_rate)
            wav.writeframes(b"".join(self.chunks))

        return RecordingArtifact(
            data=buffer.getvalue(),
            mime_type=self.audio_mime_type,
            filename=f"recording-{self._started}.wav",
        )

    def video_artifact(self) -> Optional[RecordingArtifact]:
        if not self._video_data:
            return None
        return RecordingArtifact(
            data=self._video_data,
            mime_type=self.video_mime_type,
            filename=f"recording-{self._started}.avi",
        )

    def artifacts(self) -> List[RecordingArtifact]:
        """Every artifact produced, audio first."""
        return [a for a in (self.audio_artifact(), self.video_artifact()) if a is not None]

    def artifact(self) -> Optional[RecordingArtifact]:
        """The artifact to transcribe: the audio if any, otherwise the video."""
        produced = self.artifacts()
        return produced[0] if produced else None
