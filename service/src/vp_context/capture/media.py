"""Media track and stream ports.

Platform code supplies concrete tracks; the recording pipeline only
relies on these interfaces.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional

from PIL import Image

logger = logging.getLogger(__name__)


class MediaTrack(ABC):
    """A live capture source that must be stopped to release its device."""

    kind: str = ""

    def __init__(self, label: str):
        self.label = label
        self._live = True

    @property
    def live(self) -> bool:
        return self._live

    def stop(self) -> None:
        """Release the underlying device (idempotent)."""
        if not self._live:
            return
        self._live = False
        self._release()
        logger.debug(f"Stopped {self.kind} track: {self.label}")

    def _release(self) -> None:
        """Hook for subclasses holding an OS resource."""


class VideoTrack(MediaTrack):
    kind = "video"

    @abstractmethod
    async def grab_frame(self) -> Optional[Image.Image]:
        """Snapshot the current frame, or None if no frame is ready."""


class AudioTrack(MediaTrack):
    """16-bit PCM audio source."""

    kind = "audio"

    def __init__(self, label: str, sample_rate: int = 48000, channels: int = 1):
        super().__init__(label)
        self.sample_rate = sample_rate
        self.channels = channels

    @abstractmethod
    async def read(self) -> bytes:
        """Return the interleaved int16 samples captured since the last read."""


class MediaStream:
    """An ordered set of tracks acquired together."""

    def __init__(self, tracks: Optional[List[MediaTrack]] = None):
        self.tracks: List[MediaTrack] = list(tracks or [])

    def add_track(self, track: MediaTrack) -> None:
        self.tracks.append(track)

    def video_tracks(self) -> List[VideoTrack]:
        return [t for t in self.tracks if isinstance(t, VideoTrack)]

    def audio_tracks(self) -> List[AudioTrack]:
        return [t for t in self.tracks if isinstance(t, AudioTrack)]

    def live_tracks(self) -> List[MediaTrack]:
        return [t for t in self.tracks if t.live]

    def stop_all(self) -> None:
        for track in self.tracks:
            try:
                track.stop()
            except Exception as e:
                logger.error(f"Failed to stop track {track.label}: {e}", exc_info=True)


class MicrophoneSource(ABC):
    """Opens a microphone stream on demand."""

    @abstractmethod
    async def open(self) -> MediaStream:
        """Acquire the microphone; raises a CaptureError on refusal."""
