"""Combine the tab/display audio and the microphone into one track."""

import logging
from typing import List, Optional, Tuple

import numpy as np

from .media import AudioTrack, MediaStream, MediaTrack

logger = logging.getLogger(__name__)


def _to_format(samples: np.ndarray, src_rate: int, src_channels: int,
               rate: int, channels: int) -> np.ndarray:
    """Convert int16 interleaved samples to float32 frames of the target format."""
    frames = samples.astype(np.float32).reshape(-1, src_channels)

    if src_channels != channels:
        mono = frames.mean(axis=1, keepdims=True)
        frames = np.repeat(mono, channels, axis=1)

    if src_rate != rate and len(frames):
        target_len = max(1, int(round(len(frames) * rate / src_rate)))
        src_x = np.linspace(0.0, 1.0, num=len(frames))
        dst_x = np.linspace(0.0, 1.0, num=target_len)
        frames = np.stack(
            [np.interp(dst_x, src_x, frames[:, c]) for c in range(channels)], axis=1
        )

    return frames


class MixedAudioTrack(AudioTrack):
    """Sums its sources sample by sample, clipped to int16."""

    def __init__(self, sources: List[AudioTrack]):
        first = sources[0]
        super().__init__(
            "mixed(" + ", ".join(s.label for s in sources) + ")",
            sample_rate=first.sample_rate,
            channels=first.channels,
        )
        self.sources = sources

    async def read(self) -> bytes:
        buffers = []
        for source in self.sources:
            if not source.live:
                continue
            raw = await source.read()
            samples = np.frombuffer(raw, dtype=np.int16)
            samples = samples[: len(samples) - len(samples) % source.channels]
            buffers.append(_to_format(
                samples, source.sample_rate, source.channels,
                self.sample_rate, self.channels,
            ))

        buffers = [b for b in buffers if len(b)]
        if not buffers:
            return b""

        length = max(len(b) for b in buffers)
        mixed = np.zeros((length, self.channels), dtype=np.float32)
        for b in buffers:
            mixed[: len(b)] += b

        return np.clip(mixed, -32768, 32767).astype(np.int16).tobytes()


def compose_recording_stream(
    primary: MediaStream, microphone: Optional[MediaStream] = None
) -> Tuple[MediaStream, List[MediaTrack]]:
    """
    Build the stream handed to the recorder.

    Video comes unmodified from the primary capture. Audio is the mix of
    the primary audio and the microphone when both exist, whichever one
    exists otherwise, or nothing.

    Returns:
        The recording stream and any tracks created here (to be stopped
        along with the acquired ones)
    """
    stream = MediaStream(primary.video_tracks())
    sources = primary.audio_tracks()[:1]
    if microphone is not None:
        sources += microphone.audio_tracks()[:1]

    created: List[MediaTrack] = []
    if len(sources) > 1:
        mixed = MixedAudioTrack(sources)
        stream.add_track(mixed)
        created.append(mixed)
        logger.info(f"Mixing audio: {mixed.label}")
    elif sources:
        stream.add_track(sources[0])
        logger.info(f"Recording single audio source: {sources[0].label}")
    else:
        logger.info("Recording without audio")

    return stream, created
