"""Capture primitives: media ports, strategies, mixing, recording, cropping."""

from .cropper import crop_frame, encode_png, source_box
from .media import AudioTrack, MediaStream, MediaTrack, MicrophoneSource, VideoTrack
from .mixer import MixedAudioTrack, compose_recording_stream
from .overlay import PageMetrics, RegionSelectorOverlay
from .recorder import MediaRecorder
from .strategies import AcquisitionAttempt, CaptureStrategy, FallbackChain

__all__ = [
    "crop_frame",
    "encode_png",
    "source_box",
    "AudioTrack",
    "MediaStream",
    "MediaTrack",
    "MicrophoneSource",
    "VideoTrack",
    "MixedAudioTrack",
    "compose_recording_stream",
    "PageMetrics",
    "RegionSelectorOverlay",
    "MediaRecorder",
    "AcquisitionAttempt",
    "CaptureStrategy",
    "FallbackChain",
]
