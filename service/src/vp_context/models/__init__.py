"""Data models for VP Context."""

from .capture import (
    CaptureMode,
    CaptureSession,
    CaptureStatus,
    RecordingArtifact,
    Rect,
    SelectionRect,
    UploadedFile,
)
from .messages import (
    BusMessage,
    Envelope,
    OpenPanel,
    OpenPanelWithContext,
    PanelClosed,
    PanelOpened,
    RectSelected,
    ShowTriggerAffordance,
)
from .session import ChatSession, Message

__all__ = [
    "CaptureMode",
    "CaptureSession",
    "CaptureStatus",
    "RecordingArtifact",
    "Rect",
    "SelectionRect",
    "UploadedFile",
    "BusMessage",
    "Envelope",
    "OpenPanel",
    "OpenPanelWithContext",
    "PanelClosed",
    "PanelOpened",
    "RectSelected",
    "ShowTriggerAffordance",
    "ChatSession",
    "Message",
]
