"""Capture pipeline models."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field


class CaptureMode(str, Enum):
    """Kind of capture the coordinator is running."""
    REGION = "region"
    RECORDING = "recording"
    UPLOAD = "upload"


class CaptureStatus(str, Enum):
    """Capture session lifecycle status."""
    IDLE = "idle"
    SELECTING = "selecting"
    CAPTURING = "capturing"
    RECORDING = "recording"
    FINALIZING = "finalizing"
    ERROR = "error"


ACTIVE_STATUSES = frozenset({
    CaptureStatus.SELECTING,
    CaptureStatus.CAPTURING,
    CaptureStatus.RECORDING,
    CaptureStatus.FINALIZING,
})


class CaptureSession(BaseModel):
    """One in-progress attempt to acquire visual or audio content."""

    mode: CaptureMode
    status: CaptureStatus = CaptureStatus.IDLE
    error: Optional[str] = Field(None, description="Recoverable error message")

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_STATUSES


class Rect(BaseModel):
    """Rectangle in viewport CSS pixels."""

    x: float
    y: float
    w: float
    h: float


class SelectionRect(BaseModel):
    """User-chosen region plus the page metrics needed to map it to pixels."""

    model_config = ConfigDict(populate_by_name=True)

    rect: Rect
    scroll_x: float = Field(0, alias="scrollX")
    scroll_y: float = Field(0, alias="scrollY")
    device_pixel_ratio: float = Field(1, alias="devicePixelRatio")

    def is_too_small(self, min_px: float) -> bool:
        return self.rect.w < min_px or self.rect.h < min_px


class RecordingArtifact(BaseModel):
    """Concatenated recorder output."""

    data: bytes
    mime_type: str
    filename: str

    @property
    def size(self) -> int:
        return len(self.data)


class UploadedFile(BaseModel):
    """A file handed to the panel by the user."""

    filename: str
    content_type: str = ""
    data: bytes
