"""Crop a full-viewport snapshot to a selection."""

import io
import math
from typing import Tuple

from PIL import Image

from ..models.capture import SelectionRect


def _round_px(value: float) -> int:
    # Half-up rounding, matching how the page reports pixel metrics
    return int(math.floor(value + 0.5))


def source_box(selection: SelectionRect) -> Tuple[int, int, int, int]:
    """
    Map a viewport selection to source-pixel space.

    Returns:
        (left, top, width, height) with width and height at least 1
    """
    rect = selection.rect
    dpr = selection.device_pixel_ratio
    left = _round_px((rect.x + selection.scroll_x) * dpr)
    top = _round_px((rect.y + selection.scroll_y) * dpr)
    width = max(1, _round_px(rect.w * dpr))
    height = max(1, _round_px(rect.h * dpr))
    return left, top, width, height


def encode_png(image: Image.Image) -> bytes:
    buffer = io.BytesIO()
    image.save(buffer, format="PNG")
    return buffer.getvalue()


def crop_frame(snapshot: bytes, selection: SelectionRect) -> bytes:
    """Return PNG bytes of the selected region of a snapshot image."""
    left, top, width, height = source_box(selection)
    with Image.open(io.BytesIO(snapshot)) as image:
        region = image.crop((left, top, left + width, top + height))
    return encode_png(region)
