"""Tests for mapping selections to snapshot pixels."""

import io

from PIL import Image

from conftest import make_png
from vp_context.capture.cropper import crop_frame, source_box
from vp_context.models.capture import Rect, SelectionRect


def _selection(x, y, w, h, sx=0, sy=0, dpr=1.0):
    return SelectionRect(
        rect=Rect(x=x, y=y, w=w, h=h), scroll_x=sx, scroll_y=sy, device_pixel_ratio=dpr
    )


def test_source_box_applies_scroll_and_ratio():
    assert source_box(_selection(10, 20, 30, 40, sx=5, sy=7, dpr=2)) == (30, 54, 60, 80)


def test_source_box_rounds_half_up():
    assert source_box(_selection(10.25, 0, 10.25, 10, dpr=2)) == (21, 0, 21, 20)
    assert source_box(_selection(0.5, 1.5, 8, 8)) == (1, 2, 8, 8)


def test_source_box_is_at_least_one_pixel():
    assert source_box(_selection(0, 0, 0.1, 0.2, dpr=1)) == (0, 0, 1, 1)


def test_selection_accepts_camel_case_fields():
    selection = SelectionRect.model_validate({
        "rect": {"x": 1, "y": 2, "w": 3, "h": 4},
        "scrollX": 10,
        "scrollY": 20,
        "devicePixelRatio": 1.5,
    })
    assert selection.scroll_x == 10
    assert selection.device_pixel_ratio == 1.5


def test_crop_frame_returns_selected_pixels():
    snapshot = make_png(200, 100)

    cropped = crop_frame(snapshot, _selection(10, 5, 20, 10, sx=30, sy=0, dpr=1))

    with Image.open(io.BytesIO(cropped)) as image:
        assert image.format == "PNG"
        assert image.size == (20, 10)
        assert image.getpixel((0, 0))[:2] == (40, 5)
        assert image.getpixel((19, 9))[:2] == (59, 14)


def test_crop_frame_scales_with_pixel_ratio():
    snapshot = make_png(200, 100)

    cropped = crop_frame(snapshot, _selection(10, 10, 20, 15, dpr=2))

    with Image.open(io.BytesIO(cropped)) as image:
        assert image.size == (40, 30)
        assert image.getpixel((0, 0))[:2] == (20, 20)
